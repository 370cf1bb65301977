"""
Token types for the physynth command language lexer.

The command language is a small statement language typed
into the sandbox console: ``let`` bindings, assignments, ``for``/``if``
blocks and expressions over numbers, arrays, audio graphs and entities.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the lexer."""

    # --- Literals ---
    INT_LITERAL = auto()        # 42, 0xff, 0b1010, 1_000
    FLOAT_LITERAL = auto()      # 3.14, 1e-9, 2.
    STRING_LITERAL = auto()     # "Ctrl+A", "x > s"
    BOOL_LITERAL = auto()       # true, false

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names

    # --- Keywords ---
    LET = auto()                # let
    FOR = auto()                # for
    IN = auto()                 # in
    IF = auto()                 # if
    ELSE = auto()               # else
    BREAK = auto()              # break
    CONTINUE = auto()           # continue

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %
    DOUBLE_STAR = auto()        # ** (power)

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # &&
    OR = auto()                 # ||
    NOT = auto()                # !

    # --- Graph operators ---
    PIPE = auto()               # >>
    STACK = auto()              # |
    BUS = auto()                # &
    BRANCH = auto()             # ^

    # --- Assignment ---
    ASSIGN = auto()             # =
    PLUS_ASSIGN = auto()        # +=
    MINUS_ASSIGN = auto()       # -=
    STAR_ASSIGN = auto()        # *=
    SLASH_ASSIGN = auto()       # /=
    PERCENT_ASSIGN = auto()     # %=

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    SEMICOLON = auto()          # ;
    COMMA = auto()              # ,
    DOT = auto()                # .
    PATH_SEP = auto()           # ::
    RANGE = auto()              # ..

    # --- Special ---
    EOF = auto()                # end of input


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # The actual value (int, float, str, bool)
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                         TokenType.STRING_LITERAL, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


KEYWORDS: dict[str, TokenType] = {
    "let": TokenType.LET,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "true": TokenType.BOOL_LITERAL,
    "false": TokenType.BOOL_LITERAL,
}

# Compound assignment token -> binary operator applied before storing
COMPOUND_ASSIGN_OPS: dict[TokenType, str] = {
    TokenType.PLUS_ASSIGN: "+",
    TokenType.MINUS_ASSIGN: "-",
    TokenType.STAR_ASSIGN: "*",
    TokenType.SLASH_ASSIGN: "/",
    TokenType.PERCENT_ASSIGN: "%",
}


def is_assignment_token(token_type: TokenType) -> bool:
    """Check if a token type starts the right side of an assignment."""
    return token_type is TokenType.ASSIGN or token_type in COMPOUND_ASSIGN_OPS
