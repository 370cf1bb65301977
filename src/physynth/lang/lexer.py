"""
Lexer for the physynth command language.

Converts console input into a stream of tokens for the parser.
Supports:
- Line comments (//) and nested block comments (/* */)
- String literals with escape sequences
- Integer literals (decimal, hex, binary, with _ separators)
- Float literals (including scientific notation and a trailing '.')
- Arithmetic, comparison and logic operators, plus the graph operators >> | & ^
"""

from typing import List, Optional, Iterator
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_unterminated_comment,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
    error_invalid_hex_literal,
    error_invalid_binary_literal,
)


# Two-character operators, checked before single characters
TWO_CHAR_TOKENS = {
    '==': TokenType.EQ,
    '!=': TokenType.NE,
    '<=': TokenType.LE,
    '>=': TokenType.GE,
    '&&': TokenType.AND,
    '||': TokenType.OR,
    '>>': TokenType.PIPE,
    '**': TokenType.DOUBLE_STAR,
    '+=': TokenType.PLUS_ASSIGN,
    '-=': TokenType.MINUS_ASSIGN,
    '*=': TokenType.STAR_ASSIGN,
    '/=': TokenType.SLASH_ASSIGN,
    '%=': TokenType.PERCENT_ASSIGN,
    '::': TokenType.PATH_SEP,
    '..': TokenType.RANGE,
}

SINGLE_CHAR_TOKENS = {
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.STAR,
    '/': TokenType.SLASH,
    '%': TokenType.PERCENT,
    '<': TokenType.LT,
    '>': TokenType.GT,
    '=': TokenType.ASSIGN,
    '!': TokenType.NOT,
    '|': TokenType.STACK,
    '&': TokenType.BUS,
    '^': TokenType.BRANCH,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    ';': TokenType.SEMICOLON,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
}


class Lexer:
    """
    Tokenizer for the command language.

    Whitespace and newlines are insignificant; statements are separated by
    ';' and grouped with braces.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _skip_line_comment(self) -> None:
        """Skip a // comment up to the end of the line."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_block_comment(self) -> None:
        """Skip /* ... */ comment, which may nest."""
        start = self._location()
        self._advance()  # consume '/'
        self._advance()  # consume '*'
        depth = 1

        while not self._is_at_end() and depth > 0:
            if self._peek() == '/' and self._peek(1) == '*':
                self._advance()
                self._advance()
                depth += 1
            elif self._peek() == '*' and self._peek(1) == '/':
                self._advance()
                self._advance()
                depth -= 1
            else:
                self._advance()

        if depth > 0:
            raise error_unterminated_comment(
                self._span(start),
                self.get_source_line(start.line)
            )

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments."""
        while True:
            ch = self._peek()
            if ch in ' \t\r\n' and not self._is_at_end():
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                self._skip_line_comment()
            elif ch == '/' and self._peek(1) == '*':
                self._skip_block_comment()
            else:
                return

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _scan_string(self) -> Token:
        """Scan a double-quoted string literal."""
        start = self._location()
        self._advance()  # consume opening quote

        chars = []
        while not self._is_at_end() and self._peek() != '"':
            if self._peek() == '\\':
                self._advance()
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        if self._is_at_end():
            raise error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )

        self._advance()  # consume closing quote
        return self._make_token(TokenType.STRING_LITERAL, ''.join(chars), start)

    def _scan_escape_sequence(self) -> str:
        """Parse an escape sequence after backslash."""
        esc_start = self._location()
        if self._is_at_end():
            raise error_invalid_escape_sequence(
                "", self._span(esc_start), self.get_source_line(esc_start.line)
            )

        ch = self._advance()
        escape_chars = {
            'n': '\n',
            't': '\t',
            'r': '\r',
            '\\': '\\',
            '"': '"',
            "'": "'",
            '0': '\0',
        }

        if ch in escape_chars:
            return escape_chars[ch]
        if ch in 'xu':
            width = 2 if ch == 'x' else 4
            hex_chars = ''.join(self._advance() for _ in range(width))
            try:
                return chr(int(hex_chars, 16))
            except ValueError:
                raise error_invalid_escape_sequence(
                    f"{ch}{hex_chars}", self._span(esc_start),
                    self.get_source_line(esc_start.line)
                )
        raise error_invalid_escape_sequence(
            ch, self._span(esc_start), self.get_source_line(esc_start.line)
        )

    def _scan_digits(self, allowed: str) -> None:
        while self._peek() in allowed or self._peek() == '_':
            if self._is_at_end():
                break
            self._advance()

    def _scan_number(self) -> Token:
        """Scan a numeric literal (int or float)."""
        start = self._location()

        if self._peek() == '0' and self._peek(1) in 'xX':
            self._advance()
            return self._scan_prefixed_number(start, '0123456789abcdefABCDEF', 16)
        if self._peek() == '0' and self._peek(1) in 'bB':
            self._advance()
            return self._scan_prefixed_number(start, '01', 2)

        digits = '0123456789'
        self._scan_digits(digits)

        is_float = False
        if self._peek() == '.':
            following = self._peek(1)
            if following.isdigit():
                is_float = True
                self._advance()  # consume '.'
                self._scan_digits(digits)
            elif following != '.' and not (following.isalpha() or following == '_'):
                # "2." is a float, "2..3" is a range and "2.sin()" a method call
                is_float = True
                self._advance()

        if self._peek() in 'eE' and not self._is_at_end():
            is_float = True
            self._advance()  # consume 'e'
            if self._peek() in '+-':
                self._advance()
            if not self._peek().isdigit():
                lexeme = self.source[start.offset:self.pos]
                raise error_invalid_number_literal(
                    lexeme, self._span(start), self.get_source_line(start.line)
                )
            self._scan_digits(digits)

        lexeme = self.source[start.offset:self.pos]
        clean = lexeme.replace('_', '')
        try:
            if is_float:
                return self._make_token(TokenType.FLOAT_LITERAL, float(clean), start, lexeme)
            return self._make_token(TokenType.INT_LITERAL, int(clean), start, lexeme)
        except ValueError:
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )

    def _scan_prefixed_number(self, start: SourceLocation, allowed: str, base: int) -> Token:
        """Scan a hexadecimal (0x...) or binary (0b...) integer literal."""
        self._advance()  # consume 'x' or 'b'
        error = error_invalid_hex_literal if base == 16 else error_invalid_binary_literal

        if self._peek() not in allowed or self._is_at_end():
            lexeme = self.source[start.offset:self.pos]
            raise error(lexeme, self._span(start), self.get_source_line(start.line))

        self._scan_digits(allowed)
        # A trailing alphanumeric such as 0b102 or 0xfg is malformed
        while self._peek().isalnum():
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        try:
            value = int(lexeme[2:].replace('_', ''), base)
        except ValueError:
            raise error(lexeme, self._span(start), self.get_source_line(start.line))
        return self._make_token(TokenType.INT_LITERAL, value, start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        start = self._location()

        while self._peek().isalnum() or self._peek() == '_':
            self._advance()

        lexeme = self.source[start.offset:self.pos]

        if lexeme in KEYWORDS:
            token_type = KEYWORDS[lexeme]
            value = (lexeme == 'true') if token_type == TokenType.BOOL_LITERAL else lexeme
            return self._make_token(token_type, value, start, lexeme)

        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_trivia()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch == '"':
            return self._scan_string()

        if ch.isdigit():
            return self._scan_number()

        if ch.isalpha() or ch == '_':
            return self._scan_identifier_or_keyword()

        pair = ch + self._peek(1)
        if pair in TWO_CHAR_TOKENS:
            self._advance()
            self._advance()
            return self._make_token(TWO_CHAR_TOKENS[pair], pair, start)

        if ch in SINGLE_CHAR_TOKENS:
            self._advance()
            return self._make_token(SINGLE_CHAR_TOKENS[ch], ch, start)

        self._advance()
        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        tokens = []
        while True:
            token = self._scan_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                break
        return tokens

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens

    Raises:
        LexerError: If tokenization fails
    """
    return Lexer(source, filename).tokenize()
