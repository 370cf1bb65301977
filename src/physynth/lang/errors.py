"""
Command language exceptions and diagnostics.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors

Evaluation never raises: an expression that does not resolve to a value
simply produces no value. Only text that cannot be tokenized or parsed is
reported, as a single diagnostic per input.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    """A single diagnostic message."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: SourceSpan
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = [f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}"]

        if show_source and self.source_line is not None:
            parts.append("  |")
            parts.append(f"{self.span.start.line:>3} | {self.source_line}")
            col = self.span.start.column
            if self.span.start.line == self.span.end.line:
                end_col = self.span.end.column
            else:
                end_col = len(self.source_line) + 1
            parts.append(f"    | {' ' * (col - 1)}{'^' * max(1, end_col - col)}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def short(self) -> str:
        """One-line form used in the console transcript."""
        return f"{self.message} at {self.span.start}"

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "range": {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            },
            "hints": self.hints,
        }


class ScriptError(Exception):
    """Base exception for command language errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(ScriptError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(ScriptError):
    """Error during parsing (E1xx)."""
    pass


def _error(cls, code: str, message: str, span: SourceSpan,
           source_line: Optional[str] = None, *hints: str) -> ScriptError:
    return cls(Diagnostic(code, message, ErrorSeverity.ERROR, span, source_line, list(hints)))


# --- Lexer errors (E0xx) ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E001", f"unexpected character '{char}'", span, source_line)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E002", "unterminated string literal", span, source_line,
                  'close the string with a matching "')


def error_unterminated_comment(span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E004", "unterminated block comment, missing */", span, source_line)


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E005", f"invalid escape sequence '\\{seq}'", span, source_line,
                  "escapes are \\n \\t \\r \\\" \\\\ \\0 \\x## and \\u####")


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E006", f"invalid number literal '{text}'", span, source_line)


def error_invalid_hex_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E007", f"invalid hexadecimal literal '{text}'", span, source_line,
                  "write at least one hex digit after 0x, as in 0xFF")


def error_invalid_binary_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    return _error(LexerError, "E008", f"invalid binary literal '{text}'", span, source_line,
                  "binary digits are 0 and 1, as in 0b1010")


# --- Parser errors (E1xx) ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    return _error(ParserError, "E101", f"expected {expected}, found {found}", span, source_line)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    return _error(ParserError, "E102", f"unexpected end of input, expected {expected}", span)


def error_invalid_expression(span: SourceSpan, source_line: str = None) -> ParserError:
    return _error(ParserError, "E103", "invalid expression", span, source_line)


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParserError:
    return _error(ParserError, "E104", "invalid left-hand side of assignment", span, source_line,
                  "assign to a name, an element 'name[i]' or a quoted shortcut \"Ctrl+K\"")


class DiagnosticCollector:
    """Collects diagnostics reported over a console session."""

    def __init__(self, max_kept: int = 100):
        self.diagnostics: List[Diagnostic] = []
        self.max_kept = max_kept
        self._error_count = 0

    def add(self, diagnostic: Diagnostic) -> None:
        """Add a diagnostic, keeping only the most recent ``max_kept``."""
        self.diagnostics.append(diagnostic)
        if len(self.diagnostics) > self.max_kept:
            del self.diagnostics[0]
        if diagnostic.severity == ErrorSeverity.ERROR:
            self._error_count += 1

    def add_error(self, error: ScriptError) -> None:
        """Add an error exception as a diagnostic."""
        self.add(error.diagnostic)

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def has_errors(self) -> bool:
        return self._error_count > 0

    def clear(self) -> None:
        self.diagnostics.clear()
        self._error_count = 0

    def format_all(self, show_source: bool = True) -> str:
        """Format all diagnostics for display."""
        parts = [d.format(show_source) for d in self.diagnostics]
        if self._error_count > 0:
            parts.append(f"\n{self._error_count} error(s)")
        return "\n\n".join(parts)

    def to_json(self) -> dict:
        """Convert all diagnostics to JSON format."""
        return {
            "diagnostics": [d.to_json() for d in self.diagnostics],
            "error_count": self._error_count,
        }
