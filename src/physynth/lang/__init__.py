"""
Command language front end: tokens, lexer, AST, parser and diagnostics.
"""

from .tokens import Token, TokenType, SourceLocation, SourceSpan
from .lexer import Lexer, tokenize
from .parser import Parser, parse, parse_program
from .errors import (
    Diagnostic,
    DiagnosticCollector,
    ErrorSeverity,
    ScriptError,
    LexerError,
    ParserError,
)
from . import ast

__all__ = [
    "Token", "TokenType", "SourceLocation", "SourceSpan",
    "Lexer", "tokenize",
    "Parser", "parse", "parse_program",
    "Diagnostic", "DiagnosticCollector", "ErrorSeverity",
    "ScriptError", "LexerError", "ParserError",
    "ast",
]
