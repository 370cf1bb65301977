"""
Unit tests for the command language lexer.
"""

import pytest

from physynth.lang import tokenize, LexerError, TokenType


def token_types(source: str):
    """Token types without the trailing EOF."""
    return [t.type for t in tokenize(source)[:-1]]


class TestLiterals:
    """Test literal scanning."""

    def test_integer(self):
        """Decimal integers with separators."""
        tokens = tokenize("42 1_000")
        assert tokens[0].type == TokenType.INT_LITERAL
        assert tokens[0].value == 42
        assert tokens[1].value == 1000

    def test_hex_and_binary(self):
        """Prefixed integers."""
        tokens = tokenize("0xff 0b1010")
        assert tokens[0].value == 255
        assert tokens[1].value == 10
        assert tokens[0].type == TokenType.INT_LITERAL

    def test_float(self):
        """Decimals and exponents are floats."""
        tokens = tokenize("3.14 1e-9 2.5E3")
        assert [t.type for t in tokens[:-1]] == [TokenType.FLOAT_LITERAL] * 3
        assert tokens[0].value == pytest.approx(3.14)
        assert tokens[1].value == pytest.approx(1e-9)
        assert tokens[2].value == 2500.0

    def test_trailing_dot_float(self):
        """'2.' is a float literal."""
        tokens = tokenize("2.;")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 2.0
        assert tokens[1].type == TokenType.SEMICOLON

    def test_range_is_not_a_float(self):
        """'2..3' is a range between two integers."""
        assert token_types("2..3") == [
            TokenType.INT_LITERAL, TokenType.RANGE, TokenType.INT_LITERAL,
        ]

    def test_method_on_integer(self):
        """'2.sin()' is a method call on an integer."""
        assert token_types("2.sin()") == [
            TokenType.INT_LITERAL, TokenType.DOT, TokenType.IDENTIFIER,
            TokenType.LPAREN, TokenType.RPAREN,
        ]

    def test_string(self):
        """Strings keep their text and decode escapes."""
        tokens = tokenize('"Ctrl+A" "a\\nb"')
        assert tokens[0].type == TokenType.STRING_LITERAL
        assert tokens[0].value == "Ctrl+A"
        assert tokens[1].value == "a\nb"

    def test_bool(self):
        """true and false become boolean literals."""
        tokens = tokenize("true false")
        assert tokens[0].type == TokenType.BOOL_LITERAL
        assert tokens[0].value is True
        assert tokens[1].value is False


class TestOperators:
    """Test operator scanning."""

    def test_graph_operators(self):
        """Pipe, stack, bus and branch."""
        assert token_types(">> | & ^") == [
            TokenType.PIPE, TokenType.STACK, TokenType.BUS, TokenType.BRANCH,
        ]

    def test_compound_assignment(self):
        """Compound assignment operators are single tokens."""
        assert token_types("+= -= *= /= %=") == [
            TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN, TokenType.STAR_ASSIGN,
            TokenType.SLASH_ASSIGN, TokenType.PERCENT_ASSIGN,
        ]

    def test_comparisons_and_logic(self):
        """Two-character operators win over their prefixes."""
        assert token_types("<= >= == != && || ! < >") == [
            TokenType.LE, TokenType.GE, TokenType.EQ, TokenType.NE,
            TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.LT, TokenType.GT,
        ]

    def test_path_separator(self):
        """'::' joins path segments."""
        assert token_types("Net::new") == [
            TokenType.IDENTIFIER, TokenType.PATH_SEP, TokenType.IDENTIFIER,
        ]


class TestKeywords:
    """Test keywords and identifiers."""

    def test_keywords(self):
        assert token_types("let for in if else break continue") == [
            TokenType.LET, TokenType.FOR, TokenType.IN, TokenType.IF,
            TokenType.ELSE, TokenType.BREAK, TokenType.CONTINUE,
        ]

    def test_identifier(self):
        tokens = tokenize("my_var2")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[0].value == "my_var2"


class TestTrivia:
    """Test whitespace and comments."""

    def test_comments_are_skipped(self):
        """Line and block comments produce no tokens."""
        assert token_types("1 // one\n/* two */ 2") == [
            TokenType.INT_LITERAL, TokenType.INT_LITERAL,
        ]

    def test_eof(self):
        """Every token stream ends with EOF."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_locations(self):
        """Tokens carry 1-indexed line and column."""
        tokens = tokenize("a\n  b")
        assert tokens[1].span.start.line == 2
        assert tokens[1].span.start.column == 3


class TestLexerErrors:
    """Test lexer error reporting."""

    def test_unexpected_character(self):
        with pytest.raises(LexerError):
            tokenize("let a = @;")

    def test_unterminated_string(self):
        with pytest.raises(LexerError):
            tokenize('"never closed')

    def test_bad_exponent(self):
        with pytest.raises(LexerError):
            tokenize("1e+")

    def test_bad_binary(self):
        with pytest.raises(LexerError):
            tokenize("0b102")
