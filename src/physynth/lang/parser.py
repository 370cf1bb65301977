"""
Recursive descent parser for the physynth command language.

Converts a token stream into a ``Program`` AST.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan, COMPOUND_ASSIGN_OPS, is_assignment_token
from .lexer import tokenize
from .ast import (
    # Expressions
    Expression, Literal, Path, BinaryOp, UnaryOp,
    FunctionCall, MethodCall, MemberAccess, IndexAccess,
    ArrayLiteral, RangeExpr,
    # Statements
    Statement, LetStatement, AssignmentStatement, Block, ForStatement,
    IfStatement, BreakStatement, ContinueStatement, ExpressionStatement,
    Program,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_expression,
    error_invalid_assignment_target,
)


class Parser:
    """
    Recursive descent parser for the command language.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    The parser implements precedence climbing for expressions:
        Lowest:  ..  (range, only at the top of an expression)
                 ||
                 &&
                 == != < > <= >=
                 |   (graph stack)
                 ^   (graph branch)
                 &   (graph bus)
                 >>  (graph pipe)
                 + -
                 * / %
        Highest: ** (power, right-associative)
                 unary (! -)
    """

    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 3,
        TokenType.GT: 3,
        TokenType.LE: 3,
        TokenType.GE: 3,
        TokenType.STACK: 4,
        TokenType.BRANCH: 5,
        TokenType.BUS: 6,
        TokenType.PIPE: 7,
        TokenType.PLUS: 8,
        TokenType.MINUS: 8,
        TokenType.STAR: 9,
        TokenType.SLASH: 9,
        TokenType.PERCENT: 9,
        TokenType.DOUBLE_STAR: 10,
    }

    RIGHT_ASSOCIATIVE = {TokenType.DOUBLE_STAR}

    def __init__(self, tokens: List[Token], source: Optional[str] = None):
        self.tokens = tokens
        self.source = source
        self.pos = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, token: Token) -> Optional[str]:
        if self.source is None:
            return None
        lines = self.source.splitlines()
        if 1 <= token.span.start.line <= len(lines):
            return lines[token.span.start.line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, f"'{token.lexeme}'", token.span,
                                     self._source_line(token))

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        end_token = self.tokens[max(0, self.pos - 1)]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Statements
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse a whole console input."""
        start = self._current()
        statements = []
        while not self._is_at_end():
            if self._match(TokenType.SEMICOLON):
                continue
            statements.append(self._parse_statement())
        return Program(span=self._span_from(start), statements=statements)

    def _parse_statement(self) -> Statement:
        if self._check(TokenType.LET):
            return self._parse_let()
        if self._check(TokenType.FOR):
            return self._parse_for()
        if self._check(TokenType.IF):
            return self._parse_if()
        if self._check(TokenType.LBRACE):
            return self._parse_block()
        if self._check_any(TokenType.BREAK, TokenType.CONTINUE):
            token = self._advance()
            self._end_statement()
            node = BreakStatement if token.type == TokenType.BREAK else ContinueStatement
            return node(span=token.span)
        return self._parse_expression_statement()

    def _end_statement(self) -> None:
        """A ';' ends a statement; it may be left off before '}' or the end of input."""
        if self._match(TokenType.SEMICOLON):
            return
        if self._check_any(TokenType.RBRACE, TokenType.EOF):
            return
        self._error("';'")

    def _parse_let(self) -> LetStatement:
        start = self._advance()  # consume 'let'
        name = self._consume(TokenType.IDENTIFIER, "identifier").value
        self._consume(TokenType.ASSIGN, "'='")
        value = self._parse_expression()
        self._end_statement()
        return LetStatement(span=self._span_from(start), name=name, value=value)

    def _parse_for(self) -> ForStatement:
        start = self._advance()  # consume 'for'
        variable = self._consume(TokenType.IDENTIFIER, "identifier").value
        self._consume(TokenType.IN, "'in'")
        iterable = self._parse_expression()
        body = self._parse_block()
        self._match(TokenType.SEMICOLON)
        return ForStatement(span=self._span_from(start), variable=variable,
                            iterable=iterable, body=body)

    def _parse_if(self) -> IfStatement:
        start = self._advance()  # consume 'if'
        condition = self._parse_expression()
        then_block = self._parse_block()
        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_block()
        self._match(TokenType.SEMICOLON)
        return IfStatement(span=self._span_from(start), condition=condition,
                           then_block=then_block, else_branch=else_branch)

    def _parse_block(self) -> Block:
        start = self._consume(TokenType.LBRACE, "'{'")
        statements = []
        while not self._check(TokenType.RBRACE):
            if self._is_at_end():
                self._error("'}'")
            if self._match(TokenType.SEMICOLON):
                continue
            statements.append(self._parse_statement())
        self._advance()  # consume '}'
        return Block(span=self._span_from(start), statements=statements)

    def _parse_expression_statement(self) -> Statement:
        start = self._current()
        expr = self._parse_expression()

        if is_assignment_token(self._current().type):
            op_token = self._advance()
            if not self._is_assignable(expr):
                raise error_invalid_assignment_target(expr.span, self._source_line(start))
            value = self._parse_expression()
            self._end_statement()
            return AssignmentStatement(
                span=self._span_from(start),
                target=expr,
                value=value,
                operator=COMPOUND_ASSIGN_OPS.get(op_token.type),
            )

        self._end_statement()
        return ExpressionStatement(span=self._span_from(start), expression=expr)

    @staticmethod
    def _is_assignable(expr: Expression) -> bool:
        if isinstance(expr, Path):
            return expr.is_ident
        if isinstance(expr, IndexAccess):
            return isinstance(expr.object, Path) and expr.object.is_ident
        return isinstance(expr, Literal) and expr.literal_type == TokenType.STRING_LITERAL

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Expression:
        expr = self._parse_binary_expr(1)
        if self._match(TokenType.RANGE):
            end = self._parse_binary_expr(1)
            expr = RangeExpr(span=SourceSpan(expr.span.start, end.span.end),
                             start=expr, end=end)
        return expr

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator

            next_precedence = precedence if op_token.type in self.RIGHT_ASSOCIATIVE else precedence + 1
            right = self._parse_binary_expr(next_precedence)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (!, -)."""
        if self._check_any(TokenType.NOT, TokenType.MINUS):
            op = self._advance()
            operand = self._parse_unary_expr()
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse postfix expressions (calls, member access, indexing)."""
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.LPAREN):
                args = self._parse_arguments()
                expr = FunctionCall(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    callee=expr,
                    arguments=args,
                )
            elif self._check(TokenType.DOT):
                self._advance()  # consume '.'
                member = self._consume(TokenType.IDENTIFIER, "identifier").value

                if self._check(TokenType.LPAREN):
                    args = self._parse_arguments()
                    expr = MethodCall(
                        span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                        object=expr,
                        method=member,
                        arguments=args,
                    )
                else:
                    expr = MemberAccess(
                        span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                        object=expr,
                        member=member
                    )
            elif self._check(TokenType.LBRACKET):
                self._advance()  # consume '['
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    object=expr,
                    index=index
                )
            else:
                break

        return expr

    def _parse_arguments(self) -> List[Expression]:
        """Parse a parenthesized, comma separated argument list."""
        self._consume(TokenType.LPAREN, "'('")
        args = []
        while not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        token = self._current()

        if self._check_any(TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                           TokenType.STRING_LITERAL, TokenType.BOOL_LITERAL):
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if self._check(TokenType.IDENTIFIER):
            self._advance()
            segments = [token.value]
            while self._match(TokenType.PATH_SEP):
                segments.append(self._consume(TokenType.IDENTIFIER, "identifier").value)
            return Path(span=self._span_from(token), segments=segments)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if self._match(TokenType.LBRACKET):
            elements = []
            while not self._check(TokenType.RBRACKET):
                elements.append(self._parse_expression())
                if not self._match(TokenType.COMMA):
                    break
            self._consume(TokenType.RBRACKET, "']'")
            return ArrayLiteral(span=self._span_from(token), elements=elements)

        if self._is_at_end():
            self._error("expression")
        raise error_invalid_expression(token.span, self._source_line(token))


def parse(tokens: List[Token], source: Optional[str] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Raises:
        ParserError: If parsing fails
    """
    return Parser(tokens, source).parse_program()


def parse_program(source: str, filename: Optional[str] = None) -> Program:
    """
    Tokenize and parse one console input.

    Raises:
        LexerError: If tokenization fails
        ParserError: If parsing fails
    """
    return parse(tokenize(source, filename), source)
