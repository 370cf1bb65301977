"""
Abstract Syntax Tree (AST) node definitions for the command language.

A console input parses into a ``Program``: a flat list of statements.
Expressions carry no sort information; which sort an expression denotes
is decided at evaluation time by trying each sort in turn.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Union, Any
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal value (int, float, string, bool)."""
    value: Union[int, float, str, bool]
    literal_type: TokenType  # INT_LITERAL, FLOAT_LITERAL, STRING_LITERAL, BOOL_LITERAL


@dataclass
class Path(Expression):
    """A name or a ``::`` separated path (e.g., x, Entity::PLACEHOLDER)."""
    segments: List[str]

    @property
    def name(self) -> str:
        return "::".join(self.segments)

    @property
    def is_ident(self) -> bool:
        return len(self.segments) == 1


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x && y, a >> b)."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A unary operation (e.g., !x, -n)."""
    operator: TokenType  # MINUS or NOT
    operand: Expression


@dataclass
class FunctionCall(Expression):
    """A function or constructor call (e.g., spawn(5), Net::new(0, 1))."""
    callee: Expression  # usually a Path
    arguments: List[Expression]

    @property
    def callee_name(self) -> Optional[str]:
        if isinstance(self.callee, Path):
            return self.callee.name
        return None


@dataclass
class MethodCall(Expression):
    """A method call (e.g., e.x(10), g.tick([0.5]))."""
    object: Expression
    method: str
    arguments: List[Expression]


@dataclass
class MemberAccess(Expression):
    """Field access (e.g., e.x)."""
    object: Expression
    member: str


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., v[0])."""
    object: Expression
    index: Expression


@dataclass
class ArrayLiteral(Expression):
    """An array literal (e.g., [1.0, 2.0])."""
    elements: List[Expression]


@dataclass
class RangeExpr(Expression):
    """A half-open range (e.g., 0..10)."""
    start: Expression
    end: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class LetStatement(Statement):
    """A binding (e.g., let x = 1.0;)."""
    name: str
    value: Expression


@dataclass
class AssignmentStatement(Statement):
    """An assignment to a name, an element or a quoted shortcut.

    ``operator`` is None for plain ``=`` and the arithmetic operator
    ("+", "-", ...) for compound assignments.
    """
    target: Expression  # Path, IndexAccess or string Literal
    value: Expression
    operator: Optional[str] = None


@dataclass
class Block(Statement):
    """A braced sequence of statements."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class ForStatement(Statement):
    """A loop over a range or an array (e.g., for i in 0..4 { })."""
    variable: str
    iterable: Expression
    body: Block


@dataclass
class IfStatement(Statement):
    """A conditional with an optional else block or chained else-if."""
    condition: Expression
    then_block: Block
    else_branch: Optional[Union[Block, "IfStatement"]] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ExpressionStatement(Statement):
    """A bare expression evaluated for its value or its side effects."""
    expression: Expression


@dataclass
class Program(AstNode):
    """One parsed console input."""
    statements: List[Statement] = field(default_factory=list)


# =============================================================================
# Visitor Helpers
# =============================================================================

class FormatVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0):
        self.indent = indent
        self.lines: List[str] = []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def generic_visit(self, node: AstNode) -> List[str]:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self.lines.extend(FormatVisitor(self.indent + 2).generic_visit(value))
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self.lines.extend(FormatVisitor(self.indent + 2).generic_visit(item))
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")
        return self.lines


def format_ast(node: AstNode) -> str:
    """Render an AST node as indented text for debugging."""
    return "\n".join(FormatVisitor().generic_visit(node))
