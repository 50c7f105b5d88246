"""
Abstract Syntax Tree (AST) node definitions for Ari.

Nodes are plain dataclasses, so two trees parsed from the same source
compare equal field by field.  Every node carries the span of source text
it was parsed from.  Function bodies are the only subtrees that outlive a
single statement evaluation: closures keep a reference to them.
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
        """Default visit method."""
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
    """A literal value (number, string, boolean or null)."""
    value: Union[float, str, bool, None]
    literal_type: TokenType  # NUMBER, STRING, TRUE, FALSE, NULL


@dataclass
class Identifier(Expression):
    """A variable or function name reference."""
    name: str


@dataclass
class UnaryOp(Expression):
    """A unary operation (``-x`` or ``!flag``)."""
    operator: TokenType  # MINUS or BANG
    operand: Expression


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., ``a + b``, ``x && y``)."""
    left: Expression
    operator: TokenType  # Includes AND, OR for logical operators
    right: Expression


@dataclass
class ArrayLiteral(Expression):
    """An array literal (e.g., ``[1, 2, 3]``)."""
    elements: List[Expression]


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., ``values[0]``)."""
    target: Expression
    index: Expression


@dataclass
class FunctionCall(Expression):
    """A call expression (e.g., ``f(a, b)``); the callee may be any expression."""
    callee: Expression
    arguments: List[Expression]


@dataclass
class FunctionLiteral(Expression):
    """An anonymous function: ``fn (a, b) { ... }`` or ``(a, b) -> a + b``.

    Expression-bodied lambdas are stored with a block body holding a
    single ``return`` statement.
    """
    parameters: List[str]
    body: "Block"
    name: Optional[str] = None


@dataclass
class Assignment(Expression):
    """Assignment to a variable or indexed element; evaluates to the value."""
    target: Expression  # Identifier or IndexAccess rooted at an Identifier
    value: Expression


@dataclass
class IfExpr(Expression):
    """Conditional expression: ``if (cond) a else b``."""
    condition: Expression
    then_expr: Expression
    else_expr: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class ExpressionStatement(Statement):
    """An expression evaluated for its value or side effects."""
    expression: Expression


@dataclass
class LetStatement(Statement):
    """Variable declaration in the current scope: ``let x = 1;``."""
    name: str
    initializer: Optional[Expression] = None


@dataclass
class FunctionDef(Statement):
    """Named function declaration: ``fn name(a, b) { ... }``."""
    name: str
    parameters: List[str]
    body: "Block"


@dataclass
class Block(Statement):
    """A braced sequence of declarations with its own scope."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class IfStatement(Statement):
    """If statement with optional else branch."""
    condition: Expression
    then_branch: Statement
    else_branch: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    """A while loop."""
    condition: Expression
    body: Statement


@dataclass
class ForStatement(Statement):
    """Counted loop: ``for (init; cond; step) body``.

    Any of the three header clauses may be omitted; a missing condition
    loops until ``break`` or ``return``.
    """
    initializer: Optional[Statement]
    condition: Optional[Expression]
    increment: Optional[Expression]
    body: Statement


@dataclass
class ReturnStatement(Statement):
    """Return from the enclosing function; a missing value returns null."""
    value: Optional[Expression] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class PrintStatement(Statement):
    """``print expr;`` or ``println expr;``."""
    expression: Expression
    newline: bool = False


@dataclass
class ExitStatement(Statement):
    """``bai expr;``: print the message and stop the whole program."""
    message: Optional[Expression] = None


@dataclass
class Program(AstNode):
    """A complete parsed source file."""
    statements: List[Statement] = field(default_factory=list)
    filename: Optional[str] = None


# =============================================================================
# Visitor Helpers
# =============================================================================

class FormatVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0, lines: Optional[List[str]] = None):
        self.indent = indent
        self.lines = lines if lines is not None else []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self) -> "FormatVisitor":
        return FormatVisitor(self.indent + 2, self.lines)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(f"{node.__class__.__name__} @ {node.span}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._child().generic_visit(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self._child().generic_visit(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")


def format_ast(node: AstNode) -> str:
    """Render an AST node for debugging."""
    visitor = FormatVisitor()
    visitor.generic_visit(node)
    return "\n".join(visitor.lines)
