"""
Klang abstract syntax tree
Immutable node taxonomy shared by the parser and the interpreter
"""

from typing import ClassVar, Optional, Tuple, Union
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SourceSpan:
    """Source location information for tokens and nodes"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Node:
    """Base AST node; `type` is the tag the interpreter dispatches on"""
    type: ClassVar[str] = "NODE"
    span: Optional[SourceSpan] = field(default=None, compare=False, repr=False, kw_only=True)


# ============================================================================
# EXPRESSIONS
# ============================================================================

@dataclass(frozen=True)
class NumberLiteral(Node):
    type: ClassVar[str] = "NUMBER"
    value: float


@dataclass(frozen=True)
class StringLiteral(Node):
    type: ClassVar[str] = "STRING"
    value: str


@dataclass(frozen=True)
class BooleanLiteral(Node):
    type: ClassVar[str] = "BOOLEAN"
    value: bool


@dataclass(frozen=True)
class ListLiteral(Node):
    type: ClassVar[str] = "LIST"
    elements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class MapLiteral(Node):
    type: ClassVar[str] = "MAP"
    entries: Tuple[Tuple[str, Node], ...] = ()


@dataclass(frozen=True)
class Identifier(Node):
    type: ClassVar[str] = "IDENTIFIER"
    name: str


@dataclass(frozen=True)
class UnaryExpr(Node):
    type: ClassVar[str] = "UNARY"
    operator: str
    operand: Node


@dataclass(frozen=True)
class BinaryExpr(Node):
    type: ClassVar[str] = "BINARY"
    operator: str
    left: Node
    right: Node


@dataclass(frozen=True)
class IndexExpr(Node):
    type: ClassVar[str] = "INDEX"
    target: Node
    index: Node


@dataclass(frozen=True)
class AssignmentExpr(Node):
    type: ClassVar[str] = "ASSIGNMENT"
    target: Union[Identifier, IndexExpr]
    value: Node


@dataclass(frozen=True)
class CallExpr(Node):
    type: ClassVar[str] = "CALL"
    callee: Node
    args: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class Parameter:
    name: str
    type_annotation: Optional[str] = None


@dataclass(frozen=True)
class Block(Node):
    type: ClassVar[str] = "BLOCK"
    statements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class FunctionExpr(Node):
    type: ClassVar[str] = "FUNCTION_EXPR"
    params: Tuple[Parameter, ...]
    body: Block


# ============================================================================
# STATEMENTS
# ============================================================================

@dataclass(frozen=True)
class ExpressionStatement(Node):
    type: ClassVar[str] = "EXPRESSION_STATEMENT"
    expression: Node


@dataclass(frozen=True)
class VarDeclaration(Node):
    type: ClassVar[str] = "VAR_DECLARATION"
    name: str
    value: Node
    is_final: bool = False
    type_annotation: Optional[str] = None


@dataclass(frozen=True)
class FunctionDeclaration(Node):
    type: ClassVar[str] = "FUNCTION_DECLARATION"
    name: str
    params: Tuple[Parameter, ...]
    body: Block


@dataclass(frozen=True)
class IfStatement(Node):
    type: ClassVar[str] = "IF"
    condition: Node
    then_branch: Block
    else_branch: Optional[Node] = None


@dataclass(frozen=True)
class WhileStatement(Node):
    type: ClassVar[str] = "WHILE"
    condition: Node
    body: Block


@dataclass(frozen=True)
class ForStatement(Node):
    type: ClassVar[str] = "FOR"
    iterator: str
    iterable: Node
    body: Block


@dataclass(frozen=True)
class ReturnStatement(Node):
    type: ClassVar[str] = "RETURN"
    value: Optional[Node] = None


@dataclass(frozen=True)
class Program(Node):
    type: ClassVar[str] = "PROGRAM"
    statements: Tuple[Node, ...] = ()


def children_of(node: Node) -> Tuple[Node, ...]:
    """Direct child nodes, in source order"""
    if isinstance(node, (Program, Block)):
        return node.statements
    if isinstance(node, ListLiteral):
        return node.elements
    if isinstance(node, MapLiteral):
        return tuple(value for _, value in node.entries)
    if isinstance(node, UnaryExpr):
        return (node.operand,)
    if isinstance(node, BinaryExpr):
        return (node.left, node.right)
    if isinstance(node, IndexExpr):
        return (node.target, node.index)
    if isinstance(node, AssignmentExpr):
        return (node.target, node.value)
    if isinstance(node, CallExpr):
        return (node.callee,) + node.args
    if isinstance(node, (FunctionExpr, FunctionDeclaration)):
        return (node.body,)
    if isinstance(node, ExpressionStatement):
        return (node.expression,)
    if isinstance(node, VarDeclaration):
        return (node.value,)
    if isinstance(node, IfStatement):
        branches = (node.condition, node.then_branch)
        return branches + ((node.else_branch,) if node.else_branch else ())
    if isinstance(node, WhileStatement):
        return (node.condition, node.body)
    if isinstance(node, ForStatement):
        return (node.iterable, node.body)
    if isinstance(node, ReturnStatement):
        return (node.value,) if node.value else ()
    return ()
