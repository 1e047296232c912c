"""
C8 Abstract Syntax Tree (AST) Definitions
=========================================

This module defines the AST node types used by the C8 parser, checker
and code generator.

Node Hierarchy
--------------
ASTNode (base)
├── ProgramNode - root node containing all functions
├── Declarations
│   ├── FunctionNode - function definition
│   ├── VariableDeclaration - local variable (also a statement)
│   └── ParameterNode - function parameter
├── Statements
│   ├── BlockStatement - compound statement { ... }
│   ├── IfStatement - if/else statement
│   ├── WhileStatement - while loop
│   ├── ForStatement - for loop
│   ├── ReturnStatement - return statement
│   └── ExpressionStatement - expression as statement
└── Expressions
    ├── BinaryExpression - binary operators
    ├── UnaryExpression - unary operators, including ++/--
    ├── AssignmentExpression - assignment (=, +=, etc.)
    ├── TernaryExpression - ternary operator (?:)
    ├── CallExpression - call of a user function
    ├── IntrinsicCall - call of a port intrinsic
    ├── CastExpression - type cast
    ├── IdentifierExpression - variable reference
    ├── NumberLiteral - integer constant
    └── BoolLiteral - true / false

Design Notes
------------
- All nodes are dataclasses; each stores its source location
- Expression nodes carry `resolved_type` and `constant_value`, both None
  until the checker has run. After checking, `resolved_type` is always set
  and `constant_value` is set for compile-time constant expressions
- The parser only ever builds CallExpression. The checker replaces calls
  to reserved port names with IntrinsicCall nodes
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Iterator, Optional, Any

from cpu8_sdk.errors import SourceLocation
from cpu8_sdk.c8.types import C8Type


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node appears
    """
    location: SourceLocation

    def __repr__(self) -> str:
        """Default representation showing node type."""
        return f"{self.__class__.__name__}@{self.location.line}:{self.location.column}"


@dataclass
class Expression(ASTNode):
    """
    Base class for all expression nodes.

    Attributes:
        location: Source location
        resolved_type: The type of this expression (set during checking)
        constant_value: The folded value for compile-time constants
    """
    resolved_type: Optional[C8Type] = field(default=None, compare=False)
    constant_value: Optional[int] = field(default=None, compare=False)

    @property
    def is_constant(self) -> bool:
        return self.constant_value is not None


@dataclass
class Statement(ASTNode):
    """Base class for all statement nodes."""
    pass


@dataclass
class Declaration(ASTNode):
    """Base class for nodes that introduce a name."""
    pass


# =============================================================================
# Operators
# =============================================================================

class BinaryOperator(Enum):
    """Binary operator types. Each value is the source spelling."""
    # Arithmetic
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"

    # Comparison
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    GREATER = ">"
    LESS_EQ = "<="
    GREATER_EQ = ">="

    # Logical
    LOGICAL_AND = "&&"
    LOGICAL_OR = "||"

    # Bitwise
    BITWISE_AND = "&"
    BITWISE_OR = "|"
    BITWISE_XOR = "^"
    LEFT_SHIFT = "<<"
    RIGHT_SHIFT = ">>"

    @property
    def is_comparison(self) -> bool:
        return self in _COMPARISONS

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR)

    @property
    def is_shift(self) -> bool:
        return self in (BinaryOperator.LEFT_SHIFT, BinaryOperator.RIGHT_SHIFT)


_COMPARISONS = frozenset({
    BinaryOperator.EQUAL,
    BinaryOperator.NOT_EQUAL,
    BinaryOperator.LESS,
    BinaryOperator.GREATER,
    BinaryOperator.LESS_EQ,
    BinaryOperator.GREATER_EQ,
})


class UnaryOperator(Enum):
    """Unary operator types."""
    NEGATE = "-"
    LOGICAL_NOT = "!"
    BITWISE_NOT = "~"
    PRE_INCREMENT = "++x"
    PRE_DECREMENT = "--x"
    POST_INCREMENT = "x++"
    POST_DECREMENT = "x--"

    @property
    def is_increment(self) -> bool:
        """True for the four ++/-- forms, which write their operand."""
        return self in (
            UnaryOperator.PRE_INCREMENT,
            UnaryOperator.PRE_DECREMENT,
            UnaryOperator.POST_INCREMENT,
            UnaryOperator.POST_DECREMENT,
        )

    @property
    def is_postfix(self) -> bool:
        return self in (UnaryOperator.POST_INCREMENT, UnaryOperator.POST_DECREMENT)


class AssignmentOperator(Enum):
    """Assignment operator types and the binary operator they apply."""
    ASSIGN = "="
    ADD_ASSIGN = "+="
    SUB_ASSIGN = "-="
    AND_ASSIGN = "&="
    OR_ASSIGN = "|="
    XOR_ASSIGN = "^="
    LSHIFT_ASSIGN = "<<="
    RSHIFT_ASSIGN = ">>="

    @property
    def binary_operator(self) -> Optional[BinaryOperator]:
        """The operator a compound assignment applies, None for plain '='."""
        if self is AssignmentOperator.ASSIGN:
            return None
        return BinaryOperator(self.value[:-1])


class Intrinsic(Enum):
    """Reserved port intrinsics, recognized by name during checking."""
    INPUT = "input"
    OUTPUT = "output"
    WRITE_PORT = "write_port"
    HALT = "halt"


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class NumberLiteral(Expression):
    """
    Integer constant.

    Attributes:
        value: The magnitude, 0..255 (the lexer rejects larger literals)
        radix: The radix it was written in (10, 16 or 2)
    """
    value: int = 0
    radix: int = 10


@dataclass
class BoolLiteral(Expression):
    """Boolean constant (true or false)."""
    value: bool = False


@dataclass
class IdentifierExpression(Expression):
    """
    Reference to a variable or parameter.

    Attributes:
        name: The referenced name
        declaration: The VariableDeclaration or ParameterNode the name
            resolves to (set during checking)
    """
    name: str = ""
    declaration: Optional["Declaration"] = field(default=None, compare=False, repr=False)


@dataclass
class BinaryExpression(Expression):
    """
    Binary operation expression (a op b).

    Attributes:
        operator: The binary operator
        left: Left operand expression
        right: Right operand expression
    """
    operator: BinaryOperator = None
    left: Expression = None
    right: Expression = None


@dataclass
class UnaryExpression(Expression):
    """
    Unary operation expression (op x or x op).

    Attributes:
        operator: The unary operator
        operand: The operand expression
    """
    operator: UnaryOperator = None
    operand: Expression = None


@dataclass
class AssignmentExpression(Expression):
    """
    Assignment expression (target = value).

    Attributes:
        operator: The assignment operator (=, +=, etc.)
        target: The assignment target
        value: The value to assign
    """
    operator: AssignmentOperator = None
    target: Expression = None
    value: Expression = None


@dataclass
class TernaryExpression(Expression):
    """
    Ternary conditional expression (cond ? then : else).

    Attributes:
        condition: The condition expression
        then_expr: Expression if condition is true
        else_expr: Expression if condition is false
    """
    condition: Expression = None
    then_expr: Expression = None
    else_expr: Expression = None


@dataclass
class CallExpression(Expression):
    """
    Function call expression.

    Attributes:
        function_name: Name of the called function
        arguments: List of argument expressions
    """
    function_name: str = ""
    arguments: list[Expression] = field(default_factory=list)


@dataclass
class IntrinsicCall(Expression):
    """
    Call of a port intrinsic.

    Attributes:
        intrinsic: Which intrinsic is called
        arguments: Argument expressions as written
        port: The constant port number (None for halt)
    """
    intrinsic: Intrinsic = None
    arguments: list[Expression] = field(default_factory=list)
    port: Optional[int] = None


@dataclass
class CastExpression(Expression):
    """
    Type cast expression ((type) expr).

    Attributes:
        target_type: The type to cast to
        operand: The expression being cast
    """
    target_type: C8Type = None
    operand: Expression = None


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class BlockStatement(Statement):
    """
    Block/compound statement enclosed in braces. Opens a new scope.

    Attributes:
        statements: Statements and declarations in source order
    """
    statements: list[Statement] = field(default_factory=list)


@dataclass
class ExpressionStatement(Statement):
    """Expression used as a statement (followed by semicolon)."""
    expression: Expression = None


@dataclass
class IfStatement(Statement):
    """
    If statement with optional else clause.

    Attributes:
        condition: The condition expression
        then_branch: Statement executed if condition is true
        else_branch: Optional statement executed if condition is false
    """
    condition: Expression = None
    then_branch: Statement = None
    else_branch: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    """
    While loop statement.

    Attributes:
        condition: Loop condition
        body: Loop body statement
    """
    condition: Expression = None
    body: Statement = None


@dataclass
class ForStatement(Statement):
    """
    For loop statement.

    Attributes:
        initializer: Declaration or expression statement run once (optional)
        condition: Loop condition, None meaning always true
        update: Step expression (optional)
        body: Loop body statement
    """
    initializer: Optional[Statement] = None
    condition: Optional[Expression] = None
    update: Optional[Expression] = None
    body: Statement = None


@dataclass
class ReturnStatement(Statement):
    """Return statement with optional value."""
    value: Optional[Expression] = None


# =============================================================================
# Declaration Nodes
# =============================================================================

@dataclass
class ParameterNode(Declaration):
    """
    Function parameter declaration.

    Attributes:
        name: Parameter name
        param_type: The type of the parameter
    """
    name: str = ""
    param_type: C8Type = None


@dataclass
class VariableDeclaration(Declaration, Statement):
    """
    Local variable declaration.

    Represents declarations like:
        uint8 x;
        int8 delta = -5;

    Declarations may appear anywhere a statement may; the name is
    visible from the next statement to the end of the enclosing block.

    Attributes:
        name: Variable name
        var_type: The declared type
        initializer: Optional initialization expression
    """
    name: str = ""
    var_type: C8Type = None
    initializer: Optional[Expression] = None


@dataclass
class FunctionNode(Declaration):
    """
    Function definition.

    Attributes:
        name: Function name
        return_type: The return type
        parameters: List of parameter declarations
        body: The function body
    """
    name: str = ""
    return_type: C8Type = None
    parameters: list[ParameterNode] = field(default_factory=list)
    body: BlockStatement = None


@dataclass
class ProgramNode(ASTNode):
    """
    Root node of the AST representing a complete C8 program.

    Attributes:
        functions: Function definitions in source order
    """
    functions: list[FunctionNode] = field(default_factory=list)

    def get_function(self, name: str) -> Optional[FunctionNode]:
        """Return the first function with the given name, if any."""
        for func in self.functions:
            if func.name == name:
                return func
        return None


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care
    about; anything else falls through to generic_visit, which visits
    the node's children.

    Usage:
        class CallCounter(ASTVisitor):
            def __init__(self):
                self.calls = 0

            def visit_CallExpression(self, node):
                self.calls += 1
                self.generic_visit(node)
    """

    def visit(self, node: ASTNode) -> Any:
        """Visit a node by dispatching to visit_<ClassName>."""
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        """Visit all child nodes in field order."""
        for child in iter_children(node):
            self.visit(child)


def iter_children(node: ASTNode) -> Iterator[ASTNode]:
    """Yield the direct children of node in field order, skipping back-references."""
    for node_field in fields(node):
        if not node_field.compare:
            continue
        field_value = getattr(node, node_field.name)
        if isinstance(field_value, ASTNode):
            yield field_value
        elif isinstance(field_value, list):
            for item in field_value:
                if isinstance(item, ASTNode):
                    yield item


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging (used by `c8cc --ast`).

    Usage:
        printer = ASTPrinter()
        print(printer.print(ast))
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        """Print the AST and return as string."""
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        indent = "  " * self.indent_level
        self.output.append(f"{indent}{text}")

    def _nested(self, label: Optional[str], node: ASTNode) -> None:
        if label:
            self._emit(label)
        self.indent_level += 1
        self.visit(node)
        self.indent_level -= 1

    def visit_ProgramNode(self, node: ProgramNode):
        self._emit("Program")
        self.indent_level += 1
        for func in node.functions:
            self.visit(func)
        self.indent_level -= 1

    def visit_FunctionNode(self, node: FunctionNode):
        params = ", ".join(f"{p.param_type} {p.name}" for p in node.parameters)
        self._emit(f"Function: {node.return_type} {node.name}({params})")
        self._nested(None, node.body)

    def visit_VariableDeclaration(self, node: VariableDeclaration):
        init = f" = {self._expr_str(node.initializer)}" if node.initializer else ""
        self._emit(f"Variable: {node.var_type} {node.name}{init}")

    def visit_BlockStatement(self, node: BlockStatement):
        self._emit("Block")
        self.indent_level += 1
        for stmt in node.statements:
            self.visit(stmt)
        self.indent_level -= 1

    def visit_IfStatement(self, node: IfStatement):
        self._emit(f"If ({self._expr_str(node.condition)})")
        self.indent_level += 1
        self._nested("Then:", node.then_branch)
        if node.else_branch:
            self._nested("Else:", node.else_branch)
        self.indent_level -= 1

    def visit_WhileStatement(self, node: WhileStatement):
        self._emit(f"While ({self._expr_str(node.condition)})")
        self._nested(None, node.body)

    def visit_ForStatement(self, node: ForStatement):
        if isinstance(node.initializer, VariableDeclaration):
            init = f"{node.initializer.var_type} {node.initializer.name}"
            if node.initializer.initializer:
                init += f" = {self._expr_str(node.initializer.initializer)}"
        elif isinstance(node.initializer, ExpressionStatement):
            init = self._expr_str(node.initializer.expression)
        else:
            init = ""
        cond = self._expr_str(node.condition)
        update = self._expr_str(node.update)
        self._emit(f"For ({init}; {cond}; {update})")
        self._nested(None, node.body)

    def visit_ReturnStatement(self, node: ReturnStatement):
        if node.value:
            self._emit(f"Return {self._expr_str(node.value)}")
        else:
            self._emit("Return")

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._emit(f"Expr: {self._expr_str(node.expression)}")

    def _expr_str(self, expr: Optional[Expression]) -> str:
        """Convert expression to string representation."""
        if expr is None:
            return ""
        if isinstance(expr, NumberLiteral):
            if expr.radix == 16:
                return f"0x{expr.value:02X}"
            if expr.radix == 2:
                return f"0b{expr.value:b}"
            return str(expr.value)
        if isinstance(expr, BoolLiteral):
            return "true" if expr.value else "false"
        if isinstance(expr, IdentifierExpression):
            return expr.name
        if isinstance(expr, BinaryExpression):
            return f"({self._expr_str(expr.left)} {expr.operator.value} {self._expr_str(expr.right)})"
        if isinstance(expr, UnaryExpression):
            operand = self._expr_str(expr.operand)
            if expr.operator.is_postfix:
                return f"({operand}{expr.operator.value[1:]})"
            if expr.operator.is_increment:
                return f"({expr.operator.value[:2]}{operand})"
            return f"({expr.operator.value}{operand})"
        if isinstance(expr, AssignmentExpression):
            return f"({self._expr_str(expr.target)} {expr.operator.value} {self._expr_str(expr.value)})"
        if isinstance(expr, CallExpression):
            args = ", ".join(self._expr_str(a) for a in expr.arguments)
            return f"{expr.function_name}({args})"
        if isinstance(expr, IntrinsicCall):
            args = ", ".join(self._expr_str(a) for a in expr.arguments)
            return f"{expr.intrinsic.value}({args})"
        if isinstance(expr, TernaryExpression):
            return (
                f"({self._expr_str(expr.condition)} ? "
                f"{self._expr_str(expr.then_expr)} : {self._expr_str(expr.else_expr)})"
            )
        if isinstance(expr, CastExpression):
            return f"(({expr.target_type}) {self._expr_str(expr.operand)})"
        return f"<{type(expr).__name__}>"
