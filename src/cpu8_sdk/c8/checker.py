"""
C8 Semantic Analyzer and Type Checker
=====================================

This module walks a parsed C8 program, resolves every identifier to its
declaration, assigns a type to every expression and folds compile-time
constants. The result is the typed AST consumed by the code generator.

Passes
------
1. Signature collection: every function is entered into the global scope
   so that calls may appear before the callee's definition. The port
   intrinsics are pre-declared there and cannot be redeclared.
2. Body checking: each function body is checked statement by statement.
   A failing statement is recorded and checking continues with the next
   one, so all semantic errors are reported together, in discovery order.

Typing Rules
------------
- Arithmetic (+ - *) and bitwise (& | ^) operands must have the same
  integer type after bool has been promoted to uint8
- Shifts keep the left operand's type; the count may be any integer type
- Comparisons need a matching pair and yield bool; int8 vs uint8 is an error
- && || ! and all conditions require bool
- Assignment, initialization, argument passing and return need equal
  types, with bool -> uint8 the only implicit conversion
- Unsuffixed literals take the type the context demands (the other
  operand, the assignment target, the parameter); uint8 by default, or
  int8 for a negative constant with no context

Constant Folding
----------------
Any expression built only from literals is evaluated here and the value
stored in `constant_value`. A constant outside its type's range is a
ConstantOverflowError; runtime arithmetic on variables simply wraps.

Return Coverage
---------------
A non-void function must return on every path. A path also ends at
`halt()`, and at a `while`/`for` loop whose condition is absent or the
constant true, since control never falls out of such a loop.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import difflib
import logging

from cpu8_sdk.errors import SourceLocation
from cpu8_sdk.c8.types import (
    C8Type,
    is_assignable,
    arithmetic_operand_type,
    common_arithmetic_type,
    to_byte,
)
from cpu8_sdk.c8.ast import (
    ProgramNode,
    FunctionNode,
    ParameterNode,
    VariableDeclaration,
    Declaration,
    Statement,
    BlockStatement,
    ExpressionStatement,
    IfStatement,
    WhileStatement,
    ForStatement,
    ReturnStatement,
    Expression,
    BinaryExpression,
    BinaryOperator,
    UnaryExpression,
    UnaryOperator,
    AssignmentExpression,
    TernaryExpression,
    CallExpression,
    IntrinsicCall,
    Intrinsic,
    CastExpression,
    IdentifierExpression,
    NumberLiteral,
    BoolLiteral,
)
from cpu8_sdk.c8.errors import (
    ErrorCollector,
    SemanticError,
    UndefinedSymbolError,
    DuplicateSymbolError,
    TypeMismatchError,
    ConstantOverflowError,
    MissingReturnError,
    ArgumentCountError,
    InvalidAssignmentError,
    InvalidPortArgumentError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Symbols and Scopes
# =============================================================================

class SymbolKind(Enum):
    """What a name is bound to."""
    VARIABLE = "variable"
    PARAMETER = "parameter"
    FUNCTION = "function"
    INTRINSIC = "intrinsic"


@dataclass
class Symbol:
    """
    A name bound in some scope.

    Attributes:
        name: The identifier
        type: Variable type, or return type for functions
        kind: What the name denotes
        location: Declaration site (None for intrinsics)
        scope_depth: 0 for globals, 1 for function scope, deeper for blocks
        parameter_types: Parameter types, for functions
        declaration: The declaring AST node, for variables and parameters
    """
    name: str
    type: C8Type
    kind: SymbolKind
    location: Optional[SourceLocation]
    scope_depth: int
    parameter_types: tuple[C8Type, ...] = ()
    declaration: Optional[Declaration] = None


class Scope:
    """One lexical scope, linked to its enclosing scope."""

    def __init__(self, parent: Optional["Scope"] = None):
        self.parent = parent
        self.depth = 0 if parent is None else parent.depth + 1
        self.symbols: dict[str, Symbol] = {}

    def lookup(self, name: str) -> Optional[Symbol]:
        """Find a name, walking from this scope outwards."""
        scope = self
        while scope is not None:
            if name in scope.symbols:
                return scope.symbols[name]
            scope = scope.parent
        return None

    def lookup_local(self, name: str) -> Optional[Symbol]:
        return self.symbols.get(name)

    def visible_names(self) -> set[str]:
        names = set()
        scope = self
        while scope is not None:
            names.update(scope.symbols)
            scope = scope.parent
        return names


# Intrinsic signatures: (return type, parameter names)
INTRINSIC_SIGNATURES: dict[Intrinsic, tuple[C8Type, tuple[str, ...]]] = {
    Intrinsic.INPUT: (C8Type.UINT8, ("port",)),
    Intrinsic.OUTPUT: (C8Type.VOID, ("port", "value")),
    Intrinsic.WRITE_PORT: (C8Type.VOID, ("port", "value")),
    Intrinsic.HALT: (C8Type.VOID, ()),
}

RESERVED_NAMES = frozenset(i.value for i in Intrinsic)


def _context_type(type_: Optional[C8Type]) -> Optional[C8Type]:
    """Type an untyped literal should take next to a value of type_."""
    if type_ is None:
        return None
    return arithmetic_operand_type(type_)


def _is_untyped_constant(expr: Expression) -> bool:
    """
    Return True for expressions built only from number literals.

    Such expressions have no type of their own and adopt the type their
    context demands.
    """
    if isinstance(expr, NumberLiteral):
        return True
    if isinstance(expr, UnaryExpression):
        return expr.operator is UnaryOperator.NEGATE and _is_untyped_constant(expr.operand)
    if isinstance(expr, BinaryExpression):
        if expr.operator.is_comparison or expr.operator.is_logical:
            return False
        return _is_untyped_constant(expr.left) and _is_untyped_constant(expr.right)
    return False


def _literal_value(expr: Expression) -> int:
    """Mathematical value of an untyped constant expression."""
    if isinstance(expr, NumberLiteral):
        return expr.value
    if isinstance(expr, UnaryExpression):
        return -_literal_value(expr.operand)
    return _fold_binary(expr.operator, _literal_value(expr.left), _literal_value(expr.right))


def _fold_binary(op: BinaryOperator, left: int, right: int) -> int:
    """Evaluate a binary operator on constants without wrapping."""
    if op is BinaryOperator.ADD:
        return left + right
    if op is BinaryOperator.SUBTRACT:
        return left - right
    if op is BinaryOperator.MULTIPLY:
        return left * right
    if op is BinaryOperator.BITWISE_AND:
        return left & right
    if op is BinaryOperator.BITWISE_OR:
        return left | right
    if op is BinaryOperator.BITWISE_XOR:
        return left ^ right
    if op is BinaryOperator.LEFT_SHIFT:
        return left << to_byte(right)
    if op is BinaryOperator.RIGHT_SHIFT:
        return left >> to_byte(right)
    if op is BinaryOperator.EQUAL:
        return int(left == right)
    if op is BinaryOperator.NOT_EQUAL:
        return int(left != right)
    if op is BinaryOperator.LESS:
        return int(left < right)
    if op is BinaryOperator.GREATER:
        return int(left > right)
    if op is BinaryOperator.LESS_EQ:
        return int(left <= right)
    if op is BinaryOperator.GREATER_EQ:
        return int(left >= right)
    if op is BinaryOperator.LOGICAL_AND:
        return int(bool(left) and bool(right))
    if op is BinaryOperator.LOGICAL_OR:
        return int(bool(left) or bool(right))
    raise ValueError(f"cannot fold operator {op}")


# =============================================================================
# Type Checker
# =============================================================================

class TypeChecker:
    """
    Semantic analyzer for C8 programs.

    Usage:
        checker = TypeChecker(source.splitlines())
        typed_program = checker.check(program)

    After a successful check every expression carries `resolved_type`,
    every identifier carries its `declaration`, and every call to a port
    intrinsic has been replaced with an IntrinsicCall node.
    """

    def __init__(self, source_lines: Optional[list[str]] = None, max_errors: int = 100):
        """
        Initialize the checker.

        Args:
            source_lines: Original source lines for error context
            max_errors: Stop collecting after this many errors
        """
        self.source_lines = source_lines or []
        self.errors = ErrorCollector(max_errors)

        self._globals = Scope()
        self._scope = self._globals
        self._function: Optional[FunctionNode] = None

    def check(self, program: ProgramNode) -> ProgramNode:
        """
        Check a whole program.

        Returns:
            The same ProgramNode, now typed

        Raises:
            CompilationError: Carrying every semantic error found
        """
        self._declare_intrinsics()
        self._collect_signatures(program)

        for func in program.functions:
            if self.errors.should_stop():
                break
            self._check_function(func)

        self.errors.raise_if_errors()
        logger.debug(f"Checked {len(program.functions)} functions")
        return program

    # =========================================================================
    # Helpers
    # =========================================================================

    def _source_line(self, location: Optional[SourceLocation]) -> Optional[str]:
        """Get source line for error reporting."""
        if location and 0 < location.line <= len(self.source_lines):
            return self.source_lines[location.line - 1]
        return None

    def _mismatch(
        self,
        message: str,
        location: SourceLocation,
        expected: Optional[C8Type] = None,
        actual: Optional[C8Type] = None,
        hint: Optional[str] = None,
    ) -> TypeMismatchError:
        return TypeMismatchError(
            message,
            expected_type=str(expected) if expected else None,
            actual_type=str(actual) if actual else None,
            location=location,
            source_line=self._source_line(location),
            hint=hint,
        )

    def _check_range(self, value: int, type_: C8Type, location: SourceLocation) -> int:
        """Raise ConstantOverflowError unless value fits type_."""
        if not type_.contains(value):
            raise ConstantOverflowError(
                value, str(type_), location, self._source_line(location)
            )
        return value

    def _push_scope(self) -> None:
        self._scope = Scope(self._scope)

    def _pop_scope(self) -> None:
        self._scope = self._scope.parent

    def _declare(self, symbol: Symbol) -> None:
        """Bind a symbol in the current scope."""
        location = symbol.location
        if symbol.name in RESERVED_NAMES:
            raise DuplicateSymbolError(
                symbol.name, location,
                source_line=self._source_line(location),
                reserved=True,
            )
        existing = self._scope.lookup_local(symbol.name)
        if existing is not None:
            raise DuplicateSymbolError(
                symbol.name, location,
                original_location=existing.location,
                source_line=self._source_line(location),
            )
        self._scope.symbols[symbol.name] = symbol

    def _lookup(self, name: str, location: SourceLocation) -> Symbol:
        """Resolve a name or raise UndefinedSymbolError with suggestions."""
        symbol = self._scope.lookup(name)
        if symbol is None:
            similar = difflib.get_close_matches(
                name, sorted(self._scope.visible_names()), n=3
            )
            raise UndefinedSymbolError(
                name, location,
                source_line=self._source_line(location),
                similar_identifiers=similar,
            )
        return symbol

    # =========================================================================
    # Declarations
    # =========================================================================

    def _declare_intrinsics(self) -> None:
        for intrinsic, (return_type, params) in INTRINSIC_SIGNATURES.items():
            self._globals.symbols[intrinsic.value] = Symbol(
                name=intrinsic.value,
                type=return_type,
                kind=SymbolKind.INTRINSIC,
                location=None,
                scope_depth=0,
                parameter_types=tuple(C8Type.UINT8 for _ in params),
            )

    def _collect_signatures(self, program: ProgramNode) -> None:
        """Pass 1: enter every function into the global scope."""
        for func in program.functions:
            for param in func.parameters:
                if param.param_type is C8Type.VOID:
                    self.errors.add(self._mismatch(
                        f"parameter '{param.name}' cannot have type void",
                        param.location,
                    ))
            try:
                self._declare(Symbol(
                    name=func.name,
                    type=func.return_type,
                    kind=SymbolKind.FUNCTION,
                    location=func.location,
                    scope_depth=0,
                    parameter_types=tuple(p.param_type for p in func.parameters),
                ))
            except SemanticError as e:
                self.errors.add(e)

    def _check_function(self, func: FunctionNode) -> None:
        """Pass 2: check one function body."""
        self._function = func
        self._push_scope()
        try:
            for param in func.parameters:
                try:
                    self._declare(Symbol(
                        name=param.name,
                        type=param.param_type,
                        kind=SymbolKind.PARAMETER,
                        location=param.location,
                        scope_depth=self._scope.depth,
                        declaration=param,
                    ))
                except SemanticError as e:
                    self.errors.add(e)

            # The body shares the parameter scope
            self._check_statements(func.body.statements)
        finally:
            self._pop_scope()
            self._function = None

        if func.return_type is not C8Type.VOID and not self._always_exits(func.body):
            self.errors.add(MissingReturnError(
                func.name, func.location, self._source_line(func.location)
            ))

    # =========================================================================
    # Statements
    # =========================================================================

    def _check_statements(self, statements: list[Statement]) -> None:
        for stmt in statements:
            if self.errors.should_stop():
                return
            try:
                self._check_statement(stmt)
            except SemanticError as e:
                self.errors.add(e)

    def _check_statement(self, stmt: Statement) -> None:
        """Check a single statement."""
        if isinstance(stmt, VariableDeclaration):
            self._check_variable_declaration(stmt)
        elif isinstance(stmt, BlockStatement):
            self._push_scope()
            try:
                self._check_statements(stmt.statements)
            finally:
                self._pop_scope()
        elif isinstance(stmt, ExpressionStatement):
            stmt.expression = self._check_expr(stmt.expression, None)
        elif isinstance(stmt, IfStatement):
            stmt.condition = self._check_condition(stmt.condition)
            self._check_statements([stmt.then_branch])
            if stmt.else_branch is not None:
                self._check_statements([stmt.else_branch])
        elif isinstance(stmt, WhileStatement):
            stmt.condition = self._check_condition(stmt.condition)
            self._check_statements([stmt.body])
        elif isinstance(stmt, ForStatement):
            self._check_for(stmt)
        elif isinstance(stmt, ReturnStatement):
            self._check_return(stmt)
        else:
            raise TypeError(f"unknown statement {type(stmt).__name__}")

    def _check_variable_declaration(self, decl: VariableDeclaration) -> None:
        """
        Check a local declaration.

        The name becomes visible only after the initializer, so
        `uint8 x = x;` refers to an outer x (or is undefined). The variable
        is declared even when the initializer is wrong, which avoids a
        cascade of undefined-symbol errors further down. An initializer
        error is recorded before a redeclaration error, so both surface.
        """
        try:
            if decl.var_type is C8Type.VOID:
                raise self._mismatch(
                    f"variable '{decl.name}' cannot have type void", decl.location
                )
            if decl.initializer is not None:
                decl.initializer = self._check_value(decl.initializer, decl.var_type)
                self._require_assignable(
                    decl.var_type, decl.initializer,
                    f"cannot initialize '{decl.name}'",
                )
        except SemanticError as e:
            self.errors.add(e)

        self._declare(Symbol(
            name=decl.name,
            type=decl.var_type,
            kind=SymbolKind.VARIABLE,
            location=decl.location,
            scope_depth=self._scope.depth,
            declaration=decl,
        ))

    def _check_for(self, stmt: ForStatement) -> None:
        self._push_scope()
        try:
            if stmt.initializer is not None:
                self._check_statement(stmt.initializer)
            if stmt.condition is not None:
                stmt.condition = self._check_condition(stmt.condition)
            if stmt.update is not None:
                stmt.update = self._check_expr(stmt.update, None)
            self._check_statements([stmt.body])
        finally:
            self._pop_scope()

    def _check_return(self, stmt: ReturnStatement) -> None:
        return_type = self._function.return_type
        name = self._function.name

        if return_type is C8Type.VOID:
            if stmt.value is not None:
                raise self._mismatch(
                    f"void function '{name}' cannot return a value", stmt.location
                )
            return

        if stmt.value is None:
            raise self._mismatch(
                f"function '{name}' must return a value",
                stmt.location,
                expected=return_type,
            )
        stmt.value = self._check_value(stmt.value, return_type)
        self._require_assignable(return_type, stmt.value, f"cannot return from '{name}'")

    def _check_condition(self, expr: Expression) -> Expression:
        expr = self._check_value(expr, C8Type.BOOL)
        if expr.resolved_type is not C8Type.BOOL:
            raise self._mismatch(
                "condition must be bool",
                expr.location,
                expected=C8Type.BOOL,
                actual=expr.resolved_type,
                hint="compare explicitly, e.g. 'x != 0'",
            )
        return expr

    def _require_assignable(self, target: C8Type, value: Expression, what: str) -> None:
        if not is_assignable(target, value.resolved_type):
            raise self._mismatch(
                f"{what}: '{value.resolved_type}' is not convertible to '{target}'",
                value.location,
                expected=target,
                actual=value.resolved_type,
                hint="use an explicit cast",
            )

    # =========================================================================
    # Return Coverage
    # =========================================================================

    def _always_exits(self, stmt: Optional[Statement]) -> bool:
        """True if control can never fall off the end of stmt."""
        if stmt is None:
            return False
        if isinstance(stmt, ReturnStatement):
            return True
        if isinstance(stmt, ExpressionStatement):
            expr = stmt.expression
            return isinstance(expr, IntrinsicCall) and expr.intrinsic is Intrinsic.HALT
        if isinstance(stmt, BlockStatement):
            return any(self._always_exits(s) for s in stmt.statements)
        if isinstance(stmt, IfStatement):
            return (
                stmt.else_branch is not None
                and self._always_exits(stmt.then_branch)
                and self._always_exits(stmt.else_branch)
            )
        if isinstance(stmt, (WhileStatement, ForStatement)):
            # No break statement exists, so an endless loop never falls through
            return stmt.condition is None or stmt.condition.constant_value == 1
        return False

    # =========================================================================
    # Expressions
    # =========================================================================

    def _check_value(self, expr: Expression, expected: Optional[C8Type]) -> Expression:
        """
        Check an expression whose value is used.

        Picks the type of an untyped literal expression from the context
        and rejects void values.
        """
        if _is_untyped_constant(expr):
            context = _context_type(expected)
            if context is None or expected is C8Type.BOOL:
                context = C8Type.INT8 if _literal_value(expr) < 0 else C8Type.UINT8
            expected = context

        expr = self._check_expr(expr, expected)
        if expr.resolved_type is C8Type.VOID:
            raise self._mismatch(
                "void value used in an expression",
                expr.location,
                hint="a void function can only be called as a statement",
            )
        return expr

    def _check_pair(
        self,
        left: Expression,
        right: Expression,
        context: Optional[C8Type],
    ) -> tuple[Expression, Expression]:
        """
        Check two operands that must agree in type.

        An untyped literal operand adopts the type of the other operand.
        """
        if _is_untyped_constant(left) and not _is_untyped_constant(right):
            right = self._check_value(right, context)
            left = self._check_value(left, _context_type(right.resolved_type))
        else:
            left = self._check_value(left, context)
            right = self._check_value(right, _context_type(left.resolved_type))
        return left, right

    def _check_expr(self, expr: Expression, expected: Optional[C8Type]) -> Expression:
        """
        Type an expression and return it, possibly replaced.

        Args:
            expr: The expression to check
            expected: Type demanded by the context, used for literals

        Returns:
            The checked expression (an IntrinsicCall replaces a port call)
        """
        if isinstance(expr, NumberLiteral):
            type_ = expected if expected in (C8Type.UINT8, C8Type.INT8) else C8Type.UINT8
            expr.resolved_type = type_
            expr.constant_value = self._check_range(expr.value, type_, expr.location)
        elif isinstance(expr, BoolLiteral):
            expr.resolved_type = C8Type.BOOL
            expr.constant_value = int(expr.value)
        elif isinstance(expr, IdentifierExpression):
            self._check_identifier(expr)
        elif isinstance(expr, BinaryExpression):
            self._check_binary(expr, expected)
        elif isinstance(expr, UnaryExpression):
            self._check_unary(expr, expected)
        elif isinstance(expr, AssignmentExpression):
            self._check_assignment(expr)
        elif isinstance(expr, TernaryExpression):
            self._check_ternary(expr, expected)
        elif isinstance(expr, CastExpression):
            self._check_cast(expr)
        elif isinstance(expr, CallExpression):
            return self._check_call(expr)
        else:
            raise TypeError(f"unknown expression {type(expr).__name__}")
        return expr

    def _check_identifier(self, expr: IdentifierExpression) -> None:
        symbol = self._lookup(expr.name, expr.location)
        if symbol.kind not in (SymbolKind.VARIABLE, SymbolKind.PARAMETER):
            raise self._mismatch(
                f"'{expr.name}' is a function, not a value",
                expr.location,
                hint=f"call it as {expr.name}(...)",
            )
        expr.resolved_type = symbol.type
        expr.declaration = symbol.declaration

    def _check_binary(self, expr: BinaryExpression, expected: Optional[C8Type]) -> None:
        op = expr.operator

        if op.is_logical:
            expr.left = self._check_operand_bool(expr.left, op)
            expr.right = self._check_operand_bool(expr.right, op)
            expr.resolved_type = C8Type.BOOL
        elif op.is_comparison:
            expr.left, expr.right = self._check_pair(expr.left, expr.right, None)
            left_type = _context_type(expr.left.resolved_type)
            right_type = _context_type(expr.right.resolved_type)
            if left_type is None or left_type is not right_type:
                raise self._mismatch(
                    f"cannot compare '{expr.left.resolved_type}' with "
                    f"'{expr.right.resolved_type}'",
                    expr.location,
                    hint="cast one side so both operands have the same type",
                )
            expr.resolved_type = C8Type.BOOL
        elif op.is_shift:
            expr.left = self._check_value(expr.left, _context_type(expected))
            expr.right = self._check_value(expr.right, None)
            left_type = arithmetic_operand_type(expr.left.resolved_type)
            if left_type is None or arithmetic_operand_type(expr.right.resolved_type) is None:
                raise self._mismatch(
                    f"operands of '{op.value}' must be integers", expr.location
                )
            expr.resolved_type = left_type
        else:
            expr.left, expr.right = self._check_pair(
                expr.left, expr.right, _context_type(expected)
            )
            result = common_arithmetic_type(expr.left.resolved_type, expr.right.resolved_type)
            if result is None:
                raise self._mismatch(
                    f"operands of '{op.value}' have incompatible types "
                    f"'{expr.left.resolved_type}' and '{expr.right.resolved_type}'",
                    expr.location,
                    hint="use an explicit cast",
                )
            expr.resolved_type = result

        if expr.left.is_constant and expr.right.is_constant:
            value = _fold_binary(op, expr.left.constant_value, expr.right.constant_value)
            expr.constant_value = self._check_range(value, expr.resolved_type, expr.location)

    def _check_operand_bool(self, operand: Expression, op: BinaryOperator) -> Expression:
        operand = self._check_value(operand, C8Type.BOOL)
        if operand.resolved_type is not C8Type.BOOL:
            raise self._mismatch(
                f"operands of '{op.value}' must be bool",
                operand.location,
                expected=C8Type.BOOL,
                actual=operand.resolved_type,
            )
        return operand

    def _check_unary(self, expr: UnaryExpression, expected: Optional[C8Type]) -> None:
        op = expr.operator

        if op.is_increment:
            symbol = self._resolve_target(expr.operand)
            if not symbol.type.is_integer:
                raise self._mismatch(
                    f"'{op.value.replace('x', '')}' needs an integer variable",
                    expr.location,
                    actual=symbol.type,
                )
            expr.resolved_type = symbol.type
            return

        if op is UnaryOperator.LOGICAL_NOT:
            expr.operand = self._check_value(expr.operand, C8Type.BOOL)
            if expr.operand.resolved_type is not C8Type.BOOL:
                raise self._mismatch(
                    "operand of '!' must be bool",
                    expr.location,
                    expected=C8Type.BOOL,
                    actual=expr.operand.resolved_type,
                )
            expr.resolved_type = C8Type.BOOL
            if expr.operand.is_constant:
                expr.constant_value = 1 - expr.operand.constant_value
            return

        # Negation of a bare literal is folded as one constant so that
        # -128 is a valid int8.
        if op is UnaryOperator.NEGATE and isinstance(expr.operand, NumberLiteral):
            type_ = _context_type(expected) or C8Type.INT8
            expr.operand.resolved_type = type_
            expr.operand.constant_value = expr.operand.value
            expr.resolved_type = type_
            expr.constant_value = self._check_range(-expr.operand.value, type_, expr.location)
            return

        expr.operand = self._check_value(expr.operand, _context_type(expected))
        type_ = arithmetic_operand_type(expr.operand.resolved_type)
        if type_ is None:
            raise self._mismatch(
                f"operand of '{op.value}' must be an integer", expr.location
            )
        expr.resolved_type = type_

        if expr.operand.is_constant:
            value = expr.operand.constant_value
            if op is UnaryOperator.NEGATE:
                expr.constant_value = self._check_range(-value, type_, expr.location)
            else:
                expr.constant_value = type_.wrap(~value)

    def _resolve_target(self, target: Expression) -> Symbol:
        """Resolve the variable written by an assignment or ++/--."""
        if not isinstance(target, IdentifierExpression):
            raise InvalidAssignmentError(target.location, self._source_line(target.location))
        symbol = self._lookup(target.name, target.location)
        if symbol.kind not in (SymbolKind.VARIABLE, SymbolKind.PARAMETER):
            raise InvalidAssignmentError(target.location, self._source_line(target.location))
        target.resolved_type = symbol.type
        target.declaration = symbol.declaration
        return symbol

    def _check_assignment(self, expr: AssignmentExpression) -> None:
        symbol = self._resolve_target(expr.target)
        target_type = symbol.type
        op = expr.operator.binary_operator

        if op is None:
            expr.value = self._check_value(expr.value, target_type)
            self._require_assignable(target_type, expr.value, f"cannot assign to '{symbol.name}'")
        else:
            if op.is_shift:
                expr.value = self._check_value(expr.value, None)
                valid = arithmetic_operand_type(expr.value.resolved_type) is not None
                result = arithmetic_operand_type(target_type) if valid else None
            else:
                expr.value = self._check_value(expr.value, _context_type(target_type))
                result = common_arithmetic_type(target_type, expr.value.resolved_type)
            if result is None or not is_assignable(target_type, result):
                raise self._mismatch(
                    f"invalid operands for '{expr.operator.value}' on '{symbol.name}'",
                    expr.location,
                    expected=target_type,
                    actual=expr.value.resolved_type,
                )

        expr.resolved_type = target_type

    def _check_ternary(self, expr: TernaryExpression, expected: Optional[C8Type]) -> None:
        expr.condition = self._check_condition(expr.condition)
        expr.then_expr, expr.else_expr = self._check_pair(
            expr.then_expr, expr.else_expr, _context_type(expected)
        )

        then_type = expr.then_expr.resolved_type
        else_type = expr.else_expr.resolved_type
        if then_type is else_type:
            expr.resolved_type = then_type
        elif _context_type(then_type) is _context_type(else_type):
            expr.resolved_type = _context_type(then_type)
        else:
            raise self._mismatch(
                f"branches of '?:' have incompatible types '{then_type}' and '{else_type}'",
                expr.location,
            )

        if expr.condition.is_constant:
            chosen = expr.then_expr if expr.condition.constant_value else expr.else_expr
            expr.constant_value = chosen.constant_value

    def _check_cast(self, expr: CastExpression) -> None:
        expr.operand = self._check_value(expr.operand, None)
        expr.resolved_type = expr.target_type
        if expr.operand.is_constant:
            expr.constant_value = expr.target_type.wrap(expr.operand.constant_value)

    # =========================================================================
    # Calls
    # =========================================================================

    def _check_call(self, expr: CallExpression) -> Expression:
        symbol = self._lookup(expr.function_name, expr.location)

        if symbol.kind is SymbolKind.INTRINSIC:
            return self._check_intrinsic(expr, Intrinsic(symbol.name))

        if symbol.kind is not SymbolKind.FUNCTION:
            raise self._mismatch(
                f"'{expr.function_name}' is a {symbol.kind.value}, not a function",
                expr.location,
            )

        self._check_argument_count(expr, len(symbol.parameter_types))
        arguments = []
        for index, (arg, param_type) in enumerate(zip(expr.arguments, symbol.parameter_types)):
            arg = self._check_value(arg, param_type)
            self._require_assignable(
                param_type, arg,
                f"argument {index + 1} of '{expr.function_name}'",
            )
            arguments.append(arg)

        expr.arguments = arguments
        expr.resolved_type = symbol.type
        return expr

    def _check_argument_count(self, expr: CallExpression, expected: int) -> None:
        if len(expr.arguments) != expected:
            raise ArgumentCountError(
                expr.function_name,
                expected,
                len(expr.arguments),
                expr.location,
                self._source_line(expr.location),
            )

    def _check_intrinsic(self, expr: CallExpression, intrinsic: Intrinsic) -> IntrinsicCall:
        """
        Check a call to a port intrinsic and lower it to an IntrinsicCall.

        The port must be a constant uint8; a written value must be uint8
        (or bool, through the implicit conversion).
        """
        return_type, params = INTRINSIC_SIGNATURES[intrinsic]
        self._check_argument_count(expr, len(params))
        name = intrinsic.value

        arguments = []
        port = None
        if params:
            port_arg = expr.arguments[0]
            try:
                port_arg = self._check_value(port_arg, C8Type.UINT8)
            except ConstantOverflowError as e:
                raise InvalidPortArgumentError(
                    f"port of '{name}' must be in the range 0..255, got {e.value}",
                    port_arg.location,
                    source_line=self._source_line(port_arg.location),
                ) from e
            if not port_arg.is_constant or port_arg.resolved_type is not C8Type.UINT8:
                raise InvalidPortArgumentError(
                    f"port of '{name}' must be a constant uint8",
                    port_arg.location,
                    hint="ports are fixed at compile time, e.g. output(3, value)",
                    source_line=self._source_line(port_arg.location),
                )
            port = port_arg.constant_value
            arguments.append(port_arg)

        if len(params) > 1:
            value_arg = self._check_value(expr.arguments[1], C8Type.UINT8)
            if not is_assignable(C8Type.UINT8, value_arg.resolved_type):
                raise InvalidPortArgumentError(
                    f"value written by '{name}' must be uint8, "
                    f"got '{value_arg.resolved_type}'",
                    value_arg.location,
                    hint="cast it with (uint8)",
                    source_line=self._source_line(value_arg.location),
                )
            arguments.append(value_arg)

        return IntrinsicCall(
            location=expr.location,
            resolved_type=return_type,
            intrinsic=intrinsic,
            arguments=arguments,
            port=port,
        )


# =============================================================================
# Convenience Functions
# =============================================================================

def check_program(program: ProgramNode, source: Optional[str] = None) -> ProgramNode:
    """
    Type-check a parsed program.

    Raises:
        CompilationError: Carrying every semantic error found
    """
    source_lines = source.splitlines() if source is not None else None
    return TypeChecker(source_lines).check(program)
