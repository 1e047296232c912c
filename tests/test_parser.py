"""
C8 Parser Test Suite
====================

Tests for the recursive descent parser: declarations, statements,
operator precedence, and structural errors.
"""

import pytest

from cpu8_sdk.c8.parser import MAX_EXPRESSION_DEPTH, MAX_NESTING_DEPTH, parse_source
from cpu8_sdk.c8.ast import (
    ASTPrinter,
    AssignmentExpression,
    AssignmentOperator,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    CallExpression,
    CastExpression,
    ExpressionStatement,
    ForStatement,
    IdentifierExpression,
    IfStatement,
    NumberLiteral,
    ReturnStatement,
    TernaryExpression,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    WhileStatement,
)
from cpu8_sdk.c8.types import C8Type
from cpu8_sdk.c8.errors import (
    ErrorKind,
    MissingOrDuplicateEntryError,
    NestingTooDeepError,
    UnexpectedTokenError,
)


MAIN = "void main() { }\n"


def parse_expr(text: str):
    """Parse a single expression statement inside main."""
    program = parse_source(f"void main() {{ {text}; }}")
    stmt = program.functions[0].body.statements[0]
    assert isinstance(stmt, ExpressionStatement)
    return stmt.expression


def parse_body(text: str) -> list:
    program = parse_source(f"void main() {{ {text} }}")
    return program.functions[0].body.statements


# =============================================================================
# Declarations
# =============================================================================

class TestDeclarations:
    """Tests for function and variable declarations."""

    def test_minimal_program(self):
        program = parse_source(MAIN)
        assert [f.name for f in program.functions] == ["main"]
        main = program.get_function("main")
        assert main.return_type is C8Type.VOID
        assert main.parameters == []

    def test_c_style_function(self):
        program = parse_source(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n" + MAIN
        )
        add = program.get_function("add")
        assert add.return_type is C8Type.UINT8
        assert [(p.name, p.param_type) for p in add.parameters] == [
            ("a", C8Type.UINT8), ("b", C8Type.UINT8),
        ]

    def test_function_keyword_style(self):
        program = parse_source(
            "function neg(int8 x) : int8 { return -x; }\n" + MAIN
        )
        neg = program.get_function("neg")
        assert neg.return_type is C8Type.INT8
        assert neg.parameters[0].param_type is C8Type.INT8

    def test_void_parameter_list(self):
        program = parse_source("void main(void) { }")
        assert program.functions[0].parameters == []

    def test_multiple_declarators(self):
        stmts = parse_body("uint8 a, b = 2, c;")
        assert [s.name for s in stmts] == ["a", "b", "c"]
        assert all(isinstance(s, VariableDeclaration) for s in stmts)
        assert stmts[0].initializer is None
        assert isinstance(stmts[1].initializer, NumberLiteral)

    def test_declaration_type(self):
        stmt = parse_body("bool ready = true;")[0]
        assert stmt.var_type is C8Type.BOOL


# =============================================================================
# Statements
# =============================================================================

class TestStatements:
    """Tests for control flow statements."""

    def test_if_else(self):
        stmt = parse_body("if (x) { } else { }")[0]
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.then_branch, BlockStatement)
        assert isinstance(stmt.else_branch, BlockStatement)

    def test_else_if_chain(self):
        stmt = parse_body("if (a) x = 1; else if (b) x = 2; else x = 3;")[0]
        assert isinstance(stmt.else_branch, IfStatement)
        assert isinstance(stmt.else_branch.else_branch, ExpressionStatement)

    def test_dangling_else_binds_inner(self):
        stmt = parse_body("if (a) if (b) x = 1; else x = 2;")[0]
        assert stmt.else_branch is None
        assert stmt.then_branch.else_branch is not None

    def test_while(self):
        stmt = parse_body("while (true) { }")[0]
        assert isinstance(stmt, WhileStatement)

    def test_for_with_declaration(self):
        stmt = parse_body("for (uint8 i = 0; i < 10; i++) { }")[0]
        assert isinstance(stmt, ForStatement)
        assert isinstance(stmt.initializer, VariableDeclaration)
        assert isinstance(stmt.condition, BinaryExpression)
        assert isinstance(stmt.update, UnaryExpression)

    def test_for_with_expression_init(self):
        stmt = parse_body("for (i = 0; ; ) ;")[0]
        assert isinstance(stmt.initializer, ExpressionStatement)
        assert stmt.condition is None
        assert stmt.update is None
        assert isinstance(stmt.body, BlockStatement)

    def test_empty_statement_is_dropped(self):
        assert parse_body(";;") == []

    def test_return(self):
        program = parse_source("uint8 f() { return 1; }\n" + MAIN)
        stmt = program.get_function("f").body.statements[0]
        assert isinstance(stmt, ReturnStatement)
        assert stmt.value.value == 1

    def test_bare_return(self):
        stmt = parse_body("return;")[0]
        assert stmt.value is None


# =============================================================================
# Expressions
# =============================================================================

class TestExpressions:
    """Tests for operator precedence and associativity."""

    def test_multiplication_binds_tighter(self):
        expr = parse_expr("a + b * c")
        assert expr.operator is BinaryOperator.ADD
        assert expr.right.operator is BinaryOperator.MULTIPLY

    def test_left_associative(self):
        expr = parse_expr("a - b - c")
        assert expr.operator is BinaryOperator.SUBTRACT
        assert isinstance(expr.left, BinaryExpression)
        assert isinstance(expr.right, IdentifierExpression)

    def test_shift_below_additive(self):
        expr = parse_expr("a << b + c")
        assert expr.operator is BinaryOperator.LEFT_SHIFT
        assert expr.right.operator is BinaryOperator.ADD

    def test_comparison_below_shift(self):
        expr = parse_expr("a < b >> 1")
        assert expr.operator is BinaryOperator.LESS

    def test_bitwise_order(self):
        expr = parse_expr("a | b ^ c & d")
        assert expr.operator is BinaryOperator.BITWISE_OR
        assert expr.right.operator is BinaryOperator.BITWISE_XOR
        assert expr.right.right.operator is BinaryOperator.BITWISE_AND

    def test_logical_order(self):
        expr = parse_expr("a || b && c")
        assert expr.operator is BinaryOperator.LOGICAL_OR
        assert expr.right.operator is BinaryOperator.LOGICAL_AND

    def test_equality_below_bitwise_and(self):
        expr = parse_expr("a & b == c")
        assert expr.operator is BinaryOperator.BITWISE_AND

    def test_ternary(self):
        expr = parse_expr("a ? b : c ? d : e")
        assert isinstance(expr, TernaryExpression)
        assert isinstance(expr.else_expr, TernaryExpression)

    def test_assignment_right_associative(self):
        expr = parse_expr("a = b = 1")
        assert isinstance(expr, AssignmentExpression)
        assert isinstance(expr.value, AssignmentExpression)

    def test_compound_assignment(self):
        expr = parse_expr("a <<= 2")
        assert expr.operator is AssignmentOperator.LSHIFT_ASSIGN
        assert expr.operator.binary_operator is BinaryOperator.LEFT_SHIFT

    def test_unary_operators(self):
        expr = parse_expr("-~x")
        assert expr.operator is UnaryOperator.NEGATE
        assert expr.operand.operator is UnaryOperator.BITWISE_NOT

    def test_prefix_and_postfix(self):
        assert parse_expr("++x").operator is UnaryOperator.PRE_INCREMENT
        assert parse_expr("x--").operator is UnaryOperator.POST_DECREMENT

    def test_cast(self):
        expr = parse_expr("(int8)x + 1")
        assert expr.operator is BinaryOperator.ADD
        assert isinstance(expr.left, CastExpression)
        assert expr.left.target_type is C8Type.INT8

    def test_parenthesized_is_not_cast(self):
        expr = parse_expr("(x) + 1")
        assert isinstance(expr.left, IdentifierExpression)

    def test_call(self):
        expr = parse_expr("output(3, add(1, 2))")
        assert isinstance(expr, CallExpression)
        assert expr.function_name == "output"
        assert isinstance(expr.arguments[1], CallExpression)

    def test_number_radix_kept(self):
        expr = parse_expr("0x10")
        assert expr.value == 16
        assert expr.radix == 16


# =============================================================================
# Errors
# =============================================================================

class TestErrors:
    """Tests for structural errors."""

    def test_missing_semicolon(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_source("void main() { halt() }")
        assert exc_info.value.kind is ErrorKind.UNEXPECTED_TOKEN
        assert exc_info.value.found == "}"

    def test_unclosed_block(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_source("void main() {")
        assert exc_info.value.found == "end of input"

    def test_missing_expression(self):
        with pytest.raises(UnexpectedTokenError):
            parse_source("void main() { x = ; }")

    def test_missing_main(self):
        with pytest.raises(MissingOrDuplicateEntryError) as exc_info:
            parse_source("void helper() { }")
        assert exc_info.value.kind is ErrorKind.MISSING_OR_DUPLICATE_ENTRY

    def test_duplicate_main(self):
        with pytest.raises(MissingOrDuplicateEntryError) as exc_info:
            parse_source("void main() { }\nvoid main() { }")
        assert exc_info.value.location.line == 2

    def test_main_with_parameters(self):
        with pytest.raises(MissingOrDuplicateEntryError):
            parse_source("void main(uint8 x) { }")

    def test_main_returning_value(self):
        with pytest.raises(MissingOrDuplicateEntryError):
            parse_source("uint8 main() { return 0; }")

    def test_error_location(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_source("void main() {\n    uint8 = 3;\n}", "prog.c8")
        location = exc_info.value.location
        assert (location.filename, location.line, location.column) == ("prog.c8", 2, 11)


class TestNesting:
    """Tests for the nesting limits."""

    @staticmethod
    def parenthesized(levels: int) -> str:
        return "(" * levels + "1" + ")" * levels

    def test_nested_parentheses_within_limit(self):
        body = parse_body(f"uint8 x = {self.parenthesized(20)};")
        assert isinstance(body[0].initializer, NumberLiteral)

    def test_nested_parentheses_over_limit(self):
        with pytest.raises(NestingTooDeepError) as exc_info:
            parse_source(f"void main() {{ uint8 x = {self.parenthesized(40)}; }}", "deep.c8")
        error = exc_info.value
        assert error.kind is ErrorKind.NESTING_TOO_DEEP
        assert error.limit == MAX_NESTING_DEPTH
        assert error.location.filename == "deep.c8"

    def test_nested_blocks_over_limit(self):
        with pytest.raises(NestingTooDeepError):
            parse_body("{" * 40 + "}" * 40)

    def test_unary_chain_over_limit(self):
        with pytest.raises(NestingTooDeepError):
            parse_expr("x = " + "~" * 40 + "x")

    def test_long_operator_chain(self):
        parse_expr("x = " + " + ".join(["x"] * 90))
        with pytest.raises(NestingTooDeepError) as exc_info:
            parse_expr("x = " + " + ".join(["x"] * 5000))
        assert exc_info.value.limit == MAX_EXPRESSION_DEPTH


class TestASTPrinter:
    """Tests for the debugging AST dump."""

    def test_prints_functions(self):
        program = parse_source("uint8 add(uint8 a, uint8 b) { return a + b; }\n" + MAIN)
        text = ASTPrinter().print(program)
        assert "add" in text
        assert "main" in text
