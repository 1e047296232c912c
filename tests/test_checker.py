"""
C8 Type Checker Test Suite
==========================

Tests for name resolution, typing rules, constant folding and the
semantic errors reported by the checker.
"""

import pytest

from cpu8_sdk.c8.parser import parse_source
from cpu8_sdk.c8.checker import check_program
from cpu8_sdk.c8.ast import (
    ExpressionStatement,
    IntrinsicCall,
    Intrinsic,
)
from cpu8_sdk.c8.types import C8Type
from cpu8_sdk.c8.errors import (
    ArgumentCountError,
    CompilationError,
    DuplicateSymbolError,
    ErrorKind,
    UndefinedSymbolError,
)


# =============================================================================
# Helpers
# =============================================================================

def check(source: str):
    return check_program(parse_source(source, "test.c8"), source)


def check_main(body: str):
    """Check a program whose main has the given body; return main's statements."""
    program = check(f"void main() {{ {body} }}")
    return program.get_function("main").body.statements


def errors_of(source: str) -> list:
    with pytest.raises(CompilationError) as exc_info:
        check(source)
    return exc_info.value.errors


def kinds(source: str) -> list:
    return [e.kind for e in errors_of(source)]


def main_kinds(body: str) -> list:
    return kinds(f"void main() {{ {body} }}")


# =============================================================================
# Typing and Constants
# =============================================================================

class TestTyping:
    """Tests for the typing rules."""

    def test_simple_program(self):
        program = check(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "void main() { output(3, add(1, 2)); }"
        )
        ret = program.get_function("add").body.statements[0]
        assert ret.value.resolved_type is C8Type.UINT8

    def test_literal_takes_int8_from_context(self):
        decl = check_main("int8 x = 5;")[0]
        assert decl.initializer.resolved_type is C8Type.INT8

    def test_negative_literal_defaults_to_int8(self):
        decl = check_main("int8 x = -128;")[0]
        assert decl.initializer.constant_value == -128

    def test_literal_adopts_other_operand_type(self):
        stmts = check_main("int8 a = 1; bool b = 3 < a;")
        assert stmts[1].initializer.left.resolved_type is C8Type.INT8

    def test_bool_converts_to_uint8(self):
        check_main("bool b = true; uint8 x = b; x = x + b;")

    def test_uint8_does_not_convert_to_bool(self):
        assert main_kinds("uint8 y = 2; bool c = y;") == [ErrorKind.TYPE_MISMATCH]

    def test_int8_uint8_arithmetic_rejected(self):
        assert main_kinds("int8 a = 1; uint8 b = 2; uint8 c = a + b;") == [
            ErrorKind.TYPE_MISMATCH
        ]

    def test_int8_uint8_comparison_rejected(self):
        assert main_kinds("int8 a = 1; uint8 b = 2; bool c = a < b;") == [
            ErrorKind.TYPE_MISMATCH
        ]

    def test_cast_allows_mixing(self):
        check_main("int8 a = 1; uint8 b = 2; bool c = (uint8)a < b;")

    def test_condition_must_be_bool(self):
        assert main_kinds("uint8 x = 1; if (x) { }") == [ErrorKind.TYPE_MISMATCH]

    def test_while_condition_must_be_bool(self):
        assert main_kinds("while (1) { }") == [ErrorKind.TYPE_MISMATCH]

    def test_logical_operands_must_be_bool(self):
        assert main_kinds("uint8 x = 1; bool b = x && true;") == [ErrorKind.TYPE_MISMATCH]

    def test_shift_count_may_be_any_integer(self):
        check_main("int8 a = -16; uint8 n = 2; a = a >> n;")

    def test_increment_needs_integer(self):
        assert main_kinds("bool b = false; b++;") == [ErrorKind.TYPE_MISMATCH]

    def test_void_value_rejected(self):
        assert kinds("void f() { }\nvoid main() { uint8 x = f(); }") == [
            ErrorKind.TYPE_MISMATCH
        ]

    def test_void_variable_rejected(self):
        assert ErrorKind.TYPE_MISMATCH in main_kinds("void v;")

    def test_ternary_branches(self):
        decl = check_main("bool c = true; int8 x = c ? 1 : -1;")[1]
        assert decl.initializer.resolved_type is C8Type.INT8

    def test_return_value_from_void(self):
        assert main_kinds("return 1;") == [ErrorKind.TYPE_MISMATCH]

    def test_return_without_value(self):
        assert kinds("uint8 f() { return; }\nvoid main() { }") == [ErrorKind.TYPE_MISMATCH]


class TestConstants:
    """Tests for constant folding and range checks."""

    def test_equal_literals_fold(self):
        decl = check_main("bool t = 0xFF == 0b11111111;")[0]
        assert decl.initializer.constant_value == 1

    def test_folded_arithmetic(self):
        decl = check_main("uint8 x = 3 << 2 | 1;")[0]
        assert decl.initializer.constant_value == 13

    def test_folded_overflow(self):
        errors = errors_of("void main() { uint8 x = 200 + 100; }")
        assert [e.kind for e in errors] == [ErrorKind.CONSTANT_OVERFLOW]
        assert errors[0].value == 300

    def test_negative_uint8(self):
        assert main_kinds("uint8 x = -1;") == [ErrorKind.CONSTANT_OVERFLOW]

    def test_int8_bounds(self):
        assert main_kinds("int8 x = 128;") == [ErrorKind.CONSTANT_OVERFLOW]
        assert main_kinds("int8 x = -129;") == [ErrorKind.CONSTANT_OVERFLOW]

    def test_cast_wraps_constant(self):
        decl = check_main("uint8 x = (uint8)(int8)-1;")[0]
        assert decl.initializer.constant_value == 255

    def test_variables_are_not_constant(self):
        decl = check_main("uint8 a = 1; uint8 b = a + 1;")[1]
        assert not decl.initializer.is_constant


# =============================================================================
# Names and Scopes
# =============================================================================

class TestNames:
    """Tests for declarations and name resolution."""

    def test_undefined_symbol_suggests(self):
        errors = errors_of("void main() { uint8 result = 1; output(1, reslt); }")
        assert isinstance(errors[0], UndefinedSymbolError)
        assert "result" in errors[0].similar_identifiers
        assert "did you mean 'result'" in str(errors[0])

    def test_undefined_function(self):
        assert main_kinds("foo();") == [ErrorKind.UNDEFINED_SYMBOL]

    def test_variable_visible_only_after_declaration(self):
        assert main_kinds("uint8 x = x;") == [ErrorKind.UNDEFINED_SYMBOL]

    def test_block_scope_ends(self):
        assert main_kinds("{ uint8 a = 1; } a = 2;") == [ErrorKind.UNDEFINED_SYMBOL]

    def test_duplicate_variable(self):
        errors = errors_of("void main() {\n  uint8 a = 1;\n  uint8 a = 2;\n}")
        assert isinstance(errors[0], DuplicateSymbolError)
        assert errors[0].original_location.line == 2

    def test_shadowing_in_inner_block(self):
        check_main("uint8 a = 1; { uint8 a = 2; output(1, a); }")

    def test_parameter_shares_body_scope(self):
        assert kinds(
            "uint8 f(uint8 a) { uint8 a = 1; return a; }\nvoid main() { }"
        ) == [ErrorKind.DUPLICATE_SYMBOL]

    def test_duplicate_function(self):
        assert kinds("void f() { }\nvoid f() { }\nvoid main() { }") == [
            ErrorKind.DUPLICATE_SYMBOL
        ]

    def test_reserved_function_name(self):
        errors = errors_of("void output() { }\nvoid main() { }")
        assert errors[0].kind is ErrorKind.DUPLICATE_SYMBOL
        assert "intrinsic" in errors[0].hint

    def test_reserved_variable_name(self):
        assert main_kinds("uint8 halt = 1;") == [ErrorKind.DUPLICATE_SYMBOL]

    def test_function_used_as_value(self):
        assert kinds("void f() { }\nvoid main() { uint8 x = f; }") == [
            ErrorKind.TYPE_MISMATCH
        ]

    def test_forward_call(self):
        check("void main() { output(1, later(2)); }\nuint8 later(uint8 v) { return v; }")


# =============================================================================
# Calls and Intrinsics
# =============================================================================

class TestCalls:
    """Tests for calls and port intrinsics."""

    def test_argument_count(self):
        errors = errors_of(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "void main() { output(1, add(1)); }"
        )
        assert isinstance(errors[0], ArgumentCountError)
        assert (errors[0].expected, errors[0].actual) == (2, 1)

    def test_argument_type(self):
        assert kinds(
            "void f(bool b) { }\nvoid main() { uint8 x = 1; f(x); }"
        ) == [ErrorKind.TYPE_MISMATCH]

    def test_intrinsic_lowered(self):
        stmt = check_main("output(3, input(0));")[0]
        assert isinstance(stmt, ExpressionStatement)
        call = stmt.expression
        assert isinstance(call, IntrinsicCall)
        assert call.intrinsic is Intrinsic.OUTPUT
        assert call.port == 3
        assert isinstance(call.arguments[1], IntrinsicCall)
        assert call.arguments[1].port == 0

    def test_halt_has_no_port(self):
        stmt = check_main("halt();")[0]
        assert stmt.expression.intrinsic is Intrinsic.HALT
        assert stmt.expression.port is None

    def test_port_must_be_constant(self):
        assert main_kinds("uint8 p = 1; output(p, 2);") == [
            ErrorKind.INVALID_PORT_ARGUMENT
        ]

    def test_folded_port_allowed(self):
        stmt = check_main("output(0x10 + 1, 2);")[0]
        assert stmt.expression.port == 17

    def test_port_out_of_range(self):
        assert main_kinds("output(200 + 100, 1);") == [ErrorKind.INVALID_PORT_ARGUMENT]

    def test_written_value_must_be_uint8(self):
        assert main_kinds("int8 v = -1; write_port(1, v);") == [
            ErrorKind.INVALID_PORT_ARGUMENT
        ]

    def test_bool_value_may_be_written(self):
        check_main("output(1, true);")

    def test_intrinsic_argument_count(self):
        assert main_kinds("halt(1);") == [ErrorKind.ARGUMENT_COUNT]


# =============================================================================
# Assignment and Returns
# =============================================================================

class TestAssignment:
    """Tests for assignment targets."""

    def test_literal_target(self):
        assert main_kinds("3 = 4;") == [ErrorKind.INVALID_ASSIGNMENT]

    def test_function_target(self):
        assert kinds("void f() { }\nvoid main() { f = 1; }") == [
            ErrorKind.INVALID_ASSIGNMENT
        ]

    def test_increment_of_expression(self):
        assert main_kinds("uint8 a = 1; (a + 1)++;") == [ErrorKind.INVALID_ASSIGNMENT]

    def test_compound_assignment(self):
        check_main("uint8 a = 1; a += 2; a <<= 1; a ^= 0xFF;")

    def test_compound_assignment_mixed_types(self):
        assert main_kinds("uint8 a = 1; int8 b = 1; a += b;") == [ErrorKind.TYPE_MISMATCH]


class TestReturns:
    """Tests for return path coverage."""

    def test_missing_return(self):
        errors = errors_of("uint8 f(bool c) { if (c) { return 1; } }\nvoid main() { }")
        assert errors[0].kind is ErrorKind.MISSING_RETURN
        assert errors[0].function_name == "f"

    def test_if_else_returns(self):
        check("uint8 f(bool c) { if (c) { return 1; } else { return 2; } }\nvoid main() { }")

    def test_endless_loop_needs_no_return(self):
        check("uint8 f() { while (true) { } }\nvoid main() { }")

    def test_halt_ends_path(self):
        check("uint8 f() { halt(); }\nvoid main() { }")

    def test_conditional_loop_needs_return(self):
        assert kinds("uint8 f(bool c) { while (c) { return 1; } }\nvoid main() { }") == [
            ErrorKind.MISSING_RETURN
        ]


# =============================================================================
# Error Collection
# =============================================================================

class TestErrorCollection:
    """Tests that independent errors are all reported."""

    def test_errors_accumulate_in_order(self):
        source = (
            "void main() {\n"
            "  uint8 x = -1;\n"
            "  bool b = x;\n"
            "  undefined_name = 1;\n"
            "}"
        )
        errors = errors_of(source)
        assert [e.kind for e in errors] == [
            ErrorKind.CONSTANT_OVERFLOW,
            ErrorKind.TYPE_MISMATCH,
            ErrorKind.UNDEFINED_SYMBOL,
        ]
        assert [e.location.line for e in errors] == [2, 3, 4]

    def test_bad_initializer_and_redeclaration(self):
        assert main_kinds("uint8 x = 1; uint8 x = nope;") == [
            ErrorKind.UNDEFINED_SYMBOL,
            ErrorKind.DUPLICATE_SYMBOL,
        ]

    def test_errors_across_functions(self):
        errors = errors_of("uint8 f() { }\nvoid main() { g(); }")
        assert [e.kind for e in errors] == [
            ErrorKind.MISSING_RETURN,
            ErrorKind.UNDEFINED_SYMBOL,
        ]

    def test_report_lists_every_error(self):
        with pytest.raises(CompilationError) as exc_info:
            check("void main() {\n  uint8 x = -1;\n  bool b = x;\n}")
        text = str(exc_info.value)
        assert "test.c8:2:" in text
        assert "test.c8:3:" in text
        assert text.endswith("2 errors")

    def test_diagnostics(self):
        with pytest.raises(CompilationError) as exc_info:
            check("void main() { foo(); }")
        diagnostic = exc_info.value.diagnostics[0]
        assert diagnostic.kind is ErrorKind.UNDEFINED_SYMBOL
        assert diagnostic.location.line == 1
