"""
C8 Code Generator Test Suite
============================

Tests for the generated instruction stream: program layout, backpatched
operands, resource limits, and the behavior of compiled programs when
executed by the reference machine in conftest.
"""

import time

import pytest

from cpu8_sdk.c8.parser import parse_source
from cpu8_sdk.c8.checker import check_program
from cpu8_sdk.c8.codegen import CodeGenerator, contains_call, generate_program
from cpu8_sdk.c8.errors import (
    CallStackOverflowError,
    ErrorKind,
    FrameOverflowError,
)
from cpu8_sdk.cpu.isa import (
    BRANCH_OPCODES,
    Immediate,
    Opcode,
)

from conftest import Machine, MachineError, outputs_on


ADD_PROGRAM = (
    "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
    "void main() { output(3, add(1, 2)); }\n"
)


# =============================================================================
# Helpers
# =============================================================================

def generate(source: str, **options):
    typed = check_program(parse_source(source, "test.c8"), source)
    return generate_program(typed, **options)


def opcodes(program, start: int = 0, end: int = None) -> list:
    return [i.opcode for i in program.instructions[start:end]]


def chain_source(length: int) -> str:
    """main calls f1, f1 calls f2, ... down to f<length>."""
    lines = [f"void f{length}() {{ output(1, {length}); }}"]
    for i in range(length - 1, 0, -1):
        lines.append(f"void f{i}() {{ f{i + 1}(); }}")
    lines.append("void main() { f1(); }")
    return "\n".join(lines)


def fan_out_source(levels: int, main_calls: bool = False) -> str:
    """f0 calls f1 twice, f1 calls f2 twice, ... down to f<levels>."""
    lines = [f"void f{levels}() {{ output(1, 1); }}"]
    for i in range(levels - 1, -1, -1):
        lines.append(f"void f{i}() {{ f{i + 1}(); f{i + 1}(); }}")
    lines.append("void main() { f0(); }" if main_calls else "void main() { halt(); }")
    return "\n".join(lines)


def many_variables(count: int) -> str:
    return "uint8 " + ", ".join(f"v{i}" for i in range(count)) + ";"


# =============================================================================
# Program Layout
# =============================================================================

class TestLayout:
    """Tests for the shape of the generated program."""

    def test_functions_and_entry(self):
        program = generate(ADD_PROGRAM)
        assert set(program.functions) == {"add", "main"}
        assert program.entry == program.functions["main"]
        assert program.functions["add"] == 0

    def test_call_target(self):
        program = generate(ADD_PROGRAM)
        calls = [i for i in program if i.opcode is Opcode.CALL]
        assert len(calls) == 1
        assert calls[0].target == program.functions["add"]

    def test_output_port(self):
        program = generate(ADD_PROGRAM)
        outs = [i for i in program if i.opcode is Opcode.OUT]
        assert [o.dst for o in outs] == [Immediate(3)]

    def test_function_exits(self):
        program = generate(ADD_PROGRAM)
        assert program.instructions[-1].opcode is Opcode.HALT
        assert program.instructions[program.functions["main"] - 1].opcode is Opcode.RET

    def test_void_function_gets_ret(self):
        program = generate("void f() { }\nvoid main() { f(); }")
        assert opcodes(program, 0, program.functions["main"]) == [Opcode.RET]

    def test_all_targets_resolved(self):
        program = generate(
            "uint8 f(uint8 x) { if (x > 3) { return x; } return x * 2; }\n"
            "void main() { for (uint8 i = 0; i < 4; i++) { output(1, f(i)); } }"
        )
        for instruction in program:
            if instruction.opcode in BRANCH_OPCODES:
                assert instruction.target is not None
                assert 0 <= instruction.target < len(program)

    def test_deterministic(self):
        assert generate(ADD_PROGRAM) == generate(ADD_PROGRAM)

    def test_endless_loop_has_no_test(self):
        program = generate("void main() { while (true) { output(1, 1); } }")
        assert Opcode.BRF not in opcodes(program)
        assert Opcode.JMP in opcodes(program)

    def test_constant_folded_operands(self):
        program = generate("void main() { output(1, 2 + 3); }")
        assert opcodes(program) == [Opcode.LDI, Opcode.OUT, Opcode.HALT]
        assert program.instructions[0].src == Immediate(5)


class TestFrames:
    """Tests for frame sizes and backpatched frame operands."""

    def test_parameters_occupy_frame(self):
        program = generate(ADD_PROGRAM)
        assert program.frame_sizes["add"] == 2
        assert program.frame_sizes["main"] == 0

    def test_call_advance_matches_frame(self):
        source = (
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "void main() {\n"
            "  uint8 w = 1; uint8 x = 2; uint8 y = 3; uint8 z = 4;\n"
            "  output(1, add(w, z));\n"
            "}"
        )
        program = generate(source)
        frame = program.frame_sizes["main"]
        call_index = next(i for i, ins in enumerate(program) if ins.opcode is Opcode.CALL)
        assert program.instructions[call_index].src == Immediate(frame)

        stores = [
            ins.dst.offset for ins in program.instructions[program.functions["main"]:call_index]
            if ins.opcode is Opcode.ST and ins.dst.offset >= frame
        ]
        assert stores == [frame, frame + 1]

    def test_slots_reused_across_blocks(self):
        body = "{ " + many_variables(10) + " } { " + many_variables(10) + " }"
        program = generate(f"void main() {{ {body} }}")
        assert program.frame_sizes["main"] == 7

    def test_frame_overflow(self):
        with pytest.raises(FrameOverflowError) as exc_info:
            generate(f"void main() {{ {many_variables(140)} }}")
        assert exc_info.value.kind is ErrorKind.FRAME_OVERFLOW

    def test_largest_frame_fits(self):
        program = generate(f"void main() {{ {many_variables(131)} }}")
        assert program.frame_sizes["main"] == 128


# =============================================================================
# Call Graph Limits
# =============================================================================

class TestCallGraph:
    """Tests for recursion, call depth and data memory limits."""

    def test_chain_at_limit(self):
        program = generate(chain_source(16))
        assert len(program.functions) == 17

    def test_chain_over_limit(self):
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate(chain_source(17))
        assert exc_info.value.kind is ErrorKind.CALL_STACK_OVERFLOW
        assert "main -> f1" in exc_info.value.message

    def test_limit_is_configurable(self):
        generate(chain_source(17), call_stack_limit=17)
        with pytest.raises(CallStackOverflowError):
            generate(chain_source(3), call_stack_limit=2)

    def test_overflow_reported_at_call_site(self):
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate(chain_source(3), call_stack_limit=2)
        # f2 calls f3 on the line after f3's definition
        assert exc_info.value.location.line == 2

    def test_direct_recursion(self):
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate("void f() { f(); }\nvoid main() { f(); }")
        assert "recursive" in exc_info.value.message
        assert "f -> f" in exc_info.value.message

    def test_mutual_recursion_unreachable_from_main(self):
        with pytest.raises(CallStackOverflowError):
            generate("void f() { g(); }\nvoid g() { f(); }\nvoid main() { }")

    def test_fan_out_is_linear(self):
        start = time.perf_counter()
        program = generate(fan_out_source(30))
        assert time.perf_counter() - start < 1.0
        assert len(program.functions) == 32

    def test_fan_out_depth_from_main(self):
        generate(fan_out_source(30, main_calls=True), call_stack_limit=31)
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate(fan_out_source(30, main_calls=True))
        assert "main -> f0 -> f1" in exc_info.value.message

    def test_cycle_below_shared_callee(self):
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate(
                "void c() { }\n"
                "void a() { c(); }\n"
                "void b() { c(); d(); }\n"
                "void d() { b(); }\n"
                "void main() { a(); b(); }"
            )
        assert "b -> d -> b" in exc_info.value.message

    def test_data_memory_limit(self):
        source = (
            f"void b() {{ {many_variables(100)} }}\n"
            f"void a() {{ {many_variables(100)} b(); }}\n"
            f"void main() {{ {many_variables(100)} a(); }}"
        )
        with pytest.raises(CallStackOverflowError) as exc_info:
            generate(source)
        assert "data memory" in exc_info.value.message

    def test_contains_call(self):
        program = check_program(parse_source(
            "uint8 f() { return 1; }\nvoid main() { uint8 x = 1 + f(); uint8 y = x + 1; }"
        ))
        first, second = program.get_function("main").body.statements
        assert contains_call(first.initializer)
        assert not contains_call(second.initializer)


class TestAnnotations:
    """Tests for listing annotations."""

    def test_annotations_recorded(self):
        program = generate(ADD_PROGRAM, emit_comments=True)
        notes = [note for group in program.annotations.values() for note in group]
        assert "function add" in notes
        assert "function main" in notes
        assert "call add" in notes
        assert "return" in notes
        assert program.annotations[program.functions["main"]][0] == "function main"

    def test_annotations_off_by_default(self):
        assert generate(ADD_PROGRAM).annotations == {}

    def test_annotations_do_not_change_code(self):
        with_notes = CodeGenerator(emit_comments=True).generate(
            check_program(parse_source(ADD_PROGRAM))
        )
        assert with_notes.instructions == generate(ADD_PROGRAM).instructions


# =============================================================================
# Execution
# =============================================================================

class TestExecution:
    """Compiled programs run on the reference machine."""

    def test_add(self, run_c8):
        assert run_c8(ADD_PROGRAM).outputs == [(3, 3)]

    def test_call_then_output_then_halt(self, run_program):
        program = generate(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "void main() { uint8 r = add(input(0), input(1)); output(3, r); halt(); }"
        )
        ops = opcodes(program)
        call_index = ops.index(Opcode.CALL)
        out_index = ops.index(Opcode.OUT)
        assert program.instructions[call_index].target == program.functions["add"]
        assert call_index < out_index < len(ops) - 1
        assert ops[-1] is Opcode.HALT
        assert run_program(program, {0: [7], 1: [8]}).outputs == [(3, 15)]

    @pytest.mark.parametrize("op, expected", [(1, 13), (2, 5), (0, 0xFF), (3, 0xFF)])
    def test_calculator(self, run_c8, op, expected):
        machine = run_c8(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "uint8 subtract(uint8 a, uint8 b) { return a - b; }\n"
            "void main() {\n"
            "  uint8 op = input(0); uint8 num1 = input(1); uint8 num2 = input(2);\n"
            "  uint8 result;\n"
            "  if (op == 1) { result = add(num1, num2); }\n"
            "  else if (op == 2) { result = subtract(num1, num2); }\n"
            "  else { result = 0xFF; }\n"
            "  output(1, result);\n"
            "}",
            inputs={0: [op], 1: [9], 2: [4]},
        )
        assert machine.outputs == [(1, expected)]

    def test_nested_call_arguments(self, run_c8):
        machine = run_c8(
            "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
            "void main() { output(1, add(add(1, 2), add(3, 4))); }"
        )
        assert machine.outputs == [(1, 10)]

    def test_variables_survive_calls(self, run_c8):
        machine = run_c8(
            "uint8 twice(uint8 v) { uint8 w = v; return v + w; }\n"
            "void main() { uint8 a = 5; uint8 b = twice(a); output(1, a); output(2, b); }"
        )
        assert machine.outputs == [(1, 5), (2, 10)]

    def test_temporaries_survive_calls(self, run_c8):
        machine = run_c8(
            "uint8 one() { return 1; }\n"
            "void main() { uint8 a = 40; output(1, a + (2 + one())); }"
        )
        assert machine.outputs == [(1, 43)]

    def test_four_parameters(self, run_c8):
        machine = run_c8(
            "uint8 sum4(uint8 a, uint8 b, uint8 c, uint8 d) { return a + b + c + d; }\n"
            "void main() { output(1, sum4(1, 2, 3, 4)); }"
        )
        assert machine.outputs == [(1, 10)]

    def test_multiply(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 a = 20; uint8 b = 13; int8 x = -3;\n"
            "  output(1, a * b);\n"
            "  output(2, (uint8)(x * 5));\n"
            "  output(3, a * 0);\n"
            "}"
        )
        assert machine.outputs == [(1, 4), (2, 241), (3, 0)]

    def test_spill_chain(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 a = 100; uint8 b = 50; uint8 c = 20; uint8 d = 9; uint8 e = 4;\n"
            "  output(1, a - (b - (c - (d - e))));\n"
            "}"
        )
        assert machine.outputs == [(1, 65)]

    @pytest.mark.parametrize("c, expected", [(10, 4), (5, 3)])
    def test_spilled_comparison(self, run_c8, c, expected):
        machine = run_c8(
            "void main() {\n"
            f"  uint8 a = 1; uint8 b = 2; uint8 c = {c}; uint8 d = 3; uint8 e = 4;\n"
            "  output(1, a + (b + (uint8)(c > (d + e))));\n"
            "}"
        )
        assert machine.outputs == [(1, expected)]

    def test_signed_and_unsigned_compare(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  int8 a = -1; int8 b = 1; uint8 c = 255; uint8 d = 1;\n"
            "  output(1, a < b);\n"
            "  output(2, c < d);\n"
            "}"
        )
        assert machine.outputs == [(1, 1), (2, 0)]

    def test_shifts(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  int8 x = -16; uint8 y = 240;\n"
            "  output(1, (uint8)(x >> 2));\n"
            "  output(2, y >> 2);\n"
            "  output(3, y << 1);\n"
            "}"
        )
        assert machine.outputs == [(1, 252), (2, 60), (3, 224)]

    def test_wraparound(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 x = 250; int8 y = 127;\n"
            "  x = x + 10; y++;\n"
            "  output(1, x);\n"
            "  output(2, (uint8)y);\n"
            "}"
        )
        assert machine.outputs == [(1, 4), (2, 128)]

    def test_bitwise(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 a = 0xF0;\n"
            "  output(1, ~a); output(2, a ^ 0xFF); output(3, a & 0x3C);\n"
            "  output(4, a | 0x0F); output(5, -a);\n"
            "}"
        )
        assert machine.outputs == [(1, 0x0F), (2, 0x0F), (3, 0x30), (4, 0xFF), (5, 0x10)]

    def test_slot_variables(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 a = 0, b = 0, c = 0, d = 1, e = 7;\n"
            "  e++; ++e; e -= 2; e <<= 1; d += e;\n"
            "  output(1, d); output(2, e++); output(3, e);\n"
            "}"
        )
        assert machine.outputs == [(1, 15), (2, 14), (3, 15)]

    def test_uninitialized_is_zero(self, run_c8):
        machine = run_c8("void main() { uint8 x; output(1, x); }")
        assert machine.outputs == [(1, 0)]

    def test_for_loop(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  uint8 s = 0;\n"
            "  for (uint8 i = 1; i <= 10; i++) { s += i; }\n"
            "  output(1, s);\n"
            "}"
        )
        assert machine.outputs == [(1, 55)]

    def test_short_circuit(self, run_c8):
        machine = run_c8(
            "bool touch() { output(9, 1); return true; }\n"
            "void main() {\n"
            "  bool f = false; bool t = true;\n"
            "  if (f && touch()) { output(1, 1); }\n"
            "  if (t || touch()) { output(2, 1); }\n"
            "  if (t && touch()) { output(3, 1); }\n"
            "}"
        )
        assert machine.outputs == [(2, 1), (9, 1), (3, 1)]

    @pytest.mark.parametrize("ready, expected", [
        (0, []),
        (1, [(9, 1), (1, 1)]),
    ])
    def test_ready_guard(self, run_c8, ready, expected):
        machine = run_c8(
            "bool has_error() { output(9, 1); return false; }\n"
            "void main() {\n"
            "  bool is_ready = input(0) == 1;\n"
            "  if (is_ready && !has_error()) { output(1, 1); }\n"
            "}",
            inputs={0: [ready]},
        )
        assert machine.outputs == expected

    def test_bool_stored_as_uint8(self, run_c8):
        machine = run_c8("void main() { bool b = true; uint8 x = b; output(1, x); }")
        assert machine.outputs == [(1, 1)]

    @pytest.mark.parametrize("value, expected", [(5, 1), (15, 2), (25, 3)])
    def test_else_if_chain(self, run_c8, value, expected):
        machine = run_c8(
            "void main() {\n"
            "  uint8 v = input(0);\n"
            "  if (v < 10) { output(1, 1); }\n"
            "  else if (v < 20) { output(1, 2); }\n"
            "  else { output(1, 3); }\n"
            "}",
            inputs={0: [value]},
        )
        assert machine.outputs == [(1, expected)]

    def test_ternary(self, run_c8):
        machine = run_c8(
            "void main() { output(1, input(0) > 5 ? 7 : 3); output(1, input(0) > 5 ? 7 : 3); }",
            inputs={0: [9, 2]},
        )
        assert outputs_on(machine, 1) == [7, 3]

    @pytest.mark.parametrize("value, expected", [
        (9, [(2, 1), (1, 7)]),
        (2, [(3, 1), (1, 3)]),
    ])
    def test_ternary_runs_one_branch(self, run_c8, value, expected):
        machine = run_c8(
            "uint8 a() { output(2, 1); return 7; }\n"
            "uint8 b() { output(3, 1); return 3; }\n"
            "void main() { output(1, input(0) > 5 ? a() : b()); }",
            inputs={0: [value]},
        )
        assert machine.outputs == expected

    def test_echo_until_zero(self, run_c8):
        machine = run_c8(
            "void main() {\n"
            "  while (true) {\n"
            "    uint8 v = input(0);\n"
            "    if (v == 0) { halt(); }\n"
            "    output(1, v + 1);\n"
            "  }\n"
            "}",
            inputs={0: [1, 2, 0, 7]},
        )
        assert machine.outputs == [(1, 2), (1, 3)]

    def test_early_return(self, run_c8):
        machine = run_c8(
            "uint8 clamp(uint8 v) { if (v > 100) { return 100; } return v; }\n"
            "void main() { output(1, clamp(200)); output(1, clamp(7)); }"
        )
        assert outputs_on(machine, 1) == [100, 7]

    def test_deepest_chain_runs(self, run_program):
        program = generate(chain_source(16))
        assert run_program(program).outputs == [(1, 16)]

    def test_machine_stack_limit(self):
        program = generate(chain_source(3), call_stack_limit=3)
        with pytest.raises(MachineError):
            Machine(program, call_stack_depth=2).run()

    def test_frame_slots_are_data_memory(self, run_c8):
        machine = run_c8(
            "uint8 pick(uint8 a, uint8 b, uint8 c, uint8 d, uint8 e) { return e - a; }\n"
            "void main() { output(1, pick(1, 2, 3, 4, 9)); }"
        )
        assert machine.outputs == [(1, 8)]
