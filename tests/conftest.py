"""
CPU-8 SDK Test Configuration
============================

pytest fixtures shared by the compiler tests.

It provides:
- A reference executor for CPU-8 programs, so tests can check what a
  compiled program does rather than the exact instructions it uses
- Helper fixtures that compile C8 source and run it
"""

from collections import deque
from typing import Callable, Optional

import pytest

from cpu8_sdk.cpu.isa import (
    Condition,
    DATA_MEMORY_SIZE,
    Immediate,
    Opcode,
    Program,
    REGISTER_COUNT,
    Register,
)
from cpu8_sdk.c8 import compile_c8


# ═══════════════════════════════════════════════════════════════════════════════
# REFERENCE EXECUTOR
# ═══════════════════════════════════════════════════════════════════════════════


class MachineError(Exception):
    """Raised when a program does something the CPU-8 cannot do."""


def _signed(byte: int) -> int:
    return byte - 0x100 if byte & 0x80 else byte


class Machine:
    """
    Straightforward interpreter for CPU-8 programs.

    Input ports read from per-port queues (an exhausted or missing port
    reads 0). Every OUT is recorded in `outputs` as (port, value), in
    execution order.
    """

    def __init__(
        self,
        program: Program,
        inputs: Optional[dict[int, list[int]]] = None,
        call_stack_depth: int = 16,
        max_steps: int = 200_000,
    ):
        self.program = program
        self.registers = [0] * REGISTER_COUNT
        self.memory = bytearray(DATA_MEMORY_SIZE)
        self.fp = 0
        self.pc = program.entry
        self.stack: list[tuple[int, int]] = []
        self.inputs = {port: deque(values) for port, values in (inputs or {}).items()}
        self.outputs: list[tuple[int, int]] = []
        self.call_stack_depth = call_stack_depth
        self.max_steps = max_steps
        self.halted = False
        self.steps = 0

    def _value(self, operand) -> int:
        if isinstance(operand, Register):
            return self.registers[operand.index]
        if isinstance(operand, Immediate):
            return operand.value
        raise MachineError(f"cannot read operand {operand!r}")

    def _address(self, slot) -> int:
        address = self.fp + slot.offset
        if not 0 <= address < DATA_MEMORY_SIZE:
            raise MachineError(f"data memory access out of range: {address}")
        return address

    def step(self) -> None:
        if not 0 <= self.pc < len(self.program.instructions):
            raise MachineError(f"pc out of range: {self.pc}")
        instr = self.program.instructions[self.pc]
        next_pc = self.pc + 1
        op = instr.opcode
        regs = self.registers

        if op in (Opcode.ADD, Opcode.SUB, Opcode.AND, Opcode.OR, Opcode.XOR):
            d = regs[instr.dst.index]
            s = self._value(instr.src)
            result = {
                Opcode.ADD: d + s,
                Opcode.SUB: d - s,
                Opcode.AND: d & s,
                Opcode.OR: d | s,
                Opcode.XOR: d ^ s,
            }[op]
            regs[instr.dst.index] = result & 0xFF
        elif op is Opcode.NOT:
            regs[instr.dst.index] = ~regs[instr.dst.index] & 0xFF
        elif op is Opcode.SHL:
            count = self._value(instr.src)
            d = regs[instr.dst.index]
            regs[instr.dst.index] = 0 if count >= 8 else (d << count) & 0xFF
        elif op is Opcode.SHR:
            count = self._value(instr.src)
            d = regs[instr.dst.index]
            if instr.signed:
                regs[instr.dst.index] = (_signed(d) >> min(count, 7)) & 0xFF
            else:
                regs[instr.dst.index] = 0 if count >= 8 else d >> count
        elif op is Opcode.CMP:
            left = regs[instr.dst.index]
            right = self._value(instr.src)
            if instr.signed:
                left, right = _signed(left), _signed(right)
            regs[instr.dst.index] = int(instr.condition.evaluate(left, right))
        elif op is Opcode.BRT:
            if regs[instr.dst.index]:
                next_pc = instr.target
        elif op is Opcode.BRF:
            if not regs[instr.dst.index]:
                next_pc = instr.target
        elif op is Opcode.JMP:
            next_pc = instr.target
        elif op is Opcode.CALL:
            if len(self.stack) >= self.call_stack_depth:
                raise MachineError("call stack overflow")
            self.stack.append((next_pc, self.fp))
            self.fp += instr.src.value
            next_pc = instr.target
        elif op is Opcode.RET:
            if not self.stack:
                raise MachineError("return with empty call stack")
            next_pc, self.fp = self.stack.pop()
        elif op is Opcode.LDI:
            regs[instr.dst.index] = instr.src.value
        elif op is Opcode.LD:
            regs[instr.dst.index] = self.memory[self._address(instr.src)]
        elif op is Opcode.ST:
            self.memory[self._address(instr.dst)] = regs[instr.src.index]
        elif op is Opcode.IN:
            queue = self.inputs.get(instr.src.value)
            regs[instr.dst.index] = queue.popleft() & 0xFF if queue else 0
        elif op is Opcode.OUT:
            self.outputs.append((instr.dst.value, regs[instr.src.index]))
        elif op is Opcode.HALT:
            self.halted = True
            return
        else:
            raise MachineError(f"unknown opcode {op}")

        self.pc = next_pc

    def run(self) -> "Machine":
        while not self.halted:
            self.steps += 1
            if self.steps > self.max_steps:
                raise MachineError("step limit exceeded")
            self.step()
        return self


def outputs_on(machine: Machine, port: int) -> list[int]:
    """Values written to one port, in order."""
    return [value for p, value in machine.outputs if p == port]


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def run_program() -> Callable[..., Machine]:
    """
    Fixture: execute a compiled Program.

    Usage:
        machine = run_program(program, inputs={0: [5]})
        assert machine.outputs == [(1, 6)]
    """
    def _run(program: Program, inputs: Optional[dict[int, list[int]]] = None) -> Machine:
        return Machine(program, inputs).run()
    return _run


@pytest.fixture
def run_c8(run_program) -> Callable[..., Machine]:
    """
    Fixture: compile C8 source and execute it.

    Usage:
        machine = run_c8("void main() { output(1, 2); }")
        assert machine.outputs == [(1, 2)]
    """
    def _run(source: str, inputs: Optional[dict[int, list[int]]] = None) -> Machine:
        return run_program(compile_c8(source, "test.c8"), inputs)
    return _run
