"""
CPU-8 Instruction Set Definition
================================

This module defines the instruction set of the CPU-8 target: the closed
opcode set, the operand kinds, and the immutable opcode table shared by
the code generator, the object encoder and the listing writer.

Machine Model
-------------
- 8 general registers r0..r7, each one byte
- 256 bytes of data memory, addressed relative to a frame pointer (fp)
- 256 I/O ports, read with IN and written with OUT
- Instructions are addressed by index; branch, jump and call targets are
  absolute instruction indices

Register Conventions (used by the C8 compiler)
----------------------------------------------
| Register | Role                             |
|----------|----------------------------------|
| r0       | function return value            |
| r1..r3   | expression temporaries           |
| r4..r6   | local variables                  |
| r7       | scratch                          |

Instruction Semantics
---------------------
Two-address form: `dst <- dst op src`.

| Opcode | Operands         | Effect                                        |
|--------|------------------|-----------------------------------------------|
| ADD    | rD, rS/#imm      | rD <- (rD + src) mod 256                      |
| SUB    | rD, rS/#imm      | rD <- (rD - src) mod 256                      |
| AND    | rD, rS/#imm      | rD <- rD & src                                |
| OR     | rD, rS/#imm      | rD <- rD | src                                |
| XOR    | rD, rS/#imm      | rD <- rD ^ src                                |
| NOT    | rD               | rD <- ~rD                                     |
| SHL    | rD, rS/#imm      | rD <- rD << src (0 when src >= 8)             |
| SHR    | rD, rS/#imm      | rD <- rD >> src, arithmetic when signed       |
| CMP    | rD, rS/#imm      | rD <- 1 if (rD cond src) else 0               |
| BRT    | rD, target       | branch if rD != 0                             |
| BRF    | rD, target       | branch if rD == 0                             |
| JMP    | target           | unconditional jump                            |
| CALL   | #advance, target | push (return index, fp); fp += advance; jump  |
| RET    |                  | pop (return index, fp)                        |
| LDI    | rD, #imm         | rD <- imm                                     |
| LD     | rD, [fp+off]     | rD <- mem[fp + off]                           |
| ST     | [fp+off], rS     | mem[fp + off] <- rS                           |
| IN     | rD, #port        | rD <- port                                    |
| OUT    | #port, rS        | port <- rS                                    |
| HALT   |                  | stop execution                                |
"""

from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping, Optional, Union


REGISTER_COUNT = 8
DATA_MEMORY_SIZE = 256
PORT_COUNT = 256

# Register roles
RETURN_REGISTER = 0
SCRATCH_REGISTER = 7
TEMP_REGISTERS = (1, 2, 3)
VARIABLE_REGISTERS = (4, 5, 6)

# Frame offsets are signed bytes
MIN_FRAME_OFFSET = -128
MAX_FRAME_OFFSET = 127


# =============================================================================
# Opcodes and Conditions
# =============================================================================

class Opcode(IntEnum):
    """CPU-8 opcodes. The value is the opcode byte in the binary image."""
    ADD = 0x01
    SUB = 0x02
    AND = 0x03
    OR = 0x04
    XOR = 0x05
    NOT = 0x06
    SHL = 0x07
    SHR = 0x08
    CMP = 0x09
    BRT = 0x10
    BRF = 0x11
    JMP = 0x12
    CALL = 0x13
    RET = 0x14
    LDI = 0x20
    LD = 0x21
    ST = 0x22
    IN = 0x30
    OUT = 0x31
    HALT = 0x3F


class Condition(IntEnum):
    """Comparison conditions for CMP. Zero is reserved for 'no condition'."""
    EQ = 1
    NE = 2
    LT = 3
    LE = 4
    GT = 5
    GE = 6

    def evaluate(self, left: int, right: int) -> bool:
        """Apply the condition to two already-interpreted values."""
        if self is Condition.EQ:
            return left == right
        if self is Condition.NE:
            return left != right
        if self is Condition.LT:
            return left < right
        if self is Condition.LE:
            return left <= right
        if self is Condition.GT:
            return left > right
        return left >= right


# =============================================================================
# Operands
# =============================================================================

@dataclass(frozen=True)
class Register:
    """A general register r0..r7."""
    index: int

    def __post_init__(self):
        if not 0 <= self.index < REGISTER_COUNT:
            raise ValueError(f"register index out of range: {self.index}")

    def __str__(self) -> str:
        return f"r{self.index}"


@dataclass(frozen=True)
class Immediate:
    """An 8-bit immediate value (0..255)."""
    value: int

    def __post_init__(self):
        if not 0 <= self.value <= 0xFF:
            raise ValueError(f"immediate out of range: {self.value}")

    def __str__(self) -> str:
        return f"#{self.value}"


@dataclass(frozen=True)
class FrameSlot:
    """A data memory byte at a signed offset from the frame pointer."""
    offset: int

    def __post_init__(self):
        if not MIN_FRAME_OFFSET <= self.offset <= MAX_FRAME_OFFSET:
            raise ValueError(f"frame offset out of range: {self.offset}")

    def __str__(self) -> str:
        sign = "+" if self.offset >= 0 else "-"
        return f"[fp{sign}{abs(self.offset)}]"


Operand = Union[Register, Immediate, FrameSlot]


# =============================================================================
# Opcode Table
# =============================================================================

@dataclass(frozen=True)
class OpcodeInfo:
    """
    Operand shape of one opcode.

    Attributes:
        mnemonic: Assembly mnemonic
        dst: Operand kinds accepted in the dst slot (empty = unused)
        src: Operand kinds accepted in the src slot (empty = unused)
        has_target: True if the instruction carries an instruction index
        has_condition: True for CMP
        allows_signed: True where the signed flag has a meaning
    """
    mnemonic: str
    dst: tuple[type, ...] = ()
    src: tuple[type, ...] = ()
    has_target: bool = False
    has_condition: bool = False
    allows_signed: bool = False


_ALU_SRC = (Register, Immediate)

OPCODE_TABLE: Mapping[Opcode, OpcodeInfo] = MappingProxyType({
    # Arithmetic and logic
    Opcode.ADD: OpcodeInfo("ADD", (Register,), _ALU_SRC),
    Opcode.SUB: OpcodeInfo("SUB", (Register,), _ALU_SRC),
    Opcode.AND: OpcodeInfo("AND", (Register,), _ALU_SRC),
    Opcode.OR: OpcodeInfo("OR", (Register,), _ALU_SRC),
    Opcode.XOR: OpcodeInfo("XOR", (Register,), _ALU_SRC),
    Opcode.NOT: OpcodeInfo("NOT", (Register,)),
    Opcode.SHL: OpcodeInfo("SHL", (Register,), _ALU_SRC),
    Opcode.SHR: OpcodeInfo("SHR", (Register,), _ALU_SRC, allows_signed=True),
    Opcode.CMP: OpcodeInfo("CMP", (Register,), _ALU_SRC, has_condition=True, allows_signed=True),

    # Control flow
    Opcode.BRT: OpcodeInfo("BRT", (Register,), has_target=True),
    Opcode.BRF: OpcodeInfo("BRF", (Register,), has_target=True),
    Opcode.JMP: OpcodeInfo("JMP", has_target=True),
    Opcode.CALL: OpcodeInfo("CALL", (), (Immediate,), has_target=True),
    Opcode.RET: OpcodeInfo("RET"),

    # Data movement
    Opcode.LDI: OpcodeInfo("LDI", (Register,), (Immediate,)),
    Opcode.LD: OpcodeInfo("LD", (Register,), (FrameSlot,)),
    Opcode.ST: OpcodeInfo("ST", (FrameSlot,), (Register,)),

    # Ports and machine control
    Opcode.IN: OpcodeInfo("IN", (Register,), (Immediate,)),
    Opcode.OUT: OpcodeInfo("OUT", (Immediate,), (Register,)),
    Opcode.HALT: OpcodeInfo("HALT"),
})

MNEMONICS: Mapping[str, Opcode] = MappingProxyType(
    {info.mnemonic: opcode for opcode, info in OPCODE_TABLE.items()}
)

BRANCH_OPCODES: frozenset[Opcode] = frozenset({
    Opcode.BRT,
    Opcode.BRF,
    Opcode.JMP,
    Opcode.CALL,
})


# =============================================================================
# Instructions and Programs
# =============================================================================

@dataclass(frozen=True)
class Instruction:
    """
    One CPU-8 instruction.

    Attributes:
        opcode: The operation
        dst: Destination (or tested) operand
        src: Source operand
        target: Absolute instruction index for BRT/BRF/JMP/CALL
        condition: Comparison condition (CMP only)
        signed: Signed comparison / arithmetic shift (CMP and SHR only)
    """
    opcode: Opcode
    dst: Optional[Operand] = None
    src: Optional[Operand] = None
    target: Optional[int] = None
    condition: Optional[Condition] = None
    signed: bool = False

    def __post_init__(self):
        info = OPCODE_TABLE[self.opcode]
        _check_operand(info, "dst", self.dst, info.dst)
        _check_operand(info, "src", self.src, info.src)
        if info.has_condition != (self.condition is not None):
            raise ValueError(f"{info.mnemonic}: condition mismatch")
        if self.signed and not info.allows_signed:
            raise ValueError(f"{info.mnemonic} has no signed form")
        if not info.has_target and self.target is not None:
            raise ValueError(f"{info.mnemonic} takes no target")

    @property
    def info(self) -> OpcodeInfo:
        return OPCODE_TABLE[self.opcode]

    @property
    def mnemonic(self) -> str:
        """Mnemonic including the condition suffix for CMP (CMP.LT, CMP.LT.S)."""
        text = self.info.mnemonic
        if self.condition is not None:
            text += f".{self.condition.name}"
        if self.signed:
            text += ".S"
        return text

    def with_target(self, target: int) -> "Instruction":
        """Return a copy with the branch target filled in."""
        return Instruction(
            self.opcode, self.dst, self.src, target, self.condition, self.signed
        )

    def __str__(self) -> str:
        operands = [str(op) for op in (self.dst, self.src) if op is not None]
        if self.info.has_target:
            operands.append("?" if self.target is None else str(self.target))
        if operands:
            return f"{self.mnemonic} {', '.join(operands)}"
        return self.mnemonic


def _check_operand(info: OpcodeInfo, slot: str, operand, allowed: tuple[type, ...]) -> None:
    if not allowed:
        if operand is not None:
            raise ValueError(f"{info.mnemonic} takes no {slot} operand")
        return
    if not isinstance(operand, allowed):
        names = "/".join(t.__name__ for t in allowed)
        raise ValueError(f"{info.mnemonic}: {slot} must be {names}, got {operand!r}")


@dataclass(frozen=True)
class Program:
    """
    A complete compiled program.

    Attributes:
        instructions: The linear instruction stream
        entry: Index of the first instruction executed
        functions: Function name -> entry index
        frame_sizes: Function name -> frame size in bytes
        annotations: Instruction index -> listing comments
    """
    instructions: tuple[Instruction, ...]
    entry: int = 0
    functions: Mapping[str, int] = field(default_factory=dict)
    frame_sizes: Mapping[str, int] = field(default_factory=dict)
    annotations: Mapping[int, tuple[str, ...]] = field(default_factory=dict, compare=False)

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def function_at(self, index: int) -> Optional[str]:
        """Return the name of the function starting at index, if any."""
        for name, start in self.functions.items():
            if start == index:
                return name
        return None
