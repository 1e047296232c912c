"""
CPU-8 SDK CPU Package
=====================

This package describes the CPU-8 target shared by the C8 compiler and the
object tools: the instruction set, the binary image format and the
assembly listing.

Modules:
    isa:       Opcodes, operands, instructions and the Program container
    encoding:  Binary image and Intel HEX conversion
    listing:   Human-readable assembly listing
    assembler: Assembly text back into a Program

Usage:
    from cpu8_sdk.cpu import Program, encode_program, format_listing
"""

from cpu8_sdk.cpu.isa import (
    # Machine model
    REGISTER_COUNT,
    DATA_MEMORY_SIZE,
    PORT_COUNT,
    RETURN_REGISTER,
    SCRATCH_REGISTER,
    TEMP_REGISTERS,
    VARIABLE_REGISTERS,
    # Instruction set
    Opcode,
    Condition,
    Register,
    Immediate,
    FrameSlot,
    OpcodeInfo,
    OPCODE_TABLE,
    MNEMONICS,
    BRANCH_OPCODES,
    Instruction,
    Program,
)
from cpu8_sdk.cpu.encoding import (
    encode_program,
    decode_program,
    encode_instruction,
    decode_instruction,
    to_intel_hex,
    from_intel_hex,
)
from cpu8_sdk.cpu.listing import format_listing
from cpu8_sdk.cpu.assembler import Assembler, assemble, assemble_file

__all__ = [
    # Machine model
    "REGISTER_COUNT",
    "DATA_MEMORY_SIZE",
    "PORT_COUNT",
    "RETURN_REGISTER",
    "SCRATCH_REGISTER",
    "TEMP_REGISTERS",
    "VARIABLE_REGISTERS",
    # Instruction set
    "Opcode",
    "Condition",
    "Register",
    "Immediate",
    "FrameSlot",
    "OpcodeInfo",
    "OPCODE_TABLE",
    "MNEMONICS",
    "BRANCH_OPCODES",
    "Instruction",
    "Program",
    # Encoding
    "encode_program",
    "decode_program",
    "encode_instruction",
    "decode_instruction",
    "to_intel_hex",
    "from_intel_hex",
    # Listing
    "format_listing",
    # Assembler
    "Assembler",
    "assemble",
    "assemble_file",
]
