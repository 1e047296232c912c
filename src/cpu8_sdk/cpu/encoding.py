"""
CPU-8 Object Image Encoding
===========================

This module converts a Program to and from its binary image, and the
binary image to and from Intel HEX text.

Image Layout
------------
    Header (8 bytes):
        Bytes 0-2: Magic "C8X"
        Byte 3:    Format version (1)
        Bytes 4-5: Entry instruction index (big-endian)
        Bytes 6-7: Instruction count (big-endian)

    Instruction record (6 bytes each):
        Byte 0:    Opcode byte
        Byte 1:    Flags
        Byte 2:    dst operand byte
        Byte 3:    src operand byte
        Bytes 4-5: Target instruction index, 0xFFFF when absent (big-endian)

Flags byte:
    Bits 0-1: dst operand kind
    Bits 2-3: src operand kind
    Bits 4-6: Condition (0 = none, 1..6 = EQ..GE)
    Bit 7:    Signed

Operand kinds are 0 (none), 1 (register), 2 (immediate), 3 (frame slot).
Frame slot offsets are stored as two's-complement bytes.

Intel HEX
---------
The image is split into 16-byte data records (type 00) starting at
address 0, followed by the end-of-file record (type 01).
"""

import struct
from enum import IntEnum
from typing import Optional

from cpu8_sdk.errors import ObjectFormatError
from cpu8_sdk.cpu.isa import (
    Condition,
    FrameSlot,
    Immediate,
    Instruction,
    Opcode,
    Operand,
    Program,
    Register,
)


MAGIC = b"C8X"
FORMAT_VERSION = 1
HEADER_SIZE = 8
RECORD_SIZE = 6
NO_TARGET = 0xFFFF

HEX_RECORD_LENGTH = 16

# Counts and targets are 16-bit fields, with 0xFFFF reserved for NO_TARGET
MAX_INSTRUCTIONS = 0xFFFF
# Intel HEX data records carry 16-bit addresses
MAX_HEX_IMAGE_SIZE = 0x10000

_HEADER = struct.Struct(">3sBHH")
_RECORD = struct.Struct(">BBBBH")


class OperandKind(IntEnum):
    """Operand kind codes stored in the flags byte."""
    NONE = 0
    REGISTER = 1
    IMMEDIATE = 2
    SLOT = 3


# =============================================================================
# Operand Packing
# =============================================================================

def _pack_operand(operand: Optional[Operand]) -> tuple[OperandKind, int]:
    if operand is None:
        return OperandKind.NONE, 0
    if isinstance(operand, Register):
        return OperandKind.REGISTER, operand.index
    if isinstance(operand, Immediate):
        return OperandKind.IMMEDIATE, operand.value
    return OperandKind.SLOT, operand.offset & 0xFF


def _unpack_operand(kind: int, byte: int) -> Optional[Operand]:
    if kind == OperandKind.NONE:
        return None
    if kind == OperandKind.REGISTER:
        return Register(byte)
    if kind == OperandKind.IMMEDIATE:
        return Immediate(byte)
    return FrameSlot(byte - 0x100 if byte & 0x80 else byte)


def encode_instruction(instruction: Instruction) -> bytes:
    """Encode one instruction as a 6-byte record."""
    dst_kind, dst_byte = _pack_operand(instruction.dst)
    src_kind, src_byte = _pack_operand(instruction.src)
    condition = instruction.condition.value if instruction.condition else 0

    flags = dst_kind | (src_kind << 2) | (condition << 4)
    if instruction.signed:
        flags |= 0x80

    if instruction.target is None:
        target = NO_TARGET
    elif 0 <= instruction.target < NO_TARGET:
        target = instruction.target
    else:
        raise ObjectFormatError(f"target {instruction.target} does not fit a record")
    return _RECORD.pack(instruction.opcode.value, flags, dst_byte, src_byte, target)


def decode_instruction(data: bytes, offset: int = 0) -> Instruction:
    """
    Decode one 6-byte instruction record.

    Raises:
        ObjectFormatError: On an unknown opcode or an invalid operand
    """
    try:
        opcode_byte, flags, dst_byte, src_byte, target = _RECORD.unpack_from(data, offset)
    except struct.error:
        raise ObjectFormatError(f"truncated instruction record at offset {offset}") from None

    try:
        opcode = Opcode(opcode_byte)
    except ValueError:
        raise ObjectFormatError(
            f"unknown opcode byte 0x{opcode_byte:02X} at offset {offset}"
        ) from None

    condition_code = (flags >> 4) & 0x07
    try:
        condition = Condition(condition_code) if condition_code else None
        return Instruction(
            opcode,
            dst=_unpack_operand(flags & 0x03, dst_byte),
            src=_unpack_operand((flags >> 2) & 0x03, src_byte),
            target=None if target == NO_TARGET else target,
            condition=condition,
            signed=bool(flags & 0x80),
        )
    except ValueError as e:
        raise ObjectFormatError(f"invalid instruction at offset {offset}: {e}") from e


# =============================================================================
# Program Images
# =============================================================================

def encode_program(program: Program) -> bytes:
    """
    Encode a Program as a binary image.

    Raises:
        ValueError: If the program has an unresolved branch target
        ObjectFormatError: If the program has more than MAX_INSTRUCTIONS
    """
    if len(program) > MAX_INSTRUCTIONS:
        raise ObjectFormatError(
            f"program has {len(program)} instructions, an image holds {MAX_INSTRUCTIONS}"
        )
    image = bytearray(_HEADER.pack(MAGIC, FORMAT_VERSION, program.entry, len(program)))
    for index, instruction in enumerate(program.instructions):
        if instruction.info.has_target and instruction.target is None:
            raise ValueError(f"instruction {index} ({instruction}) has no target")
        image.extend(encode_instruction(instruction))
    return bytes(image)


def decode_program(data: bytes) -> Program:
    """
    Decode a binary image into a Program.

    Function names, frame sizes and annotations are not part of the image,
    so the result carries only instructions and the entry index.

    Raises:
        ObjectFormatError: If the image is malformed
    """
    if len(data) < HEADER_SIZE:
        raise ObjectFormatError(f"image too short: {len(data)} bytes")

    magic, version, entry, count = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise ObjectFormatError(f"bad magic {magic!r}, expected {MAGIC!r}")
    if version != FORMAT_VERSION:
        raise ObjectFormatError(f"unsupported format version {version}")

    expected = HEADER_SIZE + count * RECORD_SIZE
    if len(data) != expected:
        raise ObjectFormatError(
            f"image is {len(data)} bytes, header declares {count} instructions "
            f"({expected} bytes)"
        )
    if count and entry >= count:
        raise ObjectFormatError(f"entry {entry} outside {count} instructions")

    instructions = []
    for index in range(count):
        instruction = decode_instruction(data, HEADER_SIZE + index * RECORD_SIZE)
        if instruction.target is not None and instruction.target >= count:
            raise ObjectFormatError(
                f"instruction {index} targets {instruction.target}, "
                f"outside {count} instructions"
            )
        instructions.append(instruction)

    return Program(instructions=tuple(instructions), entry=entry)


# =============================================================================
# Intel HEX
# =============================================================================

def _hex_record(record_type: int, address: int, payload: bytes) -> str:
    body = bytes([len(payload), (address >> 8) & 0xFF, address & 0xFF, record_type]) + payload
    checksum = (-sum(body)) & 0xFF
    return ":" + body.hex().upper() + f"{checksum:02X}"


def to_intel_hex(image: bytes) -> str:
    """
    Render a binary image as Intel HEX text.

    Raises:
        ObjectFormatError: If the image does not fit 16-bit record addresses
    """
    if len(image) > MAX_HEX_IMAGE_SIZE:
        raise ObjectFormatError(
            f"image is {len(image)} bytes, Intel HEX addresses reach {MAX_HEX_IMAGE_SIZE}"
        )
    lines = []
    for address in range(0, len(image), HEX_RECORD_LENGTH):
        lines.append(_hex_record(0x00, address, image[address:address + HEX_RECORD_LENGTH]))
    lines.append(_hex_record(0x01, 0, b""))
    return "\n".join(lines) + "\n"


def from_intel_hex(text: str) -> bytes:
    """
    Parse Intel HEX text back into a binary image.

    Raises:
        ObjectFormatError: On a malformed record, a bad checksum or a gap
    """
    image = bytearray()
    for line_number, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        if not line.startswith(":"):
            raise ObjectFormatError(f"line {line_number}: record must start with ':'")
        try:
            record = bytes.fromhex(line[1:])
        except ValueError:
            raise ObjectFormatError(f"line {line_number}: invalid hex digits") from None
        if len(record) < 5 or len(record) != record[0] + 5:
            raise ObjectFormatError(f"line {line_number}: bad record length")
        if sum(record) & 0xFF:
            raise ObjectFormatError(f"line {line_number}: checksum mismatch")

        address = (record[1] << 8) | record[2]
        record_type = record[3]
        if record_type == 0x01:
            return bytes(image)
        if record_type != 0x00:
            raise ObjectFormatError(
                f"line {line_number}: unsupported record type {record_type:02X}"
            )
        if address != len(image):
            raise ObjectFormatError(
                f"line {line_number}: address 0x{address:04X} is not contiguous"
            )
        image.extend(record[4:-1])

    raise ObjectFormatError("missing end-of-file record")
