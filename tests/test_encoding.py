"""
CPU-8 Object Format Test Suite
==============================

Tests for the binary image, Intel HEX output and the assembly listing.
"""

import pytest

from cpu8_sdk.c8 import CompilerOptions, compile_c8
from cpu8_sdk.cpu.encoding import (
    HEADER_SIZE,
    MAX_HEX_IMAGE_SIZE,
    MAX_INSTRUCTIONS,
    RECORD_SIZE,
    decode_instruction,
    decode_program,
    encode_instruction,
    encode_program,
    from_intel_hex,
    to_intel_hex,
)
from cpu8_sdk.cpu.isa import (
    Condition,
    FrameSlot,
    Immediate,
    Instruction,
    Opcode,
    Program,
    Register,
)
from cpu8_sdk.cpu.listing import format_listing
from cpu8_sdk.errors import ObjectFormatError


ADD_PROGRAM = (
    "uint8 add(uint8 a, uint8 b) { return a + b; }\n"
    "void main() { output(3, add(1, 2)); }\n"
)


@pytest.fixture
def program() -> Program:
    return compile_c8(ADD_PROGRAM, "add.c8")


@pytest.fixture
def image(program) -> bytes:
    return encode_program(program)


# =============================================================================
# Instruction Records
# =============================================================================

class TestInstructionRecords:
    """Tests for single instruction records."""

    def test_compare_record(self):
        instruction = Instruction(
            Opcode.CMP, Register(1), Immediate(5), condition=Condition.LT, signed=True
        )
        assert encode_instruction(instruction) == bytes([0x09, 0xB9, 0x01, 0x05, 0xFF, 0xFF])

    def test_branch_record(self):
        instruction = Instruction(Opcode.BRF, Register(2), target=0x0102)
        assert encode_instruction(instruction) == bytes([0x11, 0x01, 0x02, 0x00, 0x01, 0x02])

    def test_negative_frame_offset(self):
        instruction = Instruction(Opcode.ST, FrameSlot(-1), Register(2))
        record = encode_instruction(instruction)
        assert record[2] == 0xFF
        assert decode_instruction(record) == instruction

    def test_unknown_opcode(self):
        with pytest.raises(ObjectFormatError, match="unknown opcode"):
            decode_instruction(bytes([0xEE, 0, 0, 0, 0xFF, 0xFF]))

    def test_invalid_operand_kind(self):
        # LDI with a register source
        with pytest.raises(ObjectFormatError, match="invalid instruction"):
            decode_instruction(bytes([0x20, 0x05, 0x01, 0x02, 0xFF, 0xFF]))

    def test_target_too_large(self):
        with pytest.raises(ObjectFormatError, match="does not fit"):
            encode_instruction(Instruction(Opcode.JMP, target=0x10000))

    def test_truncated_record(self):
        with pytest.raises(ObjectFormatError, match="truncated"):
            decode_instruction(bytes([0x3F, 0x00]))


# =============================================================================
# Program Images
# =============================================================================

class TestProgramImage:
    """Tests for whole-program images."""

    def test_header(self, program, image):
        assert image[:3] == b"C8X"
        assert image[3] == 1
        assert int.from_bytes(image[4:6], "big") == program.entry
        assert int.from_bytes(image[6:8], "big") == len(program)
        assert len(image) == HEADER_SIZE + RECORD_SIZE * len(program)

    def test_decode_restores_instructions(self, program, image):
        decoded = decode_program(image)
        assert decoded.instructions == program.instructions
        assert decoded.entry == program.entry

    def test_decoded_program_runs(self, image, run_program):
        assert run_program(decode_program(image)).outputs == [(3, 3)]

    def test_unresolved_target_rejected(self):
        with pytest.raises(ValueError):
            encode_program(Program(instructions=(Instruction(Opcode.JMP),)))

    def test_too_many_instructions(self):
        program = Program(instructions=(Instruction(Opcode.HALT),) * (MAX_INSTRUCTIONS + 1))
        with pytest.raises(ObjectFormatError, match="instructions"):
            encode_program(program)

    def test_bad_magic(self, image):
        with pytest.raises(ObjectFormatError, match="magic"):
            decode_program(b"XYZ" + image[3:])

    def test_bad_version(self, image):
        with pytest.raises(ObjectFormatError, match="version"):
            decode_program(image[:3] + b"\x02" + image[4:])

    def test_too_short(self):
        with pytest.raises(ObjectFormatError):
            decode_program(b"C8X")

    def test_truncated_image(self, image):
        with pytest.raises(ObjectFormatError):
            decode_program(image[:-1])

    def test_trailing_bytes(self, image):
        with pytest.raises(ObjectFormatError):
            decode_program(image + b"\x00")

    def test_entry_out_of_range(self, image):
        bad = image[:4] + (0x7FFF).to_bytes(2, "big") + image[6:]
        with pytest.raises(ObjectFormatError, match="entry"):
            decode_program(bad)

    def test_target_out_of_range(self):
        image = encode_program(Program(
            instructions=(Instruction(Opcode.JMP, target=0),), entry=0
        ))
        bad = image[:-2] + b"\x00\x05"
        with pytest.raises(ObjectFormatError, match="targets"):
            decode_program(bad)


# =============================================================================
# Intel HEX
# =============================================================================

class TestIntelHex:
    """Tests for Intel HEX conversion."""

    def test_record_layout(self, image):
        lines = to_intel_hex(image).splitlines()
        assert lines[0].startswith(":10000000")
        assert lines[-1] == ":00000001FF"
        assert all(line.startswith(":") for line in lines)

    def test_known_record(self):
        assert to_intel_hex(b"\x01\x02").splitlines()[0] == ":020000000102FB"

    def test_largest_image(self):
        lines = to_intel_hex(bytes(MAX_HEX_IMAGE_SIZE)).splitlines()
        assert lines[-2].startswith(":10FFF000")

    def test_image_too_large(self):
        with pytest.raises(ObjectFormatError, match="Intel HEX"):
            to_intel_hex(bytes(MAX_HEX_IMAGE_SIZE + 1))

    def test_parse_back(self, image):
        assert from_intel_hex(to_intel_hex(image)) == image

    def test_checksum_mismatch(self):
        with pytest.raises(ObjectFormatError, match="checksum"):
            from_intel_hex(":020000000102FC\n:00000001FF\n")

    def test_missing_eof(self):
        with pytest.raises(ObjectFormatError, match="end-of-file"):
            from_intel_hex(":020000000102FB\n")

    def test_gap(self):
        with pytest.raises(ObjectFormatError, match="contiguous"):
            from_intel_hex(":020010000102EB\n:00000001FF\n")

    def test_missing_colon(self):
        with pytest.raises(ObjectFormatError):
            from_intel_hex("020000000102FB\n")


# =============================================================================
# Listing
# =============================================================================

class TestListing:
    """Tests for the assembly listing."""

    def test_header_and_labels(self, program):
        text = format_listing(program)
        lines = text.splitlines()
        assert lines[0] == f"; entry: {program.entry} (main)"
        assert "add:    ; frame 2" in lines
        assert "main:    ; frame 0" in lines

    def test_call_names_callee(self, program):
        text = format_listing(program)
        assert "CALL #0, 0    ; add" in text

    def test_every_instruction_listed(self, program):
        text = format_listing(program)
        assert f"{len(program) - 1:4d}: HALT" in text

    def test_annotations(self):
        program = compile_c8(ADD_PROGRAM, "add.c8", CompilerOptions(emit_comments=True))
        assert "    ; call add" in format_listing(program).splitlines()
