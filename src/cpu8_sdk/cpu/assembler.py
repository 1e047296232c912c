"""
CPU-8 Assembler
===============

This module reads CPU-8 assembly text into a Program. It accepts the
format that format_listing writes, so a listing can be edited by hand and
assembled again. Hand-written sources may leave out anything the listing
adds.

Source Format
-------------
    ; entry: 4 (main)           Listing header, sets the entry index
    add:    ; frame 2           Label, with an optional frame size
        ; call add              Comment line, kept as an annotation
           0: LD r1, [fp+0]     Instruction, with an optional index prefix
        CALL #2, add            Targets are indices or labels

- Mnemonics and registers are case-insensitive
- CMP needs a condition suffix (CMP.LT); CMP and SHR take a signed
  suffix (CMP.LT.S, SHR.S)
- Operands are registers r0..r7, immediates #n and frame slots [fp+n]
  or [fp-n]; numbers are decimal, 0x hexadecimal or 0b binary
- Operands are written dst, src, target, leaving out the slots an opcode
  does not use; CALL is written #advance, target
- An index prefix must equal the instruction's position
- Text after ';' on a label or instruction line is ignored, except the
  'frame N' note of a label

Entry Point
-----------
The `; entry:` header wins. Without it the entry is the label `main`,
and without that, instruction 0.

Every label becomes an entry of Program.functions, so the listing of an
assembled program prints it again.

Example Usage
-------------
>>> from cpu8_sdk.cpu.assembler import assemble
>>> program = assemble('''
... main:
...     IN r1, #0
...     OUT #1, r1
...     HALT
... ''')
>>> len(program), program.entry
(3, 0)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import difflib
import logging
import re

from cpu8_sdk.errors import AssemblyError, SourceLocation
from cpu8_sdk.cpu.isa import (
    Condition,
    FrameSlot,
    Immediate,
    Instruction,
    MNEMONICS,
    OPCODE_TABLE,
    Opcode,
    OpcodeInfo,
    Operand,
    Program,
    Register,
)

logger = logging.getLogger(__name__)


ENTRY_FUNCTION = "main"

_ENTRY_HEADER = re.compile(r"^;\s*entry:\s*(\S+)")
_LABEL = re.compile(r"^([A-Za-z_]\w*)\s*:$")
_FRAME_NOTE = re.compile(r"^frame\s+(\d+)$")
_INDEX_PREFIX = re.compile(r"^(\d+)\s*:\s*")
_REGISTER = re.compile(r"^r(\d+)$", re.IGNORECASE)
_FRAME_SLOT = re.compile(r"^\[\s*fp\s*([+-])\s*(\w+)\s*\]$", re.IGNORECASE)
_NAME = re.compile(r"^[A-Za-z_]\w*$")

_OPERAND_NAMES = {
    Register: "a register",
    Immediate: "an immediate",
    FrameSlot: "a frame slot",
}


@dataclass
class _Line:
    """Position and text of one source line, for error reporting."""
    number: int
    text: str

    def at(self, fragment: str) -> int:
        """1-based column of fragment in the line."""
        return self.text.find(fragment) + 1 if fragment in self.text else 1


@dataclass
class _Statement:
    """One instruction line, before labels are resolved."""
    line: _Line
    opcode: Opcode
    dst: Optional[Operand]
    src: Optional[Operand]
    target: Union[int, str, None]
    target_text: str
    condition: Optional[Condition]
    signed: bool


def _usage(info: OpcodeInfo) -> str:
    """Operand pattern of an opcode, as shown in hints."""
    slots = []
    for allowed in (info.dst, info.src):
        if allowed:
            slots.append(" or ".join(_OPERAND_NAMES[kind] for kind in allowed))
    if info.has_target:
        slots.append("a target")
    if not slots:
        return info.mnemonic
    return f"{info.mnemonic} " + ", ".join(slots)


# =============================================================================
# Assembler
# =============================================================================

class Assembler:
    """
    Two-pass CPU-8 assembler.

    The first pass parses every line, recording labels, frame notes and
    annotations. The second pass resolves label targets and builds the
    Program.

    Example:
        assembler = Assembler("blink.asm")
        program = assembler.assemble(source)
    """

    def __init__(self, filename: str = "<input>"):
        self.filename = filename
        self._statements: list[_Statement] = []
        self._labels: dict[str, int] = {}
        self._frame_sizes: dict[str, int] = {}
        self._annotations: dict[int, list[str]] = {}
        self._pending_notes: list[str] = []
        self._entry: Optional[tuple[str, _Line]] = None

    def assemble(self, source: str) -> Program:
        """
        Assemble source text into a Program.

        Raises:
            AssemblyError: On the first invalid line or unresolved label
        """
        for number, text in enumerate(source.splitlines(), 1):
            self._parse_line(_Line(number, text))

        if not self._statements:
            raise AssemblyError(
                "no instructions to assemble",
                SourceLocation(self.filename, 1, 1),
            )

        count = len(self._statements)
        for name, index in self._labels.items():
            if index >= count:
                raise AssemblyError(f"label '{name}' marks no instruction")

        instructions = tuple(self._resolve(stmt) for stmt in self._statements)
        program = Program(
            instructions=instructions,
            entry=self._entry_index(),
            functions=dict(self._labels),
            frame_sizes=dict(self._frame_sizes),
            annotations={i: tuple(notes) for i, notes in self._annotations.items()},
        )
        logger.debug(
            f"Assembled {len(program)} instructions from {self.filename}, "
            f"entry at {program.entry}"
        )
        return program

    # =========================================================================
    # Helpers
    # =========================================================================

    def _error(
        self,
        message: str,
        line: _Line,
        fragment: str = "",
        hint: Optional[str] = None,
    ) -> AssemblyError:
        column = line.at(fragment) if fragment else len(line.text) - len(line.text.lstrip()) + 1
        return AssemblyError(
            message,
            SourceLocation(self.filename, line.number, column),
            hint=hint,
            source_line=line.text,
        )

    def _parse_number(self, text: str, line: _Line) -> int:
        try:
            return int(text, 0)
        except ValueError:
            raise self._error(f"invalid number '{text}'", line, text) from None

    # =========================================================================
    # First Pass
    # =========================================================================

    def _parse_line(self, line: _Line) -> None:
        """Parse one line: blank, comment, label or instruction."""
        text = line.text.strip()
        if not text:
            return

        if text.startswith(";"):
            self._parse_comment(text, line)
            return

        code, _, comment = text.partition(";")
        code = code.strip()
        comment = comment.strip()

        label = _LABEL.match(code)
        if label:
            self._define_label(label.group(1), comment, line)
            return

        index = len(self._statements)
        self._statements.append(self._parse_instruction(code, line))
        if self._pending_notes:
            self._annotations[index] = self._pending_notes
            self._pending_notes = []

    def _parse_comment(self, text: str, line: _Line) -> None:
        header = _ENTRY_HEADER.match(text)
        if header and not self._statements and not self._labels and self._entry is None:
            self._entry = (header.group(1), line)
            return
        note = text[1:].strip()
        if note:
            self._pending_notes.append(note)

    def _define_label(self, name: str, comment: str, line: _Line) -> None:
        if name in self._labels:
            raise self._error(f"duplicate label '{name}'", line, name)
        self._labels[name] = len(self._statements)

        frame = _FRAME_NOTE.match(comment)
        if frame:
            self._frame_sizes[name] = int(frame.group(1))

    def _parse_instruction(self, code: str, line: _Line) -> _Statement:
        """Parse an instruction line, with or without its listing index."""
        prefix = _INDEX_PREFIX.match(code)
        if prefix:
            index = int(prefix.group(1))
            if index != len(self._statements):
                raise self._error(
                    f"listing index {index} does not match position "
                    f"{len(self._statements)}",
                    line,
                    prefix.group(1),
                    hint="indices must count up from 0 without gaps",
                )
            code = code[prefix.end():]

        parts = code.split(None, 1)
        if not parts:
            raise self._error("expected an instruction", line)
        mnemonic_text = parts[0]
        operand_text = parts[1].strip() if len(parts) > 1 else ""

        opcode, condition, signed = self._parse_mnemonic(mnemonic_text, line)
        info = OPCODE_TABLE[opcode]

        operands = [op.strip() for op in operand_text.split(",")] if operand_text else []
        expected = len([slot for slot in (info.dst, info.src) if slot]) + info.has_target
        if len(operands) != expected:
            raise self._error(
                f"{info.mnemonic} takes {expected} operands, found {len(operands)}",
                line,
                mnemonic_text,
                hint=f"write it as {_usage(info)}",
            )

        remaining = iter(operands)
        dst = self._parse_operand(next(remaining), info, info.dst, line) if info.dst else None
        src = self._parse_operand(next(remaining), info, info.src, line) if info.src else None

        target: Union[int, str, None] = None
        target_text = ""
        if info.has_target:
            target_text = next(remaining)
            target = self._parse_target(target_text, line)

        return _Statement(
            line=line,
            opcode=opcode,
            dst=dst,
            src=src,
            target=target,
            target_text=target_text,
            condition=condition,
            signed=signed,
        )

    def _parse_mnemonic(
        self, text: str, line: _Line
    ) -> tuple[Opcode, Optional[Condition], bool]:
        """Split MNEMONIC[.COND][.S] into its parts."""
        name, *suffixes = text.upper().split(".")
        if name not in MNEMONICS:
            matches = difflib.get_close_matches(name, list(MNEMONICS), n=1)
            raise self._error(
                f"unknown mnemonic '{text}'",
                line,
                text,
                hint=f"did you mean '{matches[0]}'?" if matches else None,
            )
        opcode = MNEMONICS[name]
        info = OPCODE_TABLE[opcode]

        condition = None
        signed = False
        for suffix in suffixes:
            if suffix == "S" and info.allows_signed and not signed:
                signed = True
            elif suffix in Condition.__members__ and info.has_condition and condition is None:
                condition = Condition[suffix]
            else:
                raise self._error(f"invalid suffix '.{suffix}' on {name}", line, text)

        if info.has_condition and condition is None:
            conditions = ", ".join(f"{name}.{c.name}" for c in Condition)
            raise self._error(
                f"{name} needs a condition suffix", line, text, hint=f"use one of {conditions}"
            )
        return opcode, condition, signed

    def _parse_operand(
        self,
        text: str,
        info: OpcodeInfo,
        allowed: tuple[type, ...],
        line: _Line,
    ) -> Operand:
        """Parse a register, immediate or frame slot operand."""
        try:
            register = _REGISTER.match(text)
            slot = _FRAME_SLOT.match(text)
            if register:
                operand: Operand = Register(int(register.group(1)))
            elif text.startswith("#"):
                operand = Immediate(self._parse_number(text[1:].strip(), line))
            elif slot:
                offset = self._parse_number(slot.group(2), line)
                operand = FrameSlot(-offset if slot.group(1) == "-" else offset)
            else:
                raise self._error(f"invalid operand '{text}'", line, text)
        except ValueError as e:
            raise self._error(str(e), line, text) from None

        if not isinstance(operand, allowed):
            kinds = " or ".join(_OPERAND_NAMES[kind] for kind in allowed)
            raise self._error(
                f"{info.mnemonic} expects {kinds}, found '{text}'",
                line,
                text,
                hint=f"write it as {_usage(info)}",
            )
        return operand

    def _parse_target(self, text: str, line: _Line) -> Union[int, str]:
        if text[:1].isdigit():
            return self._parse_number(text, line)
        if _NAME.match(text):
            return text
        raise self._error(f"invalid target '{text}'", line, text)

    # =========================================================================
    # Second Pass
    # =========================================================================

    def _lookup(self, name: str, line: _Line, fragment: str) -> int:
        if name in self._labels:
            return self._labels[name]
        matches = difflib.get_close_matches(name, list(self._labels), n=3)
        hint = None
        if matches:
            hint = "did you mean " + ", ".join(f"'{m}'" for m in matches) + "?"
        raise self._error(f"undefined label '{name}'", line, fragment, hint=hint)

    def _resolve(self, stmt: _Statement) -> Instruction:
        target = stmt.target
        if isinstance(target, str):
            target = self._lookup(target, stmt.line, stmt.target_text)
        elif target is not None and target >= len(self._statements):
            raise self._error(
                f"target {target} outside {len(self._statements)} instructions",
                stmt.line,
                stmt.target_text,
            )
        return Instruction(
            stmt.opcode,
            dst=stmt.dst,
            src=stmt.src,
            target=target,
            condition=stmt.condition,
            signed=stmt.signed,
        )

    def _entry_index(self) -> int:
        if self._entry is None:
            return self._labels.get(ENTRY_FUNCTION, 0)
        text, line = self._entry
        if text[:1].isdigit():
            entry = self._parse_number(text, line)
            if entry >= len(self._statements):
                raise self._error(
                    f"entry {entry} outside {len(self._statements)} instructions",
                    line,
                    text,
                )
            return entry
        return self._lookup(text, line, text)


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(source: str, filename: str = "<input>") -> Program:
    """
    Assemble CPU-8 assembly text into a Program.

    Raises:
        AssemblyError: If the source is invalid
    """
    return Assembler(filename).assemble(source)


def assemble_file(filepath: str) -> Program:
    """
    Assemble a CPU-8 assembly file.

    Raises:
        AssemblyError: If the source is invalid
        FileNotFoundError: If the file does not exist
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Source file not found: {filepath}")
    return assemble(path.read_text(encoding="utf-8"), str(filepath))
