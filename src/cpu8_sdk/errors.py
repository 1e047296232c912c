"""
CPU-8 SDK Error Hierarchy
=========================

This module defines the root of the exception hierarchy for the CPU-8 SDK.
All exceptions inherit from Cpu8Error, allowing callers to catch every
SDK-related error with a single except clause if desired.

Exception Hierarchy
-------------------
Cpu8Error (base)
├── C8Error (compiler-related, see cpu8_sdk.c8.errors)
├── AssemblyError - invalid CPU-8 assembly source
└── ObjectFormatError - malformed binary image or unknown opcode byte

Design Philosophy
-----------------
Each exception captures source location information (filename, line, column)
when applicable. This allows for detailed error messages that help users
quickly locate and fix issues in their source code.

Error messages follow this format:
    filename:line:column: error: description
    source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class Cpu8Error(Exception):
    """
    Base exception for all CPU-8 SDK errors.

    All exceptions in the SDK inherit from this class, allowing callers
    to catch all SDK-related errors with a single except clause:

        try:
            compile_c8(source)
        except Cpu8Error as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    This class is used throughout the compiler to track where tokens,
    AST nodes, and errors occur in the source file. The immutable
    (frozen) design ensures locations cannot be accidentally modified.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Object Format Exceptions
# =============================================================================

class ObjectFormatError(Cpu8Error):
    """
    Raised when a binary program image cannot be decoded.

    Examples:
        - Missing or wrong magic bytes
        - Truncated instruction records
        - Unknown opcode byte
    """
    pass


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblyError(Cpu8Error):
    """
    Invalid CPU-8 assembly source.

    Raised by the assembler for unknown mnemonics, malformed operands,
    duplicate or undefined labels, and listing indices out of sequence.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The actual source text at the error location (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            blink.asm:3:10: error: unknown mnemonic 'LOD'
                   0: LOD r1, #0
                      ^
            hint: did you mean 'LD'?
        """
        if self.location:
            parts = [f"{self.location}: error: {self.message}"]
        else:
            parts = [f"error: {self.message}"]

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                parts.append(" " * (4 + self.location.column - 1) + "^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)
