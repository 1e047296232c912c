"""
CPU-8 SDK - Cross-Development Toolchain for the CPU-8
=====================================================

This package provides a toolchain for writing programs for the CPU-8, a
small 8-bit machine with eight byte registers, 256 bytes of data memory
and 256 I/O ports.

Main Components
---------------
- **c8**: C8 compiler (c8cc)
    Compiles C8, a small C-like language, to CPU-8 instructions

- **cpu**: CPU-8 definitions
    Instruction set, binary image and Intel HEX formats, listings

Quick Start
-----------
Compile a program:
    >>> from cpu8_sdk import compile_c8, format_listing
    >>> program = compile_c8('void main() { output(1, input(0)); }')
    >>> text = format_listing(program)

Or use the command-line tool:
    $ c8cc blink.c8 -f hex
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from cpu8_sdk.errors import Cpu8Error, SourceLocation, ObjectFormatError, AssemblyError
from cpu8_sdk.c8 import (
    C8Compiler,
    CompilerOptions,
    CompilerResult,
    CompilationError,
    compile_c8,
    compile_file,
)
from cpu8_sdk.cpu import (
    Program,
    Instruction,
    encode_program,
    decode_program,
    to_intel_hex,
    from_intel_hex,
    format_listing,
    assemble,
)

__all__ = [
    "__version__",
    # Errors
    "Cpu8Error",
    "SourceLocation",
    "ObjectFormatError",
    "AssemblyError",
    # Compiler
    "C8Compiler",
    "CompilerOptions",
    "CompilerResult",
    "CompilationError",
    "compile_c8",
    "compile_file",
    # Target
    "Program",
    "Instruction",
    "encode_program",
    "decode_program",
    "to_intel_hex",
    "from_intel_hex",
    "format_listing",
    "assemble",
]
