"""
C8 Compiler Main Module
=======================

This module provides the main compiler interface for C8.
It orchestrates the complete compilation process:

    Source → Lex → Parse → Check → Generate → Program

Usage
-----
Command line:
    $ c8cc blink.c8 -o blink.asm

Programmatic:
    >>> from cpu8_sdk.c8 import compile_c8
    >>> program = compile_c8('void main() { output(1, 42); }')
    >>> print(program.instructions[-1])
    HALT

Compilation Pipeline
--------------------
1. **Lexical Analysis**: Convert source to tokens
2. **Parsing**: Build the Abstract Syntax Tree (AST)
3. **Checking**: Resolve names, assign types, fold constants
4. **Code Generation**: Lower the typed AST to a CPU-8 Program

Error Handling
--------------
Lexing and parsing stop at the first error. The checker collects every
semantic error it can find. Code generation stops at the first error.
Whatever the stage, a failed compile raises CompilationError whose
`errors` list holds the individual structured errors.
"""

from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field
import logging

from cpu8_sdk.cpu.isa import Program
from cpu8_sdk.cpu.encoding import encode_program, to_intel_hex
from cpu8_sdk.cpu.listing import format_listing
from cpu8_sdk.c8.lexer import CLexer, CToken
from cpu8_sdk.c8.parser import CParser
from cpu8_sdk.c8.checker import TypeChecker
from cpu8_sdk.c8.codegen import CodeGenerator, DEFAULT_CALL_STACK_LIMIT
from cpu8_sdk.c8.ast import ProgramNode
from cpu8_sdk.c8.errors import C8Error, CompilationError

logger = logging.getLogger(__name__)


OUTPUT_FORMATS = ("asm", "bin", "hex", "both")


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        call_stack_limit: Maximum nested calls below main (hardware stack depth)
        emit_comments: Annotate the listing with statement comments
        output_format: Artifact written by the CLI: asm, bin, hex or both
                       (both = listing and binary image)
    """
    call_stack_limit: int = DEFAULT_CALL_STACK_LIMIT
    emit_comments: bool = False
    output_format: str = "asm"

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"unknown output format '{self.output_format}', "
                f"expected one of {', '.join(OUTPUT_FORMATS)}"
            )
        if self.call_stack_limit < 0:
            raise ValueError("call_stack_limit must not be negative")


@dataclass
class CompilerResult:
    """
    Result of a successful compilation.

    Attributes:
        filename: Source filename
        program: The generated instruction stream
        ast: Typed abstract syntax tree
        tokens: Token list produced by the lexer
    """
    filename: str = ""
    program: Optional[Program] = None
    ast: Optional[ProgramNode] = None
    tokens: list[CToken] = field(default_factory=list)

    @property
    def listing(self) -> str:
        """Assembly listing of the program."""
        return format_listing(self.program)

    @property
    def binary(self) -> bytes:
        """Binary object image of the program."""
        return encode_program(self.program)

    @property
    def hex(self) -> str:
        """Intel HEX rendering of the binary image."""
        return to_intel_hex(self.binary)


class C8Compiler:
    """
    C8 compiler for the CPU-8.

    Example:
        compiler = C8Compiler()
        result = compiler.compile_file("blink.c8")
        print(result.listing)

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()

    def compile_source(self, source: str, filename: str = "<input>") -> CompilerResult:
        """
        Compile C8 source code to a Program.

        Args:
            source: Whole-program source text
            filename: Source filename for error messages

        Returns:
            CompilerResult holding the program and the intermediate stages

        Raises:
            CompilationError: If any stage reports an error
        """
        result = CompilerResult(filename=filename)
        source_lines = source.splitlines()

        try:
            # Stage 1: Lexical analysis
            result.tokens = self._lex(source, filename)

            # Stage 2: Parsing
            result.ast = self._parse(result.tokens, filename, source_lines)

            # Stage 3: Name resolution and type checking
            self._check(result.ast, source_lines)

            # Stage 4: Code generation
            result.program = self._generate(result.ast)

        except CompilationError:
            # Aggregate from the checker - already carries its errors
            raise
        except C8Error as e:
            raise CompilationError([e]) from e

        logger.debug(f"Compiled {filename}: {len(result.program)} instructions")
        return result

    def compile_file(self, filepath: str) -> CompilerResult:
        """
        Compile a C8 source file.

        Raises:
            CompilationError: If compilation fails
            FileNotFoundError: If the source file does not exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")

        source = path.read_text(encoding="utf-8")
        return self.compile_source(source, str(filepath))

    def _lex(self, source: str, filename: str) -> list[CToken]:
        """Tokenize source."""
        lexer = CLexer(source, filename)
        tokens = list(lexer.tokenize())
        logger.debug(f"Lexed {len(tokens)} tokens")
        return tokens

    def _parse(self, tokens: list[CToken], filename: str, source_lines: list[str]) -> ProgramNode:
        """Parse tokens into AST."""
        parser = CParser(tokens, filename, source_lines)
        program = parser.parse()
        logger.debug(f"Parsed {len(program.functions)} functions")
        return program

    def _check(self, program: ProgramNode, source_lines: list[str]) -> None:
        """Resolve names and types in place."""
        checker = TypeChecker(source_lines)
        checker.check(program)
        logger.debug("Type check passed")

    def _generate(self, program: ProgramNode) -> Program:
        generator = CodeGenerator(
            call_stack_limit=self.options.call_stack_limit,
            emit_comments=self.options.emit_comments,
        )
        return generator.generate(program)


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_c8(
    source: str,
    filename: str = "<input>",
    options: Optional[CompilerOptions] = None,
) -> Program:
    """
    Compile C8 source code to a CPU-8 Program.

    This is the primary high-level interface for compiling C8.

    Raises:
        CompilationError: If compilation fails

    Example:
        >>> program = compile_c8('''
        ... uint8 add(uint8 a, uint8 b) { return a + b; }
        ... void main() { output(3, add(1, 2)); halt(); }
        ... ''')
        >>> program.entry == program.functions["main"]
        True
    """
    compiler = C8Compiler(options)
    return compiler.compile_source(source, filename).program


def compile_file(
    filepath: str,
    output_path: Optional[str] = None,
    options: Optional[CompilerOptions] = None,
) -> Program:
    """
    Compile a C8 source file, optionally writing the listing.

    Args:
        filepath: Path to the C8 source file
        output_path: Optional path to write the assembly listing to
        options: Compiler configuration (uses defaults if None)

    Raises:
        CompilationError: If compilation fails
        FileNotFoundError: If the source file does not exist
    """
    compiler = C8Compiler(options)
    result = compiler.compile_file(filepath)

    if output_path:
        Path(output_path).write_text(result.listing, encoding="utf-8")

    return result.program
