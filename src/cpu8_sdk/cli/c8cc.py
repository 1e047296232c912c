"""
c8cc - C8 Compiler Command-Line Interface
=========================================

This module implements the command-line interface for the C8 compiler.

Usage Examples
--------------
Basic compilation (writes blink.asm):
    $ c8cc blink.c8

Binary image:
    $ c8cc blink.c8 -f bin -o blink.c8x

Intel HEX:
    $ c8cc blink.c8 -f hex

Listing and binary image side by side:
    $ c8cc blink.c8 -f both

Assembling an edited listing:
    $ c8cc blink.asm -f bin
    $ c8cc -l asm blink.txt -f hex

Debugging:
    $ c8cc --tokens blink.c8
    $ c8cc --ast blink.c8
    $ c8cc -v blink.c8
"""

import logging
from pathlib import Path
from typing import Optional

import click

from cpu8_sdk import __version__
from cpu8_sdk.c8 import C8Compiler, CompilerOptions, CompilerResult
from cpu8_sdk.c8.compiler import OUTPUT_FORMATS
from cpu8_sdk.cpu.assembler import assemble_file
from cpu8_sdk.cli.errors import handle_cli_exception

logger = logging.getLogger(__name__)


DEFAULT_SUFFIXES = {
    "asm": ".asm",
    "bin": ".c8x",
    "hex": ".hex",
}

LANGUAGES = ("auto", "c8", "asm")

ASSEMBLY_SUFFIXES = (".asm", ".s")


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s" if verbose else "%(message)s",
    )


def detect_language(input_file: Path, language: str) -> str:
    """Resolve 'auto' from the input suffix: .asm and .s are assembly."""
    if language != "auto":
        return language
    return "asm" if input_file.suffix.lower() in ASSEMBLY_SUFFIXES else "c8"


def _write_artifact(path: Path, data, verbose: bool) -> None:
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding="utf-8")
    if verbose:
        click.echo(f"Wrote {len(data)} bytes to {path}")


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (default: input name with .asm, .c8x or .hex)",
)
@click.option(
    "-l", "--language",
    type=click.Choice(LANGUAGES, case_sensitive=False),
    default="auto",
    show_default=True,
    help="Input language: C8 source or CPU-8 assembly "
         "(auto picks assembly for .asm and .s files)",
)
@click.option(
    "-f", "--format", "output_format",
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    default="asm",
    show_default=True,
    help="Output format: assembly listing, binary image, Intel HEX, "
         "or both listing and binary image",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print the typed AST and exit",
)
@click.option(
    "--tokens",
    is_flag=True,
    help="Print the token stream and exit",
)
@click.option(
    "--comments",
    is_flag=True,
    help="Annotate the listing with statement comments",
)
@click.option(
    "--call-stack",
    type=click.IntRange(min=0),
    default=16,
    show_default=True,
    help="Maximum nested call depth below main",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output (enables debug logging)",
)
@click.version_option(version=__version__, prog_name="c8cc")
def main(
    input_file: Path,
    output: Optional[Path],
    language: str,
    output_format: str,
    ast: bool,
    tokens: bool,
    comments: bool,
    call_stack: int,
    verbose: bool,
) -> None:
    """
    Compile C8 source code for the CPU-8.

    INPUT_FILE is the C8 source file to compile, or a CPU-8 assembly file
    to assemble.

    \b
    Examples:
        c8cc blink.c8                # Outputs blink.asm
        c8cc blink.c8 -f bin         # Outputs blink.c8x
        c8cc blink.c8 -f both        # Outputs blink.asm and blink.c8x
        c8cc blink.asm -f bin        # Assembles blink.asm into blink.c8x
        c8cc --ast blink.c8          # Dump the AST
    """
    setup_logging(verbose)
    output_format = output_format.lower()
    language = detect_language(input_file, language.lower())

    options = CompilerOptions(
        call_stack_limit=call_stack,
        emit_comments=comments,
        output_format=output_format,
    )

    try:
        if language == "asm":
            if tokens or ast:
                raise click.BadParameter(
                    "--tokens and --ast need C8 source, not assembly"
                )
            if verbose:
                click.echo(f"Assembling {input_file}...")
            result = CompilerResult(
                filename=str(input_file),
                program=assemble_file(str(input_file)),
            )
        else:
            if verbose:
                click.echo(f"Compiling {input_file}...")
            compiler = C8Compiler(options)
            result = compiler.compile_file(str(input_file))

        if tokens:
            for token in result.tokens:
                click.echo(f"{token.line}:{token.column}\t{token.type.name}\t{token.text}")
            return

        if ast:
            from cpu8_sdk.c8.ast import ASTPrinter
            printer = ASTPrinter()
            click.echo(printer.print(result.ast))
            return

        if output_format == "both":
            base = output if output is not None else input_file
            artifacts = [
                (base.with_suffix(DEFAULT_SUFFIXES["asm"]), result.listing),
                (base.with_suffix(DEFAULT_SUFFIXES["bin"]), result.binary),
            ]
        else:
            if output is None:
                output = input_file.with_suffix(DEFAULT_SUFFIXES[output_format])
            data = {
                "asm": lambda: result.listing,
                "bin": lambda: result.binary,
                "hex": lambda: result.hex,
            }[output_format]()
            artifacts = [(output, data)]

        for path, _ in artifacts:
            if path.resolve() == input_file.resolve():
                raise click.BadParameter(
                    f"output {path} would overwrite the input file; choose "
                    f"another name with -o"
                )

        for path, data in artifacts:
            _write_artifact(path, data, verbose)

        if verbose:
            program = result.program
            click.echo(f"Instructions: {len(program)}, entry: {program.entry}")
            for name, size in program.frame_sizes.items():
                click.echo(f"  {name}: frame {size} bytes")

        targets = ", ".join(str(path) for path, _ in artifacts)
        action = "Assembled" if language == "asm" else "Compiled"
        click.echo(f"{action} {input_file} -> {targets}")

    except Exception as e:
        handle_cli_exception(
            e,
            verbose=verbose,
            error_type="Assembly" if language == "asm" else "Compilation",
        )


if __name__ == "__main__":
    main()
