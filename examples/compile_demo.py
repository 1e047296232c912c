#!/usr/bin/env python3
"""
CPU-8 SDK Compiler Demo
=======================

This script demonstrates how to use the C8 compiler API to:
1. Compile a C8 program to a CPU-8 Program
2. Print its annotated assembly listing
3. Produce the binary image and Intel HEX text
4. Report compile errors

Usage:
    source .venv/bin/activate
    python examples/compile_demo.py
"""

from cpu8_sdk import (
    CompilationError,
    CompilerOptions,
    compile_c8,
    encode_program,
    format_listing,
    to_intel_hex,
)


SOURCE = """\
// Running sum of the bytes read from port 0, written to port 1.
// A zero byte ends the program.
uint8 add(uint8 a, uint8 b) { return a + b; }

void main() {
    uint8 total = 0;
    while (true) {
        uint8 value = input(0);
        if (value == 0) { halt(); }
        total = add(total, value);
        output(1, total);
    }
}
"""

BROKEN = """\
void main() {
    uint8 result = 200 + 100;
    output(1, reslt);
}
"""


def main():
    # ==========================================================================
    # 1. Compile
    # ==========================================================================
    program = compile_c8(SOURCE, "sum.c8", CompilerOptions(emit_comments=True))
    print(f"Compiled {len(program)} instructions, entry at {program.entry}")
    for name, size in program.frame_sizes.items():
        print(f"  {name}: frame {size} bytes")

    # ==========================================================================
    # 2. Listing
    # ==========================================================================
    print()
    print(format_listing(program))

    # ==========================================================================
    # 3. Binary image and Intel HEX
    # ==========================================================================
    image = encode_program(program)
    print(f"Binary image: {len(image)} bytes")
    print(to_intel_hex(image))

    # ==========================================================================
    # 4. Errors
    # ==========================================================================
    # Semantic errors are collected, so both problems are reported at once.
    try:
        compile_c8(BROKEN, "broken.c8")
    except CompilationError as e:
        print(e)
        for error in e.errors:
            print(f"  {error.kind.value} at {error.location}")


if __name__ == "__main__":
    main()
