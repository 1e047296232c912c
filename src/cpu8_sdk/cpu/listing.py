"""
CPU-8 Assembly Listing
======================

Renders a Program as a human-readable listing. Each line carries the
instruction index, so branch and call targets can be followed by eye:

    ; entry: 4 (main)
    add:
           0: LD r4, [fp+0]
        ...
    main:
           4: ...

Listing comments recorded by the code generator are printed above the
instruction they annotate.
"""

from cpu8_sdk.cpu.isa import Opcode, Program


def format_instruction(program: Program, index: int) -> str:
    """Format one instruction, naming the callee of a CALL."""
    instruction = program.instructions[index]
    text = f"    {index:4d}: {instruction}"
    if instruction.opcode is Opcode.CALL and instruction.target is not None:
        callee = program.function_at(instruction.target)
        if callee:
            text += f"    ; {callee}"
    return text


def format_listing(program: Program) -> str:
    """Render the whole program as listing text."""
    entry_name = program.function_at(program.entry)
    header = f"; entry: {program.entry}"
    if entry_name:
        header += f" ({entry_name})"
    lines = [header]

    for index in range(len(program)):
        name = program.function_at(index)
        if name is not None:
            frame = program.frame_sizes.get(name)
            label = f"{name}:"
            if frame is not None:
                label += f"    ; frame {frame}"
            lines.append(label)
        for note in program.annotations.get(index, ()):
            lines.append(f"    ; {note}")
        lines.append(format_instruction(program, index))

    return "\n".join(lines) + "\n"
