"""
C8 Code Generator for the CPU-8
===============================

This module lowers a typed C8 AST into a linear CPU-8 instruction
stream. Generation is deterministic: identical input always produces an
identical Program.

Storage
-------
Each function gets a fixed frame in data memory, addressed from the
frame pointer:

    fp+0 .. fp+P-1     parameters (written by the caller)
    fp+P ..            variable, spill and save slots
    fp+FS ..           the callee's frame during a call

Variables live in r4..r6 while those are free and in frame slots
otherwise. Registers and slots are released when the declaring block
exits, so variables with disjoint lifetimes share storage. The frame
size FS is the largest number of slots ever in use at once; it must fit
a signed frame offset.

Expressions
-----------
An expression is generated into a destination register (always one of
the temporaries r1..r3). A constant or register-resident right operand is
used directly. Otherwise the right operand goes into a fresh temporary,
or, when all three are busy, the left value is spilled to a frame slot
and recombined through the scratch register r7. `*` becomes a
shift-and-add loop. `&&`, `||` and `?:` branch around the side that is
not evaluated.

Calls
-----
Calls use a caller-save convention. Arguments are evaluated left to right
and stored into the callee's parameter slots at fp+FS+i. When an argument
itself contains a call, all arguments are first staged in the caller's
frame so that the inner call cannot overwrite them. Live registers are
saved, `CALL #FS, entry` is emitted, the result is copied from r0 and the
registers are restored. FS is only known once the whole caller has been
generated, so these operands are backpatched at the end of the function.

Branch targets are backpatched the same way: branches are emitted with a
label number and resolved from a pending-fixup list. Call targets are
resolved once every function has been placed.

Call Graph Limits
-----------------
The static call graph must be acyclic. Starting from main, no chain may
nest more calls than the call-stack budget, and the frames along a chain
must fit the 256-byte data memory. Violations raise CallStackOverflowError.
"""

from dataclasses import dataclass, field
from typing import Optional, Union
import logging

from cpu8_sdk.errors import SourceLocation
from cpu8_sdk.cpu.isa import (
    Instruction,
    Opcode,
    Condition,
    Register,
    Immediate,
    FrameSlot,
    Program,
    DATA_MEMORY_SIZE,
    MAX_FRAME_OFFSET,
    RETURN_REGISTER,
    SCRATCH_REGISTER,
    TEMP_REGISTERS,
    VARIABLE_REGISTERS,
)
from cpu8_sdk.c8.parser import ENTRY_FUNCTION
from cpu8_sdk.c8.types import C8Type, to_byte
from cpu8_sdk.c8.ast import (
    ASTVisitor,
    ProgramNode,
    FunctionNode,
    ParameterNode,
    VariableDeclaration,
    Statement,
    BlockStatement,
    ExpressionStatement,
    IfStatement,
    WhileStatement,
    ForStatement,
    ReturnStatement,
    Expression,
    BinaryExpression,
    BinaryOperator,
    UnaryExpression,
    UnaryOperator,
    AssignmentExpression,
    TernaryExpression,
    CallExpression,
    IntrinsicCall,
    Intrinsic,
    CastExpression,
    IdentifierExpression,
)
from cpu8_sdk.c8.errors import (
    CallStackOverflowError,
    FrameOverflowError,
    InternalCompilerError,
)

logger = logging.getLogger(__name__)


DEFAULT_CALL_STACK_LIMIT = 16

Storage = Union[Register, FrameSlot]

SCRATCH = Register(SCRATCH_REGISTER)
RETURN_VALUE = Register(RETURN_REGISTER)

_ALU_OPCODES: dict[BinaryOperator, Opcode] = {
    BinaryOperator.ADD: Opcode.ADD,
    BinaryOperator.SUBTRACT: Opcode.SUB,
    BinaryOperator.BITWISE_AND: Opcode.AND,
    BinaryOperator.BITWISE_OR: Opcode.OR,
    BinaryOperator.BITWISE_XOR: Opcode.XOR,
    BinaryOperator.LEFT_SHIFT: Opcode.SHL,
    BinaryOperator.RIGHT_SHIFT: Opcode.SHR,
}

_CONDITIONS: dict[BinaryOperator, Condition] = {
    BinaryOperator.EQUAL: Condition.EQ,
    BinaryOperator.NOT_EQUAL: Condition.NE,
    BinaryOperator.LESS: Condition.LT,
    BinaryOperator.LESS_EQ: Condition.LE,
    BinaryOperator.GREATER: Condition.GT,
    BinaryOperator.GREATER_EQ: Condition.GE,
}

# Condition that holds for (b, a) exactly when the original holds for (a, b)
_SWAPPED: dict[Condition, Condition] = {
    Condition.EQ: Condition.EQ,
    Condition.NE: Condition.NE,
    Condition.LT: Condition.GT,
    Condition.GT: Condition.LT,
    Condition.LE: Condition.GE,
    Condition.GE: Condition.LE,
}

_COMMUTATIVE = frozenset({
    BinaryOperator.ADD,
    BinaryOperator.MULTIPLY,
    BinaryOperator.BITWISE_AND,
    BinaryOperator.BITWISE_OR,
    BinaryOperator.BITWISE_XOR,
})


# =============================================================================
# Helpers
# =============================================================================

class _CallFinder(ASTVisitor):
    """Detects whether an expression contains a user function call."""

    def __init__(self):
        self.found = False

    def visit_CallExpression(self, node: CallExpression):
        self.found = True


def contains_call(expr: Expression) -> bool:
    """Return True if evaluating expr calls a user function."""
    finder = _CallFinder()
    finder.visit(expr)
    return finder.found


@dataclass
class FunctionInfo:
    """
    Per-function results kept for linking and call-graph checks.

    Attributes:
        name: Function name
        location: Definition site
        entry: Index of the first instruction
        frame_size: Final frame size in bytes
        calls: Call sites in order, as (callee, location)
    """
    name: str
    location: SourceLocation
    entry: int = 0
    frame_size: int = 0
    calls: list[tuple[str, SourceLocation]] = field(default_factory=list)


# =============================================================================
# Code Generator Class
# =============================================================================

class CodeGenerator:
    """
    Generates a CPU-8 Program from a typed C8 AST.

    Usage:
        generator = CodeGenerator(call_stack_limit=16)
        program = generator.generate(typed_ast)

    Attributes:
        call_stack_limit: Maximum nested calls allowed below main
        emit_comments: Record listing annotations alongside instructions
    """

    def __init__(
        self,
        call_stack_limit: int = DEFAULT_CALL_STACK_LIMIT,
        emit_comments: bool = False,
    ):
        self.call_stack_limit = call_stack_limit
        self.emit_comments = emit_comments

        # Output
        self._code: list[Instruction] = []
        self._annotations: dict[int, list[str]] = {}
        self._functions: dict[str, FunctionInfo] = {}

        # Label generation and pending fixups
        self._label_counter = 0
        self._labels: dict[int, int] = {}
        self._label_fixups: list[tuple[int, int]] = []
        self._call_fixups: list[tuple[int, str, SourceLocation]] = []

        # Current function context
        self._function: Optional[FunctionInfo] = None
        self._frame_fixups: list[int] = []
        self._storage: dict[int, Storage] = {}
        self._scopes: list[list[Storage]] = []
        self._free_var_registers: list[int] = []
        self._temps_in_use: set[int] = set()
        self._slots_in_use: set[int] = set()
        self._frame_size = 0

    def generate(self, program: ProgramNode) -> Program:
        """
        Generate the instruction stream for a whole program.

        Returns:
            The linked Program with its entry index

        Raises:
            FrameOverflowError: If a frame needs more than 128 slots
            CallStackOverflowError: On recursion or an over-deep call chain
            InternalCompilerError: If a called function does not exist
        """
        for func in program.functions:
            self._generate_function(func)

        self._resolve_calls()
        self._check_call_graph()

        if ENTRY_FUNCTION not in self._functions:
            raise InternalCompilerError(f"no '{ENTRY_FUNCTION}' function to enter")

        result = Program(
            instructions=tuple(self._code),
            entry=self._functions[ENTRY_FUNCTION].entry,
            functions={name: info.entry for name, info in self._functions.items()},
            frame_sizes={name: info.frame_size for name, info in self._functions.items()},
            annotations={i: tuple(notes) for i, notes in self._annotations.items()},
        )
        logger.debug(f"Generated {len(result)} instructions, entry at {result.entry}")
        return result

    # =========================================================================
    # Emission Helpers
    # =========================================================================

    def _emit(self, instruction: Instruction) -> int:
        """Append an instruction and return its index."""
        self._code.append(instruction)
        return len(self._code) - 1

    def _annotate(self, text: str) -> None:
        """Attach a listing comment to the next instruction."""
        if self.emit_comments:
            self._annotations.setdefault(len(self._code), []).append(text)

    def _new_label(self) -> int:
        self._label_counter += 1
        return self._label_counter

    def _place_label(self, label: int) -> None:
        self._labels[label] = len(self._code)

    def _emit_branch(self, opcode: Opcode, label: int, reg: Optional[Register] = None) -> None:
        """Emit BRT/BRF/JMP with its target left for backpatching."""
        index = self._emit(Instruction(opcode, dst=reg))
        self._label_fixups.append((index, label))

    def _emit_move(self, dst: Register, src: Register) -> None:
        """Copy src into dst (LDI dst, #0; OR dst, src)."""
        if dst == src:
            return
        self._emit(Instruction(Opcode.LDI, dst, Immediate(0)))
        self._emit(Instruction(Opcode.OR, dst, src))

    def _emit_load_constant(self, dst: Register, value: int) -> None:
        self._emit(Instruction(Opcode.LDI, dst, Immediate(to_byte(value))))

    def _emit_load(self, dst: Register, storage: Storage) -> None:
        if isinstance(storage, Register):
            self._emit_move(dst, storage)
        else:
            self._emit(Instruction(Opcode.LD, dst, storage))

    def _emit_store(self, storage: Storage, src: Register) -> None:
        if isinstance(storage, Register):
            self._emit_move(storage, src)
        else:
            self._emit(Instruction(Opcode.ST, storage, src))

    # =========================================================================
    # Storage Allocation
    # =========================================================================

    def _alloc_slot(self) -> FrameSlot:
        """Allocate the lowest free frame slot."""
        offset = 0
        while offset in self._slots_in_use:
            offset += 1
        if offset > MAX_FRAME_OFFSET:
            raise FrameOverflowError(
                f"function '{self._function.name}' needs more than "
                f"{MAX_FRAME_OFFSET + 1} bytes of frame",
                self._function.location,
                hint="reduce the number of simultaneously live variables",
            )
        self._slots_in_use.add(offset)
        self._frame_size = max(self._frame_size, offset + 1)
        return FrameSlot(offset)

    def _free_slot(self, slot: FrameSlot) -> None:
        self._slots_in_use.discard(slot.offset)

    def _alloc_temp(self) -> Optional[Register]:
        """Allocate a free temporary register, or None if all are busy."""
        for index in TEMP_REGISTERS:
            if index not in self._temps_in_use:
                self._temps_in_use.add(index)
                return Register(index)
        return None

    def _require_temp(self) -> Register:
        reg = self._alloc_temp()
        if reg is None:
            raise InternalCompilerError("no temporary register free at statement level")
        return reg

    def _free_temp(self, reg: Register) -> None:
        self._temps_in_use.discard(reg.index)

    def _push_scope(self) -> None:
        self._scopes.append([])

    def _pop_scope(self) -> None:
        """Release the storage of every variable declared in the scope."""
        for storage in self._scopes.pop():
            if isinstance(storage, Register):
                self._free_var_registers.append(storage.index)
                self._free_var_registers.sort()
            else:
                self._free_slot(storage)

    def _allocate_variable(self, declaration) -> Storage:
        """Give a variable a register if one is free, else a frame slot."""
        if self._free_var_registers:
            storage: Storage = Register(self._free_var_registers.pop(0))
        else:
            storage = self._alloc_slot()
        self._storage[id(declaration)] = storage
        self._scopes[-1].append(storage)
        return storage

    def _storage_of(self, expr: IdentifierExpression) -> Storage:
        storage = self._storage.get(id(expr.declaration))
        if storage is None:
            raise InternalCompilerError(
                f"identifier '{expr.name}' has no storage", expr.location
            )
        return storage

    def _live_registers(self, exclude: Register) -> list[Register]:
        """Registers whose values must survive a call."""
        live = set(self._temps_in_use)
        for scope in self._scopes:
            live.update(s.index for s in scope if isinstance(s, Register))
        live.discard(exclude.index)
        return [Register(index) for index in sorted(live)]

    # =========================================================================
    # Functions
    # =========================================================================

    def _generate_function(self, func: FunctionNode) -> None:
        """Generate one function, then backpatch its labels and frame size."""
        info = FunctionInfo(name=func.name, location=func.location, entry=len(self._code))
        self._functions[func.name] = info
        self._function = info

        self._frame_fixups = []
        self._storage = {}
        self._scopes = []
        self._free_var_registers = list(VARIABLE_REGISTERS)
        self._temps_in_use = set()
        self._frame_size = 0
        self._labels = {}
        self._label_fixups = []

        # Parameter slots 0..P-1 stay reserved for the whole function
        self._slots_in_use = set(range(len(func.parameters)))
        self._frame_size = len(func.parameters)

        self._annotate(f"function {func.name}")
        self._push_scope()
        self._generate_prologue(func.parameters)
        for stmt in func.body.statements:
            self._generate_statement(stmt)
        self._emit_function_exit()
        self._pop_scope()

        info.frame_size = self._frame_size
        self._patch_frame_size()
        self._resolve_labels()

        logger.debug(
            f"Function {func.name}: {len(self._code) - info.entry} instructions, "
            f"frame {info.frame_size} bytes"
        )
        self._function = None

    def _generate_prologue(self, parameters: list[ParameterNode]) -> None:
        """Bind parameters; register-resident ones are loaded from their slots."""
        for index, param in enumerate(parameters):
            slot = FrameSlot(index)
            if self._free_var_registers:
                reg = Register(self._free_var_registers.pop(0))
                self._emit(Instruction(Opcode.LD, reg, slot))
                self._storage[id(param)] = reg
                self._scopes[-1].append(reg)
            else:
                self._storage[id(param)] = slot

    def _emit_function_exit(self) -> None:
        if self._function.name == ENTRY_FUNCTION:
            self._emit(Instruction(Opcode.HALT))
        else:
            self._emit(Instruction(Opcode.RET))

    def _patch_frame_size(self) -> None:
        """Fill the caller frame size into CALL advances and parameter stores."""
        frame_size = self._frame_size
        for index in self._frame_fixups:
            instruction = self._code[index]
            if instruction.opcode is Opcode.CALL:
                patched = Instruction(
                    Opcode.CALL, src=Immediate(frame_size), target=instruction.target
                )
            else:
                offset = frame_size + instruction.dst.offset
                if offset > MAX_FRAME_OFFSET:
                    raise FrameOverflowError(
                        f"parameter area of calls in '{self._function.name}' "
                        f"lies beyond frame offset {MAX_FRAME_OFFSET}",
                        self._function.location,
                    )
                patched = Instruction(Opcode.ST, FrameSlot(offset), instruction.src)
            self._code[index] = patched

    def _resolve_labels(self) -> None:
        for index, label in self._label_fixups:
            if label not in self._labels:
                raise InternalCompilerError(f"label {label} was never placed")
            self._code[index] = self._code[index].with_target(self._labels[label])

    def _resolve_calls(self) -> None:
        for index, name, location in self._call_fixups:
            info = self._functions.get(name)
            if info is None:
                raise InternalCompilerError(f"call to unknown function '{name}'", location)
            self._code[index] = self._code[index].with_target(info.entry)

    # =========================================================================
    # Call Graph Checks
    # =========================================================================

    def _check_call_graph(self) -> None:
        """Reject recursion, over-deep call chains and data memory overflow."""
        depth: dict[str, int] = {}
        memory: dict[str, int] = {}
        for name in self._call_order():
            info = self._functions[name]
            depth[name] = max((1 + depth[c] for c, _ in info.calls), default=0)
            memory[name] = info.frame_size + max(
                (memory[c] for c, _ in info.calls), default=0
            )

        if ENTRY_FUNCTION not in self._functions:
            return

        if depth[ENTRY_FUNCTION] > self.call_stack_limit:
            chain, location = self._deepest_chain(depth, self.call_stack_limit)
            raise CallStackOverflowError(
                f"call chain {' -> '.join(chain)} nests {depth[ENTRY_FUNCTION]} calls, "
                f"the call stack holds {self.call_stack_limit}",
                location,
                hint="flatten the call chain",
            )

        if memory[ENTRY_FUNCTION] > DATA_MEMORY_SIZE:
            chain, location = self._largest_chain(memory)
            raise CallStackOverflowError(
                f"frames along {' -> '.join(chain)} need {memory[ENTRY_FUNCTION]} bytes, "
                f"data memory holds {DATA_MEMORY_SIZE}",
                location,
                hint="reduce local variables or call depth",
            )

    def _call_order(self) -> list[str]:
        """
        Order every function so that callees come before their callers.

        Depth-first walk with an explicit stack. A function is finished once
        all of its callees are, and a finished function is never walked
        again. Reaching a function that is still on the current path is a
        recursive cycle.
        """
        finished: set[str] = set()
        order: list[str] = []
        for root in self._functions:
            if root in finished:
                continue
            path = [root]
            pending = [iter(self._functions[root].calls)]
            while pending:
                for callee, location in pending[-1]:
                    if callee in path:
                        cycle = path[path.index(callee):] + [callee]
                        raise CallStackOverflowError(
                            f"recursive call cycle {' -> '.join(cycle)}",
                            location,
                            hint="recursion is not supported; call depth must be bounded",
                        )
                    if callee not in finished:
                        path.append(callee)
                        pending.append(iter(self._functions[callee].calls))
                        break
                else:
                    pending.pop()
                    name = path.pop()
                    finished.add(name)
                    order.append(name)
        return order

    def _deepest_chain(
        self, depth: dict[str, int], limit: int
    ) -> tuple[list[str], SourceLocation]:
        """Follow the deepest chain from main to the call that exceeds limit."""
        chain = [ENTRY_FUNCTION]
        name = ENTRY_FUNCTION
        location = self._functions[name].location
        level = 0
        while self._functions[name].calls:
            callee, location = max(
                self._functions[name].calls, key=lambda call: depth[call[0]]
            )
            chain.append(callee)
            level += 1
            if level > limit:
                break
            name = callee
        return chain, location

    def _largest_chain(self, memory: dict[str, int]) -> tuple[list[str], SourceLocation]:
        """Follow the chain from main whose frames add up to the most bytes."""
        chain = [ENTRY_FUNCTION]
        name = ENTRY_FUNCTION
        location = self._functions[name].location
        used = self._functions[name].frame_size
        while self._functions[name].calls:
            callee, location = max(
                self._functions[name].calls, key=lambda call: memory[call[0]]
            )
            chain.append(callee)
            used += self._functions[callee].frame_size
            if used > DATA_MEMORY_SIZE:
                break
            name = callee
        return chain, location

    # =========================================================================
    # Statements
    # =========================================================================

    def _generate_statement(self, stmt: Statement) -> None:
        """Generate code for a single statement."""
        if isinstance(stmt, VariableDeclaration):
            self._generate_declaration(stmt)
        elif isinstance(stmt, BlockStatement):
            self._push_scope()
            for inner in stmt.statements:
                self._generate_statement(inner)
            self._pop_scope()
        elif isinstance(stmt, ExpressionStatement):
            self._generate_discarded(stmt.expression)
        elif isinstance(stmt, IfStatement):
            self._generate_if(stmt)
        elif isinstance(stmt, WhileStatement):
            self._generate_while(stmt)
        elif isinstance(stmt, ForStatement):
            self._generate_for(stmt)
        elif isinstance(stmt, ReturnStatement):
            self._generate_return(stmt)
        else:
            raise InternalCompilerError(
                f"unexpected statement {type(stmt).__name__}", stmt.location
            )

    def _generate_discarded(self, expr: Expression) -> None:
        """Evaluate an expression for its side effects only."""
        reg = self._require_temp()
        self._generate_expression(expr, reg)
        self._free_temp(reg)

    def _generate_declaration(self, decl: VariableDeclaration) -> None:
        """Allocate a variable and store its initial value (zero by default)."""
        storage = self._allocate_variable(decl)
        reg = self._require_temp()
        if decl.initializer is not None:
            self._generate_expression(decl.initializer, reg)
        else:
            self._emit_load_constant(reg, 0)
        self._emit_store(storage, reg)
        self._free_temp(reg)

    def _generate_branch_unless(self, condition: Expression, label: int) -> None:
        """Jump to label when condition is false."""
        reg = self._require_temp()
        self._generate_expression(condition, reg)
        self._emit_branch(Opcode.BRF, label, reg)
        self._free_temp(reg)

    def _generate_if(self, stmt: IfStatement) -> None:
        """
        Generate if/else.

            <cond> -> t
            BRF t, else
            <then>
            JMP end         ; only with an else branch
        else:
            <else>
        end:
        """
        self._annotate("if")
        else_label = self._new_label()
        self._generate_branch_unless(stmt.condition, else_label)
        self._generate_statement(stmt.then_branch)

        if stmt.else_branch is not None:
            end_label = self._new_label()
            self._emit_branch(Opcode.JMP, end_label)
            self._place_label(else_label)
            self._annotate("else")
            self._generate_statement(stmt.else_branch)
            self._place_label(end_label)
        else:
            self._place_label(else_label)

    def _generate_while(self, stmt: WhileStatement) -> None:
        self._annotate("while")
        top_label = self._new_label()
        end_label = self._new_label()

        self._place_label(top_label)
        if stmt.condition.constant_value != 1:
            self._generate_branch_unless(stmt.condition, end_label)
        self._generate_statement(stmt.body)
        self._emit_branch(Opcode.JMP, top_label)
        self._place_label(end_label)

    def _generate_for(self, stmt: ForStatement) -> None:
        """
        Generate a for loop: init once, then test, body, step, jump back.
        """
        self._annotate("for")
        self._push_scope()
        if stmt.initializer is not None:
            self._generate_statement(stmt.initializer)

        top_label = self._new_label()
        end_label = self._new_label()

        self._place_label(top_label)
        if stmt.condition is not None and stmt.condition.constant_value != 1:
            self._generate_branch_unless(stmt.condition, end_label)
        self._generate_statement(stmt.body)
        if stmt.update is not None:
            self._generate_discarded(stmt.update)
        self._emit_branch(Opcode.JMP, top_label)
        self._place_label(end_label)
        self._pop_scope()

    def _generate_return(self, stmt: ReturnStatement) -> None:
        self._annotate("return")
        if stmt.value is not None:
            reg = self._require_temp()
            self._generate_expression(stmt.value, reg)
            self._emit_move(RETURN_VALUE, reg)
            self._free_temp(reg)
        self._emit_function_exit()

    # =========================================================================
    # Expressions
    # =========================================================================

    def _generate_expression(self, expr: Expression, dest: Register) -> None:
        """Generate code leaving the value of expr in dest."""
        if expr.constant_value is not None:
            self._emit_load_constant(dest, expr.constant_value)
            return

        if isinstance(expr, IdentifierExpression):
            self._emit_load(dest, self._storage_of(expr))
        elif isinstance(expr, BinaryExpression):
            self._generate_binary(expr, dest)
        elif isinstance(expr, UnaryExpression):
            self._generate_unary(expr, dest)
        elif isinstance(expr, AssignmentExpression):
            self._generate_assignment(expr, dest)
        elif isinstance(expr, TernaryExpression):
            self._generate_ternary(expr, dest)
        elif isinstance(expr, CastExpression):
            self._generate_cast(expr, dest)
        elif isinstance(expr, CallExpression):
            self._generate_call(expr, dest)
        elif isinstance(expr, IntrinsicCall):
            self._generate_intrinsic(expr, dest)
        else:
            raise InternalCompilerError(
                f"unexpected expression {type(expr).__name__}", expr.location
            )

    def _simple_operand(self, expr: Expression) -> Optional[Union[Register, Immediate]]:
        """Return an operand usable without evaluation, if there is one."""
        if expr.constant_value is not None:
            return Immediate(to_byte(expr.constant_value))
        if isinstance(expr, IdentifierExpression):
            storage = self._storage_of(expr)
            if isinstance(storage, Register):
                return storage
        return None

    def _generate_binary(self, expr: BinaryExpression, dest: Register) -> None:
        """
        Generate a binary operation into dest.

        The left operand is evaluated first. A simple right operand is used
        in place; otherwise it is evaluated into a temporary, or into dest
        after spilling the left value when no temporary is free.
        """
        op = expr.operator
        if op is BinaryOperator.LOGICAL_AND or op is BinaryOperator.LOGICAL_OR:
            self._generate_logical(expr, dest)
            return

        self._generate_expression(expr.left, dest)

        operand = self._simple_operand(expr.right)
        if operand is not None:
            self._apply(expr, dest, operand)
            return

        temp = self._alloc_temp()
        if temp is not None:
            self._generate_expression(expr.right, temp)
            self._apply(expr, dest, temp)
            self._free_temp(temp)
            return

        # All temporaries busy: spill the left value
        slot = self._alloc_slot()
        self._emit(Instruction(Opcode.ST, slot, dest))
        self._generate_expression(expr.right, dest)
        self._emit(Instruction(Opcode.LD, SCRATCH, slot))
        self._free_slot(slot)
        self._apply_reversed(expr, dest)

    def _apply(
        self,
        expr: BinaryExpression,
        dest: Register,
        operand: Union[Register, Immediate],
    ) -> None:
        """Emit dest <- dest op operand."""
        op = expr.operator
        signed = _operand_type(expr.left) is C8Type.INT8

        if op is BinaryOperator.MULTIPLY:
            self._generate_multiply(dest, operand)
        elif op in _CONDITIONS:
            self._emit(Instruction(
                Opcode.CMP, dest, operand, condition=_CONDITIONS[op], signed=signed
            ))
        elif op is BinaryOperator.RIGHT_SHIFT:
            self._emit(Instruction(Opcode.SHR, dest, operand, signed=signed))
        else:
            self._emit(Instruction(_ALU_OPCODES[op], dest, operand))

    def _apply_reversed(self, expr: BinaryExpression, dest: Register) -> None:
        """Emit dest <- scratch op dest (left in scratch, right in dest)."""
        op = expr.operator
        if op in _COMMUTATIVE:
            self._apply(expr, dest, SCRATCH)
        elif op in _CONDITIONS:
            signed = _operand_type(expr.left) is C8Type.INT8
            self._emit(Instruction(
                Opcode.CMP, dest, SCRATCH,
                condition=_SWAPPED[_CONDITIONS[op]], signed=signed,
            ))
        else:
            self._apply(expr, SCRATCH, dest)
            self._emit_move(dest, SCRATCH)

    def _generate_multiply(self, dest: Register, operand: Union[Register, Immediate]) -> None:
        """
        Multiply dest by operand modulo 256 with a shift-and-add loop.

            m = operand; acc = 0
            while m != 0:
                if m & 1: acc += dest
                dest <<= 1; m >>= 1
            dest = acc

        m and acc live in frame slots; only dest and the scratch register
        are modified.
        """
        multiplier = self._alloc_slot()
        accumulator = self._alloc_slot()

        if isinstance(operand, Immediate):
            self._emit(Instruction(Opcode.LDI, SCRATCH, operand))
            self._emit(Instruction(Opcode.ST, multiplier, SCRATCH))
        else:
            self._emit(Instruction(Opcode.ST, multiplier, operand))
        self._emit(Instruction(Opcode.LDI, SCRATCH, Immediate(0)))
        self._emit(Instruction(Opcode.ST, accumulator, SCRATCH))

        loop_label = self._new_label()
        skip_label = self._new_label()
        done_label = self._new_label()

        self._place_label(loop_label)
        self._emit(Instruction(Opcode.LD, SCRATCH, multiplier))
        self._emit_branch(Opcode.BRF, done_label, SCRATCH)
        self._emit(Instruction(Opcode.AND, SCRATCH, Immediate(1)))
        self._emit_branch(Opcode.BRF, skip_label, SCRATCH)
        self._emit(Instruction(Opcode.LD, SCRATCH, accumulator))
        self._emit(Instruction(Opcode.ADD, SCRATCH, dest))
        self._emit(Instruction(Opcode.ST, accumulator, SCRATCH))
        self._place_label(skip_label)
        self._emit(Instruction(Opcode.SHL, dest, Immediate(1)))
        self._emit(Instruction(Opcode.LD, SCRATCH, multiplier))
        self._emit(Instruction(Opcode.SHR, SCRATCH, Immediate(1)))
        self._emit(Instruction(Opcode.ST, multiplier, SCRATCH))
        self._emit_branch(Opcode.JMP, loop_label)
        self._place_label(done_label)
        self._emit(Instruction(Opcode.LD, dest, accumulator))

        self._free_slot(accumulator)
        self._free_slot(multiplier)

    def _generate_logical(self, expr: BinaryExpression, dest: Register) -> None:
        """
        Short-circuit && and ||.

            <left> -> d
            BRF d, end      ; BRT for ||
            <right> -> d
        end:
        """
        end_label = self._new_label()
        self._generate_expression(expr.left, dest)
        if expr.operator is BinaryOperator.LOGICAL_AND:
            self._emit_branch(Opcode.BRF, end_label, dest)
        else:
            self._emit_branch(Opcode.BRT, end_label, dest)
        self._generate_expression(expr.right, dest)
        self._place_label(end_label)

    def _generate_unary(self, expr: UnaryExpression, dest: Register) -> None:
        op = expr.operator

        if op.is_increment:
            self._generate_increment(expr, dest)
            return

        self._generate_expression(expr.operand, dest)
        if op is UnaryOperator.NEGATE:
            self._emit(Instruction(Opcode.NOT, dest))
            self._emit(Instruction(Opcode.ADD, dest, Immediate(1)))
        elif op is UnaryOperator.BITWISE_NOT:
            self._emit(Instruction(Opcode.NOT, dest))
        else:
            self._emit(Instruction(Opcode.XOR, dest, Immediate(1)))

    def _generate_increment(self, expr: UnaryExpression, dest: Register) -> None:
        """Pre/post increment and decrement of a variable."""
        storage = self._storage_of(expr.operand)
        opcode = (
            Opcode.ADD
            if expr.operator in (UnaryOperator.PRE_INCREMENT, UnaryOperator.POST_INCREMENT)
            else Opcode.SUB
        )
        one = Immediate(1)

        if expr.operator.is_postfix:
            self._emit_load(dest, storage)
            if isinstance(storage, Register):
                self._emit(Instruction(opcode, storage, one))
            else:
                self._emit_move(SCRATCH, dest)
                self._emit(Instruction(opcode, SCRATCH, one))
                self._emit_store(storage, SCRATCH)
        else:
            if isinstance(storage, Register):
                self._emit(Instruction(opcode, storage, one))
                self._emit_move(dest, storage)
            else:
                self._emit_load(dest, storage)
                self._emit(Instruction(opcode, dest, one))
                self._emit_store(storage, dest)

    def _generate_assignment(self, expr: AssignmentExpression, dest: Register) -> None:
        storage = self._storage_of(expr.target)
        op = expr.operator.binary_operator

        if op is None:
            self._generate_expression(expr.value, dest)
        else:
            combined = BinaryExpression(
                location=expr.location,
                resolved_type=expr.target.resolved_type,
                operator=op,
                left=expr.target,
                right=expr.value,
            )
            self._generate_binary(combined, dest)

        self._emit_store(storage, dest)

    def _generate_ternary(self, expr: TernaryExpression, dest: Register) -> None:
        """
        Generate cond ? a : b.

            <cond> -> d
            BRF d, else
            <a> -> d
            JMP end
        else:
            <b> -> d
        end:
        """
        else_label = self._new_label()
        end_label = self._new_label()

        self._generate_expression(expr.condition, dest)
        self._emit_branch(Opcode.BRF, else_label, dest)
        self._generate_expression(expr.then_expr, dest)
        self._emit_branch(Opcode.JMP, end_label)
        self._place_label(else_label)
        self._generate_expression(expr.else_expr, dest)
        self._place_label(end_label)

    def _generate_cast(self, expr: CastExpression, dest: Register) -> None:
        """uint8/int8/bool share a byte; only a cast to bool changes bits."""
        self._generate_expression(expr.operand, dest)
        if expr.target_type is C8Type.BOOL and expr.operand.resolved_type is not C8Type.BOOL:
            self._emit(Instruction(Opcode.CMP, dest, Immediate(0), condition=Condition.NE))

    # =========================================================================
    # Calls and Intrinsics
    # =========================================================================

    def _generate_call(self, expr: CallExpression, dest: Register) -> None:
        """
        Generate a call of a user function (caller-save).

            <arg i> -> d ; ST [fp+FS+i], d        (per argument)
            ST [fp+s], r                          (per live register)
            CALL #FS, entry
            LDI d, #0 ; OR d, r0                  (non-void only)
            LD r, [fp+s]                          (per live register)
        """
        self._annotate(f"call {expr.function_name}")
        self._function.calls.append((expr.function_name, expr.location))

        if any(contains_call(arg) for arg in expr.arguments):
            staged = []
            for arg in expr.arguments:
                self._generate_expression(arg, dest)
                slot = self._alloc_slot()
                self._emit(Instruction(Opcode.ST, slot, dest))
                staged.append(slot)
            for index, slot in enumerate(staged):
                self._emit(Instruction(Opcode.LD, SCRATCH, slot))
                self._emit_parameter_store(index, SCRATCH)
                self._free_slot(slot)
        else:
            for index, arg in enumerate(expr.arguments):
                self._generate_expression(arg, dest)
                self._emit_parameter_store(index, dest)

        saved = []
        for reg in self._live_registers(exclude=dest):
            slot = self._alloc_slot()
            self._emit(Instruction(Opcode.ST, slot, reg))
            saved.append((reg, slot))

        index = self._emit(Instruction(Opcode.CALL, src=Immediate(0)))
        self._frame_fixups.append(index)
        self._call_fixups.append((index, expr.function_name, expr.location))

        if expr.resolved_type is not C8Type.VOID:
            self._emit_move(dest, RETURN_VALUE)

        for reg, slot in saved:
            self._emit(Instruction(Opcode.LD, reg, slot))
            self._free_slot(slot)

    def _emit_parameter_store(self, index: int, src: Register) -> None:
        """Store into the callee's parameter i; the offset is patched later."""
        position = self._emit(Instruction(Opcode.ST, FrameSlot(index), src))
        self._frame_fixups.append(position)

    def _generate_intrinsic(self, expr: IntrinsicCall, dest: Register) -> None:
        """Port intrinsics map straight onto IN, OUT and HALT."""
        if expr.intrinsic is Intrinsic.INPUT:
            self._emit(Instruction(Opcode.IN, dest, Immediate(expr.port)))
        elif expr.intrinsic is Intrinsic.HALT:
            self._emit(Instruction(Opcode.HALT))
        else:
            self._generate_expression(expr.arguments[1], dest)
            self._emit(Instruction(Opcode.OUT, Immediate(expr.port), dest))


def _operand_type(expr: Expression) -> Optional[C8Type]:
    return expr.resolved_type


def generate_program(
    program: ProgramNode,
    call_stack_limit: int = DEFAULT_CALL_STACK_LIMIT,
    emit_comments: bool = False,
) -> Program:
    """Generate a Program from a typed AST."""
    generator = CodeGenerator(call_stack_limit=call_stack_limit, emit_comments=emit_comments)
    return generator.generate(program)
