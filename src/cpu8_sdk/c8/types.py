"""
C8 Type System
==============

This module implements the type system for the C8 compiler. C8 has
exactly four types, all at most one byte wide, so a type is a plain
enumeration member rather than a composite object.

Supported Types
---------------
| Type  | Range       | Representation                   |
|-------|-------------|----------------------------------|
| uint8 | 0 .. 255    | unsigned byte                    |
| int8  | -128 .. 127 | two's-complement byte            |
| bool  | 0 .. 1      | byte holding 0 (false) or 1      |
| void  | (none)      | function returns only            |

Conversion Rules
----------------
- uint8 <-> int8: explicit cast only (bit pattern is reinterpreted)
- bool -> uint8: implicit (true = 1, false = 0)
- uint8/int8 -> bool: explicit cast only, meaning `value != 0`
- void: never a value

Runtime arithmetic wraps modulo 256. The helpers `wrap` and `to_byte`
describe the wrapping precisely so the checker's constant folder and the
test executor agree with the generated code.
"""

from enum import Enum
from typing import Optional


# =============================================================================
# Type Enumeration
# =============================================================================

class C8Type(Enum):
    """
    The four C8 data types.

    Each member's value is its source keyword.
    """
    UINT8 = "uint8"
    INT8 = "int8"
    BOOL = "bool"
    VOID = "void"

    def __str__(self) -> str:
        """Return the source-level type name."""
        return self.value

    # =========================================================================
    # Type Predicates
    # =========================================================================

    @property
    def is_integer(self) -> bool:
        """True for the arithmetic types uint8 and int8."""
        return self in (C8Type.UINT8, C8Type.INT8)

    @property
    def is_signed(self) -> bool:
        return self is C8Type.INT8

    @property
    def is_value(self) -> bool:
        """True for every type that can be stored in a variable."""
        return self is not C8Type.VOID

    # =========================================================================
    # Range Information
    # =========================================================================

    @property
    def min_value(self) -> int:
        """Smallest representable value."""
        if self is C8Type.VOID:
            raise ValueError("void has no values")
        return _RANGES[self][0]

    @property
    def max_value(self) -> int:
        """Largest representable value."""
        if self is C8Type.VOID:
            raise ValueError("void has no values")
        return _RANGES[self][1]

    def contains(self, value: int) -> bool:
        """Return True if value is within this type's range."""
        if self is C8Type.VOID:
            return False
        low, high = _RANGES[self]
        return low <= value <= high

    def wrap(self, value: int) -> int:
        """
        Wrap an arbitrary integer into this type's range.

        uint8 wraps modulo 256; int8 uses two's-complement wraparound;
        bool collapses to 0/1 using C truthiness.

        Examples:
            C8Type.UINT8.wrap(300)  -> 44
            C8Type.INT8.wrap(128)   -> -128
            C8Type.BOOL.wrap(7)     -> 1
        """
        if self is C8Type.BOOL:
            return 1 if value & 0xFF else 0
        if self is C8Type.VOID:
            raise ValueError("void has no values")
        byte = value & 0xFF
        if self is C8Type.INT8 and byte >= 0x80:
            return byte - 0x100
        return byte


_RANGES: dict[C8Type, tuple[int, int]] = {
    C8Type.UINT8: (0, 255),
    C8Type.INT8: (-128, 127),
    C8Type.BOOL: (0, 1),
}


# =============================================================================
# Type Helper Functions
# =============================================================================

TYPE_KEYWORDS: dict[str, C8Type] = {t.value: t for t in C8Type}


def to_byte(value: int) -> int:
    """Return the unsigned byte (0..255) holding value's bit pattern."""
    return value & 0xFF


def is_assignable(target: C8Type, source: C8Type) -> bool:
    """
    Check whether a value of type `source` may be stored into `target`.

    Assignment requires identical types after applying the single
    implicit conversion, bool -> uint8.
    """
    if not target.is_value or not source.is_value:
        return False
    if target is source:
        return True
    return target is C8Type.UINT8 and source is C8Type.BOOL


def arithmetic_operand_type(type_: C8Type) -> Optional[C8Type]:
    """
    Return the type an operand has in an arithmetic or bitwise context.

    bool promotes to uint8; void and anything else yields None.
    """
    if type_ is C8Type.BOOL:
        return C8Type.UINT8
    if type_.is_integer:
        return type_
    return None


def common_arithmetic_type(left: C8Type, right: C8Type) -> Optional[C8Type]:
    """
    Return the operation type of a binary arithmetic expression.

    Both operands must have the same integer type once bool has been
    promoted. Mixing uint8 and int8 gives None (a type mismatch).
    """
    left_type = arithmetic_operand_type(left)
    right_type = arithmetic_operand_type(right)
    if left_type is None or right_type is None:
        return None
    if left_type is not right_type:
        return None
    return left_type
