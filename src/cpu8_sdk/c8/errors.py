"""
C8 Compiler Error Hierarchy
===========================

This module defines the exception hierarchy for the C8 compiler.
All exceptions inherit from C8Error, which itself inherits from
the base Cpu8Error for consistent error handling across the SDK.

Exception Hierarchy
-------------------
C8Error (base for all C8 errors)
├── LexError - malformed token
│   ├── UnexpectedCharacterError - character that starts no token
│   └── LiteralOverflowError - numeric literal wider than 8 bits
├── ParseError - structural violation
│   ├── UnexpectedTokenError - token does not match the grammar
│   └── MissingOrDuplicateEntryError - no main(), two of them, or a bad one
├── SemanticError - scope, type, overflow and return-coverage violations
│   ├── UndefinedSymbolError
│   ├── DuplicateSymbolError
│   ├── TypeMismatchError
│   ├── ConstantOverflowError
│   ├── MissingReturnError
│   ├── ArgumentCountError
│   ├── InvalidAssignmentError
│   └── InvalidPortArgumentError
├── CodeGenError - resource exhaustion during generation
│   ├── CallStackOverflowError
│   └── FrameOverflowError
├── InternalCompilerError - defect in the compiler, not in the program
└── CompilationError - aggregate of one or more of the above

Every error carries a `kind` (ErrorKind), an optional SourceLocation and a
human-readable message. `Diagnostic` is the plain-data view of an error
for callers that do their own formatting.

Error Message Format
--------------------
    calc.c8:5:12: error: undefined symbol 'reslt'
        output(3, reslt);
                  ^
    hint: did you mean 'result'?
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, List

from cpu8_sdk.errors import Cpu8Error, SourceLocation


# =============================================================================
# Error Kinds
# =============================================================================

class ErrorKind(Enum):
    """Stable, machine-readable error identifiers."""
    UNEXPECTED_CHARACTER = "UnexpectedCharacter"
    LITERAL_OVERFLOW = "LiteralOverflow"
    MALFORMED_TOKEN = "MalformedToken"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    MISSING_OR_DUPLICATE_ENTRY = "MissingOrDuplicateEntry"
    UNDEFINED_SYMBOL = "UndefinedSymbol"
    DUPLICATE_SYMBOL = "DuplicateSymbol"
    TYPE_MISMATCH = "TypeMismatch"
    CONSTANT_OVERFLOW = "ConstantOverflow"
    MISSING_RETURN = "MissingReturn"
    ARGUMENT_COUNT = "ArgumentCount"
    INVALID_ASSIGNMENT = "InvalidAssignment"
    INVALID_PORT_ARGUMENT = "InvalidPortArgument"
    CALL_STACK_OVERFLOW = "CallStackOverflow"
    FRAME_OVERFLOW = "FrameOverflow"
    NESTING_TOO_DEEP = "NestingTooDeep"
    INTERNAL = "InternalCompilerError"
    COMPILATION_FAILED = "CompilationFailed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Diagnostic:
    """
    Structured, formatting-free description of one compiler error.

    Attributes:
        kind: The error kind
        location: Where the error was detected (None if not tied to source)
        message: Human-readable description
    """
    kind: ErrorKind
    location: Optional[SourceLocation]
    message: str


# =============================================================================
# Base C8 Exception
# =============================================================================

class C8Error(Cpu8Error):
    """
    Base exception for all C8 compiler errors.

    This class provides common functionality for error messages including
    source location tracking, source line context, and helpful hints.

    Attributes:
        kind: Machine-readable error kind
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    kind: ErrorKind = ErrorKind.COMPILATION_FAILED

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

        Creates a user-friendly error message that helps the programmer
        quickly identify and fix the issue. Example:

            calc.c8:5:12: error: undefined symbol 'reslt'
                output(3, reslt);
                          ^
            hint: did you mean 'result'?
        """
        parts = []

        # Location prefix: filename:line:column: error: message
        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        # Source context with caret pointer
        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)

    def to_diagnostic(self) -> Diagnostic:
        """Return the structured view of this error."""
        return Diagnostic(kind=self.kind, location=self.location, message=self.message)


class CompilationError(C8Error):
    """
    Aggregate compilation error containing one or more errors.

    Raised by the compiler driver when a stage fails. The individual
    errors stay available in `errors` (ordered by discovery), so callers
    never have to parse the formatted text.
    """

    kind = ErrorKind.COMPILATION_FAILED

    def __init__(self, errors: List[C8Error]):
        if not errors:
            raise ValueError("CompilationError requires at least one error")
        self.errors = list(errors)
        super().__init__(self._report(), location=errors[0].location)

    def _report(self) -> str:
        lines = [str(error) for error in self.errors]
        word = "error" if len(self.errors) == 1 else "errors"
        lines.append(f"{len(self.errors)} {word}")
        return "\n".join(lines)

    def _format_message(self) -> str:
        """Return message as-is - it's already a formatted aggregate report."""
        return self.message

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Structured view of every collected error."""
        return [error.to_diagnostic() for error in self.errors]


# =============================================================================
# Lexical Errors
# =============================================================================

class LexError(C8Error):
    """
    Malformed token in C8 source code.

    Examples:
        - A character that cannot start any token
        - A numeric literal larger than 8 bits
        - An unterminated block comment
    """
    kind = ErrorKind.MALFORMED_TOKEN


class UnexpectedCharacterError(LexError):
    """Character that does not start any token."""

    kind = ErrorKind.UNEXPECTED_CHARACTER

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        super().__init__(
            f"unexpected character '{char}' (0x{ord(char):02X})",
            location=location,
            source_line=source_line,
        )


class LiteralOverflowError(LexError):
    """
    Numeric literal does not fit in 8 bits.

    Example:
        uint8 x = 0x100;    // 256 needs 9 bits
    """

    kind = ErrorKind.LITERAL_OVERFLOW

    def __init__(
        self,
        text: str,
        value: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.text = text
        self.value = value
        super().__init__(
            f"literal '{text}' ({value}) does not fit in 8 bits",
            location=location,
            hint="literals must be in the range 0..255",
            source_line=source_line,
        )


# =============================================================================
# Parse Errors
# =============================================================================

class ParseError(C8Error):
    """Structural violation of the C8 grammar."""
    kind = ErrorKind.UNEXPECTED_TOKEN


class UnexpectedTokenError(ParseError):
    """
    Unexpected token during parsing.

    Raised when the parser encounters a token that doesn't match
    the expected grammar rule.
    """

    kind = ErrorKind.UNEXPECTED_TOKEN

    def __init__(
        self,
        found: str,
        expected: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected
        super().__init__(
            f"expected {expected}, found '{found}'",
            location=location,
            source_line=source_line,
        )


class MissingOrDuplicateEntryError(ParseError):
    """
    The program has no usable entry function.

    Raised when `main` is absent, defined twice, takes parameters, or
    returns something other than void.
    """

    kind = ErrorKind.MISSING_OR_DUPLICATE_ENTRY

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            message,
            location=location,
            hint="a program needs exactly one 'void main()' with no parameters",
            source_line=source_line,
        )


class NestingTooDeepError(C8Error):
    """
    Statements or expressions nested deeper than the compiler walks.

    The parser limits syntactic nesting (parentheses, unary operators,
    nested statements) and the height of each expression tree, which long
    operator chains also grow. Later passes rely on both bounds.
    """

    kind = ErrorKind.NESTING_TOO_DEEP

    def __init__(
        self,
        what: str,
        limit: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.limit = limit
        super().__init__(
            f"{what} nested too deeply (limit {limit})",
            location=location,
            hint="split the expression using local variables",
            source_line=source_line,
        )


# =============================================================================
# Semantic Errors
# =============================================================================

class SemanticError(C8Error):
    """
    Semantic error in C8 source code.

    Raised during checking when the code is syntactically correct but
    violates the language's scope or type rules.
    """
    kind = ErrorKind.TYPE_MISMATCH


class UndefinedSymbolError(SemanticError):
    """
    Reference to an undeclared identifier.

    The checker suggests similarly-named visible identifiers when this
    error occurs, helping to catch typos.
    """

    kind = ErrorKind.UNDEFINED_SYMBOL

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_identifiers: Optional[List[str]] = None,
    ):
        self.identifier = identifier
        self.similar_identifiers = similar_identifiers or []

        hint = None
        if self.similar_identifiers:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_identifiers[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"undefined symbol '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateSymbolError(SemanticError):
    """Identifier declared twice in the same scope, or a reserved name reused."""

    kind = ErrorKind.DUPLICATE_SYMBOL

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        reserved: bool = False,
    ):
        self.identifier = identifier
        self.original_location = original_location

        hint = None
        if reserved:
            hint = f"'{identifier}' is a built-in port intrinsic"
        elif original_location:
            hint = f"'{identifier}' was first declared at {original_location}"

        super().__init__(
            f"redeclaration of '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class TypeMismatchError(SemanticError):
    """
    Incompatible types, or a value of the wrong kind.

    Raised for mixed uint8/int8 operands, non-bool conditions, implicit
    narrowing, and void values used in expressions.
    """

    kind = ErrorKind.TYPE_MISMATCH

    def __init__(
        self,
        message: str,
        expected_type: Optional[str] = None,
        actual_type: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.expected_type = expected_type
        self.actual_type = actual_type

        if hint is None and expected_type and actual_type:
            hint = f"expected '{expected_type}', got '{actual_type}'"

        super().__init__(
            message,
            location=location,
            hint=hint,
            source_line=source_line,
        )


class ConstantOverflowError(SemanticError):
    """Compile-time constant outside the range of its type."""

    kind = ErrorKind.CONSTANT_OVERFLOW

    def __init__(
        self,
        value: int,
        type_name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.value = value
        self.type_name = type_name
        super().__init__(
            f"constant value {value} overflows '{type_name}'",
            location=location,
            hint="use an explicit cast if wraparound is intended",
            source_line=source_line,
        )


class MissingReturnError(SemanticError):
    """Non-void function with a control path that does not return a value."""

    kind = ErrorKind.MISSING_RETURN

    def __init__(
        self,
        function_name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        super().__init__(
            f"not every path of '{function_name}' returns a value",
            location=location,
            source_line=source_line,
        )


class ArgumentCountError(SemanticError):
    """Wrong number of arguments in a call."""

    kind = ErrorKind.ARGUMENT_COUNT

    def __init__(
        self,
        function_name: str,
        expected: int,
        actual: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        self.expected = expected
        self.actual = actual

        word = "argument" if expected == 1 else "arguments"
        super().__init__(
            f"'{function_name}' expects {expected} {word}, got {actual}",
            location=location,
            source_line=source_line,
        )


class InvalidAssignmentError(SemanticError):
    """
    Invalid left-hand side of an assignment or increment.

    Examples:
        - 42 = x;
        - (a + b)++;
        - add = 3;      // a function, not a variable
    """

    kind = ErrorKind.INVALID_ASSIGNMENT

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "expression is not assignable",
            location=location,
            hint="only variables and parameters can be assigned",
            source_line=source_line,
        )


class InvalidPortArgumentError(SemanticError):
    """Port intrinsic called with a non-constant port or a non-uint8 value."""

    kind = ErrorKind.INVALID_PORT_ARGUMENT


# =============================================================================
# Code Generation Errors
# =============================================================================

class CodeGenError(C8Error):
    """
    Error during code generation.

    These are resource limits of the target machine, not type errors:
    the program is well formed but does not fit.
    """
    kind = ErrorKind.CALL_STACK_OVERFLOW


class CallStackOverflowError(CodeGenError):
    """Call chain deeper than the call-stack budget, or recursive."""

    kind = ErrorKind.CALL_STACK_OVERFLOW


class FrameOverflowError(CodeGenError):
    """A function frame needs more slots than a frame offset can address."""

    kind = ErrorKind.FRAME_OVERFLOW


class InternalCompilerError(C8Error):
    """
    Invariant violation inside the compiler.

    Signals a defect in an earlier stage (for example a call to an
    unknown function that the checker should have rejected). It is kept
    apart from CodeGenError so it is never mistaken for a user error.
    """

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        super().__init__(
            f"internal compiler error: {message}",
            location=location,
            hint="this is a compiler bug; please report it with the source",
        )


# =============================================================================
# Error Collection (for multi-error reporting)
# =============================================================================

class ErrorCollector:
    """
    Collects multiple errors for batch reporting.

    The checker uses this to continue after an error, collecting all
    semantic errors before reporting them together. This helps users fix
    multiple issues without repeated compile runs.

    Example:
        collector = ErrorCollector()

        for func in functions:
            try:
                check_function(func)
            except SemanticError as e:
                collector.add(e)

        collector.raise_if_errors()
    """

    def __init__(self, max_errors: int = 100):
        """
        Initialize the error collector.

        Args:
            max_errors: Maximum errors to collect before stopping
        """
        self.errors: List[C8Error] = []
        self.max_errors = max_errors

    def add(self, error: C8Error) -> None:
        """Add an error to the collection."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        """Return the number of collected errors."""
        return len(self.errors)

    def clear(self) -> None:
        """Clear all collected errors."""
        self.errors.clear()

    def raise_if_errors(self) -> None:
        """Raise a CompilationError if any errors were collected."""
        if self.has_errors():
            raise CompilationError(self.errors)
