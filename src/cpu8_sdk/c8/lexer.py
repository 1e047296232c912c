"""
C8 Lexer (Tokenizer)
====================

This module implements the lexer for the C8 language.
It converts source text into a stream of tokens for the parser.

Token Categories
----------------
- Keywords: uint8, int8, bool, void, if, else, for, while, return,
  function, true, false
- Identifiers: variable and function names
- Numbers: decimal, hexadecimal (0x), binary (0b)
- Operators: +, -, *, ==, !=, &&, ||, <<, >>, +=, ++, etc.
- Delimiters: (, ), {, }, ;, ,, :, ?

Number Formats
--------------
| Format      | Prefix  | Example    | Value |
|-------------|---------|------------|-------|
| Decimal     | (none)  | 255        | 255   |
| Hexadecimal | 0x/0X   | 0xFF       | 255   |
| Binary      | 0b/0B   | 0b11111111 | 255   |

Every literal must fit in 8 bits; 256 and above raise LiteralOverflowError
here, before any typing takes place.

Comments
--------
- Single-line: // comment
- Multi-line: /* comment */ (does not nest)

Example Usage
-------------
>>> from cpu8_sdk.c8.lexer import CLexer
>>> lexer = CLexer('void main() { halt(); }', "test.c8")
>>> for token in lexer.tokenize():
...     print(repr(token))
Token(VOID, 'void', 1:1)
Token(IDENTIFIER, 'main', 1:6)
Token(LPAREN, '(', 1:10)
Token(RPAREN, ')', 1:11)
Token(LBRACE, '{', 1:13)
Token(IDENTIFIER, 'halt', 1:15)
Token(LPAREN, '(', 1:19)
Token(RPAREN, ')', 1:20)
Token(SEMICOLON, ';', 1:21)
Token(RBRACE, '}', 1:23)
Token(EOF, 1:24)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import logging
import string

from cpu8_sdk.errors import SourceLocation
from cpu8_sdk.c8.errors import (
    LexError,
    LiteralOverflowError,
    UnexpectedCharacterError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class CTokenType(Enum):
    """
    Token types for the C8 language.

    Keywords are distinguished from identifiers to simplify parsing.
    """

    # === Structural Tokens ===
    EOF = auto()            # End of input

    # === Identifiers and Literals ===
    IDENTIFIER = auto()     # Variable/function names
    NUMBER = auto()         # Integer literals (all formats)

    # === Keywords - Types ===
    UINT8 = auto()          # uint8
    INT8 = auto()           # int8
    BOOL = auto()           # bool
    VOID = auto()           # void

    # === Keywords - Control Flow ===
    IF = auto()             # if
    ELSE = auto()           # else
    FOR = auto()            # for
    WHILE = auto()          # while
    RETURN = auto()         # return

    # === Keywords - Other ===
    FUNCTION = auto()       # function (alternative declarator)
    TRUE = auto()           # true
    FALSE = auto()          # false

    # === Arithmetic Operators ===
    PLUS = auto()           # +
    MINUS = auto()          # -
    STAR = auto()           # *

    # === Increment/Decrement ===
    INCREMENT = auto()      # ++
    DECREMENT = auto()      # --

    # === Comparison Operators ===
    EQ = auto()             # ==
    NE = auto()             # !=
    LT = auto()             # <
    GT = auto()             # >
    LE = auto()             # <=
    GE = auto()             # >=

    # === Logical Operators ===
    AND = auto()            # &&
    OR = auto()             # ||
    NOT = auto()            # !

    # === Bitwise Operators ===
    AMPERSAND = auto()      # &
    PIPE = auto()           # |
    CARET = auto()          # ^
    TILDE = auto()          # ~
    LSHIFT = auto()         # <<
    RSHIFT = auto()         # >>

    # === Assignment Operators ===
    ASSIGN = auto()         # =
    PLUS_ASSIGN = auto()    # +=
    MINUS_ASSIGN = auto()   # -=
    AND_ASSIGN = auto()     # &=
    OR_ASSIGN = auto()      # |=
    XOR_ASSIGN = auto()     # ^=
    LSHIFT_ASSIGN = auto()  # <<=
    RSHIFT_ASSIGN = auto()  # >>=

    # === Delimiters ===
    LPAREN = auto()         # (
    RPAREN = auto()         # )
    LBRACE = auto()         # {
    RBRACE = auto()         # }
    SEMICOLON = auto()      # ;
    COMMA = auto()          # ,
    COLON = auto()          # :
    QUESTION = auto()       # ?


# =============================================================================
# Keyword Mapping
# =============================================================================

KEYWORDS: dict[str, CTokenType] = {
    # Types
    "uint8": CTokenType.UINT8,
    "int8": CTokenType.INT8,
    "bool": CTokenType.BOOL,
    "void": CTokenType.VOID,

    # Control flow
    "if": CTokenType.IF,
    "else": CTokenType.ELSE,
    "for": CTokenType.FOR,
    "while": CTokenType.WHILE,
    "return": CTokenType.RETURN,

    # Other
    "function": CTokenType.FUNCTION,
    "true": CTokenType.TRUE,
    "false": CTokenType.FALSE,
}

TYPE_TOKENS = frozenset({
    CTokenType.UINT8,
    CTokenType.INT8,
    CTokenType.BOOL,
    CTokenType.VOID,
})

ASSIGNMENT_TOKENS = frozenset({
    CTokenType.ASSIGN,
    CTokenType.PLUS_ASSIGN,
    CTokenType.MINUS_ASSIGN,
    CTokenType.AND_ASSIGN,
    CTokenType.OR_ASSIGN,
    CTokenType.XOR_ASSIGN,
    CTokenType.LSHIFT_ASSIGN,
    CTokenType.RSHIFT_ASSIGN,
})

# Operators ordered longest first so that matching is greedy.
OPERATORS: tuple[tuple[str, CTokenType], ...] = (
    ("<<=", CTokenType.LSHIFT_ASSIGN),
    (">>=", CTokenType.RSHIFT_ASSIGN),
    ("==", CTokenType.EQ),
    ("!=", CTokenType.NE),
    ("<=", CTokenType.LE),
    (">=", CTokenType.GE),
    ("&&", CTokenType.AND),
    ("||", CTokenType.OR),
    ("+=", CTokenType.PLUS_ASSIGN),
    ("-=", CTokenType.MINUS_ASSIGN),
    ("&=", CTokenType.AND_ASSIGN),
    ("|=", CTokenType.OR_ASSIGN),
    ("^=", CTokenType.XOR_ASSIGN),
    ("++", CTokenType.INCREMENT),
    ("--", CTokenType.DECREMENT),
    ("<<", CTokenType.LSHIFT),
    (">>", CTokenType.RSHIFT),
    ("+", CTokenType.PLUS),
    ("-", CTokenType.MINUS),
    ("*", CTokenType.STAR),
    ("&", CTokenType.AMPERSAND),
    ("|", CTokenType.PIPE),
    ("^", CTokenType.CARET),
    ("~", CTokenType.TILDE),
    ("!", CTokenType.NOT),
    ("<", CTokenType.LT),
    (">", CTokenType.GT),
    ("=", CTokenType.ASSIGN),
    ("?", CTokenType.QUESTION),
    (":", CTokenType.COLON),
    ("(", CTokenType.LPAREN),
    (")", CTokenType.RPAREN),
    ("{", CTokenType.LBRACE),
    ("}", CTokenType.RBRACE),
    (";", CTokenType.SEMICOLON),
    (",", CTokenType.COMMA),
)


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class CToken:
    """
    Represents a single token from C8 source code.

    Attributes:
        type: The CTokenType classification
        value: Lexeme text, or the resolved magnitude for numbers
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
        radix: For numbers, the radix the literal was written in (10, 16, 2)
    """
    type: CTokenType
    value: str | int | None
    line: int
    column: int
    filename: str
    radix: Optional[int] = None

    def __repr__(self) -> str:
        """Format token for debugging output."""
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, {self.value}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def is_type_keyword(self) -> bool:
        """Return True if this token is a type keyword."""
        return self.type in TYPE_TOKENS

    def is_assignment_operator(self) -> bool:
        """Return True if this token is an assignment operator."""
        return self.type in ASSIGNMENT_TOKENS

    @property
    def text(self) -> str:
        """The token as it would be shown to a user."""
        if self.type is CTokenType.EOF:
            return "end of input"
        return str(self.value)


# =============================================================================
# Lexer Implementation
# =============================================================================

class CLexer:
    """
    Tokenizes C8 source code.

    The lexer stops at the first malformed token; there is no recovery.

    Usage:
        lexer = CLexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_"

    # Characters that can continue an identifier
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    def __init__(self, source: str, filename: str = "<input>"):
        """
        Initialize the lexer with source code.

        Args:
            source: The C8 source code to tokenize
            filename: Name of the source file (for error messages)
        """
        self.source = source
        self.filename = filename

        # Current position in source
        self._pos = 0
        self._line = 1
        self._column = 1

        # Track line start position for error reporting
        self._line_start_pos = 0

    def tokenize(self) -> Iterator[CToken]:
        """
        Generate tokens from the source code.

        Yields:
            CToken objects, always ending with a single EOF token

        Raises:
            LexError: If a malformed token is encountered
        """
        while not self._at_end():
            self._skip_whitespace_and_comments()

            if self._at_end():
                break

            yield self._scan_token()

        yield self._make_token(CTokenType.EOF, None)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of source."""
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """
        Look at character at current position + offset without advancing.

        Returns empty string if past end of source.
        """
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """
        Consume and return the current character, advancing position.

        Updates line and column tracking for error reporting.
        """
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
            self._line_start_pos = self._pos
        else:
            self._column += 1

        return char

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: CTokenType,
        value: str | int | None,
        start_line: Optional[int] = None,
        start_column: Optional[int] = None,
        radix: Optional[int] = None,
    ) -> CToken:
        """Create a token at the current or the given position."""
        return CToken(
            type=token_type,
            value=value,
            line=start_line or self._line,
            column=start_column or self._column,
            filename=self.filename,
            radix=radix,
        )

    def _location(self, line: int, column: int) -> SourceLocation:
        return SourceLocation(self.filename, line, column)

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        """Skip all whitespace and comments."""
        while not self._at_end():
            char = self._peek()

            if char in " \t\n\r":
                self._advance()
                continue

            # Single-line comment: //
            if char == "/" and self._peek(1) == "/":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            # Multi-line comment: /* */
            if char == "/" and self._peek(1) == "*":
                self._skip_multi_line_comment()
                continue

            break

    def _skip_multi_line_comment(self) -> None:
        """
        Skip a multi-line comment (/* ... */).

        Raises:
            LexError: If the comment is not terminated
        """
        start_line = self._line
        start_col = self._column

        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        raise LexError(
            "unterminated multi-line comment",
            self._location(start_line, start_col),
            hint="add closing */ to terminate the comment",
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> CToken:
        """Scan the next token from source."""
        start_line = self._line
        start_column = self._column

        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start_line, start_column)

        if char.isdigit():
            return self._scan_number(start_line, start_column)

        return self._scan_operator(start_line, start_column)

    def _scan_identifier(self, start_line: int, start_column: int) -> CToken:
        """
        Scan an identifier or keyword.

        Keywords are distinguished by checking against the keyword table
        and always take priority over identifiers.
        """
        chars = []
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())

        name = "".join(chars)

        if name in KEYWORDS:
            return self._make_token(KEYWORDS[name], name, start_line, start_column)

        return self._make_token(CTokenType.IDENTIFIER, name, start_line, start_column)

    def _scan_number(self, start_line: int, start_column: int) -> CToken:
        """
        Scan a numeric literal.

        Handles:
        - Decimal: 123
        - Hexadecimal: 0x7F or 0X7F
        - Binary: 0b1010 or 0B1010
        """
        radix = 10
        digits_allowed = string.digits
        prefix = ""

        if self._peek() == "0" and self._peek(1).lower() in ("x", "b"):
            prefix = self._advance() + self._advance()
            if prefix[1].lower() == "x":
                radix, digits_allowed = 16, string.hexdigits
            else:
                radix, digits_allowed = 2, "01"

        chars = []
        while self._peek() and self._peek() in digits_allowed:
            chars.append(self._advance())

        text = prefix + "".join(chars)
        if not chars:
            raise LexError(
                f"malformed number literal '{text}'",
                self._location(start_line, start_column),
                hint=f"expected digits after '{prefix}'",
                source_line=self._get_current_line(),
            )

        value = int("".join(chars), radix)
        if value > 0xFF:
            raise LiteralOverflowError(
                text,
                value,
                self._location(start_line, start_column),
                self._get_current_line(),
            )

        return self._make_token(CTokenType.NUMBER, value, start_line, start_column, radix)

    def _scan_operator(self, start_line: int, start_column: int) -> CToken:
        """
        Scan an operator or delimiter.

        The operator table is ordered longest first, so `<<=` wins over
        `<<`, which wins over `<`.
        """
        for text, token_type in OPERATORS:
            if self.source.startswith(text, self._pos):
                for _ in text:
                    self._advance()
                return self._make_token(token_type, text, start_line, start_column)

        raise UnexpectedCharacterError(
            self._peek(),
            self._location(start_line, start_column),
            self._get_current_line(),
        )

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _get_current_line(self) -> str:
        """Get the current line of source text for error reporting."""
        line_end = self.source.find("\n", self._line_start_pos)
        if line_end == -1:
            line_end = len(self.source)
        return self.source[self._line_start_pos:line_end]


def tokenize(source: str, filename: str = "<input>") -> list[CToken]:
    """
    Tokenize a complete source text.

    Args:
        source: C8 source code
        filename: Name used in token locations

    Returns:
        List of tokens ending with EOF

    Raises:
        LexError: On the first malformed token
    """
    tokens = list(CLexer(source, filename).tokenize())
    logger.debug(f"Lexed {len(tokens)} tokens from {filename}")
    return tokens
