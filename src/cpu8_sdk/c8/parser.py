"""
C8 Recursive Descent Parser
===========================

This module implements a recursive descent parser for the C8 language.
It takes a stream of tokens from the lexer and builds an Abstract
Syntax Tree (AST). Parsing stops at the first structural error.

Grammar (Simplified EBNF)
-------------------------
program         ::= function_def*
function_def    ::= type IDENTIFIER '(' params? ')' block
                  | 'function' IDENTIFIER '(' params? ')' ':' type block
params          ::= 'void' | param (',' param)*
param           ::= type IDENTIFIER
type            ::= 'uint8' | 'int8' | 'bool' | 'void'

block           ::= '{' block_item* '}'
block_item      ::= local_decl | statement
local_decl      ::= type declarator (',' declarator)* ';'
declarator      ::= IDENTIFIER ('=' expr)?
statement       ::= if_stmt | while_stmt | for_stmt | return_stmt
                  | block | expr_stmt | ';'

if_stmt         ::= 'if' '(' expr ')' statement ('else' statement)?
while_stmt      ::= 'while' '(' expr ')' statement
for_stmt        ::= 'for' '(' for_init? ';' expr? ';' expr? ')' statement
for_init        ::= type declarator | expr
return_stmt     ::= 'return' expr? ';'
expr_stmt       ::= expr ';'

Expression Precedence (lowest to highest)
-----------------------------------------
1.  assignment     =, +=, -=, &=, |=, ^=, <<=, >>= (right-associative)
2.  ternary        ?:
3.  logical_or     ||
4.  logical_and    &&
5.  bitwise_or     |
6.  bitwise_xor    ^
7.  bitwise_and    &
8.  equality       == !=
9.  relational     < > <= >=
10. shift          << >>
11. additive       + -
12. multiplicative *
13. unary          - ! ~ ++ -- (type)
14. postfix        () ++ --
15. primary        IDENTIFIER, NUMBER, true, false, '(' expr ')'

Entry Function
--------------
After parsing, the program must contain exactly one `main` taking no
parameters and returning void; otherwise MissingOrDuplicateEntryError.

Nesting Limits
--------------
Statements, parentheses and unary operators may nest at most
MAX_NESTING_DEPTH levels, and no expression tree may be taller than
MAX_EXPRESSION_DEPTH. Either violation is a NestingTooDeepError.

Example Usage
-------------
>>> from cpu8_sdk.c8.parser import parse_source
>>> ast = parse_source('void main() { halt(); }')
>>> [f.name for f in ast.functions]
['main']
"""

from typing import Optional, Callable
import logging

from cpu8_sdk.errors import SourceLocation
from cpu8_sdk.c8.lexer import CToken, CTokenType, tokenize
from cpu8_sdk.c8.types import C8Type, TYPE_KEYWORDS
from cpu8_sdk.c8.ast import (
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
    AssignmentOperator,
    TernaryExpression,
    CallExpression,
    CastExpression,
    IdentifierExpression,
    NumberLiteral,
    BoolLiteral,
    iter_children,
)
from cpu8_sdk.c8.errors import (
    UnexpectedTokenError,
    MissingOrDuplicateEntryError,
    NestingTooDeepError,
)

logger = logging.getLogger(__name__)


ENTRY_FUNCTION = "main"

# Nested statements, parentheses and unary operators the parser descends into
MAX_NESTING_DEPTH = 24

# Height of an expression tree, which long operator chains also grow
MAX_EXPRESSION_DEPTH = 100

_ASSIGNMENT_OPERATORS: dict[CTokenType, AssignmentOperator] = {
    CTokenType.ASSIGN: AssignmentOperator.ASSIGN,
    CTokenType.PLUS_ASSIGN: AssignmentOperator.ADD_ASSIGN,
    CTokenType.MINUS_ASSIGN: AssignmentOperator.SUB_ASSIGN,
    CTokenType.AND_ASSIGN: AssignmentOperator.AND_ASSIGN,
    CTokenType.OR_ASSIGN: AssignmentOperator.OR_ASSIGN,
    CTokenType.XOR_ASSIGN: AssignmentOperator.XOR_ASSIGN,
    CTokenType.LSHIFT_ASSIGN: AssignmentOperator.LSHIFT_ASSIGN,
    CTokenType.RSHIFT_ASSIGN: AssignmentOperator.RSHIFT_ASSIGN,
}

_UNARY_OPERATORS: dict[CTokenType, UnaryOperator] = {
    CTokenType.MINUS: UnaryOperator.NEGATE,
    CTokenType.NOT: UnaryOperator.LOGICAL_NOT,
    CTokenType.TILDE: UnaryOperator.BITWISE_NOT,
    CTokenType.INCREMENT: UnaryOperator.PRE_INCREMENT,
    CTokenType.DECREMENT: UnaryOperator.PRE_DECREMENT,
}

# Types that may appear inside a cast
_CAST_TYPES = frozenset({CTokenType.UINT8, CTokenType.INT8, CTokenType.BOOL})


class CParser:
    """
    Recursive descent parser for C8.

    Usage:
        tokens = list(CLexer(source, filename).tokenize())
        parser = CParser(tokens, filename, source.splitlines())
        program = parser.parse()

    Attributes:
        tokens: Token list ending with EOF
        filename: Source filename for error messages
        source_lines: Original source lines for error context
    """

    def __init__(
        self,
        tokens: list[CToken],
        filename: str = "<input>",
        source_lines: Optional[list[str]] = None,
    ):
        """
        Initialize the parser.

        Args:
            tokens: List of tokens from the lexer
            filename: Source filename for error messages
            source_lines: Original source lines for error context
        """
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []

        # Current position in token stream
        self._pos = 0
        self._depth = 0

    def parse(self) -> ProgramNode:
        """
        Parse the token stream into an AST.

        Returns:
            ProgramNode containing all functions

        Raises:
            UnexpectedTokenError: On the first grammar violation
            MissingOrDuplicateEntryError: If main is absent, duplicated or malformed
        """
        functions = []

        while not self._at_end():
            functions.append(self._parse_function())

        program = ProgramNode(
            location=SourceLocation(self.filename, 1, 1),
            functions=functions,
        )
        self._validate_entry(program)

        logger.debug(f"Parsed {len(functions)} functions from {self.filename}")
        return program

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of tokens."""
        return self._peek().type == CTokenType.EOF

    def _peek(self, offset: int = 0) -> CToken:
        """Look at token at current position + offset."""
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> CToken:
        """Consume and return the current token."""
        if not self._at_end():
            token = self.tokens[self._pos]
            self._pos += 1
            return token
        return self.tokens[-1]

    def _check(self, *types: CTokenType) -> bool:
        """Check if current token is one of the given types."""
        return self._peek().type in types

    def _match(self, *types: CTokenType) -> Optional[CToken]:
        """
        Consume current token if it matches one of the types.

        Returns:
            The consumed token, or None if no match
        """
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: CTokenType, expected: str) -> CToken:
        """
        Expect and consume a specific token type.

        Args:
            token_type: The expected token type
            expected: Description of what was expected, for the error

        Raises:
            UnexpectedTokenError: If the expected token is not found
        """
        if self._check(token_type):
            return self._advance()
        raise self._unexpected(expected)

    def _unexpected(self, expected: str) -> UnexpectedTokenError:
        """Build an UnexpectedTokenError for the current token."""
        current = self._peek()
        return UnexpectedTokenError(
            current.text,
            expected,
            location=current.location,
            source_line=self._get_source_line(current.line),
        )

    def _enter(self, what: str) -> None:
        """Descend one nesting level, failing once MAX_NESTING_DEPTH is passed."""
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            token = self._peek()
            raise NestingTooDeepError(
                what,
                MAX_NESTING_DEPTH,
                location=token.location,
                source_line=self._get_source_line(token.line),
            )

    def _leave(self) -> None:
        self._depth -= 1

    def _get_source_line(self, line: int) -> Optional[str]:
        """Get source line for error reporting."""
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    # =========================================================================
    # Declarations
    # =========================================================================

    def _parse_type(self, expected: str = "type") -> C8Type:
        """Parse a type keyword."""
        token = self._peek()
        if not token.is_type_keyword():
            raise self._unexpected(expected)
        self._advance()
        return TYPE_KEYWORDS[token.value]

    def _parse_function(self) -> FunctionNode:
        """
        Parse a function definition in either declaration style.

            uint8 add(uint8 a, uint8 b) { ... }
            function add(uint8 a, uint8 b) : uint8 { ... }
        """
        location = self._peek().location

        if self._match(CTokenType.FUNCTION):
            name = self._expect(CTokenType.IDENTIFIER, "function name").value
            parameters = self._parse_parameter_list()
            self._expect(CTokenType.COLON, "':' before return type")
            return_type = self._parse_type("return type")
        else:
            return_type = self._parse_type("function declaration")
            name = self._expect(CTokenType.IDENTIFIER, "function name").value
            parameters = self._parse_parameter_list()

        body = self._parse_block()
        self._check_expression_depth(body)

        return FunctionNode(
            location=location,
            name=name,
            return_type=return_type,
            parameters=parameters,
            body=body,
        )

    def _check_expression_depth(self, body: BlockStatement) -> None:
        """
        Reject expression trees taller than MAX_EXPRESSION_DEPTH.

        Later stages walk expressions recursively. The walk here uses an
        explicit stack, so it is safe on any tree the parser built.
        """
        stack: list[tuple] = [(body, 0)]
        while stack:
            node, depth = stack.pop()
            if isinstance(node, Expression):
                depth += 1
                if depth > MAX_EXPRESSION_DEPTH:
                    raise NestingTooDeepError(
                        "expression",
                        MAX_EXPRESSION_DEPTH,
                        location=node.location,
                        source_line=self._get_source_line(node.location.line),
                    )
            stack.extend((child, depth) for child in iter_children(node))

    def _parse_parameter_list(self) -> list[ParameterNode]:
        """Parse '(' params? ')'. A lone 'void' means no parameters."""
        self._expect(CTokenType.LPAREN, "'('")

        parameters = []
        if self._check(CTokenType.VOID) and self._peek(1).type == CTokenType.RPAREN:
            self._advance()
        elif not self._check(CTokenType.RPAREN):
            while True:
                location = self._peek().location
                param_type = self._parse_type("parameter type")
                name = self._expect(CTokenType.IDENTIFIER, "parameter name").value
                parameters.append(ParameterNode(
                    location=location,
                    name=name,
                    param_type=param_type,
                ))
                if not self._match(CTokenType.COMMA):
                    break

        self._expect(CTokenType.RPAREN, "')'")
        return parameters

    def _parse_declarator(self, var_type: C8Type) -> VariableDeclaration:
        """Parse IDENTIFIER ('=' expr)? for an already-parsed type."""
        name_token = self._expect(CTokenType.IDENTIFIER, "variable name")

        initializer = None
        if self._match(CTokenType.ASSIGN):
            initializer = self._parse_assignment()

        return VariableDeclaration(
            location=name_token.location,
            name=name_token.value,
            var_type=var_type,
            initializer=initializer,
        )

    def _parse_local_declaration(self) -> list[VariableDeclaration]:
        """
        Parse local variable declaration(s).

        Supports multi-variable declarations like:
            uint8 a, b, c;
            int8 x = 1, y = -2;
        """
        var_type = self._parse_type()

        declarations = [self._parse_declarator(var_type)]
        while self._match(CTokenType.COMMA):
            declarations.append(self._parse_declarator(var_type))

        self._expect(CTokenType.SEMICOLON, "';'")
        return declarations

    def _validate_entry(self, program: ProgramNode) -> None:
        """Check that exactly one well-formed main exists."""
        entries = [f for f in program.functions if f.name == ENTRY_FUNCTION]

        if not entries:
            eof = self.tokens[-1]
            raise MissingOrDuplicateEntryError(
                f"no '{ENTRY_FUNCTION}' function defined",
                location=eof.location,
            )

        if len(entries) > 1:
            duplicate = entries[1]
            raise MissingOrDuplicateEntryError(
                f"'{ENTRY_FUNCTION}' is defined more than once "
                f"(first definition at {entries[0].location})",
                location=duplicate.location,
                source_line=self._get_source_line(duplicate.location.line),
            )

        entry = entries[0]
        if entry.parameters or entry.return_type is not C8Type.VOID:
            raise MissingOrDuplicateEntryError(
                f"'{ENTRY_FUNCTION}' must take no parameters and return void",
                location=entry.location,
                source_line=self._get_source_line(entry.location.line),
            )

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> BlockStatement:
        """Parse a block statement { ... }."""
        location = self._peek().location
        self._expect(CTokenType.LBRACE, "'{'")

        statements: list[Statement] = []
        while not self._check(CTokenType.RBRACE) and not self._at_end():
            if self._peek().is_type_keyword():
                statements.extend(self._parse_local_declaration())
                continue
            stmt = self._parse_statement()
            if stmt is not None:
                statements.append(stmt)

        self._expect(CTokenType.RBRACE, "'}'")

        return BlockStatement(location=location, statements=statements)

    def _parse_statement(self) -> Optional[Statement]:
        """Parse any statement. Returns None for an empty statement."""
        self._enter("statement")
        stmt = self._parse_statement_kind()
        self._leave()
        return stmt

    def _parse_statement_kind(self) -> Optional[Statement]:
        token = self._peek()

        if token.type == CTokenType.IF:
            return self._parse_if_statement()
        if token.type == CTokenType.WHILE:
            return self._parse_while_statement()
        if token.type == CTokenType.FOR:
            return self._parse_for_statement()
        if token.type == CTokenType.RETURN:
            return self._parse_return_statement()
        if token.type == CTokenType.LBRACE:
            return self._parse_block()
        if token.type == CTokenType.SEMICOLON:
            self._advance()
            return None

        return self._parse_expression_statement()

    def _parse_body(self) -> Statement:
        """Parse the body of an if/while/for, turning ';' into an empty block."""
        location = self._peek().location
        stmt = self._parse_statement()
        if stmt is None:
            return BlockStatement(location=location)
        return stmt

    def _parse_if_statement(self) -> IfStatement:
        """Parse if statement."""
        location = self._advance().location
        self._expect(CTokenType.LPAREN, "'(' after 'if'")
        condition = self._parse_expression()
        self._expect(CTokenType.RPAREN, "')'")

        then_branch = self._parse_body()

        else_branch = None
        if self._match(CTokenType.ELSE):
            else_branch = self._parse_body()

        return IfStatement(
            location=location,
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _parse_while_statement(self) -> WhileStatement:
        """Parse while statement."""
        location = self._advance().location
        self._expect(CTokenType.LPAREN, "'(' after 'while'")
        condition = self._parse_expression()
        self._expect(CTokenType.RPAREN, "')'")

        body = self._parse_body()

        return WhileStatement(location=location, condition=condition, body=body)

    def _parse_for_statement(self) -> ForStatement:
        """Parse for statement."""
        location = self._advance().location
        self._expect(CTokenType.LPAREN, "'(' after 'for'")

        # Initializer (optional): a single declaration or an expression
        initializer: Optional[Statement] = None
        if self._peek().is_type_keyword():
            initializer = self._parse_declarator(self._parse_type())
        elif not self._check(CTokenType.SEMICOLON):
            init_location = self._peek().location
            initializer = ExpressionStatement(
                location=init_location,
                expression=self._parse_expression(),
            )
        self._expect(CTokenType.SEMICOLON, "';'")

        # Condition (optional)
        condition = None
        if not self._check(CTokenType.SEMICOLON):
            condition = self._parse_expression()
        self._expect(CTokenType.SEMICOLON, "';'")

        # Update (optional)
        update = None
        if not self._check(CTokenType.RPAREN):
            update = self._parse_expression()
        self._expect(CTokenType.RPAREN, "')'")

        body = self._parse_body()

        return ForStatement(
            location=location,
            initializer=initializer,
            condition=condition,
            update=update,
            body=body,
        )

    def _parse_return_statement(self) -> ReturnStatement:
        """Parse return statement."""
        location = self._advance().location

        value = None
        if not self._check(CTokenType.SEMICOLON):
            value = self._parse_expression()
        self._expect(CTokenType.SEMICOLON, "';'")

        return ReturnStatement(location=location, value=value)

    def _parse_expression_statement(self) -> ExpressionStatement:
        """Parse expression statement."""
        location = self._peek().location
        expression = self._parse_expression()
        self._expect(CTokenType.SEMICOLON, "';'")
        return ExpressionStatement(location=location, expression=expression)

    # =========================================================================
    # Expression Parsing (Operator Precedence)
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse expression (top-level, handles assignment)."""
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse assignment expression (right-associative)."""
        self._enter("expression")
        expr = self._parse_ternary()

        if self._peek().type in _ASSIGNMENT_OPERATORS:
            op_token = self._advance()
            value = self._parse_assignment()
            expr = AssignmentExpression(
                location=expr.location,
                operator=_ASSIGNMENT_OPERATORS[op_token.type],
                target=expr,
                value=value,
            )

        self._leave()
        return expr

    def _parse_ternary(self) -> Expression:
        """Parse ternary conditional expression (? :)."""
        expr = self._parse_logical_or()

        if self._match(CTokenType.QUESTION):
            then_expr = self._parse_expression()
            self._expect(CTokenType.COLON, "':'")
            self._enter("conditional expression")
            else_expr = self._parse_ternary()
            self._leave()
            return TernaryExpression(
                location=expr.location,
                condition=expr,
                then_expr=then_expr,
                else_expr=else_expr,
            )

        return expr

    def _parse_logical_or(self) -> Expression:
        """Parse logical OR expression (||)."""
        return self._parse_binary(
            self._parse_logical_and,
            {CTokenType.OR: BinaryOperator.LOGICAL_OR},
        )

    def _parse_logical_and(self) -> Expression:
        """Parse logical AND expression (&&)."""
        return self._parse_binary(
            self._parse_bitwise_or,
            {CTokenType.AND: BinaryOperator.LOGICAL_AND},
        )

    def _parse_bitwise_or(self) -> Expression:
        return self._parse_binary(
            self._parse_bitwise_xor,
            {CTokenType.PIPE: BinaryOperator.BITWISE_OR},
        )

    def _parse_bitwise_xor(self) -> Expression:
        return self._parse_binary(
            self._parse_bitwise_and,
            {CTokenType.CARET: BinaryOperator.BITWISE_XOR},
        )

    def _parse_bitwise_and(self) -> Expression:
        return self._parse_binary(
            self._parse_equality,
            {CTokenType.AMPERSAND: BinaryOperator.BITWISE_AND},
        )

    def _parse_equality(self) -> Expression:
        """Parse equality expression (== !=)."""
        return self._parse_binary(
            self._parse_relational,
            {
                CTokenType.EQ: BinaryOperator.EQUAL,
                CTokenType.NE: BinaryOperator.NOT_EQUAL,
            },
        )

    def _parse_relational(self) -> Expression:
        """Parse relational expression (< > <= >=)."""
        return self._parse_binary(
            self._parse_shift,
            {
                CTokenType.LT: BinaryOperator.LESS,
                CTokenType.GT: BinaryOperator.GREATER,
                CTokenType.LE: BinaryOperator.LESS_EQ,
                CTokenType.GE: BinaryOperator.GREATER_EQ,
            },
        )

    def _parse_shift(self) -> Expression:
        """Parse shift expression (<< >>)."""
        return self._parse_binary(
            self._parse_additive,
            {
                CTokenType.LSHIFT: BinaryOperator.LEFT_SHIFT,
                CTokenType.RSHIFT: BinaryOperator.RIGHT_SHIFT,
            },
        )

    def _parse_additive(self) -> Expression:
        """Parse additive expression (+ -)."""
        return self._parse_binary(
            self._parse_multiplicative,
            {
                CTokenType.PLUS: BinaryOperator.ADD,
                CTokenType.MINUS: BinaryOperator.SUBTRACT,
            },
        )

    def _parse_multiplicative(self) -> Expression:
        return self._parse_binary(
            self._parse_unary,
            {CTokenType.STAR: BinaryOperator.MULTIPLY},
        )

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: dict[CTokenType, BinaryOperator],
    ) -> Expression:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Map of token types to binary operators
        """
        expr = operand_parser()

        while self._peek().type in operators:
            op_token = self._advance()
            right = operand_parser()
            expr = BinaryExpression(
                location=op_token.location,
                operator=operators[op_token.type],
                left=expr,
                right=right,
            )

        return expr

    def _parse_unary(self) -> Expression:
        """Parse unary expression (- ! ~ ++ -- and casts)."""
        token = self._peek()

        if token.type in _UNARY_OPERATORS:
            self._advance()
            self._enter("unary expression")
            operand = self._parse_unary()
            self._leave()
            return UnaryExpression(
                location=token.location,
                operator=_UNARY_OPERATORS[token.type],
                operand=operand,
            )

        if token.type == CTokenType.LPAREN and self._peek(1).type in _CAST_TYPES:
            return self._parse_cast()

        return self._parse_postfix()

    def _parse_cast(self) -> Expression:
        """Parse cast expression (type)expr."""
        location = self._advance().location
        target_type = self._parse_type("cast type")
        self._expect(CTokenType.RPAREN, "')'")
        self._enter("cast expression")
        operand = self._parse_unary()
        self._leave()

        return CastExpression(
            location=location,
            target_type=target_type,
            operand=operand,
        )

    def _parse_postfix(self) -> Expression:
        """Parse postfix expression (calls, ++, --)."""
        expr = self._parse_primary()

        while True:
            if self._check(CTokenType.LPAREN) and isinstance(expr, IdentifierExpression):
                self._advance()
                expr = self._parse_call(expr)
            elif self._match(CTokenType.INCREMENT):
                expr = UnaryExpression(
                    location=expr.location,
                    operator=UnaryOperator.POST_INCREMENT,
                    operand=expr,
                )
            elif self._match(CTokenType.DECREMENT):
                expr = UnaryExpression(
                    location=expr.location,
                    operator=UnaryOperator.POST_DECREMENT,
                    operand=expr,
                )
            else:
                break

        return expr

    def _parse_call(self, callee: IdentifierExpression) -> CallExpression:
        """Parse function call arguments after the '('."""
        arguments = []
        if not self._check(CTokenType.RPAREN):
            while True:
                arguments.append(self._parse_expression())
                if not self._match(CTokenType.COMMA):
                    break

        self._expect(CTokenType.RPAREN, "')'")

        return CallExpression(
            location=callee.location,
            function_name=callee.name,
            arguments=arguments,
        )

    def _parse_primary(self) -> Expression:
        """Parse primary expression (literals, identifiers, parenthesized)."""
        token = self._peek()

        if token.type == CTokenType.NUMBER:
            self._advance()
            return NumberLiteral(location=token.location, value=token.value, radix=token.radix)

        if token.type in (CTokenType.TRUE, CTokenType.FALSE):
            self._advance()
            return BoolLiteral(location=token.location, value=token.type == CTokenType.TRUE)

        if token.type == CTokenType.IDENTIFIER:
            self._advance()
            return IdentifierExpression(location=token.location, name=token.value)

        if token.type == CTokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(CTokenType.RPAREN, "')'")
            return expr

        raise self._unexpected("expression")


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(source: str, filename: str = "<input>") -> ProgramNode:
    """
    Parse C8 source code into an AST.

    This is a convenience function that combines lexing and parsing.

    Raises:
        LexError: If tokenizing fails
        ParseError: If parsing fails
    """
    tokens = tokenize(source, filename)
    parser = CParser(tokens, filename, source.splitlines())
    return parser.parse()
