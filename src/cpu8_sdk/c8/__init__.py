"""
C8 Compiler
===========

This package implements a compiler for C8, a small C-like language for
the CPU-8, an 8-bit machine with eight byte registers, 256 bytes of
frame-addressed data memory and 256 I/O ports.

This implementation provides:

- A lexer (tokenizer) for C8 source code
- A recursive descent parser producing an AST
- A type checker that resolves names, types and compile-time constants
- A code generator emitting CPU-8 instruction objects

Pipeline
--------
    C8 Source → Lexer → Parser → AST → Checker → Code Generator → Program

The Program can be written as an assembly listing, a binary image or
Intel HEX (see cpu8_sdk.cpu).

Usage
-----
>>> from cpu8_sdk.c8 import compile_c8
>>> source = '''
... void main() {
...     uint8 x = input(0);
...     output(1, x + 1);
... }
... '''
>>> program = compile_c8(source)

Language Subset
---------------
Supported features:
- Data types: uint8, int8, bool, void (return type only)
- Operators: arithmetic (+ - *), relational, logical, bitwise, shifts,
  assignment and compound assignment, ++/--, ternary, casts
- Control flow: if/else, while, for, return
- Functions: definitions with parameters, local variables
- Intrinsics: input, output, write_port, halt

Not supported:
- Division and modulo
- Recursion (the call graph must be acyclic)
- Arrays, pointers, globals, strings
"""

# =============================================================================
# Version Information
# =============================================================================

__version__ = "1.0.0"

# =============================================================================
# Public API Imports
# =============================================================================

from cpu8_sdk.c8.compiler import (
    C8Compiler,
    CompilerOptions,
    CompilerResult,
    compile_c8,
    compile_file,
)
from cpu8_sdk.c8.errors import (
    ErrorKind,
    Diagnostic,
    ErrorCollector,
    C8Error,
    CompilationError,
    LexError,
    UnexpectedCharacterError,
    LiteralOverflowError,
    ParseError,
    UnexpectedTokenError,
    MissingOrDuplicateEntryError,
    NestingTooDeepError,
    SemanticError,
    UndefinedSymbolError,
    DuplicateSymbolError,
    TypeMismatchError,
    ConstantOverflowError,
    MissingReturnError,
    ArgumentCountError,
    InvalidAssignmentError,
    InvalidPortArgumentError,
    CodeGenError,
    CallStackOverflowError,
    FrameOverflowError,
    InternalCompilerError,
)
from cpu8_sdk.c8.types import C8Type
from cpu8_sdk.c8.lexer import CLexer, CTokenType, CToken, tokenize
from cpu8_sdk.c8.parser import CParser, parse_source
from cpu8_sdk.c8.checker import TypeChecker, check_program
from cpu8_sdk.c8.codegen import CodeGenerator, generate_program
from cpu8_sdk.c8.ast import (
    ASTNode,
    ASTPrinter,
    ASTVisitor,
    ProgramNode,
    FunctionNode,
    VariableDeclaration,
    ParameterNode,
    BlockStatement,
    IfStatement,
    WhileStatement,
    ForStatement,
    ReturnStatement,
    ExpressionStatement,
    BinaryExpression,
    UnaryExpression,
    AssignmentExpression,
    TernaryExpression,
    CallExpression,
    IntrinsicCall,
    CastExpression,
    IdentifierExpression,
    NumberLiteral,
    BoolLiteral,
)

__all__ = [
    # Version
    "__version__",
    # Main API
    "C8Compiler",
    "CompilerOptions",
    "CompilerResult",
    "compile_c8",
    "compile_file",
    # Errors
    "ErrorKind",
    "Diagnostic",
    "ErrorCollector",
    "C8Error",
    "CompilationError",
    "LexError",
    "UnexpectedCharacterError",
    "LiteralOverflowError",
    "ParseError",
    "UnexpectedTokenError",
    "MissingOrDuplicateEntryError",
    "NestingTooDeepError",
    "SemanticError",
    "UndefinedSymbolError",
    "DuplicateSymbolError",
    "TypeMismatchError",
    "ConstantOverflowError",
    "MissingReturnError",
    "ArgumentCountError",
    "InvalidAssignmentError",
    "InvalidPortArgumentError",
    "CodeGenError",
    "CallStackOverflowError",
    "FrameOverflowError",
    "InternalCompilerError",
    # Types
    "C8Type",
    # Lexer
    "CLexer",
    "CTokenType",
    "CToken",
    "tokenize",
    # Parser
    "CParser",
    "parse_source",
    # Checker
    "TypeChecker",
    "check_program",
    # Code Generator
    "CodeGenerator",
    "generate_program",
    # AST Nodes
    "ASTNode",
    "ASTPrinter",
    "ASTVisitor",
    "ProgramNode",
    "FunctionNode",
    "VariableDeclaration",
    "ParameterNode",
    "BlockStatement",
    "IfStatement",
    "WhileStatement",
    "ForStatement",
    "ReturnStatement",
    "ExpressionStatement",
    "BinaryExpression",
    "UnaryExpression",
    "AssignmentExpression",
    "TernaryExpression",
    "CallExpression",
    "IntrinsicCall",
    "CastExpression",
    "IdentifierExpression",
    "NumberLiteral",
    "BoolLiteral",
]
