"""
Ari - a small dynamically-typed scripting language.

This package provides:
- Lexer: Tokenizes source text (lazily, restartable)
- Parser: Builds an AST from tokens
- Interpreter: Evaluates programs with closures and broadcast arithmetic
- Builtins: math, string, collection, functional, random, file and
  network helpers

Usage:
    from ari import tokenize, parse, Interpreter, run_source

    result = run_source('''
        fn square(x) { return x * x; }
        map(range(0, 5, 1), square);
    ''')
    if result.success:
        print(result.format())   # [0, 1, 4, 9, 16]
    else:
        print(result.diagnostic.format())
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
)

from .ast import (
    AstNode,
    AstVisitor,
    Program,
    format_ast,
)

from .errors import (
    AriError,
    LexerError,
    ParserError,
    ScriptRuntimeError,
    NativeError,
    Diagnostic,
    DiagnosticKind,
    ErrorKind,
    ErrorSeverity,
)

from .config import RuntimeConfig

from .runtime import (
    Interpreter,
    ExecutionResult,
    run_source,
    BuiltinRegistry,
    Environment,
    Value,
    ValueKind,
)

__version__ = "0.1.0"

__all__ = [
    # Tokens
    "Token",
    "TokenType",
    "SourceLocation",
    "SourceSpan",
    "KEYWORDS",
    # Lexer
    "Lexer",
    "tokenize",
    # Parser
    "Parser",
    "parse",
    # AST
    "AstNode",
    "AstVisitor",
    "Program",
    "format_ast",
    # Errors
    "AriError",
    "LexerError",
    "ParserError",
    "ScriptRuntimeError",
    "NativeError",
    "Diagnostic",
    "DiagnosticKind",
    "ErrorKind",
    "ErrorSeverity",
    # Config
    "RuntimeConfig",
    # Runtime
    "Interpreter",
    "ExecutionResult",
    "run_source",
    "BuiltinRegistry",
    "Environment",
    "Value",
    "ValueKind",
]
