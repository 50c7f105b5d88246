"""
Ari runtime - tree-walking evaluation of parsed programs.

This package provides:
- Interpreter / run_source: evaluate programs and return ExecutionResult
- Value: tagged runtime values and their constructors
- Environment / ExecutionContext: lexical scopes and control-event state
- ArithmeticEngine: broadcast arithmetic with a parallel path
- BuiltinRegistry: the read-only native function table
- HttpTransport: HTTP client and static server used by network builtins
"""

from .values import (
    Value,
    ValueKind,
    Closure,
    NIL,
    TRUE,
    FALSE,
    number_val,
    string_val,
    bool_val,
    array_val,
    function_val,
    from_python,
    display,
    values_equal,
)

from .context import (
    Environment,
    ExecutionContext,
    ControlSignal,
    ProgramExit,
)

from .arithmetic import ArithmeticEngine

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    NativeCall,
    ParamSpec,
)

from .transport import HttpTransport, HttpResponse

from .interpreter import (
    Interpreter,
    ExecutionResult,
    run_source,
)

__all__ = [
    # Values
    "Value",
    "ValueKind",
    "Closure",
    "NIL",
    "TRUE",
    "FALSE",
    "number_val",
    "string_val",
    "bool_val",
    "array_val",
    "function_val",
    "from_python",
    "display",
    "values_equal",
    # Context
    "Environment",
    "ExecutionContext",
    "ControlSignal",
    "ProgramExit",
    # Arithmetic
    "ArithmeticEngine",
    # Builtins
    "BuiltinFunction",
    "BuiltinRegistry",
    "NativeCall",
    "ParamSpec",
    # Transport
    "HttpTransport",
    "HttpResponse",
    # Interpreter
    "Interpreter",
    "ExecutionResult",
    "run_source",
]
