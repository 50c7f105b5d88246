"""
Ari diagnostics and exceptions.

Every failure in the pipeline is described by a :class:`Diagnostic` and
raised inside an :class:`AriError` subclass at the point of failure.  The
stage boundaries (``run_source`` and ``Interpreter.execute``) convert the
exception back into a result value, so callers only ever see structured
data.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
- E5xx: Native function errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"


class DiagnosticKind(Enum):
    """Pipeline stage that produced a diagnostic."""
    LEX = "LexError"
    PARSE = "ParseError"
    RUNTIME = "RuntimeError"
    NATIVE = "NativeError"


class ErrorKind(Enum):
    """Specific failure reason within a diagnostic kind."""
    # Front-end
    UNEXPECTED_CHARACTER = "UnexpectedCharacter"
    UNTERMINATED = "Unterminated"
    INVALID_LITERAL = "InvalidLiteral"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    INVALID_ASSIGNMENT_TARGET = "InvalidAssignmentTarget"
    NESTING_TOO_DEEP = "NestingTooDeep"

    # Runtime
    UNDEFINED_NAME = "UndefinedName"
    TYPE_MISMATCH = "TypeMismatch"
    ARITY_MISMATCH = "ArityMismatch"
    INDEX_OUT_OF_BOUNDS = "IndexOutOfBounds"
    ARRAY_LENGTH_MISMATCH = "ArrayLengthMismatch"
    DIVISION_BY_ZERO = "DivisionByZero"
    UNCONSUMED_CONTROL = "UnconsumedControl"
    RECURSION_LIMIT = "RecursionLimit"

    # Native
    ARGUMENT_TYPE = "ArgumentType"
    PARSE_ERROR = "ParseError"
    IO_ERROR = "IoError"
    RANGE_ERROR = "RangeError"
    TRANSPORT_ERROR = "TransportError"


@dataclass
class Diagnostic:
    """A single diagnostic message (error or warning)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    kind: DiagnosticKind
    span: Optional[SourceSpan] = None
    reason: Optional[ErrorKind] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    cause: Optional[str] = None

    @property
    def line(self) -> Optional[int]:
        return self.span.start.line if self.span is not None else None

    @property
    def column(self) -> Optional[int]:
        return self.span.start.column if self.span is not None else None

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: Kind: message
        label = self.kind.value
        if self.reason is not None:
            label = f"{label}({self.reason.value})"
        header = f"{self.severity.value}[{self.code}]: {label}: {self.message}"
        if self.span is not None:
            header = f"{self.span.start}: {header}"
        parts.append(header)

        # Source line with caret
        if show_source and self.span is not None and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            if self.span.start.line == self.span.end.line:
                end_col = self.span.end.column
            else:
                end_col = len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        if self.cause:
            parts.append(f"    = cause: {self.cause}")
        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        result: Dict[str, Any] = {
            "code": self.code,
            "kind": self.kind.value,
            "reason": self.reason.value if self.reason is not None else None,
            "message": self.message,
            "severity": self.severity.value,
            "range": None,
            "hints": list(self.hints),
            "data": dict(self.data),
            "cause": self.cause,
        }
        if self.span is not None:
            result["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return result


class AriError(Exception):
    """Base exception for all Ari errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    def __str__(self) -> str:
        return self.diagnostic.format()

    @property
    def reason(self) -> Optional[ErrorKind]:
        return self.diagnostic.reason

    def locate(self, span: Optional[SourceSpan]) -> "AriError":
        """Attach ``span`` if the diagnostic does not carry one yet."""
        if self.diagnostic.span is None and span is not None:
            self.diagnostic.span = span
        return self


class LexerError(AriError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(AriError):
    """Error during parsing (E1xx)."""
    pass


class ScriptRuntimeError(AriError):
    """Error while evaluating a program (E4xx)."""
    pass


class NativeError(AriError):
    """Error raised by a native function (E5xx)."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}' at {span.start}",
        kind=DiagnosticKind.LEX,
        reason=ErrorKind.UNEXPECTED_CHARACTER,
        span=span,
        source_line=source_line,
        data={"character": char},
    )
    return LexerError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        kind=DiagnosticKind.LEX,
        reason=ErrorKind.UNTERMINATED,
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with matching quotes on the same line"],
    )
    return LexerError(diag)


def error_unterminated_comment(span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Unterminated block comment."""
    diag = Diagnostic(
        code="E003",
        message="unterminated block comment (expected closing */)",
        kind=DiagnosticKind.LEX,
        reason=ErrorKind.UNTERMINATED,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E004: Invalid escape sequence in string."""
    diag = Diagnostic(
        code="E004",
        message=f"invalid escape sequence '\\{seq}'",
        kind=DiagnosticKind.LEX,
        reason=ErrorKind.INVALID_LITERAL,
        span=span,
        source_line=source_line,
        hints=["valid escape sequences: \\n, \\t, \\r, \\\", \\', \\\\, \\0, \\x##, \\u####"],
    )
    return LexerError(diag)


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E005: Invalid number literal."""
    diag = Diagnostic(
        code="E005",
        message=f"invalid number literal '{text}'",
        kind=DiagnosticKind.LEX,
        reason=ErrorKind.INVALID_LITERAL,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        kind=DiagnosticKind.PARSE,
        reason=ErrorKind.UNEXPECTED_TOKEN,
        span=span,
        source_line=source_line,
        data={"expected": expected, "found": found},
    )
    return ParserError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E102: Unexpected end of input."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of input, expected {expected}",
        kind=DiagnosticKind.PARSE,
        reason=ErrorKind.UNEXPECTED_TOKEN,
        span=span,
        source_line=source_line,
        data={"expected": expected, "found": "end of input"},
    )
    return ParserError(diag)


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParserError:
    """E103: Invalid assignment target."""
    diag = Diagnostic(
        code="E103",
        message="invalid assignment target",
        kind=DiagnosticKind.PARSE,
        reason=ErrorKind.INVALID_ASSIGNMENT_TARGET,
        span=span,
        source_line=source_line,
        hints=["only variables and indexed elements such as 'a[i]' can be assigned"],
    )
    return ParserError(diag)


def error_duplicate_parameter(name: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Parameter name declared twice."""
    diag = Diagnostic(
        code="E104",
        message=f"duplicate parameter '{name}'",
        kind=DiagnosticKind.PARSE,
        reason=ErrorKind.UNEXPECTED_TOKEN,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_nesting_too_deep(span: SourceSpan, source_line: str = None) -> ParserError:
    """E105: Expressions or blocks nested too deeply to parse."""
    diag = Diagnostic(
        code="E105",
        message="expression nested too deeply",
        kind=DiagnosticKind.PARSE,
        reason=ErrorKind.NESTING_TOO_DEEP,
        span=span,
        source_line=source_line,
        hints=["split the expression with intermediate 'let' bindings"],
    )
    return ParserError(diag)


# --- Runtime error codes ---

def error_undefined_name(name: str, span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E401: Use of an undeclared name."""
    diag = Diagnostic(
        code="E401",
        message=f"undefined name '{name}'",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.UNDEFINED_NAME,
        span=span,
        data={"name": name},
        hints=["declare variables with 'let' before using them"],
    )
    return ScriptRuntimeError(diag)


def error_type_mismatch(op: str, kinds: Sequence[str],
                        span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E402: Operator applied to incompatible operand kinds."""
    if len(kinds) == 1:
        message = f"type mismatch: cannot apply '{op}' to {kinds[0]}"
    else:
        message = f"type mismatch: cannot apply '{op}' to {kinds[0]} and {kinds[1]}"
    diag = Diagnostic(
        code="E402",
        message=message,
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.TYPE_MISMATCH,
        span=span,
        data={"operator": op, "kinds": list(kinds)},
    )
    return ScriptRuntimeError(diag)


def error_type_expected(context: str, expected: str, found: str,
                        span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E402: A value of the wrong kind where a specific kind is required."""
    diag = Diagnostic(
        code="E402",
        message=f"type mismatch: {context} expects {expected}, found {found}",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.TYPE_MISMATCH,
        span=span,
        data={"expected": expected, "found": found},
    )
    return ScriptRuntimeError(diag)


def error_arity_mismatch(name: str, expected: str, got: int,
                         span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E403: Wrong number of call arguments."""
    diag = Diagnostic(
        code="E403",
        message=f"'{name}' expects {expected} argument(s), got {got}",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.ARITY_MISMATCH,
        span=span,
        data={"name": name, "expected": expected, "got": got},
    )
    return ScriptRuntimeError(diag)


def error_index_out_of_bounds(index: int, length: int,
                              span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E404: Index outside ``0 .. length - 1``."""
    diag = Diagnostic(
        code="E404",
        message=f"index {index} out of bounds for length {length}",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.INDEX_OUT_OF_BOUNDS,
        span=span,
        data={"index": index, "length": length},
    )
    if index < 0:
        diag.hints.append("negative indices are not supported")
    return ScriptRuntimeError(diag)


def error_array_length_mismatch(op: str, left: int, right: int,
                                span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E405: Elementwise operation on arrays of different lengths."""
    diag = Diagnostic(
        code="E405",
        message=f"cannot apply '{op}' elementwise to arrays of length {left} and {right}",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.ARRAY_LENGTH_MISMATCH,
        span=span,
        data={"operator": op, "left": left, "right": right},
    )
    return ScriptRuntimeError(diag)


def error_division_by_zero(op: str, span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E406: Division or remainder by zero."""
    diag = Diagnostic(
        code="E406",
        message=f"division by zero in '{op}'",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.DIVISION_BY_ZERO,
        span=span,
        data={"operator": op},
    )
    return ScriptRuntimeError(diag)


def error_unconsumed_control(event: str, where: str,
                             span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E407: ``return``/``break``/``continue`` escaped its construct."""
    diag = Diagnostic(
        code="E407",
        message=f"'{event}' outside of {where}",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.UNCONSUMED_CONTROL,
        span=span,
        data={"event": event},
    )
    return ScriptRuntimeError(diag)


def error_recursion_limit(depth: int, span: Optional[SourceSpan] = None) -> ScriptRuntimeError:
    """E408: Call nesting exceeded the configured depth."""
    diag = Diagnostic(
        code="E408",
        message=f"maximum call depth of {depth} exceeded",
        kind=DiagnosticKind.RUNTIME,
        reason=ErrorKind.RECURSION_LIMIT,
        span=span,
        data={"depth": depth},
    )
    return ScriptRuntimeError(diag)


# --- Native function error codes ---

def error_argument_type(function: str, position: int, expected: Sequence[str], found: str,
                        span: Optional[SourceSpan] = None) -> NativeError:
    """E501: Native argument of the wrong kind."""
    wanted = " or ".join(expected)
    diag = Diagnostic(
        code="E501",
        message=f"{function}: argument {position} must be {wanted}, found {found}",
        kind=DiagnosticKind.NATIVE,
        reason=ErrorKind.ARGUMENT_TYPE,
        span=span,
        data={"function": function, "position": position,
              "expected": list(expected), "found": found},
    )
    return NativeError(diag)


def error_conversion(function: str, text: str, span: Optional[SourceSpan] = None) -> NativeError:
    """E502: Text could not be converted to a number."""
    diag = Diagnostic(
        code="E502",
        message=f"{function}: cannot parse {text!r} as a number",
        kind=DiagnosticKind.NATIVE,
        reason=ErrorKind.PARSE_ERROR,
        span=span,
        data={"function": function, "text": text},
    )
    return NativeError(diag)


def error_io(function: str, path: str, cause: BaseException,
             span: Optional[SourceSpan] = None) -> NativeError:
    """E503: Filesystem operation failed."""
    diag = Diagnostic(
        code="E503",
        message=f"{function}: I/O failure on '{path}'",
        kind=DiagnosticKind.NATIVE,
        reason=ErrorKind.IO_ERROR,
        span=span,
        data={"function": function, "path": path},
        cause=str(cause),
    )
    return NativeError(diag)


def error_range(function: str, detail: str, span: Optional[SourceSpan] = None) -> NativeError:
    """E504: Native argument outside its valid domain."""
    diag = Diagnostic(
        code="E504",
        message=f"{function}: {detail}",
        kind=DiagnosticKind.NATIVE,
        reason=ErrorKind.RANGE_ERROR,
        span=span,
        data={"function": function},
    )
    return NativeError(diag)


def error_transport(function: str, target: str, cause: BaseException,
                    span: Optional[SourceSpan] = None) -> NativeError:
    """E505: Network request or server failure."""
    diag = Diagnostic(
        code="E505",
        message=f"{function}: transport failure for '{target}'",
        kind=DiagnosticKind.NATIVE,
        reason=ErrorKind.TRANSPORT_ERROR,
        span=span,
        data={"function": function, "target": target},
        cause=str(cause),
    )
    return NativeError(diag)
