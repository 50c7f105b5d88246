"""
Tree-walking interpreter for Ari programs.

Evaluates AST nodes against lexical environments.  Statements signal
``return``/``break``/``continue`` through the ExecutionContext, and ``bai``
raises ProgramExit.  Errors are raised as :class:`~ari.errors.AriError` and
turned into an :class:`ExecutionResult` at the :meth:`Interpreter.execute`
boundary.
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, TextIO

import numpy as np

from .arithmetic import ArithmeticEngine
from .builtins import BuiltinFunction, BuiltinRegistry, NativeCall
from .context import ControlSignal, Environment, ExecutionContext, ProgramExit
from .transport import HttpTransport
from .values import (
    Value, ValueKind, Closure, NIL, as_integer, array_val, bool_val,
    display, function_val, number_val, string_val, values_equal,
)

from ..ast import (
    Program, Statement, ExpressionStatement, LetStatement, FunctionDef,
    Block, IfStatement, WhileStatement, ForStatement, ReturnStatement,
    BreakStatement, ContinueStatement, PrintStatement, ExitStatement,
    Expression, Literal, Identifier, UnaryOp, BinaryOp, ArrayLiteral,
    IndexAccess, FunctionCall, FunctionLiteral, Assignment, IfExpr,
)
from ..config import RuntimeConfig
from ..errors import (
    AriError,
    Diagnostic,
    error_undefined_name,
    error_type_expected,
    error_arity_mismatch,
    error_index_out_of_bounds,
    error_unconsumed_control,
    error_recursion_limit,
    error_io,
)
from ..tokens import SourceSpan, TokenType

logger = logging.getLogger(__name__)

# Approximate Python frames used per nested user call
FRAMES_PER_CALL = 30


@dataclass
class ExecutionResult:
    """Result of running a program: a final value or one diagnostic.

    ``exited`` is set when the program stopped at a ``bai`` statement; the
    value is then the ``bai`` message.
    """
    success: bool
    value: Value = NIL
    diagnostic: Optional[Diagnostic] = None
    exited: bool = False

    @property
    def error_message(self) -> Optional[str]:
        if self.diagnostic is None:
            return None
        return self.diagnostic.message

    def format(self) -> str:
        """Diagnostic text on failure, display form of the value on success."""
        if self.diagnostic is not None:
            return self.diagnostic.format()
        return display(self.value)


@contextmanager
def recursion_headroom(max_call_depth: int) -> Iterator[None]:
    """Raise the Python recursion limit enough for ``max_call_depth`` user calls."""
    needed = max_call_depth * FRAMES_PER_CALL + 1000
    previous = sys.getrecursionlimit()
    if needed > previous:
        sys.setrecursionlimit(needed)
    try:
        yield
    finally:
        if needed > previous:
            sys.setrecursionlimit(previous)


def _attach_source(diagnostic: Diagnostic, source: Optional[str]) -> None:
    if source is None or diagnostic.span is None or diagnostic.source_line is not None:
        return
    lines = source.splitlines()
    line = diagnostic.span.start.line
    if 1 <= line <= len(lines):
        diagnostic.source_line = lines[line - 1]


class Interpreter:
    """
    Tree-walking interpreter for Ari.

    Evaluates AST nodes by dispatching on node type.  The builtin registry
    is passed in explicitly (a fresh one is built when omitted) and is only
    ever read.

    Usage:
        with Interpreter(config=RuntimeConfig(random_seed=1)) as interp:
            result = interp.execute(program)
    """

    def __init__(
        self,
        registry: Optional[BuiltinRegistry] = None,
        config: Optional[RuntimeConfig] = None,
        output: Optional[TextIO] = None,
        transport: Optional[HttpTransport] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the interpreter.

        Args:
            registry: Builtin functions visible to programs
            config: Runtime tuning (parallel threshold, seed, call depth)
            output: Stream for print/println (stdout when omitted)
            transport: HTTP collaborator for the network builtins
            rng: Random generator for the random builtins
        """
        self.registry = registry if registry is not None else BuiltinRegistry()
        self.config = config or RuntimeConfig()
        self.output = output
        self.transport = transport or HttpTransport(timeout=self.config.http_timeout)
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self.engine = ArithmeticEngine(self.config)
        self._builtin_values: Dict[str, Value] = {
            name: function_val(fn) for name, fn in self.registry.functions.items()
        }

    # =========================================================================
    # Entry points
    # =========================================================================

    def execute(self, program: Program, env: Optional[Environment] = None,
                source: Optional[str] = None) -> ExecutionResult:
        """
        Run a program.

        Args:
            program: The parsed program
            env: Root environment; a fresh one is used when omitted, so
                separate runs share nothing unless the caller passes one
            source: Original source text, used to quote lines in diagnostics

        Returns:
            ExecutionResult with the value of the final top-level
            expression statement (null otherwise), or the first diagnostic
        """
        root = env if env is not None else Environment(name="global")
        ctx = ExecutionContext(current_scope=root)
        logger.debug("executing %s (%d statements)",
                     program.filename or "<source>", len(program.statements))
        try:
            with self._recursion_headroom():
                value = self._run_program(program, ctx)
        except ProgramExit as stop:
            logger.debug("program exited at %s", stop.span)
            return ExecutionResult(success=True, value=stop.message, exited=True)
        except AriError as exc:
            _attach_source(exc.diagnostic, source)
            return ExecutionResult(success=False, diagnostic=exc.diagnostic)
        except RecursionError:
            diag = error_recursion_limit(self.config.max_call_depth).diagnostic
            return ExecutionResult(success=False, diagnostic=diag)
        return ExecutionResult(success=True, value=value)

    def call_function(self, fn: Value, args: Sequence[Value],
                      env: Optional[Environment] = None) -> Value:
        """Call a function value from host code.

        Errors propagate as AriError, and a ``bai`` inside the function as
        ProgramExit.
        """
        ctx = ExecutionContext(current_scope=env or Environment(name="host"))
        with self._recursion_headroom():
            return self._call(fn, list(args), None, ctx)

    def close(self) -> None:
        """Release the worker pool and HTTP session."""
        self.engine.close()
        self.transport.close()

    def __enter__(self) -> "Interpreter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _recursion_headroom(self):
        return recursion_headroom(self.config.max_call_depth)

    def _run_program(self, program: Program, ctx: ExecutionContext) -> Value:
        result = NIL
        for stmt in program.statements:
            value = self._execute_statement(stmt, ctx)
            if ctx.interrupted:
                signal = ctx.pending
                where = "a function" if signal == ControlSignal.RETURN else "a loop"
                raise error_unconsumed_control(signal.value, where, ctx.signal_span or stmt.span)
            result = value if isinstance(stmt, ExpressionStatement) else NIL
        return result

    # =========================================================================
    # Statements
    # =========================================================================

    def _execute_statement(self, stmt: Statement, ctx: ExecutionContext) -> Optional[Value]:
        """Execute a single statement; expression statements return their value."""
        if isinstance(stmt, ExpressionStatement):
            return self._evaluate(stmt.expression, ctx)
        elif isinstance(stmt, LetStatement):
            self._execute_let(stmt, ctx)
        elif isinstance(stmt, FunctionDef):
            closure = Closure(stmt.name, stmt.parameters, stmt.body, ctx.current_scope)
            ctx.current_scope.define(stmt.name, function_val(closure))
        elif isinstance(stmt, Block):
            self._execute_block(stmt, ctx)
        elif isinstance(stmt, IfStatement):
            self._execute_if_statement(stmt, ctx)
        elif isinstance(stmt, WhileStatement):
            self._execute_while(stmt, ctx)
        elif isinstance(stmt, ForStatement):
            self._execute_for(stmt, ctx)
        elif isinstance(stmt, ReturnStatement):
            value = self._evaluate(stmt.value, ctx) if stmt.value is not None else NIL
            ctx.signal_return(value, stmt.span)
        elif isinstance(stmt, BreakStatement):
            ctx.signal_break(stmt.span)
        elif isinstance(stmt, ContinueStatement):
            ctx.signal_continue(stmt.span)
        elif isinstance(stmt, PrintStatement):
            self._execute_print(stmt, ctx)
        elif isinstance(stmt, ExitStatement):
            message = self._evaluate(stmt.message, ctx) if stmt.message is not None else NIL
            if message.kind != ValueKind.NIL:
                self._write(display(message) + "\n", stmt.span)
            raise ProgramExit(message, stmt.span)
        else:
            raise TypeError(f"Unknown statement type: {type(stmt).__name__}")
        return None

    def _execute_let(self, stmt: LetStatement, ctx: ExecutionContext) -> None:
        """Declare (or shadow) a variable in the current scope."""
        value = self._evaluate(stmt.initializer, ctx) if stmt.initializer is not None else NIL
        ctx.current_scope.define(stmt.name, value)

    def _execute_block(self, block: Block, ctx: ExecutionContext) -> None:
        with ctx.new_scope("block"):
            for stmt in block.statements:
                self._execute_statement(stmt, ctx)
                if ctx.interrupted:
                    return

    def _execute_if_statement(self, stmt: IfStatement, ctx: ExecutionContext) -> None:
        if self._condition(stmt.condition, "if", ctx):
            self._execute_statement(stmt.then_branch, ctx)
        elif stmt.else_branch is not None:
            self._execute_statement(stmt.else_branch, ctx)

    def _loop_should_exit(self, ctx: ExecutionContext) -> bool:
        """Consume break/continue after a loop body; True means leave the loop."""
        signal = ctx.pending
        if signal == ControlSignal.BREAK:
            ctx.consume()
            return True
        if signal == ControlSignal.CONTINUE:
            ctx.consume()
            return False
        return signal == ControlSignal.RETURN

    def _execute_while(self, stmt: WhileStatement, ctx: ExecutionContext) -> None:
        while self._condition(stmt.condition, "while", ctx):
            self._execute_statement(stmt.body, ctx)
            if self._loop_should_exit(ctx):
                return

    def _execute_for(self, stmt: ForStatement, ctx: ExecutionContext) -> None:
        """Counted loop; the initializer's bindings live in a scope of their own."""
        with ctx.new_scope("for-loop"):
            if stmt.initializer is not None:
                self._execute_statement(stmt.initializer, ctx)
            while stmt.condition is None or self._condition(stmt.condition, "for", ctx):
                self._execute_statement(stmt.body, ctx)
                if self._loop_should_exit(ctx):
                    return
                if stmt.increment is not None:
                    self._evaluate(stmt.increment, ctx)

    def _execute_print(self, stmt: PrintStatement, ctx: ExecutionContext) -> None:
        text = display(self._evaluate(stmt.expression, ctx))
        self._write(text + "\n" if stmt.newline else text, stmt.span)

    def _write(self, text: str, span: SourceSpan) -> None:
        stream = self.output if self.output is not None else sys.stdout
        try:
            stream.write(text)
        except (OSError, UnicodeEncodeError) as exc:
            raise error_io("print", "<output>", exc, span) from exc

    # =========================================================================
    # Expressions
    # =========================================================================

    def _evaluate(self, expr: Expression, ctx: ExecutionContext) -> Value:
        """Evaluate an expression; errors without a location get this node's span."""
        try:
            if isinstance(expr, Literal):
                return self._eval_literal(expr)
            elif isinstance(expr, Identifier):
                return self._eval_identifier(expr, ctx)
            elif isinstance(expr, BinaryOp):
                return self._eval_binary_op(expr, ctx)
            elif isinstance(expr, UnaryOp):
                return self._eval_unary_op(expr, ctx)
            elif isinstance(expr, FunctionCall):
                callee = self._evaluate(expr.callee, ctx)
                args = [self._evaluate(arg, ctx) for arg in expr.arguments]
                return self._call(callee, args, expr.span, ctx)
            elif isinstance(expr, IndexAccess):
                target = self._evaluate(expr.target, ctx)
                index = self._evaluate(expr.index, ctx)
                return self._index(target, index, expr.index.span)
            elif isinstance(expr, ArrayLiteral):
                return array_val(self._evaluate(e, ctx) for e in expr.elements)
            elif isinstance(expr, FunctionLiteral):
                closure = Closure(expr.name, expr.parameters, expr.body, ctx.current_scope)
                return function_val(closure)
            elif isinstance(expr, Assignment):
                return self._eval_assignment(expr, ctx)
            elif isinstance(expr, IfExpr):
                if self._condition(expr.condition, "if", ctx):
                    return self._evaluate(expr.then_expr, ctx)
                return self._evaluate(expr.else_expr, ctx)
            else:
                raise TypeError(f"Unknown expression type: {type(expr).__name__}")
        except AriError as exc:
            exc.locate(expr.span)
            raise

    def _eval_literal(self, lit: Literal) -> Value:
        if lit.literal_type == TokenType.NUMBER:
            return number_val(lit.value)
        if lit.literal_type == TokenType.STRING:
            return string_val(lit.value)
        if lit.literal_type in (TokenType.TRUE, TokenType.FALSE):
            return bool_val(lit.value)
        return NIL

    def _eval_identifier(self, ident: Identifier, ctx: ExecutionContext) -> Value:
        """Scopes first, then the builtin table."""
        value = ctx.current_scope.get(ident.name)
        if value is not None:
            return value
        builtin = self._builtin_values.get(ident.name)
        if builtin is not None:
            return builtin
        raise error_undefined_name(ident.name, ident.span)

    def _eval_unary_op(self, op: UnaryOp, ctx: ExecutionContext) -> Value:
        operand = self._evaluate(op.operand, ctx)
        if op.operator == TokenType.MINUS:
            return self.engine.negate(operand)
        return bool_val(not self._truthy(operand, "!", op.operand.span))

    def _eval_binary_op(self, op: BinaryOp, ctx: ExecutionContext) -> Value:
        """Logical operators short-circuit and yield the deciding operand."""
        if op.operator in (TokenType.AND, TokenType.OR):
            symbol = "&&" if op.operator == TokenType.AND else "||"
            left = self._evaluate(op.left, ctx)
            left_true = self._truthy(left, symbol, op.left.span)
            if left_true == (op.operator == TokenType.OR):
                return left
            right = self._evaluate(op.right, ctx)
            self._truthy(right, symbol, op.right.span)
            return right

        left = self._evaluate(op.left, ctx)
        right = self._evaluate(op.right, ctx)

        if op.operator == TokenType.EQ:
            return bool_val(values_equal(left, right))
        if op.operator == TokenType.NE:
            return bool_val(not values_equal(left, right))
        return self.engine.binary(op.operator, left, right)

    def _eval_assignment(self, expr: Assignment, ctx: ExecutionContext) -> Value:
        """Assign to a name, or rebuild the indexed path and rebind the root name."""
        target = expr.target
        if isinstance(target, Identifier):
            value = self._evaluate(expr.value, ctx)
            if not ctx.current_scope.assign(target.name, value):
                raise error_undefined_name(target.name, target.span)
            return value

        # Collect the index chain a[i][j] -> root 'a', indices [i, j]
        chain: List[IndexAccess] = []
        node = target
        while isinstance(node, IndexAccess):
            chain.append(node)
            node = node.target
        chain.reverse()
        root = node  # the parser guarantees an Identifier here

        container = ctx.current_scope.get(root.name)
        if container is None:
            raise error_undefined_name(root.name, root.span)
        indices = [(self._evaluate(link.index, ctx), link.index.span) for link in chain]
        value = self._evaluate(expr.value, ctx)

        updated = self._replace_at(container, indices, value)
        ctx.current_scope.assign(root.name, updated)
        return value

    def _replace_at(self, container: Value, indices: List, value: Value) -> Value:
        """Copy of ``container`` with the element at the index path replaced."""
        (index, span), rest = indices[0], indices[1:]
        if container.kind != ValueKind.ARRAY:
            raise error_type_expected("index assignment", "Array", container.kind_name, span)
        position = self._position(index, len(container.data), span)
        element = value if not rest else self._replace_at(container.data[position], rest, value)
        items = container.data
        return array_val(items[:position] + (element,) + items[position + 1:])

    # =========================================================================
    # Helpers
    # =========================================================================

    def _condition(self, expr: Expression, context: str, ctx: ExecutionContext) -> bool:
        return self._truthy(self._evaluate(expr, ctx), context, expr.span)

    @staticmethod
    def _truthy(value: Value, context: str, span: Optional[SourceSpan]) -> bool:
        """Only Boolean and Nil may be used as conditions; Nil is false."""
        if value.kind == ValueKind.BOOLEAN:
            return value.data
        if value.kind == ValueKind.NIL:
            return False
        raise error_type_expected(f"'{context}'", "Boolean or Nil", value.kind_name, span)

    @staticmethod
    def _position(index: Value, length: int, span: Optional[SourceSpan]) -> int:
        """Validate an index value; no negative wraparound."""
        if index.kind != ValueKind.NUMBER or as_integer(index.data) is None:
            found = index.kind_name if index.kind != ValueKind.NUMBER else display(index)
            raise error_type_expected("index", "integer Number", found, span)
        position = as_integer(index.data)
        if position < 0 or position >= length:
            raise error_index_out_of_bounds(position, length, span)
        return position

    def _index(self, target: Value, index: Value, span: Optional[SourceSpan]) -> Value:
        if target.kind == ValueKind.ARRAY:
            return target.data[self._position(index, len(target.data), span)]
        if target.kind == ValueKind.STRING:
            return string_val(target.data[self._position(index, len(target.data), span)])
        raise error_type_expected("indexing", "Array or String", target.kind_name, span)

    def _call(self, callee: Value, args: List[Value], span: Optional[SourceSpan],
              ctx: ExecutionContext) -> Value:
        """Single calling convention for natives and closures."""
        if callee.kind != ValueKind.FUNCTION:
            raise error_type_expected("call", "Function", callee.kind_name, span)

        fn = callee.data
        if isinstance(fn, BuiltinFunction):
            native = NativeCall(
                span=span,
                invoke=lambda f, a: self._call(f, list(a), span, ctx),
                transport=self.transport,
                rng=self.rng,
                config=self.config,
            )
            return fn.call(native, args)

        closure: Closure = fn
        if len(args) != closure.arity:
            raise error_arity_mismatch(closure.name or "anonymous function",
                                       str(closure.arity), len(args), span)
        if ctx.call_depth >= self.config.max_call_depth:
            raise error_recursion_limit(self.config.max_call_depth, span)

        env = closure.env.child(f"call {closure.name or 'anonymous'}")
        for name, arg in zip(closure.parameters, args):
            env.define(name, arg)

        ctx.call_depth += 1
        try:
            with ctx.use_scope(env):
                for stmt in closure.body.statements:
                    self._execute_statement(stmt, ctx)
                    if ctx.interrupted:
                        break
        finally:
            ctx.call_depth -= 1

        signal = ctx.pending
        if signal == ControlSignal.RETURN:
            value = ctx.return_value
            ctx.consume()
            return value
        if signal is not None:
            where = ctx.signal_span
            ctx.consume()
            raise error_unconsumed_control(signal.value, "a loop", where or span)
        return NIL


def run_source(
    source: str,
    filename: Optional[str] = None,
    interpreter: Optional[Interpreter] = None,
    env: Optional[Environment] = None,
    config: Optional[RuntimeConfig] = None,
) -> ExecutionResult:
    """
    High-level API to lex, parse and run Ari source in one call.

        from ari import run_source

        result = run_source("let xs = [1, 2, 3]; xs * 2;")
        if result.success:
            print(result.format())       # [2, 4, 6]
        else:
            print(result.diagnostic.format())

    Args:
        source: Program text
        filename: Optional filename for diagnostics
        interpreter: Interpreter to run on (a temporary one is used otherwise)
        env: Root environment to run in (for REPL-style sessions)
        config: Runtime config for the temporary interpreter

    Returns:
        ExecutionResult with the final value or the first diagnostic
    """
    from ..lexer import Lexer
    from ..parser import parse

    settings = interpreter.config if interpreter is not None else (config or RuntimeConfig())
    try:
        # Deep nesting gets the same stack allowance as deep calls
        with recursion_headroom(settings.max_call_depth):
            program = parse(Lexer(source, filename), filename=filename, source=source)
    except AriError as exc:
        _attach_source(exc.diagnostic, source)
        return ExecutionResult(success=False, diagnostic=exc.diagnostic)

    if interpreter is not None:
        return interpreter.execute(program, env=env, source=source)
    with Interpreter(config=config) as temporary:
        return temporary.execute(program, env=env, source=source)
