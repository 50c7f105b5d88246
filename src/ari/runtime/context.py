"""
Execution context for the Ari interpreter.

Manages lexical environments and the pending control-flow event
(``return``, ``break``, ``continue``) that statements signal to their
enclosing blocks, loops and calls.  ``bai`` leaves the whole program at
once, so it travels as the :class:`ProgramExit` exception instead.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional
from contextlib import contextmanager

from ..tokens import SourceSpan
from .values import Value, NIL


@dataclass(eq=False)
class Environment:
    """
    A single lexical scope containing variable bindings.

    Environments form a chain via the `parent` field.  Only parent links
    exist, so a closure holding an environment keeps its ancestors alive
    without creating cycles back to child scopes.
    """
    variables: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Environment"] = None
    name: str = "anonymous"  # For debugging

    def get(self, name: str) -> Optional[Value]:
        """Look up a variable in this scope or parent scopes."""
        env = self
        while env is not None:
            if name in env.variables:
                return env.variables[name]
            env = env.parent
        return None

    def define(self, name: str, value: Value) -> None:
        """Declare a variable in this scope (shadowing parent if exists)."""
        self.variables[name] = value

    def assign(self, name: str, value: Value) -> bool:
        """
        Update an existing variable.

        Searches up the scope chain to find where the variable is defined.
        Returns True if found and updated, False if not found.
        """
        env = self
        while env is not None:
            if name in env.variables:
                env.variables[name] = value
                return True
            env = env.parent
        return False

    def contains(self, name: str) -> bool:
        """Check if a variable is declared in this scope or parents."""
        return self.get(name) is not None

    def child(self, name: str = "block") -> "Environment":
        return Environment(parent=self, name=name)


class ControlSignal(Enum):
    """Non-local control events raised by statements."""
    RETURN = "return"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass
class ExecutionContext:
    """
    The evaluation state for one program run.

    Tracks:
    - The current environment
    - The pending control event and return value
    - The user call depth
    """
    current_scope: Environment = field(default_factory=lambda: Environment(name="global"))
    call_depth: int = 0

    # Control flow flags
    _signal: Optional[ControlSignal] = None
    _signal_span: Optional[SourceSpan] = None
    _return_value: Value = NIL

    @contextmanager
    def new_scope(self, name: str = "block") -> Iterator[Environment]:
        """
        Context manager to evaluate inside a nested scope.

        Usage:
            with ctx.new_scope("while-body"):
                ctx.current_scope.define("i", number_val(0))
        """
        with self.use_scope(self.current_scope.child(name)) as scope:
            yield scope

    @contextmanager
    def use_scope(self, scope: Environment) -> Iterator[Environment]:
        """Temporarily make ``scope`` current (used for closure calls)."""
        old_scope = self.current_scope
        self.current_scope = scope
        try:
            yield scope
        finally:
            self.current_scope = old_scope

    # --- control events ---

    @property
    def pending(self) -> Optional[ControlSignal]:
        """The unconsumed control event, if any."""
        return self._signal

    @property
    def interrupted(self) -> bool:
        """True while a control event is propagating."""
        return self._signal is not None

    def signal_return(self, value: Value, span: Optional[SourceSpan] = None) -> None:
        """Signal an early return from the enclosing function."""
        self._signal = ControlSignal.RETURN
        self._signal_span = span
        self._return_value = value

    def signal_break(self, span: Optional[SourceSpan] = None) -> None:
        self._signal = ControlSignal.BREAK
        self._signal_span = span

    def signal_continue(self, span: Optional[SourceSpan] = None) -> None:
        self._signal = ControlSignal.CONTINUE
        self._signal_span = span

    @property
    def signal_span(self) -> Optional[SourceSpan]:
        """Where the pending event was raised."""
        return self._signal_span

    @property
    def should_return(self) -> bool:
        return self._signal == ControlSignal.RETURN

    @property
    def return_value(self) -> Value:
        return self._return_value

    def consume(self) -> Optional[ControlSignal]:
        """Clear and return the pending event; the return value resets to null."""
        signal = self._signal
        self._signal = None
        self._signal_span = None
        self._return_value = NIL
        return signal


class ProgramExit(Exception):
    """
    Raised by ``bai`` to stop the program from any call depth.

    Not an error: :meth:`Interpreter.execute` turns it into a successful
    result with ``exited`` set.
    """

    def __init__(self, message: Value = NIL, span: Optional[SourceSpan] = None):
        super().__init__("program exited")
        self.message = message
        self.span = span
