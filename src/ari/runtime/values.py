"""
Runtime values for the Ari interpreter.

A :class:`Value` pairs a Python payload with its :class:`ValueKind`:

- NUMBER: ``float``
- STRING: ``str``
- ARRAY: ``tuple`` of :class:`Value`
- BOOLEAN: ``bool``
- NIL: ``None``
- FUNCTION: a :class:`Closure` or a native builtin

Arrays and strings are immutable payloads.  Binding an array to a second
name shares the tuple; every operation that "changes" an array builds a
new one, so aliases never observe each other's updates.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

if TYPE_CHECKING:
    from ..ast import Block
    from .context import Environment


class ValueKind(Enum):
    """Runtime value kinds; the value is the name used in diagnostics."""
    NUMBER = "Number"
    STRING = "String"
    ARRAY = "Array"
    BOOLEAN = "Boolean"
    NIL = "Nil"
    FUNCTION = "Function"


@dataclass(frozen=True)
class Value:
    """A runtime value tagged with its kind."""
    data: Any
    kind: ValueKind

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.kind.value})"

    @property
    def kind_name(self) -> str:
        return self.kind.value

    @property
    def is_number(self) -> bool:
        return self.kind == ValueKind.NUMBER

    @property
    def is_nil(self) -> bool:
        return self.kind == ValueKind.NIL

    def __len__(self) -> int:
        if self.kind in (ValueKind.ARRAY, ValueKind.STRING):
            return len(self.data)
        raise TypeError(f"{self.kind.value} has no length")

    def to_python(self) -> Any:
        """Convert to plain Python data (arrays become lists)."""
        if self.kind == ValueKind.ARRAY:
            return [item.to_python() for item in self.data]
        return self.data


@dataclass(eq=False)
class Closure:
    """A user-defined function together with its defining environment.

    The environment is captured by reference: updates made to variables
    in that scope after the closure is created are visible when it runs.
    """
    name: Optional[str]
    parameters: List[str]
    body: "Block"
    env: "Environment"

    @property
    def arity(self) -> int:
        return len(self.parameters)

    def describe(self) -> str:
        return f"<fn {self.name or 'anonymous'}/{self.arity}>"


# Convenience constructors

NIL = Value(None, ValueKind.NIL)
TRUE = Value(True, ValueKind.BOOLEAN)
FALSE = Value(False, ValueKind.BOOLEAN)


def number_val(x: float) -> Value:
    """Create a number value."""
    return Value(float(x), ValueKind.NUMBER)


def string_val(s: str) -> Value:
    """Create a string value."""
    return Value(str(s), ValueKind.STRING)


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return TRUE if b else FALSE


def array_val(items: Iterable[Value]) -> Value:
    """Create an array value from Values."""
    return Value(tuple(items), ValueKind.ARRAY)


def function_val(fn: Any) -> Value:
    """Wrap a Closure or native builtin as a function value."""
    return Value(fn, ValueKind.FUNCTION)


def from_python(data: Any) -> Value:
    """Wrap plain Python data (numbers, strings, bools, None, sequences)."""
    if isinstance(data, Value):
        return data
    if data is None:
        return NIL
    if isinstance(data, bool):
        return bool_val(data)
    if isinstance(data, (int, float)):
        return number_val(data)
    if isinstance(data, str):
        return string_val(data)
    if isinstance(data, (list, tuple)):
        return array_val(from_python(item) for item in data)
    raise TypeError(f"cannot convert {type(data).__name__} to an Ari value")


# Numeric helpers

def as_integer(x: float) -> Optional[int]:
    """Return ``x`` as an int if it is finite and integral, else None."""
    if math.isfinite(x) and x == int(x):
        return int(x)
    return None


def format_number(x: float) -> str:
    if math.isnan(x):
        return "nan"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    if x == int(x) and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


# Display

def display(value: Value, nested: bool = False) -> str:
    """Text form used by print, to_string and string concatenation.

    Strings print raw at top level and quoted inside arrays.
    """
    kind = value.kind
    if kind == ValueKind.NUMBER:
        return format_number(value.data)
    if kind == ValueKind.STRING:
        return f"\"{value.data}\"" if nested else value.data
    if kind == ValueKind.BOOLEAN:
        return "true" if value.data else "false"
    if kind == ValueKind.NIL:
        return "null"
    if kind == ValueKind.ARRAY:
        return "[" + ", ".join(display(item, nested=True) for item in value.data) + "]"
    return value.data.describe()


# Equality

def values_equal(left: Value, right: Value) -> bool:
    """Structural equality; values of different kinds are never equal."""
    if left.kind != right.kind:
        return False
    if left.kind == ValueKind.ARRAY:
        if len(left.data) != len(right.data):
            return False
        return all(values_equal(a, b) for a, b in zip(left.data, right.data))
    if left.kind == ValueKind.FUNCTION:
        return left.data is right.data
    return left.data == right.data
