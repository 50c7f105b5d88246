"""
Built-in function registry for the Ari interpreter.

Each builtin declares its contract (parameter kinds, optional trailing
parameters, variadic tail) and is invoked through the same call path as
user functions.  A :class:`BuiltinRegistry` is built once and is read-only
afterwards, so one instance can be shared by several interpreters.

Families:
- numeric: power, log, mod, abs, floor, ceil, max, min, clock
- conversion: to_string, to_number
- string: split, to_lowercase, to_uppercase
- collection: length, insert, remove
- functional: map, filter, reduce
- array constructors: range, linspace, repeat
- random: random_choose, random_normal (not deterministic unless seeded)
- file: read_file, write_file
- network: web_get, web_post, serve_static_folder
"""

import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import requests

from ..config import RuntimeConfig
from ..errors import (
    error_arity_mismatch,
    error_argument_type,
    error_conversion,
    error_io,
    error_range,
    error_transport,
)
from ..tokens import SourceSpan
from .arithmetic import ieee_fmod
from .transport import HttpTransport
from .values import (
    Value, ValueKind, NIL, as_integer, array_val, display,
    number_val, string_val,
)

logger = logging.getLogger(__name__)

NUMBER = (ValueKind.NUMBER,)
STRING = (ValueKind.STRING,)
ARRAY = (ValueKind.ARRAY,)
FUNCTION = (ValueKind.FUNCTION,)
SEQUENCE = (ValueKind.ARRAY, ValueKind.STRING)
ANY: Tuple[ValueKind, ...] = ()


@dataclass(frozen=True)
class ParamSpec:
    """One declared parameter: a name and the kinds it accepts (empty = any)."""
    name: str
    kinds: Tuple[ValueKind, ...] = ANY

    def accepts(self, value: Value) -> bool:
        return not self.kinds or value.kind in self.kinds

    def kind_names(self) -> List[str]:
        return [k.value for k in self.kinds]


@dataclass
class NativeCall:
    """Per-call services handed to a builtin implementation."""
    span: Optional[SourceSpan]
    invoke: Callable[[Value, Sequence[Value]], Value]
    transport: HttpTransport
    rng: np.random.Generator
    config: RuntimeConfig = field(default_factory=RuntimeConfig)


@dataclass
class BuiltinFunction:
    """
    A built-in function with its implementation and call contract.

    ``min_args`` defaults to the number of declared parameters; a smaller
    value makes the trailing parameters optional.  ``variadic`` describes
    any number of extra arguments after the declared ones.
    """
    name: str
    params: Tuple[ParamSpec, ...]
    implementation: Callable[..., Value]
    doc: str = ""
    min_args: Optional[int] = None
    variadic: Optional[ParamSpec] = None

    @property
    def required(self) -> int:
        return len(self.params) if self.min_args is None else self.min_args

    def expected_arity(self) -> str:
        low, high = self.required, len(self.params)
        if self.variadic is not None:
            return f"at least {low}"
        if low == high:
            return str(low)
        return f"{low} to {high}"

    def accepts_count(self, count: int) -> bool:
        if count < self.required:
            return False
        return self.variadic is not None or count <= len(self.params)

    def describe(self) -> str:
        return f"<native fn {self.name}>"

    def call(self, ctx: NativeCall, args: Sequence[Value]) -> Value:
        """Check the contract, then run the implementation."""
        if not self.accepts_count(len(args)):
            raise error_arity_mismatch(self.name, self.expected_arity(), len(args), ctx.span)
        for position, arg in enumerate(args, start=1):
            if position <= len(self.params):
                spec = self.params[position - 1]
            else:
                spec = self.variadic
            if not spec.accepts(arg):
                raise error_argument_type(
                    self.name, position, spec.kind_names(), arg.kind_name, ctx.span
                )
        return self.implementation(ctx, *args)


# =============================================================================
# Argument helpers
# =============================================================================

def _count_arg(ctx: NativeCall, fname: str, what: str, value: Value) -> int:
    """A non-negative integral Number."""
    count = as_integer(value.data)
    if count is None or count < 0:
        raise error_range(fname, f"{what} must be a non-negative integer, got {display(value)}",
                          ctx.span)
    return count


def _index_arg(ctx: NativeCall, fname: str, value: Value, limit: int) -> int:
    """An integral index in ``0 .. limit - 1``."""
    index = as_integer(value.data)
    if index is None:
        raise error_range(fname, f"index must be an integer, got {display(value)}", ctx.span)
    if index < 0 or index >= limit:
        raise error_range(fname, f"index {index} out of range 0..{limit}", ctx.span)
    return index


def _numbers(ctx: NativeCall, fname: str, items: Sequence[Value]) -> List[float]:
    result = []
    for item in items:
        if item.kind != ValueKind.NUMBER:
            raise error_argument_type(fname, 1, ["Array of Number"],
                                      f"Array containing {item.kind_name}", ctx.span)
        result.append(item.data)
    return result


class BuiltinRegistry:
    """
    Read-only registry of all built-in functions.

    Functions are registered while the registry is constructed; afterwards
    the table is exposed through a ``MappingProxyType`` and no function
    can be added or replaced.
    """

    def __init__(self):
        self._table: Dict[str, BuiltinFunction] = {}
        self._sealed = False
        self._register_all()
        self._functions: Mapping[str, BuiltinFunction] = MappingProxyType(self._table)
        self._sealed = True

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    @property
    def functions(self) -> Mapping[str, BuiltinFunction]:
        return self._functions

    def names(self) -> List[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def _register(self, name: str, params: Sequence[ParamSpec],
                  implementation: Callable[..., Value], doc: str = "",
                  min_args: Optional[int] = None,
                  variadic: Optional[ParamSpec] = None) -> None:
        if self._sealed:
            raise RuntimeError("builtin registry is read-only after construction")
        self._table[name] = BuiltinFunction(
            name, tuple(params), implementation, doc, min_args, variadic
        )

    def _register_all(self) -> None:
        """Register all built-in functions."""
        self._register_math_functions()
        self._register_conversion_functions()
        self._register_string_functions()
        self._register_collection_functions()
        self._register_functional_functions()
        self._register_constructor_functions()
        self._register_random_functions()
        self._register_file_functions()
        self._register_network_functions()

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register numeric functions (IEEE-754 double semantics)."""

        def _power(ctx: NativeCall, base: Value, exp: Value) -> Value:
            b, e = base.data, exp.data
            if b == 0 and e < 0:
                # pow(+-0, y<0) is a pole; the sign survives only for odd integer y
                odd = as_integer(e) is not None and as_integer(e) % 2 == 1
                return number_val(math.copysign(math.inf, b) if odd else math.inf)
            try:
                return number_val(math.pow(b, e))
            except ValueError:
                # negative finite base with a fractional exponent
                return number_val(math.nan)
            except OverflowError:
                negative = b < 0 and as_integer(e) is not None and as_integer(e) % 2 == 1
                return number_val(-math.inf if negative else math.inf)

        def _log(ctx: NativeCall, base: Value, x: Value) -> Value:
            if x.data <= 0:
                raise error_range("log", f"value must be positive, got {display(x)}", ctx.span)
            if base.data <= 0 or base.data == 1:
                raise error_range("log", f"base must be positive and not 1, got {display(base)}",
                                  ctx.span)
            return number_val(math.log(x.data, base.data))

        def _mod(ctx: NativeCall, a: Value, b: Value) -> Value:
            if b.data == 0:
                raise error_range("mod", "divisor must not be zero", ctx.span)
            return number_val(ieee_fmod(a.data, b.data))

        def _abs(ctx: NativeCall, x: Value) -> Value:
            return number_val(abs(x.data))

        def _floor(ctx: NativeCall, x: Value) -> Value:
            return number_val(float(np.floor(x.data)))

        def _ceil(ctx: NativeCall, x: Value) -> Value:
            return number_val(float(np.ceil(x.data)))

        def _extremum(fname: str, pick: Callable[[List[float]], float]):
            def impl(ctx: NativeCall, first: Value, *rest: Value) -> Value:
                if first.kind == ValueKind.ARRAY:
                    if rest:
                        raise error_argument_type(fname, 1, ["Number"], first.kind_name, ctx.span)
                    values = _numbers(ctx, fname, first.data)
                    if not values:
                        raise error_range(fname, "array must not be empty", ctx.span)
                else:
                    values = [first.data] + [r.data for r in rest]
                return number_val(pick(values))
            return impl

        def _clock(ctx: NativeCall) -> Value:
            return number_val(time.time())

        math_funcs = [
            ("power", [ParamSpec("base", NUMBER), ParamSpec("exponent", NUMBER)], _power,
             "base raised to exponent"),
            ("log", [ParamSpec("base", NUMBER), ParamSpec("value", NUMBER)], _log,
             "logarithm of value in the given base"),
            ("mod", [ParamSpec("a", NUMBER), ParamSpec("b", NUMBER)], _mod,
             "remainder of a / b with the sign of a"),
            ("abs", [ParamSpec("x", NUMBER)], _abs, "absolute value"),
            ("floor", [ParamSpec("x", NUMBER)], _floor, "largest integer <= x"),
            ("ceil", [ParamSpec("x", NUMBER)], _ceil, "smallest integer >= x"),
            ("clock", [], _clock, "seconds since the Unix epoch"),
        ]

        for name, params, impl, doc in math_funcs:
            self._register(name, params, impl, doc)

        # Variadic max/min: numbers, or a single array of numbers
        for name, pick in (("max", max), ("min", min)):
            self._register(
                name,
                [ParamSpec("values", (ValueKind.NUMBER, ValueKind.ARRAY))],
                _extremum(name, pick),
                f"{name}imum of the arguments or of one array",
                variadic=ParamSpec("values", NUMBER),
            )

    # --- Conversion Functions ---

    def _register_conversion_functions(self) -> None:

        def _to_string(ctx: NativeCall, value: Value) -> Value:
            return string_val(display(value))

        def _to_number(ctx: NativeCall, value: Value) -> Value:
            if value.kind == ValueKind.NUMBER:
                return value
            text = value.data.strip()
            # float() also accepts digit separators; the language does not
            if not text or "_" in text:
                raise error_conversion("to_number", value.data, ctx.span)
            try:
                return number_val(float(text))
            except ValueError as exc:
                raise error_conversion("to_number", value.data, ctx.span) from exc

        self._register("to_string", [ParamSpec("value")], _to_string,
                       "display form of any value")
        self._register("to_number", [ParamSpec("text", (ValueKind.STRING, ValueKind.NUMBER))],
                       _to_number, "parse text as a number")

    # --- String Functions ---

    def _register_string_functions(self) -> None:

        def _split(ctx: NativeCall, text: Value, delimiter: Value) -> Value:
            if delimiter.data == "":
                parts = list(text.data)
            else:
                parts = text.data.split(delimiter.data)
            return array_val(string_val(p) for p in parts)

        def _to_lowercase(ctx: NativeCall, text: Value) -> Value:
            return string_val(text.data.lower())

        def _to_uppercase(ctx: NativeCall, text: Value) -> Value:
            return string_val(text.data.upper())

        self._register("split", [ParamSpec("text", STRING), ParamSpec("delimiter", STRING)],
                       _split, "split text on a delimiter (empty splits into characters)")
        self._register("to_lowercase", [ParamSpec("text", STRING)], _to_lowercase)
        self._register("to_uppercase", [ParamSpec("text", STRING)], _to_uppercase)

    # --- Collection Functions ---

    def _register_collection_functions(self) -> None:
        """length/insert/remove work on arrays and strings and return new values."""

        def _length(ctx: NativeCall, source: Value) -> Value:
            return number_val(len(source.data))

        def _insert(ctx: NativeCall, source: Value, index: Value, item: Value) -> Value:
            # insertion may append, so the valid range is 0..len inclusive
            at = _index_arg(ctx, "insert", index, len(source.data) + 1)
            if source.kind == ValueKind.STRING:
                if item.kind != ValueKind.STRING:
                    raise error_argument_type("insert", 3, ["String"], item.kind_name, ctx.span)
                return string_val(source.data[:at] + item.data + source.data[at:])
            return array_val(source.data[:at] + (item,) + source.data[at:])

        def _remove(ctx: NativeCall, source: Value, index: Value) -> Value:
            at = _index_arg(ctx, "remove", index, len(source.data))
            if source.kind == ValueKind.STRING:
                return string_val(source.data[:at] + source.data[at + 1:])
            return array_val(source.data[:at] + source.data[at + 1:])

        self._register("length", [ParamSpec("source", SEQUENCE)], _length)
        self._register(
            "insert",
            [ParamSpec("source", SEQUENCE), ParamSpec("index", NUMBER), ParamSpec("value")],
            _insert, "copy of source with value inserted before index",
        )
        self._register(
            "remove",
            [ParamSpec("source", SEQUENCE), ParamSpec("index", NUMBER)],
            _remove, "copy of source without the element at index",
        )

    # --- Functional Functions ---

    def _register_functional_functions(self) -> None:
        """map/filter/reduce call back into user functions in index order."""

        def _map(ctx: NativeCall, source: Value, fn: Value) -> Value:
            return array_val(ctx.invoke(fn, [item]) for item in source.data)

        def _filter(ctx: NativeCall, source: Value, fn: Value) -> Value:
            kept = []
            for item in source.data:
                verdict = ctx.invoke(fn, [item])
                if verdict.kind != ValueKind.BOOLEAN:
                    raise error_argument_type(
                        "filter", 2, ["Function returning Boolean"],
                        f"Function returning {verdict.kind_name}", ctx.span,
                    )
                if verdict.data:
                    kept.append(item)
            return array_val(kept)

        def _reduce(ctx: NativeCall, source: Value, fn: Value, seed: Value) -> Value:
            acc = seed
            for item in source.data:
                acc = ctx.invoke(fn, [acc, item])
            return acc

        self._register("map", [ParamSpec("source", ARRAY), ParamSpec("fn", FUNCTION)], _map)
        self._register("filter", [ParamSpec("source", ARRAY), ParamSpec("fn", FUNCTION)], _filter)
        self._register(
            "reduce",
            [ParamSpec("source", ARRAY), ParamSpec("fn", FUNCTION), ParamSpec("seed")],
            _reduce, "fold source left to right starting from seed",
        )

    # --- Array Constructors ---

    def _register_constructor_functions(self) -> None:

        def _range(ctx: NativeCall, start: Value, end: Value, step: Value) -> Value:
            lo, hi, inc = start.data, end.data, step.data
            if not all(math.isfinite(x) for x in (lo, hi, inc)):
                raise error_range("range", "bounds and step must be finite", ctx.span)
            if inc == 0:
                raise error_range("range", "step must not be zero", ctx.span)
            if (hi - lo) * inc < 0:
                raise error_range("range", "step points away from end", ctx.span)
            count = max(0, math.ceil((hi - lo) / inc))
            return array_val(number_val(lo + i * inc) for i in range(count))

        def _linspace(ctx: NativeCall, start: Value, end: Value, count: Value) -> Value:
            n = _count_arg(ctx, "linspace", "count", count)
            points = np.linspace(start.data, end.data, n)
            return array_val(number_val(x) for x in points.tolist())

        def _repeat(ctx: NativeCall, value: Value, count: Value) -> Value:
            n = _count_arg(ctx, "repeat", "count", count)
            return array_val((value,) * n)

        self._register(
            "range",
            [ParamSpec("start", NUMBER), ParamSpec("end", NUMBER), ParamSpec("step", NUMBER)],
            _range, "start, start + step, ... up to but excluding end",
        )
        self._register(
            "linspace",
            [ParamSpec("start", NUMBER), ParamSpec("end", NUMBER), ParamSpec("count", NUMBER)],
            _linspace, "count evenly spaced numbers from start to end inclusive",
        )
        self._register("repeat", [ParamSpec("value"), ParamSpec("count", NUMBER)], _repeat)

    # --- Random Functions ---

    def _register_random_functions(self) -> None:
        """Random draws use the interpreter's numpy Generator."""

        def _random_choose(ctx: NativeCall, source: Value, count: Value = None) -> Value:
            items = source.data
            if not items:
                raise error_range("random_choose", "cannot choose from an empty array", ctx.span)
            if count is None:
                return items[int(ctx.rng.integers(len(items)))]
            n = _count_arg(ctx, "random_choose", "count", count)
            picks = ctx.rng.integers(len(items), size=n)
            return array_val(items[int(i)] for i in picks)

        def _random_normal(ctx: NativeCall, mean: Value, std: Value, count: Value = None) -> Value:
            if not std.data >= 0:
                raise error_range("random_normal", "standard deviation must be >= 0", ctx.span)
            if count is None:
                return number_val(float(ctx.rng.normal(mean.data, std.data)))
            n = _count_arg(ctx, "random_normal", "count", count)
            draws = ctx.rng.normal(mean.data, std.data, size=n)
            return array_val(number_val(x) for x in draws.tolist())

        self._register(
            "random_choose",
            [ParamSpec("source", ARRAY), ParamSpec("count", NUMBER)],
            _random_choose, "uniform pick (or count independent picks) from an array",
            min_args=1,
        )
        self._register(
            "random_normal",
            [ParamSpec("mean", NUMBER), ParamSpec("std", NUMBER), ParamSpec("count", NUMBER)],
            _random_normal, "normal draw (or count draws) with the given mean and deviation",
            min_args=2,
        )

    # --- File Functions ---

    def _register_file_functions(self) -> None:

        def _read_file(ctx: NativeCall, path: Value) -> Value:
            logger.debug("read_file %s", path.data)
            try:
                return string_val(Path(path.data).read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError) as exc:
                raise error_io("read_file", path.data, exc, ctx.span) from exc

        def _write_file(ctx: NativeCall, path: Value, content: Value) -> Value:
            logger.debug("write_file %s (%d chars)", path.data, len(content.data))
            try:
                # Encode before opening so a bad string leaves no file behind
                data = content.data.encode("utf-8")
                Path(path.data).write_bytes(data)
            except (OSError, UnicodeEncodeError) as exc:
                raise error_io("write_file", path.data, exc, ctx.span) from exc
            return NIL

        self._register("read_file", [ParamSpec("path", STRING)], _read_file)
        self._register("write_file", [ParamSpec("path", STRING), ParamSpec("content", STRING)],
                       _write_file)

    # --- Network Functions ---

    def _register_network_functions(self) -> None:
        """HTTP helpers; responses are ``[status, body]`` arrays."""

        def _response(status: int, body: str) -> Value:
            return array_val([number_val(status), string_val(body)])

        def _web_get(ctx: NativeCall, url: Value) -> Value:
            try:
                resp = ctx.transport.get(url.data)
            except requests.RequestException as exc:
                raise error_transport("web_get", url.data, exc, ctx.span) from exc
            return _response(resp.status, resp.body)

        def _web_post(ctx: NativeCall, url: Value, body: Value) -> Value:
            if body.kind == ValueKind.ARRAY:
                items = body.data
                if len(items) % 2 != 0:
                    raise error_range("web_post", "key/value array must have even length", ctx.span)
                for item in items:
                    if item.kind != ValueKind.STRING:
                        raise error_argument_type("web_post", 2, ["Array of String"],
                                                  f"Array containing {item.kind_name}", ctx.span)
                payload = {items[i].data: items[i + 1].data for i in range(0, len(items), 2)}
            else:
                payload = body.data
            try:
                resp = ctx.transport.post(url.data, payload)
            except requests.RequestException as exc:
                raise error_transport("web_post", url.data, exc, ctx.span) from exc
            return _response(resp.status, resp.body)

        def _serve_static_folder(ctx: NativeCall, path: Value, second: Value,
                                 third: Value = None) -> Value:
            if third is None:
                address, port_value = "127.0.0.1", second
                if second.kind != ValueKind.NUMBER:
                    raise error_argument_type("serve_static_folder", 2, ["Number"],
                                              second.kind_name, ctx.span)
            else:
                if second.kind != ValueKind.STRING:
                    raise error_argument_type("serve_static_folder", 2, ["String"],
                                              second.kind_name, ctx.span)
                address, port_value = second.data, third
            port = as_integer(port_value.data)
            if port is None or not 0 <= port <= 65535:
                raise error_range("serve_static_folder",
                                  f"port must be an integer in 0..65535, got {display(port_value)}",
                                  ctx.span)
            folder = Path(path.data)
            if not folder.is_dir():
                raise error_io("serve_static_folder", path.data,
                               FileNotFoundError(f"no such directory: {path.data}"), ctx.span)
            try:
                ctx.transport.serve_static(folder, address, port)
            except OSError as exc:
                raise error_transport("serve_static_folder", f"{address}:{port}", exc,
                                      ctx.span) from exc
            return NIL

        self._register("web_get", [ParamSpec("url", STRING)], _web_get,
                       "GET url; returns [status, body]")
        self._register(
            "web_post",
            [ParamSpec("url", STRING), ParamSpec("body", (ValueKind.STRING, ValueKind.ARRAY))],
            _web_post, "POST text, or key/value pairs as JSON; returns [status, body]",
        )
        self._register(
            "serve_static_folder",
            [ParamSpec("path", STRING),
             ParamSpec("address_or_port", (ValueKind.STRING, ValueKind.NUMBER)),
             ParamSpec("port", NUMBER)],
            _serve_static_folder,
            "serve a folder over HTTP; blocks until the process is interrupted",
            min_args=2,
        )
