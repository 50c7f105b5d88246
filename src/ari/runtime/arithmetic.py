"""
Elementwise and broadcast arithmetic for Ari values.

Every operator is defined first on scalars (Number and String operands)
and then lifted over arrays:

- scalar op scalar: the scalar rule itself
- scalar op array / array op scalar: the scalar applied to every element
- array op array: elements paired by index; lengths must match

When every operand element is a Number the operator runs as a numpy
ufunc, which computes the same IEEE-754 double results as the scalar
rule.  Other arrays go through the scalar rule element by element.
Large arrays are evaluated on a thread pool in contiguous chunks and
re-joined in index order; the first failing element (lowest index)
decides the error, so the result never depends on which path ran.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from ..config import RuntimeConfig
from ..errors import (
    error_type_mismatch,
    error_array_length_mismatch,
    error_division_by_zero,
)
from ..tokens import TokenType
from .values import (
    Value, ValueKind, as_integer, bool_val, number_val, string_val,
    array_val, format_number,
)

logger = logging.getLogger(__name__)

OPERATOR_SYMBOLS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.LT: "<",
    TokenType.LE: "<=",
    TokenType.GT: ">",
    TokenType.GE: ">=",
}

COMPARISONS = {
    TokenType.LT: lambda a, b: a < b,
    TokenType.LE: lambda a, b: a <= b,
    TokenType.GT: lambda a, b: a > b,
    TokenType.GE: lambda a, b: a >= b,
}

# Number-only operators as ufuncs (np.fmod keeps the dividend's sign)
UFUNCS = {
    TokenType.PLUS: np.add,
    TokenType.MINUS: np.subtract,
    TokenType.STAR: np.multiply,
    TokenType.SLASH: np.divide,
    TokenType.PERCENT: np.fmod,
    TokenType.LT: np.less,
    TokenType.LE: np.less_equal,
    TokenType.GT: np.greater,
    TokenType.GE: np.greater_equal,
}

SCALAR_KINDS = (ValueKind.NUMBER, ValueKind.STRING)

Operand = Union[float, np.ndarray]


def ieee_fmod(x: float, y: float) -> float:
    """Remainder with the sign of the dividend."""
    try:
        return math.fmod(x, y)
    except ValueError:
        # fmod(inf, y) is a domain error in Python; IEEE gives nan
        return math.nan


def _repeat(text: str, count: Value, op: str, text_kind: str) -> Value:
    times = as_integer(count.data)
    if times is None or times < 0:
        raise error_type_mismatch(op, [text_kind, "Number (non-negative integer)"])
    return string_val(text * times)


def scalar_op(op: TokenType, left: Value, right: Value) -> Value:
    """Apply ``op`` to two scalar operands."""
    symbol = OPERATOR_SYMBOLS[op]
    lk, rk = left.kind, right.kind

    if lk == ValueKind.NUMBER and rk == ValueKind.NUMBER:
        a, b = left.data, right.data
        if op == TokenType.PLUS:
            return number_val(a + b)
        if op == TokenType.MINUS:
            return number_val(a - b)
        if op == TokenType.STAR:
            return number_val(a * b)
        if op == TokenType.SLASH:
            if b == 0:
                raise error_division_by_zero(symbol)
            return number_val(a / b)
        if op == TokenType.PERCENT:
            if b == 0:
                raise error_division_by_zero(symbol)
            return number_val(ieee_fmod(a, b))
        return bool_val(COMPARISONS[op](a, b))

    if lk == ValueKind.STRING and rk == ValueKind.STRING:
        if op == TokenType.PLUS:
            return string_val(left.data + right.data)
        if op in COMPARISONS:
            return bool_val(COMPARISONS[op](left.data, right.data))

    elif lk == ValueKind.STRING and rk == ValueKind.NUMBER:
        if op == TokenType.PLUS:
            return string_val(left.data + format_number(right.data))
        if op == TokenType.STAR:
            return _repeat(left.data, right, symbol, lk.value)

    elif lk == ValueKind.NUMBER and rk == ValueKind.STRING:
        if op == TokenType.PLUS:
            return string_val(format_number(left.data) + right.data)
        if op == TokenType.STAR:
            return _repeat(right.data, left, symbol, rk.value)

    raise error_type_mismatch(symbol, [lk.value, rk.value])


def _negate_scalar(operand: Value) -> Value:
    if operand.kind != ValueKind.NUMBER:
        raise error_type_mismatch("-", [operand.kind.value])
    return number_val(-operand.data)


def _as_numbers(value: Value) -> Optional[Operand]:
    """The operand as a float or float64 array, or None if any element is not a Number."""
    if value.kind == ValueKind.NUMBER:
        return value.data
    if value.kind != ValueKind.ARRAY or not all(item.is_number for item in value.data):
        return None
    return np.fromiter((item.data for item in value.data), dtype=np.float64,
                       count=len(value.data))


class ArithmeticEngine:
    """
    Evaluates arithmetic and ordering operators with array broadcasting.

    Usage:
        engine = ArithmeticEngine(RuntimeConfig(parallel_threshold=1000))
        result = engine.binary(TokenType.PLUS, left, right)
        engine.close()
    """

    def __init__(self, config: Optional[RuntimeConfig] = None):
        self.config = config or RuntimeConfig()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    # =========================================================================
    # Public operations
    # =========================================================================

    def binary(self, op: TokenType, left: Value, right: Value) -> Value:
        """Apply a binary operator, broadcasting over array operands."""
        symbol = OPERATOR_SYMBOLS[op]
        l_array = left.kind == ValueKind.ARRAY
        r_array = right.kind == ValueKind.ARRAY

        if not l_array and not r_array:
            return scalar_op(op, left, right)

        if l_array and r_array:
            if len(left.data) != len(right.data):
                raise error_array_length_mismatch(symbol, len(left.data), len(right.data))
        elif l_array:
            self._require_scalar(symbol, right, left)
        else:
            self._require_scalar(symbol, left, right)

        length = len(left.data) if l_array else len(right.data)
        a, b = _as_numbers(left), _as_numbers(right)
        if a is not None and b is not None:
            return self._vectorized(op, symbol, a, b, length)

        if l_array and r_array:
            items_l, items_r = left.data, right.data
            return self._elementwise(length, lambda i: scalar_op(op, items_l[i], items_r[i]))
        if l_array:
            items = left.data
            return self._elementwise(length, lambda i: scalar_op(op, items[i], right))
        items = right.data
        return self._elementwise(length, lambda i: scalar_op(op, left, items[i]))

    def negate(self, operand: Value) -> Value:
        """Unary minus on a number or every element of an array."""
        if operand.kind != ValueKind.ARRAY:
            return _negate_scalar(operand)
        numbers = _as_numbers(operand)
        if numbers is not None:
            out = self._map_chunks(len(numbers), lambda lo, hi: np.negative(numbers[lo:hi]))
            return array_val(number_val(x) for x in out.tolist())
        items = operand.data
        return self._elementwise(len(items), lambda i: _negate_scalar(items[i]))

    def close(self) -> None:
        """Shut down the worker pool, if one was started."""
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self) -> "ArithmeticEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # =========================================================================
    # Execution
    # =========================================================================

    @staticmethod
    def _require_scalar(symbol: str, scalar: Value, array: Value) -> None:
        if scalar.kind not in SCALAR_KINDS:
            kinds = [scalar.kind.value, array.kind.value]
            raise error_type_mismatch(symbol, kinds)

    def _vectorized(self, op: TokenType, symbol: str, a: Operand, b: Operand,
                    length: int) -> Value:
        """Number-only broadcast through the operator's ufunc."""
        # A zero divisor is the only way a Number pair can fail
        if op in (TokenType.SLASH, TokenType.PERCENT) and np.any(np.asarray(b) == 0):
            raise error_division_by_zero(symbol)

        ufunc = UFUNCS[op]

        def chunk(lo: int, hi: int) -> np.ndarray:
            with np.errstate(all="ignore"):
                return ufunc(_slice(a, lo, hi), _slice(b, lo, hi))

        out = self._map_chunks(length, chunk)
        wrap = bool_val if op in COMPARISONS else number_val
        return array_val(wrap(x) for x in out.tolist())

    def _map_chunks(self, length: int, chunk: Callable[[int, int], np.ndarray]) -> np.ndarray:
        if length < self.config.parallel_threshold:
            return chunk(0, length)
        chunks = self._partition(length)
        logger.debug("parallel vector op: %d elements in %d chunks", length, len(chunks))
        return np.concatenate(list(self._pool().map(lambda bounds: chunk(*bounds), chunks)))

    def _elementwise(self, length: int, element: Callable[[int], Value]) -> Value:
        """Evaluate ``element(i)`` for every index, in index order."""
        if length < self.config.parallel_threshold:
            return array_val(_run_chunk(element, (0, length)))
        return array_val(self._run_parallel(length, element))

    def _partition(self, length: int) -> List[Tuple[int, int]]:
        workers = self.config.worker_count
        size = max(1, -(-length // workers))
        return [(lo, min(lo + size, length)) for lo in range(0, length, size)]

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.worker_count,
                    thread_name_prefix="ari-arith",
                )
            return self._executor

    def _run_parallel(self, length: int, element: Callable[[int], Value]) -> List[Value]:
        chunks = self._partition(length)
        logger.debug("parallel elementwise op: %d elements in %d chunks", length, len(chunks))
        results: List[Value] = []
        # map() yields in submission order, so the lowest failing chunk raises first
        for part in self._pool().map(lambda bounds: _run_chunk(element, bounds), chunks):
            results.extend(part)
        return results


def _slice(operand: Operand, lo: int, hi: int) -> Operand:
    if isinstance(operand, np.ndarray):
        return operand[lo:hi]
    return operand


def _run_chunk(element: Callable[[int], Value], bounds: Tuple[int, int]) -> List[Value]:
    lo, hi = bounds
    return [element(i) for i in range(lo, hi)]
