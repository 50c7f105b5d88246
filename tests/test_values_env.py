"""
Unit tests for Ari runtime values, environments and the execution context.
"""

import math

import pytest
from ari.runtime import (
    Value, ValueKind, Closure, NIL, TRUE, FALSE,
    number_val, string_val, bool_val, array_val, function_val, from_python,
    display, values_equal, Environment, ExecutionContext, ControlSignal,
)
from ari.runtime.values import as_integer, format_number


class TestValues:
    """Test value construction and conversion."""

    def test_numbers_are_floats(self):
        """Every number is stored as a float."""
        v = number_val(3)
        assert v.kind == ValueKind.NUMBER
        assert isinstance(v.data, float)

    def test_bool_val_reuses_constants(self):
        """Booleans are the shared TRUE and FALSE constants."""
        assert bool_val(True) is TRUE
        assert bool_val(False) is FALSE

    def test_array_payload_is_tuple(self):
        """Array payloads are immutable tuples."""
        v = array_val([number_val(1), number_val(2)])
        assert isinstance(v.data, tuple)
        assert len(v) == 2

    def test_length_of_scalar_raises(self):
        """Only arrays and strings have a length."""
        with pytest.raises(TypeError):
            len(number_val(1))

    def test_from_python_nested(self):
        """Nested Python lists convert to nested arrays."""
        v = from_python([1, "a", [True, None]])
        assert v.kind == ValueKind.ARRAY
        assert v.to_python() == [1.0, "a", [True, None]]

    def test_from_python_rejects_unknown(self):
        """Dicts have no Ari counterpart."""
        with pytest.raises(TypeError):
            from_python({"a": 1})

    def test_kind_names(self):
        """Kind names match the names used in diagnostics."""
        assert number_val(1).kind_name == "Number"
        assert NIL.kind_name == "Nil"
        assert array_val([]).kind_name == "Array"


class TestNumberHelpers:
    """Test numeric formatting and integer checks."""

    def test_as_integer(self):
        """Only finite integral floats convert to int."""
        assert as_integer(3.0) == 3
        assert as_integer(2.5) is None
        assert as_integer(math.inf) is None
        assert as_integer(math.nan) is None

    def test_format_integral(self):
        """Whole numbers print without a decimal point."""
        assert format_number(42.0) == "42"
        assert format_number(-3.0) == "-3"

    def test_format_fraction(self):
        """Fractions print in their shortest form."""
        assert format_number(2.5) == "2.5"
        assert format_number(0.1) == "0.1"

    def test_format_specials(self):
        """nan and the infinities have fixed spellings."""
        assert format_number(math.nan) == "nan"
        assert format_number(math.inf) == "inf"
        assert format_number(-math.inf) == "-inf"


class TestDisplay:
    """Test the printable form of values."""

    def test_scalars(self):
        """Scalars display without quotes."""
        assert display(number_val(7)) == "7"
        assert display(string_val("hi")) == "hi"
        assert display(TRUE) == "true"
        assert display(NIL) == "null"

    def test_nested_strings_are_quoted(self):
        """Strings inside arrays are quoted."""
        v = from_python([1, "two", [3.5]])
        assert display(v) == '[1, "two", [3.5]]'

    def test_empty_array(self):
        """An empty array displays as []."""
        assert display(array_val([])) == "[]"

    def test_closure(self):
        """Named closures show their name and arity."""
        closure = Closure("add", ["a", "b"], None, Environment())
        assert display(function_val(closure)) == "<fn add/2>"

    def test_anonymous_closure(self):
        """Unnamed closures display as anonymous."""
        closure = Closure(None, ["x"], None, Environment())
        assert display(function_val(closure)) == "<fn anonymous/1>"


class TestEquality:
    """Test structural equality."""

    def test_same_kind_scalars(self):
        """Scalars of one kind compare by value."""
        assert values_equal(number_val(1), number_val(1.0))
        assert not values_equal(string_val("a"), string_val("b"))

    def test_different_kinds_never_equal(self):
        """Values of different kinds are never equal."""
        assert not values_equal(number_val(1), string_val("1"))
        assert not values_equal(NIL, FALSE)
        assert not values_equal(number_val(0), FALSE)

    def test_arrays_compare_elementwise(self):
        """Arrays are equal when every element is."""
        assert values_equal(from_python([1, [2, "x"]]), from_python([1, [2, "x"]]))
        assert not values_equal(from_python([1, 2]), from_python([1, 2, 3]))
        assert not values_equal(from_python([1, 2]), from_python([1, 3]))

    def test_functions_compare_by_identity(self):
        """Two closures are equal only if they are the same object."""
        env = Environment()
        a = Closure("f", [], None, env)
        b = Closure("f", [], None, env)
        assert values_equal(function_val(a), function_val(a))
        assert not values_equal(function_val(a), function_val(b))

    def test_nan_is_not_equal_to_itself(self):
        """nan follows IEEE comparison."""
        assert not values_equal(number_val(math.nan), number_val(math.nan))


class TestEnvironment:
    """Test lexical scope chains."""

    def test_define_and_get(self):
        """A defined name can be read back."""
        env = Environment()
        env.define("x", number_val(1))
        assert env.get("x") == number_val(1)
        assert env.get("missing") is None

    def test_child_sees_parent(self):
        """Lookups walk up to the parent scope."""
        parent = Environment()
        parent.define("x", number_val(1))
        child = parent.child()
        assert child.get("x") == number_val(1)
        assert child.contains("x")

    def test_shadowing_does_not_touch_parent(self):
        """Defining in a child shadows the parent binding."""
        parent = Environment()
        parent.define("x", number_val(1))
        child = parent.child()
        child.define("x", number_val(2))
        assert child.get("x") == number_val(2)
        assert parent.get("x") == number_val(1)

    def test_assign_updates_defining_scope(self):
        """Assignment writes to the scope that declared the name."""
        parent = Environment()
        parent.define("x", number_val(1))
        child = parent.child()
        assert child.assign("x", number_val(5))
        assert parent.get("x") == number_val(5)
        assert "x" not in child.variables

    def test_assign_undeclared_fails(self):
        """Assigning an undeclared name reports failure."""
        env = Environment()
        assert not env.assign("nope", number_val(1))
        assert env.get("nope") is None

    def test_nil_binding_is_found(self):
        """A name bound to null is still declared."""
        env = Environment()
        env.define("x", NIL)
        assert env.get("x") is NIL


class TestExecutionContext:
    """Test scope switching and control events."""

    def test_new_scope_restores_previous(self):
        """The previous scope comes back after a nested one."""
        ctx = ExecutionContext()
        outer = ctx.current_scope
        with ctx.new_scope("inner") as inner:
            assert ctx.current_scope is inner
            assert inner.parent is outer
        assert ctx.current_scope is outer

    def test_scope_restored_after_exception(self):
        """An exception does not leave the nested scope current."""
        ctx = ExecutionContext()
        outer = ctx.current_scope
        with pytest.raises(RuntimeError):
            with ctx.new_scope():
                raise RuntimeError("boom")
        assert ctx.current_scope is outer

    def test_return_signal(self):
        """A return carries its value until consumed."""
        ctx = ExecutionContext()
        assert not ctx.interrupted
        ctx.signal_return(number_val(3))
        assert ctx.should_return
        assert ctx.pending == ControlSignal.RETURN
        assert ctx.return_value == number_val(3)
        assert ctx.consume() == ControlSignal.RETURN
        assert not ctx.interrupted
        assert ctx.return_value is NIL

    def test_break_and_continue(self):
        """Break and continue are pending until consumed."""
        ctx = ExecutionContext()
        ctx.signal_break()
        assert ctx.pending == ControlSignal.BREAK
        ctx.consume()
        ctx.signal_continue()
        assert ctx.pending == ControlSignal.CONTINUE
        assert not ctx.should_return
