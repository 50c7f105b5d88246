"""
Unit tests for the Ari interpreter.
"""

import io

import pytest
from ari import (
    Environment, ErrorKind, DiagnosticKind, Interpreter, RuntimeConfig,
    tokenize, parse, run_source,
)
from ari.runtime import ProgramExit, number_val, from_python, string_val


class TestBasics:
    """Test literals, variables and program results."""

    def test_program_result_is_last_expression(self, run):
        """The last expression statement is the program's value."""
        assert run("1; 2; 3;") == 3

    def test_trailing_declaration_gives_null(self, run):
        """A trailing declaration makes the result null."""
        assert run("1; let x = 2;") is None

    def test_empty_program(self, run):
        """An empty program evaluates to null."""
        assert run("") is None

    def test_let_and_read(self, run):
        """A declared variable can be read."""
        assert run("let x = 4; x * 2;") == 8

    def test_let_without_initializer_is_null(self, run):
        """let without a value binds null."""
        assert run("let x; x;") is None

    def test_redeclaration_shadows(self, run):
        """A second let replaces the binding, kind and all."""
        assert run("let x = 1; let x = \"two\"; x;") == "two"

    def test_assignment_returns_value(self, run):
        """Assignment is an expression yielding the value."""
        assert run("let a; let b; a = b = 3; [a, b];") == [3, 3]

    def test_undefined_name(self, run_error):
        """Reading an unknown name is E401."""
        diag = run_error("y + 1;")
        assert diag.code == "E401"
        assert diag.reason == ErrorKind.UNDEFINED_NAME
        assert diag.data["name"] == "y"
        assert diag.line == 1

    def test_assignment_to_undeclared(self, run_error):
        """Assignment never declares."""
        assert run_error("z = 3;").reason == ErrorKind.UNDEFINED_NAME

    def test_separate_runs_share_nothing(self, interpreter):
        """Each run gets a fresh global scope."""
        assert run_source("let x = 1;", interpreter=interpreter).success
        result = run_source("x;", interpreter=interpreter)
        assert not result.success
        assert result.diagnostic.reason == ErrorKind.UNDEFINED_NAME

    def test_shared_environment(self, interpreter):
        """Runs given the same environment see each other's bindings."""
        env = Environment(name="session")
        run_source("let x = 41;", interpreter=interpreter, env=env)
        result = run_source("x + 1;", interpreter=interpreter, env=env)
        assert result.value == number_val(42)


class TestOperators:
    """Test operators through the evaluator."""

    def test_arithmetic_precedence(self, run):
        """Operators follow the usual precedence."""
        assert run("1 + 2 * 3 - 4 / 2;") == 5

    def test_string_concatenation(self, run):
        """Numbers join strings in display form."""
        assert run('"n=" + 3;') == "n=3"

    def test_unary_minus(self, run):
        """Unary minus on numbers and arrays."""
        assert run("-(2 + 3);") == -5
        assert run("-[1, 2];") == [-1, -2]

    def test_not(self, run):
        """'!' accepts Booleans and null."""
        assert run("!true;") is False
        assert run("!null;") is True

    def test_not_requires_boolean(self, run_error):
        """'!' rejects numbers."""
        assert run_error("!0;").reason == ErrorKind.TYPE_MISMATCH

    def test_equality_is_structural(self, run):
        """Arrays compare by content."""
        assert run("[1, [2, 3]] == [1, [2, 3]];") is True
        assert run('"a" != "b";') is True

    def test_equality_across_kinds_is_false(self, run):
        """Values of different kinds are never equal."""
        assert run('1 == "1";') is False
        assert run("null == false;") is False

    def test_division_by_zero(self, run_error):
        """Division by zero points at the expression."""
        diag = run_error("let a = 1;\na / 0;")
        assert diag.reason == ErrorKind.DIVISION_BY_ZERO
        assert diag.line == 2
        assert diag.source_line == "a / 0;"

    def test_type_mismatch_names_kinds(self, run_error):
        """Type errors name both operand kinds."""
        diag = run_error('true + 1;')
        assert diag.reason == ErrorKind.TYPE_MISMATCH
        assert diag.data["kinds"] == ["Boolean", "Number"]

    def test_array_broadcast(self, run):
        """Arrays broadcast against scalars and arrays."""
        assert run("[1, 2, 3] * 2;") == [2, 4, 6]
        assert run("[1, 2] + [10, 20];") == [11, 22]

    def test_array_length_mismatch(self, run_error):
        """Paired arrays must have equal length."""
        diag = run_error("[1, 2, 3] + [1, 2];")
        assert diag.reason == ErrorKind.ARRAY_LENGTH_MISMATCH

    def test_broadcast_round_trip(self, run):
        """Adding then subtracting a scalar gives the array back."""
        assert run("let a = range(0, 10, 1); let s = 3.5; (a + s) - s == a;") is True


class TestLogical:
    """Test short-circuit logic and strict truthiness."""

    def test_and_or(self, run):
        """Logical operators on Booleans."""
        assert run("true && false;") is False
        assert run("false || true;") is True
        assert run("true and true;") is True

    def test_short_circuit_skips_right(self, run):
        """The right operand is not evaluated once the result is known."""
        assert run("false && undefined_name;") is False
        assert run("true || undefined_name;") is True

    def test_null_is_falsy(self, run):
        """null counts as false and is returned as the deciding operand."""
        assert run("null || true;") is True
        assert run("null && true;") is None

    def test_non_boolean_operand(self, run_error):
        """Logical operators reject numbers on either side."""
        assert run_error("1 && true;").reason == ErrorKind.TYPE_MISMATCH
        assert run_error("false || 1;").reason == ErrorKind.TYPE_MISMATCH

    def test_number_condition_rejected(self, run_error):
        """Numbers are not conditions."""
        diag = run_error("if (1) { 2; }")
        assert diag.reason == ErrorKind.TYPE_MISMATCH
        assert diag.data["found"] == "Number"


class TestControlFlow:
    """Test if/while/for and loop control."""

    def test_if_else(self, run):
        """if statement picks a branch."""
        assert run("let r; if (1 < 2) { r = \"yes\"; } else { r = \"no\"; } r;") == "yes"

    def test_else_if(self, run):
        """else if chains pick the first true branch."""
        source = """
            fn grade(n) {
                if (n >= 90) { return "A"; }
                else if (n >= 80) { return "B"; }
                else { return "C"; }
            }
            [grade(95), grade(85), grade(10)];
        """
        assert run(source) == ["A", "B", "C"]

    def test_if_expression(self, run):
        """if expression yields the chosen branch."""
        assert run("let x = 3; let r = if (x > 2) \"big\" else \"small\"; r;") == "big"

    def test_while(self, run):
        """while repeats until the condition fails."""
        assert run("let i = 0; let s = 0; while (i < 5) { s = s + i; i = i + 1; } s;") == 10

    def test_for(self, run):
        """for with all three clauses."""
        assert run("let s = 0; for (let i = 0; i < 4; i = i + 1) { s = s + i; } s;") == 6

    def test_for_variable_is_scoped(self, run_error):
        """The loop variable is gone after the loop."""
        assert run_error("for (let i = 0; i < 1; i = i + 1) { } i;").reason == \
            ErrorKind.UNDEFINED_NAME

    def test_break(self, run):
        """break leaves the loop."""
        assert run("let i = 0; while (true) { if (i == 3) { break; } i = i + 1; } i;") == 3

    def test_continue_runs_increment(self, run):
        """continue in a for loop still runs the increment."""
        source = """
            let s = 0;
            for (let i = 0; i < 6; i = i + 1) {
                if (i % 2 == 0) { continue; }
                s = s + i;
            }
            s;
        """
        assert run(source) == 9

    def test_break_only_exits_inner_loop(self, run):
        """break leaves only the innermost loop."""
        source = """
            let count = 0;
            for (let i = 0; i < 3; i = i + 1) {
                for (let j = 0; j < 10; j = j + 1) {
                    if (j == 2) { break; }
                    count = count + 1;
                }
            }
            count;
        """
        assert run(source) == 6

    def test_for_without_condition(self, run):
        """A for without condition runs until break."""
        assert run("let n = 0; for (;;) { n = n + 1; if (n == 4) { break; } } n;") == 4

    def test_block_scope(self, run):
        """Declarations inside a block do not leak."""
        assert run("let x = 1; { let x = 2; } x;") == 1

    def test_block_assigns_outer(self, run):
        """Assignments inside a block update the outer binding."""
        assert run("let x = 1; { x = 2; } x;") == 2

    def test_break_outside_loop(self, run_error):
        """break at top level is E407."""
        diag = run_error("break;")
        assert diag.code == "E407"
        assert diag.reason == ErrorKind.UNCONSUMED_CONTROL

    def test_return_outside_function(self, run_error):
        """return at top level is an unconsumed control event."""
        assert run_error("return 1;").reason == ErrorKind.UNCONSUMED_CONTROL

    def test_break_in_function_outside_loop(self, run_error):
        """break does not cross a function boundary."""
        diag = run_error("fn f() { break; } while (true) { f(); }")
        assert diag.reason == ErrorKind.UNCONSUMED_CONTROL


class TestFunctions:
    """Test function definitions, calls and closures."""

    def test_named_function(self, run):
        """Named functions are called with arguments."""
        assert run("fn add(a, b) { return a + b; } add(2, 3);") == 5

    def test_missing_return_gives_null(self, run):
        """A body without return yields null."""
        assert run("fn f() { 1; } f();") is None

    def test_bare_return(self, run):
        """return without a value yields null."""
        assert run("fn f() { return; } f();") is None

    def test_return_from_inside_loop(self, run):
        """return inside a loop leaves the function."""
        source = """
            fn first_over(xs, limit) {
                for (let i = 0; i < length(xs); i = i + 1) {
                    if (xs[i] > limit) { return xs[i]; }
                }
                return null;
            }
            first_over([1, 5, 9], 4);
        """
        assert run(source) == 5

    def test_recursion(self, run):
        """Functions can call themselves."""
        assert run("fn fact(n) { if (n <= 1) { return 1; } return n * fact(n - 1); } fact(10);") \
            == 3628800

    def test_mutual_recursion(self, run):
        """Functions can call functions defined after them."""
        source = """
            fn is_even(n) { if (n == 0) { return true; } return is_odd(n - 1); }
            fn is_odd(n) { if (n == 0) { return false; } return is_even(n - 1); }
            is_even(10);
        """
        assert run(source) is True

    def test_closure_sees_later_updates(self, run):
        """Closures capture variables, not values."""
        assert run("let x = 1; let f = () -> x; x = 5; f();") == 5

    def test_counter_closure(self, run):
        """A returned closure keeps updating its captured variable."""
        source = """
            fn make_counter() {
                let n = 0;
                return () -> { n = n + 1; return n; };
            }
            let c = make_counter();
            c(); c();
            c();
        """
        assert run(source) == 3

    def test_closures_are_independent(self, run):
        """Each call creates a separate captured scope."""
        source = """
            fn adder(k) { return x -> x + k; }
            let add2 = adder(2);
            let add10 = adder(10);
            [add2(1), add10(1)];
        """
        assert run(source) == [3, 11]

    def test_higher_order(self, run):
        """Functions are values that can be passed along."""
        assert run("fn twice(f, x) { return f(f(x)); } twice(x -> x * 3, 2);") == 18

    def test_anonymous_fn(self, run):
        """fn literals can be bound and called."""
        assert run("let sq = fn (x) { return x * x; }; sq(7);") == 49

    def test_immediate_call(self, run):
        """A lambda can be called where it is written."""
        assert run("((a, b) -> a - b)(10, 4);") == 6

    def test_arity_mismatch(self, run_error):
        """Calling with too few arguments is E403."""
        diag = run_error("fn f(a, b) { return a; } f(1);")
        assert diag.code == "E403"
        assert diag.data["expected"] == "2"
        assert diag.data["got"] == 1

    def test_call_non_function(self, run_error):
        """Only functions can be called."""
        assert run_error("let x = 3; x(1);").reason == ErrorKind.TYPE_MISMATCH

    def test_params_shadow_globals(self, run):
        """Parameters shadow globals of the same name."""
        assert run("let a = 100; fn f(a) { return a; } [f(1), a];") == [1, 100]

    def test_builtins_can_be_shadowed(self, run):
        """User definitions take precedence over builtins."""
        assert run("fn length(x) { return -1; } length([1, 2]);") == -1

    def test_function_display(self, run):
        """Closures and natives have distinct display forms."""
        assert run("fn f(a) { } to_string(f);") == "<fn f/1>"
        assert run("to_string(abs);") == "<native fn abs>"

    def test_recursion_limit(self):
        """Runaway recursion stops at the configured depth."""
        config = RuntimeConfig(max_call_depth=50)
        result = run_source("fn down(n) { return down(n + 1); } down(0);", config=config)
        assert not result.success
        assert result.diagnostic.reason == ErrorKind.RECURSION_LIMIT
        assert result.diagnostic.data["depth"] == 50

    def test_deep_recursion_within_limit(self):
        """Recursion just under the limit succeeds."""
        config = RuntimeConfig(max_call_depth=400)
        result = run_source(
            "fn sum(n) { if (n == 0) { return 0; } return n + sum(n - 1); } sum(300);",
            config=config,
        )
        assert result.success, result.format()
        assert result.value == number_val(45150)


class TestArrays:
    """Test indexing and copy-on-write arrays."""

    def test_indexing(self, run):
        """Arrays and strings are indexable."""
        assert run("let a = [10, 20, 30]; a[1];") == 20
        assert run('"hey"[2];') == "y"
        assert run("[[1, 2], [3, 4]][1][0];") == 3

    def test_index_out_of_bounds(self, run_error):
        """Out-of-range indices are E404 with index and length."""
        diag = run_error("[1, 2, 3][5];")
        assert diag.code == "E404"
        assert diag.reason == ErrorKind.INDEX_OUT_OF_BOUNDS
        assert diag.data["index"] == 5
        assert diag.data["length"] == 3

    def test_negative_index_rejected(self, run_error):
        """Negative indices do not wrap around."""
        diag = run_error("[1, 2, 3][-1];")
        assert diag.reason == ErrorKind.INDEX_OUT_OF_BOUNDS
        assert diag.hints

    def test_fractional_index_rejected(self, run_error):
        """Indices must be whole numbers."""
        assert run_error("[1, 2][0.5];").reason == ErrorKind.TYPE_MISMATCH

    def test_index_non_sequence(self, run_error):
        """Numbers cannot be indexed."""
        assert run_error("let n = 5; n[0];").reason == ErrorKind.TYPE_MISMATCH

    def test_index_assignment(self, run):
        """Assigning an element replaces it."""
        assert run("let a = [1, 2, 3]; a[1] = 9; a;") == [1, 9, 3]

    def test_nested_index_assignment(self, run):
        """Index chains assign into nested arrays."""
        assert run("let g = [[0, 0], [0, 0]]; g[1][0] = 5; g;") == [[0, 0], [5, 0]]

    def test_value_semantics(self, run):
        """Assigning through one name never changes another."""
        assert run("let a = [1, 2]; let b = a; b[0] = 99; [a, b];") == [[1, 2], [99, 2]]

    def test_function_argument_is_a_copy(self, run):
        """Arrays passed to functions are not changed for the caller."""
        source = """
            fn clobber(xs) { xs[0] = 0; return xs; }
            let orig = [7, 8];
            let changed = clobber(orig);
            [orig, changed];
        """
        assert run(source) == [[7, 8], [0, 8]]

    def test_index_assignment_out_of_bounds(self, run_error):
        """Index assignment cannot grow an array."""
        assert run_error("let a = [1]; a[3] = 0;").reason == ErrorKind.INDEX_OUT_OF_BOUNDS

    def test_index_assignment_on_string(self, run_error):
        """Strings cannot be assigned through an index."""
        assert run_error('let s = "abc"; s[0] = "x";').reason == ErrorKind.TYPE_MISMATCH


class TestPrint:
    """Test print and println."""

    def test_print_and_println(self, run, output):
        """print writes without a newline, println with one."""
        run('print "a"; print 1; println [1, "b"]; println null;')
        assert output.getvalue() == 'a1[1, "b"]\nnull\n'

    def test_print_number_formatting(self, run, output):
        """Numbers print in their shortest form."""
        run("println 2.5; println 10 / 4; println 3.0;")
        assert output.getvalue() == "2.5\n2.5\n3\n"

    def test_print_defaults_to_stdout(self, capsys):
        """Without an output stream print goes to stdout."""
        with Interpreter() as interp:
            run_source('println "hello";', interpreter=interp)
        assert capsys.readouterr().out == "hello\n"

    def test_unencodable_text_on_strict_stream(self):
        """A stream that cannot encode the text reports an I/O error."""
        stream = io.TextIOWrapper(io.BytesIO(), encoding="utf-8")
        env = Environment()
        env.define("s", string_val("\udc80"))
        with Interpreter(output=stream) as interp:
            result = run_source("println s;", interpreter=interp, env=env)
        assert not result.success
        assert result.diagnostic.reason == ErrorKind.IO_ERROR
        assert result.diagnostic.span is not None


class TestExecutionResult:
    """Test the result object and diagnostics at the run boundary."""

    def test_success_result(self):
        """A successful run has a value and no diagnostic."""
        result = run_source("[1, 2] * 3;")
        assert result.success
        assert result.diagnostic is None
        assert result.format() == "[3, 6]"

    def test_lex_error_result(self):
        """Lexer errors come back as LexError diagnostics."""
        result = run_source("let x = @;")
        assert not result.success
        assert result.diagnostic.kind == DiagnosticKind.LEX
        assert result.error_message.startswith("unexpected character")

    def test_parse_error_result(self):
        """Parser errors come back as ParseError diagnostics."""
        result = run_source("let = 1;")
        assert result.diagnostic.kind == DiagnosticKind.PARSE

    def test_runtime_error_stops_program(self, output):
        """Nothing after a runtime error runs."""
        with Interpreter(output=output) as interp:
            result = run_source("println 1; missing; println 2;", interpreter=interp)
        assert not result.success
        assert output.getvalue() == "1\n"

    def test_diagnostic_format_has_location(self):
        """Formatted diagnostics show file, line and source."""
        result = run_source("let a = [1];\na[4];", filename="demo.ari")
        text = result.format()
        assert text.startswith("demo.ari:2:")
        assert "error[E404]" in text
        assert "a[4];" in text

    def test_execute_parsed_program(self):
        """A parsed program can be executed directly."""
        source = "let xs = [3, 1, 2]; max(xs);"
        program = parse(tokenize(source))
        with Interpreter() as interp:
            result = interp.execute(program, source=source)
        assert result.value == number_val(3)

    def test_call_function_from_host(self, interpreter):
        """Host code can call a function defined by a program."""
        env = Environment()
        run_source("fn add(a, b) { return a + b; }", interpreter=interpreter, env=env)
        value = interpreter.call_function(env.get("add"), [number_val(2), number_val(5)])
        assert value == number_val(7)

    def test_parallel_config_matches_sequential(self):
        """A low parallel threshold does not change results."""
        source = "let a = range(0, 200, 1); (a * 3 + 1) % 7;"
        sequential = run_source(source)
        parallel = run_source(source, config=RuntimeConfig(parallel_threshold=8, max_workers=4))
        assert parallel.success
        assert parallel.value == sequential.value
        assert parallel.value == from_python([(3 * i + 1) % 7 for i in range(200)])

    def test_deeply_nested_expression(self, run):
        """Hundreds of nested parentheses and unary minuses still evaluate."""
        assert run("(" * 300 + "1" + ")" * 300 + ";") == 1
        assert run("-(" * 300 + "2" + ")" * 300 + ";") == 2

    def test_nesting_past_the_stack_is_a_diagnostic(self):
        """Nesting beyond the allowance is reported, not raised."""
        source = "let x = " + "[" * 5000 + "]" * 5000 + ";"
        result = run_source(source, config=RuntimeConfig(max_call_depth=10))
        assert not result.success
        assert result.diagnostic.kind == DiagnosticKind.PARSE
        assert result.diagnostic.code == "E105"
        assert result.diagnostic.source_line == source


class TestExit:
    """Test the 'bai' statement."""

    def test_bai_stops_program(self, interpreter, output):
        """Statements after 'bai' never run and the message is printed."""
        result = run_source('println 1; bai "done"; println 2;', interpreter=interpreter)
        assert result.success
        assert result.exited
        assert result.value.to_python() == "done"
        assert output.getvalue() == "1\ndone\n"

    def test_bai_without_message(self, interpreter, output):
        """A bare 'bai' prints nothing."""
        result = run_source("bai; println 2;", interpreter=interpreter)
        assert result.exited
        assert result.value.is_nil
        assert output.getvalue() == ""

    def test_bai_inside_function_and_loop(self, interpreter, output):
        """'bai' leaves every enclosing call and loop at once."""
        source = """
            fn check(n) {
                if (n == 3) { bai "stopped at " + n; }
                return n;
            }
            let total = 0;
            for (let i = 0; i < 10; i = i + 1) { total = total + check(i); }
            println total;
        """
        result = run_source(source, interpreter=interpreter)
        assert result.exited
        assert output.getvalue() == "stopped at 3\n"

    def test_bai_inside_native_callback(self, interpreter, output):
        """A callback passed to a builtin can end the program too."""
        source = 'map([1, 2, 3], fn (x) { if (x == 2) { bai x; } return x; }); println "no";'
        result = run_source(source, interpreter=interpreter)
        assert result.exited
        assert result.value.to_python() == 2
        assert output.getvalue() == "2\n"

    def test_normal_run_is_not_exited(self, interpreter):
        """Programs that run to the end do not report an exit."""
        result = run_source("1 + 1;", interpreter=interpreter)
        assert result.success and not result.exited

    def test_bai_from_host_call(self, interpreter):
        """Host calls see 'bai' as ProgramExit."""
        env = Environment()
        run_source('fn quit() { bai "host"; }', interpreter=interpreter, env=env)
        with pytest.raises(ProgramExit) as exc_info:
            interpreter.call_function(env.get("quit"), [])
        assert exc_info.value.message.to_python() == "host"
