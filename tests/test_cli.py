"""
Tests for the ``python -m ari`` command-line runner.
"""

import io
import json

import pytest
from ari.__main__ import main


class _Terminal(io.StringIO):
    """Stand-in for an interactive standard input."""

    def isatty(self):
        return True


@pytest.fixture
def script(tmp_path):
    def _write(source, name="prog.ari"):
        path = tmp_path / name
        path.write_text(source, encoding="utf-8")
        return str(path)
    return _write


class TestRunFile:
    """Test running script files."""

    def test_successful_run(self, script, capsys):
        """Output goes to stdout and nothing to stderr."""
        path = script('let xs = map(range(0, 4, 1), x -> x * x);\nprintln xs;')
        assert main([path]) == 0
        captured = capsys.readouterr()
        assert captured.out == "[0, 1, 4, 9]\n"
        assert captured.err == ""

    def test_runtime_error_exit_status(self, script, capsys):
        """A runtime error exits with status 1 after earlier output."""
        path = script("println 1;\n[1, 2, 3][5];")
        assert main([path]) == 1
        captured = capsys.readouterr()
        assert captured.out == "1\n"
        assert "error[E404]" in captured.err
        assert "RuntimeError(IndexOutOfBounds)" in captured.err
        assert "[1, 2, 3][5];" in captured.err

    def test_json_diagnostics(self, script, capsys):
        """--json prints the diagnostic as a JSON object."""
        path = script('to_number("abc");')
        assert main([path, "--json"]) == 1
        report = json.loads(capsys.readouterr().err)
        assert report["code"] == "E502"
        assert report["kind"] == "NativeError"
        assert report["reason"] == "ParseError"
        assert report["range"]["start"]["line"] == 1

    def test_missing_file(self, tmp_path, capsys):
        """A missing script is reported without a traceback."""
        assert main([str(tmp_path / "nope.ari")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_reads_stdin(self, monkeypatch, capsys):
        """'-' reads the program from standard input."""
        monkeypatch.setattr("sys.stdin", io.StringIO('println "from stdin";'))
        assert main(["-"]) == 0
        assert capsys.readouterr().out == "from stdin\n"


class TestOptions:
    """Test --dump-ast and --config."""

    def test_dump_ast(self, script, capsys):
        """--dump-ast prints the tree instead of running."""
        path = script("let a = 1;")
        assert main([path, "--dump-ast"]) == 0
        out = capsys.readouterr().out
        assert "Program" in out
        assert "LetStatement" in out

    def test_dump_ast_reports_parse_error(self, script, capsys):
        """--dump-ast still reports parse errors."""
        path = script("let = 1;")
        assert main([path, "--dump-ast"]) == 1
        assert "error[E101]" in capsys.readouterr().err

    def test_config_file(self, script, tmp_path, capsys):
        """Settings from --config reach the interpreter."""
        config = tmp_path / "ari.yaml"
        config.write_text("max_call_depth: 20\n")
        path = script("fn f(n) { return f(n + 1); } f(0);")
        assert main([path, "--config", str(config)]) == 1
        assert "maximum call depth of 20" in capsys.readouterr().err

    def test_invalid_config(self, script, tmp_path, capsys):
        """Unknown config keys stop the run."""
        config = tmp_path / "ari.yaml"
        config.write_text("workers: 2\n")
        assert main([script("1;"), "-c", str(config)]) == 1
        assert "invalid config" in capsys.readouterr().err

    def test_deep_nesting_is_a_diagnostic(self, script, tmp_path, capsys):
        """Nesting past the stack allowance reports E105 instead of crashing."""
        config = tmp_path / "ari.yaml"
        config.write_text("max_call_depth: 10\n")
        path = script("(" * 5000 + "1" + ")" * 5000 + ";")
        assert main([path, "-c", str(config)]) == 1
        assert "error[E105]" in capsys.readouterr().err
        assert main([path, "-c", str(config), "--dump-ast"]) == 1
        assert "error[E105]" in capsys.readouterr().err


class TestExit:
    """Test that 'bai' ends scripts and the interactive prompt."""

    def test_bai_ends_script_successfully(self, script, capsys):
        """The message is printed and later statements never run."""
        path = script('println "start";\nbai "done";\nprintln "unreachable";')
        assert main([path]) == 0
        captured = capsys.readouterr()
        assert captured.out == "start\ndone\n"
        assert captured.err == ""

    def test_bai_leaves_repl(self, monkeypatch, capsys):
        """The prompt stops reading input after 'bai'."""
        lines = iter(['let x = 2;', 'x * 21;', 'bai "bye";', 'println "never";'])
        monkeypatch.setattr("sys.stdin", _Terminal(""))
        monkeypatch.setattr("builtins.input", lambda prompt: next(lines))
        assert main([]) == 0
        assert capsys.readouterr().out == "42\nbye\n"
