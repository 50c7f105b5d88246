"""Shared fixtures for the Ari test suite."""

import io

import pytest
from ari import Interpreter, RuntimeConfig, run_source


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def interpreter(output):
    """Interpreter with a fixed seed whose print output is captured."""
    with Interpreter(config=RuntimeConfig(random_seed=1234), output=output) as interp:
        yield interp


@pytest.fixture
def run(interpreter):
    """Run source and return the final value as plain Python data."""
    def _run(source):
        result = run_source(source, interpreter=interpreter)
        assert result.success, result.format()
        return result.value.to_python()
    return _run


@pytest.fixture
def run_error(interpreter):
    """Run source that must fail and return its diagnostic."""
    def _run_error(source):
        result = run_source(source, interpreter=interpreter)
        assert not result.success, f"expected failure, got {result.format()}"
        return result.diagnostic
    return _run_error
