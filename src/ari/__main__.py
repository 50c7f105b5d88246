#!/usr/bin/env python3
"""
Command-line runner for Ari.

Usage:
    python -m ari SCRIPT.ari [--config FILE.yaml] [--verbose]
    python -m ari - < SCRIPT.ari
    python -m ari                  # interactive prompt when stdin is a terminal
    python -m ari SCRIPT.ari --dump-ast

Diagnostics go to stderr; the exit status is 1 when the program fails.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

PROMPT = "ari> "


def _load_config(path: Optional[str]):
    from .config import RuntimeConfig

    if path is None:
        return RuntimeConfig()
    return RuntimeConfig.from_yaml(path)


def _report(diagnostic, as_json: bool) -> None:
    if as_json:
        print(json.dumps(diagnostic.to_json(), indent=2), file=sys.stderr)
    else:
        print(diagnostic.format(), file=sys.stderr)


def cmd_dump_ast(source: str, filename: str, config, as_json: bool) -> int:
    """Print the parsed AST instead of running the program."""
    from . import Lexer, parse, format_ast, AriError
    from .runtime.interpreter import recursion_headroom

    try:
        with recursion_headroom(config.max_call_depth):
            program = parse(Lexer(source, filename), filename=filename, source=source)
            text = format_ast(program)
    except AriError as e:
        _report(e.diagnostic, as_json)
        return 1
    except RecursionError:
        print("Error: AST too deep to print", file=sys.stderr)
        return 1
    print(text)
    return 0


def cmd_run(source: str, filename: str, config, as_json: bool) -> int:
    """Run a whole program."""
    from . import Interpreter, run_source

    with Interpreter(config=config) as interpreter:
        result = run_source(source, filename=filename, interpreter=interpreter)
    sys.stdout.flush()
    if not result.success:
        _report(result.diagnostic, as_json)
        return 1
    return 0


def cmd_repl(config) -> int:
    """Read-eval-print loop sharing one global environment."""
    from . import Interpreter, Environment, run_source
    from .runtime import NIL, display

    env = Environment(name="global")
    with Interpreter(config=config) as interpreter:
        while True:
            try:
                line = input(PROMPT)
            except EOFError:
                print()
                return 0
            except KeyboardInterrupt:
                print()
                continue
            if not line.strip():
                continue
            result = run_source(line, filename="<stdin>", interpreter=interpreter, env=env)
            sys.stdout.flush()
            if not result.success:
                print(result.diagnostic.format(), file=sys.stderr)
            elif result.exited:
                return 0
            elif result.value is not NIL:
                print(display(result.value))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='python -m ari',
        description='Ari scripting language interpreter',
    )
    parser.add_argument('file', nargs='?',
                        help="Source file to run ('-' reads standard input)")
    parser.add_argument('-c', '--config', metavar='FILE',
                        help='YAML runtime configuration')
    parser.add_argument('--dump-ast', action='store_true',
                        help='Print the parsed AST instead of running')
    parser.add_argument('--json', action='store_true',
                        help='Report diagnostics as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        config = _load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: invalid config: {e}", file=sys.stderr)
        return 1

    if args.file is None and sys.stdin.isatty() and not args.dump_ast:
        return cmd_repl(config)

    if args.file is None or args.file == '-':
        source = sys.stdin.read()
        filename = "<stdin>"
    else:
        source_path = Path(args.file)
        if not source_path.exists():
            print(f"Error: File not found: {source_path}", file=sys.stderr)
            return 1
        source = source_path.read_text(encoding="utf-8")
        filename = str(source_path)

    if args.dump_ast:
        return cmd_dump_ast(source, filename, config, args.json)
    return cmd_run(source, filename, config, args.json)


if __name__ == '__main__':
    sys.exit(main())
