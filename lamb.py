"""Lamb entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import Callable, List, Optional

from errors import LambExtensionError, LambParseError, LambRuntimeError
from extensions import RuntimeServices, load_runtime_services
from interpreter import Interpreter, TracebackFormatter
from parser import Node, parse
from printer import format_value


def _report_runtime_error(interpreter: Interpreter, error: LambRuntimeError, *, traceback_json: bool) -> None:
    formatter = TracebackFormatter(interpreter)
    print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)
    if traceback_json:
        print(formatter.to_json(error), file=sys.stderr)


def run_forms(
    interpreter: Interpreter,
    forms: List[Node],
    *,
    keep_going: bool = False,
    traceback_json: bool = False,
    output_sink: Callable[[str], None] = print,
) -> int:
    status = 0
    for form in forms:
        try:
            result = interpreter.eval_form(form)
        except LambRuntimeError as error:
            _report_runtime_error(interpreter, error, traceback_json=traceback_json)
            status = 1
            if not keep_going:
                return status
            continue
        if result is not None:
            output_sink(format_value(result))
    return status


def _needs_more_input(text: str) -> bool:
    return text.count("(") > text.count(")")


def run_repl(verbose: bool, services: Optional[RuntimeServices] = None) -> int:
    print("\x1b[38;2;153;221;255mLamb\033[0m REPL. Enter forms; unclosed parentheses continue on the next line.")
    interpreter = Interpreter(source="", filename="<repl>", verbose=verbose, services=services)
    buffer: List[str] = []

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m "
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        if not buffer and line.strip() == "":
            continue
        buffer.append(line)
        source_text = "\n".join(buffer)
        if line.strip() != "" and _needs_more_input(source_text):
            continue
        buffer.clear()

        try:
            forms = parse(source_text, "<repl>")
        except LambParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
            continue
        run_forms(interpreter, forms, keep_going=True)

    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Lamb reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit scope snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("-ext", "--ext", dest="extensions", action="append", default=[], help="Load an extension module or .lambx pointer file")
    parser.add_argument("--keep-going", action="store_true", help="Report failing top-level forms and continue with the next one")
    args = parser.parse_args(argv)

    try:
        services = load_runtime_services(args.extensions)
    except LambExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        try:
            return run_repl(verbose=args.verbose, services=services)
        except LambExtensionError as error:
            print(f"ExtensionError: {error}", file=sys.stderr)
            return 1

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, services=services)
    except LambExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1
    try:
        forms = interpreter.parse()
    except LambParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    return run_forms(interpreter, forms, keep_going=args.keep_going, traceback_json=args.traceback_json)


def main() -> int:
    return run_cli()


if __name__ == "__main__":
    raise SystemExit(main())
