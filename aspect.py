"""Aspect entry point and REPL wiring."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

from extensions import AspectExtensionError, load_extensions
from interpreter import Interpreter, build_default_registry


def run_repl(interpreter: Interpreter, debugging: bool) -> int:
    print("\x1b[38;2;153;221;255mAspect\033[0m REPL. Enter statements, blank line to run buffer.") # "Aspect" in light blue
    buffer: List[str] = []

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m " # light blue
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        if line.strip() == "":
            if buffer:
                # Variables live for one run, so the whole buffer runs together.
                interpreter.execute("\n".join(buffer), debugging=debugging)
                buffer.clear()
                interpreter.reporter.flush()
            continue

        buffer.append(line)

    if buffer:
        interpreter.execute("\n".join(buffer), debugging=debugging)
        interpreter.reporter.flush()
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Aspect line-oriented script interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("--ext", dest="extensions", action="append", default=[], help="Extension file (.py) or pointer file (.aspx); repeatable")
    parser.add_argument("--no-debug", dest="debugging", action="store_false", help="Do not forward errors to the diagnostic log")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Diagnostic log level")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    registry = build_default_registry()
    try:
        for ext_name, outcome in load_extensions(registry, args.extensions):
            logging.getLogger("aspect").info("extension %s: %s", ext_name, outcome)
    except AspectExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1

    interpreter = Interpreter(registry=registry)
    try:
        if args.program is None:
            if args.source_mode:
                print("-source requires a program string", file=sys.stderr)
                return 1
            return run_repl(interpreter, args.debugging)

        if args.source_mode:
            source_text = args.program
        else:
            try:
                with open(args.program, "r", encoding="utf-8") as handle:
                    source_text = handle.read()
            except OSError as exc:
                print(f"Failed to read {args.program}: {exc}", file=sys.stderr)
                return 1

        context = interpreter.execute(source_text, debugging=args.debugging)
        interpreter.reporter.flush()
        return 1 if context.error_log else 0
    finally:
        interpreter.reporter.close()


if __name__ == "__main__":
    raise SystemExit(run_cli())
