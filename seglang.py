"""SegLang entry point."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from errors import LoadError
from interpreter import Interpreter, SegRuntimeError, TracebackFormatter


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="SegLang reference interpreter")
    parser.add_argument("program", nargs="?", help="Program file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit variable snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.program is None:
        print("No program file specified! Aborting...", file=sys.stderr)
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

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose)
    try:
        return interpreter.run()
    except LoadError as error:
        print(f"LoadError: {error}", file=sys.stderr)
        return 1
    except SegRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
