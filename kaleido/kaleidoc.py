#!/usr/bin/env python3
"""kaleidoc: compile and run Kaleidoscope source through the JIT."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from .ast_printer import format_unit
from .backend import OPT_LEVELS
from .diagnostics import Diagnostic, KaleidoError
from .parser import parse_units
from .session import Session


def _print_diagnostics(diags: List[Diagnostic], source_name: str, as_json: bool) -> None:
    if as_json:
        payload = {
            "exit_code": 1 if diags else 0,
            "diagnostics": [d.to_json(source_name) for d in diags],
        }
        print(json.dumps(payload), file=sys.stderr)
        return
    for d in diags:
        print(d.render(source_name), file=sys.stderr)


def dump_ast(source: str, source_name: str, as_json: bool) -> int:
    try:
        for unit in parse_units(source):
            print(format_unit(unit))
    except KaleidoError as exc:
        _print_diagnostics([exc.to_diagnostic()], source_name, as_json)
        return 1
    return 0


def run_source(source: str, source_name: str, opt_level: int, emit_ir: bool, as_json: bool) -> int:
    with Session(opt_level=opt_level, ir_out=sys.stdout if emit_ir else None) as session:
        for value in session.run(source):
            print(f"Evaluated to {value:f}")
        diags = list(session.diagnostics)
    if diags or as_json:
        _print_diagnostics(diags, source_name, as_json)
    return 1 if diags else 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="kaleidoc: Kaleidoscope -> LLVM JIT")
    ap.add_argument("source", type=Path, nargs="?", help="Kaleidoscope source file (default: stdin)")
    ap.add_argument("--emit-ir", action="store_true", help="Print the LLVM IR of every compiled module")
    ap.add_argument("--dump-ast", action="store_true", help="Print the parsed AST instead of compiling")
    ap.add_argument(
        "-O",
        "--opt-level",
        type=int,
        choices=OPT_LEVELS,
        default=2,
        help="Function pass pipeline level (0 disables optimization)",
    )
    ap.add_argument("--json", action="store_true", help="Report diagnostics as JSON on stderr")
    args = ap.parse_args(argv)

    if args.source is None:
        source, source_name = sys.stdin.read(), "<stdin>"
    else:
        source, source_name = args.source.read_text(), str(args.source)

    if args.dump_ast:
        return dump_ast(source, source_name, args.json)
    return run_source(source, source_name, args.opt_level, args.emit_ir, args.json)


if __name__ == "__main__":
    raise SystemExit(main())
