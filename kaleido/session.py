"""
Incremental compile-and-run session.

Each top-level construct gets its own freshly created module:

  - `def`: compiled, verified, optimized, then installed in the JIT. The
    tracker of an earlier definition with the same name is retracted first, but
    only once the new module is known to be good, so a failed redefinition
    leaves the previous code in place.
  - `extern`: compiled into a throwaway module; the useful side effect is the
    prototype landing in the registry.
  - bare expression: compiled as `__anon_expr`, installed, called, retracted.

Failures never end the session. They are recorded as diagnostics and the
loop resumes at the next top-level construct (after a syntax error, exactly
one token is skipped first).
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, TextIO

from llvmlite import binding as llvm  # type: ignore
from llvmlite import ir  # type: ignore

from . import ast
from .backend import new_module, optimize_module
from .codegen import CodeGenerator, compile
from .diagnostics import Diagnostic, KaleidoError, ParseError
from .jit import KaleidoscopeJIT, ResourceTracker
from .lexer import TokenKind
from .parser import Parser
from .registry import PrototypeRegistry


class Session:
    def __init__(
        self,
        jit: Optional[KaleidoscopeJIT] = None,
        opt_level: int = 2,
        ir_out: Optional[TextIO] = None,
        precedence: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.registry = PrototypeRegistry()
        self.opt_level = opt_level
        self.ir_out = ir_out
        self.precedence = precedence
        self.trackers: Dict[str, ResourceTracker] = {}
        self.diagnostics: List[Diagnostic] = []
        self._jit = jit
        self._module_counter = 0

    @property
    def jit(self) -> KaleidoscopeJIT:
        if self._jit is None:
            self._jit = KaleidoscopeJIT()
        return self._jit

    def _fresh_module(self, label: str) -> ir.Module:
        self._module_counter += 1
        return new_module(f"{label}.{self._module_counter}")

    def _dump(self, text: str) -> None:
        if self.ir_out is not None:
            print(text, file=self.ir_out)

    def _lower(self, fn: ast.Function) -> llvm.ModuleRef:
        gen = CodeGenerator(self._fresh_module(fn.name), self.registry)
        gen.compile(fn)
        llmod = gen.llmod
        optimize_module(llmod, self.opt_level)
        self._dump(str(llmod))
        return llmod

    # --- unit handlers -------------------------------------------------

    def handle_definition(self, fn: ast.Function) -> ResourceTracker:
        llmod = self._lower(fn)
        self.jit.check_resolvable(llmod)
        previous = self.trackers.pop(fn.name, None)
        if previous is not None:
            previous.remove()
        tracker = self.jit.add_module(llmod)
        self.trackers[fn.name] = tracker
        return tracker

    def handle_extern(self, proto: ast.Prototype) -> ir.Function:
        module = self._fresh_module(proto.name)
        decl = compile(proto, self.registry, module)
        self._dump(str(module))
        return decl

    def handle_top_level_expr(self, fn: ast.Function) -> float:
        llmod = self._lower(fn)
        with self.jit.add_module(llmod):
            return self.jit.call(fn.name)

    # --- driving loop --------------------------------------------------

    def report(self, exc: KaleidoError) -> Diagnostic:
        diag = exc.to_diagnostic()
        self.diagnostics.append(diag)
        return diag

    def run(self, source: str) -> List[float]:
        """Process every construct in `source`; return the top-level results in order."""
        parser = Parser.from_source(source, self.precedence)
        results: List[float] = []
        while True:
            tok = parser.cur_tok
            if tok.kind is TokenKind.EOF:
                return results
            if tok.is_char(";"):
                parser.get_next_token()
                continue
            try:
                if tok.kind is TokenKind.DEF:
                    self.handle_definition(parser.parse_definition())
                elif tok.kind is TokenKind.EXTERN:
                    self.handle_extern(parser.parse_extern())
                else:
                    results.append(self.handle_top_level_expr(parser.parse_top_level_expr()))
            except ParseError as exc:
                self.report(exc)
                # Skip the offending token and resynchronize at top level.
                parser.get_next_token()
            except KaleidoError as exc:
                self.report(exc)

    def close(self) -> None:
        for tracker in self.trackers.values():
            tracker.remove()
        self.trackers.clear()
        if self._jit is not None:
            self._jit.close()
            self._jit = None

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["Session"]
