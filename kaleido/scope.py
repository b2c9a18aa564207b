"""Name environment used while lowering one function body.

Bindings live in a stack of scopes. The function's parameters form the
outermost scope; a `for` loop pushes a scope for its induction variable, so a
loop variable that reuses a parameter name shadows it only until the scope is
popped.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from llvmlite import ir  # type: ignore


class Environment:
    def __init__(self) -> None:
        self._scopes: List[Dict[str, ir.Value]] = [{}]

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def bind(self, name: str, value: ir.Value) -> None:
        """Bind `name` in the innermost scope (rebinding there replaces it)."""
        self._scopes[-1][name] = value

    def lookup(self, name: str) -> Optional[ir.Value]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def __contains__(self, name: object) -> bool:
        return any(name in scope for scope in self._scopes)

    def push(self) -> None:
        self._scopes.append({})

    def pop(self) -> None:
        if len(self._scopes) == 1:
            raise RuntimeError("cannot pop the function scope")
        self._scopes.pop()

    @contextmanager
    def scope(self) -> Iterator["Environment"]:
        self.push()
        try:
            yield self
        finally:
            self.pop()
