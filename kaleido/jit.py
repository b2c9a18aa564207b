"""
MCJIT wrapper with per-module retraction.

Each compiled unit is added to the engine as its own module and yields a
`ResourceTracker`. Removing the tracker retracts that module, which is how a
session replaces a redefined function and drops the anonymous module of a
top-level expression once it has been evaluated.
"""

from __future__ import annotations

import ctypes
from typing import Optional, Union

from llvmlite import binding as llvm  # type: ignore
from llvmlite import ir  # type: ignore

from . import runtime
from .backend import ensure_llvm, verify_module
from .diagnostics import BackendError


class ResourceTracker:
    """Handle for one module installed in a `KaleidoscopeJIT`."""

    def __init__(self, jit: "KaleidoscopeJIT", llmod: llvm.ModuleRef) -> None:
        self._jit = jit
        self._llmod: Optional[llvm.ModuleRef] = llmod
        self.name = llmod.name

    @property
    def released(self) -> bool:
        return self._llmod is None

    def remove(self) -> None:
        """Retract the module from the engine. Calling it again does nothing."""
        if self._llmod is None:
            return
        llmod, self._llmod = self._llmod, None
        self._jit._remove(llmod)

    def __enter__(self) -> "ResourceTracker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.remove()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"<ResourceTracker {self.name!r} {state}>"


class KaleidoscopeJIT:
    def __init__(self) -> None:
        ensure_llvm()
        runtime.install()
        # The engine takes ownership of both the target machine and the backing
        # module, so neither may be shared.
        tm = llvm.Target.from_default_triple().create_target_machine()
        self._engine = llvm.create_mcjit_compiler(llvm.parse_assembly(""), tm)
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise BackendError("JIT has been closed", code="jit-closed")

    def add_module(self, module: Union[ir.Module, llvm.ModuleRef]) -> ResourceTracker:
        """Install a module and return the tracker that can later retract it."""
        self._check_open()
        llmod = verify_module(module) if isinstance(module, ir.Module) else module
        self.check_resolvable(llmod)
        self._engine.add_module(llmod)
        self._engine.finalize_object()
        return ResourceTracker(self, llmod)

    def _remove(self, llmod: llvm.ModuleRef) -> None:
        if self._closed:
            return
        self._engine.remove_module(llmod)

    def check_resolvable(self, llmod: llvm.ModuleRef) -> None:
        """Raise BackendError if an external declaration of `llmod` cannot be resolved.

        MCJIT aborts the process on an unresolved external, so this runs before
        anything is handed to the engine.
        """
        self._check_open()
        for fn in llmod.functions:
            if fn.is_declaration and not fn.name.startswith("llvm.") and not self._resolves(fn.name):
                raise BackendError(
                    f"unresolved external symbol '{fn.name}'", code="unresolved-symbol"
                )

    def _resolves(self, name: str) -> bool:
        """True if `name` is defined by an installed module or by the host process."""
        return bool(self._engine.get_function_address(name) or llvm.address_of_symbol(name))

    def lookup(self, name: str) -> int:
        self._check_open()
        addr = self._engine.get_function_address(name)
        if not addr:
            raise BackendError(f"symbol '{name}' not found in JIT", code="unknown-symbol")
        return addr

    def call(self, name: str) -> float:
        """Call the zero-argument `double name()` function installed in the JIT."""
        fn = ctypes.CFUNCTYPE(ctypes.c_double)(self.lookup(name))
        return float(fn())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.close()


__all__ = ["KaleidoscopeJIT", "ResourceTracker"]
