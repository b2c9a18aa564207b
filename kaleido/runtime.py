"""Host functions callable from JIT-compiled code.

Kaleidoscope programs reach these through ordinary declarations, e.g.

    extern putchard(char)
    extern printd(x)
"""

from __future__ import annotations

import ctypes
import sys
from typing import Dict

from llvmlite import binding as llvm  # type: ignore

_DOUBLE_FN = ctypes.CFUNCTYPE(ctypes.c_double, ctypes.c_double)


def _putchard(x: float) -> float:
    sys.stdout.write(chr(int(x) & 0xFF))
    sys.stdout.flush()
    return 0.0


def _printd(x: float) -> float:
    sys.stdout.write(f"{x:f}\n")
    sys.stdout.flush()
    return 0.0


# The ctypes thunks must stay referenced for as long as JIT code may call them.
BUILTINS: Dict[str, object] = {
    "putchard": _DOUBLE_FN(_putchard),
    "printd": _DOUBLE_FN(_printd),
}

_installed = False


def install() -> None:
    """Make the builtins resolvable by name for every execution engine."""
    global _installed
    if _installed:
        return
    for name, thunk in BUILTINS.items():
        llvm.add_symbol(name, ctypes.cast(thunk, ctypes.c_void_p).value)
    _installed = True


__all__ = ["BUILTINS", "install"]
