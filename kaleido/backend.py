"""
LLVM plumbing shared by the code generator, the session and the JIT.

The code generator emits into `llvmlite.ir` modules (pure Python objects).
Verification and optimization need LLVM proper, so a finished module is
round-tripped through its textual IR into an `llvm.ModuleRef` here.
"""

from __future__ import annotations

from typing import Optional

from llvmlite import binding as llvm  # type: ignore
from llvmlite import ir  # type: ignore

from .diagnostics import BackendError

F64 = ir.DoubleType()

OPT_LEVELS = (0, 1, 2, 3)

_llvm_ready = False
_target_machine: Optional[llvm.TargetMachine] = None


def ensure_llvm() -> None:
    """Initialize LLVM's native target and asm printer (once per process)."""
    global _llvm_ready
    if _llvm_ready:
        return
    llvm.initialize_native_target()
    llvm.initialize_native_asmprinter()
    _llvm_ready = True


def target_machine() -> llvm.TargetMachine:
    global _target_machine
    if _target_machine is None:
        ensure_llvm()
        target = llvm.Target.from_default_triple()
        _target_machine = target.create_target_machine()
    return _target_machine


def new_module(name: str) -> ir.Module:
    """Create an empty compilation unit targeting the host."""
    tm = target_machine()
    module = ir.Module(name=name)
    module.triple = llvm.get_default_triple()
    module.data_layout = str(tm.target_data)
    return module


def function_type(arity: int) -> ir.FunctionType:
    """double(double, ...) with `arity` parameters."""
    return ir.FunctionType(F64, [F64] * arity)


def verify_module(module: ir.Module) -> llvm.ModuleRef:
    """Parse `module` into LLVM and run the verifier.

    Raises BackendError carrying the verifier output on failure.
    """
    ensure_llvm()
    try:
        llmod = llvm.parse_assembly(str(module))
        llmod.verify()
    except RuntimeError as exc:
        raise BackendError(f"module verification failed: {exc}", code="verify") from exc
    llmod.name = module.name
    return llmod


def optimize_module(llmod: llvm.ModuleRef, level: int = 2) -> None:
    """Run the per-function cleanup pipeline over every defined function.

    Level 0 leaves the module untouched. Levels 1-3 run instcombine,
    reassociate, newgvn and simplifycfg; from level 2 on the pipeline is wrapped
    in sroa and dce.
    """
    if level not in OPT_LEVELS:
        raise ValueError(f"unsupported optimization level {level}")
    if level == 0:
        return

    pto = llvm.PipelineTuningOptions(speed_level=level)
    pb = llvm.PassBuilder(target_machine(), pto)

    fpm = llvm.create_new_function_pass_manager()
    if level >= 2:
        fpm.add_sroa_pass()
    # Peephole and bit-twiddling.
    fpm.add_instruction_combine_pass()
    fpm.add_reassociate_pass()
    # Common subexpressions.
    fpm.add_new_gvn_pass()
    # Unreachable blocks, trivial branches.
    fpm.add_simplify_cfg_pass()
    if level >= 2:
        fpm.add_dead_code_elimination_pass()

    for fn in llmod.functions:
        if not fn.is_declaration:
            fpm.run(fn, pb)


__all__ = [
    "F64",
    "OPT_LEVELS",
    "ensure_llvm",
    "function_type",
    "new_module",
    "optimize_module",
    "target_machine",
    "verify_module",
]
