"""
AST → LLVM IR lowering (one top-level construct per module).

Every value in the language is a double, so every function is
`double name(double, ...)`. Control flow is lowered straight to SSA: `if`
merges its branches with a phi in the join block, `for` carries its induction
variable in a phi at the loop header. No allocas are emitted.

Functions defined in earlier modules are re-declared on demand from the
session's `PrototypeRegistry`; that is what lets every construct live in its own
module while still calling everything defined before it.
"""

from __future__ import annotations

from typing import Optional

from llvmlite import binding as llvm  # type: ignore
from llvmlite import ir  # type: ignore

from . import ast
from .backend import F64, function_type, verify_module
from .diagnostics import BackendError, CodegenError
from .registry import PrototypeRegistry
from .scope import Environment


def _const(value: float) -> ir.Constant:
    return ir.Constant(F64, value)


class CodeGenerator:
    def __init__(self, module: ir.Module, registry: PrototypeRegistry) -> None:
        self.module = module
        self.registry = registry
        self.builder = ir.IRBuilder()
        self.env = Environment()
        # Verified LLVM module of the last successfully lowered definition.
        self.llmod: Optional[llvm.ModuleRef] = None

    def compile(self, unit: ast.CompileUnit) -> ir.Function:
        if isinstance(unit, ast.Function):
            return self._codegen_function(unit)
        if isinstance(unit, ast.Prototype):
            return self._codegen_prototype(unit)
        raise TypeError(f"cannot compile {type(unit).__name__}")

    # --- declarations ----------------------------------------------------

    def _existing(self, name: str) -> Optional[ir.Function]:
        fn = self.module.globals.get(name)
        return fn if isinstance(fn, ir.Function) else None

    def _declare(self, proto: ast.Prototype) -> ir.Function:
        """Return this module's declaration for `proto`, creating it if needed."""
        fn = self._existing(proto.name)
        if fn is not None:
            if len(fn.args) != proto.arity:
                raise CodegenError(
                    f"function '{proto.name}' redeclared with a different number of arguments",
                    proto.loc,
                    code="redeclaration",
                )
            return fn
        fn = ir.Function(self.module, function_type(proto.arity), name=proto.name)
        for arg, param in zip(fn.args, proto.params):
            arg.name = param
        return fn

    def _get_function(self, name: str) -> Optional[ir.Function]:
        """Resolve `name` in this module, falling back to the registry."""
        fn = self._existing(name)
        if fn is not None:
            return fn
        proto = self.registry.lookup(name)
        if proto is None:
            return None
        return self._declare(proto)

    def _codegen_prototype(self, proto: ast.Prototype) -> ir.Function:
        fn = self._declare(proto)
        self.registry.declare(proto)
        return fn

    def _codegen_function(self, func: ast.Function) -> ir.Function:
        proto = func.proto
        # Registered before the body is lowered so recursive calls resolve. A body
        # that fails to lower leaves the prototype registered.
        self.registry.declare(proto)
        fn = self._declare(proto)

        if fn.blocks:
            raise CodegenError(
                f"function cannot be redefined: '{proto.name}'", proto.loc, code="redefinition"
            )

        entry = fn.append_basic_block(name="entry")
        self.builder.position_at_end(entry)

        self.env = Environment()
        for param, arg in zip(proto.params, fn.args):
            self.env.bind(param, arg)

        try:
            ret = self._codegen_expr(func.body)
            self.builder.ret(ret)
            try:
                self.llmod = verify_module(self.module)
            except BackendError as exc:
                raise CodegenError(exc.message, proto.loc, code="verify") from exc
        except CodegenError:
            # Drop the half-built body; the declaration itself stays in the module.
            del fn.blocks[:]
            raise

        return fn

    # --- expressions ---------------------------------------------------

    def _codegen_expr(self, expr: ast.Expr) -> ir.Value:
        if isinstance(expr, ast.Number):
            return _const(expr.value)
        if isinstance(expr, ast.Variable):
            return self._codegen_variable(expr)
        if isinstance(expr, ast.Binary):
            return self._codegen_binary(expr)
        if isinstance(expr, ast.Call):
            return self._codegen_call(expr)
        if isinstance(expr, ast.If):
            return self._codegen_if(expr)
        if isinstance(expr, ast.For):
            return self._codegen_for(expr)
        raise CodegenError(f"unsupported expression {type(expr).__name__}", getattr(expr, "loc", None))

    def _codegen_variable(self, expr: ast.Variable) -> ir.Value:
        value = self.env.lookup(expr.name)
        if value is None:
            raise CodegenError(
                f"unknown variable name '{expr.name}'", expr.loc, code="unknown-variable"
            )
        return value

    def _codegen_binary(self, expr: ast.Binary) -> ir.Value:
        lhs = self._codegen_expr(expr.lhs)
        rhs = self._codegen_expr(expr.rhs)

        if expr.op == "+":
            return self.builder.fadd(lhs, rhs, name="addtmp")
        if expr.op == "-":
            return self.builder.fsub(lhs, rhs, name="subtmp")
        if expr.op == "*":
            return self.builder.fmul(lhs, rhs, name="multmp")
        if expr.op == "<":
            cmp = self.builder.fcmp_unordered("<", lhs, rhs, name="cmptmp")
            # i1 -> 0.0 / 1.0
            return self.builder.uitofp(cmp, F64, name="booltmp")
        raise CodegenError(
            f"invalid binary operator '{expr.op}'", expr.loc, code="invalid-operator"
        )

    def _codegen_call(self, expr: ast.Call) -> ir.Value:
        callee = self._get_function(expr.callee)
        if callee is None:
            raise CodegenError(
                f"unknown function referenced: '{expr.callee}'", expr.loc, code="unknown-function"
            )
        if len(callee.args) != len(expr.args):
            raise CodegenError(
                f"incorrect number of arguments passed to '{expr.callee}': "
                f"expected {len(callee.args)}, got {len(expr.args)}",
                expr.loc,
                code="arity-mismatch",
            )
        args = [self._codegen_expr(arg) for arg in expr.args]
        return self.builder.call(callee, args, name="calltmp")

    def _codegen_if(self, expr: ast.If) -> ir.Value:
        #         ; cond
        #         br
        #    +-----+------+
        #    v            v
        #  ; then       ; else
        #    +-----+------+
        #          v
        #        ; ifcont
        #        phi then, else
        cond = self._codegen_expr(expr.cond)
        cond_v = self.builder.fcmp_ordered("!=", cond, _const(0.0), name="ifcond")

        the_function = self.builder.function
        then_bb = the_function.append_basic_block(name="then")
        # Created detached; appended once the preceding branch has been emitted.
        else_bb = ir.Block(the_function, name="else")
        merge_bb = ir.Block(the_function, name="ifcont")

        self.builder.cbranch(cond_v, then_bb, else_bb)

        self.builder.position_at_end(then_bb)
        then_v = self._codegen_expr(expr.then)
        self.builder.branch(merge_bb)
        # Nested control flow may have moved us to a later block.
        then_bb = self.builder.block

        the_function.blocks.append(else_bb)
        self.builder.position_at_end(else_bb)
        else_v = self._codegen_expr(expr.else_)
        self.builder.branch(merge_bb)
        else_bb = self.builder.block

        the_function.blocks.append(merge_bb)
        self.builder.position_at_end(merge_bb)
        phi = self.builder.phi(F64, name="iftmp")
        phi.add_incoming(then_v, then_bb)
        phi.add_incoming(else_v, else_bb)
        return phi

    def _codegen_for(self, expr: ast.For) -> ir.Value:
        # entry:
        #   start = ...
        #   br loop
        # loop:
        #   var = phi [start, entry], [nextvar, loop-exit]
        #   body; nextvar = var + step; cond = end != 0
        #   br cond, loop, afterloop
        # afterloop:
        start_val = self._codegen_expr(expr.start)

        the_function = self.builder.function
        preheader_bb = self.builder.block
        loop_bb = the_function.append_basic_block(name="loop")

        self.builder.branch(loop_bb)
        self.builder.position_at_end(loop_bb)

        variable = self.builder.phi(F64, name=expr.var)
        variable.add_incoming(start_val, preheader_bb)

        with self.env.scope():
            self.env.bind(expr.var, variable)

            # The body's value is discarded.
            self._codegen_expr(expr.body)

            if expr.step is not None:
                step_val = self._codegen_expr(expr.step)
            else:
                step_val = _const(1.0)
            next_var = self.builder.fadd(variable, step_val, name="nextvar")

            end_val = self._codegen_expr(expr.end)
            end_cond = self.builder.fcmp_ordered("!=", end_val, _const(0.0), name="loopcond")

        loop_end_bb = self.builder.block
        after_bb = the_function.append_basic_block(name="afterloop")
        variable.add_incoming(next_var, loop_end_bb)
        self.builder.cbranch(end_cond, loop_bb, after_bb)
        self.builder.position_at_end(after_bb)

        return _const(0.0)


def compile(unit: ast.CompileUnit, registry: PrototypeRegistry, module: ir.Module) -> ir.Function:
    """Lower one prototype or function into `module`.

    Returns the LLVM function; raises CodegenError with a machine-oriented
    `code` on failure.
    """
    return CodeGenerator(module, registry).compile(unit)


__all__ = ["CodeGenerator", "compile"]
