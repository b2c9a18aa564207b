from __future__ import annotations

from . import ast


def format_expr(expr: ast.Expr) -> str:
    if isinstance(expr, ast.Number):
        return repr(expr.value)
    if isinstance(expr, ast.Variable):
        return expr.name
    if isinstance(expr, ast.Binary):
        return f"({expr.op} {format_expr(expr.lhs)} {format_expr(expr.rhs)})"
    if isinstance(expr, ast.Call):
        args = "".join(f" {format_expr(arg)}" for arg in expr.args)
        return f"(call {expr.callee}{args})"
    if isinstance(expr, ast.If):
        return f"(if {format_expr(expr.cond)} {format_expr(expr.then)} {format_expr(expr.else_)})"
    if isinstance(expr, ast.For):
        step = f" :step {format_expr(expr.step)}" if expr.step is not None else ""
        return (
            f"(for {expr.var} {format_expr(expr.start)} {format_expr(expr.end)}{step} "
            f"{format_expr(expr.body)})"
        )
    return "<invalid expr>"


def format_prototype(proto: ast.Prototype) -> str:
    return f"{proto.name} ({' '.join(proto.params)})"


def format_unit(unit: ast.CompileUnit) -> str:
    if isinstance(unit, ast.Prototype):
        return f"(extern {format_prototype(unit)})"
    if unit.name == ast.ANON_EXPR_NAME:
        return f"(toplevel {format_expr(unit.body)})"
    return f"(def {format_prototype(unit.proto)} {format_expr(unit.body)})"
