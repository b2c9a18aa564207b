from __future__ import annotations

import pytest

pytest.importorskip("llvmlite")

from llvmlite import ir  # type: ignore

from kaleido.ast import Binary, Function, Number, Prototype
from kaleido.backend import OPT_LEVELS, new_module, optimize_module, verify_module
from kaleido.codegen import CodeGenerator, compile
from kaleido.diagnostics import CodegenError
from kaleido.parser import parse_units
from kaleido.registry import PrototypeRegistry


def _unit(source: str):
    (unit,) = parse_units(source)
    return unit


def _compile(source: str, registry: PrototypeRegistry | None = None, module: ir.Module | None = None):
    registry = PrototypeRegistry() if registry is None else registry
    module = new_module("test") if module is None else module
    return compile(_unit(source), registry, module), registry, module


def _instrs(block: ir.Block, opname: str) -> list:
    return [instr for instr in block.instructions if instr.opname == opname]


def test_extern_declares_function_and_registers_it() -> None:
    fn, registry, module = _compile("extern sin(x)")
    assert fn.name == "sin"
    assert len(fn.args) == 1
    assert fn.blocks == []
    assert registry.lookup("sin") == Prototype("sin", ("x",))
    assert module.globals["sin"] is fn


def test_definition_is_straight_line_ir() -> None:
    fn, registry, module = _compile("def add(a b) a + b * 2")
    assert [b.name for b in fn.blocks] == ["entry"]
    assert [arg.name for arg in fn.args] == ["a", "b"]
    assert "add" in registry
    text = str(module)
    assert "fmul double" in text
    assert "fadd double" in text
    verify_module(module)


def test_less_than_yields_double() -> None:
    fn, _, module = _compile("def lt(a b) a < b")
    entry = fn.blocks[0]
    assert len(_instrs(entry, "fcmp")) == 1
    assert len(_instrs(entry, "uitofp")) == 1
    verify_module(module)


def test_if_merges_with_phi() -> None:
    fn, _, module = _compile("def f(x) if x < 1 then 2 else 3")
    assert [b.name for b in fn.blocks] == ["entry", "then", "else", "ifcont"]
    (phi,) = _instrs(fn.blocks[-1], "phi")
    assert phi.name == "iftmp"
    verify_module(module)


def test_nested_if_phi_uses_exit_blocks() -> None:
    fn, _, module = _compile("def f(x) if x then (if x < 2 then 1 else 2) else 3")
    # Outer then-branch ends in the inner join block, which is what the outer phi must name.
    outer_phi = _instrs(fn.blocks[-1], "phi")[0]
    incoming_blocks = [block for _, block in outer_phi.incomings]
    assert incoming_blocks[0].name.startswith("ifcont")
    verify_module(module)


def test_for_loop_shape_and_value() -> None:
    fn, _, module = _compile("def f(n) for i = 0, i < n in i")
    names = [b.name for b in fn.blocks]
    assert names == ["entry", "loop", "afterloop"]
    loop = fn.blocks[1]
    (phi,) = _instrs(loop, "phi")
    assert phi.name == "i"
    assert len(phi.incomings) == 2
    # Loop expressions evaluate to 0.0.
    (ret,) = _instrs(fn.blocks[-1], "ret")
    assert isinstance(ret.operands[0], ir.Constant)
    assert ret.operands[0].constant == 0.0
    verify_module(module)


def test_for_default_step_is_one() -> None:
    fn, _, _ = _compile("def f(n) for i = 0, i < n in i")
    (nextvar,) = [i for i in _instrs(fn.blocks[1], "fadd") if i.name == "nextvar"]
    assert nextvar.operands[1].constant == 1.0


def test_loop_variable_shadows_parameter_only_inside_loop() -> None:
    fn, _, module = _compile("def f(x) (for x = 1, x < 3 in x) + x")
    loop, after = fn.blocks[1], fn.blocks[2]
    (phi,) = _instrs(loop, "phi")
    (nextvar,) = [i for i in _instrs(loop, "fadd") if i.name == "nextvar"]
    assert nextvar.operands[0] is phi
    (addtmp,) = _instrs(after, "fadd")
    assert addtmp.operands[1] is fn.args[0]
    verify_module(module)


def test_call_redeclares_function_from_registry() -> None:
    registry = PrototypeRegistry()
    _compile("def sq(x) x * x", registry)
    other = new_module("other")
    fn, _, _ = _compile("def quad(x) sq(sq(x))", registry, other)
    decl = other.globals["sq"]
    assert decl.blocks == []
    assert len(_instrs(fn.blocks[0], "call")) == 2
    verify_module(other)


def test_recursive_call_resolves() -> None:
    _, _, module = _compile("def fib(x) if x < 3 then 1 else fib(x - 1) + fib(x - 2)")
    verify_module(module)


def test_same_extern_twice_in_one_module() -> None:
    registry = PrototypeRegistry()
    first, _, module = _compile("extern cos(x)", registry)
    second, _, _ = _compile("extern cos(x)", registry, module)
    assert first is second


def test_redeclaration_with_different_arity() -> None:
    registry = PrototypeRegistry()
    _, _, module = _compile("extern g(x)", registry)
    with pytest.raises(CodegenError) as info:
        _compile("extern g(x y)", registry, module)
    assert info.value.code == "redeclaration"


def test_definition_twice_in_one_module_is_rejected() -> None:
    registry = PrototypeRegistry()
    _, _, module = _compile("def f(x) x", registry)
    with pytest.raises(CodegenError) as info:
        _compile("def f(x) x + 1", registry, module)
    assert str(info.value) == "function cannot be redefined: 'f'"
    assert info.value.code == "redefinition"


def test_definition_in_separate_modules_is_allowed() -> None:
    registry = PrototypeRegistry()
    _compile("def f(x) x", registry)
    fn, _, module = _compile("def f(x) x + 1", registry)
    assert fn.blocks
    verify_module(module)


def test_unknown_variable() -> None:
    with pytest.raises(CodegenError) as info:
        _compile("def f(x) y")
    assert str(info.value) == "unknown variable name 'y'"
    assert info.value.code == "unknown-variable"
    assert info.value.phase == "codegen"
    assert (info.value.span.line, info.value.span.column) == (1, 10)


def test_unknown_function() -> None:
    with pytest.raises(CodegenError) as info:
        _compile("nope(1)")
    assert str(info.value) == "unknown function referenced: 'nope'"
    assert info.value.code == "unknown-function"


def test_arity_mismatch() -> None:
    registry = PrototypeRegistry()
    _compile("extern f(x)", registry)
    with pytest.raises(CodegenError) as info:
        _compile("f(1, 2)", registry)
    assert str(info.value) == "incorrect number of arguments passed to 'f': expected 1, got 2"
    assert info.value.code == "arity-mismatch"


def test_invalid_binary_operator() -> None:
    fn = Function(Prototype("h", ()), Binary("/", Number(1.0), Number(2.0)))
    with pytest.raises(CodegenError) as info:
        compile(fn, PrototypeRegistry(), new_module("test"))
    assert str(info.value) == "invalid binary operator '/'"
    assert info.value.code == "invalid-operator"


def test_failed_body_leaves_declaration_and_registration() -> None:
    registry = PrototypeRegistry()
    module = new_module("test")
    with pytest.raises(CodegenError):
        _compile("def g(a) a + missing", registry, module)
    assert registry.lookup("g") == Prototype("g", ("a",))
    assert module.globals["g"].blocks == []
    verify_module(module)


@pytest.mark.parametrize("level", OPT_LEVELS)
def test_optimized_module_still_verifies(level: int) -> None:
    _, _, module = _compile("def f(x) (x + 0) * 1 + if x < 1 then x else x")
    llmod = verify_module(module)
    optimize_module(llmod, level)
    llmod.verify()
    assert not llmod.get_function("f").is_declaration


def test_optimize_rejects_unknown_level() -> None:
    _, _, module = _compile("def f(x) x")
    with pytest.raises(ValueError):
        optimize_module(verify_module(module), 7)


def test_parameters_do_not_leak_between_functions() -> None:
    gen = CodeGenerator(new_module("test"), PrototypeRegistry())
    gen.compile(_unit("def f(x) x"))
    with pytest.raises(CodegenError) as info:
        gen.compile(_unit("def g(y) x"))
    assert info.value.code == "unknown-variable"


def test_generator_keeps_verified_module() -> None:
    gen = CodeGenerator(new_module("test"), PrototypeRegistry())
    gen.compile(_unit("extern sin(x)"))
    assert gen.llmod is None
    gen.compile(_unit("def f(x) sin(x) + 1"))
    assert gen.llmod is not None
    assert not gen.llmod.get_function("f").is_declaration
    assert gen.llmod.get_function("sin").is_declaration
