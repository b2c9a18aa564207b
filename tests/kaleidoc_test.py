from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

pytest.importorskip("llvmlite")

from kaleido.ast_printer import format_unit
from kaleido.kaleidoc import main
from kaleido.parser import parse_units


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "prog.kal"
    path.write_text(text)
    return path


def test_run_prints_results(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "def f(x) x + 1\nf(2)\nf(f(2))\n")
    assert main([str(path)]) == 0
    out = capsys.readouterr()
    assert out.out.splitlines() == ["Evaluated to 3.000000", "Evaluated to 4.000000"]
    assert out.err == ""


def test_errors_go_to_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "foo(1)\n2\n")
    assert main([str(path)]) == 1
    out = capsys.readouterr()
    assert out.out.splitlines() == ["Evaluated to 2.000000"]
    assert out.err.strip() == f"{path}:1:1: error: unknown function referenced: 'foo'"


def test_json_diagnostics(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "def f(x) (x\n")
    assert main([str(path), "--json"]) == 1
    payload = json.loads(capsys.readouterr().err)
    assert payload["exit_code"] == 1
    (diag,) = payload["diagnostics"]
    assert diag["phase"] == "parser"
    assert diag["message"] == "expected ')'"
    assert diag["file"] == str(path)


def test_json_clean_run(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "1 + 1\n")
    assert main([str(path), "--json"]) == 0
    payload = json.loads(capsys.readouterr().err)
    assert payload == {"exit_code": 0, "diagnostics": []}


def test_dump_ast(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "extern sin(x)\ndef f(x y) if x < y then sin(x) else for i = 0, i < y, 2 in i\nf(1, 2)\n")
    assert main([str(path), "--dump-ast"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "(extern sin (x))",
        "(def f (x y) (if (< x y) (call sin x) (for i 0.0 (< i y) :step 2.0 i)))",
        "(toplevel (call f 1.0 2.0))",
    ]


def test_dump_ast_reports_syntax_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "def 1")
    assert main([str(path), "--dump-ast"]) == 1
    assert "expected function name in prototype" in capsys.readouterr().err


def test_emit_ir(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, "def f(x) x * 2\n")
    assert main([str(path), "--emit-ir", "-O", "0"]) == 0
    assert "define double @f" in capsys.readouterr().out


def test_reads_stdin(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("2 * 21"))
    assert main([]) == 0
    assert capsys.readouterr().out.strip() == "Evaluated to 42.000000"


def test_rejects_unknown_opt_level(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main([str(_write(tmp_path, "1")), "-O", "9"])


def test_format_unit_definition() -> None:
    (unit,) = parse_units("def g(a) a * (a - 1)")
    assert format_unit(unit) == "(def g (a) (* a (- a 1.0)))"
