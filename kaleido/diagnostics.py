"""
Diagnostics and the compiler error hierarchy.

Every failure raised from inside the front end is a `KaleidoError`. Callers
that keep going after a failure (the session loop, the CLI) turn it into a
`Diagnostic` and move on to the next top-level construct.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
    """Best-effort source location (line/column plus the raw parser object)."""

    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    raw: Any = None

    @classmethod
    def from_loc(cls, loc: Any) -> "Span":
        if loc is None:
            return cls()
        if isinstance(loc, cls):
            return loc
        return cls(
            file=getattr(loc, "file", None),
            line=getattr(loc, "line", None),
            column=getattr(loc, "column", None),
            raw=loc,
        )

    def describe(self) -> str:
        if self.line is None:
            return "?:?"
        column = "?" if self.column is None else self.column
        return f"{self.line}:{column}"


@dataclass
class Diagnostic:
    """A reported compiler error (or warning)."""

    message: str
    code: str | None = None
    phase: str | None = None
    severity: str = "error"
    span: Span = field(default_factory=Span)
    notes: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.span is None:  # type: ignore[unreachable]
            self.span = Span()

    def render(self, source: str | None = None) -> str:
        prefix = f"{source}:" if source else ""
        return f"{prefix}{self.span.describe()}: {self.severity}: {self.message}"

    def to_json(self, source: str | None = None) -> dict:
        return {
            "phase": self.phase,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "file": self.span.file or source,
            "line": self.span.line,
            "column": self.span.column,
            "notes": list(self.notes),
        }


class KaleidoError(Exception):
    phase = "compile"

    def __init__(self, message: str, span: Any = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.span = Span.from_loc(span)
        self.code = code

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(message=self.message, code=self.code, phase=self.phase, span=self.span)


class ParseError(KaleidoError):
    phase = "parser"


class CodegenError(KaleidoError):
    phase = "codegen"


class BackendError(KaleidoError):
    phase = "backend"


__all__ = [
    "BackendError",
    "CodegenError",
    "Diagnostic",
    "KaleidoError",
    "ParseError",
    "Span",
]
