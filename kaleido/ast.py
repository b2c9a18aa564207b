from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Located:
    line: int
    column: int


class Expr:
    loc: Optional[Located]


@dataclass(frozen=True)
class Number(Expr):
    value: float
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Variable(Expr):
    name: str
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Binary(Expr):
    op: str
    lhs: Expr
    rhs: Expr
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Call(Expr):
    callee: str
    args: Tuple[Expr, ...] = ()
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class If(Expr):
    cond: Expr
    then: Expr
    else_: Expr
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class For(Expr):
    var: str
    start: Expr
    end: Expr
    step: Optional[Expr]
    body: Expr
    loc: Optional[Located] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Prototype:
    name: str
    params: Tuple[str, ...] = ()
    loc: Optional[Located] = field(default=None, compare=False, repr=False)

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass(frozen=True)
class Function:
    proto: Prototype
    body: Expr

    @property
    def name(self) -> str:
        return self.proto.name


# A single top-level construct handed to the code generator.
CompileUnit = Union[Prototype, Function]

# Identifiers are [a-zA-Z][a-zA-Z0-9]*, so this name never collides with user code.
ANON_EXPR_NAME = "__anon_expr"
