from __future__ import annotations

from typing import Iterator, List, Mapping, Optional

from .ast import (
    ANON_EXPR_NAME,
    Binary,
    Call,
    CompileUnit,
    Expr,
    For,
    Function,
    If,
    Located,
    Number,
    Prototype,
    Variable,
)
from .diagnostics import ParseError
from .lexer import Lexer, Token, TokenKind

# Binary operator precedence; higher binds tighter.
BINOP_PRECEDENCE: Mapping[str, int] = {
    "<": 10,
    "+": 20,
    "-": 20,
    "*": 40,
}


class Parser:
    """Recursive-descent parser with operator-precedence climbing.

    The parser holds exactly one token of lookahead (`cur_tok`). Callers prime
    it with `get_next_token()` before the first `parse_*` call; `Parser.from_source`
    does that for you.
    """

    def __init__(self, lexer: Lexer, precedence: Optional[Mapping[str, int]] = None) -> None:
        self.lexer = lexer
        self.precedence: Mapping[str, int] = dict(BINOP_PRECEDENCE if precedence is None else precedence)
        self._cur_tok: Optional[Token] = None

    @classmethod
    def from_source(cls, source: str, precedence: Optional[Mapping[str, int]] = None) -> "Parser":
        parser = cls(Lexer(source), precedence)
        parser.get_next_token()
        return parser

    # --- token buffer --------------------------------------------------

    @property
    def cur_tok(self) -> Token:
        if self._cur_tok is None:
            raise RuntimeError("parser has no current token; call get_next_token() first")
        return self._cur_tok

    def get_next_token(self) -> Token:
        self._cur_tok = self.lexer.gettok()
        return self._cur_tok

    def _loc(self) -> Located:
        tok = self.cur_tok
        return Located(tok.line or 0, tok.column or 0)

    def _error(self, message: str) -> ParseError:
        return ParseError(message, self.cur_tok, code="syntax")

    def _tok_precedence(self) -> int:
        tok = self.cur_tok
        if tok.kind is not TokenKind.CHAR:
            return -1
        return self.precedence.get(tok.value, -1)

    def _expect_char(self, ch: str, message: str) -> None:
        if not self.cur_tok.is_char(ch):
            raise self._error(message)
        self.get_next_token()

    def _expect(self, kind: TokenKind, message: str) -> None:
        if self.cur_tok.kind is not kind:
            raise self._error(message)
        self.get_next_token()

    # --- primary expressions -------------------------------------------

    def parse_number_expr(self) -> Number:
        """numberexpr ::= number"""
        loc = self._loc()
        value = self.cur_tok.value
        self.get_next_token()
        return Number(float(value), loc=loc)

    def parse_paren_expr(self) -> Expr:
        """parenexpr ::= '(' expression ')'"""
        self.get_next_token()
        expr = self.parse_expression()
        self._expect_char(")", "expected ')'")
        return expr

    def parse_identifier_expr(self) -> Expr:
        """
        identifierexpr
          ::= identifier
          ::= identifier '(' expression (',' expression)* ')'
        """
        loc = self._loc()
        name = self.cur_tok.value
        self.get_next_token()

        if not self.cur_tok.is_char("("):
            return Variable(name, loc=loc)

        self.get_next_token()
        args: List[Expr] = []
        if not self.cur_tok.is_char(")"):
            while True:
                args.append(self.parse_expression())
                if self.cur_tok.is_char(")"):
                    break
                if not self.cur_tok.is_char(","):
                    raise self._error("expected ')' or ',' in argument list")
                self.get_next_token()
        self.get_next_token()
        return Call(name, tuple(args), loc=loc)

    def parse_if_expr(self) -> If:
        """ifexpr ::= 'if' expression 'then' expression 'else' expression"""
        loc = self._loc()
        self.get_next_token()
        cond = self.parse_expression()
        self._expect(TokenKind.THEN, "expected 'then'")
        then = self.parse_expression()
        self._expect(TokenKind.ELSE, "expected 'else'")
        else_ = self.parse_expression()
        return If(cond, then, else_, loc=loc)

    def parse_for_expr(self) -> For:
        """forexpr ::= 'for' identifier '=' expr ',' expr (',' expr)? 'in' expression"""
        loc = self._loc()
        self.get_next_token()
        if self.cur_tok.kind is not TokenKind.IDENTIFIER:
            raise self._error("expected identifier after 'for'")
        var = self.cur_tok.value
        self.get_next_token()

        self._expect_char("=", "expected '=' after for variable")
        start = self.parse_expression()
        self._expect_char(",", "expected ',' after for start value")
        end = self.parse_expression()

        step: Optional[Expr] = None
        if self.cur_tok.is_char(","):
            self.get_next_token()
            step = self.parse_expression()

        self._expect(TokenKind.IN, "expected 'in' after for")
        body = self.parse_expression()
        return For(var, start, end, step, body, loc=loc)

    def parse_primary(self) -> Expr:
        """
        primary
          ::= identifierexpr
          ::= numberexpr
          ::= parenexpr
          ::= ifexpr
          ::= forexpr
        """
        tok = self.cur_tok
        if tok.kind is TokenKind.IDENTIFIER:
            return self.parse_identifier_expr()
        if tok.kind is TokenKind.NUMBER:
            return self.parse_number_expr()
        if tok.is_char("("):
            return self.parse_paren_expr()
        if tok.kind is TokenKind.IF:
            return self.parse_if_expr()
        if tok.kind is TokenKind.FOR:
            return self.parse_for_expr()
        raise self._error("unknown token when expecting an expression")

    # --- binary expressions --------------------------------------------

    def parse_expression(self) -> Expr:
        """expression ::= primary binoprhs"""
        lhs = self.parse_primary()
        return self.parse_bin_op_rhs(0, lhs)

    def parse_bin_op_rhs(self, expr_prec: int, lhs: Expr) -> Expr:
        """binoprhs ::= (binop primary)*"""
        while True:
            tok_prec = self._tok_precedence()
            if tok_prec < expr_prec:
                return lhs

            loc = self._loc()
            binop = self.cur_tok.value
            self.get_next_token()

            rhs = self.parse_primary()
            # lhs BINOP1 rhs BINOP2 remrhs: if BINOP2 binds tighter, it takes rhs first.
            if tok_prec < self._tok_precedence():
                rhs = self.parse_bin_op_rhs(tok_prec + 1, rhs)

            lhs = Binary(binop, lhs, rhs, loc=loc)

    # --- top-level constructs ------------------------------------------

    def parse_prototype(self) -> Prototype:
        """
        prototype ::= id '(' (id (','? id)*)? ')'

        Parameter names may be separated by whitespace or by commas.
        """
        if self.cur_tok.kind is not TokenKind.IDENTIFIER:
            raise self._error("expected function name in prototype")
        loc = self._loc()
        name = self.cur_tok.value
        self.get_next_token()

        if not self.cur_tok.is_char("("):
            raise self._error("expected '(' in prototype")
        self.get_next_token()

        params: List[str] = []
        while self.cur_tok.kind is TokenKind.IDENTIFIER:
            if self.cur_tok.value in params:
                raise self._error("duplicate parameter name in prototype")
            params.append(self.cur_tok.value)
            if self.get_next_token().is_char(","):
                if self.get_next_token().kind is not TokenKind.IDENTIFIER:
                    raise self._error("expected parameter name after ','")

        if not self.cur_tok.is_char(")"):
            raise self._error("expected ')' in prototype")
        self.get_next_token()
        return Prototype(name, tuple(params), loc=loc)

    def parse_definition(self) -> Function:
        """definition ::= 'def' prototype expression"""
        self.get_next_token()
        proto = self.parse_prototype()
        body = self.parse_expression()
        return Function(proto, body)

    def parse_extern(self) -> Prototype:
        """external ::= 'extern' prototype"""
        self.get_next_token()
        return self.parse_prototype()

    def parse_top_level_expr(self) -> Function:
        """toplevelexpr ::= expression"""
        loc = self._loc()
        body = self.parse_expression()
        return Function(Prototype(ANON_EXPR_NAME, (), loc=loc), body)

    def parse_unit(self) -> Optional[CompileUnit]:
        """Parse the next top-level construct; None at end of input.

        Stray ';' separators between constructs are skipped.
        """
        while self.cur_tok.is_char(";"):
            self.get_next_token()
        kind = self.cur_tok.kind
        if kind is TokenKind.EOF:
            return None
        if kind is TokenKind.DEF:
            return self.parse_definition()
        if kind is TokenKind.EXTERN:
            return self.parse_extern()
        return self.parse_top_level_expr()


def parse_units(source: str, precedence: Optional[Mapping[str, int]] = None) -> Iterator[CompileUnit]:
    """Yield every top-level unit of `source`; the first syntax error propagates."""
    parser = Parser.from_source(source, precedence)
    while True:
        unit = parser.parse_unit()
        if unit is None:
            return
        yield unit


__all__ = ["BINOP_PRECEDENCE", "Parser", "parse_units"]
