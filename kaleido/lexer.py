from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from lark import Lark
from lark import Token as LarkToken

_GRAMMAR_PATH = Path(__file__).with_name("tokens.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_LEXER = Lark(
    _GRAMMAR_SRC,
    parser="lalr",
    lexer="basic",
    start="start",
    propagate_positions=True,
)


class TokenKind(enum.Enum):
    EOF = "eof"
    DEF = "def"
    EXTERN = "extern"
    IF = "if"
    THEN = "then"
    ELSE = "else"
    FOR = "for"
    IN = "in"
    IDENTIFIER = "identifier"
    NUMBER = "number"
    CHAR = "char"


KEYWORDS = {
    "DEF": TokenKind.DEF,
    "EXTERN": TokenKind.EXTERN,
    "IF": TokenKind.IF,
    "THEN": TokenKind.THEN,
    "ELSE": TokenKind.ELSE,
    "FOR": TokenKind.FOR,
    "IN": TokenKind.IN,
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Union[str, float, None] = None
    line: Optional[int] = None
    column: Optional[int] = None

    def is_char(self, ch: str) -> bool:
        return self.kind is TokenKind.CHAR and self.value == ch

    def describe(self) -> str:
        if self.kind is TokenKind.EOF:
            return "end of input"
        if self.kind in (TokenKind.IDENTIFIER, TokenKind.CHAR):
            return f"'{self.value}'"
        if self.kind is TokenKind.NUMBER:
            return repr(self.value)
        return f"'{self.kind.value}'"


def _number(lexeme: str) -> float:
    # `[0-9.]+` admits lexemes like "1.2.3"; those read as 0.0.
    try:
        return float(lexeme)
    except ValueError:
        return 0.0


def _convert(tok: LarkToken) -> Token:
    ttype = tok.type
    if ttype in KEYWORDS:
        return Token(KEYWORDS[ttype], None, tok.line, tok.column)
    if ttype == "IDENTIFIER":
        return Token(TokenKind.IDENTIFIER, str(tok), tok.line, tok.column)
    if ttype == "NUMBER":
        return Token(TokenKind.NUMBER, _number(str(tok)), tok.line, tok.column)
    return Token(TokenKind.CHAR, str(tok), tok.line, tok.column)


def tokenize(source: str) -> Iterator[Token]:
    """Yield every token of `source`, ending with a single EOF token."""
    line, column = 1, 1
    for tok in _LEXER.lex(source):
        line, column = tok.end_line or line, tok.end_column or column
        yield _convert(tok)
    yield Token(TokenKind.EOF, None, line, column)


class Lexer:
    """Pull-style lexer: `gettok()` returns the next token, then EOF forever."""

    def __init__(self, source: str) -> None:
        self._tokens = tokenize(source)
        self._eof: Optional[Token] = None

    def gettok(self) -> Token:
        if self._eof is not None:
            return self._eof
        tok = next(self._tokens)
        if tok.kind is TokenKind.EOF:
            self._eof = tok
        return tok

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.gettok()
            yield tok
            if tok.kind is TokenKind.EOF:
                return


__all__ = ["Lexer", "Token", "TokenKind", "tokenize"]
