"""Kaleidoscope front end: lexer, parser, LLVM code generator and JIT session."""

__version__ = "0.1.0"
