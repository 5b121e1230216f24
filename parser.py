from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np

from errors import UnbalancedParenthesesError
from lexer import Lexer, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass(frozen=True)
class Symbol:
    name: str


@dataclass(frozen=True)
class Number:
    value: float


Atom = Union[Symbol, Number]


class Node:
    location: Optional[SourceLocation]


@dataclass
class Leaf(Node):
    atom: Atom
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)


@dataclass
class Body(Node):
    items: List[Node] = field(default_factory=list)
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)


# Same grammar as a double-precision literal: sign, digits with an optional
# fraction and exponent, or inf/infinity/nan. ASCII digits only.
_FLOAT_LITERAL = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|infinity|nan)",
    re.IGNORECASE | re.ASCII,
)


def classify_atom(text: str) -> Atom:
    if _FLOAT_LITERAL.fullmatch(text):
        return Number(np.float64(text))
    return Symbol(text)


class Parser:
    def __init__(self, tokens: List[Token], filename: str = "<string>", source_lines: Optional[List[str]] = None):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []

    def parse(self) -> List[Node]:
        # stack[0] is the implicit top-level body; each "(" pushes a new one.
        stack: List[Body] = [Body()]
        for token in self.tokens:
            if token.type == "LPAREN":
                stack.append(Body(location=self._location_from_token(token)))
                continue
            if token.type == "RPAREN":
                if len(stack) == 1:
                    raise UnbalancedParenthesesError(
                        f"Unexpected ')' at {self.filename}:{token.line}:{token.column}",
                        location=self._location_from_token(token),
                    )
                finished = stack.pop()
                stack[-1].items.append(finished)
                continue
            leaf = Leaf(classify_atom(token.value), location=self._location_from_token(token))
            stack[-1].items.append(leaf)

        if len(stack) != 1:
            unclosed = stack[-1].location
            where = f"{unclosed.file}:{unclosed.line}:{unclosed.column}" if unclosed else self.filename
            raise UnbalancedParenthesesError(f"Unclosed '(' opened at {where}", location=unclosed)
        return stack[0].items

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_text = ""
        if 0 < token.line <= len(self.source_lines):
            line_text = self.source_lines[token.line - 1].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=line_text)


def parse(text: str, filename: str = "<string>") -> List[Node]:
    tokens = Lexer(text, filename).tokenize()
    return Parser(tokens, filename, text.splitlines()).parse()
