"""
Parser for the textual filter syntax.

Lets filters be written as strings (CLI flags, config, request payloads)
and turns them into the same expression tree the builder functions produce:

    author == 'A' && (year >= 2020 || type IN ['post', 'page'])

Grammar (keywords are case-insensitive):

    expr       := or_expr
    or_expr    := and_expr (("||" | "OR") and_expr)*
    and_expr   := primary (("&&" | "AND") primary)*
    primary    := "(" expr ")" | comparison
    comparison := field ("==" | "!=" | "<" | "<=" | ">" | ">=") literal
                | field ("IN" | "NIN" | "NOT IN") "[" literal ("," literal)* "]"
    field      := IDENT | KEYWORD
    literal    := 'string' | "string" | number | true | false

A keyword (and, or, in, nin, not, true, false) is read as a field name when
it stands where a field is expected and a comparison operator follows it, so
`in == 'x' && not IN [1]` compares the fields "in" and "not".
"""

import re
from dataclasses import dataclass
from typing import Any

from docvector.exceptions import FilterSyntaxError
from docvector.filters.expression import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    Logical,
    LogicalOperator,
)

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<op>==|!=|<=|>=|<|>|&&|\|\|)
  | (?P<punct>[()\[\],])
  | (?P<ident>[A-Za-z_][A-Za-z0-9_.]*)
    """,
    re.VERBOSE,
)

_COMPARISON_OPS = {
    "==": ComparisonOperator.EQ,
    "!=": ComparisonOperator.NE,
    "<": ComparisonOperator.LT,
    "<=": ComparisonOperator.LTE,
    ">": ComparisonOperator.GT,
    ">=": ComparisonOperator.GTE,
}

_ESCAPE_RE = re.compile(r"\\(.)")


@dataclass(frozen=True)
class _Token:
    kind: str  # string, number, op, punct, ident, keyword, end
    text: str
    position: int
    raw: str = ""


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise FilterSyntaxError(f"Unexpected character {text[pos]!r}", pos)
        kind = match.lastgroup
        value = match.group()
        if kind == "ident" and value.upper() in {"AND", "OR", "IN", "NIN", "NOT", "TRUE", "FALSE"}:
            tokens.append(_Token("keyword", value.upper(), pos, value))
        elif kind != "ws":
            tokens.append(_Token(kind, value, pos))
        pos = match.end()
    tokens.append(_Token("end", "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self._tokens = _tokenize(text)
        self._index = 0

    @property
    def _current(self) -> _Token:
        return self._tokens[self._index]

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, kind: str, *texts: str) -> _Token | None:
        token = self._current
        if token.kind == kind and (not texts or token.text in texts):
            return self._advance()
        return None

    def _expect(self, kind: str, text: str, what: str) -> _Token:
        token = self._accept(kind, text)
        if token is None:
            found = self._current.text or "end of input"
            raise FilterSyntaxError(f"Expected {what}, found {found!r}", self._current.position)
        return token

    def parse(self) -> FilterExpression:
        expr = self._or_expr()
        if self._current.kind != "end":
            raise FilterSyntaxError(
                f"Unexpected token {self._current.text!r}", self._current.position
            )
        return expr

    def _or_expr(self) -> FilterExpression:
        operands = [self._and_expr()]
        while self._accept("op", "||") or self._accept("keyword", "OR"):
            operands.append(self._and_expr())
        if len(operands) == 1:
            return operands[0]
        return Logical(op=LogicalOperator.OR, operands=tuple(operands))

    def _and_expr(self) -> FilterExpression:
        operands = [self._primary()]
        while self._accept("op", "&&") or self._accept("keyword", "AND"):
            operands.append(self._primary())
        if len(operands) == 1:
            return operands[0]
        return Logical(op=LogicalOperator.AND, operands=tuple(operands))

    def _primary(self) -> FilterExpression:
        if self._accept("punct", "("):
            expr = self._or_expr()
            self._expect("punct", ")", "')'")
            return expr
        return self._comparison()

    def _field(self) -> str:
        token = self._accept("ident")
        if token is not None:
            return token.text

        # A keyword in field position names a field when an operator follows it
        nxt = self._tokens[self._index + 1] if self._current.kind != "end" else self._current
        if self._current.kind == "keyword" and (
            (nxt.kind == "op" and nxt.text in _COMPARISON_OPS)
            or (nxt.kind == "keyword" and nxt.text in ("IN", "NIN", "NOT"))
        ):
            return self._advance().raw

        found = self._current.text or "end of input"
        raise FilterSyntaxError(f"Expected field name, found {found!r}", self._current.position)

    def _comparison(self) -> Comparison:
        field = self._field()

        op_token = self._accept("op", *_COMPARISON_OPS)
        if op_token is not None:
            return Comparison(field, _COMPARISON_OPS[op_token.text], self._literal())

        if self._accept("keyword", "IN"):
            return Comparison(field, ComparisonOperator.IN, self._literal_list())
        if self._accept("keyword", "NIN"):
            return Comparison(field, ComparisonOperator.NIN, self._literal_list())
        if self._accept("keyword", "NOT"):
            self._expect("keyword", "IN", "IN after NOT")
            return Comparison(field, ComparisonOperator.NIN, self._literal_list())

        found = self._current.text or "end of input"
        raise FilterSyntaxError(
            f"Expected comparison operator after {field!r}, found {found!r}",
            self._current.position,
        )

    def _literal_list(self) -> tuple[Any, ...]:
        self._expect("punct", "[", "'['")
        values = [self._literal()]
        while self._accept("punct", ","):
            values.append(self._literal())
        self._expect("punct", "]", "']'")
        return tuple(values)

    def _literal(self) -> Any:
        token = self._current
        if token.kind == "string":
            self._advance()
            return _ESCAPE_RE.sub(r"\1", token.text[1:-1])
        if token.kind == "number":
            self._advance()
            if any(c in token.text for c in ".eE"):
                return float(token.text)
            return int(token.text)
        if token.kind == "keyword" and token.text in ("TRUE", "FALSE"):
            self._advance()
            return token.text == "TRUE"
        found = token.text or "end of input"
        raise FilterSyntaxError(f"Expected literal value, found {found!r}", token.position)


def parse_filter(text: str) -> FilterExpression:
    """
    Parse a textual filter into a FilterExpression.

    Args:
        text: Filter source, e.g. "author == 'A' && type == 'post'"

    Returns:
        Expression tree equivalent to the builder form

    Raises:
        FilterSyntaxError: If the text is empty or malformed
    """
    if not text or not text.strip():
        raise FilterSyntaxError("Filter expression is empty", 0)
    return _Parser(text).parse()
