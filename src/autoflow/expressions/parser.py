"""
Tokenizer and recursive-descent parser for step conditions.

The grammar is closed; anything else is an ExpressionError:

    expr       := or
    or         := and ( "||" and )*
    and        := equality ( "&&" equality )*
    equality   := relational ( ("==" | "!=") relational )*
    relational := unary ( ("<" | ">" | "<=" | ">=") unary )*
    unary      := "!" unary | primary
    primary    := literal | "(" expr ")"
    literal    := number | 'string' | "string" | true | false | null
                  | undefined | JSON array | JSON object
"""

import json
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable

from ..core.errors import ExpressionError


class _Undefined:
    """Value of a ``${path}`` that did not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

KEYWORDS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": UNDEFINED,
}

_OPERATOR_RE = re.compile(r"&&|\|\||==|!=|<=|>=|<|>|!|\(|\)")
_NUMBER_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_WORD_RE = re.compile(r"[A-Za-z_$][\w$]*")
_SINGLE_QUOTE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

_json_decoder = json.JSONDecoder()


@dataclass
class Token:
    kind: str   # "op" | "literal" | "end"
    value: Any
    pos: int


def tokenize(text: str) -> list[Token]:
    """Split an expression into operator and literal tokens."""
    tokens: list[Token] = []
    pos = 0
    length = len(text)

    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue

        match = _OPERATOR_RE.match(text, pos)
        if match:
            tokens.append(Token("op", match.group(), pos))
            pos = match.end()
            continue

        if char in "\"[{":
            try:
                value, end = _json_decoder.raw_decode(text, pos)
            except json.JSONDecodeError as e:
                raise ExpressionError(f"Invalid literal at position {pos}: {e.msg}", expression=text)
            tokens.append(Token("literal", value, pos))
            pos = end
            continue

        if char == "'":
            value, end = _read_single_quoted(text, pos)
            tokens.append(Token("literal", value, pos))
            pos = end
            continue

        match = _NUMBER_RE.match(text, pos)
        if match:
            raw = match.group()
            tokens.append(Token("literal", int(raw) if _is_int_literal(raw) else float(raw), pos))
            pos = match.end()
            continue

        match = _WORD_RE.match(text, pos)
        if match:
            word = match.group()
            if word not in KEYWORDS:
                raise ExpressionError(f"Unexpected identifier '{word}' at position {pos}", expression=text)
            tokens.append(Token("literal", KEYWORDS[word], pos))
            pos = match.end()
            continue

        raise ExpressionError(f"Unexpected character '{char}' at position {pos}", expression=text)

    tokens.append(Token("end", None, length))
    return tokens


def _is_int_literal(raw: str) -> bool:
    return not any(c in raw for c in ".eE")


def _read_single_quoted(text: str, start: int) -> tuple[str, int]:
    chars: list[str] = []
    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\" and pos + 1 < len(text):
            escaped = text[pos + 1]
            chars.append(_SINGLE_QUOTE_ESCAPES.get(escaped, escaped))
            pos += 2
            continue
        if char == "'":
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise ExpressionError(f"Unterminated string at position {start}", expression=text)


# AST nodes are tuples: ("lit", value) | ("not", node) | ("bin", op, left, right)
Node = tuple


class Parser:
    """Recursive-descent parser producing a tuple AST."""

    EQUALITY = ("==", "!=")
    RELATIONAL = ("<", ">", "<=", ">=")

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def parse(self) -> Node:
        node = self._or()
        token = self._peek()
        if token.kind != "end":
            raise ExpressionError(
                f"Unexpected token '{token.value}' at position {token.pos}",
                expression=self.text,
            )
        return node

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _accept(self, *ops: str) -> Any:
        token = self._peek()
        if token.kind == "op" and token.value in ops:
            self.pos += 1
            return token.value
        return None

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = ("bin", "||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._accept("&&"):
            node = ("bin", "&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while True:
            op = self._accept(*self.EQUALITY)
            if not op:
                return node
            node = ("bin", op, node, self._relational())

    def _relational(self) -> Node:
        node = self._unary()
        while True:
            op = self._accept(*self.RELATIONAL)
            if not op:
                return node
            node = ("bin", op, node, self._unary())

    def _unary(self) -> Node:
        if self._accept("!"):
            return ("not", self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()
        if token.kind == "literal":
            self.pos += 1
            return ("lit", token.value)
        if self._accept("("):
            node = self._or()
            if not self._accept(")"):
                raise ExpressionError(
                    f"Expected ')' at position {self._peek().pos}",
                    expression=self.text,
                )
            return node
        if token.kind == "end":
            raise ExpressionError("Unexpected end of expression", expression=self.text)
        raise ExpressionError(
            f"Unexpected token '{token.value}' at position {token.pos}",
            expression=self.text,
        )


def truthy(value: Any) -> bool:
    """Truthiness where empty arrays and objects still count as true."""
    if isinstance(value, (list, dict)):
        return True
    return bool(value)


def _nullish(value: Any) -> bool:
    return value is None or value is UNDEFINED


def _loose_eq(left: Any, right: Any) -> bool:
    if _nullish(left) or _nullish(right):
        return _nullish(left) and _nullish(right)
    return left == right


def _ordered(func: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        if _nullish(left) or _nullish(right):
            raise ExpressionError("Cannot order null or undefined values")
        try:
            return func(left, right)
        except TypeError as e:
            raise ExpressionError(f"Cannot compare values: {e}")
    return compare


COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": _loose_eq,
    "!=": lambda a, b: not _loose_eq(a, b),
    "<": _ordered(operator.lt),
    ">": _ordered(operator.gt),
    "<=": _ordered(operator.le),
    ">=": _ordered(operator.ge),
}


def evaluate_node(node: Node) -> Any:
    """Evaluate an AST produced by :class:`Parser`."""
    kind = node[0]
    if kind == "lit":
        return node[1]
    if kind == "not":
        return not truthy(evaluate_node(node[1]))

    _, op, left, right = node
    if op == "&&":
        value = evaluate_node(left)
        return evaluate_node(right) if truthy(value) else value
    if op == "||":
        value = evaluate_node(left)
        return value if truthy(value) else evaluate_node(right)
    return COMPARISONS[op](evaluate_node(left), evaluate_node(right))


def evaluate(text: str) -> Any:
    """Parse and evaluate a fully substituted expression."""
    return evaluate_node(Parser(text).parse())
