"""Safe expression evaluator — no eval(), restricted to comparison and boolean ops.

Grammar (lowest precedence first)::

    expr       := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := ("!" | "not") not_expr | unary
    unary      := ("is_empty" | "is_not_empty") operand | comparison
    comparison := operand (OP operand)?
    operand    := "(" expr ")" | literal | path | {{path}}

Paths resolve against the evaluation context, so ``input.length > 0`` reads
the length of ``ctx["input"]``.
"""

from __future__ import annotations

import operator
import re
from typing import Any

from agentflow.templating.engine import resolve_path


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed or evaluated."""


def _contains(a: Any, b: Any) -> bool:
    if isinstance(a, str):
        return str(b) in a
    return b in a if hasattr(a, "__contains__") else False


def _is_empty(a: Any) -> bool:
    return a is None or a == "" or a == [] or a == {}


# Supported comparison operators
_OPS = {
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
    "!==": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "contains": _contains,
    "not_contains": lambda a, b: not _contains(a, b),
    "starts_with": lambda a, b: str(a).startswith(str(b)),
    "ends_with": lambda a, b: str(a).endswith(str(b)),
    "in": lambda a, b: _contains(b, a),
}

_UNARY_OPS = {
    "is_empty": _is_empty,
    "is_not_empty": lambda a: not _is_empty(a),
}

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<template>\{\{\s*[\w.\-]+\s*\}\})
      | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
      | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!()])
      | (?P<word>[A-Za-z_][\w\-]*(?:\.[\w\-]+)*)
    )""",
    re.VERBOSE,
)

_KEYWORD_OPS = {"contains", "not_contains", "starts_with", "ends_with", "in"}
# Nesting limit for parentheses and negation.
MAX_NESTING_DEPTH = 64

_LITERALS = {"true": True, "false": False, "null": None, "none": None, "undefined": None}


def tokenize(expr: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = _TOKEN_RE.match(expr, pos)
        if not match or match.end() == pos:
            raise ExpressionError(f"Unexpected character at position {pos}: {expr[pos:pos + 10]!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]], ctx: dict[str, Any]):
        self.tokens = tokens
        self.pos = 0
        self.ctx = ctx
        self.depth = 0

    def peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        self.pos += 1
        return token

    def at(self, *values: str) -> bool:
        token = self.peek()
        return token is not None and token[0] in ("op", "word") and token[1] in values

    def parse(self) -> Any:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        value = self.parse_or()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected token {self.peek()[1]!r}")
        return value

    def parse_or(self) -> Any:
        value = self.parse_and()
        while self.at("||", "or"):
            self.take()
            right = self.parse_and()
            value = bool(value) or bool(right)
        return value

    def parse_and(self) -> Any:
        value = self.parse_not()
        while self.at("&&", "and"):
            self.take()
            right = self.parse_not()
            value = bool(value) and bool(right)
        return value

    def nested(self, parse) -> Any:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise ExpressionError(f"Expression nested deeper than {MAX_NESTING_DEPTH} levels")
        try:
            return parse()
        finally:
            self.depth -= 1

    def parse_not(self) -> Any:
        if self.at("!", "not"):
            self.take()
            return not bool(self.nested(self.parse_not))
        if self.at(*_UNARY_OPS):
            op = self.take()[1]
            return _UNARY_OPS[op](self.parse_operand())
        return self.parse_comparison()

    def parse_comparison(self) -> Any:
        left = self.parse_operand()
        token = self.peek()
        if token is None:
            return left
        kind, value = token
        if (kind == "op" and value in _OPS) or (kind == "word" and value in _KEYWORD_OPS):
            self.take()
            right = self.parse_operand()
            return _compare(value, left, right)
        return left

    def parse_operand(self) -> Any:
        kind, value = self.take()
        if kind == "op" and value == "(":
            inner = self.nested(self.parse_or)
            if not self.at(")"):
                raise ExpressionError("Missing closing parenthesis")
            self.take()
            return inner
        if kind == "string":
            return _unquote(value)
        if kind == "number":
            return _coerce(value)
        if kind == "template":
            return resolve_path(value.strip("{} \t"), self.ctx)
        if kind == "word":
            if value.lower() in _LITERALS:
                return _LITERALS[value.lower()]
            if value in _KEYWORD_OPS or value in _UNARY_OPS or value in ("and", "or", "not"):
                raise ExpressionError(f"Operator {value!r} is missing an operand")
            root = value.split(".", 1)[0]
            if root not in self.ctx:
                raise ExpressionError(f"Unknown name {root!r}")
            return resolve_path(value, self.ctx)
        raise ExpressionError(f"Unexpected token {value!r}")


def _compare(op: str, left: Any, right: Any) -> bool:
    left, right = _align_numbers(left, right)
    try:
        return bool(_OPS[op](left, right))
    except TypeError as exc:
        raise ExpressionError(
            f"Cannot apply {op!r} to {type(left).__name__} and {type(right).__name__}"
        ) from exc


def _align_numbers(left: Any, right: Any) -> tuple[Any, Any]:
    """Compare '5' and 5 as numbers when one side is numeric and the other parses as one."""
    def is_num(v: Any) -> bool:
        return isinstance(v, (int, float)) and not isinstance(v, bool)

    if is_num(left) and isinstance(right, str):
        coerced = _coerce(right)
        if is_num(coerced):
            return left, coerced
    if is_num(right) and isinstance(left, str):
        coerced = _coerce(left)
        if is_num(coerced):
            return coerced, right
    return left, right


def evaluate_condition(expr: str, ctx: dict[str, Any]) -> bool:
    """
    Evaluate a condition expression safely against *ctx*.

    Supports:
      - input.length > 0
      - {{status}} == 'approved'
      - input contains "error" && !(count >= 5)
      - is_empty input
      - true / false

    Raises :class:`ExpressionError` for malformed expressions, unknown names
    and type-incompatible comparisons.
    """
    if not isinstance(expr, str):
        raise ExpressionError("Condition must be a string")
    return bool(_Parser(tokenize(expr.strip()), ctx).parse())


def _unquote(token: str) -> str:
    return re.sub(r"\\(.)", r"\1", token[1:-1])


def _coerce(value: str) -> Any:
    """Coerce a string token to a Python value."""
    if not isinstance(value, str):
        return value

    stripped = value.strip()

    # Quoted strings
    if len(stripped) >= 2 and stripped[0] == stripped[-1] and stripped[0] in "'\"":
        return stripped[1:-1]

    # Boolean
    if stripped.lower() in ("true", "yes"):
        return True
    if stripped.lower() in ("false", "no"):
        return False

    # None
    if stripped.lower() in ("none", "null"):
        return None

    # Number
    try:
        if "." in stripped:
            return float(stripped)
        return int(stripped)
    except ValueError:
        pass

    return stripped
