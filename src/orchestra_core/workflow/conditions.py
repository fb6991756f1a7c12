"""Step condition grammar.

Conditions are a closed grammar parsed into a small expression tree:

    expr    := and ("||" and)*
    and     := term ("&&" term)*
    term    := "(" expr ")" | path [op literal]
    op      := "==" | "!=" | "===" | "!==" | ">" | ">=" | "<" | "<="
    literal := number | 'string' | "string" | true | false | null

Paths are dotted names. ``results.<step>...`` reads accumulated step
results; ``context.<key>...`` and bare names read the execution context.
A comparison against a missing path is false; a bare path is a
truthiness test.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from orchestra_core.errors import create_error

RESULTS_ROOT = "results"
CONTEXT_ROOT = "context"

_MISSING = object()

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<op>===|!==|==|!=|>=|<=|>|<)
    | (?P<and>&&)
    | (?P<or>\|\|)
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<path>[A-Za-z_][\w-]*(?:\.(?:[A-Za-z_][\w-]*|\d+))*)
    """,
    re.VERBOSE,
)

_KEYWORDS: dict[str, Any] = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


# Expression tree


@dataclass(frozen=True)
class Path:
    """Dotted reference into the context or the results."""

    root: str  # "context" | "results"
    segments: tuple[str, ...]

    def resolve(self, context: Mapping[str, Any], results: Mapping[str, Any]) -> Any:
        current: Any = results if self.root == RESULTS_ROOT else context
        for segment in self.segments:
            if isinstance(current, Mapping):
                if segment not in current:
                    return _MISSING
                current = current[segment]
            elif isinstance(current, (list, tuple)) and segment.isdigit():
                index = int(segment)
                if index >= len(current):
                    return _MISSING
                current = current[index]
            else:
                return _MISSING
        return current

    def __str__(self) -> str:
        return ".".join((self.root, *self.segments))


@dataclass(frozen=True)
class Comparison:
    path: Path
    op: str
    literal: Any


@dataclass(frozen=True)
class Truthy:
    path: Path


@dataclass(frozen=True)
class And:
    operands: tuple["Node", ...]


@dataclass(frozen=True)
class Or:
    operands: tuple["Node", ...]


Node = Comparison | Truthy | And | Or


def _invalid(source: str, reason: str) -> Exception:
    return create_error("CONDITION_INVALID", condition=source, reason=reason)


def tokenize(source: str) -> list[Token]:
    """Split condition text into tokens.

    Raises:
        ConditionEvaluationError: On an unexpected character
    """
    tokens: list[Token] = []
    position = 0
    while position < len(source):
        match = _TOKEN_RE.match(source, position)
        if match is None:
            raise _invalid(source, f"Unexpected character {source[position]!r} at {position}")
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise _invalid(self.source, "Condition is empty")
        node = self._expr()
        if self.index < len(self.tokens):
            token = self.tokens[self.index]
            raise _invalid(self.source, f"Unexpected {token.text!r} at {token.position}")
        return node

    def _peek(self) -> Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _take(self, kind: str | None = None) -> Token:
        token = self._peek()
        if token is None:
            raise _invalid(self.source, "Unexpected end of condition")
        if kind is not None and token.kind != kind:
            raise _invalid(self.source, f"Expected {kind} but found {token.text!r}")
        self.index += 1
        return token

    def _expr(self) -> Node:
        operands = [self._and()]
        while (token := self._peek()) is not None and token.kind == "or":
            self._take()
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _and(self) -> Node:
        operands = [self._term()]
        while (token := self._peek()) is not None and token.kind == "and":
            self._take()
            operands.append(self._term())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _term(self) -> Node:
        token = self._take()
        if token.kind == "lparen":
            node = self._expr()
            self._take("rparen")
            return node
        if token.kind != "path" or token.text in _KEYWORDS:
            raise _invalid(
                self.source, f"Expected a field name but found {token.text!r} at {token.position}"
            )

        path = _to_path(token.text)
        following = self._peek()
        if following is None or following.kind != "op":
            return Truthy(path)

        op = self._take().text
        return Comparison(path, op, self._literal())

    def _literal(self) -> Any:
        token = self._take()
        if token.kind == "number":
            return float(token.text) if "." in token.text else int(token.text)
        if token.kind == "string":
            return _unquote(token.text)
        if token.kind == "path" and token.text in _KEYWORDS:
            return _KEYWORDS[token.text]
        raise _invalid(self.source, f"Expected a literal but found {token.text!r}")


def _to_path(text: str) -> Path:
    parts = text.split(".")
    if parts[0] == RESULTS_ROOT and len(parts) > 1:
        return Path(RESULTS_ROOT, tuple(parts[1:]))
    if parts[0] == CONTEXT_ROOT and len(parts) > 1:
        return Path(CONTEXT_ROOT, tuple(parts[1:]))
    return Path(CONTEXT_ROOT, tuple(parts))


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


# Evaluation


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _loose_equal(left: Any, right: Any) -> bool:
    if _strict_equal(left, right):
        return True
    if _is_number(left) and isinstance(right, str):
        left, right = right, left
    if isinstance(left, str) and _is_number(right):
        try:
            return float(left) == right
        except ValueError:
            return False
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    return left == right


def _compare(source: str, node: Comparison, value: Any) -> bool:
    op, literal = node.op, node.literal
    if op == "==":
        return _loose_equal(value, literal)
    if op == "!=":
        return not _loose_equal(value, literal)
    if op == "===":
        return _strict_equal(value, literal)
    if op == "!==":
        return not _strict_equal(value, literal)

    comparable = (_is_number(value) and _is_number(literal)) or (
        isinstance(value, str) and isinstance(literal, str)
    )
    if not comparable:
        raise _invalid(
            source,
            f"Cannot compare {type(value).__name__} from '{node.path}' "
            f"with {type(literal).__name__} using '{op}'",
        )
    if op == ">":
        return value > literal
    if op == ">=":
        return value >= literal
    if op == "<":
        return value < literal
    return value <= literal


def _evaluate(
    source: str, node: Node, context: Mapping[str, Any], results: Mapping[str, Any]
) -> bool:
    if isinstance(node, Or):
        return any(_evaluate(source, n, context, results) for n in node.operands)
    if isinstance(node, And):
        return all(_evaluate(source, n, context, results) for n in node.operands)

    value = node.path.resolve(context, results)
    if value is _MISSING:
        return False
    if isinstance(node, Truthy):
        return bool(value)
    return _compare(source, node, value)


def _walk(node: Node) -> list[Comparison | Truthy]:
    if isinstance(node, (And, Or)):
        return [leaf for operand in node.operands for leaf in _walk(operand)]
    return [node]


@dataclass(frozen=True)
class Condition:
    """A parsed step condition."""

    source: str
    tree: Node

    def evaluate(self, context: Mapping[str, Any], results: Mapping[str, Any]) -> bool:
        """Evaluate against the execution context and accumulated results.

        Raises:
            ConditionEvaluationError: If an ordering operator meets incomparable types
        """
        return _evaluate(self.source, self.tree, context, results)

    def referenced_results(self) -> frozenset[str]:
        """Step ids whose results this condition reads."""
        return frozenset(
            leaf.path.segments[0]
            for leaf in _walk(self.tree)
            if leaf.path.root == RESULTS_ROOT and leaf.path.segments
        )


@lru_cache(maxsize=512)
def parse_condition(source: str) -> Condition:
    """Parse condition text.

    Raises:
        ConditionEvaluationError: If the text is malformed
    """
    return Condition(source=source, tree=_Parser(source.strip()).parse())
