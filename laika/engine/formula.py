"""LAIKA — Formula Parser.

A metric operation is one primitive call, optionally wrapping one more call as
an argument::

    fetchScalar(getSessions, date, sessions)
    percentToFraction(priorValue(5))
    fetchData('getBounceRate', 'date', 'bounceRate');

Operations are parsed by a small recursive-descent parser into ``Call`` nodes
and checked against the primitive registry when a run is planned, so a bad
formula fails before the first provider request. Stored text is never
executed.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple, Union

from laika.connectors.analytics.adapter import normalize_filter, normalize_names
from laika.core.errors import FormulaError
from laika.core.metric_registry import get_accessor
from laika.engine.primitives import FETCH_SCALAR, ParamKind, Primitive, lookup

MAX_DEPTH = 2

_TOKEN = re.compile(
    r"""
    (?P<string>'[^']*'|"[^"]*")
    |(?P<lparen>\()
    |(?P<rparen>\))
    |(?P<comma>,)
    |(?P<semi>;)
    |(?P<space>\s+)
    |(?P<word>[^(),;'"\s](?:[^(),;'"]*[^(),;'"\s])?)
    """,
    re.VERBOSE,
)
_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_FLOAT = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int


@dataclass(frozen=True)
class Literal:
    text: str
    quoted: bool = False


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...] = ()


Node = Union[Call, Literal]
Value = Union[str, int, float, Call]


@dataclass(frozen=True)
class Formula:
    """A validated operation: the root call with typed arguments."""

    source: str
    root: Call

    def calls(self, name: str) -> bool:
        """Whether the primitive ``name`` is called anywhere in the operation."""
        return any(c.name == name for c in iter_calls(self.root))


# ── Tokenizer ──


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN.match(source, pos)
        if match is None:
            raise FormulaError(f"unterminated string at position {pos}")
        kind = match.lastgroup
        if kind != "space":
            text = match.group()
            if kind == "string":
                text = text[1:-1]
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    return tokens


# ── Parser ──


class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    def _peek(self, offset: int = 0) -> Token | None:
        i = self.index + offset
        return self.tokens[i] if i < len(self.tokens) else None

    def _take(self, kind: str) -> Token:
        token = self._peek()
        if token is None:
            raise FormulaError(f"expected {kind} but the formula ended")
        if token.kind != kind:
            raise FormulaError(
                f"expected {kind} at position {token.pos}, found {token.text!r}"
            )
        self.index += 1
        return token

    def parse(self) -> Call:
        root = self._call(depth=1)
        if self._peek() is not None and self._peek().kind == "semi":
            self.index += 1
        trailing = self._peek()
        if trailing is not None:
            raise FormulaError(
                f"unexpected {trailing.text!r} at position {trailing.pos}"
            )
        return root

    def _call(self, depth: int) -> Call:
        if depth > MAX_DEPTH:
            raise FormulaError(f"calls may be nested at most {MAX_DEPTH} deep")
        name = self._take("word")
        if not _IDENTIFIER.match(name.text):
            raise FormulaError(f"{name.text!r} is not a primitive name")
        self._take("lparen")
        args: List[Node] = []
        if self._peek() is not None and self._peek().kind != "rparen":
            args.append(self._arg(depth))
            while self._peek() is not None and self._peek().kind == "comma":
                self.index += 1
                args.append(self._arg(depth))
        self._take("rparen")
        return Call(name.text, tuple(args))

    def _arg(self, depth: int) -> Node:
        token = self._peek()
        if token is None:
            raise FormulaError("expected an argument but the formula ended")
        if token.kind == "string":
            self.index += 1
            return Literal(token.text, quoted=True)
        if token.kind == "word":
            following = self._peek(1)
            if following is not None and following.kind == "lparen":
                return self._call(depth + 1)
            self.index += 1
            return Literal(token.text)
        raise FormulaError(f"unexpected {token.text!r} at position {token.pos}")


def parse(source: str) -> Call:
    """Parse operation text into an untyped call tree."""
    if not source or not source.strip():
        raise FormulaError("empty formula")
    return _Parser(source).parse()


# ── Validation ──


def _coerce(primitive: Primitive, index: int, kind: ParamKind, node: Node) -> Value:
    where = f"argument {index + 1} of {primitive.name}"
    if kind is ParamKind.TEXT:
        if not isinstance(node, Literal):
            raise FormulaError(f"{where} must be text, not a call")
        return node.text
    if kind is ParamKind.INTEGER:
        if isinstance(node, Literal) and _INTEGER.match(node.text):
            return int(node.text)
        raise FormulaError(f"{where} must be an integer")
    if isinstance(node, Call):
        return _validate(node)
    if not node.quoted and _FLOAT.match(node.text):
        return float(node.text)
    raise FormulaError(f"{where} must be a number or a call")


def _validate(call: Call) -> Call:
    primitive = lookup(call.name)
    if primitive is None:
        raise FormulaError(f"unknown primitive: {call.name}")
    if not primitive.required <= len(call.args) <= len(primitive.params):
        raise FormulaError(
            f"{primitive.name} takes {primitive.arity} arguments, got {len(call.args)}"
        )
    args = tuple(
        _coerce(primitive, i, kind, node)
        for i, (kind, node) in enumerate(zip(primitive.params, call.args))
    )
    if primitive.name == FETCH_SCALAR:
        _check_fetch_scalar(args)
    return Call(primitive.name, args)


def _check_fetch_scalar(args: Tuple[Value, ...]) -> None:
    accessor = args[0]
    metric = get_accessor(accessor)
    if metric is None:
        raise FormulaError(f"unknown report accessor: {accessor}")
    requested = (normalize_names(args[2]) or "").split(",")
    if metric.api_name not in requested:
        raise FormulaError(
            f"accessor {accessor} reads {metric.api_name}, which is not among "
            f"the requested metrics {args[2]!r}"
        )
    normalize_names(args[1])
    if len(args) > 3:
        normalize_filter(args[3])


def compile_formula(source: str, metric_id: int | None = None) -> Formula:
    """Parse and validate an operation against the primitive registry."""
    try:
        return Formula(source, _validate(parse(source)))
    except FormulaError as e:
        if metric_id is None or e.metric_id is not None:
            raise
        raise FormulaError(f"{e.message} in {source!r}", metric_id) from e


def iter_calls(call: Call) -> Iterator[Call]:
    yield call
    for arg in call.args:
        if isinstance(arg, Call):
            yield from iter_calls(arg)
