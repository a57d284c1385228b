"""
Safe Formula Evaluator - arithmetic expressions over named numeric inputs.

Used for tenant-configurable calculated fields (e.g. a quote's estimated
volume). Formulas are tokenized and parsed into a small expression tree;
nothing is ever handed to the interpreter.

Grammar:
    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/') unary)*
    unary  := ('-' | '+') unary | atom
    atom   := NUMBER | IDENT | '(' expr ')'

Identifiers are resolved as whole tokens against the context, so `rate`
never matches inside `rate2`.
"""
import logging
import math
import re
from dataclasses import dataclass
from numbers import Real
from typing import Mapping, Union

from .errors import FormulaError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>[-+*/()])
""", re.VERBOSE)


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "ident", "op" or "end"
    text: str
    position: int


def tokenize(formula: str) -> list[Token]:
    """Split a formula into tokens, rejecting any unsupported character."""
    if not isinstance(formula, str):
        raise FormulaError(repr(formula), "formula must be a string")

    tokens = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if not match:
            raise FormulaError(formula, f"unexpected character {formula[pos]!r}", pos)
        kind = match.lastgroup
        if kind != 'ws':
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token('end', '', len(formula)))
    return tokens


# Expression tree

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str
    position: int


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: 'Node'


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'
    position: int


Node = Union[Number, Variable, UnaryOp, BinaryOp]


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, formula: str, tokens: list[Token]):
        self.formula = formula
        self.tokens = tokens
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def error(self, reason: str) -> FormulaError:
        return FormulaError(self.formula, reason, self.current.position)

    def parse(self) -> Node:
        if self.current.kind == 'end':
            raise self.error("empty formula")
        node = self.expr()
        if self.current.kind != 'end':
            raise self.error(f"unexpected token {self.current.text!r}")
        return node

    def expr(self) -> Node:
        node = self.term()
        while self.current.kind == 'op' and self.current.text in '+-':
            token = self.advance()
            node = BinaryOp(token.text, node, self.term(), token.position)
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == 'op' and self.current.text in '*/':
            token = self.advance()
            node = BinaryOp(token.text, node, self.unary(), token.position)
        return node

    def unary(self) -> Node:
        if self.current.kind == 'op' and self.current.text in '+-':
            token = self.advance()
            return UnaryOp(token.text, self.unary())
        return self.atom()

    def atom(self) -> Node:
        token = self.current
        if token.kind == 'number':
            self.advance()
            return Number(float(token.text))
        if token.kind == 'ident':
            self.advance()
            if self.current.kind == 'op' and self.current.text == '(':
                raise self.error(f"function calls are not allowed ({token.text})")
            return Variable(token.text, token.position)
        if token.kind == 'op' and token.text == '(':
            self.advance()
            node = self.expr()
            if not (self.current.kind == 'op' and self.current.text == ')'):
                raise self.error("expected ')'")
            self.advance()
            return node
        if token.kind == 'end':
            raise self.error("unexpected end of formula")
        raise self.error(f"unexpected token {token.text!r}")


def _collect_variables(node: Node, names: set) -> None:
    if isinstance(node, Variable):
        names.add(node.name)
    elif isinstance(node, UnaryOp):
        _collect_variables(node.operand, names)
    elif isinstance(node, BinaryOp):
        _collect_variables(node.left, names)
        _collect_variables(node.right, names)


class Formula:
    """A parsed formula that can be evaluated against many contexts."""

    def __init__(self, source: str):
        self.source = source
        try:
            self.tree = _Parser(source, tokenize(source)).parse()
            names = set()
            _collect_variables(self.tree, names)
        except RecursionError:
            raise FormulaError(source, "formula is nested too deeply") from None
        self.variables = frozenset(names)

    def __repr__(self):
        return f"Formula({self.source!r})"

    def evaluate(self, context: Mapping[str, float], best_effort: bool = False) -> float:
        """
        Evaluate against a context of variable values.

        In best-effort mode a FormulaError is logged and 0.0 is returned.
        """
        try:
            return self._evaluate(context)
        except FormulaError as e:
            if not best_effort:
                raise
            logger.warning("Formula evaluation failed, using 0: %s", e)
            return 0.0

    def _evaluate(self, context: Mapping[str, float]) -> float:
        try:
            result = self._eval(self.tree, context)
        except RecursionError:
            raise FormulaError(self.source, "formula is nested too deeply") from None
        if not math.isfinite(result):
            raise FormulaError(self.source, "result is not finite")
        return result

    def _eval(self, node: Node, context: Mapping[str, float]) -> float:
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Variable):
            if node.name not in context:
                raise FormulaError(self.source, f"unknown variable {node.name!r}", node.position)
            value = context[node.name]
            if isinstance(value, bool) or not isinstance(value, Real):
                number = math.nan
            else:
                try:
                    number = float(value)
                except OverflowError:
                    number = math.inf
            if not math.isfinite(number):
                raise FormulaError(
                    self.source, f"variable {node.name!r} is not a finite number: {value!r}",
                    node.position,
                )
            return number
        if isinstance(node, UnaryOp):
            operand = self._eval(node.operand, context)
            return -operand if node.op == '-' else operand

        left = self._eval(node.left, context)
        right = self._eval(node.right, context)
        if node.op == '+':
            return left + right
        if node.op == '-':
            return left - right
        if node.op == '*':
            return left * right
        if right == 0:
            raise FormulaError(self.source, "division by zero", node.position)
        return left / right


def compile_formula(formula: str) -> Formula:
    """Parse a formula once for repeated evaluation."""
    return Formula(formula)


def evaluate(formula: str, context: Mapping[str, float], best_effort: bool = False) -> float:
    """
    Evaluate an arithmetic formula against named numeric inputs.

    Raises:
        FormulaError: unknown variable, division by zero, invalid syntax or a
            non-finite result (unless best_effort is set, which yields 0.0)
    """
    try:
        compiled = Formula(formula)
    except FormulaError as e:
        if not best_effort:
            raise
        logger.warning("Formula evaluation failed, using 0: %s", e)
        return 0.0
    return compiled.evaluate(context, best_effort=best_effort)
