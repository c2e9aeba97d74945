"""
Expression model for DiffSolver.

An expression is a strict tree of immutable nodes built from five variants:

  - Number   : a float literal
  - Variable : one of the two symbols ``x`` (independent) or ``y`` (dependent)
  - Unary    : negation of a sub-expression
  - Function : a named one-argument function such as ``sin`` or ``ln``
  - Binary   : ``+ - * / ^`` applied to two sub-expressions

Nodes are frozen dataclasses, so a subtree can never be mutated in place.
``clone_node`` still produces a structural copy for code that wants a fresh
tree rather than a shared one.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Union

import numpy as np

from diffsolver.errors import EvaluationError

# ── Symbol tables (read-only) ────────────────────────────────────────────

INDEPENDENT = "x"
DEPENDENT = "y"
VARIABLES = frozenset({INDEPENDENT, DEPENDENT})

FUNCTIONS = frozenset({
    "sin", "cos", "tan", "cot", "sec", "csc",
    "exp", "ln", "log", "sqrt", "abs",
})

CONSTANTS = MappingProxyType({
    "pi": float(np.pi),
    "e": float(np.e),
})

NEGATION = "-"

# Numeric comparisons used for identity detection.
TOLERANCE = 1e-9

# Longest root-to-leaf path accepted from untrusted input.
MAX_DEPTH = 200


# ── Node variants ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    argument: "Node"


@dataclass(frozen=True)
class Function:
    name: str
    argument: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, Unary, Function, Binary]


# ── Cloning ──────────────────────────────────────────────────────────────

def clone_node(node: Node) -> Node:
    """Return a structurally identical tree that shares no nodes with *node*."""
    if isinstance(node, Number):
        return Number(node.value)
    if isinstance(node, Variable):
        return Variable(node.name)
    if isinstance(node, Unary):
        return Unary(node.op, clone_node(node.argument))
    if isinstance(node, Function):
        return Function(node.name, clone_node(node.argument))
    return Binary(node.op, clone_node(node.left), clone_node(node.right))


# ── Queries ──────────────────────────────────────────────────────────────

def is_variable(node: Node, name: str) -> bool:
    return isinstance(node, Variable) and node.name == name


def is_zero(node: Node) -> bool:
    return isinstance(node, Number) and abs(node.value) < TOLERANCE


def is_one(node: Node) -> bool:
    return isinstance(node, Number) and abs(node.value - 1) < TOLERANCE


def depends_on(node: Node, name: str) -> bool:
    """True when the variable *name* occurs anywhere inside *node*."""
    if isinstance(node, Number):
        return False
    if isinstance(node, Variable):
        return node.name == name
    if isinstance(node, (Unary, Function)):
        return depends_on(node.argument, name)
    return depends_on(node.left, name) or depends_on(node.right, name)


def is_constant(node: Node) -> bool:
    """True when *node* mentions neither variable."""
    return not any(depends_on(node, name) for name in VARIABLES)


# ── Numeric evaluation ───────────────────────────────────────────────────

_NUMPY_FUNCTIONS = MappingProxyType({
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "cot": lambda v: 1.0 / np.tan(v),
    "sec": lambda v: 1.0 / np.cos(v),
    "csc": lambda v: 1.0 / np.sin(v),
    "exp": np.exp,
    "ln": np.log,
    "log": np.log,
    "sqrt": np.sqrt,
    "abs": np.abs,
})

_NUMPY_OPERATORS = MappingProxyType({
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "^": np.power,
})


def evaluate(node: Node, scope: dict):
    """Evaluate *node* with NumPy, binding variables from *scope*.

    Division by zero, overflow and domain errors yield ``inf`` / ``nan``
    rather than raising. Scope values may be floats or NumPy arrays; the
    result has the broadcast shape. An unbound variable raises
    ``EvaluationError``.
    """
    with np.errstate(all="ignore"):
        return _evaluate(node, scope)


def _evaluate(node: Node, scope: dict):
    if isinstance(node, Number):
        return np.float64(node.value)
    if isinstance(node, Variable):
        if node.name not in scope:
            raise EvaluationError(f"No value given for variable '{node.name}'.")
        return np.asarray(scope[node.name], dtype=np.float64)
    if isinstance(node, Unary):
        return np.negative(_evaluate(node.argument, scope))
    if isinstance(node, Function):
        return _NUMPY_FUNCTIONS[node.name](_evaluate(node.argument, scope))
    left = _evaluate(node.left, scope)
    right = _evaluate(node.right, scope)
    return _NUMPY_OPERATORS[node.op](left, right)
