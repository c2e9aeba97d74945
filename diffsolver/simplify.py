"""Bottom-up algebraic simplifier.

The rule set is constant folding plus the additive,
multiplicative and power identities. Each rule returns a subtree that is
already simplified, so a single bottom-up pass is idempotent.
"""

from types import MappingProxyType

import numpy as np

from diffsolver.expression import (
    Binary, Function, Node, Number, Unary, Variable,
    NEGATION, is_one, is_zero,
)

_FOLD = MappingProxyType({
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "^": np.power,
})


def _fold(op: str, left: float, right: float) -> float:
    with np.errstate(all="ignore"):
        return float(_FOLD[op](np.float64(left), np.float64(right)))


def simplify(node: Node) -> Node:
    """Return a canonical, numerically folded copy of *node*."""
    if isinstance(node, (Number, Variable)):
        return node
    if isinstance(node, Unary):
        argument = simplify(node.argument)
        if isinstance(argument, Number):
            return Number(-argument.value)
        return Unary(node.op, argument)
    if isinstance(node, Function):
        return Function(node.name, simplify(node.argument))

    op = node.op
    left = simplify(node.left)
    right = simplify(node.right)

    if isinstance(left, Number) and isinstance(right, Number):
        return Number(_fold(op, left.value, right.value))

    if op == "+":
        if is_zero(left):
            return right
        if is_zero(right):
            return left
    elif op == "-":
        if is_zero(right):
            return left
    elif op == "*":
        if is_zero(left) or is_zero(right):
            return Number(0.0)
        if is_one(left):
            return right
        if is_one(right):
            return left
    elif op == "/":
        if is_zero(left):
            return Number(0.0)
        if is_one(right):
            return left
    elif op == "^":
        if is_zero(right):
            return Number(1.0)
        if is_one(right):
            return left
    return Binary(op, left, right)


# ── Simplifying constructors ─────────────────────────────────────────────

def make_add(a: Node, b: Node) -> Node:
    return simplify(Binary("+", a, b))


def make_sub(a: Node, b: Node) -> Node:
    return simplify(Binary("-", a, b))


def make_mul(a: Node, b: Node) -> Node:
    return simplify(Binary("*", a, b))


def make_div(a: Node, b: Node) -> Node:
    return simplify(Binary("/", a, b))


def make_pow(a: Node, b: Node) -> Node:
    return simplify(Binary("^", a, b))


def make_neg(a: Node) -> Node:
    return simplify(Unary(NEGATION, a))


def make_function(name: str, argument: Node) -> Node:
    return simplify(Function(name, argument))
