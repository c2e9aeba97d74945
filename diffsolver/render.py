"""Infix rendering of expression trees.

The text produced here is what appears in the step trail, so it must stay
stable: single spaces around binary operators, ``name(arg)`` for functions
and the fewest parentheses that keep the meaning.
"""

import math
from types import MappingProxyType

from diffsolver.expression import Binary, Function, Node, Number, Unary, Variable

# Binding strength of each node kind; atoms bind tightest.
PRECEDENCE = MappingProxyType({
    "atom": 5,
    "unary": 4,
    "^": 3,
    "*": 2,
    "/": 2,
    "+": 1,
    "-": 1,
})

_NON_COMMUTATIVE = frozenset({"-", "/", "^"})


def format_number(value: float) -> str:
    """Render *value* the way the step trail shows numbers.

    Integral values lose their decimal point; everything else is rounded
    to six decimals with trailing zeros dropped.
    """
    if not math.isfinite(value):
        return str(value)
    if float(value).is_integer():
        return str(int(value))
    formatted = f"{value:.6f}".rstrip("0").rstrip(".")
    if formatted == "-0":
        return "0"
    return formatted


def precedence(node: Node) -> int:
    if isinstance(node, Binary):
        return PRECEDENCE[node.op]
    if isinstance(node, Unary):
        return PRECEDENCE["unary"]
    return PRECEDENCE["atom"]


def _needs_parens(child: Node, parent_op: str, side: str) -> bool:
    if not isinstance(child, Binary):
        return False
    child_prec = precedence(child)
    parent_prec = PRECEDENCE[parent_op]
    if child_prec < parent_prec:
        return True
    if child_prec == parent_prec and parent_op in _NON_COMMUTATIVE:
        if side == "right":
            return True
        # ``^`` groups to the right, so a left-hand power keeps its parens.
        return parent_op == "^"
    return False


def node_to_string(node: Node) -> str:
    if isinstance(node, Number):
        return format_number(node.value)
    if isinstance(node, Variable):
        return node.name
    if isinstance(node, Unary):
        inner = node_to_string(node.argument)
        if isinstance(node.argument, Binary):
            inner = f"({inner})"
        return f"{node.op}{inner}"
    if isinstance(node, Function):
        return f"{node.name}({node_to_string(node.argument)})"

    left = node_to_string(node.left)
    right = node_to_string(node.right)
    if _needs_parens(node.left, node.op, "left"):
        left = f"({left})"
    if _needs_parens(node.right, node.op, "right"):
        right = f"({right})"
    return f"{left} {node.op} {right}"
