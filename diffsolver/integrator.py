"""Rule-based antiderivatives.

``integrate`` tries a fixed list of rules and returns ``None`` as soon as
no rule fits. A ``None`` means "unsupported", never zero.

Rules, in order:

  1. constant          ∫ c dv            = c·v
  2. variable          ∫ v dv            = v^2 / 2
  3. negation          ∫ -f dv           = -∫ f dv
  4. sum / difference  ∫ (f ± g) dv      = ∫ f dv ± ∫ g dv
  5. constant multiple ∫ c·f dv          = c·∫ f dv
  6. quotient          ∫ f / c dv        = (∫ f dv) / c
                       ∫ c / (a·v + b) dv = (c / a)·ln(abs(a·v + b))
  7. power             ∫ v^p dv          = v^(p+1) / (p+1),  ln(abs(v)) for p = -1
  8. affine argument   exp, sin, cos, tan of (a·v + b)
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from diffsolver.expression import (
    Binary, Function, Node, Number, Unary, Variable,
    TOLERANCE, clone_node, depends_on, evaluate, is_constant, is_variable,
)
from diffsolver.simplify import (
    make_add, make_div, make_function, make_mul, make_neg, make_pow, make_sub,
    simplify,
)


@dataclass(frozen=True)
class LinearForm:
    """``a*variable + b`` with *b* independent of the variable."""
    a: float
    b: Node


# ── Affine matching ──────────────────────────────────────────────────────

def _numeric_constant(node: Node) -> Optional[float]:
    """Value of a variable-free *node*, or ``None`` if it has variables or
    does not evaluate to a finite number."""
    if not is_constant(node):
        return None
    value = float(evaluate(node, {}))
    if not np.isfinite(value):
        return None
    return value


def match_linear(node: Node, name: str) -> Optional[LinearForm]:
    """Decompose *node* as ``a*name + b`` or return ``None``.

    Only ``+``, ``-``, negation and multiplication / division by numeric
    constants are walked; anything else that touches the variable fails.
    """
    result = _match_linear(node, name)
    if result is None:
        return None
    a, b = result
    if abs(a) < TOLERANCE:
        a = 0.0
    return LinearForm(a, simplify(b))


def _match_linear(node: Node, name: str):
    if not depends_on(node, name):
        return 0.0, node
    if is_variable(node, name):
        return 1.0, Number(0.0)
    if isinstance(node, Unary):
        inner = _match_linear(node.argument, name)
        if inner is None:
            return None
        return -inner[0], make_neg(inner[1])
    if not isinstance(node, Binary):
        return None

    op, left, right = node.op, node.left, node.right
    if op in ("+", "-"):
        left_form = _match_linear(left, name)
        right_form = _match_linear(right, name)
        if left_form is None or right_form is None:
            return None
        if op == "+":
            return left_form[0] + right_form[0], make_add(left_form[1], right_form[1])
        return left_form[0] - right_form[0], make_sub(left_form[1], right_form[1])

    if op == "*":
        if not depends_on(left, name):
            factor, inner = _numeric_constant(left), _match_linear(right, name)
        elif not depends_on(right, name):
            factor, inner = _numeric_constant(right), _match_linear(left, name)
        else:
            return None
        if factor is None or inner is None:
            return None
        return inner[0] * factor, make_mul(Number(factor), inner[1])

    if op == "/" and not depends_on(right, name):
        divisor = _numeric_constant(right)
        if divisor is None or abs(divisor) < TOLERANCE:
            return None
        inner = _match_linear(left, name)
        if inner is None:
            return None
        return inner[0] / divisor, make_div(inner[1], Number(divisor))

    return None


# ── Integration ──────────────────────────────────────────────────────────

def integrate(node: Node, name: str) -> Optional[Node]:
    """Antiderivative of *node* with respect to *name*, without the
    constant of integration, or ``None`` when no rule applies."""
    result = _integrate(node, name)
    if result is None:
        return None
    return simplify(result)


def _integrate(node: Node, name: str) -> Optional[Node]:
    var = Variable(name)

    if not depends_on(node, name):
        return make_mul(node, var)

    if isinstance(node, Variable):
        return make_div(make_pow(var, Number(2.0)), Number(2.0))

    if isinstance(node, Unary):
        inner = _integrate(node.argument, name)
        if inner is None:
            return None
        return make_neg(inner)

    if isinstance(node, Function):
        return _integrate_function(node, name)

    op, left, right = node.op, node.left, node.right

    if op in ("+", "-"):
        left_int = _integrate(left, name)
        right_int = _integrate(right, name)
        if left_int is None or right_int is None:
            return None
        if op == "+":
            return make_add(left_int, right_int)
        return make_sub(left_int, right_int)

    if op == "*":
        if not depends_on(left, name):
            inner = _integrate(right, name)
            return None if inner is None else make_mul(left, inner)
        if not depends_on(right, name):
            inner = _integrate(left, name)
            return None if inner is None else make_mul(right, inner)
        return None

    if op == "/":
        if not depends_on(right, name):
            inner = _integrate(left, name)
            return None if inner is None else make_div(inner, right)
        if not depends_on(left, name):
            form = match_linear(right, name)
            if form is None or form.a == 0:
                return None
            coefficient = make_div(left, Number(form.a))
            return make_mul(coefficient, _ln_abs(clone_node(right)))
        return None

    # op == "^"
    if is_variable(left, name) and isinstance(right, Number):
        power = right.value
        if abs(power + 1) < TOLERANCE:
            return _ln_abs(var)
        raised = Number(power + 1)
        return make_div(make_pow(var, raised), raised)
    return None


def _integrate_function(node: Function, name: str) -> Optional[Node]:
    form = match_linear(node.argument, name)
    if form is None or form.a == 0:
        return None
    arg = clone_node(node.argument)
    a = Number(form.a)
    if node.name == "exp":
        return make_div(make_function("exp", arg), a)
    if node.name == "sin":
        return make_div(make_neg(make_function("cos", arg)), a)
    if node.name == "cos":
        return make_div(make_function("sin", arg), a)
    if node.name == "tan":
        return make_div(make_neg(_ln_abs(make_function("cos", arg))), a)
    return None


def _ln_abs(node: Node) -> Node:
    return make_function("ln", make_function("abs", node))
