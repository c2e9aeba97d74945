"""Verification of derived solutions using SymPy.

Every solution the engine produces is converted to SymPy, differentiated
and substituted back into ``dy/dx = f(x, y)``. The two sides are then
compared numerically at a fixed grid of sample points. The outcome is
reported as a list of verification steps plus a status:

  - ``"pass"``    every finite sample agrees
  - ``"fail"``    at least one finite sample disagrees
  - ``"skipped"`` no sample point was finite (nothing to compare)
"""

import itertools
import logging
import math
from types import MappingProxyType

import sympy

from diffsolver.expression import Function, Node, Number, Unary, Variable

logger = logging.getLogger(__name__)

X, Y, C = sympy.symbols("x y C", real=True)
K = sympy.Symbol("K", real=True)

_SYMPY_FUNCTIONS = MappingProxyType({
    "sin": sympy.sin,
    "cos": sympy.cos,
    "tan": sympy.tan,
    "cot": sympy.cot,
    "sec": sympy.sec,
    "csc": sympy.csc,
    "exp": sympy.exp,
    "ln": sympy.log,
    "log": sympy.log,
    "sqrt": sympy.sqrt,
    "abs": sympy.Abs,
})

_SAMPLE_X = (-1.3, -0.4, 0.35, 0.9, 1.6)
_SAMPLE_Y = (-1.2, 0.45, 1.7)
_SAMPLE_CONSTANTS = (0.7, 2.5)
_REL_TOL = 1e-6


def to_sympy(node: Node) -> sympy.Expr:
    """Convert an expression tree to the equivalent SymPy expression."""
    if isinstance(node, Number):
        value = node.value
        if not math.isfinite(value):
            return sympy.nan
        if float(value).is_integer():
            return sympy.Integer(int(value))
        return sympy.Float(value)
    if isinstance(node, Variable):
        return X if node.name == "x" else Y
    if isinstance(node, Unary):
        return -to_sympy(node.argument)
    if isinstance(node, Function):
        return _SYMPY_FUNCTIONS[node.name](to_sympy(node.argument))
    left = to_sympy(node.left)
    right = to_sympy(node.right)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if node.op == "/":
        return left / right
    return sympy.Pow(left, right)


# ── Numeric comparison ───────────────────────────────────────────────────

def _numeric(expr, subs: dict):
    try:
        value = complex(expr.evalf(subs=subs))
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    if not (math.isfinite(value.real) and math.isfinite(value.imag)):
        return None
    if abs(value.imag) > _REL_TOL * (1 + abs(value.real)):
        return None
    return value.real


def _compare(lhs, rhs, grid) -> tuple:
    """Return ``(checked, mismatches)`` over the substitution *grid*."""
    checked = 0
    mismatches = []
    for subs in grid:
        left = _numeric(lhs, subs)
        right = _numeric(rhs, subs)
        if left is None or right is None:
            continue
        checked += 1
        if abs(left - right) > _REL_TOL * (1 + abs(left) + abs(right)):
            mismatches.append((subs, left, right))
    return checked, mismatches


def _grid(*symbols_and_values):
    symbols = [s for s, _ in symbols_and_values]
    for values in itertools.product(*(v for _, v in symbols_and_values)):
        yield dict(zip(symbols, values))


def _outcome(checked: int, mismatches: list, lhs_label: str, rhs_label: str) -> tuple:
    if checked == 0:
        status = "skipped"
        expression = "No sample point gave finite values"
        explanation = "The solution could not be evaluated at any sample point."
    elif mismatches:
        status = "fail"
        subs, left, right = mismatches[0]
        at = ", ".join(f"{k} = {v:g}" for k, v in subs.items())
        expression = f"{lhs_label} = {left:.6g},  {rhs_label} = {right:.6g}  ✗"
        explanation = (
            f"{len(mismatches)} of {checked} sample points disagree "
            f"(first at {at})."
        )
    else:
        status = "pass"
        expression = f"{lhs_label} = {rhs_label} at {checked} sample points  ✓"
        explanation = "Both sides agree at every sample point, so the solution is consistent."
    step = {
        "description": "Compare both sides numerically",
        "expression": expression,
        "explanation": explanation,
    }
    return step, status


def _finish(steps: list, status: str, kind: str) -> tuple:
    for i, s in enumerate(steps, start=1):
        s["step_number"] = i
    if status == "fail":
        logger.warning("Derived %s solution failed verification", kind)
    return steps, status


# ── Public checks ────────────────────────────────────────────────────────

def verify_explicit(rhs: Node, solution: sympy.Expr, extra=()) -> tuple:
    """Check ``y = solution(x, C)`` against ``dy/dx = rhs``.

    *extra* lists additional ``(symbol, sample_values)`` pairs that appear
    in *solution*.
    """
    f = to_sympy(rhs)
    derivative = sympy.diff(solution, X)
    substituted = f.subs(Y, solution)
    return _verify_explicit_parts(solution, derivative, substituted, extra)


def _verify_explicit_parts(solution, derivative, substituted, extra) -> tuple:
    steps = [
        {
            "description": "Differentiate the solution",
            "expression": f"dy/dx = {sympy.sstr(derivative)}",
            "explanation": f"We differentiate y = {sympy.sstr(solution)} with respect to x.",
        },
        {
            "description": "Substitute the solution into the right-hand side",
            "expression": f"f(x, y) = {sympy.sstr(substituted)}",
            "explanation": "We replace y in the right-hand side with the solution.",
        },
    ]
    grid = _grid((X, _SAMPLE_X), (C, _SAMPLE_CONSTANTS), *extra)
    checked, mismatches = _compare(derivative, substituted, grid)
    step, status = _outcome(checked, mismatches, "dy/dx", "f(x, y)")
    steps.append(step)
    return _finish(steps, status, "explicit")


def verify_implicit(rhs: Node, left_integral: Node, right_integral: Node) -> tuple:
    """Check ``G(y) = F(x) + C`` by implicit differentiation:
    ``F'(x)`` must equal ``G'(y) * f(x, y)``."""
    f = to_sympy(rhs)
    g_prime = sympy.diff(to_sympy(left_integral), Y)
    f_prime = sympy.diff(to_sympy(right_integral), X)
    implied = g_prime * f
    steps = [
        {
            "description": "Differentiate both sides implicitly",
            "expression": f"G'(y) · dy/dx = {sympy.sstr(f_prime)}",
            "explanation": (
                f"With G'(y) = {sympy.sstr(g_prime)}, the relation holds exactly "
                f"when G'(y) · f(x, y) equals F'(x)."
            ),
        },
    ]
    grid = _grid((X, _SAMPLE_X), (Y, _SAMPLE_Y))
    checked, mismatches = _compare(f_prime, implied, grid)
    step, status = _outcome(checked, mismatches, "F'(x)", "G'(y) · f(x, y)")
    steps.append(step)
    return _finish(steps, status, "implicit")


def check_direct(rhs: Node, integral: Node) -> tuple:
    return verify_explicit(rhs, to_sympy(integral) + C)


def check_separable_explicit(rhs: Node, right_integral: Node) -> tuple:
    return verify_explicit(rhs, C * sympy.exp(to_sympy(right_integral)))


def check_linear(rhs: Node, mu: Node, integral_mu_q: Node) -> tuple:
    return verify_explicit(rhs, (to_sympy(integral_mu_q) + C) / to_sympy(mu))


def check_linear_unevaluated(rhs: Node, mu: Node, mu_q: Node) -> tuple:
    """Check ``y = (I(x) + C) / mu`` where ``I' = mu*Q`` is left unevaluated.

    ``I`` is modelled as an undefined function; after its derivative is
    replaced by ``mu*Q`` the remaining ``I(x)`` is sampled as a free value.
    """
    integral = sympy.Function("I")(X)
    solution = (integral + C) / to_sympy(mu)
    derivative = sympy.diff(solution, X).subs(sympy.Derivative(integral, X), to_sympy(mu_q))
    substituted = to_sympy(rhs).subs(Y, solution)
    return _verify_explicit_parts(
        solution.subs(integral, K),
        derivative.subs(integral, K),
        substituted.subs(integral, K),
        extra=((K, (-0.8, 1.9)),),
    )
