""" Step-by-step first-order ODE solver."""

"""
Parses an equation of the form ``dy/dx = f(x, y)``, classifies the
right-hand side as one of

  - direct     : f depends on x only          → integrate once
  - separable  : f = g(x) · h(y)              → separate and integrate
  - linear     : f = A(x) · y + B(x)          → integrating factor

and produces a human-readable step trail together with the final answer.
Anything else is reported as unsupported rather than guessed at.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from types import MappingProxyType
from typing import List, Optional, Tuple, Union

import numpy as np
import sympy

from diffsolver import verification
from diffsolver.errors import IntegrationError, SolverError
from diffsolver.expression import (
    Binary, Function, Node, Number, Unary,
    DEPENDENT, INDEPENDENT, depends_on, is_variable,
)
from diffsolver.integrator import integrate
from diffsolver.parser import parse_equation
from diffsolver.render import node_to_string
from diffsolver.simplify import make_add, make_div, make_function, make_mul, make_neg, simplify

logger = logging.getLogger(__name__)

X, Y = INDEPENDENT, DEPENDENT


# ── Classification ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Direct:
    rhs: Node


@dataclass(frozen=True)
class Separable:
    rhs: Node
    x_part: Node
    y_part: Node
    # 1 / y_part, rebuilt from the factors so it stays integrable
    y_reciprocal: Node


@dataclass(frozen=True)
class Linear:
    """``dy/dx = a_node * y + b_node``."""
    rhs: Node
    a_node: Node
    b_node: Node


@dataclass(frozen=True)
class Unsupported:
    rhs: Node


Classification = Union[Direct, Separable, Linear, Unsupported]

CLASSIFICATION_NAMES = MappingProxyType({
    Direct: "direct",
    Separable: "separable",
    Linear: "linear",
    Unsupported: "unsupported",
})


def flatten_product(node: Node) -> List[Tuple[Node, bool]]:
    """Split nested ``*`` and ``/`` into ``(factor, in_denominator)`` pairs.

    A negation contributes a ``-1`` factor.
    """
    factors = []

    def walk(current: Node, denominator: bool) -> None:
        if isinstance(current, Binary) and current.op == "*":
            walk(current.left, denominator)
            walk(current.right, denominator)
        elif isinstance(current, Binary) and current.op == "/":
            walk(current.left, denominator)
            walk(current.right, not denominator)
        elif isinstance(current, Unary):
            factors.append((Number(-1.0), False))
            walk(current.argument, denominator)
        else:
            factors.append((current, denominator))

    walk(node, False)
    return factors


def flatten_sum(node: Node) -> List[Node]:
    """Split nested ``+`` and ``-`` into terms; subtracted terms come back
    multiplied by ``-1``."""
    terms = []

    def walk(current: Node, sign: int) -> None:
        if isinstance(current, Binary) and current.op == "+":
            walk(current.left, sign)
            walk(current.right, sign)
        elif isinstance(current, Binary) and current.op == "-":
            walk(current.left, sign)
            walk(current.right, -sign)
        elif isinstance(current, Unary):
            walk(current.argument, -sign)
        elif sign < 0:
            terms.append(make_mul(Number(-1.0), current))
        else:
            terms.append(current)

    walk(node, 1)
    return terms


def build_product(numerator: List[Node], denominator: List[Node]) -> Node:
    result = None
    for factor in numerator:
        result = factor if result is None else make_mul(result, factor)
    if result is None:
        result = Number(1.0)
    for factor in denominator:
        result = make_div(result, factor)
    return simplify(result)


def _sum_nodes(nodes: List[Node]) -> Node:
    result = None
    for node in nodes:
        result = node if result is None else make_add(result, node)
    return Number(0.0) if result is None else result


def detect_separable(rhs: Node) -> Optional[Separable]:
    x_num, x_den, y_num, y_den = [], [], [], []
    for factor, in_denominator in flatten_product(rhs):
        has_x = depends_on(factor, X)
        has_y = depends_on(factor, Y)
        if has_x and has_y:
            return None
        if has_y:
            (y_den if in_denominator else y_num).append(factor)
        else:
            # Constants travel with the x side.
            (x_den if in_denominator else x_num).append(factor)

    if not y_num and not y_den:
        return None
    x_part = build_product(x_num, x_den)
    y_part = build_product(y_num, y_den)
    if not depends_on(y_part, Y):
        return None
    return Separable(rhs, x_part, y_part, build_product(y_den, y_num))


def _linear_coefficient(term: Node) -> Optional[Node]:
    """Coefficient of ``y`` in *term*, or ``None`` unless *term* holds
    exactly one bare ``y`` factor in its numerator."""
    numerator, denominator = [], []
    y_count = 0
    for factor, in_denominator in flatten_product(term):
        if in_denominator:
            if depends_on(factor, Y):
                return None
            denominator.append(factor)
        elif is_variable(factor, Y):
            y_count += 1
        elif depends_on(factor, Y):
            return None
        else:
            numerator.append(factor)
    if y_count != 1:
        return None
    return build_product(numerator, denominator)


def detect_linear(rhs: Node) -> Optional[Linear]:
    coefficients, free_terms = [], []
    for term in flatten_sum(rhs):
        if depends_on(term, Y):
            coefficient = _linear_coefficient(term)
            if coefficient is None:
                return None
            coefficients.append(coefficient)
        else:
            free_terms.append(term)
    if not coefficients:
        return None
    a_node = simplify(_sum_nodes(coefficients))
    b_node = simplify(_sum_nodes(free_terms))
    if depends_on(a_node, Y) or depends_on(b_node, Y):
        return None
    return Linear(rhs, a_node, b_node)


def classify(rhs: Node) -> Classification:
    """Pick the first family that matches: direct, separable, linear."""
    if not depends_on(rhs, Y):
        return Direct(rhs)
    separable = detect_separable(rhs)
    if separable is not None:
        return separable
    linear = detect_linear(rhs)
    if linear is not None:
        return linear
    return Unsupported(rhs)


# ── Solution builders ────────────────────────────────────────────────────

def _step(title: str, description: str, expression: Optional[str] = None) -> dict:
    step = {"title": title, "description": description}
    if expression is not None:
        step["expression"] = expression
    return step


def _solve_direct(c: Direct) -> dict:
    integral = integrate(c.rhs, X)
    if integral is None:
        raise IntegrationError(
            "The right-hand side cannot be integrated with the supported rules."
        )
    rhs_text = node_to_string(c.rhs)
    integral_text = node_to_string(integral)
    final = f"y(x) = {integral_text} + C"
    steps = [
        _step("Identify the structure",
              "The right-hand side depends on x only, so both sides can be "
              "integrated directly."),
        _step("Integrate both sides",
              "The integral of dy is y; the right-hand side is integrated with respect to x.",
              f"∫ dy = ∫ ({rhs_text}) dx"),
        _step("Write the general solution",
              "Carrying out the integration gives the general solution.",
              final),
    ]
    return {
        "classification": "direct",
        "hint": "This equation depends on x only, so a single integration solves it.",
        "method": {
            "name": "Direct Integration",
            "description": "Integrate the right-hand side with respect to x.",
            "parameters": {
                "equation_type": "dy/dx = f(x)",
                "approach": "Integrate → Add constant",
            },
        },
        "steps": steps,
        "final_answer": final,
        "verify": partial(verification.check_direct, c.rhs, integral),
    }


def _explicit_from_separable(left_integral: Node, right_integral: Node) -> Optional[str]:
    """``y = C · exp(F)`` when the y-side integral is ``ln(abs(y))``."""
    if (isinstance(left_integral, Function) and left_integral.name == "ln"
            and isinstance(left_integral.argument, Function)
            and left_integral.argument.name == "abs"
            and is_variable(left_integral.argument.argument, Y)):
        return f"y = C · exp({node_to_string(right_integral)})"
    return None


def _solve_separable(c: Separable) -> dict:
    x_text = node_to_string(c.x_part)
    y_text = node_to_string(c.y_part)
    left_integral = integrate(c.y_reciprocal, Y)
    right_integral = integrate(c.x_part, X)
    if left_integral is None or right_integral is None:
        side = "1/h(y)" if left_integral is None else "g(x)"
        raise IntegrationError(
            f"The equation is separable, but {side} cannot be integrated "
            f"with the supported rules."
        )
    left_text = node_to_string(left_integral)
    right_text = node_to_string(right_integral)
    implicit = f"{left_text} = {right_text} + C"
    explicit = _explicit_from_separable(left_integral, right_integral)

    steps = [
        _step("Recognise a separable equation",
              "The right-hand side is a product of a function of x and a function of y."),
        _step("Separate the variables",
              "Divide by the y factor so each side holds a single variable.",
              f"1/({y_text}) dy = ({x_text}) dx"),
        _step("Integrate both sides",
              "Integrate the left side with respect to y and the right side with respect to x.",
              f"∫ 1/({y_text}) dy = ∫ ({x_text}) dx"),
        _step("Write the general solution",
              "The result relates x and y implicitly.",
              implicit),
    ]
    if explicit:
        steps.append(_step(
            "Solve for y",
            "Exponentiating both sides removes the logarithm and absorbs the "
            "constant into C.",
            explicit,
        ))
        verify = partial(verification.check_separable_explicit, c.rhs, right_integral)
    else:
        verify = partial(verification.verify_implicit, c.rhs, left_integral, right_integral)

    return {
        "classification": "separable",
        "hint": "This equation is separable. Move every y to one side and every x to the other.",
        "method": {
            "name": "Separation of Variables",
            "description": "Write dy/dx = g(x)·h(y), divide by h(y) and integrate both sides.",
            "parameters": {
                "equation_type": "dy/dx = g(x)·h(y)",
                "g(x)": x_text,
                "h(y)": y_text,
                "approach": "Separate → Integrate → Solve for y",
            },
        },
        "steps": steps,
        "final_answer": explicit or implicit,
        "verify": verify,
    }


def _solve_linear(c: Linear) -> dict:
    p = make_neg(c.a_node)
    q = simplify(c.b_node)
    p_text = node_to_string(p)
    q_text = node_to_string(q)
    integral_p = integrate(p, X)
    if integral_p is None:
        raise IntegrationError(
            f"The equation is linear, but P(x) = {p_text} cannot be integrated "
            f"with the supported rules."
        )
    mu = make_function("exp", integral_p)
    mu_text = node_to_string(mu)
    mu_q = make_mul(mu, q)
    mu_q_text = node_to_string(mu_q)
    integral_mu_q = integrate(mu_q, X)

    if integral_mu_q is not None:
        final = f"y(x) = ({node_to_string(integral_mu_q)} + C) / {mu_text}"
        last = _step("Solve for y",
                     "Dividing by μ(x) gives the general solution.",
                     final)
        verify = partial(verification.check_linear, c.rhs, mu, integral_mu_q)
    else:
        final = f"y(x) = (1/{mu_text}) * (∫ ({mu_q_text}) dx + C)"
        last = _step("Write the general form",
                     "The remaining integral is outside the supported rules, so "
                     "it is left unevaluated.",
                     final)
        verify = partial(verification.check_linear_unevaluated, c.rhs, mu, mu_q)

    steps = [
        _step("Recognise a first-order linear equation",
              "Rewrite the equation in the standard form dy/dx + P(x)·y = Q(x)."),
        _step("Identify P(x) and Q(x)",
              "P(x) is the coefficient of y with its sign flipped; Q(x) is everything else.",
              f"P(x) = {p_text}   ,   Q(x) = {q_text}"),
        _step("Compute the integrating factor",
              "The integrating factor is μ(x) = exp(∫ P(x) dx).",
              f"μ(x) = exp({node_to_string(integral_p)}) = {mu_text}"),
        _step("Multiply through by μ(x)",
              "After multiplying by μ(x) the left side is the derivative of μ(x)·y.",
              f"d/dx [μ(x) · y] = μ(x) · Q(x) = {mu_q_text}"),
        _step("Integrate both sides",
              "Integrate with respect to x to obtain μ(x)·y.",
              f"μ(x) · y = ∫ ({mu_q_text}) dx + C"),
        last,
    ]
    return {
        "classification": "linear",
        "hint": "This is a first-order linear equation. Find the integrating factor and multiply through by it.",
        "method": {
            "name": "Integrating Factor",
            "description": "Bring the equation to dy/dx + P(x)·y = Q(x) and multiply by exp(∫ P dx).",
            "parameters": {
                "equation_type": "dy/dx = A(x)·y + B(x)",
                "P(x)": p_text,
                "Q(x)": q_text,
                "approach": "Standard form → Integrating factor → Integrate → Solve for y",
            },
        },
        "steps": steps,
        "final_answer": final,
        "verify": verify,
    }


_BUILDERS = MappingProxyType({
    Direct: _solve_direct,
    Separable: _solve_separable,
    Linear: _solve_linear,
})


# ── Main public entry point ─────────────────────────────────────────────

def _summary(t_start: float, steps: list, verification_steps: list,
             validation_status: str) -> dict:
    runtime_ms = round((time.perf_counter() - t_start) * 1000, 2)
    return {
        "runtime_ms": runtime_ms,
        "total_steps": len(steps),
        "verification_steps": len(verification_steps),
        "validation_status": validation_status,
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "library": f"NumPy {np.__version__}, SymPy {sympy.__version__}",
    }


def solve(equation_str: str) -> dict:
    """
    Solve a first-order ODE ``dy/dx = f(x, y)`` step by step.

    Never raises for bad input. The returned dict always has ``status``:

      - ``"ok"``          solved; classification, steps and final_answer are set
      - ``"unsupported"`` parsed, but no supported family matched
      - ``"error"``       syntax error or a required integral is out of reach

    ``rhs_node`` is included whenever the right-hand side parsed, so a
    derivative evaluator can be built from it.
    """
    t_start = time.perf_counter()
    result = {"equation": equation_str}

    try:
        rhs, normalized = parse_equation(equation_str)
    except SolverError as e:
        result.update(status="error", message=str(e))
        return result

    result.update(rhs_node=rhs, normalized_equation=normalized)
    result["given"] = {
        "problem": "Solve the first-order differential equation",
        "inputs": {
            "equation": normalized,
            "right_side": node_to_string(rhs),
            "independent_variable": X,
            "dependent_variable": Y,
        },
    }

    classification = classify(rhs)
    logger.debug("Classified %r as %s", normalized,
                 CLASSIFICATION_NAMES[type(classification)])

    builder = _BUILDERS.get(type(classification))
    if builder is None:
        result.update(
            status="unsupported",
            classification="unsupported",
            message=(
                "This equation is not supported yet. Try a simpler form: "
                "direct, separable or first-order linear equations are supported."
            ),
        )
        return result

    try:
        solved = builder(classification)
    except IntegrationError as e:
        logger.debug("Integration failed for %r: %s", normalized, e)
        result.update(status="error", message=str(e))
        return result

    steps = solved.pop("steps")
    for i, step in enumerate(steps, start=1):
        step["step_number"] = i
    verification_steps, validation_status = solved.pop("verify")()

    result.update(status="ok", steps=steps, verification_steps=verification_steps, **solved)
    result["summary"] = _summary(t_start, steps, verification_steps, validation_status)
    return result

