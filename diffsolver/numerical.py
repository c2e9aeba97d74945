"""Numerical trajectory sampling using NumPy.

Builds a NaN-safe derivative function from the right-hand side of
``dy/dx = f(x, y)`` and walks a solution curve through an initial point
with the classical fourth-order Runge–Kutta method, in both directions.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple

import numpy as np

from diffsolver.errors import SolverError
from diffsolver.expression import DEPENDENT, INDEPENDENT, Node, evaluate

# ── Defaults ─────────────────────────────────────────────────────────────

DEFAULT_SPAN = 4.0
STEPS_PER_SIDE = 160
DEFAULT_X0 = 0.0
DEFAULT_Y0 = 1.0


class Point(NamedTuple):
    x: float
    y: float


@dataclass
class Trajectory:
    """Samples on either side of the initial point.

    ``backward`` is stored in increasing-x order, so
    ``backward + [initial] + forward`` runs left to right.
    """
    initial: Point
    forward: List[Point] = field(default_factory=list)
    backward: List[Point] = field(default_factory=list)

    def points(self) -> List[Point]:
        """All finite samples in increasing-x order, initial point included."""
        ordered = [*self.backward, self.initial, *self.forward]
        return [p for p in ordered if math.isfinite(p.x) and math.isfinite(p.y)]

    def as_array(self) -> np.ndarray:
        """The result of :meth:`points` as an ``(n, 2)`` float array."""
        pts = self.points()
        if not pts:
            return np.empty((0, 2), dtype=float)
        return np.array(pts, dtype=float)


def make_derivative_evaluator(rhs: Node) -> Callable[[float, float], float]:
    """Return ``f(x, y)`` for *rhs*.

    The function never raises for bad points: unbound variables, division
    by zero and domain errors all come back as ``nan``.
    """
    def derivative(x: float, y: float) -> float:
        try:
            value = float(evaluate(rhs, {INDEPENDENT: x, DEPENDENT: y}))
        except (SolverError, ArithmeticError, ValueError, TypeError):
            return math.nan
        if not math.isfinite(value):
            return math.nan
        return value

    return derivative


def _safe_slope(f, x: float, y: float) -> float:
    value = f(x, y)
    if not math.isfinite(value):
        return 0.0
    return value


def rk4_step(f, x: float, y: float, h: float) -> Point:
    """One classical Runge–Kutta step of size *h* from ``(x, y)``."""
    k1 = _safe_slope(f, x, y)
    k2 = _safe_slope(f, x + h / 2, y + h * k1 / 2)
    k3 = _safe_slope(f, x + h / 2, y + h * k2 / 2)
    k4 = _safe_slope(f, x + h, y + h * k3)
    next_y = y + (h / 6) * (k1 + 2 * k2 + 2 * k3 + k4)
    if not math.isfinite(next_y):
        next_y = math.nan
    return Point(x + h, next_y)


def integrate_direction(f, x0: float, y0: float, span: float,
                        steps: int, direction: int) -> List[Point]:
    """March *steps* RK4 steps from ``(x0, y0)``; stop at the first
    non-finite value. Points are returned in marching order."""
    h = (span / steps) * direction
    x, y = x0, y0
    points = []
    for _ in range(steps):
        point = rk4_step(f, x, y, h)
        if not math.isfinite(point.y):
            break
        x, y = point
        points.append(point)
    return points


def sample_trajectory(f, x0: float = DEFAULT_X0, y0: float = DEFAULT_Y0,
                      span: float = DEFAULT_SPAN,
                      steps_per_side: int = STEPS_PER_SIDE) -> Trajectory:
    """Sample the solution through ``(x0, y0)`` over ``[x0 - span, x0 + span]``."""
    if steps_per_side <= 0:
        raise ValueError("steps_per_side must be a positive integer.")
    if not (math.isfinite(span) and span > 0):
        raise ValueError("span must be a positive finite number.")
    forward = integrate_direction(f, x0, y0, span, steps_per_side, 1)
    backward = integrate_direction(f, x0, y0, span, steps_per_side, -1)
    backward.reverse()
    return Trajectory(Point(float(x0), float(y0)), forward, backward)
