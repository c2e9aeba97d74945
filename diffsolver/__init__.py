"""DiffSolver — step-by-step solver for first-order ODEs ``dy/dx = f(x, y)``."""

from diffsolver.engine import classify, solve
from diffsolver.errors import EvaluationError, IntegrationError, ParseError, SolverError
from diffsolver.integrator import LinearForm, integrate, match_linear
from diffsolver.numerical import Trajectory, make_derivative_evaluator, sample_trajectory
from diffsolver.parser import parse, parse_equation
from diffsolver.render import node_to_string
from diffsolver.simplify import simplify

__version__ = "1.0.0"

__all__ = [
    "classify",
    "solve",
    "parse",
    "parse_equation",
    "simplify",
    "node_to_string",
    "integrate",
    "match_linear",
    "LinearForm",
    "make_derivative_evaluator",
    "sample_trajectory",
    "Trajectory",
    "SolverError",
    "ParseError",
    "IntegrationError",
    "EvaluationError",
]
