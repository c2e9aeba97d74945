"""Error taxonomy for DiffSolver.

All errors derive from ``ValueError``.
"""


class SolverError(ValueError):
    """Base class for all errors raised by the solver core."""


class ParseError(SolverError):
    """Malformed equation text: bad token, unbalanced parentheses,
    arity mismatch or a left-hand side other than ``dy/dx``."""


class IntegrationError(SolverError):
    """A required antiderivative is outside the supported rule set."""


class EvaluationError(SolverError):
    """Numeric evaluation hit an unbound variable."""
