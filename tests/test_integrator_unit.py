import math

import pytest

from diffsolver.expression import Number, Variable, evaluate
from diffsolver.integrator import LinearForm, integrate, match_linear
from diffsolver.parser import parse
from diffsolver.render import node_to_string

SAMPLE_X = (0.35, 0.8, 1.3, 2.1, 2.9)


def _assert_antiderivative(text: str, name: str = "x", fixed: float = 0.6) -> None:
    """Check d/dv integrate(f) == f by central differences."""
    integrand = parse(text)
    antiderivative = integrate(integrand, name)
    assert antiderivative is not None, f"no rule for {text}"
    other = "y" if name == "x" else "x"
    h = 1e-5
    checked = 0
    for v in SAMPLE_X:
        upper = float(evaluate(antiderivative, {name: v + h, other: fixed}))
        lower = float(evaluate(antiderivative, {name: v - h, other: fixed}))
        expected = float(evaluate(integrand, {name: v, other: fixed}))
        if not all(map(math.isfinite, (upper, lower, expected))):
            continue
        checked += 1
        assert (upper - lower) / (2 * h) == pytest.approx(expected, rel=1e-5, abs=1e-6)
    assert checked > 0


# ── Rule outputs ─────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "text,expected",
    [
        ("3", "3 * x"),
        ("x", "x ^ 2 / 2"),
        ("x^3", "x ^ 4 / 4"),
        ("x^-1", "ln(abs(x))"),
        ("1/x", "ln(abs(x))"),
        ("1/(x+1)", "ln(abs(x + 1))"),
        ("2*x", "2 * x ^ 2 / 2"),
        ("y", "y * x"),
        ("exp(x)", "exp(x)"),
        ("cos(x)", "sin(x)"),
        ("exp(2*x + 1)", "exp(2 * x + 1) / 2"),
        ("-x", "-(x ^ 2 / 2)"),
    ],
)
def test_integrate_renders(text, expected) -> None:
    assert node_to_string(integrate(parse(text), "x")) == expected


@pytest.mark.parametrize(
    "text",
    [
        "5 + x",
        "x - 2*x^2",
        "x^2/5",
        "2/(3*x + 1)",
        "sin(3*x)",
        "cos(x/2 - 1)",
        "tan(x/4)",
        "exp(-x) + x^0.5",
        "sqrt(2)*x",
        "-(sin(x) - 4)",
        "pi*cos(pi*x)",
    ],
)
def test_integrate_differentiates_back(text) -> None:
    _assert_antiderivative(text)


def test_integrate_with_respect_to_y_treats_x_as_constant() -> None:
    assert node_to_string(integrate(parse("1/y"), "y")) == "ln(abs(y))"
    _assert_antiderivative("x*y^2 + exp(-y)", name="y")


@pytest.mark.parametrize(
    "text",
    [
        "x*sin(x)",
        "sin(x^2)",
        "1/(x^2 + 1)",
        "x^x",
        "2^x",
        "(x + 1)^2",
        "ln(x)",
        "sqrt(x)",
        "x/(x + 1)",
        "exp(x)*x",
    ],
)
def test_unsupported_integrands_return_none(text) -> None:
    assert integrate(parse(text), "x") is None


def test_integrand_without_the_variable_is_a_constant() -> None:
    assert node_to_string(integrate(parse("1/(y + 2)"), "x")) == "1 / (y + 2) * x"


# ── Affine matching ──────────────────────────────────────────────────────

def test_match_linear_simple() -> None:
    form = match_linear(parse("3*x + 2"), "x")
    assert form == LinearForm(3.0, Number(2.0))


def test_match_linear_walks_negation_and_division() -> None:
    form = match_linear(parse("-(2*x - 1)/4"), "x")
    assert form.a == pytest.approx(-0.5)
    assert float(evaluate(form.b, {})) == pytest.approx(0.25)


def test_match_linear_evaluates_constant_factors() -> None:
    form = match_linear(parse("sqrt(2)*x + 1"), "x")
    assert form.a == pytest.approx(math.sqrt(2))


def test_match_linear_keeps_symbolic_offset() -> None:
    form = match_linear(parse("y + 2"), "x")
    assert form.a == 0.0
    assert node_to_string(form.b) == "y + 2"


@pytest.mark.parametrize("text", ["x^2", "x*x", "1/x", "sin(x)", "x*y", "x/0"])
def test_match_linear_rejects_non_affine(text) -> None:
    assert match_linear(parse(text), "x") is None


@pytest.mark.parametrize("a,b", [(1.0, 0.0), (-1.5, 2.0), (4.0, -3.0), (0.25, 7.5)])
def test_match_linear_recovers_coefficients(a, b) -> None:
    form = match_linear(parse(f"{a}*x + {b}"), "x")
    assert form.a == pytest.approx(a)
    assert float(evaluate(form.b, {})) == pytest.approx(b)


def test_match_linear_on_bare_variable() -> None:
    assert match_linear(Variable("x"), "x") == LinearForm(1.0, Number(0.0))
