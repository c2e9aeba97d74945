import pytest

from diffsolver import engine
from diffsolver.expression import Binary, Number, Variable
from diffsolver.numerical import make_derivative_evaluator
from diffsolver.parser import parse

X = Variable("x")
Y = Variable("y")


# ── Classification helpers ───────────────────────────────────────────────

def test_flatten_product_tracks_denominators_and_negation() -> None:
    assert engine.flatten_product(parse("2*x/y")) == [
        (Number(2.0), False), (X, False), (Y, True),
    ]
    assert engine.flatten_product(parse("-x*y")) == [
        (Number(-1.0), False), (X, False), (Y, False),
    ]


def test_flatten_sum_signs_subtracted_terms() -> None:
    assert engine.flatten_sum(parse("x - y + 2")) == [
        X, Binary("*", Number(-1.0), Y), Number(2.0),
    ]


def test_build_product() -> None:
    assert engine.build_product([], []) == Number(1.0)
    assert engine.build_product([X], [Y]) == Binary("/", X, Y)
    assert engine.build_product([], [Y]) == Binary("/", Number(1.0), Y)


def test_classify_families() -> None:
    assert isinstance(engine.classify(parse("x^2 + 1")), engine.Direct)

    separable = engine.classify(parse("x*y"))
    assert isinstance(separable, engine.Separable)
    assert separable.x_part == X
    assert separable.y_part == Y
    assert separable.y_reciprocal == Binary("/", Number(1.0), Y)

    linear = engine.classify(parse("x + y"))
    assert isinstance(linear, engine.Linear)
    assert linear.a_node == Number(1.0)
    assert linear.b_node == X

    assert isinstance(engine.classify(parse("y^2 + x")), engine.Unsupported)


def test_separable_reciprocal_is_rebuilt_from_factors() -> None:
    separable = engine.classify(parse("x/y"))
    assert separable.y_part == Binary("/", Number(1.0), Y)
    assert separable.y_reciprocal == Y


def test_y_only_sum_is_separable() -> None:
    assert isinstance(engine.classify(parse("2*y + 3")), engine.Separable)


def test_linear_rejects_nonlinear_y_terms() -> None:
    assert engine.detect_linear(parse("x*y + y^2")) is None
    assert engine.detect_linear(parse("x + 1/y")) is None
    assert engine.detect_linear(parse("x^2")) is None


# ── solve(): direct ──────────────────────────────────────────────────────

def test_solve_direct_required_fields_and_steps() -> None:
    result = engine.solve("dy/dx = 2*x")

    required_fields = {
        "equation", "status", "classification", "hint", "given", "method",
        "steps", "final_answer", "verification_steps", "summary",
        "normalized_equation", "rhs_node",
    }
    assert required_fields.issubset(result.keys())
    assert result["status"] == "ok"
    assert result["classification"] == "direct"
    assert result["final_answer"] == "y(x) = 2 * x ^ 2 / 2 + C"
    assert result["normalized_equation"] == "dy/dx = 2 * x"
    assert result["given"]["inputs"]["right_side"] == "2 * x"

    steps = result["steps"]
    assert [s["step_number"] for s in steps] == [1, 2, 3]
    assert steps[1]["expression"] == "∫ dy = ∫ (2 * x) dx"
    assert steps[-1]["expression"] == result["final_answer"]
    assert all(isinstance(s["title"], str) and s["title"] for s in steps)


def test_solve_direct_log_rule() -> None:
    result = engine.solve("dy/dx = 1/(x+1)")
    assert result["classification"] == "direct"
    assert result["final_answer"] == "y(x) = ln(abs(x + 1)) + C"
    assert result["summary"]["validation_status"] == "pass"


def test_summary_fields() -> None:
    summary = engine.solve("dy/dx = cos(x)")["summary"]
    assert summary["total_steps"] == 3
    assert summary["verification_steps"] == 3
    assert summary["validation_status"] == "pass"
    assert summary["runtime_ms"] >= 0
    assert "SymPy" in summary["library"]
    assert len(summary["timestamp"]) == 19


def test_verification_steps_are_numbered() -> None:
    steps = engine.solve("dy/dx = 2*x")["verification_steps"]
    assert [s["step_number"] for s in steps] == list(range(1, len(steps) + 1))
    assert {"description", "expression", "explanation"}.issubset(steps[0].keys())


# ── solve(): separable ───────────────────────────────────────────────────

def test_solve_separable_y_alone() -> None:
    result = engine.solve("dy/dx = y")
    assert result["classification"] == "separable"
    assert result["final_answer"] == "y = C · exp(x)"
    assert result["summary"]["validation_status"] == "pass"


def test_solve_separable_explicit() -> None:
    result = engine.solve("dy/dx = x*y")
    assert result["status"] == "ok"
    assert result["classification"] == "separable"
    assert result["final_answer"] == "y = C · exp(x ^ 2 / 2)"
    assert result["method"]["parameters"]["g(x)"] == "x"
    assert result["method"]["parameters"]["h(y)"] == "y"
    assert result["steps"][-1]["title"] == "Solve for y"
    assert result["summary"]["validation_status"] == "pass"


def test_solve_separable_with_negation() -> None:
    result = engine.solve("dy/dx = -(x*y)")
    assert result["classification"] == "separable"
    assert result["final_answer"] == "y = C · exp(-1 * x ^ 2 / 2)"
    assert result["summary"]["validation_status"] == "pass"


def test_solve_separable_implicit() -> None:
    result = engine.solve("dy/dx = x/y")
    assert result["classification"] == "separable"
    assert result["final_answer"] == "y ^ 2 / 2 = x ^ 2 / 2 + C"
    assert result["summary"]["validation_status"] == "pass"


def test_solve_separable_affine_in_y() -> None:
    result = engine.solve("dy/dx = 2*y + 3")
    assert result["classification"] == "separable"
    assert result["final_answer"] == "0.5 * ln(abs(2 * y + 3)) = x + C"
    assert result["summary"]["validation_status"] == "pass"


# ── solve(): linear ──────────────────────────────────────────────────────

def test_solve_linear_leaves_integral_unevaluated() -> None:
    result = engine.solve("dy/dx = x + y")
    assert result["status"] == "ok"
    assert result["classification"] == "linear"

    expressions = [s.get("expression") for s in result["steps"]]
    assert "P(x) = -1   ,   Q(x) = x" in expressions
    assert result["method"]["parameters"]["P(x)"] == "-1"
    assert result["final_answer"] == "y(x) = (1/exp(-1 * x)) * (∫ (exp(-1 * x) * x) dx + C)"
    assert result["summary"]["validation_status"] == "pass"


def test_solve_linear_with_variable_coefficient() -> None:
    result = engine.solve("dy/dx = y/x + 1")
    assert result["status"] == "ok"
    assert result["classification"] == "linear"
    assert result["method"]["parameters"]["P(x)"] == "-(1 / x)"


def test_solve_linear_evaluated_integral() -> None:
    rhs = parse("2*y + 3")
    solved = engine._solve_linear(engine.Linear(rhs, Number(2.0), Number(3.0)))
    assert solved["final_answer"] == "y(x) = (3 * exp(-2 * x) / -2 + C) / exp(-2 * x)"
    assert len(solved["steps"]) == 6
    _, status = solved["verify"]()
    assert status == "pass"


# ── solve(): failures ────────────────────────────────────────────────────

def test_unsupported_equation() -> None:
    result = engine.solve("dy/dx = sin(x*y)")
    assert result["status"] == "unsupported"
    assert result["classification"] == "unsupported"
    assert "not supported" in result["message"]
    assert "steps" not in result
    assert result["rhs_node"] is not None


@pytest.mark.parametrize(
    "equation,message",
    [
        ("dy/dx = x +", "missing an operand"),
        ("dy/dx = ", "empty"),
        ("y' = x", "left-hand side"),
        ("", "enter a differential equation"),
        ("dy/dx = x*sin(x)", "cannot be integrated"),
        ("dy/dx = y^2", "separable, but 1/h(y)"),
        ("dy/dx = sin(y)", "separable"),
    ],
)
def test_errors_come_back_as_status(equation, message) -> None:
    result = engine.solve(equation)
    assert result["status"] == "error"
    assert message in result["message"]
    assert "final_answer" not in result


def test_rhs_node_feeds_the_derivative_evaluator() -> None:
    result = engine.solve("dy/dx = x*y")
    f = make_derivative_evaluator(result["rhs_node"])
    assert f(1.0, 2.0) == pytest.approx(2.0)
    assert f(-3.0, 0.5) == pytest.approx(-1.5)


def test_small_coefficients_keep_a_parseable_trail() -> None:
    result = engine.solve("dy/dx = 0.00005*x")
    assert result["status"] == "ok"
    assert result["normalized_equation"] == "dy/dx = 0.00005 * x"
    assert result["final_answer"] == "y(x) = 0.00005 * x ^ 2 / 2 + C"
    assert "e-" not in result["final_answer"]
    parse(result["final_answer"][len("y(x) = "):-len(" + C")])


def test_non_finite_right_hand_side_is_an_error() -> None:
    result = engine.solve("dy/dx = 1/0")
    assert result["status"] == "error"
    assert "divides by zero" in result["message"]
