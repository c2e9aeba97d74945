import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from backend.app import config
from diffsolver import __version__, make_derivative_evaluator, sample_trajectory, solve
from diffsolver.errors import SolverError
from diffsolver.numerical import DEFAULT_SPAN, DEFAULT_X0, DEFAULT_Y0, STEPS_PER_SIDE
from diffsolver.parser import parse_equation

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("diffsolver.backend")

app = FastAPI(title="DiffSolver API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class EquationRequest(BaseModel):
    equation: str


class TrajectoryRequest(BaseModel):
    equation: str
    x0: float = DEFAULT_X0
    y0: float = DEFAULT_Y0
    span: float = Field(DEFAULT_SPAN, gt=0)
    steps: int = Field(STEPS_PER_SIDE, gt=0)


class StepInfo(BaseModel):
    step_number: int
    title: str
    description: str
    expression: Optional[str] = None


class VerificationStep(BaseModel):
    step_number: int
    description: str
    expression: str
    explanation: str


class SolveResponse(BaseModel):
    status: str
    equation: str
    message: Optional[str] = None
    classification: Optional[str] = None
    normalized_equation: Optional[str] = None
    hint: Optional[str] = None
    given: Optional[dict] = None
    method: Optional[dict] = None
    steps: list[StepInfo] = []
    final_answer: Optional[str] = None
    verification_steps: list[VerificationStep] = []
    summary: Optional[dict] = None


class TrajectoryResponse(BaseModel):
    x0: float
    y0: float
    forward: list[tuple[float, float]]
    backward: list[tuple[float, float]]
    points: list[tuple[float, float]]


def _check_length(equation: str) -> str:
    equation = equation.strip()
    if not equation:
        raise HTTPException(status_code=400, detail="Equation cannot be empty.")
    if len(equation) > config.MAX_EQUATION_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Equation is longer than {config.MAX_EQUATION_LENGTH} characters.",
        )
    return equation


@app.get("/api/health")
def health():
    return {"status": "ok", "version": __version__}


@app.post("/api/solve", response_model=SolveResponse)
def solve_endpoint(req: EquationRequest):
    equation = _check_length(req.equation)
    try:
        result = solve(equation)
    except Exception as e:
        logger.exception("Solver crashed on %r", equation)
        raise HTTPException(status_code=500, detail=f"Solver error: {str(e)}")

    logger.info("solve %r -> %s", equation, result["status"])
    if result["status"] == "error":
        raise HTTPException(status_code=400, detail=result["message"])
    result.pop("rhs_node", None)
    return result


@app.post("/api/trajectory", response_model=TrajectoryResponse)
def trajectory_endpoint(req: TrajectoryRequest):
    equation = _check_length(req.equation)
    if req.steps > config.MAX_STEPS:
        raise HTTPException(
            status_code=400,
            detail=f"At most {config.MAX_STEPS} steps per side are allowed.",
        )
    try:
        rhs, _ = parse_equation(equation)
    except SolverError as e:
        raise HTTPException(status_code=400, detail=str(e))

    derivative = make_derivative_evaluator(rhs)
    try:
        trajectory = sample_trajectory(derivative, req.x0, req.y0, req.span, req.steps)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("trajectory %r from (%g, %g): %d points",
                equation, req.x0, req.y0, len(trajectory.points()))
    return {
        "x0": req.x0,
        "y0": req.y0,
        "forward": trajectory.forward,
        "backward": trajectory.backward,
        "points": trajectory.points(),
    }
