"""Runtime configuration for the DiffSolver API, read once from the environment."""

import os

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("DIFFSOLVER_ALLOWED_ORIGINS", "*").split(",")
    if o.strip()
]
LOG_LEVEL = os.getenv("DIFFSOLVER_LOG_LEVEL", "INFO").upper()
MAX_EQUATION_LENGTH = int(os.getenv("DIFFSOLVER_MAX_EQUATION_LENGTH", "500"))
MAX_STEPS = int(os.getenv("DIFFSOLVER_MAX_STEPS", "2000"))
