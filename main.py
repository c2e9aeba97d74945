"""
DiffSolver — Entry point.

Solve one equation given on the command line, or run the sample set:

    python main.py "dy/dx = x*y"
"""

import logging
import os
import sys

from diffsolver import solve

SAMPLE_EQUATIONS = [
    "dy/dx = 2*x",
    "dy/dx = 1/(x+1)",
    "dy/dx = x*y",
    "dy/dx = x/y",
    "dy/dx = x + y",
    "dy/dx = 2*y + 3",
    "dy/dx = sin(y)",
]


def format_result(result: dict) -> str:
    lines = [f"Solving: {result['equation']}"]
    if result["status"] != "ok":
        lines.append(f"  [{result['status']}] {result['message']}")
        return "\n".join(lines)
    lines.append(f"  Classification: {result['classification']}")
    for step in result["steps"]:
        lines.append(f"  {step['step_number']}. {step['title']}")
        if "expression" in step:
            lines.append(f"       {step['expression']}")
    lines.append(f"  => {result['final_answer']}")
    lines.append(f"  Verification: {result['summary']['validation_status']}")
    return "\n".join(lines)


def main(argv=None) -> int:
    logging.basicConfig(level=os.getenv("DIFFSOLVER_LOG_LEVEL", "WARNING").upper())
    args = sys.argv[1:] if argv is None else argv
    equations = [" ".join(args)] if args else SAMPLE_EQUATIONS
    exit_code = 0
    for eq in equations:
        result = solve(eq)
        print(format_result(result))
        print()
        if result["status"] == "error":
            exit_code = 1
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
