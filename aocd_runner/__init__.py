"""Solver orchestration: run puzzle parts, print and optionally submit answers."""

from .default import configure, get_direct_source, get_runner, get_runner_if_set, run_day, run_part, set_runner
from .runner import PartRunner, RunOptions

__all__ = [
    "PartRunner",
    "RunOptions",
    "configure",
    "get_direct_source",
    "get_runner",
    "get_runner_if_set",
    "run_day",
    "run_part",
    "set_runner",
]
