"""
Runtime defaults for parametrization runs.

Values can be overridden via environment variables to avoid hardcoded tuning
in the CLI and in library callers.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


ENV_PRECISION = "MESHPARAM_PRECISION"
ENV_MAX_ITERATIONS = "MESHPARAM_MAX_ITERATIONS"
ENV_SOLVER = "MESHPARAM_SOLVER"

SOLVERS = ("dense", "sparse", "relaxation")


@dataclass(frozen=True)
class RuntimeDefaults:
    precision: float
    max_iterations: int
    solver: str


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_float_env(
    env_name: str,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if value != value:  # NaN
        return default
    if min_value is not None and value <= min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_choice_env(env_name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    value = str(raw).strip().lower()
    return value if value in choices else default


def load_runtime_defaults() -> RuntimeDefaults:
    return RuntimeDefaults(
        precision=_read_float_env(ENV_PRECISION, 1e-8, min_value=0.0, max_value=1e-2),
        max_iterations=_read_int_env(ENV_MAX_ITERATIONS, 100, min_value=1, max_value=100000),
        solver=_read_choice_env(ENV_SOLVER, "dense", SOLVERS),
    )


DEFAULTS = load_runtime_defaults()
