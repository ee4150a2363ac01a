"""
Solvers for the assembled parametrization systems.

All systems have the form A x = b with A sparse (k, k) and b (k,) or (k, m).
Direct solvers reject singular or numerically singular matrices by checking
the pivots of the LU factorization.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional
import warnings

import numpy as np
from scipy import sparse
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve
from scipy.sparse.linalg import splu

from .errors import InvalidOptionError, ParametrizationError, SingularSystemError

_LOGGER = logging.getLogger(__name__)


@dataclass
class SolveResult:
    x: np.ndarray
    solver: str
    iterations: int = 0
    converged: bool = True
    residual: float = 0.0


def _check_pivots(diagonal: np.ndarray, precision: float) -> None:
    diag = np.abs(np.asarray(diagonal, dtype=np.float64))
    if diag.size == 0:
        return
    if not np.all(np.isfinite(diag)):
        raise SingularSystemError("LU factorization produced non-finite pivots")
    threshold = float(precision) * max(1.0, float(diag.max()))
    k = int(np.argmin(diag))
    if float(diag[k]) <= threshold:
        raise SingularSystemError(
            f"System is singular: pivot {k} is {float(diag[k]):.3g} (threshold {threshold:.3g})"
        )


def _solve_dense(A: sparse.spmatrix, b: np.ndarray, precision: float) -> np.ndarray:
    dense = np.asarray(A.toarray(), dtype=np.float64)
    with warnings.catch_warnings():
        # Exactly singular pivots are reported below.
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(dense, check_finite=True)
    _check_pivots(np.diag(lu), precision)
    return lu_solve((lu, piv), b, check_finite=True)


def _solve_sparse(A: sparse.spmatrix, b: np.ndarray, precision: float) -> np.ndarray:
    try:
        factor = splu(sparse.csc_matrix(A))
    except RuntimeError as e:
        raise SingularSystemError(f"Sparse LU failed: {e}") from e
    _check_pivots(factor.U.diagonal(), precision)
    return factor.solve(np.asarray(b, dtype=np.float64))


def _solve_relaxation(
    A: sparse.spmatrix,
    b: np.ndarray,
    precision: float,
    max_iterations: int,
    logger: logging.Logger,
) -> SolveResult:
    """
    Fixed-point iteration x <- b + (I - A) x, started from 0.5.

    Pinned (identity) rows settle after the first step; weight rows average
    their neighbours, so for a connected mesh this converges to the direct
    solution.
    """
    k = A.shape[0]
    M = sparse.identity(k, format="csr", dtype=np.float64) - sparse.csr_matrix(A)
    b = np.asarray(b, dtype=np.float64)
    x = np.full(b.shape, 0.5, dtype=np.float64)

    converged = False
    iterations = 0
    delta = np.inf
    for iterations in range(1, int(max_iterations) + 1):
        x_new = b + M @ x
        if not np.all(np.isfinite(x_new)):
            raise ParametrizationError(f"Relaxation diverged after {iterations} iterations")
        delta = float(np.abs(x_new - x).max()) if x.size else 0.0
        x = x_new
        if delta <= float(precision):
            converged = True
            break

    if not converged:
        logger.warning(
            "Relaxation did not converge in %d iterations (last update %.3g > %.3g)",
            iterations,
            delta,
            float(precision),
        )
    return SolveResult(x=x, solver="relaxation", iterations=iterations, converged=converged)


def solve(
    A: sparse.spmatrix,
    b: np.ndarray,
    *,
    solver: str = "dense",
    precision: float = 1e-8,
    max_iterations: int = 100,
    logger: Optional[logging.Logger] = None,
) -> SolveResult:
    log = logger or _LOGGER
    solver = str(solver).strip().lower()
    b = np.asarray(b, dtype=np.float64)
    k = int(A.shape[0])

    if k == 0:
        return SolveResult(x=b.copy(), solver=solver)

    if solver == "dense":
        result = SolveResult(x=_solve_dense(A, b, precision), solver=solver)
    elif solver == "sparse":
        result = SolveResult(x=_solve_sparse(A, b, precision), solver=solver)
    elif solver == "relaxation":
        result = _solve_relaxation(A, b, precision, max_iterations, log)
    else:
        raise InvalidOptionError(f"Unknown solver {solver!r}")

    result.x = np.asarray(result.x, dtype=np.float64).reshape(b.shape)
    result.residual = float(np.abs(A @ result.x - b).max())
    log.debug(
        "Solved %dx%d system with %s solver (iterations=%d, residual=%.3g)",
        k,
        k,
        solver,
        result.iterations,
        result.residual,
    )
    return result
