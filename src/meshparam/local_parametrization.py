"""
Convex-combination weights of one vertex with respect to its neighbours.

Shape-preserving weights follow M. S. Floater, "Parametrization and smooth
approximation of surface triangulations" (CAGD 14, 1997): the fan is unfolded
into the plane with angles scaled to 2*pi and the centre is written as a
convex combination of the neighbours by averaging barycentric coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Optional

import numpy as np

from .errors import InvalidOptionError, ParametrizationError
from .local_neighbourhood import LocalNeighbourhood
from .options import ParametrizationMethod

_LOGGER = logging.getLogger(__name__)


def unfold_fan(local: LocalNeighbourhood, total_angle: float) -> np.ndarray:
    """
    Place the fan in the plane around the origin.

    The first neighbour goes to (distance, 0); each next neighbour is the
    previous direction rotated by its wedge angle (scaled so the wedges sum
    to `total_angle`) and stretched to its own distance.
    """
    angles = np.asarray(local.angles, dtype=np.float64)
    theta = float(angles.sum())
    if not (theta > 0.0):
        raise ParametrizationError(f"Vertex {local.vertex_index} has a zero total angle")
    scale = float(total_angle) / theta

    d = local.n_neighbours
    points = np.zeros((d, 2), dtype=np.float64)
    direction = 0.0
    points[0] = (local.distances[0], 0.0)
    for k in range(1, d):
        direction += float(angles[k - 1]) * scale
        r = float(local.distances[k])
        points[k] = (r * math.cos(direction), r * math.sin(direction))
    return points


def _ray_hits_segment(direction: np.ndarray, a: np.ndarray, b: np.ndarray, eps: float) -> bool:
    # t * direction = a + mu * (b - a), t >= 0, 0 <= mu <= 1
    m = np.column_stack([direction, a - b])
    det = float(np.linalg.det(m))
    if abs(det) <= eps:
        return False
    t, mu = np.linalg.solve(m, a)
    return bool(t >= -eps and -eps <= mu <= 1.0 + eps)


def _barycentric_of_origin(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    m = np.array(
        [
            [p0[0], p1[0], p2[0]],
            [p0[1], p1[1], p2[1]],
            [1.0, 1.0, 1.0],
        ],
        dtype=np.float64,
    )
    return np.linalg.solve(m, np.array([0.0, 0.0, 1.0], dtype=np.float64))


def shape_preserving_weights(points: np.ndarray, *, precision: float = 1e-8) -> np.ndarray:
    """
    Floater weights of the origin with respect to the unfolded fan `points`.

    For every neighbour p_l, the ray from p_l through the origin leaves the
    star through some fan edge (p_r, p_r+1); the barycentric coordinates of
    the origin in (p_l, p_r, p_r+1) are accumulated. The sum is divided by
    the number of neighbours.
    """
    points = np.asarray(points, dtype=np.float64)
    d = int(points.shape[0])
    if d < 3:
        raise ParametrizationError(f"Shape-preserving weights need at least 3 neighbours, got {d}")

    eps = 1e-12 * float(max(1.0, np.abs(points).max()))
    mu = np.zeros(d, dtype=np.float64)
    for l in range(d):
        direction = -points[l]
        for i in range(1, d - 1):
            r = (l + i) % d
            s = (r + 1) % d
            if not _ray_hits_segment(direction, points[r], points[s], eps):
                continue
            bary = _barycentric_of_origin(points[l], points[r], points[s])
            mu[l] += bary[0]
            mu[r] += bary[1]
            mu[s] += bary[2]
            break
        else:
            raise ParametrizationError("Degenerate fan: no opposite edge is pierced")

    mu /= d
    small = (mu < 0.0) & (mu >= -float(precision))
    if np.any(mu < -float(precision)):
        raise ParametrizationError(f"Negative shape-preserving weight {float(mu.min()):.3g}")
    mu[small] = 0.0
    return mu / mu.sum()


@dataclass(frozen=True)
class LocalParametrization:
    """
    Weight row of one vertex.

    Attributes:
        vertex_index: centre vertex (1-based)
        lambdas: (N,) weights; entry k belongs to vertex k + 1. Nonzero only
            at the neighbours, summing to 1.
    """
    vertex_index: int
    lambdas: np.ndarray

    @classmethod
    def from_neighbourhood(
        cls,
        n_vertices: int,
        local: LocalNeighbourhood,
        method: int,
        *,
        precision: float = 1e-8,
        logger: Optional[logging.Logger] = None,
    ) -> "LocalParametrization":
        log = logger or _LOGGER
        try:
            method = ParametrizationMethod(int(method))
        except ValueError as e:
            raise InvalidOptionError(f"parametrizationMethod not valid: {method}") from e

        neighbours = np.asarray(local.neighbours, dtype=np.int64)
        lambdas = np.zeros(int(n_vertices), dtype=np.float64)

        if method == ParametrizationMethod.SHAPE:
            if local.is_inner:
                weights = shape_preserving_weights(
                    unfold_fan(local, 2.0 * math.pi), precision=precision
                )
            else:
                weights = _straightened_boundary_weights(local)
        elif method == ParametrizationMethod.UNIFORM:
            weights = np.full(len(neighbours), 1.0 / len(neighbours), dtype=np.float64)
        else:
            distances = np.asarray(local.distances, dtype=np.float64)
            total = float(distances.sum())
            if not (total > 0.0):
                raise ParametrizationError(f"Vertex {local.vertex_index} has zero-length edges")
            weights = distances / total

        np.add.at(lambdas, neighbours - 1, weights)
        log.debug(
            "Vertex %d: %d neighbours, weight range [%.4g, %.4g]",
            local.vertex_index,
            len(neighbours),
            float(weights.min()),
            float(weights.max()),
        )
        lambdas.setflags(write=False)
        return cls(vertex_index=int(local.vertex_index), lambdas=lambdas)

    @property
    def neighbour_weights(self) -> dict[int, float]:
        nz = np.flatnonzero(self.lambdas)
        return {int(k) + 1: float(self.lambdas[k]) for k in nz}


def _straightened_boundary_weights(local: LocalNeighbourhood) -> np.ndarray:
    """
    Open fan flattened to a half-plane: the centre sits on the segment between
    its first and last neighbour, split in the ratio of their edge lengths.
    """
    weights = np.zeros(local.n_neighbours, dtype=np.float64)
    first = float(local.distances[0])
    last = float(local.distances[-1])
    if not (first + last > 0.0):
        raise ParametrizationError(f"Vertex {local.vertex_index} has zero-length boundary edges")
    weights[0] = last / (first + last)
    weights[-1] += first / (first + last)
    return weights
