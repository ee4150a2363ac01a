"""
Flat (2D) meshes induced by parameter coordinates.

Also cuts a periodically unfolded mesh back into the strip u in [0, 1].
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

import numpy as np
import trimesh

from .logging_utils import log_once

_LOGGER = logging.getLogger(__name__)

# Corners this close to a seam count as inside (solver round-off).
_SEAM_TOLERANCE = 1e-12


@dataclass
class FlatMesh:
    """
    평면 메쉬 결과

    Attributes:
        uv: (K, 2) 2D 좌표
        faces: (M, 3) 면 인덱스 (0-based)
        meta: 진단 정보
    """
    uv: np.ndarray
    faces: np.ndarray
    meta: dict = field(default_factory=dict)

    _bounds: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        self.uv = np.asarray(self.uv, dtype=np.float64).reshape(-1, 2)
        faces = np.asarray(self.faces, dtype=np.int64)
        self.faces = faces.reshape(0, 3) if faces.size == 0 else faces.reshape(-1, 3)

    @classmethod
    def from_triangles(cls, corners: np.ndarray, meta: Optional[dict] = None) -> "FlatMesh":
        """(M, 3, 2) triangle corners -> mesh with 3 unshared vertices per face."""
        corners = np.asarray(corners, dtype=np.float64).reshape(-1, 3, 2)
        faces = np.arange(corners.shape[0] * 3, dtype=np.int64).reshape(-1, 3)
        return cls(uv=corners.reshape(-1, 2), faces=faces, meta=dict(meta or {}))

    @property
    def n_vertices(self) -> int:
        return len(self.uv)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def bounds(self) -> np.ndarray:
        """2D 경계 [[min_u, min_v], [max_u, max_v]]"""
        if self._bounds is None:
            if self.uv.size == 0:
                self._bounds = np.zeros((2, 2), dtype=np.float64)
            else:
                self._bounds = np.array([self.uv.min(axis=0), self.uv.max(axis=0)])
        return self._bounds

    @property
    def extents(self) -> np.ndarray:
        return self.bounds[1] - self.bounds[0]

    @property
    def width(self) -> float:
        return float(self.extents[0])

    @property
    def height(self) -> float:
        return float(self.extents[1])

    def triangle_corners(self) -> np.ndarray:
        """(M, 3, 2) corner coordinates per face."""
        return self.uv[self.faces]

    def signed_areas(self) -> np.ndarray:
        """Signed area per face; positive for counter-clockwise faces."""
        if self.n_faces == 0:
            return np.zeros(0, dtype=np.float64)
        c = self.triangle_corners()
        e1 = c[:, 1] - c[:, 0]
        e2 = c[:, 2] - c[:, 0]
        return 0.5 * (e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0])

    @property
    def area(self) -> float:
        return float(np.abs(self.signed_areas()).sum())

    def n_inverted(self, tolerance: float = 0.0) -> int:
        """Faces whose orientation disagrees with the majority."""
        areas = self.signed_areas()
        if areas.size == 0:
            return 0
        sign = 1.0 if float(areas.sum()) >= 0.0 else -1.0
        return int(np.count_nonzero(sign * areas < -abs(float(tolerance))))

    def to_trimesh(self) -> trimesh.Trimesh:
        """z=0 평면의 trimesh 객체로 변환"""
        vertices = np.column_stack([self.uv, np.zeros(len(self.uv), dtype=np.float64)])
        return trimesh.Trimesh(vertices=vertices, faces=self.faces, process=False)

    def merged(self) -> "FlatMesh":
        """Merge coincident vertices (trimesh tolerance)."""
        if self.n_faces == 0:
            return FlatMesh(uv=self.uv.copy(), faces=self.faces.copy(), meta=dict(self.meta))
        tm = self.to_trimesh()
        tm.merge_vertices()
        return FlatMesh(
            uv=np.asarray(tm.vertices, dtype=np.float64)[:, :2],
            faces=np.asarray(tm.faces, dtype=np.int64),
            meta=dict(self.meta),
        )


def corresponding_v(p0: np.ndarray, p1: np.ndarray, u: float) -> float:
    """v of the point with the given u on the segment p0 -> p1."""
    t = (float(u) - float(p0[0])) / (float(p1[0]) - float(p0[0]))
    return float((1.0 - t) * p0[1] + t * p1[1])


def _split_one_out(v0: np.ndarray, v1: np.ndarray, v2: np.ndarray) -> list[np.ndarray]:
    """
    v1 lies outside [0, 1], v0 and v2 inside. Two triangles stay on the near
    side of the seam, the tip is wrapped to the far side.
    """
    if v1[0] < 0.0:
        seam, far, shift = 0.0, 1.0, 1.0
    else:
        seam, far, shift = 1.0, 0.0, -1.0

    v01 = corresponding_v(v0, v1, seam)
    v12 = corresponding_v(v1, v2, seam)
    w01 = np.array([seam, v01])
    w12 = np.array([seam, v12])
    tip = np.array([v1[0] + shift, v1[1]])
    return [
        np.array([v0, w01, w12]),
        np.array([v0, w12, v2]),
        np.array([[far, v01], tip, [far, v12]]),
    ]


def _shift_into_strip(corners: np.ndarray) -> np.ndarray:
    """Shift a triangle lying entirely on one side of the strip by whole periods."""
    u = corners[:, 0]
    shifted = corners.copy()
    if float(u.min()) > 1.0 + _SEAM_TOLERANCE:
        shifted[:, 0] -= np.floor(u.min())
    elif float(u.max()) < -_SEAM_TOLERANCE:
        shifted[:, 0] -= np.floor(u.max())
    return shifted


def _outside(u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return u < -_SEAM_TOLERANCE, u > 1.0 + _SEAM_TOLERANCE


def _restrict_triangle(corners: np.ndarray, logger: logging.Logger) -> list[np.ndarray]:
    corners = _shift_into_strip(corners)
    below, above = _outside(corners[:, 0])

    if int(np.count_nonzero(below | above)) == 2 and not (below.any() and above.any()):
        corners = corners.copy()
        corners[:, 0] += 1.0 if below.any() else -1.0
        below, above = _outside(corners[:, 0])

    u = corners[:, 0]
    too_wide = (u < -1.0 - _SEAM_TOLERANCE) | (u > 2.0 + _SEAM_TOLERANCE)
    if (below.any() and above.any()) or too_wide.any():
        log_once(
            logger,
            "flat_mesh:straddling_triangle",
            logging.WARNING,
            "Dropping triangle wider than the strip (crosses both u=0 and u=1): u=%s",
            np.array2string(corners[:, 0], precision=4),
        )
        return []

    out = below | above
    if not out.any():
        return [corners]
    k = int(np.flatnonzero(out)[0])
    order = [(k - 1) % 3, k, (k + 1) % 3]
    return _split_one_out(*corners[order])


def restrict_to_strip(corners: np.ndarray, *, logger: Optional[logging.Logger] = None) -> FlatMesh:
    """
    Cut triangles (M, 3, 2) so that every corner satisfies 0 <= u <= 1.

    Triangles with one corner outside are split along the seam, triangles
    with two or three corners outside are shifted by whole periods first.
    Triangles wider than the strip are dropped. Coincident vertices of the result are merged.
    """
    log = logger or _LOGGER
    corners = np.asarray(corners, dtype=np.float64).reshape(-1, 3, 2)

    out: list[np.ndarray] = []
    n_split = 0
    n_dropped = 0
    for tri in corners:
        pieces = _restrict_triangle(tri, log)
        if not pieces:
            n_dropped += 1
        elif len(pieces) > 1:
            n_split += 1
        out.extend(pieces)

    meta = {
        "n_input_faces": int(corners.shape[0]),
        "n_split": n_split,
        "n_dropped": n_dropped,
    }
    if not out:
        return FlatMesh(uv=np.zeros((0, 2)), faces=np.zeros((0, 3)), meta=meta)
    return FlatMesh.from_triangles(np.stack(out), meta=meta).merged()
