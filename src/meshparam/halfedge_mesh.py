"""
Index-based half-edge view of a triangle mesh.

Vertices are renumbered 1-based so that indices [1, n] are interior and
[n+1, N] are boundary vertices, ordered along the boundary loop(s). This is the
numbering every other module of the engine works in; `unsorted` / `sorted_index`
translate to and from the 0-based indices of the input `MeshData`.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from .errors import NonManifoldVertexError, ParametrizationError
from .logging_utils import log_once
from .mesh_loader import MeshData

_LOGGER = logging.getLogger(__name__)


class Halfedge(NamedTuple):
    origin: int
    end: int
    length: float


class HalfedgeMesh:
    """
    Query interface over a triangle mesh in the sorted vertex numbering.

    Args:
        mesh: input mesh (0-based faces)
        tolerance: distance tolerance for `find_vertex`
    """

    def __init__(self, mesh: MeshData, tolerance: float = 1e-12):
        if mesh is None:
            raise ValueError("mesh is None")
        if mesh.n_faces == 0:
            raise ParametrizationError("mesh has no faces")

        self.mesh = mesh
        self.tolerance = float(tolerance)

        faces = np.asarray(mesh.faces, dtype=np.int64)
        used = np.unique(faces.reshape(-1))
        if used.size < mesh.n_vertices:
            log_once(
                _LOGGER,
                f"halfedge_mesh:unused_vertices:{id(mesh)}",
                logging.WARNING,
                "Ignoring %d vertices that belong to no triangle",
                int(mesh.n_vertices - used.size),
            )

        try:
            loops = mesh.get_boundary_loops()
        except ValueError as e:
            raise ParametrizationError(str(e)) from e

        on_boundary = np.zeros(mesh.n_vertices, dtype=bool)
        for loop in loops:
            on_boundary[loop] = True

        interior = [int(v) for v in used if not on_boundary[v]]
        boundary = [int(v) for loop in loops for v in loop]

        # sorted (1-based) -> original (0-based)
        self._unsorted = np.asarray(interior + boundary, dtype=np.int64)
        self._sorted = np.full(mesh.n_vertices, -1, dtype=np.int64)
        self._sorted[self._unsorted] = np.arange(1, len(self._unsorted) + 1)

        self._n = len(interior)
        self._vertices = np.asarray(mesh.vertices, dtype=np.float64)[self._unsorted]
        self._triangles = self._sorted[faces]

        offset = self._n
        self._loops: list[np.ndarray] = []
        for loop in loops:
            self._loops.append(np.arange(offset + 1, offset + len(loop) + 1, dtype=np.int64))
            offset += len(loop)

        self._faces_of_vertex: list[list[int]] = [[] for _ in range(self.n_vertices + 1)]
        for t, tri in enumerate(self._triangles):
            for v in tri:
                self._faces_of_vertex[int(v)].append(t)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------
    @property
    def n_vertices(self) -> int:
        return int(len(self._unsorted))

    @property
    def n_inner_vertices(self) -> int:
        return int(self._n)

    @property
    def n_boundary_vertices(self) -> int:
        return self.n_vertices - self._n

    @property
    def n_triangles(self) -> int:
        return int(len(self._triangles))

    @property
    def triangles(self) -> np.ndarray:
        """(M, 3) triangles in sorted 1-based numbering (orientation preserved)."""
        return self._triangles.copy()

    @property
    def boundary_loops(self) -> list[np.ndarray]:
        return [loop.copy() for loop in self._loops]

    # ------------------------------------------------------------------
    # Vertices
    # ------------------------------------------------------------------
    def _check_index(self, i: int) -> int:
        i = int(i)
        if i < 1 or i > self.n_vertices:
            raise IndexError(f"Vertex index {i} outside [1, {self.n_vertices}]")
        return i

    def vertex(self, i: int) -> np.ndarray:
        return self._vertices[self._check_index(i) - 1].copy()

    @property
    def vertices(self) -> np.ndarray:
        """(N, 3) coordinates, row k holds vertex k + 1."""
        return self._vertices.copy()

    def is_boundary(self, i: int) -> bool:
        return self._check_index(i) > self._n

    def unsorted(self, i: int) -> int:
        """Index of sorted vertex `i` in the input mesh (0-based)."""
        return int(self._unsorted[self._check_index(i) - 1])

    def sorted_index(self, original_index: int) -> int:
        k = int(original_index)
        if k < 0 or k >= len(self._sorted) or self._sorted[k] < 0:
            raise IndexError(f"Input vertex {k} is not part of the triangulation")
        return int(self._sorted[k])

    def global_vertex_index(self, local: int, triangle: int) -> int:
        """Sorted index of corner `local` (1..3) of triangle `triangle` (0-based)."""
        return int(self._triangles[int(triangle), int(local) - 1])

    def find_vertex(self, x: float, y: float, z: float, *, tolerance: Optional[float] = None) -> int:
        """
        Sorted index of the vertex at (x, y, z).

        Falls back to the nearest vertex if no vertex lies within `tolerance`.
        """
        tol = self.tolerance if tolerance is None else float(tolerance)
        target = np.array([x, y, z], dtype=np.float64)
        dist = np.linalg.norm(self._vertices - target, axis=1)
        k = int(np.argmin(dist))
        if float(dist[k]) > tol:
            _LOGGER.debug("No vertex within %.3g of %s; using nearest (distance %.3g)", tol, target, dist[k])
        return k + 1

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------
    def opposite_halfedges(self, i: int) -> list[Halfedge]:
        """
        The half-edges opposite vertex `i`, one per incident triangle.

        For a triangle (i, a, b) in face orientation the opposite half-edge
        runs a -> b, so chaining them gives the fan around `i`.
        """
        i = self._check_index(i)
        out: list[Halfedge] = []
        for t in self._faces_of_vertex[i]:
            tri = [int(v) for v in self._triangles[t]]
            k = tri.index(i)
            a = tri[(k + 1) % 3]
            b = tri[(k + 2) % 3]
            if a == i or b == i:
                raise NonManifoldVertexError(i, f"degenerate triangle {tri}")
            length = float(np.linalg.norm(self._vertices[b - 1] - self._vertices[a - 1]))
            out.append(Halfedge(a, b, length))
        if not out:
            raise NonManifoldVertexError(i, "vertex has no incident triangles")
        return out

    # ------------------------------------------------------------------
    # Boundary metrics
    # ------------------------------------------------------------------
    def _loop(self, loop: int) -> np.ndarray:
        if not self._loops:
            raise ParametrizationError("mesh has no boundary")
        return self._loops[int(loop)]

    def boundary_chord_lengths(self, loop: int = 0) -> np.ndarray:
        """
        h[k] is the length of the boundary edge from the k-th to the (k+1)-th
        vertex of the loop; the last entry closes the loop.
        """
        idx = self._loop(loop) - 1
        pts = self._vertices[idx]
        nxt = np.roll(pts, -1, axis=0)
        return np.linalg.norm(nxt - pts, axis=1)

    def boundary_length(self, loop: int = 0) -> float:
        return float(self.boundary_chord_lengths(loop).sum())

    def shortest_boundary_distance(self, p: int, q: int, loop: int = 0) -> float:
        """Shorter arc length between loop positions p and q (1-based)."""
        h = self.boundary_chord_lengths(loop)
        size = len(h)
        p0 = (int(p) - 1) % size
        q0 = (int(q) - 1) % size
        lo, hi = min(p0, q0), max(p0, q0)
        forward = float(h[lo:hi].sum())
        return min(forward, float(h.sum()) - forward)

    def corner_lengths(self, positions: Sequence[int], loop: int = 0) -> np.ndarray:
        """
        Arc lengths of the sides between consecutive corners.

        `positions` are 1-based loop positions in boundary order; side k runs
        from positions[k] to positions[k+1], the last one wraps around.
        """
        h = self.boundary_chord_lengths(loop)
        size = len(h)
        pos = [(int(p) - 1) % size for p in positions]
        out = np.zeros(len(pos), dtype=np.float64)
        for k in range(len(pos)):
            start = pos[k]
            end = pos[(k + 1) % len(pos)]
            steps = (end - start) % size
            if steps == 0 and len(pos) == 1:
                steps = size
            out[k] = float(h[(start + np.arange(steps)) % size].sum())
        return out
