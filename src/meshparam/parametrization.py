"""
Planar parametrization of triangle meshes.

The boundary is fixed on the perimeter of the unit square (or on the two
edges v=0 / v=1 of a periodic strip) and every interior vertex is placed at
a convex combination of its neighbours, which gives a fold-free embedding
(Tutte / Floater).

Based on: M. S. Floater, "Parametrization and smooth approximation of surface
triangulations", CAGD 14 (1997) 231-250.
"""

from __future__ import annotations

import logging
from pathlib import Path
import time
from typing import Any, Optional, Sequence, Union

import numpy as np
from scipy import sparse

from .errors import InvalidOptionError, ParametrizationError
from .flat_mesh import FlatMesh, restrict_to_strip
from .halfedge_mesh import HalfedgeMesh
from .linear_solvers import SolveResult, solve
from .mesh_loader import MeshData
from .neighbourhood import Neighbourhood, ParameterPoint, find_point_on_boundary
from .options import BoundaryMethod, ParametrizationMethod, ParametrizationOptions, default_options

_LOGGER = logging.getLogger(__name__)

# Free-boundary corners in boundary order: bottom-left, bottom-right,
# top-right, top-left.
_SQUARE_CORNERS = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


class Parametrization:
    """
    Parametrization of a mesh with one boundary loop onto the unit square.

    Args:
        mesh: MeshData or an already built HalfedgeMesh
        options: ParametrizationOptions (defaults from the environment if None)
        logger: optional logger (defaults to the module logger)

    Usage:
        param = Parametrization(mesh, options).compute()
        uv = param.uv_matrix()
        flat = param.create_flat_mesh()
    """

    def __init__(
        self,
        mesh: Union[MeshData, HalfedgeMesh],
        options: Optional[ParametrizationOptions] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self.mesh = mesh if isinstance(mesh, HalfedgeMesh) else HalfedgeMesh(mesh)
        self.options = (options or default_options()).validate()
        self.logger = logger or _LOGGER
        self.neighbourhood: Optional[Neighbourhood] = None
        self.corners: list[int] = []
        self.meta: dict[str, Any] = {}
        self._points = np.zeros((self.mesh.n_vertices, 2), dtype=np.float64)

    # ------------------------------------------------------------------
    # Options / entry points
    # ------------------------------------------------------------------
    def set_options(self, options: Optional[ParametrizationOptions] = None, **changes: Any) -> "Parametrization":
        """Replace and/or update the options (camelCase or snake_case keys)."""
        base = options if options is not None else self.options
        self.options = base.updated(**changes).validate() if changes else base.validate()
        return self

    def compute(self) -> "Parametrization":
        opts = self.options
        return self.calculate(
            opts.boundary_method,
            opts.parametrization_method,
            opts.corners,
            opts.search_range,
            opts.number,
        )

    def calculate(
        self,
        boundary_method: int,
        parametrization_method: int,
        corners: Sequence[int] = (),
        search_range: float = 0.1,
        number: int = 4,
    ) -> "Parametrization":
        """
        Place the boundary with `boundary_method` and solve for the interior.

        Corners are global vertex indices (1-based, sorted numbering).
        """
        self._check_methods(boundary_method, parametrization_method)
        t0 = time.perf_counter()
        self._reset()

        mesh = self.mesh
        n = mesh.n_inner_vertices
        loops = mesh.boundary_loops
        if len(loops) != 1:
            raise ParametrizationError(
                f"Mesh must have exactly one boundary loop, found {len(loops)}"
            )

        self.neighbourhood = Neighbourhood(
            mesh,
            parametrization_method,
            precision=self.options.precision,
            logger=self.logger,
        )
        t_neigh = time.perf_counter()

        if int(boundary_method) == BoundaryMethod.CHORDS:
            self._place_boundary_by_chords()
        else:
            if int(boundary_method) == BoundaryMethod.CORNERS:
                chosen = self._validate_corners(corners)
            else:
                chosen = self.neighbourhood.boundary_corners(boundary_method, search_range, number)
            self.corners = [int(c) for c in chosen]
            self._place_boundary_by_corners([c - n for c in self.corners])

        result = self._solve_standard()
        t_end = time.perf_counter()

        self.meta.update(
            {
                "variant": "standard",
                "boundary_method": int(boundary_method),
                "parametrization_method": int(parametrization_method),
                "corners": list(self.corners),
                "timings": {
                    "neighbourhood": float(t_neigh - t0),
                    "solve": float(t_end - t_neigh),
                    "total": float(t_end - t0),
                },
            }
        )
        self._record_solve(result)
        return self

    def compute_free_boundary(self, corners: Optional[Sequence[int]] = None) -> "Parametrization":
        """
        Pin only the 4 corners; side vertices slide along their side.

        Corners map to (0,0), (1,0), (1,1), (0,1) in boundary order starting
        from the first given corner. A side vertex keeps the coordinate normal
        to its side and takes the other one from its own weight row.
        """
        corners = list(self.options.corners if corners is None else corners)
        if len(corners) != 4:
            raise InvalidOptionError(f"Free boundary needs exactly 4 corners, got {len(corners)}")
        self._check_methods(BoundaryMethod.CORNERS, self.options.parametrization_method)
        t0 = time.perf_counter()
        self._reset()

        mesh = self.mesh
        n = mesh.n_inner_vertices
        N = mesh.n_vertices
        ordered = self._validate_corners(corners)

        self.neighbourhood = Neighbourhood(
            mesh,
            self.options.parametrization_method,
            boundary_lambdas=True,
            precision=self.options.precision,
            logger=self.logger,
        )
        t_neigh = time.perf_counter()

        B = mesh.n_boundary_vertices
        loop_size = len(mesh.boundary_loops[0])
        positions = [c - n for c in ordered]
        sides: list[list[int]] = []
        if max(positions) > loop_size:
            raise ParametrizationError("All corners must lie on the same boundary loop")
        for k in range(4):
            start = positions[k]
            steps = (positions[(k + 1) % 4] - start) % loop_size
            sides.append([n + (start + s - 1) % loop_size + 1 for s in range(1, steps)])
        if 4 + sum(len(s) for s in sides) != B:
            raise ParametrizationError(
                f"Wrong number of boundary points: 4 corners + {sum(len(s) for s in sides)} "
                f"side vertices != {B} boundary vertices"
            )

        rows_u: list[tuple[int, int, float]] = []
        rows_v: list[tuple[int, int, float]] = []
        b = np.zeros((N, 2), dtype=np.float64)

        for i in range(1, n + 1):
            self._add_weight_row(rows_u, i)
            self._add_weight_row(rows_v, i)

        for k, c in enumerate(ordered):
            rows_u.append((c - 1, c - 1, 1.0))
            rows_v.append((c - 1, c - 1, 1.0))
            b[c - 1] = _SQUARE_CORNERS[k]

        # bottom (v=0), right (u=1), top (v=1), left (u=0)
        side_constraints = ((1, 0.0, sides[0]), (0, 1.0, sides[1]), (1, 1.0, sides[2]), (0, 0.0, sides[3]))
        for pinned_axis, value, side in side_constraints:
            pinned_rows = rows_v if pinned_axis == 1 else rows_u
            free_rows = rows_u if pinned_axis == 1 else rows_v
            for i in side:
                pinned_rows.append((i - 1, i - 1, 1.0))
                b[i - 1, pinned_axis] = value
                self._add_weight_row(free_rows, i)

        results = []
        x = np.zeros((N, 2), dtype=np.float64)
        for axis, rows in ((0, rows_u), (1, rows_v)):
            A = _assemble(rows, N)
            res = self._run_solver(A, b[:, axis])
            x[:, axis] = res.x
            results.append(res)
        self._points[:] = x
        self.corners = list(ordered)
        t_end = time.perf_counter()

        self.meta.update(
            {
                "variant": "free_boundary",
                "parametrization_method": int(self.options.parametrization_method),
                "corners": list(self.corners),
                "side_sizes": [len(s) for s in sides],
                "timings": {
                    "neighbourhood": float(t_neigh - t0),
                    "solve": float(t_end - t_neigh),
                    "total": float(t_end - t0),
                },
            }
        )
        self._record_solve(*results)
        return self

    def read_indices(self, path: Union[str, Path]) -> list[int]:
        """
        Vertex indices of the points listed in a text file.

        The file holds one `x y z` row per point (whitespace or comma
        separated, '#' comments allowed); each point is matched to the
        nearest mesh vertex.
        """
        in_path = Path(path)
        if not in_path.exists():
            raise FileNotFoundError(str(in_path))
        text = in_path.read_text(encoding="utf-8", errors="replace")
        rows: list[list[float]] = []
        for line in text.splitlines():
            line = line.split("#", 1)[0].replace(",", " ").strip()
            if not line:
                continue
            values = [float(v) for v in line.split()]
            if len(values) != 3:
                raise ValueError(f"Expected 3 coordinates per line in {in_path}, got {len(values)}")
            rows.append(values)
        return [self.mesh.find_vertex(*row) for row in rows]

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    def parameter_point(self, vertex_index: int) -> ParameterPoint:
        i = int(vertex_index)
        if i < 1 or i > self.mesh.n_vertices:
            raise IndexError(f"Vertex index {i} outside [1, {self.mesh.n_vertices}]")
        u, v = self._points[i - 1]
        return ParameterPoint(float(u), float(v), i)

    @property
    def parameter_points(self) -> np.ndarray:
        """(N, 2) parameter coordinates; row k belongs to vertex k + 1."""
        return self._points.copy()

    def uv_matrix(self) -> np.ndarray:
        """(2, N) parameter coordinates, column k belongs to vertex k + 1."""
        return self._points.T.copy()

    def xyz_matrix(self) -> np.ndarray:
        """(3, N) mesh coordinates in the same column order as `uv_matrix`."""
        return self.mesh.vertices.T.copy()

    def original_order_uv(self) -> np.ndarray:
        """(V, 2) parameter coordinates in the input mesh's vertex order (NaN for unused vertices)."""
        out = np.full((self.mesh.mesh.n_vertices, 2), np.nan, dtype=np.float64)
        for i in range(1, self.mesh.n_vertices + 1):
            out[self.mesh.unsorted(i)] = self._points[i - 1]
        return out

    @staticmethod
    def restrict_matrices(
        uv: np.ndarray,
        xyz: np.ndarray,
        u_min: float = 0.0,
        u_max: float = 1.0,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Wrap u by one period into [u_min, u_max].

        Returns copies of (uv, xyz); xyz is unchanged since the columns keep
        their vertex correspondence.
        """
        uv = np.array(uv, dtype=np.float64, copy=True)
        period = float(u_max) - float(u_min)
        u = uv[0]
        u[u < u_min] += period
        u[u > u_max] -= period
        return uv, np.array(xyz, dtype=np.float64, copy=True)

    def create_flat_mesh(self) -> FlatMesh:
        """The mesh triangles with vertex positions taken from the parameter points."""
        faces = self.mesh.triangles - 1
        flat = FlatMesh(uv=self._points.copy(), faces=faces, meta={"variant": self.meta.get("variant")})
        flat.meta["n_inverted"] = flat.n_inverted()
        return flat

    @staticmethod
    def find_length_of_position_part(
        position: int,
        n_positions: int,
        corners: Sequence[int],
        lengths: Sequence[float],
    ) -> float:
        """
        Length of the side that the boundary edge ending at `position` belongs to.

        `corners` are loop positions (1-based, out of `n_positions`) in
        boundary order and `lengths[k]` is the length of the side from
        corners[k] to corners[k+1].
        """
        size = int(n_positions)
        if not 1 <= int(position) <= size:
            raise ValueError(f"The position {position} is outside [1, {size}]")
        if any(not 1 <= int(c) <= size for c in corners):
            raise ValueError(f"Corner positions {list(corners)} are outside [1, {size}]")
        return _side_length(int(position), corners, lengths, size)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _reset(self) -> None:
        self._points = np.zeros((self.mesh.n_vertices, 2), dtype=np.float64)
        self.corners = []
        self.meta = {}
        self.neighbourhood = None

    @staticmethod
    def _check_methods(boundary_method: int, parametrization_method: int) -> None:
        if int(boundary_method) not in {int(m) for m in BoundaryMethod}:
            raise InvalidOptionError(f"The boundary method {boundary_method} is not valid.")
        if int(parametrization_method) not in {int(m) for m in ParametrizationMethod}:
            raise InvalidOptionError(f"The parametrization method {parametrization_method} is not valid.")

    def _validate_corners(self, corners: Sequence[int]) -> list[int]:
        """Check explicit corners and order them along the boundary from the first one."""
        corners = [int(c) for c in corners]
        n = self.mesh.n_inner_vertices
        N = self.mesh.n_vertices
        if len(corners) != 4:
            raise InvalidOptionError(f"Exactly 4 corners are required, got {len(corners)}")
        for c in corners:
            if c < 1 or c > N:
                raise InvalidOptionError(f"Corner index {c} outside [1, {N}]")
            if c <= n:
                raise InvalidOptionError(f"Corner {c} is not a boundary vertex")
        if len(set(corners)) != 4:
            raise InvalidOptionError(f"Corners must be distinct: {corners}")

        size = self.mesh.n_boundary_vertices
        first = corners[0] - n
        return sorted(corners, key=lambda c: (c - n - first) % size)

    def _place_boundary_by_chords(self) -> None:
        n = self.mesh.n_inner_vertices
        h = self.mesh.boundary_chord_lengths()
        L = float(h.sum())
        if not (L > 0.0):
            raise ParametrizationError("Boundary has zero length")
        w = 0.0
        self._set_boundary_point(find_point_on_boundary(0.0, n + 1))
        for k in range(len(h) - 1):
            w = min(w + float(h[k]) * 4.0 / L, 4.0)
            self._set_boundary_point(find_point_on_boundary(w, n + k + 2))

    def _place_boundary_by_corners(self, positions: Sequence[int]) -> None:
        """`positions` are loop positions (1-based) in boundary order."""
        n = self.mesh.n_inner_vertices
        h = self.mesh.boundary_chord_lengths()
        size = len(h)
        lengths = list(self.mesh.corner_lengths(positions))
        if min(lengths) <= 0.0:
            raise ParametrizationError(f"Corner sides of zero length: {lengths}")

        first = int(positions[0])
        self._set_boundary_point(find_point_on_boundary(0.0, n + first))
        w = 0.0
        side = 0
        for step in range(1, size):
            prev = (first - 1 + step - 1) % size
            pos = (first - 1 + step) % size + 1
            w += float(h[prev]) / _side_length(pos, positions, lengths, size)
            if side < 3 and pos == int(positions[side + 1]):
                side += 1
                w = float(side)
            w = min(w, 4.0)
            self._set_boundary_point(find_point_on_boundary(w, n + pos))

    def _set_boundary_point(self, point: ParameterPoint) -> None:
        self._points[point.vertex_index - 1] = (point.u, point.v)

    def _add_weight_row(self, rows: list, i: int) -> None:
        assert self.neighbourhood is not None
        lam = self.neighbourhood.lambdas(i)
        rows.append((i - 1, i - 1, 1.0))
        for j in np.flatnonzero(lam):
            if int(j) != i - 1:
                rows.append((i - 1, int(j), -float(lam[j])))

    def _solve_standard(self) -> SolveResult:
        """Reduced system (I - L_II) x_I = L_IB x_B for the interior."""
        assert self.neighbourhood is not None
        n = self.mesh.n_inner_vertices
        rows: list[tuple[int, int, float]] = []
        b = np.zeros((n, 2), dtype=np.float64)
        boundary_points = self._points[n:]
        for i in range(1, n + 1):
            lam = self.neighbourhood.lambdas(i)
            rows.append((i - 1, i - 1, 1.0))
            nz = np.flatnonzero(lam[:n])
            for j in nz:
                if int(j) != i - 1:
                    rows.append((i - 1, int(j), -float(lam[j])))
            b[i - 1] = lam[n:] @ boundary_points

        result = self._run_solver(_assemble(rows, n), b)
        self._points[:n] = result.x
        return result

    def _run_solver(self, A: sparse.csr_matrix, b: np.ndarray) -> SolveResult:
        return solve(
            A,
            b,
            solver=self.options.solver,
            precision=self.options.precision,
            max_iterations=self.options.max_iterations,
            logger=self.logger,
        )

    def _record_solve(self, *results: SolveResult) -> None:
        self.meta["solver"] = self.options.solver
        self.meta["iterations"] = max((r.iterations for r in results), default=0)
        self.meta["converged"] = all(r.converged for r in results)
        self.meta["residual"] = max((r.residual for r in results), default=0.0)
        self.meta["n_inner_vertices"] = self.mesh.n_inner_vertices
        self.meta["n_boundary_vertices"] = self.mesh.n_boundary_vertices
        if self.corners:
            self.logger.debug("Corners: %s", self.corners)


class PeriodicParametrization(Parametrization):
    """
    Parametrization of a cylinder-like mesh (two boundary loops) onto the
    periodic strip u in [0, 1), v in [0, 1].

    Args:
        mesh: MeshData or HalfedgeMesh with exactly two boundary loops
        stitch: seam vertices (global indices) forming a mesh path from the
            loop placed at v=0 to the loop placed at v=1
        options: ParametrizationOptions
        logger: optional logger
    """

    def __init__(
        self,
        mesh: Union[MeshData, HalfedgeMesh],
        stitch: Sequence[int],
        options: Optional[ParametrizationOptions] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(mesh, options, logger=logger)
        self.stitch = [int(s) for s in stitch]
        if len(self.stitch) < 2:
            raise ParametrizationError("A stitch needs at least two vertices")

    def compute(self) -> "PeriodicParametrization":
        self._check_methods(BoundaryMethod.CHORDS, self.options.parametrization_method)
        t0 = time.perf_counter()
        self._reset()

        mesh = self.mesh
        n = mesh.n_inner_vertices
        N = mesh.n_vertices

        self.neighbourhood = Neighbourhood(
            mesh,
            self.options.parametrization_method,
            stitch=self.stitch,
            precision=self.options.precision,
            logger=self.logger,
        )
        t_neigh = time.perf_counter()
        self._place_periodic_boundary()

        corrections = self.neighbourhood.corrections
        assert corrections is not None
        rows: list[tuple[int, int, float]] = []
        b = np.zeros((N, 2), dtype=np.float64)
        for i in range(1, n + 1):
            self._add_weight_row(rows, i)
            lam = self.neighbourhood.lambdas(i)
            for j in corrections.positive.get(i, []):
                b[i - 1, 0] -= float(lam[j - 1])
            for s in corrections.negative.get(i, []):
                b[i - 1, 0] += float(lam[s - 1])
        for i in range(n + 1, N + 1):
            rows.append((i - 1, i - 1, 1.0))
            b[i - 1] = self._points[i - 1]

        result = self._run_solver(_assemble(rows, N), b)
        self._points[:] = result.x
        t_end = time.perf_counter()

        self.meta.update(
            {
                "variant": "periodic",
                "parametrization_method": int(self.options.parametrization_method),
                "stitch": list(self.stitch),
                "timings": {
                    "neighbourhood": float(t_neigh - t0),
                    "solve": float(t_end - t_neigh),
                    "total": float(t_end - t0),
                },
            }
        )
        self._record_solve(result)
        return self

    def _loop_walk(self, start: int, reverse: bool) -> list[int]:
        for loop in self.mesh.boundary_loops:
            loop = [int(v) for v in loop]
            if start in loop:
                k = loop.index(start)
                walk = loop[k:] + loop[:k]
                if reverse:
                    walk = [walk[0]] + walk[1:][::-1]
                return walk
        raise ParametrizationError(f"Stitch end {start} is not a boundary vertex")

    def _place_periodic_boundary(self) -> None:
        loops = self.mesh.boundary_loops
        if len(loops) != 2:
            raise ParametrizationError(
                f"Periodic parametrization needs exactly two boundary loops, found {len(loops)}"
            )
        bottom = self._loop_walk(self.stitch[0], reverse=False)
        top = self._loop_walk(self.stitch[-1], reverse=True)
        if set(bottom) == set(top):
            raise ParametrizationError("Both stitch ends lie on the same boundary loop")

        for walk, v in ((bottom, 0.0), (top, 1.0)):
            pts = self.mesh.vertices[np.asarray(walk) - 1]
            seg = np.linalg.norm(np.diff(np.vstack([pts, pts[:1]]), axis=0), axis=1)
            total = float(seg.sum())
            if not (total > 0.0):
                raise ParametrizationError("Boundary loop has zero length")
            u = np.concatenate([[0.0], np.cumsum(seg[:-1])]) / total
            for vertex, uu in zip(walk, u):
                self._points[vertex - 1] = (float(uu), v)

    def create_unfolded_flat_mesh(self) -> FlatMesh:
        """
        Triangles as (M, 3, 2) corners, with seam triangles on the far side
        shifted so that their stitch corners sit at u + 1.
        """
        assert self.neighbourhood is not None and self.neighbourhood.corrections is not None
        corrections = self.neighbourhood.corrections
        stitch = set(self.stitch)
        triangles = self.mesh.triangles
        corners = self._points[triangles - 1].copy()

        n_shifted = 0
        for t, tri in enumerate(triangles):
            tri = [int(v) for v in tri]
            on_seam = [k for k, v in enumerate(tri) if v in stitch]
            if not on_seam:
                continue
            far = set()
            for k in on_seam:
                far.update(corrections.positive.get(tri[k], []))
            if not any(v in far for v in tri):
                continue
            for k in on_seam:
                corners[t, k, 0] += 1.0
            n_shifted += 1

        flat = FlatMesh.from_triangles(corners, meta={"variant": "periodic_unfolded", "n_shifted": n_shifted})
        return flat

    def create_restricted_flat_mesh(self, unfolded: Optional[FlatMesh] = None) -> FlatMesh:
        """Unfolded flat mesh cut back into the strip 0 <= u <= 1."""
        unfolded = unfolded if unfolded is not None else self.create_unfolded_flat_mesh()
        flat = restrict_to_strip(unfolded.triangle_corners(), logger=self.logger)
        flat.meta["variant"] = "periodic_restricted"
        flat.meta["n_inverted"] = flat.n_inverted()
        return flat


def _assemble(rows: list[tuple[int, int, float]], size: int) -> sparse.csr_matrix:
    if not rows:
        return sparse.csr_matrix((size, size), dtype=np.float64)
    r, c, v = zip(*rows)
    return sparse.coo_matrix(
        (np.asarray(v, dtype=np.float64), (np.asarray(r), np.asarray(c))),
        shape=(size, size),
    ).tocsr()


def _side_length(position: int, corners: Sequence[int], lengths: Sequence[float], size: int) -> float:
    first = int(corners[0])
    offset = (int(position) - first) % size or size
    bounds = [(int(c) - first) % size for c in corners] + [size]
    for k in range(len(corners)):
        if bounds[k] < offset <= bounds[k + 1]:
            return float(lengths[k])
    return float(lengths[-1])
