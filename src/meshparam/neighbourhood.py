"""
All local neighbourhoods of a mesh: weight rows of the interior vertices,
fans of the boundary vertices, boundary corner heuristics and the stitch
bookkeeping of periodic meshes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from .errors import CornerSelectionError, InvalidOptionError, ParametrizationError
from .halfedge_mesh import HalfedgeMesh
from .local_neighbourhood import LocalNeighbourhood
from .local_parametrization import LocalParametrization
from .options import BoundaryMethod

_LOGGER = logging.getLogger(__name__)


class ParameterPoint(NamedTuple):
    u: float
    v: float
    vertex_index: int


def find_point_on_boundary(w: float, vertex_index: int, *, tolerance: float = 1e-12) -> ParameterPoint:
    """
    Map w in [0, 4] onto the perimeter of the unit square.

    [0,1] -> bottom edge, (1,2] -> right edge, (2,3] -> top edge (reversed),
    (3,4] -> left edge (reversed).
    """
    w = float(w)
    if w < -tolerance or w > 4.0 + tolerance:
        raise ValueError(f"Wrong value for w: {w}")
    w = min(max(w, 0.0), 4.0)
    if w <= 1.0:
        return ParameterPoint(w, 0.0, int(vertex_index))
    if w <= 2.0:
        return ParameterPoint(1.0, w - 1.0, int(vertex_index))
    if w <= 3.0:
        return ParameterPoint(3.0 - w, 1.0, int(vertex_index))
    return ParameterPoint(0.0, 4.0 - w, int(vertex_index))


@dataclass
class StitchCorrections:
    """
    Seam-crossing neighbour pairs of a periodic mesh.

    positive[i]: neighbours of stitch vertex i on the far side of the seam
        (their u is shifted by -1 when seen from i)
    negative[j]: stitch vertices adjacent to j across the seam (their u is
        shifted by +1 when seen from j)
    """
    stitch: tuple[int, ...]
    positive: dict[int, list[int]] = field(default_factory=dict)
    negative: dict[int, list[int]] = field(default_factory=dict)


def compute_corrections(stitch: Sequence[int], local: LocalNeighbourhood) -> list[int]:
    """
    Neighbours of `local.vertex_index` lying on the far side of the stitch.

    The fan runs counter-clockwise, so the far side is the part of the fan
    from the next stitch vertex round to the previous one. Other stitch
    vertices are never part of the result.
    """
    stitch = [int(s) for s in stitch]
    vi = int(local.vertex_index)
    if vi not in stitch:
        return []

    k = stitch.index(vi)
    neighbours = list(local.neighbours)

    def position(target: int) -> int:
        try:
            return neighbours.index(target)
        except ValueError:
            raise ParametrizationError(
                f"Stitch vertices {vi} and {target} are not adjacent in the mesh"
            ) from None

    if k == 0:
        result = neighbours[position(stitch[1]):]
    elif k == len(stitch) - 1:
        result = neighbours[:position(stitch[k - 1])]
    else:
        start = position(stitch[k + 1])
        neighbours = neighbours[start:] + neighbours[:start]
        result = neighbours[:position(stitch[k - 1])]

    on_stitch = set(stitch)
    return [j for j in result if j not in on_stitch]


class Neighbourhood:
    """
    Weight rows and fans of every vertex of a mesh.

    Args:
        mesh: half-edge view of the mesh
        parametrization_method: weighting scheme (1..3)
        stitch: ordered seam vertices of a periodic mesh (optional)
        boundary_lambdas: also compute weight rows of boundary vertices
            (needed by the free-boundary variant)
        precision: tolerance for clamping round-off negative weights
        logger: optional logger (defaults to the module logger)
    """

    def __init__(
        self,
        mesh: HalfedgeMesh,
        parametrization_method: int,
        *,
        stitch: Optional[Sequence[int]] = None,
        boundary_lambdas: bool = False,
        precision: float = 1e-8,
        logger: Optional[logging.Logger] = None,
    ):
        self.mesh = mesh
        self.logger = logger or _LOGGER
        n = mesh.n_inner_vertices
        N = mesh.n_vertices

        self.local_parametrizations: list[LocalParametrization] = []
        self.inner_neighbourhoods: list[LocalNeighbourhood] = []
        for i in range(1, n + 1):
            local = LocalNeighbourhood.from_mesh(mesh, i)
            self.inner_neighbourhoods.append(local)
            self.local_parametrizations.append(
                LocalParametrization.from_neighbourhood(
                    N, local, parametrization_method, precision=precision, logger=self.logger
                )
            )

        self.boundary_neighbourhoods: list[LocalNeighbourhood] = [
            LocalNeighbourhood.from_mesh(mesh, i) for i in range(n + 1, N + 1)
        ]

        self.boundary_parametrizations: list[LocalParametrization] = []
        if boundary_lambdas:
            self.boundary_parametrizations = [
                LocalParametrization.from_neighbourhood(
                    N, local, parametrization_method, precision=precision, logger=self.logger
                )
                for local in self.boundary_neighbourhoods
            ]

        self.corrections: Optional[StitchCorrections] = None
        if stitch is not None:
            self.corrections = self._build_corrections(stitch)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def local_neighbourhood(self, i: int) -> LocalNeighbourhood:
        i = int(i)
        n = self.mesh.n_inner_vertices
        if i <= n:
            return self.inner_neighbourhoods[i - 1]
        return self.boundary_neighbourhoods[i - n - 1]

    def lambdas(self, i: int) -> np.ndarray:
        """Weight row of vertex `i` (1-based)."""
        i = int(i)
        n = self.mesh.n_inner_vertices
        if 1 <= i <= n:
            return self.local_parametrizations[i - 1].lambdas
        if not self.boundary_parametrizations:
            raise ParametrizationError(f"No weights computed for boundary vertex {i}")
        return self.boundary_parametrizations[i - n - 1].lambdas

    def weight_matrix(self, rows: Sequence[int]) -> np.ndarray:
        """(len(rows), N) stack of weight rows."""
        return np.vstack([self.lambdas(i) for i in rows]) if len(rows) else np.zeros((0, self.mesh.n_vertices))

    def inner_angle(self, i: int) -> float:
        return self.local_neighbourhood(i).inner_angle

    # ------------------------------------------------------------------
    # Stitch
    # ------------------------------------------------------------------
    def _build_corrections(self, stitch: Sequence[int]) -> StitchCorrections:
        stitch = tuple(int(s) for s in stitch)
        if len(stitch) < 2:
            raise ParametrizationError("A stitch needs at least two vertices")
        if len(set(stitch)) != len(stitch):
            raise ParametrizationError("Stitch vertices must be distinct")
        for s in stitch:
            if s < 1 or s > self.mesh.n_vertices:
                raise InvalidOptionError(f"Stitch vertex {s} outside [1, {self.mesh.n_vertices}]")

        corrections = StitchCorrections(stitch=stitch)
        for s in stitch:
            far = compute_corrections(stitch, self.local_neighbourhood(s))
            if not far:
                continue
            corrections.positive[s] = far
            for j in far:
                corrections.negative.setdefault(j, []).append(s)

        self.logger.debug(
            "Stitch of %d vertices: %d seam-crossing pairs",
            len(stitch),
            sum(len(v) for v in corrections.positive.values()),
        )
        return corrections

    # ------------------------------------------------------------------
    # Corners
    # ------------------------------------------------------------------
    def _sorted_angles(self) -> list[tuple[float, int]]:
        """(inner angle, loop position) of every boundary vertex, ascending."""
        return sorted(
            (local.inner_angle, k + 1) for k, local in enumerate(self.boundary_neighbourhoods)
        )

    def boundary_corners(self, method: int, search_range: float = 0.1, number: int = 4) -> list[int]:
        """
        Choose 4 corners with one of the heuristic boundary methods (3..6).

        Returns:
            ascending global vertex indices of the corners
        """
        method = int(method)
        n = self.mesh.n_inner_vertices
        angles = self._sorted_angles()
        if len(angles) < 4:
            raise CornerSelectionError(f"Boundary has only {len(angles)} vertices")

        if method == BoundaryMethod.SMALLEST:
            positions = [pos for _, pos in angles[:4]]
            label = "smallest inner angles"
        elif method == BoundaryMethod.RESTRICT:
            positions = self._restricted_corners(angles, float(search_range))
            label = "restricted smallest inner angles"
        elif method == BoundaryMethod.OPPOSITE:
            positions = self._search_areas(angles, float(search_range))
            label = "nearly opposite corners"
        elif method == BoundaryMethod.DISTRIBUTED:
            positions = self._distributed_corners(angles, int(number))
            label = "evenly distributed corners"
        else:
            raise InvalidOptionError(f"boundaryMethod {method} does not select corners")

        corners = sorted(n + int(p) for p in positions)
        self.logger.debug("According to the method '%s' the corners %s were chosen", label, corners)
        return corners

    def _restricted_corners(self, angles: list[tuple[float, int]], search_range: float) -> list[int]:
        min_distance = search_range * self.mesh.boundary_length()
        corners = [angles[0][1]]
        for _, pos in angles[1:]:
            if len(corners) == 4:
                break
            if all(self.mesh.shortest_boundary_distance(pos, c) >= min_distance for c in corners):
                corners.append(pos)
        if len(corners) < 4:
            raise CornerSelectionError(
                f"Only {len(corners)} corners are at least {search_range:g} * boundary length apart"
            )
        return corners

    def _search_areas(self, angles: list[tuple[float, int]], search_range: float) -> list[int]:
        """
        First corner at the smallest angle; the other three are the
        smallest-angle vertices near 1/4, 1/2 and 3/4 of the boundary length
        from it, kept in boundary order.
        """
        total = self.mesh.boundary_length()
        h = self.mesh.boundary_chord_lengths()
        size = len(h)
        first = angles[0][1]
        midpoints = [total * k / 4.0 for k in (1, 2, 3)]

        areas: list[list[tuple[float, int]]] = [[], [], []]
        walk = 0.0
        for i in range(size - 1):
            walk += float(h[(first - 1 + i) % size])
            pos = (first + i) % size + 1
            for j in (2, 1, 0):
                if abs(walk - midpoints[j]) <= total * search_range:
                    areas[j].append((self.boundary_neighbourhoods[pos - 1].inner_angle, pos))
                    break

        corners = [first]
        last_offset = 0
        for area in areas:
            for _, pos in sorted(area):
                offset = (pos - first) % size
                if offset > last_offset:
                    corners.append(pos)
                    last_offset = offset
                    break
        if len(corners) < 4:
            raise CornerSelectionError(
                f"Only {len(corners)} corners found within range {search_range:g} of the opposite positions"
            )
        return corners

    def _distributed_corners(self, angles: list[tuple[float, int]], number: int) -> list[int]:
        if number < 4 or number > len(angles):
            raise CornerSelectionError(
                f"number must lie in [4, {len(angles)}] for distributed corners, got {number}"
            )
        candidates = sorted(pos for _, pos in angles[:number])
        best: Optional[list[int]] = None
        best_spread = np.inf
        for subset in combinations(candidates, 4):
            lengths = self.mesh.corner_lengths(subset)
            spread = float(lengths.max() - lengths.min())
            if best is None or spread < best_spread:
                best = list(subset)
                best_spread = spread
        assert best is not None
        return best
