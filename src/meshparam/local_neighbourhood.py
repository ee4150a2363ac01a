"""
Ordered neighbour fan around one vertex.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import math

import numpy as np

from .errors import NonManifoldVertexError
from .halfedge_mesh import HalfedgeMesh


def _angle_between(a: np.ndarray, b: np.ndarray) -> float:
    cross = np.linalg.norm(np.cross(a, b))
    return float(math.atan2(float(cross), float(np.dot(a, b))))


@dataclass(frozen=True)
class LocalNeighbourhood:
    """
    Neighbours of a vertex in one consistent rotational order.

    Attributes:
        vertex_index: centre vertex (1-based, sorted numbering)
        neighbours: fan order; a cycle for interior vertices, an open chain
            for boundary vertices
        angles: wedge angle between consecutive neighbours (one per incident
            triangle); angles[k] lies between neighbours[k] and neighbours[k+1]
        distances: 3D length of the edge centre -> neighbours[k]
        is_inner: whether the fan is closed
    """
    vertex_index: int
    neighbours: tuple[int, ...]
    angles: tuple[float, ...]
    distances: tuple[float, ...]
    is_inner: bool

    @property
    def n_neighbours(self) -> int:
        return len(self.neighbours)

    @property
    def inner_angle(self) -> float:
        """Total angle at the vertex (2*pi for a flat interior vertex)."""
        return float(sum(self.angles))

    @classmethod
    def from_mesh(cls, mesh: HalfedgeMesh, vertex_index: int) -> "LocalNeighbourhood":
        """
        Chain the half-edges opposite `vertex_index` into a fan.

        Half-edges that fit neither end of the growing chain are parked and
        put back on the worklist after the next successful append. If the
        worklist drains while half-edges are still parked, or the step bound
        is exceeded, the vertex is not manifold.
        """
        vi = int(vertex_index)
        inner = not mesh.is_boundary(vi)
        halfedges = mesh.opposite_halfedges(vi)
        centre = mesh.vertex(vi)

        def wedge(origin: int, end: int) -> float:
            return _angle_between(mesh.vertex(origin) - centre, mesh.vertex(end) - centre)

        seed = halfedges[0]
        chain: deque[int] = deque([seed.origin, seed.end])
        angles: deque[float] = deque([wedge(seed.origin, seed.end)])
        closed = False

        pending: deque = deque(halfedges[1:])
        parked: list = []
        d = len(halfedges)
        max_steps = d * (d + 1)
        steps = 0

        while pending:
            steps += 1
            if steps > max_steps:
                raise NonManifoldVertexError(vi, "fan ordering exceeded its step bound")
            he = pending.popleft()
            if closed:
                raise NonManifoldVertexError(vi, "more than one fan around the vertex")

            if he.origin == chain[-1]:
                if he.end == chain[0]:
                    closed = True
                elif he.end in chain:
                    raise NonManifoldVertexError(vi, f"neighbour {he.end} repeats in the fan")
                else:
                    chain.append(he.end)
                angles.append(wedge(he.origin, he.end))
            elif he.end == chain[0]:
                if he.origin in chain:
                    raise NonManifoldVertexError(vi, f"neighbour {he.origin} repeats in the fan")
                chain.appendleft(he.origin)
                angles.appendleft(wedge(he.origin, he.end))
            else:
                parked.append(he)
                if not pending:
                    raise NonManifoldVertexError(
                        vi, f"{len(parked)} half-edge(s) do not fit the fan"
                    )
                continue

            pending.extend(parked)
            parked.clear()

        if inner and not closed:
            raise NonManifoldVertexError(vi, "interior vertex with an open fan")
        if not inner and closed:
            raise NonManifoldVertexError(vi, "boundary vertex with a closed fan")

        neighbours = tuple(int(v) for v in chain)
        distances = tuple(float(np.linalg.norm(mesh.vertex(v) - centre)) for v in neighbours)
        return cls(
            vertex_index=vi,
            neighbours=neighbours,
            angles=tuple(angles),
            distances=distances,
            is_inner=inner,
        )
