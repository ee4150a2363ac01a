import math
import unittest

import numpy as np

from mesh_builders import grid_mesh, square_fan_mesh
from src.meshparam.errors import NonManifoldVertexError
from src.meshparam.halfedge_mesh import Halfedge, HalfedgeMesh
from src.meshparam.local_neighbourhood import LocalNeighbourhood


class _FakeMesh:
    """Just enough of the HalfedgeMesh interface to feed hand-made fans."""

    def __init__(self, halfedges, boundary=False):
        self._halfedges = [Halfedge(a, b, 1.0) for a, b in halfedges]
        self._boundary = boundary

    def is_boundary(self, i):
        return self._boundary

    def opposite_halfedges(self, i):
        return list(self._halfedges)

    def vertex(self, i):
        angle = 0.7 * float(i)
        return np.array([math.cos(angle), math.sin(angle), 0.0]) if i != 1 else np.zeros(3)


class TestLocalNeighbourhood(unittest.TestCase):
    def test_interior_fan_is_closed_cycle(self):
        hm = HalfedgeMesh(square_fan_mesh())
        local = LocalNeighbourhood.from_mesh(hm, 1)

        self.assertTrue(local.is_inner)
        self.assertEqual(sorted(local.neighbours), [2, 3, 4, 5])
        self.assertEqual(local.n_neighbours, 4)
        self.assertEqual(len(local.angles), 4)
        np.testing.assert_allclose(local.angles, [math.pi / 2] * 4)
        np.testing.assert_allclose(local.distances, [math.sqrt(0.5)] * 4)
        self.assertAlmostEqual(local.inner_angle, 2.0 * math.pi)

    def test_fan_order_is_rotational(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        centre = hm.sorted_index(12)
        local = LocalNeighbourhood.from_mesh(hm, centre)

        c = hm.vertex(centre)[:2]
        directions = [math.atan2(*(hm.vertex(v)[:2] - c)[::-1]) for v in local.neighbours]
        steps = [(directions[(k + 1) % 6] - directions[k]) % (2 * math.pi) for k in range(6)]
        # Counter-clockwise, one full turn.
        self.assertTrue(all(0.0 < s < math.pi for s in steps))
        self.assertAlmostEqual(sum(steps), 2.0 * math.pi)

    def test_boundary_fan_is_open_chain(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        side = hm.sorted_index(2)  # (0.5, 0)
        local = LocalNeighbourhood.from_mesh(hm, side)

        self.assertFalse(local.is_inner)
        self.assertEqual(len(local.angles), local.n_neighbours - 1)
        self.assertAlmostEqual(local.inner_angle, math.pi)
        # The open chain starts and ends on the boundary.
        self.assertTrue(hm.is_boundary(local.neighbours[0]))
        self.assertTrue(hm.is_boundary(local.neighbours[-1]))

    def test_corner_angle(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        local = LocalNeighbourhood.from_mesh(hm, hm.sorted_index(0))
        self.assertAlmostEqual(local.inner_angle, math.pi / 2)

    def test_unordered_halfedges_are_chained(self):
        mesh = _FakeMesh([(4, 5), (2, 3), (5, 2), (3, 4)])
        local = LocalNeighbourhood.from_mesh(mesh, 1)
        # Seeded with (4, 5); (3, 4) is prepended before the fan closes.
        self.assertEqual(local.neighbours, (3, 4, 5, 2))
        self.assertEqual(len(local.angles), 4)
        self.assertTrue(local.is_inner)


class TestNonManifoldFans(unittest.TestCase):
    def test_disconnected_halfedges_raise(self):
        mesh = _FakeMesh([(2, 3), (4, 5)])
        with self.assertRaises(NonManifoldVertexError) as ctx:
            LocalNeighbourhood.from_mesh(mesh, 1)
        self.assertEqual(ctx.exception.vertex_index, 1)

    def test_two_cycles_raise(self):
        mesh = _FakeMesh([(2, 3), (3, 4), (4, 2), (5, 6), (6, 7), (7, 5)])
        with self.assertRaises(NonManifoldVertexError):
            LocalNeighbourhood.from_mesh(mesh, 1)

    def test_repeated_neighbour_raises(self):
        mesh = _FakeMesh([(2, 3), (3, 4), (4, 3)], boundary=True)
        with self.assertRaises(NonManifoldVertexError):
            LocalNeighbourhood.from_mesh(mesh, 1)

    def test_open_interior_fan_raises(self):
        mesh = _FakeMesh([(2, 3), (3, 4)], boundary=False)
        with self.assertRaises(NonManifoldVertexError):
            LocalNeighbourhood.from_mesh(mesh, 1)

    def test_closed_boundary_fan_raises(self):
        mesh = _FakeMesh([(2, 3), (3, 4), (4, 2)], boundary=True)
        with self.assertRaises(NonManifoldVertexError):
            LocalNeighbourhood.from_mesh(mesh, 1)


if __name__ == "__main__":
    unittest.main()
