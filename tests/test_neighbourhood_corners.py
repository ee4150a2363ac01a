import math
import unittest

import numpy as np

from mesh_builders import (
    cylinder_index,
    cylinder_mesh,
    grid_corner_indices,
    grid_mesh,
    square_fan_mesh,
)
from src.meshparam.errors import CornerSelectionError, InvalidOptionError, ParametrizationError
from src.meshparam.halfedge_mesh import HalfedgeMesh
from src.meshparam.neighbourhood import (
    Neighbourhood,
    ParameterPoint,
    compute_corrections,
    find_point_on_boundary,
)


class TestFindPointOnBoundary(unittest.TestCase):
    def test_sides(self):
        self.assertEqual(find_point_on_boundary(0.0, 7), ParameterPoint(0.0, 0.0, 7))
        self.assertEqual(find_point_on_boundary(0.25, 7)[:2], (0.25, 0.0))
        self.assertEqual(find_point_on_boundary(1.0, 7)[:2], (1.0, 0.0))
        self.assertEqual(find_point_on_boundary(1.5, 7)[:2], (1.0, 0.5))
        self.assertEqual(find_point_on_boundary(2.0, 7)[:2], (1.0, 1.0))
        self.assertEqual(find_point_on_boundary(2.25, 7)[:2], (0.75, 1.0))
        self.assertEqual(find_point_on_boundary(3.0, 7)[:2], (0.0, 1.0))
        self.assertEqual(find_point_on_boundary(3.75, 7)[:2], (0.0, 0.25))
        self.assertEqual(find_point_on_boundary(4.0, 7)[:2], (0.0, 0.0))

    def test_out_of_range(self):
        with self.assertRaises(ValueError):
            find_point_on_boundary(-0.1, 1)
        with self.assertRaises(ValueError):
            find_point_on_boundary(4.5, 1)


class TestNeighbourhood(unittest.TestCase):
    def test_lambdas_of_interior_vertices(self):
        hm = HalfedgeMesh(square_fan_mesh())
        nb = Neighbourhood(hm, 2)
        np.testing.assert_allclose(nb.lambdas(1), [0.0, 0.25, 0.25, 0.25, 0.25])
        self.assertEqual(nb.weight_matrix([1]).shape, (1, 5))
        with self.assertRaises(ParametrizationError):
            nb.lambdas(2)

    def test_boundary_lambdas_on_request(self):
        hm = HalfedgeMesh(grid_mesh(3, 3))
        nb = Neighbourhood(hm, 1, boundary_lambdas=True)
        for i in range(hm.n_inner_vertices + 1, hm.n_vertices + 1):
            self.assertAlmostEqual(float(nb.lambdas(i).sum()), 1.0)

    def test_inner_angles(self):
        hm = HalfedgeMesh(grid_mesh(3, 3))
        nb = Neighbourhood(hm, 2)
        corner = hm.sorted_index(0)
        self.assertAlmostEqual(nb.inner_angle(corner), math.pi / 2)
        self.assertAlmostEqual(nb.inner_angle(1), 2.0 * math.pi)


class TestBoundaryCorners(unittest.TestCase):
    def setUp(self):
        self.nx, self.ny = 4, 4
        self.hm = HalfedgeMesh(grid_mesh(self.nx, self.ny, bump=0.2))
        self.nb = Neighbourhood(self.hm, 1)
        self.expected = sorted(self.hm.sorted_index(c) for c in grid_corner_indices(self.nx, self.ny))

    def test_smallest(self):
        self.assertEqual(self.nb.boundary_corners(3), self.expected)

    def test_restrict(self):
        self.assertEqual(self.nb.boundary_corners(4, search_range=0.1), self.expected)

    def test_opposite(self):
        self.assertEqual(self.nb.boundary_corners(5, search_range=0.1), self.expected)

    def test_distributed(self):
        self.assertEqual(self.nb.boundary_corners(6, number=4), self.expected)
        self.assertEqual(self.nb.boundary_corners(6, number=6), self.expected)

    def test_restrict_with_too_large_range(self):
        with self.assertRaises(CornerSelectionError):
            self.nb.boundary_corners(4, search_range=0.3)

    def test_distributed_with_too_small_pool(self):
        with self.assertRaises(CornerSelectionError):
            self.nb.boundary_corners(6, number=3)

    def test_non_heuristic_method(self):
        with self.assertRaises(InvalidOptionError):
            self.nb.boundary_corners(2)

    def test_anisotropic_grid_corners(self):
        hm = HalfedgeMesh(grid_mesh(6, 2))
        nb = Neighbourhood(hm, 2)
        expected = sorted(hm.sorted_index(c) for c in grid_corner_indices(6, 2))
        for method in (3, 4, 6):
            self.assertEqual(nb.boundary_corners(method, search_range=0.05, number=4), expected)


class TestStitchCorrections(unittest.TestCase):
    def setUp(self):
        self.n_around, self.n_height = 8, 3
        self.hm = HalfedgeMesh(cylinder_mesh(self.n_around, self.n_height))
        self.stitch = [
            self.hm.sorted_index(cylinder_index(0, k, self.n_around)) for k in range(self.n_height + 1)
        ]

    def _ring(self, k):
        return {self.hm.sorted_index(cylinder_index(self.n_around - 1, k, self.n_around))}

    def test_corrections_point_to_the_far_side(self):
        nb = Neighbourhood(self.hm, 2, stitch=self.stitch)
        pos = nb.corrections.positive

        far = {self.hm.sorted_index(cylinder_index(self.n_around - 1, k, self.n_around)) for k in range(4)}
        for s in self.stitch:
            self.assertTrue(set(pos[s]) <= far)
            self.assertFalse(set(pos[s]) & set(self.stitch))

        # Bottom stitch vertex sees its left neighbour on the bottom ring.
        self.assertEqual(set(pos[self.stitch[0]]), self._ring(0))

        for s, targets in pos.items():
            for j in targets:
                self.assertIn(s, nb.corrections.negative[j])

    def test_compute_corrections_ignores_vertices_off_the_stitch(self):
        nb = Neighbourhood(self.hm, 2)
        off = self.hm.sorted_index(cylinder_index(3, 1, self.n_around))
        self.assertEqual(compute_corrections(self.stitch, nb.local_neighbourhood(off)), [])

    def test_non_adjacent_stitch_raises(self):
        bad = [self.stitch[0], self.stitch[2], self.stitch[3]]
        with self.assertRaises(ParametrizationError):
            Neighbourhood(self.hm, 2, stitch=bad)

    def test_stitch_out_of_range_raises(self):
        with self.assertRaises(InvalidOptionError):
            Neighbourhood(self.hm, 2, stitch=[self.stitch[0], self.hm.n_vertices + 5])


if __name__ == "__main__":
    unittest.main()
