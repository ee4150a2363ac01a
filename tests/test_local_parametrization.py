import math
import unittest

import numpy as np

from mesh_builders import grid_mesh, square_fan_mesh
from src.meshparam.errors import InvalidOptionError, ParametrizationError
from src.meshparam.halfedge_mesh import HalfedgeMesh
from src.meshparam.local_neighbourhood import LocalNeighbourhood
from src.meshparam.local_parametrization import (
    LocalParametrization,
    shape_preserving_weights,
    unfold_fan,
)


def _rows(hm, method):
    out = []
    for i in range(1, hm.n_inner_vertices + 1):
        local = LocalNeighbourhood.from_mesh(hm, i)
        out.append((local, LocalParametrization.from_neighbourhood(hm.n_vertices, local, method)))
    return out


class TestWeights(unittest.TestCase):
    def test_five_vertex_uniform_row(self):
        hm = HalfedgeMesh(square_fan_mesh())
        local = LocalNeighbourhood.from_mesh(hm, 1)
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 2)
        np.testing.assert_allclose(lp.lambdas, [0.0, 0.25, 0.25, 0.25, 0.25])
        self.assertEqual(lp.neighbour_weights, {2: 0.25, 3: 0.25, 4: 0.25, 5: 0.25})

    def test_five_vertex_shape_row_is_symmetric(self):
        hm = HalfedgeMesh(square_fan_mesh())
        local = LocalNeighbourhood.from_mesh(hm, 1)
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 1)
        np.testing.assert_allclose(lp.lambdas, [0.0, 0.25, 0.25, 0.25, 0.25], atol=1e-12)

    def test_rows_sum_to_one_for_all_methods(self):
        hm = HalfedgeMesh(grid_mesh(5, 4, bump=0.3))
        for method in (1, 2, 3):
            for local, lp in _rows(hm, method):
                self.assertAlmostEqual(float(lp.lambdas.sum()), 1.0, places=12)
                nz = set(int(k) + 1 for k in np.flatnonzero(lp.lambdas))
                self.assertTrue(nz <= set(local.neighbours))
                self.assertEqual(float(lp.lambdas[lp.vertex_index - 1]), 0.0)

    def test_shape_weights_are_nonnegative(self):
        hm = HalfedgeMesh(grid_mesh(5, 4, bump=0.3))
        for _, lp in _rows(hm, 1):
            self.assertTrue(np.all(lp.lambdas >= 0.0))

    def test_shape_weights_reproduce_flat_positions(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        points = hm.vertices
        for _, lp in _rows(hm, 1):
            np.testing.assert_allclose(lp.lambdas @ points, points[lp.vertex_index - 1], atol=1e-12)

    def test_distance_weights_follow_edge_lengths(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        local = LocalNeighbourhood.from_mesh(hm, hm.sorted_index(12))
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 3)
        expected = np.asarray(local.distances) / sum(local.distances)
        got = [lp.lambdas[v - 1] for v in local.neighbours]
        np.testing.assert_allclose(got, expected)

    def test_lambdas_are_read_only(self):
        hm = HalfedgeMesh(square_fan_mesh())
        local = LocalNeighbourhood.from_mesh(hm, 1)
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 1)
        with self.assertRaises(ValueError):
            lp.lambdas[0] = 1.0

    def test_invalid_method(self):
        hm = HalfedgeMesh(square_fan_mesh())
        local = LocalNeighbourhood.from_mesh(hm, 1)
        with self.assertRaises(InvalidOptionError):
            LocalParametrization.from_neighbourhood(hm.n_vertices, local, 4)


class TestBoundaryWeights(unittest.TestCase):
    def test_shape_boundary_row_uses_fan_ends(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        local = LocalNeighbourhood.from_mesh(hm, hm.sorted_index(2))
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 1)

        self.assertEqual(set(lp.neighbour_weights), {local.neighbours[0], local.neighbours[-1]})
        self.assertAlmostEqual(lp.neighbour_weights[local.neighbours[0]], 0.5)
        self.assertAlmostEqual(lp.neighbour_weights[local.neighbours[-1]], 0.5)

    def test_uniform_boundary_row_uses_whole_fan(self):
        hm = HalfedgeMesh(grid_mesh(4, 4))
        local = LocalNeighbourhood.from_mesh(hm, hm.sorted_index(2))
        lp = LocalParametrization.from_neighbourhood(hm.n_vertices, local, 2)
        self.assertEqual(len(lp.neighbour_weights), local.n_neighbours)
        self.assertAlmostEqual(float(lp.lambdas.sum()), 1.0)


class TestUnfolding(unittest.TestCase):
    def test_unfold_scales_angles_to_full_turn(self):
        hm = HalfedgeMesh(grid_mesh(4, 4, bump=0.4))
        local = LocalNeighbourhood.from_mesh(hm, hm.sorted_index(12))
        points = unfold_fan(local, 2.0 * math.pi)

        np.testing.assert_allclose(np.linalg.norm(points, axis=1), local.distances)
        self.assertAlmostEqual(float(points[0, 1]), 0.0)
        angles = np.arctan2(points[:, 1], points[:, 0]) % (2.0 * math.pi)
        self.assertTrue(np.all(np.diff(angles) > 0.0))

    def test_too_few_neighbours(self):
        with self.assertRaises(ParametrizationError):
            shape_preserving_weights(np.array([[1.0, 0.0], [-1.0, 0.0]]))

    def test_regular_polygon_gives_equal_weights(self):
        d = 7
        angles = 2.0 * math.pi * np.arange(d) / d
        points = np.column_stack([np.cos(angles), np.sin(angles)])
        weights = shape_preserving_weights(points)
        np.testing.assert_allclose(weights, np.full(d, 1.0 / d), atol=1e-12)


if __name__ == "__main__":
    unittest.main()
