import json
import tempfile
import unittest
from pathlib import Path

import numpy as np
import trimesh

from mesh_builders import cylinder_index, cylinder_mesh, grid_mesh
from src.meshparam.exporter import (
    RESULT_FORMAT,
    RESULT_VERSION,
    ResultFormatError,
    load_result,
    save_result,
    textured_trimesh,
    write_stl,
    write_textured_mesh,
)
from src.meshparam.halfedge_mesh import HalfedgeMesh
from src.meshparam.mesh_loader import MeshLoader
from src.meshparam.options import ParametrizationOptions
from src.meshparam.output_paths import flat_mesh_path, result_path, textured_mesh_path
from src.meshparam.parametrization import Parametrization, PeriodicParametrization


def _param():
    opts = ParametrizationOptions(boundary_method=3, parametrization_method=1)
    return Parametrization(grid_mesh(3, 3, bump=0.2), opts).compute()


class TestResultFile(unittest.TestCase):
    def test_roundtrip_zip_manifest(self):
        param = _param()
        meta = {"mesh": "C:/tmp/grid.obj"}

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "grid.mpr"
            save_result(path, param, meta=meta)
            doc = load_result(path)

        self.assertEqual(doc.get("format"), RESULT_FORMAT)
        self.assertEqual(doc.get("version"), RESULT_VERSION)
        self.assertEqual(doc.get("meta"), meta)

        state = doc["state"]
        np.testing.assert_allclose(state["uv"], param.uv_matrix().T)
        np.testing.assert_allclose(state["xyz"], param.xyz_matrix().T)
        np.testing.assert_array_equal(state["triangles"], param.mesh.triangles)
        self.assertEqual(state["n_inner_vertices"], param.mesh.n_inner_vertices)
        self.assertEqual(state["corners"], param.corners)
        self.assertEqual(state["options"], param.options.to_dict())
        self.assertEqual(state["diagnostics"]["variant"], "standard")
        self.assertNotIn("stitch", state)

    def test_periodic_result_keeps_the_stitch(self):
        hm = HalfedgeMesh(cylinder_mesh(6, 2))
        stitch = [hm.sorted_index(cylinder_index(0, k, 6)) for k in range(3)]
        param = PeriodicParametrization(hm, stitch, ParametrizationOptions(boundary_method=1)).compute()

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "cylinder.mpr"
            save_result(path, param)
            doc = load_result(path)

        self.assertEqual(doc["state"]["stitch"], stitch)
        self.assertEqual(doc["state"]["diagnostics"]["variant"], "periodic")

    def test_load_plain_json_fallback(self):
        doc = {
            "format": RESULT_FORMAT,
            "version": RESULT_VERSION,
            "meta": None,
            "saved_at": "2026-01-01T00:00:00Z",
            "state": {"uv": [[0.0, 0.0], [1.0, 0.5]], "xyz": [[0, 0, 0], [1, 2, 3]], "triangles": []},
        }
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "sample.json"
            path.write_text(json.dumps(doc, ensure_ascii=False), encoding="utf-8")
            loaded = load_result(path)

        self.assertEqual(loaded["meta"], {})
        self.assertEqual(loaded["state"]["uv"].shape, (2, 2))
        self.assertEqual(loaded["state"]["triangles"].shape, (0, 3))

    def test_rejected_documents(self):
        docs = [
            {"format": "other", "version": RESULT_VERSION, "state": {}},
            {"format": RESULT_FORMAT, "version": 2, "state": {}},
            {"format": RESULT_FORMAT, "version": RESULT_VERSION},
            {"format": RESULT_FORMAT, "version": RESULT_VERSION, "state": {"uv": [[0, 0]], "xyz": []}},
        ]
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "bad.json"
            for doc in docs:
                path.write_text(json.dumps(doc), encoding="utf-8")
                with self.assertRaises(ResultFormatError, msg=str(doc)):
                    load_result(path)


class TestMeshExports(unittest.TestCase):
    def test_stl_has_one_face_per_triangle(self):
        param = _param()
        flat = param.create_flat_mesh()
        with tempfile.TemporaryDirectory() as td:
            path = write_stl(Path(td) / "out" / "grid.flat.stl", flat)
            loaded = trimesh.load(path, force="mesh")

        self.assertEqual(len(loaded.faces), flat.n_faces)
        np.testing.assert_allclose(loaded.vertices[:, 2], 0.0)

    def test_textured_obj_loads_back_as_mesh_data(self):
        param = _param()
        with tempfile.TemporaryDirectory() as td:
            path = write_textured_mesh(Path(td) / "grid.param.obj", param)
            loaded = MeshLoader().load(path)

        self.assertEqual(loaded.n_faces, param.mesh.n_triangles)
        np.testing.assert_allclose(loaded.extents, param.mesh.mesh.extents)

    def test_textured_mesh_carries_uv(self):
        param = _param()
        tm = textured_trimesh(param)
        np.testing.assert_allclose(tm.visual.uv, param.original_order_uv())
        np.testing.assert_allclose(tm.vertices, param.mesh.mesh.vertices)

        with tempfile.TemporaryDirectory() as td:
            path = write_textured_mesh(Path(td) / "grid.param.obj", param)
            text = Path(path).read_text(encoding="utf-8")
        vt = np.array(
            [[float(x) for x in line.split()[1:3]] for line in text.splitlines() if line.startswith("vt ")]
        )
        self.assertGreater(len(vt), 0)
        self.assertTrue(np.all((vt >= -1e-9) & (vt <= 1.0 + 1e-9)))
        self.assertIsNotNone(tm.visual.material)


def test_output_paths():
    assert textured_mesh_path("scan/part.stl") == Path("scan/part.param.obj")
    assert flat_mesh_path("scan/part.stl") == Path("scan/part.flat.stl")
    assert result_path("scan/part.stl") == Path("scan/part.mpr")
    assert result_path("scan/part.stl", "other/x.mpr") == Path("other/x.mpr")
    assert flat_mesh_path(Path("a.obj"), "") == Path("a.flat.stl")


if __name__ == "__main__":
    unittest.main()
