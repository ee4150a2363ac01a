"""
Export of parametrization results.

- textured OBJ: the 3D mesh carrying the parameter points as texture coordinates
- STL: a flat mesh in the z=0 plane
- result file (.mpr): zip container with a JSON manifest holding the uv/xyz
  coordinate tables, the vertex numbering and the run diagnostics
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Optional
import zipfile

import numpy as np
import trimesh

from .flat_mesh import FlatMesh
from .parametrization import Parametrization


RESULT_FORMAT = "meshparam_result"
RESULT_VERSION = 1
MANIFEST_NAME = "result.json"


class ResultFormatError(RuntimeError):
    pass


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, np.ndarray):
        return _json_safe(value.tolist())
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    return value


def textured_trimesh(param: Parametrization) -> trimesh.Trimesh:
    """Input mesh (original vertex order) with the parameter points as uv."""
    uv = param.original_order_uv()
    uv = np.where(np.isfinite(uv), uv, 0.0)
    tm = param.mesh.mesh.to_trimesh()
    # OBJ export writes vt lines only when the visual carries a material
    tm.visual = trimesh.visual.TextureVisuals(
        uv=uv,
        material=trimesh.visual.material.SimpleMaterial(),
    )
    return tm


def write_textured_mesh(path: str | Path, param: Parametrization) -> str:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    textured_trimesh(param).export(str(out_path), file_type="obj")
    return str(out_path)


def write_stl(path: str | Path, flat: FlatMesh) -> str:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    flat.to_trimesh().export(str(out_path), file_type="stl")
    return str(out_path)


def save_result(
    path: str | Path,
    param: Parametrization,
    *,
    meta: Optional[dict[str, Any]] = None,
) -> str:
    """
    Save a result file.

    Args:
        path: destination path (usually ends with .mpr)
        param: computed parametrization
        meta: optional metadata (e.g., source mesh path)
    """
    out_path = Path(path)
    mesh = param.mesh
    state: dict[str, Any] = {
        "n_vertices": mesh.n_vertices,
        "n_inner_vertices": mesh.n_inner_vertices,
        "uv": param.uv_matrix().T,
        "xyz": param.xyz_matrix().T,
        "unsorted": [mesh.unsorted(i) for i in range(1, mesh.n_vertices + 1)],
        "triangles": mesh.triangles,
        "corners": list(param.corners),
        "options": param.options.to_dict(),
        "diagnostics": param.meta,
    }
    stitch = getattr(param, "stitch", None)
    if stitch:
        state["stitch"] = list(stitch)

    doc: dict[str, Any] = {
        "format": RESULT_FORMAT,
        "version": RESULT_VERSION,
        "saved_at": _utc_now_iso(),
        "meta": dict(meta or {}),
        "state": state,
    }

    data = json.dumps(_json_safe(doc), ensure_ascii=False, indent=2)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(MANIFEST_NAME, data.encode("utf-8"))
    return str(out_path)


def load_result(path: str | Path) -> dict[str, Any]:
    """
    Load a result file.

    Returns:
        Parsed document (keys: format/version/meta/state); `state["uv"]`,
        `state["xyz"]` and `state["triangles"]` are numpy arrays.
    """
    in_path = Path(path)
    if not in_path.exists():
        raise FileNotFoundError(str(in_path))

    raw: str
    if zipfile.is_zipfile(in_path):
        with zipfile.ZipFile(in_path, "r") as zf:
            try:
                raw_bytes = zf.read(MANIFEST_NAME)
            except KeyError as e:
                raise ResultFormatError(f"Missing {MANIFEST_NAME} in result file") from e
        raw = raw_bytes.decode("utf-8", errors="replace")
    else:
        # Plain JSON is accepted for debugging.
        raw = in_path.read_text(encoding="utf-8", errors="replace")

    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ResultFormatError(f"Invalid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise ResultFormatError("Invalid result document (expected JSON object)")

    fmt = str(doc.get("format", "")).strip()
    ver = doc.get("version", None)
    if fmt != RESULT_FORMAT:
        raise ResultFormatError(f"Unsupported result format: {fmt!r}")
    if ver != RESULT_VERSION:
        raise ResultFormatError(f"Unsupported result version: {ver!r}")

    state = doc.get("state", None)
    if not isinstance(state, dict):
        raise ResultFormatError("Invalid result document: missing 'state' object")

    state["uv"] = np.asarray(state.get("uv", []), dtype=np.float64).reshape(-1, 2)
    state["xyz"] = np.asarray(state.get("xyz", []), dtype=np.float64).reshape(-1, 3)
    state["triangles"] = np.asarray(state.get("triangles", []), dtype=np.int64).reshape(-1, 3)
    if len(state["uv"]) != len(state["xyz"]):
        raise ResultFormatError("uv and xyz tables differ in length")

    meta = doc.get("meta", {})
    if meta is None:
        doc["meta"] = {}
    elif not isinstance(meta, dict):
        doc["meta"] = {"_raw": meta}

    return doc
