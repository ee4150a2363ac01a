"""
meshparam - Planar mesh parametrization for spline fitting

Main entry point
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Ensure repository root is on sys.path so "src" is importable.
ROOT_DIR = Path(__file__).resolve().parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.meshparam.output_paths import flat_mesh_path, result_path, textured_mesh_path

_LOGGER = logging.getLogger(__name__)
DEFAULT_MESH_UNIT = "mm"


def _parse_indices(text: str) -> list[int]:
    values = [v for v in str(text).replace(",", " ").split() if v]
    try:
        return [int(v) for v in values]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a list of integers, got {text!r}") from None


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    from src.meshparam.mesh_loader import MeshLoader

    parser = argparse.ArgumentParser(
        description="Parametrize a triangle mesh onto the unit square (or a periodic strip).",
        epilog=f"Supported formats: {list(MeshLoader.get_supported_formats().keys())}",
    )
    parser.add_argument("mesh", help="Input mesh file (OBJ/PLY/STL/OFF/GLTF/GLB).")
    parser.add_argument("--options", default="", help="JSON option file (see save_options).")
    parser.add_argument("--boundary-method", type=int, default=None, help="Boundary method 1..6.")
    parser.add_argument("--parametrization-method", type=int, default=None, help="Weighting scheme 1..3.")
    parser.add_argument(
        "--corners",
        type=_parse_indices,
        default=None,
        help="4 corner vertices as 0-based indices of the input mesh, e.g. '12,40,77,103'.",
    )
    parser.add_argument(
        "--corners-file",
        default="",
        help="Text file with one 'x y z' row per corner point (nearest vertices are used).",
    )
    parser.add_argument("--range", dest="search_range", type=float, default=None, help="Search range for methods 4/5.")
    parser.add_argument("--number", type=int, default=None, help="Candidate pool size for method 6.")
    parser.add_argument("--precision", type=float, default=None, help="Numerical tolerance.")
    parser.add_argument("--solver", default=None, help="dense, sparse or relaxation.")
    parser.add_argument("--max-iterations", type=int, default=None, help="Iteration cap of the relaxation solver.")
    parser.add_argument("--free-boundary", action="store_true", help="Pin only the 4 corners.")
    parser.add_argument(
        "--periodic",
        action="store_true",
        help="Periodic parametrization of a mesh with two boundary loops (needs a stitch).",
    )
    parser.add_argument(
        "--stitch",
        type=_parse_indices,
        default=None,
        help="Seam vertices as 0-based indices of the input mesh, from the v=0 loop to the v=1 loop.",
    )
    parser.add_argument(
        "--stitch-file",
        default="",
        help="Text file with one 'x y z' row per seam point, from the v=0 loop to the v=1 loop.",
    )
    parser.add_argument("--unit", default=DEFAULT_MESH_UNIT, help="Default unit for mesh loader.")
    parser.add_argument("--textured-out", default="", help="Textured OBJ output path.")
    parser.add_argument("--flat-out", default="", help="Flat mesh STL output path.")
    parser.add_argument("--result-out", default="", help="Result file (.mpr) output path.")
    parser.add_argument("--no-export", action="store_true", help="Only compute and print a summary.")
    parser.add_argument("--log-level", default="INFO", help="Log level of the log file (DEBUG, INFO, ...).")
    parser.add_argument("--verbose", action="store_true", help="Echo log records to stderr.")
    return parser.parse_args(argv)


def _build_options(args: argparse.Namespace):
    from src.meshparam.options import default_options, load_options

    options = load_options(args.options) if args.options else default_options()
    changes = {
        "boundary_method": args.boundary_method,
        "parametrization_method": args.parametrization_method,
        "search_range": args.search_range,
        "number": args.number,
        "precision": args.precision,
        "solver": args.solver,
        "max_iterations": args.max_iterations,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    return options.updated(**changes) if changes else options


def _to_sorted(halfedges, indices: list[int]) -> list[int]:
    """0-based input-mesh vertex indices -> internal 1-based numbering."""
    return [halfedges.sorted_index(i) for i in indices]


def run(args: argparse.Namespace) -> int:
    from src.meshparam.exporter import save_result, write_stl, write_textured_mesh
    from src.meshparam.halfedge_mesh import HalfedgeMesh
    from src.meshparam.mesh_loader import MeshLoader
    from src.meshparam.parametrization import Parametrization, PeriodicParametrization

    print(f"\n{'='*60}")
    print(f"Parametrizing: {args.mesh}")
    print(f"{'='*60}")

    # 1. Load
    print("\n[1/3] Loading mesh...")
    loader = MeshLoader(default_unit=args.unit)
    mesh = loader.load(args.mesh)
    halfedges = HalfedgeMesh(mesh)
    print(f"      Vertices: {mesh.n_vertices:,}")
    print(f"      Faces: {mesh.n_faces:,}")
    print(f"      Size: {mesh.extents[0]:.2f} x {mesh.extents[1]:.2f} x {mesh.extents[2]:.2f} {mesh.unit}")
    print(f"      Surface area: {mesh.surface_area:.4f} {mesh.unit}^2")
    print(f"      Interior / boundary: {halfedges.n_inner_vertices:,} / {halfedges.n_boundary_vertices:,}")
    print(f"      Boundary loops: {len(halfedges.boundary_loops)}")

    options = _build_options(args)
    if args.corners is not None:
        options = options.updated(corners=_to_sorted(halfedges, args.corners))

    # 2. Solve
    print("\n[2/3] Solving...")
    if args.periodic:
        if args.stitch_file:
            stitch = Parametrization(halfedges, options).read_indices(args.stitch_file)
        else:
            stitch = _to_sorted(halfedges, args.stitch or [])
        param = PeriodicParametrization(halfedges, stitch, options).compute()
        flat = param.create_restricted_flat_mesh()
    else:
        param = Parametrization(halfedges, options)
        if args.free_boundary:
            corners = param.read_indices(args.corners_file) if args.corners_file else None
            param.compute_free_boundary(corners)
        else:
            if args.corners_file:
                param.set_options(corners=param.read_indices(args.corners_file))
            param.compute()
        flat = param.create_flat_mesh()

    meta = param.meta
    print(f"      Variant: {meta.get('variant')}")
    print(f"      Solver: {meta.get('solver')} (iterations={meta.get('iterations')}, converged={meta.get('converged')})")
    print(f"      Residual: {float(meta.get('residual', 0.0)):.3g}")
    if param.corners:
        inputs = [param.mesh.unsorted(c) for c in param.corners]
        print(f"      Corners: {list(param.corners)} (input vertices {inputs})")
    print(f"      Flat mesh: {flat.n_faces:,} faces, area {flat.area:.4f}, inverted {flat.n_inverted()}")
    print(f"      Time: {float(meta.get('timings', {}).get('total', 0.0)):.2f}s")

    # 3. Save
    if args.no_export:
        return 0
    print("\n[3/3] Saving output...")
    saved = [
        write_textured_mesh(textured_mesh_path(args.mesh, args.textured_out or None), param),
        write_stl(flat_mesh_path(args.mesh, args.flat_out or None), flat),
        save_result(result_path(args.mesh, args.result_out or None), param, meta={"mesh": str(args.mesh)}),
    ]
    for path in saved:
        print(f"      Saved: {path}")

    print(f"\n{'='*60}")
    print("Done!")
    print(f"{'='*60}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    log_path = None
    try:
        from src.meshparam.logging_utils import setup_logging

        log_path = setup_logging(log_level=args.log_level, console=args.verbose)
    except Exception as e:
        _LOGGER.debug("Failed to initialize logging: %s", e, exc_info=True)

    try:
        return run(args)
    except Exception as e:
        from src.meshparam.logging_utils import format_exception_message

        _LOGGER.exception("Parametrization failed")
        print(f"\n{format_exception_message('Error:', f'{type(e).__name__}: {e}', log_path=log_path)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
