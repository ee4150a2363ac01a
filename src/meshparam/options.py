"""
Parametrization options.

Option names follow the established keys (`boundaryMethod`,
`parametrizationMethod`, `corners`, `range`, `number`, `precision`) so option
files written for other tools keep working; snake_case keys are accepted too.

Option files are plain JSON documents:

    {"format": "meshparam_options", "version": 1, "options": {...}}
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
import json
from pathlib import Path
from typing import Any, Mapping

from .errors import InvalidOptionError
from .runtime_defaults import SOLVERS, load_runtime_defaults


OPTIONS_FORMAT = "meshparam_options"
OPTIONS_VERSION = 1


class BoundaryMethod(IntEnum):
    CHORDS = 1
    CORNERS = 2
    SMALLEST = 3
    RESTRICT = 4
    OPPOSITE = 5
    DISTRIBUTED = 6


class ParametrizationMethod(IntEnum):
    SHAPE = 1
    UNIFORM = 2
    DISTANCE = 3


# option key -> dataclass field
_KEY_ALIASES = {
    "boundaryMethod": "boundary_method",
    "parametrizationMethod": "parametrization_method",
    "corners": "corners",
    "range": "search_range",
    "number": "number",
    "precision": "precision",
    "solver": "solver",
    "maxIterations": "max_iterations",
}


@dataclass(frozen=True)
class ParametrizationOptions:
    """
    Options of one parametrization run.

    Attributes:
        boundary_method: corner/placement strategy (1..6, see BoundaryMethod)
        parametrization_method: weighting scheme (1..3, see ParametrizationMethod)
        corners: explicit corner vertex indices (1-based, sorted numbering)
        search_range: tolerance for the restrict/opposite corner methods,
            as a fraction of the boundary length
        number: candidate pool size for the distributed corner method
        precision: numerical tolerance (weights, pivots, relaxation)
        solver: 'dense', 'sparse' or 'relaxation'
        max_iterations: iteration cap of the relaxation solver
    """
    boundary_method: int = int(BoundaryMethod.RESTRICT)
    parametrization_method: int = int(ParametrizationMethod.SHAPE)
    corners: tuple[int, ...] = field(default_factory=tuple)
    search_range: float = 0.1
    number: int = 4
    precision: float = 1e-8
    solver: str = "dense"
    max_iterations: int = 100

    def __post_init__(self):
        object.__setattr__(self, "corners", tuple(int(c) for c in (self.corners or ())))
        object.__setattr__(self, "solver", str(self.solver or "dense").strip().lower())

    def validate(self) -> "ParametrizationOptions":
        if int(self.boundary_method) not in {int(m) for m in BoundaryMethod}:
            raise InvalidOptionError(f"The boundary method {self.boundary_method} is not valid.")
        if int(self.parametrization_method) not in {int(m) for m in ParametrizationMethod}:
            raise InvalidOptionError(
                f"The parametrization method {self.parametrization_method} is not valid."
            )
        if not (float(self.precision) > 0.0):
            raise InvalidOptionError(f"precision must be positive, got {self.precision!r}")
        if self.solver not in SOLVERS:
            raise InvalidOptionError(f"Unknown solver {self.solver!r} (expected one of {SOLVERS})")
        if int(self.max_iterations) < 1:
            raise InvalidOptionError(f"maxIterations must be >= 1, got {self.max_iterations!r}")
        if not (float(self.search_range) >= 0.0):
            raise InvalidOptionError(f"range must be non-negative, got {self.search_range!r}")
        if int(self.boundary_method) == BoundaryMethod.CORNERS and len(self.corners) != 4:
            raise InvalidOptionError(
                f"boundaryMethod=2 needs exactly 4 corners, got {len(self.corners)}"
            )
        return self

    def updated(self, **changes: Any) -> "ParametrizationOptions":
        return replace(self, **_normalize_keys(changes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "boundaryMethod": int(self.boundary_method),
            "parametrizationMethod": int(self.parametrization_method),
            "corners": [int(c) for c in self.corners],
            "range": float(self.search_range),
            "number": int(self.number),
            "precision": float(self.precision),
            "solver": str(self.solver),
            "maxIterations": int(self.max_iterations),
        }

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "ParametrizationOptions":
        return default_options().updated(**dict(values))


def _normalize_keys(values: Mapping[str, Any]) -> dict[str, Any]:
    known = set(_KEY_ALIASES.values())
    out: dict[str, Any] = {}
    for key, value in values.items():
        name = _KEY_ALIASES.get(str(key), str(key))
        if name not in known:
            raise InvalidOptionError(f"Unknown option: {key!r}")
        out[name] = value
    if "corners" in out:
        out["corners"] = tuple(int(c) for c in (out["corners"] or ()))
    return out


def default_options() -> ParametrizationOptions:
    defaults = load_runtime_defaults()
    return ParametrizationOptions(
        precision=defaults.precision,
        solver=defaults.solver,
        max_iterations=defaults.max_iterations,
    )


def save_options(path: str | Path, options: ParametrizationOptions) -> str:
    out_path = Path(path)
    doc = {
        "format": OPTIONS_FORMAT,
        "version": OPTIONS_VERSION,
        "options": options.to_dict(),
    }
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
    return str(out_path)


def load_options(path: str | Path) -> ParametrizationOptions:
    """
    Load an option file.

    A bare JSON object of options (without the format envelope) is accepted
    as well.
    """
    in_path = Path(path)
    if not in_path.exists():
        raise FileNotFoundError(str(in_path))

    try:
        doc = json.loads(in_path.read_text(encoding="utf-8", errors="replace"))
    except json.JSONDecodeError as e:
        raise InvalidOptionError(f"Invalid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise InvalidOptionError("Invalid option document (expected JSON object)")

    if "format" in doc:
        fmt = str(doc.get("format", "")).strip()
        if fmt != OPTIONS_FORMAT:
            raise InvalidOptionError(f"Unsupported option format: {fmt!r}")
        ver = doc.get("version", None)
        if ver != OPTIONS_VERSION:
            raise InvalidOptionError(f"Unsupported option version: {ver!r}")
        values = doc.get("options", None)
        if not isinstance(values, dict):
            raise InvalidOptionError("Invalid option document: missing 'options' object")
    else:
        values = doc

    return ParametrizationOptions.from_dict(values)
