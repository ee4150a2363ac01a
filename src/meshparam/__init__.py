"""
Planar mesh parametrization for spline fitting
"""

from .errors import (
    ParametrizationError,
    InvalidOptionError,
    NonManifoldVertexError,
    CornerSelectionError,
    SingularSystemError,
)
from .mesh_loader import MeshLoader, MeshData
from .halfedge_mesh import HalfedgeMesh, Halfedge
from .local_neighbourhood import LocalNeighbourhood
from .local_parametrization import LocalParametrization
from .neighbourhood import Neighbourhood, ParameterPoint, find_point_on_boundary
from .options import (
    BoundaryMethod,
    ParametrizationMethod,
    ParametrizationOptions,
    default_options,
    load_options,
    save_options,
)
from .parametrization import Parametrization, PeriodicParametrization
from .flat_mesh import FlatMesh
from .linear_solvers import SolveResult, solve
from .exporter import load_result, save_result, write_stl, write_textured_mesh

__all__ = [
    # Errors
    'ParametrizationError',
    'InvalidOptionError',
    'NonManifoldVertexError',
    'CornerSelectionError',
    'SingularSystemError',
    # Mesh loading
    'MeshLoader',
    'MeshData',
    'HalfedgeMesh',
    'Halfedge',
    # Local weights
    'LocalNeighbourhood',
    'LocalParametrization',
    'Neighbourhood',
    'ParameterPoint',
    'find_point_on_boundary',
    # Options
    'BoundaryMethod',
    'ParametrizationMethod',
    'ParametrizationOptions',
    'default_options',
    'load_options',
    'save_options',
    # Parametrization
    'Parametrization',
    'PeriodicParametrization',
    'FlatMesh',
    'SolveResult',
    'solve',
    # Export
    'save_result',
    'load_result',
    'write_stl',
    'write_textured_mesh',
]
