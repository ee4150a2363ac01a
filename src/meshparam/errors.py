"""
Exceptions raised by the parametrization engine.

Every fatal condition aborts the current parametrization call; nothing is
retried.
"""

from __future__ import annotations


class ParametrizationError(RuntimeError):
    pass


class InvalidOptionError(ParametrizationError, ValueError):
    """Option value outside its enumerated or numeric range."""


class NonManifoldVertexError(ParametrizationError):
    """The half-edges around a vertex do not form a single fan."""

    def __init__(self, vertex_index: int, message: str = ""):
        self.vertex_index = int(vertex_index)
        text = message or "half-edges do not form a single fan"
        super().__init__(f"Non-manifold vertex {self.vertex_index}: {text}")


class CornerSelectionError(ParametrizationError):
    """Fewer than 4 boundary corners could be selected."""


class SingularSystemError(ParametrizationError):
    """The assembled linear system is singular or numerically close to it."""
