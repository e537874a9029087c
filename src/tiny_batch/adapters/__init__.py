"""TransformAdapter implementations."""

from .tinypng import TinyPngAdapter

__all__ = ["TinyPngAdapter"]
