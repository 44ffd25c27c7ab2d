"""recipekit: declarative package recipes and their build-phase engine."""

from recipekit.version import __version__

__all__ = ["__version__"]
