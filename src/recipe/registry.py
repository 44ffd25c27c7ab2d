# src/recipe/registry.py — v1
"""Recipe registry: explicit, injected lookup of recipes by identity.

There is no ambient global registry; callers construct one, fill it
(manually or from manifest files) and pass it to the resolver and engine.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from recipekit.core.errors import UnresolvedInputError
from recipekit.recipe.models import InputRef, Recipe

logger = logging.getLogger(__name__)


def version_key(version: str) -> tuple[tuple[int, int | str], ...]:
    """Natural ordering key: numeric runs compare as numbers.

    Numbers sort above words so that '1.0' > '1.0rc1'.
    """
    parts = re.findall(r"\d+|[A-Za-z]+", version)
    return tuple((1, int(p)) if p.isdigit() else (0, p.lower()) for p in parts)


class RecipeRegistry:
    """Registry of all known recipes, keyed by (name, version)."""

    def __init__(self, recipes: Iterable[Recipe] = ()) -> None:
        self._recipes: dict[tuple[str, str], Recipe] = {}
        for recipe in recipes:
            self.register(recipe)

    def __len__(self) -> int:
        return len(self._recipes)

    def __contains__(self, identity: object) -> bool:
        if isinstance(identity, tuple):
            return identity in self._recipes
        if isinstance(identity, str):
            return self.get(*_split(identity)) is not None
        return False

    @property
    def identities(self) -> list[str]:
        """Return sorted list of registered identities."""
        return sorted(f"{n}@{v}" for n, v in self._recipes)

    def register(self, recipe: Recipe) -> None:
        """Register a recipe, replacing any recipe with the same identity."""
        if recipe.key in self._recipes:
            logger.warning("Overwriting existing recipe: %s", recipe.identity)
        self._recipes[recipe.key] = recipe

    def versions(self, name: str) -> list[str]:
        """Registered versions of ``name``, lowest first."""
        return sorted((v for n, v in self._recipes if n == name), key=version_key)

    def get(self, name: str, version: str | None = None) -> Recipe | None:
        """Get a recipe; without version, the highest registered version."""
        if version is not None:
            return self._recipes.get((name, version))
        versions = self.versions(name)
        if not versions:
            return None
        return self._recipes[(name, versions[-1])]

    def get_or_raise(
        self, name: str, version: str | None = None, requester: str | None = None
    ) -> Recipe:
        """Get a recipe, raise UnresolvedInputError if not registered."""
        recipe = self.get(name, version)
        if recipe is None:
            reference = f"{name}@{version}" if version else name
            raise UnresolvedInputError(reference, requester=requester)
        return recipe

    def resolve_ref(self, ref: InputRef, requester: Recipe | None = None) -> Recipe:
        """Look up the recipe an input reference points at."""
        return self.get_or_raise(
            ref.name, ref.version, requester=requester.identity if requester else None
        )

    def validate_inputs(self) -> list[str]:
        """Validate that every declared input is registered.

        Returns:
            List of error messages (empty if valid).
        """
        errors: list[str] = []
        for recipe in self._recipes.values():
            for ref in recipe.inputs:
                if self.get(ref.name, ref.version) is None:
                    errors.append(
                        f"Recipe '{recipe.identity}' requires '{ref}' which is not registered"
                    )
        return errors

    def dependency_map(self) -> dict[str, list[str]]:
        """Return identity -> list of resolved input identities.

        Unregistered inputs are kept under their reference string.
        """
        result: dict[str, list[str]] = {}
        for recipe in self._recipes.values():
            deps: list[str] = []
            for ref in recipe.inputs:
                dep = self.get(ref.name, ref.version)
                deps.append(dep.identity if dep is not None else str(ref))
            result[recipe.identity] = deps
        return result

    def load_manifests(self, paths: Iterable[Path]) -> int:
        """Load and register recipes from JSON manifest files.

        Returns:
            Number of recipes registered.
        """
        from recipekit.recipe.loader import load_manifest

        count = 0
        for path in paths:
            for recipe in load_manifest(Path(path)):
                self.register(recipe)
                count += 1
        logger.info("Registry loaded %d recipes (%d total)", count, len(self))
        return count


def _split(identity: str) -> tuple[str, str | None]:
    name, _, version = identity.partition("@")
    return name, version or None
