# src/recipe/loader.py — v1
"""Load recipes from JSON manifest files.

A manifest holds one recipe object or a list of them. Phase functions are
given either as a standard action::

    {"op": "insert_after", "anchor": "unpack", "name": "fix-paths",
     "action": "substitute",
     "args": {"files": "bin/run.sh", "pattern": "/usr/lib", "replacement": "{out}/lib"}}

or as a dotted import path to a callable::

    {"op": "replace", "name": "check", "fn": "mychannel.phases.smoke_test"}

Computed sources name their derivation the same way. Relative patch paths
are resolved against the manifest's directory.
"""

from __future__ import annotations

import importlib
import json
import logging
from pathlib import Path
from typing import Any, Callable

import pydantic

from recipekit.core.errors import ValidationError
from recipekit.phases.actions import ACTIONS
from recipekit.recipe.models import Recipe

logger = logging.getLogger(__name__)


def load_manifest(path: Path) -> list[Recipe]:
    """Parse a manifest file into recipes.

    Raises:
        ValidationError: If the file is not valid JSON or a recipe is malformed.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON in {path}: {exc}") from exc

    items = data if isinstance(data, list) else [data]
    recipes = [recipe_from_dict(item, base_dir=path.parent) for item in items]
    logger.debug("Loaded %d recipes from %s", len(recipes), path)
    return recipes


def recipe_from_dict(data: dict[str, Any], base_dir: Path | None = None) -> Recipe:
    """Build a Recipe from plain manifest data.

    Raises:
        ValidationError: For malformed data, including field type errors.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"Recipe entry must be an object, got {type(data).__name__}")

    data = dict(data)
    identity = f"{data.get('name', '?')}@{data.get('version', '?')}"

    data["phases"] = [_phase_override(p, identity) for p in data.get("phases", [])]

    source = data.get("source")
    if isinstance(source, dict) and source.get("kind") == "computed":
        source = dict(source)
        source["derivation"] = import_callable(source.get("derivation", ""), identity)
        data["source"] = source

    if base_dir is not None and data.get("patches"):
        data["patches"] = [str((base_dir / p).resolve()) for p in data["patches"]]

    try:
        return Recipe(**data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid recipe: {exc}", identity=identity) from exc


def _phase_override(entry: dict[str, Any], identity: str) -> dict[str, Any]:
    if not isinstance(entry, dict):
        raise ValidationError(f"Phase override must be an object: {entry!r}", identity=identity)
    entry = dict(entry)
    action = entry.pop("action", None)
    args = entry.pop("args", None)

    if action is not None:
        factory = ACTIONS.get(action)
        if factory is None:
            raise ValidationError(
                f"Unknown phase action '{action}' (known: {sorted(ACTIONS)})",
                identity=identity,
            )
        try:
            if isinstance(args, dict):
                entry["fn"] = factory(**args)
            else:
                entry["fn"] = factory(*(args or []))
        except TypeError as exc:
            raise ValidationError(
                f"Bad arguments for phase action '{action}': {exc}", identity=identity
            ) from exc
    elif isinstance(entry.get("fn"), str):
        entry["fn"] = import_callable(entry["fn"], identity)

    return entry


def import_callable(dotted_path: str, identity: str | None = None) -> Callable[..., Any]:
    """Import a callable from a dotted path like 'pkg.module.func'."""
    parts = dotted_path.rsplit(".", 1)
    if len(parts) != 2:
        raise ValidationError(f"Invalid callable path: {dotted_path!r}", identity=identity)
    module_path, attr = parts

    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ValidationError(
            f"Cannot import module {module_path}: {exc}", identity=identity
        ) from exc

    fn = getattr(module, attr, None)
    if fn is None or not callable(fn):
        raise ValidationError(
            f"{attr} not found or not callable in {module_path}", identity=identity
        )
    return fn
