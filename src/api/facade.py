# src/api/facade.py — v1
"""Public API facade: single entry point for building a recipe.

Usage:
    from recipekit.api.facade import build
    result = await build("hello", manifests=[Path("channel/hello.json")])
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping

from recipekit.config.settings import Settings
from recipekit.engine.builder import BuildEngine
from recipekit.fetch.fetcher_factory import create_fetcher
from recipekit.logging.logger import setup_logging
from recipekit.recipe.registry import RecipeRegistry

if TYPE_CHECKING:
    from recipekit.core.models import BuildResult
    from recipekit.fetch.base_fetcher import BaseFetcher
    from recipekit.phases.base import BasePhaseSequence

logger = logging.getLogger(__name__)


async def build(
    name: str,
    version: str | None = None,
    *,
    registry: RecipeRegistry | None = None,
    manifests: Iterable[Path] = (),
    settings: Settings | None = None,
    fetcher: BaseFetcher | None = None,
    build_systems: Mapping[str, BasePhaseSequence] | None = None,
    configure_logging: bool = False,
) -> BuildResult:
    """Build one recipe end-to-end and return its BuildResult.

    Args:
        name: Recipe name.
        version: Recipe version; highest registered when None.
        registry: Registry to build from. A new one when None.
        manifests: JSON manifests loaded into the registry first.
        settings: Global settings. Loaded from .env if None.
        fetcher: Source fetcher. Built from settings if None.
        build_systems: Base phase sequences. Standard catalog if None.
        configure_logging: Apply the settings' logging configuration.

    Raises:
        RecipeKitError: Validation, resolution, fetch, phase or install failure.
    """
    settings = settings or Settings()
    if configure_logging:
        setup_logging(
            level=settings.log_level,
            log_format=settings.log_format,
            log_file=str(settings.log_file) if settings.log_file else None,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
        )

    registry = registry if registry is not None else RecipeRegistry()
    manifests = list(manifests)
    if manifests:
        registry.load_manifests(manifests)
    for problem in registry.validate_inputs():
        logger.warning("%s", problem)

    engine = BuildEngine(
        registry,
        fetcher or create_fetcher(settings),
        settings=settings,
        build_systems=build_systems,
    )
    return await engine.build(name, version)


def build_sync(name: str, version: str | None = None, **kwargs: object) -> BuildResult:
    """Blocking wrapper around build()."""
    return asyncio.run(build(name, version, **kwargs))  # type: ignore[arg-type]
