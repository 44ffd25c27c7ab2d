# src/phases/executor.py — v1
"""Phase executor: run a recipe's ordered phases in a fresh staging tree.

Phases run strictly in order. The first failure aborts the remaining
phases, discards the staging tree and raises PhaseExecutionError naming
the phase. There is no retry: builds are deterministic.

Sync phase functions run in a worker thread so that concurrent builds of
other recipes keep progressing; coroutine phase functions are awaited.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

from recipekit.core.errors import PhaseExecutionError, PhaseOverrideError
from recipekit.core.models import ResolvedInput, StagingTree
from recipekit.logging.context import set_phase_context
from recipekit.phases.base import BasePhaseSequence, PhaseContext, PhaseStep
from recipekit.phases.sequence import apply_overrides

if TYPE_CHECKING:
    from recipekit.config.settings import Settings
    from recipekit.recipe.models import Recipe

logger = logging.getLogger(__name__)


class PhaseExecutor:
    """Execute recipe phases against an exclusively owned staging tree.

    Args:
        build_systems: Base phase sequences by name (host-supplied catalog).
        settings: Application settings (staging root, debug retention).
    """

    def __init__(
        self,
        build_systems: Mapping[str, BasePhaseSequence],
        settings: Settings | None = None,
    ) -> None:
        self._build_systems = dict(build_systems)
        self._settings = settings

    @property
    def build_system_names(self) -> list[str]:
        return sorted(self._build_systems)

    def base_for(self, recipe: Recipe) -> BasePhaseSequence:
        base = self._build_systems.get(recipe.build_system)
        if base is None:
            raise PhaseOverrideError(
                f"Unknown build system '{recipe.build_system}'"
                f" (known: {self.build_system_names})",
                identity=recipe.identity,
            )
        return base

    def plan(self, recipe: Recipe) -> list[PhaseStep]:
        """Return the final ordered phase sequence for ``recipe``."""
        return apply_overrides(self.base_for(recipe), recipe.phases, recipe=recipe)

    def create_staging(self, recipe: Recipe) -> StagingTree:
        root_dir = None
        if self._settings is not None:
            root_dir = self._settings.staging_root
            root_dir.mkdir(parents=True, exist_ok=True)
        root = Path(
            tempfile.mkdtemp(prefix=f"{recipe.name}-{recipe.version}-", dir=root_dir)
        )
        return StagingTree(root=root, identity=recipe.identity).create()

    async def run(
        self,
        recipe: Recipe,
        resolved_inputs: Mapping[str, ResolvedInput],
        source_path: Path | None = None,
    ) -> StagingTree:
        """Run all phases of ``recipe``.

        Args:
            recipe: Recipe to build.
            resolved_inputs: label -> ResolvedInput for every declared input.
            source_path: Fetched source (archive, file or directory), if any.

        Returns:
            The phase-mutated StagingTree; the caller owns and discards it.

        Raises:
            PhaseOverrideError: If the overrides do not fit the base sequence.
            PhaseExecutionError: If a phase fails.
        """
        steps = self.plan(recipe)
        staging = self.create_staging(recipe)
        staging.fetched_source = source_path
        arguments = copy.deepcopy(dict(recipe.arguments))
        start_ns = time.monotonic_ns()

        logger.info(
            "Running %d phases for %s: %s",
            len(steps),
            recipe.identity,
            [s.name for s in steps],
        )

        try:
            for idx, step in enumerate(steps):
                set_phase_context(step.name)
                ctx = PhaseContext(
                    recipe=recipe,
                    staging=staging,
                    inputs=dict(resolved_inputs),
                    settings=self._settings,
                    phase=step.name,
                    arguments=arguments,
                )
                logger.debug(
                    "Phase %d/%d '%s'%s",
                    idx + 1,
                    len(steps),
                    step.name,
                    " (overridden)" if step.overridden else "",
                )
                try:
                    await _call_phase(step, ctx)
                except asyncio.CancelledError:
                    logger.warning("Build cancelled during phase '%s'", step.name)
                    self.discard(staging)
                    raise
                except Exception as exc:
                    logger.error("Phase '%s' failed: %s", step.name, exc)
                    if self._keep_failed():
                        logger.warning("Keeping failed staging tree %s", staging.root)
                    else:
                        self.discard(staging)
                    raise PhaseExecutionError(recipe.identity, step.name, exc) from exc
                staging.phases_run.append(step.name)
        finally:
            set_phase_context(None)

        logger.info(
            "Phases complete for %s in %dms",
            recipe.identity,
            (time.monotonic_ns() - start_ns) // 1_000_000,
        )
        return staging

    def discard(self, staging: StagingTree) -> None:
        """Remove a staging tree."""
        if staging.root.exists():
            shutil.rmtree(staging.root, ignore_errors=True)
            logger.debug("Discarded staging tree %s", staging.root)

    def _keep_failed(self) -> bool:
        return self._settings is not None and self._settings.keep_failed_staging


async def _call_phase(step: PhaseStep, ctx: PhaseContext) -> None:
    if inspect.iscoroutinefunction(step.fn):
        await step.fn(ctx)
        return
    result = await asyncio.to_thread(step.fn, ctx)
    if inspect.isawaitable(result):
        await result
