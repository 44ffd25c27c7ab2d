# src/engine/builder.py — v1
"""Build engine: resolve inputs, fetch, run phases, commit the output.

Per identity:
  1. Reuse a complete output from the store (when REUSE_OUTPUTS is on)
  2. Resolve inputs, building dependencies first
  3. Fetch the source into a scratch directory
  4. Run the phases in a fresh staging tree
  5. Apply the install-plan and atomically commit the output
  6. Discard staging and scratch directories, on success or failure

Every reachable recipe is checked (cycles, missing inputs, phase
overrides) before any build work starts.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

from recipekit.config.settings import Settings
from recipekit.core.models import BuildResult, OutputTree, ResolvedInput
from recipekit.install.applier import InstallPlanApplier
from recipekit.logging.context import set_build_context
from recipekit.logging.handlers import create_build_log_handler, hold_level
from recipekit.phases.executor import PhaseExecutor
from recipekit.phases.standard import standard_build_systems
from recipekit.resolver.graph import BuildPlan, build_plan
from recipekit.resolver.input_resolver import InputResolver
from recipekit.storage import layout
from recipekit.storage.output_store import OutputStore

if TYPE_CHECKING:
    from recipekit.fetch.base_fetcher import BaseFetcher
    from recipekit.phases.base import BasePhaseSequence
    from recipekit.recipe.models import Recipe
    from recipekit.recipe.registry import RecipeRegistry

logger = logging.getLogger(__name__)


class BuildEngine:
    """Build recipes from a registry into an output store.

    Args:
        registry: Recipes available as build roots and inputs.
        fetcher: Source fetcher collaborator.
        settings: Application settings.
        build_systems: Base phase sequences by name. Defaults to the
            standard catalog.
        executor: Phase executor override (tests, custom hosts).
        store: Output store override.
    """

    def __init__(
        self,
        registry: RecipeRegistry,
        fetcher: BaseFetcher,
        settings: Settings | None = None,
        build_systems: Mapping[str, BasePhaseSequence] | None = None,
        executor: PhaseExecutor | None = None,
        store: OutputStore | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._registry = registry
        self._fetcher = fetcher
        self._executor = executor or PhaseExecutor(
            build_systems if build_systems is not None else standard_build_systems(),
            self._settings,
        )
        self._store = store or OutputStore(
            self._settings.store_root, InstallPlanApplier(self._settings.install_mode)
        )
        self._resolver = InputResolver(registry, self._build_identity)
        self._slots = asyncio.Semaphore(self._settings.max_parallel_builds)
        self._results: dict[str, BuildResult] = {}

    @property
    def store(self) -> OutputStore:
        return self._store

    @property
    def results(self) -> dict[str, BuildResult]:
        """Results of every identity built or reused by this engine."""
        return dict(self._results)

    def plan(self, name: str, version: str | None = None) -> BuildPlan:
        """Check a build root and return its staged plan without building."""
        return self.check(self._registry.get_or_raise(name, version))

    def check(self, recipe: Recipe) -> BuildPlan:
        """Validate everything reachable from ``recipe``.

        Raises:
            CyclicDependencyError, UnresolvedInputError, PhaseOverrideError.
        """
        plan = build_plan(self._registry, recipe)
        for identity in plan.flat_order:
            self._executor.plan(plan.recipes[identity])
        return plan

    async def build(self, name: str, version: str | None = None) -> BuildResult:
        """Build the named recipe (highest version when none given)."""
        return await self.build_recipe(self._registry.get_or_raise(name, version))

    async def build_recipe(self, recipe: Recipe) -> BuildResult:
        """Build ``recipe`` and its inputs.

        Raises:
            RecipeKitError: Any validation, fetch, phase or install failure.
        """
        self.check(recipe)
        await self._resolver.artifact(recipe)
        return self._results[recipe.identity]

    async def _build_identity(self, recipe: Recipe) -> Path:
        """Build one identity; runs as a memoized resolver task."""
        build_id = uuid.uuid4().hex[:12]
        set_build_context(build_id, recipe.identity)
        start_ns = time.monotonic_ns()

        if self._settings.reuse_outputs:
            existing = self._store.lookup(recipe)
            if existing is not None:
                manifest = self._store.read_manifest(recipe)
                logger.info("Reusing existing output %s", existing.root)
                self._results[recipe.identity] = BuildResult(
                    identity=recipe.identity,
                    output=existing,
                    inputs={ri.label: ri for ri in manifest.inputs} if manifest else {},
                    phases_run=list(manifest.phases) if manifest else [],
                    reused=True,
                )
                return existing.root

        inputs = await self._resolver.resolve(recipe, check_cycles=False)

        log_handler = create_build_log_handler(
            layout.build_log_path(self._store.root, recipe.name, recipe.version), build_id
        )
        log_level = getattr(logging, self._settings.log_level, logging.INFO)
        log_handler.setLevel(log_level)
        root_logger = logging.getLogger("recipekit")
        root_logger.addHandler(log_handler)
        scratch = self._settings.staging_root / f".fetch-{recipe.name}-{recipe.version}-{build_id}"
        try:
            with hold_level(root_logger, log_level):
                async with self._slots:
                    logger.info("Building %s", recipe.identity)
                    output, phases_run = await self._run_build(recipe, inputs, scratch)
        except Exception as exc:
            logger.error("Build of %s failed: %s", recipe.identity, exc)
            raise
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
            root_logger.removeHandler(log_handler)
            log_handler.close()

        result = BuildResult(
            identity=recipe.identity,
            output=output,
            inputs=inputs,
            phases_run=phases_run,
            duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
        )
        self._results[recipe.identity] = result
        logger.info("Built %s in %dms -> %s", recipe.identity, result.duration_ms, output.root)
        return output.root

    async def _run_build(
        self, recipe: Recipe, inputs: dict[str, ResolvedInput], scratch: Path
    ) -> tuple[OutputTree, list[str]]:
        scratch.mkdir(parents=True, exist_ok=True)
        source = await self._fetcher.fetch(recipe.source, scratch, identity=recipe.identity)
        staging = await self._executor.run(recipe, inputs, source)
        try:
            output = await asyncio.to_thread(self._store.commit, recipe, staging, inputs)
        finally:
            self._executor.discard(staging)
        return output, list(staging.phases_run)
