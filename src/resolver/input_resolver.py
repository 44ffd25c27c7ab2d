# src/resolver/input_resolver.py — v1
"""Input resolver: bind a recipe's declared inputs to built artifact paths.

Inputs are resolved depth-first: each dependency's own inputs are
resolved (and the dependency built) before the dependency's path is
returned. Builds are memoized per (name, version) as asyncio tasks, so a
dependency shared by several recipes builds once and concurrent requesters
await the same task. A failed build is evicted once it finishes: waiters
already attached see its error, later requests build again. A dependent
sees a failed dependency as an UnresolvedInputError chained to the error.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from recipekit.core.errors import CyclicDependencyError, RecipeKitError, UnresolvedInputError
from recipekit.core.models import ResolvedInput
from recipekit.resolver.graph import check_acyclic, input_graph

if TYPE_CHECKING:
    from recipekit.recipe.models import Recipe
    from recipekit.recipe.registry import RecipeRegistry

logger = logging.getLogger(__name__)

BuildFn = Callable[["Recipe"], Awaitable[Path]]


class InputResolver:
    """Resolve inputs against a registry, building dependencies on demand.

    Args:
        registry: Registry used to look up input references.
        build_fn: Coroutine function building one recipe (whose inputs are
            already resolvable) and returning its artifact path.
    """

    def __init__(self, registry: RecipeRegistry, build_fn: BuildFn) -> None:
        self._registry = registry
        self._build_fn = build_fn
        self._tasks: dict[tuple[str, str], asyncio.Task[Path]] = {}

    @property
    def in_flight(self) -> list[str]:
        """Identities with a build task that has not finished yet."""
        return sorted(f"{n}@{v}" for (n, v), t in self._tasks.items() if not t.done())

    async def resolve(
        self, recipe: Recipe, check_cycles: bool = True
    ) -> dict[str, ResolvedInput]:
        """Resolve every declared input of ``recipe``.

        Returns:
            label -> ResolvedInput, in declaration order.

        Raises:
            CyclicDependencyError: If the input graph has a cycle.
            UnresolvedInputError: If an input is not registered, or its build
                failed (the build error is chained as the cause).
        """
        if check_cycles:
            check_acyclic(input_graph(self._registry, recipe), recipe.identity)

        deps = [self._registry.resolve_ref(ref, requester=recipe) for ref in recipe.inputs]
        if not deps:
            return {}

        logger.debug(
            "Resolving %d inputs of %s: %s",
            len(deps),
            recipe.identity,
            [d.identity for d in deps],
        )
        results = await asyncio.gather(
            *(self.artifact(dep) for dep in deps), return_exceptions=True
        )
        for ref, result in zip(recipe.inputs, results):
            if isinstance(result, BaseException):
                if isinstance(result, CyclicDependencyError) or not isinstance(
                    result, RecipeKitError
                ):
                    raise result
                logger.error("Input %s of %s failed to build", ref, recipe.identity)
                raise UnresolvedInputError(
                    str(ref), requester=recipe.identity, cause=result
                ) from result
        paths = list(results)

        return {
            ref.key: ResolvedInput(label=ref.key, identity=dep.identity, path=path)
            for ref, dep, path in zip(recipe.inputs, deps, paths)
        }

    async def artifact(self, recipe: Recipe) -> Path:
        """Return the artifact path of ``recipe``, building it at most once."""
        task = self._tasks.get(recipe.key)
        if task is None:
            logger.debug("Scheduling build of %s", recipe.identity)
            task = asyncio.ensure_future(self._build_fn(recipe))
            self._tasks[recipe.key] = task
            task.add_done_callback(lambda t, key=recipe.key: self._on_done(key, t))
        else:
            logger.debug("Joining existing build of %s", recipe.identity)
        # Shield: a cancelled requester must not cancel a build others await.
        return await asyncio.shield(task)

    def _on_done(self, key: tuple[str, str], task: asyncio.Task[Path]) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._tasks.get(key) is task:
                del self._tasks[key]
