# src/resolver/graph.py — v1
"""Input graph: cycle detection and staged build plans.

The graph is built from the registry starting at one root recipe, so
unrelated broken recipes in the registry never affect a build.
Edges point from a recipe to each of its inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import networkx as nx

from recipekit.core.errors import CyclicDependencyError

if TYPE_CHECKING:
    from recipekit.recipe.models import Recipe
    from recipekit.recipe.registry import RecipeRegistry

logger = logging.getLogger(__name__)


@dataclass
class BuildPlan:
    """Ordered build plan for one root recipe.

    stages is a list of "levels": identities within the same level have no
    mutual dependencies and may build concurrently. Levels build in order,
    dependencies first.
    """

    root: str
    stages: list[list[str]] = field(default_factory=list)
    recipes: dict[str, Recipe] = field(default_factory=dict)

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering (no concurrency info)."""
        return [identity for stage in self.stages for identity in stage]

    @property
    def total(self) -> int:
        return sum(len(stage) for stage in self.stages)


def input_graph(registry: RecipeRegistry, root: Recipe) -> nx.DiGraph:
    """Build the graph of everything reachable from ``root``.

    Raises:
        UnresolvedInputError: If a reachable input is not registered.
    """
    graph = nx.DiGraph()
    graph.add_node(root.identity, recipe=root)
    pending = [root]
    while pending:
        recipe = pending.pop()
        for ref in recipe.inputs:
            dep = registry.resolve_ref(ref, requester=recipe)
            if dep.identity not in graph:
                graph.add_node(dep.identity, recipe=dep)
                pending.append(dep)
            graph.add_edge(recipe.identity, dep.identity, label=ref.key)
    return graph


def check_acyclic(graph: nx.DiGraph, root: str | None = None) -> None:
    """Raise CyclicDependencyError naming one cycle, if any."""
    try:
        edges = nx.find_cycle(graph, source=root)
    except nx.NetworkXNoCycle:
        return
    cycle = [u for u, _ in edges] + [edges[0][0]]
    raise CyclicDependencyError(cycle)


def build_plan(registry: RecipeRegistry, root: Recipe) -> BuildPlan:
    """Return a staged, dependencies-first plan for building ``root``.

    Raises:
        CyclicDependencyError: If the input graph has a cycle.
        UnresolvedInputError: If a reachable input is not registered.
    """
    graph = input_graph(registry, root)
    check_acyclic(graph, root.identity)

    # Reverse so that generations run from leaves (no inputs) to the root.
    stages = [sorted(gen) for gen in nx.topological_generations(graph.reverse(copy=False))]
    plan = BuildPlan(
        root=root.identity,
        stages=stages,
        recipes={node: data["recipe"] for node, data in graph.nodes(data=True)},
    )
    logger.info(
        "Build plan for %s: %d recipes in %d stages -> %s",
        root.identity,
        plan.total,
        len(plan.stages),
        plan.flat_order,
    )
    return plan
