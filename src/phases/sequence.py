# src/phases/sequence.py — v1
"""Apply a recipe's phase overrides to a base phase sequence.

Overrides apply in declaration order, each against the sequence produced
by the previous ones, so a phase inserted earlier can anchor a later
override.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from recipekit.core.errors import PhaseOverrideError
from recipekit.phases.base import BasePhaseSequence, PhaseStep
from recipekit.recipe.models import Delete, InsertAfter, InsertBefore, Replace

if TYPE_CHECKING:
    from recipekit.recipe.models import PhaseOverride, Recipe

logger = logging.getLogger(__name__)


def _index_of(steps: list[PhaseStep], name: str) -> int:
    for idx, step in enumerate(steps):
        if step.name == name:
            return idx
    return -1


def apply_overrides(
    base: BasePhaseSequence,
    overrides: Sequence[PhaseOverride],
    recipe: Recipe | None = None,
) -> list[PhaseStep]:
    """Return the final ordered phase sequence.

    Args:
        base: Host-supplied base sequence.
        overrides: Overrides in declaration order.
        recipe: Owning recipe; when given, ``base`` must be its build system.

    Raises:
        PhaseOverrideError: Base sequence mismatch, missing anchor/name, or
            insertion of a name already in the sequence.
    """
    identity = recipe.identity if recipe is not None else None
    if recipe is not None and recipe.build_system != base.name:
        raise PhaseOverrideError(
            f"Overrides target build system '{recipe.build_system}'"
            f" but base sequence is '{base.name}'",
            identity=identity,
        )

    steps = base.steps()
    for override in overrides:
        names = [s.name for s in steps]

        if isinstance(override, (InsertAfter, InsertBefore)):
            anchor_idx = _index_of(steps, override.anchor)
            if anchor_idx < 0:
                raise PhaseOverrideError(
                    f"{override.op}: anchor phase '{override.anchor}' not in {names}",
                    identity=identity,
                )
            if _index_of(steps, override.name) >= 0:
                raise PhaseOverrideError(
                    f"{override.op}: phase '{override.name}' already in {names}",
                    identity=identity,
                )
            at = anchor_idx + 1 if isinstance(override, InsertAfter) else anchor_idx
            steps.insert(at, PhaseStep(name=override.name, fn=override.fn, overridden=True))

        elif isinstance(override, (Replace, Delete)):
            idx = _index_of(steps, override.name)
            if idx < 0:
                raise PhaseOverrideError(
                    f"{override.op}: phase '{override.name}' not in {names}",
                    identity=identity,
                )
            if isinstance(override, Replace):
                steps[idx] = PhaseStep(name=override.name, fn=override.fn, overridden=True)
            else:
                del steps[idx]

        else:
            raise PhaseOverrideError(
                f"Unknown phase override {override!r}", identity=identity
            )

    logger.debug(
        "Phases for %s (%s): %s",
        identity or "<anonymous>",
        base.name,
        [s.name for s in steps],
    )
    return steps
