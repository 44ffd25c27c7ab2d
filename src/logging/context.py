# src/logging/context.py — v1
"""Contextual logging support: attach build_id, recipe, phase to log records.

Context variables are task-local under asyncio, so concurrent builds of
different recipes each see their own values.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_build_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "build_id", default=None
)
_recipe: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "recipe", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    build_id: str | None = None
    recipe: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        build_id=_build_id.get(),
        recipe=_recipe.get(),
        phase=_phase.get(),
    )


def set_build_context(build_id: str, recipe: str) -> None:
    """Set build-level context (called once per recipe build)."""
    _build_id.set(build_id)
    _recipe.set(recipe)
    _phase.set(None)


def set_phase_context(phase: str | None) -> None:
    """Set phase-level context (called per phase execution)."""
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _build_id.set(None)
    _recipe.set(None)
    _phase.set(None)
