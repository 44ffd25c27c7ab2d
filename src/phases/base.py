# src/phases/base.py — v1
"""Phase primitives: base phase sequences, resolved steps, phase context."""

from __future__ import annotations

import copy
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from recipekit.core.errors import ValidationError

if TYPE_CHECKING:
    from recipekit.config.settings import Settings
    from recipekit.core.models import ResolvedInput, StagingTree
    from recipekit.recipe.models import Recipe

logger = logging.getLogger(__name__)

PhaseFn = Callable[..., Any]


@dataclass(frozen=True)
class PhaseStep:
    """One entry of a final, ordered phase sequence."""

    name: str
    fn: PhaseFn
    overridden: bool = False


@dataclass(frozen=True)
class BasePhaseSequence:
    """Named, ordered list of (phase name, default function) pairs.

    Supplied by the host; recipes only override relative to it.
    """

    name: str
    phases: tuple[tuple[str, PhaseFn], ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Base phase sequence needs a name")
        names = [n for n, _ in self.phases]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError(
                f"Base phase sequence '{self.name}' repeats phases: {duplicates}"
            )

    @classmethod
    def of(cls, name: str, phases: Sequence[tuple[str, PhaseFn]]) -> BasePhaseSequence:
        return cls(name=name, phases=tuple(phases))

    @property
    def names(self) -> list[str]:
        return [n for n, _ in self.phases]

    def steps(self) -> list[PhaseStep]:
        return [PhaseStep(name=n, fn=fn) for n, fn in self.phases]


@dataclass
class PhaseContext:
    """Everything a phase function may use.

    Phases mutate ``staging`` in place; they must not touch other builds'
    trees or the final output tree. ``arguments`` is a private copy of the
    recipe's arguments: phases of one build may share changes through it,
    the recipe itself never changes.
    """

    recipe: Recipe
    staging: StagingTree
    inputs: Mapping[str, ResolvedInput] = field(default_factory=dict)
    settings: Settings | None = None
    phase: str = ""
    arguments: dict[str, Any] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.arguments is None:
            self.arguments = copy.deepcopy(dict(self.recipe.arguments))

    @property
    def identity(self) -> str:
        return self.recipe.identity

    @property
    def source_dir(self) -> Path:
        return self.staging.source_dir

    @property
    def out(self) -> Path:
        return self.staging.out_dir

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"recipekit.phase.{self.phase or 'unknown'}")

    def input_path(self, label: str) -> Path:
        """Return the artifact path of input ``label``."""
        try:
            return self.inputs[label].path
        except KeyError:
            raise KeyError(
                f"{self.identity} has no input labelled '{label}'"
                f" (known: {sorted(self.inputs)})"
            ) from None

    def environment(self) -> dict[str, str]:
        """Process environment with input bin/ dirs prepended to PATH."""
        env = dict(os.environ)
        bins = [
            str(ri.path / "bin")
            for ri in self.inputs.values()
            if (ri.path / "bin").is_dir()
        ]
        if bins:
            env["PATH"] = os.pathsep.join(bins + [env.get("PATH", "")])
        env["out"] = str(self.out)
        return env

    def run(self, args: Sequence[str], cwd: Path | None = None) -> str:
        """Run a command in the source directory; non-zero exit raises.

        Returns:
            Combined stdout/stderr of the command.
        """
        workdir = cwd or self.source_dir
        logger.debug("Running %s in %s", list(args), workdir)
        proc = subprocess.run(
            list(args),
            cwd=str(workdir),
            env=self.environment(),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
        if proc.stdout:
            for line in proc.stdout.splitlines():
                self.logger.debug("%s", line)
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode, list(args), output=proc.stdout
            )
        return proc.stdout
