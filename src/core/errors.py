# src/core/errors.py — v1
"""Error taxonomy for recipe validation, resolution, execution and install.

Every error aborts the current build and propagates to the caller. Errors
carry the recipe identity (``name@version``) when one is known, and the
phase name for phase failures.
"""

from __future__ import annotations


class RecipeKitError(Exception):
    """Base class for all recipekit errors."""

    def __init__(self, message: str, identity: str | None = None) -> None:
        self.identity = identity
        if identity:
            message = f"{identity}: {message}"
        super().__init__(message)


class ValidationError(RecipeKitError):
    """Malformed recipe. Not retryable."""


class PhaseOverrideError(ValidationError):
    """Phase override references a phase missing from the sequence."""


class FetchError(RecipeKitError):
    """Source could not be fetched or its checksum does not match."""


class CyclicDependencyError(RecipeKitError):
    """The input graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}")


class UnresolvedInputError(RecipeKitError):
    """A declared input is not registered or could not be built.

    When a dependency build failed, ``cause`` holds its error (also the
    ``__cause__``), so the failing phase stays reachable.
    """

    def __init__(
        self,
        reference: str,
        requester: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.reference = reference
        self.requester = requester
        self.cause = cause
        if cause is not None:
            message = f"Input '{reference}' required by {requester} could not be built: {cause}"
        elif requester:
            message = f"Input '{reference}' required by {requester} is not registered"
        else:
            message = f"Recipe '{reference}' is not registered"
        super().__init__(message)


class PhaseExecutionError(RecipeKitError):
    """A build phase failed. Wraps the underlying cause."""

    def __init__(self, identity: str, phase: str, cause: BaseException) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(
            f"Phase '{phase}' failed: {type(cause).__name__}: {cause}",
            identity=identity,
        )


class InstallPlanError(RecipeKitError):
    """Install-plan entry would read or write outside its root."""
