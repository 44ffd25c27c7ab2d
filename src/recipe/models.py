# src/recipe/models.py — v1
"""Recipe domain models: Recipe, SourceRef, InputRef, PhaseOverride, InstallEntry.

All models are frozen. Structural rules are checked at construction and
raise recipekit.core.errors.ValidationError, which pydantic lets through
unwrapped because it is not a ValueError.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import TYPE_CHECKING, Annotated, Any, Callable, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recipekit.core.errors import ValidationError

if TYPE_CHECKING:
    from recipekit.phases.base import BasePhaseSequence

_FROZEN = ConfigDict(frozen=True, arbitrary_types_allowed=True)

_CHECKSUM_RE = re.compile(r"^(sha256:)?[0-9a-f]{64}$")
_NAME_FORBIDDEN = re.compile(r"[/@\s]")

PhaseFn = Callable[..., Any]


def _require_text(value: str, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{what} must be a non-empty string")
    return value.strip()


def _normalize_checksum(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    if not _CHECKSUM_RE.match(value):
        raise ValidationError(f"Invalid sha256 checksum: {value!r}")
    return value.removeprefix("sha256:")


def _relative_parts(path: str, what: str) -> PurePosixPath:
    """Normalize a plan path; leading '/' means relative to the root."""
    pure = PurePosixPath(path.lstrip("/") or ".")
    if ".." in pure.parts:
        raise ValidationError(f"{what} {path!r} escapes its root")
    return pure


# --- Sources ---


class UrlFetch(BaseModel):
    """Archive or file fetched from a URL."""

    model_config = _FROZEN

    kind: Literal["url"] = "url"
    url: str
    checksum: str | None = None
    file_name: str | None = None

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        return _require_text(v, "Source url")

    @field_validator("checksum")
    @classmethod
    def _checksum(cls, v: str | None) -> str | None:
        return _normalize_checksum(v)

    @property
    def basename(self) -> str:
        if self.file_name:
            return self.file_name
        return self.url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1] or "source"


class GitFetch(BaseModel):
    """Checkout of a git repository pinned to a commit."""

    model_config = _FROZEN

    kind: Literal["git"] = "git"
    url: str
    commit: str
    checksum: str | None = None

    @field_validator("url", "commit")
    @classmethod
    def _text(cls, v: str) -> str:
        return _require_text(v, "Git url/commit")

    @field_validator("checksum")
    @classmethod
    def _checksum(cls, v: str | None) -> str | None:
        return _normalize_checksum(v)

    @property
    def repo_name(self) -> str:
        name = self.url.rstrip("/").rsplit("/", 1)[-1]
        return name.removesuffix(".git") or "repo"


class Computed(BaseModel):
    """Source produced locally by a derivation function.

    The derivation is called with the destination directory and must
    populate it.
    """

    model_config = _FROZEN

    kind: Literal["computed"] = "computed"
    derivation: Callable[..., Any]
    checksum: str | None = None

    @field_validator("checksum")
    @classmethod
    def _checksum(cls, v: str | None) -> str | None:
        return _normalize_checksum(v)


class NoSource(BaseModel):
    """No source: meta packages aggregating their inputs."""

    model_config = _FROZEN

    kind: Literal["none"] = "none"


SourceRef = Annotated[
    Union[UrlFetch, GitFetch, Computed, NoSource], Field(discriminator="kind")
]


# --- Inputs ---


class InputRef(BaseModel):
    """Reference to a dependency recipe, optionally labelled and pinned."""

    model_config = _FROZEN

    name: str
    version: str | None = None
    label: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _require_text(v, "Input name")

    @property
    def key(self) -> str:
        """Label under which the resolved artifact is exposed to phases."""
        return self.label or self.name

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name

    @classmethod
    def parse(cls, spec: str) -> InputRef:
        """Parse ``label=name@version`` shorthand (label and version optional)."""
        label = None
        if "=" in spec:
            label, spec = spec.split("=", 1)
        name, _, version = spec.partition("@")
        return cls(name=name, version=version or None, label=label or None)


# --- Phase overrides ---


class _NamedPhase(BaseModel):
    model_config = _FROZEN

    name: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _require_text(v, "Phase name")


class InsertAfter(_NamedPhase):
    op: Literal["insert_after"] = "insert_after"
    anchor: str
    fn: PhaseFn

    @field_validator("anchor")
    @classmethod
    def _anchor(cls, v: str) -> str:
        return _require_text(v, "Phase anchor")


class InsertBefore(_NamedPhase):
    op: Literal["insert_before"] = "insert_before"
    anchor: str
    fn: PhaseFn

    @field_validator("anchor")
    @classmethod
    def _anchor(cls, v: str) -> str:
        return _require_text(v, "Phase anchor")


class Replace(_NamedPhase):
    op: Literal["replace"] = "replace"
    fn: PhaseFn


class Delete(_NamedPhase):
    op: Literal["delete"] = "delete"


PhaseOverride = Annotated[
    Union[InsertAfter, InsertBefore, Replace, Delete], Field(discriminator="op")
]


# --- Install plan ---


class InstallEntry(BaseModel):
    """Declarative mapping of staged files to an output sub-directory.

    ``source`` ending in '/' copies the directory contents; a directory
    without the slash is copied as a whole; a file is copied into ``dest``.
    """

    model_config = _FROZEN

    source: str
    dest: str = ""
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    include_regex: tuple[str, ...] = ()
    exclude_regex: tuple[str, ...] = ()

    @field_validator("include", "exclude", "include_regex", "exclude_regex", mode="before")
    @classmethod
    def _as_tuple(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v

    @field_validator("include_regex", "exclude_regex")
    @classmethod
    def _compiles(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValidationError(f"Invalid regex {pattern!r}: {exc}") from exc
        return v

    @field_validator("source")
    @classmethod
    def _source(cls, v: str) -> str:
        if v.startswith("/"):
            raise ValidationError(f"Install source {v!r} must be relative")
        _relative_parts(v, "Install source")
        return v

    @field_validator("dest")
    @classmethod
    def _dest(cls, v: str) -> str:
        return _relative_parts(v, "Install destination").as_posix()

    @property
    def copies_contents(self) -> bool:
        return self.source in ("", ".", "./") or self.source.endswith("/")

    @property
    def source_path(self) -> PurePosixPath:
        return PurePosixPath(self.source or ".")

    @property
    def has_filters(self) -> bool:
        return bool(self.include or self.include_regex)


# --- Recipe ---


class Recipe(BaseModel):
    """Immutable description of one installable unit.

    Identity is (name, version). ``build_system`` names the base phase
    sequence the ``phases`` overrides apply to.
    """

    model_config = _FROZEN

    name: str
    version: str
    source: SourceRef = Field(default_factory=NoSource)
    inputs: tuple[InputRef, ...] = ()
    build_system: str = "gnu"
    phases: tuple[PhaseOverride, ...] = ()
    install_plan: tuple[InstallEntry, ...] = ()
    arguments: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    patches: tuple[str, ...] = ()
    synopsis: str = ""
    home_page: str = ""
    license: str = ""

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = _require_text(v, "Recipe name")
        if _NAME_FORBIDDEN.search(v):
            raise ValidationError(f"Recipe name {v!r} contains '/', '@' or whitespace")
        return v

    @field_validator("version")
    @classmethod
    def _version(cls, v: str) -> str:
        v = _require_text(v, "Recipe version")
        if "/" in v:
            raise ValidationError(f"Recipe version {v!r} contains '/'")
        return v

    @field_validator("build_system")
    @classmethod
    def _build_system(cls, v: str) -> str:
        return _require_text(v, "Build system")

    @field_validator("inputs", mode="before")
    @classmethod
    def _parse_inputs(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(InputRef.parse(i) if isinstance(i, str) else i for i in v)
        return v

    @field_validator("arguments", mode="before")
    @classmethod
    def _copy_arguments(cls, v: Any) -> Any:
        return dict(v) if v is not None else {}

    @field_validator("arguments")
    @classmethod
    def _freeze_arguments(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    @model_validator(mode="after")
    def _unique_labels(self) -> Recipe:
        seen: set[str] = set()
        for ref in self.inputs:
            if ref.key in seen:
                raise ValidationError(
                    f"Duplicate input label {ref.key!r}", identity=self.identity
                )
            seen.add(ref.key)
        return self

    @property
    def identity(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    def check_phases(self, base: BasePhaseSequence) -> list[str]:
        """Simulate the overrides against ``base``; return final phase names.

        Raises:
            PhaseOverrideError: If ``base`` is not this recipe's build system
                or an override references a missing phase.
        """
        from recipekit.phases.sequence import apply_overrides

        return [step.name for step in apply_overrides(base, self.phases, recipe=self)]
