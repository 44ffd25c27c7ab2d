# src/core/models.py — v1
"""Shared build models: ResolvedInput, StagingTree, OutputTree, BuildResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

# Sub-directories of a staging tree
STAGING_SOURCE_DIR = "source"
STAGING_OUT_DIR = "out"


class ResolvedInput(BaseModel):
    """A declared input bound to the path of its built artifact."""

    model_config = ConfigDict(frozen=True)

    label: str
    identity: str
    path: Path


@dataclass
class StagingTree:
    """Scratch area exclusively owned by one build.

    ``source_dir`` holds the unpacked source and is the working directory of
    phases; ``out_dir`` is the install prefix phases write into.
    """

    root: Path
    identity: str
    fetched_source: Path | None = None
    phases_run: list[str] = field(default_factory=list)

    @property
    def source_dir(self) -> Path:
        return self.root / STAGING_SOURCE_DIR

    @property
    def out_dir(self) -> Path:
        return self.root / STAGING_OUT_DIR

    def create(self) -> StagingTree:
        self.source_dir.mkdir(parents=True, exist_ok=True)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        return self


class OutputTree(BaseModel):
    """Final output of one identity."""

    identity: str
    root: Path
    files: list[str] = Field(default_factory=list)


@dataclass
class BuildResult:
    """Result of building one identity."""

    identity: str
    output: OutputTree
    inputs: dict[str, ResolvedInput] = field(default_factory=dict)
    phases_run: list[str] = field(default_factory=list)
    reused: bool = False
    duration_ms: int = 0

    @property
    def path(self) -> Path:
        return self.output.root
