# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides isolated settings, registries, fetchers, staging trees and small
recipe factories. No network access; every path lives under tmp_path.
"""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Callable

import pytest

from recipekit.config.settings import Settings
from recipekit.core.models import StagingTree
from recipekit.fetch.mirror_fetcher import MirrorFetcher
from recipekit.logging.context import clear_context
from recipekit.phases.base import BasePhaseSequence, PhaseContext
from recipekit.recipe.models import Recipe
from recipekit.recipe.registry import RecipeRegistry


# === FIXTURES: Settings / collaborators ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp directory, ignoring any .env file."""
    return Settings(
        _env_file=None,
        store_root=tmp_path / "store",
        staging_root=tmp_path / "staging",
        mirror_root=tmp_path / "mirror",
        run_tests=False,
    )


@pytest.fixture
def registry() -> RecipeRegistry:
    return RecipeRegistry()


@pytest.fixture
def fetcher(settings: Settings) -> MirrorFetcher:
    settings.mirror_root.mkdir(parents=True, exist_ok=True)
    return MirrorFetcher(settings.mirror_root)


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


# === FIXTURES: Phases ===


@pytest.fixture
def phase_log() -> list[str]:
    """Records the names of phases as they run."""
    return []


@pytest.fixture
def recording_phase(phase_log: list[str]) -> Callable[[str], Callable[[PhaseContext], None]]:
    """Factory of phase functions that append their tag to phase_log."""

    def make(tag: str) -> Callable[[PhaseContext], None]:
        def phase(ctx: PhaseContext) -> None:
            phase_log.append(tag)

        return phase

    return make


@pytest.fixture
def simple_base(recording_phase) -> BasePhaseSequence:
    """Base sequence [unpack, configure, build, install] of recording phases."""
    return BasePhaseSequence.of(
        "simple",
        [(name, recording_phase(name)) for name in ("unpack", "configure", "build", "install")],
    )


# === FIXTURES: Recipes / staging ===


@pytest.fixture
def make_recipe() -> Callable[..., Recipe]:
    """Recipe factory with a 'simple' build system default."""

    def make(name: str, version: str = "1.0", **kwargs) -> Recipe:
        kwargs.setdefault("build_system", "simple")
        return Recipe(name=name, version=version, **kwargs)

    return make


@pytest.fixture
def staging(tmp_path: Path) -> StagingTree:
    return StagingTree(root=tmp_path / "staging-tree", identity="pkg@1.0").create()


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str]], Path]:
    """Write {relative path: content} under a root directory."""

    def write(root: Path, files: dict[str, str]) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return write


@pytest.fixture
def make_tarball() -> Callable[[Path, dict[str, str]], Path]:
    """Create a .tar.gz at the given path with {member name: content}."""

    def make(path: Path, members: dict[str, str]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(path, "w:gz") as tf:
            for name, content in members.items():
                data = content.encode("utf-8")
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755 if name.endswith(".sh") else 0o644
                tf.addfile(info, io.BytesIO(data))
        return path

    return make
