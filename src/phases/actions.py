# src/phases/actions.py — v1
"""Reusable phase actions.

Each factory returns a phase function taking a PhaseContext. Paths are
relative to the unpacked source; a ``$out/`` prefix targets the install
prefix instead. Paths never leave the staging tree.
"""

from __future__ import annotations

import glob
import os
import re
import shutil
import stat
from pathlib import Path
from typing import Any, Callable, Sequence

from recipekit.phases.base import PhaseContext

OUT_PREFIX = "$out"


def resolve_path(ctx: PhaseContext, path: str) -> Path:
    """Resolve an action path inside the staging tree."""
    if path == OUT_PREFIX or path.startswith(OUT_PREFIX + "/"):
        base = ctx.out
        rel = path[len(OUT_PREFIX):].lstrip("/")
    else:
        base = ctx.source_dir
        rel = path
    target = (base / rel).resolve()
    root = ctx.staging.root.resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Path {path!r} resolves outside the staging tree")
    return target


def _expand(ctx: PhaseContext, patterns: Sequence[str]) -> list[Path]:
    files: list[Path] = []
    for pattern in patterns:
        resolved = resolve_path(ctx, pattern)
        matches = sorted(glob.glob(str(resolved), recursive=True))
        if not matches:
            raise FileNotFoundError(f"No file matches {pattern!r}")
        files.extend(Path(m) for m in matches)
    return files


def substitute(
    files: str | Sequence[str], pattern: str, replacement: str
) -> Callable[[PhaseContext], None]:
    """Regex-replace ``pattern`` in every matching file.

    ``replacement`` may reference ``{out}``, ``{source}`` and
    ``{input[label]}``; it is formatted before substitution.
    """
    patterns = [files] if isinstance(files, str) else list(files)
    regex = re.compile(pattern, re.MULTILINE)

    def phase(ctx: PhaseContext) -> None:
        text = replacement.format(
            out=ctx.out,
            source=ctx.source_dir,
            input={label: str(ri.path) for label, ri in ctx.inputs.items()},
        )
        for path in _expand(ctx, patterns):
            content = path.read_text(encoding="utf-8")
            updated, count = regex.subn(lambda _m: text, content)
            if count == 0:
                ctx.logger.warning("substitute: no match for %r in %s", pattern, path)
                continue
            path.write_text(updated, encoding="utf-8")
            ctx.logger.info("substitute: %d replacement(s) in %s", count, path.name)

    return phase


def run(*args: str) -> Callable[[PhaseContext], None]:
    """Run a command in the source directory.

    Arguments are formatted with ``{out}`` and ``{source}``.
    """

    def phase(ctx: PhaseContext) -> None:
        argv = [a.format(out=ctx.out, source=ctx.source_dir) for a in args]
        ctx.run(argv)

    return phase


def chmod(files: str | Sequence[str], mode: int | str = 0o755) -> Callable[[PhaseContext], None]:
    """Set permissions on matching files (mode as int or octal string)."""
    patterns = [files] if isinstance(files, str) else list(files)
    bits = int(mode, 8) if isinstance(mode, str) else mode

    def phase(ctx: PhaseContext) -> None:
        for path in _expand(ctx, patterns):
            os.chmod(path, bits)

    return phase


def make_executable(files: str | Sequence[str]) -> Callable[[PhaseContext], None]:
    """Add the executable bits to matching files."""
    patterns = [files] if isinstance(files, str) else list(files)

    def phase(ctx: PhaseContext) -> None:
        for path in _expand(ctx, patterns):
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    return phase


def symlink(target: str, link: str) -> Callable[[PhaseContext], None]:
    """Create ``link`` pointing at ``target`` (relative targets kept as-is)."""

    def phase(ctx: PhaseContext) -> None:
        link_path = resolve_path(ctx, link)
        link_path.parent.mkdir(parents=True, exist_ok=True)
        if link_path.is_symlink() or link_path.exists():
            link_path.unlink()
        if target.startswith(OUT_PREFIX):
            link_path.symlink_to(os.path.relpath(resolve_path(ctx, target), link_path.parent))
        else:
            link_path.symlink_to(target)

    return phase


def remove(files: str | Sequence[str]) -> Callable[[PhaseContext], None]:
    """Delete matching files or directories."""
    patterns = [files] if isinstance(files, str) else list(files)

    def phase(ctx: PhaseContext) -> None:
        for path in _expand(ctx, patterns):
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()

    return phase


def copy(source: str, dest: str) -> Callable[[PhaseContext], None]:
    """Copy a file or directory within the staging tree."""

    def phase(ctx: PhaseContext) -> None:
        src = resolve_path(ctx, source)
        dst = resolve_path(ctx, dest)
        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dst)

    return phase


def mkdir(*paths: str) -> Callable[[PhaseContext], None]:
    """Create directories (parents included)."""

    def phase(ctx: PhaseContext) -> None:
        for p in paths:
            resolve_path(ctx, p).mkdir(parents=True, exist_ok=True)

    return phase


def noop(ctx: PhaseContext) -> None:
    """Phase that does nothing."""


ACTIONS: dict[str, Callable[..., Any]] = {
    "substitute": substitute,
    "run": run,
    "chmod": chmod,
    "make_executable": make_executable,
    "symlink": symlink,
    "remove": remove,
    "copy": copy,
    "mkdir": mkdir,
}
