# src/install/applier.py — v1
"""Install-plan applier: copy or link staged files into an output tree.

Entries are processed in declaration order; when two entries write the
same destination the last one wins; a path one entry installs as a file
and another as a directory is an error. Nothing may be read from outside
the staging base or written outside the output root.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Iterator, Literal, Sequence

from recipekit.core.errors import InstallPlanError
from recipekit.core.models import OutputTree, StagingTree
from recipekit.recipe.models import InstallEntry

logger = logging.getLogger(__name__)

InstallMode = Literal["copy", "symlink"]


def staging_base(staging: StagingTree) -> Path:
    """Directory the install-plan reads from.

    The install prefix when phases installed anything, else the unpacked
    source (copy-style builds select files straight from the source).
    """
    if staging.out_dir.is_dir() and any(staging.out_dir.iterdir()):
        return staging.out_dir
    return staging.source_dir


def _is_within(child: Path, parent: Path) -> bool:
    return child == parent or parent in child.parents


def _walk(root: Path) -> Iterator[Path]:
    """Yield files and symlinks under ``root`` in sorted order."""
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        links = [d for d in dirnames if (current / d).is_symlink()]
        dirnames[:] = sorted(d for d in dirnames if d not in links)
        for name in sorted(filenames + links):
            yield current / name


def _matches(rel: str, globs: Sequence[str], regexes: Sequence[str]) -> bool:
    name = rel.rsplit("/", 1)[-1]
    if any(fnmatch.fnmatchcase(name, g) or fnmatch.fnmatchcase(rel, g) for g in globs):
        return True
    return any(re.search(r, rel) for r in regexes)


def selected(entry: InstallEntry, rel: str) -> bool:
    """Apply an entry's include/exclude filters to a relative sub-path."""
    if entry.has_filters and not _matches(rel, entry.include, entry.include_regex):
        return False
    return not _matches(rel, entry.exclude, entry.exclude_regex)


def _describe(entry: InstallEntry) -> str:
    return f"{entry.source or '.'!r} -> {entry.dest!r}"


def _check_conflict(
    entry: InstallEntry,
    rel_dest: str,
    owners: dict[str, InstallEntry],
    identity: str | None,
) -> None:
    """Reject a destination that is a file and a directory at once.

    Equal destinations are fine (the last entry wins); a file installed
    where another entry already placed files below it, or below a path
    another entry installed as a file, is not.
    """
    parts = rel_dest.split("/")
    clash = next(
        (
            prefix
            for prefix in ("/".join(parts[:i]) for i in range(1, len(parts)))
            if prefix in owners
        ),
        None,
    )
    if clash is None:
        below = rel_dest + "/"
        clash = next((p for p in owners if p.startswith(below)), None)
    if clash is None:
        return
    raise InstallPlanError(
        f"Install entry {_describe(entry)} writes {rel_dest!r}, which conflicts"
        f" with {clash!r} from entry {_describe(owners[clash])}",
        identity=identity,
    )


class InstallPlanApplier:
    """Apply install-plan entries from a staging base to an output root.

    Args:
        mode: "copy" copies files; "symlink" creates relative symlinks to
            the staged files, which must then outlive the output.
    """

    def __init__(self, mode: InstallMode = "copy") -> None:
        if mode not in ("copy", "symlink"):
            raise ValueError(f"Unsupported install mode: {mode!r}")
        self._mode = mode

    @property
    def mode(self) -> InstallMode:
        return self._mode

    def apply(
        self,
        staging: StagingTree | Path,
        install_plan: Sequence[InstallEntry],
        output_root: Path,
        identity: str | None = None,
    ) -> OutputTree:
        """Install staged files into ``output_root``.

        An empty plan installs the whole staging base.

        Raises:
            InstallPlanError: If a source or destination escapes its root,
                an entry's source does not exist, or two entries need the
                same path as both a file and a directory.
        """
        if isinstance(staging, StagingTree):
            identity = identity or staging.identity
            base = staging_base(staging)
        else:
            base = staging
        base = base.resolve()
        output_root.mkdir(parents=True, exist_ok=True)
        out_root = output_root.resolve()

        entries = list(install_plan) or [InstallEntry(source="")]
        owners: dict[str, InstallEntry] = {}
        for entry in entries:
            self._apply_entry(entry, base, out_root, identity, owners)

        files = sorted(owners)
        logger.info(
            "Installed %d files into %s (%s mode, %d entries)",
            len(files),
            output_root,
            self._mode,
            len(entries),
        )
        return OutputTree(identity=identity or "", root=output_root, files=files)

    def _apply_entry(
        self,
        entry: InstallEntry,
        base: Path,
        out_root: Path,
        identity: str | None,
        owners: dict[str, InstallEntry],
    ) -> list[str]:
        src = base / entry.source_path
        if not _is_within(Path(os.path.normpath(src)), base) or not _is_within(
            src.resolve(), base
        ):
            raise InstallPlanError(
                f"Install source {entry.source!r} escapes the staging tree",
                identity=identity,
            )
        if not src.exists() and not src.is_symlink():
            raise InstallPlanError(
                f"Install source {entry.source!r} not found in staging tree",
                identity=identity,
            )

        if src.is_dir() and not src.is_symlink():
            match_root = src if entry.copies_contents else src.parent
            candidates = list(_walk(src))
        else:
            match_root = src.parent
            candidates = [src]

        written: list[str] = []
        for path in candidates:
            rel = path.relative_to(match_root).as_posix()
            if not selected(entry, rel):
                continue
            rel_dest = (Path(entry.dest) / rel).as_posix().removeprefix("./")
            _check_conflict(entry, rel_dest, owners, identity)
            target = self._target(out_root, rel_dest, identity)
            self._install(path, target)
            owners[rel_dest] = entry
            written.append(rel_dest)

        logger.debug(
            "Entry %r -> %r: %d of %d files",
            entry.source,
            entry.dest,
            len(written),
            len(candidates),
        )
        return written

    def _target(self, out_root: Path, rel_dest: str, identity: str | None) -> Path:
        target = Path(os.path.normpath(out_root / rel_dest))
        # Resolving the parent catches symlinked directories installed earlier.
        if not _is_within(target, out_root) or not _is_within(
            target.parent.resolve(), out_root
        ):
            raise InstallPlanError(
                f"Install destination {rel_dest!r} escapes the output root",
                identity=identity,
            )
        return target

    def _install(self, src: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)

        if self._mode == "symlink":
            target.symlink_to(os.path.relpath(src, target.parent))
        elif src.is_symlink():
            target.symlink_to(os.readlink(src))
        else:
            shutil.copy2(src, target)
