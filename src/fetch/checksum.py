# src/fetch/checksum.py — v1
"""SHA-256 content digests for fetched files and directory trees.

Directory digests cover sorted relative paths, entry types, file
contents and symlink targets, so they are stable across machines.
A top-level ``.git`` directory is ignored.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from recipekit.core.errors import FetchError

_CHUNK = 1 << 16


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_tree(root: Path) -> str:
    """Digest of a directory tree."""
    h = hashlib.sha256()
    entries = sorted(
        p for p in root.rglob("*")
        if p.relative_to(root).parts[0] != ".git"
    )
    for path in entries:
        rel = path.relative_to(root).as_posix()
        if path.is_symlink():
            h.update(f"l {rel} {os.readlink(path)}\n".encode("utf-8"))
        elif path.is_dir():
            h.update(f"d {rel}\n".encode("utf-8"))
        else:
            executable = "x" if os.access(path, os.X_OK) else "-"
            h.update(f"f {rel} {executable} {sha256_file(path)}\n".encode("utf-8"))
    return h.hexdigest()


def compute_checksum(path: Path) -> str:
    """Digest of a file or directory."""
    if path.is_dir():
        return sha256_tree(path)
    return sha256_file(path)


def verify_checksum(path: Path, expected: str | None, identity: str | None = None) -> None:
    """Raise FetchError unless ``path`` matches ``expected`` exactly.

    ``expected`` of None means the source is not pinned and is accepted.
    """
    if expected is None:
        return
    got = compute_checksum(path)
    if got != expected.lower().removeprefix("sha256:"):
        raise FetchError(
            f"Checksum mismatch for {path.name}: expected {expected}, got {got}",
            identity=identity,
        )
