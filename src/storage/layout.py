# src/storage/layout.py — v1
"""Store directory structure definition.

    {store_root}/
        {name}-{version}/               final output of one identity
            .recipekit-manifest.json    written last: marks a complete output
            .payload/                   staged files (symlink install mode)
        .tmp-{name}-{version}-XXXX/     output being committed
        .logs/{name}-{version}.log      latest build log
"""

from __future__ import annotations

from pathlib import Path

MANIFEST_FILE = ".recipekit-manifest.json"
PAYLOAD_DIR = ".payload"
LOGS_DIR = ".logs"
TMP_PREFIX = ".tmp-"


def output_name(name: str, version: str) -> str:
    return f"{name}-{version}"


def output_dir(store_root: Path, name: str, version: str) -> Path:
    """Return the final output directory of an identity."""
    return store_root / output_name(name, version)


def manifest_path(output_path: Path) -> Path:
    return output_path / MANIFEST_FILE


def payload_dir(output_path: Path) -> Path:
    return output_path / PAYLOAD_DIR


def logs_dir(store_root: Path) -> Path:
    return store_root / LOGS_DIR


def build_log_path(store_root: Path, name: str, version: str) -> Path:
    return logs_dir(store_root) / f"{output_name(name, version)}.log"


def temp_prefix(name: str, version: str) -> str:
    return f"{TMP_PREFIX}{output_name(name, version)}-"


def is_reserved(entry: str) -> bool:
    """True for store entries that are not outputs."""
    return entry.startswith(".")
