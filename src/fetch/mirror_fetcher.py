# src/fetch/mirror_fetcher.py — v1
"""Local mirror fetcher (default FETCHER=mirror).

Resolves sources without network access:
  - UrlFetch: ``file://`` URLs and plain paths are read in place; other
    URLs are looked up in the mirror, first by checksum
    (``<mirror>/sha256/<digest>``), then by file name (``<mirror>/<name>``).
  - GitFetch: ``<mirror>/<repo name>/<commit>/`` checkouts.
  - Computed: the derivation populates a directory under ``dest_dir``.
Every pinned source is verified against its checksum.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

from recipekit.core.errors import FetchError
from recipekit.fetch.base_fetcher import BaseFetcher
from recipekit.fetch.checksum import verify_checksum
from recipekit.recipe.models import Computed, GitFetch, NoSource, SourceRef, UrlFetch

logger = logging.getLogger(__name__)


class MirrorFetcher(BaseFetcher):
    """Fetch sources from the local filesystem and a mirror directory."""

    def __init__(self, mirror_root: Path) -> None:
        self._root = Path(mirror_root).expanduser()

    @property
    def mirror_root(self) -> Path:
        return self._root

    async def fetch(
        self, source: SourceRef, dest_dir: Path, identity: str | None = None
    ) -> Path | None:
        if isinstance(source, NoSource):
            return None
        if isinstance(source, UrlFetch):
            path = self._locate_url(source, identity)
        elif isinstance(source, GitFetch):
            path = self._locate_git(source, identity)
        elif isinstance(source, Computed):
            path = await self._compute(source, dest_dir, identity)
        else:
            raise FetchError(f"Unsupported source kind: {source!r}", identity=identity)

        await asyncio.to_thread(verify_checksum, path, source.checksum, identity)
        logger.info("Fetched %s -> %s", _describe(source), path)
        return path

    def _locate_url(self, source: UrlFetch, identity: str | None) -> Path:
        parsed = urlparse(source.url)
        if parsed.scheme == "file":
            candidates = [Path(unquote(parsed.path))]
        elif parsed.scheme == "":
            candidates = [Path(source.url).expanduser()]
        else:
            candidates = []
            if source.checksum:
                candidates.append(self._root / "sha256" / source.checksum)
            candidates.append(self._root / source.basename)

        for candidate in candidates:
            if candidate.exists():
                return candidate
        raise FetchError(
            f"Source {source.url} not available (looked in: "
            f"{', '.join(str(c) for c in candidates)})",
            identity=identity,
        )

    def _locate_git(self, source: GitFetch, identity: str | None) -> Path:
        checkout = self._root / source.repo_name / source.commit
        if not checkout.is_dir():
            raise FetchError(
                f"Git checkout {source.url}@{source.commit} not mirrored at {checkout}",
                identity=identity,
            )
        return checkout

    async def _compute(
        self, source: Computed, dest_dir: Path, identity: str | None
    ) -> Path:
        target = dest_dir / "computed-source"
        target.mkdir(parents=True, exist_ok=True)
        try:
            if inspect.iscoroutinefunction(source.derivation):
                await source.derivation(target)
            else:
                await asyncio.to_thread(source.derivation, target)
        except Exception as exc:
            raise FetchError(f"Computed source failed: {exc}", identity=identity) from exc
        return target


def _describe(source: SourceRef) -> str:
    if isinstance(source, UrlFetch):
        return source.url
    if isinstance(source, GitFetch):
        return f"{source.url}@{source.commit}"
    return source.kind
