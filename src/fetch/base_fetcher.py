# src/fetch/base_fetcher.py — v1
"""Abstract fetcher interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recipekit.recipe.models import SourceRef


class BaseFetcher(ABC):
    """Content-addressed source fetcher."""

    @abstractmethod
    async def fetch(
        self, source: SourceRef, dest_dir: Path, identity: str | None = None
    ) -> Path | None:
        """Make ``source`` available locally and return its path.

        Returns None for sources with nothing to fetch.

        Raises:
            FetchError: If the content is unavailable or its checksum
                does not match.
        """
