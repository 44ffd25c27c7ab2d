# src/fetch/fetcher_factory.py — v1
"""Factory for fetcher instantiation."""

from __future__ import annotations

from recipekit.config.settings import Settings
from recipekit.fetch.base_fetcher import BaseFetcher


def create_fetcher(settings: Settings | None = None) -> BaseFetcher:
    """Instantiate the configured fetcher.

    Args:
        settings: Application settings. Defaults to a mirror fetcher on
            the default mirror root.

    Returns:
        Configured BaseFetcher implementation.
    """
    settings = settings or Settings()

    if settings.fetcher == "mirror":
        from recipekit.fetch.mirror_fetcher import MirrorFetcher

        return MirrorFetcher(mirror_root=settings.mirror_root)

    raise ValueError(f"Unsupported fetcher: {settings.fetcher!r}")
