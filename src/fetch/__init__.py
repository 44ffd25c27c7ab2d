"""Source fetchers."""
