"""Output store layout and commit."""
