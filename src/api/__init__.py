"""Public API facade."""
