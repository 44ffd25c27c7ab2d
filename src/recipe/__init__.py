"""Recipe models, registry and manifest loading."""
