# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for store locations, fetch, install and logging
settings. Cross-field rules raise ConfigurationError.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Store ===
    store_root: Path = Path("~/.recipekit/store")
    staging_root: Path = Path("~/.recipekit/staging")
    reuse_outputs: bool = True
    keep_failed_staging: bool = False

    # === Fetch ===
    fetcher: Literal["mirror"] = "mirror"
    mirror_root: Path = Path("~/.recipekit/mirror")

    # === Build ===
    max_parallel_builds: int = 4
    run_tests: bool = True
    make_flags: str = ""

    # === Install ===
    install_mode: Literal["copy", "symlink"] = "copy"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("store_root", "staging_root", "mirror_root")
    @classmethod
    def expand_paths(cls, v: Path) -> Path:  # noqa: N805
        return Path(v).expanduser()

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.store_root.resolve() == self.staging_root.resolve():
            errors.append("STAGING_ROOT must differ from STORE_ROOT")

        if self.max_parallel_builds < 1:
            errors.append("MAX_PARALLEL_BUILDS must be >= 1")

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def make_flags_list(self) -> list[str]:
        """Parse whitespace-separated extra make flags."""
        return self.make_flags.split()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-build config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
