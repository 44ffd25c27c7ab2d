# src/storage/output_store.py — v1
"""Output store: atomic commit of finished outputs, lookup for reuse.

An output is assembled in a temporary sibling directory and renamed into
place only after the install-plan succeeded and the manifest is written,
so a failed build never leaves files at the final location.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

from pydantic import BaseModel, Field

from recipekit.core.models import OutputTree, ResolvedInput, StagingTree
from recipekit.install.applier import InstallPlanApplier, staging_base
from recipekit.storage import layout
from recipekit.version import __version__

if TYPE_CHECKING:
    from recipekit.recipe.models import Recipe

logger = logging.getLogger(__name__)


class BuildManifest(BaseModel):
    """Record written into every committed output."""

    identity: str
    name: str
    version: str
    inputs: list[ResolvedInput] = Field(default_factory=list)
    phases: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    install_mode: str = "copy"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    recipekit_version: str = __version__


class OutputStore:
    """Per-identity output trees under a store root."""

    def __init__(self, store_root: Path, applier: InstallPlanApplier | None = None) -> None:
        self._root = Path(store_root).expanduser()
        self._applier = applier or InstallPlanApplier()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, recipe: Recipe) -> Path:
        return layout.output_dir(self._root, recipe.name, recipe.version)

    def read_manifest(self, recipe: Recipe) -> BuildManifest | None:
        path = layout.manifest_path(self.path_for(recipe))
        if not path.is_file():
            return None
        try:
            return BuildManifest.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            logger.warning("Unreadable manifest %s: %s", path, exc)
            return None

    def lookup(self, recipe: Recipe) -> OutputTree | None:
        """Return the complete output of ``recipe`` if one exists."""
        manifest = self.read_manifest(recipe)
        if manifest is None or manifest.identity != recipe.identity:
            return None
        return OutputTree(
            identity=recipe.identity, root=self.path_for(recipe), files=manifest.files
        )

    def commit(
        self,
        recipe: Recipe,
        staging: StagingTree,
        inputs: Mapping[str, ResolvedInput] | None = None,
    ) -> OutputTree:
        """Apply the install-plan and atomically publish the output.

        Raises:
            InstallPlanError: From the applier; nothing is published.
        """
        self._root.mkdir(parents=True, exist_ok=True)
        final = self.path_for(recipe)
        tmp = Path(
            tempfile.mkdtemp(prefix=layout.temp_prefix(recipe.name, recipe.version), dir=self._root)
        )
        try:
            if self._applier.mode == "symlink":
                payload = layout.payload_dir(tmp)
                shutil.move(str(staging_base(staging)), str(payload))
                tree = self._applier.apply(
                    payload, recipe.install_plan, tmp, identity=recipe.identity
                )
            else:
                tree = self._applier.apply(staging, recipe.install_plan, tmp)

            manifest = BuildManifest(
                identity=recipe.identity,
                name=recipe.name,
                version=recipe.version,
                inputs=list((inputs or {}).values()),
                phases=list(staging.phases_run),
                files=tree.files,
                install_mode=self._applier.mode,
            )
            layout.manifest_path(tmp).write_text(
                manifest.model_dump_json(indent=2), encoding="utf-8"
            )
            self._publish(tmp, final)
        except BaseException:
            shutil.rmtree(tmp, ignore_errors=True)
            raise

        logger.info("Committed %s -> %s (%d files)", recipe.identity, final, len(tree.files))
        return OutputTree(identity=recipe.identity, root=final, files=tree.files)

    def remove(self, recipe: Recipe) -> bool:
        """Delete the output of ``recipe``; return whether one existed."""
        path = self.path_for(recipe)
        if not path.exists():
            return False
        shutil.rmtree(path)
        return True

    def list_outputs(self) -> list[str]:
        """Directory names of complete outputs."""
        if not self._root.is_dir():
            return []
        return sorted(
            p.name
            for p in self._root.iterdir()
            if not layout.is_reserved(p.name) and layout.manifest_path(p).is_file()
        )

    def _publish(self, tmp: Path, final: Path) -> None:
        if not final.exists():
            tmp.rename(final)
            return
        # Replace an existing (stale or incomplete) output.
        old = final.with_name(f"{layout.TMP_PREFIX}old-{final.name}")
        if old.exists():
            shutil.rmtree(old)
        final.rename(old)
        tmp.rename(final)
        shutil.rmtree(old, ignore_errors=True)
