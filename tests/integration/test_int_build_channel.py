# tests/integration/test_int_build_channel.py — v1
"""Integration tests: a manifest channel built from a local mirror.

No external services or toolchains required. Archives are fetched from a
mirror directory, unpacked by the standard phases, patched with
substitute actions and installed through install-plans.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from recipekit.api.facade import build
from recipekit.core.errors import FetchError
from recipekit.fetch.checksum import sha256_file
from recipekit.storage import layout


@pytest.fixture
def channel(tmp_path: Path, settings, make_tarball) -> Path:
    """Write a mirror with two archives and a manifest describing them."""
    settings.mirror_root.mkdir(parents=True, exist_ok=True)
    theme = make_tarball(
        settings.mirror_root / "theme-2.0.tar.gz",
        {
            "theme-2.0/opt/logo.png": "PNG",
            "theme-2.0/opt/icon.png": "ICON",
            "theme-2.0/opt/README.txt": "readme",
        },
    )
    tool = make_tarball(
        settings.mirror_root / "tool-1.4.tar.gz",
        {
            "tool-1.4/bin/tool.sh": "#!/bin/sh\nTHEME=@THEME@\n",
            "tool-1.4/share/doc/tool.txt": "docs",
        },
    )
    manifest = tmp_path / "channel" / "channel.json"
    manifest.parent.mkdir(parents=True)
    manifest.write_text(
        json.dumps(
            [
                {
                    "name": "theme",
                    "version": "2.0",
                    "build_system": "copy",
                    "source": {
                        "kind": "url",
                        "url": "https://downloads.example.org/theme-2.0.tar.gz",
                        "checksum": "sha256:" + sha256_file(theme),
                    },
                    "install_plan": [
                        {"source": "opt/", "dest": "/share", "include": "*.png"}
                    ],
                },
                {
                    "name": "tool",
                    "version": "1.4",
                    "build_system": "binary",
                    "source": {
                        "kind": "url",
                        "url": "https://downloads.example.org/tool-1.4.tar.gz",
                        "checksum": sha256_file(tool),
                    },
                    "inputs": ["theme"],
                    "phases": [
                        {
                            "op": "insert_after",
                            "anchor": "unpack",
                            "name": "set-theme",
                            "action": "substitute",
                            "args": {
                                "files": "bin/*.sh",
                                "pattern": "@THEME@",
                                "replacement": "{input[theme]}/share",
                            },
                        }
                    ],
                    "install_plan": [
                        {"source": "bin/", "dest": "bin"},
                        {"source": "share/", "dest": "share", "exclude": "*.txt"},
                    ],
                },
                {
                    "name": "broken",
                    "version": "1",
                    "build_system": "copy",
                    "source": {
                        "kind": "url",
                        "url": "https://downloads.example.org/broken-1.tar.gz",
                        "checksum": "0" * 64,
                    },
                },
            ]
        )
    )
    return manifest


class TestBuildChannel:
    @pytest.mark.asyncio
    async def test_copy_build_selects_files(self, channel, settings, fetcher):
        result = await build("theme", manifests=[channel], settings=settings, fetcher=fetcher)
        assert result.output.files == ["share/icon.png", "share/logo.png"]
        assert result.phases_run == ["unpack", "install"]
        assert (result.path / "share/logo.png").read_text() == "PNG"

    @pytest.mark.asyncio
    async def test_binary_build_with_input(self, channel, settings, fetcher):
        result = await build("tool", manifests=[channel], settings=settings, fetcher=fetcher)

        theme_out = settings.store_root / "theme-2.0"
        script = result.path / "bin/tool.sh"
        assert script.read_text() == f"#!/bin/sh\nTHEME={theme_out}/share\n"
        assert os.access(script, os.X_OK)
        assert result.output.files == ["bin/tool.sh"]
        assert result.phases_run == ["unpack", "set-theme", "patch", "install"]
        assert result.inputs["theme"].identity == "theme@2.0"
        assert sorted(os.listdir(settings.store_root)) == [
            layout.LOGS_DIR,
            "theme-2.0",
            "tool-1.4",
        ]

    @pytest.mark.asyncio
    async def test_checksum_mismatch_fails(self, channel, settings, fetcher):
        with pytest.raises(FetchError, match="not available|Checksum"):
            await build("broken", manifests=[channel], settings=settings, fetcher=fetcher)
        assert not (settings.store_root / "broken-1").exists()

    @pytest.mark.asyncio
    async def test_symlink_mode(self, channel, settings, fetcher):
        linked = settings.model_copy(update={"install_mode": "symlink"})
        result = await build("theme", manifests=[channel], settings=linked, fetcher=fetcher)
        logo = result.path / "share/logo.png"
        assert logo.is_symlink()
        assert logo.read_text() == "PNG"
        assert (result.path / layout.PAYLOAD_DIR).is_dir()
