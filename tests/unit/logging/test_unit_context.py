# tests/unit/logging/test_unit_context.py — v1
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

import asyncio

import pytest

from recipekit.logging.context import (
    clear_context,
    get_context,
    set_build_context,
    set_phase_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.build_id is None
        assert ctx.recipe is None
        assert ctx.phase is None

    def test_set_build_context_resets_phase(self):
        set_phase_context("unpack")
        set_build_context("b1", "zlib@1.3")
        ctx = get_context()
        assert ctx.build_id == "b1"
        assert ctx.recipe == "zlib@1.3"
        assert ctx.phase is None

    def test_as_dict_filters_none(self):
        set_build_context("b1", "zlib@1.3")
        assert get_context().as_dict() == {"build_id": "b1", "recipe": "zlib@1.3"}

    @pytest.mark.asyncio
    async def test_tasks_are_isolated(self):
        async def build(name: str) -> str | None:
            set_build_context(name, f"{name}@1")
            await asyncio.sleep(0)
            return get_context().recipe

        results = await asyncio.gather(
            asyncio.ensure_future(build("a")), asyncio.ensure_future(build("b"))
        )
        assert results == ["a@1", "b@1"]
        assert get_context().recipe is None
