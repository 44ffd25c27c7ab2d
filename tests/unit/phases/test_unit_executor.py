# tests/unit/phases/test_unit_executor.py — v1
"""Tests for phases/executor.py — ordered execution and failure handling."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from recipekit.core.errors import PhaseExecutionError, PhaseOverrideError
from recipekit.core.models import ResolvedInput
from recipekit.logging.context import get_context
from recipekit.phases.executor import PhaseExecutor
from recipekit.recipe.models import Delete, InsertAfter, Replace


@pytest.fixture
def executor(simple_base, settings) -> PhaseExecutor:
    return PhaseExecutor({"simple": simple_base}, settings)


def _boom(ctx):
    raise RuntimeError("compiler exploded")


class TestPlan:
    def test_unknown_build_system(self, executor, make_recipe):
        with pytest.raises(PhaseOverrideError, match="Unknown build system"):
            executor.plan(make_recipe("app", build_system="cmake"))

    def test_plan_applies_overrides(self, executor, make_recipe):
        recipe = make_recipe("app", phases=[Delete(name="configure")])
        assert [s.name for s in executor.plan(recipe)] == ["unpack", "build", "install"]


class TestRun:
    @pytest.mark.asyncio
    async def test_runs_in_order(self, executor, make_recipe, phase_log, recording_phase):
        recipe = make_recipe(
            "app",
            phases=[InsertAfter(anchor="unpack", name="patch-assets", fn=recording_phase("patch-assets"))],
        )
        staging = await executor.run(recipe, {})
        assert phase_log == ["unpack", "patch-assets", "configure", "build", "install"]
        assert staging.phases_run == phase_log
        assert staging.source_dir.is_dir()
        assert staging.out_dir.is_dir()
        executor.discard(staging)

    @pytest.mark.asyncio
    async def test_staging_under_staging_root(self, executor, make_recipe, settings):
        staging = await executor.run(make_recipe("app"), {})
        assert staging.root.parent == settings.staging_root
        assert staging.root.name.startswith("app-1.0-")
        executor.discard(staging)
        assert not staging.root.exists()

    @pytest.mark.asyncio
    async def test_failure_aborts_and_discards(
        self, executor, make_recipe, phase_log, settings
    ):
        recipe = make_recipe("app", phases=[Replace(name="configure", fn=_boom)])
        with pytest.raises(PhaseExecutionError) as exc_info:
            await executor.run(recipe, {})
        err = exc_info.value
        assert err.phase == "configure"
        assert err.identity == "app@1.0"
        assert isinstance(err.cause, RuntimeError)
        assert phase_log == ["unpack"]
        assert list(settings.staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_keep_failed_staging(self, simple_base, settings, make_recipe):
        kept = settings.model_copy(update={"keep_failed_staging": True})
        executor = PhaseExecutor({"simple": simple_base}, kept)
        recipe = make_recipe("app", phases=[Replace(name="build", fn=_boom)])
        with pytest.raises(PhaseExecutionError):
            await executor.run(recipe, {})
        assert len(list(settings.staging_root.iterdir())) == 1

    @pytest.mark.asyncio
    async def test_async_phase_awaited(self, executor, make_recipe):
        seen: list[str] = []

        async def async_build(ctx):
            await asyncio.sleep(0)
            seen.append(ctx.phase)

        recipe = make_recipe("app", phases=[Replace(name="build", fn=async_build)])
        staging = await executor.run(recipe, {})
        assert seen == ["build"]
        executor.discard(staging)

    @pytest.mark.asyncio
    async def test_phase_sees_context(self, executor, make_recipe, tmp_path):
        seen: dict[str, object] = {}

        def inspect_ctx(ctx):
            seen["phase"] = get_context().phase
            seen["zlib"] = ctx.input_path("zlib")
            seen["out"] = ctx.out
            seen["source"] = ctx.staging.fetched_source

        recipe = make_recipe("app", phases=[Replace(name="build", fn=inspect_ctx)])
        inputs = {"zlib": ResolvedInput(label="zlib", identity="zlib@1.3", path=tmp_path / "z")}
        source = tmp_path / "src.tar.gz"
        staging = await executor.run(recipe, inputs, source_path=source)
        assert seen["phase"] == "build"
        assert seen["zlib"] == tmp_path / "z"
        assert seen["out"] == staging.out_dir
        assert seen["source"] == source
        assert get_context().phase is None
        executor.discard(staging)

    @pytest.mark.asyncio
    async def test_phase_writes_do_not_reach_recipe(self, executor, make_recipe):
        seen: list[int] = []

        def bump(ctx):
            ctx.arguments["count"] += 1
            ctx.arguments["flags"].append("-j2")

        def read(ctx):
            seen.append(ctx.arguments["count"])

        recipe = make_recipe(
            "app",
            arguments={"count": 0, "flags": []},
            phases=[Replace(name="configure", fn=bump), Replace(name="build", fn=read)],
        )
        for _ in range(2):
            staging = await executor.run(recipe, {})
            executor.discard(staging)

        assert seen == [1, 1]
        assert recipe.arguments == {"count": 0, "flags": []}

    @pytest.mark.asyncio
    async def test_cancellation_discards(self, executor, make_recipe, settings):
        started = asyncio.Event()

        async def hang(ctx):
            started.set()
            await asyncio.sleep(3600)

        recipe = make_recipe("app", phases=[Replace(name="build", fn=hang)])
        task = asyncio.ensure_future(executor.run(recipe, {}))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert list(Path(settings.staging_root).iterdir()) == []
