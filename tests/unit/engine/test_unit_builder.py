# tests/unit/engine/test_unit_builder.py — v1
"""Tests for engine/builder.py — end-to-end builds with fake phases."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from unittest.mock import AsyncMock

import pytest

from recipekit.core.errors import (
    CyclicDependencyError,
    FetchError,
    PhaseExecutionError,
    PhaseOverrideError,
    UnresolvedInputError,
)
from recipekit.engine.builder import BuildEngine
from recipekit.phases.base import BasePhaseSequence
from recipekit.recipe.models import InsertAfter, InstallEntry, Replace, UrlFetch
from recipekit.recipe.registry import RecipeRegistry
from recipekit.storage import layout

_runs: Counter[str] = Counter()


def _unpack(ctx):
    _runs[ctx.identity] += 1


def _install(ctx):
    (ctx.out / "bin").mkdir(parents=True, exist_ok=True)
    (ctx.out / "bin" / ctx.recipe.name).write_text(ctx.identity)
    for label, ri in ctx.inputs.items():
        (ctx.out / f"input-{label}").write_text(str(ri.path))


def _fail(ctx):
    raise RuntimeError("build broke")


@pytest.fixture(autouse=True)
def _reset_runs():
    _runs.clear()


@pytest.fixture
def base() -> BasePhaseSequence:
    return BasePhaseSequence.of(
        "simple", [("unpack", _unpack), ("build", lambda ctx: None), ("install", _install)]
    )


@pytest.fixture
def engine_factory(registry, fetcher, settings, base):
    def make(**overrides) -> BuildEngine:
        s = settings.model_copy(update=overrides) if overrides else settings
        return BuildEngine(registry, fetcher, settings=s, build_systems={"simple": base})

    return make


class TestBuild:
    @pytest.mark.asyncio
    async def test_builds_inputs_first(self, registry, make_recipe, engine_factory, settings):
        registry.register(make_recipe("zlib", "1.3"))
        registry.register(make_recipe("app", inputs=["zlib"]))
        engine = engine_factory()

        result = await engine.build("app")

        assert result.identity == "app@1.0"
        assert result.path == settings.store_root / "app-1.0"
        assert (result.path / "bin/app").read_text() == "app@1.0"
        zlib_path = settings.store_root / "zlib-1.3"
        assert (result.path / "input-zlib").read_text() == str(zlib_path)
        assert result.inputs["zlib"].path == zlib_path
        assert result.phases_run == ["unpack", "build", "install"]
        assert set(engine.results) == {"app@1.0", "zlib@1.3"}

    @pytest.mark.asyncio
    async def test_staging_discarded(self, registry, make_recipe, engine_factory, settings):
        registry.register(make_recipe("app"))
        await engine_factory().build("app")
        assert list(settings.staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_install_plan_applied(self, registry, make_recipe, engine_factory):
        registry.register(
            make_recipe("app", install_plan=[InstallEntry(source="bin/", dest="libexec")])
        )
        result = await engine_factory().build("app")
        assert result.output.files == ["libexec/app"]

    @pytest.mark.asyncio
    async def test_fetched_source_handed_to_phases(
        self, registry, make_recipe, settings, base, tmp_path
    ):
        source = tmp_path / "app-1.0.tar.gz"
        seen: list[object] = []
        recipe = make_recipe(
            "app",
            source=UrlFetch(url="https://example.org/app-1.0.tar.gz"),
            phases=[Replace(name="unpack", fn=lambda ctx: seen.append(ctx.staging.fetched_source))],
        )
        registry.register(recipe)
        fetcher = AsyncMock()
        fetcher.fetch.return_value = source
        engine = BuildEngine(registry, fetcher, settings=settings, build_systems={"simple": base})

        await engine.build("app")

        fetcher.fetch.assert_awaited_once()
        args, kwargs = fetcher.fetch.call_args
        assert args[0] == recipe.source
        assert args[1].parent == settings.staging_root
        assert kwargs == {"identity": "app@1.0"}
        assert seen == [source]

    @pytest.mark.asyncio
    async def test_build_log_written(self, registry, make_recipe, engine_factory, settings):
        registry.register(make_recipe("app"))
        package_logger = logging.getLogger("recipekit")
        level_before = package_logger.level
        await engine_factory().build("app")
        log_path = layout.build_log_path(settings.store_root, "app", "1.0")
        text = log_path.read_text(encoding="utf-8")
        assert "Building app@1.0" in text
        assert "Running 3 phases for app@1.0" in text
        assert package_logger.level == level_before


class TestFailures:
    @pytest.mark.asyncio
    async def test_phase_failure_leaves_no_output(
        self, registry, make_recipe, engine_factory, settings
    ):
        registry.register(make_recipe("app", phases=[Replace(name="build", fn=_fail)]))
        engine = engine_factory()
        with pytest.raises(PhaseExecutionError) as exc_info:
            await engine.build("app")
        assert exc_info.value.phase == "build"
        assert not (settings.store_root / "app-1.0").exists()
        assert list(settings.staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_dependency_failure_stops_dependent(
        self, registry, make_recipe, engine_factory, settings
    ):
        registry.register(make_recipe("zlib", "1.3", phases=[Replace(name="build", fn=_fail)]))
        registry.register(make_recipe("app", inputs=["zlib"]))
        with pytest.raises(UnresolvedInputError) as exc_info:
            await engine_factory().build("app")
        assert exc_info.value.requester == "app@1.0"
        cause = exc_info.value.__cause__
        assert isinstance(cause, PhaseExecutionError)
        assert cause.identity == "zlib@1.3"
        assert cause.phase == "build"
        assert _runs["app@1.0"] == 0
        assert not (settings.store_root / "app-1.0").exists()

    @pytest.mark.asyncio
    async def test_fetch_failure(self, registry, make_recipe, engine_factory, settings):
        registry.register(
            make_recipe("app", source=UrlFetch(url="https://example.org/app-1.0.tar.gz"))
        )
        with pytest.raises(FetchError):
            await engine_factory().build("app")
        assert _runs["app@1.0"] == 0
        assert not (settings.store_root / "app-1.0").exists()

    @pytest.mark.asyncio
    async def test_bad_override_checked_before_building(
        self, registry, make_recipe, engine_factory
    ):
        registry.register(make_recipe("zlib", "1.3"))
        registry.register(
            make_recipe(
                "app",
                inputs=["zlib"],
                phases=[InsertAfter(anchor="configure", name="x", fn=_unpack)],
            )
        )
        with pytest.raises(PhaseOverrideError):
            await engine_factory().build("app")
        assert not _runs

    @pytest.mark.asyncio
    async def test_cycle(self, registry, make_recipe, engine_factory):
        registry.register(make_recipe("a", inputs=["b"]))
        registry.register(make_recipe("b", inputs=["a"]))
        with pytest.raises(CyclicDependencyError):
            await engine_factory().build("a")
        assert not _runs

    @pytest.mark.asyncio
    async def test_unknown_root(self, engine_factory):
        with pytest.raises(UnresolvedInputError):
            await engine_factory().build("ghost")


class TestMemoization:
    @pytest.mark.asyncio
    async def test_concurrent_identical_builds_run_once(
        self, registry, make_recipe, engine_factory
    ):
        registry.register(make_recipe("zlib", "1.3"))
        registry.register(make_recipe("app", inputs=["zlib"]))
        registry.register(make_recipe("tool", inputs=["zlib"]))
        engine = engine_factory()

        results = await asyncio.gather(
            engine.build("app"), engine.build("app"), engine.build("tool")
        )

        assert results[0] is results[1]
        assert _runs == Counter({"zlib@1.3": 1, "app@1.0": 1, "tool@1.0": 1})

    @pytest.mark.asyncio
    async def test_reuses_existing_output(self, registry, make_recipe, engine_factory):
        registry.register(make_recipe("app"))
        first = await engine_factory().build("app")
        second = await engine_factory().build("app")
        assert not first.reused
        assert second.reused
        assert second.path == first.path
        assert second.phases_run == ["unpack", "build", "install"]
        assert _runs["app@1.0"] == 1

    @pytest.mark.asyncio
    async def test_rebuild_when_reuse_disabled(self, registry, make_recipe, engine_factory):
        registry.register(make_recipe("app"))
        await engine_factory().build("app")
        result = await engine_factory(reuse_outputs=False).build("app")
        assert not result.reused
        assert _runs["app@1.0"] == 2

    @pytest.mark.asyncio
    async def test_parallel_limit(self, registry, make_recipe, engine_factory):
        active = 0
        peak = 0

        async def slow(ctx):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        deps = [f"d{i}" for i in range(4)]
        for name in deps:
            registry.register(make_recipe(name, phases=[Replace(name="build", fn=slow)]))
        registry.register(make_recipe("app", inputs=deps))
        await engine_factory(max_parallel_builds=2).build("app")
        assert peak <= 2


class TestPlan:
    def test_plan_without_building(self, registry, make_recipe, engine_factory):
        registry.register(make_recipe("zlib", "1.3"))
        registry.register(make_recipe("app", inputs=["zlib"]))
        plan = engine_factory().plan("app")
        assert plan.stages == [["zlib@1.3"], ["app@1.0"]]
        assert not _runs
