# tests/test_scheduler.py

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path

import pytest

from flowbuild.core import TaskRegistry, sequence
from flowbuild.errors import TaskFailedError, ToolExecutionError

from .fakes import Recorder


@pytest.mark.asyncio
async def test_default_completes_styles_before_parallel_stage(site_registry, recorder, make_scheduler) -> None:
    report = await make_scheduler(site_registry).run("default")

    assert report.ok is True
    styles_end = recorder.index("end:styles")
    assert recorder.index("end:clean") < recorder.index("start:styles")
    for name in ("lint", "scripts", "images"):
        assert styles_end < recorder.index(f"start:{name}")
        assert recorder.calls[name] == 1
    statuses = {s.name: s.status for s in report.steps}
    assert statuses["default"] == "ok"
    assert all(status == "ok" for status in statuses.values())


@pytest.mark.asyncio
async def test_tasks_in_one_batch_run_concurrently(make_scheduler) -> None:
    left, right = asyncio.Event(), asyncio.Event()

    async def ping(ctx) -> None:
        left.set()
        await right.wait()

    async def pong(ctx) -> None:
        right.set()
        await left.wait()

    registry = TaskRegistry()
    registry.register("ping", action=ping)
    registry.register("pong", action=pong)
    registry.validate()

    # Deadlocks unless both run at the same time
    await asyncio.wait_for(make_scheduler(registry).run("ping", "pong"), timeout=2)


@pytest.mark.asyncio
async def test_failure_stops_the_run_and_names_the_task(params, make_scheduler) -> None:
    recorder = Recorder()
    registry = TaskRegistry()
    registry.register("clean", action=recorder.action("clean"))
    registry.register("styles", action=recorder.action("styles"))
    registry.register("lint", action=recorder.action("lint", delay=0.5))
    registry.register("images", action=recorder.action("images", delay=0.5))
    registry.register(
        "scripts",
        action=recorder.action("scripts", fail=ToolExecutionError("uglify", "Unexpected token")),
    )
    registry.add_sequence(sequence("default", "clean", "styles", ["lint", "scripts", "images"]))
    registry.register("publish", after=["default"], action=recorder.action("publish"))
    registry.validate()

    with pytest.raises(TaskFailedError) as exc:
        await make_scheduler(registry).run("publish")

    assert exc.value.task == "default:scripts"
    assert isinstance(exc.value.error, ToolExecutionError)
    assert "Unexpected token" in str(exc.value)
    assert "publish" not in recorder.calls
    # Slow siblings were cancelled rather than awaited
    assert "end:lint" not in recorder.log
    assert "end:images" not in recorder.log

    state_files = list(Path(params["project"]["runs_dir"]).rglob("state.json"))
    assert len(state_files) == 1
    state = json.loads(state_files[0].read_text(encoding="utf-8"))
    assert state["ok"] is False
    steps = {s["name"]: s for s in state["steps"]}
    assert steps["default:scripts"]["status"] == "error"
    assert steps["default:lint"]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_sync_actions_run_off_the_event_loop(make_scheduler) -> None:
    seen = []

    def build(ctx) -> None:
        seen.append(ctx.params["project"]["name"])

    registry = TaskRegistry()
    registry.register("build", action=build)
    registry.validate()

    await make_scheduler(registry).run("build")
    assert seen == ["demo"]


@pytest.mark.asyncio
async def test_each_run_gets_a_fresh_plan(site_registry, recorder, make_scheduler) -> None:
    scheduler = make_scheduler(site_registry)
    await scheduler.run("default")
    await scheduler.run("default")

    assert recorder.calls["styles"] == 2
    assert recorder.calls["clean"] == 2


@pytest.mark.asyncio
async def test_thread_siblings_are_recorded_as_abandoned(params, make_scheduler) -> None:
    release = threading.Event()
    recorder = Recorder()

    def images(ctx) -> None:
        release.wait(timeout=2)

    registry = TaskRegistry()
    registry.register("images", action=images)
    registry.register("lint", action=recorder.action("lint", delay=1.0))
    registry.register(
        "scripts",
        action=recorder.action("scripts", delay=0.05, fail=ToolExecutionError("uglify", "boom")),
    )
    registry.register("build", after=["images", "lint", "scripts"])
    registry.validate()

    try:
        with pytest.raises(TaskFailedError):
            await make_scheduler(registry).run("build")
    finally:
        release.set()

    state_file = next(Path(params["project"]["runs_dir"]).rglob("state.json"))
    steps = {s["name"]: s["status"] for s in json.loads(state_file.read_text(encoding="utf-8"))["steps"]}
    assert steps == {"scripts": "error", "images": "abandoned", "lint": "cancelled"}
