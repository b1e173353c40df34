# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from flowbuild.config import DEFAULTS, deep_merge
from flowbuild.core import TaskRegistry, sequence
from flowbuild.scheduler import BuildContext, Scheduler

from .fakes import Recorder


@pytest.fixture()
def params(tmp_path: Path) -> dict:
    """Default config with every output directory under tmp_path."""
    return deep_merge(
        DEFAULTS,
        {
            "project": {
                "name": "demo",
                "tmp_dir": str(tmp_path / ".tmp"),
                "public_dir": str(tmp_path / "public"),
                "runs_dir": str(tmp_path / "runs"),
            },
            "images": {"cache_dir": str(tmp_path / "cache")},
        },
    )


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def site_registry(recorder: Recorder) -> TaskRegistry:
    """
    The shape of the site build: clean, styles, then lint/scripts/images
    side by side, plus a `publish` task that waits for the whole target.
    """
    registry = TaskRegistry()
    for name in ("clean", "styles", "lint", "scripts", "images"):
        registry.register(name, action=recorder.action(name))
    registry.add_sequence(sequence("default", "clean", "styles", ["lint", "scripts", "images"]))
    registry.register("publish", after=["default"], action=recorder.action("publish"))
    registry.validate()
    return registry


@pytest.fixture()
def make_scheduler(params: dict):
    def _make(registry: TaskRegistry, tools=None, live: bool = False) -> Scheduler:
        return Scheduler(registry, BuildContext(params=params, tools=tools, live=live), name="test")

    return _make
