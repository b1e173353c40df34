# tests/test_site_tasks.py

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest
from PIL import Image

from flowbuild.cli import discover_tasks
from flowbuild.core import TaskRegistry
from flowbuild.errors import TaskFailedError, ToolExecutionError
from flowbuild.scheduler import BuildContext, Scheduler
from flowbuild.tools.favicon import MARK_END, MARK_START, FaviconGenerator

from .fakes import FakeToolbox


@pytest.fixture()
def registry() -> TaskRegistry:
    registry = discover_tasks(TaskRegistry())
    registry.validate()
    return registry


@pytest.fixture()
def site(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, params: dict) -> dict:
    monkeypatch.chdir(tmp_path)
    params["scripts"]["src"] = ["resources/scripts/**/*.js"]
    return params


def _scheduler(registry, params, tools, live=False) -> Scheduler:
    return Scheduler(registry, BuildContext(params=params, tools=tools, live=live), name="site")


def test_declared_targets(registry: TaskRegistry) -> None:
    assert {"default", "dist", "clean", "uncss", "pagespeed", "pageres"} <= set(registry.names())
    assert registry.resolve("dist").after == ("dist:uncss",)
    assert registry.resolve("dist:uncss").after == ("dist:lint", "dist:scripts", "dist:images")


@pytest.mark.asyncio
async def test_default_runs_styles_first_then_the_rest(registry, site) -> None:
    tools = FakeToolbox()
    await _scheduler(registry, site, tools).run("default")

    assert tools.calls[0] == "styles"
    assert sorted(tools.calls[1:]) == ["images", "lint", "scripts"]


@pytest.mark.asyncio
async def test_dist_strips_unused_css_last(registry, site) -> None:
    tools = FakeToolbox()
    await _scheduler(registry, site, tools).run("dist")

    assert tools.calls[-1] == "uncss"
    assert tools.uncss.urls == ["http://demo.dev"]


@pytest.mark.asyncio
async def test_lint_errors_fail_a_build(registry, site) -> None:
    tools = FakeToolbox(lint_ok=False)
    with pytest.raises(TaskFailedError) as exc:
        await _scheduler(registry, site, tools).run("lint")
    assert isinstance(exc.value.error, ToolExecutionError)


@pytest.mark.asyncio
async def test_lint_errors_are_only_reported_while_serving(registry, site) -> None:
    tools = FakeToolbox(lint_ok=False)
    report = await _scheduler(registry, site, tools, live=True).run("lint")
    assert report.ok is True


@pytest.mark.asyncio
async def test_favicon_generation_and_injection(registry, site, tmp_path: Path) -> None:
    master = tmp_path / "public" / "images" / "logo.png"
    master.parent.mkdir(parents=True)
    Image.new("RGBA", (260, 260), (0, 128, 255, 255)).save(master)
    layout = tmp_path / "craft" / "templates" / "_layout.twig"
    layout.parent.mkdir(parents=True)
    layout.write_text("<html><head><title>x</title></head><body></body></html>", encoding="utf-8")

    tools = FakeToolbox()
    tools.favicon = FaviconGenerator.from_params(site["favicon"])
    scheduler = _scheduler(registry, site, tools)
    await scheduler.run("generate-favicon")
    await scheduler.run("inject-favicon-markups")
    await scheduler.run("inject-favicon-markups")

    dest = tmp_path / "public" / "favicon"
    with Image.open(dest / "apple-touch-icon.png") as icon:
        assert icon.size == (180, 180)
    assert (dest / "favicon.ico").exists()
    assert (dest / "site.webmanifest").exists()
    text = layout.read_text(encoding="utf-8")
    assert text.count(MARK_START) == 1 and text.count(MARK_END) == 1
    assert text.index(MARK_END) < text.index("</head>")
    assert 'href="/favicon/favicon-32x32.png"' in text


@pytest.mark.asyncio
async def test_styles_recompiles_only_what_changed(registry, site, tmp_path: Path) -> None:
    base = tmp_path / "resources" / "styles"
    base.mkdir(parents=True)
    for name in ("app.scss", "admin.scss", "_vars.scss"):
        (base / name).write_text("$x: 1;", encoding="utf-8")
    tools = FakeToolbox()
    scheduler = _scheduler(registry, site, tools)
    await scheduler.run("styles")

    now = time.time()
    for out in (tmp_path / ".tmp" / "styles").iterdir():
        os.utime(out, (now - 10, now - 10))
    for name in ("app.scss", "_vars.scss"):
        os.utime(base / name, (now - 20, now - 20))
    os.utime(base / "admin.scss", (now - 5, now - 5))
    await scheduler.run("styles")

    os.utime(base / "_vars.scss", (now + 5, now + 5))
    await scheduler.run("styles")

    assert tools.styles.batches == [
        ["admin.scss", "app.scss"],
        ["admin.scss"],
        ["admin.scss", "app.scss"],
    ]
