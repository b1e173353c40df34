# tests/test_cli.py

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from flowbuild.cli import app


runner = CliRunner()


@pytest.fixture()
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "base.yaml").write_text(
        yaml.safe_dump({"project": {"name": "demo"}}), encoding="utf-8"
    )
    return tmp_path


def test_list_shows_tasks_and_targets(project: Path) -> None:
    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0, result.output
    for name in ("clean", "styles", "scripts", "images", "default", "dist", "generate-favicon"):
        assert f"- {name}" in result.output
    assert "default:styles" not in result.output


def test_plan_prints_batches(project: Path) -> None:
    result = runner.invoke(app, ["plan", "dist"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines == [
        "1. dist:clean",
        "2. dist:styles",
        "3. dist:lint, dist:scripts, dist:images",
        "4. dist:uncss",
        "5. dist",
    ]


def test_run_clean_removes_generated_dirs(project: Path) -> None:
    for d in (".tmp/styles", "public/styles", "public/scripts", "public/images"):
        (project / d).mkdir(parents=True)

    result = runner.invoke(app, ["run", "clean"])

    assert result.exit_code == 0, result.output
    assert not (project / ".tmp").exists()
    assert not (project / "public" / "styles").exists()
    assert (project / "public" / "images").exists()
    assert list((project / ".flow" / "runs").rglob("state.json"))


def test_unknown_target_exits_with_configuration_error(project: Path) -> None:
    result = runner.invoke(app, ["run", "nope"])

    assert result.exit_code == 2
    assert "Unknown task: nope" in result.output


def test_failing_task_is_named_and_exits_non_zero(project: Path) -> None:
    result = runner.invoke(app, ["run", "inject-favicon-markups"])

    assert result.exit_code == 1
    assert "inject-favicon-markups" in result.output
    assert "faviconData.json missing" in result.output
