# tests/test_registry.py

from __future__ import annotations

import pytest

from flowbuild.core import TaskRegistry, sequence, task
from flowbuild.errors import ConfigurationError, NotFoundError


def noop(ctx) -> None:
    pass


def test_duplicate_name_is_rejected() -> None:
    registry = TaskRegistry()
    registry.register("styles", action=noop)
    with pytest.raises(ConfigurationError):
        registry.register("styles", action=noop)


def test_sequence_name_clashing_with_task_is_rejected() -> None:
    registry = TaskRegistry()
    registry.register("default", action=noop)
    with pytest.raises(ConfigurationError):
        registry.add_sequence(sequence("default", "default"))


def test_missing_prerequisite_fails_on_validate_not_on_register() -> None:
    registry = TaskRegistry()
    registry.register("scripts", after=["lint"], action=noop)  # lint not yet known
    registry.register("lint", action=noop)
    registry.validate()

    broken = TaskRegistry()
    broken.register("scripts", after=["never"], action=noop)
    with pytest.raises(ConfigurationError, match="never"):
        broken.validate()


def test_sequence_with_unknown_step_fails_validation() -> None:
    registry = TaskRegistry()
    registry.register("clean", action=noop)
    registry.add_sequence(sequence("default", "clean", ["styles"]))
    with pytest.raises(ConfigurationError, match="styles"):
        registry.validate()


def test_resolve_unknown_raises_not_found() -> None:
    registry = TaskRegistry()
    registry.validate()
    with pytest.raises(NotFoundError):
        registry.resolve("nope")


def test_sealed_registry_rejects_new_tasks() -> None:
    registry = TaskRegistry()
    registry.register("clean", action=noop)
    registry.validate()
    with pytest.raises(ConfigurationError):
        registry.register("late", action=noop)


def test_sequence_expands_into_scoped_steps() -> None:
    registry = TaskRegistry()
    for name in ("clean", "styles", "lint", "scripts"):
        registry.register(name, action=noop)
    registry.add_sequence(sequence("default", "clean", "styles", ["lint", "scripts"]))
    registry.validate()

    assert registry.resolve("default:clean").after == ()
    assert registry.resolve("default:styles").after == ("default:clean",)
    assert registry.resolve("default:lint").after == ("default:styles",)
    assert registry.resolve("default").after == ("default:lint", "default:scripts")
    assert registry.resolve("default:scripts").action is noop
    # The plain task keeps no staging
    assert registry.resolve("styles").after == ()
    assert registry.names() == ["clean", "default", "lint", "scripts", "styles"]


def test_sequence_rewrites_dependencies_between_its_own_steps() -> None:
    registry = TaskRegistry()
    registry.register("clean", action=noop)
    registry.register("styles", action=noop)
    registry.register("uncss", after=["styles"], action=noop)
    registry.add_sequence(sequence("dist", "clean", "styles", "uncss"))
    registry.validate()

    assert registry.resolve("dist:uncss").after == ("dist:styles",)


def test_empty_sequence_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        sequence("empty")
    with pytest.raises(ConfigurationError):
        sequence("empty", [])


def test_task_decorator_only_attaches_metadata() -> None:
    @task(name="images", after=["clean"])
    def images(ctx):
        """Optimize images.

        Longer text.
        """

    spec = images._task_spec
    assert spec.name == "images"
    assert spec.after == ("clean",)
    assert spec.action is images
    assert spec.description == "Optimize images."
