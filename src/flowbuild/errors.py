"""Error taxonomy for the build orchestrator."""

from __future__ import annotations

from typing import Sequence


class FlowError(Exception):
    """Base class for every error raised by flowbuild."""


class ConfigurationError(FlowError):
    """The task graph or config is unusable. Raised before any task runs."""


class NotFoundError(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"Unknown task: {name}")
        self.name = name


class CyclicDependencyError(ConfigurationError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__("Cyclic dependency: " + " -> ".join(self.cycle))


class ToolExecutionError(FlowError):
    """An external tool reported failure (syntax error, non-zero exit...)."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.message = message


class FilesystemError(FlowError):
    """Missing input path, permission problem, unreadable file."""


class NetworkError(FlowError):
    """A remote collaborator (audit, screenshot, proxy) could not be reached."""


class TaskFailedError(FlowError):
    """Wraps the error raised by a task action with the task's name."""

    def __init__(self, task: str, error: BaseException):
        super().__init__(f"Task '{task}' failed: {error}")
        self.task = task
        self.error = error
