"""Task-graph build orchestrator for static site assets.

Provides Task/Sequence primitives, an explicit registry, a batch scheduler,
watch mode with live reload, and a Typer CLI.
"""

from .core import FileSet, SequenceSpec, TaskRegistry, TaskSpec, sequence, task  # re-export for convenience
from .scheduler import BuildContext, ExecutionPlan, Scheduler, build_plan

__all__ = [
    "FileSet",
    "SequenceSpec",
    "TaskRegistry",
    "TaskSpec",
    "sequence",
    "task",
    "BuildContext",
    "ExecutionPlan",
    "Scheduler",
    "build_plan",
]
