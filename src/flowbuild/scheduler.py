"""Plan resolution and batch-sequential execution of the task graph.

Fail-fast cancels the siblings of a failed task. Coroutine actions stop at
their next await (their subprocesses are killed). A plain-function action
runs in a worker thread that cannot be interrupted: it is recorded as
`abandoned` and may go on writing outputs until it returns. Thread work
started from inside a coroutine action, like the image encodes, is not
stopped either.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .core import TaskRegistry, TaskSpec
from .errors import ConfigurationError, CyclicDependencyError, NotFoundError, TaskFailedError
from .logging import get_logger
from .utils import runs_dir, slugify


@dataclass(frozen=True)
class ExecutionPlan:
    targets: tuple[str, ...]
    batches: tuple[tuple[str, ...], ...]

    @property
    def tasks(self) -> list[str]:
        return [name for batch in self.batches for name in batch]

    def __len__(self) -> int:
        return len(self.tasks)


def build_plan(registry: TaskRegistry, *targets: str) -> ExecutionPlan:
    """Resolve `targets` and their transitive prerequisites into batches.

    A task lands in the batch after the deepest of its prerequisites, so every
    task appears exactly once and after everything it waits for.
    """
    if not targets:
        raise ConfigurationError("No target given")
    depth: dict[str, int] = {}
    visiting: list[str] = []

    def visit(name: str, parent: Optional[str]) -> int:
        if name in depth:
            return depth[name]
        if name in visiting:
            start = visiting.index(name)
            raise CyclicDependencyError(visiting[start:] + [name])
        try:
            spec = registry.resolve(name)
        except NotFoundError:
            if parent is None:
                raise
            raise ConfigurationError(
                f"Task '{parent}' depends on unknown task '{name}'"
            ) from None
        visiting.append(name)
        level = 0
        for dep in spec.after:
            level = max(level, visit(dep, name) + 1)
        visiting.pop()
        depth[name] = level
        return level

    for target in targets:
        visit(target, None)

    batches: list[list[str]] = [[] for _ in range(max(depth.values()) + 1)]
    for name, level in depth.items():
        batches[level].append(name)
    return ExecutionPlan(targets=tuple(targets), batches=tuple(tuple(b) for b in batches))


@dataclass
class BuildContext:
    """What every task action receives."""

    params: dict
    tools: Any = None
    live: bool = False


@dataclass
class StepResult:
    name: str
    status: str
    duration: float = 0.0
    error: Optional[str] = None


@dataclass
class RunReport:
    run_id: str
    plan: ExecutionPlan
    steps: list[StepResult] = field(default_factory=list)
    ok: bool = True


class Scheduler:
    def __init__(self, registry: TaskRegistry, context: BuildContext, name: str = "flow"):
        self.registry = registry
        self.context = context
        self.name = name
        self.logger = get_logger(f"flowbuild.{self.name}")

    def plan(self, *targets: str) -> ExecutionPlan:
        return build_plan(self.registry, *targets)

    async def run(self, *targets: str) -> RunReport:
        """Run `targets` with fail-fast semantics; raises `TaskFailedError`."""
        plan = self.plan(*targets)
        run_id = time.strftime("%Y%m%d-%H%M%S")
        report = RunReport(run_id=run_id, plan=plan)
        self.logger.info(
            "Plan for %s: %s",
            ", ".join(targets),
            " → ".join("[" + ", ".join(b) + "]" for b in plan.batches),
        )
        try:
            for batch in plan.batches:
                await self._run_batch(batch, report)
        except TaskFailedError:
            report.ok = False
            raise
        finally:
            self._write_state(report)
        return report

    async def _run_batch(self, batch: tuple[str, ...], report: RunReport) -> None:
        pending = {
            asyncio.ensure_future(self._run_step(self.registry.resolve(name), report)): name
            for name in batch
        }
        done, rest = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
        failed = [t for t in done if not t.cancelled() and t.exception() is not None]
        if not failed:
            return
        for t in rest:
            t.cancel()
        if rest:
            await asyncio.gather(*rest, return_exceptions=True)
            recorded = {s.name for s in report.steps}
            for t in rest:
                # Never got to start
                if pending[t] not in recorded:
                    report.steps.append(StepResult(name=pending[t], status="cancelled"))
        raise failed[0].exception()

    async def _run_step(self, spec: TaskSpec, report: RunReport) -> None:
        step_logger = get_logger(f"flowbuild.{self.name}.{spec.name}")
        if spec.action is None:
            report.steps.append(StepResult(name=spec.name, status="ok"))
            return
        step_logger.info("Run: %s", spec.name)
        started = time.monotonic()
        try:
            if inspect.iscoroutinefunction(spec.action):
                await spec.action(self.context)
            else:
                result = await asyncio.to_thread(spec.action, self.context)
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            status = "cancelled" if inspect.iscoroutinefunction(spec.action) else "abandoned"
            step_logger.warning("%s: %s", status.capitalize(), spec.name)
            report.steps.append(
                StepResult(name=spec.name, status=status, duration=time.monotonic() - started)
            )
            raise
        except Exception as e:  # noqa: BLE001
            duration = time.monotonic() - started
            step_logger.error("Step failed (%s): %s", spec.name, e)
            report.steps.append(
                StepResult(name=spec.name, status="error", duration=duration, error=str(e))
            )
            raise TaskFailedError(spec.name, e) from e
        duration = time.monotonic() - started
        step_logger.info("Done: %s (%.2fs)", spec.name, duration)
        report.steps.append(StepResult(name=spec.name, status="ok", duration=duration))

    def _write_state(self, report: RunReport) -> None:
        base = runs_dir(self.context.params)
        run_dir = base / slugify("+".join(report.plan.targets)) / report.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        state = {
            "pipeline": self.name,
            "run_id": report.run_id,
            "targets": list(report.plan.targets),
            "ok": report.ok,
            "steps": [
                {
                    "name": s.name,
                    "status": s.status,
                    "duration": round(s.duration, 3),
                    "error": s.error,
                }
                for s in report.steps
            ],
        }
        with open(run_dir / "state.json", "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
