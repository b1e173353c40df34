"""Watch mode: file changes -> scheduler -> reload notifications.

Three stages joined by asyncio queues, all on one event loop:

- `poll` snapshots the watched file sets and emits `ChangeEvent`s,
- `rebuild` debounces and coalesces changes, runs the bound tasks,
- `deliver` hands `ReloadEvent`s for successful rebuilds to the notifier.

Rebuilds never overlap; changes that arrive during one wait in the queue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Union

from .core import FileSet
from .errors import ConfigurationError, FilesystemError, FlowError
from .logging import get_logger
from .scheduler import Scheduler


log = get_logger("flowbuild.watch")


@dataclass(frozen=True)
class WatchBinding:
    patterns: tuple[str, ...]
    tasks: tuple[str, ...]
    reload: bool = True

    @classmethod
    def from_params(cls, entries: Iterable[dict]) -> list["WatchBinding"]:
        bindings = []
        for entry in entries or []:
            patterns, tasks = entry.get("patterns"), entry.get("tasks")
            if not patterns or not tasks:
                raise ConfigurationError(f"Watch entry needs patterns and tasks: {entry}")
            bindings.append(
                cls(
                    patterns=tuple(patterns),
                    tasks=tuple(tasks),
                    reload=bool(entry.get("reload", True)),
                )
            )
        return bindings


@dataclass(frozen=True)
class ChangeEvent:
    path: Path
    binding: int


@dataclass(frozen=True)
class ReloadEvent:
    tasks: tuple[str, ...]
    paths: tuple[str, ...]


class ReloadNotifier(Protocol):
    def notify(self, event: ReloadEvent) -> None: ...


Snapshot = dict[Path, tuple[int, int]]


class WatchSession:
    def __init__(
        self,
        scheduler: Scheduler,
        bindings: Sequence[WatchBinding],
        notifier: ReloadNotifier,
        interval: float = 0.5,
        debounce: float = 0.2,
        root: Union[str, Path] = ".",
    ):
        self.scheduler = scheduler
        self.bindings = list(bindings)
        self.notifier = notifier
        self.interval = max(0.01, float(interval))
        self.debounce = max(0.0, float(debounce))
        self.filesets = [FileSet.of(b.patterns, root) for b in self.bindings]
        self.changes: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.reloads: asyncio.Queue[ReloadEvent] = asyncio.Queue()
        self.ready = asyncio.Event()
        self.rebuilds = 0
        self.failures = 0
        self._snapshots: list[Snapshot] = []

    def validate(self) -> None:
        for binding in self.bindings:
            self.scheduler.plan(*binding.tasks)

    def _scan(self, index: int) -> Snapshot:
        try:
            files = self.filesets[index].resolve()
        except FilesystemError as e:
            log.warning("Watch pattern unavailable: %s", e)
            return {}
        snap: Snapshot = {}
        for p in files:
            try:
                st = p.stat()
            except FileNotFoundError:
                continue
            snap[p] = (st.st_size, st.st_mtime_ns)
        return snap

    def submit(self, path: Union[str, Path], binding: Optional[int] = None) -> int:
        """Queue a change by hand; returns how many bindings it matched."""
        path = Path(path)
        indexes = (
            [binding]
            if binding is not None
            else [i for i in range(len(self.bindings)) if path in self._scan(i)]
        )
        for i in indexes:
            self.changes.put_nowait(ChangeEvent(path=path, binding=i))
        return len(indexes)

    async def poll(self) -> None:
        self._snapshots = [self._scan(i) for i in range(len(self.bindings))]
        self.ready.set()
        log.info("Watching %d bindings", len(self.bindings))
        while True:
            await asyncio.sleep(self.interval)
            for i, old in enumerate(self._snapshots):
                new = self._scan(i)
                changed = [p for p, sig in new.items() if old.get(p) != sig]
                changed += [p for p in old if p not in new]
                for p in changed:
                    log.debug("Changed: %s", p)
                    self.changes.put_nowait(ChangeEvent(path=p, binding=i))
                self._snapshots[i] = new

    async def rebuild(self) -> None:
        while True:
            first = await self.changes.get()
            if self.debounce:
                await asyncio.sleep(self.debounce)
            events = [first]
            while not self.changes.empty():
                events.append(self.changes.get_nowait())
            grouped: dict[int, list[str]] = {}
            for ev in events:
                grouped.setdefault(ev.binding, [])
                if str(ev.path) not in grouped[ev.binding]:
                    grouped[ev.binding].append(str(ev.path))
            for index in sorted(grouped):
                await self._rebuild_one(self.bindings[index], grouped[index])

    async def _rebuild_one(self, binding: WatchBinding, paths: list[str]) -> None:
        log.info("%s changed, running %s", ", ".join(paths), ", ".join(binding.tasks))
        try:
            await self.scheduler.run(*binding.tasks)
        except (FlowError, OSError) as e:
            self.failures += 1
            log.error("Rebuild failed, not reloading: %s", e)
            return
        self.rebuilds += 1
        if binding.reload:
            self.reloads.put_nowait(ReloadEvent(tasks=binding.tasks, paths=tuple(paths)))

    async def deliver(self) -> None:
        while True:
            event = await self.reloads.get()
            self.notifier.notify(event)

    async def run(self) -> None:
        """Watch until cancelled."""
        self.validate()
        await asyncio.gather(self.poll(), self.rebuild(), self.deliver())
