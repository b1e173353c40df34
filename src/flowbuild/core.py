from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union

from .errors import ConfigurationError, FilesystemError, NotFoundError
from .logging import get_logger
from .utils import mirror_path


log = get_logger("flowbuild.core")

Action = Callable[..., object]
# A stage of a sequence: one task name, or several that run concurrently
Stage = Union[str, Sequence[str]]


@dataclass(frozen=True)
class TaskSpec:
    name: str
    after: tuple[str, ...] = ()
    action: Optional[Action] = None
    description: str = ""


@dataclass(frozen=True)
class SequenceSpec:
    name: str
    stages: tuple[tuple[str, ...], ...]
    description: str = ""


def task(name: str, after: Iterable[str] = (), description: str = ""):
    """Decorator to declare a task on a function.

    The wrapped function receives a single `BuildContext` and may be a plain
    function or a coroutine function. Registration happens later, when a
    `TaskRegistry` collects the decorated functions.
    """

    def deco(fn: Action):
        doc = (fn.__doc__ or "").strip().splitlines()
        spec = TaskSpec(
            name=name,
            after=tuple(after),
            action=fn,
            description=description or (doc[0] if doc else ""),
        )
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


def sequence(name: str, *stages: Stage, description: str = "") -> SequenceSpec:
    """Declare a target whose stages run one after the other.

    `sequence("default", "clean", "styles", ["lint", "scripts"])` runs clean,
    then styles, then lint and scripts concurrently.
    """
    if not stages:
        raise ConfigurationError(f"Sequence '{name}' has no stages")
    norm = tuple((s,) if isinstance(s, str) else tuple(s) for s in stages)
    if any(not s for s in norm):
        raise ConfigurationError(f"Sequence '{name}' has an empty stage")
    return SequenceSpec(name=name, stages=norm, description=description)


class TaskRegistry:
    """Named tasks for one process. Built once, read-only after `validate()`."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskSpec] = {}
        self._sequences: dict[str, SequenceSpec] = {}
        self._sealed = False

    def _check_open(self, name: str) -> None:
        if self._sealed:
            raise ConfigurationError(f"Registry is sealed; cannot add '{name}'")
        if name in self._tasks or name in self._sequences:
            raise ConfigurationError(f"Task already registered: {name}")

    def register(
        self,
        name: str,
        after: Iterable[str] = (),
        action: Optional[Action] = None,
        description: str = "",
    ) -> TaskSpec:
        spec = TaskSpec(name=name, after=tuple(after), action=action, description=description)
        self.add(spec)
        return spec

    def add(self, spec: TaskSpec) -> None:
        self._check_open(spec.name)
        self._tasks[spec.name] = spec

    def add_sequence(self, seq: SequenceSpec) -> None:
        self._check_open(seq.name)
        self._sequences[seq.name] = seq

    def validate(self) -> None:
        """Expand sequences, check every reference, then seal the registry."""
        if self._sealed:
            return
        for seq in self._sequences.values():
            for step in (s for stage in seq.stages for s in stage):
                if step not in self._tasks:
                    raise ConfigurationError(
                        f"Sequence '{seq.name}' references unknown task '{step}'"
                    )
        for spec in list(self._tasks.values()):
            for dep in spec.after:
                if dep not in self._tasks and dep not in self._sequences:
                    raise ConfigurationError(
                        f"Task '{spec.name}' depends on unknown task '{dep}'"
                    )
        for seq in self._sequences.values():
            for scoped in self._expand(seq):
                if scoped.name in self._tasks:
                    raise ConfigurationError(f"Task already registered: {scoped.name}")
                self._tasks[scoped.name] = scoped
        self._sealed = True
        log.debug("Registry sealed with %d tasks", len(self._tasks))

    def _expand(self, seq: SequenceSpec) -> Iterator[TaskSpec]:
        steps = {s for stage in seq.stages for s in stage}

        def scoped(name: str) -> str:
            return f"{seq.name}:{name}" if name in steps else name

        previous: tuple[str, ...] = ()
        for stage in seq.stages:
            for step in stage:
                original = self._tasks[step]
                after = tuple(scoped(d) for d in original.after) + previous
                yield TaskSpec(
                    name=scoped(step),
                    after=tuple(dict.fromkeys(after)),
                    action=original.action,
                    description=original.description,
                )
            previous = tuple(scoped(s) for s in stage)
        yield TaskSpec(name=seq.name, after=previous, description=seq.description)

    def resolve(self, name: str) -> TaskSpec:
        try:
            return self._tasks[name]
        except KeyError:
            if name in self._sequences:
                raise ConfigurationError(
                    f"Sequence '{name}' is not expanded; call validate() first"
                ) from None
            raise NotFoundError(name) from None

    def names(self, include_scoped: bool = False) -> list[str]:
        names = set(self._tasks) | set(self._sequences)
        if not include_scoped:
            names = {n for n in names if ":" not in n}
        return sorted(names)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks or name in self._sequences

    def __len__(self) -> int:
        return len(self.names())


_BRACES = re.compile(r"\{([^{}]*,[^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """`a/*.{scss,css}` -> [`a/*.scss`, `a/*.css`]."""
    m = _BRACES.search(pattern)
    if not m:
        return [pattern]
    out: list[str] = []
    for alt in m.group(1).split(","):
        out.extend(expand_braces(pattern[: m.start()] + alt + pattern[m.end():]))
    return out


def _is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")


@dataclass(frozen=True)
class FileSet:
    """Ordered glob patterns, resolved against `root` at execution time."""

    patterns: tuple[str, ...]
    root: Path = field(default=Path("."))

    @classmethod
    def of(cls, patterns: Union[str, Iterable[str]], root: Union[str, Path] = ".") -> "FileSet":
        if isinstance(patterns, str):
            patterns = [patterns]
        return cls(patterns=tuple(patterns), root=Path(root))

    def _glob(self, pattern: str) -> list[Path]:
        pattern = pattern[2:] if pattern.startswith("./") else pattern
        root = self.root
        if Path(pattern).is_absolute():
            root = Path(Path(pattern).anchor)
            pattern = str(Path(pattern).relative_to(root))
        if not _is_glob(pattern):
            p = root / pattern
            return [p] if p.exists() else []
        return sorted(p for p in root.glob(pattern) if p.is_file())

    def resolve(self) -> list[Path]:
        included: list[Path] = []
        excluded: set[Path] = set()
        for raw in self.patterns:
            negate = raw.startswith("!")
            for pattern in expand_braces(raw[1:] if negate else raw):
                matches = self._glob(pattern)
                if negate:
                    excluded.update(matches)
                    continue
                if not matches and not _is_glob(pattern):
                    raise FilesystemError(f"Input path not found: {self.root / pattern}")
                included.extend(matches)
        return [p for p in dict.fromkeys(included) if p not in excluded]


def newer(paths: Iterable[Path], dest_dir: Path, base: Path, suffix: str | None = None) -> list[Path]:
    """Inputs whose mirrored output under `dest_dir` is missing or older."""
    out: list[Path] = []
    for p in paths:
        target = mirror_path(p, base, dest_dir, suffix)
        if not target.exists() or target.stat().st_mtime < Path(p).stat().st_mtime:
            out.append(Path(p))
    return out
