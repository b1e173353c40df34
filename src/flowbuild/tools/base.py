"""Running external command line tools from argv templates."""

from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path
from typing import Mapping, Optional, Sequence

from ..errors import ConfigurationError, ToolExecutionError
from ..logging import get_logger


log = get_logger("flowbuild.tools")

_PLACEHOLDER = re.compile(r"\{([A-Za-z_]\w*)\}")


def expand_argv(template: Sequence[str], **values) -> list[str]:
    """Fill `{name}` placeholders in an argv template.

    An item that is exactly `{name}` bound to a list expands in place into
    several arguments; elsewhere a value is substituted as a string. Any
    other brace (`{}`, JSON, CSS) is left as written.
    """
    def fill(m: re.Match) -> str:
        if m.group(1) not in values:
            raise ConfigurationError(f"Unknown placeholder {m.group(0)} in {list(template)}")
        return _flat(values[m.group(1)])

    argv: list[str] = []
    for item in template:
        whole = _PLACEHOLDER.fullmatch(item)
        if whole and isinstance(values.get(whole.group(1)), (list, tuple)):
            argv.extend(str(v) for v in values[whole.group(1)])
            continue
        argv.append(_PLACEHOLDER.sub(fill, item))
    return argv


def _flat(value) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


async def run_tool(
    tool: str,
    argv: Sequence[str],
    env: Optional[Mapping[str, str]] = None,
    check: bool = True,
) -> tuple[int, bytes, bytes]:
    """Run `argv`, returning (returncode, stdout, stderr).

    A missing executable, or a non-zero exit when `check` is set, raises
    `ToolExecutionError`.
    """
    log.debug("%s: %s", tool, " ".join(argv))
    full_env = dict(os.environ)
    full_env.update(env or {})
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env,
        )
    except FileNotFoundError as e:
        raise ToolExecutionError(tool, f"executable not found: {argv[0]}") from e
    try:
        out, err = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    if check and proc.returncode != 0:
        message = (err or out).decode("utf-8", "replace").strip()
        raise ToolExecutionError(tool, message or f"exited with code {proc.returncode}")
    return proc.returncode, out, err


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path

