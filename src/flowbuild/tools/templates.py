from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Sequence

from .base import expand_argv, run_tool


class TemplateMinifier:
    """Rewrites templates in place through html-minifier."""

    def __init__(self, cmd: Sequence[str]):
        self.cmd = list(cmd)

    async def minify(self, files: Sequence[Path]) -> list[Path]:
        return list(await asyncio.gather(*(self._one(Path(f)) for f in files)))

    async def _one(self, src: Path) -> Path:
        staged = src.with_name(f".{src.name}.min")
        try:
            await run_tool("htmlmin", expand_argv(self.cmd, input=src, output=staged))
            os.replace(staged, src)
        finally:
            staged.unlink(missing_ok=True)
        return src
