"""Stylesheet compilation (sass -> autoprefixer -> cssnano) and uncss.

Source maps are whatever the argv templates ask the tools for; each one sits
beside its output as `<name>.map`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Sequence

from ..errors import FilesystemError
from ..utils import mirror_path
from .base import ensure_parent, expand_argv, run_tool


class StyleCompiler:
    def __init__(
        self,
        compile_cmd: Sequence[str],
        prefix_cmd: Sequence[str],
        minify_cmd: Sequence[str],
        browsers: Sequence[str] = (),
    ):
        self.compile_cmd = list(compile_cmd)
        self.prefix_cmd = list(prefix_cmd)
        self.minify_cmd = list(minify_cmd)
        self.browsers = list(browsers)

    @classmethod
    def from_params(cls, cfg: dict) -> "StyleCompiler":
        return cls(cfg["compile"], cfg["prefix"], cfg["minify"], cfg.get("browsers", []))

    @property
    def env(self) -> dict:
        return {"BROWSERSLIST": ", ".join(self.browsers)} if self.browsers else {}

    async def compile(
        self, files: Sequence[Path], base: Path, tmp_dir: Path, public_dir: Path
    ) -> list[Path]:
        """Compile each entry stylesheet; returns the minified public outputs."""
        # Partials are pulled in by their importers.
        entries = [Path(f) for f in files if not Path(f).name.startswith("_")]
        return list(
            await asyncio.gather(
                *(self._one(f, base, tmp_dir, public_dir) for f in entries)
            )
        )

    async def _one(self, src: Path, base: Path, tmp_dir: Path, public_dir: Path) -> Path:
        prefixed = ensure_parent(mirror_path(src, base, tmp_dir, ".css"))
        source = src
        if src.suffix == ".scss":
            raw = prefixed.with_name(prefixed.stem + ".raw.css")
            await run_tool("sass", expand_argv(self.compile_cmd, input=src, output=raw))
            source = raw
        await run_tool(
            "autoprefixer",
            expand_argv(self.prefix_cmd, input=source, output=prefixed),
            env=self.env,
        )
        if source != src:
            source.unlink(missing_ok=True)
            source.with_name(source.name + ".map").unlink(missing_ok=True)
        out = ensure_parent(mirror_path(src, base, public_dir, ".css"))
        await self.minify(prefixed, out)
        return out

    async def minify(self, src: Path, out: Path) -> None:
        await run_tool("cssnano", expand_argv(self.minify_cmd, input=src, output=out))


class UnusedStyleStripper:
    """Drops selectors that none of the reference pages use."""

    def __init__(self, strip_cmd: Sequence[str], minifier: StyleCompiler):
        self.strip_cmd = list(strip_cmd)
        self.minifier = minifier

    async def strip(self, stylesheet: Path, urls: Sequence[str], out: Path) -> Path:
        if not stylesheet.exists():
            raise FilesystemError(f"Stylesheet not found: {stylesheet}")
        _, stdout, _ = await run_tool(
            "uncss", expand_argv(self.strip_cmd, input=stylesheet, urls=list(urls))
        )
        stripped = ensure_parent(out.with_name(out.stem + ".uncss.css"))
        stripped.write_bytes(stdout)
        try:
            await self.minifier.minify(stripped, ensure_parent(out))
        finally:
            stripped.unlink(missing_ok=True)
        return out
