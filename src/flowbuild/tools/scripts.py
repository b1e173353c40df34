"""Script transpile + ordered concatenation + minification, and linting."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..core import newer
from ..utils import mirror_path
from .base import ensure_parent, expand_argv, run_tool


class ScriptBundler:
    def __init__(self, transpile_cmd: Sequence[str], minify_cmd: Sequence[str]):
        self.transpile_cmd = list(transpile_cmd)
        self.minify_cmd = list(minify_cmd)

    @classmethod
    def from_params(cls, cfg: dict) -> "ScriptBundler":
        return cls(cfg["transpile"], cfg["minify"])

    async def bundle(
        self, files: Sequence[Path], tmp_dir: Path, out: Path
    ) -> Path:
        """Transpile `files` into `tmp_dir`, join them in the given order, minify to `out`."""
        files = [Path(f) for f in files]
        transpiled = [mirror_path(f, Path("."), tmp_dir) for f in files]
        stale = set(newer(files, tmp_dir, Path(".")))
        await asyncio.gather(
            *(
                self._transpile(src, dst)
                for src, dst in zip(files, transpiled)
                if src in stale
            )
        )
        joined = ensure_parent(tmp_dir / "bundle" / out.with_suffix("").with_suffix(".js").name)
        with open(joined, "w", encoding="utf-8") as f:
            for part in transpiled:
                f.write(part.read_text(encoding="utf-8"))
                f.write("\n")
        await run_tool(
            "uglify", expand_argv(self.minify_cmd, input=joined, output=ensure_parent(out))
        )
        return out

    async def _transpile(self, src: Path, dst: Path) -> None:
        await run_tool(
            "babel", expand_argv(self.transpile_cmd, input=src, output=ensure_parent(dst))
        )


@dataclass
class LintReport:
    ok: bool
    output: str = ""


class Linter:
    def __init__(self, tool: str, cmd: Sequence[str]):
        self.tool = tool
        self.cmd = list(cmd)

    async def lint(self, files: Sequence[Path]) -> LintReport:
        if not files:
            return LintReport(ok=True)
        code, out, err = await run_tool(
            self.tool, expand_argv(self.cmd, inputs=[str(f) for f in files]), check=False
        )
        text = (out + err).decode("utf-8", "replace").strip()
        return LintReport(ok=code == 0, output=text)
