"""Small helpers for building paths and URLs from config params."""

from __future__ import annotations

from pathlib import Path
from typing import Dict


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def slugify(s: str) -> str:
    return (
        (s or "").strip().lower().replace(" ", "_").replace("/", "-").replace("\\", "-")
    )


def project_name(p: Dict) -> str:
    return _get(p, "project", "name", default="flow")


def domain(p: Dict) -> str:
    return _get(p, "project", "domain", default=f"{project_name(p)}.dev")


def dev_url(p: Dict) -> str:
    return _get(p, "project", "dev_url", default=f"http://{project_name(p)}.dev")


def tmp_dir(p: Dict) -> Path:
    return Path(_get(p, "project", "tmp_dir", default=".tmp"))


def public_dir(p: Dict) -> Path:
    return Path(_get(p, "project", "public_dir", default="public"))


def runs_dir(p: Dict) -> Path:
    return Path(_get(p, "project", "runs_dir", default=".flow/runs"))


def section(p: Dict, name: str) -> Dict:
    return _get(p, name, default={}) or {}


def mirror_path(path: Path, base: Path, dest_dir: Path, suffix: str | None = None) -> Path:
    """Map `base/sub/file.ext` to `dest_dir/sub/file<suffix>`."""
    try:
        rel = Path(path).relative_to(base)
    except ValueError:
        rel = Path(Path(path).name)
    out = Path(dest_dir) / rel
    if suffix is not None:
        out = out.with_suffix(suffix)
    return out
