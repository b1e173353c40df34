# tests/test_fileset.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from flowbuild.core import FileSet, expand_braces, newer
from flowbuild.errors import FilesystemError


def _touch(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_declared_order_is_kept_for_concatenation(tmp_path: Path) -> None:
    lib = _touch(tmp_path / "vendor" / "z-lib.js")
    app = _touch(tmp_path / "src" / "app.js")

    files = FileSet.of(["vendor/z-lib.js", "src/*.js"], root=tmp_path).resolve()
    assert files == [lib, app]


def test_duplicates_keep_first_position(tmp_path: Path) -> None:
    a = _touch(tmp_path / "src" / "a.js")
    b = _touch(tmp_path / "src" / "b.js")

    files = FileSet.of(["src/b.js", "src/*.js"], root=tmp_path).resolve()
    assert files == [b, a]


def test_double_star_matches_top_level_and_nested(tmp_path: Path) -> None:
    top = _touch(tmp_path / "styles" / "app.scss")
    nested = _touch(tmp_path / "styles" / "pages" / "home.scss")
    _touch(tmp_path / "styles" / "notes.txt")

    files = FileSet.of("styles/**/*.scss", root=tmp_path).resolve()
    assert set(files) == {top, nested}


def test_brace_alternatives_and_exclusions(tmp_path: Path) -> None:
    scss = _touch(tmp_path / "styles" / "app.scss")
    css = _touch(tmp_path / "styles" / "print.css")
    _touch(tmp_path / "styles" / "legacy.css")

    files = FileSet.of(
        ["styles/*.{scss,css}", "!styles/legacy.css"], root=tmp_path
    ).resolve()
    assert files == [scss, css]


def test_missing_literal_path_is_a_filesystem_error(tmp_path: Path) -> None:
    with pytest.raises(FilesystemError):
        FileSet.of("node_modules/bootstrap/dist/js/bootstrap.js", root=tmp_path).resolve()


def test_glob_without_matches_is_empty(tmp_path: Path) -> None:
    assert FileSet.of("resources/images/**/*", root=tmp_path).resolve() == []


def test_expand_braces_nested() -> None:
    assert expand_braces("a/*.{x,y}") == ["a/*.x", "a/*.y"]
    assert expand_braces("{a,b}/{c,d}") == ["a/c", "a/d", "b/c", "b/d"]
    assert expand_braces("plain/*.js") == ["plain/*.js"]


def test_newer_selects_missing_and_stale_outputs(tmp_path: Path) -> None:
    base = tmp_path / "src"
    fresh = _touch(base / "fresh.scss")
    stale = _touch(base / "stale.scss")
    missing = _touch(base / "missing.scss")
    dest = tmp_path / "out"
    fresh_out = _touch(dest / "fresh.css")
    stale_out = _touch(dest / "stale.css")

    now = fresh.stat().st_mtime
    os.utime(fresh_out, (now + 10, now + 10))
    os.utime(stale_out, (now - 10, now - 10))

    assert newer([fresh, stale, missing], dest, base, ".css") == [stale, missing]
