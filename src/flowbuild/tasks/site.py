"""Build tasks for the Craft CMS site: styles, scripts, images, templates, audits.

Each task reads sources from `resources/` or `craft/templates/`, stages
intermediates under the working dir (`.tmp/` by default) and writes final
assets under the public dir. Targets are declared with `sequence(...)`.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from ..core import FileSet, newer, sequence, task
from ..errors import FilesystemError, ToolExecutionError
from ..logging import get_logger, log_size
from ..scheduler import BuildContext
from ..tools.favicon import inject_markup
from ..utils import dev_url, domain, mirror_path, public_dir, section, tmp_dir


log = get_logger("flowbuild.tasks.site")


@task(name="clean", description="Remove the working dir and generated assets")
def clean(ctx: BuildContext):
    for raw in section(ctx.params, "clean").get("paths", []):
        p = Path(raw)
        if p.is_dir():
            shutil.rmtree(p)
        elif p.exists():
            p.unlink()
        log.debug("Removed %s", p)


def _stale_styles(sources: list[Path], work: Path, base: Path) -> list[Path]:
    """Entry stylesheets to recompile.

    Partials have no output of their own; one edited after the oldest compiled
    entry may affect any entry, so every entry is rebuilt.
    """
    entries = [p for p in sources if not p.name.startswith("_")]
    partials = [p for p in sources if p.name.startswith("_")]
    built = [mirror_path(p, base, work, ".css") for p in entries]
    built = [p for p in built if p.exists()]
    if partials and built:
        oldest = min(p.stat().st_mtime for p in built)
        if any(p.stat().st_mtime > oldest for p in partials):
            return entries
    return newer(entries, work, base, ".css")


@task(name="styles", description="Compile, prefix and minify stylesheets")
async def styles(ctx: BuildContext):
    cfg = section(ctx.params, "styles")
    base = Path(cfg.get("base", "resources/styles"))
    work = tmp_dir(ctx.params) / "styles"
    files = _stale_styles(FileSet.of(cfg["src"]).resolve(), work, base)
    outputs = await ctx.tools.styles.compile(
        files, base, work, public_dir(ctx.params) / "styles"
    )
    log_size(log, "styles", outputs)


@task(name="lint", description="Lint scripts")
async def lint(ctx: BuildContext):
    files = FileSet.of(section(ctx.params, "scripts")["lint_src"]).resolve()
    report = await ctx.tools.script_linter.lint(files)
    if report.ok:
        return
    if ctx.live:
        # Serving: report and keep going
        log.warning("Lint errors:\n%s", report.output)
        return
    raise ToolExecutionError("eslint", report.output or "lint errors")


@task(name="scripts", description="Transpile, concatenate and minify scripts")
async def scripts(ctx: BuildContext):
    cfg = section(ctx.params, "scripts")
    files = FileSet.of(cfg["src"]).resolve()
    out = public_dir(ctx.params) / "scripts" / cfg.get("bundle", "app.min.js")
    await ctx.tools.scripts.bundle(files, tmp_dir(ctx.params) / "scripts", out)
    log_size(log, "scripts", [out])


@task(name="images", description="Optimize images")
async def images(ctx: BuildContext):
    cfg = section(ctx.params, "images")
    files = FileSet.of(cfg["src"]).resolve()
    outputs = await ctx.tools.images.optimize(
        files, Path(cfg.get("base", "resources/images")), public_dir(ctx.params) / "images"
    )
    log_size(log, "images", outputs)


@task(name="uncss", description="Remove unused CSS")
async def uncss(ctx: BuildContext):
    stylesheet = Path(section(ctx.params, "uncss").get("stylesheet", "public/styles/app.css"))
    # TODO: read reference pages from the site's sitemap instead of the home page only
    await ctx.tools.uncss.strip(stylesheet, [dev_url(ctx.params)], stylesheet)
    log_size(log, "uncss", [stylesheet])


@task(name="html", description="Minify templates in place")
async def html(ctx: BuildContext):
    files = FileSet.of(section(ctx.params, "templates")["src"]).resolve()
    outputs = await ctx.tools.templates.minify(files)
    log_size(log, "twig", outputs)


@task(name="htmlhint", description="Lint templates")
async def htmlhint(ctx: BuildContext):
    files = FileSet.of(section(ctx.params, "templates")["src"]).resolve()
    report = await ctx.tools.template_linter.lint(files)
    if not report.ok:
        log.warning("htmlhint:\n%s", report.output)


@task(name="pageres", description="Capture screenshots of the dev site")
async def pageres(ctx: BuildContext):
    cfg = section(ctx.params, "screenshots")
    outputs = await ctx.tools.screenshots.capture(
        dev_url(ctx.params), cfg.get("viewports", []), Path(cfg.get("dest", "readme_assets"))
    )
    log_size(log, "pageres", outputs)


@task(name="pagespeed", description="Run PageSpeed Insights")
async def pagespeed(ctx: BuildContext):
    strategy = section(ctx.params, "audit").get("strategy", "mobile")
    report = await ctx.tools.auditor.audit(domain(ctx.params), strategy)
    log.info("PageSpeed %s score for %s: %s", report.strategy, report.url, report.score)


@task(name="generate-favicon", description="Generate the favicon set")
def generate_favicon(ctx: BuildContext):
    data_file = Path(section(ctx.params, "favicon").get("data_file", "faviconData.json"))
    data = ctx.tools.favicon.generate(data_file)
    log.info("Favicons generated (version %s)", data["version"])


@task(name="inject-favicon-markups", description="Insert favicon markup into the layout")
def inject_favicon_markups(ctx: BuildContext):
    cfg = section(ctx.params, "favicon")
    data_file = Path(cfg.get("data_file", "faviconData.json"))
    if not data_file.is_file():
        raise FilesystemError(f"{data_file} missing; run generate-favicon first")
    markup = json.loads(data_file.read_text(encoding="utf-8"))["favicon"]["html_code"]
    layout = Path(cfg.get("layout", "craft/templates/_layout.twig"))
    changed = inject_markup(layout, markup)
    log.info("Favicon markup %s in %s", "updated" if changed else "unchanged", layout)


default = sequence(
    "default",
    "clean",
    "styles",
    ["lint", "scripts", "images"],
    description="Build production files",
)

# uncss reads public/styles, so it runs last, once nothing else writes there
dist = sequence(
    "dist",
    "clean",
    "styles",
    ["lint", "scripts", "images"],
    "uncss",
    description="Build production files with unused CSS removed",
)
