"""Collaborators the site tasks drive: compilers, optimisers, remote services."""

from __future__ import annotations

from dataclasses import dataclass

from ..utils import section
from .favicon import FaviconGenerator
from .images import ImageOptimizer
from .remote import RemoteAuditor, ScreenshotCapturer
from .scripts import Linter, ScriptBundler
from .styles import StyleCompiler, UnusedStyleStripper
from .templates import TemplateMinifier


@dataclass
class Toolbox:
    styles: StyleCompiler
    scripts: ScriptBundler
    script_linter: Linter
    images: ImageOptimizer
    templates: TemplateMinifier
    template_linter: Linter
    uncss: UnusedStyleStripper
    auditor: RemoteAuditor
    screenshots: ScreenshotCapturer
    favicon: FaviconGenerator

    @classmethod
    def from_params(cls, params: dict) -> "Toolbox":
        styles = StyleCompiler.from_params(section(params, "styles"))
        scripts_cfg = section(params, "scripts")
        templates_cfg = section(params, "templates")
        audit_cfg = section(params, "audit")
        shots_cfg = section(params, "screenshots")
        secrets = section(params, "secrets")
        return cls(
            styles=styles,
            scripts=ScriptBundler.from_params(scripts_cfg),
            script_linter=Linter("eslint", scripts_cfg["lint"]),
            images=ImageOptimizer.from_params(section(params, "images")),
            templates=TemplateMinifier(templates_cfg["minify"]),
            template_linter=Linter("htmlhint", templates_cfg["lint"]),
            uncss=UnusedStyleStripper(section(params, "uncss")["strip"], styles),
            auditor=RemoteAuditor(
                audit_cfg["endpoint"],
                api_key=secrets.get("pagespeed_key"),
                timeout=float(audit_cfg.get("timeout", 60.0)),
            ),
            screenshots=ScreenshotCapturer(
                shots_cfg["endpoint"],
                aliases=shots_cfg.get("aliases"),
                api_key=secrets.get("screenshot_key"),
                crop=bool(shots_cfg.get("crop", True)),
                delay=int(shots_cfg.get("delay", 0)),
                timeout=float(shots_cfg.get("timeout", 60.0)),
            ),
            favicon=FaviconGenerator.from_params(section(params, "favicon")),
        )


__all__ = [
    "Toolbox",
    "StyleCompiler",
    "UnusedStyleStripper",
    "ScriptBundler",
    "Linter",
    "ImageOptimizer",
    "TemplateMinifier",
    "RemoteAuditor",
    "ScreenshotCapturer",
    "FaviconGenerator",
]
