"""Config loading: built-in defaults deep-merged with a YAML file and `.env`."""

from __future__ import annotations

import copy
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError


DEFAULTS: dict = {
    "project": {
        "name": "flow",
        "tmp_dir": ".tmp",
        "public_dir": "public",
        "runs_dir": ".flow/runs",
    },
    "clean": {"paths": [".tmp", "public/styles", "public/scripts"]},
    "styles": {
        "src": ["resources/styles/**/*.scss", "resources/styles/**/*.css"],
        "base": "resources/styles",
        "browsers": [
            "ie >= 10",
            "ie_mob >= 10",
            "ff >= 30",
            "chrome >= 34",
            "safari >= 7",
            "opera >= 23",
            "ios >= 7",
            "android >= 4.4",
            "bb >= 10",
        ],
        "compile": ["sass", "--source-map", "{input}", "{output}"],
        "prefix": ["postcss", "{input}", "--use", "autoprefixer", "--map", "-o", "{output}"],
        "minify": ["postcss", "{input}", "--use", "cssnano", "--map", "-o", "{output}"],
    },
    "scripts": {
        "src": [
            "node_modules/bootstrap/dist/js/bootstrap.js",
            "resources/scripts/app.js",
        ],
        "bundle": "app.min.js",
        "transpile": ["babel", "{input}", "--out-file", "{output}"],
        "minify": ["terser", "{input}", "--comments", "some", "--source-map", "-o", "{output}"],
        "lint_src": ["resources/scripts/**/*.js"],
        "lint": ["eslint", "{inputs}"],
    },
    "images": {
        "src": ["resources/images/**/*"],
        "base": "resources/images",
        "progressive": True,
        "interlaced": True,
        "cache_dir": ".flow/cache/images",
    },
    "templates": {
        "src": ["craft/templates/**/*.twig"],
        "minify": [
            "html-minifier-terser",
            "--remove-comments",
            "--collapse-boolean-attributes",
            "--remove-attribute-quotes",
            "--remove-redundant-attributes",
            "--remove-empty-attributes",
            "--remove-script-type-attributes",
            "--remove-style-link-type-attributes",
            "--remove-optional-tags",
            "-o",
            "{output}",
            "{input}",
        ],
        "lint": [
            "htmlhint",
            "--rules",
            "doctype-first:false,tag-self-close:false,tagname-lowercase:true,id-unique:true",
            "{inputs}",
        ],
    },
    "uncss": {
        "stylesheet": "public/styles/app.css",
        "strip": ["uncss", "--stylesheets", "{input}", "{urls}"],
    },
    "audit": {
        "endpoint": "https://www.googleapis.com/pagespeedonline/v5/runPagespeed",
        "strategy": "mobile",
        "timeout": 60.0,
    },
    "screenshots": {
        "endpoint": "https://api.screenshotmachine.com/?url={url}&dimension={viewport}",
        "viewports": ["1024x768", "ipad", "iphone 5s"],
        "aliases": {"ipad": "768x1024", "iphone 5s": "320x568"},
        "crop": True,
        "delay": 2,
        "dest": "readme_assets",
        "timeout": 60.0,
    },
    "favicon": {
        "master": "public/images/logo.png",
        "dest": "public/favicon",
        "icons_path": "/favicon",
        "data_file": "faviconData.json",
        "layout": "craft/templates/_layout.twig",
        "app_name": "Craft CMS",
        "theme_color": "#ffffff",
        "tile_color": "#da532c",
    },
    "watch": [
        {"patterns": ["craft/templates/**/*.twig"], "tasks": ["htmlhint"]},
        {"patterns": ["resources/styles/**/*.{scss,css}"], "tasks": ["styles"]},
        {"patterns": ["resources/scripts/**/*.js"], "tasks": ["lint", "scripts"]},
        {"patterns": ["resources/images/**/*"], "tasks": ["images"]},
    ],
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
        "proxy": False,
        "interval": 0.5,
        "debounce": 0.2,
        "log_prefix": "Flow",
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def load_config(path: str | Path | None, env_file: str | Path | None = ".env") -> dict:
    """Read the YAML config at `path` over DEFAULTS; a missing file means defaults."""
    if env_file and Path(env_file).exists():
        load_dotenv(env_file)
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            try:
                with open(p, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid config {p}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigurationError(f"Config {p} must be a mapping")
    params = deep_merge(DEFAULTS, data)
    params.setdefault("secrets", {})
    params["secrets"].setdefault("pagespeed_key", os.getenv("FLOW_PAGESPEED_KEY"))
    params["secrets"].setdefault("screenshot_key", os.getenv("FLOW_SCREENSHOT_KEY"))
    return params
