"""Favicon set generation from one master picture, and markup injection."""

from __future__ import annotations

import json
import re
from pathlib import Path

from PIL import Image

from ..cache import file_digest
from ..errors import FilesystemError
from .base import ensure_parent


PNG_ICONS = {
    "favicon-16x16.png": 16,
    "favicon-32x32.png": 32,
    "apple-touch-icon.png": 180,
    "android-chrome-192x192.png": 192,
    "android-chrome-512x512.png": 512,
    "mstile-150x150.png": 150,
}
ICO_SIZES = [(16, 16), (32, 32), (48, 48)]

MARK_START = "<!-- favicon:start -->"
MARK_END = "<!-- favicon:end -->"


class FaviconGenerator:
    def __init__(
        self,
        master: Path,
        dest: Path,
        icons_path: str = "/favicon",
        app_name: str = "",
        theme_color: str = "#ffffff",
        tile_color: str = "#da532c",
    ):
        self.master = Path(master)
        self.dest = Path(dest)
        self.icons_path = icons_path.rstrip("/")
        self.app_name = app_name
        self.theme_color = theme_color
        self.tile_color = tile_color

    @classmethod
    def from_params(cls, cfg: dict) -> "FaviconGenerator":
        return cls(
            master=Path(cfg["master"]),
            dest=Path(cfg["dest"]),
            icons_path=cfg.get("icons_path", "/favicon"),
            app_name=cfg.get("app_name", ""),
            theme_color=cfg.get("theme_color", "#ffffff"),
            tile_color=cfg.get("tile_color", "#da532c"),
        )

    def generate(self, data_file: Path) -> dict:
        """Write the icon set under `dest` and the markup/version to `data_file`."""
        if not self.master.is_file():
            raise FilesystemError(f"Favicon master picture not found: {self.master}")
        self.dest.mkdir(parents=True, exist_ok=True)
        with Image.open(self.master) as src:
            img = src.convert("RGBA")
        for name, size in PNG_ICONS.items():
            icon = img.resize((size, size), Image.Resampling.BICUBIC)
            icon.save(self.dest / name, "PNG", optimize=True)
        img.resize((48, 48), Image.Resampling.BICUBIC).save(
            self.dest / "favicon.ico", sizes=ICO_SIZES
        )
        manifest = {
            "name": self.app_name,
            "icons": [
                {"src": f"{self.icons_path}/android-chrome-{s}x{s}.png", "sizes": f"{s}x{s}", "type": "image/png"}
                for s in (192, 512)
            ],
            "theme_color": self.theme_color,
            "background_color": self.theme_color,
            "display": "browser",
        }
        (self.dest / "site.webmanifest").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        (self.dest / "browserconfig.xml").write_text(
            '<?xml version="1.0" encoding="utf-8"?>\n'
            "<browserconfig><msapplication><tile>"
            f'<square150x150logo src="{self.icons_path}/mstile-150x150.png"/>'
            f"<TileColor>{self.tile_color}</TileColor>"
            "</tile></msapplication></browserconfig>\n",
            encoding="utf-8",
        )
        data = {
            "version": file_digest(self.master)[:12],
            "favicon": {"html_code": self.markup()},
        }
        ensure_parent(Path(data_file)).write_text(json.dumps(data, indent=2), encoding="utf-8")
        return data

    def markup(self) -> str:
        p = self.icons_path
        return "\n".join(
            [
                f'<link rel="apple-touch-icon" sizes="180x180" href="{p}/apple-touch-icon.png">',
                f'<link rel="icon" type="image/png" sizes="32x32" href="{p}/favicon-32x32.png">',
                f'<link rel="icon" type="image/png" sizes="16x16" href="{p}/favicon-16x16.png">',
                f'<link rel="manifest" href="{p}/site.webmanifest">',
                f'<link rel="shortcut icon" href="{p}/favicon.ico">',
                f'<meta name="msapplication-TileColor" content="{self.tile_color}">',
                f'<meta name="msapplication-config" content="{p}/browserconfig.xml">',
                f'<meta name="theme-color" content="{self.theme_color}">',
            ]
        )


def inject_markup(template: Path, html: str) -> bool:
    """Put `html` between the favicon markers of `template`; returns True if changed."""
    if not template.is_file():
        raise FilesystemError(f"Template not found: {template}")
    text = template.read_text(encoding="utf-8")
    block = f"{MARK_START}\n{html}\n{MARK_END}"
    pattern = re.compile(re.escape(MARK_START) + r".*?" + re.escape(MARK_END), re.S)
    if pattern.search(text):
        updated = pattern.sub(lambda _: block, text, count=1)
    elif "</head>" in text:
        updated = text.replace("</head>", block + "\n</head>", 1)
    else:
        updated = block + "\n" + text
    if updated == text:
        return False
    template.write_text(updated, encoding="utf-8")
    return True
