"""Lossless image recompression with Pillow behind a content cache."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, UnidentifiedImageError

from ..cache import ContentCache
from ..errors import FilesystemError
from ..logging import get_logger
from ..utils import mirror_path
from .base import ensure_parent


log = get_logger("flowbuild.tools.images")

ENCODABLE = {"JPEG", "PNG", "GIF"}


class ImageOptimizer:
    def __init__(self, cache: ContentCache, progressive: bool = True, interlaced: bool = True):
        self.cache = cache
        self.progressive = progressive
        self.interlaced = interlaced
        # Number of real encoder runs, cache hits excluded
        self.encodes = 0

    @classmethod
    def from_params(cls, cfg: dict) -> "ImageOptimizer":
        return cls(
            ContentCache(Path(cfg.get("cache_dir", ".flow/cache/images"))),
            progressive=bool(cfg.get("progressive", True)),
            interlaced=bool(cfg.get("interlaced", True)),
        )

    @property
    def options(self) -> dict:
        return {"progressive": self.progressive, "interlaced": self.interlaced}

    async def optimize(self, files: Sequence[Path], base: Path, dest_dir: Path) -> list[Path]:
        """Encode `files` in worker threads; cancelling does not stop encodes already running."""
        return list(
            await asyncio.gather(
                *(asyncio.to_thread(self._one, Path(f), base, dest_dir) for f in files)
            )
        )

    def _one(self, src: Path, base: Path, dest_dir: Path) -> Path:
        try:
            data = src.read_bytes()
        except OSError as e:
            raise FilesystemError(f"Cannot read {src}: {e}") from e
        out = ensure_parent(mirror_path(src, base, dest_dir))
        result = self.cache.get(data, self.options)
        if result is None:
            encoded = self._encode(data)
            if encoded is None:
                log.debug("Copying %s unchanged", src)
                out.write_bytes(data)
                return out
            self.encodes += 1
            result = encoded if len(encoded) < len(data) else data
            self.cache.put(data, self.options, result)
        out.write_bytes(result)
        return out

    def _encode(self, data: bytes) -> Optional[bytes]:
        try:
            img = Image.open(io.BytesIO(data))
        except UnidentifiedImageError:
            return None
        with img:
            fmt = img.format
            if fmt not in ENCODABLE:
                return None
            buf = io.BytesIO()
            if fmt == "JPEG":
                img.save(buf, "JPEG", optimize=True, progressive=self.progressive, quality="keep")
            elif fmt == "GIF":
                img.save(
                    buf,
                    "GIF",
                    optimize=True,
                    interlace=self.interlaced,
                    save_all=getattr(img, "is_animated", False),
                )
            else:
                img.save(buf, "PNG", optimize=True)
            return buf.getvalue()
