from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def content_key(data: bytes, options: dict) -> str:
    payload = {"digest": sha256_bytes(data), "options": options}
    return sha256_bytes(json.dumps(payload, sort_keys=True).encode("utf-8"))


class ContentCache:
    """Transformed bytes stored under the key of their input bytes + options.

    Outputs are also indexed by their own digest, so feeding an already
    optimised file back in is a hit as well.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _entry(self, key: str) -> Path:
        return self.directory / key[:2] / key

    def get(self, data: bytes, options: dict) -> Optional[bytes]:
        entry = self._entry(content_key(data, options))
        if not entry.exists():
            return None
        return entry.read_bytes()

    def put(self, data: bytes, options: dict, result: bytes) -> None:
        for key in (content_key(data, options), content_key(result, options)):
            entry = self._entry(key)
            entry.parent.mkdir(parents=True, exist_ok=True)
            entry.write_bytes(result)
