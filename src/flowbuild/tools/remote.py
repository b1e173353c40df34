"""Remote collaborators: PageSpeed Insights audits and screenshot capture."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from ..errors import NetworkError
from ..logging import get_logger
from ..utils import slugify
from .base import ensure_parent


log = get_logger("flowbuild.tools.remote")


@dataclass
class AuditReport:
    url: str
    strategy: str
    score: Optional[float]


class RemoteAuditor:
    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout: float = 60.0):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout

    async def audit(self, domain: str, strategy: str = "mobile") -> AuditReport:
        url = domain if "://" in domain else f"https://{domain}"
        query = {"url": url, "strategy": strategy}
        if self.api_key:
            query["key"] = self.api_key
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.endpoint, params=query)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"PageSpeed returned HTTP {e.response.status_code} for {url}"
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"PageSpeed unreachable: {e}") from e
        data = response.json()
        score = (
            data.get("lighthouseResult", {})
            .get("categories", {})
            .get("performance", {})
            .get("score")
        )
        return AuditReport(
            url=url,
            strategy=strategy,
            score=round(score * 100, 1) if score is not None else None,
        )


class ScreenshotCapturer:
    """Fetches one PNG per viewport from a screenshot service URL template."""

    def __init__(
        self,
        endpoint: str,
        aliases: Optional[Mapping[str, str]] = None,
        api_key: Optional[str] = None,
        crop: bool = True,
        delay: int = 0,
        timeout: float = 60.0,
    ):
        self.endpoint = endpoint
        self.aliases = dict(aliases or {})
        self.api_key = api_key
        self.crop = crop
        self.delay = delay
        self.timeout = timeout

    def _request_url(self, url: str, viewport: str) -> str:
        size = self.aliases.get(viewport, viewport)
        target = self.endpoint.format(url=quote(url, safe=""), viewport=quote(size))
        extras = []
        if self.crop:
            extras.append("crop=1")
        if self.delay:
            extras.append(f"delay={int(self.delay) * 1000}")
        if self.api_key:
            extras.append(f"key={quote(self.api_key)}")
        if extras:
            target += ("&" if "?" in target else "?") + "&".join(extras)
        return target

    async def capture(self, url: str, viewports: Sequence[str], dest: Path) -> list[Path]:
        outputs: list[Path] = []
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                for viewport in viewports:
                    response = await client.get(self._request_url(url, viewport))
                    response.raise_for_status()
                    size = self.aliases.get(viewport, viewport)
                    name = f"{slugify(url.split('://')[-1])}-{slugify(size)}.png"
                    out = ensure_parent(Path(dest) / name)
                    out.write_bytes(response.content)
                    log.info("Captured %s at %s", url, viewport)
                    outputs.append(out)
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"Screenshot service returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Screenshot service unreachable: {e}") from e
        return outputs
