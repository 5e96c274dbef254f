"""
Rendering Layer Revalidation

The rendering layer owns its own page cache. After a write, the invalidator
asks it to revalidate public paths and cache tags through a Revalidator.

HttpRevalidator calls the rendering layer's revalidation webhook:
    POST {base_url}/api/revalidate  {"type": "path", "value": "/acme"}
"""

from typing import List, Optional, Protocol, Tuple

import httpx
import structlog

from storefront_core.config.settings import RevalidationSettings

logger = structlog.get_logger(__name__)


class Revalidator(Protocol):
    """Callback interface owned by the rendering layer."""

    async def revalidate_path(self, path: str) -> None:
        ...

    async def revalidate_tag(self, tag: str) -> None:
        ...


class HttpRevalidator:
    """
    Revalidates paths and tags over HTTP.

    Raises httpx errors on transport failures and non-2xx responses; the
    invalidator is responsible for catching them.
    """

    def __init__(
        self,
        base_url: str,
        secret: Optional[str] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: RevalidationSettings) -> Optional["HttpRevalidator"]:
        """Build a revalidator, or None when no rendering layer is configured."""
        if not settings.base_url:
            return None
        return cls(
            settings.base_url,
            secret=settings.secret.get_secret_value() if settings.secret else None,
            timeout=settings.timeout,
        )

    async def _post(self, kind: str, value: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"

        url = f"{self.base_url}/api/revalidate"
        payload = {"type": kind, "value": value}

        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, headers=headers, timeout=self.timeout)

        response.raise_for_status()
        logger.debug("Revalidated", type=kind, value=value)

    async def revalidate_path(self, path: str) -> None:
        await self._post("path", path)

    async def revalidate_tag(self, tag: str) -> None:
        await self._post("tag", tag)


class RecordingRevalidator:
    """Keeps revalidation requests in memory, for local runs and tests."""

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []

    @property
    def paths(self) -> List[str]:
        return [value for kind, value in self.calls if kind == "path"]

    @property
    def tags(self) -> List[str]:
        return [value for kind, value in self.calls if kind == "tag"]

    async def revalidate_path(self, path: str) -> None:
        self.calls.append(("path", path))

    async def revalidate_tag(self, tag: str) -> None:
        self.calls.append(("tag", tag))
