"""
TinyPNG web backend adapter.

Three round trips per image:
1. POST the raw bytes to the store endpoint; the Location header names the upload key
2. POST {key, originalSize, originalType} to the process endpoint; JSON reply carries a download url
3. GET the url for the compressed bytes

No retries here; the engine's RetryPolicy owns them. Every failure is raised
as TransformError with an explicit FailureKind.
"""

from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from ..engine.types import Artifact
from ..errors import FailureKind, TransformError
from ..settings import EngineSettings

BASE_HEADERS = {
    "Referer": "https://tinypng.com/",
    "Origin": "https://tinypng.com",
}


def _http_error_message(response: httpx.Response) -> str:
    detail = None
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get("error") or body.get("message")
    except ValueError:
        pass
    return f"HTTP {response.status_code}: {detail or 'Unknown error'}"


class TinyPngAdapter:
    """TransformAdapter backed by httpx.AsyncClient.

    Usage:
        async with TinyPngAdapter.from_settings(settings) as adapter:
            artifact = await adapter.transform(data, "image/png", timeout=30.0)
    """

    def __init__(
        self,
        store_url: str,
        process_url: str,
        *,
        user_agent: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store_url = store_url
        self.process_url = process_url
        self._headers = {"User-Agent": user_agent, **BASE_HEADERS}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls, settings: EngineSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "TinyPngAdapter":
        return cls(
            settings.tinypng_store_url,
            settings.tinypng_process_url,
            user_agent=settings.user_agent,
            transport=transport,
        )

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                transport=self._transport,
                follow_redirects=True,
            )
            logger.debug(f"TinyPNG adapter started (store={self.store_url})")

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("TinyPNG adapter stopped")

    async def __aenter__(self) -> "TinyPngAdapter":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def transform(self, data: bytes, media_type: str, timeout: float) -> Artifact:
        await self.start()
        assert self._client is not None

        try:
            key = await self._store(data, timeout)
            url = await self._process(key, len(data), media_type, timeout)
            res = await self._client.get(url, timeout=timeout)
            res.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransformError(FailureKind.TIMEOUT, f"Timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise TransformError(
                FailureKind.HTTP_STATUS, _http_error_message(exc.response)
            ) from exc
        except httpx.RequestError as exc:
            raise TransformError(FailureKind.NETWORK, f"No response from server: {exc}") from exc

        compressed = res.content
        return Artifact(data=compressed, original_size=len(data), artifact_size=len(compressed))

    async def _store(self, data: bytes, timeout: float) -> str:
        res = await self._client.post(
            self.store_url,
            content=data,
            headers={"Content-Type": "application/octet-stream"},
            timeout=timeout,
        )
        res.raise_for_status()
        location = res.headers.get("location")
        if not location:
            raise TransformError(FailureKind.PROTOCOL, "Store response had no Location header")
        key = location.rstrip("/").rsplit("/", 1)[-1]
        if not key:
            raise TransformError(FailureKind.PROTOCOL, f"Cannot parse upload key from {location!r}")
        return key

    async def _process(self, key: str, size: int, media_type: str, timeout: float) -> str:
        res = await self._client.post(
            self.process_url,
            json={"key": key, "originalSize": size, "originalType": media_type},
            timeout=timeout,
        )
        res.raise_for_status()
        try:
            body = res.json()
        except ValueError as exc:
            raise TransformError(FailureKind.PROTOCOL, "Process response was not JSON") from exc
        url = body.get("url") if isinstance(body, dict) else None
        if not url:
            raise TransformError(FailureKind.PROTOCOL, "Process response had no download url")
        return url
