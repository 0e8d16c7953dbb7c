"""Shared async HTTP client with configurable timeout."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient with a configurable timeout.

    One instance per external service keeps timeouts independently configurable.
    ``timeout`` bounds each connect/read/write phase; ``deadline``, when set,
    bounds a whole request so a slow-dripping peer cannot stretch it past
    that. Either surfaces as ``httpx.TimeoutException`` (a ``TransportError``),
    so callers map it to the same failure kind as any other transport error.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        headers: dict[str, str] | None = None,
        deadline: Optional[float] = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)
        self._deadline = deadline

    @asynccontextmanager
    async def _bounded(self, method: str, url: str) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._deadline):
                yield
        except TimeoutError as e:
            raise httpx.TimeoutException(
                f"{method} {url} exceeded {self._deadline}s deadline"
            ) from e

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        async with self._bounded("POST", url):
            return await self._client.post(url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        async with self._bounded("GET", url):
            return await self._client.get(url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        async with self._bounded("PUT", url):
            return await self._client.put(url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
