import asyncio
import logging
from enum import Enum
from typing import Mapping, NamedTuple, Protocol

import aiohttp

from .config import AuthConfig
from .debug import dbg_dump

logger = logging.getLogger(__name__)


class NetworkError(Enum):
    NONE = 0
    AUTHENTICATION_REQUIRED = 1
    CONTENT_NOT_FOUND = 2
    OTHER = 3


class Reply(NamedTuple):
    error: NetworkError
    data: bytes
    headers: dict[str, str]

    @property
    def ok(self) -> bool:
        return self.error is NetworkError.NONE


class Transport(Protocol):
    """What the pipeline needs from an HTTP client.

    Network-level failures are reported through ``Reply.error``, never raised.
    """

    async def post(self, url: str, headers: Mapping[str, str], body: bytes) -> Reply: ...

    async def get(self, url: str, headers: Mapping[str, str]) -> Reply: ...


def classify_status(status: int) -> NetworkError:
    if 200 <= status < 300:
        return NetworkError.NONE
    if status == 401:
        return NetworkError.AUTHENTICATION_REQUIRED
    if status == 404:
        return NetworkError.CONTENT_NOT_FOUND
    return NetworkError.OTHER


class AiohttpTransport:
    """Transport backed by a single ``aiohttp.ClientSession``.

    Use as an async context manager, or call :meth:`close` when done.
    """

    def __init__(
        self,
        config: AuthConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config or AuthConfig()
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.config.user_agent}
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def post(self, url: str, headers: Mapping[str, str], body: bytes) -> Reply:
        return await self._request("POST", url, headers, body)

    async def get(self, url: str, headers: Mapping[str, str]) -> Reply:
        return await self._request("GET", url, headers, None)

    async def _request(
        self, method: str, url: str, headers: Mapping[str, str], body: bytes | None
    ) -> Reply:
        session = self._ensure_session()
        try:
            async with session.request(
                method,
                url,
                data=body,
                headers=dict(headers),
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as r:
                data = await r.read()
                error = classify_status(r.status)
                if error is not NetworkError.NONE:
                    logger.warning("%s %s failed with status %s", method, url, r.status)
                dbg_dump(f"{r.url.host or 'response'}_{r.status}.txt", data, self.config)
                return Reply(error, data, dict(r.headers))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("%s %s failed: %s", method, url, e)
            return Reply(NetworkError.OTHER, b"", {})
