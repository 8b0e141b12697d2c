from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable
from typing import Any, Protocol

import aiohttp

from ..errors import ProtocolError, ResponseMalformed, TransportFailure, TransportifyError, normalize
from ..models import Body, Response
from ..profile import TransportProfile
from ..translate import PreparedRequest, headers_from_pairs, response_length, response_status
from .base import BaseBackend

logger = logging.getLogger(__name__)


class AiohttpContentProtocol(Protocol):
    def iter_chunked(self, n: int) -> AsyncIterator[bytes]: ...


class AiohttpResponseProtocol(Protocol):
    status: int

    @property
    def raw_headers(self) -> tuple[tuple[bytes, bytes], ...]: ...

    @property
    def content(self) -> AiohttpContentProtocol: ...

    def release(self) -> Any: ...

    def close(self) -> None: ...


class AiohttpSessionProtocol(Protocol):
    def request(self, method: str, url: str, **kwargs: Any) -> Awaitable[AiohttpResponseProtocol]: ...

    async def close(self) -> None: ...


class _AiohttpResponseStream:
    def __init__(self, response: AiohttpResponseProtocol, chunk_size: int) -> None:
        self._response = response
        self._chunks = response.content.iter_chunked(chunk_size)

    def __aiter__(self) -> _AiohttpResponseStream:
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self._chunks.__anext__()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportFailure(f"Failed to read response body: {exc}") from exc

    async def aclose(self) -> None:
        released = self._response.release()
        if inspect.isawaitable(released):
            await released


class AiohttpBackend(BaseBackend[AiohttpSessionProtocol]):
    """Transport backed by ``aiohttp.ClientSession``.

    The default session binds to the running event loop, so ``AiohttpBackend()``
    has to be called from a coroutine.
    """

    def _create_engine(self, profile: TransportProfile) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=profile.timeout),
            connector=aiohttp.TCPConnector(limit=profile.max_connections, ssl=profile.verify),
            cookie_jar=aiohttp.DummyCookieJar(),
        )

    async def _close_engine(self, engine: AiohttpSessionProtocol) -> None:
        await engine.close()

    async def _execute(self, request: PreparedRequest) -> Response:
        headers = list(request.headers)
        if request.has_body and request.content_length is not None:
            headers.append(("Content-Length", str(request.content_length)))
        try:
            engine_response = await self.engine.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body if request.has_body else None,
                allow_redirects=False,
            )
        except TransportifyError:
            raise
        except aiohttp.InvalidURL as exc:
            raise ProtocolError(f"Invalid URL: {request.url!r}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("aiohttp failed for %s %s", request.method, request.url, exc_info=True)
            raise normalize(exc, TransportFailure, str(exc) or type(exc).__name__)
        except ValueError as exc:
            raise normalize(exc, ProtocolError, str(exc))

        try:
            status = response_status(engine_response.status)
            headers_in = headers_from_pairs(engine_response.raw_headers)
            length = response_length(request.method, status, headers_in)
        except ResponseMalformed:
            engine_response.close()
            raise

        stream = _AiohttpResponseStream(engine_response, self.profile.chunk_size)
        body = Body(stream, length, mismatch_error=ResponseMalformed)
        return Response(status, headers_in, body)
