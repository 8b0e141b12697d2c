from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from ..errors import ProtocolError, ResponseMalformed, TransportFailure, TransportifyError, normalize
from ..models import Body, Response
from ..profile import TransportProfile
from ..translate import PreparedRequest, headers_from_pairs, response_length, response_status
from .base import BaseBackend, cookieless_jar

logger = logging.getLogger(__name__)


class HttpxAsyncClientProtocol(Protocol):
    def build_request(self, method: str, url: str, **kwargs: Any) -> httpx.Request: ...

    async def send(self, request: httpx.Request, *, stream: bool, follow_redirects: bool) -> httpx.Response: ...

    async def aclose(self) -> None: ...


class _HttpxResponseStream:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._chunks = response.aiter_bytes()

    def __aiter__(self) -> _HttpxResponseStream:
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self._chunks.__anext__()
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportFailure(f"Failed to read response body: {exc}") from exc

    async def aclose(self) -> None:
        await self._chunks.aclose()
        await self._response.aclose()


class HttpxBackend(BaseBackend[HttpxAsyncClientProtocol]):
    """Transport backed by ``httpx.AsyncClient``."""

    def _create_engine(self, profile: TransportProfile) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(profile.timeout),
            limits=httpx.Limits(max_connections=profile.max_connections),
            verify=profile.verify,
            cookies=cookieless_jar(),
            follow_redirects=False,
        )

    async def _close_engine(self, engine: HttpxAsyncClientProtocol) -> None:
        await engine.aclose()

    async def _execute(self, request: PreparedRequest) -> Response:
        headers = [(name.encode("ascii"), value.encode("utf-8")) for name, value in request.headers]
        if request.has_body and request.content_length is not None:
            headers.append((b"Content-Length", str(request.content_length).encode("ascii")))
        try:
            engine_request = self.engine.build_request(
                request.method,
                request.url,
                headers=headers,
                content=request.body if request.has_body else None,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise ProtocolError(f"Cannot build request for {request.url!r}: {exc}") from exc

        try:
            engine_response = await self.engine.send(engine_request, stream=True, follow_redirects=False)
        except TransportifyError:
            raise
        except (httpx.UnsupportedProtocol, httpx.LocalProtocolError) as exc:
            raise normalize(exc, ProtocolError, str(exc))
        except httpx.HTTPError as exc:
            logger.debug("httpx failed for %s %s", request.method, request.url, exc_info=True)
            raise normalize(exc, TransportFailure, str(exc))

        try:
            status = response_status(engine_response.status_code)
            headers_in = headers_from_pairs(engine_response.headers.raw)
            length = response_length(request.method, status, headers_in)
        except ResponseMalformed:
            await engine_response.aclose()
            raise

        body = Body(_HttpxResponseStream(engine_response), length, mismatch_error=ResponseMalformed)
        return Response(status, headers_in, body)
