from __future__ import annotations

import functools
import logging
from collections.abc import Iterator
from typing import Any, Protocol

import anyio.to_thread
import requests
import requests.adapters
import requests.cookies

from ..errors import ProtocolError, ResponseMalformed, TransportFailure, TransportifyError, normalize
from ..models import Body, Response
from ..profile import TransportProfile
from ..streams import ThreadedChunkStream, blocking_reader
from ..translate import PreparedRequest, fold_header_pairs, headers_from_pairs, response_length, response_status
from .base import BaseBackend, blocking_cookie_policy

logger = logging.getLogger(__name__)


class RequestsResponseProtocol(Protocol):
    status_code: int
    raw: Any

    def iter_content(self, chunk_size: int) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class RequestsSessionProtocol(Protocol):
    def request(self, method: str, url: str, **kwargs: Any) -> RequestsResponseProtocol: ...

    def close(self) -> None: ...


_INVALID_REQUEST_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidHeader,
    requests.exceptions.URLRequired,
)


class RequestsBackend(BaseBackend[RequestsSessionProtocol]):
    """Transport backed by a blocking ``requests.Session``.

    Every blocking call runs in an ``anyio`` worker thread. Repeated request
    header names are folded into one comma-separated value, since ``requests``
    keeps a single value per name.
    """

    def _create_engine(self, profile: TransportProfile) -> requests.Session:
        session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_maxsize=profile.max_connections)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.verify = profile.verify
        session.cookies = requests.cookies.RequestsCookieJar(policy=blocking_cookie_policy())
        return session

    async def _close_engine(self, engine: RequestsSessionProtocol) -> None:
        await anyio.to_thread.run_sync(engine.close)

    async def _execute(self, request: PreparedRequest) -> Response:
        send = functools.partial(
            self.engine.request,
            request.method,
            request.url,
            headers=fold_header_pairs(request.headers),
            data=blocking_reader(request.body) if request.has_body else None,
            stream=True,
            allow_redirects=False,
            timeout=self.profile.timeout if self.configured else None,
        )
        try:
            engine_response = await anyio.to_thread.run_sync(send)
        except TransportifyError:
            raise
        except _INVALID_REQUEST_ERRORS as exc:
            raise normalize(exc, ProtocolError, str(exc))
        except requests.RequestException as exc:
            logger.debug("requests failed for %s %s", request.method, request.url, exc_info=True)
            raise normalize(exc, TransportFailure, str(exc))
        except ValueError as exc:
            raise normalize(exc, ProtocolError, str(exc))

        try:
            status = response_status(engine_response.status_code)
            headers_in = headers_from_pairs(engine_response.raw.headers.iteritems())
            length = response_length(request.method, status, headers_in)
        except ResponseMalformed:
            await anyio.to_thread.run_sync(engine_response.close)
            raise

        stream = ThreadedChunkStream(
            engine_response.iter_content(self.profile.chunk_size),
            engine_response.close,
            errors=(requests.RequestException,),
        )
        body = Body(stream, length, mismatch_error=ResponseMalformed)
        return Response(status, headers_in, body)
