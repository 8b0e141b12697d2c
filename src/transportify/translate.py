"""Engine-independent translation between the neutral model and engine values.

Every backend runs the same rules: method tokens and header pairs are
validated before any I/O, caller framing headers are replaced by the framing
the body implies, and response headers are decoded strictly.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import ProtocolError, ResponseMalformed
from .models import Body, Headers, Method, Request

_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_FORBIDDEN_VALUE_CHARS = re.compile(r"[\r\n\x00]")
FRAMING_HEADERS = frozenset({"content-length", "transfer-encoding"})
_BODILESS_STATUSES = frozenset({204, 304})


@dataclass(frozen=True)
class PreparedRequest:
    method: str
    url: str
    headers: list[tuple[str, str]]
    body: Body

    @property
    def content_length(self) -> int | None:
        return self.body.length

    @property
    def has_body(self) -> bool:
        return self.body.length != 0

    @property
    def framing(self) -> str:
        if not self.has_body:
            return "empty"
        if self.content_length is None:
            return "chunked"
        return "sized"


def method_token(method: Method | str) -> str:
    token = method.value if isinstance(method, Method) else method
    if not _TOKEN.fullmatch(token):
        raise ProtocolError(f"Invalid method token: {token!r}")
    return token


def outgoing_header_pairs(headers: Headers) -> list[tuple[str, str]]:
    """Validate and flatten request headers into ``(name, value)`` pairs.

    Names are kept verbatim. ``Content-Length`` and ``Transfer-Encoding`` are
    dropped since the body decides the framing.
    """
    pairs: list[tuple[str, str]] = []
    for name, value in headers.items():
        if not _TOKEN.fullmatch(name):
            raise ProtocolError(f"Invalid header name: {name!r}")
        if _FORBIDDEN_VALUE_CHARS.search(value):
            raise ProtocolError(f"Invalid value for header {name!r}")
        if name.lower() in FRAMING_HEADERS:
            continue
        pairs.append((name, value))
    return pairs


def fold_header_pairs(pairs: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Join repeated names with ``", "`` for engines that take one value per name."""
    folded: dict[str, tuple[str, list[str]]] = {}
    for name, value in pairs:
        folded.setdefault(name.lower(), (name, []))[1].append(value)
    return {name: ", ".join(values) for name, values in folded.values()}


def prepare_request(request: Request, body: Body) -> PreparedRequest:
    return PreparedRequest(
        method=method_token(request.method),
        url=request.url,
        headers=outgoing_header_pairs(request.headers),
        body=body,
    )


def decode_header_value(raw: bytes | str) -> str:
    """Decode a response header value as ASCII, falling back to strict UTF-8.

    ``str`` input is assumed to have been decoded as Latin-1 by the engine.
    """
    if isinstance(raw, str):
        try:
            raw = raw.encode("latin-1")
        except UnicodeEncodeError as exc:
            raise ResponseMalformed(f"Header value is not valid text: {raw!r}") from exc
    try:
        return raw.decode("ascii")
    except UnicodeDecodeError:
        pass
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ResponseMalformed(f"Header value is not valid text: {raw!r}") from exc


def _decode_header_name(raw: bytes | str) -> str:
    name = raw.decode("ascii", errors="replace") if isinstance(raw, bytes) else raw
    if not _TOKEN.fullmatch(name):
        raise ResponseMalformed(f"Invalid response header name: {raw!r}")
    return name


def headers_from_pairs(pairs: Iterable[tuple[bytes | str, bytes | str]]) -> Headers:
    headers = Headers()
    for name, value in pairs:
        headers.append(_decode_header_name(name), decode_header_value(value))
    return headers


def response_status(status: int) -> int:
    if not 100 <= status <= 599:
        raise ResponseMalformed(f"Status code out of range: {status}")
    return status


def response_length(method: str, status: int, headers: Headers) -> int | None:
    """Return the known byte count of a response body, or ``None``.

    The length is only trusted when the engine hands the bytes over without
    decoding them.
    """
    if method == Method.HEAD.value or status < 200 or status in _BODILESS_STATUSES:
        return 0
    encoding = headers.get("content-encoding")
    if encoding is not None and encoding.strip().lower() not in ("", "identity"):
        return None
    if "transfer-encoding" in headers:
        return None
    values = headers.get_all("content-length")
    if not values:
        return None
    try:
        lengths = {int(part.strip()) for value in values for part in value.split(",")}
    except ValueError:
        raise ResponseMalformed(f"Invalid Content-Length: {values!r}") from None
    if len(lengths) != 1:
        raise ResponseMalformed(f"Conflicting Content-Length values: {values!r}")
    length = lengths.pop()
    if length < 0:
        raise ResponseMalformed(f"Invalid Content-Length: {values!r}")
    return length
