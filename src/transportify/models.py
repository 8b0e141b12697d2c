from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import BodyConsumedError, ProtocolError, TransportifyError
from .streams import checked_chunks, close_iterator


class Method(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, token: str | Method) -> Method:
        if isinstance(token, Method):
            return token
        try:
            return cls(token.upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {token!r}") from None


HeaderSource = Mapping[str, str] | Iterable[tuple[str, str]]


class Headers:
    """Ordered multimap of header names to values.

    Lookups ignore case. Each name keeps the spelling it was first added with,
    and all values of a name are kept together in insertion order.
    """

    def __init__(self, source: HeaderSource | None = None) -> None:
        self._entries: dict[str, tuple[str, list[str]]] = {}
        if source is None:
            return
        pairs = source.items() if isinstance(source, Mapping) else source
        for name, value in pairs:
            self.append(name, value)

    def append(self, name: str, value: str) -> None:
        key = name.lower()
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = (name, [value])
        else:
            entry[1].append(value)

    def set(self, name: str, value: str) -> None:
        key = name.lower()
        entry = self._entries.get(key)
        display = entry[0] if entry is not None else name
        self._entries[key] = (display, [value])

    def get(self, name: str, default: str | None = None) -> str | None:
        entry = self._entries.get(name.lower())
        if entry is None:
            return default
        return entry[1][0]

    def get_all(self, name: str) -> list[str]:
        entry = self._entries.get(name.lower())
        if entry is None:
            return []
        return list(entry[1])

    def remove(self, name: str) -> None:
        self._entries.pop(name.lower(), None)

    def names(self) -> list[str]:
        return [display for display, _ in self._entries.values()]

    def items(self) -> Iterator[tuple[str, str]]:
        for display, values in self._entries.values():
            for value in values:
                yield display, value

    def copy(self) -> Headers:
        return Headers(self.items())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __repr__(self) -> str:
        return f"Headers({list(self.items())!r})"


async def _iterate(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


class Body:
    """A lazily read, single-use byte stream with an optional known length.

    The body can be iterated exactly once. When ``length`` is given the
    stream must produce exactly that many bytes; anything else raises
    ``mismatch_error`` from the read that detects it.
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        length: int | None = None,
        *,
        mismatch_error: type[TransportifyError] = ProtocolError,
    ) -> None:
        if length is not None and length < 0:
            raise ValueError("Body length must be non-negative")
        self._chunks = chunks
        self._length = length
        self._mismatch_error = mismatch_error
        self._iterator: AsyncIterator[bytes] | None = None
        self._consumed = False
        self._started = False

    @classmethod
    def empty(cls) -> Body:
        return cls(_iterate(()), 0)

    @classmethod
    def from_bytes(cls, data: bytes) -> Body:
        return cls(_iterate((data,)), len(data))

    @classmethod
    def from_text(cls, text: str, encoding: str = "utf-8") -> Body:
        return cls.from_bytes(text.encode(encoding))

    @classmethod
    def from_stream(
        cls,
        chunks: AsyncIterable[bytes] | Iterable[bytes],
        length: int | None = None,
    ) -> Body:
        if not isinstance(chunks, AsyncIterable):
            chunks = _iterate(chunks)
        return cls(chunks, length)

    @property
    def length(self) -> int | None:
        return self._length

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise BodyConsumedError("Body has already been consumed")
        self._consumed = True
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[bytes]:
        self._started = True
        chunks = checked_chunks(self._chunks, self._length, self._mismatch_error)
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await close_iterator(chunks)

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    async def text(self, encoding: str = "utf-8") -> str:
        return (await self.read()).decode(encoding)

    async def aclose(self) -> None:
        """Release the underlying stream without reading the rest of it.

        An iterator that never started (an engine took it but failed before
        pulling) is discarded and the source is closed directly. An iterator
        that is busy in another task is left to that task, which closes the
        source when it unwinds.
        """
        self._consumed = True
        iterator, self._iterator = self._iterator, None
        if iterator is not None and self._started:
            if not getattr(iterator, "ag_running", False):
                await close_iterator(iterator)
            return
        if iterator is not None:
            await close_iterator(iterator)
        await close_iterator(self._chunks)

    def __repr__(self) -> str:
        return f"Body(length={self._length!r}, consumed={self._consumed!r})"


@dataclass
class Request:
    method: Method
    url: str
    headers: Headers = field(default_factory=Headers)
    body: Body = field(default_factory=Body.empty)

    def __post_init__(self) -> None:
        self.method = Method.parse(self.method)
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    def take_body(self) -> Body:
        """Hand over the body, leaving a consumed empty body in its place."""
        body = self.body
        self.body = Body.empty()
        self.body._consumed = True
        return body


@dataclass
class Response:
    status: int
    headers: Headers = field(default_factory=Headers)
    body: Body = field(default_factory=Body.empty)

    def __post_init__(self) -> None:
        if not 100 <= self.status <= 599:
            raise ValueError(f"Status code out of range: {self.status}")
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    async def read(self) -> bytes:
        return await self.body.read()

    async def text(self, encoding: str = "utf-8") -> str:
        return await self.body.text(encoding)

    async def aclose(self) -> None:
        await self.body.aclose()

    async def __aenter__(self) -> Response:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
