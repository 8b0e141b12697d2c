from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterator
from typing import TYPE_CHECKING

import anyio
import anyio.from_thread
import anyio.to_thread

from .errors import TransportFailure, TransportifyError

if TYPE_CHECKING:
    from .models import Body


async def close_iterator(iterator: object) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def checked_chunks(
    chunks: AsyncIterable[bytes],
    length: int | None,
    error: type[TransportifyError],
) -> AsyncIterator[bytes]:
    """Yield non-empty chunks from ``chunks``, enforcing an exact total ``length``.

    The source is closed when iteration stops for any reason.
    """
    received = 0
    iterator = chunks.__aiter__()
    try:
        while True:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            if not chunk:
                continue
            received += len(chunk)
            if length is not None and received > length:
                raise error(f"Body produced more than the declared {length} bytes")
            yield bytes(chunk)
        if length is not None and received != length:
            raise error(f"Body ended after {received} of the declared {length} bytes")
    finally:
        await close_iterator(iterator)


async def _next_chunk(iterator: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


class BlockingBodyReader:
    """Blocking iterator over a ``Body`` for engines that run in worker threads.

    Must be iterated from a thread started with ``anyio.to_thread.run_sync``;
    every chunk is pulled from the event loop on demand.
    """

    def __init__(self, body: Body) -> None:
        self._body = body
        self._iterator: AsyncIterator[bytes] | None = None

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self._iterator is None:
            self._iterator = self._body.__aiter__()
        chunk = anyio.from_thread.run(_next_chunk, self._iterator)
        if chunk is None:
            raise StopIteration
        return chunk

    def close(self) -> None:
        anyio.from_thread.run(self._body.aclose)


class SizedBlockingBodyReader(BlockingBodyReader):
    """``BlockingBodyReader`` that advertises the body length through ``len()``."""

    def __init__(self, body: Body) -> None:
        if body.length is None:
            raise ValueError("SizedBlockingBodyReader requires a body with a known length")
        super().__init__(body)
        self._length = body.length

    def __len__(self) -> int:
        return self._length


def blocking_reader(body: Body) -> BlockingBodyReader:
    if body.length is None:
        return BlockingBodyReader(body)
    return SizedBlockingBodyReader(body)


class ThreadedChunkStream:
    """Async iterator pulling chunks from a blocking iterator in worker threads.

    Exceptions of the types in ``errors`` are raised as ``TransportFailure``.
    ``close`` runs in a worker thread on ``aclose()``.
    """

    def __init__(
        self,
        iterator: Iterator[bytes],
        close: Callable[[], object],
        errors: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._iterator = iterator
        self._close = close
        self._errors = errors
        self._closed = False

    def __aiter__(self) -> ThreadedChunkStream:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await anyio.to_thread.run_sync(next, self._iterator, None)
        except self._errors as exc:
            raise TransportFailure(f"Failed to read response body: {exc}") from exc
        if chunk is None:
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await anyio.to_thread.run_sync(self._close)
