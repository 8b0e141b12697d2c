from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Request, Response


@runtime_checkable
class Transport(Protocol):
    """Anything that can send a ``Request`` and produce a ``Response``.

    Implementations raise ``TransportifyError`` subclasses on failure and
    never return a partial response.
    """

    async def send(self, request: Request) -> Response: ...
