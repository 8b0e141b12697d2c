from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Generic, TypeVar

from ..errors import TransportFailure
from ..models import Request, Response
from ..profile import TransportProfile
from ..translate import PreparedRequest, prepare_request

logger = logging.getLogger(__name__)

EngineT = TypeVar("EngineT")
BackendT = TypeVar("BackendT", bound="BaseBackend")  # type: ignore[type-arg]


class EngineHandle(Generic[EngineT]):
    """Reference-counted engine shared by a backend and its clones.

    ``close`` runs once, when the last reference is released. Handles for
    engines the caller owns have no ``close``.
    """

    def __init__(
        self,
        engine: EngineT,
        close: Callable[[EngineT], Awaitable[None]] | None = None,
    ) -> None:
        self.engine = engine
        self._close = close
        self._references = 1

    @property
    def references(self) -> int:
        return self._references

    @property
    def closed(self) -> bool:
        return self._references == 0

    def acquire(self) -> EngineHandle[EngineT]:
        if self.closed:
            raise TransportFailure("Engine has already been closed")
        self._references += 1
        return self

    async def release(self) -> None:
        if self.closed:
            return
        self._references -= 1
        if self._references == 0 and self._close is not None:
            logger.debug("Closing engine %r", self.engine)
            await self._close(self.engine)


def blocking_cookie_policy() -> DefaultCookiePolicy:
    """Cookie policy that refuses to store or return any cookie."""
    return DefaultCookiePolicy(allowed_domains=[])


def cookieless_jar() -> CookieJar:
    return CookieJar(policy=blocking_cookie_policy())


class BaseBackend(ABC, Generic[EngineT]):
    """Bridge between the neutral request/response model and one engine.

    Subclasses build default engines in ``_create_engine``, close engines they
    own in ``_close_engine`` and run one exchange in ``_execute``.
    """

    def __init__(
        self,
        engine: EngineT | None = None,
        *,
        profile: TransportProfile | None = None,
        owned: bool | None = None,
    ) -> None:
        self._profile = profile or TransportProfile()
        self._configured = engine is None
        if engine is None:
            engine = self._create_engine(self._profile)
            if owned is None:
                owned = True
        self._handle: EngineHandle[EngineT] = EngineHandle(engine, self._close_engine if owned else None)
        self._released = False

    @classmethod
    def new(cls: type[BackendT], profile: TransportProfile | None = None) -> BackendT:
        return cls(profile=profile)

    @classmethod
    def from_engine(
        cls: type[BackendT],
        engine: EngineT,
        *,
        profile: TransportProfile | None = None,
        owned: bool = False,
    ) -> BackendT:
        return cls(engine, profile=profile, owned=owned)

    @property
    def engine(self) -> EngineT:
        return self._handle.engine

    @property
    def profile(self) -> TransportProfile:
        return self._profile

    @property
    def configured(self) -> bool:
        """Whether the engine was built here from the profile."""
        return self._configured

    @property
    def closed(self) -> bool:
        return self._released or self._handle.closed

    def clone(self: BackendT) -> BackendT:
        if self._released:
            raise TransportFailure("Transport has been closed")
        clone = object.__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone._handle = self._handle.acquire()
        clone._released = False
        return clone

    def __copy__(self: BackendT) -> BackendT:
        return self.clone()

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        await self._handle.release()

    async def __aenter__(self: BackendT) -> BackendT:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def send(self, request: Request) -> Response:
        if self.closed:
            raise TransportFailure("Transport has been closed")
        body = request.take_body()
        completed = False
        try:
            prepared = prepare_request(request, body)
            logger.debug("Sending %s %s (%s body)", prepared.method, prepared.url, prepared.framing)
            response = await self._execute(prepared)
            completed = True
        finally:
            if not completed or not body.consumed:
                await body.aclose()
        logger.debug("Received %d for %s %s", response.status, prepared.method, prepared.url)
        return response

    @abstractmethod
    def _create_engine(self, profile: TransportProfile) -> EngineT: ...

    @abstractmethod
    async def _close_engine(self, engine: EngineT) -> None: ...

    @abstractmethod
    async def _execute(self, request: PreparedRequest) -> Response: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(engine={self.engine!r}, references={self._handle.references})"
