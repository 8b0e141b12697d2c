from __future__ import annotations


class TransportifyError(Exception):
    """Base class for every failure surfaced by a transport."""


class TransportFailure(TransportifyError):
    """The engine could not establish or complete the network exchange."""


class ProtocolError(TransportifyError):
    """A request value could not be translated into the engine's representation."""


class ResponseMalformed(TransportifyError):
    """The engine produced a response that could not be translated."""


class BodyConsumedError(TransportifyError):
    """A body was read after it had already been consumed."""


def find_error(exc: BaseException) -> TransportifyError | None:
    """Return the first ``TransportifyError`` in the cause/context chain of ``exc``.

    Engines pulling a neutral body sometimes wrap the exception it raised in
    their own error types.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, TransportifyError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def normalize(exc: BaseException, error: type[TransportifyError], message: str) -> TransportifyError:
    """Recover the ``TransportifyError`` behind ``exc``, or wrap ``exc`` in ``error``."""
    found = find_error(exc)
    if found is not None:
        return found
    wrapped = error(message)
    wrapped.__cause__ = exc
    return wrapped
