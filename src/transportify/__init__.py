from .backends import AiohttpBackend, BaseBackend, EngineHandle, HttpxBackend, RequestsBackend
from .errors import (
    BodyConsumedError,
    ProtocolError,
    ResponseMalformed,
    TransportFailure,
    TransportifyError,
)
from .models import Body, Headers, Method, Request, Response
from .profile import TransportProfile
from .transport import Transport

__all__ = [
    "TransportifyError",
    "TransportFailure",
    "ProtocolError",
    "ResponseMalformed",
    "BodyConsumedError",
    "Body",
    "Headers",
    "Method",
    "Request",
    "Response",
    "Transport",
    "TransportProfile",
    "AiohttpBackend",
    "BaseBackend",
    "EngineHandle",
    "HttpxBackend",
    "RequestsBackend",
]
