from .aiohttp_backend import AiohttpBackend
from .base import BaseBackend, EngineHandle
from .httpx_backend import HttpxBackend
from .requests_backend import RequestsBackend

__all__ = [
    "AiohttpBackend",
    "BaseBackend",
    "EngineHandle",
    "HttpxBackend",
    "RequestsBackend",
]
