from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class TransportProfile:
    """Settings for engines built by a backend's default constructor."""

    timeout: float | None = 30.0
    chunk_size: int = 65536
    max_connections: int = 100
    verify: bool = True

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive or None")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_connections <= 0:
            raise ValueError("max_connections must be positive")

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> "TransportProfile":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown transport settings: {', '.join(unknown)}")
        timeout = values.get("timeout", cls.timeout)
        verify = values.get("verify", cls.verify)
        if not isinstance(verify, bool):
            raise ValueError(f"verify must be a boolean, got {verify!r}")
        return cls(
            timeout=None if timeout is None else float(timeout),  # type: ignore[arg-type]
            chunk_size=int(values.get("chunk_size", cls.chunk_size)),  # type: ignore[call-overload]
            max_connections=int(values.get("max_connections", cls.max_connections)),  # type: ignore[call-overload]
            verify=verify,
        )
