"""Shared dataclasses and enums used across the driver modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

POSTGRES_PROTOCOL = "postgresql:"
AWS_PROTOCOL = POSTGRES_PROTOCOL + "aws:"
DEFAULT_PORT = 5432

Properties = Mapping[str, str]


class ProtocolMode(str, Enum):
    """Which URL scheme a connection string was written for."""

    PLAIN = "plain"
    CLUSTER_AWARE = "cluster-aware"

    @classmethod
    def of(cls, url: str) -> ProtocolMode:
        if url.startswith(AWS_PROTOCOL):
            return cls.CLUSTER_AWARE
        return cls.PLAIN


class AttemptState(str, Enum):
    """Lifecycle of a bounded connection attempt."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class HostSpec:
    """One server endpoint taken from the URL host list."""

    host: str
    port: int = DEFAULT_PORT
    local_socket_address: str | None = None

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


__all__ = [
    "AWS_PROTOCOL",
    "AttemptState",
    "DEFAULT_PORT",
    "HostSpec",
    "POSTGRES_PROTOCOL",
    "Properties",
    "ProtocolMode",
]
