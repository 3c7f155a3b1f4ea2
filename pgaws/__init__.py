"""PostgreSQL driver front end with cluster-aware failover URLs."""

from __future__ import annotations

__version__ = "0.3.0"

from .connection import Connection, PgConnection
from .driver import ConnectAttempt, Driver
from .errors import (
    ConnectionCancelledError,
    ConnectionFailedError,
    ConnectionTimeoutError,
    DriverError,
    FailoverFailedError,
    FailoverSucceededError,
    InvalidOverrideError,
    MalformedURLError,
    NoSuitableDriverError,
    ProtocolRejectedError,
    SqlState,
    UnexpectedDriverError,
)
from .failover import ClusterAwareConnectionProxy, FailoverConnection
from .models import AWS_PROTOCOL, POSTGRES_PROTOCOL, HostSpec, ProtocolMode
from .registry import DriverRegistry, default_registry
from .url import parse_url, resolve, set_accept_aws_protocol_only

__all__ = [
    "AWS_PROTOCOL",
    "ClusterAwareConnectionProxy",
    "ConnectAttempt",
    "Connection",
    "ConnectionCancelledError",
    "ConnectionFailedError",
    "ConnectionTimeoutError",
    "Driver",
    "DriverError",
    "DriverRegistry",
    "FailoverConnection",
    "FailoverFailedError",
    "FailoverSucceededError",
    "HostSpec",
    "InvalidOverrideError",
    "MalformedURLError",
    "NoSuitableDriverError",
    "POSTGRES_PROTOCOL",
    "PgConnection",
    "ProtocolMode",
    "ProtocolRejectedError",
    "SqlState",
    "UnexpectedDriverError",
    "__version__",
    "default_registry",
    "parse_url",
    "resolve",
    "set_accept_aws_protocol_only",
]
