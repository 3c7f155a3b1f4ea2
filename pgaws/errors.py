"""Exception hierarchy raised by the driver."""

from __future__ import annotations

from enum import Enum


class SqlState(str, Enum):
    """SQLSTATE codes attached to driver errors."""

    UNEXPECTED_ERROR = "XX000"
    CONNECTION_UNABLE_TO_CONNECT = "08001"
    CONNECTION_FAILURE = "08006"
    COMMUNICATION_LINK_CHANGED = "08S02"
    NOT_IMPLEMENTED = "0A000"
    INVALID_PARAMETER_VALUE = "22023"
    QUERY_CANCELED = "57014"


class DriverError(RuntimeError):
    """Base class for every error the driver raises on purpose."""

    default_state = SqlState.UNEXPECTED_ERROR

    def __init__(self, message: str, state: SqlState | None = None) -> None:
        self.message = message
        self.state = state or self.default_state
        super().__init__(message)

    @property
    def sqlstate(self) -> str:
        return self.state.value


class MalformedURLError(DriverError):
    """Raised when a URL belongs to this driver but breaks its grammar."""

    default_state = SqlState.INVALID_PARAMETER_VALUE

    def __init__(self, message: str, url: str | None = None) -> None:
        self.url = url
        super().__init__(message)


class ProtocolRejectedError(MalformedURLError):
    """Raised when strict mode refuses a plain ``postgresql:`` URL."""


class InvalidOverrideError(DriverError):
    """Raised when caller supplied properties contain a non-string value."""

    default_state = SqlState.INVALID_PARAMETER_VALUE

    def __init__(self, key: str, value: object) -> None:
        self.key = key
        self.value = value
        super().__init__(
            f"Properties for the driver contains a non-string value for the key {key} "
            f"({type(value).__name__})"
        )


class ConfigError(DriverError):
    """Raised when a driver configuration file cannot be read or validated."""


class ConnectionFailedError(DriverError):
    """Raised when the transport cannot open a session."""

    default_state = SqlState.CONNECTION_UNABLE_TO_CONNECT


class ConnectionTimeoutError(DriverError):
    """Raised when a bounded connection attempt passes its deadline."""

    default_state = SqlState.CONNECTION_UNABLE_TO_CONNECT


class ConnectionCancelledError(DriverError):
    """Raised when the caller stops waiting on a connection attempt."""

    default_state = SqlState.QUERY_CANCELED


class NoSuitableDriverError(DriverError):
    """Raised by the registry when no driver accepts a URL."""

    default_state = SqlState.CONNECTION_UNABLE_TO_CONNECT


class QueryError(DriverError):
    """Raised when a statement fails on an open connection."""

    def __init__(self, message: str, query: str | None = None, state: SqlState | None = None) -> None:
        self.query = query
        super().__init__(message, state)


class FailoverSucceededError(DriverError):
    """The connection failed over; the handle works again but the last call was lost."""

    default_state = SqlState.COMMUNICATION_LINK_CHANGED


class FailoverFailedError(DriverError):
    """The connection was lost and no replacement could be opened."""

    default_state = SqlState.CONNECTION_FAILURE


class UnexpectedDriverError(DriverError):
    """Wraps exceptions that fall outside the driver's own taxonomy."""

    DEFAULT_MESSAGE = "Something unusual has occurred to cause the driver to fail. Please report this exception."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE)


class FeatureNotSupportedError(DriverError):
    """Raised for driver methods that are deliberately not implemented."""

    default_state = SqlState.NOT_IMPLEMENTED


__all__ = [
    "ConfigError",
    "ConnectionCancelledError",
    "ConnectionFailedError",
    "ConnectionTimeoutError",
    "DriverError",
    "FailoverFailedError",
    "FailoverSucceededError",
    "FeatureNotSupportedError",
    "InvalidOverrideError",
    "MalformedURLError",
    "NoSuitableDriverError",
    "ProtocolRejectedError",
    "QueryError",
    "SqlState",
    "UnexpectedDriverError",
]
