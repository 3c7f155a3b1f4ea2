"""Connection parameters understood by the driver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from pydantic import BaseModel, Field


class PropertyInfo(BaseModel):
    """Description of one connection parameter, suitable for prompting a user."""

    name: str
    value: str | None = None
    description: str = ""
    required: bool = False
    choices: list[str] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DriverProperty:
    """A named connection parameter with its default and documentation."""

    name: str
    default: str | None
    description: str
    required: bool = False
    choices: tuple[str, ...] = ()

    def get(self, props: Mapping[str, str]) -> str | None:
        return props.get(self.name, self.default)

    def is_present(self, props: Mapping[str, str]) -> bool:
        return props.get(self.name) is not None

    def get_bool(self, props: Mapping[str, str]) -> bool:
        value = self.get(props)
        return value is not None and value.strip().lower() == "true"

    def get_float(self, props: Mapping[str, str]) -> float | None:
        """Return the value as a float; raises ``ValueError`` on garbage."""

        value = self.get(props)
        if value is None:
            return None
        return float(value)

    def to_info(self, props: Mapping[str, str]) -> PropertyInfo:
        return PropertyInfo(
            name=self.name,
            value=self.get(props),
            description=self.description,
            required=self.required,
            choices=list(self.choices),
        )


USER = DriverProperty("user", None, "Username to connect to the database as.", required=True)
PASSWORD = DriverProperty("password", None, "Password to use when authenticating.")
PG_HOST = DriverProperty("PGHOST", "localhost", "Comma separated hostnames taken from the URL.")
PG_PORT = DriverProperty("PGPORT", "5432", "Comma separated ports taken from the URL.")
PG_DBNAME = DriverProperty("PGDBNAME", None, "Database name taken from the URL.")
LOGIN_TIMEOUT = DriverProperty(
    "loginTimeout",
    None,
    "Seconds to wait for the whole connection attempt; 0 or unset waits forever.",
)
CONNECT_TIMEOUT = DriverProperty(
    "connectTimeout",
    "10",
    "Seconds allowed for opening the socket to a single host.",
)
SSL_MODE = DriverProperty(
    "sslmode",
    None,
    "SSL negotiation mode.",
    choices=("disable", "allow", "prefer", "require", "verify-ca", "verify-full"),
)
APPLICATION_NAME = DriverProperty("ApplicationName", "pgaws", "Name reported as application_name.")
TARGET_SERVER_TYPE = DriverProperty(
    "targetServerType",
    "any",
    "Kind of server to accept when several hosts are listed.",
    choices=("any", "primary", "standby", "prefer-standby", "read-write", "read-only"),
)
LOCAL_SOCKET_ADDRESS = DriverProperty(
    "localSocketAddress",
    None,
    "Local address to bind when connecting to the server. Parsed but not applied by the asyncpg transport.",
)
ACCEPT_AWS_PROTOCOL_ONLY = DriverProperty(
    "acceptAwsProtocolOnly",
    None,
    "Only accept postgresql:aws: URLs; overrides the process wide setting.",
    choices=("true", "false"),
)
ENABLE_CLUSTER_AWARE_FAILOVER = DriverProperty(
    "enableClusterAwareFailover",
    "true",
    "Keep one logical connection alive across a cluster failover.",
    choices=("true", "false"),
)
FAILOVER_TIMEOUT_MS = DriverProperty(
    "failoverTimeoutMs",
    "60000",
    "Milliseconds allowed for reconnecting after a failover.",
)
LOGGER_LEVEL = DriverProperty(
    "loggerLevel",
    None,
    "Driver log level.",
    choices=("OFF", "DEBUG", "TRACE"),
)
LOGGER_FILE = DriverProperty("loggerFile", None, "File the driver log is written to.")

KNOWN_PROPERTIES: tuple[DriverProperty, ...] = (
    USER,
    PASSWORD,
    PG_HOST,
    PG_PORT,
    PG_DBNAME,
    LOGIN_TIMEOUT,
    CONNECT_TIMEOUT,
    SSL_MODE,
    APPLICATION_NAME,
    TARGET_SERVER_TYPE,
    LOCAL_SOCKET_ADDRESS,
    ACCEPT_AWS_PROTOCOL_ONLY,
    ENABLE_CLUSTER_AWARE_FAILOVER,
    FAILOVER_TIMEOUT_MS,
    LOGGER_LEVEL,
    LOGGER_FILE,
)


__all__ = [
    "ACCEPT_AWS_PROTOCOL_ONLY",
    "APPLICATION_NAME",
    "CONNECT_TIMEOUT",
    "DriverProperty",
    "ENABLE_CLUSTER_AWARE_FAILOVER",
    "FAILOVER_TIMEOUT_MS",
    "KNOWN_PROPERTIES",
    "LOCAL_SOCKET_ADDRESS",
    "LOGGER_FILE",
    "LOGGER_LEVEL",
    "LOGIN_TIMEOUT",
    "PASSWORD",
    "PG_DBNAME",
    "PG_HOST",
    "PG_PORT",
    "PropertyInfo",
    "SSL_MODE",
    "TARGET_SERVER_TYPE",
    "USER",
]
