"""Failover-aware connection handles for ``postgresql:aws:`` URLs."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

from .connection import Connection, PgConnection
from .errors import ConnectionFailedError, FailoverFailedError, FailoverSucceededError, QueryError
from .models import HostSpec
from .properties import ENABLE_CLUSTER_AWARE_FAILOVER, FAILOVER_TIMEOUT_MS
from .url import database, user

LOG = logging.getLogger(__name__)

T = TypeVar("T")

ConnectionFactory = Callable[[Sequence[HostSpec], str, str, Mapping[str, str], str], Connection]


@runtime_checkable
class ClusterCollaborator(Protocol):
    """What the driver needs from a cluster-aware connection manager."""

    def is_failover_enabled(self) -> bool: ...

    def get_connection(self) -> Connection: ...

    def failover(self, cause: BaseException) -> Connection: ...


class ClusterAwareConnectionProxy:
    """Owns the live connection to a cluster endpoint and replaces it after a failure.

    The cluster endpoint's DNS name follows the writer, so reconnecting to the
    same endpoint reaches whichever instance was promoted.
    """

    def __init__(
        self,
        host_spec: HostSpec,
        props: Mapping[str, str],
        url: str,
        *,
        connection_factory: ConnectionFactory = PgConnection,
        retry_interval: float = 1.0,
    ) -> None:
        self.host_spec = host_spec
        self.url = url
        self._props = dict(props)
        self._factory = connection_factory
        self._retry_interval = retry_interval
        self._lock = threading.Lock()
        self._connection = self._open()

    def is_failover_enabled(self) -> bool:
        return ENABLE_CLUSTER_AWARE_FAILOVER.get_bool(self._props)

    def get_connection(self) -> Connection:
        with self._lock:
            return self._connection

    def failover(self, cause: BaseException) -> Connection:
        """Swap in a fresh connection; raises ``FailoverFailedError`` on timeout."""

        with self._lock:
            stale = self._connection
            LOG.warning("Connection to %s lost, starting failover: %s", self.host_spec, cause)
            try:
                stale.close()
            except Exception as exc:
                LOG.debug("Ignoring error while closing stale connection: %s", exc)
            deadline = time.monotonic() + self._failover_timeout()
            while True:
                try:
                    self._connection = self._open()
                except ConnectionFailedError as exc:
                    if time.monotonic() + self._retry_interval >= deadline:
                        raise FailoverFailedError(
                            f"Unable to re-establish a connection to {self.host_spec}: {exc}"
                        ) from exc
                    time.sleep(self._retry_interval)
                    continue
                LOG.info("Failover to %s completed", self.host_spec)
                return self._connection

    def _open(self) -> Connection:
        return self._factory((self.host_spec,), user(self._props), database(self._props), self._props, self.url)

    def _failover_timeout(self) -> float:
        try:
            timeout_ms = FAILOVER_TIMEOUT_MS.get_float(self._props)
        except ValueError:
            LOG.warning("Couldn't parse failoverTimeoutMs value: %s", FAILOVER_TIMEOUT_MS.get(self._props))
            timeout_ms = FAILOVER_TIMEOUT_MS.get_float({})
        return (timeout_ms or 0) / 1000


class FailoverConnection:
    """One logical connection that survives a cluster failover.

    Every call goes to the collaborator's current connection. When that
    connection dies the collaborator replaces it and the call raises
    ``FailoverSucceededError``; the same handle can be used again right away.
    """

    def __init__(self, collaborator: ClusterCollaborator) -> None:
        self._collaborator = collaborator
        self._closed = False

    @property
    def current(self) -> Connection:
        return self._collaborator.get_connection()

    def execute(self, query: str, *args: object, timeout: float | None = None) -> str:
        return self._invoke(query, lambda conn: conn.execute(query, *args, timeout=timeout))

    def fetch(self, query: str, *args: object, timeout: float | None = None) -> list[Any]:
        return self._invoke(query, lambda conn: conn.fetch(query, *args, timeout=timeout))

    def fetchrow(self, query: str, *args: object, timeout: float | None = None) -> Any | None:
        return self._invoke(query, lambda conn: conn.fetchrow(query, *args, timeout=timeout))

    def fetchval(self, query: str, *args: object, column: int = 0, timeout: float | None = None) -> Any:
        return self._invoke(query, lambda conn: conn.fetchval(query, *args, column=column, timeout=timeout))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.current.close()

    def is_closed(self) -> bool:
        return self._closed or self.current.is_closed()

    def __enter__(self) -> FailoverConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _invoke(self, query: str, call: Callable[[Connection], T]) -> T:
        if self._closed:
            raise QueryError("This connection has been closed.", query)
        try:
            return call(self.current)
        except ConnectionFailedError as exc:
            if not self._collaborator.is_failover_enabled():
                raise
            self._collaborator.failover(exc)
            raise FailoverSucceededError(
                "The active connection has changed due to a connection failure. "
                "Please re-configure session state if required."
            ) from exc


__all__ = [
    "ClusterAwareConnectionProxy",
    "ClusterCollaborator",
    "ConnectionFactory",
    "FailoverConnection",
]
