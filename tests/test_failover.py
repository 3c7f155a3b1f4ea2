"""Tests for the failover-aware connection wrapper and default cluster proxy."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import pytest

from pgaws.errors import (
    ConnectionFailedError,
    FailoverFailedError,
    FailoverSucceededError,
    QueryError,
)
from pgaws.failover import ClusterAwareConnectionProxy, ClusterCollaborator, FailoverConnection
from pgaws.models import HostSpec


class _FakeConnection:
    def __init__(self, label: str, *, broken: bool = False) -> None:
        self.label = label
        self.broken = broken
        self.closed = False
        self.queries: list[str] = []

    def _run(self, query: str) -> str:
        if self.broken:
            raise ConnectionFailedError("Connection lost: server closed the connection unexpectedly")
        self.queries.append(query)
        return self.label

    def execute(self, query: str, *args: object, timeout: float | None = None) -> str:
        return self._run(query)

    def fetch(self, query: str, *args: object, timeout: float | None = None) -> list[Any]:
        return [self._run(query)]

    def fetchrow(self, query: str, *args: object, timeout: float | None = None) -> Any | None:
        return self._run(query)

    def fetchval(self, query: str, *args: object, column: int = 0, timeout: float | None = None) -> Any:
        return self._run(query)

    def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed


class _Collaborator:
    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self.connection = _FakeConnection("writer-1")
        self.failovers: list[BaseException] = []

    def is_failover_enabled(self) -> bool:
        return self.enabled

    def get_connection(self) -> _FakeConnection:
        return self.connection

    def failover(self, cause: BaseException) -> _FakeConnection:
        self.failovers.append(cause)
        self.connection = _FakeConnection(f"writer-{len(self.failovers) + 1}")
        return self.connection


class _SequenceFactory:
    """Connection factory returning queued outcomes in order."""

    def __init__(self, outcomes: list[_FakeConnection | Exception]) -> None:
        self.outcomes = outcomes
        self.calls: list[tuple[HostSpec, ...]] = []

    def __call__(
        self,
        host_specs: Sequence[HostSpec],
        user: str,
        database: str,
        props: Mapping[str, str],
        url: str,
    ) -> _FakeConnection:
        self.calls.append(tuple(host_specs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_collaborator_protocol_is_satisfied_by_proxy_and_fakes() -> None:
    assert isinstance(_Collaborator(), ClusterCollaborator)


def test_calls_are_forwarded_to_current_connection() -> None:
    collaborator = _Collaborator()
    conn = FailoverConnection(collaborator)

    assert conn.fetchval("SELECT 1") == "writer-1"
    assert conn.fetch("SELECT 2") == ["writer-1"]
    assert collaborator.connection.queries == ["SELECT 1", "SELECT 2"]


def test_same_handle_survives_failover() -> None:
    collaborator = _Collaborator()
    conn = FailoverConnection(collaborator)
    collaborator.connection.broken = True

    with pytest.raises(FailoverSucceededError) as excinfo:
        conn.execute("UPDATE accounts SET touched = now()")

    assert excinfo.value.sqlstate == "08S02"
    assert isinstance(excinfo.value.__cause__, ConnectionFailedError)
    assert len(collaborator.failovers) == 1
    assert conn.fetchval("SELECT 1") == "writer-2"
    assert conn.current is collaborator.connection


def test_connection_errors_propagate_when_failover_disabled() -> None:
    collaborator = _Collaborator(enabled=False)
    conn = FailoverConnection(collaborator)
    collaborator.connection.broken = True

    with pytest.raises(ConnectionFailedError):
        conn.fetchrow("SELECT 1")
    assert collaborator.failovers == []


def test_closed_wrapper_refuses_calls() -> None:
    collaborator = _Collaborator()
    conn = FailoverConnection(collaborator)

    with conn:
        pass

    assert conn.is_closed() is True
    assert collaborator.connection.closed is True
    with pytest.raises(QueryError, match="closed"):
        conn.fetchval("SELECT 1")
    conn.close()


def test_proxy_opens_first_endpoint_and_reads_failover_flag() -> None:
    first = _FakeConnection("writer")
    factory = _SequenceFactory([first])
    proxy = ClusterAwareConnectionProxy(
        HostSpec("cluster", 5432),
        {"user": "app", "PGDBNAME": "db", "enableClusterAwareFailover": "false"},
        "postgresql:aws://cluster/db",
        connection_factory=factory,
    )

    assert proxy.get_connection() is first
    assert proxy.is_failover_enabled() is False
    assert factory.calls == [(HostSpec("cluster", 5432),)]


def test_proxy_failover_enabled_by_default() -> None:
    proxy = ClusterAwareConnectionProxy(
        HostSpec("cluster"),
        {},
        "postgresql:aws://cluster/db",
        connection_factory=_SequenceFactory([_FakeConnection("writer")]),
    )

    assert proxy.is_failover_enabled() is True


def test_proxy_failover_retries_until_reconnected() -> None:
    first = _FakeConnection("old")
    replacement = _FakeConnection("new")
    factory = _SequenceFactory([first, ConnectionFailedError("still promoting"), replacement])
    proxy = ClusterAwareConnectionProxy(
        HostSpec("cluster"),
        {"failoverTimeoutMs": "5000"},
        "postgresql:aws://cluster/db",
        connection_factory=factory,
        retry_interval=0.01,
    )

    assert proxy.failover(ConnectionFailedError("lost")) is replacement
    assert first.closed is True
    assert proxy.get_connection() is replacement
    assert len(factory.calls) == 3


def test_proxy_failover_gives_up_after_timeout() -> None:
    factory = _SequenceFactory([_FakeConnection("old")] + [ConnectionFailedError("down")] * 20)
    proxy = ClusterAwareConnectionProxy(
        HostSpec("cluster"),
        {"failoverTimeoutMs": "0"},
        "postgresql:aws://cluster/db",
        connection_factory=factory,
        retry_interval=0.01,
    )

    with pytest.raises(FailoverFailedError):
        proxy.failover(ConnectionFailedError("lost"))
    assert len(factory.calls) == 2
