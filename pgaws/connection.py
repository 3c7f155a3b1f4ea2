"""Synchronous connection handles backed by asyncpg."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Coroutine, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

import asyncpg

from .errors import ConnectionFailedError, DriverError, QueryError, SqlState
from .models import HostSpec
from .properties import (
    APPLICATION_NAME,
    CONNECT_TIMEOUT,
    PASSWORD,
    SSL_MODE,
    TARGET_SERVER_TYPE,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Connection(Protocol):
    """Operations every connection handed out by the driver supports."""

    def execute(self, query: str, *args: object, timeout: float | None = None) -> str: ...

    def fetch(self, query: str, *args: object, timeout: float | None = None) -> list[Any]: ...

    def fetchrow(self, query: str, *args: object, timeout: float | None = None) -> Any | None: ...

    def fetchval(self, query: str, *args: object, column: int = 0, timeout: float | None = None) -> Any: ...

    def close(self) -> None: ...

    def is_closed(self) -> bool: ...


class LoopRunner:
    """Runs coroutines on an event loop owned by a daemon thread."""

    def __init__(self, name: str = "pgaws-asyncpg-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name=name, daemon=True)
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def shutdown(self) -> None:
        """Stop the background event loop (testing helper)."""

        if not self.running:  # pragma: no cover - already stopped
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=1)


_shared_lock = threading.Lock()
_shared_runner: LoopRunner | None = None


def shared_loop() -> LoopRunner:
    """Loop shared by every connection in the process, started on first use."""

    global _shared_runner
    with _shared_lock:
        if _shared_runner is None or not _shared_runner.running:
            _shared_runner = LoopRunner()
        return _shared_runner


def connect_kwargs(
    host_specs: Sequence[HostSpec],
    user: str,
    database: str,
    props: Mapping[str, str],
) -> dict[str, object]:
    """Translate resolved properties into ``asyncpg.connect`` arguments."""

    kwargs: dict[str, object] = {
        "host": [spec.host for spec in host_specs],
        "port": [spec.port for spec in host_specs],
    }
    if user:
        kwargs["user"] = user
    if database:
        kwargs["database"] = database
    password = PASSWORD.get(props)
    if password is not None:
        kwargs["password"] = password
    try:
        timeout = CONNECT_TIMEOUT.get_float(props)
    except ValueError:
        LOG.warning("Couldn't parse connectTimeout value: %s", CONNECT_TIMEOUT.get(props))
        timeout = CONNECT_TIMEOUT.get_float({})
    if timeout and timeout > 0:
        kwargs["timeout"] = timeout
    ssl_mode = SSL_MODE.get(props)
    if ssl_mode:
        kwargs["ssl"] = ssl_mode
    target = TARGET_SERVER_TYPE.get(props)
    if target and target != "any":
        kwargs["target_session_attrs"] = target
    application_name = APPLICATION_NAME.get(props)
    if application_name:
        kwargs["server_settings"] = {"application_name": application_name}
    bind_addresses = {spec.local_socket_address for spec in host_specs if spec.local_socket_address}
    if bind_addresses:
        # asyncpg.connect has no source address option.
        LOG.debug(
            "Ignoring localSocketAddress; asyncpg cannot bind a local address",
            extra={"local_socket_address": sorted(bind_addresses)},
        )
    return kwargs


class PgConnection:
    """A direct connection to one of the listed PostgreSQL hosts.

    The asyncpg session lives on the shared loop thread; every method blocks
    the calling thread until its coroutine finishes.
    """

    def __init__(
        self,
        host_specs: Sequence[HostSpec],
        user: str,
        database: str,
        props: Mapping[str, str],
        url: str,
        *,
        runner: LoopRunner | None = None,
    ) -> None:
        self.host_specs = tuple(host_specs)
        self.user = user
        self.database = database
        self.url = url
        self._runner = runner or shared_loop()
        self._closed = False
        self._lock = threading.Lock()
        kwargs = connect_kwargs(self.host_specs, user, database, props)
        LOG.debug(
            "Opening connection",
            extra={"hosts": [str(spec) for spec in self.host_specs], "database": database},
        )
        try:
            self._conn = self._runner.run(asyncpg.connect(**kwargs))
        except Exception as exc:
            hosts = ", ".join(str(spec) for spec in self.host_specs)
            raise ConnectionFailedError(f"Failed to connect to {hosts}: {exc}") from exc

    def execute(self, query: str, *args: object, timeout: float | None = None) -> str:
        return self._call(query, self._conn.execute(query, *args, timeout=timeout))

    def fetch(self, query: str, *args: object, timeout: float | None = None) -> list[Any]:
        return self._call(query, self._conn.fetch(query, *args, timeout=timeout))

    def fetchrow(self, query: str, *args: object, timeout: float | None = None) -> Any | None:
        return self._call(query, self._conn.fetchrow(query, *args, timeout=timeout))

    def fetchval(self, query: str, *args: object, column: int = 0, timeout: float | None = None) -> Any:
        return self._call(query, self._conn.fetchval(query, *args, column=column, timeout=timeout))

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._runner.run(self._conn.close())
        except Exception as exc:
            LOG.debug("Error while closing connection: %s", exc)
            self._conn.terminate()

    def is_closed(self) -> bool:
        return self._closed or self._conn.is_closed()

    def __enter__(self) -> PgConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _call(self, query: str, coro: Coroutine[Any, Any, T]) -> T:
        if self._closed:
            coro.close()
            raise QueryError("This connection has been closed.", query)
        try:
            return self._runner.run(coro)
        except DriverError:
            raise
        except TimeoutError as exc:
            raise QueryError("Query timed out.", query, SqlState.QUERY_CANCELED) from exc
        except (asyncpg.exceptions.ConnectionDoesNotExistError, asyncpg.exceptions.PostgresConnectionError, OSError) as exc:
            raise ConnectionFailedError(f"Connection lost: {exc}") from exc
        except asyncpg.PostgresError as exc:
            raise QueryError(str(exc), query) from exc


__all__ = [
    "Connection",
    "LoopRunner",
    "PgConnection",
    "connect_kwargs",
    "shared_loop",
]
