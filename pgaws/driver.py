"""Driver entry point: URL acceptance, strategy dispatch and login timeouts.

A registry may hold several drivers and offer each of them a URL in turn, so
``Driver.connect`` returns ``None`` when a URL is not meant for it and raises
when the URL is ours but the connection cannot be made.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping

from . import logs
from .config import load_default_properties
from .connection import Connection, PgConnection
from .errors import (
    ConfigError,
    ConnectionCancelledError,
    ConnectionTimeoutError,
    DriverError,
    FeatureNotSupportedError,
    MalformedURLError,
    UnexpectedDriverError,
)
from .failover import ClusterAwareConnectionProxy, ClusterCollaborator, ConnectionFactory, FailoverConnection
from .models import AWS_PROTOCOL, POSTGRES_PROTOCOL, AttemptState, HostSpec
from .properties import KNOWN_PROPERTIES, LOGIN_TIMEOUT, PropertyInfo
from .registry import DriverRegistry, default_registry
from .url import (
    accept_aws_protocol_only,
    database,
    host_specs,
    is_accept_aws_protocol_only,
    is_aws_protocol,
    parse_url,
    resolve,
    set_accept_aws_protocol_only,
    user,
)

LOG = logging.getLogger(__name__)

ClusterProxyFactory = Callable[[HostSpec, Mapping[str, str], str], ClusterCollaborator]


class ConnectAttempt:
    """Runs one connection attempt on a worker thread so the caller can stop waiting.

    The worker always runs to completion. If the caller gave up first, the
    worker closes whatever connection it managed to open.
    """

    def __init__(self, connect: Callable[[], Connection | None], *, name: str = "pgaws connection thread") -> None:
        self._connect = connect
        self._cond = threading.Condition()
        self._state = AttemptState.PENDING
        self._done = False
        self._abandoned = False
        self._cancel_requested = False
        self._result: Connection | None = None
        self._error: Exception | None = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> ConnectAttempt:
        self._thread.start()
        return self

    @property
    def state(self) -> AttemptState:
        with self._cond:
            return self._state

    @property
    def abandoned(self) -> bool:
        with self._cond:
            return self._abandoned

    def join(self, timeout: float | None = None) -> None:
        """Wait for the worker thread itself (testing helper)."""

        self._thread.join(timeout)

    def cancel(self) -> None:
        """Ask the waiting caller to give up; safe to call from any thread."""

        with self._cond:
            self._cancel_requested = True
            self._cond.notify_all()

    def result(self, timeout_ms: float) -> Connection | None:
        """Wait up to ``timeout_ms`` for the worker's outcome.

        Raises ``ConnectionTimeoutError`` at the deadline and
        ``ConnectionCancelledError`` after ``cancel()``; either way the
        attempt is abandoned and the worker keeps running. An infinite
        ``timeout_ms`` waits until the worker finishes or is cancelled.
        """

        deadline = time.monotonic() + timeout_ms / 1000
        with self._cond:
            while True:
                if self._done:
                    if self._error is None:
                        return self._result
                    if isinstance(self._error, DriverError):
                        raise self._error
                    raise UnexpectedDriverError() from self._error

                if self._cancel_requested:
                    self._abandon(AttemptState.CANCELLED)
                    raise ConnectionCancelledError("Interrupted while attempting to connect.")

                delay = deadline - time.monotonic()
                if delay <= 0:
                    self._abandon(AttemptState.TIMED_OUT)
                    raise ConnectionTimeoutError("Connection attempt timed out.")

                try:
                    # Condition.wait overflows past TIMEOUT_MAX; None waits for a notify.
                    self._cond.wait(delay if delay < threading.TIMEOUT_MAX else None)
                except BaseException:
                    self._abandon(AttemptState.CANCELLED)
                    raise

    def _abandon(self, state: AttemptState) -> None:
        self._abandoned = True
        self._state = state

    def _run(self) -> None:
        conn: Connection | None = None
        error: Exception | None = None
        try:
            conn = self._connect()
        except Exception as exc:
            error = exc

        with self._cond:
            abandoned = self._abandoned
            if not abandoned:
                self._result = conn
                self._error = error
                self._done = True
                self._state = AttemptState.FAILED if error is not None else AttemptState.SUCCEEDED
                self._cond.notify_all()

        if not abandoned:
            return
        if conn is not None:
            LOG.debug("Closing connection opened after the caller gave up")
            try:
                conn.close()
            except Exception as exc:
                LOG.debug("Ignoring error while closing abandoned connection: %s", exc)
        elif error is not None:
            LOG.debug("Discarding failure of abandoned connection attempt: %s", error)


class Driver:
    """PostgreSQL driver accepting ``postgresql:`` and ``postgresql:aws:`` URLs."""

    POSTGRES_PROTOCOL = POSTGRES_PROTOCOL
    AWS_PROTOCOL = AWS_PROTOCOL

    _registered: Driver | None = None

    def __init__(
        self,
        *,
        connection_factory: ConnectionFactory = PgConnection,
        cluster_proxy_factory: ClusterProxyFactory | None = None,
        registry: DriverRegistry | None = None,
        config_files: tuple[Path, ...] | None = None,
    ) -> None:
        self._connection_factory = connection_factory
        self._cluster_proxy_factory = cluster_proxy_factory or self._default_cluster_proxy
        self._registry = registry or default_registry
        self._config_files = config_files

    @staticmethod
    def set_accept_aws_protocol_only(enabled: bool) -> None:
        """Process wide switch limiting every driver to ``postgresql:aws:`` URLs.

        Turn it on when another driver that accepts plain ``postgresql:`` URLs
        shares the registry. A per-connection ``acceptAwsProtocolOnly``
        property takes priority over this setting.
        """

        set_accept_aws_protocol_only(enabled)

    @staticmethod
    def accept_aws_protocol_only() -> bool:
        return accept_aws_protocol_only()

    def load_default_properties(self) -> dict[str, str]:
        return load_default_properties(self._config_files)

    def connect(self, url: str | None, info: Mapping[str, object] | None = None) -> Connection | None:
        """Open a connection to ``url``, or return ``None`` if the URL is not ours.

        ``info`` holds string connection parameters such as ``user`` and
        ``password``; URL arguments take priority over it, and it takes
        priority over the configuration files.
        """

        if url is None:
            raise MalformedURLError("url is null")
        if not url.startswith(POSTGRES_PROTOCOL):
            return None

        try:
            defaults = self.load_default_properties()
        except ConfigError as exc:
            raise UnexpectedDriverError("Error loading default settings from driverconfig") from exc

        props = resolve(url, info, defaults)
        if props is None:
            return None

        try:
            logs.configure_from_properties(props)
            LOG.debug("Connecting with URL: %s", url)
            return self.connect_with_timeout(url, props, self.login_timeout_ms(props))
        except DriverError as exc:
            LOG.debug("Connection error: %s", exc, exc_info=True)
            raise
        except Exception as exc:
            LOG.debug("Unexpected connection error: %s", exc, exc_info=True)
            raise UnexpectedDriverError() from exc

    def connect_with_timeout(self, url: str, props: Mapping[str, str], timeout_ms: float) -> Connection | None:
        """Run ``make_connection`` but give up waiting after ``timeout_ms``.

        A timeout of zero or less connects on the calling thread with no
        deadline. Otherwise the attempt runs on its own thread which keeps
        going after a timeout and cleans up after itself.
        """

        if math.isnan(timeout_ms) or timeout_ms <= 0:
            return self.make_connection(url, props)

        snapshot = MappingProxyType(dict(props))
        attempt = ConnectAttempt(lambda: self.make_connection(url, snapshot))
        return attempt.start().result(timeout_ms)

    def make_connection(self, url: str, props: Mapping[str, str]) -> Connection | None:
        """Create the connection on the current thread, ignoring any timeout."""

        if is_aws_protocol(url):
            collaborator = self._cluster_proxy_factory(host_specs(props)[0], props, url)
            if collaborator.is_failover_enabled():
                return FailoverConnection(collaborator)
            return collaborator.get_connection()

        if is_accept_aws_protocol_only(props):
            return None
        return self._connection_factory(host_specs(props), user(props), database(props), props, url)

    def accepts_url(self, url: str) -> bool:
        """True when ``url`` parses as one of ours under the current strict mode."""

        try:
            return parse_url(url) is not None
        except MalformedURLError:
            return False

    def property_info(self, url: str, info: Mapping[str, str] | None = None) -> list[PropertyInfo]:
        """Describe every known property, filled in with what ``url`` and ``info`` supply."""

        props = dict(info or {})
        try:
            parsed = parse_url(url, props)
        except MalformedURLError:
            parsed = None
        if parsed is not None:
            props = parsed
        return [known.to_info(props) for known in KNOWN_PROPERTIES]

    def login_timeout_ms(self, props: Mapping[str, str]) -> float:
        """``loginTimeout`` in milliseconds, else the registry's login timeout.

        NaN means no deadline handling at all (connect on the calling thread)
        and infinity means wait as long as the attempt takes.
        """

        try:
            seconds = LOGIN_TIMEOUT.get_float(props)
        except ValueError:
            LOG.warning("Couldn't parse loginTimeout value: %s", LOGIN_TIMEOUT.get(props))
            seconds = None
        if seconds is None:
            seconds = self._registry.login_timeout
        if math.isnan(seconds):
            return 0
        return seconds * 1000

    def _default_cluster_proxy(self, host_spec: HostSpec, props: Mapping[str, str], url: str) -> ClusterCollaborator:
        return ClusterAwareConnectionProxy(host_spec, props, url, connection_factory=self._connection_factory)

    @staticmethod
    def not_implemented(owner: type, function_name: str) -> FeatureNotSupportedError:
        return FeatureNotSupportedError(f"Method {owner.__module__}.{owner.__qualname__}.{function_name} is not yet implemented.")

    @classmethod
    def register(cls, registry: DriverRegistry | None = None) -> Driver:
        """Register a driver instance with the default registry; only once per process."""

        if cls.is_registered():
            raise RuntimeError("Driver is already registered. It can only be registered once.")
        target = registry or default_registry
        driver = cls(registry=target)
        target.register(driver)
        Driver._registered = driver
        return driver

    @classmethod
    def deregister(cls) -> None:
        driver = Driver._registered
        if driver is None:
            raise RuntimeError("Driver is not registered (or it has not been registered using Driver.register() method).")
        driver._registry.deregister(driver)
        Driver._registered = None

    @classmethod
    def is_registered(cls) -> bool:
        return Driver._registered is not None


__all__ = ["ClusterProxyFactory", "ConnectAttempt", "Driver"]
