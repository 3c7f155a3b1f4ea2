"""Registry that offers a URL to each registered driver in turn."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Mapping, Protocol, runtime_checkable

from .connection import Connection
from .errors import DriverError, NoSuitableDriverError

LOG = logging.getLogger(__name__)


@runtime_checkable
class CandidateDriver(Protocol):
    """Contract for drivers taking part in chained URL resolution."""

    def connect(self, url: str, info: Mapping[str, object] | None = None) -> Connection | None: ...

    def accepts_url(self, url: str) -> bool: ...


class DriverRegistry:
    """Keeps drivers in registration order and picks the first that accepts a URL."""

    def __init__(self) -> None:
        self._drivers: list[CandidateDriver] = []
        self._lock = threading.Lock()
        self._login_timeout = 0.0

    def register(self, driver: CandidateDriver) -> None:
        """Register a driver; registering the same instance twice is a no-op."""

        with self._lock:
            if any(existing is driver for existing in self._drivers):
                return
            self._drivers.append(driver)
        LOG.debug("Registered driver", extra={"driver": type(driver).__name__})

    def register_many(self, drivers: Iterable[CandidateDriver]) -> None:
        for driver in drivers:
            self.register(driver)

    def deregister(self, driver: CandidateDriver) -> None:
        with self._lock:
            self._drivers = [existing for existing in self._drivers if existing is not driver]

    def is_registered(self, driver: CandidateDriver) -> bool:
        with self._lock:
            return any(existing is driver for existing in self._drivers)

    def list_drivers(self) -> list[CandidateDriver]:
        """Return the registered drivers in the order they are tried."""

        with self._lock:
            return list(self._drivers)

    @property
    def login_timeout(self) -> float:
        """Seconds to wait for a connection when a URL sets no ``loginTimeout``."""

        return self._login_timeout

    @login_timeout.setter
    def login_timeout(self, seconds: float) -> None:
        self._login_timeout = float(seconds)

    def driver_for(self, url: str) -> CandidateDriver:
        for driver in self.list_drivers():
            if driver.accepts_url(url):
                return driver
        raise NoSuitableDriverError(f"No suitable driver found for {url}")

    def connect(self, url: str, info: Mapping[str, object] | None = None) -> Connection:
        """Offer ``url`` to every driver until one returns a connection.

        Drivers returning ``None`` are skipped silently. If a driver fails the
        first failure is raised once every driver has had its turn.
        """

        first_error: DriverError | None = None
        for driver in self.list_drivers():
            try:
                connection = driver.connect(url, info)
            except DriverError as exc:
                LOG.debug("Driver failed to connect", extra={"driver": type(driver).__name__})
                if first_error is None:
                    first_error = exc
                continue
            if connection is not None:
                return connection
        if first_error is not None:
            raise first_error
        raise NoSuitableDriverError(f"No suitable driver found for {url}")


default_registry = DriverRegistry()


__all__ = ["CandidateDriver", "DriverRegistry", "default_registry"]
