"""
Pooled Tibero connection with health tracking and reconnect throttling.

The pool is a SQLAlchemy ``QueuePool`` over raw pyodbc connections. The
manager owns it exclusively: other components borrow connections through
:meth:`ConnectionManager.connection` and never see the pool itself.

Connect attempts are throttled to one per ``min_reconnect_interval``.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

import pyodbc
from sqlalchemy import event, exc
from sqlalchemy.pool import QueuePool

from ..config.settings import ExporterConfig
from ..errors import ConnectionUnavailable


VALIDATION_QUERY = "SELECT 1 FROM DUAL"
DEFAULT_RECONNECT_INTERVAL = 5.0  # seconds


class ConnectionManager:
    """
    Owns the connection pool, its health flag and the reconnect throttle.

    Attributes:
        healthy (bool): Last known health (read via :meth:`is_healthy`)
        last_error (Exception): Error of the most recent failed connect, if any
        connect_attempts (int): Number of pool-open attempts actually made
    """

    def __init__(
        self,
        config: ExporterConfig,
        logger: logging.Logger = None,
        creator: Optional[Callable[[], Any]] = None,
        min_reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the manager without connecting.

        Args:
            config: Exporter configuration (pool sizing, timeouts, credentials)
            logger: Optional logger instance
            creator: DB-API connection factory; defaults to pyodbc.connect
            min_reconnect_interval: Throttle window between connect attempts (s)
            clock: Monotonic time source
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.min_reconnect_interval = min_reconnect_interval
        self._creator = creator or self._pyodbc_connect
        self._clock = clock

        self._lock = threading.RLock()
        self._pool: Optional[QueuePool] = None
        self.healthy = False
        self.last_error: Optional[Exception] = None
        self.connect_attempts = 0
        self._last_attempt_at: Optional[float] = None

    def connect(self) -> bool:
        """
        Open a fresh pool unless an attempt was made within the throttle window.

        Any existing pool is disposed first. The manager becomes healthy only
        when the validation query succeeds; on failure the error is kept in
        ``last_error``.

        Returns:
            bool: Health after the call
        """
        with self._lock:
            now = self._clock()
            if (
                self._last_attempt_at is not None
                and now - self._last_attempt_at < self.min_reconnect_interval
            ):
                self.logger.debug("Skipping connect attempt (retry delay not elapsed)")
                return self.healthy

            self._last_attempt_at = now
            self.connect_attempts += 1
            self._dispose_pool()

            self.logger.info(
                f"Initializing Tibero connection pool (attempt {self.connect_attempts}): "
                f"{self.config.masked_connection_string()}"
            )

            pool = None
            try:
                pool = self._open_pool()
                self._validate(pool)
                self._warm_up(pool)
            except Exception as e:
                self.healthy = False
                self.last_error = e
                self.logger.error(f"Connection pool initialization failed: {e}")
                self.logger.debug("Connection error details", exc_info=True)
                if pool is not None:
                    self._safe_dispose(pool)
                return False

            self._pool = pool
            self.healthy = True
            self.last_error = None
            self.logger.info(
                f"Tibero connection pool initialized - max: {self.config.max_pool_size}, "
                f"min idle: {self.config.min_idle}, timeout: {self.config.connection_timeout}ms"
            )
            return True

    def force_reconnect(self) -> bool:
        """Reconnect immediately, ignoring the throttle window."""
        with self._lock:
            self.logger.warning("Force reconnecting to database...")
            self._last_attempt_at = None
            self.healthy = False
            return self.connect()

    def reconnect(self) -> bool:
        """Mark the pool unhealthy and reconnect, respecting the throttle window."""
        with self._lock:
            self.logger.warning("Attempting database reconnect...")
            self.healthy = False
            return self.connect()

    def is_healthy(self) -> bool:
        """
        Return the last known health.

        A missing or closed pool is always unhealthy, and the flag is
        downgraded when that is detected.

        Returns:
            bool: True when queries may be attempted
        """
        with self._lock:
            if self._pool is None:
                self.healthy = False
            return self.healthy

    @contextmanager
    def connection(self, timeout_seconds: int) -> Iterator[Any]:
        """
        Borrow one pooled connection with the query timeout applied.

        Args:
            timeout_seconds: Driver-level query timeout

        Yields:
            Pooled DB-API connection; returned to the pool on exit

        Raises:
            ConnectionUnavailable: If there is no open pool
        """
        with self._lock:
            pool = self._pool
        if pool is None:
            raise ConnectionUnavailable("No database connection pool")

        conn = pool.connect()
        try:
            conn.dbapi_connection.timeout = int(timeout_seconds)
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        """Release the pool. Safe to call more than once."""
        with self._lock:
            if self._pool is None:
                return
            try:
                self._pool.dispose()
                self.logger.info("Database connection pool closed")
            except Exception as e:
                self.logger.error(f"Error while closing connection pool: {e}")
            finally:
                self._pool = None
                self.healthy = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _pyodbc_connect(self):
        return pyodbc.connect(
            self.config.odbc_connection_string(),
            timeout=max(1, int(self.config.connection_timeout_seconds)),
            autocommit=True
        )

    def _open_pool(self) -> QueuePool:
        recycle = self.config.max_lifetime_seconds
        pool = QueuePool(
            self._creator,
            pool_size=self.config.max_pool_size,
            max_overflow=0,
            timeout=self.config.connection_timeout_seconds,
            recycle=recycle if recycle > 0 else -1,
        )

        idle_timeout = self.config.idle_timeout_seconds
        if idle_timeout > 0:
            clock = self._clock

            @event.listens_for(pool, "checkin")
            def _mark_idle(dbapi_connection, connection_record):
                connection_record.info["idle_since"] = clock()

            @event.listens_for(pool, "checkout")
            def _evict_idle(dbapi_connection, connection_record, connection_proxy):
                idle_since = connection_record.info.pop("idle_since", None)
                if idle_since is not None and clock() - idle_since > idle_timeout:
                    # Pool discards this connection and retries with a new one
                    raise exc.DisconnectionError("Connection idle past idle_timeout")

        return pool

    def _validate(self, pool: QueuePool) -> None:
        conn = pool.connect()
        try:
            conn.dbapi_connection.timeout = self.config.query_timeout
            cursor = conn.cursor()
            try:
                cursor.execute(VALIDATION_QUERY)
                if cursor.fetchone() is None:
                    raise ConnectionUnavailable("Connection validation query returned no result")
            finally:
                cursor.close()
        finally:
            conn.close()

    def _warm_up(self, pool: QueuePool) -> None:
        """Open up to ``min_idle`` connections so the first scrape does not pay for them."""
        borrowed = []
        try:
            for _ in range(self.config.min_idle):
                borrowed.append(pool.connect())
        finally:
            for conn in borrowed:
                conn.close()

    def _dispose_pool(self) -> None:
        if self._pool is not None:
            self._safe_dispose(self._pool)
            self._pool = None
        self.healthy = False

    def _safe_dispose(self, pool: QueuePool) -> None:
        try:
            pool.dispose()
        except Exception as e:
            self.logger.debug(f"Ignoring error while disposing pool: {e}")
