"""Single-query execution with one bounded reconnect-retry."""

import datetime
import logging
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from ..errors import ConnectionUnavailable, QueryExecutionFailed
from ..utils.metrics import Cell, ResultRow
from .connection_manager import ConnectionManager


def resolve_timeout(override: Optional[int], default: int) -> int:
    """Metric-specific override if positive, else the process default."""
    return override if override and override > 0 else default


def normalize_cell(value: Any) -> Cell:
    """
    Reduce a driver value to the closed cell variant None | number | str.

    Args:
        value: Raw value returned by the DB-API cursor

    Returns:
        Cell: None, int, float, Decimal or str
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal, str)):
        return value
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


class QueryExecutor:
    """
    Run queries against the managed pool.

    A failed execution triggers exactly one throttled reconnect and, if the
    pool is healthy afterwards, exactly one re-execution.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        default_timeout: int = 30,
        logger: logging.Logger = None
    ):
        """
        Initialize query executor.

        Args:
            connection_manager: Owner of the connection pool
            default_timeout: Query timeout used when none is given (s)
            logger: Optional logger instance
        """
        self.connection_manager = connection_manager
        self.default_timeout = default_timeout
        self.logger = logger or logging.getLogger(__name__)

    def run(self, query: str, timeout_seconds: Optional[int] = None) -> List[ResultRow]:
        """
        Execute a query and return every row keyed by lower-cased column name.

        Args:
            query: SQL text
            timeout_seconds: Query timeout; None or 0 uses the default

        Returns:
            List[ResultRow]: Materialized rows

        Raises:
            ConnectionUnavailable: Pool unhealthy even after a forced reconnect
            QueryExecutionFailed: Query failed, including after the retry
        """
        timeout = resolve_timeout(timeout_seconds, self.default_timeout)
        manager = self.connection_manager

        if not manager.is_healthy():
            manager.force_reconnect()
            if not manager.is_healthy():
                config = manager.config
                self.logger.error("Database connection pool is not valid after reconnect attempt")
                self.logger.error(
                    f"Check database connectivity: host={config.db_host}, "
                    f"port={config.db_port}, user={config.db_user}"
                )
                raise ConnectionUnavailable("Database connection pool is not valid") from manager.last_error

        try:
            return self._execute(query, timeout)
        except Exception as e:
            self.logger.error(f"Query execution failed: {e}")
            self.logger.debug(f"Query: {query}")
            original = e

        self.logger.warning("Retrying query after reconnect...")
        if not manager.reconnect():
            raise QueryExecutionFailed(query, original) from original

        try:
            return self._execute(query, timeout)
        except Exception as retry_error:
            self.logger.error(f"Reconnect and retry failed: {retry_error}")
            raise QueryExecutionFailed(query, original, retried=True) from original

    def _execute(self, query: str, timeout: int) -> List[ResultRow]:
        with self.connection_manager.connection(timeout) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(query)
                columns = self._column_names(cursor.description)
                return [
                    {column: normalize_cell(value) for column, value in zip(columns, row)}
                    for row in cursor.fetchall()
                ]
            finally:
                cursor.close()

    @staticmethod
    def _column_names(description: Optional[Sequence[Sequence[Any]]]) -> List[str]:
        if not description:
            return []
        return [str(column[0]).lower() for column in description]
