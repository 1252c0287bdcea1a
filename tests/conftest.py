"""Shared pytest configuration and fixtures."""

import pytest

from tibero_exporter.config.models import MetricSpec
from tibero_exporter.config.settings import ExporterConfig
from tibero_exporter.services.connection_manager import ConnectionManager, VALIDATION_QUERY
from tibero_exporter.services.query_executor import QueryExecutor
from tibero_exporter.utils.logger import setup_logger


CONFIG_ENV_VARS = [name.upper() for name in ExporterConfig.model_fields]


class FakeCursor:
    """DB-API cursor answering from FakeDatabase.responses."""

    def __init__(self, database):
        self.database = database
        self.description = None
        self._rows = []
        self.closed = False

    def execute(self, query):
        self.database.executed.append(query)
        if self.database.down:
            raise RuntimeError("TBR-2131: Connection lost")
        if query in self.database.fail_once:
            raise self.database.fail_once.pop(query)
        response = self.database.responses.get(query)
        if response is None:
            raise RuntimeError(f"TBR-8033: Specified schema object was not found: {query}")
        if isinstance(response, Exception):
            raise response
        columns, rows = response
        self.description = [(column, None, None, None, None, None, None) for column in columns]
        self._rows = [tuple(row) for row in rows]

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def close(self):
        self.closed = True


class FakeConnection:
    """DB-API connection with the ``timeout`` attribute pyodbc exposes."""

    def __init__(self, database):
        self.database = database
        self.timeout = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self.database)

    def rollback(self):
        pass

    def close(self):
        self.closed = True


class FakeDatabase:
    """
    In-memory stand-in for a Tibero server.

    ``responses`` maps query text to ``(columns, rows)`` or an exception.
    Setting ``down`` makes both new connections and running queries fail.
    ``fail_once`` maps query text to an error raised on its next execution only.
    """

    def __init__(self):
        self.responses = {VALIDATION_QUERY: (["1"], [(1,)])}
        self.down = False
        self.fail_once = {}
        self.connections = []
        self.executed = []

    def connect(self):
        if self.down:
            raise RuntimeError("TBR-2048: Unable to connect to 127.0.0.1:8629")
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep exporter environment variables of the host out of the tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test")


@pytest.fixture
def config():
    """Configuration with a small pool."""
    return ExporterConfig(db_password="secret", max_pool_size=2, min_idle=1)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(config, fake_db, clock, logger):
    """ConnectionManager backed by the fake database, not yet connected."""
    manager = ConnectionManager(config, logger, creator=fake_db.connect, clock=clock)
    yield manager
    manager.close()


@pytest.fixture
def executor(manager, config, logger):
    return QueryExecutor(manager, config.query_timeout, logger)


@pytest.fixture
def sessions_spec():
    """Session count by status, as shipped in the default metrics."""
    return MetricSpec(
        name="sessions",
        context="sessions",
        help="Number of sessions by status",
        query="SELECT status, COUNT(*) AS cnt FROM v$session GROUP BY status",
        labels=["status"],
        field_to_metric_name={"CNT": "count"},
        kind="gauge"
    )
