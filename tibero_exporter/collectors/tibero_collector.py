"""Scrape orchestration for Tibero metrics."""

import logging
import threading
import time
from typing import Callable, List, Optional

from ..config.models import MetricSpec
from ..config.settings import ExporterConfig
from ..errors import ExporterError
from ..services.connection_manager import ConnectionManager, VALIDATION_QUERY
from ..services.query_executor import QueryExecutor
from ..utils.metrics import MetricFamily, ScrapeResult
from ..utils.status import ScrapePhase, ScrapeState
from .base import BaseCollector, safe_collect
from .mapper import MetricMapper


NAMESPACE = "tibero"
UP_HELP = "Whether the last Tibero scrape succeeded"
DURATION_HELP = "Tibero scrape duration"


class CollectionEngine(BaseCollector):
    """
    Produces one ScrapeResult per call to :meth:`collect`.

    Scrapes are serialized: a single lock spans the whole of ``collect()``,
    so concurrent scrape requests queue up and never share partial state.
    The last successful result is cached and served unchanged when the
    health probe fails, keeping the last true ``up`` observation.
    """

    def __init__(
        self,
        specs: List[MetricSpec],
        executor: QueryExecutor,
        mapper: Optional[MetricMapper] = None,
        logger: logging.Logger = None,
        namespace: str = NAMESPACE,
        clock: Callable[[], float] = time.perf_counter
    ):
        """
        Initialize collection engine.

        Args:
            specs: Metric definitions, collected in this order
            executor: Query executor bound to the connection pool
            mapper: Row-to-sample mapper (default: one for ``namespace``)
            logger: Optional logger instance
            namespace: Prefix of every exported family name
            clock: Time source for scrape duration
        """
        super().__init__(specs, logger or logging.getLogger(__name__))
        self.executor = executor
        self.namespace = namespace
        self.mapper = mapper or MetricMapper(namespace)
        self._clock = clock

        self._scrape_lock = threading.Lock()
        self._last_successful: Optional[ScrapeResult] = None
        self.phase: Optional[ScrapePhase] = None
        self.last_state: Optional[ScrapeState] = None

    @classmethod
    def from_config(
        cls,
        config: ExporterConfig,
        specs: List[MetricSpec],
        logger: logging.Logger = None
    ) -> "CollectionEngine":
        """
        Build the engine with its own connection pool and connect once.

        A failed initial connect is not fatal; the next scrape retries.
        """
        logger = logger or logging.getLogger(__name__)
        manager = ConnectionManager(config, logger.getChild("ConnectionManager"))
        manager.connect()
        executor = QueryExecutor(manager, config.query_timeout, logger.getChild("QueryExecutor"))
        return cls(specs, executor, logger=logger)

    @property
    def up_name(self) -> str:
        return f"{self.namespace}_up"

    @property
    def duration_name(self) -> str:
        return f"{self.namespace}_scrape_duration_seconds"

    @property
    def cached_result(self) -> Optional[ScrapeResult]:
        """Copy of the last successful result, if any."""
        with self._scrape_lock:
            return self._last_successful.copy() if self._last_successful else None

    def collect(self) -> ScrapeResult:
        """
        Run one scrape: probe, collect every spec, finalize.

        Returns:
            ScrapeResult: Fresh result (SUCCESS), the cached one
            (DEGRADED_CACHED), or just ``up=0`` and duration (DEGRADED_EMPTY)
        """
        with self._scrape_lock:
            start = self._clock()

            self._enter(ScrapePhase.PROBING)
            try:
                self.executor.run(VALIDATION_QUERY)
            except ExporterError as e:
                return self._degraded(start, e)

            self._enter(ScrapePhase.COLLECTING_SPECS)
            families: List[MetricFamily] = []
            seen = {self.up_name, self.duration_name}
            for spec in self.specs:
                for family in self._collect_spec(spec):
                    if family.name in seen:
                        self.logger.warning(
                            f"Dropping duplicate metric family {family.name} from metric {spec.name}"
                        )
                        continue
                    seen.add(family.name)
                    families.append(family)

            self._enter(ScrapePhase.FINALIZING)
            families.append(MetricFamily.single(
                self.up_name, UP_HELP, 1.0
            ))
            families.append(MetricFamily.single(
                self.duration_name, DURATION_HELP, self._elapsed(start)
            ))

            result = ScrapeResult(families=families, state=ScrapeState.SUCCESS, timestamp=time.time())
            self._last_successful = result.copy()
            self.last_state = ScrapeState.SUCCESS
            self.phase = None
            self.logger.debug(f"Cached {len(families)} metric families for future use")
            return result

    def close(self) -> None:
        """Release the connection pool. Safe to call more than once."""
        self.executor.connection_manager.close()

    @safe_collect
    def _collect_spec(self, spec: MetricSpec) -> List[MetricFamily]:
        self.logger.debug(f"Collecting metric: {spec.name}")
        rows = self.executor.run(spec.query, spec.effective_timeout(self.executor.default_timeout))
        return self.mapper.map_families(spec, rows)

    def _enter(self, phase: ScrapePhase) -> None:
        previous = self.phase.value if self.phase else "idle"
        self.logger.debug(f"Scrape phase {previous} -> {phase.value}")
        self.phase = phase

    def _degraded(self, start: float, error: Exception) -> ScrapeResult:
        self.logger.warning(f"Scrape degraded during {self.phase.value}: {error}")
        self.phase = None
        if self._last_successful is not None:
            self.logger.debug(
                f"Database connectivity check failed, returning cached metrics: {error}"
            )
            self.last_state = ScrapeState.DEGRADED_CACHED
            return self._last_successful.copy(state=ScrapeState.DEGRADED_CACHED)

        self.logger.debug(f"Database connectivity check failed, no cached metrics: {error}")
        self.last_state = ScrapeState.DEGRADED_EMPTY
        return ScrapeResult(
            families=[
                MetricFamily.single(self.up_name, UP_HELP, 0.0),
                MetricFamily.single(self.duration_name, DURATION_HELP, self._elapsed(start)),
            ],
            state=ScrapeState.DEGRADED_EMPTY,
            timestamp=time.time()
        )

    def _elapsed(self, start: float) -> float:
        return max(0.0, self._clock() - start)
