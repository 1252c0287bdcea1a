"""Base collector abstract class and per-metric failure isolation."""

from abc import ABC, abstractmethod
from functools import wraps
from typing import List
import logging

from ..config.models import MetricSpec
from ..errors import SpecCollectionFailed
from ..utils.metrics import MetricFamily, ScrapeResult


class BaseCollector(ABC):
    """Abstract base class for scrape-time collectors."""

    def __init__(self, specs: List[MetricSpec], logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            specs: Metric definitions, collected in this order
            logger: Logger instance
        """
        self.specs = list(specs)
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    def collect(self) -> ScrapeResult:
        """
        Run one scrape.

        Returns:
            ScrapeResult: Families for this scrape, status families last

        Note:
            Implementations should collect each spec through a method
            decorated with @safe_collect so one failing query never
            aborts the scrape.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the collector."""
        pass


def safe_collect(func):
    """
    Decorator isolating the collection of a single metric spec.

    The wrapped method takes the spec as its first argument. Any exception is
    wrapped in SpecCollectionFailed, logged, and replaced by an empty family
    list so the remaining specs still run.

    Args:
        func: Collector method ``(self, spec, ...) -> List[MetricFamily]``

    Returns:
        Wrapped method that never raises
    """
    @wraps(func)
    def wrapper(self, spec: MetricSpec, *args, **kwargs) -> List[MetricFamily]:
        try:
            return func(self, spec, *args, **kwargs)
        except Exception as e:
            failure = SpecCollectionFailed(spec.name, e)
            self.logger.error(f"Error collecting metric {spec.name}: {failure.cause}")
            self.logger.debug("Collection failure details", exc_info=True)
            return []
    return wrapper
