"""
Bridge from the collection engine to prometheus_client.

``ScrapeCollector`` implements the custom-collector protocol: each HTTP
scrape of the registry runs exactly one engine scrape and converts its
families to prometheus_client metric families.
"""

import logging
from typing import Iterator, List

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from .collectors.base import BaseCollector
from .utils.metrics import MetricFamily, MetricKind


logger = logging.getLogger(__name__)


def to_prometheus(family: MetricFamily) -> Metric:
    """
    Convert one family to its prometheus_client counterpart.

    Counters are exposed by prometheus_client with a ``_total`` suffix.
    """
    metric_cls = CounterMetricFamily if family.kind is MetricKind.COUNTER else GaugeMetricFamily
    metric = metric_cls(family.name, family.help, labels=list(family.label_names))
    for sample in family.samples:
        metric.add_metric(list(sample.label_values), sample.value)
    return metric


class ScrapeCollector:
    """prometheus_client custom collector backed by a BaseCollector."""

    def __init__(self, engine: BaseCollector):
        self.engine = engine

    def collect(self) -> Iterator[Metric]:
        result = self.engine.collect()
        for family in result.families:
            try:
                metric = to_prometheus(family)
            except ValueError as e:
                logger.error(f"Cannot expose metric family {family.name}: {e}")
                continue
            yield metric

    def describe(self) -> List[Metric]:
        # Registration must not trigger a database scrape
        return []


def build_registry(engine: BaseCollector) -> CollectorRegistry:
    """Create a registry holding only the exporter's metrics."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(ScrapeCollector(engine))
    return registry
