"""Tests for the prometheus_client bridge."""

from unittest.mock import MagicMock

import pytest
from prometheus_client import generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from tibero_exporter.collectors.base import BaseCollector
from tibero_exporter.exposition import ScrapeCollector, build_registry, to_prometheus
from tibero_exporter.utils.metrics import MetricFamily, MetricKind, ScrapeResult
from tibero_exporter.utils.status import ScrapeState


class StaticCollector(BaseCollector):
    """Collector returning a fixed result and counting scrapes."""

    def __init__(self, result, logger):
        super().__init__([], logger)
        self.result = result
        self.calls = 0

    def collect(self):
        self.calls += 1
        return self.result


@pytest.fixture
def scrape_result():
    sessions = MetricFamily("tibero_sessions_count", "Number of sessions by status", MetricKind.GAUGE, ("status",))
    sessions.add(("ACTIVE",), 5.0)
    sessions.add(("IDLE",), 2.0)

    activity = MetricFamily("tibero_activity_value", "Cumulative system statistics", MetricKind.COUNTER, ("name",))
    activity.add(("user commits",), 10.0)

    return ScrapeResult(
        families=[
            sessions,
            activity,
            MetricFamily.single("tibero_up", "Whether the last Tibero scrape succeeded", 1.0),
            MetricFamily.single("tibero_scrape_duration_seconds", "Tibero scrape duration", 0.25),
        ],
        state=ScrapeState.SUCCESS
    )


class TestToPrometheus:
    def test_gauge(self, scrape_result):
        metric = to_prometheus(scrape_result.families[0])

        assert isinstance(metric, GaugeMetricFamily)
        assert [(s.labels, s.value) for s in metric.samples] == [
            ({"status": "ACTIVE"}, 5.0),
            ({"status": "IDLE"}, 2.0),
        ]

    def test_counter(self, scrape_result):
        metric = to_prometheus(scrape_result.families[1])

        assert isinstance(metric, CounterMetricFamily)
        assert metric.type == "counter"
        assert metric.samples[0].name == "tibero_activity_value_total"


class TestRegistry:
    def test_text_exposition(self, scrape_result, logger):
        """The registry renders every family of one scrape."""
        engine = StaticCollector(scrape_result, logger)
        registry = build_registry(engine)

        text = generate_latest(registry).decode("utf-8")

        assert "# HELP tibero_sessions_count Number of sessions by status" in text
        assert "# TYPE tibero_sessions_count gauge" in text
        assert 'tibero_sessions_count{status="ACTIVE"} 5.0' in text
        assert 'tibero_sessions_count{status="IDLE"} 2.0' in text
        assert 'tibero_activity_value_total{name="user commits"} 10.0' in text
        assert "tibero_up 1.0" in text
        assert "tibero_scrape_duration_seconds 0.25" in text

    def test_one_engine_scrape_per_request(self, scrape_result, logger):
        engine = StaticCollector(scrape_result, logger)
        registry = build_registry(engine)

        assert engine.calls == 0
        generate_latest(registry)
        generate_latest(registry)
        assert engine.calls == 2

    def test_describe_does_not_scrape(self):
        engine = MagicMock()
        assert ScrapeCollector(engine).describe() == []
        engine.collect.assert_not_called()

    def test_unconvertible_family_skipped(self, scrape_result, monkeypatch):
        """A family prometheus_client rejects is skipped, the rest still exported."""
        engine = MagicMock()
        engine.collect.return_value = scrape_result

        def flaky(family):
            if family.name == "tibero_activity_value":
                raise ValueError("Invalid metric name")
            return to_prometheus(family)

        monkeypatch.setattr("tibero_exporter.exposition.to_prometheus", flaky)
        names = [metric.name for metric in ScrapeCollector(engine).collect()]

        assert names == ["tibero_sessions_count", "tibero_up", "tibero_scrape_duration_seconds"]
