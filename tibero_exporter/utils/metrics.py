"""Metric data structures shared by the collection engine and the exposition layer."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .status import ScrapeState


# A query cell is one of Null | Number | Text
Cell = Union[None, int, float, Decimal, str]
ResultRow = Dict[str, Cell]


class MetricKind(Enum):
    """Prometheus metric type of an exported family."""

    GAUGE = "gauge"
    COUNTER = "counter"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MetricKind":
        """
        Parse a metric type string.

        Anything other than "counter" (case-insensitive) is a gauge.

        Args:
            value: Raw metric type from the metric definition

        Returns:
            MetricKind: Parsed kind
        """
        if isinstance(value, cls):
            return value
        if value is not None and str(value).strip().lower() == "counter":
            return cls.COUNTER
        return cls.GAUGE


@dataclass(frozen=True)
class MetricSample:
    """One observation of a family with concrete label values."""

    name: str
    label_values: Tuple[str, ...]
    value: float
    kind: MetricKind = MetricKind.GAUGE


@dataclass
class MetricFamily:
    """Samples sharing name, help, kind and label schema."""

    name: str
    help: str
    kind: MetricKind
    label_names: Tuple[str, ...] = ()
    samples: List[MetricSample] = field(default_factory=list)

    def add(self, label_values: Tuple[str, ...], value: float) -> None:
        """Append a sample using this family's name and kind."""
        self.samples.append(MetricSample(self.name, tuple(label_values), value, self.kind))

    def copy(self) -> "MetricFamily":
        return replace(self, samples=list(self.samples))

    @classmethod
    def single(cls, name: str, help: str, value: float) -> "MetricFamily":
        """Build an unlabeled gauge with exactly one sample."""
        family = cls(name=name, help=help, kind=MetricKind.GAUGE)
        family.add((), value)
        return family


@dataclass
class ScrapeResult:
    """Families produced by one scrape, status families last."""

    families: List[MetricFamily]
    state: ScrapeState = ScrapeState.SUCCESS
    timestamp: Optional[float] = None

    def copy(self, state: Optional[ScrapeState] = None) -> "ScrapeResult":
        """
        Defensive copy of this result.

        Args:
            state: Optional replacement for the terminal state

        Returns:
            ScrapeResult: Copy whose family lists can be mutated independently
        """
        return ScrapeResult(
            families=[f.copy() for f in self.families],
            state=state or self.state,
            timestamp=self.timestamp,
        )

    def get(self, name: str) -> Optional[MetricFamily]:
        for family in self.families:
            if family.name == name:
                return family
        return None

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.families]
