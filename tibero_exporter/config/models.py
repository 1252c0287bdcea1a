"""Pydantic models for metric definitions."""

import re
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.metrics import MetricKind


_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class MetricSpec(BaseModel):
    """
    One metric definition: a query and how its columns become samples.

    Created by the metrics loader from entries such as::

        - name: sessions
          context: sessions
          help: Session count by status
          request: SELECT status, COUNT(*) AS cnt FROM v$session GROUP BY status
          labels: [status]
          fieldtoname: {CNT: count}
          metrictype: gauge
          ignorezeroresult: false
          querytimeout: 10
    """

    model_config = ConfigDict(frozen=True)

    name: str
    context: str = ""
    help: str = ""
    query: str = Field(min_length=1)
    labels: Tuple[str, ...] = ()
    kind: MetricKind = MetricKind.GAUGE
    field_to_metric_name: Dict[str, str] = Field(default_factory=dict)
    ignore_zero: bool = False
    query_timeout: int = Field(default=0, ge=0)  # 0 = use process default

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Metric names become part of the exported family name."""
        v = v.strip()
        if not _IDENTIFIER.match(v):
            raise ValueError(f'Metric name must be a non-empty identifier, got {v!r}')
        return v

    @field_validator('kind', mode='before')
    @classmethod
    def parse_kind(cls, v) -> MetricKind:
        return MetricKind.parse(v)

    @field_validator('labels', mode='before')
    @classmethod
    def parse_labels(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return tuple(str(label) for label in v)

    @field_validator('field_to_metric_name', mode='before')
    @classmethod
    def normalize_field_names(cls, v) -> Dict[str, str]:
        """Lower-case the column keys so lookups ignore case."""
        if not v:
            return {}
        return {str(column).lower(): str(metric) for column, metric in v.items()}

    @property
    def label_keys(self) -> Tuple[str, ...]:
        """Labels lower-cased for matching against result columns."""
        return tuple(label.lower() for label in self.labels)

    def value_name_for(self, column: str) -> str:
        """
        Resolve the exported value name for a result column.

        Args:
            column: Result column name (any case)

        Returns:
            str: Mapped name from ``fieldtoname``, else the lower-cased column
        """
        column = column.lower()
        return self.field_to_metric_name.get(column, column)

    def effective_timeout(self, default: int) -> int:
        return self.query_timeout if self.query_timeout > 0 else default
