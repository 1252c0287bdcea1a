"""Conversion of query rows into labeled metric samples."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List

from ..config.models import MetricSpec
from ..errors import ValueCoercionFailed
from ..utils.metrics import Cell, MetricFamily, MetricSample, ResultRow


NUMERIC_PATTERN = re.compile(r'-?\d+(\.\d+)?')

logger = logging.getLogger(__name__)


def is_numeric(value: Cell) -> bool:
    """
    Whether a cell may become a sample value.

    Numbers qualify, as do strings that fully match ``-?digits(.digits)?``.
    None, booleans and other text do not.
    """
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    if isinstance(value, str):
        return NUMERIC_PATTERN.fullmatch(value) is not None
    return False


def to_float(value: Cell) -> float:
    """
    Coerce a numeric cell to float.

    Raises:
        ValueCoercionFailed: If the value cannot be represented as a float
    """
    if value is None or isinstance(value, bool):
        raise ValueCoercionFailed(value, "not a number")
    try:
        result = float(value)
    except (TypeError, ValueError, InvalidOperation, OverflowError) as e:
        raise ValueCoercionFailed(value, str(e)) from e
    return result


def label_value(value: Cell) -> str:
    return "" if value is None else str(value)


class MetricMapper:
    """
    Map tabular query results onto metric samples.

    Pure: no I/O and no state beyond the namespace, so mapping the same
    ``(spec, rows)`` twice gives identical output.
    """

    def __init__(self, namespace: str = "tibero"):
        self.namespace = namespace

    def full_name(self, spec: MetricSpec, value_name: str) -> str:
        return f"{self.namespace}_{spec.name}_{value_name}"

    def map(self, spec: MetricSpec, rows: Iterable[ResultRow]) -> List[MetricSample]:
        """
        Convert rows into samples.

        Label columns give the label values (missing columns become ``""``);
        every other numeric column gives one sample named
        ``<namespace>_<spec name>_<value name>``.

        Args:
            spec: Metric definition
            rows: Query rows keyed by lower-cased column name

        Returns:
            List[MetricSample]: Samples in row order, then column order
        """
        label_keys = spec.label_keys
        label_set = set(label_keys)
        samples = []

        for row in rows:
            lowered = {str(column).lower(): value for column, value in row.items()}
            label_values = tuple(label_value(lowered.get(key)) for key in label_keys)

            for column, value in lowered.items():
                if column in label_set or not is_numeric(value):
                    continue

                try:
                    number = to_float(value)
                except ValueCoercionFailed as e:
                    logger.debug(f"Skipping column {column} of metric {spec.name}: {e}")
                    continue

                if spec.ignore_zero and number == 0:
                    continue

                samples.append(MetricSample(
                    name=self.full_name(spec, spec.value_name_for(column)),
                    label_values=label_values,
                    value=number,
                    kind=spec.kind
                ))

        return samples

    def group(self, spec: MetricSpec, samples: Iterable[MetricSample]) -> List[MetricFamily]:
        """
        Group samples into families keyed by full name, in first-seen order.

        The first sample of a name fixes the family's kind; help text and
        label names come from the spec.
        """
        families: Dict[str, MetricFamily] = {}
        for sample in samples:
            family = families.get(sample.name)
            if family is None:
                family = MetricFamily(
                    name=sample.name,
                    help=spec.help,
                    kind=sample.kind,
                    label_names=tuple(spec.labels)
                )
                families[sample.name] = family
            family.samples.append(sample)
        return list(families.values())

    def map_families(self, spec: MetricSpec, rows: List[ResultRow]) -> List[MetricFamily]:
        """
        Map rows straight to families.

        An empty row set yields no families.
        """
        if not rows:
            if spec.ignore_zero:
                logger.debug(f"No results for metric {spec.name} (ignored)")
            else:
                logger.debug(f"No results for metric {spec.name}")
            return []
        return self.group(spec, self.map(spec, rows))
