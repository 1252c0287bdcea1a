"""Metric definition loader with YAML parsing and environment variable substitution."""

import logging
import os
import re
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import MetricSpec


logger = logging.getLogger(__name__)

RESOURCE_PACKAGE = "tibero_exporter"
RESOURCE_DIR = "resources"
DEFAULT_METRICS_RESOURCE = "default_metrics.yaml"

# YAML key -> MetricSpec field
_FIELD_MAP = {
    "name": "name",
    "context": "context",
    "help": "help",
    "request": "query",
    "labels": "labels",
    "metrictype": "kind",
    "fieldtoname": "field_to_metric_name",
    "ignorezeroresult": "ignore_zero",
    "querytimeout": "query_timeout",
}


class MetricsLoader:
    """Load metric definitions from a file or the embedded resources."""

    @staticmethod
    def load_from_file(path: str) -> List[MetricSpec]:
        """
        Load metric definitions from a YAML file.

        The filesystem is checked first; when the path does not exist the
        embedded resource with the same base name is used. Failures are soft:
        a diagnostic is logged and an empty list returned.

        Args:
            path: Path to a YAML file with a top-level ``metrics`` list

        Returns:
            List[MetricSpec]: Valid metric definitions, in file order
        """
        text, origin = MetricsLoader._read(path)
        if text is None:
            logger.warning(f"Metrics file not found (external or embedded): {path}")
            return []

        logger.info(f"Loading metrics from {origin}")

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing metrics file {path}: {e}")
            return []

        if not isinstance(data, dict) or not data.get("metrics"):
            logger.warning(f"No metrics found in {path}")
            return []

        raw_metrics = data["metrics"]
        if not isinstance(raw_metrics, list):
            logger.error(f"'metrics' in {path} must be a list")
            return []

        raw_metrics = MetricsLoader._substitute_env_vars(raw_metrics)

        specs = []
        for index, entry in enumerate(raw_metrics):
            spec = MetricsLoader._build_spec(entry, index, path)
            if spec is not None:
                specs.append(spec)

        logger.info(f"Loaded {len(specs)} metrics from {origin}")
        return specs

    @staticmethod
    def load_all(default_path: str, custom_path: Optional[str] = None) -> List[MetricSpec]:
        """
        Load the default definitions followed by the custom ones.

        The sets are concatenated without de-duplication. The custom file is
        only read when it exists on the filesystem.

        Args:
            default_path: Default metrics file (file or embedded resource)
            custom_path: Optional custom metrics file

        Returns:
            List[MetricSpec]: Combined definitions
        """
        specs = MetricsLoader.load_from_file(default_path)

        if custom_path:
            if Path(custom_path).is_file():
                custom = MetricsLoader.load_from_file(custom_path)
                logger.info(f"Loaded {len(custom)} custom metrics")
                specs.extend(custom)
            else:
                logger.warning(f"Custom metrics file not found, skipping: {custom_path}")

        return specs

    @staticmethod
    def is_available(path: str) -> bool:
        """Whether ``path`` exists as a file or as an embedded resource."""
        if Path(path).is_file():
            return True
        return MetricsLoader._resource(path) is not None

    @staticmethod
    def _read(path: str):
        file = Path(path)
        if file.is_file():
            return file.read_text(encoding="utf-8"), str(file)

        resource = MetricsLoader._resource(path)
        if resource is not None:
            return resource.read_text(encoding="utf-8"), f"embedded resource {resource.name}"

        return None, None

    @staticmethod
    def _resource(path: str):
        resource = resources.files(RESOURCE_PACKAGE).joinpath(RESOURCE_DIR).joinpath(Path(path).name)
        return resource if resource.is_file() else None

    @staticmethod
    def _build_spec(entry: Any, index: int, path: str) -> Optional[MetricSpec]:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping metric #{index} in {path}: not a mapping")
            return None

        fields: Dict[str, Any] = {}
        for key, value in entry.items():
            target = _FIELD_MAP.get(str(key).lower())
            if target is None:
                logger.debug(f"Ignoring unknown key '{key}' in metric #{index} of {path}")
                continue
            if value is not None:
                fields[target] = value

        try:
            return MetricSpec(**fields)
        except ValidationError as e:
            name = entry.get("name", f"#{index}")
            logger.warning(f"Skipping invalid metric {name} in {path}: {e.error_count()} error(s): {e}")
            return None

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            pattern = r'\$\{(\w+)\}'
            return re.sub(pattern, lambda m: os.getenv(m.group(1), ''), obj)

        elif isinstance(obj, dict):
            return {k: MetricsLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [MetricsLoader._substitute_env_vars(item) for item in obj]

        return obj
