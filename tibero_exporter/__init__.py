"""Prometheus exporter for Tibero databases."""

__version__ = "1.0.0"
__build_date__ = "2026-01-01"
