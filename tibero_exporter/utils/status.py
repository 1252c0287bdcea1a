"""Scrape state enumerations."""

from enum import Enum


class ScrapePhase(Enum):
    """Phase a scrape is currently in."""

    PROBING = "probing"
    COLLECTING_SPECS = "collecting_specs"
    FINALIZING = "finalizing"


class ScrapeState(Enum):
    """Terminal outcome of one scrape."""

    SUCCESS = "success"
    DEGRADED_CACHED = "degraded_cached"
    DEGRADED_EMPTY = "degraded_empty"

    @property
    def is_degraded(self) -> bool:
        """
        Whether the scrape fell back instead of querying every spec.

        Returns:
            bool: True for both degraded states
        """
        return self is not ScrapeState.SUCCESS
