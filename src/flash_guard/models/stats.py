"""
Statistics Models
=================

Cumulative counters shared by every detector in the process.

Stored under the ``stats`` key in both storage tiers using the camelCase
field names, so the persisted shape is:

    {
        "videosMonitored": 12,
        "warningsIssued": 3,
        "flashesDetected": 41
    }
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


STATS_KEY = "stats"


class StatName(str, Enum):
    """Names of the cumulative counters."""

    VIDEOS_MONITORED = "videosMonitored"
    WARNINGS_ISSUED = "warningsIssued"
    FLASHES_DETECTED = "flashesDetected"

    @classmethod
    def parse(cls, name: str) -> Optional["StatName"]:
        """Resolve a counter name, accepting the singular message names."""
        try:
            return cls(name)
        except ValueError:
            return _SINGULAR_NAMES.get(name)


_SINGULAR_NAMES = {
    "videoMonitored": StatName.VIDEOS_MONITORED,
    "warningIssued": StatName.WARNINGS_ISSUED,
    "flashDetected": StatName.FLASHES_DETECTED,
}


class CumulativeStats(BaseModel):
    """Process-wide counters, mutated only through the stats aggregator."""

    model_config = ConfigDict(populate_by_name=True)

    videos_monitored: int = Field(default=0, ge=0, alias="videosMonitored")
    warnings_issued: int = Field(default=0, ge=0, alias="warningsIssued")
    flashes_detected: int = Field(default=0, ge=0, alias="flashesDetected")

    def with_delta(self, stat: StatName, delta: int) -> "CumulativeStats":
        """Return a copy with one counter moved by delta, floored at zero."""
        field_name = {
            StatName.VIDEOS_MONITORED: "videos_monitored",
            StatName.WARNINGS_ISSUED: "warnings_issued",
            StatName.FLASHES_DETECTED: "flashes_detected",
        }[stat]
        value = max(0, getattr(self, field_name) + delta)
        return self.model_copy(update={field_name: value})

    def to_store(self) -> dict:
        """Export in the persisted camelCase shape."""
        return self.model_dump(by_alias=True)
