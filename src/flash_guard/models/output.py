"""
Output Models
=============

Payloads emitted towards the pause/warning sink and over the video socket.

Warning payload contract:
    {
        "type": "general",
        "flashCount": 3,
        "peakFlashesPerWindow": 4,
        "cumulativeFlashes": 9,
        "timestampSeconds": 42.7
    }

Outbound socket messages:
    {"command": "pause"}
    {"command": "play"}
    {"event": "warning", "payload": {...}}
    {"event": "hideWarning"}
"""

from pydantic import BaseModel, ConfigDict, Field

from flash_guard.models.analysis import FlashKind


class WarningPayload(BaseModel):
    """
    Structured warning emitted when a detector enters WARNED.

    Attributes:
        type: Which threshold was crossed (general or red)
        flash_count: Flashes inside the window at trigger time
        peak_flashes_per_window: Highest window count seen in this run
        cumulative_flashes: General flashes counted in this run
        timestamp_seconds: Playback position when the warning fired
    """

    model_config = ConfigDict(populate_by_name=True)

    type: FlashKind = Field(..., description="Threshold that was crossed")
    flash_count: int = Field(..., ge=0, alias="flashCount")
    peak_flashes_per_window: int = Field(..., ge=0, alias="peakFlashesPerWindow")
    cumulative_flashes: int = Field(..., ge=0, alias="cumulativeFlashes")
    timestamp_seconds: float = Field(..., ge=0, alias="timestampSeconds")

    def to_message(self) -> dict:
        """Export as a camelCase JSON-ready dict."""
        return self.model_dump(mode="json", by_alias=True)
