"""
Input Message Schema
====================

Pydantic model for video messages received over the video socket, either
by the FastAPI endpoint or by the remote capture stream consumer.

Input Contract:
    {"type": "attach", "page_url": "https://www.youtube.com/watch?v=abc",
     "source_url": "blob:...", "current_time": 0.0, "paused": false}
    {"type": "frame", "frame_id": 17, "timestamp_ms": 566.6, "image": "<base64>"}
    {"type": "play", "current_time": 12.5}
    {"type": "pause", "current_time": 13.0}
    {"type": "seeking", "current_time": 4.0}
    {"type": "ended"}
    {"type": "dismiss", "continue_playback": true}

Example:
    from flash_guard.models.input import VideoMessage

    message = VideoMessage.model_validate_json(raw)
    if message.type == "frame":
        ...
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


MessageType = Literal["attach", "frame", "play", "pause", "seeking", "ended", "dismiss"]


class VideoMessage(BaseModel):
    """
    Schema for a single video lifecycle or frame message.

    Fields not relevant to a message type are ignored. A frame message
    must carry both a timestamp and an image.
    """

    type: MessageType = Field(..., description="Message type")

    page_url: Optional[str] = Field(
        default=None,
        description="URL of the page hosting the video (attach)",
    )
    video_id: Optional[str] = Field(
        default=None,
        description="Explicit video identifier, overrides page_url (attach)",
    )
    source_url: Optional[str] = Field(
        default=None,
        description="Media source of the element; a change means a new video (attach)",
    )
    paused: bool = Field(
        default=True,
        description="Whether the video is paused at attach time",
    )

    frame_id: Optional[int] = Field(default=None, ge=0, description="Frame counter")
    timestamp_ms: Optional[float] = Field(
        default=None,
        ge=0,
        description="Capture timestamp in milliseconds (frame)",
    )
    image: Optional[str] = Field(
        default=None,
        description="Base64-encoded JPEG or PNG frame (frame)",
    )

    current_time: Optional[float] = Field(
        default=None,
        ge=0,
        description="Playback position in seconds",
    )

    continue_playback: bool = Field(
        default=False,
        description="Resume playback when dismissing a warning (dismiss)",
    )

    @model_validator(mode="after")
    def _check_frame_fields(self) -> "VideoMessage":
        if self.type == "frame" and (self.timestamp_ms is None or not self.image):
            raise ValueError("frame messages require timestamp_ms and image")
        return self


class ControlMessage(BaseModel):
    """Control request accepted by POST /control."""

    action: Literal["enable", "disable", "resetStats"]
