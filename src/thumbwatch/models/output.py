"""
Output Models
=============

Records the service hands to its outbound collaborators.

    - Archive keys: deterministic object names for stored frames
    - LogEntry: one line of the per-day structured log
    - AlertPayload: body POSTed to the alert webhook
    - IngestResponse: body returned from POST /thumbnail

Archive Key Format:
    {feedId}/{streamId}/{quality}/{isoTimestamp}.jpg
    {feedId}/{streamId}/{isoTimestamp}.jpg          (quality segment disabled)

The ISO timestamp is truncated to the second, so two submissions with the
same feed, stream, quality and second map to the same key. The later
upload overwrites the earlier one.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from thumbwatch.models.health import FrameStatus
from thumbwatch.models.submission import FrameSubmission, QualityTier


def iso_timestamp(timestamp_ms: int) -> str:
    """Render a millisecond timestamp as second-granular UTC ISO-8601."""
    moment = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def build_archive_key(
    submission: FrameSubmission,
    include_quality: bool = False,
) -> str:
    """
    Build the archive key for a submission.

    Args:
        submission: Normalized submission
        include_quality: Insert the quality tier as a path segment

    Returns:
        Object key ending in .jpg
    """
    parts = [submission.feed_id, submission.stream_id]
    if include_quality:
        parts.append(submission.quality.value)
    parts.append(f"{iso_timestamp(submission.timestamp_ms)}.jpg")
    return "/".join(parts)


def daily_log_key(timestamp_ms: int, prefix: str = "logs") -> str:
    """Key of the daily log object holding entries for this timestamp's UTC day."""
    day = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc).strftime("%Y-%m-%d")
    return f"{prefix.rstrip('/')}/{day}.json"


class LogEntry(BaseModel):
    """
    One structured entry in the daily log.

    Attributes:
        ts: ISO-8601 submission time
        feed_id: Feed identifier
        stream_id: Stream identifier
        status: Frame status
        extra: Free-form details (archive key, quality, freeze flags)
    """

    ts: str = Field(..., description="ISO-8601 submission time")
    feed_id: str = Field(..., alias="feedId")
    stream_id: str = Field(..., alias="streamId")
    status: FrameStatus
    extra: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True


class AlertEvent(str, Enum):
    """Why an alert was raised."""

    STATUS = "status"
    FREEZE_START = "freeze_start"


class AlertPayload(BaseModel):
    """
    Body delivered to the alert webhook.

    Attributes:
        event: STATUS for non-ok frames, FREEZE_START when a freeze begins
        feed_id: Feed identifier
        stream_id: Stream identifier
        status: Frame status
        timestamp: Submission time (ms)
        archive_key: Key the frame was archived under
    """

    event: AlertEvent
    feed_id: str = Field(..., alias="feedId")
    stream_id: str = Field(..., alias="streamId")
    status: FrameStatus
    timestamp: int = Field(..., ge=0, description="Submission time (ms)")
    archive_key: str = Field(..., alias="archiveKey")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True


class IngestResponse(BaseModel):
    """Response body for an accepted thumbnail."""

    message: str = "Uploaded"
    key: str
    url: str
    status: FrameStatus
    quality: QualityTier
    freeze: bool = False
    freeze_ended_seconds: Optional[float] = Field(default=None, alias="freezeEndedSeconds")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
