"""
Frame Submission Model
======================

Canonical internal representation of one thumbnail submission.

Every wire shape accepted by the HTTP layer is normalized into a
FrameSubmission before it reaches the classifier. It is the ONLY
submission format passed to downstream stages.

Quality Tiers:
    854x480 -> high
    640x360 -> med
    426x240 -> low
    anything else (including missing dimensions) -> unknown
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class QualityTier(str, Enum):
    """Coarse resolution bucket used for labeling and archive routing."""

    HIGH = "high"
    MED = "med"
    LOW = "low"
    UNKNOWN = "unknown"


_QUALITY_BY_RESOLUTION = {
    (854, 480): QualityTier.HIGH,
    (640, 360): QualityTier.MED,
    (426, 240): QualityTier.LOW,
}


def quality_tier(width: Optional[int], height: Optional[int]) -> QualityTier:
    """
    Map a declared resolution to its quality tier.

    Args:
        width: Frame width in pixels, if known
        height: Frame height in pixels, if known

    Returns:
        Matching tier, or UNKNOWN for any unlisted or partial resolution
    """
    if width is None or height is None:
        return QualityTier.UNKNOWN
    return _QUALITY_BY_RESOLUTION.get((width, height), QualityTier.UNKNOWN)


@dataclass(frozen=True, slots=True)
class FrameSubmission:
    """
    Normalized thumbnail submission.

    Immutable (frozen) and consumed once by the ingest pipeline.

    Attributes:
        feed_id: Feed identifier
        stream_id: Stream identifier
        timestamp_ms: Submission time, milliseconds since the UNIX epoch
        width: Declared frame width, if supplied
        height: Declared frame height, if supplied
        data: Opaque image payload (NOT decoded)
    """

    feed_id: str
    stream_id: str
    timestamp_ms: int
    data: bytes
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def timestamp_seconds(self) -> float:
        """Submission time in (fractional) seconds."""
        return self.timestamp_ms / 1000.0

    @property
    def quality(self) -> QualityTier:
        return quality_tier(self.width, self.height)

    @property
    def datetime_utc(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=timezone.utc)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"FrameSubmission(feed_id={self.feed_id!r}, "
            f"stream_id={self.stream_id!r}, "
            f"timestamp_ms={self.timestamp_ms}, "
            f"size={len(self.data)}B)"
        )
