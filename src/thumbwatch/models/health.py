"""
Frame Health Models
===================

Results produced by the classifier and the freeze detector, plus the
per-stream health snapshot served to operators.

Core Concepts:
    - FrameStatus: Per-frame verdict (ok, black, corrupt)
    - ClassificationResult: Status plus perceptual fingerprint
    - FreezeOutcome: What one freeze-detector update reported
    - StreamHealth: Latest known health of one (stream, feed) pair

Precedence:
    corrupt > black > ok. Black analysis is only attempted on frames
    that decoded successfully, and corrupt frames never carry a
    fingerprint.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from thumbwatch.models.submission import QualityTier


class FrameStatus(str, Enum):
    """
    Per-frame health verdict.

    Attributes:
        OK: Decoded and not black
        BLACK: Decoded, but overwhelmingly near-zero luminance
        CORRUPT: Bytes could not be decoded as an image
    """

    OK = "ok"
    BLACK = "black"
    CORRUPT = "corrupt"


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """
    Classifier verdict for one frame.

    Attributes:
        status: Health verdict
        fingerprint: Perceptual hash (hex), None for corrupt frames or
            when fingerprinting failed
    """

    status: FrameStatus
    fingerprint: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == FrameStatus.OK


@dataclass(frozen=True, slots=True)
class FreezeOutcome:
    """
    Result of one freeze-detector update.

    Attributes:
        is_freeze_now: Fingerprint repeated the previous one for this key
        freeze_started: This update moved the key from NOT_FROZEN to FROZEN
        freeze_ended_duration: Seconds the key was frozen, set only on the
            update that ended the freeze
    """

    is_freeze_now: bool = False
    freeze_started: bool = False
    freeze_ended_duration: Optional[float] = None

    @property
    def freeze_ended(self) -> bool:
        return self.freeze_ended_duration is not None


NO_FREEZE = FreezeOutcome()


class StreamHealth(BaseModel):
    """
    Latest health snapshot for one (stream, feed) pair.

    Attributes:
        stream_id: Stream identifier
        feed_id: Feed identifier
        status: Status of the most recent frame
        quality: Quality tier of the most recent frame
        last_timestamp_ms: Submission time of the most recent frame
        frozen: Whether the stream is currently frozen
        archive_key: Archive key of the most recent stored frame
    """

    stream_id: str = Field(..., serialization_alias="streamId")
    feed_id: str = Field(..., serialization_alias="feedId")
    status: FrameStatus = Field(..., description="Status of the latest frame")
    quality: QualityTier = Field(default=QualityTier.UNKNOWN)
    last_timestamp_ms: int = Field(
        ...,
        ge=0,
        serialization_alias="lastTimestamp",
        description="Submission time of the latest frame (ms)",
    )
    frozen: bool = Field(default=False, description="Currently frozen")
    archive_key: Optional[str] = Field(default=None, serialization_alias="archiveKey")
