"""
Input Envelope Schemas
======================

Wire shapes accepted on POST /thumbnail.

Two envelopes are supported and normalized into one FrameSubmission:

JSON (Content-Type: application/json):
    {
        "feedId": "f1",
        "streamId": "s1",
        "timestamp": 1700000000000,
        "width": 854,
        "height": 480,
        "thumbnail": "<base64 JPEG>"
    }

Binary (Content-Type: image/jpeg):
    Body is the raw image. Metadata travels in headers:
        X-Millicast-Feed-Id, X-Millicast-Stream-Id, X-Millicast-Timestamp,
        X-Millicast-Width, X-Millicast-Height

Defaults:
    JSON:   feedId/streamId -> "unknown", timestamp -> now
    Binary: feedId -> "testfeed", streamId -> "teststream", timestamp -> now
"""

from typing import Optional, Union

from pydantic import BaseModel, Field


class JsonEnvelope(BaseModel):
    """
    JSON thumbnail submission.

    Attributes:
        feed_id: Feed identifier (optional)
        stream_id: Stream identifier (optional)
        timestamp: Milliseconds since epoch (optional)
        width: Declared frame width (optional)
        height: Declared frame height (optional)
        thumbnail: Base64-encoded image
    """

    feed_id: Optional[str] = Field(default=None, alias="feedId")
    stream_id: Optional[str] = Field(default=None, alias="streamId")
    timestamp: Optional[Union[int, str]] = Field(default=None)
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    thumbnail: Optional[str] = Field(default=None, description="Base64-encoded image")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
        json_schema_extra = {
            "example": {
                "feedId": "f1",
                "streamId": "s1",
                "timestamp": 1700000000000,
                "thumbnail": "/9j/4AAQSkZJRg...",
            }
        }


class BinaryEnvelope(BaseModel):
    """
    Raw image submission with header metadata.

    Header values arrive as strings and are parsed by the normalizer.
    """

    feed_id: Optional[str] = None
    stream_id: Optional[str] = None
    timestamp: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    body: bytes = b""


SubmissionEnvelope = Union[JsonEnvelope, BinaryEnvelope]
