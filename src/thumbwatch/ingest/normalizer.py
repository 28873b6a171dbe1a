"""
Submission Normalizer
=====================

Turns the accepted wire envelopes into one canonical FrameSubmission.

This module:
    - Picks the envelope from the request Content-Type
    - Applies per-envelope defaulting rules
    - Decodes base64 payloads (JSON envelope only)
    - Rejects missing payloads and malformed fields with SubmissionError

Design Rules:
    - Does NOT decode image data (that is the classifier's job)
    - Never reaches the core with an incomplete submission
"""

import base64
import binascii
import logging
import time
from typing import Mapping, Optional, Union

from pydantic import ValidationError

from thumbwatch.models.input import BinaryEnvelope, JsonEnvelope, SubmissionEnvelope
from thumbwatch.models.submission import FrameSubmission


logger = logging.getLogger(__name__)


JSON_CONTENT_TYPE = "application/json"
JPEG_CONTENT_TYPE = "image/jpeg"

FEED_HEADER = "X-Millicast-Feed-Id"
STREAM_HEADER = "X-Millicast-Stream-Id"
TIMESTAMP_HEADER = "X-Millicast-Timestamp"
WIDTH_HEADER = "X-Millicast-Width"
HEIGHT_HEADER = "X-Millicast-Height"

JSON_DEFAULT_ID = "unknown"
BINARY_DEFAULT_FEED = "testfeed"
BINARY_DEFAULT_STREAM = "teststream"

# 9999-12-31T23:59:59.999Z, the last instant an ISO-8601 archive key can name
MAX_TIMESTAMP_MS = 253402300799999


class SubmissionError(Exception):
    """Raised when a request cannot be normalized into a FrameSubmission."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _now_ms() -> int:
    return int(time.time() * 1000)


def _media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _parse_timestamp(value: Union[int, str, None], now_ms: int) -> int:
    if value is None or value == "":
        return now_ms
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        try:
            parsed = int(float(value))
        except (TypeError, ValueError, OverflowError):
            raise SubmissionError(f"Invalid timestamp: {value!r}")
    if parsed < 0 or parsed > MAX_TIMESTAMP_MS:
        raise SubmissionError(f"Invalid timestamp: {value!r}")
    return parsed


def _parse_dimension(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except ValueError:
        raise SubmissionError(f"Invalid {name}: {value!r}")
    if parsed <= 0:
        raise SubmissionError(f"Invalid {name}: {value!r}")
    return parsed


def _decode_base64(payload: str) -> bytes:
    # Tolerate data URIs ("data:image/jpeg;base64,...")
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload)
    except (binascii.Error, ValueError) as e:
        raise SubmissionError(f"Invalid base64 thumbnail: {e}")


def parse_envelope(
    content_type: Optional[str],
    body: bytes,
    headers: Mapping[str, str],
) -> SubmissionEnvelope:
    """
    Select and parse the envelope for a raw request.

    Args:
        content_type: Request Content-Type header
        body: Raw request body
        headers: Request headers (case-insensitive mapping)

    Returns:
        JsonEnvelope or BinaryEnvelope

    Raises:
        SubmissionError: Unsupported content type or malformed JSON
    """
    media_type = _media_type(content_type)

    if media_type == JSON_CONTENT_TYPE:
        try:
            return JsonEnvelope.model_validate_json(body or b"{}")
        except ValidationError as e:
            raise SubmissionError(f"Invalid JSON body: {e.errors()[0].get('msg', 'invalid')}")

    if media_type == JPEG_CONTENT_TYPE:
        return BinaryEnvelope(
            feed_id=headers.get(FEED_HEADER),
            stream_id=headers.get(STREAM_HEADER),
            timestamp=headers.get(TIMESTAMP_HEADER),
            width=headers.get(WIDTH_HEADER),
            height=headers.get(HEIGHT_HEADER),
            body=body,
        )

    raise SubmissionError("Unsupported Content-Type")


def normalize(
    envelope: SubmissionEnvelope,
    now_ms: Optional[int] = None,
) -> FrameSubmission:
    """
    Normalize an envelope into a FrameSubmission.

    Args:
        envelope: Parsed JSON or binary envelope
        now_ms: Current time in ms, used when no timestamp was supplied

    Returns:
        Canonical FrameSubmission

    Raises:
        SubmissionError: Missing payload or malformed fields
    """
    if now_ms is None:
        now_ms = _now_ms()

    if isinstance(envelope, JsonEnvelope):
        if not envelope.thumbnail:
            raise SubmissionError("Missing thumbnail in JSON body")
        return FrameSubmission(
            feed_id=envelope.feed_id or JSON_DEFAULT_ID,
            stream_id=envelope.stream_id or JSON_DEFAULT_ID,
            timestamp_ms=_parse_timestamp(envelope.timestamp, now_ms),
            data=_decode_base64(envelope.thumbnail),
            width=envelope.width,
            height=envelope.height,
        )

    if isinstance(envelope, BinaryEnvelope):
        if not envelope.body:
            raise SubmissionError("Missing image body")
        return FrameSubmission(
            feed_id=envelope.feed_id or BINARY_DEFAULT_FEED,
            stream_id=envelope.stream_id or BINARY_DEFAULT_STREAM,
            timestamp_ms=_parse_timestamp(envelope.timestamp, now_ms),
            data=envelope.body,
            width=_parse_dimension(envelope.width, "width"),
            height=_parse_dimension(envelope.height, "height"),
        )

    raise SubmissionError("Unsupported submission shape")
