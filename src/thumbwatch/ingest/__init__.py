"""
Ingest Module
=============

Request normalization and image decoding.

This module provides the ingestion layer for Thumbwatch:
    - parse_envelope / normalize: wire shape -> FrameSubmission
    - decode_bgr: the single image decoding entry point

Example:
    from thumbwatch.ingest import normalize, parse_envelope

    envelope = parse_envelope(content_type, body, headers)
    submission = normalize(envelope)
"""

from thumbwatch.ingest.image_decoder import ImageDecodeError, decode_bgr, to_grayscale
from thumbwatch.ingest.normalizer import SubmissionError, normalize, parse_envelope


__all__ = [
    "ImageDecodeError",
    "decode_bgr",
    "to_grayscale",
    "SubmissionError",
    "normalize",
    "parse_envelope",
]
