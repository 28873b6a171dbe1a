"""
Data Models
===========

Data models for Thumbwatch.

This module re-exports all data models for convenient access.

Models:
    Input:
        - JsonEnvelope, BinaryEnvelope: Accepted wire shapes

    Submission:
        - FrameSubmission: Canonical normalized submission
        - QualityTier: Resolution bucket (high, med, low, unknown)

    Health:
        - FrameStatus: Per-frame verdict (ok, black, corrupt)
        - ClassificationResult: Status plus fingerprint
        - FreezeOutcome: Freeze detector report
        - StreamHealth: Latest snapshot per stream

    Output:
        - LogEntry: Daily log line
        - AlertPayload: Webhook body
        - IngestResponse: POST /thumbnail response
"""

from thumbwatch.models.input import BinaryEnvelope, JsonEnvelope, SubmissionEnvelope
from thumbwatch.models.submission import FrameSubmission, QualityTier, quality_tier
from thumbwatch.models.health import (
    ClassificationResult,
    FrameStatus,
    FreezeOutcome,
    StreamHealth,
)
from thumbwatch.models.output import (
    AlertEvent,
    AlertPayload,
    IngestResponse,
    LogEntry,
    build_archive_key,
    daily_log_key,
    iso_timestamp,
)

__all__ = [
    # Input
    "JsonEnvelope",
    "BinaryEnvelope",
    "SubmissionEnvelope",
    # Submission
    "FrameSubmission",
    "QualityTier",
    "quality_tier",
    # Health
    "FrameStatus",
    "ClassificationResult",
    "FreezeOutcome",
    "StreamHealth",
    # Output
    "LogEntry",
    "AlertEvent",
    "AlertPayload",
    "IngestResponse",
    "build_archive_key",
    "daily_log_key",
    "iso_timestamp",
]
