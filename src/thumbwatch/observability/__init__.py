"""
Observability Module
====================

Metrics and health snapshots for Thumbwatch.

This module provides:
    - MetricsRecorder: Prometheus aggregates for frame health and freezes
    - StreamHealthBoard: Latest health snapshot per stream

DESIGN RULES:
    - Does NOT influence classification or freeze decisions
    - Recording failures never abort ingestion
"""

from thumbwatch.observability.metrics import (
    FREEZE_DURATION_BUCKETS,
    MetricsRecorder,
)
from thumbwatch.observability.health_board import StreamHealthBoard


__all__ = [
    "FREEZE_DURATION_BUCKETS",
    "MetricsRecorder",
    "StreamHealthBoard",
]
