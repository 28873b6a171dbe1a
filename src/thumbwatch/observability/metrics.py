"""
Metrics Recorder
================

Aggregates classifier and freeze-detector outputs into Prometheus samples.

Metrics:
    thumbnails_ok_total{streamId, feedId, quality}
    thumbnails_black_total{streamId, feedId, quality}
    thumbnails_corrupt_total{streamId, feedId, quality}
    thumbnails_freeze_total{streamId, feedId}
    thumbnail_latest_timestamp_seconds{streamId, feedId}
    thumbnail_freeze_active{streamId, feedId}          (0 or 1)
    thumbnail_freeze_duration_seconds{streamId, feedId} (histogram)

Design Rules:
    - The recorder owns its CollectorRegistry (no global default registry)
    - Recording NEVER raises; failures are logged and swallowed
    - Rendering is delegated to prometheus_client's text exposition
"""

import logging
from typing import Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from thumbwatch.models.health import FrameStatus, FreezeOutcome
from thumbwatch.models.submission import FrameSubmission, QualityTier


logger = logging.getLogger(__name__)


FREEZE_DURATION_BUCKETS = (5, 10, 30, 60, 120, 300, 600, 1800)

STREAM_LABELS = ("streamId", "feedId")
STATUS_LABELS = ("streamId", "feedId", "quality")


class MetricsRecorder:
    """
    Write-only aggregate of frame health metrics.

    Example:
        recorder = MetricsRecorder()
        recorder.record_classification(submission, QualityTier.HIGH, FrameStatus.OK)
        recorder.record_freeze("s1", "f1", outcome)
        body, content_type = recorder.render()
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        include_process_metrics: bool = False,
    ) -> None:
        """
        Initialize the recorder and register its metrics.

        Args:
            registry: Registry to register into (a fresh one if None)
            include_process_metrics: Also register process/platform collectors
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        if include_process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)

        self._status_counters = {
            FrameStatus.OK: Counter(
                "thumbnails_ok",
                "Total number of ok thumbnails",
                STATUS_LABELS,
                registry=self.registry,
            ),
            FrameStatus.BLACK: Counter(
                "thumbnails_black",
                "Total number of black thumbnails",
                STATUS_LABELS,
                registry=self.registry,
            ),
            FrameStatus.CORRUPT: Counter(
                "thumbnails_corrupt",
                "Total number of undecodable thumbnails",
                STATUS_LABELS,
                registry=self.registry,
            ),
        }
        self.freeze_counter = Counter(
            "thumbnails_freeze",
            "Total number of detected freeze frames",
            STREAM_LABELS,
            registry=self.registry,
        )
        self.latest_timestamp = Gauge(
            "thumbnail_latest_timestamp_seconds",
            "Unix timestamp of the latest thumbnail received",
            STREAM_LABELS,
            registry=self.registry,
        )
        self.freeze_active = Gauge(
            "thumbnail_freeze_active",
            "Whether a stream is currently frozen (1 = yes, 0 = no)",
            STREAM_LABELS,
            registry=self.registry,
        )
        self.freeze_duration = Histogram(
            "thumbnail_freeze_duration_seconds",
            "Duration of freeze episodes in seconds",
            STREAM_LABELS,
            buckets=FREEZE_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_classification(
        self,
        submission: FrameSubmission,
        quality: QualityTier,
        status: FrameStatus,
    ) -> None:
        """Count one classified frame and advance the latest-timestamp gauge."""
        try:
            self._status_counters[status].labels(
                streamId=submission.stream_id,
                feedId=submission.feed_id,
                quality=quality.value,
            ).inc()
            self.latest_timestamp.labels(
                streamId=submission.stream_id,
                feedId=submission.feed_id,
            ).set(submission.timestamp_ms // 1000)
        except Exception as e:
            logger.warning(f"Failed to record classification metrics: {e}")

    def record_freeze(
        self,
        stream_id: str,
        feed_id: str,
        outcome: FreezeOutcome,
    ) -> None:
        """Apply one freeze-detector outcome to the freeze metrics."""
        try:
            if outcome.is_freeze_now:
                self.freeze_counter.labels(streamId=stream_id, feedId=feed_id).inc()
                if outcome.freeze_started:
                    self.freeze_active.labels(streamId=stream_id, feedId=feed_id).set(1)

            if outcome.freeze_ended_duration is not None:
                self.freeze_duration.labels(streamId=stream_id, feedId=feed_id).observe(
                    outcome.freeze_ended_duration
                )
                self.freeze_active.labels(streamId=stream_id, feedId=feed_id).set(0)
        except Exception as e:
            logger.warning(f"Failed to record freeze metrics: {e}")

    def clear_freeze(self, stream_id: str, feed_id: str) -> None:
        """Mark a stream as no longer frozen (used when its state is evicted)."""
        try:
            self.freeze_active.labels(streamId=stream_id, feedId=feed_id).set(0)
        except Exception as e:
            logger.warning(f"Failed to clear freeze gauge: {e}")

    def sample(self, name: str, **labels: str) -> float:
        """
        Read the current value of one sample.

        Returns:
            Sample value, or 0.0 if the labelset has not been recorded
        """
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def render(self) -> Tuple[bytes, str]:
        """
        Render all samples in the Prometheus text exposition format.

        Returns:
            Tuple of (body, content_type)
        """
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
