"""
Ingest Pipeline
===============

Per-submission control flow:

    FrameSubmission
        -> FrameClassifier        (ok / black / corrupt + fingerprint)
        -> FreezeDetector         (skipped for frames without a fingerprint)
        -> MetricsRecorder        (never raises)
        -> ArchiveWriter          (blob; failure aborts with ArchiveError)
        -> daily log append       (failure logged, frame already durable)
        -> AlertDispatcher        (only for non-ok frames or freeze starts)

Failure Policy:
    - Decode failure is an outcome (corrupt), not an error
    - Freeze detector failure fails open (no freeze reported)
    - Metrics failures are swallowed by the recorder
    - Archive failure propagates to the caller
    - Alert failures never reach the caller

Clocks:
    Submission timestamps drive freeze durations. Idle eviction uses the
    pipeline clock (time.time by default), stamped on every update and
    read again by sweep_idle.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from thumbwatch.alerts.dispatcher import AlertDispatcher
from thumbwatch.archive.writer import ArchiveError, ArchiveWriter
from thumbwatch.classify.classifier import FrameClassifier
from thumbwatch.freeze.detector import FreezeDetector
from thumbwatch.freeze.registry import EvictedKey
from thumbwatch.models.health import (
    NO_FREEZE,
    ClassificationResult,
    FrameStatus,
    FreezeOutcome,
    StreamHealth,
)
from thumbwatch.models.output import AlertEvent, AlertPayload, LogEntry, iso_timestamp
from thumbwatch.models.submission import FrameSubmission, QualityTier
from thumbwatch.observability.health_board import StreamHealthBoard
from thumbwatch.observability.metrics import MetricsRecorder


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestResult:
    """
    Outcome of one ingested submission.

    Attributes:
        key: Archive key of the stored frame
        url: Public URL of the stored frame
        quality: Quality tier of the submission
        classification: Classifier verdict
        freeze: Freeze detector outcome (NO_FREEZE when skipped)
    """

    key: str
    url: str
    quality: QualityTier
    classification: ClassificationResult
    freeze: FreezeOutcome

    @property
    def status(self) -> FrameStatus:
        return self.classification.status


class IngestPipeline:
    """
    Runs submissions through classification, freeze detection, metrics,
    archiving and alerting.

    Example:
        pipeline = IngestPipeline(classifier, detector, recorder, archive, dispatcher)
        result = await pipeline.ingest(submission)
    """

    def __init__(
        self,
        classifier: FrameClassifier,
        detector: FreezeDetector,
        recorder: MetricsRecorder,
        archive: ArchiveWriter,
        dispatcher: AlertDispatcher,
        board: Optional[StreamHealthBoard] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.classifier = classifier
        self.detector = detector
        self.recorder = recorder
        self.archive = archive
        self.dispatcher = dispatcher
        self.board = board if board is not None else StreamHealthBoard()
        self.clock = clock

        self.submissions_processed: int = 0
        self.archive_failures: int = 0
        self.freeze_errors: int = 0

    async def ingest(self, submission: FrameSubmission) -> IngestResult:
        """
        Process one submission end to end.

        Returns:
            IngestResult

        Raises:
            ArchiveError: The frame blob could not be stored
        """
        quality = submission.quality
        classification = self.classifier.classify(submission.data)

        outcome = self._detect_freeze(submission, classification)

        self.recorder.record_classification(submission, quality, classification.status)
        if classification.fingerprint is not None:
            self.recorder.record_freeze(submission.stream_id, submission.feed_id, outcome)

        if classification.status != FrameStatus.OK:
            logger.info(
                f"Unhealthy frame: stream={submission.stream_id} "
                f"feed={submission.feed_id} status={classification.status.value}"
            )

        try:
            key = await self.archive.store_frame(submission)
        except ArchiveError:
            self.archive_failures += 1
            raise

        self.submissions_processed += 1

        self.board.update(
            StreamHealth(
                stream_id=submission.stream_id,
                feed_id=submission.feed_id,
                status=classification.status,
                quality=quality,
                last_timestamp_ms=submission.timestamp_ms,
                frozen=self.detector.is_frozen(submission.stream_id, submission.feed_id),
                archive_key=key,
            )
        )

        await self._append_log(submission, classification, quality, outcome, key)
        self._dispatch_alerts(submission, classification, outcome, key)

        return IngestResult(
            key=key,
            url=self.archive.url_for(key),
            quality=quality,
            classification=classification,
            freeze=outcome,
        )

    def sweep_idle(self, ttl: float, now: Optional[float] = None) -> List[EvictedKey]:
        """
        Evict idle freeze state and clear the freeze gauge for frozen keys.

        Args:
            ttl: Idle seconds after which a key is evicted
            now: Time on the pipeline clock (read from the clock if omitted)
        """
        if now is None:
            now = self.clock()
        evicted = self.detector.evict_idle(now=now, ttl=ttl)
        for entry in evicted:
            if entry.was_frozen:
                self.recorder.clear_freeze(entry.stream_id, entry.feed_id)
                self.board.set_frozen(entry.stream_id, entry.feed_id, False)
        return evicted

    def _detect_freeze(
        self,
        submission: FrameSubmission,
        classification: ClassificationResult,
    ) -> FreezeOutcome:
        if classification.status == FrameStatus.CORRUPT or classification.fingerprint is None:
            return NO_FREEZE
        try:
            return self.detector.update(
                submission.stream_id,
                submission.feed_id,
                classification.fingerprint,
                now=submission.timestamp_seconds,
                seen_at=self.clock(),
            )
        except Exception as e:
            self.freeze_errors += 1
            logger.error(
                f"Freeze detection failed (stream={submission.stream_id}, "
                f"feed={submission.feed_id}): {e}"
            )
            return NO_FREEZE

    async def _append_log(
        self,
        submission: FrameSubmission,
        classification: ClassificationResult,
        quality: QualityTier,
        outcome: FreezeOutcome,
        key: str,
    ) -> None:
        entry = LogEntry(
            ts=iso_timestamp(submission.timestamp_ms),
            feed_id=submission.feed_id,
            stream_id=submission.stream_id,
            status=classification.status,
            extra={
                "archiveKey": key,
                "quality": quality.value,
                "freeze": outcome.is_freeze_now,
                "freezeEndedSeconds": outcome.freeze_ended_duration,
            },
        )
        try:
            await self.archive.append_log(entry, submission.timestamp_ms)
        except ArchiveError as e:
            logger.error(f"Daily log append failed for {key}: {e}")

    def _dispatch_alerts(
        self,
        submission: FrameSubmission,
        classification: ClassificationResult,
        outcome: FreezeOutcome,
        key: str,
    ) -> None:
        events = []
        if classification.status != FrameStatus.OK:
            events.append(AlertEvent.STATUS)
        if outcome.freeze_started:
            events.append(AlertEvent.FREEZE_START)

        for event in events:
            self.dispatcher.submit(
                AlertPayload(
                    event=event,
                    feed_id=submission.feed_id,
                    stream_id=submission.stream_id,
                    status=classification.status,
                    timestamp=submission.timestamp_ms,
                    archive_key=key,
                )
            )
