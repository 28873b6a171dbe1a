"""
Freeze Detector
===============

Per-(stream, feed) state machine comparing successive frame fingerprints.

States:
    NOT_FROZEN, FROZEN (no terminal state; runs for the process lifetime)

Transition Rules:
    (no entry)      first fingerprint stored, never reported as a freeze
    NOT_FROZEN -> FROZEN:
        fingerprint matches last_fingerprint; frozen_since = now,
        is_freeze_now, freeze_started
    FROZEN (repeat):
        fingerprint matches last_fingerprint; frozen_since unchanged,
        is_freeze_now (counted on every repeated frame)
    FROZEN -> NOT_FROZEN:
        fingerprint differs from last_fingerprint while frozen_since is set;
        duration = now - frozen_since, frozen_since cleared
    NOT_FROZEN (steady):
        fingerprint differs from last_fingerprint, nothing reported

Fingerprints match when equal, or, with a non-zero match_distance, when
their Hamming distance is at most match_distance.

Timing:
    now drives frozen_since and freeze durations (submission clock).
    seen_at stamps last_seen for idle eviction (processing clock); sweeps
    must compare against that same clock.

last_fingerprint is replaced on every update. Corrupt frames never reach
the detector.
"""

import logging
from typing import List, Optional

from thumbwatch.classify.fingerprint import hamming_distance
from thumbwatch.freeze.registry import EvictedKey, FreezeStateRegistry
from thumbwatch.models.health import FreezeOutcome


logger = logging.getLogger(__name__)


class FreezeDetector:
    """
    Freeze state machine over an injected FreezeStateRegistry.

    Each update runs its read-compare-write under the key's lock, so
    concurrent submissions for one key cannot both start or both end
    the same freeze.

    Example:
        detector = FreezeDetector(FreezeStateRegistry())
        outcome = detector.update("s1", "f1", fingerprint, now=1700000000.0)
        if outcome.freeze_started:
            ...
    """

    def __init__(self, registry: FreezeStateRegistry, match_distance: int = 0) -> None:
        self.registry = registry
        self.match_distance = match_distance

    def matches(self, fingerprint: str, previous: str) -> bool:
        if fingerprint == previous:
            return True
        if self.match_distance <= 0:
            return False
        try:
            return hamming_distance(fingerprint, previous) <= self.match_distance
        except ValueError:
            # Hash size changed between frames
            return False

    def update(
        self,
        stream_id: str,
        feed_id: str,
        fingerprint: str,
        now: float,
        seen_at: Optional[float] = None,
    ) -> FreezeOutcome:
        """
        Advance the state machine for one key.

        Args:
            stream_id: Stream identifier
            feed_id: Feed identifier
            fingerprint: Perceptual hash of the new frame
            now: Submission time in seconds
            seen_at: Processing time used for idle eviction (defaults to now)

        Returns:
            FreezeOutcome for this update
        """
        state = self.registry.get_or_create(stream_id, feed_id)

        with state.lock:
            previous = state.last_fingerprint
            state.last_fingerprint = fingerprint
            state.last_seen = seen_at if seen_at is not None else now

            if previous is None:
                return FreezeOutcome()

            if self.matches(fingerprint, previous):
                started = state.frozen_since is None
                if started:
                    state.frozen_since = now
                    logger.info(f"Freeze started: stream={stream_id} feed={feed_id}")
                return FreezeOutcome(is_freeze_now=True, freeze_started=started)

            if state.frozen_since is not None:
                # Out-of-order timestamps must not yield negative durations
                duration = max(0.0, now - state.frozen_since)
                state.frozen_since = None
                logger.info(
                    f"Freeze ended: stream={stream_id} feed={feed_id} "
                    f"duration={duration:.1f}s"
                )
                return FreezeOutcome(freeze_ended_duration=duration)

            return FreezeOutcome()

    def is_frozen(self, stream_id: str, feed_id: str) -> bool:
        state = self.registry.get(stream_id, feed_id)
        return state is not None and state.frozen

    def evict_idle(self, now: float, ttl: float) -> List[EvictedKey]:
        """Evict keys idle for longer than ttl seconds (now on the seen_at clock)."""
        return self.registry.evict_idle(now=now, ttl=ttl)
