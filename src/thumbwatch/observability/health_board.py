"""
Stream Health Board
===================

Latest health snapshot per (stream, feed), served on /streams and
/ws/health for operators.

This board is observability-only. It is written after each submission
and never read by the classifier or the freeze detector.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from thumbwatch.models.health import StreamHealth


logger = logging.getLogger(__name__)


class StreamHealthBoard:
    """Thread-safe map of the latest StreamHealth per stream."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], StreamHealth] = {}
        self._lock = threading.Lock()

    def update(self, health: StreamHealth) -> None:
        """
        Store a snapshot unless a newer one is already present.

        Submissions may finish out of order; the board keeps the one with
        the latest submission timestamp.
        """
        key = (health.stream_id, health.feed_id)
        with self._lock:
            current = self._entries.get(key)
            if current is None or health.last_timestamp_ms >= current.last_timestamp_ms:
                self._entries[key] = health

    def set_frozen(self, stream_id: str, feed_id: str, frozen: bool) -> None:
        with self._lock:
            current = self._entries.get((stream_id, feed_id))
            if current is not None:
                self._entries[(stream_id, feed_id)] = current.model_copy(update={"frozen": frozen})

    def get(self, stream_id: str, feed_id: str) -> Optional[StreamHealth]:
        with self._lock:
            return self._entries.get((stream_id, feed_id))

    def remove(self, stream_id: str, feed_id: str) -> None:
        with self._lock:
            self._entries.pop((stream_id, feed_id), None)

    def snapshot(self) -> List[StreamHealth]:
        """All snapshots, ordered by stream then feed."""
        with self._lock:
            return [self._entries[key] for key in sorted(self._entries)]

    def to_json(self) -> List[dict]:
        return [
            entry.model_dump(mode="json", by_alias=True)
            for entry in self.snapshot()
        ]
