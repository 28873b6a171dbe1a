"""
Freeze State Registry
=====================

Owned, injectable store of per-(stream, feed) freeze state.

Design Rules:
    - One FreezeState per key, created lazily on first lookup
    - Every read-compare-write on an entry happens under that entry's lock
    - The registry lock only guards the key map, never held during updates
    - Idle keys are evicted explicitly (no unbounded growth)

Locks are threading.Lock so updates stay serialized whether callers run
on the event loop or in worker threads.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple


logger = logging.getLogger(__name__)


FreezeKey = Tuple[str, str]


@dataclass
class FreezeState:
    """
    Mutable freeze state for one (stream, feed) key.

    Attributes:
        last_fingerprint: Fingerprint of the previous frame
        frozen_since: Time (s) the current freeze began, None when not frozen
        last_seen: Processing time (s) of the latest update, used for idle eviction
    """

    last_fingerprint: Optional[str] = None
    frozen_since: Optional[float] = None
    last_seen: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def frozen(self) -> bool:
        return self.frozen_since is not None


@dataclass(frozen=True, slots=True)
class EvictedKey:
    """Key removed by an eviction sweep, and whether it was frozen at the time."""

    stream_id: str
    feed_id: str
    was_frozen: bool


class FreezeStateRegistry:
    """
    Concurrent map of FreezeState keyed by (stream_id, feed_id).

    Example:
        registry = FreezeStateRegistry()
        state = registry.get_or_create("s1", "f1")
        with state.lock:
            ...
        registry.evict_idle(now=time.time(), ttl=3600)
    """

    def __init__(self) -> None:
        self._states: Dict[FreezeKey, FreezeState] = {}
        self._lock = threading.Lock()

    def get_or_create(self, stream_id: str, feed_id: str) -> FreezeState:
        """Return the state for a key, creating an empty entry if needed."""
        key = (stream_id, feed_id)
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = FreezeState()
                self._states[key] = state
            return state

    def get(self, stream_id: str, feed_id: str) -> Optional[FreezeState]:
        with self._lock:
            return self._states.get((stream_id, feed_id))

    def evict_idle(self, now: float, ttl: float) -> List[EvictedKey]:
        """
        Remove keys whose last update is older than ttl.

        An entry whose lock is currently held is skipped; it is being
        updated and therefore not idle.

        Args:
            now: Current time in seconds
            ttl: Idle time in seconds after which a key is evicted

        Returns:
            Evicted keys
        """
        evicted: List[EvictedKey] = []
        with self._lock:
            for key, state in list(self._states.items()):
                if not state.lock.acquire(blocking=False):
                    continue
                try:
                    if now - state.last_seen < ttl:
                        continue
                    del self._states[key]
                    evicted.append(EvictedKey(key[0], key[1], state.frozen))
                finally:
                    state.lock.release()

        if evicted:
            logger.info(f"Evicted {len(evicted)} idle freeze state entries")
        return evicted

    def keys(self) -> List[FreezeKey]:
        with self._lock:
            return list(self._states)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __iter__(self) -> Iterator[FreezeKey]:
        return iter(self.keys())

    def clear(self) -> int:
        """
        Drop all entries.

        Returns:
            Number of entries cleared.
        """
        with self._lock:
            cleared = len(self._states)
            self._states.clear()
        return cleared
