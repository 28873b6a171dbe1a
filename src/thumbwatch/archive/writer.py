"""
Archive Writer
==============

Persists frame blobs and appends structured entries to the daily log.

Layout:
    {feedId}/{streamId}[/{quality}]/{isoTimestamp}.jpg   frame blobs
    {log_prefix}/{YYYY-MM-DD}.json                       daily log (JSON array)

Daily Log Appends:
    Appends for one log key are serialized in-process with an
    asyncio.Lock. Across processes each append is an optimistic
    read-modify-write: the rewrite is conditional on the ETag that was
    read (or on absence for a new day), and a conflict re-reads and
    retries up to log_max_retries times.

Blocking storage calls run in a worker thread so the event loop keeps
serving other submissions.
"""

import asyncio
import json
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from thumbwatch.archive.store import BlobStore, StoreConflictError, StoreError
from thumbwatch.models.output import LogEntry, build_archive_key, daily_log_key
from thumbwatch.models.submission import FrameSubmission


logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when a frame or log entry could not be durably stored."""
    pass


class ArchiveWriter:
    """
    Archive frames and daily log entries into a BlobStore.

    Example:
        writer = ArchiveWriter(InMemoryBlobStore(), public_url_base="https://cdn")
        key = await writer.store_frame(submission)
        await writer.append_log(entry, submission.timestamp_ms)
    """

    def __init__(
        self,
        store: BlobStore,
        public_url_base: str,
        include_quality: bool = False,
        log_prefix: str = "logs",
        log_max_retries: int = 5,
    ) -> None:
        if log_max_retries < 1:
            raise ValueError("log_max_retries must be >= 1")

        self.store = store
        self.public_url_base = public_url_base.rstrip("/")
        self.include_quality = include_quality
        self.log_prefix = log_prefix
        self.log_max_retries = log_max_retries

        self._log_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def key_for(self, submission: FrameSubmission) -> str:
        return build_archive_key(submission, include_quality=self.include_quality)

    def url_for(self, key: str) -> str:
        return f"{self.public_url_base}/{key}"

    async def store_frame(self, submission: FrameSubmission) -> str:
        """
        Store the frame blob, overwriting any object at the same key.

        Returns:
            Archive key

        Raises:
            ArchiveError: Storage failed; the frame is NOT durable
        """
        key = self.key_for(submission)
        try:
            await asyncio.to_thread(self.store.put, key, submission.data, "image/jpeg")
        except StoreError as e:
            raise ArchiveError(f"Failed to archive {key}: {e}") from e
        return key

    async def append_log(self, entry: LogEntry, timestamp_ms: int) -> str:
        """
        Append one entry to the daily log for timestamp_ms.

        Returns:
            Log object key

        Raises:
            ArchiveError: Storage failed or retries were exhausted
        """
        key = daily_log_key(timestamp_ms, prefix=self.log_prefix)
        record = entry.model_dump(mode="json", by_alias=True)

        async with self._log_locks[key]:
            for attempt in range(1, self.log_max_retries + 1):
                try:
                    current = await asyncio.to_thread(self.store.get, key)
                    entries = self._parse_log(key, current.data) if current else []
                    entries.append(record)
                    body = json.dumps(entries).encode("utf-8")

                    if current is None:
                        await asyncio.to_thread(
                            self.store.put, key, body, "application/json", None, True
                        )
                    else:
                        await asyncio.to_thread(
                            self.store.put, key, body, "application/json", current.etag
                        )
                    return key
                except StoreConflictError:
                    logger.warning(
                        f"Concurrent write to {key}, retrying "
                        f"(attempt {attempt}/{self.log_max_retries})"
                    )
                except StoreError as e:
                    raise ArchiveError(f"Failed to append to {key}: {e}") from e

        raise ArchiveError(f"Gave up appending to {key} after {self.log_max_retries} conflicts")

    async def read_log(self, day_timestamp_ms: int) -> List[dict]:
        """Read all entries of the daily log containing day_timestamp_ms."""
        key = daily_log_key(day_timestamp_ms, prefix=self.log_prefix)
        try:
            current = await asyncio.to_thread(self.store.get, key)
        except StoreError as e:
            raise ArchiveError(f"Failed to read {key}: {e}") from e
        return self._parse_log(key, current.data) if current else []

    async def latest_key(self, stream_id: str, feed_id: str) -> Optional[str]:
        """
        Key of the most recently modified frame for a stream.

        Returns:
            Archive key, or None if nothing was archived

        Raises:
            ArchiveError: Listing failed
        """
        prefix = f"{feed_id}/{stream_id}/"
        try:
            objects = await asyncio.to_thread(self.store.list, prefix)
        except StoreError as e:
            raise ArchiveError(f"Failed to list {prefix}: {e}") from e

        if not objects:
            return None
        # Keys embed the ISO timestamp, so they break last-modified ties
        latest = max(objects, key=lambda obj: (obj.last_modified, obj.key))
        return latest.key

    @staticmethod
    def _parse_log(key: str, raw: bytes) -> List[dict]:
        try:
            entries = json.loads(raw or b"[]")
        except json.JSONDecodeError as e:
            raise ArchiveError(f"Daily log {key} is not valid JSON: {e}") from e
        if not isinstance(entries, list):
            raise ArchiveError(f"Daily log {key} is not a JSON array")
        return entries
