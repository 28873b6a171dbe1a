"""
Archive Tests
=============

Blob stores, frame archiving and the daily structured log.
"""

import asyncio
from datetime import datetime, timezone

import boto3
import pytest
from botocore.stub import ANY, Stubber

from thumbwatch.archive import (
    ArchiveError,
    ArchiveWriter,
    InMemoryBlobStore,
    S3BlobStore,
    StoreConflictError,
    StoreError,
)
from thumbwatch.models import FrameStatus, FrameSubmission, LogEntry


TS = 1700000000000


def _entry(index: int = 0, status: FrameStatus = FrameStatus.OK) -> LogEntry:
    return LogEntry(
        ts="2023-11-14T22:13:20.000Z",
        feed_id="f1",
        stream_id=f"s{index}",
        status=status,
    )


class FailingStore:
    """BlobStore whose every operation fails."""

    def put(self, key, data, content_type="application/octet-stream", if_match=None, if_none_match=False):
        raise StoreError("storage unavailable")

    def get(self, key):
        raise StoreError("storage unavailable")

    def list(self, prefix, max_keys=None):
        raise StoreError("storage unavailable")


class RacingStore(InMemoryBlobStore):
    """
    InMemoryBlobStore where another writer sneaks in before the next
    `races` conditional writes.
    """

    def __init__(self, races: int) -> None:
        super().__init__()
        self.races = races

    def put(self, key, data, content_type="application/octet-stream", if_match=None, if_none_match=False):
        if self.races and (if_match is not None or if_none_match):
            self.races -= 1
            # Distinct bytes so the intruder always changes the ETag
            super().put(key, b"[]" + b" " * self.races, content_type)
        return super().put(key, data, content_type, if_match, if_none_match)


class TestInMemoryBlobStore:
    """Tests for the process-local store."""

    def test_overwrite(self):
        store = InMemoryBlobStore()
        store.put("k", b"one")
        store.put("k", b"two")
        assert store.get("k").data == b"two"
        assert len(store) == 1

    def test_if_none_match(self):
        store = InMemoryBlobStore()
        store.put("k", b"one", if_none_match=True)
        with pytest.raises(StoreConflictError):
            store.put("k", b"two", if_none_match=True)

    def test_if_match(self):
        store = InMemoryBlobStore()
        etag = store.put("k", b"one")
        store.put("k", b"two", if_match=etag)
        with pytest.raises(StoreConflictError):
            store.put("k", b"three", if_match=etag)

    def test_list_prefix(self):
        store = InMemoryBlobStore()
        for key in ("f1/s1/a.jpg", "f1/s10/b.jpg", "f2/s1/c.jpg"):
            store.put(key, b"x")
        assert [o.key for o in store.list("f1/s1/")] == ["f1/s1/a.jpg"]
        assert len(store.list("", max_keys=2)) == 2

    def test_missing_key(self):
        assert InMemoryBlobStore().get("absent") is None


class TestS3BlobStore:
    """Tests for the boto3 backend against a stubbed client."""

    @pytest.fixture
    def client(self):
        return boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="test",
            aws_secret_access_key="test",
        )

    def test_public_frame_upload(self, client):
        store = S3BlobStore(bucket="b", public_read=True, client=client)
        with Stubber(client) as stubber:
            stubber.add_response(
                "put_object",
                {"ETag": '"abc"'},
                {
                    "Bucket": "b",
                    "Key": "f1/s1/x.jpg",
                    "Body": ANY,
                    "ContentType": "image/jpeg",
                    "ACL": "public-read",
                },
            )
            assert store.put("f1/s1/x.jpg", b"data", "image/jpeg") == '"abc"'
            stubber.assert_no_pending_responses()

    def test_create_only_write(self, client):
        store = S3BlobStore(bucket="b", client=client)
        with Stubber(client) as stubber:
            stubber.add_response(
                "put_object",
                {"ETag": '"abc"'},
                {
                    "Bucket": "b",
                    "Key": "logs/2023-11-14.json",
                    "Body": ANY,
                    "ContentType": "application/json",
                    "IfNoneMatch": "*",
                },
            )
            store.put("logs/2023-11-14.json", b"[]", "application/json", if_none_match=True)

    def test_precondition_failed_is_conflict(self, client):
        store = S3BlobStore(bucket="b", client=client)
        with Stubber(client) as stubber:
            stubber.add_client_error(
                "put_object",
                service_error_code="PreconditionFailed",
                http_status_code=412,
            )
            with pytest.raises(StoreConflictError):
                store.put("k", b"x", if_none_match=True)

    def test_other_errors(self, client):
        store = S3BlobStore(bucket="b", client=client)
        with Stubber(client) as stubber:
            stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
            with pytest.raises(StoreError) as exc:
                store.put("k", b"x")
            assert not isinstance(exc.value, StoreConflictError)

    def test_missing_object(self, client):
        store = S3BlobStore(bucket="b", client=client)
        with Stubber(client) as stubber:
            stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
            assert store.get("absent") is None

    def test_list(self, client):
        store = S3BlobStore(bucket="b", client=client)
        modified = datetime(2023, 11, 14, tzinfo=timezone.utc)
        with Stubber(client) as stubber:
            stubber.add_response(
                "list_objects_v2",
                {
                    "Contents": [{"Key": "f1/s1/a.jpg", "LastModified": modified, "Size": 3}],
                    "IsTruncated": False,
                },
                {"Bucket": "b", "Prefix": "f1/s1/"},
            )
            (info,) = store.list("f1/s1/")
        assert info.key == "f1/s1/a.jpg"
        assert info.size == 3


class TestArchiveWriter:
    """Tests for frame blobs and latest lookups."""

    def test_store_frame(self):
        store = InMemoryBlobStore()
        writer = ArchiveWriter(store, public_url_base="https://cdn.test/")
        submission = FrameSubmission("f1", "s1", TS, b"jpeg")

        key = asyncio.run(writer.store_frame(submission))

        assert key == "f1/s1/2023-11-14T22:13:20.000Z.jpg"
        assert store.get(key).data == b"jpeg"
        assert store.content_type(key) == "image/jpeg"
        assert writer.url_for(key) == "https://cdn.test/f1/s1/2023-11-14T22:13:20.000Z.jpg"

    def test_same_second_overwrites(self):
        store = InMemoryBlobStore()
        writer = ArchiveWriter(store, public_url_base="https://cdn.test", include_quality=True)

        async def scenario():
            first = await writer.store_frame(FrameSubmission("f1", "s1", TS + 100, b"a", 426, 240))
            second = await writer.store_frame(FrameSubmission("f1", "s1", TS + 900, b"b", 426, 240))
            return first, second

        first, second = asyncio.run(scenario())

        assert first == second == "f1/s1/low/2023-11-14T22:13:20.000Z.jpg"
        assert store.get(first).data == b"b"

    def test_store_failure(self):
        writer = ArchiveWriter(FailingStore(), public_url_base="https://cdn.test")
        with pytest.raises(ArchiveError):
            asyncio.run(writer.store_frame(FrameSubmission("f1", "s1", TS, b"x")))

    def test_latest_key(self):
        store = InMemoryBlobStore()
        writer = ArchiveWriter(store, public_url_base="https://cdn.test")

        async def scenario():
            await writer.store_frame(FrameSubmission("f1", "s1", TS, b"a"))
            await writer.store_frame(FrameSubmission("f1", "s1", TS + 5000, b"b"))
            await writer.store_frame(FrameSubmission("f1", "s10", TS + 9000, b"c"))
            return await writer.latest_key("s1", "f1")

        assert asyncio.run(scenario()) == "f1/s1/2023-11-14T22:13:25.000Z.jpg"

    def test_latest_key_empty(self):
        writer = ArchiveWriter(InMemoryBlobStore(), public_url_base="https://cdn.test")
        assert asyncio.run(writer.latest_key("s1", "f1")) is None

    def test_latest_key_failure(self):
        writer = ArchiveWriter(FailingStore(), public_url_base="https://cdn.test")
        with pytest.raises(ArchiveError):
            asyncio.run(writer.latest_key("s1", "f1"))


class TestDailyLog:
    """Tests for daily log appends."""

    def test_append_creates_log(self):
        store = InMemoryBlobStore()
        writer = ArchiveWriter(store, public_url_base="https://cdn.test")

        key = asyncio.run(writer.append_log(_entry(status=FrameStatus.BLACK), TS))

        assert key == "logs/2023-11-14.json"
        (record,) = asyncio.run(writer.read_log(TS))
        assert record["feedId"] == "f1"
        assert record["status"] == "black"

    def test_concurrent_appends_are_all_kept(self):
        writer = ArchiveWriter(InMemoryBlobStore(), public_url_base="https://cdn.test")

        async def scenario():
            await asyncio.gather(*(writer.append_log(_entry(i), TS) for i in range(25)))
            return await writer.read_log(TS)

        records = asyncio.run(scenario())

        assert len(records) == 25
        assert {r["streamId"] for r in records} == {f"s{i}" for i in range(25)}

    def test_conflict_is_retried(self):
        store = RacingStore(races=2)
        writer = ArchiveWriter(store, public_url_base="https://cdn.test", log_max_retries=5)

        asyncio.run(writer.append_log(_entry(1), TS))

        assert len(asyncio.run(writer.read_log(TS))) == 1

    def test_retries_exhausted(self):
        store = RacingStore(races=10)
        writer = ArchiveWriter(store, public_url_base="https://cdn.test", log_max_retries=3)
        with pytest.raises(ArchiveError):
            asyncio.run(writer.append_log(_entry(), TS))

    def test_separate_days(self):
        writer = ArchiveWriter(InMemoryBlobStore(), public_url_base="https://cdn.test")
        next_day = TS + 24 * 3600 * 1000

        asyncio.run(writer.append_log(_entry(), TS))
        asyncio.run(writer.append_log(_entry(), next_day))

        assert len(asyncio.run(writer.read_log(TS))) == 1
        assert len(asyncio.run(writer.read_log(next_day))) == 1

    def test_corrupt_log_raises(self):
        store = InMemoryBlobStore()
        store.put("logs/2023-11-14.json", b"{\"not\": \"a list\"}")
        writer = ArchiveWriter(store, public_url_base="https://cdn.test")
        with pytest.raises(ArchiveError):
            asyncio.run(writer.append_log(_entry(), TS))
