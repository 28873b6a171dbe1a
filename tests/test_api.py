"""
HTTP API Tests
==============

FastAPI endpoints exercised through the TestClient.
"""

import base64
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from thumbwatch.alerts import AlertDispatcher
from thumbwatch.archive import InMemoryBlobStore, StoreError
from thumbwatch.main import create_app


class FailingStore:
    def put(self, key, data, content_type="application/octet-stream", if_match=None, if_none_match=False):
        raise StoreError("bucket unavailable")

    def get(self, key):
        raise StoreError("bucket unavailable")

    def list(self, prefix, max_keys=None):
        raise StoreError("bucket unavailable")


@pytest.fixture
def client(test_settings):
    app = create_app(test_settings, store=InMemoryBlobStore())
    with TestClient(app) as client:
        yield client


def _json_submission(image: bytes, **fields) -> dict:
    body = {
        "feedId": "f1",
        "streamId": "s1",
        "timestamp": 1700000000000,
        "thumbnail": base64.b64encode(image).decode(),
    }
    body.update(fields)
    return body


class TestThumbnailUpload:
    """Tests for POST /thumbnail."""

    def test_json_upload(self, client, ok_jpeg):
        response = client.post("/thumbnail", json=_json_submission(ok_jpeg))

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Uploaded"
        assert body["key"] == "f1/s1/2023-11-14T22:13:20.000Z.jpg"
        assert body["url"] == "https://cdn.test/f1/s1/2023-11-14T22:13:20.000Z.jpg"
        assert body["status"] == "ok"
        assert body["quality"] == "unknown"
        assert body["freeze"] is False

        metrics = client.get("/metrics").text
        assert 'thumbnails_ok_total{streamId="s1",feedId="f1",quality="unknown"} 1.0' in metrics

    def test_binary_upload(self, client, black_jpeg):
        response = client.post(
            "/thumbnail",
            content=black_jpeg,
            headers={
                "Content-Type": "image/jpeg",
                "X-Millicast-Feed-Id": "f9",
                "X-Millicast-Stream-Id": "s9",
                "X-Millicast-Timestamp": "1700000000000",
                "X-Millicast-Width": "640",
                "X-Millicast-Height": "360",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "black"
        assert body["quality"] == "med"
        assert body["key"] == "f9/s9/2023-11-14T22:13:20.000Z.jpg"

    def test_corrupt_upload_is_archived(self, client, corrupt_bytes):
        response = client.post(
            "/thumbnail",
            content=corrupt_bytes,
            headers={"Content-Type": "image/jpeg"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "corrupt"
        assert response.json()["key"].startswith("testfeed/teststream/")

    def test_freeze_reported(self, client, ok_jpeg):
        client.post("/thumbnail", json=_json_submission(ok_jpeg, timestamp=1700000000000))
        second = client.post("/thumbnail", json=_json_submission(ok_jpeg, timestamp=1700000010000))
        third = client.post("/thumbnail", json=_json_submission(ok_jpeg, timestamp=1700000020000))

        assert second.json()["freeze"] is True
        assert third.json()["freeze"] is True

    def test_out_of_range_timestamp_rejected_before_side_effects(self, client, ok_jpeg):
        response = client.post(
            "/thumbnail",
            content=ok_jpeg,
            headers={"Content-Type": "image/jpeg", "X-Millicast-Timestamp": "99999999999999999"},
        )

        assert response.status_code == 400
        assert client.get("/streams").json() == []
        assert "thumbnails_ok_total{" not in client.get("/metrics").text

    def test_unsupported_content_type(self, client):
        response = client.post("/thumbnail", content=b"hello", headers={"Content-Type": "text/plain"})
        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported Content-Type"}

    def test_missing_thumbnail(self, client):
        response = client.post("/thumbnail", json={"feedId": "f1"})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing thumbnail in JSON body"}

    def test_empty_binary_body(self, client):
        response = client.post("/thumbnail", content=b"", headers={"Content-Type": "image/jpeg"})
        assert response.status_code == 400

    def test_payload_too_large(self, test_settings):
        small = test_settings.model_copy(
            update={"server": test_settings.server.model_copy(update={"max_body_bytes": 1024})}
        )
        app = create_app(small, store=InMemoryBlobStore())
        with TestClient(app) as client:
            response = client.post(
                "/thumbnail",
                content=b"\xff" * 4096,
                headers={"Content-Type": "image/jpeg"},
            )
        assert response.status_code == 413

    def test_archive_failure(self, test_settings, ok_jpeg):
        app = create_app(test_settings, store=FailingStore())
        with TestClient(app) as client:
            response = client.post("/thumbnail", json=_json_submission(ok_jpeg))
        assert response.status_code == 500
        assert response.json()["error"] == "Upload failed"


class TestLatest:
    """Tests for GET /streams/{streamId}/{feedId}/latest."""

    def test_not_found(self, client):
        response = client.get("/streams/s1/f1/latest")
        assert response.status_code == 404
        assert response.json() == {"error": "No thumbnails found"}

    def test_latest_url(self, client, frame_jpeg):
        client.post("/thumbnail", json=_json_submission(frame_jpeg(seed=1), timestamp=1700000000000))
        client.post("/thumbnail", json=_json_submission(frame_jpeg(seed=2), timestamp=1700000005000))

        response = client.get("/streams/s1/f1/latest")

        assert response.status_code == 200
        assert response.json() == {
            "streamId": "s1",
            "feedId": "f1",
            "latest": "https://cdn.test/f1/s1/2023-11-14T22:13:25.000Z.jpg",
        }

    def test_listing_failure(self, test_settings):
        app = create_app(test_settings, store=FailingStore())
        with TestClient(app) as client:
            response = client.get("/streams/s1/f1/latest")
        assert response.status_code == 500


class TestOperationalEndpoints:
    """Tests for streams, metrics, health and readiness."""

    def test_streams(self, client, black_jpeg):
        client.post("/thumbnail", json=_json_submission(black_jpeg))

        (entry,) = client.get("/streams").json()

        assert entry["streamId"] == "s1"
        assert entry["feedId"] == "f1"
        assert entry["status"] == "black"
        assert entry["archiveKey"] == "f1/s1/2023-11-14T22:13:20.000Z.jpg"

    def test_metrics_content_type(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    def test_health_and_readiness(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        ready = client.get("/ready")
        assert ready.status_code == 200
        assert ready.json()["status"] == "ready"
        assert client.get("/").json()["service"] == "thumbwatch"

    def test_health_websocket(self, client, ok_jpeg):
        client.post("/thumbnail", json=_json_submission(ok_jpeg))
        with client.websocket_connect("/ws/health") as websocket:
            (entry,) = websocket.receive_json()
        assert entry["streamId"] == "s1"


class TestAlerting:
    """Tests for webhook delivery from a running app."""

    def test_black_frame_reaches_webhook(self, test_settings, black_jpeg):
        received = []

        def webhook(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(204)

        dispatcher = AlertDispatcher(
            webhook_url="https://hooks.test/alerts",
            client=httpx.AsyncClient(transport=httpx.MockTransport(webhook)),
        )
        app = create_app(test_settings, store=InMemoryBlobStore(), dispatcher=dispatcher)

        with TestClient(app) as client:
            response = client.post("/thumbnail", json=_json_submission(black_jpeg))
            assert response.status_code == 200
            assert dispatcher.metrics.submitted == 1

            deadline = time.monotonic() + 5
            while dispatcher.metrics.delivered < 1 and time.monotonic() < deadline:
                time.sleep(0.05)

        assert dispatcher.metrics.delivered == 1
        assert len(received) == 1
