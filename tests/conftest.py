"""
Test Configuration
==================

Pytest fixtures and test configuration for Thumbwatch.
"""

import os

# Must be set before thumbwatch.config is imported anywhere
os.environ["THUMBWATCH_STORAGE_BACKEND"] = "memory"
os.environ.pop("THUMBWATCH_ALERT_WEBHOOK_URL", None)

import cv2
import numpy as np
import pytest


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    assert ok
    return buf.tobytes()


def make_frame(seed: int, width: int = 320, height: int = 240) -> np.ndarray:
    """Smooth, bright, seed-determined BGR frame."""
    rng = np.random.default_rng(seed)
    small = rng.integers(40, 255, size=(6, 8, 3), dtype=np.uint8)
    return cv2.resize(small, (width, height), interpolation=cv2.INTER_CUBIC)


@pytest.fixture
def frame_jpeg():
    """Factory: JPEG bytes of a distinct, healthy frame per seed."""
    def _make(seed: int = 0, width: int = 320, height: int = 240, quality: int = 90) -> bytes:
        return encode_jpeg(make_frame(seed, width, height), quality=quality)
    return _make


@pytest.fixture
def ok_jpeg(frame_jpeg) -> bytes:
    return frame_jpeg(seed=1)


@pytest.fixture
def black_jpeg() -> bytes:
    return encode_jpeg(np.zeros((240, 320, 3), dtype=np.uint8))


@pytest.fixture
def corrupt_bytes() -> bytes:
    return b"this is definitely not an image"


@pytest.fixture
def test_settings():
    """Settings for an isolated in-memory deployment."""
    from thumbwatch.config import Settings

    return Settings.model_validate({
        "storage": {"backend": "memory", "public_url_base": "https://cdn.test"},
        "metrics": {"include_process_metrics": False},
        "alerts": {"webhook_url": None},
        "freeze": {"sweep_interval_seconds": 3600},
    })


@pytest.fixture
def memory_store():
    from thumbwatch.archive import InMemoryBlobStore

    return InMemoryBlobStore()


@pytest.fixture
def pipeline_factory(test_settings, memory_store):
    """Factory: IngestPipeline over the in-memory store."""
    from thumbwatch.alerts import AlertDispatcher
    from thumbwatch.main import build_pipeline

    def _make(dispatcher=None, app_settings=None):
        dispatcher = dispatcher or AlertDispatcher(webhook_url=None)
        return build_pipeline(app_settings or test_settings, memory_store, dispatcher)
    return _make
