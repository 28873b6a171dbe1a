"""
Normalizer Tests
================

Wire envelopes -> FrameSubmission.
"""

import base64
import json

import pytest

from thumbwatch.ingest import SubmissionError, normalize, parse_envelope
from thumbwatch.ingest.normalizer import MAX_TIMESTAMP_MS
from thumbwatch.models import BinaryEnvelope, JsonEnvelope


NOW_MS = 1700000000000


def _json_body(**fields) -> bytes:
    return json.dumps(fields).encode()


class TestJsonEnvelope:
    """Tests for application/json submissions."""

    def test_full_body(self):
        payload = base64.b64encode(b"image-bytes").decode()
        envelope = parse_envelope(
            "application/json",
            _json_body(feedId="f1", streamId="s1", timestamp=1700000000123,
                       width=854, height=480, thumbnail=payload),
            {},
        )
        submission = normalize(envelope, now_ms=NOW_MS)

        assert isinstance(envelope, JsonEnvelope)
        assert submission.feed_id == "f1"
        assert submission.stream_id == "s1"
        assert submission.timestamp_ms == 1700000000123
        assert submission.width == 854
        assert submission.height == 480
        assert submission.data == b"image-bytes"

    def test_defaults(self):
        payload = base64.b64encode(b"x").decode()
        envelope = parse_envelope("application/json; charset=utf-8", _json_body(thumbnail=payload), {})
        submission = normalize(envelope, now_ms=NOW_MS)

        assert submission.feed_id == "unknown"
        assert submission.stream_id == "unknown"
        assert submission.timestamp_ms == NOW_MS
        assert submission.width is None

    def test_string_timestamp(self):
        payload = base64.b64encode(b"x").decode()
        envelope = parse_envelope(
            "application/json", _json_body(timestamp="1700000000000", thumbnail=payload), {}
        )
        assert normalize(envelope, now_ms=0).timestamp_ms == 1700000000000

    def test_data_uri_prefix_is_stripped(self):
        payload = "data:image/jpeg;base64," + base64.b64encode(b"abc").decode()
        envelope = parse_envelope("application/json", _json_body(thumbnail=payload), {})
        assert normalize(envelope, now_ms=NOW_MS).data == b"abc"

    def test_missing_thumbnail(self):
        envelope = parse_envelope("application/json", _json_body(feedId="f1"), {})
        with pytest.raises(SubmissionError) as exc:
            normalize(envelope, now_ms=NOW_MS)
        assert exc.value.status_code == 400
        assert exc.value.message == "Missing thumbnail in JSON body"

    def test_malformed_base64(self):
        envelope = parse_envelope("application/json", _json_body(thumbnail="abc"), {})
        with pytest.raises(SubmissionError):
            normalize(envelope, now_ms=NOW_MS)

    def test_malformed_json(self):
        with pytest.raises(SubmissionError):
            parse_envelope("application/json", b"{not json", {})

    def test_invalid_timestamp(self):
        payload = base64.b64encode(b"x").decode()
        envelope = parse_envelope(
            "application/json", _json_body(timestamp="yesterday", thumbnail=payload), {}
        )
        with pytest.raises(SubmissionError):
            normalize(envelope, now_ms=NOW_MS)

    def test_timestamp_beyond_year_9999(self):
        payload = base64.b64encode(b"x").decode()
        with pytest.raises(SubmissionError):
            envelope = parse_envelope(
                "application/json",
                _json_body(timestamp=10**20, thumbnail=payload),
                {},
            )
            normalize(envelope, now_ms=NOW_MS)

    def test_last_representable_timestamp(self):
        payload = base64.b64encode(b"x").decode()
        envelope = parse_envelope(
            "application/json", _json_body(timestamp=MAX_TIMESTAMP_MS, thumbnail=payload), {}
        )
        assert normalize(envelope, now_ms=NOW_MS).timestamp_ms == MAX_TIMESTAMP_MS


class TestBinaryEnvelope:
    """Tests for image/jpeg submissions."""

    def test_headers(self):
        headers = {
            "X-Millicast-Feed-Id": "f2",
            "X-Millicast-Stream-Id": "s2",
            "X-Millicast-Timestamp": "1700000000500",
            "X-Millicast-Width": "640",
            "X-Millicast-Height": "360",
        }
        envelope = parse_envelope("image/jpeg", b"raw", headers)
        submission = normalize(envelope, now_ms=NOW_MS)

        assert isinstance(envelope, BinaryEnvelope)
        assert submission.feed_id == "f2"
        assert submission.stream_id == "s2"
        assert submission.timestamp_ms == 1700000000500
        assert (submission.width, submission.height) == (640, 360)
        assert submission.data == b"raw"

    def test_defaults(self):
        submission = normalize(parse_envelope("image/jpeg", b"raw", {}), now_ms=NOW_MS)
        assert submission.feed_id == "testfeed"
        assert submission.stream_id == "teststream"
        assert submission.timestamp_ms == NOW_MS

    def test_empty_body(self):
        with pytest.raises(SubmissionError):
            normalize(parse_envelope("image/jpeg", b"", {}), now_ms=NOW_MS)

    @pytest.mark.parametrize("timestamp", ["99999999999999999", "1e300", "inf", "-inf", "nan", "-5"])
    def test_out_of_range_timestamp_header(self, timestamp):
        envelope = parse_envelope("image/jpeg", b"raw", {"X-Millicast-Timestamp": timestamp})
        with pytest.raises(SubmissionError):
            normalize(envelope, now_ms=NOW_MS)

    def test_invalid_dimension(self):
        envelope = parse_envelope("image/jpeg", b"raw", {"X-Millicast-Width": "wide"})
        with pytest.raises(SubmissionError):
            normalize(envelope, now_ms=NOW_MS)


class TestContentType:
    """Tests for envelope selection."""

    @pytest.mark.parametrize("content_type", [None, "", "text/plain", "image/png"])
    def test_unsupported(self, content_type):
        with pytest.raises(SubmissionError) as exc:
            parse_envelope(content_type, b"data", {})
        assert exc.value.message == "Unsupported Content-Type"
