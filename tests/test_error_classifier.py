"""
Tests for error classification into banner categories.
"""
import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from error_classifier import (
    ERROR_CATEGORIES,
    ErrorKind,
    MediaErrorCode,
    StreamError,
    classify,
    classify_kind,
)
from stream_types import StreamType


class TestCategories:
    def test_seven_categories(self):
        assert set(ERROR_CATEGORIES) == set(ErrorKind)
        for kind, category in ERROR_CATEGORIES.items():
            assert category.kind is kind
            assert category.title
            assert category.suggestions

    def test_classify_returns_shared_entries(self):
        assert classify(StreamError("Network error"), StreamType.HLS) is ERROR_CATEGORIES[ErrorKind.NETWORK]


class TestClassifyKind:
    """Keyword priority, stream-type split and numeric codes."""

    def test_generic_without_keywords_or_code(self):
        assert classify_kind(StreamError("something odd"), StreamType.MP4) is ErrorKind.GENERIC
        assert classify_kind(StreamError(), None) is ErrorKind.GENERIC

    def test_network_words(self):
        for message in ("Network error", "Failed to fetch", "ERR_NETWORK", "fetch aborted"):
            assert classify_kind(StreamError(message), StreamType.HLS) is ErrorKind.NETWORK

    def test_cors_words(self):
        assert classify_kind(StreamError("blocked by CORS policy"), None) is ErrorKind.CORS
        assert classify_kind(StreamError("No Access-Control-Allow-Origin"), None) is ErrorKind.CORS

    def test_auth_words(self):
        assert classify_kind(StreamError("HTTP 403 Forbidden"), None) is ErrorKind.AUTH
        assert classify_kind(StreamError("Unauthorized"), None) is ErrorKind.AUTH

    def test_codec_failure_depends_on_stream_type(self):
        error = StreamError("codec failure")
        assert classify_kind(error, StreamType.MPEGTS) is ErrorKind.FORMAT
        assert classify_kind(error, StreamType.MP4) is ErrorKind.CODEC

    def test_timeout_words(self):
        assert classify_kind(StreamError("Loading timeout - stream took too long to load"), None) is ErrorKind.TIMEOUT

    def test_network_beats_timeout(self):
        assert classify_kind(StreamError("Network timeout"), None) is ErrorKind.NETWORK

    def test_matching_is_case_sensitive(self):
        assert classify_kind(StreamError("network down"), None) is ErrorKind.GENERIC
        assert classify_kind(StreamError("cors"), None) is ErrorKind.GENERIC

    @pytest.mark.parametrize("code,expected", [
        (MediaErrorCode.ABORTED, ErrorKind.GENERIC),
        (MediaErrorCode.NETWORK, ErrorKind.NETWORK),
        (MediaErrorCode.DECODE, ErrorKind.CODEC),
        (MediaErrorCode.SRC_NOT_SUPPORTED, ErrorKind.FORMAT),
        (99, ErrorKind.GENERIC),
    ])
    def test_numeric_codes(self, code, expected):
        assert classify_kind(StreamError(code=int(code)), StreamType.MP4) is expected

    def test_keywords_beat_codes(self):
        assert classify_kind(StreamError("Forbidden", code=2), None) is ErrorKind.AUTH

    def test_accepts_exceptions(self):
        assert classify_kind(TimeoutError("connect timeout"), None) is ErrorKind.TIMEOUT
        assert classify_kind(RuntimeError("boom"), None) is ErrorKind.GENERIC
