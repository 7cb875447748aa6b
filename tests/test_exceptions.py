"""
Tests for the exception hierarchy and its diagnostic context.
"""

import time

import pytest

from chatmedia.exceptions import (
    AllStrategiesExhausted,
    ConfigError,
    FetchFailed,
    MediaPipelineError,
    MethodNotSupported,
    SizeExceeded,
    TranscodeFailed,
    UndersizedResult,
    create_performance_context,
)
from chatmedia.media.models import AcquisitionAttemptLog

pytestmark = pytest.mark.unit


class TestMediaPipelineError:
    """Tests for the base exception."""

    def test_user_message_hides_context(self):
        """Test context is in str() but not in the user message."""
        error = MediaPipelineError("Failed", context={"path": "/tmp/x.mp4"})

        assert error.user_message == "Failed"
        assert "path=/tmp/x.mp4" in str(error)

    def test_performance_data_formatting(self):
        """Test performance metrics are rendered in seconds."""
        error = MediaPipelineError("Slow", performance_data={"duration": 1.23456})

        assert "[Performance: duration=1.235s]" in str(error)

    def test_retryable_defaults(self):
        """Test which error kinds are retryable by default."""
        assert FetchFailed("x").retryable is True
        assert FetchFailed("x", retryable=False).retryable is False
        assert MethodNotSupported("x").retryable is False
        assert UndersizedResult("x").retryable is True
        assert TranscodeFailed("x").retryable is True
        assert SizeExceeded("x").retryable is False


class TestContextFields:
    """Tests for subclass context fields."""

    def test_config_error_fields(self):
        """Test the field name and truncated value are recorded."""
        error = ConfigError("bad", field_name="sticker_size", field_value="x" * 200)

        assert error.context["field"] == "sticker_size"
        assert len(error.context["value"]) == 100

    def test_size_exceeded_in_megabytes(self):
        """Test sizes are recorded in megabytes."""
        error = SizeExceeded("big", size_bytes=3 * 1024 * 1024, max_bytes=1024 * 1024)

        assert error.context == {"file_size_mb": 3.0, "max_size_mb": 1.0}

    def test_transcode_stderr_truncated(self):
        """Test only the tail of stderr is kept."""
        error = TranscodeFailed("failed", returncode=1, stderr="e" * 1000)

        assert error.context["returncode"] == 1
        assert len(error.context["stderr"]) == 300

    def test_all_strategies_exhausted_attempts(self):
        """Test the attempt log is kept and summarized."""
        log = AcquisitionAttemptLog()
        log.record("yt-dlp", FetchFailed("blocked"))
        log.record("http-oembed", MethodNotSupported("unsupported"))

        error = AllStrategiesExhausted("All download methods failed", attempts=log.attempts)

        assert len(error.attempts) == 2
        assert error.context["attempts"] == "yt-dlp: blocked; http-oembed: unsupported"


def test_create_performance_context():
    """Test the helper builds context and duration for exception kwargs."""
    start = time.time() - 0.5

    kwargs = create_performance_context(start, "static_sticker", timeout=120)
    error = TranscodeFailed("Conversion timed out", **kwargs)

    assert error.context == {"operation": "static_sticker"}
    assert error.performance_data["duration"] >= 0.5
    assert error.performance_data["timeout"] == 120
