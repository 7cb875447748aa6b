"""
Tests for the protocol attachment fetcher and message unwrapping helpers.
"""

import asyncio

import pytest

from chatmedia.exceptions import FetchFailed, UndersizedResult
from chatmedia.media.fetcher import (
    ProtocolMediaFetcher,
    detect_view_once,
    locate_media_container,
    media_class_of,
)
from chatmedia.retry_manager import BackoffStrategy, RetryConfig, SmartRetryManager

pytestmark = pytest.mark.unit

PAYLOAD = b"\xff\xd8\xff" + b"\x01" * 4096


class ScriptedSource:
    """Attachment source that plays back one response per attempt."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def fetch_and_decrypt(self, attachment_ref, media_class):
        self.calls.append((attachment_ref, media_class))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if response == "hang":
            await asyncio.sleep(10)
        return response


async def chunks(data: bytes, size: int = 1000):
    for i in range(0, len(data), size):
        yield data[i:i + size]


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetcher_factory(sleeps):
    """Builds fetchers with 3 fixed-delay attempts and a recorded sleep."""

    async def fake_sleep(delay):
        sleeps.append(delay)

    def factory(source, attempt_timeout=None):
        config = RetryConfig(
            max_attempts=3,
            base_delay=1.0,
            strategy=BackoffStrategy.FIXED,
            jitter=False,
            attempt_timeout=attempt_timeout,
        )
        return ProtocolMediaFetcher(
            source,
            retry_config=config,
            min_bytes=100,
            retry_manager=SmartRetryManager(config, sleep=fake_sleep),
        )

    return factory


class TestProtocolMediaFetcher:
    """Tests for ProtocolMediaFetcher.fetch()."""

    async def test_success_first_attempt(self, fetcher_factory, sleeps):
        """Test plain bytes are returned on the first attempt."""
        source = ScriptedSource(PAYLOAD)

        result = await fetcher_factory(source).fetch({"url": "x"}, "image")

        assert result.ok
        assert result.value == PAYLOAD
        assert source.calls == [({"url": "x"}, "image")]
        assert sleeps == []

    async def test_concatenates_async_chunks(self, fetcher_factory):
        """Test streamed chunks are joined into one buffer."""
        source = ScriptedSource(chunks(PAYLOAD))

        result = await fetcher_factory(source).fetch({"url": "x"}, "video")

        assert result.value == PAYLOAD

    async def test_concatenates_sync_chunks(self, fetcher_factory):
        """Test plain iterables of chunks are accepted."""
        source = ScriptedSource([PAYLOAD[:10], PAYLOAD[10:]])

        result = await fetcher_factory(source).fetch({"url": "x"})

        assert result.value == PAYLOAD

    async def test_retries_then_succeeds(self, fetcher_factory, sleeps):
        """Test transient errors are retried with a fixed delay."""
        source = ScriptedSource(ConnectionError("reset"), ConnectionError("reset"), PAYLOAD)

        result = await fetcher_factory(source).fetch({"url": "x"})

        assert result.value == PAYLOAD
        assert len(source.calls) == 3
        assert sleeps == [1.0, 1.0]

    async def test_undersized_buffer_is_rejected(self, fetcher_factory):
        """Test a 50-byte buffer fails as UndersizedResult after all attempts."""
        source = ScriptedSource(b"\x00" * 50)

        result = await fetcher_factory(source).fetch({"url": "x"})

        assert not result.ok
        assert isinstance(result.error, UndersizedResult)
        assert len(source.calls) == 3

    async def test_exhausted_attempts_give_fetch_failed(self, fetcher_factory):
        """Test persistent errors end as FetchFailed without raising."""
        source = ScriptedSource(OSError("network down"))

        result = await fetcher_factory(source).fetch({"url": "x"}, "audio")

        assert isinstance(result.error, FetchFailed)
        assert result.error.user_message == "Failed to download media"
        assert len(source.calls) == 3

    async def test_attempt_timeout(self, fetcher_factory):
        """Test a hanging attempt is abandoned after the per-attempt timeout."""
        source = ScriptedSource("hang")

        result = await fetcher_factory(source, attempt_timeout=0.05).fetch({"url": "x"})

        assert isinstance(result.error, FetchFailed)
        assert len(source.calls) == 3

    async def test_non_retryable_error_stops(self, fetcher_factory):
        """Test final source answers are not retried."""
        source = ScriptedSource(FetchFailed("Media expired", retryable=False))

        result = await fetcher_factory(source).fetch({"url": "x"})

        assert result.error.user_message == "Media expired"
        assert len(source.calls) == 1

    async def test_fetch_message_without_media(self, fetcher_factory):
        """Test messages without a media container fail fast."""
        source = ScriptedSource(PAYLOAD)

        result = await fetcher_factory(source).fetch_message({"conversation": "hi"})

        assert isinstance(result.error, FetchFailed)
        assert source.calls == []

    async def test_fetch_message_uses_media_class(self, fetcher_factory):
        """Test the media class comes from the container mimetype."""
        source = ScriptedSource(PAYLOAD)
        message = {"videoMessage": {"url": "https://cdn/x", "mimetype": "video/mp4"}}

        result = await fetcher_factory(source).fetch_message(message)

        assert result.ok
        assert source.calls[0][1] == "video"


class TestMessageHelpers:
    """Tests for message unwrapping helpers."""

    def test_locate_direct_media(self):
        """Test a top-level media message is found."""
        image = {"mediaKey": "k", "mimetype": "image/jpeg"}

        assert locate_media_container({"imageMessage": image}) is image

    def test_locate_through_wrappers(self):
        """Test view-once and nested message wrappers are unwrapped."""
        audio = {"directPath": "/p", "mimetype": "audio/ogg"}
        message = {
            "ephemeralMessage": {
                "message": {"viewOnceMessageV2": {"message": {"audioMessage": audio}}}
            }
        }

        assert locate_media_container(message) is audio

    def test_locate_quoted_message(self):
        """Test media inside an arbitrary *Message key is found."""
        sticker = {"url": "u", "mimetype": "image/webp"}
        message = {"extendedTextMessage": {"contextInfo": {}, "quotedMessage": {"stickerMessage": sticker}}}

        assert locate_media_container(message) is sticker

    def test_locate_nothing(self):
        """Test non-media inputs return None."""
        assert locate_media_container({"conversation": "text"}) is None
        assert locate_media_container("not a mapping") is None

    def test_detect_view_once(self):
        """Test the inner message of a view-once wrapper is returned."""
        inner = {"imageMessage": {"url": "u"}}

        assert detect_view_once({"viewOnceMessageV2": {"message": inner}}) is inner
        assert detect_view_once({"message": {"viewOnceMessage": {"message": inner}}}) is inner
        assert detect_view_once({"imageMessage": {"url": "u"}}) is None

    @pytest.mark.parametrize(
        "mimetype, expected",
        [
            ("image/jpeg", "image"),
            ("image/webp", "sticker"),
            ("video/mp4", "video"),
            ("audio/ogg; codecs=opus", "audio"),
            ("application/pdf", "document"),
            ("", "document"),
        ],
    )
    def test_media_class_of(self, mimetype, expected):
        """Test the media class is derived from the mimetype."""
        assert media_class_of({"mimetype": mimetype}) == expected
