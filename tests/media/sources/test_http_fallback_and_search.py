"""
Tests for the oEmbed fallback strategy and the search backend.
"""

from unittest.mock import AsyncMock, patch

import pytest

from chatmedia.exceptions import MethodNotSupported
from chatmedia.media.models import MediaConstraints, MediaRequest, SourceKind, TargetKind
from chatmedia.media.sources.base import ResolvedRequest
from chatmedia.media.sources.http_fallback import HttpFallbackStrategy
from chatmedia.media.sources.search import SearchHit, VideoMetadata, VideoSearch

pytestmark = pytest.mark.unit

VIDEO_ID = "dQw4w9WgXcQ"
URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"


def resolved():
    request = MediaRequest(
        SourceKind.REMOTE_URL, URL, TargetKind.VIDEO_FILE, MediaConstraints(1024 * 1024)
    )
    return ResolvedRequest(request, URL, VIDEO_ID)


class TestHttpFallbackStrategy:
    """Tests for HttpFallbackStrategy."""

    async def test_always_method_not_supported(self):
        """Test the fallback never returns media, even with metadata."""
        strategy = HttpFallbackStrategy()

        with patch.object(strategy, "fetch_oembed", AsyncMock(return_value={"title": "Song"})):
            result = await strategy.acquire(resolved())

        assert strategy.available is True
        assert isinstance(result.error, MethodNotSupported)
        assert result.error.context["title"] == "Song"
        assert result.error.retryable is False

    async def test_network_failure(self):
        """Test a failed oEmbed lookup still yields MethodNotSupported."""
        strategy = HttpFallbackStrategy()

        with patch.object(strategy, "fetch_oembed", AsyncMock(return_value=None)):
            result = await strategy.acquire(resolved())

        assert isinstance(result.error, MethodNotSupported)
        assert "title" not in result.error.context

    async def test_fetch_oembed_swallows_errors(self):
        """Test unreachable endpoints give None instead of raising."""
        strategy = HttpFallbackStrategy(timeout=1, endpoint="http://127.0.0.1:9/embed")

        assert await strategy.fetch_oembed(URL) is None


class FakeSearchYDL:
    entries = []
    queries = []

    def __init__(self, opts):
        self.opts = opts

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def extract_info(self, query, download=False):
        FakeSearchYDL.queries.append(query)
        return {"entries": list(self.entries)}


class TestVideoSearch:
    """Tests for VideoSearch."""

    @pytest.fixture
    def ydl(self):
        FakeSearchYDL.entries = [
            {"id": VIDEO_ID, "title": "Song", "duration": 212, "view_count": 10, "channel": "Artist"},
            {"url": "https://www.youtube.com/watch?v=abcdefghij1", "title": None},
            {"title": "broken entry"},
        ]
        FakeSearchYDL.queries = []
        return FakeSearchYDL

    async def test_search_builds_hits(self, ydl):
        """Test entries become hits with canonical URLs."""
        hits = await VideoSearch(ydl_factory=ydl).search("  song  ", limit=3)

        assert ydl.queries == ["ytsearch3:song"]
        assert [h.video_id for h in hits] == [VIDEO_ID, "abcdefghij1"]
        assert hits[0].url == URL
        assert hits[0].author == "Artist"
        assert hits[0].duration_label == "3:32"
        assert hits[1].title == "Untitled"

    async def test_empty_query(self, ydl):
        """Test blank queries skip the backend."""
        assert await VideoSearch(ydl_factory=ydl).search("   ") == []
        assert ydl.queries == []

    async def test_backend_error_returns_empty(self):
        """Test extractor errors give an empty result."""

        class Broken(FakeSearchYDL):
            def extract_info(self, query, download=False):
                raise RuntimeError("network")

        assert await VideoSearch(ydl_factory=Broken).search("song") == []

    async def test_first_url(self, ydl):
        """Test first_url returns the top hit."""
        assert await VideoSearch(ydl_factory=ydl).first_url("song") == URL
        assert ydl.queries == ["ytsearch1:song"]


class TestVideoMetadata:
    """Tests for VideoMetadata.from_info()."""

    def test_from_info(self):
        """Test counters, date and thumbnail formatting."""
        metadata = VideoMetadata.from_info(
            VIDEO_ID,
            {
                "title": "Song",
                "uploader": "Artist",
                "duration": 3725,
                "view_count": 1_500_000,
                "like_count": 2500,
                "upload_date": "20091025",
            },
        )

        assert metadata.upload_date == "25/10/2009"
        assert metadata.thumbnail.endswith(f"/{VIDEO_ID}/maxresdefault.jpg")
        assert metadata.duration_label == "1:02:05"
        assert metadata.views == "1.5M"
        assert metadata.likes == "2.5K"

    def test_defaults(self):
        """Test missing fields fall back to placeholders."""
        metadata = VideoMetadata.from_info(VIDEO_ID, {})

        assert metadata.title == "Unknown"
        assert metadata.author == "Unknown"

    def test_search_hit_label(self):
        """Test hits without duration have a placeholder label."""
        assert SearchHit(title="x", url=URL).duration_label == "0:00"
