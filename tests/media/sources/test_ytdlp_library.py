"""
Tests for the embedded yt_dlp library strategy and format selection.
"""

import threading
import time
from pathlib import Path

import pytest
import yt_dlp

from chatmedia.exceptions import DurationExceeded, FetchFailed, SizeExceeded
from chatmedia.media.models import MediaConstraints, MediaRequest, SourceKind, TargetKind
from chatmedia.media.sources.base import ResolvedRequest
from chatmedia.media.sources.ytdlp_library import (
    YtDlpLibraryStrategy,
    choose_audio_format,
    choose_video_format,
)

pytestmark = pytest.mark.unit

VIDEO_ID = "dQw4w9WgXcQ"
URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"

FORMATS = [
    {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a", "abr": 129},
    {"format_id": "251", "ext": "webm", "vcodec": "none", "acodec": "opus", "abr": 160},
    {"format_id": "18", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a", "height": 360},
    {"format_id": "22", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a", "height": 720},
    {"format_id": "137", "ext": "mp4", "vcodec": "avc1", "acodec": "none", "height": 1080},
]


class FakeYoutubeDL:
    """Stand-in for yt_dlp.YoutubeDL driven by class-level settings."""

    info = {}
    extract_error = None
    payload = b"\x00" * 4096
    instances = []

    def __init__(self, opts):
        self.opts = opts
        self.downloaded = []
        FakeYoutubeDL.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def extract_info(self, url, download=False):
        if self.extract_error is not None:
            raise self.extract_error
        return dict(self.info)

    def download(self, urls):
        self.downloaded.extend(urls)
        ext = "mp3" if self.opts["format"] in ("140", "251", "bestaudio/best") else "mp4"
        Path(self.opts["outtmpl"].replace("%(ext)s", ext)).write_bytes(self.payload)




class SlowYoutubeDL(FakeYoutubeDL):
    """Writes a partial file in small steps, reporting progress between them."""

    def download(self, urls):
        self.downloaded.extend(urls)
        target = Path(self.opts["outtmpl"] % {"ext": "webm"})
        part = target.with_name(target.name + ".part")
        for _ in range(10):
            time.sleep(0.05)
            with part.open("ab") as f:
                f.write(b"\x00" * 1024)
            for hook in self.opts.get("progress_hooks", []):
                hook({"status": "downloading"})
        part.rename(target)


@pytest.fixture
def fake_ydl():
    FakeYoutubeDL.info = {"title": "Song", "uploader": "Artist", "duration": 200, "formats": FORMATS}
    FakeYoutubeDL.extract_error = None
    FakeYoutubeDL.payload = b"\x00" * 4096
    FakeYoutubeDL.instances = []
    return FakeYoutubeDL


@pytest.fixture
def strategy(scratch, fake_ydl):
    return YtDlpLibraryStrategy(scratch, ydl_factory=fake_ydl, timeout=5)


def resolved(target=TargetKind.AUDIO_FILE, max_bytes=10 * 1024 * 1024, max_duration=3600):
    request = MediaRequest(
        SourceKind.REMOTE_URL, URL, target, MediaConstraints(max_bytes, max_duration)
    )
    return ResolvedRequest(request, URL, VIDEO_ID)


class TestFormatSelection:
    """Tests for format choosers."""

    def test_best_audio_only(self):
        """Test the highest-bitrate audio-only format wins."""
        assert choose_audio_format(FORMATS)["format_id"] == "251"

    def test_best_progressive_mp4(self):
        """Test video-only and over-720p formats are ignored."""
        assert choose_video_format(FORMATS)["format_id"] == "22"
        assert choose_video_format(FORMATS, max_height=480)["format_id"] == "18"

    def test_no_candidates(self):
        """Test None when nothing qualifies."""
        assert choose_audio_format([]) is None
        assert choose_video_format([FORMATS[0]]) is None


class TestYtDlpLibraryStrategy:
    """Tests for YtDlpLibraryStrategy.acquire()."""

    async def test_audio_download(self, strategy, fake_ydl, scratch):
        """Test metadata and bytes are returned and scratch files released."""
        result = await strategy.acquire(resolved())

        assert result.ok
        buffer = result.value
        assert buffer.data == fake_ydl.payload
        assert buffer.container == "mp3"
        assert buffer.title == "Song"
        assert buffer.author == "Artist"
        assert buffer.duration_seconds == 200
        assert fake_ydl.instances[-1].opts["format"] == "251"
        assert scratch.live_count == 0
        assert list(scratch.directory.iterdir()) == []

    async def test_video_download_uses_mp4(self, strategy, fake_ydl):
        """Test video requests pick the progressive mp4 format."""
        result = await strategy.acquire(resolved(TargetKind.VIDEO_FILE))

        assert result.value.container == "mp4"
        assert fake_ydl.instances[-1].opts["format"] == "22"

    async def test_duration_checked_before_download(self, strategy, fake_ydl):
        """Test an over-long video is rejected without downloading."""
        fake_ydl.info = dict(fake_ydl.info, duration=5000)

        result = await strategy.acquire(resolved(max_duration=3600))

        assert isinstance(result.error, DurationExceeded)
        assert all(not ydl.downloaded for ydl in fake_ydl.instances)

    async def test_estimated_size_checked_before_download(self, strategy, fake_ydl):
        """Test a known oversized format is rejected up front."""
        formats = [dict(FORMATS[1], filesize=50 * 1024 * 1024)]
        fake_ydl.info = dict(fake_ydl.info, formats=formats)

        result = await strategy.acquire(resolved(max_bytes=10 * 1024 * 1024))

        assert isinstance(result.error, SizeExceeded)
        assert all(not ydl.downloaded for ydl in fake_ydl.instances)

    async def test_downloaded_file_over_limit(self, strategy, fake_ydl):
        """Test the file size is checked after download."""
        fake_ydl.payload = b"\x00" * 5000

        result = await strategy.acquire(resolved(max_bytes=1000))

        assert isinstance(result.error, SizeExceeded)

    async def test_unavailable_video_is_final(self, strategy, fake_ydl):
        """Test private videos produce a non-retryable error."""
        fake_ydl.extract_error = Exception("ERROR: [youtube] x: Private video")

        result = await strategy.acquire(resolved())

        assert isinstance(result.error, FetchFailed)
        assert result.error.retryable is False

    async def test_extraction_failure_is_retryable(self, strategy, fake_ydl):
        """Test generic extractor errors let the chain continue."""
        fake_ydl.extract_error = Exception("HTTP Error 429")

        result = await strategy.acquire(resolved())

        assert result.error.retryable is True

    async def test_disabled_strategy(self, scratch, fake_ydl):
        """Test a disabled strategy reports unavailable."""
        strategy = YtDlpLibraryStrategy(scratch, enabled=False, ydl_factory=fake_ydl)

        result = await strategy.acquire(resolved())

        assert strategy.available is False
        assert isinstance(result.error, FetchFailed)

    async def test_extract_info(self, strategy):
        """Test metadata lookup without download."""
        info = await strategy.extract_info(URL)

        assert info["title"] == "Song"


class TestAbandonedDownload:
    """Tests for downloads that outlive the timeout."""

    async def test_files_released_after_thread_finishes(self, scratch, fake_ydl):
        """Test a timed-out download keeps its scratch handle until the thread stops."""
        strategy = YtDlpLibraryStrategy(scratch, ydl_factory=SlowYoutubeDL, timeout=0.1)

        result = await strategy.acquire(resolved())

        assert isinstance(result.error, FetchFailed)
        assert "timed out" in result.error.user_message
        assert scratch.live_count == 1

        await strategy.drain()

        assert scratch.live_count == 0
        assert list(scratch.directory.iterdir()) == []

    async def test_cancelled_thread_stops_early(self, scratch, fake_ydl):
        """Test the progress hook stops the download before it completes."""
        strategy = YtDlpLibraryStrategy(scratch, ydl_factory=SlowYoutubeDL, timeout=0.1)

        started = time.monotonic()
        await strategy.acquire(resolved())
        await strategy.drain()

        assert time.monotonic() - started < 0.4
        assert not list(scratch.directory.glob("*.webm"))

    def test_cancel_hook(self):
        """Test the hook is silent until cancellation is requested."""
        cancel = threading.Event()
        hook = YtDlpLibraryStrategy.cancel_hook(cancel)

        hook({"status": "downloading"})
        cancel.set()

        with pytest.raises(yt_dlp.utils.DownloadCancelled):
            hook({"status": "downloading"})

    async def test_drain_without_pending(self, strategy):
        """Test drain returns immediately when nothing is running."""
        await strategy.drain()

        assert strategy._pending == set()
