"""
Unit tests for ScratchSpace and TempResource.

Tests unique naming, scoped release and companion-file cleanup.
"""

import re

import pytest

from chatmedia.media.temp_files import ScratchSpace, TempResource

pytestmark = pytest.mark.unit

NAME_PATTERN = re.compile(r"^\d{13}-[0-9a-z]{6,}\.mp4$")


class TestTempResource:
    """Tests for TempResource."""

    def test_release_missing_file_is_silent(self, tmp_path):
        """Test releasing a never-written path does not raise."""
        handle = TempResource(path=tmp_path / "never.mp4")

        handle.release()

        assert handle.released is True

    def test_release_is_idempotent(self, tmp_path):
        """Test release can be called repeatedly."""
        path = tmp_path / "file.webp"
        path.write_bytes(b"data")
        handle = TempResource(path=path)

        handle.release()
        handle.release()

        assert not path.exists()

    def test_release_removes_companions(self, tmp_path):
        """Test downloader fragments next to the file are removed too."""
        path = tmp_path / "123-abcdef.mp3"
        path.write_bytes(b"audio")
        part = tmp_path / "123-abcdef.webm.part"
        part.write_bytes(b"fragment")
        other = tmp_path / "999-zzzzzz.mp3"
        other.write_bytes(b"keep")

        TempResource(path=path).release()

        assert not path.exists()
        assert not part.exists()
        assert other.exists()

    def test_stem_path_strips_extension(self, tmp_path):
        """Test stem_path drops the suffix."""
        handle = TempResource(path=tmp_path / "abc.mp4")

        assert handle.stem_path == tmp_path / "abc"

    def test_size_of_missing_file_is_zero(self, tmp_path):
        """Test size() returns 0 when nothing was written."""
        assert TempResource(path=tmp_path / "none.bin").size() == 0

    async def test_write_and_read_bytes(self, tmp_path):
        """Test async write/read helpers."""
        handle = TempResource(path=tmp_path / "x.bin")

        await handle.write_bytes(b"hello")

        assert await handle.read_bytes() == b"hello"
        assert handle.size() == 5


class TestScratchSpace:
    """Tests for ScratchSpace."""

    def test_creates_directory(self, tmp_path):
        """Test the scratch directory is created on init."""
        directory = tmp_path / "nested" / "scratch"

        ScratchSpace(directory)

        assert directory.is_dir()

    def test_allocate_name_format(self, scratch):
        """Test allocated names are <epoch-ms>-<base36>.<ext>."""
        handle = scratch.allocate("mp4")

        assert NAME_PATTERN.match(handle.path.name)
        assert handle.path.parent == scratch.directory
        assert not handle.path.exists()

    def test_allocate_accepts_dotted_extension(self, scratch):
        """Test a leading dot in the extension is ignored."""
        handle = scratch.allocate(".webp")

        assert handle.path.suffix == ".webp"
        assert ".." not in handle.path.name

    def test_allocations_are_unique(self, scratch):
        """Test many allocations never collide."""
        paths = {scratch.allocate("webp").path for _ in range(500)}

        assert len(paths) == 500
        assert scratch.live_count == 500

    def test_allocate_skips_existing_file(self, scratch, monkeypatch):
        """Test a name already present on disk is not reused."""
        monkeypatch.setattr(ScratchSpace, "_random_suffix", staticmethod(lambda length=6: "a" * length))
        monkeypatch.setattr("chatmedia.media.temp_files.time.time", lambda: 1700000000.0)
        first = scratch.allocate("png")
        first.path.write_bytes(b"x")

        second = scratch.allocate("png")

        assert second.path != first.path

    async def test_temp_releases_on_success(self, scratch):
        """Test the scoped handle is removed after the block."""
        async with scratch.temp("mp4") as handle:
            await handle.write_bytes(b"video")
            assert handle.exists

        assert not handle.path.exists()
        assert scratch.live_count == 0

    async def test_temp_releases_on_exception(self, scratch):
        """Test the scoped handle is removed when the block raises."""
        with pytest.raises(RuntimeError):
            async with scratch.temp("mp4") as handle:
                await handle.write_bytes(b"video")
                raise RuntimeError("boom")

        assert not handle.path.exists()
        assert list(scratch.directory.iterdir()) == []

    async def test_temp_many_releases_all(self, scratch):
        """Test every handle of temp_many is released."""
        async with scratch.temp_many("mp4", "webp", "webp") as (a, b, c):
            for handle in (a, b, c):
                await handle.write_bytes(b"data")
            assert len({a.path, b.path, c.path}) == 3

        assert list(scratch.directory.iterdir()) == []

    def test_statistics(self, scratch):
        """Test allocation counters."""
        handle = scratch.allocate("bin")
        scratch.release(handle)
        scratch.release(handle)

        stats = scratch.get_statistics()

        assert stats["allocated"] == 1
        assert stats["released"] == 1
        assert stats["live"] == 0
