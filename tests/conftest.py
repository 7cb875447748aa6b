"""
Shared fixtures for all tests.

This conftest.py provides common fixtures used across the test suite.
"""

import io
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

import pytest
from PIL import Image

from chatmedia.config import Config
from chatmedia.media.models import StepResult
from chatmedia.media.temp_files import ScratchSpace


def _ffmpeg_has_libwebp() -> bool:
    binary = shutil.which("ffmpeg")
    if not binary:
        return False
    try:
        output = subprocess.run(
            [binary, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            timeout=10,
        ).stdout
    except (OSError, subprocess.SubprocessError):
        return False
    return "libwebp" in output


def pytest_collection_modifyitems(config, items):
    """Skip integration tests when ffmpeg with libwebp is missing."""
    if _ffmpeg_has_libwebp():
        return
    skip_integration = pytest.mark.skip(reason="ffmpeg with libwebp is not installed")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Temporary directory for test files."""
    return tmp_path


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config pointing at a per-test scratch directory."""
    return Config(scratch_dir=tmp_path / "scratch", tools_dir=tmp_path / "bin")


@pytest.fixture
def scratch(config: Config) -> ScratchSpace:
    """Scratch space inside the per-test directory."""
    return ScratchSpace(config.scratch_dir)


def make_image_bytes(size=(64, 48), fmt: str = "PNG") -> bytes:
    """In-memory random-noise image."""
    mode = "RGBA" if fmt in ("PNG", "WEBP") else "RGB"
    img = Image.frombytes(mode, size, os.urandom(size[0] * size[1] * len(mode)))
    output = io.BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    """Factory for in-memory images of a given size and format."""
    return make_image_bytes


@pytest.fixture
def png_bytes() -> bytes:
    """Sample PNG image."""
    return make_image_bytes()


@pytest.fixture
def webp_bytes() -> bytes:
    """Sample WEBP image."""
    return make_image_bytes((512, 512), fmt="WEBP")


class FakeTranscoder:
    """
    Transcoder double: writes a fixed payload per profile to the job's output.

    sizes maps profile name -> output size (bytes); failures maps profile
    name -> error returned instead of writing.
    """

    def __init__(self, sizes: Optional[dict] = None, failures: Optional[dict] = None,
                 payload: Optional[Callable[[str, int], bytes]] = None):
        self.sizes = sizes or {}
        self.failures = failures or {}
        self.payload = payload or (lambda name, size: b"\x00" * size)
        self.jobs = []

    async def run(self, job):
        self.jobs.append(job)
        name = job.profile_name
        if name in self.failures:
            return StepResult.failure(self.failures[name])
        size = self.sizes.get(name, 2048)
        job.output_path.write_bytes(self.payload(name, size))
        return StepResult.success(job.output_path)

    @property
    def profile_names(self):
        return [job.profile_name for job in self.jobs]

    async def health_check(self) -> bool:
        return True

    def get_statistics(self) -> dict:
        return {"jobs_total": len(self.jobs)}

    def log_statistics(self) -> None:
        pass


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    """Transcoder double with default 2 KB outputs."""
    return FakeTranscoder()


@pytest.fixture
def transcoder_factory() -> Callable[..., FakeTranscoder]:
    """Factory for transcoder doubles with custom sizes or failures."""
    return FakeTranscoder
