"""
External downloader strategy.

Runs the yt-dlp command-line tool as a subprocess, rotating through
player-client profiles until one of them produces the expected file.
"""

import asyncio
import math
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import aiofiles
from loguru import logger

from ...config import YTDLP_AUDIO_TIMEOUT, YTDLP_VIDEO_TIMEOUT
from ...exceptions import DurationExceeded, FetchFailed, MediaPipelineError, SizeExceeded
from ..models import RawMediaBuffer, StepResult
from ..temp_files import ScratchSpace, TempResource
from ..tools import find_binary
from .base import AcquisitionStrategy, ResolvedRequest

IOS_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4.1 Mobile/15E148 Safari/604.1"
)
BASE_ARGS = (
    "--sleep-requests", "1",
    "--sleep-interval", "2",
    "--max-sleep-interval", "5",
    "--no-warnings",
    "--no-playlist",
)
VIDEO_FORMAT = (
    "bestvideo[height<=720][ext=mp4]+bestaudio[ext=m4a]/best[height<=720][ext=mp4]/best"
)
VIDEO_EXTENSIONS = ("mp4", "mkv", "webm")
PRINT_TEMPLATE = "after_move:%(title)s|%(uploader)s|%(duration)s"

FATAL_MARKERS = ("Video unavailable", "Private video")
BLOCKED_MARKERS = ("Sign in", "bot", "403", "Requested format is not available")
FILTER_MARKER = "does not pass filter"
SIZE_MARKER = "larger than max-filesize"


@dataclass(frozen=True)
class ClientProfile:
    """Профиль player_client для обхода ограничений площадки."""

    name: str
    player_client: Optional[str]
    supports_po_token: bool = False
    user_agent: Optional[str] = None
    requires_cookies: bool = False

    def build_args(self, cookies_path: Optional[Path], po_token: Optional[str]) -> List[str]:
        args: List[str] = []
        if self.player_client:
            extractor = f"youtube:player_client={self.player_client}"
            if po_token and self.supports_po_token:
                extractor += f";po_token={self.player_client}+{po_token}"
            args.extend(["--extractor-args", extractor])
        if cookies_path:
            args.extend(["--cookies", str(cookies_path)])
        if self.user_agent:
            args.extend(["--user-agent", self.user_agent])
        return args


CLIENT_PROFILES: Tuple[ClientProfile, ...] = (
    ClientProfile("web+cookies", "web", supports_po_token=True, requires_cookies=True),
    ClientProfile("ios", "ios", supports_po_token=True, user_agent=IOS_USER_AGENT),
    ClientProfile("tv_embedded", "tv_embedded"),
    ClientProfile("android", "android", supports_po_token=True),
    ClientProfile("web_embedded", "web_embedded"),
)

# Для остальных площадок extractor-args не нужны
GENERIC_PROFILE = ClientProfile("generic", None)


@dataclass
class _RunOutcome:
    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def combined(self) -> str:
        return f"{self.stderr}\n{self.stdout}"


class YtDlpBinaryStrategy(AcquisitionStrategy):
    """Загрузка через бинарник yt-dlp с ротацией player_client."""

    name = "yt-dlp"

    def __init__(
        self,
        scratch: ScratchSpace,
        binary: Optional[str] = None,
        tools_dir: Optional[Path] = None,
        cookies_path: Optional[Path] = None,
        po_token: Optional[str] = None,
        audio_timeout: float = YTDLP_AUDIO_TIMEOUT,
        video_timeout: float = YTDLP_VIDEO_TIMEOUT,
        profiles: Sequence[ClientProfile] = CLIENT_PROFILES,
    ):
        self.scratch = scratch
        # Бинарник ищется один раз при создании
        self.binary = find_binary("yt-dlp", explicit=binary, tools_dir=tools_dir)
        self.cookies_path = Path(cookies_path) if cookies_path else None
        self.po_token = po_token
        self.audio_timeout = audio_timeout
        self.video_timeout = video_timeout
        self._profiles = tuple(profiles)

        if self.binary:
            logger.info(f"yt-dlp binary found: {self.binary}")
        else:
            logger.info("ℹ️ yt-dlp binary not found, strategy disabled")

    @property
    def available(self) -> bool:
        return self.binary is not None

    def active_profiles(self) -> List[ClientProfile]:
        """Профили с учётом наличия cookies."""
        has_cookies = bool(self.cookies_path and self.cookies_path.exists())
        return [p for p in self._profiles if has_cookies or not p.requires_cookies]

    def profiles_for(self, resolved: ResolvedRequest) -> List[ClientProfile]:
        if resolved.is_youtube:
            return self.active_profiles()
        return [GENERIC_PROFILE]

    def build_command(
        self,
        resolved: ResolvedRequest,
        output_stem: Path,
        profile: ClientProfile,
    ) -> List[str]:
        """Аргументы командной строки (без имени бинарника)."""
        has_cookies = bool(self.cookies_path and self.cookies_path.exists())
        args: List[str] = profile.build_args(
            self.cookies_path if has_cookies else None, self.po_token
        )
        args.extend(BASE_ARGS)

        max_mb = max(1, math.ceil(resolved.max_bytes / (1024 * 1024)))
        args.extend(["--max-filesize", f"{max_mb}M"])
        if resolved.max_duration:
            args.extend(["--match-filter", f"duration <=? {int(resolved.max_duration)}"])

        if resolved.wants_audio:
            args.extend(["--extract-audio", "--audio-format", "mp3", "--audio-quality", "0"])
        else:
            args.extend(["-f", VIDEO_FORMAT, "--merge-output-format", "mp4"])

        args.extend(["--print", PRINT_TEMPLATE])
        args.extend(["-o", f"{output_stem}.%(ext)s", resolved.url])
        return args

    def _expected_outputs(self, output_stem: Path, wants_audio: bool) -> List[Path]:
        extensions = ("mp3",) if wants_audio else VIDEO_EXTENSIONS
        return [output_stem.with_name(f"{output_stem.name}.{ext}") for ext in extensions]

    def _find_output(self, output_stem: Path, wants_audio: bool) -> Optional[Path]:
        for candidate in self._expected_outputs(output_stem, wants_audio):
            if candidate.is_file() and candidate.stat().st_size > 0:
                return candidate
        return None

    async def _run(self, args: List[str], timeout: float) -> _RunOutcome:
        # Отдельная группа процессов: по таймауту убиваем и дочерние ffmpeg/загрузчики
        proc = await asyncio.create_subprocess_exec(
            self.binary,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            self._kill_tree(proc)
            await proc.wait()
            return _RunOutcome(returncode=None, stdout="", stderr="", timed_out=True)

        return _RunOutcome(
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="ignore"),
            stderr=stderr.decode("utf-8", errors="ignore"),
        )

    @staticmethod
    def _kill_tree(proc: asyncio.subprocess.Process) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass

    @staticmethod
    def _parse_printed_metadata(stdout: str) -> Tuple[Optional[str], Optional[str], Optional[float]]:
        """title|uploader|duration из последней непустой строки stdout."""
        lines = [line for line in stdout.splitlines() if "|" in line]
        if not lines:
            return None, None, None
        title, uploader, duration = (lines[-1].rsplit("|", 2) + [None, None])[:3]
        try:
            duration_value = float(duration) if duration not in (None, "", "NA") else None
        except ValueError:
            duration_value = None
        return (title or None), (uploader if uploader not in (None, "", "NA") else None), duration_value

    def _classify_failure(self, outcome: _RunOutcome, resolved: ResolvedRequest) -> Optional[MediaPipelineError]:
        """Ошибки, после которых ротация профилей бессмысленна."""
        text = outcome.combined
        if any(marker in text for marker in FATAL_MARKERS):
            return FetchFailed("Video is unavailable or private", source=self.name, retryable=False)
        if FILTER_MARKER in text:
            return DurationExceeded(
                f"Video is too long (limit {int(resolved.max_duration or 0)}s)",
                max_duration=resolved.max_duration,
            )
        if SIZE_MARKER in text:
            return SizeExceeded(
                f"File is too large (limit {resolved.max_bytes / (1024 * 1024):.0f} MB)",
                max_bytes=resolved.max_bytes,
            )
        return None

    async def _download(self, resolved: ResolvedRequest, handle: TempResource) -> StepResult[RawMediaBuffer]:
        timeout = self.audio_timeout if resolved.wants_audio else self.video_timeout
        output_stem = handle.stem_path
        last_error = "no client profile produced output"

        for profile in self.profiles_for(resolved):
            logger.info(f"🔄 yt-dlp: trying client [{profile.name}]")
            args = self.build_command(resolved, output_stem, profile)
            outcome = await self._run(args, timeout)

            output = self._find_output(output_stem, resolved.wants_audio)
            if output is not None:
                if outcome.returncode not in (0, None):
                    logger.warning(
                        f"yt-dlp [{profile.name}] exited with code {outcome.returncode} "
                        f"but produced output; accepting it"
                    )
                size_error = self.check_file_size(output, resolved.max_bytes)
                if size_error:
                    return StepResult.failure(size_error)

                title, uploader, duration = self._parse_printed_metadata(outcome.stdout)
                async with aiofiles.open(output, "rb") as f:
                    data = await f.read()
                logger.info(f"✅ yt-dlp client [{profile.name}] succeeded ({len(data)} bytes)")
                return StepResult.success(
                    RawMediaBuffer(
                        data=data,
                        container=output.suffix.lstrip("."),
                        title=title,
                        author=uploader,
                        duration_seconds=duration,
                        method=self.name,
                    )
                )

            if outcome.timed_out:
                last_error = f"timed out after {timeout}s"
                logger.warning(f"⚠️ yt-dlp [{profile.name}] timed out after {timeout}s")
                continue

            fatal = self._classify_failure(outcome, resolved)
            if fatal is not None:
                logger.warning(f"⛔ yt-dlp [{profile.name}]: {fatal.user_message}")
                return StepResult.failure(fatal)

            message = (outcome.stderr or outcome.stdout or "no output").strip()
            last_error = message[-300:]
            if any(marker in message for marker in BLOCKED_MARKERS):
                logger.warning(f"⛔ yt-dlp [{profile.name}] blocked or format unavailable, trying next client")
            else:
                logger.warning(f"⚠️ yt-dlp [{profile.name}] failed: {message[:150]}")

        return StepResult.failure(
            FetchFailed(
                "yt-dlp could not download the media",
                source=self.name,
                context={"last_error": last_error},
            )
        )

    async def acquire(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        if not self.available:
            return StepResult.failure(FetchFailed("yt-dlp binary is not installed", source=self.name))

        extension = "mp3" if resolved.wants_audio else "mp4"
        async with self.scratch.temp(extension) as handle:
            return await self._download(resolved, handle)
