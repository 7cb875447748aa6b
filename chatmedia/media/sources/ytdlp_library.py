"""
Embedded extraction library strategy.

Uses the yt_dlp package in-process: reads format metadata first,
rejects over-long videos before any download, then downloads the chosen
format into a scratch file.
"""

import asyncio
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

import aiofiles
import yt_dlp
from loguru import logger

from ...config import YTDLP_VIDEO_TIMEOUT
from ...exceptions import FetchFailed, MediaPipelineError
from ..models import RawMediaBuffer, StepResult
from ..temp_files import ScratchSpace, TempResource
from .base import AcquisitionStrategy, ResolvedRequest

UNAVAILABLE_MARKERS = ("Video unavailable", "Private video", "This video is not available")


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def choose_audio_format(formats: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Лучший формат только со звуком (по abr, затем tbr)."""
    audio_only = [
        f for f in formats
        if f.get("vcodec") == "none" and f.get("acodec") not in (None, "none")
    ]
    if not audio_only:
        return None
    return max(audio_only, key=lambda f: (_number(f.get("abr")), _number(f.get("tbr"))))


def choose_video_format(formats: List[Dict[str, Any]], max_height: int = 720) -> Optional[Dict[str, Any]]:
    """Лучший прогрессивный mp4 (видео+звук) не выше max_height."""
    progressive = [
        f for f in formats
        if f.get("ext") == "mp4"
        and f.get("vcodec") not in (None, "none")
        and f.get("acodec") not in (None, "none")
        and _number(f.get("height")) <= max_height
    ]
    if not progressive:
        return None
    return max(progressive, key=lambda f: (_number(f.get("height")), _number(f.get("tbr"))))


class YtDlpLibraryStrategy(AcquisitionStrategy):
    """Загрузка через встроенную библиотеку yt_dlp."""

    name = "yt-dlp-library"

    def __init__(
        self,
        scratch: ScratchSpace,
        cookies_path: Optional[Path] = None,
        timeout: float = YTDLP_VIDEO_TIMEOUT,
        socket_timeout: float = 30,
        enabled: bool = True,
        ydl_factory: Optional[Callable[..., Any]] = None,
    ):
        self.scratch = scratch
        self.cookies_path = Path(cookies_path) if cookies_path else None
        self.timeout = timeout
        self.socket_timeout = socket_timeout
        self._enabled = enabled
        self._ydl_factory = ydl_factory
        # Загрузки, брошенные по таймауту, но ещё работающие в потоке
        self._pending: Set[asyncio.Future] = set()

    @property
    def available(self) -> bool:
        return self._enabled

    def _base_options(self) -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "socket_timeout": self.socket_timeout,
        }
        if self.cookies_path and self.cookies_path.exists():
            opts["cookiefile"] = str(self.cookies_path)
        return opts

    def _factory(self) -> Callable[..., Any]:
        return self._ydl_factory or yt_dlp.YoutubeDL

    def _extract_info_sync(self, url: str) -> Dict[str, Any]:
        with self._factory()(self._base_options()) as ydl:
            return ydl.extract_info(url, download=False) or {}

    async def extract_info(self, url: str) -> Dict[str, Any]:
        """Метаданные видео без скачивания."""
        return await asyncio.wait_for(
            asyncio.to_thread(self._extract_info_sync, url), timeout=self.timeout
        )

    @staticmethod
    def cancel_hook(cancel: threading.Event) -> Callable[[Dict[str, Any]], None]:
        """Progress hook, прерывающий загрузку после установки cancel."""

        def hook(status: Dict[str, Any]) -> None:
            if cancel.is_set():
                raise yt_dlp.utils.DownloadCancelled("Download abandoned after timeout")

        return hook

    def _download_sync(self, url: str, format_spec: str, output_stem: Path, max_bytes: int,
                       cancel: Optional[threading.Event] = None) -> None:
        opts = self._base_options()
        opts.update(
            {
                "format": format_spec,
                "outtmpl": f"{output_stem}.%(ext)s",
                "max_filesize": max_bytes,
            }
        )
        if cancel is not None:
            opts["progress_hooks"] = [self.cancel_hook(cancel)]
        with self._factory()(opts) as ydl:
            ydl.download([url])

    def _release_when_done(self, download: asyncio.Future, handle: TempResource) -> None:
        self._pending.add(download)

        def finished(future: asyncio.Future) -> None:
            self._pending.discard(future)
            if not future.cancelled() and future.exception() is not None:
                logger.debug(f"Abandoned yt_dlp download ended with: {future.exception()}")
            self.scratch.release(handle)
            logger.debug(f"Released scratch files of abandoned download {handle.path.name}")

        download.add_done_callback(finished)

    async def drain(self) -> None:
        """Дождаться завершения брошенных загрузок и удаления их файлов."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            # Колбэки выполняются в следующей итерации цикла
            await asyncio.sleep(0)

    @staticmethod
    def _find_output(output_stem: Path) -> Optional[Path]:
        candidates = [
            p for p in output_stem.parent.glob(f"{output_stem.name}.*")
            if p.suffix not in (".part", ".ytdl") and p.is_file() and p.stat().st_size > 0
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.stat().st_size)

    def _select_format(self, info: Dict[str, Any], wants_audio: bool) -> str:
        formats = info.get("formats") or []
        if wants_audio:
            chosen = choose_audio_format(formats)
            return chosen["format_id"] if chosen else "bestaudio/best"
        chosen = choose_video_format(formats)
        return chosen["format_id"] if chosen else "best[height<=720]/best"

    def _estimated_size(self, info: Dict[str, Any], format_id: str) -> Optional[int]:
        for f in info.get("formats") or []:
            if f.get("format_id") == format_id:
                size = f.get("filesize") or f.get("filesize_approx")
                return int(size) if size else None
        return None

    async def acquire(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        if not self.available:
            return StepResult.failure(FetchFailed("Extraction library is disabled", source=self.name))

        try:
            info = await self.extract_info(resolved.url)
        except asyncio.TimeoutError:
            return StepResult.failure(
                FetchFailed("Timed out reading video information", source=self.name)
            )
        except Exception as e:
            message = str(e)
            if any(marker in message for marker in UNAVAILABLE_MARKERS):
                return StepResult.failure(
                    FetchFailed("Video is unavailable or private", source=self.name, retryable=False)
                )
            logger.warning(f"yt_dlp metadata extraction failed: {message[:200]}")
            return StepResult.failure(
                FetchFailed("Could not read video information", source=self.name)
            )

        # Проверка длительности до скачивания
        duration = info.get("duration")
        duration_error = self.check_duration(_number(duration), resolved.max_duration)
        if duration_error:
            logger.info(f"Rejecting {resolved.video_id}: {duration_error.user_message}")
            return StepResult.failure(duration_error)

        format_spec = self._select_format(info, resolved.wants_audio)
        estimated = self._estimated_size(info, format_spec)
        if estimated and estimated > resolved.max_bytes:
            return StepResult.failure(self.size_exceeded(estimated, resolved.max_bytes))

        extension = "mp3" if resolved.wants_audio else "mp4"
        handle = self.scratch.allocate(extension)
        output_stem = handle.stem_path
        cancel = threading.Event()
        download = asyncio.ensure_future(
            asyncio.to_thread(
                self._download_sync,
                resolved.url,
                format_spec,
                output_stem,
                resolved.max_bytes,
                cancel,
            )
        )
        released_later = False
        try:
            try:
                await asyncio.wait_for(asyncio.shield(download), timeout=self.timeout)
            except asyncio.TimeoutError:
                # Поток нельзя прервать: просим его остановиться и удаляем файлы после его завершения
                cancel.set()
                self._release_when_done(download, handle)
                released_later = True
                return StepResult.failure(
                    FetchFailed(f"Download timed out after {self.timeout}s", source=self.name)
                )
            except MediaPipelineError as e:
                return StepResult.failure(e)
            except Exception as e:
                logger.warning(f"yt_dlp download failed: {str(e)[:200]}")
                return StepResult.failure(FetchFailed("Download failed", source=self.name))

            output = self._find_output(output_stem)
            if output is None:
                return StepResult.failure(
                    FetchFailed("Download produced no file", source=self.name)
                )

            size_error = self.check_file_size(output, resolved.max_bytes)
            if size_error:
                return StepResult.failure(size_error)

            async with aiofiles.open(output, "rb") as f:
                data = await f.read()
        finally:
            if not released_later:
                self.scratch.release(handle)

        logger.info(f"✅ yt_dlp library downloaded {len(data)} bytes ({format_spec})")
        return StepResult.success(
            RawMediaBuffer(
                data=data,
                container=output.suffix.lstrip("."),
                title=info.get("title"),
                author=info.get("uploader") or info.get("channel"),
                duration_seconds=_number(duration) or None,
                method=self.name,
            )
        )
