"""
FFmpeg transcoder.

Builds ffmpeg command lines with ffmpeg-python, runs them as asyncio
subprocesses under a wall-clock timeout and verifies the output file.
Also holds the encoding profiles used by the pipeline (stickers, MP3,
PNG, chat-compatible MP4, voice notes, audio effects).
"""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import ffmpeg
from loguru import logger

from ..config import STICKER_ENCODE_CLAMP_SECONDS, STICKER_SIZE, TRANSCODE_TIMEOUT
from ..exceptions import TranscodeFailed, create_performance_context
from .models import StepResult


@dataclass(frozen=True)
class FilterStep:
    """Один фильтр ffmpeg: name=arg1:arg2:key=value."""

    name: str
    args: Sequence[Any] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        parts = [str(a) for a in self.args]
        parts.extend(f"{k}={v}" for k, v in self.kwargs.items())
        if not parts:
            return self.name
        return f"{self.name}={':'.join(parts)}"

    @classmethod
    def raw(cls, expression: str) -> "FilterStep":
        """Готовое выражение фильтра (например, из таблицы эффектов)."""
        return cls(name=expression)


def render_filter_graph(steps: Sequence[Union[FilterStep, str]]) -> str:
    """Склеивает цепочку фильтров через запятую."""
    return ",".join(s.render() if isinstance(s, FilterStep) else str(s) for s in steps)


@dataclass
class TranscodeJob:
    """Описание одного запуска ffmpeg."""

    input_path: Path
    output_path: Path
    filters: List[Union[FilterStep, str]] = field(default_factory=list)
    audio_filters: List[Union[FilterStep, str]] = field(default_factory=list)
    output_options: Dict[str, Any] = field(default_factory=dict)
    input_options: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    profile_name: str = "custom"


@dataclass(frozen=True)
class TranscodeProfile:
    """Набор фильтров и параметров кодека для одного вида результата."""

    name: str
    extension: str
    filters: Sequence[Union[FilterStep, str]] = ()
    audio_filters: Sequence[Union[FilterStep, str]] = ()
    output_options: Dict[str, Any] = field(default_factory=dict)

    def job(self, input_path: Path, output_path: Path, timeout: Optional[float] = None) -> TranscodeJob:
        return TranscodeJob(
            input_path=Path(input_path),
            output_path=Path(output_path),
            filters=list(self.filters),
            audio_filters=list(self.audio_filters),
            output_options=dict(self.output_options),
            timeout=timeout,
            profile_name=self.name,
        )


class Transcoder:
    """Обёртка над бинарником ffmpeg с таймаутом и проверкой результата."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", default_timeout: float = TRANSCODE_TIMEOUT):
        self.ffmpeg_binary = ffmpeg_binary
        self.default_timeout = default_timeout

        # Статистика
        self._jobs_total = 0
        self._jobs_failed = 0
        self._jobs_timed_out = 0
        self._total_seconds = 0.0

    def build_command(self, job: TranscodeJob) -> List[str]:
        """Построение argv через ffmpeg-python."""
        stream = ffmpeg.input(str(job.input_path), **job.input_options)

        output_kwargs: Dict[str, Any] = {}
        if job.filters:
            output_kwargs["vf"] = render_filter_graph(job.filters)
        if job.audio_filters:
            output_kwargs["af"] = render_filter_graph(job.audio_filters)
        output_kwargs.update(job.output_options)

        output = (
            ffmpeg.output(stream, str(job.output_path), **output_kwargs)
            .global_args("-hide_banner", "-loglevel", "error")
            .overwrite_output()
        )
        return ffmpeg.compile(output, cmd=self.ffmpeg_binary)

    async def run(self, job: TranscodeJob) -> StepResult[Path]:
        """
        Выполнение задания.

        Успех: процесс завершился с кодом 0 и выходной файл существует и не пуст.
        Ненулевой код, таймаут или пустой результат дают TranscodeFailed.
        """
        self._jobs_total += 1
        timeout = job.timeout or self.default_timeout
        start_time = time.time()

        if not job.input_path.exists() or job.input_path.stat().st_size == 0:
            self._jobs_failed += 1
            return StepResult.failure(
                TranscodeFailed("Input media is empty", context={"input": job.input_path.name})
            )

        cmd_args = self.build_command(job)
        logger.debug(f"Executing FFmpeg command: {' '.join(cmd_args)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd_args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            self._jobs_failed += 1
            logger.error(f"{self.ffmpeg_binary} not found in PATH. Please install ffmpeg.")
            return StepResult.failure(TranscodeFailed("Media encoder is not available"))

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self._jobs_failed += 1
            self._jobs_timed_out += 1
            logger.warning(f"FFmpeg timed out after {timeout}s: {job.output_path.name}")
            return StepResult.failure(
                TranscodeFailed(
                    "Conversion timed out",
                    **create_performance_context(start_time, job.profile_name, timeout=timeout),
                )
            )
        finally:
            self._total_seconds += time.time() - start_time

        stderr_output = stderr.decode("utf-8", errors="ignore") if stderr else ""

        if proc.returncode != 0:
            self._jobs_failed += 1
            logger.error(f"FFmpeg processing failed with code {proc.returncode} for {job.input_path.name}")
            logger.debug(f"FFmpeg stderr: {stderr_output}")
            return StepResult.failure(
                TranscodeFailed(
                    "Media conversion failed",
                    returncode=proc.returncode,
                    stderr=stderr_output,
                )
            )

        if not job.output_path.exists():
            self._jobs_failed += 1
            logger.error(f"FFmpeg completed but output file not found: {job.output_path.name}")
            return StepResult.failure(TranscodeFailed("Conversion produced no output"))

        if job.output_path.stat().st_size == 0:
            self._jobs_failed += 1
            logger.error(f"FFmpeg produced empty file: {job.output_path.name}")
            return StepResult.failure(TranscodeFailed("Conversion produced an empty file"))

        logger.debug(
            f"✅ FFmpeg completed: {job.input_path.name} -> {job.output_path.name} "
            f"({job.output_path.stat().st_size} bytes)"
        )
        return StepResult.success(job.output_path)

    async def run_paths(
        self,
        input_path: Path,
        output_path: Path,
        filters: Optional[Sequence[Union[FilterStep, str]]] = None,
        codec_options: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> StepResult[Path]:
        """Запуск без профиля: пути, фильтры и опции кодека по отдельности."""
        return await self.run(
            TranscodeJob(
                input_path=Path(input_path),
                output_path=Path(output_path),
                filters=list(filters or []),
                output_options=dict(codec_options or {}),
                timeout=timeout,
            )
        )

    async def health_check(self) -> bool:
        """Проверка запуска ffmpeg -version."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_binary,
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await asyncio.wait_for(proc.communicate(), timeout=10)
            return proc.returncode == 0
        except FileNotFoundError:
            logger.error(f"{self.ffmpeg_binary} not found in PATH. Please install ffmpeg.")
            return False
        except Exception as e:
            logger.warning(f"FFmpeg health check failed: {e}")
            return False

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "jobs_total": self._jobs_total,
            "jobs_failed": self._jobs_failed,
            "jobs_timed_out": self._jobs_timed_out,
            "total_seconds": round(self._total_seconds, 3),
        }

    def log_statistics(self) -> None:
        stats = self.get_statistics()
        logger.info(
            f"Transcoder stats: {stats['jobs_total']} jobs, {stats['jobs_failed']} failed, "
            f"{stats['jobs_timed_out']} timed out"
        )


# ---------------------------------------------------------------------------
# Профили кодирования
# ---------------------------------------------------------------------------

def square_canvas_filters(size: int = STICKER_SIZE, fps: Optional[int] = None) -> List[FilterStep]:
    """
    Вписать в квадрат size x size с сохранением пропорций и прозрачными полями.

    Никогда не обрезает и не растягивает.
    """
    steps: List[FilterStep] = []
    if fps:
        steps.append(FilterStep("fps", (fps,)))
    steps.extend(
        [
            FilterStep(
                "scale",
                (size, size),
                {"force_original_aspect_ratio": "decrease", "flags": "lanczos"},
            ),
            FilterStep("format", ("rgba",)),
            FilterStep(
                "pad",
                (size, size, "(ow-iw)/2", "(oh-ih)/2"),
                {"color": "0x00000000"},
            ),
        ]
    )
    return steps


def clamp_animated_duration(max_duration: Optional[float], cap: float) -> float:
    """Длительность кодирования анимированного стикера: min(запрошенной, cap, 10с)."""
    requested = max_duration if max_duration and max_duration > 0 else cap
    return float(min(requested, cap, STICKER_ENCODE_CLAMP_SECONDS))


def static_sticker_profile(size: int = STICKER_SIZE) -> TranscodeProfile:
    return TranscodeProfile(
        name="static_sticker",
        extension="webp",
        filters=square_canvas_filters(size),
        output_options={
            "vcodec": "libwebp",
            "lossless": 0,
            "compression_level": 4,
            "q:v": 75,
            "frames:v": 1,
        },
    )


def animated_sticker_profile(
    duration: float, size: int = STICKER_SIZE, reduced: bool = False
) -> TranscodeProfile:
    """Анимированный WEBP; reduced=True для единственного повторного прохода."""
    options: Dict[str, Any] = {
        "vcodec": "libwebp",
        "loop": 0,
        "lossless": 0,
        "compression_level": 9 if reduced else 6,
        "q:v": 50 if reduced else 75,
        "an": None,
        "t": duration,
    }
    if reduced:
        options["preset"] = "picture"
    return TranscodeProfile(
        name="animated_sticker_reduced" if reduced else "animated_sticker",
        extension="webp",
        filters=square_canvas_filters(size, fps=15),
        output_options=options,
    )


def png_profile() -> TranscodeProfile:
    return TranscodeProfile(
        name="png",
        extension="png",
        output_options={"vcodec": "png", "frames:v": 1},
    )


def mp3_profile(bitrate: str = "128k") -> TranscodeProfile:
    return TranscodeProfile(
        name="mp3",
        extension="mp3",
        output_options={"acodec": "libmp3lame", "audio_bitrate": bitrate, "vn": None},
    )


def voice_note_profile() -> TranscodeProfile:
    """PTT: Opus в OGG, 32 kbps, 48 kHz, моно."""
    return TranscodeProfile(
        name="voice_note",
        extension="ogg",
        output_options={
            "acodec": "libopus",
            "audio_bitrate": "32k",
            "ar": 48000,
            "ac": 1,
            "vn": None,
            "f": "ogg",
        },
    )


def chat_mp4_profile(crf: int = 26) -> TranscodeProfile:
    """MP4, который воспроизводится во всех мобильных клиентах."""
    return TranscodeProfile(
        name="chat_mp4",
        extension="mp4",
        filters=[FilterStep("scale", ("trunc(iw/2)*2", "trunc(ih/2)*2"))],
        output_options={
            "vcodec": "libx264",
            "profile:v": "baseline",
            "level": "3.0",
            "pix_fmt": "yuv420p",
            "acodec": "aac",
            "audio_bitrate": "128k",
            "ar": 44100,
            "movflags": "+faststart",
            "preset": "ultrafast",
            "crf": crf,
        },
    )


AUDIO_EFFECTS: Dict[str, str] = {
    "nightcore": "atempo=1.25,asetrate=44100*1.25,aresample=44100",
    "slow": "atempo=0.85,aecho=0.8:0.9:1000:0.3,lowpass=f=3000,volume=1.2",
    "bass": (
        "equalizer=f=60:width_type=h:width=50:g=15,"
        "equalizer=f=120:width_type=h:width=100:g=5,"
        "alimiter=limit=0.9"
    ),
    "deep": "asetrate=44100*0.75,aresample=44100,atempo=1.25",
    "robot": "chorus=0.5:0.9:50|60|40:0.4|0.32|0.3:0.25|0.4|0.3:2|2.3|1.3",
    "reverse": "areverse",
    "squirrel": "asetrate=44100*1.5,aresample=44100",
    "echo": "aecho=0.8:0.9:1000:0.3",
    "8d": "apulsator=hz=0.125",
}

AUDIO_EFFECT_ALIASES: Dict[str, str] = {
    "fast": "nightcore",
    "slowed": "slow",
    "bassboost": "bass",
    "chipmunk": "squirrel",
    "reversed": "reverse",
}


def resolve_audio_effect(effect: str) -> Optional[str]:
    """Каноническое имя эффекта или None для неизвестного."""
    key = (effect or "").strip().lower()
    key = AUDIO_EFFECT_ALIASES.get(key, key)
    return key if key in AUDIO_EFFECTS else None


def audio_effect_profile(effect: str) -> TranscodeProfile:
    return TranscodeProfile(
        name=f"effect_{effect}",
        extension="mp3",
        audio_filters=[FilterStep.raw(AUDIO_EFFECTS[effect])],
        output_options={"acodec": "libmp3lame", "audio_bitrate": "192k", "vn": None},
    )
