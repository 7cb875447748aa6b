"""
Audio processor.

Extracts MP3 audio from videos, builds PTT voice notes (Opus in OGG) and
applies named audio effects.
"""

from typing import Optional

from loguru import logger

from ...exceptions import InvalidReference
from ..models import StepResult
from ..transcoder import AUDIO_EFFECTS, audio_effect_profile, mp3_profile, resolve_audio_effect, voice_note_profile
from .base import BaseProcessor


class AudioProcessor(BaseProcessor):
    """Процессор аудио."""

    kind = "audio"

    async def to_mp3(self, data: bytes, container: Optional[str] = None) -> StepResult[bytes]:
        """Любой аудио/видео вход -> MP3 (libmp3lame)."""
        return await self.convert(data, mp3_profile(), input_extension=container)

    async def extract_from_video(self, data: bytes) -> StepResult[bytes]:
        """
        Звуковая дорожка видео -> MP3.

        Видео без аудиопотока отклоняется до запуска кодировщика; если
        ffprobe не смог разобрать файл, решение остаётся за ffmpeg.
        """
        async with self.scratch.temp(self.input_extension(data, default="mp4")) as source:
            await source.write_bytes(data)
            has_audio = await self.metadata_extractor.has_audio_stream(source.path)

        if has_audio is False:
            self._failed_count += 1
            return StepResult.failure(InvalidReference("This video has no audio track"))
        return await self.to_mp3(data)

    async def to_voice_note(self, data: bytes) -> StepResult[bytes]:
        """
        Голосовое сообщение: Opus/OGG, 48 kHz, моно.

        Если libopus недоступен, возвращается MP3.
        """
        result = await self.convert(data, voice_note_profile())
        if result.ok:
            return result
        logger.warning("Voice note encoding failed, falling back to MP3")
        return await self.to_mp3(data)

    async def apply_effect(self, data: bytes, effect: str) -> StepResult[bytes]:
        canonical = resolve_audio_effect(effect)
        if canonical is None:
            return StepResult.failure(
                InvalidReference(
                    f"Unknown effect '{effect}'. Available: {', '.join(sorted(AUDIO_EFFECTS))}",
                    reference=effect,
                )
            )
        return await self.convert(data, audio_effect_profile(canonical))
