"""
Video processor.

Handles animated sticker encoding (with a single size-reduction pass)
and re-encoding of downloaded videos into a chat-compatible MP4.
"""

from typing import Any, Dict, Optional

from loguru import logger

from ...exceptions import SizeExceeded
from ..models import StepResult
from ..transcoder import animated_sticker_profile, chat_mp4_profile, clamp_animated_duration
from .base import BaseProcessor


class VideoProcessor(BaseProcessor):
    """Процессор видео: анимированные стикеры и оптимизация MP4."""

    kind = "video"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Статистика
        self._stickers_encoded = 0
        self._reduction_passes = 0
        self._optimized_count = 0

    async def to_animated_sticker(
        self, data: bytes, max_duration: Optional[float] = None
    ) -> StepResult[bytes]:
        """
        Видео -> анимированный WEBP size x size.

        Длинные ролики обрезаются, а не отклоняются. Если первый проход
        больше лимита, выполняется ровно один проход с пониженным качеством.

        Args:
            data: Байты исходного видео (или GIF)
            max_duration: Запрошенная длительность, секунды

        Returns:
            StepResult с байтами WEBP или SizeExceeded/TranscodeFailed
        """
        cap = self.config.sticker_max_animated_seconds
        limit = self.config.max_animated_sticker_bytes
        size = self.config.sticker_size
        requested = min(max_duration, cap) if max_duration else cap
        duration = clamp_animated_duration(requested, cap)

        async with self.scratch.temp_many(
            self.input_extension(data, default="mp4"), "webp", "webp"
        ) as (source, first, reduced):
            await source.write_bytes(data)

            probed = await self.metadata_extractor.probe_duration(source.path)
            if probed is not None and probed > cap:
                logger.info(f"Source is {probed:.1f}s, truncating animated sticker to {duration:.0f}s")

            timeout = self.config.transcode_timeout
            result = await self.transcoder.run(
                animated_sticker_profile(duration, size).job(source.path, first.path, timeout=timeout)
            )
            if not result.ok:
                self._failed_count += 1
                return StepResult.failure(result.error)

            first_size = first.size()
            if first_size <= limit:
                output = await first.read_bytes()
                self._stickers_encoded += 1
                self._processed_count += 1
                return StepResult.success(output)

            logger.info(
                f"Animated sticker is {first_size / 1024:.0f}KB (> {limit / 1024:.0f}KB), "
                f"re-encoding with reduced quality"
            )
            self._reduction_passes += 1
            result = await self.transcoder.run(
                animated_sticker_profile(duration, size, reduced=True).job(
                    source.path, reduced.path, timeout=timeout
                )
            )
            if not result.ok:
                self._failed_count += 1
                return StepResult.failure(result.error)

            reduced_size = reduced.size()
            if reduced_size > limit:
                self._failed_count += 1
                return StepResult.failure(
                    SizeExceeded(
                        "Sticker is too large even after compression; try a shorter video",
                        size_bytes=reduced_size,
                        max_bytes=limit,
                    )
                )

            output = await reduced.read_bytes()

        self._stickers_encoded += 1
        self._processed_count += 1
        return StepResult.success(output)

    async def optimize_for_chat(self, data: bytes, container: Optional[str] = None) -> StepResult[bytes]:
        """Перекодирование в H.264 baseline/AAC MP4 с faststart."""
        result = await self.convert(data, chat_mp4_profile(), input_extension=container)
        if result.ok:
            self._optimized_count += 1
        return result

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats.update(
            {
                "stickers_encoded": self._stickers_encoded,
                "reduction_passes": self._reduction_passes,
                "optimized": self._optimized_count,
            }
        )
        return stats
