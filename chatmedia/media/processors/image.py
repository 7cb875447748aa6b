"""
Image processor.

Converts pictures into square static WEBP stickers and stickers back
into PNG images.
"""

import asyncio
import io

from loguru import logger
from PIL import Image

from ..models import StepResult
from ..transcoder import png_profile, static_sticker_profile
from .base import BaseProcessor


def _first_frame_png(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        img.seek(0)
        output = io.BytesIO()
        img.convert("RGBA").save(output, format="PNG")
        return output.getvalue()


class ImageProcessor(BaseProcessor):
    """Процессор изображений и статичных стикеров."""

    kind = "image"

    async def to_static_sticker(self, data: bytes) -> StepResult[bytes]:
        """Изображение -> WEBP size x size с прозрачными полями."""
        return await self.convert(data, static_sticker_profile(self.config.sticker_size))

    async def sticker_to_image(self, data: bytes) -> StepResult[bytes]:
        """
        WEBP стикер -> PNG.

        Декодер WEBP в ffmpeg не читает анимированные стикеры, поэтому при
        ошибке первый кадр извлекается через PIL.
        """
        result = await self.convert(data, png_profile(), input_extension="webp")
        if result.ok:
            return result

        try:
            png = await asyncio.to_thread(_first_frame_png, data)
        except Exception as e:
            logger.debug(f"PIL fallback for sticker conversion failed: {e}")
            return result

        logger.info("Sticker converted to PNG via PIL fallback")
        self._processed_count += 1
        return StepResult.success(png)
