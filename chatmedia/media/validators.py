"""
Media validators.

Detects containers by magic bytes and rejects implausible payloads
(decrypt placeholders, empty outputs) before they reach the transcoder.
"""

import io
from typing import Optional

from loguru import logger
from PIL import Image

MIN_MEDIA_BYTES = 100

MIME_TYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg; codecs=opus",
    "m4a": "audio/mp4",
}


def detect_container(data: bytes) -> str:
    """
    Определение контейнера по сигнатуре.

    Returns:
        Короткий тег (webp, png, jpeg, gif, mp4, webm, mp3, ogg) или "unknown"
    """
    if not data:
        return "unknown"

    head = data[:16]
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if head[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if head[4:8] == b"ftyp":
        brand = head[8:12]
        return "m4a" if brand in (b"M4A ", b"M4B ") else "mp4"
    if head[:4] == b"\x1aE\xdf\xa3":
        return "webm"
    if head[:4] == b"OggS":
        return "ogg"
    if head[:3] == b"ID3" or (len(head) > 1 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0):
        return "mp3"
    return "unknown"


def mime_type_for(container: str) -> str:
    return MIME_TYPES.get(container, "application/octet-stream")


class MediaValidator:
    """Проверяет правдоподобность медиаданных."""

    def __init__(self, min_bytes: int = MIN_MEDIA_BYTES):
        self.min_bytes = min_bytes

    def is_plausible(self, data: Optional[bytes]) -> bool:
        """Данные короче min_bytes не бывают валидным медиа."""
        return bool(data) and len(data) >= self.min_bytes

    def is_valid_image(self, data: bytes) -> bool:
        """Проверка, что PIL может разобрать изображение."""
        if not self.is_plausible(data):
            return False
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
            return True
        except Exception as e:
            logger.debug(f"Image validation failed: {e}")
            return False

