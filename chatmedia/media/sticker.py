"""
Sticker metadata packing.

Injects pack name, publisher and emojis into the EXIF chunk of a WEBP
sticker so the receiving client can show which pack it came from. The
chunk is spliced into the RIFF container; frames are never re-encoded.
"""

import io
import json
import secrets
import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger
from PIL import Image, features

from ..config import STICKER_NAME_LIMIT

DEFAULT_EMOJIS = ("🎨", "🤖")
DEFAULT_PACK_NAME = "sticker"

# Little-endian TIFF: 1 IFD entry, tag 0x5741, type UNDEFINED, count (patched), offset 22
_EXIF_HEADER = bytes(
    [
        0x49, 0x49, 0x2A, 0x00, 0x08, 0x00, 0x00, 0x00,
        0x01, 0x00, 0x41, 0x57, 0x07, 0x00, 0x00, 0x00,
        0x00, 0x00, 0x16, 0x00, 0x00, 0x00,
    ]
)
_EXIF_LENGTH_OFFSET = 14
_EXIF_PREFIX = b"Exif\x00\x00"

# Флаги первого байта VP8X
_VP8X_ALPHA = 0x10
_VP8X_EXIF = 0x08


def derive_pack_name(user_name: Optional[str]) -> str:
    """Первое слово имени пользователя, в нижнем регистре, не длиннее 30 символов."""
    if not user_name:
        return DEFAULT_PACK_NAME
    tokens = user_name.strip().split()
    if not tokens:
        return DEFAULT_PACK_NAME
    return tokens[0].lower()[:STICKER_NAME_LIMIT]


def _slug(text: str) -> str:
    slug = "".join(ch if ch.isalnum() else "-" for ch in text.lower()).strip("-")
    return slug or "pack"


def build_sticker_exif(
    pack_name: str, author: str, emojis: Sequence[str] = DEFAULT_EMOJIS
) -> bytes:
    """
    EXIF-блок с JSON описанием набора стикеров.

    Args:
        pack_name: Название набора (обрезается до 30 символов)
        author: Издатель набора (обрезается до 30 символов)
        emojis: Эмодзи, связанные со стикером

    Returns:
        TIFF-заголовок с одним тегом 0x5741 и JSON полезной нагрузкой
    """
    payload = {
        "sticker-pack-id": f"{_slug(author)}-{secrets.token_hex(8)}",
        "sticker-pack-name": (pack_name or DEFAULT_PACK_NAME)[:STICKER_NAME_LIMIT],
        "sticker-pack-publisher": (author or "")[:STICKER_NAME_LIMIT],
        "emojis": list(emojis),
    }
    json_bytes = json.dumps(payload, ensure_ascii=False).encode("utf-8")

    header = bytearray(_EXIF_HEADER)
    struct.pack_into("<I", header, _EXIF_LENGTH_OFFSET, len(json_bytes))
    return bytes(header) + json_bytes


def parse_sticker_exif(exif: bytes) -> Optional[Dict[str, Any]]:
    """Разбор блока, созданного build_sticker_exif."""
    if exif.startswith(_EXIF_PREFIX):
        exif = exif[len(_EXIF_PREFIX):]
    if len(exif) < len(_EXIF_HEADER) or exif[:4] != _EXIF_HEADER[:4]:
        return None
    (length,) = struct.unpack_from("<I", exif, _EXIF_LENGTH_OFFSET)
    start = len(_EXIF_HEADER)
    try:
        return json.loads(exif[start:start + length].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def webp_chunks(data: bytes) -> List[Tuple[bytes, bytes]]:
    """
    Разбор RIFF-контейнера WEBP на чанки (fourcc, payload).

    Raises:
        ValueError: Если данные не являются WEBP или чанк обрезан
    """
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        raise ValueError("Not a WEBP file")
    end = min(len(data), 8 + struct.unpack_from("<I", data, 4)[0])
    chunks = []
    offset = 12
    while offset + 8 <= end:
        fourcc = data[offset:offset + 4]
        (size,) = struct.unpack_from("<I", data, offset + 4)
        start = offset + 8
        if start + size > end:
            raise ValueError(f"Truncated {fourcc!r} chunk")
        chunks.append((fourcc, data[start:start + size]))
        offset = start + size + (size & 1)
    if not chunks:
        raise ValueError("WEBP file has no chunks")
    return chunks


def _canvas_from_bitstream(chunks: List[Tuple[bytes, bytes]]) -> Tuple[int, int, bool]:
    """Размер холста и наличие альфы простого (не VP8X) файла."""
    has_alpha = any(fourcc == b"ALPH" for fourcc, _ in chunks)
    for fourcc, payload in chunks:
        if fourcc == b"VP8 " and len(payload) >= 10:
            width = struct.unpack_from("<H", payload, 6)[0] & 0x3FFF
            height = struct.unpack_from("<H", payload, 8)[0] & 0x3FFF
            return width, height, has_alpha
        if fourcc == b"VP8L" and len(payload) >= 5:
            (bits,) = struct.unpack_from("<I", payload, 1)
            width = (bits & 0x3FFF) + 1
            height = ((bits >> 14) & 0x3FFF) + 1
            return width, height, has_alpha or bool((bits >> 28) & 1)
    raise ValueError("WEBP file has no image data")


def _vp8x_chunk(flags: int, width: int, height: int) -> bytes:
    return (
        bytes([flags, 0, 0, 0])
        + (width - 1).to_bytes(3, "little")
        + (height - 1).to_bytes(3, "little")
    )


def embed_exif_chunk(webp_bytes: bytes, exif: bytes) -> bytes:
    """
    Вставка EXIF-чанка в WEBP без перекодирования кадров.

    Простой файл (VP8/VP8L) переводится в расширенный формат с VP8X;
    существующий EXIF заменяется. Данные изображения копируются как есть.
    """
    chunks = [(fourcc, payload) for fourcc, payload in webp_chunks(webp_bytes) if fourcc != b"EXIF"]

    if chunks[0][0] == b"VP8X":
        header = bytearray(chunks[0][1])
        header[0] |= _VP8X_EXIF
        chunks[0] = (b"VP8X", bytes(header))
    else:
        width, height, has_alpha = _canvas_from_bitstream(chunks)
        flags = _VP8X_EXIF | (_VP8X_ALPHA if has_alpha else 0)
        chunks.insert(0, (b"VP8X", _vp8x_chunk(flags, width, height)))

    # EXIF идёт после данных изображения и перед XMP
    position = next((i for i, (fourcc, _) in enumerate(chunks) if fourcc == b"XMP "), len(chunks))
    chunks.insert(position, (b"EXIF", exif))

    body = bytearray(b"WEBP")
    for fourcc, payload in chunks:
        body += fourcc + struct.pack("<I", len(payload)) + payload
        if len(payload) & 1:
            body += b"\x00"
    return b"RIFF" + struct.pack("<I", len(body)) + bytes(body)


def read_sticker_metadata(webp_bytes: bytes) -> Optional[Dict[str, Any]]:
    """Извлечение JSON метаданных набора из WEBP стикера."""
    try:
        with Image.open(io.BytesIO(webp_bytes)) as img:
            exif = img.info.get("exif")
    except Exception as e:
        logger.debug(f"Failed to open sticker: {e}")
        return None
    if not exif:
        return None
    return parse_sticker_exif(exif)


@dataclass(frozen=True)
class MetadataCapability:
    """Доступность записи EXIF в WEBP; определяется один раз."""

    available: bool
    reason: str = ""

    @classmethod
    def detect(cls) -> "MetadataCapability":
        try:
            if not features.check("webp"):
                return cls(False, "Pillow is built without WEBP support")
        except Exception as e:
            return cls(False, f"WEBP feature check failed: {e}")
        return cls(True)


class StickerPacker:
    """Добавляет метаданные набора в WEBP; без возможности возвращает вход как есть."""

    def __init__(
        self,
        capability: Optional[MetadataCapability] = None,
        author: str = "chatmedia",
        emojis: Iterable[str] = DEFAULT_EMOJIS,
    ):
        self.capability = capability or MetadataCapability.detect()
        self.author = author
        self.emojis = tuple(emojis)

        if not self.capability.available:
            logger.warning(f"Sticker metadata disabled: {self.capability.reason}")

        # Статистика
        self._packed_count = 0
        self._passthrough_count = 0

    @property
    def available(self) -> bool:
        return self.capability.available

    async def pack(
        self,
        webp_bytes: bytes,
        pack_name: str,
        author_name: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> bytes:
        """
        Добавить метаданные набора в стикер.

        Возвращает исходные байты, если запись метаданных недоступна,
        завершилась ошибкой или превысила бы max_bytes.
        """
        if not self.capability.available:
            self._passthrough_count += 1
            return webp_bytes

        exif = build_sticker_exif(pack_name, author_name or self.author, self.emojis)
        try:
            packed = embed_exif_chunk(webp_bytes, exif)
        except ValueError as e:
            logger.warning(f"Failed to add sticker metadata, sending without it: {e}")
            self._passthrough_count += 1
            return webp_bytes

        if max_bytes is not None and len(packed) > max_bytes:
            logger.info(
                f"Sticker with metadata exceeds {max_bytes} bytes ({len(packed)}), sending without it"
            )
            self._passthrough_count += 1
            return webp_bytes

        self._packed_count += 1
        return packed

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "available": self.capability.available,
            "packed": self._packed_count,
            "passthrough": self._passthrough_count,
        }
