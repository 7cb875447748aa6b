"""
Protocol attachment fetcher.

Turns an attachment reference supplied by the chat-protocol client into
decrypted bytes, with per-attempt timeouts, fixed backoff and rejection
of implausibly small payloads.
"""

import inspect
from typing import Any, AsyncIterable, Dict, Iterable, Mapping, Optional, Protocol, Union

from loguru import logger

from ..exceptions import FetchFailed, MediaPipelineError, UndersizedResult
from ..retry_manager import PROTOCOL_FETCH_CONFIG, RetryConfig, SmartRetryManager
from .models import StepResult
from .validators import MIN_MEDIA_BYTES

ChunkStream = Union[AsyncIterable[bytes], Iterable[bytes]]

# Обёртки, внутри которых лежит настоящее сообщение
WRAPPER_KEYS = (
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "viewOnceMessage",
    "ephemeralMessage",
    "documentWithCaptionMessage",
    "editedMessage",
)
VIEW_ONCE_KEYS = ("viewOnceMessageV2", "viewOnceMessageV2Extension", "viewOnceMessage")
MEDIA_KEYS = (
    "imageMessage",
    "videoMessage",
    "stickerMessage",
    "audioMessage",
    "documentMessage",
)
MEDIA_MARKERS = ("mediaKey", "url", "directPath")


class AttachmentSource(Protocol):
    """Контракт клиента чат-протокола: загрузка и расшифровка вложения."""

    def fetch_and_decrypt(self, attachment_ref: Any, media_class: str) -> Any:
        """Возвращает (или awaitable на) поток расшифрованных чанков."""
        ...


def _has_media_marker(node: Any) -> bool:
    return isinstance(node, Mapping) and any(node.get(k) for k in MEDIA_MARKERS)


def locate_media_container(message: Any, max_depth: int = 8) -> Optional[Mapping]:
    """
    Поиск вложенного объекта с медиа (mediaKey/url/directPath).

    Разворачивает view-once, ephemeral, document-with-caption, edited и
    вложенные message обёртки.
    """
    if max_depth < 0 or not isinstance(message, Mapping):
        return None

    if _has_media_marker(message):
        return message

    inner = message.get("message")
    if isinstance(inner, Mapping):
        found = locate_media_container(inner, max_depth - 1)
        if found is not None:
            return found

    for key in WRAPPER_KEYS:
        wrapper = message.get(key)
        if isinstance(wrapper, Mapping):
            found = locate_media_container(wrapper, max_depth - 1)
            if found is not None:
                return found

    for key in MEDIA_KEYS:
        if _has_media_marker(message.get(key)):
            return message[key]

    for key, value in message.items():
        if key.endswith("Message") and isinstance(value, Mapping):
            found = locate_media_container(value, max_depth - 1)
            if found is not None:
                return found

    return None


def detect_view_once(message: Any) -> Optional[Mapping]:
    """Содержимое одноразового сообщения или None."""
    if not isinstance(message, Mapping):
        return None
    for key in VIEW_ONCE_KEYS:
        wrapper = message.get(key)
        if isinstance(wrapper, Mapping):
            inner = wrapper.get("message")
            return inner if isinstance(inner, Mapping) else wrapper
    inner = message.get("message")
    if isinstance(inner, Mapping) and inner is not message:
        return detect_view_once(inner)
    return None


def media_class_of(container: Mapping) -> str:
    """Класс медиа для fetch_and_decrypt по mimetype контейнера."""
    mimetype = str(container.get("mimetype", ""))
    if mimetype.startswith("image/webp"):
        return "sticker"
    for prefix in ("image", "video", "audio"):
        if mimetype.startswith(prefix):
            return prefix
    return "document"


class ProtocolMediaFetcher:
    """Загрузчик вложений чат-протокола с ограниченными повторами."""

    def __init__(
        self,
        source: AttachmentSource,
        retry_config: Optional[RetryConfig] = None,
        min_bytes: int = MIN_MEDIA_BYTES,
        retry_manager: Optional[SmartRetryManager] = None,
    ):
        self.source = source
        self.retry_config = retry_config or PROTOCOL_FETCH_CONFIG
        self.min_bytes = min_bytes
        self.retry_manager = retry_manager or SmartRetryManager(self.retry_config)

    async def _collect(self, attachment_ref: Any, media_class: str) -> bytes:
        """Одна попытка: получить поток и склеить чанки в локальный буфер."""
        stream = self.source.fetch_and_decrypt(attachment_ref, media_class)
        if inspect.isawaitable(stream):
            stream = await stream

        buffer = bytearray()
        if isinstance(stream, (bytes, bytearray)):
            buffer.extend(stream)
        elif hasattr(stream, "__aiter__"):
            async for chunk in stream:
                buffer.extend(chunk)
        elif stream is not None:
            for chunk in stream:
                buffer.extend(chunk)

        data = bytes(buffer)
        if len(data) < self.min_bytes:
            raise UndersizedResult(
                "Downloaded media is empty or corrupted",
                size_bytes=len(data),
                min_bytes=self.min_bytes,
            )
        return data

    async def fetch(self, attachment_ref: Any, media_class: str = "image") -> StepResult[bytes]:
        """
        fetch(attachmentRef, mediaClass) -> bytes | FetchError.

        Никогда не бросает: исчерпание попыток даёт FetchFailed или
        UndersizedResult (если последней была слишком короткая выдача).
        """
        try:
            data = await self.retry_manager.retry_async(
                self._collect,
                f"fetch_{media_class}",
                self.retry_config,
                attachment_ref,
                media_class,
            )
        except UndersizedResult as e:
            return StepResult.failure(e)
        except MediaPipelineError as e:
            if isinstance(e, FetchFailed):
                return StepResult.failure(e)
            return StepResult.failure(
                FetchFailed(
                    "Failed to download media",
                    source="protocol",
                    attempts=self.retry_config.max_attempts,
                    context={"cause": type(e).__name__},
                )
            )
        except Exception as e:
            logger.warning(f"Protocol fetch failed for {media_class}: {type(e).__name__}: {e}")
            return StepResult.failure(
                FetchFailed(
                    "Failed to download media",
                    source="protocol",
                    attempts=self.retry_config.max_attempts,
                    context={"cause": type(e).__name__},
                )
            )

        logger.debug(f"Fetched {len(data)} bytes of {media_class}")
        return StepResult.success(data)

    async def fetch_message(self, message: Mapping) -> StepResult[bytes]:
        """Найти медиа в (возможно обёрнутом) сообщении и загрузить его."""
        container = locate_media_container(message)
        if container is None:
            return StepResult.failure(
                FetchFailed("Message has no downloadable media", retryable=False)
            )
        return await self.fetch(container, media_class_of(container))

    def get_statistics(self) -> Dict[str, Any]:
        return {
            name: self.retry_manager.get_operation_summary(name)
            for name in self.retry_manager.operation_stats
        }
