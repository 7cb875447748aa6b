"""
Data models for the media pipeline.

Contains the request, buffer, asset and result types shared by the
fetcher, the acquisition strategies, the transcoder and the pipeline.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..exceptions import MediaPipelineError

T = TypeVar("T")


class SourceKind(Enum):
    """Откуда берётся исходное медиа."""

    PROTOCOL_ATTACHMENT = "protocol_attachment"
    REMOTE_URL = "remote_url"
    SEARCH_QUERY = "search_query"
    SOCIAL_URL = "social_url"


class TargetKind(Enum):
    """Во что превращается медиа."""

    STATIC_STICKER = "static_sticker"
    ANIMATED_STICKER = "animated_sticker"
    IMAGE = "image"
    AUDIO_FILE = "audio_file"
    VIDEO_FILE = "video_file"
    VOICE_NOTE = "voice_note"

    @property
    def is_audio(self) -> bool:
        return self in (TargetKind.AUDIO_FILE, TargetKind.VOICE_NOTE)


class PipelineState(Enum):
    """Состояния обработки одного запроса."""

    RECEIVED = "received"
    ACQUIRING = "acquiring"
    TRANSCODING = "transcoding"
    PACKING = "packing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class MediaConstraints:
    """Лимиты одного запроса."""

    max_bytes: int
    max_duration_seconds: Optional[float] = None
    target_dimension: Optional[int] = None


@dataclass(frozen=True, slots=True)
class MediaRequest:
    """Неизменяемый запрос, принадлежащий одному вызову конвейера."""

    source_kind: SourceKind
    payload: Any
    target_kind: TargetKind
    constraints: MediaConstraints

    @classmethod
    def for_remote(
        cls, url_or_query: str, target_kind: TargetKind, constraints: MediaConstraints
    ) -> "MediaRequest":
        """Запрос к видеоплощадке: URL/ID или свободный поисковый запрос."""
        # Локальный импорт: sources зависит от models
        from .sources.video_id import extract_video_id, looks_like_url

        text = (url_or_query or "").strip()
        if extract_video_id(text) or looks_like_url(text):
            kind = SourceKind.REMOTE_URL
        else:
            kind = SourceKind.SEARCH_QUERY
        return cls(
            source_kind=kind,
            payload=text,
            target_kind=target_kind,
            constraints=constraints,
        )

    @classmethod
    def for_social(cls, url: str, constraints: MediaConstraints) -> "MediaRequest":
        """Запрос на видео по ссылке из соцсети."""
        return cls(
            source_kind=SourceKind.SOCIAL_URL,
            payload=(url or "").strip(),
            target_kind=TargetKind.VIDEO_FILE,
            constraints=constraints,
        )


@dataclass(slots=True)
class RawMediaBuffer:
    """Сырые байты от загрузчика плюс тег контейнера."""

    data: bytes
    container: str
    title: Optional[str] = None
    method: Optional[str] = None
    duration_seconds: Optional[float] = None
    author: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class MediaAsset:
    """Итоговый артефакт, возвращаемый вызывающей стороне."""

    data: bytes
    mime_type: str
    pack_name: Optional[str] = None
    author_name: Optional[str] = None
    duration_seconds: Optional[float] = None
    title: Optional[str] = None
    method: Optional[str] = None
    media_kind: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class AcquisitionAttempt:
    """Одна попытка стратегии загрузки."""

    strategy_name: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        return f"{self.strategy_name}: {self.error or 'ok'}"


@dataclass(slots=True)
class AcquisitionAttemptLog:
    """Упорядоченный журнал попыток стратегий (только для диагностики)."""

    attempts: List[AcquisitionAttempt] = field(default_factory=list)

    def record(self, strategy_name: str, error: Optional[Any] = None) -> AcquisitionAttempt:
        message = None
        if error is not None:
            message = error.user_message if isinstance(error, MediaPipelineError) else str(error)
        attempt = AcquisitionAttempt(strategy_name=strategy_name, error=message)
        self.attempts.append(attempt)
        return attempt

    @property
    def strategy_names(self) -> List[str]:
        return [a.strategy_name for a in self.attempts]

    @property
    def failures(self) -> List[AcquisitionAttempt]:
        return [a for a in self.attempts if not a.succeeded]

    def summary(self) -> str:
        return " -> ".join(str(a) for a in self.attempts)

    def __len__(self) -> int:
        return len(self.attempts)

    def __iter__(self):
        return iter(self.attempts)


@dataclass(slots=True)
class StepResult(Generic[T]):
    """
    Результат шага: значение либо типизированная ошибка.

    Компоненты не бросают исключения через свои границы, а возвращают StepResult.
    """

    value: Optional[T] = None
    error: Optional[MediaPipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StepResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: MediaPipelineError) -> "StepResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Вернуть значение или поднять сохранённую ошибку."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(slots=True)
class PipelineResult:
    """Структурированный ответ конвейера для командного слоя."""

    success: bool
    buffer: Optional[bytes] = None
    size_bytes: int = 0
    mime_type: Optional[str] = None
    title: Optional[str] = None
    method: Optional[str] = None
    pack_name: Optional[str] = None
    author_name: Optional[str] = None
    duration_seconds: Optional[float] = None
    media_kind: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def from_asset(cls, asset: MediaAsset) -> "PipelineResult":
        return cls(
            success=True,
            buffer=asset.data,
            size_bytes=asset.size_bytes,
            mime_type=asset.mime_type,
            title=asset.title,
            method=asset.method,
            pack_name=asset.pack_name,
            author_name=asset.author_name,
            duration_seconds=asset.duration_seconds,
            media_kind=asset.media_kind,
        )

    @classmethod
    def from_error(cls, error: Any) -> "PipelineResult":
        if isinstance(error, MediaPipelineError):
            return cls(
                success=False,
                error=error.user_message,
                error_type=type(error).__name__,
            )
        return cls(success=False, error=str(error), error_type="Error")

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        result: Dict[str, Any] = {
            "success": True,
            "buffer": self.buffer,
            "sizeBytes": self.size_bytes,
        }
        optional = {
            "mimeType": self.mime_type,
            "title": self.title,
            "method": self.method,
            "packName": self.pack_name,
            "authorName": self.author_name,
            "durationSeconds": self.duration_seconds,
            "mediaKind": self.media_kind,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass(slots=True)
class PipelineRun:
    """История состояний одного запроса."""

    request_id: str
    operation: str
    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    started_at: float = field(default_factory=time.time)
    failure_reason: Optional[str] = None

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at
