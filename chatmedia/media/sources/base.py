"""
Base acquisition strategy.

Defines the contract shared by every link of the acquisition chain and
the size/duration policy checks they all apply.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ...exceptions import DurationExceeded, SizeExceeded
from ..models import MediaRequest, RawMediaBuffer, StepResult


@dataclass(frozen=True, slots=True)
class ResolvedRequest:
    """Запрос после разрешения ссылки: канонический URL и ID видео."""

    request: MediaRequest
    url: str
    video_id: str
    platform: str = "youtube"

    @property
    def is_youtube(self) -> bool:
        return self.platform == "youtube"

    @property
    def wants_audio(self) -> bool:
        return self.request.target_kind.is_audio

    @property
    def max_bytes(self) -> int:
        return self.request.constraints.max_bytes

    @property
    def max_duration(self) -> Optional[float]:
        return self.request.constraints.max_duration_seconds


class AcquisitionStrategy(ABC):
    """Базовый класс для всех способов получения медиа с видеоплощадки."""

    name: str = "strategy"

    @property
    @abstractmethod
    def available(self) -> bool:
        """
        Доступность стратегии, определённая один раз при создании.

        Returns:
            False если бинарник или библиотека не найдены
        """

    @abstractmethod
    async def acquire(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        """
        Получение медиа.

        Args:
            resolved: Разрешённый запрос с каноническим URL

        Returns:
            StepResult с RawMediaBuffer либо типизированной ошибкой
        """

    def supports(self, resolved: ResolvedRequest) -> bool:
        """Умеет ли стратегия работать с площадкой запроса."""
        return True

    @staticmethod
    def size_exceeded(size: int, max_bytes: int) -> SizeExceeded:
        return SizeExceeded(
            f"File is too large ({size / (1024 * 1024):.1f} MB, "
            f"limit {max_bytes / (1024 * 1024):.0f} MB)",
            size_bytes=size,
            max_bytes=max_bytes,
        )

    @classmethod
    def check_file_size(cls, path: Path, max_bytes: int) -> Optional[SizeExceeded]:
        """Проверка размера файла до чтения в память."""
        size = path.stat().st_size
        if size > max_bytes:
            return cls.size_exceeded(size, max_bytes)
        return None

    @staticmethod
    def check_duration(duration: Optional[float], max_duration: Optional[float]) -> Optional[DurationExceeded]:
        if duration and max_duration and duration > max_duration:
            return DurationExceeded(
                f"Video is too long ({int(duration)}s, limit {int(max_duration)}s)",
                duration=duration,
                max_duration=max_duration,
            )
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name} available={self.available}>"
