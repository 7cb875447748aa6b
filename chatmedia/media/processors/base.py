"""
Base processor class for media conversion.

Holds the shared collaborators (transcoder, scratch space, config) and
the write -> transcode -> read cycle every processor uses.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from loguru import logger

from ...config import Config
from ..metadata import MetadataExtractor
from ..models import StepResult
from ..temp_files import ScratchSpace
from ..transcoder import TranscodeProfile, Transcoder
from ..validators import detect_container


class BaseProcessor(ABC):
    """Базовый класс для всех процессоров медиа."""

    def __init__(
        self,
        transcoder: Transcoder,
        scratch: ScratchSpace,
        config: Config,
        metadata_extractor: Optional[MetadataExtractor] = None,
    ):
        self.transcoder = transcoder
        self.scratch = scratch
        self.config = config
        self.metadata_extractor = metadata_extractor or MetadataExtractor(config.ffprobe_binary)

        self._processed_count = 0
        self._failed_count = 0

    @staticmethod
    def input_extension(data: bytes, default: str = "bin") -> str:
        container = detect_container(data)
        return default if container == "unknown" else container

    async def convert(
        self, data: bytes, profile: TranscodeProfile, input_extension: Optional[str] = None
    ) -> StepResult[bytes]:
        """
        Записать байты во временный файл, прогнать профиль, прочитать результат.

        Оба временных файла удаляются при любом исходе.
        """
        in_ext = input_extension or self.input_extension(data)
        async with self.scratch.temp_many(in_ext, profile.extension) as (source, target):
            await source.write_bytes(data)
            result = await self.transcoder.run(
                profile.job(source.path, target.path, timeout=self.config.transcode_timeout)
            )
            if not result.ok:
                self._failed_count += 1
                logger.warning(f"[{self.kind}] {profile.name} conversion failed: {result.error}")
                return StepResult.failure(result.error)
            output = await target.read_bytes()

        self._processed_count += 1
        return StepResult.success(output)

    @property
    @abstractmethod
    def kind(self) -> str:
        """Короткое имя процессора для логов и статистики."""

    def get_statistics(self) -> Dict[str, Any]:
        """
        Получить статистику обработки.

        Returns:
            Словарь со статистикой
        """
        return {
            "processed": self._processed_count,
            "failed": self._failed_count,
        }

    def log_statistics(self) -> None:
        stats = self.get_statistics()
        logger.info(f"{self.kind} processing stats: {stats}")
