"""
Scratch-space management for request-scoped temporary files.

Every temporary file used by the pipeline is allocated here and released
through a scoped context manager, so cleanup happens on every exit path.
"""

import random
import string
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, List, Optional, Set, Tuple, Union

import aiofiles
from loguru import logger

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase


@dataclass(slots=True)
class TempResource:
    """Путь во временной директории; сам файл не создаётся при выделении."""

    path: Path
    created_at: float = field(default_factory=time.time)
    released: bool = False

    @property
    def exists(self) -> bool:
        return self.path.exists()

    @property
    def stem_path(self) -> Path:
        """Путь без расширения (для шаблонов вывода загрузчиков)."""
        return self.path.with_suffix("") if self.path.suffix else self.path

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    async def read_bytes(self) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()

    async def write_bytes(self, data: bytes) -> None:
        async with aiofiles.open(self.path, "wb") as f:
            await f.write(data)

    def companions(self) -> List[Path]:
        """Файлы-спутники вида <stem>.* (фрагменты, промежуточные форматы)."""
        stem = self.stem_path
        try:
            return [p for p in stem.parent.glob(f"{stem.name}.*") if p != self.path]
        except OSError:
            return []

    def release(self) -> None:
        """Удалить файл и его спутники. Идемпотентно, никогда не бросает."""
        if self.released:
            return
        self.released = True
        for candidate in [self.path, *self.companions()]:
            try:
                candidate.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove temp file {candidate.name}: {e}")


class ScratchSpace:
    """Выдаёт уникальные временные пути и гарантирует их удаление."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._live: Set[Path] = set()
        self._allocated_count = 0
        self._released_count = 0

    @staticmethod
    def _random_suffix(length: int = 6) -> str:
        return "".join(random.choices(_SUFFIX_ALPHABET, k=length))

    def allocate(self, extension: Optional[str] = None) -> TempResource:
        """
        Выделение уникального пути <epoch-ms>-<random>.<ext>.

        Args:
            extension: Расширение файла с точкой или без

        Returns:
            TempResource; файл на диске не создаётся
        """
        name = f"{int(time.time() * 1000)}-{self._random_suffix()}"
        if extension:
            name = f"{name}.{extension.lstrip('.')}"
        path = self.directory / name
        # Имя не должно совпадать ни с живым дескриптором, ни с файлом на диске
        while path in self._live or path.exists():
            path = path.with_name(f"{path.stem}{self._random_suffix(2)}{path.suffix}")

        handle = TempResource(path=path)
        self._live.add(path)
        self._allocated_count += 1
        return handle

    def release(self, handle: TempResource) -> None:
        """Освобождение; повторный вызов ничего не делает."""
        if handle.released:
            return
        handle.release()
        self._live.discard(handle.path)
        self._released_count += 1

    @asynccontextmanager
    async def temp(self, extension: Optional[str] = None) -> AsyncIterator[TempResource]:
        """Временный файл, удаляемый при любом выходе из блока."""
        handle = self.allocate(extension)
        try:
            yield handle
        finally:
            self.release(handle)

    @asynccontextmanager
    async def temp_many(self, *extensions: Optional[str]) -> AsyncIterator[Tuple[TempResource, ...]]:
        """Несколько временных файлов в одном блоке."""
        handles: List[TempResource] = []
        try:
            for ext in extensions:
                handles.append(self.allocate(ext))
            yield tuple(handles)
        finally:
            for handle in handles:
                self.release(handle)

    @property
    def live_count(self) -> int:
        return len(self._live)

    def get_statistics(self) -> dict:
        return {
            "directory": str(self.directory),
            "allocated": self._allocated_count,
            "released": self._released_count,
            "live": self.live_count,
        }
