"""
External tool detection.

Locates the encoder and downloader binaries (explicit path, bundled tools
directory, then PATH) and checks which ffmpeg encoders are available.
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from loguru import logger


def find_binary(
    name: str,
    explicit: Optional[Union[str, Path]] = None,
    tools_dir: Optional[Union[str, Path]] = None,
) -> Optional[str]:
    """
    Поиск исполняемого файла.

    Порядок: явный путь из конфигурации, каталог bundled-инструментов, PATH.

    Returns:
        Абсолютный путь или None, если бинарник не найден
    """
    if explicit:
        explicit_path = Path(explicit)
        if explicit_path.is_file() and os.access(explicit_path, os.X_OK):
            return str(explicit_path.resolve())
        found = shutil.which(str(explicit))
        if found:
            return found
        logger.warning(f"Configured binary not usable: {explicit}")

    if tools_dir:
        for candidate in (name, f"{name}.exe"):
            bundled = Path(tools_dir) / candidate
            if bundled.is_file() and os.access(bundled, os.X_OK):
                return str(bundled.resolve())

    return shutil.which(name)


class ToolCapabilities:
    """Детектор возможностей ffmpeg (кодеки для стикеров, аудио, видео)."""

    REQUIRED_ENCODERS = ("libwebp", "libmp3lame", "libx264", "libopus", "png", "aac")

    def __init__(self, ffmpeg_binary: str = "ffmpeg"):
        self.ffmpeg_binary = ffmpeg_binary
        self._detection_complete = False
        self.available_encoders: Dict[str, bool] = {
            name: False for name in self.REQUIRED_ENCODERS
        }
        self.ffmpeg_available = False

    async def detect(self, encoders: Optional[Iterable[str]] = None) -> Dict[str, bool]:
        """Проверка наличия ffmpeg и нужных кодеров (выполняется один раз)."""
        if self._detection_complete:
            return self.available_encoders

        wanted = tuple(encoders or self.REQUIRED_ENCODERS)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_binary,
                "-hide_banner",
                "-encoders",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
            self.ffmpeg_available = proc.returncode == 0
            encoders_output = stdout.decode("utf-8", errors="ignore")

            listed = set()
            for line in encoders_output.splitlines():
                parts = line.split()
                # Строки вида " V....D libwebp   libwebp WebP image"
                if len(parts) >= 2 and len(parts[0]) == 6:
                    listed.add(parts[1])

            for name in wanted:
                self.available_encoders[name] = name in listed

        except FileNotFoundError:
            logger.error(f"{self.ffmpeg_binary} not found in PATH. Please install ffmpeg.")
        except asyncio.TimeoutError:
            logger.warning("ffmpeg encoder detection timed out")
        except Exception as e:
            logger.warning(f"ffmpeg encoder detection failed: {e}")

        self._detection_complete = True
        missing = [name for name in wanted if not self.available_encoders.get(name)]
        if missing:
            logger.warning(f"ffmpeg encoders unavailable: {', '.join(missing)}")
        else:
            logger.info("✅ All required ffmpeg encoders are available")

        return self.available_encoders

    def has_encoder(self, name: str) -> bool:
        return self.available_encoders.get(name, False)
