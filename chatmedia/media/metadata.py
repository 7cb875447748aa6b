"""
Metadata extraction for media files.

Probes duration and streams of scratch files with ffprobe.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from ..config import PROBE_TIMEOUT


class MetadataExtractor:
    """Извлекает метаданные из медиафайлов через ffprobe."""

    def __init__(self, ffprobe_binary: str = "ffprobe", timeout: float = PROBE_TIMEOUT):
        self.ffprobe_binary = ffprobe_binary
        self.timeout = timeout

    async def probe(self, file_path: Path) -> Optional[Dict[str, Any]]:
        """
        Запуск ffprobe и разбор JSON ответа.

        Returns:
            Словарь с ключами format/streams или None при ошибке
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffprobe_binary,
                "-v",
                "error",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                str(file_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error(f"{self.ffprobe_binary} not found in PATH. Please install ffmpeg.")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"ffprobe timed out after {self.timeout}s")
            proc.kill()
            await proc.wait()
            return None

        if proc.returncode != 0:
            logger.debug(
                f"ffprobe failed with code {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='ignore')[-200:]}"
            )
            return None

        try:
            return json.loads(stdout.decode("utf-8", errors="ignore") or "{}")
        except json.JSONDecodeError as e:
            logger.debug(f"ffprobe returned invalid JSON: {e}")
            return None

    async def probe_duration(self, file_path: Path) -> Optional[float]:
        """Длительность в секундах или None, если её не удалось определить."""
        info = await self.probe(file_path)
        if not info:
            return None

        duration = (info.get("format") or {}).get("duration")
        if duration is None:
            for stream in info.get("streams", []):
                if stream.get("duration") is not None:
                    duration = stream["duration"]
                    break

        try:
            return float(duration) if duration is not None else None
        except (TypeError, ValueError):
            return None

    async def has_audio_stream(self, file_path: Path) -> Optional[bool]:
        """True/False по списку потоков; None, если ffprobe не смог разобрать файл."""
        info = await self.probe(file_path)
        if not info:
            return None
        return any(s.get("codec_type") == "audio" for s in info.get("streams", []))

