import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import psutil
from dotenv import load_dotenv

from chatmedia.exceptions import ConfigError
from chatmedia.utils import logger

DEFAULT_SCRATCH_DIR = Path("./temp")
DEFAULT_TOOLS_DIR = Path("./bin")

# Минимальные системные требования
MIN_FREE_DISK_GB = 1

# ⏱️ Таймауты для внешних процессов и сети (секунды)
YTDLP_AUDIO_TIMEOUT = 120
YTDLP_VIDEO_TIMEOUT = 180
TRANSCODE_TIMEOUT = 120
HTTP_TIMEOUT = 10
FETCH_ATTEMPT_TIMEOUT = 30
PROBE_TIMEOUT = 15

# Политика стикеров
STICKER_SIZE = 512
STICKER_MAX_ANIMATED_KB = 500
STICKER_ENCODE_CLAMP_SECONDS = 10
STICKER_NAME_LIMIT = 30


@dataclass
class Config:
    """
    Конфигурация медиа-конвейера.

    Все лимиты задаются в человеко-читаемых единицах (MB, KB, секунды);
    производные значения в байтах доступны через свойства.
    """

    scratch_dir: Path = DEFAULT_SCRATCH_DIR

    # Внешние бинарники
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    ytdlp_binary: Optional[str] = None  # None = искать в tools_dir и PATH
    tools_dir: Path = DEFAULT_TOOLS_DIR

    # Видеоплощадка
    yt_cookies_path: Optional[Path] = None
    yt_po_token: Optional[str] = None
    yt_max_audio_size_mb: int = 500
    yt_max_video_size_mb: int = 2048
    yt_max_duration_seconds: int = 3600
    ytdlp_audio_timeout: float = YTDLP_AUDIO_TIMEOUT
    ytdlp_video_timeout: float = YTDLP_VIDEO_TIMEOUT
    http_timeout: float = HTTP_TIMEOUT

    # Транскодирование
    transcode_timeout: float = TRANSCODE_TIMEOUT
    sticker_size: int = STICKER_SIZE
    sticker_max_animated_seconds: int = 30
    sticker_max_animated_kb: int = STICKER_MAX_ANIMATED_KB
    sticker_author: str = "chatmedia"
    video_optimize_skip_mb: int = 50
    max_image_mb: int = 16

    # Загрузка вложений из протокола
    fetch_attempts: int = 3
    fetch_timeout: float = FETCH_ATTEMPT_TIMEOUT
    fetch_backoff: float = 1.0
    min_media_bytes: int = 100

    cache_max_entries: int = 128
    log_level: str = "INFO"

    # Флаги функций
    enable_stickers: bool = True
    enable_remote_download: bool = True

    def __post_init__(self):
        """
        Инициализация конфигурации с валидацией.
        """
        self._validate_limits()
        self._setup_paths()
        self._validate_system_requirements()
        self._log_configuration()

    def _validate_limits(self):
        """Валидация числовых лимитов."""
        positive_fields = (
            "yt_max_audio_size_mb",
            "yt_max_video_size_mb",
            "yt_max_duration_seconds",
            "ytdlp_audio_timeout",
            "ytdlp_video_timeout",
            "http_timeout",
            "transcode_timeout",
            "sticker_max_animated_seconds",
            "sticker_max_animated_kb",
            "max_image_mb",
            "fetch_timeout",
            "min_media_bytes",
            "cache_max_entries",
        )
        for name in positive_fields:
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ConfigError(
                    f"Invalid {name}: {value}. Must be positive",
                    field_name=name,
                    field_value=value,
                )

        if not 64 <= self.sticker_size <= 1024:
            raise ConfigError(
                f"Invalid sticker_size: {self.sticker_size}. Must be between 64 and 1024",
                field_name="sticker_size",
                field_value=self.sticker_size,
            )

        if self.fetch_attempts < 1:
            raise ConfigError(
                f"Invalid fetch_attempts: {self.fetch_attempts}. Must be at least 1",
                field_name="fetch_attempts",
                field_value=self.fetch_attempts,
            )

        if self.fetch_backoff < 0:
            raise ConfigError(
                f"Invalid fetch_backoff: {self.fetch_backoff}. Must not be negative",
                field_name="fetch_backoff",
                field_value=self.fetch_backoff,
            )

        if self.video_optimize_skip_mb < 0:
            raise ConfigError(
                "video_optimize_skip_mb must not be negative",
                field_name="video_optimize_skip_mb",
                field_value=self.video_optimize_skip_mb,
            )

    def _setup_paths(self):
        """Настройка и валидация путей."""
        self.scratch_dir = Path(self.scratch_dir).absolute()
        self.tools_dir = Path(self.tools_dir).absolute()
        if self.yt_cookies_path:
            self.yt_cookies_path = Path(self.yt_cookies_path)

        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(
                f"Failed to create scratch directory {self.scratch_dir}: {e}",
                field_name="scratch_dir",
            ) from e

    def _validate_system_requirements(self):
        """Проверка свободного места в scratch-директории."""
        try:
            disk_usage = psutil.disk_usage(str(self.scratch_dir))
            free_space_gb = disk_usage.free / (1024**3)
            if free_space_gb < MIN_FREE_DISK_GB:
                logger.warning(
                    f"Scratch directory has only {free_space_gb:.1f}GB free, "
                    f"{MIN_FREE_DISK_GB}GB recommended"
                )
        except Exception as e:
            logger.warning(f"Could not validate system requirements: {e}")

    def _log_configuration(self):
        """Логирование конфигурации для отладки."""
        logger.info(f"Scratch directory: {self.scratch_dir}")
        logger.info(
            f"Limits: audio {self.yt_max_audio_size_mb}MB, video {self.yt_max_video_size_mb}MB, "
            f"duration {self.yt_max_duration_seconds}s, animated sticker {self.sticker_max_animated_kb}KB"
        )

    @property
    def max_audio_bytes(self) -> int:
        return self.yt_max_audio_size_mb * 1024 * 1024

    @property
    def max_video_bytes(self) -> int:
        return self.yt_max_video_size_mb * 1024 * 1024

    @property
    def max_image_bytes(self) -> int:
        return self.max_image_mb * 1024 * 1024

    @property
    def max_animated_sticker_bytes(self) -> int:
        return self.sticker_max_animated_kb * 1024

    @property
    def cookies_available(self) -> bool:
        return bool(self.yt_cookies_path and Path(self.yt_cookies_path).exists())

    def to_dict(self) -> dict:
        """Возвращает словарь с сериализуемыми полями (без секретов)."""
        allowed = {f.name for f in fields(self) if f.init}
        result: Dict[str, Any] = {}
        for k, v in asdict(self).items():
            if k not in allowed:
                continue
            if k == "yt_po_token":
                result[k] = "***" if v else None
            elif isinstance(v, Path):
                result[k] = str(v)
            else:
                result[k] = v
        return result

    @classmethod
    def from_env(cls, env_path: Union[str, Path] = ".env") -> "Config":
        """Загружает конфиг из .env и переменных окружения."""
        if Path(env_path).exists():
            load_dotenv(dotenv_path=env_path)

        try:
            config_dict: Dict[str, Any] = {
                "scratch_dir": Path(os.getenv("TEMP_FOLDER", str(DEFAULT_SCRATCH_DIR))),
                "ffmpeg_binary": os.getenv("FFMPEG_BINARY", "ffmpeg"),
                "ffprobe_binary": os.getenv("FFPROBE_BINARY", "ffprobe"),
                "ytdlp_binary": os.getenv("YTDLP_BINARY") or None,
                "tools_dir": Path(os.getenv("TOOLS_DIR", str(DEFAULT_TOOLS_DIR))),
                "yt_cookies_path": os.getenv("YT_COOKIES_PATH") or None,
                "yt_po_token": os.getenv("YT_PO_TOKEN") or None,
                "yt_max_audio_size_mb": int(os.getenv("YT_MAX_AUDIO_SIZE_MB", 500)),
                "yt_max_video_size_mb": int(os.getenv("YT_MAX_SIZE_MB", 2048)),
                "yt_max_duration_seconds": int(os.getenv("YT_MAX_DURATION_SECONDS", 3600)),
                "ytdlp_audio_timeout": float(os.getenv("YTDLP_AUDIO_TIMEOUT", YTDLP_AUDIO_TIMEOUT)),
                "ytdlp_video_timeout": float(os.getenv("YTDLP_VIDEO_TIMEOUT", YTDLP_VIDEO_TIMEOUT)),
                "http_timeout": float(os.getenv("HTTP_TIMEOUT", HTTP_TIMEOUT)),
                "transcode_timeout": float(os.getenv("TRANSCODE_TIMEOUT", TRANSCODE_TIMEOUT)),
                "sticker_size": int(os.getenv("STICKER_SIZE", STICKER_SIZE)),
                "sticker_max_animated_seconds": int(os.getenv("STICKER_MAX_ANIMATED_SECONDS", 30)),
                "sticker_max_animated_kb": int(os.getenv("STICKER_MAX_ANIMATED_KB", STICKER_MAX_ANIMATED_KB)),
                "sticker_author": os.getenv("STICKER_AUTHOR", "chatmedia"),
                "video_optimize_skip_mb": int(os.getenv("VIDEO_OPTIMIZE_SKIP_MB", 50)),
                "max_image_mb": int(os.getenv("MAX_IMAGE_MB", 16)),
                "fetch_attempts": int(os.getenv("FETCH_ATTEMPTS", 3)),
                "fetch_timeout": float(os.getenv("FETCH_TIMEOUT", FETCH_ATTEMPT_TIMEOUT)),
                "fetch_backoff": float(os.getenv("FETCH_BACKOFF", 1.0)),
                "min_media_bytes": int(os.getenv("MIN_MEDIA_BYTES", 100)),
                "cache_max_entries": int(os.getenv("CACHE_MAX_ENTRIES", 128)),
                "log_level": os.getenv("LOG_LEVEL", "INFO"),
                "enable_stickers": _parse_bool(os.getenv("FEATURE_STICKERS"), True),
                "enable_remote_download": _parse_bool(
                    os.getenv("FEATURE_YT_DOWNLOAD"), True
                ),
            }
            return cls(**config_dict)

        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e


def _parse_bool(value: Optional[Union[str, bool]], default: bool = False) -> bool:
    """Парсинг булевого значения из строки или bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes", "y", "on")


__all__ = [
    "Config",
    "YTDLP_AUDIO_TIMEOUT",
    "YTDLP_VIDEO_TIMEOUT",
    "TRANSCODE_TIMEOUT",
    "HTTP_TIMEOUT",
    "FETCH_ATTEMPT_TIMEOUT",
    "PROBE_TIMEOUT",
    "STICKER_SIZE",
    "STICKER_MAX_ANIMATED_KB",
    "STICKER_ENCODE_CLAMP_SECONDS",
    "STICKER_NAME_LIMIT",
]
