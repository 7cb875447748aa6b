import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from rich import print as rprint

# Компилируем один раз при импорте модуля
_FILENAME_SANITIZE_PATTERN = re.compile(r'[\\/*?:"<>|&!]')

RESERVED_WINDOWS_NAMES = frozenset(
    {
        "CON",
        "PRN",
        "AUX",
        "NUL",
        "COM1",
        "COM2",
        "COM3",
        "COM4",
        "LPT1",
        "LPT2",
        "LPT3",
    }
)

NOISY_LIBRARIES = ("asyncio", "PIL", "aiohttp", "urllib3")


def setup_logging(log_level: str = "INFO", log_file: Optional[Union[str, Path]] = None):
    """
    Настройка логирования.

    - Асинхронное логирование в файл с ротацией (если указан log_file)
    - Консольное логирование только WARNING и ERROR через rich
    - Внешние библиотеки приглушены до WARNING
    """
    logger.remove()

    try:
        if log_file:
            logger.add(
                Path(log_file).resolve(),
                level=log_level,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
                enqueue=True,  # Асинхронная запись
                backtrace=True,
                diagnose=False,
                rotation="10 MB",
                retention="3 days",
                compression="gz",
            )

        # Консольное логирование (только WARNING и ERROR)
        logger.add(
            lambda msg: rprint(msg, end=""),
            level="WARNING",
            format="{time:HH:mm:ss} | {level: <8} | {message}",
            colorize=False,
        )

        logger.info(
            f"Logging initialized (console: WARNING+, file: {log_level}+ -> {log_file or 'disabled'})"
        )
    except Exception as e:
        logger.error(f"Failed to configure logging: {e}")

    for lib_name in NOISY_LIBRARIES:
        logging.getLogger(lib_name).setLevel(logging.WARNING)


@lru_cache(maxsize=1000)
def sanitize_filename(text: str, max_length: int = 120, replacement: str = "") -> str:
    """
    Санитизация имён файлов с кэшированием.

    Используется для названий роликов, которые приходят от площадки как есть.
    """
    if not text:
        return "Untitled"

    text = _FILENAME_SANITIZE_PATTERN.sub(replacement, text)
    text = text.strip(". ")

    if text.upper() in RESERVED_WINDOWS_NAMES:
        text = f"{text}_file"

    # Обрезка по словам
    if len(text) > max_length:
        cutoff = text[:max_length].rfind(" ")
        text = text[:cutoff] if cutoff > max_length // 2 else text[:max_length]

    return text or "Untitled"


def format_count(value: Optional[Union[int, float, str]]) -> str:
    """Компактное представление счётчиков: 1500 -> 1.5K, 2300000 -> 2.3M."""
    if value in (None, "", "NA"):
        return "0"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0"
    if number >= 1_000_000:
        return f"{number / 1_000_000:.1f}M"
    if number >= 1_000:
        return f"{number / 1_000:.1f}K"
    return str(int(number))


def format_duration(seconds: Optional[Union[int, float]]) -> str:
    """Длительность в виде M:SS или H:MM:SS."""
    if not seconds:
        return "0:00"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def ensure_dir_exists(path: Path):
    """Создание директории с логированием ошибки."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        raise


__all__ = [
    "logger",
    "setup_logging",
    "sanitize_filename",
    "format_count",
    "format_duration",
    "ensure_dir_exists",
]
