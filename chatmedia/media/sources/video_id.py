"""
Video reference parsing.

Recognises watch, short-link, embed and shorts URLs as well as bare
11-character video IDs, plus links to the supported social platforms.
"""

import re
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit

_ID = r"([A-Za-z0-9_-]{11})"

# Компилируем один раз при импорте модуля
_ID_PATTERNS = (
    re.compile(rf"[?&]v={_ID}(?![A-Za-z0-9_-])"),
    re.compile(rf"youtu\.be/{_ID}(?![A-Za-z0-9_-])"),
    re.compile(rf"youtube(?:-nocookie)?\.com/embed/{_ID}(?![A-Za-z0-9_-])"),
    re.compile(rf"youtube\.com/shorts/{_ID}(?![A-Za-z0-9_-])"),
    re.compile(rf"youtube\.com/live/{_ID}(?![A-Za-z0-9_-])"),
)
_BARE_ID_PATTERN = re.compile(rf"^{_ID}$")
_VALID_URL_PATTERN = re.compile(
    r"^(https?://)?(www\.|m\.|music\.)?(youtube\.com|youtu\.be|youtube-nocookie\.com)/.+",
    re.IGNORECASE,
)
_URL_LIKE_PATTERN = re.compile(r"^(https?://|www\.)\S+$", re.IGNORECASE)
_SOCIAL_HOSTS = (
    ("pinterest", re.compile(r"(?:^|\.)(?:pinterest\.[a-z]{2,3}(?:\.[a-z]{2})?|pin\.it)$")),
    ("facebook", re.compile(r"(?:^|\.)(?:facebook\.com|fb\.com|fb\.watch)$")),
)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


@lru_cache(maxsize=1000)
def extract_video_id(text: Optional[str]) -> Optional[str]:
    """
    Извлечение 11-символьного ID видео.

    Поддерживает ?v=ID, youtu.be/ID, /embed/ID, /shorts/ID и голый ID.
    Голый ID обязан содержать цифру, "_" или "-", чтобы обычные
    английские слова из 11 букв не принимались за ID.
    Функция идемпотентна: extract_video_id(extract_video_id(x)) == extract_video_id(x).
    """
    if not text:
        return None
    text = text.strip()

    for pattern in _ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)

    match = _BARE_ID_PATTERN.match(text)
    if match and re.search(r"[0-9_-]", text):
        return match.group(1)

    return None


def is_valid_youtube_url(text: Optional[str]) -> bool:
    """Ссылка на поддерживаемый домен видеоплощадки."""
    return bool(text) and bool(_VALID_URL_PATTERN.match(text.strip()))


def looks_like_url(text: Optional[str]) -> bool:
    """Строка выглядит как ссылка, а не как поисковый запрос."""
    return bool(text) and bool(_URL_LIKE_PATTERN.match(text.strip()))


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=video_id)


def thumbnail_url(video_id: str) -> str:
    return THUMBNAIL_URL.format(video_id=video_id)


def _with_scheme(text: str) -> str:
    text = text.strip()
    if not re.match(r"^https?://", text, re.IGNORECASE):
        text = f"https://{text}"
    return text


def social_platform(text: Optional[str]) -> Optional[str]:
    """
    Площадка соцсети по домену ссылки.

    Returns:
        "pinterest", "facebook" или None для прочих ссылок
    """
    if not text or not text.strip() or re.search(r"\s", text.strip()):
        return None
    try:
        host = (urlsplit(_with_scheme(text)).hostname or "").lower()
    except ValueError:
        return None
    for platform, pattern in _SOCIAL_HOSTS:
        if pattern.search(host):
            return platform
    return None


def social_url(text: str) -> str:
    """Ссылка со схемой и без фрагмента."""
    parts = urlsplit(_with_scheme(text))
    return parts._replace(fragment="").geturl()


def social_video_key(text: str, platform: str) -> str:
    """Ключ вида <площадка>:<последний сегмент пути> для логов и кэша."""
    parts = urlsplit(_with_scheme(text))
    segments = [s for s in parts.path.split("/") if s]
    return f"{platform}:{segments[-1] if segments else parts.hostname}"
