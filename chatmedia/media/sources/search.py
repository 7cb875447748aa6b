"""
Video search and metadata lookup.

Resolves free-text queries to watch URLs and collects display metadata
(title, author, counters, thumbnail) through the yt_dlp library.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import yt_dlp
from loguru import logger

from ...config import HTTP_TIMEOUT
from ...utils import format_count, format_duration
from .video_id import extract_video_id, thumbnail_url, watch_url


@dataclass(slots=True)
class SearchHit:
    """Один результат поиска."""

    title: str
    url: str
    video_id: Optional[str] = None
    duration: Optional[float] = None
    views: Optional[int] = None
    author: Optional[str] = None

    @property
    def duration_label(self) -> str:
        return format_duration(self.duration)


@dataclass(slots=True)
class VideoMetadata:
    """Метаданные ролика для отображения пользователю."""

    video_id: str
    title: str
    author: str
    duration: Optional[float]
    views: str
    likes: str
    upload_date: Optional[str]
    thumbnail: str

    @property
    def duration_label(self) -> str:
        return format_duration(self.duration)

    @classmethod
    def from_info(cls, video_id: str, info: Dict[str, Any]) -> "VideoMetadata":
        upload_date = info.get("upload_date")
        if upload_date and len(upload_date) == 8 and upload_date.isdigit():
            upload_date = f"{upload_date[6:8]}/{upload_date[4:6]}/{upload_date[0:4]}"
        return cls(
            video_id=video_id,
            title=info.get("title") or "Unknown",
            author=info.get("uploader") or info.get("channel") or "Unknown",
            duration=info.get("duration"),
            views=format_count(info.get("view_count")),
            likes=format_count(info.get("like_count")),
            upload_date=upload_date,
            thumbnail=info.get("thumbnail") or thumbnail_url(video_id),
        )


class VideoSearch:
    """Поиск роликов через ytsearch yt_dlp (плоское извлечение, без загрузки)."""

    def __init__(
        self,
        timeout: float = HTTP_TIMEOUT * 3,
        ydl_factory: Optional[Callable[..., Any]] = None,
    ):
        self.timeout = timeout
        self._ydl_factory = ydl_factory

    def _factory(self) -> Callable[..., Any]:
        return self._ydl_factory or yt_dlp.YoutubeDL

    def _search_sync(self, query: str, limit: int) -> List[Dict[str, Any]]:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "extract_flat": True,
            "skip_download": True,
        }
        with self._factory()(opts) as ydl:
            result = ydl.extract_info(f"ytsearch{limit}:{query}", download=False) or {}
        return list(result.get("entries") or [])

    async def search(self, query: str, limit: int = 5) -> List[SearchHit]:
        """
        Поиск по свободному тексту.

        Returns:
            Список результатов (пустой при ошибке или таймауте)
        """
        query = (query or "").strip()
        if not query:
            return []

        try:
            entries = await asyncio.wait_for(
                asyncio.to_thread(self._search_sync, query, max(1, limit)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Search timed out after {self.timeout}s: {query[:50]}")
            return []
        except Exception as e:
            logger.warning(f"Search failed for '{query[:50]}': {e}")
            return []

        hits: List[SearchHit] = []
        for entry in entries:
            video_id = entry.get("id") or extract_video_id(entry.get("url") or "")
            if not video_id:
                continue
            hits.append(
                SearchHit(
                    title=entry.get("title") or "Untitled",
                    url=watch_url(video_id),
                    video_id=video_id,
                    duration=entry.get("duration"),
                    views=entry.get("view_count"),
                    author=entry.get("uploader") or entry.get("channel"),
                )
            )
        return hits

    async def first_url(self, query: str) -> Optional[str]:
        hits = await self.search(query, limit=1)
        return hits[0].url if hits else None
