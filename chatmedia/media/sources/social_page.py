"""
Social page scraping strategy.

Pinterest pages embed the video location either in a JSON-LD block
(contentUrl) or as a plain v.pinimg.com link. The page is fetched, the
first candidate is picked and the mp4 is downloaded directly.
"""

import asyncio
import json
import re
from typing import Optional

import aiohttp
from loguru import logger

from ...config import HTTP_TIMEOUT
from ...exceptions import FetchFailed, MediaPipelineError
from ..models import RawMediaBuffer, StepResult
from .base import AcquisitionStrategy, ResolvedRequest

DESKTOP_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_LD_JSON_PATTERN = re.compile(
    r'<script[^>]*type="application/ld\+json"[^>]*>(\{[^<]+)</script>', re.IGNORECASE
)
_PINIMG_PATTERN = re.compile(r"https://v\d*\.pinimg\.com/videos/[^\"'\s]+?\.mp4")


def find_video_url(html: str) -> Optional[str]:
    """Ссылка на mp4 из JSON-LD или прямого упоминания в HTML."""
    match = _LD_JSON_PATTERN.search(html)
    if match:
        try:
            data = json.loads(match.group(1))
        except ValueError as e:
            logger.debug(f"Invalid JSON-LD on social page: {e}")
        else:
            if isinstance(data, dict):
                video = data.get("video") if isinstance(data.get("video"), dict) else {}
                url = data.get("contentUrl") or video.get("contentUrl")
                if url:
                    return url

    match = _PINIMG_PATTERN.search(html)
    return match.group(0) if match else None


class SocialPageStrategy(AcquisitionStrategy):
    """Скачивание видео со страницы Pinterest без yt-dlp."""

    name = "social-page"
    platforms = ("pinterest",)

    def __init__(self, timeout: float = HTTP_TIMEOUT, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self._session = session

    @property
    def available(self) -> bool:
        return True

    def supports(self, resolved: ResolvedRequest) -> bool:
        return resolved.platform in self.platforms

    async def _get_text(self, session: aiohttp.ClientSession, url: str) -> str:
        async with session.get(url, headers={"User-Agent": DESKTOP_USER_AGENT}) as response:
            response.raise_for_status()
            return await response.text()

    async def _get_bytes(self, session: aiohttp.ClientSession, url: str, max_bytes: int) -> bytes:
        """Тело ответа; SizeExceeded как только превышен лимит."""
        async with session.get(url, headers={"User-Agent": DESKTOP_USER_AGENT}) as response:
            response.raise_for_status()
            if response.content_length and response.content_length > max_bytes:
                raise self.size_exceeded(response.content_length, max_bytes)
            data = bytearray()
            async for chunk in response.content.iter_chunked(64 * 1024):
                data.extend(chunk)
                if len(data) > max_bytes:
                    raise self.size_exceeded(len(data), max_bytes)
            return bytes(data)

    async def _fetch(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        if self._session is not None:
            return await self._scrape(self._session, resolved)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._scrape(session, resolved)

    async def _scrape(self, session: aiohttp.ClientSession, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        html = await self._get_text(session, resolved.url)
        video_url = find_video_url(html)
        if not video_url:
            return StepResult.failure(
                FetchFailed("Could not find a video on this page", source=self.name)
            )

        data = await self._get_bytes(session, video_url, resolved.max_bytes)
        logger.info(f"📌 Downloaded {len(data)} bytes from {resolved.platform} page")
        return StepResult.success(RawMediaBuffer(data=data, container="mp4", method=self.name))

    async def acquire(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        try:
            return await self._fetch(resolved)
        except MediaPipelineError as e:
            return StepResult.failure(e)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Social page download failed for {resolved.video_id}: {type(e).__name__}: {e}")
            return StepResult.failure(FetchFailed("Could not download the social video", source=self.name))
