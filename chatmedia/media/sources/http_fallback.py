"""
Direct HTTP fallback strategy.

Fetches title metadata through a public oEmbed endpoint. It cannot
retrieve playable media, so it always ends with MethodNotSupported; the
title is attached to the error for diagnostics.
"""

from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from ...config import HTTP_TIMEOUT
from ...exceptions import MethodNotSupported
from ..models import RawMediaBuffer, StepResult
from .base import AcquisitionStrategy, ResolvedRequest

OEMBED_ENDPOINT = "https://noembed.com/embed"


class HttpFallbackStrategy(AcquisitionStrategy):
    """Последняя стратегия цепочки: только метаданные через oEmbed."""

    name = "http-oembed"

    def __init__(
        self,
        timeout: float = HTTP_TIMEOUT,
        endpoint: str = OEMBED_ENDPOINT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout = timeout
        self.endpoint = endpoint
        self._session = session

    @property
    def available(self) -> bool:
        return True

    def supports(self, resolved: ResolvedRequest) -> bool:
        # oEmbed-эндпоинт знает только видеоплощадку
        return resolved.is_youtube

    async def fetch_oembed(self, url: str) -> Optional[Dict[str, Any]]:
        """GET oEmbed JSON; None при любой сетевой ошибке."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        params = {"url": url}
        try:
            if self._session is not None:
                async with self._session.get(self.endpoint, params=params, timeout=timeout) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)

            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.endpoint, params=params) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)
        except Exception as e:
            logger.debug(f"oEmbed request failed: {type(e).__name__}: {e}")
            return None

    async def acquire(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        data = await self.fetch_oembed(resolved.url)
        title = (data or {}).get("title")
        if title:
            logger.info(f"oEmbed metadata for {resolved.video_id}: {title}")

        context: Dict[str, Any] = {"video_id": resolved.video_id}
        if title:
            context["title"] = title
        return StepResult.failure(
            MethodNotSupported(
                "Direct HTTP download is not supported; install yt-dlp to download media",
                source=self.name,
                context=context,
            )
        )
