"""
Video source acquirer.

Resolves a URL, bare ID or free-text query to a canonical watch URL and
walks the ordered strategy chain until one strategy produces media.
"""

from typing import List, Optional, Sequence

from loguru import logger

from ...exceptions import (
    AllStrategiesExhausted,
    InvalidReference,
    MediaPipelineError,
    MethodNotSupported,
)
from ..cache import BoundedCache
from ..models import AcquisitionAttemptLog, MediaRequest, RawMediaBuffer, SourceKind, StepResult
from .base import AcquisitionStrategy, ResolvedRequest
from .search import VideoSearch
from .video_id import (
    extract_video_id,
    looks_like_url,
    social_platform,
    social_url,
    social_video_key,
    watch_url,
)


def is_terminal(error: MediaPipelineError) -> bool:
    """Ошибка, после которой следующая стратегия не поможет."""
    return not error.retryable and not isinstance(error, MethodNotSupported)


class VideoSourceAcquirer:
    """Упорядоченная цепочка стратегий с остановкой на первом успехе."""

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        search: Optional[VideoSearch] = None,
        cache: Optional[BoundedCache] = None,
    ):
        self.strategies: List[AcquisitionStrategy] = list(strategies)
        self.search = search
        self.cache = cache
        # Журнал последнего прохода для диагностики; при параллельных запросах побеждает последний
        self.last_attempts: Optional[AcquisitionAttemptLog] = None

        # Статистика
        self._successes_by_strategy = {s.name: 0 for s in self.strategies}
        self._failures = 0

    async def resolve(self, request: MediaRequest) -> StepResult[ResolvedRequest]:
        """
        Разрешение ссылки или запроса в канонический URL.

        Некорректная ссылка отклоняется без сетевых вызовов.
        """
        text = str(request.payload or "").strip()
        if not text:
            return StepResult.failure(InvalidReference("Please provide a video link or search query"))

        if request.source_kind == SourceKind.SOCIAL_URL:
            return self._resolve_social(request, text)

        video_id = extract_video_id(text)
        if video_id:
            return StepResult.success(ResolvedRequest(request, watch_url(video_id), video_id))

        if looks_like_url(text) or request.source_kind == SourceKind.REMOTE_URL:
            return StepResult.failure(InvalidReference("Invalid video link", reference=text))

        if self.search is None:
            return StepResult.failure(InvalidReference("Search is not available", reference=text))

        cache_key = ("search", text.lower())
        url = self.cache.get(cache_key) if self.cache is not None else None
        if url is None:
            url = await self.search.first_url(text)
            if url is None:
                return StepResult.failure(
                    InvalidReference("Nothing found for this query", reference=text)
                )
            if self.cache is not None:
                self.cache.set(cache_key, url)

        video_id = extract_video_id(url)
        if not video_id:
            return StepResult.failure(InvalidReference("Search returned an invalid link", reference=url))
        logger.info(f"Query '{text[:50]}' resolved to {video_id}")
        return StepResult.success(ResolvedRequest(request, watch_url(video_id), video_id))

    @staticmethod
    def _resolve_social(request: MediaRequest, text: str) -> StepResult[ResolvedRequest]:
        """Ссылка соцсети; ссылки видеоплощадки тоже принимаются."""
        platform = social_platform(text)
        if platform is not None:
            return StepResult.success(
                ResolvedRequest(request, social_url(text), social_video_key(text, platform), platform)
            )

        video_id = extract_video_id(text)
        if video_id and looks_like_url(text):
            return StepResult.success(ResolvedRequest(request, watch_url(video_id), video_id))
        return StepResult.failure(InvalidReference("Unsupported social video link", reference=text))

    async def acquire_resolved(self, resolved: ResolvedRequest) -> StepResult[RawMediaBuffer]:
        """Проход по цепочке стратегий для уже разрешённого запроса."""
        log = AcquisitionAttemptLog()
        self.last_attempts = log
        last_error: Optional[MediaPipelineError] = None

        for strategy in self.strategies:
            if not strategy.available:
                log.record(strategy.name, "unavailable")
                continue
            if not strategy.supports(resolved):
                log.record(strategy.name, "unsupported host")
                continue

            try:
                result = await strategy.acquire(resolved)
            except Exception as e:
                logger.exception(f"Strategy {strategy.name} raised unexpectedly: {e}")
                log.record(strategy.name, f"unexpected {type(e).__name__}")
                continue

            if result.ok:
                log.record(strategy.name)
                buffer = result.value
                buffer.method = buffer.method or strategy.name
                self._successes_by_strategy[strategy.name] = (
                    self._successes_by_strategy.get(strategy.name, 0) + 1
                )
                logger.info(f"✅ Acquired {resolved.video_id} via {strategy.name} ({log.summary()})")
                return result

            error = result.error
            log.record(strategy.name, error)
            last_error = error
            logger.info(f"Strategy {strategy.name} failed for {resolved.video_id}: {error}")

            if is_terminal(error):
                self._failures += 1
                return StepResult.failure(error)

        self._failures += 1
        detail = f" ({last_error.user_message})" if last_error is not None else ""
        logger.warning(f"All strategies failed for {resolved.video_id}: {log.summary()}")
        return StepResult.failure(
            AllStrategiesExhausted(
                f"All download methods failed{detail}",
                attempts=log.attempts,
                context={"video_id": resolved.video_id},
            )
        )

    async def acquire(self, request: MediaRequest) -> StepResult[RawMediaBuffer]:
        """acquire(request) -> RawMediaBuffer | Error."""
        resolved = await self.resolve(request)
        if not resolved.ok:
            self.last_attempts = AcquisitionAttemptLog()
            return StepResult.failure(resolved.error)
        return await self.acquire_resolved(resolved.value)

    def get_statistics(self) -> dict:
        return {
            "strategies": [
                {"name": s.name, "available": s.available} for s in self.strategies
            ],
            "successes": dict(self._successes_by_strategy),
            "failures": self._failures,
        }
