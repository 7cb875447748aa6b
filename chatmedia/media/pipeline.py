"""
Media pipeline orchestrator.

Composes the protocol fetcher, the video source acquirer, the media
processors and the sticker packer behind the public pipeline API.
Every operation walks RECEIVED -> ACQUIRING -> TRANSCODING -> PACKING ->
DONE (or FAILED) and returns a structured PipelineResult.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import aiohttp
from loguru import logger

from ..config import Config
from ..exceptions import (
    FetchFailed,
    InvalidReference,
    MediaPipelineError,
    SizeExceeded,
    UndersizedResult,
)
from ..retry_manager import METADATA_LOOKUP_CONFIG, BackoffStrategy, RetryConfig, SmartRetryManager
from .cache import BoundedCache
from .fetcher import (
    AttachmentSource,
    ProtocolMediaFetcher,
    detect_view_once,
    locate_media_container,
    media_class_of,
)
from .metadata import MetadataExtractor
from .models import (
    MediaAsset,
    MediaConstraints,
    MediaRequest,
    PipelineResult,
    PipelineRun,
    PipelineState,
    SourceKind,
    TargetKind,
)
from .processors import AudioProcessor, ImageProcessor, VideoProcessor
from .sources import (
    HttpFallbackStrategy,
    SearchHit,
    SocialPageStrategy,
    VideoMetadata,
    VideoSearch,
    VideoSourceAcquirer,
    YtDlpBinaryStrategy,
    YtDlpLibraryStrategy,
    extract_video_id,
    watch_url,
)
from .sticker import StickerPacker, derive_pack_name
from .temp_files import ScratchSpace
from .tools import ToolCapabilities
from .transcoder import Transcoder, clamp_animated_duration
from .validators import MediaValidator, detect_container, mime_type_for

# Порядок состояний; PACKING может быть пропущен
_STATE_ORDER = (
    PipelineState.RECEIVED,
    PipelineState.ACQUIRING,
    PipelineState.TRANSCODING,
    PipelineState.PACKING,
    PipelineState.DONE,
)

VIEW_ONCE_KINDS = ("image", "video", "audio", "sticker")

GENERIC_FAILURE = "Failed to process media"


class MediaPipeline:
    """
    Главный оркестратор медиа-конвейера.

    Все коллабораторы создаются из конфигурации и могут быть переданы
    явно (тесты, альтернативные источники вложений).
    """

    def __init__(
        self,
        config: Config,
        attachment_source: Optional[AttachmentSource] = None,
        *,
        scratch: Optional[ScratchSpace] = None,
        transcoder: Optional[Transcoder] = None,
        packer: Optional[StickerPacker] = None,
        acquirer: Optional[VideoSourceAcquirer] = None,
        fetcher: Optional[ProtocolMediaFetcher] = None,
        cache: Optional[BoundedCache] = None,
        search: Optional[VideoSearch] = None,
        metadata_extractor: Optional[MetadataExtractor] = None,
        retry_manager: Optional[SmartRetryManager] = None,
        capabilities: Optional[ToolCapabilities] = None,
    ):
        """
        Инициализация конвейера.

        Args:
            config: Конфигурация конвейера
            attachment_source: Источник вложений чат-протокола (опционально)
            scratch: Каталог временных файлов
            transcoder: Обёртка над ffmpeg
            packer: Запись метаданных стикеров
            acquirer: Цепочка стратегий загрузки с видеоплощадки
            fetcher: Загрузчик вложений протокола
            cache: Ограниченный кэш (поиск, метаданные)
            search: Поиск роликов
            metadata_extractor: ffprobe
            retry_manager: Менеджер повторов для запросов метаданных
            capabilities: Детектор кодеров ffmpeg
        """
        self.config = config
        self.cache = cache or BoundedCache(config.cache_max_entries, name="pipeline")
        self.scratch = scratch or ScratchSpace(config.scratch_dir)
        self.transcoder = transcoder or Transcoder(config.ffmpeg_binary, config.transcode_timeout)
        self.packer = packer or StickerPacker(author=config.sticker_author)
        self.search = search or VideoSearch(timeout=config.http_timeout * 3)
        self.metadata_extractor = metadata_extractor or MetadataExtractor(config.ffprobe_binary)
        self.retry_manager = retry_manager or SmartRetryManager(METADATA_LOOKUP_CONFIG)
        self.validator = MediaValidator(config.min_media_bytes)
        self.capabilities = capabilities or ToolCapabilities(config.ffmpeg_binary)

        if acquirer is None:
            acquirer = VideoSourceAcquirer(
                self._default_strategies(), search=self.search, cache=self.cache
            )
        self.acquirer = acquirer

        if fetcher is None and attachment_source is not None:
            fetcher = ProtocolMediaFetcher(
                attachment_source,
                retry_config=RetryConfig(
                    max_attempts=config.fetch_attempts,
                    base_delay=config.fetch_backoff,
                    max_delay=config.fetch_backoff,
                    strategy=BackoffStrategy.FIXED,
                    jitter=False,
                    attempt_timeout=config.fetch_timeout,
                ),
                min_bytes=config.min_media_bytes,
            )
        self.fetcher = fetcher

        processor_args = (self.transcoder, self.scratch, config, self.metadata_extractor)
        self.image = ImageProcessor(*processor_args)
        self.video = VideoProcessor(*processor_args)
        self.audio = AudioProcessor(*processor_args)

        # Стратегия библиотеки используется и для запроса метаданных
        self._library = next(
            (s for s in self.acquirer.strategies if isinstance(s, YtDlpLibraryStrategy)), None
        ) or YtDlpLibraryStrategy(
            self.scratch, cookies_path=config.yt_cookies_path, timeout=config.http_timeout * 3
        )

        # Последний запуск для диагностики; при параллельных вызовах побеждает последний
        self.last_run: Optional[PipelineRun] = None

        # Статистика
        self._requests_total = 0
        self._requests_succeeded = 0
        self._requests_failed = 0
        self._failures_by_type: Dict[str, int] = {}

        logger.info("MediaPipeline initialized")

    def _default_strategies(self) -> List[Any]:
        config = self.config
        return [
            YtDlpBinaryStrategy(
                self.scratch,
                binary=config.ytdlp_binary,
                tools_dir=config.tools_dir,
                cookies_path=config.yt_cookies_path,
                po_token=config.yt_po_token,
                audio_timeout=config.ytdlp_audio_timeout,
                video_timeout=config.ytdlp_video_timeout,
            ),
            YtDlpLibraryStrategy(
                self.scratch,
                cookies_path=config.yt_cookies_path,
                timeout=config.ytdlp_video_timeout,
            ),
            SocialPageStrategy(timeout=config.http_timeout),
            HttpFallbackStrategy(timeout=config.http_timeout),
        ]

    # ------------------------------------------------------------------
    # Жизненный цикл запроса
    # ------------------------------------------------------------------

    @staticmethod
    def _advance(run: PipelineRun, state: PipelineState) -> None:
        """Переход только вперёд по _STATE_ORDER."""
        if state != PipelineState.FAILED:
            current = _STATE_ORDER.index(run.state)
            target = _STATE_ORDER.index(state)
            if target <= current:
                raise RuntimeError(
                    f"Illegal pipeline transition {run.state.value} -> {state.value}"
                )
        run.state = state
        run.history.append(state)
        logger.debug(f"[{run.request_id}] {run.operation}: {state.value}")

    async def _execute(
        self,
        operation: str,
        body: Callable[[PipelineRun], Awaitable[MediaAsset]],
    ) -> PipelineResult:
        """
        Выполнить тело операции на внешней границе конвейера.

        Типизированные ошибки превращаются в PipelineResult с их сообщением,
        неожиданные исключения логируются с трассировкой и отдаются наружу
        как общее сообщение без путей.
        """
        run = PipelineRun(request_id=uuid.uuid4().hex[:8], operation=operation)
        self.last_run = run
        self._requests_total += 1

        try:
            asset = await body(run)
        except MediaPipelineError as e:
            return self._fail(run, e, e)
        except Exception as e:
            logger.exception(f"[{run.request_id}] Unexpected error in {operation}: {e}")
            return self._fail(run, e, MediaPipelineError(GENERIC_FAILURE))

        self._advance(run, PipelineState.DONE)
        self._requests_succeeded += 1
        logger.info(
            f"✅ [{run.request_id}] {operation} done: {asset.size_bytes} bytes in {run.elapsed:.2f}s"
        )
        return PipelineResult.from_asset(asset)

    def _fail(self, run: PipelineRun, cause: Exception, reported: MediaPipelineError) -> PipelineResult:
        run.failure_reason = reported.user_message
        self._advance(run, PipelineState.FAILED)
        self._requests_failed += 1
        error_type = type(cause).__name__
        self._failures_by_type[error_type] = self._failures_by_type.get(error_type, 0) + 1
        logger.warning(f"⚠️ [{run.request_id}] {run.operation} failed: {cause}")
        return PipelineResult.from_error(reported)

    @staticmethod
    def _enforce_size(asset: MediaAsset, constraints: MediaConstraints) -> MediaAsset:
        if asset.size_bytes > constraints.max_bytes:
            raise SizeExceeded(
                "Result is too large to send",
                size_bytes=asset.size_bytes,
                max_bytes=constraints.max_bytes,
            )
        return asset

    @staticmethod
    def _require_input(data: Optional[bytes]) -> bytes:
        if not data:
            raise InvalidReference("No media data provided")
        return data

    def _check_plausible(self, data: bytes) -> None:
        if not self.validator.is_plausible(data):
            raise UndersizedResult(
                "Downloaded media is empty or corrupted",
                size_bytes=len(data or b""),
                min_bytes=self.validator.min_bytes,
            )

    def _require_stickers(self) -> None:
        if not self.config.enable_stickers:
            raise MediaPipelineError("Sticker creation is disabled")

    def _require_remote(self) -> None:
        if not self.config.enable_remote_download:
            raise MediaPipelineError("Video downloads are disabled")

    def _require_fetcher(self) -> ProtocolMediaFetcher:
        if self.fetcher is None:
            raise FetchFailed("Attachment downloads are not configured", retryable=False)
        return self.fetcher

    def _local_request(self, data: bytes, target: TargetKind, constraints: MediaConstraints) -> MediaRequest:
        return MediaRequest(
            source_kind=SourceKind.PROTOCOL_ATTACHMENT,
            payload=self._require_input(data),
            target_kind=target,
            constraints=constraints,
        )

    # ------------------------------------------------------------------
    # Вложения протокола
    # ------------------------------------------------------------------

    async def download_media(self, attachment_ref: Any, media_class: str = "image") -> Optional[bytes]:
        """
        Загрузить вложение протокола.

        Returns:
            Байты медиа или None при любой ошибке
        """
        if self.fetcher is None:
            logger.error("download_media called without an attachment source")
            return None

        result = await self.fetcher.fetch(attachment_ref, media_class)
        if not result.ok:
            logger.warning(f"Failed to download {media_class}: {result.error}")
            return None
        return result.value

    async def download_message_media(self, message: Mapping) -> Optional[bytes]:
        """Загрузить медиа из (возможно обёрнутого) сообщения."""
        if self.fetcher is None:
            logger.error("download_message_media called without an attachment source")
            return None

        result = await self.fetcher.fetch_message(message)
        if not result.ok:
            logger.warning(f"Failed to download message media: {result.error}")
            return None
        return result.value

    async def extract_view_once_content(self, message: Mapping) -> PipelineResult:
        """Содержимое одноразового сообщения (изображение, видео, аудио, стикер)."""

        async def body(run: PipelineRun) -> MediaAsset:
            inner = detect_view_once(message)
            if inner is None:
                raise InvalidReference("Not a view-once message")

            container = locate_media_container(inner)
            kind = media_class_of(container) if container is not None else None
            if kind not in VIEW_ONCE_KINDS:
                raise InvalidReference("Unsupported view-once type")

            fetcher = self._require_fetcher()
            self._advance(run, PipelineState.ACQUIRING)
            data = (await fetcher.fetch(container, kind)).unwrap()

            mime_type = str(container.get("mimetype") or "") or mime_type_for(detect_container(data))
            asset = MediaAsset(data=data, mime_type=mime_type, media_kind=kind)
            return self._enforce_size(asset, MediaConstraints(max_bytes=self.config.max_video_bytes))

        return await self._execute("extract_view_once_content", body)

    # ------------------------------------------------------------------
    # Стикеры
    # ------------------------------------------------------------------

    async def create_sticker_from_image(self, data: bytes, user_name: Optional[str] = None) -> PipelineResult:
        """Изображение -> статичный WEBP стикер 512x512 с метаданными набора."""

        async def body(run: PipelineRun) -> MediaAsset:
            self._require_stickers()
            request = self._local_request(
                data,
                TargetKind.STATIC_STICKER,
                MediaConstraints(
                    max_bytes=self.config.max_image_bytes,
                    target_dimension=self.config.sticker_size,
                ),
            )
            if not self.validator.is_valid_image(request.payload):
                raise InvalidReference("Unsupported or corrupted image")

            self._advance(run, PipelineState.TRANSCODING)
            webp = (await self.image.to_static_sticker(request.payload)).unwrap()

            self._advance(run, PipelineState.PACKING)
            pack_name = derive_pack_name(user_name)
            packed = await self.packer.pack(
                webp, pack_name, max_bytes=request.constraints.max_bytes
            )

            asset = MediaAsset(
                data=packed,
                mime_type="image/webp",
                pack_name=pack_name,
                author_name=self.packer.author,
            )
            return self._enforce_size(asset, request.constraints)

        return await self._execute("create_sticker_from_image", body)

    async def create_animated_sticker_from_video(
        self,
        data: bytes,
        max_duration_seconds: Optional[float] = None,
        user_name: Optional[str] = None,
    ) -> PipelineResult:
        """
        Видео/GIF -> анимированный WEBP стикер.

        Длинные ролики обрезаются до допустимой длительности; результат
        не превышает sticker_max_animated_kb.
        """

        async def body(run: PipelineRun) -> MediaAsset:
            self._require_stickers()
            cap = self.config.sticker_max_animated_seconds
            requested = min(max_duration_seconds, cap) if max_duration_seconds else cap
            request = self._local_request(
                data,
                TargetKind.ANIMATED_STICKER,
                MediaConstraints(
                    max_bytes=self.config.max_animated_sticker_bytes,
                    max_duration_seconds=requested,
                    target_dimension=self.config.sticker_size,
                ),
            )

            self._advance(run, PipelineState.TRANSCODING)
            webp = (
                await self.video.to_animated_sticker(request.payload, requested)
            ).unwrap()

            self._advance(run, PipelineState.PACKING)
            pack_name = derive_pack_name(user_name)
            packed = await self.packer.pack(
                webp, pack_name, max_bytes=request.constraints.max_bytes
            )

            asset = MediaAsset(
                data=packed,
                mime_type="image/webp",
                pack_name=pack_name,
                author_name=self.packer.author,
                duration_seconds=clamp_animated_duration(requested, cap),
            )
            return self._enforce_size(asset, request.constraints)

        return await self._execute("create_animated_sticker_from_video", body)

    async def convert_sticker_to_image(self, data: bytes) -> PipelineResult:
        """WEBP стикер -> PNG."""

        async def body(run: PipelineRun) -> MediaAsset:
            request = self._local_request(
                data, TargetKind.IMAGE, MediaConstraints(max_bytes=self.config.max_image_bytes)
            )
            self._advance(run, PipelineState.TRANSCODING)
            png = (await self.image.sticker_to_image(request.payload)).unwrap()
            return self._enforce_size(MediaAsset(data=png, mime_type="image/png"), request.constraints)

        return await self._execute("convert_sticker_to_image", body)

    # ------------------------------------------------------------------
    # Аудио
    # ------------------------------------------------------------------

    async def convert_video_to_audio(self, data: bytes) -> PipelineResult:
        """Дорожка звука из видео -> MP3."""

        async def body(run: PipelineRun) -> MediaAsset:
            request = self._local_request(
                data, TargetKind.AUDIO_FILE, MediaConstraints(max_bytes=self.config.max_audio_bytes)
            )
            self._advance(run, PipelineState.TRANSCODING)
            mp3 = (await self.audio.extract_from_video(request.payload)).unwrap()
            return self._enforce_size(MediaAsset(data=mp3, mime_type="audio/mpeg"), request.constraints)

        return await self._execute("convert_video_to_audio", body)

    async def convert_audio_to_voice_note(self, data: bytes) -> PipelineResult:
        """Аудио -> голосовое сообщение (Opus/OGG, при недоступности MP3)."""

        async def body(run: PipelineRun) -> MediaAsset:
            request = self._local_request(
                data, TargetKind.VOICE_NOTE, MediaConstraints(max_bytes=self.config.max_audio_bytes)
            )
            self._advance(run, PipelineState.TRANSCODING)
            voice = (await self.audio.to_voice_note(request.payload)).unwrap()
            asset = MediaAsset(data=voice, mime_type=mime_type_for(detect_container(voice)))
            return self._enforce_size(asset, request.constraints)

        return await self._execute("convert_audio_to_voice_note", body)

    async def apply_audio_effect(self, data: bytes, effect: str) -> PipelineResult:
        """Применить именованный аудиоэффект (bass, echo, reverse, ...)."""

        async def body(run: PipelineRun) -> MediaAsset:
            request = self._local_request(
                data, TargetKind.AUDIO_FILE, MediaConstraints(max_bytes=self.config.max_audio_bytes)
            )
            self._advance(run, PipelineState.TRANSCODING)
            output = (await self.audio.apply_effect(request.payload, effect)).unwrap()
            return self._enforce_size(MediaAsset(data=output, mime_type="audio/mpeg"), request.constraints)

        return await self._execute("apply_audio_effect", body)

    # ------------------------------------------------------------------
    # Видеоплощадка
    # ------------------------------------------------------------------

    async def download_remote_audio(self, url_or_query: str) -> PipelineResult:
        """Ссылка, ID или поисковый запрос -> MP3 с названием и методом загрузки."""

        async def body(run: PipelineRun) -> MediaAsset:
            self._require_remote()
            request = MediaRequest.for_remote(
                url_or_query,
                TargetKind.AUDIO_FILE,
                MediaConstraints(
                    max_bytes=self.config.max_audio_bytes,
                    max_duration_seconds=self.config.yt_max_duration_seconds,
                ),
            )

            self._advance(run, PipelineState.ACQUIRING)
            buffer = (await self.acquirer.acquire(request)).unwrap()
            self._check_plausible(buffer.data)

            data = buffer.data
            if buffer.container != "mp3":
                self._advance(run, PipelineState.TRANSCODING)
                data = (await self.audio.to_mp3(buffer.data, buffer.container)).unwrap()

            asset = MediaAsset(
                data=data,
                mime_type="audio/mpeg",
                title=buffer.title,
                method=buffer.method,
                duration_seconds=buffer.duration_seconds,
            )
            return self._enforce_size(asset, request.constraints)

        return await self._execute("download_remote_audio", body)

    def _video_constraints(self) -> MediaConstraints:
        return MediaConstraints(
            max_bytes=self.config.max_video_bytes,
            max_duration_seconds=self.config.yt_max_duration_seconds,
        )

    async def _deliver_video(self, run: PipelineRun, request: MediaRequest) -> MediaAsset:
        """
        Загрузка видео по запросу и подготовка MP4 для чата.

        Файлы до video_optimize_skip_mb перекодируются в совместимый с чатом
        MP4; при ошибке перекодирования возвращается исходная загрузка.
        """
        self._advance(run, PipelineState.ACQUIRING)
        buffer = (await self.acquirer.acquire(request)).unwrap()
        self._check_plausible(buffer.data)

        data = buffer.data
        container = buffer.container
        skip_bytes = self.config.video_optimize_skip_mb * 1024 * 1024
        if buffer.size_bytes <= skip_bytes or container != "mp4":
            self._advance(run, PipelineState.TRANSCODING)
            optimized = await self.video.optimize_for_chat(buffer.data, container)
            if optimized.ok:
                data = optimized.value
                container = "mp4"
            else:
                logger.warning(f"Video optimization failed, sending original: {optimized.error}")
        else:
            logger.info(
                f"Skipping optimization for {buffer.size_bytes / 1024 / 1024:.1f}MB mp4"
            )

        asset = MediaAsset(
            data=data,
            mime_type=mime_type_for(container),
            title=buffer.title,
            method=buffer.method,
            duration_seconds=buffer.duration_seconds,
        )
        return self._enforce_size(asset, request.constraints)

    async def download_remote_video(self, url_or_query: str) -> PipelineResult:
        """Ссылка, ID или поисковый запрос -> MP4."""

        async def body(run: PipelineRun) -> MediaAsset:
            self._require_remote()
            request = MediaRequest.for_remote(
                url_or_query, TargetKind.VIDEO_FILE, self._video_constraints()
            )
            return await self._deliver_video(run, request)

        return await self._execute("download_remote_video", body)

    async def download_social_video(self, url: str) -> PipelineResult:
        """Ссылка Pinterest или Facebook -> MP4 с теми же ограничениями, что и для видеоплощадки."""

        async def body(run: PipelineRun) -> MediaAsset:
            self._require_remote()
            request = MediaRequest.for_social(url, self._video_constraints())
            return await self._deliver_video(run, request)

        return await self._execute("download_social_video", body)

    async def fetch_buffer(self, url: str) -> Optional[bytes]:
        """Байты по внешней ссылке (например, превью); None при любой ошибке."""
        timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    response.raise_for_status()
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Could not fetch {url}: {type(e).__name__}: {e}")
            return None

    async def search_videos(self, query: str, limit: int = 5) -> List[SearchHit]:
        """Поиск роликов; пустой список при ошибке или выключенной функции."""
        if not self.config.enable_remote_download:
            return []
        return await self.search.search(query, limit)

    async def get_video_metadata(self, url_or_id: str) -> Optional[VideoMetadata]:
        """Метаданные ролика (название, автор, счётчики); кэшируются по ID."""
        video_id = extract_video_id(url_or_id)
        if not video_id:
            return None

        cache_key = ("metadata", video_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            info = await self.retry_manager.retry_async(
                self._library.extract_info,
                "video_metadata",
                METADATA_LOOKUP_CONFIG,
                watch_url(video_id),
            )
        except Exception as e:
            logger.warning(f"Metadata lookup failed for {video_id}: {type(e).__name__}: {e}")
            return None

        metadata = VideoMetadata.from_info(video_id, info or {})
        self.cache.set(cache_key, metadata)
        return metadata

    # ------------------------------------------------------------------
    # Обслуживание
    # ------------------------------------------------------------------

    def clear_cache(self) -> int:
        cleared = self.cache.clear()
        logger.info(f"🔄 Pipeline cache cleared ({cleared} entries)")
        return cleared

    async def health_check(self) -> Dict[str, Any]:
        """Доступность ffmpeg, его кодеров и стратегий загрузки."""
        return {
            "ffmpeg": await self.transcoder.health_check(),
            "encoders": dict(await self.capabilities.detect()),
            "sticker_metadata": self.packer.available,
            "strategies": {s.name: s.available for s in self.acquirer.strategies},
        }

    def get_stats(self) -> Dict[str, Any]:
        """
        Сводная статистика конвейера.

        Returns:
            Словарь с размером кэша, флагами функций, лимитами и статистикой компонентов
        """
        return {
            "cache_size": len(self.cache),
            "features": {
                "stickers": self.config.enable_stickers,
                "remote_download": self.config.enable_remote_download,
            },
            "limits": {
                "max_video_size_mb": self.config.yt_max_video_size_mb,
                "max_audio_size_mb": self.config.yt_max_audio_size_mb,
                "max_duration_seconds": self.config.yt_max_duration_seconds,
                "sticker_size": self.config.sticker_size,
                "sticker_max_animated_seconds": self.config.sticker_max_animated_seconds,
                "sticker_max_animated_kb": self.config.sticker_max_animated_kb,
            },
            "requests": {
                "total": self._requests_total,
                "succeeded": self._requests_succeeded,
                "failed": self._requests_failed,
                "failures_by_type": dict(self._failures_by_type),
            },
            "components": {
                "cache": self.cache.get_statistics(),
                "scratch": self.scratch.get_statistics(),
                "transcoder": self.transcoder.get_statistics(),
                "packer": self.packer.get_statistics(),
                "acquirer": self.acquirer.get_statistics(),
                "fetcher": self.fetcher.get_statistics() if self.fetcher else None,
                "image": self.image.get_statistics(),
                "video": self.video.get_statistics(),
                "audio": self.audio.get_statistics(),
            },
        }

    def log_statistics(self) -> None:
        stats = self.get_stats()
        logger.info(
            f"Pipeline stats: {stats['requests']['succeeded']}/{stats['requests']['total']} succeeded, "
            f"cache {stats['cache_size']} entries"
        )
        self.transcoder.log_statistics()
        for processor in (self.image, self.video, self.audio):
            processor.log_statistics()
