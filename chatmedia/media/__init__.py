"""
Media pipeline module.

Turns protocol attachments, remote video references and raw bytes into
chat-ready stickers, images, audio and video.

Main components:
- MediaPipeline: Main orchestrator for media operations
- ProtocolMediaFetcher: Attachment download with bounded retries
- VideoSourceAcquirer: Ordered fallback chain for remote videos
- Transcoder: ffmpeg wrapper with reusable profiles
- StickerPacker: Sticker pack metadata (EXIF) for WEBP stickers
- ScratchSpace / TempResource: Scoped temporary files
"""

from .cache import BoundedCache
from .fetcher import ProtocolMediaFetcher
from .models import (
    MediaAsset,
    MediaConstraints,
    MediaRequest,
    PipelineResult,
    PipelineRun,
    PipelineState,
    RawMediaBuffer,
    SourceKind,
    StepResult,
    TargetKind,
)
from .pipeline import MediaPipeline
from .sources import VideoSourceAcquirer
from .sticker import StickerPacker
from .temp_files import ScratchSpace, TempResource
from .transcoder import Transcoder

__all__ = [
    "MediaPipeline",
    "ProtocolMediaFetcher",
    "VideoSourceAcquirer",
    "Transcoder",
    "StickerPacker",
    "ScratchSpace",
    "TempResource",
    "BoundedCache",
    "MediaAsset",
    "MediaConstraints",
    "MediaRequest",
    "PipelineResult",
    "PipelineRun",
    "PipelineState",
    "RawMediaBuffer",
    "SourceKind",
    "StepResult",
    "TargetKind",
]
