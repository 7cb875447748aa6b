"""
Remote video sources.

Provides the ordered acquisition chain (yt-dlp binary, embedded yt_dlp
library, social page scraper, oEmbed HTTP fallback), reference parsing
and search.
"""

from .acquirer import VideoSourceAcquirer, is_terminal
from .base import AcquisitionStrategy, ResolvedRequest
from .http_fallback import HttpFallbackStrategy
from .search import SearchHit, VideoMetadata, VideoSearch
from .social_page import SocialPageStrategy
from .video_id import (
    extract_video_id,
    is_valid_youtube_url,
    looks_like_url,
    social_platform,
    watch_url,
)
from .ytdlp_binary import CLIENT_PROFILES, ClientProfile, YtDlpBinaryStrategy
from .ytdlp_library import YtDlpLibraryStrategy

__all__ = [
    "VideoSourceAcquirer",
    "is_terminal",
    "AcquisitionStrategy",
    "ResolvedRequest",
    "HttpFallbackStrategy",
    "YtDlpBinaryStrategy",
    "YtDlpLibraryStrategy",
    "SocialPageStrategy",
    "ClientProfile",
    "CLIENT_PROFILES",
    "VideoSearch",
    "SearchHit",
    "VideoMetadata",
    "extract_video_id",
    "is_valid_youtube_url",
    "looks_like_url",
    "social_platform",
    "watch_url",
]
