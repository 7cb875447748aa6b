"""
chatmedia - media acquisition and transcoding for chat bots
Main package exports.
"""

from .config import Config
from .exceptions import (
    AllStrategiesExhausted,
    ConfigError,
    DurationExceeded,
    FetchFailed,
    InvalidReference,
    MediaPipelineError,
    MethodNotSupported,
    SizeExceeded,
    TranscodeFailed,
    UndersizedResult,
)
from .media import MediaPipeline, PipelineResult
from .utils import setup_logging

__version__ = "1.0.0"

__all__ = [
    "Config",
    "MediaPipeline",
    "PipelineResult",
    "setup_logging",
    "MediaPipelineError",
    "ConfigError",
    "InvalidReference",
    "FetchFailed",
    "MethodNotSupported",
    "UndersizedResult",
    "DurationExceeded",
    "SizeExceeded",
    "TranscodeFailed",
    "AllStrategiesExhausted",
]
