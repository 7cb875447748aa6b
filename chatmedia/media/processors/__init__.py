"""
Media processors package.

Specialized processors for image, video and audio conversion.
"""

from .audio import AudioProcessor
from .base import BaseProcessor
from .image import ImageProcessor
from .video import VideoProcessor

__all__ = [
    "BaseProcessor",
    "ImageProcessor",
    "VideoProcessor",
    "AudioProcessor",
]
