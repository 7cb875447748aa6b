"""
CLI argument parsing module for chatmedia.
Handles subcommands, argument validation, and help text.
"""

import argparse
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..media.transcoder import AUDIO_EFFECTS, resolve_audio_effect
from ..utils import logger

COMMANDS = (
    "sticker",
    "animated",
    "unsticker",
    "audio",
    "voice",
    "effect",
    "yt-audio",
    "yt-video",
    "social",
    "search",
    "health",
)

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class ChatMediaArgumentParser:
    """
    Command-line argument parser for chatmedia.
    Provides structured subcommand parsing with validation and help.
    """

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create and configure the argument parser."""
        parser = argparse.ArgumentParser(
            prog="chatmedia",
            description="chatmedia - media acquisition and transcoding for chat bots",
            epilog="""
Examples:
  chatmedia sticker photo.jpg sticker.webp --user "Ana Maria"
  chatmedia animated clip.mp4 sticker.webp --max-duration 6
  chatmedia yt-audio "https://youtu.be/dQw4w9WgXcQ" song.mp3
  chatmedia search "lofi hip hop" --limit 3
            """,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Common options
        parser.add_argument(
            "--env-file",
            type=Path,
            default=Path(".env"),
            help="Environment file to load (default: .env)",
        )
        parser.add_argument(
            "--log-level",
            type=str.upper,
            choices=LOG_LEVELS,
            default=None,
            help="Log level (default: from LOG_LEVEL or INFO)",
        )
        parser.add_argument("--log-file", type=Path, help="Log file path")

        subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
        subparsers.required = True

        # Stickers
        sticker = subparsers.add_parser("sticker", help="Image -> static WEBP sticker")
        sticker.add_argument("input", type=Path, help="Source image")
        sticker.add_argument("output", type=Path, help="Destination .webp")
        sticker.add_argument("--user", type=str, help="User name for the sticker pack")

        animated = subparsers.add_parser("animated", help="Video/GIF -> animated WEBP sticker")
        animated.add_argument("input", type=Path, help="Source video or GIF")
        animated.add_argument("output", type=Path, help="Destination .webp")
        animated.add_argument(
            "--max-duration", type=float, default=None, help="Maximum duration in seconds"
        )
        animated.add_argument("--user", type=str, help="User name for the sticker pack")

        unsticker = subparsers.add_parser("unsticker", help="WEBP sticker -> PNG")
        unsticker.add_argument("input", type=Path, help="Source sticker")
        unsticker.add_argument("output", type=Path, help="Destination .png")

        # Audio
        audio = subparsers.add_parser("audio", help="Video -> MP3")
        audio.add_argument("input", type=Path, help="Source video")
        audio.add_argument("output", type=Path, help="Destination .mp3")

        voice = subparsers.add_parser("voice", help="Audio -> voice note (Opus/OGG)")
        voice.add_argument("input", type=Path, help="Source audio")
        voice.add_argument("output", type=Path, help="Destination .ogg")

        effect = subparsers.add_parser("effect", help="Apply an audio effect")
        effect.add_argument("input", type=Path, help="Source audio")
        effect.add_argument("output", type=Path, help="Destination .mp3")
        effect.add_argument(
            "effect", type=str, help=f"Effect name ({', '.join(sorted(AUDIO_EFFECTS))})"
        )

        # Remote video
        yt_audio = subparsers.add_parser("yt-audio", help="Download audio by link or query")
        yt_audio.add_argument("query", type=str, help="Video link, ID or search query")
        yt_audio.add_argument(
            "output", type=Path, nargs="?", help="Destination .mp3 (default: <title>.mp3)"
        )

        yt_video = subparsers.add_parser("yt-video", help="Download video by link or query")
        yt_video.add_argument("query", type=str, help="Video link, ID or search query")
        yt_video.add_argument(
            "output", type=Path, nargs="?", help="Destination .mp4 (default: <title>.mp4)"
        )

        social = subparsers.add_parser("social", help="Download a Pinterest or Facebook video")
        social.add_argument("query", type=str, help="Pinterest or Facebook video link")
        social.add_argument(
            "output", type=Path, nargs="?", help="Destination .mp4 (default: download.mp4)"
        )

        search = subparsers.add_parser("search", help="Search videos")
        search.add_argument("query", type=str, help="Search query")
        search.add_argument(
            "--limit", type=int, default=5, help="Number of results (default: 5)"
        )

        subparsers.add_parser("health", help="Check ffmpeg, encoders and download strategies")

        return parser

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: Optional list of arguments to parse (defaults to sys.argv)

        Returns:
            Parsed arguments namespace
        """
        parsed = self.parser.parse_args(args)

        # Validate arguments
        self._validate_args(parsed)

        return parsed

    def _validate_args(self, args: argparse.Namespace):
        """Validate parsed arguments for consistency and requirements."""
        input_path = getattr(args, "input", None)
        if input_path is not None and not input_path.is_file():
            self.parser.error(f"Input file not found: {input_path}")

        if getattr(args, "max_duration", None) is not None and args.max_duration <= 0:
            self.parser.error("--max-duration must be positive")

        if args.command == "search" and not 1 <= args.limit <= 50:
            self.parser.error("--limit must be between 1 and 50")

        if args.command == "effect" and resolve_audio_effect(args.effect) is None:
            self.parser.error(
                f"Unknown effect '{args.effect}'. Available: {', '.join(sorted(AUDIO_EFFECTS))}"
            )

        query = getattr(args, "query", None)
        if query is not None and not query.strip():
            self.parser.error("Query must not be empty")

    def create_config_from_args(self, args: argparse.Namespace) -> Config:
        """
        Create a Config object from parsed arguments.

        Args:
            args: Parsed command-line arguments

        Returns:
            Configured Config object

        Raises:
            ConfigError: If the environment holds invalid values
        """
        config = Config.from_env(args.env_file)
        if args.log_level:
            config.log_level = args.log_level
        logger.debug(f"Config loaded for command '{args.command}'")
        return config


def print_usage_examples():
    """Print helpful usage examples."""
    examples = """
chatmedia Usage Examples:

Stickers:
  chatmedia sticker photo.jpg out.webp --user "Ana"    # Static sticker
  chatmedia animated clip.mp4 out.webp                 # Animated sticker
  chatmedia unsticker sticker.webp out.png             # Sticker back to image

Audio:
  chatmedia audio clip.mp4 out.mp3                     # Extract audio
  chatmedia voice song.mp3 out.ogg                     # Voice note
  chatmedia effect song.mp3 out.mp3 nightcore          # Audio effect

Remote video:
  chatmedia yt-audio dQw4w9WgXcQ out.mp3               # By ID
  chatmedia yt-video "funny cats" out.mp4              # By search query
  chatmedia social https://pin.it/abc out.mp4      # Pinterest or Facebook
  chatmedia search "lofi hip hop" --limit 3

For more help: chatmedia --help
    """
    print(examples)
