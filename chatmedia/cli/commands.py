"""
CLI command execution for chatmedia.
Maps parsed subcommands onto MediaPipeline operations and prints a summary.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

import aiofiles
from rich import print as rprint

from ..exceptions import ConfigError
from ..media import MediaPipeline, PipelineResult
from ..utils import ensure_dir_exists, format_duration, logger, sanitize_filename, setup_logging
from .parser import ChatMediaArgumentParser

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def handle_sigint(signum, frame):
    """Handle SIGINT (Ctrl+C) signal."""
    rprint("\n[bold yellow]Received interrupt signal. Cleaning up...[/bold yellow]")
    sys.exit(EXIT_FAILURE)


async def _read_input(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def _write_output(path: Path, data: bytes) -> None:
    ensure_dir_exists(path.parent)
    async with aiofiles.open(path, "wb") as f:
        await f.write(data)


def print_result(result: PipelineResult, output: Optional[Path] = None) -> None:
    """Print a pipeline result summary."""
    if not result.success:
        rprint(f"[bold red]⛔ {result.error}[/bold red]")
        return

    rprint(f"[bold green]✅ Done:[/bold green] {result.size_bytes / 1024:.1f} KB")
    if output is not None:
        rprint(f"[cyan]Saved to:[/cyan] {output}")
    if result.title:
        rprint(f"[cyan]Title:[/cyan] {result.title}")
    if result.method:
        rprint(f"[cyan]Method:[/cyan] {result.method}")
    if result.pack_name:
        rprint(f"[cyan]Pack:[/cyan] {result.pack_name} / {result.author_name}")
    if result.duration_seconds:
        rprint(f"[cyan]Duration:[/cyan] {format_duration(result.duration_seconds)}")


def default_output_path(title: Optional[str], extension: str) -> Path:
    """File name derived from the video title."""
    return Path(f"{sanitize_filename(title or 'download')}.{extension}")


def print_health(report: dict) -> None:
    """Print the health check report."""
    def mark(ok: bool) -> str:
        return "[green]✅[/green]" if ok else "[red]⛔[/red]"

    rprint(f"{mark(report['ffmpeg'])} ffmpeg")
    for name, ok in report.get("encoders", {}).items():
        rprint(f"   {mark(ok)} {name}")
    rprint(f"{mark(report['sticker_metadata'])} sticker metadata")
    for name, ok in report.get("strategies", {}).items():
        rprint(f"{mark(ok)} {name}")


async def run_command(pipeline: MediaPipeline, args: argparse.Namespace) -> int:
    """
    Execute one parsed subcommand.

    Returns:
        Exit code (0 on success, 1 on failure)
    """
    command = args.command

    if command == "search":
        hits = await pipeline.search_videos(args.query, args.limit)
        if not hits:
            rprint("[bold yellow]Nothing found[/bold yellow]")
            return EXIT_FAILURE
        for index, hit in enumerate(hits, 1):
            author = f" - {hit.author}" if hit.author else ""
            rprint(f"[bold]{index}.[/bold] {hit.title}{author} [{hit.duration_label}]")
            rprint(f"   [cyan]{hit.url}[/cyan]")
        return EXIT_OK

    if command == "health":
        report = await pipeline.health_check()
        print_health(report)
        return EXIT_OK if report["ffmpeg"] else EXIT_FAILURE

    output = args.output
    if command == "yt-audio":
        result = await pipeline.download_remote_audio(args.query)
        output = output or default_output_path(result.title, "mp3")
    elif command == "yt-video":
        result = await pipeline.download_remote_video(args.query)
        output = output or default_output_path(result.title, "mp4")
    elif command == "social":
        result = await pipeline.download_social_video(args.query)
        output = output or default_output_path(result.title, "mp4")
    else:
        data = await _read_input(args.input)
        if command == "sticker":
            result = await pipeline.create_sticker_from_image(data, user_name=args.user)
        elif command == "animated":
            result = await pipeline.create_animated_sticker_from_video(
                data, max_duration_seconds=args.max_duration, user_name=args.user
            )
        elif command == "unsticker":
            result = await pipeline.convert_sticker_to_image(data)
        elif command == "audio":
            result = await pipeline.convert_video_to_audio(data)
        elif command == "voice":
            result = await pipeline.convert_audio_to_voice_note(data)
        elif command == "effect":
            result = await pipeline.apply_audio_effect(data, args.effect)
        else:
            raise ValueError(f"Unknown command: {command}")

    if result.success:
        await _write_output(output, result.buffer)
    print_result(result, output if result.success else None)
    return EXIT_OK if result.success else EXIT_FAILURE


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Async main entry point."""
    parser = ChatMediaArgumentParser()
    args = parser.parse_args(argv)

    try:
        config = parser.create_config_from_args(args)
    except ConfigError as e:
        rprint(f"[bold red]Configuration error: {e}[/bold red]")
        return EXIT_CONFIG_ERROR

    setup_logging(config.log_level, args.log_file)

    pipeline = MediaPipeline(config)
    try:
        return await run_command(pipeline, args)
    finally:
        pipeline.log_statistics()


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    signal.signal(signal.SIGINT, handle_sigint)
    try:
        exit_code = asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        rprint("\n[bold yellow]Cancelled by user[/bold yellow]")
        exit_code = EXIT_FAILURE
    except Exception as e:
        rprint(f"[bold red]Fatal error: {e}[/bold red]")
        logger.exception("Fatal error in main")
        exit_code = EXIT_FAILURE
    sys.exit(exit_code)
