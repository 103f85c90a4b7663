#!/usr/bin/env python3
"""
PDF to MP4 CLI entry point.

Turns every page of a PDF into a full-screen frame.  When a page has a
narration clip (``<audio-dir>/<page>.mp3`` etc.) the page stays on screen
for the length of the clip plus a one-second pause, and the clips are
mixed into a single normalised audio track.

Usage::

    convert slides.pdf
    convert slides.pdf talk.mp4 --audio-dir recordings/
    convert slides.pdf --width 1280 --height 720 --framerate 25
    convert slides.pdf --dry-run -v 2

Verbosity levels::

    -v 0   Quiet: warnings and errors only.
    -v 1   Normal: phase summaries and progress bars (default).
    -v 2   Debug: state transitions and ffmpeg output.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from core.errors import ConversionError
from slideshow.pipeline import ConversionConfig, ConversionPipeline

logger = logging.getLogger("slideshow")

# Mapping from --verbose integer to logging level
_VERBOSITY_MAP = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected an integer, got '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0, got {number}")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a number, got '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0, got {number}")
    return number


class _Parser(argparse.ArgumentParser):
    """Reports usage errors like any other failure: ``Error: ...`` and exit 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser with all pipeline options."""
    p = _Parser(
        prog="convert",
        description="Convert a PDF to an MP4 video with optional per-page narration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  convert slides.pdf\n"
            "  convert slides.pdf talk.mp4 --audio-dir recordings/\n"
            "  convert slides.pdf --width 1280 --height 720 --framerate 25\n"
        ),
    )

    # -- Positional --------------------------------------------------------
    p.add_argument("input", help="Input PDF file")
    p.add_argument(
        "output",
        nargs="?",
        default=None,
        help="Output MP4 file (default: <input>.mp4 next to the input)",
    )

    # -- Video -------------------------------------------------------------
    video = p.add_argument_group("video")
    video.add_argument(
        "-w",
        "--width",
        type=_positive_int,
        default=1920,
        help="Video width (default: 1920)",
    )
    video.add_argument(
        "-H",
        "--height",
        type=_positive_int,
        default=1080,
        help="Video height (default: 1080)",
    )
    video.add_argument(
        "-f",
        "--framerate",
        type=_positive_float,
        default=30.0,
        help="Frame rate (default: 30)",
    )
    video.add_argument(
        "--render-scale",
        type=_positive_float,
        default=2.0,
        metavar="FLOAT",
        help="PDF rasterization scale (default: 2.0)",
    )

    # -- Audio -------------------------------------------------------------
    audio = p.add_argument_group("audio")
    audio.add_argument(
        "-a",
        "--audio-dir",
        default=None,
        metavar="PATH",
        help="Directory with audio files named 1.mp3, 2.wav, ... "
        "(default: <input>-audio/ if it exists)",
    )

    # -- Tools -------------------------------------------------------------
    tools = p.add_argument_group("tools")
    tools.add_argument(
        "--ffmpeg",
        default=None,
        metavar="PATH",
        help="ffmpeg executable (default: $FFMPEG_BINARY or ffmpeg on PATH)",
    )
    tools.add_argument(
        "--cache-dir",
        default=None,
        metavar="DIR",
        help="Parent directory of the page-image cache (default: system temp dir)",
    )

    # -- Debug / output control --------------------------------------------
    debug = p.add_argument_group("debug & output")
    debug.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the ffmpeg command, concat script and filter graph without encoding",
    )
    debug.add_argument(
        "-v",
        "--verbose",
        type=int,
        choices=[0, 1, 2],
        default=1,
        help="Verbosity: 0=quiet, 1=normal (default), 2=debug",
    )
    debug.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable tqdm progress bars",
    )

    return p


# ------------------------------------------------------------------
# Logging setup
# ------------------------------------------------------------------


def _configure_logging(verbosity: int) -> None:
    """
    Set up the ``slideshow`` and ``core`` loggers.

    At verbosity 0 (WARNING), uses a minimal format. At 2 (DEBUG),
    includes timestamps and the module name for traceability.
    """
    level = _VERBOSITY_MAP.get(verbosity, logging.INFO)

    if level <= logging.DEBUG:
        fmt = "%(asctime)s %(name)s %(levelname)s: %(message)s"
        datefmt = "%H:%M:%S"
    elif level <= logging.INFO:
        fmt = "%(message)s"
        datefmt = None
    else:
        fmt = "%(levelname)s: %(message)s"
        datefmt = None

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    for name in ("slideshow", "core"):
        root = logging.getLogger(name)
        root.setLevel(level)
        root.handlers.clear()
        root.addHandler(handler)

    # Suppress noisy third-party loggers regardless of verbosity
    for name in ("PIL", "pydub", "pydub.converter"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ------------------------------------------------------------------
# Path defaults
# ------------------------------------------------------------------


def default_output_path(input_path: Path) -> Path:
    """``slides.pdf`` → ``slides.mp4`` in the same directory."""
    return input_path.parent / f"{_basename(input_path)}.mp4"


def default_audio_dir(input_path: Path, base_dir: Path) -> Optional[Path]:
    """``slides.pdf`` → ``slides-audio/`` when that directory exists."""
    candidate = input_path.parent / f"{_basename(input_path)}-audio"
    resolved = candidate if candidate.is_absolute() else base_dir / candidate
    return candidate if resolved.is_dir() else None


def _basename(input_path: Path) -> str:
    name = input_path.name
    if name.lower().endswith(".pdf"):
        return name[: -len(".pdf")]
    return name


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, configure logging, and run the pipeline."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # --help exits 0, usage errors exit 1
        return e.code or 0

    _configure_logging(args.verbose)
    disable_tqdm = args.no_progress or args.verbose == 0

    base_dir = Path.cwd()
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else default_output_path(input_path)
    audio_dir = (
        Path(args.audio_dir)
        if args.audio_dir is not None
        else default_audio_dir(input_path, base_dir)
    )

    try:
        config = ConversionConfig(
            width=args.width,
            height=args.height,
            frame_rate=args.framerate,
            audio_dir=audio_dir,
            render_scale=args.render_scale,
            base_dir=base_dir,
            cache_root=Path(args.cache_dir) if args.cache_dir else None,
            ffmpeg_binary=args.ffmpeg,
            dry_run=args.dry_run,
            disable_tqdm=disable_tqdm,
        )

        # Log run header
        logger.info("PDF to MP4")
        logger.info("  Input:  %s", input_path)
        logger.info("  Output: %s", output_path)
        if config.audio_dir is not None:
            logger.info("  Audio:  %s", config.audio_dir)

        pipeline = ConversionPipeline(config)
        result = pipeline.convert(input_path, output_path)
    except ConversionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Error: interrupted", file=sys.stderr)
        return 1
    except Exception as e:
        logger.debug("Unexpected failure", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.debug("Finished in %.1fs", result.elapsed_seconds)
    return 0


if __name__ == "__main__":
    sys.exit(main())
