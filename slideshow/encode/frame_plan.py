"""
Frame sequence for ffmpeg's concat demuxer.

Each page contributes one ``file``/``duration`` pair.  The demuxer only
honours a ``duration`` once the *next* file starts, so the last frame is
listed a second time without a duration; otherwise its hold is dropped.
"""

import math
from typing import List, Optional, Sequence

from core.errors import InvalidInputError
from slideshow.timeline.models import FrameSequenceEntry, Timeline

FRAME_PREFIX = "frame_"
FRAME_SUFFIX = ".png"
MIN_INDEX_WIDTH = 4


def frame_index_width(page_count: int) -> int:
    """Digits needed so every index of a *page_count*-page run has equal width."""
    return max(MIN_INDEX_WIDTH, len(str(max(page_count - 1, 0))))


def frame_file_name(index: int, page_count: int) -> str:
    """Return the zero-padded frame file name for page *index*."""
    width = frame_index_width(page_count)
    return f"{FRAME_PREFIX}{index:0{width}d}{FRAME_SUFFIX}"


def emit_frame_sequence(
    timeline: Timeline,
    frame_files: Sequence[str],
) -> List[FrameSequenceEntry]:
    """
    Pair each frame with its page's display duration.

    Args:
        timeline:    Built timeline, one timing per page.
        frame_files: Frame file names in page order.

    Returns:
        ``len(timeline) + 1`` entries; the last repeats the final frame
        with no duration.
    """
    if len(frame_files) != len(timeline):
        raise InvalidInputError(
            f"Expected {len(timeline)} frames, got {len(frame_files)}"
        )
    if not frame_files:
        raise InvalidInputError("Cannot build a frame sequence with no pages")

    entries = [
        FrameSequenceEntry(file_name=name, duration=timing.display_duration)
        for name, timing in zip(frame_files, timeline)
    ]
    entries.append(FrameSequenceEntry(file_name=frame_files[-1]))
    return entries


def format_seconds(value: float) -> str:
    """Format seconds at microsecond precision without trailing zeros."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def _quote(name: str) -> str:
    # concat syntax: close the quote, escaped quote, reopen
    return "'" + name.replace("'", "'\\''") + "'"


def render_concat_script(entries: Sequence[FrameSequenceEntry]) -> str:
    """Serialise *entries* in concat demuxer syntax."""
    lines: List[str] = []
    for entry in entries:
        lines.append(f"file {_quote(entry.file_name)}")
        if entry.duration is not None:
            lines.append(f"duration {format_seconds(entry.duration)}")
    return "\n".join(lines) + "\n"


def total_frames(duration: float, frame_rate: float) -> Optional[int]:
    """Expected output frame count, or ``None`` for an empty video."""
    frames = math.ceil(duration * frame_rate)
    return frames if frames > 0 else None
