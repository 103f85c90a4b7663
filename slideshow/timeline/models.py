"""
Data models for page timing and the frame sequence.

A :class:`Timeline` is derived fresh for every run from the per-page
:class:`PageAudio` records and is never mutated once built.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from core.errors import MissingAudioWarning

# Hold used when a page has no narration clip
FALLBACK_HOLD = 1.0

# Pause inserted after every page except the last
PAGE_GAP = 1.0


@dataclass(frozen=True)
class AudioClip:
    """A narration clip attached to one page."""

    path: Path
    duration: float  # seconds, 0.0 if the clip could not be probed


@dataclass(frozen=True)
class PageAudio:
    """
    Resolved audio for a single page.

    ``hold_duration`` is the clip duration when a clip exists (possibly
    0.0 for an unreadable clip) and :data:`FALLBACK_HOLD` otherwise.
    """

    page_index: int
    hold_duration: float
    clip: Optional[AudioClip] = None
    warning: Optional[MissingAudioWarning] = None

    @property
    def has_clip(self) -> bool:
        return self.clip is not None


@dataclass(frozen=True)
class PageTiming:
    """Hold and trailing gap for one page."""

    page_index: int
    hold_duration: float
    gap_after: float
    clip: Optional[AudioClip] = None

    @property
    def display_duration(self) -> float:
        return self.hold_duration + self.gap_after


@dataclass(frozen=True)
class Timeline:
    """
    Ordered page timings with absolute start offsets.

    ``offsets[i]`` is the time (seconds from video start) at which page
    ``i`` becomes visible.
    """

    timings: Tuple[PageTiming, ...]
    offsets: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.timings)

    def __iter__(self) -> Iterator[PageTiming]:
        return iter(self.timings)

    @property
    def display_durations(self) -> List[float]:
        return [t.display_duration for t in self.timings]

    @property
    def total_duration(self) -> float:
        if not self.timings:
            return 0.0
        return self.offsets[-1] + self.timings[-1].display_duration

    @property
    def has_audio(self) -> bool:
        return any(t.clip is not None for t in self.timings)

    def clips(self) -> List[Tuple[PageTiming, float]]:
        """Return ``(timing, offset)`` pairs for pages that carry a clip."""
        return [
            (timing, offset)
            for timing, offset in zip(self.timings, self.offsets)
            if timing.clip is not None
        ]

    def __repr__(self) -> str:
        return f"Timeline(pages={len(self)}, total={self.total_duration:.2f}s)"


@dataclass(frozen=True)
class FrameSequenceEntry:
    """
    One line pair of the concat script.

    ``duration`` is ``None`` only for the trailing entry that repeats the
    last frame.
    """

    file_name: str
    duration: Optional[float] = None
