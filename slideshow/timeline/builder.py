"""
Turns per-page hold durations into an absolute timeline.
"""

from typing import List, Sequence

from core.errors import InvalidInputError

from .models import PAGE_GAP, PageAudio, PageTiming, Timeline


def build_timeline(pages: Sequence[PageAudio], gap: float = PAGE_GAP) -> Timeline:
    """
    Build a :class:`Timeline` from resolved page audio.

    Every page except the last is followed by *gap* seconds.  Offsets
    are the running sum of the preceding display durations.

    Raises:
        InvalidInputError: If *pages* is empty.
    """
    if not pages:
        raise InvalidInputError("Document has no pages")
    if gap < 0:
        raise InvalidInputError(f"Page gap must be >= 0, got {gap}")

    last = len(pages) - 1
    timings: List[PageTiming] = []
    offsets: List[float] = []
    current = 0.0

    for i, page in enumerate(pages):
        timing = PageTiming(
            page_index=page.page_index,
            hold_duration=page.hold_duration,
            gap_after=gap if i < last else 0.0,
            clip=page.clip,
        )
        timings.append(timing)
        offsets.append(current)
        current += timing.display_duration

    return Timeline(timings=tuple(timings), offsets=tuple(offsets))
