"""
Per-page hold durations from optional narration clips.

Clips are looked up as ``{page_number}.{ext}`` (1-based page number)
inside the audio directory.  The first extension in
:data:`AUDIO_EXTENSIONS` that exists wins; files with the same page
number in other formats are ignored.
"""

import logging
import math
from pathlib import Path
from typing import Callable, List, Optional

from core.errors import AudioProbeError, MissingAudioWarning
from slideshow.utils.audio_probe import probe_duration

from .models import FALLBACK_HOLD, AudioClip, PageAudio

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".aac", ".ogg")

Prober = Callable[[Path], float]


def find_audio_file(audio_dir: Optional[Path], page_index: int) -> Optional[Path]:
    """Return the clip for *page_index* (0-based), or ``None``."""
    if audio_dir is None:
        return None

    page_number = page_index + 1
    for ext in AUDIO_EXTENSIONS:
        candidate = Path(audio_dir) / f"{page_number}{ext}"
        if candidate.is_file():
            return candidate
    return None


def clip_duration(path: Path, prober: Prober = probe_duration) -> float:
    """
    Probe *path* and return its duration.

    Unreadable clips and non-positive durations give ``0.0`` so the page
    gets a silent hold rather than the one-second fallback.
    """
    try:
        duration = float(prober(path))
    except AudioProbeError as e:
        logger.warning("Could not read duration of %s (%s), using 0s", path, e)
        return 0.0

    if not math.isfinite(duration) or duration <= 0:
        logger.warning("Clip %s reports no duration, using 0s", path)
        return 0.0
    return duration


def resolve_page_audio(
    page_index: int,
    audio_dir: Optional[Path],
    prober: Prober = probe_duration,
) -> PageAudio:
    """
    Determine the hold duration for one page.

    Args:
        page_index: 0-based page number.
        audio_dir:  Directory holding the clips, or ``None``.
        prober:     Callable returning a clip's duration in seconds.

    Returns:
        :class:`PageAudio` for the page.  When *audio_dir* is set but no
        clip matches, the result carries a :class:`MissingAudioWarning`.
    """
    if audio_dir is None:
        return PageAudio(page_index=page_index, hold_duration=FALLBACK_HOLD)

    path = find_audio_file(audio_dir, page_index)
    if path is None:
        warning = MissingAudioWarning(page_index, str(audio_dir))
        logger.warning("Warning: %s", warning)
        return PageAudio(
            page_index=page_index,
            hold_duration=FALLBACK_HOLD,
            warning=warning,
        )

    duration = clip_duration(path, prober)
    logger.info("Page %d: audio found (%.1fs)", page_index + 1, duration)
    return PageAudio(
        page_index=page_index,
        hold_duration=duration,
        clip=AudioClip(path=path, duration=duration),
    )


def resolve_all(
    page_count: int,
    audio_dir: Optional[Path],
    prober: Prober = probe_duration,
) -> List[PageAudio]:
    """Resolve every page of a *page_count*-page document in order."""
    return [resolve_page_audio(i, audio_dir, prober) for i in range(page_count)]
