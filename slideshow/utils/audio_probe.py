"""
Narration clip duration probing via pydub's ffprobe wrapper.
"""

import logging
from pathlib import Path

from pydub.utils import mediainfo

from core.errors import AudioProbeError

logger = logging.getLogger(__name__)


def probe_duration(path: Path) -> float:
    """
    Return the duration of the audio file at *path* in seconds.

    Raises:
        AudioProbeError: If ffprobe fails or reports no usable duration.
    """
    try:
        info = mediainfo(str(path))
    except Exception as e:
        raise AudioProbeError(f"ffprobe failed on '{path}': {e}") from e

    raw = info.get("duration") if info else None
    if raw in (None, "", "N/A"):
        raise AudioProbeError(f"No duration reported for '{path}'")

    try:
        duration = float(raw)
    except (TypeError, ValueError) as e:
        raise AudioProbeError(f"Bad duration {raw!r} for '{path}'") from e

    logger.debug("Probed %s: %.3fs", path, duration)
    return duration
