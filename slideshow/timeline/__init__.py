"""Per-page durations and the absolute timeline."""

from .builder import build_timeline
from .durations import (
    AUDIO_EXTENSIONS,
    clip_duration,
    find_audio_file,
    resolve_all,
    resolve_page_audio,
)
from .models import (
    FALLBACK_HOLD,
    PAGE_GAP,
    AudioClip,
    FrameSequenceEntry,
    PageAudio,
    PageTiming,
    Timeline,
)

__all__ = [
    "AudioClip",
    "PageAudio",
    "PageTiming",
    "Timeline",
    "FrameSequenceEntry",
    "FALLBACK_HOLD",
    "PAGE_GAP",
    "AUDIO_EXTENSIONS",
    "find_audio_file",
    "clip_duration",
    "resolve_page_audio",
    "resolve_all",
    "build_timeline",
]
