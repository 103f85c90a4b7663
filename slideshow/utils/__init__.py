"""Adapters around Pillow and pydub."""

from .audio_probe import probe_duration
from .image_fit import letterbox, letterbox_file

__all__ = ["probe_duration", "letterbox", "letterbox_file"]
