"""
PDF to MP4 slideshow conversion.

Page timing from optional narration clips, the ffmpeg frame sequence
and audio mix graph, and the pipeline that drives ffmpeg.
"""

from core.errors import (
    AudioProbeError,
    CacheError,
    ConversionError,
    EncoderError,
    FilesystemError,
    InvalidInputError,
    MissingAudioWarning,
)
from .pipeline import (
    ConversionConfig,
    ConversionPipeline,
    ConversionResult,
    PipelineState,
)

__all__ = [
    "ConversionConfig",
    "ConversionPipeline",
    "ConversionResult",
    "PipelineState",
    "ConversionError",
    "InvalidInputError",
    "CacheError",
    "AudioProbeError",
    "EncoderError",
    "FilesystemError",
    "MissingAudioWarning",
]
