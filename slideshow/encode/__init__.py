"""Encode plan: frame sequence, audio mix graph, and the ffmpeg job."""

from .encoder import (
    EncodeJob,
    EncodePlan,
    EncodeProgress,
    FFmpegEncoder,
    build_command,
    parse_progress_line,
    resolve_ffmpeg,
)
from .frame_plan import (
    emit_frame_sequence,
    format_seconds,
    frame_file_name,
    render_concat_script,
)
from .mix_graph import (
    DelayNode,
    FilterChain,
    MixGraph,
    MixNode,
    build_mix_graph,
    format_filter_graph,
)

__all__ = [
    "EncodeJob",
    "EncodePlan",
    "EncodeProgress",
    "FFmpegEncoder",
    "build_command",
    "parse_progress_line",
    "resolve_ffmpeg",
    "emit_frame_sequence",
    "format_seconds",
    "frame_file_name",
    "render_concat_script",
    "DelayNode",
    "FilterChain",
    "MixGraph",
    "MixNode",
    "build_mix_graph",
    "format_filter_graph",
]
