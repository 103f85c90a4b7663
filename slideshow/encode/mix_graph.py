"""
Audio mix graph: per-clip delays, a single mix, and a fixed clean-up chain.

The graph is built as plain data (:class:`MixGraph`) and turned into
ffmpeg ``filter_complex`` text by :func:`format_filter_graph`, so the
timing logic can be tested without touching ffmpeg.

Input ``0`` of the encoder is always the frame sequence; clip ``k``
(in page order) is encoder input ``k + 1``.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from slideshow.timeline.models import Timeline

OUTPUT_LABEL = "aout"


@dataclass(frozen=True)
class DelayNode:
    """Shift one clip so it starts when its page becomes visible."""

    input_index: int
    delay_ms: int
    label: str
    page_index: int
    source: Path


@dataclass(frozen=True)
class MixNode:
    """Sum all delayed clips; output lasts as long as the longest input."""

    inputs: Tuple[str, ...]
    duration: str = "longest"


@dataclass(frozen=True)
class FilterChain:
    """
    Post-mix processing, applied in order:

    1. FFT noise reduction (``afftdn``), noise floor in dB.
    2. High-pass at ``highpass_hz`` to remove rumble.
    3. EBU R128 loudness normalisation (``loudnorm``).
    """

    noise_floor_db: float = -25
    highpass_hz: float = 80
    loudness_i: float = -16
    true_peak: float = -1.5
    loudness_range: float = 11
    output_label: str = OUTPUT_LABEL


@dataclass(frozen=True)
class MixGraph:
    delays: Tuple[DelayNode, ...]
    mix: MixNode
    chain: FilterChain = field(default_factory=FilterChain)

    @property
    def output_label(self) -> str:
        return self.chain.output_label

    @property
    def sources(self) -> List[Path]:
        """Clip paths in encoder input order (input 1 onwards)."""
        return [d.source for d in sorted(self.delays, key=lambda d: d.input_index)]


def delay_ms(offset_seconds: float) -> int:
    """Round an offset to whole milliseconds, halves rounding up."""
    return int(math.floor(offset_seconds * 1000 + 0.5))


def build_mix_graph(timeline: Timeline) -> Optional[MixGraph]:
    """
    Build the mix graph for every page that carries a clip.

    The delay of each clip is its page's absolute offset, independent of
    the clip's own length.

    Returns:
        The graph, or ``None`` when no page has a clip.
    """
    delays: List[DelayNode] = []
    for timing, offset in timeline.clips():
        k = len(delays)
        delays.append(
            DelayNode(
                input_index=k + 1,
                delay_ms=delay_ms(offset),
                label=f"a{k}",
                page_index=timing.page_index,
                source=timing.clip.path,
            )
        )

    if not delays:
        return None

    mix = MixNode(inputs=tuple(d.label for d in delays))
    return MixGraph(delays=tuple(delays), mix=mix)


# ------------------------------------------------------------------
# Serialisation
# ------------------------------------------------------------------


def _num(value: float) -> str:
    return f"{value:g}"


def format_delay(node: DelayNode) -> str:
    # one value per channel so stereo clips are shifted on both sides
    d = node.delay_ms
    return f"[{node.input_index}:a]adelay={d}|{d}[{node.label}]"


def format_mix(node: MixNode) -> str:
    labels = "".join(f"[{label}]" for label in node.inputs)
    return f"{labels}amix=inputs={len(node.inputs)}:duration={node.duration}"


def format_chain(chain: FilterChain) -> str:
    return ",".join(
        [
            f"afftdn=nf={_num(chain.noise_floor_db)}",
            f"highpass=f={_num(chain.highpass_hz)}",
            f"loudnorm=I={_num(chain.loudness_i)}"
            f":TP={_num(chain.true_peak)}"
            f":LRA={_num(chain.loudness_range)}",
        ]
    )


def format_filter_graph(graph: MixGraph) -> str:
    """Render *graph* as an ffmpeg ``-filter_complex`` argument."""
    parts = [format_delay(d) for d in graph.delays]
    parts.append(
        f"{format_mix(graph.mix)},{format_chain(graph.chain)}[{graph.output_label}]"
    )
    return ";".join(parts)
