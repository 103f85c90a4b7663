"""
ffmpeg invocation: command construction and a running encode job.

:class:`FFmpegEncoder` starts ffmpeg for an :class:`EncodePlan` and
returns an :class:`EncodeJob`.  The job exposes a stream of
:class:`EncodeProgress` events parsed from ``-progress pipe:1`` output and
a single :meth:`EncodeJob.wait` result.  A failed or cancelled encode
never leaves a partial output file behind.

Usage::

    encoder = FFmpegEncoder(resolve_ffmpeg())
    job = encoder.start(plan)
    for event in job.events():
        print(f"{event.percent:.1f}%")
    job.wait()
"""

import collections
import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Iterator, List, Optional

from core.errors import EncoderError

from .frame_plan import total_frames
from .mix_graph import MixGraph, format_filter_graph

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept for error messages
_STDERR_TAIL = 20


# ------------------------------------------------------------------
# Binary discovery
# ------------------------------------------------------------------


def resolve_ffmpeg(cli_path: Optional[str] = None) -> str:
    """
    Locate the ffmpeg executable.

    Resolution order:
    1. explicit ``cli_path`` argument (``--ffmpeg``)
    2. ``FFMPEG_BINARY`` environment variable
    3. ``ffmpeg`` discovered on ``PATH``

    Raises:
        EncoderError: If no candidate points at an executable.
    """
    candidates = [
        cli_path,
        os.environ.get("FFMPEG_BINARY"),
        "ffmpeg",
    ]
    for cand in candidates:
        if not cand:
            continue
        if os.path.isfile(cand) and os.access(cand, os.X_OK):
            return cand
        found = shutil.which(cand)
        if found:
            return found
    raise EncoderError(
        "ffmpeg not found. Install FFmpeg and add it to PATH, "
        "or pass --ffmpeg / set FFMPEG_BINARY."
    )


# ------------------------------------------------------------------
# Plan and command line
# ------------------------------------------------------------------


@dataclass
class EncodePlan:
    """Everything ffmpeg needs for one run."""

    concat_path: Path
    output_path: Path
    frame_rate: float
    total_duration: float
    mix_graph: Optional[MixGraph] = None

    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"

    extra_output_args: List[str] = field(default_factory=list)

    @property
    def has_audio(self) -> bool:
        return self.mix_graph is not None

    @property
    def total_frames(self) -> Optional[int]:
        return total_frames(self.total_duration, self.frame_rate)


def _rate(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def build_command(plan: EncodePlan, ffmpeg: str = "ffmpeg") -> List[str]:
    """
    Build the ffmpeg argument list for *plan*.

    Audio inputs, the filter graph, stream maps and audio codec options
    are only present when the plan carries a mix graph.
    """
    cmd = [
        ffmpeg,
        "-y",
        "-hide_banner",
        "-f", "concat",
        "-safe", "0",
        "-i", str(plan.concat_path),
    ]

    if plan.mix_graph is not None:
        for source in plan.mix_graph.sources:
            cmd += ["-i", str(source)]
        cmd += [
            "-filter_complex", format_filter_graph(plan.mix_graph),
            "-map", "0:v",
            "-map", f"[{plan.mix_graph.output_label}]",
            "-c:a", plan.audio_codec,
            "-b:a", plan.audio_bitrate,
        ]

    cmd += [
        "-c:v", plan.video_codec,
        "-pix_fmt", plan.pixel_format,
        "-r", _rate(plan.frame_rate),
    ]
    cmd += plan.extra_output_args
    cmd += ["-progress", "pipe:1", "-nostats", str(plan.output_path)]
    return cmd


# ------------------------------------------------------------------
# Progress
# ------------------------------------------------------------------


@dataclass(frozen=True)
class EncodeProgress:
    """Frames encoded so far, relative to the expected total."""

    frames: int
    total_frames: Optional[int] = None

    @property
    def percent(self) -> float:
        if not self.total_frames:
            return 0.0
        return min(100.0, self.frames / self.total_frames * 100.0)


def parse_progress_line(line: str) -> Optional[int]:
    """Return the frame count from a ``frame=N`` progress line."""
    key, sep, value = line.strip().partition("=")
    if not sep or key != "frame":
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


# ------------------------------------------------------------------
# Running job
# ------------------------------------------------------------------


class EncodeJob:
    """
    A started ffmpeg process.

    Iterate :meth:`events` for progress, then call :meth:`wait` once.
    """

    def __init__(self, process: subprocess.Popen, plan: EncodePlan):
        self._process = process
        self.plan = plan
        self._cancelled = False
        self._stderr_tail: Deque[str] = collections.deque(maxlen=_STDERR_TAIL)
        self._stderr_thread: Optional[threading.Thread] = None

        if process.stderr is not None:
            self._stderr_thread = threading.Thread(
                target=self._drain_stderr,
                name="ffmpeg-stderr",
                daemon=True,
            )
            self._stderr_thread.start()

    def _drain_stderr(self) -> None:
        for line in self._process.stderr:
            line = line.rstrip()
            if line:
                self._stderr_tail.append(line)
                logger.debug("ffmpeg: %s", line)

    def events(self) -> Iterator[EncodeProgress]:
        """Yield progress until ffmpeg closes its progress stream."""
        stdout = self._process.stdout
        if stdout is None:
            return
        total = self.plan.total_frames
        for line in stdout:
            frames = parse_progress_line(line)
            if frames is not None:
                yield EncodeProgress(frames=frames, total_frames=total)

    def wait(self) -> Path:
        """
        Wait for ffmpeg to exit.

        Returns:
            The output path.

        Raises:
            EncoderError: If ffmpeg failed or the job was cancelled.
        """
        returncode = self._process.wait()
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)

        if self._cancelled:
            self._discard_output()
            raise EncoderError("Encoding was interrupted")
        if returncode != 0:
            self._discard_output()
            tail = "\n".join(self._stderr_tail) or "no output"
            raise EncoderError(f"ffmpeg exited with code {returncode}: {tail}")
        return self.plan.output_path

    def cancel(self) -> None:
        """Stop ffmpeg and remove whatever it has written."""
        self._cancelled = True
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        self._discard_output()

    def _discard_output(self) -> None:
        try:
            self.plan.output_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove partial output %s: %s", self.plan.output_path, e)


class FFmpegEncoder:
    """Starts ffmpeg encodes for :class:`EncodePlan` objects."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def start(self, plan: EncodePlan) -> EncodeJob:
        cmd = build_command(plan, self.binary)
        logger.debug("Running: %s", subprocess.list2cmdline(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise EncoderError(f"Failed to start ffmpeg '{self.binary}': {e}") from e
        return EncodeJob(process, plan)

    def __repr__(self) -> str:
        return f"FFmpegEncoder('{self.binary}')"
