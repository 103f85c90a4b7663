"""
Conversion pipeline orchestrator: PDF → page images → timeline → MP4.

Coordinates the full conversion workflow:

1. **Page images**: reuse the on-disk page cache when it is newer than
   the PDF, otherwise rasterize every page with PyMuPDF and cache it.
2. **Audio probing**: look up an optional narration clip per page and
   derive each page's hold duration.
3. **Timeline**: add the inter-page gap and compute absolute offsets.
4. **Frames**: letterbox each page to the output size and write the
   concat script that holds every frame for its page's duration.
5. **Mix graph**: delay each clip to its page offset, mix, denoise,
   high-pass and loudness-normalise into one track.
6. **Encode**: run ffmpeg, report progress, and wait for completion.
7. **Cleanup**: remove the per-run frame directory.

Usage::

    from slideshow.pipeline import ConversionConfig, ConversionPipeline

    config = ConversionConfig(width=1280, height=720, audio_dir=Path("talk-audio"))
    pipeline = ConversionPipeline(config)
    result = pipeline.convert("talk.pdf", "talk.mp4")
    print(result.summary())
"""

import logging
import shlex
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from tqdm import tqdm

from core.document.pdf_reader import DEFAULT_SCALE, PDFDocumentReader
from core.errors import EncoderError, FilesystemError, InvalidInputError, MissingAudioWarning
from core.page.models import Page
from core.page.page_cache import PageCache
from slideshow.encode.encoder import (
    EncodePlan,
    EncodeProgress,
    FFmpegEncoder,
    build_command,
    resolve_ffmpeg,
)
from slideshow.encode.frame_plan import (
    emit_frame_sequence,
    frame_file_name,
    render_concat_script,
)
from slideshow.encode.mix_graph import build_mix_graph, format_filter_graph
from slideshow.timeline.builder import build_timeline
from slideshow.timeline.durations import Prober, resolve_all
from slideshow.timeline.models import PAGE_GAP, PageAudio, Timeline
from slideshow.utils.audio_probe import probe_duration
from slideshow.utils.image_fit import letterbox_file

logger = logging.getLogger(__name__)

CONCAT_FILENAME = "concat.txt"

PathLike = Union[str, Path]


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


@dataclass
class ConversionConfig:
    """
    All tuneable parameters for the conversion pipeline.

    Attributes:
        width:          Output frame width in pixels.
        height:         Output frame height in pixels.
        frame_rate:     Output frame rate.
        audio_dir:      Directory with ``1.mp3``, ``2.wav``, … (``None`` for silent video).
        render_scale:   PDF rasterization scale factor.
        page_gap:       Pause after every page except the last (seconds).
        base_dir:       Directory that relative input/output/audio paths are resolved against.
        cache_root:     Parent of the ``pdf-to-mp4`` cache (``None`` for the system temp dir).
        ffmpeg_binary:  Explicit ffmpeg path (``None`` to search).
        dry_run:        Build the encode plan and log it without running ffmpeg.
        disable_tqdm:   Suppress progress bars.
    """

    width: int = 1920
    height: int = 1080
    frame_rate: float = 30.0
    audio_dir: Optional[Path] = None

    render_scale: float = DEFAULT_SCALE
    page_gap: float = PAGE_GAP

    base_dir: Path = field(default_factory=Path.cwd)
    cache_root: Optional[Path] = None
    ffmpeg_binary: Optional[str] = None

    dry_run: bool = False
    disable_tqdm: bool = False

    def __post_init__(self):
        self.base_dir = Path(self.base_dir)
        if self.audio_dir is not None:
            self.audio_dir = self.resolve_path(self.audio_dir)
        if self.cache_root is not None:
            self.cache_root = self.resolve_path(self.cache_root)

        errors = []
        if self.width <= 0 or self.height <= 0:
            errors.append(f"frame size must be positive, got {self.width}x{self.height}")
        if self.frame_rate <= 0:
            errors.append(f"frame rate must be positive, got {self.frame_rate}")
        if self.render_scale <= 0:
            errors.append(f"render scale must be positive, got {self.render_scale}")
        if self.page_gap < 0:
            errors.append(f"page gap must be >= 0, got {self.page_gap}")
        if errors:
            raise InvalidInputError("; ".join(errors))

    def resolve_path(self, path: PathLike) -> Path:
        """Resolve *path* against :attr:`base_dir` unless it is absolute."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path


# ------------------------------------------------------------------
# State & result
# ------------------------------------------------------------------


class PipelineState(Enum):
    IDLE = auto()
    CACHE_CHECK = auto()
    CACHE_HIT = auto()
    CACHE_MISS = auto()
    RASTERIZE = auto()
    CACHE_WRITE = auto()
    PROBE_AUDIO = auto()
    BUILD_TIMELINE = auto()
    RENDER_FRAMES = auto()
    BUILD_MIX_GRAPH = auto()
    ENCODE = auto()
    CLEANUP = auto()
    DONE = auto()
    FAILED = auto()


@dataclass
class ConversionResult:
    """
    Summary returned after a conversion completes.

    Captures per-phase timing, the resolved timeline, and output file
    info so the caller can report or log the results.
    """

    output_path: str = ""
    total_pages: int = 0
    clips_found: int = 0
    missing_audio_pages: List[int] = field(default_factory=list)
    warnings: List[MissingAudioWarning] = field(default_factory=list)
    cache_hit: bool = False
    has_audio: bool = False
    video_duration: float = 0.0
    total_frames: int = 0
    file_size_mb: float = 0.0
    dry_run: bool = False
    command: List[str] = field(default_factory=list)
    frame_files: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    time_pages: float = 0.0
    time_frames: float = 0.0
    time_encode: float = 0.0

    def summary(self) -> str:
        """Format a human-readable summary of the conversion run."""
        missing = ", ".join(str(n) for n in self.missing_audio_pages) or "none"
        return (
            f"{'=' * 60}\n"
            f"CONVERSION {'PLANNED' if self.dry_run else 'COMPLETE'}\n"
            f"{'=' * 60}\n"
            f"  Output:        {self.output_path}\n"
            f"  Pages:         {self.total_pages} "
            f"({'cached' if self.cache_hit else 'rasterized'})\n"
            f"  Audio clips:   {self.clips_found} (missing: {missing})\n"
            f"  Duration:      {self.video_duration:.1f}s, {self.total_frames} frames\n"
            f"  File size:     {self.file_size_mb:.1f} MB\n"
            f"\n"
            f"  Page images:   {self.time_pages:.1f}s\n"
            f"  Frames:        {self.time_frames:.1f}s\n"
            f"  Encoding:      {self.time_encode:.1f}s\n"
            f"  Total wall time: {self.elapsed_seconds:.1f}s\n"
            f"{'=' * 60}"
        )


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------


class ConversionPipeline:
    """
    End-to-end PDF to MP4 pipeline.

    The ffmpeg encoder is resolved lazily on first use, so dry runs and
    cache-only work never require an ffmpeg binary.

    Args:
        config:         Pipeline configuration.
        reader_factory: Callable opening a PDF (defaults to :class:`PDFDocumentReader`).
        prober:         Callable returning a clip's duration in seconds.
        encoder:        Object with a ``start(plan)`` method returning an encode job.
        on_progress:    Called with every :class:`EncodeProgress` event.
    """

    def __init__(
        self,
        config: Optional[ConversionConfig] = None,
        reader_factory: Callable[[Path], PDFDocumentReader] = PDFDocumentReader,
        prober: Prober = probe_duration,
        encoder: Optional[FFmpegEncoder] = None,
        on_progress: Optional[Callable[[EncodeProgress], None]] = None,
    ):
        self.config = config or ConversionConfig()
        self._reader_factory = reader_factory
        self._prober = prober
        self._encoder = encoder
        self._on_progress = on_progress

        self.state = PipelineState.IDLE
        self.failure_reason: Optional[str] = None

    def _enter(self, state: PipelineState) -> None:
        logger.debug("State: %s -> %s", self.state.name, state.name)
        self.state = state

    def _ensure_encoder(self) -> FFmpegEncoder:
        if self._encoder is None:
            self._encoder = FFmpegEncoder(resolve_ffmpeg(self.config.ffmpeg_binary))
            logger.debug("Encoder ready: %s", self._encoder)
        return self._encoder

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def convert(self, pdf_path: PathLike, output_path: PathLike) -> ConversionResult:
        """
        Convert a PDF into an MP4.

        Args:
            pdf_path:    Input PDF; relative paths use ``config.base_dir``.
            output_path: Destination ``.mp4``; relative paths use ``config.base_dir``.

        Returns:
            :class:`ConversionResult` with timing and output metrics.

        Raises:
            ConversionError: On any fatal failure.  :attr:`state` is then
                :attr:`PipelineState.FAILED` and :attr:`failure_reason` set.
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already used (state {self.state.name})")

        t_total = time.perf_counter()
        cfg = self.config
        pdf = cfg.resolve_path(pdf_path)
        output = cfg.resolve_path(output_path)
        result = ConversionResult(output_path=str(output), dry_run=cfg.dry_run)

        frames_dir: Optional[Path] = None
        try:
            if not pdf.is_file():
                raise InvalidInputError(f"Input file not found: {pdf}")
            cache = PageCache(pdf, root=cfg.cache_root)

            # -- Phase 1: Page images ----------------------------------
            pages = self._phase_pages(pdf, cache, result)

            # -- Phase 2: Audio probing --------------------------------
            page_audio = self._phase_audio(len(pages), result)

            # -- Phase 3: Timeline -------------------------------------
            timeline = self._phase_timeline(page_audio, result)

            # -- Phase 4: Frames ---------------------------------------
            frames_dir = cache.frames_dir
            frame_files = self._phase_frames(pages, frames_dir, result)

            # -- Phase 5: Encode plan ----------------------------------
            plan = self._phase_plan(timeline, frame_files, frames_dir, output, result)

            # -- Phase 6: Encode ---------------------------------------
            if cfg.dry_run:
                self._log_dry_run(plan)
            else:
                self._phase_encode(plan, result)

            # -- Phase 7: Cleanup --------------------------------------
            self._enter(PipelineState.CLEANUP)
            _remove_tree(frames_dir)

        except BaseException as e:
            self.failure_reason = str(e) or e.__class__.__name__
            self._enter(PipelineState.FAILED)
            if frames_dir is not None:
                _remove_tree(frames_dir)
            raise

        self._enter(PipelineState.DONE)
        result.elapsed_seconds = time.perf_counter() - t_total
        if not cfg.dry_run:
            logger.info("Video saved: %s", output)
        logger.debug("\n%s", result.summary())
        return result

    # ------------------------------------------------------------------
    # Phase 1: Page images
    # ------------------------------------------------------------------

    def _phase_pages(
        self,
        pdf: Path,
        cache: PageCache,
        result: ConversionResult,
    ) -> List[Page]:
        """Return cached page images, rasterizing the PDF on a miss."""
        cfg = self.config
        t0 = time.perf_counter()

        self._enter(PipelineState.CACHE_CHECK)
        pages = cache.lookup()

        if pages is not None:
            self._enter(PipelineState.CACHE_HIT)
            result.cache_hit = True
        else:
            self._enter(PipelineState.CACHE_MISS)
            self._enter(PipelineState.RASTERIZE)
            with self._reader_factory(pdf) as reader:
                logger.info("Total pages: %d", reader.page_count)
                pbar = tqdm(
                    reader.iter_pages(scale=cfg.render_scale),
                    total=reader.page_count,
                    desc="Rasterizing",
                    unit="page",
                    disable=cfg.disable_tqdm,
                )
                # pages are written as they are rendered
                self._enter(PipelineState.CACHE_WRITE)
                try:
                    pages = cache.store(pbar)
                finally:
                    pbar.close()

        if not pages:
            raise InvalidInputError(f"Document has no pages: {pdf}")

        result.total_pages = len(pages)
        result.time_pages = time.perf_counter() - t0
        return pages

    # ------------------------------------------------------------------
    # Phase 2: Audio probing
    # ------------------------------------------------------------------

    def _phase_audio(self, page_count: int, result: ConversionResult) -> List[PageAudio]:
        self._enter(PipelineState.PROBE_AUDIO)
        audio_dir = self.config.audio_dir
        if audio_dir is not None and not audio_dir.is_dir():
            logger.warning("Audio directory not found: %s", audio_dir)

        page_audio = resolve_all(page_count, audio_dir, self._prober)

        result.clips_found = sum(1 for p in page_audio if p.has_clip)
        result.warnings = [p.warning for p in page_audio if p.warning is not None]
        result.missing_audio_pages = [w.page_index + 1 for w in result.warnings]
        return page_audio

    # ------------------------------------------------------------------
    # Phase 3: Timeline
    # ------------------------------------------------------------------

    def _phase_timeline(
        self,
        page_audio: Sequence[PageAudio],
        result: ConversionResult,
    ) -> Timeline:
        cfg = self.config
        self._enter(PipelineState.BUILD_TIMELINE)
        timeline = build_timeline(page_audio, gap=cfg.page_gap)

        result.video_duration = timeline.total_duration
        result.has_audio = timeline.has_audio
        logger.info("Video: %dx%d @ %gfps", cfg.width, cfg.height, cfg.frame_rate)
        logger.debug("%r offsets=%s", timeline, list(timeline.offsets))
        return timeline

    # ------------------------------------------------------------------
    # Phase 4: Frames
    # ------------------------------------------------------------------

    def _phase_frames(
        self,
        pages: Sequence[Page],
        frames_dir: Path,
        result: ConversionResult,
    ) -> List[str]:
        """Letterbox every page into *frames_dir*; return the frame names."""
        cfg = self.config
        t0 = time.perf_counter()
        self._enter(PipelineState.RENDER_FRAMES)

        _remove_tree(frames_dir)
        try:
            frames_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create frame directory {frames_dir}: {e}") from e

        names: List[str] = []
        pbar = tqdm(
            pages,
            desc="Rendering frames",
            unit="frame",
            disable=cfg.disable_tqdm,
        )
        try:
            for page in pbar:
                name = frame_file_name(page.index, len(pages))
                try:
                    letterbox_file(page.image_path, frames_dir / name, cfg.width, cfg.height)
                except OSError as e:
                    raise FilesystemError(f"Cannot write frame {name}: {e}") from e
                names.append(name)
        finally:
            pbar.close()

        result.frame_files = names
        result.time_frames = time.perf_counter() - t0
        return names

    # ------------------------------------------------------------------
    # Phase 5: Encode plan
    # ------------------------------------------------------------------

    def _phase_plan(
        self,
        timeline: Timeline,
        frame_files: Sequence[str],
        frames_dir: Path,
        output: Path,
        result: ConversionResult,
    ) -> EncodePlan:
        """Write the concat script and build the audio mix graph."""
        cfg = self.config
        entries = emit_frame_sequence(timeline, frame_files)
        concat_path = frames_dir / CONCAT_FILENAME
        try:
            concat_path.write_text(render_concat_script(entries), encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"Cannot write {concat_path}: {e}") from e

        self._enter(PipelineState.BUILD_MIX_GRAPH)
        graph = build_mix_graph(timeline)
        if graph is None:
            logger.debug("No narration clips; encoding video only")

        plan = EncodePlan(
            concat_path=concat_path,
            output_path=output,
            frame_rate=cfg.frame_rate,
            total_duration=timeline.total_duration,
            mix_graph=graph,
        )
        result.total_frames = plan.total_frames or 0
        result.command = build_command(plan, cfg.ffmpeg_binary or "ffmpeg")
        return plan

    def _log_dry_run(self, plan: EncodePlan) -> None:
        command = build_command(plan, self.config.ffmpeg_binary or "ffmpeg")
        logger.info("Dry run: ffmpeg was not started")
        logger.info("Command: %s", shlex.join(command))
        logger.info(
            "Concat script %s:\n%s",
            plan.concat_path,
            plan.concat_path.read_text(encoding="utf-8"),
        )
        if plan.mix_graph is not None:
            logger.info("Filter graph: %s", format_filter_graph(plan.mix_graph))

    # ------------------------------------------------------------------
    # Phase 6: Encode
    # ------------------------------------------------------------------

    def _phase_encode(self, plan: EncodePlan, result: ConversionResult) -> None:
        """Run ffmpeg, forwarding progress, and wait for it to finish."""
        cfg = self.config
        encoder = self._ensure_encoder()
        t0 = time.perf_counter()

        try:
            plan.output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create output directory: {e}") from e

        self._enter(PipelineState.ENCODE)
        logger.info("Encoding with ffmpeg... (%.1fs)", plan.total_duration)
        result.command = build_command(plan, encoder.binary)

        job = encoder.start(plan)
        pbar = tqdm(
            total=plan.total_frames,
            desc="Encoding",
            unit="frame",
            disable=cfg.disable_tqdm,
        )
        try:
            for event in job.events():
                target = event.frames
                if plan.total_frames:
                    target = min(target, plan.total_frames)
                if target > pbar.n:
                    pbar.update(target - pbar.n)
                if self._on_progress is not None:
                    self._on_progress(event)
            job.wait()
        except KeyboardInterrupt:
            job.cancel()
            raise EncoderError("Encoding was interrupted") from None
        except EncoderError:
            raise
        except BaseException:
            job.cancel()
            raise
        finally:
            pbar.close()

        logger.info("Encoding complete")
        result.time_encode = time.perf_counter() - t0
        if plan.output_path.exists():
            result.file_size_mb = plan.output_path.stat().st_size / (1024 * 1024)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _remove_tree(path: Path) -> None:
    """Delete *path* recursively; failures are logged, never raised."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
        logger.debug("Removed %s", path)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
