import shutil

import pytest
from PIL import Image

from core.document.pdf_reader import PDFDocumentReader
from core.errors import AudioProbeError, EncoderError, InvalidInputError
from slideshow.encode.encoder import EncodeProgress
from slideshow.encode.mix_graph import format_filter_graph
from slideshow.pipeline import ConversionConfig, ConversionPipeline, PipelineState


class FakeJob:
    def __init__(self, plan, frames=(), error=None):
        self.plan = plan
        self.frames = frames
        self.error = error
        self.cancelled = False

    def events(self):
        for n in self.frames:
            yield EncodeProgress(frames=n, total_frames=self.plan.total_frames)

    def wait(self):
        if self.error is not None:
            raise self.error
        self.plan.output_path.write_bytes(b"\x00" * 2048)
        return self.plan.output_path

    def cancel(self):
        self.cancelled = True


class FakeEncoder:
    """Records each plan along with the frames and concat script it points at."""

    binary = "ffmpeg"

    def __init__(self, error=None, frames=(10, 20)):
        self.error = error
        self.frames = frames
        self.plans = []
        self.concat_scripts = []
        self.frame_sizes = []

    def start(self, plan):
        self.plans.append(plan)
        self.concat_scripts.append(plan.concat_path.read_text(encoding="utf-8"))
        frames_dir = plan.concat_path.parent
        for path in sorted(frames_dir.glob("frame_*.png")):
            with Image.open(path) as img:
                self.frame_sizes.append(img.size)
        return FakeJob(plan, frames=self.frames, error=self.error)


class CountingReaderFactory:
    def __init__(self):
        self.calls = 0

    def __call__(self, path):
        self.calls += 1
        return PDFDocumentReader(path)


def fixed_prober(duration):
    def probe(path):
        if isinstance(duration, Exception):
            raise duration
        return duration

    return probe


@pytest.fixture
def config(tmp_path):
    return ConversionConfig(
        width=64,
        height=36,
        frame_rate=10.0,
        render_scale=0.25,
        base_dir=tmp_path,
        cache_root=tmp_path / "cache",
        disable_tqdm=True,
    )


def _audio_dir(tmp_path, *names):
    audio = tmp_path / "audio"
    audio.mkdir()
    for name in names:
        (audio / name).write_bytes(b"")
    return audio


def test_silent_document(pdf_factory, config, tmp_path):
    pdf_factory(pages=3)
    encoder = FakeEncoder()
    pipeline = ConversionPipeline(config, encoder=encoder)

    result = pipeline.convert("slides.pdf", "slides.mp4")

    assert pipeline.state is PipelineState.DONE
    assert result.total_pages == 3
    assert result.video_duration == 5.0
    assert result.total_frames == 50
    assert not result.has_audio
    assert encoder.plans[0].mix_graph is None
    assert "-map" not in result.command
    assert encoder.concat_scripts[0] == (
        "file 'frame_0000.png'\nduration 2\n"
        "file 'frame_0001.png'\nduration 2\n"
        "file 'frame_0002.png'\nduration 1\n"
        "file 'frame_0002.png'\n"
    )
    assert encoder.frame_sizes == [(64, 36)] * 3
    assert (tmp_path / "slides.mp4").exists()
    assert result.file_size_mb > 0


def test_narration_on_first_page(pdf_factory, config, tmp_path):
    pdf_factory(pages=2)
    config.audio_dir = _audio_dir(tmp_path, "1.mp3")
    encoder = FakeEncoder()

    result = ConversionPipeline(config, prober=fixed_prober(3.2), encoder=encoder).convert(
        "slides.pdf", "out.mp4"
    )

    plan = encoder.plans[0]
    assert result.video_duration == pytest.approx(5.2)
    assert result.clips_found == 1
    assert result.has_audio
    assert [d.delay_ms for d in plan.mix_graph.delays] == [0]
    assert plan.mix_graph.sources == [tmp_path / "audio" / "1.mp3"]
    assert format_filter_graph(plan.mix_graph) in result.command
    assert encoder.concat_scripts[0].splitlines()[1] == "duration 4.2"


def test_missing_clip_warns_and_succeeds(pdf_factory, config, tmp_path):
    pdf_factory(pages=2)
    config.audio_dir = _audio_dir(tmp_path, "1.wav")
    pipeline = ConversionPipeline(config, prober=fixed_prober(2.0), encoder=FakeEncoder())

    result = pipeline.convert("slides.pdf", "out.mp4")

    assert pipeline.state is PipelineState.DONE
    assert result.missing_audio_pages == [2]
    assert len(result.warnings) == 1
    assert "page 2" in str(result.warnings[0])
    assert result.video_duration == 2.0 + 1.0 + 1.0


def test_unreadable_clip_holds_for_gap_only(pdf_factory, config, tmp_path):
    pdf_factory(pages=2)
    config.audio_dir = _audio_dir(tmp_path, "1.mp3", "2.mp3")
    encoder = FakeEncoder()
    pipeline = ConversionPipeline(
        config, prober=fixed_prober(AudioProbeError("corrupt")), encoder=encoder
    )

    result = pipeline.convert("slides.pdf", "out.mp4")

    assert result.video_duration == 1.0
    assert result.clips_found == 2
    assert [d.delay_ms for d in encoder.plans[0].mix_graph.delays] == [0, 1000]


def test_rerun_reuses_cached_pages(pdf_factory, config, tmp_path):
    pdf_factory(pages=3)
    first_reader = CountingReaderFactory()
    first = ConversionPipeline(config, reader_factory=first_reader, encoder=FakeEncoder())
    first_result = first.convert("slides.pdf", "a.mp4")
    assert first_reader.calls == 1
    assert not first_result.cache_hit

    second_reader = CountingReaderFactory()
    second_encoder = FakeEncoder()
    second = ConversionPipeline(config, reader_factory=second_reader, encoder=second_encoder)
    second_result = second.convert("slides.pdf", "b.mp4")

    assert second_reader.calls == 0
    assert second_result.cache_hit
    assert second_result.frame_files == first_result.frame_files
    assert second_encoder.frame_sizes == [(64, 36)] * 3


def test_frames_are_removed_after_success(pdf_factory, config):
    pdf_factory(pages=2)
    encoder = FakeEncoder()
    ConversionPipeline(config, encoder=encoder).convert("slides.pdf", "out.mp4")
    assert not encoder.plans[0].concat_path.parent.exists()


def test_encoder_failure(pdf_factory, config, tmp_path):
    pdf_factory(pages=2)
    encoder = FakeEncoder(error=EncoderError("ffmpeg exited with code 1: boom"))
    pipeline = ConversionPipeline(config, encoder=encoder)

    with pytest.raises(EncoderError):
        pipeline.convert("slides.pdf", "out.mp4")

    assert pipeline.state is PipelineState.FAILED
    assert "boom" in pipeline.failure_reason
    assert not encoder.plans[0].concat_path.parent.exists()
    assert not (tmp_path / "out.mp4").exists()


def test_interrupt_during_encode_cancels_job(pdf_factory, config):
    pdf_factory(pages=1)
    jobs = []

    class InterruptingEncoder(FakeEncoder):
        def start(self, plan):
            job = super().start(plan)
            jobs.append(job)
            return job

    def interrupt(event):
        raise KeyboardInterrupt

    pipeline = ConversionPipeline(config, encoder=InterruptingEncoder(), on_progress=interrupt)
    with pytest.raises(EncoderError, match="interrupted"):
        pipeline.convert("slides.pdf", "out.mp4")
    assert jobs[0].cancelled
    assert pipeline.state is PipelineState.FAILED


def test_progress_events_are_forwarded(pdf_factory, config):
    pdf_factory(pages=1)
    events = []
    pipeline = ConversionPipeline(
        config, encoder=FakeEncoder(frames=(3, 7, 10)), on_progress=events.append
    )
    pipeline.convert("slides.pdf", "out.mp4")
    assert [e.frames for e in events] == [3, 7, 10]
    assert events[-1].percent == 100.0


def test_output_directory_is_created(pdf_factory, config, tmp_path):
    pdf_factory(pages=1)
    result = ConversionPipeline(config, encoder=FakeEncoder()).convert(
        "slides.pdf", "videos/2024/out.mp4"
    )
    assert result.output_path == str(tmp_path / "videos" / "2024" / "out.mp4")
    assert (tmp_path / "videos" / "2024" / "out.mp4").exists()


def test_dry_run_does_not_start_ffmpeg(pdf_factory, config, tmp_path, caplog):
    pdf_factory(pages=2)
    config.dry_run = True
    encoder = FakeEncoder()

    with caplog.at_level("INFO"):
        result = ConversionPipeline(config, encoder=encoder).convert("slides.pdf", "out.mp4")

    assert encoder.plans == []
    assert result.dry_run
    assert result.command[0] == "ffmpeg"
    assert "file 'frame_0001.png'" in caplog.text
    assert not (tmp_path / "out.mp4").exists()


def test_missing_input(config):
    pipeline = ConversionPipeline(config, encoder=FakeEncoder())
    with pytest.raises(InvalidInputError, match="not found"):
        pipeline.convert("absent.pdf", "out.mp4")
    assert pipeline.state is PipelineState.FAILED


def test_pipeline_runs_once(pdf_factory, config):
    pdf_factory(pages=1)
    pipeline = ConversionPipeline(config, encoder=FakeEncoder())
    pipeline.convert("slides.pdf", "out.mp4")
    with pytest.raises(RuntimeError):
        pipeline.convert("slides.pdf", "out.mp4")


@pytest.mark.parametrize("overrides", [
    {"width": 0},
    {"height": -1},
    {"frame_rate": 0},
    {"render_scale": 0},
    {"page_gap": -0.5},
])
def test_config_rejects_bad_values(tmp_path, overrides):
    with pytest.raises(InvalidInputError):
        ConversionConfig(base_dir=tmp_path, **overrides)


def test_config_resolves_relative_paths(tmp_path):
    config = ConversionConfig(base_dir=tmp_path, audio_dir="talk-audio", cache_root="cache")
    assert config.audio_dir == tmp_path / "talk-audio"
    assert config.cache_root == tmp_path / "cache"
    assert config.resolve_path(tmp_path / "x.pdf") == tmp_path / "x.pdf"


@pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg and ffprobe are required",
)
def test_real_encode_with_narration(pdf_factory, config, tmp_path):
    from pydub import AudioSegment

    pdf_factory(pages=2)
    audio = tmp_path / "audio"
    audio.mkdir()
    AudioSegment.silent(duration=500).export(str(audio / "1.wav"), format="wav")
    config.audio_dir = audio

    result = ConversionPipeline(config).convert("slides.pdf", "out.mp4")

    assert result.has_audio
    assert result.video_duration == pytest.approx(2.5, abs=0.05)
    assert (tmp_path / "out.mp4").stat().st_size > 0
