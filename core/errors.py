"""
Error kinds raised by the conversion pipeline.

Fatal errors (:class:`InvalidInputError`, :class:`EncoderError`,
:class:`FilesystemError`) abort the run.  :class:`CacheError` and
:class:`AudioProbeError` are caught inside the pipeline and degrade to a
cache miss or a zero-length hold respectively.
"""


class ConversionError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(ConversionError):
    """The source document or configuration cannot be used."""


class CacheError(ConversionError):
    """The page-image cache could not be read."""


class AudioProbeError(ConversionError):
    """A narration clip's duration could not be determined."""


class EncoderError(ConversionError):
    """ffmpeg could not be found, failed, or was interrupted."""


class FilesystemError(ConversionError):
    """A file the pipeline depends on could not be written."""


class MissingAudioWarning(UserWarning):
    """An audio directory was given but a page has no matching clip."""

    def __init__(self, page_index: int, audio_dir: str):
        self.page_index = page_index
        self.audio_dir = audio_dir
        super().__init__(
            f"No audio file found for page {page_index + 1} in {audio_dir}"
        )
