"""Error taxonomy for the editing pipelines.

Every pipeline failure is terminal for the invocation that raised it. Callers
distinguish the kinds below to pick the right message for the user.
"""


class TextcutError(Exception):
    """Base class for all textcut errors."""


class UnsupportedFileTypeError(TextcutError, ValueError):
    """The uploaded file is not a recognized video container."""


class PipelineError(TextcutError):
    """A transcription or export pipeline aborted."""


class ExtractionFailedError(PipelineError):
    """Audio extraction failed or produced no output."""


class ModelLoadError(PipelineError):
    """The speech engine could not be initialized."""


class NoSpeechDetectedError(PipelineError):
    """The speech engine finished without recognizing a single word."""

    def __init__(self, message: str = "No speech found in this video") -> None:
        super().__init__(message)


class EncodingFailedError(PipelineError):
    """The encoder exited with an error or did not produce an artifact."""


class EmptyExportError(PipelineError):
    """Every second of the video is marked deleted; nothing left to export."""

    def __init__(self, message: str = "No video content remaining after deletions") -> None:
        super().__init__(message)


class PipelineCancelledError(PipelineError):
    """The job was cancelled by its caller."""
