"""Orchestrators — the transcription and export pipelines.

Both pipelines are small state machines that drive external collaborators,
fold their fractional progress into one overall percentage, and translate
collaborator failures into the error kinds in ``textcut.errors``.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

from textcut.collaborators import AudioExtractor, Encoder, SpeechEngine
from textcut.errors import (
    EmptyExportError,
    EncodingFailedError,
    ExtractionFailedError,
    ModelLoadError,
    NoSpeechDetectedError,
    PipelineCancelledError,
    PipelineError,
)
from textcut.manifest import ExportSettings
from textcut.models import EncodedVideo, TimeRange, Word
from textcut.progress import PartialTranscript, ProgressEvent, ProgressThrottle, scaled
from textcut.segments import derive_kept, merge_ranges, total_length

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
PartialListener = Callable[[PartialTranscript], None]

# Share of the overall bar reserved for the first stage of each pipeline.
EXTRACTION_SHARE = 20.0
PREPARATION_SHARE = 10.0


class TranscriptionState(str, Enum):
    IDLE = "idle"
    EXTRACTING_AUDIO = "extracting_audio"
    LOADING_MODEL = "loading_model"
    TRANSCRIBING = "transcribing"
    COMPLETE = "complete"
    FAILED = "failed"


class ExportState(str, Enum):
    IDLE = "idle"
    DERIVING = "deriving"
    ENCODING = "encoding"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ExportResult:
    video: EncodedVideo
    kept_segments: list[TimeRange] = field(default_factory=list)
    duration_original: float = 0.0
    duration_final: float = 0.0

    @property
    def data(self) -> bytes:
        return self.video.data

    @property
    def mime_type(self) -> str:
        return self.video.mime_type


class _Reporter:
    """Throttled, cancellable progress delivery shared by both pipelines."""

    def __init__(
        self,
        on_progress: ProgressListener | None,
        should_cancel: Callable[[], bool] | None,
        throttle: ProgressThrottle | None,
    ) -> None:
        self._on_progress = on_progress
        self._should_cancel = should_cancel
        self._throttle = throttle or ProgressThrottle()
        self.stage = ""
        self.message = ""

    def check_cancelled(self) -> None:
        if self._should_cancel and self._should_cancel():
            raise PipelineCancelledError("Cancelled by caller")

    def __call__(self, percent: float, check: bool = True) -> None:
        if check:
            self.check_cancelled()
        value = self._throttle.offer(percent)
        if value is not None and self._on_progress:
            self._on_progress(ProgressEvent(stage=self.stage, progress=value, message=self.message))

    def enter(self, stage: str, message: str, percent: float, check: bool = True) -> None:
        self.stage = stage
        self.message = message
        self(percent, check)


class TranscriptionPipeline:
    """Audio extraction followed by speech-to-text with live partial results."""

    def __init__(self, extractor: AudioExtractor, speech: SpeechEngine) -> None:
        self.extractor = extractor
        self.speech = speech
        self.state = TranscriptionState.IDLE

    def run(
        self,
        video_path: Path,
        language: str = "en",
        on_progress: ProgressListener | None = None,
        on_partial: PartialListener | None = None,
        should_cancel: Callable[[], bool] | None = None,
        throttle: ProgressThrottle | None = None,
    ) -> list[Word]:
        report = _Reporter(on_progress, should_cancel, throttle)
        try:
            words = self._run(video_path, language, report, on_partial)
        except Exception as exc:
            self.state = TranscriptionState.FAILED
            logger.error("Transcription of %s failed: %s", Path(video_path).name, exc)
            raise
        self.state = TranscriptionState.COMPLETE
        report.enter(self.state.value, "Transcription complete!", 100.0, check=False)
        return words

    def _run(self, video_path, language, report, on_partial) -> list[Word]:
        self.state = TranscriptionState.EXTRACTING_AUDIO
        report.enter(self.state.value, "Extracting audio...", 0.0)
        try:
            audio = self.extractor.extract(
                video_path, scaled(report, 0.0, EXTRACTION_SHARE)
            )
        except PipelineError:
            raise
        except Exception as exc:
            raise ExtractionFailedError(f"Audio extraction failed: {exc}") from exc
        if not audio:
            raise ExtractionFailedError("Audio extraction produced no output")
        logger.info("Audio extracted, %d bytes", len(audio))

        self.state = TranscriptionState.LOADING_MODEL
        report.enter(self.state.value, "Loading speech model...", EXTRACTION_SHARE)
        try:
            self.speech.load()
        except Exception as exc:
            raise ModelLoadError(f"Failed to load speech model: {exc}") from exc

        self.state = TranscriptionState.TRANSCRIBING
        report.enter(self.state.value, "Transcribing audio...", EXTRACTION_SHARE)
        delivered = 0

        def partial(words: list[Word]) -> None:
            nonlocal delivered
            report.check_cancelled()
            # Partial transcripts only ever grow.
            if len(words) < delivered:
                return
            delivered = len(words)
            if on_partial:
                on_partial(PartialTranscript(words=list(words)))

        try:
            words = self.speech.transcribe(
                audio,
                language,
                scaled(report, EXTRACTION_SHARE, 100.0 - EXTRACTION_SHARE),
                partial,
            )
        except PipelineError:
            raise
        except Exception as exc:
            raise PipelineError(f"Transcription failed: {exc}") from exc

        if not words:
            raise NoSpeechDetectedError()
        logger.info("Transcription complete, %d words", len(words))
        return list(words)


class ExportPipeline:
    """Derive keep-segments from the deletions and re-encode them."""

    def __init__(self, encoder: Encoder) -> None:
        self.encoder = encoder
        self.state = ExportState.IDLE

    def run(
        self,
        video_path: Path,
        deleted: Iterable[TimeRange],
        total_duration: float,
        settings: ExportSettings | None = None,
        on_progress: ProgressListener | None = None,
        should_cancel: Callable[[], bool] | None = None,
        throttle: ProgressThrottle | None = None,
    ) -> ExportResult:
        settings = settings or ExportSettings()
        report = _Reporter(on_progress, should_cancel, throttle)
        try:
            result = self._run(video_path, list(deleted), total_duration, settings, report)
        except Exception as exc:
            self.state = ExportState.FAILED
            logger.error("Export of %s failed: %s", Path(video_path).name, exc)
            raise
        self.state = ExportState.COMPLETE
        report.enter(self.state.value, "Export complete!", 100.0, check=False)
        return result

    def _run(self, video_path, deleted, total_duration, settings, report) -> ExportResult:
        self.state = ExportState.DERIVING
        report.enter(self.state.value, "Preparing export...", 0.0)
        if not (math.isfinite(total_duration) and total_duration > 0):
            raise ValueError(f"total_duration must be positive, got {total_duration}")

        merged = merge_ranges(deleted)
        if merged:
            keep = derive_kept(total_duration, merged)
            if not keep:
                raise EmptyExportError()
        else:
            # Still re-encode so quality and resolution settings apply.
            keep = [TimeRange(start=0.0, end=total_duration)]
        logger.info(
            "Exporting %d kept segments (%d deleted) from %s",
            len(keep), len(merged), Path(video_path).name,
        )

        self.state = ExportState.ENCODING
        report.enter(self.state.value, "Processing video...", PREPARATION_SHARE)
        try:
            video = self.encoder.encode(
                video_path,
                keep,
                settings,
                scaled(report, PREPARATION_SHARE, 100.0 - PREPARATION_SHARE),
            )
        except PipelineError:
            raise
        except Exception as exc:
            raise EncodingFailedError(f"Encoding failed: {exc}") from exc
        if video is None or not video.data:
            raise EncodingFailedError("Encoder did not produce an output file")

        return ExportResult(
            video=video,
            kept_segments=keep,
            duration_original=total_duration,
            duration_final=total_length(keep),
        )


def transcribe_video(
    video_path: Path,
    language: str,
    extractor: AudioExtractor,
    speech: SpeechEngine,
    on_progress: ProgressListener | None = None,
    on_partial: PartialListener | None = None,
) -> list[Word]:
    """Run a one-off transcription pipeline."""
    return TranscriptionPipeline(extractor, speech).run(
        video_path, language, on_progress=on_progress, on_partial=on_partial
    )


def export_video(
    video_path: Path,
    deleted: Iterable[TimeRange],
    total_duration: float,
    settings: ExportSettings,
    encoder: Encoder,
    on_progress: ProgressListener | None = None,
) -> ExportResult:
    """Run a one-off export pipeline."""
    return ExportPipeline(encoder).run(
        video_path, deleted, total_duration, settings, on_progress=on_progress
    )
