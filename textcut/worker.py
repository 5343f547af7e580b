"""Engine session — runs pipelines on a dedicated worker thread.

The speech model and the ffmpeg-backed collaborators are heavy, single-user
resources. An ``EngineSession`` owns one set of them and executes requests
one at a time off the caller's thread. Every request gets a correlation id
and its own event channel, exposed through a ``Job`` handle.
"""

import logging
import math
import queue
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from textcut.analyzers.audio import FFmpegAudioExtractor
from textcut.analyzers.transcribe import WhisperSpeechEngine
from textcut.collaborators import AudioExtractor, Encoder, SpeechEngine
from textcut.editors.cut import FFmpegEncoder
from textcut.engine import ExportPipeline, TranscriptionPipeline
from textcut.errors import PipelineCancelledError
from textcut.manifest import ExportSettings, TranscriptionConfig, normalize_language
from textcut.models import TimeRange
from textcut.progress import PartialTranscript, ProgressEvent

logger = logging.getLogger(__name__)

_DONE = object()

Event = ProgressEvent | PartialTranscript


class Job:
    """Handle to one in-flight pipeline request."""

    def __init__(self, kind: str, target: Callable[["Job"], Any]) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.kind = kind
        self.state = "queued"
        self._target = target
        self._events: queue.Queue = queue.Queue()
        self._done = threading.Event()
        self._cancel = threading.Event()
        self._result: Any = None
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def error(self) -> BaseException | None:
        return self._error

    def cancel(self) -> None:
        """Request cooperative cancellation, honoured at the next progress report."""
        self._cancel.set()

    def emit(self, event: Event) -> None:
        if isinstance(event, ProgressEvent):
            self.state = event.stage
        self._events.put(event)

    def events(self, timeout: float | None = None) -> Iterator[Event]:
        """Yield progress and partial-transcript events until the job finishes.

        The channel is a queue, so each event is delivered to one consumer.
        Raises TimeoutError if no event arrives within ``timeout`` seconds.
        """
        while True:
            try:
                item = self._events.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(f"No event from job {self.id} within {timeout}s") from None
            if item is _DONE:
                return
            yield item

    def result(self, timeout: float | None = None) -> Any:
        if not self._done.wait(timeout):
            raise TimeoutError(f"Job {self.id} did not finish within {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    def _run(self) -> None:
        try:
            if self.cancelled:
                raise PipelineCancelledError("Cancelled before start")
            self._result = self._target(self)
        except Exception as exc:
            self._error = exc
            self.state = "failed"
        finally:
            self._done.set()
            self._events.put(_DONE)


class EngineSession:
    """Owns the engine collaborators and the worker thread that drives them."""

    def __init__(
        self,
        extractor: AudioExtractor | None = None,
        speech: SpeechEngine | None = None,
        encoder: Encoder | None = None,
        config: TranscriptionConfig | None = None,
    ) -> None:
        self.config = config or TranscriptionConfig()
        self.extractor = extractor or FFmpegAudioExtractor()
        self.speech = speech or WhisperSpeechEngine(
            model=self.config.model, window_seconds=self.config.window_seconds
        )
        self.encoder = encoder or FFmpegEncoder()
        self._requests: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._thread is not None

    def open(self) -> "EngineSession":
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._loop, name="textcut-engine", daemon=True
                )
                self._thread.start()
                logger.info("Engine session opened")
        return self

    def close(self, timeout: float | None = None) -> None:
        """Finish queued jobs, then stop the worker thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._requests.put(None)
        thread.join(timeout)
        logger.info("Engine session closed")

    def __enter__(self) -> "EngineSession":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def submit_transcription(self, video_path: Path, language: str | None = None) -> Job:
        language = normalize_language(language) if language else self.config.language
        pipeline = TranscriptionPipeline(self.extractor, self.speech)

        def target(job: Job):
            return pipeline.run(
                video_path,
                language,
                on_progress=job.emit,
                on_partial=job.emit,
                should_cancel=lambda: job.cancelled,
            )

        return self._submit("transcription", target)

    def submit_export(
        self,
        video_path: Path,
        deleted: Iterable[TimeRange],
        total_duration: float,
        settings: ExportSettings | None = None,
    ) -> Job:
        if not (math.isfinite(total_duration) and total_duration > 0):
            raise ValueError(f"total_duration must be positive, got {total_duration}")
        # Snapshot the ranges so later edits don't leak into this export.
        deleted = list(deleted)
        pipeline = ExportPipeline(self.encoder)

        def target(job: Job):
            return pipeline.run(
                video_path,
                deleted,
                total_duration,
                settings,
                on_progress=job.emit,
                should_cancel=lambda: job.cancelled,
            )

        return self._submit("export", target)

    def _submit(self, kind: str, target: Callable[[Job], Any]) -> Job:
        if not self.is_open:
            raise RuntimeError("Engine session is not open")
        job = Job(kind, target)
        self._requests.put(job)
        logger.debug("Queued %s job %s", kind, job.id)
        return job

    def _loop(self) -> None:
        while True:
            job = self._requests.get()
            if job is None:
                break
            logger.info("Running %s job %s", job.kind, job.id)
            job._run()
