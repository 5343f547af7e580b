"""Contracts for the external engines the pipelines drive.

Progress reported through ``on_progress`` is fractional, 0.0 to 1.0.
"""

from pathlib import Path
from typing import Callable, Protocol, Sequence

from textcut.manifest import ExportSettings
from textcut.models import EncodedVideo, TimeRange, Word


class AudioExtractor(Protocol):
    def extract(
        self, video_path: Path, on_progress: Callable[[float], None]
    ) -> bytes:
        """Return mono 16 kHz 16-bit PCM audio decoded from the video."""


class SpeechEngine(Protocol):
    def load(self) -> None:
        """Initialize the model. Safe to call more than once."""

    def transcribe(
        self,
        audio: bytes,
        language: str,
        on_progress: Callable[[float], None],
        on_partial: Callable[[list[Word]], None],
    ) -> list[Word]:
        """Return timed words; ``on_partial`` receives the cumulative words so far."""


class Encoder(Protocol):
    def encode(
        self,
        video_path: Path,
        keep: Sequence[TimeRange],
        settings: ExportSettings,
        on_progress: Callable[[float], None],
    ) -> EncodedVideo:
        """Trim ``keep`` from the source, concatenate in order and re-encode."""
