"""Shared data types used across textcut."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class TimeRange:
    """A start/end time pair in seconds, ``0 <= start < end``."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.start) and math.isfinite(self.end)):
            raise ValueError(
                f"TimeRange bounds must be finite, got [{self.start}, {self.end}]"
            )
        if self.start < 0:
            raise ValueError(f"TimeRange start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise ValueError(
                f"TimeRange end must be greater than start, got [{self.start}, {self.end}]"
            )

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Word:
    """A single transcribed word with its timing and confidence."""

    text: str
    start: float
    end: float
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Word":
        return cls(
            text=data.get("text", data.get("word", "")).strip(),
            start=float(data["start"]),
            end=float(data["end"]),
            confidence=float(data.get("confidence", 1.0)),
        )


@dataclass
class EncodedVideo:
    """Output of the encoder: raw container bytes plus their mime type."""

    data: bytes
    mime_type: str


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float
    audio_sample_rate: int | None
    codec_video: str
    codec_audio: str | None
