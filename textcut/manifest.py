"""Export/transcription settings and the JSON edit manifest."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from textcut.models import TimeRange

FORMATS = ("mp4", "webm")
QUALITIES = ("low", "medium", "high")

MIME_TYPES = {"mp4": "video/mp4", "webm": "video/webm"}

# Target bounding box per resolution tier; aspect ratio is preserved.
RESOLUTIONS: dict[str, tuple[int, int] | None] = {
    "original": None,
    "1080p": (1920, 1080),
    "720p": (1280, 720),
    "480p": (854, 480),
    "360p": (640, 360),
}

LANGUAGES = ("en", "es", "fr", "de", "it", "pt", "ja", "ko", "zh")


@dataclass(frozen=True)
class QualityPreset:
    """Encoder parameters for one quality tier."""

    x264_preset: str
    x264_crf: int
    vp9_crf: int
    vp9_cpu_used: int
    audio_bitrate: str


QUALITY_PRESETS: dict[str, QualityPreset] = {
    "high": QualityPreset(x264_preset="slow", x264_crf=18, vp9_crf=24, vp9_cpu_used=1, audio_bitrate="192k"),
    "medium": QualityPreset(x264_preset="medium", x264_crf=23, vp9_crf=32, vp9_cpu_used=2, audio_bitrate="128k"),
    "low": QualityPreset(x264_preset="veryfast", x264_crf=28, vp9_crf=40, vp9_cpu_used=5, audio_bitrate="96k"),
}


@dataclass
class ExportSettings:
    """User-selected output format, quality tier and resolution."""

    format: str = "mp4"
    quality: str = "high"
    resolution: str = "original"

    def __post_init__(self) -> None:
        if self.format not in FORMATS:
            raise ValueError(f"Unsupported export format: {self.format!r}")
        if self.quality not in QUALITIES:
            raise ValueError(f"Unsupported quality: {self.quality!r}")
        if self.resolution not in RESOLUTIONS:
            raise ValueError(f"Unsupported resolution: {self.resolution!r}")

    @property
    def preset(self) -> QualityPreset:
        return QUALITY_PRESETS[self.quality]

    @property
    def max_dimensions(self) -> tuple[int, int] | None:
        return RESOLUTIONS[self.resolution]

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.format]

    @classmethod
    def from_dict(cls, data: dict | None) -> "ExportSettings":
        data = data or {}
        return cls(
            format=data.get("format", "mp4"),
            quality=data.get("quality", "high"),
            resolution=data.get("resolution", "original"),
        )

    def to_dict(self) -> dict:
        return {"format": self.format, "quality": self.quality, "resolution": self.resolution}


def normalize_language(code: str | None) -> str:
    """Reduce a locale tag like ``en-US`` to the bare language code Whisper expects."""
    if not code:
        return "en"
    return code.replace("_", "-").split("-")[0].lower()


@dataclass
class TranscriptionConfig:
    """Configuration for speech-to-text via Whisper."""

    model: str = "base"
    language: str = "en"
    window_seconds: float = 30.0

    def __post_init__(self) -> None:
        self.language = normalize_language(self.language)
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


@dataclass
class Manifest:
    """A source video, the ranges to delete from it, and how to encode the result."""

    input: Path
    output: Path
    version: str = "1"
    deleted: list[TimeRange] = field(default_factory=list)
    export: ExportSettings = field(default_factory=ExportSettings)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    deleted = [TimeRange(start=float(r["start"]), end=float(r["end"])) for r in data.get("deleted", [])]
    export = ExportSettings.from_dict(data.get("export"))
    transcription = TranscriptionConfig(**data["transcription"]) if "transcription" in data else TranscriptionConfig()

    return Manifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        deleted=deleted,
        export=export,
        transcription=transcription,
    )
