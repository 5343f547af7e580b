"""Shared test fixtures."""

from pathlib import Path

import pytest

from textcut.models import EncodedVideo, Word

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


WORDS = [
    Word(text="Hello", start=0.0, end=0.5, confidence=0.95),
    Word(text="there", start=0.6, end=1.0, confidence=0.9),
    Word(text="um", start=1.2, end=1.5, confidence=0.6),
    Word(text="general", start=1.6, end=2.2, confidence=0.92),
    Word(text="Kenobi", start=2.3, end=3.0, confidence=0.88),
]


@pytest.fixture
def words() -> list[Word]:
    return list(WORDS)


class FakeExtractor:
    def __init__(self, audio: bytes = b"\x00\x01" * 100, fail: Exception | None = None):
        self.audio = audio
        self.fail = fail
        self.calls = 0

    def extract(self, video_path, on_progress):
        self.calls += 1
        for frac in (0.0, 0.25, 0.5, 1.0):
            on_progress(frac)
        if self.fail:
            raise self.fail
        return self.audio


class FakeSpeechEngine:
    """Delivers ``words`` in chunks, emitting a cumulative partial after each."""

    def __init__(self, words=None, chunks: int = 2, load_error: Exception | None = None):
        self.words = list(WORDS if words is None else words)
        self.chunks = chunks
        self.load_error = load_error
        self.loaded = False
        self.languages: list[str] = []

    def load(self):
        if self.load_error:
            raise self.load_error
        self.loaded = True

    def transcribe(self, audio, language, on_progress, on_partial):
        self.languages.append(language)
        if not self.words:
            on_progress(1.0)
            return []
        size = max(len(self.words) // self.chunks, 1)
        delivered: list[Word] = []
        for i in range(0, len(self.words), size):
            delivered.extend(self.words[i:i + size])
            on_progress(len(delivered) / len(self.words))
            on_partial(list(delivered))
        return list(delivered)


class FakeEncoder:
    def __init__(self, data: bytes = b"encoded", fail: Exception | None = None):
        self.data = data
        self.fail = fail
        self.calls: list[tuple] = []

    def encode(self, video_path, keep, settings, on_progress):
        self.calls.append((video_path, list(keep), settings))
        for frac in (0.0, 0.3, 0.6, 1.0):
            on_progress(frac)
        if self.fail:
            raise self.fail
        return EncodedVideo(data=self.data, mime_type=settings.mime_type)


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def speech() -> FakeSpeechEngine:
    return FakeSpeechEngine()


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()
