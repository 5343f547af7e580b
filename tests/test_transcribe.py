"""Tests for Whisper word-timing recovery and the windowed speech engine."""

import math
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from textcut.analyzers.transcribe import (
    INLINE_TAG_CEILING,
    INTERPOLATED_CEILING,
    WhisperSpeechEngine,
    extract_words,
    words_from_inline_tags,
    words_from_interpolation,
    words_from_timestamps,
)
from textcut.models import Word


class TestWordsFromTimestamps:
    def test_uses_model_timings_and_probability(self):
        seg = {
            "start": 0.0, "end": 1.0, "text": " Hi there",
            "words": [
                {"word": " Hi", "start": 0.0, "end": 0.4, "probability": 0.97},
                {"word": " there", "start": 0.5, "end": 1.0, "probability": 0.88},
            ],
        }
        assert words_from_timestamps(seg, offset=30.0) == [
            Word(text="Hi", start=30.0, end=30.4, confidence=0.97),
            Word(text="there", start=30.5, end=31.0, confidence=0.88),
        ]

    def test_missing_words_key(self):
        assert words_from_timestamps({"start": 0, "end": 1, "text": "hi"}) == []

    def test_skips_blank_tokens(self):
        seg = {"words": [{"word": " ", "start": 0.0, "end": 0.1}]}
        assert words_from_timestamps(seg) == []


class TestWordsFromInlineTags:
    def test_spreads_words_between_tags(self):
        seg = {"start": 0.0, "end": 2.0, "text": "<|0.00|> one two<|1.00|> three<|2.00|>"}
        words = words_from_inline_tags(seg)
        assert [w.text for w in words] == ["one", "two", "three"]
        assert words[0].start == 0.0 and words[0].end == 0.5
        assert words[1].start == 0.5 and words[1].end == 1.0
        assert words[2].start == 1.0 and words[2].end == 2.0
        assert all(w.confidence <= INLINE_TAG_CEILING for w in words)

    def test_no_tags(self):
        assert words_from_inline_tags({"start": 0, "end": 1, "text": "plain text"}) == []


class TestWordsFromInterpolation:
    def test_uniform_split(self):
        seg = {"start": 10.0, "end": 13.0, "text": " a b c", "avg_logprob": -0.05}
        words = words_from_interpolation(seg)
        assert [(w.start, w.end) for w in words] == [(10.0, 11.0), (11.0, 12.0), (12.0, 13.0)]
        assert all(w.confidence == INTERPOLATED_CEILING for w in words)

    def test_low_model_confidence_is_kept(self):
        seg = {"start": 0.0, "end": 1.0, "text": "hmm", "avg_logprob": -2.0}
        (w,) = words_from_interpolation(seg)
        assert w.confidence == pytest.approx(math.exp(-2.0))

    def test_zero_length_segment(self):
        assert words_from_interpolation({"start": 1.0, "end": 1.0, "text": "x"}) == []


class TestExtractWords:
    def test_prefers_timestamps(self):
        seg = {
            "start": 0.0, "end": 1.0, "text": "<|0.00|> hi<|1.00|>",
            "words": [{"word": "hi", "start": 0.1, "end": 0.2, "probability": 0.9}],
        }
        assert extract_words(seg) == [Word(text="hi", start=0.1, end=0.2, confidence=0.9)]

    def test_falls_back_to_tags_then_interpolation(self):
        tagged = {"start": 0.0, "end": 1.0, "text": "<|0.00|> hi<|1.00|>", "words": []}
        assert extract_words(tagged)[0].confidence == INLINE_TAG_CEILING
        plain = {"start": 0.0, "end": 1.0, "text": "hi"}
        assert extract_words(plain)[0].confidence == INTERPOLATED_CEILING

    def test_empty_segment(self):
        assert extract_words({"start": 0.0, "end": 1.0, "text": "  "}) == []


@pytest.fixture
def fake_whisper(monkeypatch):
    model = MagicMock()
    module = SimpleNamespace(load_model=MagicMock(return_value=model))
    monkeypatch.setitem(sys.modules, "whisper", module)
    return module, model


def _pcm(seconds: float) -> bytes:
    return np.zeros(int(seconds * 16000), dtype=np.int16).tobytes()


class TestWhisperSpeechEngine:
    def test_load_once(self, fake_whisper):
        module, _ = fake_whisper
        engine = WhisperSpeechEngine(model="tiny")
        engine.load()
        engine.load()
        module.load_model.assert_called_once_with("tiny", device=None)
        assert engine.loaded

    def test_windows_offsets_partials_and_progress(self, fake_whisper):
        _, model = fake_whisper
        model.transcribe.side_effect = [
            {"text": " first", "segments": [{"start": 0.0, "end": 1.0, "text": " first"}]},
            {"text": " second", "segments": [{"start": 0.5, "end": 1.5, "text": " second"}]},
        ]
        engine = WhisperSpeechEngine(window_seconds=2.0)
        progress, partials = [], []
        words = engine.transcribe(_pcm(3.0), "en", progress.append, partials.append)

        assert [w.text for w in words] == ["first", "second"]
        assert words[1].start == pytest.approx(2.5)
        assert progress == [pytest.approx(2 / 3), 1.0]
        assert [len(p) for p in partials] == [1, 2]

        first_call, second_call = model.transcribe.call_args_list
        assert first_call.kwargs["language"] == "en"
        assert first_call.kwargs["word_timestamps"] is True
        assert first_call.kwargs["initial_prompt"] is None
        assert second_call.kwargs["initial_prompt"] == "first"
        assert len(first_call.args[0]) == 32000
        assert first_call.args[0].dtype == np.float32

    def test_silence_yields_no_words(self, fake_whisper):
        _, model = fake_whisper
        model.transcribe.return_value = {"text": "", "segments": []}
        partials = []
        words = WhisperSpeechEngine().transcribe(_pcm(1.0), "en", None, partials.append)
        assert words == []
        assert partials == []
