"""Speech-to-text analyzer using OpenAI Whisper.

Whisper does not report word timings the same way in every configuration,
so each result segment goes through a ranked chain of strategies and the
first one that yields words wins:

1. ``words_from_timestamps`` uses the model's per-word timestamps and keeps
   its probability as confidence.
2. ``words_from_inline_tags`` reads ``<|1.20|>`` timestamp tags embedded in the
   segment text and spreads the words between consecutive tags. Confidence is
   capped at 0.8.
3. ``words_from_interpolation`` spreads the words evenly over the segment.
   Confidence is capped at 0.7 so estimated timings stay distinguishable.
"""

import logging
import math
import re
from typing import Callable

from textcut.analyzers.audio import SAMPLE_RATE
from textcut.models import Word

logger = logging.getLogger(__name__)

INLINE_TAG_CEILING = 0.8
INTERPOLATED_CEILING = 0.7

_TAG_RE = re.compile(r"<\|(\d+(?:\.\d+)?)\|>")


def _segment_confidence(segment: dict) -> float:
    avg_logprob = segment.get("avg_logprob")
    if avg_logprob is None:
        return 1.0
    return min(max(math.exp(avg_logprob), 0.0), 1.0)


def _spread(text: str, start: float, end: float, confidence: float) -> list[Word]:
    tokens = text.split()
    if not tokens or end <= start:
        return []
    step = (end - start) / len(tokens)
    return [
        Word(
            text=tok,
            start=start + i * step,
            end=start + (i + 1) * step,
            confidence=confidence,
        )
        for i, tok in enumerate(tokens)
    ]


def words_from_timestamps(segment: dict, offset: float = 0.0) -> list[Word]:
    words: list[Word] = []
    for w in segment.get("words") or []:
        text = w.get("word", "").strip()
        if not text:
            continue
        words.append(
            Word(
                text=text,
                start=float(w["start"]) + offset,
                end=float(w["end"]) + offset,
                confidence=min(max(float(w.get("probability", 1.0)), 0.0), 1.0),
            )
        )
    return words


def words_from_inline_tags(segment: dict, offset: float = 0.0) -> list[Word]:
    text = segment.get("text", "")
    parts = _TAG_RE.split(text)
    if len(parts) < 2:
        return []

    confidence = min(_segment_confidence(segment), INLINE_TAG_CEILING)
    seg_start = float(segment.get("start", 0.0))
    seg_end = float(segment.get("end", seg_start))

    # parts alternates: text, tag, text, tag, ..., text
    words: list[Word] = []
    bounds = [seg_start] + [float(t) for t in parts[1::2]] + [seg_end]
    chunks = parts[0::2]
    for i, chunk in enumerate(chunks):
        start, end = bounds[i], bounds[i + 1]
        words.extend(_spread(chunk, start + offset, end + offset, confidence))
    return words


def words_from_interpolation(segment: dict, offset: float = 0.0) -> list[Word]:
    confidence = min(_segment_confidence(segment), INTERPOLATED_CEILING)
    start = float(segment.get("start", 0.0)) + offset
    end = float(segment.get("end", 0.0)) + offset
    return _spread(_TAG_RE.sub(" ", segment.get("text", "")), start, end, confidence)


WORD_STRATEGIES: tuple[Callable[[dict, float], list[Word]], ...] = (
    words_from_timestamps,
    words_from_inline_tags,
    words_from_interpolation,
)


def extract_words(segment: dict, offset: float = 0.0) -> list[Word]:
    """Run the strategy chain on one Whisper segment."""
    for strategy in WORD_STRATEGIES:
        words = strategy(segment, offset)
        if words:
            return words
    return []


class WhisperSpeechEngine:
    """Whisper model wrapper that transcribes audio in fixed windows.

    Working window by window lets the engine report progress and the
    cumulative transcript after each one.
    """

    def __init__(
        self,
        model: str = "base",
        window_seconds: float = 30.0,
        device: str | None = None,
    ) -> None:
        self.model_name = model
        self.window_seconds = window_seconds
        self.device = device
        self._model = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        if self._model is not None:
            return
        import whisper

        logger.info("Loading Whisper model %r", self.model_name)
        self._model = whisper.load_model(self.model_name, device=self.device)

    def transcribe(
        self,
        audio: bytes,
        language: str,
        on_progress: Callable[[float], None] | None = None,
        on_partial: Callable[[list[Word]], None] | None = None,
    ) -> list[Word]:
        import numpy as np

        self.load()
        samples = np.frombuffer(audio, np.int16).flatten().astype(np.float32) / 32768.0
        total = len(samples)
        window = max(int(self.window_seconds * SAMPLE_RATE), 1)

        words: list[Word] = []
        prompt: str | None = None
        for begin in range(0, total, window):
            chunk = samples[begin:begin + window]
            offset = begin / SAMPLE_RATE
            result = self._model.transcribe(
                chunk,
                language=language,
                word_timestamps=True,
                initial_prompt=prompt,
                fp16=False,
            )
            for segment in result.get("segments", []):
                words.extend(extract_words(segment, offset))
            prompt = result.get("text", "").strip() or prompt

            if on_progress:
                on_progress(min((begin + len(chunk)) / total, 1.0))
            if on_partial and words:
                on_partial(list(words))

        logger.info("Whisper recognized %d words", len(words))
        return words
