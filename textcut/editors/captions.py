"""Caption editor — renders the transcript as SRT or WebVTT subtitles."""

from pathlib import Path
from typing import Sequence

from textcut.models import Word


def _split_time(seconds: float) -> tuple[int, int, int, int]:
    total_ms = int(round(seconds * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return h, m, s, ms


def format_srt_time(seconds: float) -> str:
    h, m, s, ms = _split_time(seconds)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def format_vtt_time(seconds: float) -> str:
    h, m, s, ms = _split_time(seconds)
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


def to_srt(words: Sequence[Word]) -> str:
    """One numbered cue per word."""
    blocks: list[str] = []
    for i, w in enumerate(words, 1):
        blocks.append(f"{i}\n{format_srt_time(w.start)} --> {format_srt_time(w.end)}\n{w.text}\n\n")
    return "".join(blocks)


def to_vtt(words: Sequence[Word]) -> str:
    blocks: list[str] = ["WEBVTT\n\n"]
    for i, w in enumerate(words, 1):
        blocks.append(f"{i}\n{format_vtt_time(w.start)} --> {format_vtt_time(w.end)}\n{w.text}\n\n")
    return "".join(blocks)


def write_subtitles(words: Sequence[Word], path: Path, output_format: str = "srt") -> Path:
    """Write a subtitle sidecar file and return its path."""
    content = to_vtt(words) if output_format == "vtt" else to_srt(words)
    path.write_text(content, encoding="utf-8")
    return path
