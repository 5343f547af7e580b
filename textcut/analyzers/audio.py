"""Audio extraction for speech recognition."""

import logging
import tempfile
from pathlib import Path
from typing import Callable

from textcut import ffutil

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000


class FFmpegAudioExtractor:
    """Decode a video's audio track to raw mono PCM via ffmpeg."""

    def __init__(self, sample_rate: int = SAMPLE_RATE) -> None:
        self.sample_rate = sample_rate

    def extract(
        self, video_path: Path, on_progress: Callable[[float], None] | None = None
    ) -> bytes:
        ffutil.check_ffmpeg()
        duration = ffutil.probe(video_path).duration
        with tempfile.TemporaryDirectory() as tmpdir:
            pcm_path = Path(tmpdir) / "audio.pcm"
            ffutil.extract_audio(
                video_path,
                pcm_path,
                duration=duration,
                sample_rate=self.sample_rate,
                on_progress=on_progress,
            )
            if not pcm_path.exists():
                raise FileNotFoundError(f"ffmpeg did not create {pcm_path.name}")
            data = pcm_path.read_bytes()

        logger.info("Extracted %d bytes of audio from %s", len(data), video_path.name)
        return data
