"""Cut editor — keeps the given ranges and re-encodes them into one video."""

import logging
import tempfile
from pathlib import Path
from typing import Callable, Sequence

from textcut import ffutil
from textcut.manifest import ExportSettings
from textcut.models import EncodedVideo, TimeRange

logger = logging.getLogger(__name__)


class FFmpegEncoder:
    """Encoder backed by a single ffmpeg trim/concat/scale pass."""

    def encode(
        self,
        video_path: Path,
        keep: Sequence[TimeRange],
        settings: ExportSettings,
        on_progress: Callable[[float], None] | None = None,
    ) -> EncodedVideo:
        if not keep:
            raise ValueError("No keep segments found — entire video would be removed")
        ffutil.check_ffmpeg()

        with tempfile.TemporaryDirectory() as tmpdir:
            output_path = Path(tmpdir) / f"output.{settings.format}"
            logger.info(
                "Encoding %d segments from %s (%s, %s, %s)",
                len(keep), video_path.name,
                settings.format, settings.quality, settings.resolution,
            )
            ffutil.encode_segments(
                video_path, keep, output_path, settings, on_progress=on_progress
            )
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise FileNotFoundError(f"ffmpeg did not produce {output_path.name}")
            data = output_path.read_bytes()

        return EncodedVideo(data=data, mime_type=settings.mime_type)
