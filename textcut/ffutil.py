"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Sequence

from textcut.errors import UnsupportedFileTypeError
from textcut.manifest import ExportSettings
from textcut.models import ProbeResult, TimeRange

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".avi", ".mkv", ".m4v"}


class FFmpegNotFoundError(RuntimeError):
    pass


class NoVideoStreamError(ValueError):
    """Raised when the input file has no video stream."""
    pass


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def check_video_file(filename: str, mimetype: str | None = None) -> None:
    """Reject anything that is neither a known video extension nor a video/* upload."""
    if mimetype and mimetype.startswith("video/"):
        return
    if Path(filename).suffix.lower() in VIDEO_EXTENSIONS:
        return
    raise UnsupportedFileTypeError(
        f"{filename!r} is not a supported video file (MP4, MOV, WebM, AVI, MKV)"
    )


def probe(input_path: Path) -> ProbeResult:
    """Extract media metadata via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    data = json.loads(result.stdout)

    video_stream = next(
        (s for s in data["streams"] if s["codec_type"] == "video"), None
    )
    audio_stream = next(
        (s for s in data["streams"] if s["codec_type"] == "audio"), None
    )

    if video_stream is None:
        raise NoVideoStreamError(f"No video stream found in {input_path}")

    # Parse fps from r_frame_rate (e.g. "30/1")
    num, den = video_stream["r_frame_rate"].split("/")
    fps = int(num) / int(den) if int(den) else 0.0

    return ProbeResult(
        duration=float(data["format"]["duration"]),
        width=int(video_stream["width"]),
        height=int(video_stream["height"]),
        fps=fps,
        audio_sample_rate=int(audio_stream["sample_rate"]) if audio_stream else None,
        codec_video=video_stream["codec_name"],
        codec_audio=audio_stream["codec_name"] if audio_stream else None,
    )


def parse_progress_time(line: str) -> float | None:
    """Return the output position in seconds from one ``-progress`` line, if it carries one."""
    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        # Both keys are reported in microseconds.
        return int(value) / 1_000_000
    except ValueError:
        return None


def run_with_progress(
    cmd: list[str],
    expected_duration: float,
    on_progress: Callable[[float], None] | None = None,
) -> None:
    """Run ffmpeg with ``-progress pipe:1`` and report fractional progress.

    Raises CalledProcessError (with stderr attached) on a non-zero exit.
    """
    cmd = [cmd[0], "-progress", "pipe:1", "-nostats", *cmd[1:]]
    logger.debug("Running %s", " ".join(cmd))

    with tempfile.TemporaryFile(mode="w+") as err:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=err, text=True)
        assert proc.stdout is not None
        try:
            for line in proc.stdout:
                if on_progress is None:
                    continue
                if line.strip() == "progress=end":
                    on_progress(1.0)
                    continue
                seconds = parse_progress_time(line)
                if seconds is not None and expected_duration > 0:
                    on_progress(min(seconds / expected_duration, 1.0))
        except BaseException:
            # A progress callback raised (e.g. cancellation); don't leave ffmpeg running.
            proc.kill()
            proc.wait()
            raise
        returncode = proc.wait()
        err.seek(0)
        stderr = err.read()

    if returncode != 0:
        raise subprocess.CalledProcessError(returncode, cmd, stderr=stderr)


def extract_audio(
    input_path: Path,
    output_path: Path,
    duration: float,
    sample_rate: int = 16000,
    on_progress: Callable[[float], None] | None = None,
) -> Path:
    """Extract audio as raw mono 16-bit PCM at the given sample rate (for Whisper)."""
    cmd = [
        "ffmpeg", "-y",
        "-i", str(input_path),
        "-vn",
        "-f", "s16le",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", "1",
        str(output_path),
    ]
    run_with_progress(cmd, duration, on_progress)
    return output_path


def scale_filter(max_dimensions: tuple[int, int]) -> str:
    """Fit inside the bounding box without upscaling, keep aspect ratio, round to even sizes."""
    width, height = max_dimensions
    return (
        f"scale=w='min(iw,{width})':h='min(ih,{height})':force_original_aspect_ratio=decrease,"
        "scale=trunc(iw/2)*2:trunc(ih/2)*2"
    )


def build_concat_filter(
    segments: Sequence[TimeRange], max_dimensions: tuple[int, int] | None = None
) -> str:
    """Build a filter_complex that trims, re-zeroes and concatenates keep-segments.

    Uses trim/atrim + concat filters so no intermediate files are needed and
    the approach works regardless of the input codec/container. Scaling, when
    requested, happens in the same graph.
    """
    if not segments:
        raise ValueError("build_concat_filter called with empty segment list")

    n = len(segments)
    filter_parts: list[str] = []
    stream_labels: list[str] = []

    for i, seg in enumerate(segments):
        filter_parts.append(
            f"[0:v]trim=start={seg.start}:end={seg.end},setpts=PTS-STARTPTS[v{i}]"
        )
        filter_parts.append(
            f"[0:a]atrim=start={seg.start}:end={seg.end},asetpts=PTS-STARTPTS[a{i}]"
        )
        stream_labels.append(f"[v{i}][a{i}]")

    concat_input = "".join(stream_labels)
    if max_dimensions is None:
        filter_parts.append(f"{concat_input}concat=n={n}:v=1:a=1[outv][outa]")
    else:
        filter_parts.append(f"{concat_input}concat=n={n}:v=1:a=1[catv][outa]")
        filter_parts.append(f"[catv]{scale_filter(max_dimensions)}[outv]")

    return ";\n".join(filter_parts)


def codec_args(settings: ExportSettings) -> list[str]:
    """Video/audio codec parameters for the chosen format and quality tier."""
    preset = settings.preset
    if settings.format == "webm":
        return [
            "-c:v", "libvpx-vp9",
            "-crf", str(preset.vp9_crf),
            "-b:v", "0",
            "-deadline", "good",
            "-cpu-used", str(preset.vp9_cpu_used),
            "-c:a", "libopus",
            "-b:a", preset.audio_bitrate,
        ]
    return [
        "-c:v", "libx264",
        "-preset", preset.x264_preset,
        "-crf", str(preset.x264_crf),
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-b:a", preset.audio_bitrate,
        "-movflags", "+faststart",
    ]


def build_encode_command(
    input_path: Path,
    segments: Sequence[TimeRange],
    output_path: Path,
    settings: ExportSettings,
) -> list[str]:
    filter_complex = build_concat_filter(segments, settings.max_dimensions)
    return [
        "ffmpeg", "-y",
        "-i", str(input_path),
        "-filter_complex", filter_complex,
        "-map", "[outv]",
        "-map", "[outa]",
        *codec_args(settings),
        str(output_path),
    ]


def encode_segments(
    input_path: Path,
    segments: Sequence[TimeRange],
    output_path: Path,
    settings: ExportSettings,
    on_progress: Callable[[float], None] | None = None,
) -> Path:
    """Trim, concatenate and re-encode keep-segments in a single ffmpeg pass."""
    cmd = build_encode_command(input_path, segments, output_path, settings)
    expected = sum(seg.duration for seg in segments)
    run_with_progress(cmd, expected, on_progress)
    return output_path
