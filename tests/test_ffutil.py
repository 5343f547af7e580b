"""Unit tests for ffutil — command building, progress parsing and subprocess wrappers."""

import io
import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from textcut.errors import UnsupportedFileTypeError
from textcut.ffutil import (
    NoVideoStreamError,
    build_concat_filter,
    build_encode_command,
    check_video_file,
    encode_segments,
    parse_progress_time,
    probe,
    run_with_progress,
    scale_filter,
)
from textcut.manifest import ExportSettings
from textcut.models import TimeRange


# ---------------------------------------------------------------------------
# check_video_file
# ---------------------------------------------------------------------------

class TestCheckVideoFile:
    @pytest.mark.parametrize("name", ["a.mp4", "b.MOV", "c.webm", "d.avi", "e.mkv"])
    def test_accepts_video_extensions(self, name):
        check_video_file(name)

    def test_accepts_video_mimetype(self):
        check_video_file("clip", "video/quicktime")

    def test_rejects_other_files(self):
        with pytest.raises(UnsupportedFileTypeError, match="not a supported video"):
            check_video_file("notes.txt", "text/plain")

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            check_video_file("song.mp3", "audio/mpeg")


# ---------------------------------------------------------------------------
# probe (mocked subprocess)
# ---------------------------------------------------------------------------

PROBE_JSON = {
    "format": {"duration": "60.0"},
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30/1",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "44100",
        },
    ],
}


class TestProbe:
    @patch("textcut.ffutil.subprocess.run")
    def test_basic(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(PROBE_JSON))
        result = probe(Path("video.mp4"))
        assert result.duration == 60.0
        assert result.width == 1920
        assert result.fps == 30.0
        assert result.codec_audio == "aac"

    @patch("textcut.ffutil.subprocess.run")
    def test_video_without_audio(self, mock_run):
        data = {"format": {"duration": "5.0"}, "streams": [PROBE_JSON["streams"][0]]}
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        result = probe(Path("video.mp4"))
        assert result.codec_audio is None
        assert result.audio_sample_rate is None

    @patch("textcut.ffutil.subprocess.run")
    def test_no_video_stream(self, mock_run):
        data = {"format": {"duration": "60.0"}, "streams": [PROBE_JSON["streams"][1]]}
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        with pytest.raises(NoVideoStreamError, match="No video stream"):
            probe(Path("video.mp4"))


# ---------------------------------------------------------------------------
# progress parsing
# ---------------------------------------------------------------------------

class TestParseProgressTime:
    def test_out_time_us(self):
        assert parse_progress_time("out_time_us=2500000\n") == 2.5

    def test_out_time_ms_is_microseconds_too(self):
        assert parse_progress_time("out_time_ms=1000000") == 1.0

    def test_other_keys(self):
        assert parse_progress_time("frame=12") is None
        assert parse_progress_time("progress=continue") is None

    def test_not_available(self):
        assert parse_progress_time("out_time_us=N/A") is None


def _popen(out: str, returncode: int = 0, err: str = ""):
    """Popen stand-in that replays ``out`` on stdout and writes ``err`` to the stderr file."""
    def factory(cmd, **kwargs):
        if err:
            kwargs["stderr"].write(err)
        proc = MagicMock()
        proc.stdout = io.StringIO(out)
        proc.wait.return_value = returncode
        return proc

    return factory


class TestRunWithProgress:
    def test_reports_fractions(self):
        out = "out_time_us=1000000\nprogress=continue\nout_time_us=2000000\nprogress=end\n"
        seen = []
        with patch("textcut.ffutil.subprocess.Popen", side_effect=_popen(out)) as popen:
            run_with_progress(["ffmpeg", "-i", "x"], 4.0, seen.append)
        assert seen == [0.25, 0.5, 1.0]
        cmd = popen.call_args[0][0]
        assert cmd[:4] == ["ffmpeg", "-progress", "pipe:1", "-nostats"]

    def test_nonzero_exit_raises_with_stderr(self):
        with patch("textcut.ffutil.subprocess.Popen", side_effect=_popen("", 1, "bad codec")):
            with pytest.raises(subprocess.CalledProcessError) as exc_info:
                run_with_progress(["ffmpeg", "-i", "x"], 4.0)
        assert "bad codec" in exc_info.value.stderr

    def test_callback_error_kills_process(self):
        proc = MagicMock()
        proc.stdout = io.StringIO("out_time_us=1000000\n")

        def boom(frac):
            raise RuntimeError("stop")

        with patch("textcut.ffutil.subprocess.Popen", return_value=proc):
            with pytest.raises(RuntimeError, match="stop"):
                run_with_progress(["ffmpeg"], 4.0, boom)
        proc.kill.assert_called_once()


# ---------------------------------------------------------------------------
# export command building
# ---------------------------------------------------------------------------

SEGMENTS = [TimeRange(start=0, end=5), TimeRange(start=8, end=12)]


class TestBuildConcatFilter:
    def test_trims_and_concats(self):
        fc = build_concat_filter(SEGMENTS)
        assert "[0:v]trim=start=0:end=5,setpts=PTS-STARTPTS[v0]" in fc
        assert "[0:a]atrim=start=8:end=12,asetpts=PTS-STARTPTS[a1]" in fc
        assert "[v0][a0][v1][a1]concat=n=2:v=1:a=1[outv][outa]" in fc
        assert "scale" not in fc

    def test_scaling_in_same_graph(self):
        fc = build_concat_filter(SEGMENTS, (1280, 720))
        assert "concat=n=2:v=1:a=1[catv][outa]" in fc
        assert "[catv]scale=w='min(iw,1280)':h='min(ih,720)':force_original_aspect_ratio=decrease" in fc
        assert fc.rstrip().endswith("[outv]")

    def test_empty_segments_raises(self):
        with pytest.raises(ValueError, match="empty segment list"):
            build_concat_filter([])


class TestScaleFilter:
    def test_never_exceeds_source_size(self):
        vf = scale_filter((1920, 1080))
        assert vf.startswith("scale=w='min(iw,1920)':h='min(ih,1080)':")
        assert "force_original_aspect_ratio=decrease" in vf

    def test_rounds_to_even_dimensions(self):
        assert scale_filter((854, 480)).endswith(",scale=trunc(iw/2)*2:trunc(ih/2)*2")


class TestBuildEncodeCommand:
    def test_mp4_high(self):
        cmd = build_encode_command(Path("in.mp4"), SEGMENTS, Path("out.mp4"), ExportSettings())
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-preset") + 1] == "slow"
        assert cmd[cmd.index("-crf") + 1] == "18"
        assert cmd[cmd.index("-b:a") + 1] == "192k"
        assert cmd[-1] == "out.mp4"
        assert cmd.count("-map") == 2

    def test_webm_low(self):
        settings = ExportSettings(format="webm", quality="low", resolution="360p")
        cmd = build_encode_command(Path("in.mp4"), SEGMENTS, Path("out.webm"), settings)
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-c:a") + 1] == "libopus"
        assert cmd[cmd.index("-b:a") + 1] == "96k"
        fc = cmd[cmd.index("-filter_complex") + 1]
        assert "scale=w='min(iw,640)':h='min(ih,360)'" in fc

    def test_medium_audio_bitrate(self):
        cmd = build_encode_command(
            Path("in.mp4"), SEGMENTS, Path("out.mp4"), ExportSettings(quality="medium")
        )
        assert cmd[cmd.index("-b:a") + 1] == "128k"
        assert cmd[cmd.index("-preset") + 1] == "medium"


class TestEncodeSegments:
    @patch("textcut.ffutil.run_with_progress")
    def test_expected_duration_is_kept_length(self, mock_run):
        encode_segments(Path("in.mp4"), SEGMENTS, Path("out.mp4"), ExportSettings())
        cmd, expected, _ = mock_run.call_args[0]
        assert expected == 9
        assert "-filter_complex" in cmd
