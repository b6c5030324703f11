"""Tests for rung encoding commands and failure handling."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from sizefit.config.settings import EncoderConfig, default_ladder
from sizefit.core.base import BitrateBudget, ErrorKind
from sizefit.core.ffmpeg import FFmpegError
from sizefit.processors.encoder import DurationTrimmer, EncodeExecutor

LADDER = default_ladder()
BUDGET = BitrateBudget(total_kbps=1228, audio_kbps=128, video_kbps=1100)


def _arg(cmd: list[str], flag: str) -> str:
    return cmd[cmd.index(flag) + 1]


@pytest.mark.parametrize(
    ("duration", "rung_index", "expected"),
    [
        (200.0, 5, None),
        (240.0, 5, None),
        (600.0, 5, 240.0),
        (600.0, 4, None),
    ],
)
def test_trim_seconds(make_asset, duration: float, rung_index: int, expected: float | None) -> None:
    """Test that only trimming rungs trim sources longer than their length."""
    asset = make_asset(Path("in.mov"), duration=duration)

    assert DurationTrimmer.trim_seconds(asset, LADDER[rung_index]) == expected


def test_software_command(make_asset) -> None:
    """Test that the software encoder command is built."""
    asset = make_asset(Path("in.mov"))
    cmd = EncodeExecutor(Mock()).build_command(Path("in.mkv"), Path("out.mp4"), asset, LADDER[0], BUDGET)

    assert _arg(cmd, "-c:v") == "libx264"
    assert _arg(cmd, "-preset") == "medium"
    assert _arg(cmd, "-crf") == "23"
    assert _arg(cmd, "-maxrate:v") == "1650k"
    assert _arg(cmd, "-bufsize:v") == "2200k"
    assert _arg(cmd, "-pix_fmt") == "yuv420p"
    assert _arg(cmd, "-movflags") == "+faststart"
    assert _arg(cmd, "-c:a") == "libopus"
    assert _arg(cmd, "-b:a") == "128k"
    assert _arg(cmd, "-application") == "audio"
    assert _arg(cmd, "-metadata") == "comment=sizefit-normalized"
    assert "-t" not in cmd
    assert cmd[-1] == "out.mp4"


def test_hardware_command(make_asset) -> None:
    """Test that the hardware encoder command is built."""
    asset = make_asset(Path("in.mov"))
    cmd = EncodeExecutor(Mock()).build_command(
        Path("in.mkv"), Path("out.mp4"), asset, LADDER[2], BUDGET, hardware=True
    )

    assert _arg(cmd, "-c:v") == "h264_nvenc"
    assert _arg(cmd, "-preset") == "p3"
    assert _arg(cmd, "-rc:v") == "vbr"
    assert _arg(cmd, "-b:v") == "0"
    assert _arg(cmd, "-cq:v") == "35"
    assert _arg(cmd, "-aq-strength") == "12"
    assert _arg(cmd, "-spatial-aq") == "1"
    assert "-crf" not in cmd


def test_scales_down_large_sources(make_asset) -> None:
    """Test that large sources are scaled into the rung box."""
    asset = make_asset(Path("in.mov"), width=1920, height=1080)
    cmd = EncodeExecutor(Mock()).build_command(Path("in"), Path("out.mp4"), asset, LADDER[2], BUDGET)

    video_filter = _arg(cmd, "-vf")
    assert video_filter.startswith("scale=w='min(640,iw)':h='min(360,ih)'")
    assert "force_original_aspect_ratio=decrease" in video_filter


def test_never_upscales_small_sources(make_asset) -> None:
    """Test that small sources are never upscaled."""
    asset = make_asset(Path("in.mov"), width=640, height=360)
    cmd = EncodeExecutor(Mock()).build_command(Path("in"), Path("out.mp4"), asset, LADDER[0], BUDGET)

    assert _arg(cmd, "-vf") == "format=yuv420p"


def test_trim_and_inline_gain(make_asset) -> None:
    """Test that trimming and inline gain are added to the command."""
    asset = make_asset(Path("in.mov"), duration=600.0)
    cmd = EncodeExecutor(Mock()).build_command(
        Path("in"), Path("out.mp4"), asset, LADDER[5], BUDGET, trim_to=240.0, gain_db=5.0
    )

    assert _arg(cmd, "-t") == "240"
    assert cmd.index("-t") < cmd.index("out.mp4")
    assert _arg(cmd, "-af") == "volume=5.00dB"


def test_audio_only_command(make_asset) -> None:
    """Test that audio-only sources get an audio-only command."""
    asset = make_asset(Path("song.flac"), video=False)
    executor = EncodeExecutor(Mock())
    cmd = executor.build_command(Path("in"), Path("out.ogg"), asset, LADDER[3], BitrateBudget(100, 48))

    assert "-vn" in cmd
    assert "-c:v" not in cmd
    assert _arg(cmd, "-b:a") == "48k"
    assert _arg(cmd, "-compression_level") == "8"
    assert executor.output_extension(asset) == ".ogg"


def test_silent_video_drops_audio(make_asset) -> None:
    """Test that a video without audio gets no audio encoding."""
    asset = make_asset(Path("in.mov"), audio_codec=None)
    cmd = EncodeExecutor(Mock()).build_command(Path("in"), Path("out.mp4"), asset, LADDER[0], BUDGET)

    assert "-an" in cmd
    assert "-c:a" not in cmd


def test_custom_encoder_names(make_asset) -> None:
    """Test that configured encoder names are used."""
    config = EncoderConfig(software_encoder="libx264rgb")
    asset = make_asset(Path("in.mov"))
    cmd = EncodeExecutor(Mock(), config).build_command(Path("in"), Path("out.mp4"), asset, LADDER[0], BUDGET)

    assert _arg(cmd, "-c:v") == "libx264rgb"


def test_encode_success(make_asset, tmp_path: Path) -> None:
    """Test that a successful encode reports its output size."""
    ffmpeg = Mock()
    ffmpeg.run_command.side_effect = lambda cmd, _path: Path(cmd[-1]).write_bytes(b"x" * 100)
    output = tmp_path / "out.mp4"

    asset = make_asset(tmp_path / "in.mov")
    result = EncodeExecutor(ffmpeg).encode(tmp_path / "in.mkv", output, asset, LADDER[0], BUDGET)

    assert result.success
    assert result.byte_size == 100
    assert result.error_kind is None


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (FFmpegError("FFmpeg failed with return code 1", return_code=1), ErrorKind.ENCODE_FAILED),
        (FFmpegError("FFmpeg command timed out after 600s", timed_out=True), ErrorKind.TIMEOUT),
    ],
)
def test_encode_failure_is_reported_not_raised(
    make_asset, tmp_path: Path, error: FFmpegError, kind: ErrorKind
) -> None:
    """Test that encode failures come back as unsuccessful attempts."""
    output = tmp_path / "out.mp4"
    output.write_bytes(b"partial")
    ffmpeg = Mock()
    ffmpeg.run_command.side_effect = error

    asset = make_asset(tmp_path / "in.mov")
    result = EncodeExecutor(ffmpeg).encode(tmp_path / "in.mkv", output, asset, LADDER[0], BUDGET)

    assert not result.success
    assert result.error_kind is kind
    assert not output.exists()


def test_encode_missing_output(make_asset, tmp_path: Path) -> None:
    """Test that an encode without output counts as failed."""
    result = EncodeExecutor(Mock()).encode(
        tmp_path / "in.mkv", tmp_path / "out.mp4", make_asset(tmp_path / "in.mov"), LADDER[0], BUDGET
    )

    assert not result.success
    assert result.error_kind is ErrorKind.MISSING_OUTPUT
