"""Tests for effects rendering and clip extraction."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from sizefit.core.base import ProcessingError, SourceMissingError
from sizefit.core.ffmpeg import FFmpegError
from sizefit.core.file_manager import FileManager
from sizefit.core.filters import FilterOptions
from sizefit.processors.effects import EffectsProcessor, clip_window


def _processor(config, config_manager, asset, ffmpeg=None) -> EffectsProcessor:
    controller = Mock()
    controller.config_manager = config_manager
    controller.ffmpeg = ffmpeg or Mock()
    controller.file_manager = FileManager(temp_root=config.global_.temp_dir)
    controller.probe_asset.return_value = asset
    return EffectsProcessor(controller=controller)


def _writing_ffmpeg() -> Mock:
    ffmpeg = Mock()
    ffmpeg.run_command.side_effect = lambda cmd, _path: Path(cmd[-1]).write_bytes(b"rendered")
    return ffmpeg


@pytest.mark.parametrize(
    ("total", "duration", "start", "expected"),
    [
        (100.0, None, 10.0, (10.0, 5.0)),
        (100.0, 60.0, 10.0, (10.0, 30.0)),
        (100.0, 10.0, 95.0, (95.0, 5.0)),
        (100.0, 5.0, 200.0, (99.0, 1.0)),
        (0.5, None, None, (0.0, 0.5)),
    ],
)
def test_clip_window(total: float, duration, start, expected: tuple[float, float]) -> None:
    """Test that the clip window is placed inside the source."""
    assert clip_window(total, duration, start) == expected


def test_random_start_leaves_room_for_clip() -> None:
    """Test that a random start leaves room for the whole clip."""
    for _ in range(50):
        start, length = clip_window(20.0, 5.0, None)

        assert length == 5.0
        assert 0.0 <= start <= 15.0
        assert start == int(start)


def test_empty_window_raises() -> None:
    """Test that a window too short for the clip is rejected."""
    with pytest.raises(ValueError, match="Clip window is empty"):
        clip_window(0.0, 5.0, None)


def test_create_clip_command(config, config_manager, make_asset, source_file) -> None:
    """Test that clip creation builds the expected ffmpeg command."""
    asset = make_asset(source_file, duration=60.0)
    ffmpeg = Mock()
    processor = _processor(config, config_manager, asset, ffmpeg)

    output = processor.create_clip(source_file, duration=5, start=10)

    assert output == config.global_.output_dir / "clips" / "clip_input_10.0_5.0.ogg"
    cmd = ffmpeg.run_command.call_args.args[0]
    assert cmd[cmd.index("-ss") + 1] == "10"
    assert cmd[cmd.index("-t") + 1] == "5"
    assert cmd[cmd.index("-c:a") + 1] == "libopus"
    assert cmd[cmd.index("-b:a") + 1] == "128k"
    assert cmd[cmd.index("-map_metadata") + 1] == "-1"
    assert "-vn" in cmd


def test_create_clip_failure_removes_output(config, config_manager, make_asset, source_file) -> None:
    """Test that a failed clip leaves no partial output."""
    ffmpeg = Mock()

    def fail(cmd, path):
        Path(cmd[-1]).write_bytes(b"partial")
        raise FFmpegError("FFmpeg failed with return code 1", file_path=path, return_code=1)

    ffmpeg.run_command.side_effect = fail
    processor = _processor(config, config_manager, make_asset(source_file, duration=60.0), ffmpeg)

    with pytest.raises(FFmpegError):
        processor.create_clip(source_file, duration=5, start=0)

    assert list((config.global_.output_dir / "clips").iterdir()) == []


def test_create_clip_needs_duration(config, config_manager, make_asset, source_file) -> None:
    """Test that a clip needs a source duration."""
    processor = _processor(config, config_manager, make_asset(source_file, duration=0.0))

    with pytest.raises(ProcessingError, match="duration"):
        processor.create_clip(source_file)


def test_create_clip_missing_source(config, config_manager, make_asset, tmp_path: Path) -> None:
    """Test that clipping a missing source fails early."""
    processor = _processor(config, config_manager, make_asset(tmp_path / "gone.mp3"))

    with pytest.raises(SourceMissingError):
        processor.create_clip(tmp_path / "gone.mp3")


def test_effects_command(config, config_manager, make_asset, source_file) -> None:
    """Test that effects are rendered through an audio filter chain."""
    asset = make_asset(source_file, video=False)
    processor = _processor(config, config_manager, asset)
    options = FilterOptions(amplify=2.0, reverse=True, clip_duration=10.0, start_position=3.0)

    cmd = processor.build_effects_command(asset, options, Path("out.ogg"))

    assert cmd[cmd.index("-ss") + 1] == "3"
    assert cmd[cmd.index("-t") + 1] == "10"
    assert cmd[cmd.index("-af") + 1] == "volume=2,areverse"
    assert "-vn" in cmd
    assert cmd[-1] == "out.ogg"


def test_effects_copy_video_stream(config, config_manager, make_asset, source_file) -> None:
    """Test that plain effects copy the video and add no audio filter."""
    asset = make_asset(source_file)
    cmd = _processor(config, config_manager, asset).build_effects_command(asset, FilterOptions(), Path("o.mkv"))

    assert cmd[cmd.index("-c:v") + 1] == "copy"
    assert "-af" not in cmd


def test_apply_effects_fits_result_through_ladder(config, config_manager, make_asset, source_file) -> None:
    """Test that the rendered result goes through the size ladder."""
    processor = _processor(config, config_manager, make_asset(source_file), _writing_ffmpeg())
    processor.controller.run.return_value = "artifact"

    result = processor.apply_effects(source_file, FilterOptions(amplify=2.0))

    assert result == "artifact"
    rendered, output_dir = processor.controller.run.call_args.args
    assert rendered.name == "input_amplify-2.mkv"
    assert output_dir == config.global_.output_dir


def test_apply_effects_without_limit_publishes_render(config, config_manager, make_asset, source_file) -> None:
    """Test that without a size limit the render is published directly."""
    processor = _processor(config, config_manager, make_asset(source_file, video=False), _writing_ffmpeg())

    result = processor.apply_effects(source_file, FilterOptions(reverse=True), enforce_limit=False)

    assert result == config.global_.output_dir / "input_reverse.ogg"
    assert result.read_bytes() == b"rendered"
    processor.controller.run.assert_not_called()


def test_apply_effects_without_output_raises(config, config_manager, make_asset, source_file) -> None:
    """Test that a render producing no file raises."""
    processor = _processor(config, config_manager, make_asset(source_file))

    with pytest.raises(FFmpegError, match="no output"):
        processor.apply_effects(source_file, FilterOptions(amplify=2.0))
