"""Tests for the MediaNormalizer pipeline."""

from pathlib import Path
from unittest.mock import Mock, patch

import yaml
from conftest import write_sized

from sizefit.config.settings import MIB, default_ladder
from sizefit.core.base import (
    AllRungsExhaustedError,
    AudioLevelProfile,
    ErrorKind,
    NormalizedArtifact,
    ProcessingStatus,
)
from sizefit.core.cache import ArtifactCache
from sizefit.core.file_manager import FileManager
from sizefit.processors.ladder import QualityLadderController
from sizefit.processors.pipeline import MediaNormalizer
from sizefit.processors.publisher import ManifestCatalog, ResultPublisher

LADDER = default_ladder()
ANALYZE = "sizefit.processors.ladder.analyze_level"


class AudioOnlyAssets:
    """Describes every path as an audio-only source."""

    def __init__(self, make_asset) -> None:
        self.make_asset = make_asset

    def get_media_asset(self, file_path: Path):
        return self.make_asset(file_path, video=False, duration=180.0, size=4 * MIB)


def _controller(config_manager, make_asset, artifact_factory=None, error=None) -> Mock:
    controller = Mock()
    controller.config_manager = config_manager
    controller.ceiling_bytes = 9 * MIB
    controller.file_manager = FileManager()

    def run(source, output_dir, **_kwargs):
        if error is not None:
            raise error
        controller.asset = make_asset(source)
        return artifact_factory(source, output_dir)

    controller.run.side_effect = run
    controller.asset = None
    return controller


def _ladder_controller(config_manager, make_asset, fake_encode) -> QualityLadderController:
    ffmpeg = Mock()
    ffmpeg.timeout = 300
    ffmpeg.run_command.side_effect = lambda cmd, _path: Path(cmd[-1]).write_bytes(b"mezzanine")
    detector = Mock()
    detector.detect.return_value = False
    controller = QualityLadderController(
        config_manager, detector=detector, ffmpeg=ffmpeg, probe=AudioOnlyAssets(make_asset)
    )
    controller.executor.encode = fake_encode(dict.fromkeys(range(len(LADDER)), MIB))
    return controller


def _published(oversized: bool = False, size: int = MIB):
    def factory(source: Path, output_dir: Path) -> NormalizedArtifact:
        path = output_dir / f"{source.stem}.mp4"
        path.parent.mkdir(parents=True, exist_ok=True)
        write_sized(path, size)
        return NormalizedArtifact(
            path=path, byte_size=size, output_extension=".mp4", rung=LADDER[2], oversized=oversized
        )

    return factory


def _manifest(output_dir: Path) -> dict:
    return yaml.safe_load((output_dir / "manifest.yaml").read_text(encoding="utf-8"))


def test_process_file_success(config, config_manager, make_asset, source_file) -> None:
    """Test that an accepted artifact becomes a SUCCESS result."""
    controller = _controller(config_manager, make_asset, _published())
    normalizer = MediaNormalizer(config_manager, controller=controller)

    result = normalizer.process_file(source_file)

    assert result.status is ProcessingStatus.SUCCESS
    assert result.output_file == config.global_.output_dir / "input.mp4"
    assert result.new_size == MIB
    assert result.metadata["rung"] == "360p-low"
    assert normalizer.stats["success"] == 1


def test_process_file_oversized_status(config_manager, make_asset, source_file) -> None:
    """Test that an artifact still above the ceiling is reported as OVERSIZED."""
    controller = _controller(config_manager, make_asset, _published(oversized=True, size=10 * MIB))

    result = MediaNormalizer(config_manager, controller=controller).process_file(source_file)

    assert result.status is ProcessingStatus.OVERSIZED
    assert result.artifact.oversized


def test_process_file_never_raises(config_manager, make_asset, source_file) -> None:
    """Test that ladder errors are returned as FAILED results with their kind."""
    error = AllRungsExhaustedError("All 6 encode attempts failed", file_path=source_file)
    controller = _controller(config_manager, make_asset, error=error)

    result = MediaNormalizer(config_manager, controller=controller).process_file(source_file)

    assert result.status is ProcessingStatus.FAILED
    assert result.error_kind is ErrorKind.ALL_RUNGS_EXHAUSTED


def test_unexpected_errors_become_results(config_manager, make_asset, source_file) -> None:
    """Test that unexpected exceptions are reported as UNEXPECTED failures."""
    controller = _controller(config_manager, make_asset, error=RuntimeError("boom"))

    result = MediaNormalizer(config_manager, controller=controller).process_file(source_file)

    assert result.status is ProcessingStatus.FAILED
    assert result.error_kind is ErrorKind.UNEXPECTED


def test_missing_source_result(config_manager, make_asset, tmp_path: Path) -> None:
    """Test that a missing source fails without starting the ladder."""
    controller = _controller(config_manager, make_asset, _published())

    result = MediaNormalizer(config_manager, controller=controller).process_file(tmp_path / "nope.mp3")

    assert result.status is ProcessingStatus.FAILED
    assert result.error_kind is ErrorKind.SOURCE_MISSING
    controller.run.assert_not_called()


def test_existing_output_is_skipped_unless_forced(config_manager, make_asset, source_file) -> None:
    """Test that a catalogued output that fits is skipped on rerun unless forced."""
    controller = _controller(config_manager, make_asset, _published())
    normalizer = MediaNormalizer(config_manager, controller=controller)

    first = normalizer.process_file(source_file)
    skipped = normalizer.process_file(source_file)
    forced = normalizer.process_file(source_file, force=True)

    assert first.status is ProcessingStatus.SUCCESS
    assert skipped.status is ProcessingStatus.SKIPPED
    assert skipped.output_file.resolve() == first.output_file.resolve()
    assert forced.status is ProcessingStatus.SUCCESS
    assert controller.run.call_count == 2


def test_uncatalogued_output_is_not_skipped(config, config_manager, make_asset, source_file) -> None:
    """Test that a file merely sharing the output name does not count as done."""
    stray = config.global_.output_dir / "input.mp4"
    stray.parent.mkdir(parents=True)
    stray.write_bytes(b"done")
    controller = _controller(config_manager, make_asset, _published())

    result = MediaNormalizer(config_manager, controller=controller).process_file(source_file)

    assert result.status is ProcessingStatus.SUCCESS
    controller.run.assert_called_once()


def test_same_stem_sources_get_distinct_outputs(
    config, config_manager, make_asset, fake_encode, tmp_path: Path, monkeypatch
) -> None:
    """Test that song.wav is normalized next to song.mp3 instead of being skipped."""
    monkeypatch.chdir(tmp_path)
    mp3 = tmp_path / "song.mp3"
    wav = tmp_path / "song.wav"
    mp3.write_bytes(b"mp3 bytes")
    wav.write_bytes(b"wav bytes, different")
    controller = _ladder_controller(config_manager, make_asset, fake_encode)
    normalizer = MediaNormalizer(config_manager, controller=controller)
    output_dir = config.global_.output_dir

    with patch(ANALYZE, return_value=AudioLevelProfile(-3.0, -20.0)):
        from_mp3 = normalizer.process_file(mp3)
        from_wav = normalizer.process_file(wav)

    assert from_mp3.status is ProcessingStatus.SUCCESS
    assert from_wav.status is ProcessingStatus.SUCCESS
    assert from_mp3.output_file == output_dir / "song.ogg"
    assert from_wav.output_file == output_dir / "song_1.ogg"
    assert (output_dir / "song.ogg").exists()
    assert _manifest(output_dir) == {
        "song.mp3": str(Path("normalized") / "song.ogg"),
        "song.wav": str(Path("normalized") / "song_1.ogg"),
    }


def test_rerun_of_same_source_keeps_its_name(
    config, config_manager, make_asset, fake_encode, tmp_path: Path, monkeypatch
) -> None:
    """Test that a forced rerun replaces the source's own output instead of adding a suffix."""
    monkeypatch.chdir(tmp_path)
    mp3 = tmp_path / "song.mp3"
    mp3.write_bytes(b"mp3 bytes")
    controller = _ladder_controller(config_manager, make_asset, fake_encode)
    normalizer = MediaNormalizer(config_manager, controller=controller)

    with patch(ANALYZE, return_value=AudioLevelProfile(-3.0, -20.0)):
        normalizer.process_file(mp3)
        rerun = normalizer.process_file(mp3, force=True)

    assert rerun.output_file == config.global_.output_dir / "song.ogg"


def test_identical_content_reuses_cached_artifact(config, config_manager, make_asset, tmp_path: Path) -> None:
    """Test that a second source with identical bytes reuses the first artifact."""
    first = tmp_path / "a.mov"
    second = tmp_path / "b.mov"
    first.write_bytes(b"same content")
    second.write_bytes(b"same content")
    controller = _controller(config_manager, make_asset, _published())
    normalizer = MediaNormalizer(config_manager, controller=controller, cache=ArtifactCache())

    normalizer.process_file(first)
    result = normalizer.process_file(second)

    controller.run.assert_called_once()
    assert result.artifact.reused
    assert result.output_file == config.global_.output_dir / "b.mp4"
    assert result.output_file.stat().st_size == MIB


def test_reused_artifact_is_recorded_in_manifest(
    config, config_manager, make_asset, tmp_path: Path, monkeypatch
) -> None:
    """Test that both sources of identical content end up in the manifest."""
    monkeypatch.chdir(tmp_path)
    first = tmp_path / "a.mov"
    second = tmp_path / "b.mov"
    first.write_bytes(b"same content")
    second.write_bytes(b"same content")
    controller = _controller(config_manager, make_asset, _published())
    normalizer = MediaNormalizer(config_manager, controller=controller, cache=ArtifactCache())

    normalizer.process_file(first)
    result = normalizer.process_file(second)

    assert result.metadata["source"] == "b.mov"
    assert _manifest(config.global_.output_dir) == {
        "a.mov": str(Path("normalized") / "a.mp4"),
        "b.mov": str(Path("normalized") / "b.mp4"),
    }


def test_success_is_recorded_in_manifest(config, config_manager, make_asset, source_file) -> None:
    """Test that an injected publisher records the source and its output."""
    manifest = config.global_.output_dir / "manifest.yaml"
    publisher = ResultPublisher(ManifestCatalog(manifest), base_dir=source_file.parent)
    controller = _controller(config_manager, make_asset, _published())

    MediaNormalizer(config_manager, controller=controller, publisher=publisher).process_file(source_file)

    entries = yaml.safe_load(manifest.read_text(encoding="utf-8"))
    assert entries == {"input.mov": str(Path("normalized") / "input.mp4")}


def test_manifest_follows_output_dir_override(
    config, config_manager, make_asset, source_file, tmp_path: Path, monkeypatch
) -> None:
    """Test that a per-call output directory gets its own manifest."""
    monkeypatch.chdir(tmp_path)
    elsewhere = tmp_path / "elsewhere"
    controller = _controller(config_manager, make_asset, _published())

    MediaNormalizer(config_manager, controller=controller).process_file(source_file, output_dir=elsewhere)

    assert _manifest(elsewhere) == {"input.mov": str(Path("elsewhere") / "input.mp4")}
    assert not (config.global_.output_dir / "manifest.yaml").exists()


def test_process_directory_skips_output_dir(config, config_manager, make_asset, tmp_path: Path) -> None:
    """Test that files already inside the output directory are not normalized again."""
    media = tmp_path / "media"
    media.mkdir()
    (media / "one.mp3").write_bytes(b"1")
    (media / "two.mkv").write_bytes(b"2")
    (media / "notes.txt").write_text("not media")
    config.global_.output_dir = media / "normalized"
    config.global_.output_dir.mkdir()
    (config.global_.output_dir / "old.mp4").write_bytes(b"3")
    controller = _controller(config_manager, make_asset, _published())
    normalizer = MediaNormalizer(config_manager, controller=controller)

    results = normalizer.process_directory(media)

    assert sorted(r.source_file.name for r in results) == ["one.mp3", "two.mkv"]
    assert normalizer.stats == {"success": 2, "oversized": 0, "skipped": 0, "failed": 0}
