"""Shared fixtures for sizefit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sizefit.config.settings import MIB, SizefitConfig
from sizefit.core.base import EncodeAttemptResult, ErrorKind, MediaAsset, MediaKind
from sizefit.core.config import ConfigManager

if TYPE_CHECKING:
    from pathlib import Path


class StaticProbe:
    """Probe stand-in that always describes the same asset."""

    def __init__(self, asset: MediaAsset) -> None:
        self.asset = asset
        self.calls: list[Path] = []

    def get_media_asset(self, file_path: Path) -> MediaAsset:
        self.calls.append(file_path)
        return self.asset


def write_sized(path: Path, size: int) -> None:
    """Create a file of the given size without writing its content."""
    with path.open("wb") as f:
        f.truncate(size)


@pytest.fixture
def config(tmp_path: Path) -> SizefitConfig:
    cfg = SizefitConfig()
    cfg.global_.output_dir = tmp_path / "normalized"
    cfg.global_.temp_dir = tmp_path / "scratch"
    cfg.encoder.use_hardware = False
    return cfg


@pytest.fixture
def config_manager(config: SizefitConfig) -> ConfigManager:
    return ConfigManager(config=config)


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "input.mov"
    path.write_bytes(b"\x00" * 4096)
    return path


@pytest.fixture
def make_asset():
    def _make(
        path: Path,
        *,
        video: bool = True,
        duration: float = 600.0,
        size: int = 50 * MIB,
        width: int | None = 1920,
        height: int | None = 1080,
        video_codec: str | None = "h264",
        audio_codec: str | None = "aac",
        format_name: str = "mov,mp4,m4a,3gp,3g2,mj2",
        comment: str | None = None,
    ) -> MediaAsset:
        return MediaAsset(
            source_path=path,
            media_kind=MediaKind.VIDEO if video else MediaKind.AUDIO,
            duration_seconds=duration,
            size_bytes=size,
            width=width if video else None,
            height=height if video else None,
            video_codec=video_codec if video else None,
            audio_codec=audio_codec,
            format_name=format_name,
            comment=comment,
        )

    return _make


@pytest.fixture
def fake_encode():
    """Build an EncodeExecutor.encode replacement producing files of fixed sizes per rung."""

    def _factory(sizes: dict[int, int], failures: set[int] | None = None, calls: list | None = None):
        failures = failures or set()

        def encode(input_path, output_path, asset, rung, budget, *, hardware=False, trim_to=None, gain_db=None):
            if calls is not None:
                calls.append(
                    {
                        "rung": rung.index,
                        "input": input_path,
                        "hardware": hardware,
                        "trim_to": trim_to,
                        "gain_db": gain_db,
                    }
                )
            if rung.index in failures:
                return EncodeAttemptResult(
                    rung=rung,
                    output_path=output_path,
                    success=False,
                    error_kind=ErrorKind.ENCODE_FAILED,
                    budget=budget,
                    hardware=hardware,
                )
            write_sized(output_path, sizes[rung.index])
            return EncodeAttemptResult(
                rung=rung,
                output_path=output_path,
                success=True,
                byte_size=sizes[rung.index],
                budget=budget,
                trimmed_to=trim_to,
                hardware=hardware,
            )

        return encode

    return _factory


@pytest.fixture
def fake_mezzanine():
    """Build a VolumeNormalizer.build_mezzanine replacement writing a small file."""

    def build(asset, profile, directory):
        path = directory / f"mezzanine_{asset.source_path.stem}.mkv"
        path.write_bytes(b"mezzanine")
        return path

    return build
