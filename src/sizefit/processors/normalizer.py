"""Loudness correction into a near-lossless mezzanine file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.base import log_stage
from ..core.ffmpeg import FFmpegError, FFmpegProcessor

if TYPE_CHECKING:
    from pathlib import Path

    from ..core.base import AudioLevelProfile, MediaAsset

LOG = logging.getLogger(__name__)


def volume_filter(gain_db: float) -> str:
    """FFmpeg audio filter applying a gain in dB."""
    return f"volume={gain_db:.2f}dB"


class VolumeNormalizer:
    """Apply a bounded gain correction once per asset."""

    def __init__(
        self,
        ffmpeg: FFmpegProcessor | None = None,
        *,
        target_peak_db: float = -3.0,
        max_gain_db: float = 20.0,
        audio_codec: str = "flac",
    ) -> None:
        self.ffmpeg = ffmpeg or FFmpegProcessor()
        self.target_peak_db = target_peak_db
        self.max_gain_db = max_gain_db
        self.audio_codec = audio_codec

    def compute_gain(self, profile: AudioLevelProfile) -> float:
        """Gain needed to bring the peak to the target, never above max_gain_db."""
        gain = self.target_peak_db - profile.peak_db
        if gain > self.max_gain_db:
            LOG.warning(
                "Limiting volume adjustment from %.2fdB to %.2fdB to avoid distortion",
                gain,
                self.max_gain_db,
            )
            return self.max_gain_db
        return gain

    @staticmethod
    def mezzanine_path(asset: MediaAsset, directory: Path) -> Path:
        """Where the mezzanine for an asset lives inside a scratch directory."""
        suffix = ".mkv" if asset.is_video else ".flac"
        return directory / f"mezzanine_{asset.source_path.stem}{suffix}"

    def build_command(self, asset: MediaAsset, output_path: Path, gain_db: float) -> list[str]:
        """Build the gain-correction command; video is copied untouched."""
        cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(asset.source_path)]

        if asset.is_video:
            cmd.extend(["-map", "0:v:0", "-map", "0:a:0?", "-c:v", "copy"])
        else:
            cmd.extend(["-map", "0:a:0", "-vn", "-map_metadata", "0"])

        if asset.audio_codec is not None:
            cmd.extend(["-af", volume_filter(gain_db), "-c:a", self.audio_codec])
            if self.audio_codec == "flac":
                cmd.extend(["-compression_level", "0"])

        cmd.append(str(output_path))
        return cmd

    def build_mezzanine(self, asset: MediaAsset, profile: AudioLevelProfile, directory: Path) -> Path:
        """
        Produce the loudness-corrected intermediate for an asset.

        Args:
            asset: Probed source description
            profile: Measured audio levels of the source
            directory: Scratch directory that owns the result

        Returns:
            Path of the mezzanine file

        Raises:
            FFmpegError: If the encode fails or leaves no usable output

        """
        gain = self.compute_gain(profile)
        output_path = self.mezzanine_path(asset, directory)

        log_stage(LOG, "normalize", "start", "Building mezzanine for %s with %+.2fdB gain", asset.source_path, gain)
        self.ffmpeg.run_command(self.build_command(asset, output_path, gain), asset.source_path)

        if not output_path.exists() or output_path.stat().st_size == 0:
            msg = f"Mezzanine not created: {output_path}"
            raise FFmpegError(msg, file_path=asset.source_path)

        log_stage(
            LOG,
            "normalize",
            "done",
            "Mezzanine ready: %s (%d bytes)",
            output_path,
            output_path.stat().st_size,
            gain_db=gain,
        )
        return output_path
