"""Encoding of a single ladder rung, hardware or software."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ..config.constants import NORMALIZED_TAG
from ..config.settings import EncoderConfig
from ..core.base import EncodeAttemptResult, ErrorKind, log_stage
from ..core.ffmpeg import GPU_PRESET_MAP, FFmpegError, FFmpegProcessor
from .normalizer import volume_filter

if TYPE_CHECKING:
    from pathlib import Path

    from ..config.settings import EncodingRung
    from ..core.base import BitrateBudget, MediaAsset

LOG = logging.getLogger(__name__)


class DurationTrimmer:
    """Decide whether a rung truncates its output."""

    @staticmethod
    def trim_seconds(asset: MediaAsset, rung: EncodingRung) -> float | None:
        """Seconds to keep, or None when the rung leaves the duration alone."""
        if rung.trim_to_seconds is None:
            return None
        if asset.duration_seconds > rung.trim_to_seconds:
            return rung.trim_to_seconds
        return None


class EncodeExecutor:
    """Build and run the FFmpeg command for one rung."""

    def __init__(self, ffmpeg: FFmpegProcessor | None = None, config: EncoderConfig | None = None) -> None:
        self.ffmpeg = ffmpeg or FFmpegProcessor()
        self.config = config or EncoderConfig()

    def output_extension(self, asset: MediaAsset) -> str:
        return self.config.video_extension if asset.is_video else self.config.audio_extension

    @staticmethod
    def scale_filter(asset: MediaAsset, rung: EncodingRung) -> str:
        """Fit the picture inside the rung's box; never upscale."""
        width = asset.width or 0
        height = asset.height or 0

        if width > rung.target_width or height > rung.target_height:
            return (
                f"scale=w='min({rung.target_width},iw)':h='min({rung.target_height},ih)'"
                ":force_original_aspect_ratio=decrease:force_divisible_by=2,format=yuv420p"
            )
        if width % 2 or height % 2:
            # yuv420p needs even dimensions
            return "scale=trunc(iw/2)*2:trunc(ih/2)*2,format=yuv420p"
        return "format=yuv420p"

    def _video_codec_args(self, rung: EncodingRung, budget: BitrateBudget, hardware: bool) -> list[str]:
        if hardware:
            args = [
                "-c:v",
                self.config.hardware_encoder,
                "-preset",
                GPU_PRESET_MAP.get(rung.preset, "p5"),
                "-rc:v",
                "vbr",
                "-b:v",
                "0",
                "-cq:v",
                str(rung.quality),
                "-spatial-aq",
                "1",
                "-temporal-aq",
                "1",
                "-aq-strength",
                str(rung.aq_strength),
            ]
        else:
            args = ["-c:v", self.config.software_encoder, "-preset", rung.preset, "-crf", str(rung.quality)]

        # Caps peaks without forcing constant bitrate
        nominal = budget.video_kbps or rung.max_video_kbps
        args.extend(
            [
                "-maxrate:v",
                f"{int(nominal * self.config.maxrate_factor)}k",
                "-bufsize:v",
                f"{int(nominal * self.config.bufsize_factor)}k",
            ]
        )
        return args

    def _audio_codec_args(self, rung: EncodingRung, gain_db: float | None) -> list[str]:
        args = []
        if gain_db is not None:
            args.extend(["-af", volume_filter(gain_db)])
        args.extend(["-ac", "2", "-c:a", self.config.audio_codec, "-b:a", f"{rung.audio_bitrate_kbps}k"])
        if self.config.audio_codec == "libopus":
            args.extend(
                [
                    "-vbr",
                    "on",
                    "-compression_level",
                    str(rung.audio_compression_level),
                    "-application",
                    "audio",
                ]
            )
        return args

    def build_command(  # noqa: PLR0913
        self,
        input_path: Path,
        output_path: Path,
        asset: MediaAsset,
        rung: EncodingRung,
        budget: BitrateBudget,
        *,
        hardware: bool = False,
        trim_to: float | None = None,
        gain_db: float | None = None,
    ) -> list[str]:
        """Build the FFmpeg command for one rung."""
        cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(input_path)]

        if trim_to is not None:
            cmd.extend(["-t", f"{trim_to:g}"])

        if asset.is_video:
            cmd.extend(["-map", "0:v:0", "-map", "0:a:0?", "-vf", self.scale_filter(asset, rung)])
            cmd.extend(self._video_codec_args(rung, budget, hardware))
            cmd.extend(["-pix_fmt", "yuv420p", "-movflags", "+faststart"])
            if asset.audio_codec is None:
                cmd.append("-an")
            else:
                cmd.extend(self._audio_codec_args(rung, gain_db))
        else:
            cmd.extend(["-map", "0:a:0", "-vn", "-map_metadata", "0"])
            cmd.extend(self._audio_codec_args(rung, gain_db))

        cmd.extend(["-metadata", f"comment={NORMALIZED_TAG}", str(output_path)])
        return cmd

    def encode(  # noqa: PLR0913
        self,
        input_path: Path,
        output_path: Path,
        asset: MediaAsset,
        rung: EncodingRung,
        budget: BitrateBudget,
        *,
        hardware: bool = False,
        trim_to: float | None = None,
        gain_db: float | None = None,
    ) -> EncodeAttemptResult:
        """
        Encode one rung and report the outcome.

        Failures are returned, not raised: a non-zero exit, a timeout or a
        missing/empty output all yield ``success=False`` with an error kind.
        """
        command = self.build_command(
            input_path,
            output_path,
            asset,
            rung,
            budget,
            hardware=hardware,
            trim_to=trim_to,
            gain_db=gain_db,
        )
        result = EncodeAttemptResult(
            rung=rung,
            output_path=output_path,
            success=False,
            budget=budget,
            trimmed_to=trim_to,
            hardware=hardware,
        )

        log_stage(
            LOG,
            "encode",
            "start",
            "Rung %d (%s) for %s: %s encoder, video %s kbps, audio %d kbps%s",
            rung.index,
            rung.name,
            asset.source_path.name,
            "hardware" if hardware else "software",
            budget.video_kbps if budget.video_kbps is not None else "-",
            budget.audio_kbps,
            f", trimmed to {trim_to:g}s" if trim_to is not None else "",
            rung=rung.index,
        )
        start_time = time.time()

        try:
            self.ffmpeg.run_command(command, input_path)
        except FFmpegError as e:
            output_path.unlink(missing_ok=True)
            result.error_kind = ErrorKind.TIMEOUT if e.timed_out else ErrorKind.ENCODE_FAILED
            result.message = str(e)
            log_stage(LOG, "encode", "failed", "Rung %d failed: %s", rung.index, e, rung=rung.index)
            return result

        size = output_path.stat().st_size if output_path.exists() else 0
        if size == 0:
            output_path.unlink(missing_ok=True)
            result.error_kind = ErrorKind.MISSING_OUTPUT
            result.message = f"Output file missing or empty: {output_path}"
            log_stage(LOG, "encode", "failed", "Rung %d produced no output", rung.index, rung=rung.index)
            return result

        result.success = True
        result.byte_size = size
        log_stage(
            LOG,
            "encode",
            "done",
            "Rung %d produced %d bytes in %.1fs",
            rung.index,
            size,
            time.time() - start_time,
            rung=rung.index,
        )
        return result
