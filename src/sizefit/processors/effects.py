"""Audio effects and short clip extraction."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import TYPE_CHECKING

from ..config.constants import CLIP_AUDIO_BITRATE, DEFAULT_CLIP_SECONDS, MAX_CLIP_SECONDS
from ..core.base import ProcessingError, log_stage, require_source
from ..core.ffmpeg import FFmpegError
from .ladder import QualityLadderController

if TYPE_CHECKING:
    from ..core.base import MediaAsset, NormalizedArtifact
    from ..core.config import ConfigManager
    from ..core.filters import FilterOptions

LOG = logging.getLogger(__name__)

CLIPS_SUBDIR = "clips"


def clip_window(total_seconds: float, duration: float | None, start: float | None) -> tuple[float, float]:
    """
    Choose the start and length of a clip.

    The length defaults to five seconds and is capped at thirty. Without an
    explicit start a random one is picked that leaves room for the whole clip.
    """
    length = duration if duration and duration > 0 else DEFAULT_CLIP_SECONDS
    length = min(length, MAX_CLIP_SECONDS)

    if start is None:
        start = float(int(random.uniform(0, max(0.0, total_seconds - length))))  # noqa: S311
    start = max(0.0, min(start, total_seconds - 1))
    length = min(length, total_seconds - start)

    if length <= 0:
        msg = f"Clip window is empty for a {total_seconds:.1f}s source"
        raise ValueError(msg)
    return start, length


class EffectsProcessor:
    """Apply effect options to a source, then fit the result through the ladder."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        *,
        controller: QualityLadderController | None = None,
    ) -> None:
        self.controller = controller or QualityLadderController(config_manager)
        self.config_manager = self.controller.config_manager
        self.ffmpeg = self.controller.ffmpeg
        self.file_manager = self.controller.file_manager

    def build_effects_command(self, asset: MediaAsset, options: FilterOptions, output_path: Path) -> list[str]:
        """Build the command rendering effects and clip options into an intermediate file."""
        cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(asset.source_path)]

        if options.start_position is not None:
            cmd.extend(["-ss", f"{options.start_position:g}"])
        if options.clip_duration is not None:
            cmd.extend(["-t", f"{options.clip_duration:g}"])

        if asset.is_video:
            cmd.extend(["-map", "0:v:0", "-map", "0:a:0?", "-c:v", "copy"])
        else:
            cmd.extend(["-map", "0:a:0", "-vn"])

        chain = options.audio_filters()
        if chain:
            cmd.extend(["-af", ",".join(chain)])
        cmd.extend(["-c:a", "libopus", "-b:a", CLIP_AUDIO_BITRATE, str(output_path)])
        return cmd

    def apply_effects(
        self,
        source: Path,
        options: FilterOptions,
        output_dir: Path | None = None,
        *,
        enforce_limit: bool = True,
    ) -> NormalizedArtifact | Path:
        """
        Render effects for a source.

        With ``enforce_limit`` the rendered file is normalized and fitted to the
        size ceiling like any other upload; otherwise it is published as is.
        """
        require_source(source)
        asset = self.controller.probe_asset(source)
        output_dir = Path(output_dir or self.config_manager.get_value("global_.output_dir"))
        suffix = ".mkv" if asset.is_video else ".ogg"

        with self.file_manager.scratch("sizefit-effects-") as scratch:
            rendered = scratch / f"{source.stem}_{options.slug()}{suffix}"
            log_stage(LOG, "effects", "start", "Rendering %s with %s", source.name, options.slug())
            self.ffmpeg.run_command(self.build_effects_command(asset, options, rendered), source)
            if not rendered.is_file() or rendered.stat().st_size == 0:
                msg = f"Effects produced no output for {source}"
                raise FFmpegError(msg, file_path=source)
            log_stage(LOG, "effects", "done", "Rendered %s", rendered.name)

            if enforce_limit:
                return self.controller.run(rendered, output_dir)

            final_path = output_dir / rendered.name
            self.file_manager.publish(rendered, final_path)
            return final_path

    def create_clip(
        self,
        source: Path,
        duration: float | None = None,
        start: float | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        """Cut a short Opus clip out of a source, with metadata stripped."""
        require_source(source)
        asset = self.controller.probe_asset(source)
        if asset.duration_seconds <= 0:
            msg = f"Could not determine media duration of {source}"
            raise ProcessingError(msg, file_path=source)

        try:
            clip_start, clip_length = clip_window(asset.duration_seconds, duration, start)
        except ValueError as e:
            raise ProcessingError(str(e), file_path=source, cause=e) from e

        output_dir = Path(output_dir or self.config_manager.get_value("global_.output_dir")) / CLIPS_SUBDIR
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"clip_{source.stem}_{clip_start:.1f}_{clip_length:.1f}.ogg"

        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-y",
            "-ss",
            f"{clip_start:g}",
            "-i",
            str(source),
            "-t",
            f"{clip_length:g}",
            "-vn",
            "-c:a",
            "libopus",
            "-b:a",
            CLIP_AUDIO_BITRATE,
            "-map_metadata",
            "-1",
            str(output_path),
        ]
        try:
            self.ffmpeg.run_command(cmd, source)
        except FFmpegError:
            self.file_manager.discard(output_path)
            raise

        LOG.info("Created %.1fs clip at %.1fs: %s", clip_length, clip_start, output_path)
        return output_path
