"""Quality ladder walk: normalize once, then step down until the output fits."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ..config.constants import NORMALIZED_TAG
from ..config.settings import retrim_ladder
from ..core.audio_analysis import analyze_level
from ..core.base import (
    AllRungsExhaustedError,
    AudioLevelProfile,
    ErrorKind,
    MediaAsset,
    NormalizedArtifact,
    UnsupportedMediaError,
    log_stage,
    require_source,
)
from ..core.budget import budget
from ..core.config import ConfigManager
from ..core.ffmpeg import FFmpegError, FFmpegProbe, FFmpegProcessor, HardwareEncoderDetector
from ..core.file_manager import BackupStrategy, FileManager, check_scratch_space
from .encoder import DurationTrimmer, EncodeExecutor
from .normalizer import VolumeNormalizer
from .validator import OutputValidator, Verdict

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config.settings import EncodingRung
    from ..core.base import EncodeAttemptResult

LOG = logging.getLogger(__name__)

MEZZANINE_SUBDIR = "uncompressed"


def unclaimed_path(candidate: Path, claimed: Callable[[Path], bool] | None = None) -> Path:
    """First of candidate, candidate_1, candidate_2, ... that no other source owns."""
    if claimed is None:
        return candidate
    path = candidate
    counter = 1
    while claimed(path):
        path = candidate.with_name(f"{candidate.stem}_{counter}{candidate.suffix}")
        counter += 1
    return path


class LadderState(Enum):
    """Lifecycle of one ladder walk."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    NORMALIZING = "normalizing"
    ATTEMPTING = "attempting"
    ACCEPTED = "accepted"
    FAILED = "failed"


class QualityLadderController:
    """
    Drive a single source through normalization and the encoding ladder.

    The first rung whose output fits the size ceiling is accepted. When none
    fits, the last successful output is returned flagged as oversized. Only
    when every rung fails to encode at all is AllRungsExhaustedError raised.
    """

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        *,
        detector: HardwareEncoderDetector | None = None,
        ffmpeg: FFmpegProcessor | None = None,
        file_manager: FileManager | None = None,
        probe: type[FFmpegProbe] = FFmpegProbe,
    ) -> None:
        self.config_manager = config_manager or ConfigManager()
        config = self.config_manager.config

        self.ffmpeg = ffmpeg or FFmpegProcessor()
        self.detector = detector or HardwareEncoderDetector(
            config.encoder.hardware_encoder,
            enabled=config.encoder.use_hardware,
            ffmpeg=self.ffmpeg,
        )
        self.file_manager = file_manager or FileManager(
            BackupStrategy(config.global_.cleanup_backups),
            temp_root=config.global_.temp_dir,
        )
        self.probe = probe
        self.normalizer = VolumeNormalizer(
            self.ffmpeg,
            target_peak_db=config.loudness.target_peak_db,
            max_gain_db=config.loudness.max_gain_db,
            audio_codec=config.encoder.mezzanine_audio_codec,
        )
        self.executor = EncodeExecutor(self.ffmpeg, config.encoder)
        self.validator = OutputValidator(self.file_manager)

        self.state = LadderState.IDLE
        self.transitions: list[LadderState] = []
        self.asset: MediaAsset | None = None
        self._claimed: Callable[[Path], bool] | None = None

    def _enter(self, state: LadderState) -> None:
        self.state = state
        self.transitions.append(state)
        LOG.debug("Ladder state -> %s", state.value)

    @property
    def ceiling_bytes(self) -> int:
        return int(self.config_manager.get_value("limits.max_size_bytes"))

    def ladder(self) -> list[EncodingRung]:
        """Configured rungs, with trimming rungs pointed at the current duration ceiling."""
        rungs = self.config_manager.config.encoder.ladder
        max_duration = float(self.config_manager.get_value("limits.max_duration_seconds"))
        return retrim_ladder(rungs, max_duration)

    def plan(self, asset: MediaAsset) -> list[EncodingRung]:
        """Rungs to attempt for an asset, in order."""
        planned: list[EncodingRung] = []
        for rung in self.ladder():
            trims = DurationTrimmer.trim_seconds(asset, rung) is not None
            if rung.trim_to_seconds is not None and not trims and planned and rung.same_settings(planned[-1]):
                LOG.debug(
                    "Skipping rung %d: source is short enough that it repeats rung %d",
                    rung.index,
                    planned[-1].index,
                )
                continue
            planned.append(rung)
        return planned

    def use_hardware(self) -> bool:
        if not self.config_manager.get_value("encoder.use_hardware"):
            return False
        return self.detector.detect()

    def timeout_for(self, asset: MediaAsset) -> int:
        """Per-command timeout scaled to the source duration."""
        encoder = self.config_manager.config.encoder
        return max(encoder.min_timeout, int(asset.duration_seconds * encoder.timeout_factor))

    def probe_asset(self, source: Path) -> MediaAsset:
        """Describe the source, raising UnsupportedMediaError when ffprobe cannot."""
        try:
            asset = self.probe.get_media_asset(source)
        except FFmpegError as e:
            require_source(source)
            msg = f"Could not read media from {source}: {e}"
            raise UnsupportedMediaError(msg, file_path=source, cause=e) from e

        if not asset.is_video and asset.audio_codec is None:
            msg = f"No audio or video stream in {source}"
            raise UnsupportedMediaError(msg, file_path=source)
        return asset

    def analyze(self, asset: MediaAsset) -> AudioLevelProfile:
        loudness = self.config_manager.config.loudness
        if asset.audio_codec is None:
            LOG.debug("%s has no audio stream, skipping level analysis", asset.source_path)
            return AudioLevelProfile(loudness.default_peak_db, loudness.default_mean_db, degraded=True)
        return analyze_level(
            asset.source_path,
            self.ffmpeg,
            default_peak_db=loudness.default_peak_db,
            default_mean_db=loudness.default_mean_db,
        )

    @staticmethod
    def in_delivery_format(asset: MediaAsset) -> bool:
        """True for mp4/h264 with opus or silent video, or ogg/opus audio."""
        formats = set((asset.format_name or "").split(","))
        if asset.is_video:
            return "mp4" in formats and asset.video_codec == "h264" and asset.audio_codec in (None, "opus")
        return "ogg" in formats and asset.audio_codec == "opus"

    def _level_is_normalized(self, profile: AudioLevelProfile) -> bool:
        loudness = self.config_manager.config.loudness
        if profile.degraded:
            return False
        return abs(profile.peak_db - loudness.target_peak_db) <= loudness.passthrough_tolerance_db

    def output_path(self, asset: MediaAsset, output_dir: Path) -> Path:
        candidate = output_dir / f"{asset.source_path.stem}{self.executor.output_extension(asset)}"
        return unclaimed_path(candidate, self._claimed)

    def run(
        self,
        source: Path,
        output_dir: Path | None = None,
        *,
        claimed: Callable[[Path], bool] | None = None,
    ) -> NormalizedArtifact:
        """
        Normalize and encode one source into the output directory.

        Args:
            source: Input media file
            output_dir: Where the delivery artifact is published, defaults to the configured one
            claimed: Tells whether an output path already belongs to another source;
                such names get a numeric suffix instead of being overwritten

        Returns:
            The published artifact

        Raises:
            SourceMissingError: If the source is absent or empty, or vanishes before encoding
            UnsupportedMediaError: If the source cannot be probed
            AllRungsExhaustedError: If no rung produced an output at all

        """
        self.transitions = []
        self.asset = None
        self._claimed = claimed
        self._enter(LadderState.IDLE)
        output_dir = Path(output_dir or self.config_manager.get_value("global_.output_dir"))
        ceiling = self.ceiling_bytes

        try:
            require_source(source)
            self._enter(LadderState.ANALYZING)
            asset = self.probe_asset(source)
            self.asset = asset

            profile = None
            if self.in_delivery_format(asset) and asset.size_bytes <= ceiling:
                if asset.comment == NORMALIZED_TAG or asset.audio_codec is None:
                    return self._pass_through(asset, output_dir)
                profile = self.analyze(asset)
                if self._level_is_normalized(profile):
                    return self._pass_through(asset, output_dir)
            if profile is None:
                profile = self.analyze(asset)

            artifact = self._walk(asset, profile, output_dir, ceiling)
        except Exception:
            self._enter(LadderState.FAILED)
            raise

        self._enter(LadderState.ACCEPTED)
        return artifact

    def _pass_through(self, asset: MediaAsset, output_dir: Path) -> NormalizedArtifact:
        """Accept a source that already meets every delivery requirement."""
        final_path = self.output_path(asset, output_dir)
        if final_path.resolve() != asset.source_path.resolve():
            self.file_manager.publish(
                asset.source_path,
                final_path,
                create_backup=bool(self.config_manager.get_value("global_.create_backups")),
                copy=True,
            )

        rung = self.ladder()[0]
        log_stage(
            LOG,
            "ladder",
            "accepted",
            "%s is already deliverable (%d bytes), copied without re-encoding",
            asset.source_path.name,
            asset.size_bytes,
            rung=rung.index,
        )
        self._enter(LadderState.ACCEPTED)
        return NormalizedArtifact(
            path=final_path,
            byte_size=asset.size_bytes,
            output_extension=final_path.suffix,
            rung=rung,
            reused=True,
        )

    def _prepare_input(
        self, asset: MediaAsset, profile: AudioLevelProfile, scratch: Path
    ) -> tuple[Path, float | None, Path | None]:
        """Return the encode input, any gain still to apply, and the mezzanine if one was built."""
        if asset.audio_codec is None:
            return asset.source_path, None, None

        try:
            mezzanine = self.normalizer.build_mezzanine(asset, profile, scratch)
        except FFmpegError as e:
            require_source(asset.source_path)
            log_stage(
                LOG,
                "normalize",
                "degraded",
                "Mezzanine failed for %s, applying gain while encoding instead: %s",
                asset.source_path.name,
                e,
            )
            return asset.source_path, self.normalizer.compute_gain(profile), None
        return mezzanine, None, mezzanine

    def _walk(
        self, asset: MediaAsset, profile: AudioLevelProfile, output_dir: Path, ceiling: int
    ) -> NormalizedArtifact:
        original_timeout = self.ffmpeg.timeout
        self.ffmpeg.timeout = self.timeout_for(asset)

        try:
            with self.file_manager.scratch() as scratch:
                check_scratch_space(scratch, asset.size_bytes)

                self._enter(LadderState.NORMALIZING)
                encode_input, gain_db, mezzanine = self._prepare_input(asset, profile, scratch)

                # Nothing is attempted once the source has gone away
                require_source(asset.source_path)
                self._enter(LadderState.ATTEMPTING)
                artifact = self._attempt_rungs(asset, encode_input, gain_db, scratch, ceiling)

                artifact.path = self._publish(artifact.path, self.output_path(asset, output_dir))
                if mezzanine is not None and self.config_manager.get_value("global_.keep_mezzanine"):
                    artifact.mezzanine_path = self._publish(mezzanine, output_dir / MEZZANINE_SUBDIR / mezzanine.name)
                return artifact
        finally:
            self.ffmpeg.timeout = original_timeout

    def _publish(self, temp_path: Path, final_path: Path) -> Path:
        create_backup = bool(self.config_manager.get_value("global_.create_backups"))
        operation = self.file_manager.publish(temp_path, final_path, create_backup=create_backup)
        log_stage(LOG, "publish", "done", "Published %s", final_path)
        return operation.target_path or final_path

    def _attempt_rungs(
        self,
        asset: MediaAsset,
        encode_input: Path,
        gain_db: float | None,
        scratch: Path,
        ceiling: int,
    ) -> NormalizedArtifact:
        hardware = self.use_hardware()
        extension = self.executor.output_extension(asset)
        min_video_kbps = self.config_manager.config.encoder.min_video_kbps
        attempts: list[EncodeAttemptResult] = []
        fallback: EncodeAttemptResult | None = None

        for rung in self.plan(asset):
            trim_to = DurationTrimmer.trim_seconds(asset, rung)
            rung_budget = budget(
                asset.duration_seconds,
                ceiling,
                rung,
                video=asset.is_video,
                min_video_kbps=min_video_kbps,
            )
            output_path = scratch / f"{asset.source_path.stem}.rung{rung.index}{extension}"

            encode_args = (encode_input, output_path, asset, rung, rung_budget)

            attempt = self.executor.encode(*encode_args, hardware=hardware, trim_to=trim_to, gain_db=gain_db)
            if not attempt.success and hardware:
                log_stage(
                    LOG,
                    "ladder",
                    "degraded",
                    "Hardware encode failed at rung %d, continuing with software encoding",
                    rung.index,
                    rung=rung.index,
                )
                attempts.append(attempt)
                hardware = False
                attempt = self.executor.encode(*encode_args, hardware=False, trim_to=trim_to, gain_db=gain_db)
            attempts.append(attempt)

            if not attempt.success:
                continue

            verdict = self.validator.validate(output_path, ceiling)
            if verdict is Verdict.INVALID:
                attempt.success = False
                attempt.error_kind = ErrorKind.MISSING_OUTPUT
                continue

            if fallback is not None:
                self.validator.discard(fallback.output_path)

            if verdict is Verdict.ACCEPT:
                log_stage(
                    LOG,
                    "ladder",
                    "accepted",
                    "Accepted rung %d (%s) for %s: %d bytes",
                    rung.index,
                    rung.name,
                    asset.source_path.name,
                    attempt.byte_size,
                    rung=rung.index,
                )
                return NormalizedArtifact(
                    path=output_path,
                    byte_size=attempt.byte_size,
                    output_extension=extension,
                    rung=rung,
                    attempts=attempts,
                )

            fallback = attempt

        if fallback is None:
            msg = f"All {len(attempts)} encode attempts failed for {asset.source_path}"
            raise AllRungsExhaustedError(msg, file_path=asset.source_path, attempts=attempts)

        log_stage(
            LOG,
            "ladder",
            "oversized",
            "No rung fit %d bytes for %s, delivering rung %d at %d bytes",
            ceiling,
            asset.source_path.name,
            fallback.rung.index,
            fallback.byte_size,
            rung=fallback.rung.index,
        )
        return NormalizedArtifact(
            path=fallback.output_path,
            byte_size=fallback.byte_size,
            output_extension=extension,
            rung=fallback.rung,
            oversized=True,
            attempts=attempts,
        )
