"""Configuration management for sizefit."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

MIB = 1024 * 1024

DEFAULT_EXTENSIONS = (
    ".mp3",
    ".wav",
    ".ogg",
    ".opus",
    ".flac",
    ".m4a",
    ".aac",
    ".mp4",
    ".mkv",
    ".mov",
    ".webm",
    ".avi",
    ".m4v",
)


# Configuration singleton
class _ConfigSingleton:
    """Configuration singleton holder."""

    _instance: SizefitConfig | None = None

    @classmethod
    def get_instance(cls) -> SizefitConfig:
        """Get the configuration instance."""
        if cls._instance is None:
            config_path = Path.cwd() / "config.yaml"
            if config_path.exists():
                cls._instance = SizefitConfig.load_from_file(config_path)
            else:
                cls._instance = SizefitConfig()
            cls._instance.apply_env_overrides()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


_config_singleton = _ConfigSingleton()


@dataclass(frozen=True)
class EncodingRung:
    """One tier of the quality ladder."""

    index: int
    name: str
    target_height: int
    target_width: int
    quality: int  # CQ for the hardware encoder, CRF for libx264
    audio_bitrate_kbps: int
    preset: str  # x264 preset name, mapped to p1..p7 for NVENC
    aq_strength: int = 8
    max_video_kbps: int = 3000
    audio_compression_level: int = 10
    trim_to_seconds: float | None = None
    trim_to_ceiling: bool = False  # trim length follows limits.max_duration_seconds
    description: str = ""

    def same_settings(self, other: EncodingRung) -> bool:
        """Check whether two rungs would produce identical encodes when neither trims."""
        return (
            self.target_height == other.target_height
            and self.target_width == other.target_width
            and self.quality == other.quality
            and self.audio_bitrate_kbps == other.audio_bitrate_kbps
            and self.preset == other.preset
            and self.aq_strength == other.aq_strength
            and self.max_video_kbps == other.max_video_kbps
            and self.audio_compression_level == other.audio_compression_level
        )


def default_ladder(trim_to_seconds: float = 240.0) -> list[EncodingRung]:
    """Build the reference six-rung ladder."""
    return [
        EncodingRung(0, "720p-high", 720, 1280, 23, 128, "medium", 8, 3000, 10),
        EncodingRung(1, "720p-medium", 720, 1280, 28, 96, "faster", 10, 2000, 10),
        EncodingRung(2, "360p-low", 360, 640, 35, 64, "faster", 12, 1000, 8),
        EncodingRung(3, "360p-very-low", 360, 640, 42, 48, "veryfast", 15, 800, 8),
        EncodingRung(4, "360p-extremely-low", 360, 640, 50, 32, "superfast", 15, 600, 6),
        EncodingRung(
            5,
            "360p-extremely-low-trim",
            360,
            640,
            50,
            32,
            "superfast",
            15,
            600,
            6,
            trim_to_seconds=trim_to_seconds,
            trim_to_ceiling=True,
        ),
    ]


@dataclass
class LimitsConfig:
    """Delivery limits of the target chat platform."""

    max_size_bytes: int = 9 * MIB
    max_duration_seconds: float = 240.0


@dataclass
class LoudnessConfig:
    """Loudness normalization settings."""

    target_peak_db: float = -3.0
    max_gain_db: float = 20.0
    default_peak_db: float = -10.0
    default_mean_db: float = -25.0
    passthrough_tolerance_db: float = 1.0


@dataclass
class EncoderConfig:
    """Encoder selection and codec settings."""

    use_hardware: bool = True
    hardware_encoder: str = "h264_nvenc"
    software_encoder: str = "libx264"
    audio_codec: str = "libopus"
    mezzanine_audio_codec: str = "flac"
    min_video_kbps: int = 250
    maxrate_factor: float = 1.5
    bufsize_factor: float = 2.0
    video_extension: str = ".mp4"
    audio_extension: str = ".ogg"
    timeout_factor: float = 5.0
    min_timeout: int = 600
    ladder: list[EncodingRung] = field(default_factory=default_ladder)


@dataclass
class CacheConfig:
    """Artifact cache settings."""

    enabled: bool = True
    max_entries: int = 256
    ttl_seconds: float = 3600.0


@dataclass
class GlobalConfig:
    """Global settings."""

    log_level: str = "INFO"
    output_dir: Path = field(default_factory=lambda: Path("normalized"))
    temp_dir: Path | None = None
    keep_mezzanine: bool = False
    create_backups: bool = True
    cleanup_backups: str = "on_success"
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))


@dataclass
class SizefitConfig:
    """Main configuration class."""

    limits: LimitsConfig = field(default_factory=LimitsConfig)
    loudness: LoudnessConfig = field(default_factory=LoudnessConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    global_: GlobalConfig = field(default_factory=GlobalConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> SizefitConfig:
        """Load configuration from YAML file."""
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            return cls._from_dict(data)
        except (OSError, yaml.YAMLError) as e:
            LOG.warning("Failed to load config from %s: %s", config_path, e)
            return cls()

    def get_rung(self, index: int) -> EncodingRung:
        """Get a ladder rung by index."""
        ladder = self.encoder.ladder
        if not 0 <= index < len(ladder):
            msg = f"Unknown rung {index}. Ladder has {len(ladder)} rungs"
            raise ValueError(msg)
        return ladder[index]

    def apply_env_overrides(self, environ: dict[str, str] | None = None) -> None:
        """Apply SIZEFIT_* environment variables on top of the loaded values."""
        env = os.environ if environ is None else environ

        try:
            if "SIZEFIT_MAX_SIZE_MB" in env:
                self.limits.max_size_bytes = int(float(env["SIZEFIT_MAX_SIZE_MB"]) * MIB)
            if "SIZEFIT_MAX_DURATION" in env:
                self.limits.max_duration_seconds = float(env["SIZEFIT_MAX_DURATION"])
                self.encoder.ladder = retrim_ladder(self.encoder.ladder, self.limits.max_duration_seconds)
            if "SIZEFIT_TARGET_PEAK_DB" in env:
                self.loudness.target_peak_db = float(env["SIZEFIT_TARGET_PEAK_DB"].lower().removesuffix("db"))
        except ValueError as e:
            LOG.warning("Ignoring invalid environment override: %s", e)

        if "SIZEFIT_OUTPUT_DIR" in env:
            self.global_.output_dir = Path(env["SIZEFIT_OUTPUT_DIR"])
        if "SIZEFIT_TEMP_DIR" in env:
            self.global_.temp_dir = Path(env["SIZEFIT_TEMP_DIR"])

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> SizefitConfig:
        """Create config from dictionary."""
        limits = cls._parse_limits(data.get("limits", {}))
        loudness = cls._parse_loudness(data.get("loudness", {}))
        encoder = cls._parse_encoder(data.get("encoder", {}), limits)
        cache = CacheConfig(
            enabled=data.get("cache", {}).get("enabled", True),
            max_entries=data.get("cache", {}).get("max_entries", 256),
            ttl_seconds=data.get("cache", {}).get("ttl_seconds", 3600.0),
        )
        global_config = cls._parse_global_config(data.get("global", {}))

        return cls(limits=limits, loudness=loudness, encoder=encoder, cache=cache, global_=global_config)

    @classmethod
    def _parse_limits(cls, limits_data: dict[str, Any]) -> LimitsConfig:
        """Parse delivery limits."""
        max_size_bytes = limits_data.get("max_size_bytes")
        if max_size_bytes is None:
            max_size_bytes = int(float(limits_data.get("max_size_mb", 9)) * MIB)

        return LimitsConfig(
            max_size_bytes=int(max_size_bytes),
            max_duration_seconds=float(limits_data.get("max_duration_seconds", 240.0)),
        )

    @classmethod
    def _parse_loudness(cls, loudness_data: dict[str, Any]) -> LoudnessConfig:
        """Parse loudness settings."""
        defaults = LoudnessConfig()
        return LoudnessConfig(
            target_peak_db=float(loudness_data.get("target_peak_db", defaults.target_peak_db)),
            max_gain_db=float(loudness_data.get("max_gain_db", defaults.max_gain_db)),
            default_peak_db=float(loudness_data.get("default_peak_db", defaults.default_peak_db)),
            default_mean_db=float(loudness_data.get("default_mean_db", defaults.default_mean_db)),
            passthrough_tolerance_db=float(
                loudness_data.get("passthrough_tolerance_db", defaults.passthrough_tolerance_db)
            ),
        )

    @classmethod
    def _parse_encoder(cls, encoder_data: dict[str, Any], limits: LimitsConfig) -> EncoderConfig:
        """Parse encoder settings and the ladder."""
        defaults = EncoderConfig()

        ladder: list[EncodingRung] = []
        for index, rung_data in enumerate(encoder_data.get("ladder", [])):
            try:
                if isinstance(rung_data, dict) and {"height", "quality", "audio_kbps", "preset"} <= rung_data.keys():
                    height = int(rung_data["height"])
                    trim = rung_data.get("trim")
                    trim_to_ceiling = trim is True
                    if trim_to_ceiling:
                        trim = limits.max_duration_seconds
                    ladder.append(
                        EncodingRung(
                            index=index,
                            name=rung_data.get("name", f"rung-{index}"),
                            target_height=height,
                            target_width=int(rung_data.get("width", height * 16 // 9)),
                            quality=int(rung_data["quality"]),
                            audio_bitrate_kbps=int(rung_data["audio_kbps"]),
                            preset=str(rung_data["preset"]),
                            aq_strength=int(rung_data.get("aq_strength", 8)),
                            max_video_kbps=int(rung_data.get("max_video_kbps", 3000)),
                            audio_compression_level=int(rung_data.get("audio_compression_level", 10)),
                            trim_to_seconds=float(trim) if trim else None,
                            trim_to_ceiling=trim_to_ceiling,
                            description=rung_data.get("description", ""),
                        )
                    )
                else:
                    LOG.warning("Incomplete rung data at position %d: missing required fields", index)
            except (TypeError, ValueError) as e:
                LOG.warning("Failed to load rung %d: %s", index, e)

        if not ladder:
            ladder = default_ladder(limits.max_duration_seconds)

        return EncoderConfig(
            use_hardware=encoder_data.get("use_hardware", defaults.use_hardware),
            hardware_encoder=encoder_data.get("hardware_encoder", defaults.hardware_encoder),
            software_encoder=encoder_data.get("software_encoder", defaults.software_encoder),
            audio_codec=encoder_data.get("audio_codec", defaults.audio_codec),
            mezzanine_audio_codec=encoder_data.get("mezzanine_audio_codec", defaults.mezzanine_audio_codec),
            min_video_kbps=int(encoder_data.get("min_video_kbps", defaults.min_video_kbps)),
            maxrate_factor=float(encoder_data.get("maxrate_factor", defaults.maxrate_factor)),
            bufsize_factor=float(encoder_data.get("bufsize_factor", defaults.bufsize_factor)),
            video_extension=encoder_data.get("video_extension", defaults.video_extension),
            audio_extension=encoder_data.get("audio_extension", defaults.audio_extension),
            timeout_factor=float(encoder_data.get("timeout_factor", defaults.timeout_factor)),
            min_timeout=int(encoder_data.get("min_timeout", defaults.min_timeout)),
            ladder=ladder,
        )

    @classmethod
    def _parse_global_config(cls, global_data: dict[str, Any]) -> GlobalConfig:
        """Parse global configuration."""
        # Validate backup strategy
        cleanup_backups = global_data.get("cleanup_backups", "on_success")
        valid_strategies = {"never", "on_success"}
        if cleanup_backups not in valid_strategies:
            LOG.warning(
                "Invalid backup strategy '%s'. Using 'on_success'. Valid options: %s",
                cleanup_backups,
                ", ".join(valid_strategies),
            )
            cleanup_backups = "on_success"

        temp_dir = global_data.get("temp_dir")
        return GlobalConfig(
            log_level=global_data.get("log_level", "INFO"),
            output_dir=Path(global_data.get("output_dir", "normalized")),
            temp_dir=Path(temp_dir) if temp_dir else None,
            keep_mezzanine=global_data.get("keep_mezzanine", False),
            create_backups=global_data.get("create_backups", True),
            cleanup_backups=cleanup_backups,
            extensions=[ext.lower() for ext in global_data.get("extensions", DEFAULT_EXTENSIONS)],
        )


def retrim_ladder(ladder: list[EncodingRung], seconds: float) -> list[EncodingRung]:
    """Point rungs configured to trim at the duration ceiling at a new ceiling."""
    return [replace(rung, trim_to_seconds=seconds) if rung.trim_to_ceiling else rung for rung in ladder]


def get_config() -> SizefitConfig:
    """Get the global configuration instance."""
    return _config_singleton.get_instance()
