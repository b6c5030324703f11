"""sizefit - loudness normalization and size-limited encoding for chat attachments."""

from __future__ import annotations

__version__ = "0.1.0"
__description__ = "Fit audio and video under a chat attachment size limit"

# Public API exports
from .config import EncodingRung, SizefitConfig, default_ladder, get_config
from .core import (
    AllRungsExhaustedError,
    ArtifactCache,
    ConfigManager,
    FFmpegError,
    FilterOptions,
    MediaAsset,
    NormalizedArtifact,
    ProcessingError,
    ProcessingResult,
    ProcessingStatus,
    SourceMissingError,
    UnsupportedMediaError,
    with_config_overrides,
)
from .processors import EffectsProcessor, ManifestCatalog, MediaNormalizer, QualityLadderController

__all__ = [
    # Configuration
    "ConfigManager",
    "EncodingRung",
    "SizefitConfig",
    "default_ladder",
    "get_config",
    "with_config_overrides",
    # Processing
    "ArtifactCache",
    "EffectsProcessor",
    "FilterOptions",
    "ManifestCatalog",
    "MediaNormalizer",
    "QualityLadderController",
    # Data classes
    "MediaAsset",
    "NormalizedArtifact",
    "ProcessingResult",
    "ProcessingStatus",
    # Exceptions
    "AllRungsExhaustedError",
    "FFmpegError",
    "ProcessingError",
    "SourceMissingError",
    "UnsupportedMediaError",
]
