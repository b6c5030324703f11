"""Core abstractions and utilities for sizefit."""

from .audio_analysis import analyze_level, parse_volumedetect
from .base import (
    AllRungsExhaustedError,
    AudioLevelProfile,
    BitrateBudget,
    EncodeAttemptResult,
    ErrorKind,
    MediaAsset,
    MediaKind,
    MediaProcessor,
    NormalizedArtifact,
    ProcessingError,
    ProcessingResult,
    ProcessingStatus,
    SourceMissingError,
    UnsupportedMediaError,
)
from .budget import budget
from .cache import ArtifactCache
from .config import ConfigManager, ProcessingOptions, with_config_overrides
from .ffmpeg import FFmpegError, FFmpegProbe, FFmpegProcessor, HardwareEncoderDetector
from .file_manager import BackupStrategy, FileManager
from .filters import FilterOptions

__all__ = [
    "AllRungsExhaustedError",
    "ArtifactCache",
    "AudioLevelProfile",
    "BackupStrategy",
    "BitrateBudget",
    "ConfigManager",
    "EncodeAttemptResult",
    "ErrorKind",
    "FFmpegError",
    "FFmpegProbe",
    "FFmpegProcessor",
    "FileManager",
    "FilterOptions",
    "HardwareEncoderDetector",
    "MediaAsset",
    "MediaKind",
    "MediaProcessor",
    "NormalizedArtifact",
    "ProcessingError",
    "ProcessingOptions",
    "ProcessingResult",
    "ProcessingStatus",
    "SourceMissingError",
    "UnsupportedMediaError",
    "analyze_level",
    "budget",
    "parse_volumedetect",
    "with_config_overrides",
]
