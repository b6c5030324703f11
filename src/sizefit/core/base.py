"""Base classes, data model and error taxonomy for media normalization."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from ..config.settings import EncodingRung

LOG = logging.getLogger(__name__)


class ProcessingStatus(Enum):
    """Status of a processing operation."""

    SUCCESS = "success"
    OVERSIZED = "oversized"
    SKIPPED = "skipped"
    FAILED = "failed"


class MediaKind(Enum):
    """Kind of media an asset carries."""

    AUDIO = "audio"
    VIDEO = "video"


class ErrorKind(Enum):
    """Why a step did not produce a usable result."""

    SOURCE_MISSING = "source_missing"
    UNSUPPORTED_MEDIA = "unsupported_media"
    ENCODE_FAILED = "encode_failed"
    TIMEOUT = "timeout"
    MISSING_OUTPUT = "missing_output"
    ALL_RUNGS_EXHAUSTED = "all_rungs_exhausted"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class MediaAsset:
    """Probed description of a source file."""

    source_path: Path
    media_kind: MediaKind
    duration_seconds: float
    size_bytes: int
    width: int | None = None
    height: int | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    format_name: str | None = None
    comment: str | None = None

    @property
    def is_video(self) -> bool:
        return self.media_kind is MediaKind.VIDEO


@dataclass(frozen=True)
class AudioLevelProfile:
    """Peak and mean loudness of a source, in dBFS."""

    peak_db: float
    mean_db: float
    degraded: bool = False


@dataclass(frozen=True)
class BitrateBudget:
    """Bitrate split for one rung, in kbps."""

    total_kbps: int
    audio_kbps: int
    video_kbps: int | None = None
    capped: bool = False


@dataclass
class EncodeAttemptResult:
    """Outcome of encoding a single rung."""

    rung: EncodingRung
    output_path: Path
    success: bool
    byte_size: int = 0
    error_kind: ErrorKind | None = None
    budget: BitrateBudget | None = None
    trimmed_to: float | None = None
    hardware: bool = False
    message: str = ""


@dataclass
class NormalizedArtifact:
    """Accepted output of a ladder walk."""

    path: Path
    byte_size: int
    output_extension: str
    rung: EncodingRung
    oversized: bool = False
    attempts: list[EncodeAttemptResult] = field(default_factory=list)
    mezzanine_path: Path | None = None
    reused: bool = False


@dataclass
class ProcessingResult:
    """Result of a media processing operation."""

    source_file: Path
    status: ProcessingStatus
    message: str = ""
    output_file: Path | None = None
    original_size: int | None = None
    new_size: int | None = None
    processing_time: float = 0.0
    artifact: NormalizedArtifact | None = None
    error_kind: ErrorKind | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ProcessingError(Exception):
    """Base exception for media processing errors."""

    error_kind = ErrorKind.UNEXPECTED

    def __init__(
        self,
        message: str,
        file_path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.cause = cause


class SourceMissingError(ProcessingError):
    """The input file is absent or empty."""

    error_kind = ErrorKind.SOURCE_MISSING


class UnsupportedMediaError(ProcessingError):
    """The input could not be probed as audio or video."""

    error_kind = ErrorKind.UNSUPPORTED_MEDIA


class AllRungsExhaustedError(ProcessingError):
    """Every rung of the ladder failed to encode."""

    error_kind = ErrorKind.ALL_RUNGS_EXHAUSTED

    def __init__(
        self,
        message: str,
        file_path: Path | None = None,
        attempts: list[EncodeAttemptResult] | None = None,
    ) -> None:
        super().__init__(message, file_path=file_path)
        self.attempts = attempts or []


def log_stage(logger: logging.Logger, stage: str, event: str, message: str, *args: object, **fields: Any) -> None:
    """Emit a diagnostics event for one pipeline stage."""
    level = logging.WARNING if event in {"degraded", "failed", "oversized"} else logging.INFO
    logger.log(level, message, *args, extra={"stage": stage, "event": event, **fields})


def require_source(path: Path) -> int:
    """Return the size of a usable source file or raise SourceMissingError."""
    try:
        size = path.stat().st_size
    except OSError as e:
        msg = f"Source file not found: {path}"
        raise SourceMissingError(msg, file_path=path, cause=e) from e

    if not path.is_file() or size == 0:
        msg = f"Source file is empty or not a regular file: {path}"
        raise SourceMissingError(msg, file_path=path)
    return size


class MediaProcessor(ABC):
    """Abstract base class for media processors."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    def can_process(self, file_path: Path) -> bool:
        """Check if this processor can handle the given file."""

    @abstractmethod
    def process_file(self, file_path: Path, **kwargs) -> ProcessingResult:
        """Process a single file."""

    def collect_files(self, directory: Path, recursive: bool = True) -> list[Path]:
        """Find all compatible files in a directory."""
        if not directory.exists():
            msg = f"Directory does not exist: {directory}"
            raise ProcessingError(msg)

        pattern = "**/*" if recursive else "*"
        files = sorted(f for f in directory.glob(pattern) if f.is_file() and self.can_process(f))
        self.logger.info(f"Found {len(files)} files to process in {directory}")
        return files

    def process_many(self, files: Iterable[Path], **kwargs) -> list[ProcessingResult]:
        """Process files one at a time, in order."""
        return [self.process_file(file_path, **kwargs) for file_path in files]
