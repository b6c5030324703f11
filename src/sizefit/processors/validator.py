"""Accept or reject a rung's output against the size ceiling."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from ..core.base import log_stage
from ..core.file_manager import FileManager

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


class Verdict(Enum):
    """Outcome of validating one artifact."""

    ACCEPT = "accept"
    RETRY = "retry"
    INVALID = "invalid"


class OutputValidator:
    """Check artifacts for existence and size and clean up rejected ones."""

    def __init__(self, file_manager: FileManager | None = None) -> None:
        self.file_manager = file_manager or FileManager()

    def validate(self, path: Path, ceiling_bytes: int) -> Verdict:
        """Accept artifacts within the ceiling; unusable ones are deleted on the spot."""
        size = path.stat().st_size if path.is_file() else 0
        if size == 0:
            self.discard(path)
            log_stage(LOG, "validate", "failed", "Artifact %s is missing or empty", path)
            return Verdict.INVALID

        if size <= ceiling_bytes:
            log_stage(LOG, "validate", "accepted", "%s fits: %d <= %d bytes", path.name, size, ceiling_bytes)
            return Verdict.ACCEPT

        log_stage(
            LOG,
            "validate",
            "retry",
            "%s too large (%.2f MB > %.2f MB), trying next settings",
            path.name,
            size / (1024 * 1024),
            ceiling_bytes / (1024 * 1024),
        )
        return Verdict.RETRY

    def discard(self, path: Path) -> None:
        """Delete a rejected artifact."""
        self.file_manager.discard(path)
