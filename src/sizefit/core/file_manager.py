"""Scratch space and publishing of finished artifacts."""

from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psutil

from ..config.constants import SCRATCH_SPACE_FACTOR
from .base import ProcessingError

if TYPE_CHECKING:
    from collections.abc import Iterator

LOG = logging.getLogger(__name__)


class BackupStrategy(Enum):
    """Backup creation strategies."""

    NEVER = "never"
    ON_SUCCESS = "on_success"


@dataclass
class FileOperation:
    """Represents a file operation that can be rolled back."""

    operation_type: str
    source_path: Path
    backup_path: Path | None = None
    target_path: Path | None = None
    success: bool = False
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp == 0.0:
            self.timestamp = time.time()


def check_scratch_space(directory: Path, source_size: int) -> bool:
    """Warn when the scratch filesystem looks too small for a ladder walk."""
    required = source_size * SCRATCH_SPACE_FACTOR
    try:
        free = psutil.disk_usage(str(directory)).free
    except OSError as e:
        LOG.debug("Could not read free space for %s: %s", directory, e)
        return True

    if free < required:
        LOG.warning(
            "Low scratch space in %s: %.1f MB free, about %.1f MB needed",
            directory,
            free / (1024 * 1024),
            required / (1024 * 1024),
        )
        return False
    return True


class FileManager:
    """File manager with scoped scratch directories and atomic publishing."""

    def __init__(
        self,
        backup_strategy: BackupStrategy = BackupStrategy.ON_SUCCESS,
        temp_root: Path | None = None,
    ) -> None:
        """Initialize file manager with backup strategy and scratch root."""
        self.backup_strategy = backup_strategy
        self.temp_root = temp_root
        self.session_operations: list[FileOperation] = []
        self.session_backups: set[Path] = set()

    @contextlib.contextmanager
    def scratch(self, prefix: str = "sizefit-") -> Iterator[Path]:
        """Yield a private scratch directory that is removed on every exit path."""
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        directory = Path(tempfile.mkdtemp(prefix=prefix, dir=self.temp_root))
        LOG.debug("Created scratch directory %s", directory)
        try:
            yield directory
        finally:
            shutil.rmtree(directory, ignore_errors=True)
            LOG.debug("Removed scratch directory %s", directory)

    @staticmethod
    def discard(path: Path) -> None:
        """Delete an intermediate file if it exists."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            LOG.warning("Failed to remove %s: %s", path, e)

    def create_backup(self, file_path: Path) -> Path | None:
        """Create a backup of the file."""
        if self.backup_strategy == BackupStrategy.NEVER:
            return None

        backup_path = file_path.with_suffix(file_path.suffix + ".bak")

        try:
            shutil.copy2(file_path, backup_path)
            self.session_backups.add(backup_path)
            self.session_operations.append(
                FileOperation(
                    operation_type="backup_create",
                    source_path=file_path,
                    backup_path=backup_path,
                    success=True,
                )
            )
            LOG.debug("Created backup: %s", backup_path)
        except OSError as e:
            LOG.exception("Failed to create backup for %s", file_path)
            msg = f"Backup creation failed: {e}"
            raise ProcessingError(msg, file_path=file_path, cause=e) from e
        else:
            return backup_path

    def publish(
        self, temp_path: Path, final_path: Path, *, create_backup: bool = True, copy: bool = False
    ) -> FileOperation:
        """Move (or copy) a finished file into place, superseding any previous artifact."""
        backup_path = None

        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)

            if final_path.exists():
                if create_backup:
                    backup_path = self.create_backup(final_path)
                final_path.unlink()

            if copy:
                shutil.copy2(temp_path, final_path)
            else:
                shutil.move(temp_path, final_path)

            operation = FileOperation(
                operation_type="publish",
                source_path=temp_path,
                backup_path=backup_path,
                target_path=final_path,
                success=True,
            )
            self.session_operations.append(operation)
            LOG.debug("Published %s -> %s", temp_path, final_path)
        except (OSError, shutil.Error) as e:
            # Put the superseded artifact back
            if backup_path and backup_path.exists() and not final_path.exists():
                try:
                    shutil.move(backup_path, final_path)
                    LOG.info("Restored previous artifact after failed publish: %s", final_path)
                except (OSError, shutil.Error):
                    LOG.exception("Failed to restore backup")

            self.session_operations.append(
                FileOperation(
                    operation_type="publish",
                    source_path=temp_path,
                    backup_path=backup_path,
                    success=False,
                )
            )
            msg = f"Publishing {final_path} failed: {e}"
            raise ProcessingError(msg, file_path=final_path, cause=e) from e
        else:
            if self.backup_strategy == BackupStrategy.ON_SUCCESS and backup_path:
                self._cleanup_backup(backup_path)
            return operation

    def _cleanup_backup(self, backup_path: Path) -> None:
        """Remove a backup file."""
        try:
            if backup_path.exists():
                backup_path.unlink()
                self.session_backups.discard(backup_path)
                LOG.debug("Cleaned up backup: %s", backup_path)
        except OSError as e:
            LOG.warning("Failed to cleanup backup %s: %s", backup_path, e)

    def get_session_summary(self) -> dict[str, Any]:
        """Get summary of file operations in this session."""
        successful_ops = [op for op in self.session_operations if op.success]
        failed_ops = [op for op in self.session_operations if not op.success]

        return {
            "total_operations": len(self.session_operations),
            "successful_operations": len(successful_ops),
            "failed_operations": len(failed_ops),
            "backups_created": len(self.session_backups),
            "backup_strategy": self.backup_strategy.value,
        }
