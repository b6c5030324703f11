"""Report accepted artifacts to a catalog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import yaml

from ..core.base import ProcessingError, log_stage

if TYPE_CHECKING:
    from ..core.base import NormalizedArtifact

LOG = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.yaml"


class CatalogWriter(Protocol):
    """Anything that can remember which normalized file belongs to a source."""

    def record_normalized(self, source_path: Path, normalized_path: Path) -> None: ...

    def lookup(self, source_path: Path) -> str | None: ...

    def owner_of(self, normalized_path: Path) -> str | None: ...


class ManifestCatalog:
    """YAML manifest mapping sources to their normalized files."""

    def __init__(self, manifest_path: Path) -> None:
        self.manifest_path = manifest_path

    def load(self) -> dict[str, str]:
        if not self.manifest_path.exists():
            return {}
        try:
            with self.manifest_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Corrupt manifest {self.manifest_path}: {e}"
            raise ProcessingError(msg, file_path=self.manifest_path, cause=e) from e
        return {str(key): str(value) for key, value in data.items()}

    def lookup(self, source_path: Path) -> str | None:
        return self.load().get(str(source_path))

    def owner_of(self, normalized_path: Path) -> str | None:
        """Source recorded for a normalized file, if any."""
        target = str(normalized_path)
        for source, normalized in self.load().items():
            if normalized == target:
                return source
        return None

    def record_normalized(self, source_path: Path, normalized_path: Path) -> None:
        entries = self.load()
        entries[str(source_path)] = str(normalized_path)

        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        with self.manifest_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(entries, f, sort_keys=True, allow_unicode=True)


class ResultPublisher:
    """Record accepted artifacts, with paths relative to a base directory."""

    def __init__(self, writer: CatalogWriter | None = None, base_dir: Path | None = None) -> None:
        self.writer = writer
        self.base_dir = base_dir

    def relative(self, path: Path) -> Path:
        if self.base_dir is None:
            return path
        try:
            return path.resolve().relative_to(self.base_dir.resolve())
        except ValueError:
            return path

    def resolve(self, recorded: str) -> Path:
        path = Path(recorded)
        if path.is_absolute() or self.base_dir is None:
            return path
        return self.base_dir / path

    def normalized_for(self, source_path: Path) -> Path | None:
        """Normalized file recorded for this exact source, if any."""
        if self.writer is None:
            return None
        recorded = self.writer.lookup(self.relative(source_path))
        return self.resolve(recorded) if recorded is not None else None

    def claimed(self, normalized_path: Path, source_path: Path) -> bool:
        """True when the catalog assigns a normalized file to a different source."""
        if self.writer is None:
            return False
        owner = self.writer.owner_of(self.relative(normalized_path))
        return owner is not None and owner != str(self.relative(source_path))

    def publish(self, source_path: Path, artifact: NormalizedArtifact) -> dict[str, Any]:
        """
        Record an accepted artifact.

        A failing catalog write is logged and reported in the returned record;
        the artifact itself stays published.
        """
        source = self.relative(source_path)
        normalized = self.relative(artifact.path)
        record: dict[str, Any] = {
            "source": str(source),
            "normalized": str(normalized),
            "rung": artifact.rung.name,
            "bytes": artifact.byte_size,
            "oversized": artifact.oversized,
        }

        if self.writer is None:
            return record

        try:
            self.writer.record_normalized(source, normalized)
        except (OSError, ValueError, ProcessingError) as e:
            log_stage(LOG, "catalog", "failed", "Could not record %s in catalog: %s", normalized, e)
            record["catalog_error"] = str(e)
        else:
            log_stage(LOG, "catalog", "done", "Recorded %s -> %s", source, normalized)
        return record
