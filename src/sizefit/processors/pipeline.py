"""Normalization pipeline over single files and batches."""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tqdm import tqdm

from ..core.base import (
    ErrorKind,
    MediaProcessor,
    NormalizedArtifact,
    ProcessingError,
    ProcessingResult,
    ProcessingStatus,
    require_source,
)
from ..core.cache import ArtifactCache
from ..core.config import ConfigManager
from .ladder import QualityLadderController, unclaimed_path
from .publisher import MANIFEST_NAME, ManifestCatalog, ResultPublisher

if TYPE_CHECKING:
    from collections.abc import Iterable


class MediaNormalizer(MediaProcessor):
    """Make media files fit the delivery size limit, one at a time."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        *,
        controller: QualityLadderController | None = None,
        cache: ArtifactCache | None = None,
        publisher: ResultPublisher | None = None,
        force: bool = False,
    ) -> None:
        super().__init__("sizefit")
        self.config_manager = config_manager or ConfigManager()
        config = self.config_manager.config

        self.controller = controller or QualityLadderController(self.config_manager)
        self.file_manager = self.controller.file_manager
        if cache is None and config.cache.enabled:
            cache = ArtifactCache(config.cache.max_entries, config.cache.ttl_seconds)
        self.cache = cache
        self.publisher = publisher
        self.base_dir = Path.cwd()
        self.force = force
        self.stats = {"success": 0, "oversized": 0, "skipped": 0, "failed": 0}

    @property
    def output_dir(self) -> Path:
        return Path(self.config_manager.get_value("global_.output_dir"))

    def can_process(self, file_path: Path) -> bool:
        extensions = self.config_manager.get_value("global_.extensions")
        return file_path.suffix.lower() in extensions

    def publisher_for(self, output_dir: Path) -> ResultPublisher:
        """Publisher recording into the manifest of the given output directory."""
        if self.publisher is not None:
            return self.publisher
        return ResultPublisher(ManifestCatalog(output_dir / MANIFEST_NAME), base_dir=self.base_dir)

    def existing_output(self, file_path: Path, publisher: ResultPublisher) -> Path | None:
        """Artifact the catalog records for this source, if it is still usable."""
        recorded = publisher.normalized_for(file_path)
        if recorded is None or not recorded.is_file():
            return None
        if 0 < recorded.stat().st_size <= self.controller.ceiling_bytes:
            return recorded
        return None

    def process_file(self, file_path: Path, **kwargs: Any) -> ProcessingResult:
        """
        Normalize one file.

        Never raises: every failure is reported as a FAILED result carrying
        the error kind.

        Keyword Args:
            output_dir: Override of the configured output directory
            force: Re-encode even when a valid output already exists or identical content was seen

        """
        start_time = time.time()
        output_dir = Path(kwargs.get("output_dir") or self.output_dir)
        force = kwargs.get("force", self.force)
        publisher = self.publisher_for(output_dir)
        original_size = None

        try:
            original_size = require_source(file_path)

            if not force:
                existing = self.existing_output(file_path, publisher)
                if existing is not None:
                    return self._record(
                        ProcessingResult(
                            source_file=file_path,
                            status=ProcessingStatus.SKIPPED,
                            message=f"Already normalized: {existing}",
                            output_file=existing,
                            original_size=original_size,
                            new_size=existing.stat().st_size,
                        )
                    )

            cache_key = self.cache.content_hash(file_path) if self.cache is not None else None
            artifact = None if force else self._from_cache(cache_key, file_path, output_dir, publisher)
            if artifact is None:
                artifact = self.controller.run(
                    file_path,
                    output_dir,
                    claimed=lambda path: publisher.claimed(path, file_path),
                )
                if cache_key is not None:
                    self.cache.put(cache_key, artifact)

            result = ProcessingResult(
                source_file=file_path,
                status=ProcessingStatus.OVERSIZED if artifact.oversized else ProcessingStatus.SUCCESS,
                message=self._describe(artifact),
                output_file=artifact.path,
                original_size=original_size,
                new_size=artifact.byte_size,
                artifact=artifact,
                metadata={"rung": artifact.rung.name, "attempts": len(artifact.attempts)},
            )
            result.metadata.update(publisher.publish(file_path, artifact))

        except ProcessingError as e:
            self.logger.error("Failed to normalize %s: %s", file_path, e)
            result = ProcessingResult(
                source_file=file_path,
                status=ProcessingStatus.FAILED,
                message=str(e),
                original_size=original_size,
                error_kind=e.error_kind,
            )
        except Exception as e:
            self.logger.exception("Unexpected error normalizing %s", file_path)
            result = ProcessingResult(
                source_file=file_path,
                status=ProcessingStatus.FAILED,
                message=str(e),
                original_size=original_size,
                error_kind=ErrorKind.UNEXPECTED,
            )

        result.processing_time = time.time() - start_time
        return self._record(result)

    def _from_cache(
        self, cache_key: str | None, file_path: Path, output_dir: Path, publisher: ResultPublisher
    ) -> NormalizedArtifact | None:
        """Reuse an artifact produced earlier in this session from identical content."""
        if cache_key is None or self.cache is None:
            return None
        cached = self.cache.get(cache_key)
        if cached is None:
            return None

        target = unclaimed_path(
            output_dir / f"{file_path.stem}{cached.output_extension}",
            lambda path: publisher.claimed(path, file_path),
        )
        if target.resolve() != cached.path.resolve():
            self.file_manager.publish(cached.path, target, copy=True)
        self.logger.info("Reusing normalized output of identical content for %s", file_path.name)
        return NormalizedArtifact(
            path=target,
            byte_size=cached.byte_size,
            output_extension=cached.output_extension,
            rung=cached.rung,
            oversized=cached.oversized,
            reused=True,
        )

    @staticmethod
    def _describe(artifact: NormalizedArtifact) -> str:
        size_mb = artifact.byte_size / (1024 * 1024)
        if artifact.reused:
            return f"Reused existing output ({size_mb:.2f} MB)"
        if artifact.oversized:
            return f"Still oversized after all rungs: {size_mb:.2f} MB at {artifact.rung.name}"
        return f"Fits at {artifact.rung.name}: {size_mb:.2f} MB"

    def _record(self, result: ProcessingResult) -> ProcessingResult:
        self.stats[result.status.value] += 1
        return result

    def process_batch(self, files: Iterable[Path], **kwargs: Any) -> list[ProcessingResult]:
        """Normalize files sequentially with a progress bar."""
        files = list(files)
        results = []

        progress_bar = tqdm(
            total=len(files),
            desc="Normalizing",
            unit="file",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        )
        try:
            for file_path in files:
                progress_bar.set_description(f"Processing {file_path.name}")
                result = self.process_file(file_path, **kwargs)
                results.append(result)
                if result.status is ProcessingStatus.SUCCESS:
                    progress_bar.set_description(f"✓ Completed {file_path.name}")
                elif result.status is ProcessingStatus.SKIPPED:
                    progress_bar.set_description(f"⏭ Skipped {file_path.name}")
                else:
                    progress_bar.set_description(f"✗ {result.status.value.title()} {file_path.name}")
                progress_bar.update(1)
        finally:
            progress_bar.close()

        summary = self.file_manager.get_session_summary()
        self.logger.info(
            "Processing complete: %d normalized, %d oversized, %d skipped, %d failed (%d publish operations)",
            self.stats["success"],
            self.stats["oversized"],
            self.stats["skipped"],
            self.stats["failed"],
            summary["successful_operations"],
        )
        return results

    def collect_sources(
        self, directory: Path, recursive: bool = True, output_dir: Path | None = None
    ) -> list[Path]:
        """Supported files under a directory, leaving out anything inside the output directory."""
        output_dir = Path(output_dir or self.output_dir).resolve()
        return [f for f in self.collect_files(directory, recursive) if output_dir not in f.resolve().parents]

    def process_directory(self, directory: Path, *, recursive: bool = True, **kwargs: Any) -> list[ProcessingResult]:
        """Normalize every supported file under a directory, skipping the output directory itself."""
        files = self.collect_sources(directory, recursive, kwargs.get("output_dir"))
        return self.process_batch(files, **kwargs)
