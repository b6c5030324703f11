"""Normalization CLI command."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...core.base import ProcessingStatus

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager
    from ...processors import MediaNormalizer

LOG = logging.getLogger(__name__)


class NormalizeCommands:
    """Handlers for the normalize command."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add normalize arguments to parser."""
        parser.add_argument("paths", nargs="+", type=Path, help="Media files or directories")
        parser.add_argument("--output-dir", "-o", type=Path, help="Where normalized files are written")
        parser.add_argument("--max-size-mb", type=float, help="Size ceiling in MiB (default: 9)")
        parser.add_argument("--max-duration", type=float, help="Duration ceiling in seconds for the last rung")
        parser.add_argument("--no-hardware", action="store_true", help="Never use the hardware encoder")
        parser.add_argument(
            "--keep-mezzanine",
            action="store_true",
            help="Also keep the loudness-corrected intermediate in <output-dir>/uncompressed",
        )
        parser.add_argument("--force", "-f", action="store_true", help="Re-encode files that already have an output")
        parser.add_argument("--recursive", "-r", action="store_true", help="Process directories recursively")
        parser.add_argument("--no-backups", action="store_true", help="Don't back up superseded outputs")

    def collect(
        self,
        normalizer: MediaNormalizer,
        paths: list[Path],
        *,
        recursive: bool,
        output_dir: Path | None = None,
    ) -> list[Path]:
        files: list[Path] = []
        for path in paths:
            if path.is_dir():
                files.extend(normalizer.collect_sources(path, recursive, output_dir))
            else:
                files.append(path)
        return files

    def handle_command(self, args: argparse.Namespace) -> int:
        """Handle normalize command execution."""
        try:
            from ...processors import MediaNormalizer

            normalizer = MediaNormalizer(self.config_manager, force=args.force)
            files = self.collect(normalizer, args.paths, recursive=args.recursive, output_dir=args.output_dir)

            if getattr(args, "dry_run", False):
                for file_path in files:
                    print(f"Would normalize {file_path}")
                return 0

            kwargs = {"output_dir": args.output_dir} if args.output_dir else {}
            if len(files) == 1:
                results = [normalizer.process_file(files[0], **kwargs)]
            else:
                results = normalizer.process_batch(files, **kwargs)

            for result in results:
                if result.status is ProcessingStatus.FAILED:
                    LOG.error("Failed to normalize %s: %s", result.source_file, result.message)
                else:
                    LOG.info("%s: %s", result.source_file.name, result.message)

            failed = [r for r in results if r.status is ProcessingStatus.FAILED]
            oversized = [r for r in results if r.status is ProcessingStatus.OVERSIZED]

            if len(results) > 1:
                print(
                    f"Normalized {normalizer.stats['success']}, oversized {normalizer.stats['oversized']}, "
                    f"skipped {normalizer.stats['skipped']}, failed {normalizer.stats['failed']}"
                )

            if oversized:
                from ..failure_table import print_oversized_table

                print_oversized_table(oversized, normalizer.controller.ceiling_bytes)

            if failed:
                from ..failure_table import print_failure_table

                print_failure_table(failed)

        except Exception:
            LOG.exception("Normalization failed")
            return 1
        else:
            return 1 if failed else 0
