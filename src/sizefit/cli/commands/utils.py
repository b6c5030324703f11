"""Utility CLI commands."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from ...core.ffmpeg import HardwareEncoderDetector

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager

LOG = logging.getLogger(__name__)


class UtilityCommands:
    """Utility command handlers."""

    def __init__(self, config_manager: ConfigManager) -> None:
        """Initialize utility commands handler."""
        self.config_manager = config_manager

    def add_subcommands(self, parser: argparse.ArgumentParser) -> None:
        """Add utility subcommands to parser."""
        subparsers = parser.add_subparsers(dest="util_command", help="Utility commands")

        cleanup_parser = subparsers.add_parser("cleanup", help="Clean up backup files")
        cleanup_parser.add_argument("path", type=Path, help="Path to directory")
        cleanup_parser.add_argument("--force", "-f", action="store_true", help="Force removal of all backup files")
        cleanup_parser.add_argument("--dry-run", "-n", action="store_true", help="Show what would be deleted")

        subparsers.add_parser("info", help="Show configuration and system info")

    def handle_command(self, args: argparse.Namespace) -> int:
        """Handle utility command execution."""
        if not hasattr(args, "util_command") or args.util_command is None:
            LOG.error("No utility command specified")
            return 1

        if args.util_command == "cleanup":
            return self._handle_cleanup(args)
        if args.util_command == "info":
            return self._handle_info(args)
        LOG.error("Unknown utility command: %s", args.util_command)
        return 1

    def _handle_cleanup(self, args: argparse.Namespace) -> int:
        """Handle backup cleanup."""
        if not args.force and not args.dry_run:
            LOG.info("Use --force to remove all .bak files in the directory, or --dry-run to list them.")
            return 0

        try:
            backup_files = sorted(args.path.rglob("*.bak"))
        except OSError:
            LOG.exception("Backup cleanup failed")
            return 1

        if args.dry_run:
            print(f"Would remove {len(backup_files)} backup files")
            for backup_file in backup_files:
                print(f"  {backup_file}")
            return 0

        cleaned_count = 0
        for backup_file in backup_files:
            try:
                backup_file.unlink()
                cleaned_count += 1
                LOG.debug("Removed backup: %s", backup_file)
            except OSError as e:
                LOG.warning("Failed to remove backup %s: %s", backup_file, e)

        print(f"Removed {cleaned_count} backup files")
        return 0

    def _handle_info(self, _args: argparse.Namespace) -> int:
        """Handle info display."""
        config = self.config_manager.config
        missing = False

        print("Executables:")
        for exe in ("ffmpeg", "ffprobe"):
            path = shutil.which(exe)
            missing = missing or path is None
            print(f"  {exe:<8} {path or 'not found'}")

        hardware = False
        if not missing:
            detector = HardwareEncoderDetector(config.encoder.hardware_encoder, enabled=config.encoder.use_hardware)
            hardware = detector.detect()

        output_dir = Path(self.config_manager.get_value("global_.output_dir"))
        print("\nSettings:")
        print(f"  size ceiling       {self.config_manager.get_value('limits.max_size_bytes') / (1024 * 1024):.1f} MiB")
        print(f"  duration ceiling   {self.config_manager.get_value('limits.max_duration_seconds'):g}s")
        print(f"  target peak        {config.loudness.target_peak_db:g} dB")
        print(f"  hardware encoder   {config.encoder.hardware_encoder} ({'available' if hardware else 'unavailable'})")
        print(f"  output directory   {output_dir}")
        print(f"  ladder rungs       {len(config.encoder.ladder)}")

        scratch = config.global_.temp_dir or output_dir
        probe_dir = scratch if scratch.exists() else Path.cwd()
        free_gb = psutil.disk_usage(str(probe_dir)).free / (1024**3)
        print(f"  free scratch space {free_gb:.1f} GB ({probe_dir})")

        return 1 if missing else 0
