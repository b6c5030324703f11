"""Main CLI interface for sizefit."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..config.constants import VERBOSE_LOGGING_THRESHOLD
from ..core import ConfigManager, ProcessingOptions, with_config_overrides
from .commands import EffectsCommands, NormalizeCommands, UtilityCommands


class SizefitCLI:
    """Main CLI interface."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_manager = ConfigManager(config_path)
        self.normalize_commands = NormalizeCommands(self.config_manager)
        self.effects_commands = EffectsCommands(self.config_manager)
        self.utility_commands = UtilityCommands(self.config_manager)

    @staticmethod
    def setup_logging(verbosity: int) -> None:
        """Setup logging based on verbosity level."""
        level_map = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG,
        }

        level = level_map.get(verbosity, logging.DEBUG)

        log_format = (
            "%(levelname)s: %(name)s: %(message)s"
            if verbosity >= VERBOSE_LOGGING_THRESHOLD
            else "%(levelname)s: %(message)s"
        )

        logging.basicConfig(level=level, format=log_format, handlers=[logging.StreamHandler(sys.stderr)], force=True)

        # Command lines are logged at debug level
        if verbosity < VERBOSE_LOGGING_THRESHOLD:
            logging.getLogger("sizefit.core.ffmpeg").setLevel(logging.WARNING)

    def build_parser(self) -> argparse.ArgumentParser:
        """Build the argument parser."""
        parser = argparse.ArgumentParser(
            prog="sizefit",
            description="Fit audio and video under a chat attachment size limit",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Normalize a file into ./normalized
  sizefit normalize clip.mov

  # Normalize a whole directory with a 25 MB limit, software encoding only
  sizefit normalize uploads/ -r --max-size-mb 25 --no-hardware

  # Apply effects, then fit the result
  sizefit effects song.mp3 --options "{amplify=1.5,pitch=-3}"

  # Cut a random five second clip
  sizefit clip song.mp3

  # Clean up backup files
  sizefit utils cleanup normalized --force
            """,
        )

        parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="Increase verbosity (-v for info, -vv for debug)",
        )
        parser.add_argument("--config", type=Path, help="Path to configuration file")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be done without actually doing it",
        )

        subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

        normalize_parser = subparsers.add_parser("normalize", help="Normalize loudness and fit the size limit")
        self.normalize_commands.add_arguments(normalize_parser)

        effects_parser = subparsers.add_parser("effects", help="Apply audio effects")
        self.effects_commands.add_effects_arguments(effects_parser)

        clip_parser = subparsers.add_parser("clip", help="Extract a short audio clip")
        self.effects_commands.add_clip_arguments(clip_parser)

        utils_parser = subparsers.add_parser("utils", help="Utility commands")
        self.utility_commands.add_subcommands(utils_parser)

        return parser

    @staticmethod
    def create_processing_options(args: argparse.Namespace) -> ProcessingOptions:
        """Create processing options from CLI arguments."""
        return ProcessingOptions(
            create_backups=False if getattr(args, "no_backups", False) else None,
            output_dir=getattr(args, "output_dir", None),
            max_size_mb=getattr(args, "max_size_mb", None),
            max_duration=getattr(args, "max_duration", None),
            use_hardware=False if getattr(args, "no_hardware", False) else None,
            keep_mezzanine=True if getattr(args, "keep_mezzanine", False) else None,
            dry_run=getattr(args, "dry_run", False),
            verbose=getattr(args, "verbose", 0) > 0,
        )

    def _set_config_manager(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager
        self.normalize_commands.config_manager = config_manager
        self.effects_commands.config_manager = config_manager
        self.utility_commands.config_manager = config_manager

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.build_parser()
        parsed_args = parser.parse_args(args)

        self.setup_logging(parsed_args.verbose)

        if getattr(parsed_args, "config", None):
            self._set_config_manager(ConfigManager(parsed_args.config))

        processing_options = self.create_processing_options(parsed_args)

        try:
            with with_config_overrides(self.config_manager) as config_mgr:
                config_mgr.apply_processing_options(processing_options)

                if parsed_args.command == "normalize":
                    return self.normalize_commands.handle_command(parsed_args)
                if parsed_args.command == "effects":
                    return self.effects_commands.handle_effects(parsed_args)
                if parsed_args.command == "clip":
                    return self.effects_commands.handle_clip(parsed_args)
                if parsed_args.command == "utils":
                    return self.utility_commands.handle_command(parsed_args)
                parser.error(f"Unknown command: {parsed_args.command}")

        except KeyboardInterrupt:
            logging.getLogger(__name__).info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception:
            logging.getLogger(__name__).exception("Unexpected error")
            return 1

        return 0


def main() -> int:
    """Entry point for the CLI."""
    cli = SizefitCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
