"""Effects and clip CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...core.base import NormalizedArtifact, ProcessingError
from ...core.filters import FilterOptions

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager

LOG = logging.getLogger(__name__)


class EffectsCommands:
    """Effects and clip command handlers."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    def add_effects_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("path", type=Path, help="Media file")
        parser.add_argument(
            "--options",
            "-e",
            default="",
            help="Effect options, e.g. '{amplify=2,reverse=1,pitch=-3,clip=10,start=30}'",
        )
        parser.add_argument("--output-dir", "-o", type=Path, help="Where the result is written")
        parser.add_argument("--no-limit", action="store_true", help="Skip fitting the result to the size ceiling")

    def add_clip_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("path", type=Path, help="Media file")
        parser.add_argument("--duration", "-d", type=float, help="Clip length in seconds (default 5, max 30)")
        parser.add_argument("--start", "-s", type=float, help="Start position in seconds (default: random)")
        parser.add_argument("--output-dir", "-o", type=Path, help="Base directory; clips go to <dir>/clips")

    def handle_effects(self, args: argparse.Namespace) -> int:
        """Handle the effects command."""
        try:
            options = FilterOptions.parse(args.options)
        except ValueError as e:
            LOG.error("Invalid effect options: %s", e)  # noqa: TRY400
            return 2

        try:
            from ...processors import EffectsProcessor

            result = EffectsProcessor(self.config_manager).apply_effects(
                args.path,
                options,
                args.output_dir,
                enforce_limit=not args.no_limit,
            )
        except ProcessingError as e:
            LOG.error("Applying effects to %s failed: %s", args.path, e)  # noqa: TRY400
            return 1

        if isinstance(result, NormalizedArtifact):
            if result.oversized:
                LOG.warning("%s is still above the size limit (%d bytes)", result.path, result.byte_size)
            print(result.path)
        else:
            print(result)
        return 0

    def handle_clip(self, args: argparse.Namespace) -> int:
        """Handle the clip command."""
        try:
            from ...processors import EffectsProcessor

            clip_path = EffectsProcessor(self.config_manager).create_clip(
                args.path,
                duration=args.duration,
                start=args.start,
                output_dir=args.output_dir,
            )
        except ProcessingError as e:
            LOG.error("Creating clip from %s failed: %s", args.path, e)  # noqa: TRY400
            return 1

        print(clip_path)
        return 0
