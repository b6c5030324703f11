"""Command line interface for sizefit."""

from .commands import EffectsCommands, NormalizeCommands, UtilityCommands
from .main import SizefitCLI

__all__ = [
    "EffectsCommands",
    "NormalizeCommands",
    "SizefitCLI",
    "UtilityCommands",
]
