"""CLI command modules."""

from .effects import EffectsCommands
from .normalize import NormalizeCommands
from .utils import UtilityCommands

__all__ = ["EffectsCommands", "NormalizeCommands", "UtilityCommands"]
