"""Configuration management for sizefit."""

from __future__ import annotations

from .constants import *  # noqa: F403, F401
from .settings import EncodingRung, SizefitConfig, default_ladder, get_config

__all__ = [
    "EncodingRung",
    "SizefitConfig",
    "default_ladder",
    "get_config",
]
