"""Enhanced configuration management."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..config import SizefitConfig
from ..config import get_config as _get_global_config
from ..config.settings import MIB

LOG = logging.getLogger(__name__)


@dataclass
class ProcessingOptions:
    """Processing options that can override configuration."""

    create_backups: bool | None = None
    output_dir: Path | None = None
    max_size_mb: float | None = None
    max_duration: float | None = None
    use_hardware: bool | None = None
    keep_mezzanine: bool | None = None
    dry_run: bool = False
    verbose: bool = False


class ConfigManager:
    """Enhanced configuration manager with context support."""

    def __init__(self, config_path: Path | None = None, *, config: SizefitConfig | None = None) -> None:
        """
        Initialize enhanced configuration manager.

        Args:
            config_path: Optional path to config file
            config: Ready-made configuration, used as is

        """
        if config is not None:
            self._config = config
        elif config_path:
            self._config = SizefitConfig.load_from_file(config_path)
            self._config.apply_env_overrides()
        else:
            self._config = _get_global_config()
        self._overrides: dict[str, Any] = {}
        self._context_stack: list[dict[str, Any]] = []

    @property
    def config(self) -> SizefitConfig:
        """Get the base configuration."""
        return self._config

    def get_value(self, key_path: str, default: object = None) -> object:
        """Get configuration value with override support."""
        if key_path in self._overrides:
            return self._overrides[key_path]

        try:
            value = self._config
            for part in key_path.split("."):
                value = getattr(value, part)
        except AttributeError:
            return default
        else:
            return value

    def set_override(self, key_path: str, value: object) -> None:
        """Set a temporary configuration override."""
        self._overrides[key_path] = value

    def push_context(self, overrides: dict[str, Any]) -> None:
        """Push a new configuration context."""
        self._context_stack.append(self._overrides.copy())
        self._overrides.update(overrides)

    def pop_context(self) -> None:
        """Pop the current configuration context."""
        if self._context_stack:
            self._overrides = self._context_stack.pop()

    def apply_processing_options(self, options: ProcessingOptions) -> None:
        """Apply processing options as configuration overrides."""
        overrides: dict[str, Any] = {}

        if options.create_backups is not None:
            overrides["global_.create_backups"] = options.create_backups
        if options.output_dir is not None:
            overrides["global_.output_dir"] = options.output_dir
        if options.keep_mezzanine is not None:
            overrides["global_.keep_mezzanine"] = options.keep_mezzanine
        if options.max_size_mb is not None:
            overrides["limits.max_size_bytes"] = int(options.max_size_mb * MIB)
        if options.max_duration is not None:
            overrides["limits.max_duration_seconds"] = float(options.max_duration)
        if options.use_hardware is not None:
            overrides["encoder.use_hardware"] = options.use_hardware

        for key, value in overrides.items():
            self.set_override(key, value)


class ConfigContext:
    """Context manager for temporary configuration changes."""

    def __init__(self, config_manager: ConfigManager, overrides: dict[str, Any]) -> None:
        self.config_manager = config_manager
        self.overrides = overrides

    def __enter__(self) -> ConfigManager:
        """Enter the configuration context."""
        self.config_manager.push_context(self.overrides)
        return self.config_manager

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        """Exit the configuration context."""
        self.config_manager.pop_context()


def with_config_overrides(config_manager: ConfigManager, **overrides: object) -> ConfigContext:
    """Create a context with configuration overrides."""
    return ConfigContext(config_manager, overrides)
