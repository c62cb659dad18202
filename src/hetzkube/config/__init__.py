"""Configuration loading."""

from .manager import DEFAULTS, ConfigManager

__all__ = ["ConfigManager", "DEFAULTS"]
