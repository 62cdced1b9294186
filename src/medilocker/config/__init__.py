"""Configuration module for Medilocker."""

from medilocker.config.base import Settings
from medilocker.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
