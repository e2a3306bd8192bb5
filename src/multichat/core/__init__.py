"""Core models and settings for Multichat."""

from .models import ConnectionStatus, Platform
from .settings import ConfigError, Settings

__all__ = [
    "ConfigError",
    "ConnectionStatus",
    "Platform",
    "Settings",
]
