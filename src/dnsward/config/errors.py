"""Configuration errors raised while building controller settings."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a configuration value cannot be parsed or is out of range."""
