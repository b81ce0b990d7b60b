"""Configuration error definitions."""

from __future__ import annotations

from stowage.domain.errors import StowageError


class ConfigurationError(StowageError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""
