"""Exceptions that are allowed to reach the request layer."""

from __future__ import annotations


class SpaceBioError(Exception):
    """Base class for spacebio errors."""


class ConfigError(SpaceBioError):
    """Configuration is missing or malformed."""


class MissingCredentialsError(ConfigError):
    """A required upstream credential (e.g. model API key) is absent."""

    def __init__(self, task: str, provider: str):
        self.task = task
        self.provider = provider
        super().__init__(
            f"Missing API key for provider '{provider}' (task '{task}')"
        )


class IndexUnavailableError(SpaceBioError):
    """Neither the remote CSV nor the local snapshot produced any articles."""
