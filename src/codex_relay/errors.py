"""Application-level exception types for the relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for the relay."""


class ConfigurationError(RelayError):
    """Raised when startup configuration is missing or invalid."""


class AgentUnavailableError(RelayError):
    """Raised when the agent process cannot be started at all."""


class AgentProcessError(RelayError):
    """Raised when the agent exited non-zero without a usable reply."""

    def __init__(self, message: str, *, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class AgentTimeoutError(RelayError):
    """Raised when a turn exceeds the configured wall-clock timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Agent did not finish within {timeout_seconds:g} seconds.")
        self.timeout_seconds = timeout_seconds


class AttachmentFetchError(RelayError):
    """Raised when an inbound attachment could not be retrieved."""


class TranscriptionError(RelayError):
    """Raised when an audio attachment could not be transcribed."""


class EmptyMessageError(RelayError):
    """Raised when an inbound message carries nothing to forward."""


class RegistryPersistenceError(RelayError):
    """Raised when the session document cannot be read or written."""
