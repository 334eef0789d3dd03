"""Application-level exception types for Pixel."""

from __future__ import annotations


class PixelError(Exception):
    """Base exception for Pixel."""


class ConfigurationError(PixelError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when a router or responder model is missing."""


class PipelineError(PixelError):
    """Raised when one turn of the conversation pipeline cannot complete."""


class BackendError(PipelineError):
    """Raised when the model backend is unreachable or returns unusable output."""


class SessionBusyError(PipelineError):
    """Raised when an utterance arrives while the session is still processing another."""


class ActionError(PixelError):
    """Base exception for action dispatch failures.

    These never abort a turn: the registry turns them into failed action results.
    """


class UnknownActionError(ActionError):
    """Raised when the requested action is not registered."""


class InvalidArgumentsError(ActionError):
    """Raised when action arguments fail validation."""


class ActionTimeoutError(ActionError):
    """Raised when a delegated call exceeds its deadline."""


class PeerDisconnectedError(ActionError):
    """Raised when the remote peer goes away while a delegated call is outstanding."""
