"""
Error taxonomy shared by the service clients, the aggregator and the CLI.
The message of every error is meant to be shown to the user as-is.
"""
from typing import Optional


class TrackerError(Exception):
    """Base class for every failure surfaced to a consumer."""


class ConfigurationError(TrackerError):
    """A required credential or endpoint field is missing."""


class AuthError(TrackerError):
    """The remote service rejected the credential (401/403)."""


class NotFoundError(TrackerError):
    """The configured organization/account does not exist (404)."""


class ServiceError(TrackerError):
    """Any other non-2xx status, or a transport failure, from a foundational call."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NoSourceConfiguredError(TrackerError):
    """No service is enabled for a commit query."""

    def __init__(self, message: str = "Please configure GitHub or DevOps settings"):
        super().__init__(message)


class InvalidDateError(TrackerError):
    """A date string could not be parsed as dd.mm.yyyy."""


def describe_error(exc: BaseException) -> str:
    """Return the single human-readable message a UI should show in place of results."""
    if isinstance(exc, TrackerError):
        return str(exc)
    return f"Unexpected error: {exc}"


__all__ = [
    "TrackerError",
    "ConfigurationError",
    "AuthError",
    "NotFoundError",
    "ServiceError",
    "NoSourceConfiguredError",
    "InvalidDateError",
    "describe_error",
]
