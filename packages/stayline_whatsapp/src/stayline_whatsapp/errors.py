"""
Stayline Errors

Failure taxonomy for the inbound pipeline. Each class maps to a handling
policy in the orchestrator:

- AuthenticationFailure: rejected at the HTTP boundary, nothing processed
- MessageValidationError: isolated to one message, batch continues
- LookupFailure: affected message skipped, provider still acknowledged
- ExternalServiceFailure: message flagged for manual review with a reason
- PersistenceFailure: message aborted, siblings unaffected
"""

from typing import Any


class StaylineError(Exception):
    """Base error for the messaging pipeline."""

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class AuthenticationFailure(StaylineError):
    """Bad or missing webhook signature or verify token."""


class MessageValidationError(StaylineError):
    """A single provider message could not be normalized."""


class LookupFailure(StaylineError):
    """Account, conversation or property could not be resolved."""


class ExternalServiceFailure(StaylineError):
    """The drafter or the outbound transport failed."""


class DraftingError(ExternalServiceFailure):
    """Reply drafting failed or timed out."""


class PersistenceFailure(StaylineError):
    """A storage operation failed."""
