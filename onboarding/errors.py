"""
Error taxonomy for the login handshake and the event bridge.

Handshake errors are recovered by the HTTP layer (redirect to the start page with a
flash message). Bridge errors never reach the client as application errors; they
only end the relay loop.
"""

from __future__ import annotations

from typing import Optional


class OnboardingError(Exception):
    """Base class for all onboarding errors."""


class NoSession(OnboardingError):
    """Request arrived without a bound, valid user."""


class StateMismatch(OnboardingError):
    """OAuth callback `state` did not match the stored CSRF nonce."""

    def __init__(self, message: str, *, expected: str = "", got: str = ""):
        self.expected = expected
        self.got = got
        super().__init__(message)


class TokenExchangeFailed(OnboardingError):
    """Provider or network failure while trading the code for a token."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class TransportClosed(OnboardingError):
    """The client connection went away (inbound or outbound side)."""


class PreconditionViolation(OnboardingError):
    """Caller contract broken: no connection, or unauthenticated bridge start."""
