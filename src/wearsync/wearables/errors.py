"""Error taxonomy for the wearable integration flows and sync engine.

Every error carries a client-safe ``message`` (never a token or secret), a
stable ``code`` and the HTTP status the JSON endpoints answer with.  The
callback endpoint turns the same message into ``?error=`` on its redirect.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for consistent API error responses."""

    CONFIGURATION = "CONFIGURATION_ERROR"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    PARTIAL_SYNC = "PARTIAL_SYNC"
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    INVALID_CALLBACK = "INVALID_CALLBACK"
    CONNECTION_NOT_FOUND = "CONNECTION_NOT_FOUND"


class WearableError(Exception):
    """Base exception for the wearable integration layer.

    Attributes:
        message:     Human-readable, client-safe error message.
        code:        Error code from ErrorCode.
        status_code: HTTP status code for JSON responses.
    """

    code: ErrorCode = ErrorCode.PROVIDER_REJECTED
    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class ConfigurationError(WearableError):
    """Provider credentials are missing.  Fatal, not retryable."""

    code = ErrorCode.CONFIGURATION


class SessionExpiredError(WearableError):
    """The temp token is missing, expired or already consumed."""

    code = ErrorCode.SESSION_EXPIRED

    def __init__(self, message: str = "Authorization session expired. Please try connecting again.") -> None:
        super().__init__(message)


class ProviderRejectedError(WearableError):
    """A provider token or data endpoint answered non-2xx (or was unreachable)."""

    code = ErrorCode.PROVIDER_REJECTED

    def __init__(self, provider: str, message: str, status: int | None = None) -> None:
        self.provider = provider
        self.status = status
        super().__init__(message)


class ProfileNotFoundError(WearableError):
    """No internal client profile exists for the authenticated user."""

    code = ErrorCode.PROFILE_NOT_FOUND

    def __init__(self, message: str = "Client profile not found") -> None:
        super().__init__(message)


class PartialSyncError(WearableError):
    """One provider endpoint failed during a sync; the rest still persist."""

    code = ErrorCode.PARTIAL_SYNC

    def __init__(self, provider: str, endpoint: str, message: str) -> None:
        self.provider = provider
        self.endpoint = endpoint
        super().__init__(message)


class UnsupportedProviderError(WearableError):
    code = ErrorCode.UNSUPPORTED_PROVIDER


class InvalidCallbackError(WearableError):
    code = ErrorCode.INVALID_CALLBACK

    def __init__(self, message: str = "Invalid callback parameters") -> None:
        super().__init__(message)


class ConnectionNotFoundError(WearableError):
    code = ErrorCode.CONNECTION_NOT_FOUND

    def __init__(self, message: str = "Connection not found or inactive") -> None:
        super().__init__(message)
