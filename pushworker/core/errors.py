from __future__ import annotations


class PushWorkerError(Exception):
    """Base error for the push delivery worker."""


class AuthError(PushWorkerError):
    """Gateway access token could not be obtained."""


class ProviderConfigError(AuthError):
    """Missing or invalid push gateway configuration."""


class StoreError(PushWorkerError):
    """Read or write against the delivery store failed."""


class NoTokensError(PushWorkerError):
    """Recipient has no enabled device tokens."""


class GatewayError(PushWorkerError):
    """Push gateway answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None, token_unregistered: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.token_unregistered = token_unregistered


class TransportError(PushWorkerError):
    """Network failure while talking to the push gateway."""
