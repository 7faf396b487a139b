# Version History
# v1.0 - Error taxonomy for per-recipient push failures and fatal startup configuration.

from __future__ import annotations


class ConfigError(Exception):
    """VAPID key material or subject is unusable. Fatal at startup."""


class PushError(Exception):
    """Recipient-scoped failure raised before any network I/O."""

    label = "other"

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        if label is not None:
            self.label = label


class InvalidSubscription(PushError):
    label = "invalid_crypto_keys"


class PayloadTooLarge(PushError):
    label = "payload_too_large"


class BadRequest(PushError):
    label = "bad_request"
