# Version History
# v1.0 - Value types shared by the signer, encryptor, dispatcher and batch coordinator.

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum


class Urgency(str, Enum):
    VERY_LOW = "very-low"
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ContentEncoding(str, Enum):
    AES128GCM = "aes128gcm"
    AESGCM = "aesgcm"


def b64url_decode(value: str | bytes) -> bytes:
    if isinstance(value, str):
        value = value.encode("ascii")
    value = value.strip().rstrip(b"=")
    return base64.urlsafe_b64decode(value + b"=" * (-len(value) % 4))


def b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class Subscription:
    """One recipient. Keys are raw bytes or base64url text, decoded when encrypting."""

    endpoint: str
    p256dh: bytes | str
    auth: bytes | str

    @classmethod
    def from_info(cls, info: dict) -> "Subscription":
        """Build from the browser's PushSubscription JSON shape."""
        keys = info.get("keys") or {}
        return cls(
            endpoint=info["endpoint"],
            p256dh=keys.get("p256dh", ""),
            auth=keys.get("auth", ""),
        )


@dataclass(frozen=True)
class PushPayload:
    body: bytes
    ttl: int
    urgency: Urgency | None = None
    topic: str | None = None
