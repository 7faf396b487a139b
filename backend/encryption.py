# Version History
# v1.0 - Per-message Web Push payload encryption (RFC 8291 aes128gcm, legacy aesgcm).

from __future__ import annotations

import binascii
import os
from dataclasses import dataclass

import http_ece
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from errors import InvalidSubscription, PayloadTooLarge
from models import (
    ContentEncoding,
    PushPayload,
    Subscription,
    b64url_decode,
    b64url_encode,
)

# Push services accept at most 4096 bytes of encrypted body.
MAX_MESSAGE_SIZE = 4096
RECORD_SIZE = 4096
AUTH_SECRET_SIZE = 16
SALT_SIZE = 16
TAG_SIZE = 16

_UNCOMPRESSED_POINT_SIZE = 65
# salt(16) + rs(4) + idlen(1) + keyid(65)
_AES128GCM_HEADER_SIZE = SALT_SIZE + 4 + 1 + _UNCOMPRESSED_POINT_SIZE


@dataclass(frozen=True)
class EncryptedMessage:
    ciphertext: bytes
    encoding: ContentEncoding
    salt: bytes
    sender_key: bytes
    record_size: int = RECORD_SIZE

    def headers(self) -> dict[str, str]:
        """Headers the push service needs to relay a decryptable message."""
        if self.encoding is ContentEncoding.AES128GCM:
            return {"Content-Encoding": "aes128gcm"}
        return {
            "Content-Encoding": "aesgcm",
            "Encryption": f"salt={b64url_encode(self.salt)}",
            "Crypto-Key": f"dh={b64url_encode(self.sender_key)}",
        }


def encrypted_size(length: int, encoding: ContentEncoding) -> int:
    """Body size of a single-record message carrying `length` plaintext bytes."""
    if encoding is ContentEncoding.AES128GCM:
        # one delimiter byte of padding
        return _AES128GCM_HEADER_SIZE + length + 1 + TAG_SIZE
    # two-byte padding length prefix
    return length + 2 + TAG_SIZE


def _decode_key(value: bytes | str, name: str) -> bytes:
    if isinstance(value, bytes):
        return value
    try:
        return b64url_decode(value)
    except (binascii.Error, ValueError) as exc:
        raise InvalidSubscription(f"{name} is not base64url encoded") from exc


def validate_subscription(subscription: Subscription) -> tuple[bytes, bytes]:
    """Decode and check the subscriber keys, returning raw `(p256dh, auth)`."""
    if not subscription.p256dh or not subscription.auth:
        raise InvalidSubscription(
            "Subscription is missing p256dh or auth", "missing_crypto_keys"
        )

    p256dh = _decode_key(subscription.p256dh, "p256dh")
    auth = _decode_key(subscription.auth, "auth")

    if len(auth) != AUTH_SECRET_SIZE:
        raise InvalidSubscription(
            f"auth secret must be {AUTH_SECRET_SIZE} bytes, got {len(auth)}"
        )

    if len(p256dh) != _UNCOMPRESSED_POINT_SIZE or p256dh[0] != 0x04:
        raise InvalidSubscription("p256dh is not an uncompressed P-256 point")

    try:
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), p256dh)
    except ValueError as exc:
        raise InvalidSubscription("p256dh is not a point on P-256") from exc
    return p256dh, auth


def encrypt(
    subscription: Subscription,
    payload: PushPayload,
    encoding: ContentEncoding = ContentEncoding.AES128GCM,
) -> EncryptedMessage:
    p256dh, auth = validate_subscription(subscription)

    size = encrypted_size(len(payload.body), encoding)
    if size > MAX_MESSAGE_SIZE:
        raise PayloadTooLarge(
            f"Encrypted payload would be {size} bytes (limit {MAX_MESSAGE_SIZE})"
        )

    # Fresh ephemeral key and salt for every message, never reused.
    server_key = ec.generate_private_key(ec.SECP256R1())
    sender_key = server_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    salt = os.urandom(SALT_SIZE)

    try:
        ciphertext = http_ece.encrypt(
            payload.body,
            salt=salt,
            private_key=server_key,
            dh=p256dh,
            auth_secret=auth,
            rs=RECORD_SIZE,
            version=encoding.value,
        )
    except http_ece.ECEException as exc:
        raise InvalidSubscription(f"Encryption failed: {exc}") from exc

    if len(ciphertext) > MAX_MESSAGE_SIZE:
        raise PayloadTooLarge(
            f"Encrypted payload is {len(ciphertext)} bytes (limit {MAX_MESSAGE_SIZE})"
        )

    return EncryptedMessage(
        ciphertext=ciphertext,
        encoding=encoding,
        salt=salt,
        sender_key=sender_key,
    )
