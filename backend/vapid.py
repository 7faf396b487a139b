# Version History
# v1.0 - VAPID identity loading and per-endpoint ES256 assertions (RFC 8292).

from __future__ import annotations

import binascii
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from errors import BadRequest, ConfigError
from models import ContentEncoding, b64url_decode, b64url_encode

# Push services reject anything past 24h; stay well inside it to absorb clock skew.
ASSERTION_LIFETIME_SECONDS = 12 * 60 * 60


@dataclass(frozen=True)
class VapidIdentity:
    subject: str
    signing_key: ec.EllipticCurvePrivateKey
    public_key: ec.EllipticCurvePublicKey

    @property
    def public_key_raw(self) -> bytes:
        return self.public_key.public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint,
        )

    @property
    def application_server_key(self) -> str:
        """Base64url public key, as handed to `pushManager.subscribe()`."""
        return b64url_encode(self.public_key_raw)


@dataclass(frozen=True)
class VapidAssertion:
    audience: str
    expiry: int
    subject: str
    token: str
    public_key: str

    def authorization(self, encoding: ContentEncoding) -> str:
        if encoding is ContentEncoding.AESGCM:
            return f"WebPush {self.token}"
        return f"vapid t={self.token}, k={self.public_key}"


def _parse_private_key(data: bytes) -> ec.EllipticCurvePrivateKey:
    data = data.strip()
    try:
        if data.startswith(b"-----BEGIN"):
            key = serialization.load_pem_private_key(data, password=None)
        else:
            raw = b64url_decode(data)
            if len(raw) == 32:
                key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
            else:
                key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm) as exc:
        raise ConfigError(f"Unreadable VAPID private key: {exc}") from exc

    on_p256 = isinstance(key, ec.EllipticCurvePrivateKey) and isinstance(
        key.curve, ec.SECP256R1
    )
    if not on_p256:
        raise ConfigError("VAPID private key must be an EC key on P-256.")
    return key


def load_identity(
    subject: str,
    pem_path: str | Path | None = None,
    private_key: str | bytes | None = None,
) -> VapidIdentity:
    if not subject.startswith(("mailto:", "https:")):
        raise ConfigError("VAPID subject must be a mailto: or https: URI.")

    if pem_path:
        try:
            data = Path(pem_path).read_bytes()
        except OSError as exc:
            raise ConfigError(f"Cannot read VAPID key file {pem_path}: {exc}") from exc
    elif private_key:
        data = private_key
        if isinstance(data, str):
            data = data.encode("utf-8")
    else:
        raise ConfigError("No VAPID private key configured.")

    key = _parse_private_key(data)
    return VapidIdentity(subject=subject, signing_key=key, public_key=key.public_key())


def audience_for(endpoint: str) -> str:
    """Origin of the push service: scheme, host and explicit port, never the path."""
    try:
        parts = urlsplit(endpoint)
        port = parts.port
    except ValueError as exc:
        raise BadRequest(
            f"Malformed endpoint URL: {endpoint!r}", "invalid_uri"
        ) from exc

    scheme = parts.scheme.lower()
    host = parts.hostname
    if scheme not in ("http", "https") or not host:
        raise BadRequest(
            f"Endpoint is not an absolute http(s) URL: {endpoint!r}", "invalid_uri"
        )

    if ":" in host:
        host = f"[{host}]"
    if port is not None:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def sign(
    identity: VapidIdentity,
    endpoint: str,
    now: float | None = None,
) -> VapidAssertion:
    audience = audience_for(endpoint)
    issued = int(time.time() if now is None else now)
    claims = {
        "aud": audience,
        "exp": issued + ASSERTION_LIFETIME_SECONDS,
        "sub": identity.subject,
    }
    token = jwt.encode(
        claims, identity.signing_key, algorithm="ES256", headers={"typ": "JWT"}
    )

    return VapidAssertion(
        audience=audience,
        expiry=claims["exp"],
        subject=identity.subject,
        token=token,
        public_key=identity.application_server_key,
    )
