"""Shared fixtures: keys, subscriptions and a stub push transport."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "backend"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import pytest  # noqa: E402
from cryptography.hazmat.primitives import serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402

from models import Subscription  # noqa: E402
from transport import PushRequest, TransportResponse  # noqa: E402
from vapid import VapidIdentity  # noqa: E402


class StubTransport:
    """Records every request; per-endpoint status codes and delays."""

    def __init__(
        self,
        status_code: int = 201,
        statuses=None,
        delays=None,
        default_delay: float = 0.0,
    ) -> None:
        self.status_code = status_code
        self.statuses = statuses or {}
        self.delays = delays or {}
        self.default_delay = default_delay
        self.requests: list[PushRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, request: PushRequest) -> TransportResponse:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.endpoint, self.default_delay))
        finally:
            self.in_flight -= 1
        status_code = self.statuses.get(request.endpoint, self.status_code)
        return TransportResponse(status_code=status_code)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def signing_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def identity(signing_key) -> VapidIdentity:
    return VapidIdentity(
        subject="mailto:ops@example.com",
        signing_key=signing_key,
        public_key=signing_key.public_key(),
    )


@pytest.fixture
def pem_key(signing_key) -> str:
    return signing_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def make_subscription():
    def _make(endpoint: str = "https://fcm.googleapis.com/fcm/send/abc"):
        receiver = ec.generate_private_key(ec.SECP256R1())
        p256dh = receiver.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint,
        )
        return Subscription(endpoint=endpoint, p256dh=p256dh, auth=os.urandom(16)), receiver

    return _make


@pytest.fixture
def stub_transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def transport_factory():
    return StubTransport
