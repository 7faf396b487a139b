# Version History
# v1.0 - Initial FastAPI backend with subscriptions, check-ins, and scheduler wiring.
# v2.0 - Push fan-out gateway: one POST delivers a payload to many subscriptions.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import BaseModel, Field

from log import setup_logging
from models import ContentEncoding, PushPayload, Subscription, Urgency
from push import DEFAULT_CONCURRENCY, dispatch_batch
from transport import HttpxTransport, Transport
from vapid import load_identity

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    vapid_subject: str
    vapid_private_key_file: str
    vapid_private_key: str
    bind_address: str
    port: int
    timeout_seconds: float
    max_concurrency: int
    content_encoding: ContentEncoding
    log_level: str


def get_settings() -> Settings:
    key_file = os.getenv("VAPID_PRIVATE_KEY_FILE", "")
    private = os.getenv("VAPID_PRIVATE_KEY", "")
    subject = os.getenv("VAPID_SUBJECT", "mailto:admin@example.com")

    if not key_file and not private:
        raise RuntimeError("VAPID_PRIVATE_KEY_FILE or VAPID_PRIVATE_KEY must be set.")

    try:
        port = int(os.getenv("PUSH_PORT", "9054"))
        timeout = float(os.getenv("PUSH_TIMEOUT_SECONDS", "15"))
        concurrency = int(os.getenv("PUSH_MAX_CONCURRENCY", str(DEFAULT_CONCURRENCY)))
        encoding = ContentEncoding(
            os.getenv("PUSH_CONTENT_ENCODING", "aes128gcm").lower()
        )
    except ValueError as exc:
        raise RuntimeError(f"Invalid push gateway setting: {exc}") from exc

    if timeout <= 0 or concurrency < 1:
        raise RuntimeError(
            "PUSH_TIMEOUT_SECONDS must be positive and PUSH_MAX_CONCURRENCY at least 1."
        )

    return Settings(
        vapid_subject=subject,
        vapid_private_key_file=key_file,
        vapid_private_key=private,
        bind_address=os.getenv("PUSH_BIND_ADDRESS", "127.0.0.1"),
        port=port,
        timeout_seconds=timeout,
        max_concurrency=concurrency,
        content_encoding=encoding,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class SubscriptionPayload(BaseModel):
    endpoint: str
    keys: SubscriptionKeys


class PushBatchRequest(BaseModel):
    subs: list[SubscriptionPayload]
    payload: str
    ttl: int = Field(..., ge=0, le=2**32 - 1)
    urgency: Urgency | None = None
    topic: str | None = None


def create_app(
    settings: Settings | None = None,
    transport: Transport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    # ConfigError here is fatal: nothing is served without a usable identity.
    identity = load_identity(
        settings.vapid_subject,
        pem_path=settings.vapid_private_key_file or None,
        private_key=settings.vapid_private_key or None,
    )
    logger.info(
        "VAPID identity loaded subject=%s public_key=%s...",
        identity.subject,
        identity.application_server_key[:16],
    )

    app = FastAPI(title="push-gateway")
    app.state.transport = transport

    @app.on_event("startup")
    async def on_startup() -> None:
        if app.state.transport is None:
            app.state.transport = HttpxTransport(
                max_connections=settings.max_concurrency
            )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if isinstance(app.state.transport, HttpxTransport):
            await app.state.transport.aclose()

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    @app.get("/vapid-public-key")
    def vapid_public_key() -> dict:
        return {"publicKey": identity.application_server_key}

    @app.post("/")
    async def push(request: PushBatchRequest) -> dict:
        # Keys stay undecoded here so one bad subscription only fails itself.
        subscriptions = [
            Subscription.from_info(item.model_dump()) for item in request.subs
        ]
        payload = PushPayload(
            body=request.payload.encode("utf-8"),
            ttl=request.ttl,
            urgency=request.urgency,
            topic=request.topic,
        )
        report = await dispatch_batch(
            identity,
            app.state.transport,
            subscriptions,
            payload,
            settings.timeout_seconds,
            encoding=settings.content_encoding,
            concurrency=settings.max_concurrency,
        )
        return report.as_dict()

    return app


def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(
        app, host=settings.bind_address, port=settings.port, log_config=None
    )


if __name__ == "__main__":
    run()
