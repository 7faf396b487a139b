# Version History
# v1.0 - Single-recipient delivery: sign, encrypt, send once with a timeout, classify.

from __future__ import annotations

import asyncio
import logging
import re
from http import HTTPStatus
from urllib.parse import urlsplit

import encryption
import vapid
from errors import BadRequest, PayloadTooLarge, PushError
from models import ContentEncoding, PushPayload, Subscription, Urgency
from outcomes import DeliveryOutcome, OutcomeKind
from transport import (
    PushRequest,
    Transport,
    TransportFailure,
    TransportResponse,
    TransportTimeout,
)

logger = logging.getLogger(__name__)

MAX_TTL = 2**32 - 1
TOPIC_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,32}$")

_STATUS_OUTCOMES = {
    HTTPStatus.UNAUTHORIZED: OutcomeKind.UNAUTHORIZED,
    HTTPStatus.FORBIDDEN: OutcomeKind.UNAUTHORIZED,
    HTTPStatus.NOT_FOUND: OutcomeKind.NOT_FOUND,
    HTTPStatus.GONE: OutcomeKind.EXPIRED,
    HTTPStatus.REQUEST_ENTITY_TOO_LARGE: OutcomeKind.TOO_LARGE,
}


def _host(endpoint: str) -> str:
    try:
        return urlsplit(endpoint).hostname or "?"
    except (TypeError, ValueError, AttributeError):
        return "?"


def _check_payload(payload: PushPayload) -> None:
    if not 0 <= payload.ttl <= MAX_TTL:
        raise BadRequest(f"TTL out of range: {payload.ttl}", "invalid_ttl")
    if payload.topic is not None and not TOPIC_PATTERN.match(payload.topic):
        raise BadRequest("Topic must be 1-32 base64url characters", "invalid_topic")
    if payload.urgency is not None:
        try:
            Urgency(payload.urgency)
        except ValueError as exc:
            raise BadRequest(f"Unknown urgency: {payload.urgency!r}") from exc


def build_request(
    identity: vapid.VapidIdentity,
    subscription: Subscription,
    payload: PushPayload,
    encoding: ContentEncoding = ContentEncoding.AES128GCM,
) -> PushRequest:
    _check_payload(payload)
    # Audience is bound to this endpoint's origin; never shared across subscribers.
    assertion = vapid.sign(identity, subscription.endpoint)
    message = encryption.encrypt(subscription, payload, encoding)

    headers = {"TTL": str(payload.ttl), "Content-Type": "application/octet-stream"}
    headers.update(message.headers())
    headers["Authorization"] = assertion.authorization(encoding)
    if encoding is ContentEncoding.AESGCM:
        crypto_key = headers["Crypto-Key"]
        headers["Crypto-Key"] = f"{crypto_key};p256ecdsa={assertion.public_key}"
    if payload.urgency is not None:
        headers["Urgency"] = Urgency(payload.urgency).value
    if payload.topic is not None:
        headers["Topic"] = payload.topic

    return PushRequest(
        endpoint=subscription.endpoint, headers=headers, body=message.ciphertext
    )


def classify(response: TransportResponse) -> DeliveryOutcome:
    status = response.status_code
    if 200 <= status < 300:
        return DeliveryOutcome.delivered()
    if status in _STATUS_OUTCOMES:
        return DeliveryOutcome(_STATUS_OUTCOMES[status])
    if status == HTTPStatus.BAD_REQUEST:
        return DeliveryOutcome.rejected("bad_request")
    if 500 <= status < 600:
        return DeliveryOutcome.transport_error("server_error")
    return DeliveryOutcome.transport_error("other")


def outcome_for_error(exc: PushError) -> DeliveryOutcome:
    if isinstance(exc, PayloadTooLarge):
        return DeliveryOutcome(OutcomeKind.TOO_LARGE)
    return DeliveryOutcome.rejected(exc.label)


async def deliver(
    identity: vapid.VapidIdentity,
    transport: Transport,
    subscription: Subscription,
    payload: PushPayload,
    timeout: float,
    encoding: ContentEncoding = ContentEncoding.AES128GCM,
) -> DeliveryOutcome:
    """Deliver one message with a single attempt. Never raises for recipient failures."""
    host = _host(subscription.endpoint)
    try:
        request = build_request(identity, subscription, payload, encoding)
    except PushError as exc:
        logger.info("Push not sent host=%s reason=%s: %s", host, exc.label, exc)
        return outcome_for_error(exc)
    except Exception:
        logger.exception("Unexpected error building push request host=%s", host)
        return DeliveryOutcome.transport_error("other")

    try:
        response = await asyncio.wait_for(transport.send(request), timeout)
    except (asyncio.TimeoutError, TransportTimeout):
        logger.info("Push timed out host=%s after %.1fs", host, timeout)
        return DeliveryOutcome(OutcomeKind.TIMEOUT)
    except TransportFailure as exc:
        logger.info(
            "Push transport failure host=%s reason=%s: %s", host, exc.label, exc
        )
        return DeliveryOutcome.transport_error(exc.label)
    except Exception:
        logger.exception("Unexpected transport error host=%s", host)
        return DeliveryOutcome.transport_error("other")

    outcome = classify(response)
    if outcome.ok:
        logger.debug("Push delivered host=%s status=%s", host, response.status_code)
    else:
        logger.info(
            "Push rejected host=%s status=%s outcome=%s",
            host,
            response.status_code,
            outcome.label,
        )
    return outcome
