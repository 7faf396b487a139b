# Version History
# v1.0 - Web Push send helper with automatic cleanup of expired subscriptions.
# v2.0 - Async fan-out over an injected transport with a per-endpoint outcome report.

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from dispatcher import deliver
from models import ContentEncoding, PushPayload, Subscription
from outcomes import BatchReport
from transport import Transport
from vapid import VapidIdentity

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 50


async def dispatch_batch(
    identity: VapidIdentity,
    transport: Transport,
    subscriptions: Sequence[Subscription],
    payload: PushPayload,
    timeout: float,
    *,
    encoding: ContentEncoding = ContentEncoding.AES128GCM,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> BatchReport:
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    report = BatchReport()
    if not subscriptions:
        return report

    semaphore = asyncio.Semaphore(concurrency)

    async def _deliver_one(subscription: Subscription):
        async with semaphore:
            return await deliver(
                identity, transport, subscription, payload, timeout, encoding
            )

    outcomes = await asyncio.gather(*(_deliver_one(item) for item in subscriptions))

    # Recorded in request order, so a duplicated endpoint keeps its last outcome.
    for subscription, outcome in zip(subscriptions, outcomes):
        report.record(subscription.endpoint, outcome)

    logger.info(
        "Push batch done total=%d ok=%d errors=%d",
        len(subscriptions),
        report.ok_count,
        report.error_count,
    )
    return report
