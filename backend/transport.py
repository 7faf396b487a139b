# Version History
# v1.0 - Outbound push request shape, transport contract and the httpx-backed sender.

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Protocol

import httpx


@dataclass(frozen=True)
class PushRequest:
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    reason: str = ""


class TransportFailure(Exception):
    """Network, TLS or protocol failure with no HTTP status to classify."""

    def __init__(self, message: str, label: str = "io_error") -> None:
        super().__init__(message)
        self.label = label


class TransportTimeout(TransportFailure):
    def __init__(self, message: str) -> None:
        super().__init__(message, "timeout_error")


class Transport(Protocol):
    async def send(self, request: PushRequest) -> TransportResponse:
        """Issue one POST to the push service and return its status."""


def _caused_by_tls(exc: BaseException | None) -> bool:
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, ssl.SSLError):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


class HttpxTransport:
    """Sends push requests over one shared `httpx.AsyncClient` connection pool.

    The client has no timeout of its own: the per-recipient deadline is applied by
    the caller around `send`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_connections: int = 100,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=None,
            limits=httpx.Limits(max_connections=max_connections),
        )

    async def send(self, request: PushRequest) -> TransportResponse:
        try:
            response = await self._client.post(
                request.endpoint, headers=request.headers, content=request.body
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeout(str(exc) or "push service timed out") from exc
        except httpx.RemoteProtocolError as exc:
            raise TransportFailure(str(exc), "invalid_response") from exc
        except httpx.HTTPError as exc:
            label = "tls_error" if _caused_by_tls(exc) else "io_error"
            raise TransportFailure(str(exc), label) from exc

        return TransportResponse(
            status_code=response.status_code, reason=response.reason_phrase
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
