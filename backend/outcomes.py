# Version History
# v1.0 - Delivery outcome taxonomy and the per-batch report keyed by endpoint.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OutcomeKind(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    TOO_LARGE = "too_large"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


_LABELS = {
    OutcomeKind.DELIVERED: "ok",
    OutcomeKind.EXPIRED: "endpoint_not_valid",
    OutcomeKind.NOT_FOUND: "endpoint_not_found",
    OutcomeKind.TOO_LARGE: "payload_too_large",
    OutcomeKind.UNAUTHORIZED: "unauthorized",
    OutcomeKind.TIMEOUT: "timeout_error",
}


@dataclass(frozen=True)
class DeliveryOutcome:
    kind: OutcomeKind
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.DELIVERED

    @property
    def label(self) -> str:
        """Short description reported back to the caller for this endpoint."""
        if self.reason:
            return self.reason
        return _LABELS.get(self.kind, "other")

    @classmethod
    def delivered(cls) -> "DeliveryOutcome":
        return cls(OutcomeKind.DELIVERED)

    @classmethod
    def rejected(cls, reason: str) -> "DeliveryOutcome":
        return cls(OutcomeKind.REJECTED, reason)

    @classmethod
    def transport_error(cls, detail: str) -> "DeliveryOutcome":
        return cls(OutcomeKind.TRANSPORT_ERROR, detail)


@dataclass
class BatchReport:
    results: dict[str, DeliveryOutcome] = field(default_factory=dict)
    ok_count: int = 0
    error_count: int = 0

    def record(self, endpoint: str, outcome: DeliveryOutcome) -> None:
        # Duplicate endpoints: last write wins, counts follow the surviving entry.
        previous = self.results.get(endpoint)
        if previous is not None:
            if previous.ok:
                self.ok_count -= 1
            else:
                self.error_count -= 1

        self.results[endpoint] = outcome
        if outcome.ok:
            self.ok_count += 1
        else:
            self.error_count += 1

    def as_dict(self) -> dict[str, str]:
        return {endpoint: outcome.label for endpoint, outcome in self.results.items()}

    def __len__(self) -> int:
        return len(self.results)
