"""Alert, attempt and delivery outcome models.

An Alert is owned by the escalation engine for its whole lifetime. Callers
outside the engine only ever see an ``AlertSnapshot``.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Mapping


class AlertState(str, enum.Enum):
    """Lifecycle state of an alert."""

    RECEIVED = "received"
    ESCALATING = "escalating"
    NOTIFIED = "notified"
    ACKNOWLEDGED = "acknowledged"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertState.ACKNOWLEDGED, AlertState.EXHAUSTED)

    @property
    def escalation_stopped(self) -> bool:
        """True once no further attempts will be issued for the alert."""
        return self in (
            AlertState.NOTIFIED,
            AlertState.ACKNOWLEDGED,
            AlertState.EXHAUSTED,
        )


class DeliveryStatus(str, enum.Enum):
    """Outcome category of a single delivery attempt."""

    DELIVERED = "delivered"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"
    TIMEOUT = "timeout"

    @property
    def is_transient(self) -> bool:
        return self in (DeliveryStatus.TRANSIENT_FAILURE, DeliveryStatus.TIMEOUT)


TIMEOUT_REASON = "timeout"


@dataclass(frozen=True)
class Outcome:
    """Result of ``ChannelAdapter.deliver``."""

    status: DeliveryStatus
    reason: str | None = None

    @classmethod
    def delivered(cls, detail: str | None = None) -> "Outcome":
        return cls(DeliveryStatus.DELIVERED, detail)

    @classmethod
    def transient(cls, reason: str) -> "Outcome":
        return cls(DeliveryStatus.TRANSIENT_FAILURE, reason)

    @classmethod
    def permanent(cls, reason: str) -> "Outcome":
        return cls(DeliveryStatus.PERMANENT_FAILURE, reason)

    @classmethod
    def timeout(cls) -> "Outcome":
        return cls(DeliveryStatus.TIMEOUT, TIMEOUT_REASON)

    @property
    def is_delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @property
    def is_transient(self) -> bool:
        return self.status.is_transient


@dataclass(frozen=True)
class Attempt:
    """One invocation of a channel adapter for an alert.

    ``acted_upon`` is False when the result arrived after the alert had
    already been acknowledged (or its tier had already delivered) and was
    only recorded for audit.
    """

    channel: str
    sequence: int
    started_at: datetime
    outcome: DeliveryStatus
    reason: str | None
    elapsed_seconds: float
    acted_upon: bool = True


@dataclass(frozen=True)
class AlertSnapshot:
    """Immutable, point-in-time view of an alert."""

    id: uuid.UUID
    payload: Mapping[str, Any]
    created_at: datetime
    state: AlertState
    attempts: tuple[Attempt, ...]
    notified_at: datetime | None
    acknowledged_at: datetime | None
    finished_at: datetime | None
    stop_reason: str | None


@dataclass
class Alert:
    """Mutable alert record. Only the escalation engine touches it."""

    payload: dict[str, Any]
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: AlertState = AlertState.RECEIVED
    attempts: list[Attempt] = field(default_factory=list)
    notified_at: datetime | None = None
    acknowledged_at: datetime | None = None
    finished_at: datetime | None = None
    stop_reason: str | None = None

    def snapshot(self) -> AlertSnapshot:
        return AlertSnapshot(
            id=self.id,
            payload=MappingProxyType(dict(self.payload)),
            created_at=self.created_at,
            state=self.state,
            attempts=tuple(self.attempts),
            notified_at=self.notified_at,
            acknowledged_at=self.acknowledged_at,
            finished_at=self.finished_at,
            stop_reason=self.stop_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<Alert(id={self.id}, state={self.state.value}, "
            f"attempts={len(self.attempts)})>"
        )
