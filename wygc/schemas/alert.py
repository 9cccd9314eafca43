"""Alert request and response schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from wygc.models.alert import AlertSnapshot, AlertState, DeliveryStatus


class AlertCreate(BaseModel):
    """Inbound alert signal. The payload is opaque to the dispatcher."""

    payload: dict[str, Any] = Field(default_factory=dict)


class AttemptResponse(BaseModel):
    """One delivery attempt in an alert's log."""

    model_config = ConfigDict(from_attributes=True)

    channel: str
    sequence: int
    started_at: datetime
    outcome: DeliveryStatus
    reason: str | None
    elapsed_seconds: float
    acted_upon: bool


class AlertResponse(BaseModel):
    """Single alert with its attempt log."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    state: AlertState
    payload: dict[str, Any]
    created_at: datetime
    notified_at: datetime | None
    acknowledged_at: datetime | None
    finished_at: datetime | None
    stop_reason: str | None
    attempts: list[AttemptResponse]

    @classmethod
    def from_snapshot(cls, snapshot: AlertSnapshot) -> "AlertResponse":
        return cls(
            id=snapshot.id,
            state=snapshot.state,
            payload=dict(snapshot.payload),
            created_at=snapshot.created_at,
            notified_at=snapshot.notified_at,
            acknowledged_at=snapshot.acknowledged_at,
            finished_at=snapshot.finished_at,
            stop_reason=snapshot.stop_reason,
            attempts=[
                AttemptResponse.model_validate(attempt) for attempt in snapshot.attempts
            ],
        )


class AlertAcknowledgeResponse(BaseModel):
    """Response after acknowledging an alert."""

    id: uuid.UUID
    state: AlertState
    acknowledged_at: datetime | None


class AlertListResponse(BaseModel):
    """Response for listing tracked alerts."""

    alerts: list[AlertResponse]
    count: int
