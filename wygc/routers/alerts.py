"""Alerts router.

Receives alerts, exposes their escalation state and accepts acknowledgments.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from wygc.dispatcher import get_engine
from wygc.models.alert import AlertState
from wygc.schemas.alert import (
    AlertAcknowledgeResponse,
    AlertCreate,
    AlertListResponse,
    AlertResponse,
)
from wygc.services.escalation_engine import AlertNotFoundError, EscalationEngine

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Alert not found",
    )


@router.post(
    "",
    response_model=AlertResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_alert(
    body: AlertCreate,
    engine: EscalationEngine = Depends(get_engine),
) -> AlertResponse:
    """Receive an alert and start escalating it.

    Returns immediately; poll the alert to follow the escalation.
    """
    snapshot = await engine.submit(body.payload)
    return AlertResponse.from_snapshot(snapshot)


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    state: AlertState | None = None,
    engine: EscalationEngine = Depends(get_engine),
) -> AlertListResponse:
    """List tracked alerts, optionally filtered by state."""
    alerts = [AlertResponse.from_snapshot(s) for s in engine.list_alerts(state)]
    return AlertListResponse(alerts=alerts, count=len(alerts))


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: uuid.UUID,
    engine: EscalationEngine = Depends(get_engine),
) -> AlertResponse:
    """Get an alert's current state and attempt log."""
    try:
        snapshot = engine.get(alert_id)
    except AlertNotFoundError:
        raise _not_found() from None
    return AlertResponse.from_snapshot(snapshot)


@router.patch(
    "/{alert_id}/acknowledge",
    response_model=AlertAcknowledgeResponse,
)
async def acknowledge(
    alert_id: uuid.UUID,
    engine: EscalationEngine = Depends(get_engine),
) -> AlertAcknowledgeResponse:
    """Acknowledge an alert by ID.

    Stops any further escalation. Acknowledging an alert that is already
    acknowledged or exhausted returns its existing state.
    """
    try:
        state = await engine.acknowledge(alert_id)
        snapshot = engine.get(alert_id)
    except AlertNotFoundError:
        raise _not_found() from None

    return AlertAcknowledgeResponse(
        id=snapshot.id,
        state=state,
        acknowledged_at=snapshot.acknowledged_at,
    )
