"""On-call router.

Opsgenie on-call lookup and the schedule-based alert trigger.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from wygc.dispatcher import get_engine, get_opsgenie_client
from wygc.logging_config import get_logger
from wygc.schemas.alert import AlertResponse
from wygc.schemas.oncall import OnCallResponse
from wygc.services.escalation_engine import EscalationEngine, EscalationExhausted
from wygc.services.opsgenie_channel import (
    NoOnCallPersonError,
    NoPhoneNumberError,
    OpsgenieClient,
    OpsgenieError,
    ScheduleRef,
)

logger = get_logger(__name__)

router = APIRouter(tags=["oncall"])


@router.get("/oncallnumber", response_model=OnCallResponse)
async def get_person_on_call(
    name: str | None = None,
    id: str | None = None,
    opsgenie: OpsgenieClient | None = Depends(get_opsgenie_client),
) -> OnCallResponse:
    """Look up who is on call for a schedule, by schedule name or id."""
    if id:
        schedule = ScheduleRef(identifier=id, identifier_type="id")
    elif name:
        schedule = ScheduleRef(identifier=name, identifier_type="name")
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Either 'name' or 'id' of the schedule is required",
        )

    if opsgenie is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Opsgenie is not configured",
        )

    logger.info("Got request for schedule", schedule=schedule.identifier)
    try:
        info = await opsgenie.get_oncall_number(schedule)
    except (NoOnCallPersonError, NoPhoneNumberError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except OpsgenieError as exc:
        logger.warning("Error while processing request", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Error when obtaining information from Opsgenie",
        ) from exc

    return OnCallResponse.from_info(info)


@router.get("/alert", response_model=AlertResponse)
async def alert_on_call(
    schedule: str,
    twilio_workflow: str | None = Query(default=None, alias="twilioWorkflow"),
    wait: bool = False,
    timeout: float = Query(default=60.0, gt=0, le=600),
    engine: EscalationEngine = Depends(get_engine),
) -> AlertResponse:
    """Alert whoever is on call for a schedule.

    With ``wait=true`` the response is sent once escalation has stopped,
    and a 502 is returned if every channel failed.
    """
    payload = {"schedule": schedule, "message": f"Alert for on-call schedule {schedule}"}
    if twilio_workflow:
        payload["twilio_workflow"] = twilio_workflow

    logger.info("Got alert request", schedule=schedule)
    snapshot = await engine.submit(payload)
    if not wait:
        return AlertResponse.from_snapshot(snapshot)

    try:
        snapshot = await engine.wait_for_outcome(
            snapshot.id, timeout=timeout, raise_on_exhausted=True
        )
    except TimeoutError:
        snapshot = engine.get(snapshot.id)
    except EscalationExhausted as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": str(exc),
                "alert": AlertResponse.from_snapshot(exc.alert).model_dump(mode="json"),
            },
        ) from exc

    return AlertResponse.from_snapshot(snapshot)
