"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from wygc.dispatcher import get_engine
from wygc.schemas.system import Health, HealthResponse, StatusResponse
from wygc.services.escalation_engine import EscalationEngine

router = APIRouter(tags=["Health"])


def _health(engine: EscalationEngine) -> tuple[bool, HealthResponse]:
    channels = [channel.name for channel in engine.registry.enabled_channels()]
    healthy = bool(channels)
    return healthy, HealthResponse(
        status="healthy" if healthy else "degraded",
        channels=channels,
        configuration_errors=[str(e) for e in engine.registry.configuration_errors],
        alerts=engine.stats(),
    )


@router.get("/health", response_model=None)
async def health_check(engine: EscalationEngine = Depends(get_engine)) -> Response:
    """
    Health check endpoint with channel status.

    Returns 200 when at least one notification channel is enabled,
    503 with status "degraded" when alerts could not reach anyone.
    """
    healthy, body = _health(engine)
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """
    Kubernetes liveness probe.

    Returns success if the application process is running.
    """
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe(engine: EscalationEngine = Depends(get_engine)) -> Response:
    """Kubernetes readiness probe: ready once a channel is available."""
    healthy, _ = _health(engine)
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if healthy else "not_ready"},
    )


@router.get("/status", response_model=StatusResponse)
async def service_status(
    response: Response,
    engine: EscalationEngine = Depends(get_engine),
) -> StatusResponse:
    """Plain status: sick (503) while no notification channel is enabled."""
    healthy, _ = _health(engine)
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return StatusResponse(health=Health.SICK)
    return StatusResponse(health=Health.HEALTHY)
