"""Health and status schemas."""

import enum

from pydantic import BaseModel


class Health(str, enum.Enum):
    HEALTHY = "healthy"
    SICK = "sick"


class StatusResponse(BaseModel):
    health: Health


class HealthResponse(BaseModel):
    """Detailed health of the dispatcher."""

    status: str
    channels: list[str]
    configuration_errors: list[str]
    alerts: dict[str, int]
