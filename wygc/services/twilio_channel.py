"""Voice-call channel via Twilio Studio.

Rings every number to alert by triggering one Studio Flow execution per
phone number, concurrently. Numbers come from the alert payload
(``phone_numbers``), from the Opsgenie on-call schedule named in the payload
(``schedule``), or from the configured default numbers, in that order.
"""

import asyncio
import enum
from dataclasses import dataclass, field

import httpx
from pydantic import SecretStr

from wygc.logging_config import get_logger
from wygc.models.alert import AlertSnapshot, DeliveryStatus, Outcome
from wygc.services.channel_adapter import (
    ChannelAdapter,
    PermanentDeliveryFailure,
    classify_http_error,
    classify_status,
)
from wygc.services.opsgenie_channel import OpsgenieClient, OpsgenieError, ScheduleRef

logger = get_logger(__name__)

CHANNEL_NAME = "twilio"

# Execution status Twilio reports for a flow that started ringing
ACTIVE_EXECUTION_STATUS = "active"


class OverallResult(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


class DialStatus(str, enum.Enum):
    """Per-number result.

    SUCCESS when Twilio answers 2xx with status "active", FAILURE for any
    error response, UNKNOWN for 2xx without an "active" status.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


@dataclass
class DialNumberResult:
    number: str
    status: DialStatus
    outcome: Outcome
    detail: str | None = None


@dataclass
class AlertResult:
    overall_result: OverallResult = OverallResult.FAILURE
    detailed_result: list[DialNumberResult] = field(default_factory=list)

    def update_overall_result(self) -> None:
        statuses = {r.status for r in self.detailed_result}
        succeeded = DialStatus.SUCCESS in statuses
        others = bool(statuses - {DialStatus.SUCCESS})

        if succeeded and others:
            self.overall_result = OverallResult.PARTIAL_SUCCESS
        elif succeeded:
            self.overall_result = OverallResult.SUCCESS
        else:
            self.overall_result = OverallResult.FAILURE

    def summary(self) -> str:
        """E.g. "partial_success: +491701 success, +491702 failure"."""
        numbers = ", ".join(f"{r.number} {r.status.value}" for r in self.detailed_result)
        return f"{self.overall_result.value}: {numbers}"

    def to_outcome(self) -> Outcome:
        """Collapse per-number results into a single channel outcome.

        Any successful dial counts as delivered, with the per-number statuses
        as detail. Otherwise the failure is permanent only if every number
        failed permanently.
        """
        if self.overall_result != OverallResult.FAILURE:
            return Outcome.delivered(self.summary())

        if not self.detailed_result:
            return Outcome.permanent("no phone numbers to call")

        reasons = "; ".join(
            f"{r.number}: {r.outcome.reason or r.status.value}"
            for r in self.detailed_result
        )
        if all(
            r.outcome.status == DeliveryStatus.PERMANENT_FAILURE
            for r in self.detailed_result
        ):
            return Outcome.permanent(reasons)
        if all(r.outcome.status == DeliveryStatus.TIMEOUT for r in self.detailed_result):
            return Outcome.timeout()
        return Outcome.transient(reasons)


def _payload_numbers(value: object) -> list[str]:
    """A single number or a list of numbers, as given in the alert payload."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list | tuple) and all(
        isinstance(number, str) and number for number in value
    ):
        return list(value)
    raise PermanentDeliveryFailure("invalid phone_numbers")


class TwilioVoiceChannel(ChannelAdapter):
    """Triggers a Twilio Studio Flow execution for every number to ring."""

    name = CHANNEL_NAME

    def __init__(
        self,
        base_url: str,
        token: SecretStr,
        workflow_id: str,
        from_number: str | None = None,
        default_numbers: list[str] | None = None,
        opsgenie: OpsgenieClient | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self.workflow_id = workflow_id
        self.from_number = from_number
        self.default_numbers = list(default_numbers or [])
        self.opsgenie = opsgenie
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=10.0)

    def execution_url(self, workflow_id: str | None = None) -> str:
        return f"{self.base_url}{workflow_id or self.workflow_id}/Executions"

    async def resolve_numbers(self, alert: AlertSnapshot) -> list[str]:
        """Determine which phone numbers to ring for an alert.

        Raises:
            OpsgenieError: If the on-call lookup fails.
            PermanentDeliveryFailure: If ``phone_numbers`` is malformed.
        """
        numbers = alert.payload.get("phone_numbers")
        if numbers:
            return _payload_numbers(numbers)

        schedule = alert.payload.get("schedule")
        if schedule and self.opsgenie is not None:
            on_call = await self.opsgenie.get_oncall_number(
                ScheduleRef(identifier=str(schedule))
            )
            return on_call.all_numbers

        return list(self.default_numbers)

    async def dial(self, number: str, url: str) -> DialNumberResult:
        params = {"To": number}
        if self.from_number:
            params["From"] = self.from_number

        try:
            response = await self._client.post(
                url,
                data=params,
                headers={"Authorization": self._token.get_secret_value()},
            )
        except httpx.HTTPError as exc:
            outcome = classify_http_error(exc)
            return DialNumberResult(number, DialStatus.FAILURE, outcome, str(exc))

        outcome = classify_status(response.status_code, response.text)
        if not outcome.is_delivered:
            return DialNumberResult(number, DialStatus.FAILURE, outcome)

        try:
            status = response.json().get("status")
        except ValueError:
            status = None

        if status == ACTIVE_EXECUTION_STATUS:
            return DialNumberResult(number, DialStatus.SUCCESS, outcome)
        return DialNumberResult(
            number,
            DialStatus.UNKNOWN,
            Outcome.transient(f"unexpected execution status {status!r}"),
            detail=status,
        )

    async def alert(self, numbers: list[str], workflow_id: str | None = None) -> AlertResult:
        """Ring all numbers in parallel and aggregate the results."""
        url = self.execution_url(workflow_id)
        logger.info(
            "These numbers will be alerted via Twilio",
            numbers=numbers,
            url=url,
        )
        results = await asyncio.gather(*(self.dial(number, url) for number in numbers))

        response = AlertResult(detailed_result=list(results))
        response.update_overall_result()
        return response

    async def deliver(self, alert: AlertSnapshot) -> Outcome:
        try:
            numbers = await self.resolve_numbers(alert)
        except OpsgenieError as exc:
            logger.warning(
                "On-call lookup failed, cannot place voice call",
                alert_id=str(alert.id),
                error=str(exc),
            )
            return Outcome.transient(f"on-call lookup failed: {exc}")
        except PermanentDeliveryFailure as exc:
            return Outcome.permanent(exc.reason)

        if not numbers:
            return Outcome.permanent("no phone numbers to call")

        workflow = alert.payload.get("twilio_workflow")
        result = await self.alert(numbers, str(workflow) if workflow else None)
        logger.info(
            "Twilio dial results",
            alert_id=str(alert.id),
            overall_result=result.overall_result.value,
            detailed_result=[
                {"number": r.number, "status": r.status.value}
                for r in result.detailed_result
            ],
        )
        return result.to_outcome()

    async def aclose(self) -> None:
        await self._client.aclose()
