"""Opsgenie integration.

Two uses of the Opsgenie REST API:
  - Incident channel: file an Opsgenie alert for an escalating alert
  - On-call lookup: resolve who is on call for a schedule and their phone numbers
"""

import asyncio
from dataclasses import dataclass, field

import httpx
from pydantic import SecretStr

from wygc.logging_config import get_logger
from wygc.models.alert import AlertSnapshot, Outcome
from wygc.services.channel_adapter import ChannelAdapter, post_and_classify

logger = get_logger(__name__)

CHANNEL_NAME = "opsgenie"

# Opsgenie caps alert messages at 130 characters
MAX_MESSAGE_LENGTH = 130


class OpsgenieError(Exception):
    """Error obtaining information from Opsgenie."""


class OpsgenieRequestError(OpsgenieError):
    """An Opsgenie API call failed."""


class NoOnCallPersonError(OpsgenieError):
    """Nobody is currently on call for the schedule."""


class NoPhoneNumberError(OpsgenieError):
    """The on-call user has no voice contact configured."""

    def __init__(self, username: str):
        super().__init__(f"User [{username}] has no phone number configured!")
        self.username = username


@dataclass(frozen=True)
class ScheduleRef:
    """An Opsgenie schedule, identified by id or by name."""

    identifier: str
    identifier_type: str = "name"  # 'name' or 'id'


@dataclass
class UserPhoneNumbers:
    name: str
    phone: list[str] = field(default_factory=list)


@dataclass
class OnCallInfo:
    """Who to ring for a schedule.

    ``username``/``phone_number`` is the first on-call user and their first
    voice number; ``full_information`` lists every on-call user.
    """

    username: str
    phone_number: str
    full_information: list[UserPhoneNumbers]

    @property
    def all_numbers(self) -> list[str]:
        return [number for person in self.full_information for number in person.phone]


def format_phone_number(number: str) -> str:
    """Convert an Opsgenie contact ("49-1701234567") to E.164 ("+491701234567")."""
    return "+" + number.replace("-", "").lstrip("+")


def alert_message(alert: AlertSnapshot) -> str:
    """Short human-readable message for an alert."""
    payload = alert.payload
    message = (
        payload.get("message")
        or payload.get("summary")
        or payload.get("title")
        or f"Alert {alert.id}"
    )
    return str(message)[:MAX_MESSAGE_LENGTH]


class OpsgenieClient:
    """Thin async client for the Opsgenie v2 API."""

    def __init__(
        self,
        base_url: str,
        token: SecretStr,
        client: httpx.AsyncClient | None = None,
    ):
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"GenieKey {self._token.get_secret_value()}",
            "Accept": "application/json",
        }

    async def _get_json(self, path: str, params: dict[str, str]) -> dict:
        try:
            response = await self._client.get(
                self.base_url + path, params=params, headers=self.headers
            )
        except httpx.HTTPError as exc:
            raise OpsgenieRequestError(f"Request to Opsgenie failed: {exc}") from exc

        if response.is_error:
            raise OpsgenieRequestError(
                f"http response {response.status_code} for {response.url} "
                f"with response body {response.text.strip()!r}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise OpsgenieRequestError("failed to parse json response") from exc

    async def get_oncall_recipients(self, schedule: ScheduleRef) -> list[str]:
        """Get the usernames currently on call for a schedule."""
        data = await self._get_json(
            f"schedules/{schedule.identifier}/on-calls",
            params={
                "flat": "true",
                "scheduleIdentifierType": schedule.identifier_type,
            },
        )
        return list(data.get("data", {}).get("onCallRecipients", []))

    async def get_phone_numbers(self, username: str) -> list[str]:
        """Get the enabled voice contact numbers of a user."""
        data = await self._get_json(f"users/{username}", params={"expand": "contact"})
        contacts = data.get("data", {}).get("userContacts", [])
        return [
            format_phone_number(contact["to"])
            for contact in contacts
            if contact.get("contactMethod") == "voice"
            and contact.get("enabled", True)
            and contact.get("to")
        ]

    async def get_oncall_number(self, schedule: ScheduleRef) -> OnCallInfo:
        """Resolve the on-call people of a schedule to phone numbers.

        Raises:
            NoOnCallPersonError: If nobody is on call.
            NoPhoneNumberError: If the first on-call person has no number.
            OpsgenieRequestError: If any API call fails.
        """
        recipients = await self.get_oncall_recipients(schedule)
        if not recipients:
            raise NoOnCallPersonError("Opsgenie says no one is currently on call!")

        numbers = await asyncio.gather(
            *(self.get_phone_numbers(user) for user in recipients)
        )
        full_information = [
            UserPhoneNumbers(name=user, phone=phone)
            for user, phone in zip(recipients, numbers)
        ]
        logger.debug(
            "Resolved on-call recipients",
            schedule=schedule.identifier,
            recipients=recipients,
        )

        first = full_information[0]
        if not first.phone:
            raise NoPhoneNumberError(first.name)

        return OnCallInfo(
            username=first.name,
            phone_number=first.phone[0],
            full_information=full_information,
        )

    async def create_alert(self, alert: AlertSnapshot) -> Outcome:
        """File an Opsgenie alert; the alert id is used as alias for dedup."""
        body = {
            "message": alert_message(alert),
            "alias": str(alert.id),
            "description": str(alert.payload.get("description", "")),
            "details": {k: str(v) for k, v in alert.payload.items()},
            "source": "who-you-gonna-call",
        }
        return await post_and_classify(
            self._client, self.base_url + "alerts", json=body, headers=self.headers
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class OpsgenieChannel(ChannelAdapter):
    """Incident-system channel: files an Opsgenie alert."""

    name = CHANNEL_NAME

    def __init__(self, client: OpsgenieClient):
        self.client = client

    async def deliver(self, alert: AlertSnapshot) -> Outcome:
        outcome = await self.client.create_alert(alert)
        logger.debug(
            "Opsgenie alert request finished",
            alert_id=str(alert.id),
            status=outcome.status.value,
        )
        return outcome

    async def aclose(self) -> None:
        await self.client.aclose()
