"""Chat webhook channel via Slack."""

import httpx
from pydantic import SecretStr

from wygc.logging_config import get_logger
from wygc.models.alert import AlertSnapshot, Outcome
from wygc.services.channel_adapter import ChannelAdapter, post_and_classify

logger = get_logger(__name__)

CHANNEL_NAME = "slack"


def format_slack_message(alert: AlertSnapshot) -> str:
    """Format an alert as Slack mrkdwn text."""
    payload = alert.payload
    headline = payload.get("message") or payload.get("summary") or "Alert received"

    lines = [f":rotating_light: *{headline}*", f"Alert ID: `{alert.id}`"]
    details = {
        k: v for k, v in payload.items() if k not in ("message", "summary")
    }
    for key, value in details.items():
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)


class SlackChannel(ChannelAdapter):
    """Posts the alert to a Slack webhook."""

    name = CHANNEL_NAME

    def __init__(
        self,
        url: str,
        token: SecretStr,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def deliver(self, alert: AlertSnapshot) -> Outcome:
        outcome = await post_and_classify(
            self._client,
            self.url,
            json={"text": format_slack_message(alert)},
            headers={"Authorization": f"Bearer {self._token.get_secret_value()}"},
        )
        logger.debug(
            "Slack webhook request finished",
            alert_id=str(alert.id),
            status=outcome.status.value,
        )
        return outcome

    async def aclose(self) -> None:
        await self._client.aclose()
