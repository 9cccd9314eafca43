"""Channel adapter contract and provider response classification.

Every notification provider is wrapped in a ``ChannelAdapter`` whose only
operation is ``deliver(alert) -> Outcome``. Deliveries have external side
effects (a phone rings, an incident is filed, a chat message posts) and are
not idempotent: retrying after a transient failure may duplicate them.
"""

from abc import ABC, abstractmethod

import httpx

from wygc.models.alert import AlertSnapshot, Outcome

# 4xx codes that mean "try again later" rather than "this will never work"
RETRYABLE_CLIENT_ERRORS = frozenset({408, 429})


class DeliveryFailure(Exception):
    """Base class for errors an adapter may raise instead of returning an Outcome."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TransientDeliveryFailure(DeliveryFailure):
    """Network error, 5xx or timeout. Retried per policy."""


class PermanentDeliveryFailure(DeliveryFailure):
    """Bad request or auth failure. Never retried on the same channel."""


class ChannelAdapter(ABC):
    """Uniform wrapper around a single notification provider."""

    name: str

    @abstractmethod
    async def deliver(self, alert: AlertSnapshot) -> Outcome:
        """Attempt to deliver a notification for an alert.

        The caller imposes the timeout; implementations should not retry
        internally.
        """

    async def aclose(self) -> None:
        """Release provider resources (HTTP clients)."""


def classify_status(status_code: int, detail: str | None = None) -> Outcome:
    """Map a provider HTTP status code to an Outcome.

    Args:
        status_code: HTTP response status.
        detail: Optional response text to include in the failure reason.

    Returns:
        Delivered for 2xx, PermanentFailure for 4xx (except 408/429),
        TransientFailure for everything else.
    """
    if 200 <= status_code < 300:
        return Outcome.delivered()

    reason = f"http {status_code}"
    if detail:
        reason = f"{reason}: {detail.strip()[:200]}"

    if 400 <= status_code < 500 and status_code not in RETRYABLE_CLIENT_ERRORS:
        return Outcome.permanent(reason)
    return Outcome.transient(reason)


def classify_http_error(exc: httpx.HTTPError) -> Outcome:
    """Map an httpx transport error to an Outcome."""
    if isinstance(exc, httpx.TimeoutException):
        return Outcome.timeout()
    return Outcome.transient(f"{type(exc).__name__}: {exc}")


async def post_and_classify(
    client: httpx.AsyncClient,
    url: str,
    **kwargs,
) -> Outcome:
    """POST to a provider and classify the result.

    Transport errors are converted, never raised.
    """
    try:
        response = await client.post(url, **kwargs)
    except httpx.HTTPError as exc:
        return classify_http_error(exc)
    return classify_status(response.status_code, response.text)
