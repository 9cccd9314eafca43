"""Channel registry.

The ordered, immutable set of enabled notification channels and their
adapters. Built once from settings at startup and shared by reference.

A channel whose settings are entirely absent is silently left out. A channel
that is partly configured (e.g. a Slack webhook url without a token) is a
configuration error for that channel only; the remaining channels stay usable.
"""

from collections.abc import Iterable, Sequence
from itertools import groupby
from types import MappingProxyType

import httpx
from pydantic import SecretStr

from wygc.config import Settings
from wygc.logging_config import get_logger
from wygc.models.channel import Channel
from wygc.services.channel_adapter import ChannelAdapter
from wygc.services.opsgenie_channel import OpsgenieChannel, OpsgenieClient
from wygc.services.slack_channel import SlackChannel
from wygc.services.twilio_channel import TwilioVoiceChannel

logger = get_logger(__name__)


class ConfigurationError(Exception):
    """A channel is configured but a required setting is missing or invalid."""

    def __init__(self, channel: str, setting: str, message: str | None = None):
        self.channel = channel
        self.setting = setting
        super().__init__(
            message or f"missing mandatory configuration [{setting}] for {channel}"
        )


class UnknownChannelError(KeyError):
    """No adapter is registered for the requested channel."""


class ChannelRegistry:
    """Tier-ordered channels with their adapters."""

    def __init__(
        self,
        entries: Iterable[tuple[Channel, ChannelAdapter]] = (),
        configuration_errors: Sequence[ConfigurationError] = (),
    ):
        entries = list(entries)
        names = [channel.name for channel, _ in entries]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate channel names: {names}")

        # sorted() is stable, so configuration order is kept within a tier
        ordered = sorted(
            (channel for channel, _ in entries if channel.enabled),
            key=lambda c: c.tier,
        )
        self._channels: tuple[Channel, ...] = tuple(ordered)
        self._adapters = MappingProxyType(
            {channel.name: adapter for channel, adapter in entries}
        )
        self.configuration_errors: tuple[ConfigurationError, ...] = tuple(
            configuration_errors
        )

    def enabled_channels(self) -> tuple[Channel, ...]:
        """Enabled channels, by tier ascending, configuration order within a tier."""
        return self._channels

    def tiers(self) -> tuple[tuple[Channel, ...], ...]:
        """Enabled channels grouped by tier, highest priority first."""
        return tuple(
            tuple(group) for _, group in groupby(self._channels, key=lambda c: c.tier)
        )

    def adapter_for(self, channel: Channel | str) -> ChannelAdapter:
        name = channel if isinstance(channel, str) else channel.name
        try:
            return self._adapters[name]
        except KeyError:
            raise UnknownChannelError(name) from None

    def __len__(self) -> int:
        return len(self._channels)

    async def aclose(self) -> None:
        """Close every adapter's HTTP resources."""
        for adapter in self._adapters.values():
            await adapter.aclose()


def _validate_url(channel: str, setting: str, url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigurationError(
            channel, setting, f"baseurl parse error for service [{channel}]: {exc}"
        ) from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigurationError(
            channel, setting, f"baseurl parse error for service [{channel}]: {url}"
        )
    return url


def _require(channel: str, setting: str, value: str | SecretStr | None):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(channel, f"WYGC_{setting.upper()}")
    if isinstance(value, SecretStr) and not value.get_secret_value():
        raise ConfigurationError(channel, f"WYGC_{setting.upper()}")
    return value


def _channel(settings: Settings, name: str, tier: int, max_retries: int) -> Channel:
    return Channel(
        name=name,
        tier=tier,
        max_retries=max_retries,
        backoff_base_seconds=settings.backoff_base_seconds,
        backoff_max_seconds=settings.backoff_max_seconds,
        timeout_seconds=settings.attempt_timeout_seconds,
    )


def _build_opsgenie(settings: Settings) -> OpsgenieClient | None:
    if settings.opsgenie_token is None:
        return None
    token = _require("opsgenie", "opsgenie_token", settings.opsgenie_token)
    base_url = _validate_url(
        "opsgenie", "WYGC_OPSGENIE_BASEURL", settings.opsgenie_baseurl
    )
    return OpsgenieClient(base_url=base_url, token=token)


def _build_twilio(
    settings: Settings, opsgenie: OpsgenieClient | None
) -> TwilioVoiceChannel | None:
    if settings.twilio_token is None and settings.twilio_workflow is None:
        return None
    token = _require("twilio", "twilio_token", settings.twilio_token)
    workflow = _require("twilio", "twilio_workflow", settings.twilio_workflow)
    base_url = _validate_url("twilio", "WYGC_TWILIO_BASEURL", settings.twilio_baseurl)
    return TwilioVoiceChannel(
        base_url=base_url,
        token=token,
        workflow_id=workflow,
        from_number=settings.twilio_from_number,
        default_numbers=settings.twilio_default_numbers,
        opsgenie=opsgenie,
    )


def _build_slack(settings: Settings) -> SlackChannel | None:
    if not settings.slack_baseurl:
        logger.warning(
            "[WYGC_SLACK_BASEURL] not set, Slack notifications will be disabled!"
        )
        return None
    url = _validate_url("slack", "WYGC_SLACK_BASEURL", settings.slack_baseurl)
    token = _require("slack", "slack_token", settings.slack_token)
    return SlackChannel(url=url, token=token)


def build_opsgenie_client(settings: Settings) -> OpsgenieClient | None:
    """Build a standalone Opsgenie client for on-call lookups.

    Returns None when Opsgenie is not (correctly) configured.
    """
    try:
        return _build_opsgenie(settings)
    except ConfigurationError:
        return None


def build_registry(settings: Settings) -> ChannelRegistry:
    """Resolve channel enablement from settings, once.

    Args:
        settings: Application settings.

    Returns:
        A registry with every correctly configured channel. Configuration
        errors are logged and kept on ``registry.configuration_errors``.
    """
    entries: list[tuple[Channel, ChannelAdapter]] = []
    errors: list[ConfigurationError] = []

    opsgenie: OpsgenieClient | None = None
    try:
        opsgenie = _build_opsgenie(settings)
    except ConfigurationError as exc:
        errors.append(exc)
    if opsgenie is not None:
        entries.append(
            (
                _channel(
                    settings,
                    OpsgenieChannel.name,
                    settings.opsgenie_tier,
                    settings.opsgenie_max_retries,
                ),
                OpsgenieChannel(opsgenie),
            )
        )

    builders = (
        (
            TwilioVoiceChannel.name,
            settings.twilio_tier,
            settings.twilio_max_retries,
            lambda: _build_twilio(settings, opsgenie),
        ),
        (
            SlackChannel.name,
            settings.slack_tier,
            settings.slack_max_retries,
            lambda: _build_slack(settings),
        ),
    )
    for name, tier, max_retries, build in builders:
        try:
            adapter = build()
        except ConfigurationError as exc:
            errors.append(exc)
            continue
        if adapter is not None:
            entries.append((_channel(settings, name, tier, max_retries), adapter))

    # Configuration order: voice call, incident system, chat webhook
    order = {TwilioVoiceChannel.name: 0, OpsgenieChannel.name: 1, SlackChannel.name: 2}
    entries.sort(key=lambda entry: order.get(entry[0].name, len(order)))

    for error in errors:
        logger.error(
            "Channel configuration error, channel disabled",
            channel=error.channel,
            setting=error.setting,
            error=str(error),
        )

    registry = ChannelRegistry(entries, errors)
    logger.info(
        "Channel registry built",
        channels=[f"{c.name}@tier{c.tier}" for c in registry.enabled_channels()],
        configuration_errors=len(errors),
    )
    return registry
