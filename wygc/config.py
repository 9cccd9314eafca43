"""Application configuration using Pydantic Settings.

All values come from ``WYGC_*`` environment variables (or a ``.env`` file).
Channel credentials are optional at this layer; whether a channel is
enabled is resolved once, at startup, by the channel registry.
"""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TWILIO_BASEURL = "https://studio.twilio.com/v2/Flows/"
DEFAULT_OPSGENIE_BASEURL = "https://api.opsgenie.com/v2/"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WYGC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Listener
    bind_address: str = "0.0.0.0"
    bind_port: int = 2368

    # Logging
    log_format: str = "json"  # 'json' or 'text'
    log_level: str = "INFO"
    service_name: str = "who-you-gonna-call"

    # Twilio Studio voice call
    twilio_token: SecretStr | None = None
    twilio_baseurl: str = DEFAULT_TWILIO_BASEURL
    twilio_workflow: str | None = None
    twilio_from_number: str | None = None
    twilio_default_numbers: list[str] = []
    twilio_tier: int = 0
    twilio_max_retries: int = 2

    # Opsgenie incident system (also used for on-call lookups)
    opsgenie_token: SecretStr | None = None
    opsgenie_baseurl: str = DEFAULT_OPSGENIE_BASEURL
    opsgenie_tier: int = 1
    opsgenie_max_retries: int = 2

    # Slack webhook, only active when the webhook url is set
    slack_baseurl: str | None = None
    slack_token: SecretStr | None = None
    slack_tier: int = 1
    slack_max_retries: int = 1

    # Retry timing shared by all channels
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 120.0
    attempt_timeout_seconds: float = 10.0

    # In-memory retention of finished alerts
    retention_seconds: int = 3600  # acknowledged / exhausted
    notified_retention_seconds: int = 86400  # notified, awaiting acknowledgment
    eviction_enabled: bool = True
    eviction_interval_seconds: int = 60

    # Testing
    testing: bool = False  # Set to True during tests to disable the scheduler


settings = Settings()
