"""Notification channel model.

Channels are configured once at process start and never mutated.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Channel:
    """A configured notification destination.

    Channels sharing a tier are attempted concurrently; tiers are attempted
    in ascending order.
    """

    name: str
    tier: int
    max_retries: int = 2
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 120.0
    timeout_seconds: float = 10.0
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0 for channel {self.name}")
        if self.backoff_base_seconds < 0:
            raise ValueError(
                f"backoff_base_seconds must be >= 0 for channel {self.name}"
            )
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError(
                f"backoff_max_seconds must be >= backoff_base_seconds "
                f"for channel {self.name}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0 for channel {self.name}")
