# Domain models
from wygc.models.alert import (
    Alert,
    AlertSnapshot,
    AlertState,
    Attempt,
    DeliveryStatus,
    Outcome,
)
from wygc.models.channel import Channel

__all__ = [
    "Alert",
    "AlertSnapshot",
    "AlertState",
    "Attempt",
    "Channel",
    "DeliveryStatus",
    "Outcome",
]
