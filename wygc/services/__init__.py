# Escalation services
from wygc.services.channel_adapter import (
    ChannelAdapter,
    DeliveryFailure,
    PermanentDeliveryFailure,
    TransientDeliveryFailure,
    classify_status,
)
from wygc.services.channel_registry import (
    ChannelRegistry,
    ConfigurationError,
    UnknownChannelError,
    build_registry,
)
from wygc.services.escalation_engine import (
    AlertNotFoundError,
    EscalationEngine,
    EscalationExhausted,
)
from wygc.services.escalation_policy import (
    AdvanceToNextChannel,
    AdvanceToNextTier,
    EscalationState,
    RetrySameChannel,
    Stop,
    backoff_delay,
    next_action,
)

__all__ = [
    "AdvanceToNextChannel",
    "AdvanceToNextTier",
    "AlertNotFoundError",
    "ChannelAdapter",
    "ChannelRegistry",
    "ConfigurationError",
    "DeliveryFailure",
    "EscalationEngine",
    "EscalationExhausted",
    "EscalationState",
    "PermanentDeliveryFailure",
    "RetrySameChannel",
    "Stop",
    "TransientDeliveryFailure",
    "UnknownChannelError",
    "backoff_delay",
    "build_registry",
    "classify_status",
    "next_action",
]
