"""Escalation policy.

Pure decision logic: given where an alert's escalation stands and the
outcome of the last attempt on one channel, decide what happens next.
Acknowledgments never reach the policy; the engine handles them directly.
"""

from dataclasses import dataclass

from wygc.models.alert import Outcome
from wygc.models.channel import Channel

STOP_DELIVERED = "delivered"
STOP_EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class EscalationState:
    """Escalation position of one channel lane within an alert.

    Attributes:
        channel: Channel the last attempt was made on.
        attempts: Attempts made on this channel so far (including the last).
        tier_index: Index of the current tier (0 = highest priority).
        tier_count: Number of tiers with enabled channels.
        active_siblings: Other lanes in the same tier still in progress.
        tier_delivered: Whether another channel of this tier already delivered.
    """

    channel: Channel
    attempts: int
    tier_index: int
    tier_count: int
    active_siblings: int = 0
    tier_delivered: bool = False

    @property
    def retries_left(self) -> int:
        return max(0, self.channel.max_retries - (self.attempts - 1))

    @property
    def has_next_tier(self) -> bool:
        return self.tier_index + 1 < self.tier_count


@dataclass(frozen=True)
class RetrySameChannel:
    after: float


@dataclass(frozen=True)
class AdvanceToNextChannel:
    pass


@dataclass(frozen=True)
class AdvanceToNextTier:
    pass


@dataclass(frozen=True)
class Stop:
    reason: str


Action = RetrySameChannel | AdvanceToNextChannel | AdvanceToNextTier | Stop


def backoff_delay(channel: Channel, attempts: int) -> float:
    """Delay before the next retry after ``attempts`` attempts.

    Doubles per attempt starting at the channel's base delay, capped at
    the channel's maximum.
    """
    exponent = max(0, attempts - 1)
    # Cap the exponent so huge retry budgets cannot overflow the float
    delay = channel.backoff_base_seconds * (2 ** min(exponent, 32))
    return min(delay, channel.backoff_max_seconds)


def next_action(state: EscalationState, outcome: Outcome) -> Action:
    """Decide the next escalation step for a channel lane.

    Args:
        state: Current escalation state of the lane.
        outcome: Outcome of the attempt that just completed.

    Returns:
        The action the engine should take.
    """
    if outcome.is_delivered:
        return Stop(STOP_DELIVERED)

    if outcome.is_transient and state.retries_left > 0 and not state.tier_delivered:
        return RetrySameChannel(after=backoff_delay(state.channel, state.attempts))

    if state.active_siblings > 0:
        return AdvanceToNextChannel()

    if state.tier_delivered:
        return Stop(STOP_DELIVERED)

    if state.has_next_tier:
        return AdvanceToNextTier()

    return Stop(STOP_EXHAUSTED)
