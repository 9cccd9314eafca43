"""Tests for the escalation policy decisions and backoff."""

import pytest

from wygc.models.alert import Outcome
from wygc.models.channel import Channel
from wygc.services.escalation_policy import (
    STOP_DELIVERED,
    STOP_EXHAUSTED,
    AdvanceToNextChannel,
    AdvanceToNextTier,
    EscalationState,
    RetrySameChannel,
    Stop,
    backoff_delay,
    next_action,
)

CHANNEL = Channel(
    name="twilio",
    tier=0,
    max_retries=2,
    backoff_base_seconds=5.0,
    backoff_max_seconds=30.0,
)


def make_state(attempts: int = 1, **kwargs) -> EscalationState:
    defaults = {"channel": CHANNEL, "attempts": attempts, "tier_index": 0, "tier_count": 2}
    defaults.update(kwargs)
    return EscalationState(**defaults)


class TestBackoffDelay:
    """Tests for exponential backoff."""

    def test_first_retry_uses_base_delay(self):
        assert backoff_delay(CHANNEL, 1) == 5.0

    def test_doubles_per_attempt(self):
        assert backoff_delay(CHANNEL, 2) == 10.0
        assert backoff_delay(CHANNEL, 3) == 20.0

    def test_capped_at_channel_maximum(self):
        assert backoff_delay(CHANNEL, 4) == 30.0
        assert backoff_delay(CHANNEL, 10_000) == 30.0

    def test_non_decreasing(self):
        delays = [backoff_delay(CHANNEL, n) for n in range(1, 50)]
        assert delays == sorted(delays)
        assert all(d <= CHANNEL.backoff_max_seconds for d in delays)


class TestRetriesLeft:
    def test_first_attempt_has_full_budget(self):
        assert make_state(attempts=1).retries_left == 2

    def test_budget_exhausted_after_max_retries(self):
        assert make_state(attempts=3).retries_left == 0

    def test_never_negative(self):
        assert make_state(attempts=10).retries_left == 0


class TestNextAction:
    """Tests for next_action decisions."""

    def test_delivered_stops(self):
        assert next_action(make_state(), Outcome.delivered()) == Stop(STOP_DELIVERED)

    def test_transient_failure_retries_with_backoff(self):
        action = next_action(make_state(attempts=2), Outcome.transient("http 503"))
        assert action == RetrySameChannel(after=10.0)

    def test_timeout_is_retried(self):
        action = next_action(make_state(), Outcome.timeout())
        assert isinstance(action, RetrySameChannel)

    def test_permanent_failure_never_retried(self):
        action = next_action(make_state(), Outcome.permanent("http 401"))
        assert action == AdvanceToNextTier()

    def test_retries_exhausted_advances_tier(self):
        action = next_action(make_state(attempts=3), Outcome.transient("http 503"))
        assert action == AdvanceToNextTier()

    def test_siblings_still_running_gives_up_channel(self):
        action = next_action(
            make_state(attempts=3, active_siblings=1), Outcome.permanent("http 400")
        )
        assert action == AdvanceToNextChannel()

    def test_no_retry_once_tier_delivered(self):
        action = next_action(
            make_state(tier_delivered=True), Outcome.transient("http 503")
        )
        assert action == Stop(STOP_DELIVERED)

    def test_last_tier_exhausted(self):
        action = next_action(
            make_state(attempts=3, tier_index=1, tier_count=2),
            Outcome.transient("http 503"),
        )
        assert action == Stop(STOP_EXHAUSTED)

    @pytest.mark.parametrize(
        "outcome",
        [Outcome.transient("x"), Outcome.permanent("x"), Outcome.timeout()],
    )
    def test_zero_retry_channel_never_retries(self, outcome):
        channel = Channel(name="slack", tier=0, max_retries=0)
        state = EscalationState(channel=channel, attempts=1, tier_index=0, tier_count=1)
        assert next_action(state, outcome) == Stop(STOP_EXHAUSTED)
