"""Alert escalation engine.

Owns every in-flight alert and drives it through

    RECEIVED -> ESCALATING -> NOTIFIED -> ACKNOWLEDGED
                          \\-> EXHAUSTED

Channels of one tier are attempted concurrently; tiers are attempted in
order. Retry timing and fallback decisions come from the escalation policy.

Every change to an alert goes through that alert's transition queue and is
applied by one consumer at a time. Attempt outcomes, retry timers and
acknowledgments therefore have a total order, so an outcome that arrives
after an acknowledgment is recorded but never acted upon.
"""

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from wygc.logging_config import get_logger
from wygc.models.alert import (
    Alert,
    AlertSnapshot,
    AlertState,
    Attempt,
    Outcome,
)
from wygc.models.channel import Channel
from wygc.services.channel_adapter import (
    PermanentDeliveryFailure,
    TransientDeliveryFailure,
)
from wygc.services.channel_registry import ChannelRegistry
from wygc.services.escalation_policy import (
    STOP_DELIVERED,
    STOP_EXHAUSTED,
    AdvanceToNextChannel,
    AdvanceToNextTier,
    EscalationState,
    RetrySameChannel,
    Stop,
    next_action,
)

logger = get_logger(__name__)

STOP_ACKNOWLEDGED = "acknowledged"


class AlertNotFoundError(Exception):
    """No alert with this id is tracked (never received, or already evicted)."""

    def __init__(self, alert_id: uuid.UUID):
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id


class EscalationExhausted(Exception):
    """Every enabled channel in every tier failed for an alert."""

    def __init__(self, alert: AlertSnapshot):
        super().__init__(
            f"Escalation exhausted for alert {alert.id} after "
            f"{len(alert.attempts)} attempts"
        )
        self.alert = alert


# Transition events


@dataclass(frozen=True)
class _Start:
    pass


@dataclass(frozen=True)
class _AttemptCompleted:
    channel: str
    sequence: int
    started_at: datetime
    outcome: Outcome
    elapsed_seconds: float


@dataclass(frozen=True)
class _RetryDue:
    channel: str


@dataclass(frozen=True)
class _Acknowledge:
    result: asyncio.Future


@dataclass
class _Lane:
    """One channel's attempts within the current tier."""

    channel: Channel
    attempts: int = 0
    in_flight: bool = False
    timer: asyncio.Task | None = None
    finished: bool = False

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass
class _Escalation:
    """Escalation of a single alert."""

    alert: Alert
    tiers: tuple[tuple[Channel, ...], ...]
    registry: ChannelRegistry
    tier_index: int = -1
    tier_delivered: bool = False
    lanes: dict[str, _Lane] = field(default_factory=dict)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    _queue: deque = field(default_factory=deque)
    _draining: bool = False
    _tasks: set[asyncio.Task] = field(default_factory=set)

    # ── Transition queue ──────────────────────────────────────────

    def post(self, event: object) -> None:
        """Queue a transition; apply queued transitions unless already doing so."""
        self._queue.append(event)
        if self._draining:
            return

        self._draining = True
        try:
            while self._queue:
                self._apply(self._queue.popleft())
        finally:
            self._draining = False

    def _apply(self, event: object) -> None:
        if isinstance(event, _Start):
            self._on_start()
        elif isinstance(event, _AttemptCompleted):
            self._on_attempt_completed(event)
        elif isinstance(event, _RetryDue):
            self._on_retry_due(event)
        elif isinstance(event, _Acknowledge):
            self._on_acknowledge(event)
        else:
            raise TypeError(f"Unknown escalation event: {event!r}")

    # ── Handlers ──────────────────────────────────────────────────

    def _on_start(self) -> None:
        if self.alert.state != AlertState.RECEIVED:
            return

        self.alert.state = AlertState.ESCALATING
        if not self.tiers:
            logger.error(
                "No enabled channels, cannot escalate alert",
                alert_id=str(self.alert.id),
            )
            self._finish(AlertState.EXHAUSTED, STOP_EXHAUSTED)
            return

        self._open_tier(0)

    def _on_attempt_completed(self, event: _AttemptCompleted) -> None:
        lane = self.lanes.get(event.channel)
        acted_upon = (
            self.alert.state == AlertState.ESCALATING
            and lane is not None
            and lane.in_flight
            and lane.attempts == event.sequence
        )

        self.alert.attempts.append(
            Attempt(
                channel=event.channel,
                sequence=event.sequence,
                started_at=event.started_at,
                outcome=event.outcome.status,
                reason=event.outcome.reason,
                elapsed_seconds=event.elapsed_seconds,
                acted_upon=acted_upon,
            )
        )

        if not acted_upon:
            logger.info(
                "Attempt finished after escalation stopped, recorded only",
                alert_id=str(self.alert.id),
                channel=event.channel,
                sequence=event.sequence,
                outcome=event.outcome.status.value,
                state=self.alert.state.value,
            )
            return

        lane.in_flight = False
        logger.info(
            "Delivery attempt finished",
            alert_id=str(self.alert.id),
            channel=event.channel,
            sequence=event.sequence,
            outcome=event.outcome.status.value,
            reason=event.outcome.reason,
            elapsed_seconds=round(event.elapsed_seconds, 3),
        )

        state = EscalationState(
            channel=lane.channel,
            attempts=lane.attempts,
            tier_index=self.tier_index,
            tier_count=len(self.tiers),
            active_siblings=sum(
                1 for other in self.lanes.values() if other is not lane and not other.finished
            ),
            tier_delivered=self.tier_delivered,
        )
        action = next_action(state, event.outcome)

        if isinstance(action, RetrySameChannel):
            logger.info(
                "Retrying channel after backoff",
                alert_id=str(self.alert.id),
                channel=lane.channel.name,
                attempt=lane.attempts,
                delay_seconds=action.after,
            )
            lane.timer = self._spawn(self._retry_after(lane.channel.name, action.after))
            return

        lane.finished = True

        if isinstance(action, AdvanceToNextChannel):
            logger.info(
                "Channel given up, other channels of the tier still running",
                alert_id=str(self.alert.id),
                channel=lane.channel.name,
                tier=lane.channel.tier,
            )
        elif isinstance(action, AdvanceToNextTier):
            self._open_tier(self.tier_index + 1)
        elif isinstance(action, Stop) and action.reason == STOP_DELIVERED:
            self._on_tier_delivered()
        elif isinstance(action, Stop):
            self._finish(AlertState.EXHAUSTED, action.reason)

    def _on_retry_due(self, event: _RetryDue) -> None:
        lane = self.lanes.get(event.channel)
        if lane is None:
            return
        lane.timer = None
        if self.alert.state != AlertState.ESCALATING or lane.finished:
            return
        self._launch(lane)

    def _on_acknowledge(self, event: _Acknowledge) -> None:
        if self.alert.state.is_terminal:
            event.result.set_result(self.alert.state)
            return

        now = datetime.now(UTC)
        previous = self.alert.state
        self.alert.state = AlertState.ACKNOWLEDGED
        self.alert.acknowledged_at = now
        if self.alert.finished_at is None:
            self.alert.finished_at = now
            self.alert.stop_reason = STOP_ACKNOWLEDGED

        for lane in self.lanes.values():
            lane.cancel_timer()
            lane.finished = True

        logger.info(
            "Alert acknowledged",
            alert_id=str(self.alert.id),
            previous_state=previous.value,
            attempts=len(self.alert.attempts),
        )
        self.done.set()
        event.result.set_result(AlertState.ACKNOWLEDGED)

    # ── Tier management ───────────────────────────────────────────

    def _open_tier(self, index: int) -> None:
        self.tier_index = index
        self.tier_delivered = False
        self.lanes = {channel.name: _Lane(channel) for channel in self.tiers[index]}

        log = logger.warning if index > 0 else logger.info
        log(
            "Escalating alert to tier",
            alert_id=str(self.alert.id),
            tier_index=index,
            channels=list(self.lanes),
        )

        # dicts keep insertion order, i.e. registry order
        for lane in self.lanes.values():
            self._launch(lane)

    def _on_tier_delivered(self) -> None:
        self.tier_delivered = True
        for lane in self.lanes.values():
            if not lane.in_flight:
                lane.cancel_timer()
                lane.finished = True

        if all(lane.finished for lane in self.lanes.values()):
            self._finish(AlertState.NOTIFIED, STOP_DELIVERED)

    def _finish(self, state: AlertState, reason: str) -> None:
        now = datetime.now(UTC)
        self.alert.state = state
        self.alert.finished_at = now
        self.alert.stop_reason = reason
        if state == AlertState.NOTIFIED:
            self.alert.notified_at = now

        for lane in self.lanes.values():
            lane.cancel_timer()

        if state == AlertState.EXHAUSTED:
            logger.error(
                "Escalation exhausted, all channels failed; manual intervention required",
                alert_id=str(self.alert.id),
                attempts=len(self.alert.attempts),
                error=EscalationExhausted.__name__,
            )
        else:
            logger.info(
                "Escalation finished",
                alert_id=str(self.alert.id),
                state=state.value,
                attempts=len(self.alert.attempts),
            )
        self.done.set()

    # ── Attempts ──────────────────────────────────────────────────

    def _launch(self, lane: _Lane) -> None:
        lane.attempts += 1
        lane.in_flight = True
        self._spawn(
            self._run_attempt(lane.channel, lane.attempts, self.alert.snapshot())
        )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _retry_after(self, channel: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self.post(_RetryDue(channel))

    async def _run_attempt(
        self,
        channel: Channel,
        sequence: int,
        snapshot: AlertSnapshot,
    ) -> None:
        adapter = self.registry.adapter_for(channel)
        started_at = datetime.now(UTC)
        start = time.perf_counter()

        try:
            outcome = await asyncio.wait_for(
                adapter.deliver(snapshot), timeout=channel.timeout_seconds
            )
        except TimeoutError:
            outcome = Outcome.timeout()
        except TransientDeliveryFailure as exc:
            outcome = Outcome.transient(exc.reason)
        except PermanentDeliveryFailure as exc:
            outcome = Outcome.permanent(exc.reason)
        except Exception as exc:
            logger.warning(
                "Channel adapter raised unexpectedly",
                alert_id=str(snapshot.id),
                channel=channel.name,
                exc_info=True,
            )
            outcome = Outcome.transient(f"unexpected adapter error: {exc!r}")

        if not isinstance(outcome, Outcome):
            outcome = Outcome.transient(f"adapter returned {outcome!r}")

        self.post(
            _AttemptCompleted(
                channel=channel.name,
                sequence=sequence,
                started_at=started_at,
                outcome=outcome,
                elapsed_seconds=time.perf_counter() - start,
            )
        )

    # ── Introspection ─────────────────────────────────────────────

    @property
    def idle(self) -> bool:
        """No attempt or retry timer is outstanding."""
        return not self._tasks

    async def wait_until_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class EscalationEngine:
    """Coordinates the escalation of every in-flight alert.

    Args:
        registry: Enabled channels and their adapters.
        retention_seconds: How long acknowledged and exhausted alerts stay
            queryable after escalation stopped.
        notified_retention_seconds: How long notified (but unacknowledged)
            alerts stay queryable and acknowledgeable.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        retention_seconds: float = 3600,
        notified_retention_seconds: float = 86400,
    ):
        self.registry = registry
        self.retention = timedelta(seconds=retention_seconds)
        self.notified_retention = timedelta(seconds=notified_retention_seconds)
        self._escalations: dict[uuid.UUID, _Escalation] = {}

    def _lookup(self, alert_id: uuid.UUID) -> _Escalation:
        try:
            return self._escalations[alert_id]
        except KeyError:
            raise AlertNotFoundError(alert_id) from None

    async def submit(self, payload: Mapping[str, Any] | None = None) -> AlertSnapshot:
        """Receive an alert and start escalating it.

        The first tier's attempts are scheduled before this returns.

        Args:
            payload: Opaque description of the incident.

        Returns:
            Snapshot of the newly created alert.
        """
        alert = Alert(payload=dict(payload or {}))
        escalation = _Escalation(
            alert=alert,
            tiers=self.registry.tiers(),
            registry=self.registry,
        )
        self._escalations[alert.id] = escalation
        logger.info(
            "Alert received",
            alert_id=str(alert.id),
            payload_keys=sorted(alert.payload),
        )

        escalation.post(_Start())
        return alert.snapshot()

    async def acknowledge(self, alert_id: uuid.UUID) -> AlertState:
        """Acknowledge an alert, halting any further escalation.

        Idempotent: acknowledging an acknowledged or exhausted alert leaves
        it unchanged and returns its state.

        Raises:
            AlertNotFoundError: If the alert is unknown.
        """
        escalation = self._lookup(alert_id)
        result: asyncio.Future = asyncio.get_running_loop().create_future()
        escalation.post(_Acknowledge(result))
        return await result

    def get(self, alert_id: uuid.UUID) -> AlertSnapshot:
        """Current state and attempt log of an alert.

        Raises:
            AlertNotFoundError: If the alert is unknown.
        """
        return self._lookup(alert_id).alert.snapshot()

    def list_alerts(self, state: AlertState | None = None) -> list[AlertSnapshot]:
        """Snapshots of tracked alerts, oldest first."""
        snapshots = [e.alert.snapshot() for e in self._escalations.values()]
        if state is not None:
            snapshots = [s for s in snapshots if s.state == state]
        return sorted(snapshots, key=lambda s: s.created_at)

    async def wait_for_outcome(
        self,
        alert_id: uuid.UUID,
        timeout: float | None = None,
        raise_on_exhausted: bool = False,
    ) -> AlertSnapshot:
        """Wait until escalation of an alert has stopped.

        Raises:
            AlertNotFoundError: If the alert is unknown.
            TimeoutError: If escalation is still running after ``timeout``.
            EscalationExhausted: If ``raise_on_exhausted`` and every channel failed.
        """
        escalation = self._lookup(alert_id)
        await asyncio.wait_for(escalation.done.wait(), timeout=timeout)

        snapshot = escalation.alert.snapshot()
        if raise_on_exhausted and snapshot.state == AlertState.EXHAUSTED:
            raise EscalationExhausted(snapshot)
        return snapshot

    async def wait_until_idle(self, alert_id: uuid.UUID) -> AlertSnapshot:
        """Wait until no attempt or retry timer is outstanding for an alert."""
        escalation = self._lookup(alert_id)
        await escalation.wait_until_idle()
        return escalation.alert.snapshot()

    def evict_expired(self, now: datetime | None = None) -> int:
        """Forget alerts whose escalation stopped longer ago than retention.

        Alerts with an attempt still in flight are kept.

        Returns:
            Number of alerts evicted.
        """
        now = now or datetime.now(UTC)
        expired = []
        for alert_id, escalation in self._escalations.items():
            alert = escalation.alert
            if not alert.state.escalation_stopped or alert.finished_at is None:
                continue
            if not escalation.idle:
                continue
            retention = (
                self.notified_retention
                if alert.state == AlertState.NOTIFIED
                else self.retention
            )
            stopped_at = alert.acknowledged_at or alert.finished_at
            if now - stopped_at >= retention:
                expired.append(alert_id)

        for alert_id in expired:
            del self._escalations[alert_id]

        if expired:
            logger.info("Evicted finished alerts", count=len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        """Number of tracked alerts per state."""
        counts = {state.value: 0 for state in AlertState}
        for escalation in self._escalations.values():
            counts[escalation.alert.state.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._escalations)

    async def shutdown(self) -> None:
        """Cancel every outstanding attempt and retry timer."""
        for escalation in list(self._escalations.values()):
            await escalation.cancel()
        logger.info("Escalation engine stopped", tracked_alerts=len(self._escalations))
