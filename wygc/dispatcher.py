"""Process-wide channel registry and escalation engine.

Both are built lazily, once, from settings and then shared by reference.
Uses lazy initialization so the engine is created inside the running
event loop.
"""

from wygc.config import settings
from wygc.services.channel_registry import (
    ChannelRegistry,
    build_opsgenie_client,
    build_registry,
)
from wygc.services.escalation_engine import EscalationEngine
from wygc.services.opsgenie_channel import OpsgenieClient

_registry: ChannelRegistry | None = None
_engine: EscalationEngine | None = None
_opsgenie: OpsgenieClient | None = None
_opsgenie_resolved = False


def get_registry() -> ChannelRegistry:
    """Get or build the channel registry."""
    global _registry
    if _registry is None:
        _registry = build_registry(settings)
    return _registry


def get_engine() -> EscalationEngine:
    """Get or create the escalation engine (FastAPI dependency)."""
    global _engine
    if _engine is None:
        _engine = EscalationEngine(
            get_registry(),
            retention_seconds=settings.retention_seconds,
            notified_retention_seconds=settings.notified_retention_seconds,
        )
    return _engine


def get_opsgenie_client() -> OpsgenieClient | None:
    """Opsgenie client for on-call lookups, or None when not configured."""
    global _opsgenie, _opsgenie_resolved
    if not _opsgenie_resolved:
        _opsgenie = build_opsgenie_client(settings)
        _opsgenie_resolved = True
    return _opsgenie


async def close_dispatcher() -> None:
    """Stop the engine and close every provider client."""
    global _registry, _engine, _opsgenie, _opsgenie_resolved
    if _engine is not None:
        await _engine.shutdown()
        _engine = None
    if _registry is not None:
        await _registry.aclose()
        _registry = None
    if _opsgenie is not None:
        await _opsgenie.aclose()
    _opsgenie = None
    _opsgenie_resolved = False
