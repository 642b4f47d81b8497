"""
Realtime notifications for the stylist workflow, on top of core.redis.
"""

from typing import Any

from ..core import redis as _redis
from ..orchestrator.state import WorkflowEvent


async def workflow_event(event: WorkflowEvent) -> None:
    """Orchestrator listener: mirrors every transition onto the session channel."""
    await _redis.publish_session_event(
        event.session_id, event.type, event.data, run_id=event.run_id,
    )


async def session_created(session_id: str, snapshot: dict[str, Any]) -> None:
    await _redis.publish_session_event(session_id, "session.created", {"state": snapshot})


async def session_closed(session_id: str) -> None:
    await _redis.publish_session_event(session_id, "session.closed")
