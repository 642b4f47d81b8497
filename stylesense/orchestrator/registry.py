"""
Session registry. Create sessions, look them up, drop them.

Sessions live in process memory only; nothing is persisted.
"""

import logging
from typing import Callable, Optional

from ..core.flags import get_flags
from ..services import realtime
from ..services.stylists import StylistClient
from .workflow import WorkflowOrchestrator

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Central registry for all live stylist sessions."""

    def __init__(self, stylists_factory: Optional[Callable[[], StylistClient]] = None):
        self._stylists_factory = stylists_factory or StylistClient
        self._sessions: dict[str, WorkflowOrchestrator] = {}

    async def create(self) -> WorkflowOrchestrator:
        """Start a new session with its own orchestrator."""
        orchestrator = WorkflowOrchestrator(stylists=self._stylists_factory())
        if get_flags().use_redis:
            orchestrator.subscribe(realtime.workflow_event)
        self._sessions[orchestrator.session_id] = orchestrator
        logger.info("Created session: %s (%d active)", orchestrator.session_id, len(self._sessions))
        await realtime.session_created(orchestrator.session_id, orchestrator.state.to_dict())
        return orchestrator

    def get(self, session_id: str) -> Optional[WorkflowOrchestrator]:
        """Get a session by id. Returns None if not found."""
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> bool:
        """Drop a session. Its in-flight run, if any, finishes into the void."""
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        await orchestrator.reset()
        await realtime.session_closed(session_id)
        logger.info("Removed session: %s (%d active)", session_id, len(self._sessions))
        return True

    async def close_all(self) -> None:
        """Drop every session. Used on shutdown."""
        for session_id in self.list_ids():
            await self.remove(session_id)

    def list_ids(self) -> list[str]:
        return list(self._sessions.keys())

    def __len__(self) -> int:
        return len(self._sessions)


# ── Global registry ──────────────────────────────────────────────────

_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    """Get or create the global session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
