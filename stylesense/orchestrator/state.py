"""
Session state for the stylist workflow.

One SessionState per user session. It is a plain record: only the
WorkflowOrchestrator that owns it writes to it, renderers (snapshot endpoint,
SSE stream, Redis subscribers) only read it.

The transcript keeps "thinking" placeholders replace-in-place: a role has at
most one thinking message, and its done message supersedes it.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..models import OutfitResult, UserPreferences
from ..services.media import UploadedItem


class AgentRole(str, Enum):
    VISION = "Vision Agent"
    INTENT = "Intent Agent"
    RECOMMENDATION = "Recommendation Agent"


class MessageStatus(str, Enum):
    THINKING = "thinking"
    DONE = "done"


class WorkflowPhase(str, Enum):
    """Where the session is in its workflow."""
    IDLE = "idle"
    ITEM_SELECTED = "item_selected"
    PREFERENCES_COLLECTED = "preferences_collected"
    RUNNING = "running"
    PARTIAL_RESULT = "partial_result"
    COMPLETE = "complete"
    FAILED = "failed"


class WorkflowStep(str, Enum):
    ENCODING = "encoding"
    DESCRIBING = "describing"
    SYNTHESIZING = "synthesizing"
    RECOMMENDING = "recommending"
    VISUALIZING = "visualizing"


def _new_message_id() -> str:
    return uuid.uuid4().hex[:12]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AgentMessage:
    role: AgentRole
    content: str
    status: MessageStatus = MessageStatus.DONE
    id: str = field(default_factory=_new_message_id)
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "agent_name": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }


class Transcript:
    """Ordered agent messages with supersede-thinking-for-role appends."""

    def __init__(self):
        self._messages: list[AgentMessage] = []

    def append(
        self,
        role: AgentRole,
        content: str,
        status: MessageStatus = MessageStatus.DONE,
    ) -> AgentMessage:
        """Append a message, dropping any thinking message already held for this role."""
        message = AgentMessage(role=role, content=content, status=status)
        self._messages = [
            m for m in self._messages
            if not (m.role == role and m.status == MessageStatus.THINKING)
        ]
        self._messages.append(message)
        return message

    def thinking(self, role: AgentRole) -> Optional[AgentMessage]:
        for m in self._messages:
            if m.role == role and m.status == MessageStatus.THINKING:
                return m
        return None

    def done_messages(self) -> list[AgentMessage]:
        return [m for m in self._messages if m.status == MessageStatus.DONE]

    @property
    def messages(self) -> list[AgentMessage]:
        return list(self._messages)

    def __iter__(self) -> Iterator[AgentMessage]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def to_list(self) -> list[dict]:
        return [m.to_dict() for m in self._messages]


@dataclass
class SessionState:
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    item: Optional[UploadedItem] = None
    preferences: Optional[UserPreferences] = None
    transcript: Transcript = field(default_factory=Transcript)
    result: Optional[OutfitResult] = None
    processing: bool = False
    phase: WorkflowPhase = WorkflowPhase.IDLE
    step: Optional[WorkflowStep] = None
    notice: Optional[str] = None

    @property
    def visual_pending(self) -> bool:
        """True while the result is published but the visual may still arrive."""
        return (
            self.result is not None
            and self.result.visual_image is None
            and self.phase in (WorkflowPhase.PARTIAL_RESULT, WorkflowPhase.RUNNING)
        )

    def to_dict(self) -> dict:
        item = None
        if self.item is not None:
            item = {
                "filename": self.item.filename,
                "content_type": self.item.content_type,
                "size": self.item.size,
            }
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "step": self.step.value if self.step else None,
            "processing": self.processing,
            "notice": self.notice,
            "item": item,
            "preferences": self.preferences.model_dump(mode="json") if self.preferences else None,
            "transcript": self.transcript.to_list(),
            "result": self.result.to_dict() if self.result else None,
            "visual_pending": self.visual_pending,
        }


@dataclass(frozen=True)
class WorkflowEvent:
    """Emitted to observers after every transition."""
    type: str
    session_id: str
    run_id: int
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "session_id": self.session_id,
            "run_id": self.run_id,
            "data": self.data,
        }
