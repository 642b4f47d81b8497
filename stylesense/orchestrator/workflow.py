"""
Stylist workflow orchestration.

upload → submit preferences → encode → Vision → Intent → Recommendation
       → [publish partial result] → visual (background task) → [merge visual]

All mutation of SessionState goes through the named transitions below.
Each accepted submission, re-upload or reset starts a new run generation;
writes from a run whose generation is no longer current are dropped, so a
reset mid-run never lets late results leak into the fresh session.
"""

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable, Optional

from ..core.flags import FeatureFlags, get_flags
from ..models import OutfitResult, UserPreferences
from ..services.media import EncodingError, MediaEncoder, UploadedItem
from ..services.stylists import StylistClient, visual_description
from .state import (
    AgentRole,
    MessageStatus,
    SessionState,
    Transcript,
    WorkflowEvent,
    WorkflowPhase,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

Listener = Callable[[WorkflowEvent], Awaitable[None]]

FAILURE_NOTICE = "Something went wrong with the AI stylists. Please try again."


class _AbandonedRun(Exception):
    """The session was reset or re-submitted while this run was in flight."""


class WorkflowOrchestrator:
    """Owns one SessionState and drives the four stylist calls over it."""

    def __init__(
        self,
        stylists: StylistClient,
        encoder: Optional[MediaEncoder] = None,
        session_id: Optional[str] = None,
        flags: Optional[FeatureFlags] = None,
    ):
        self.stylists = stylists
        self.encoder = encoder or MediaEncoder()
        self.flags = flags or get_flags()
        self.state = SessionState(session_id=session_id) if session_id else SessionState()
        self._run_id = 0
        self._listeners: list[Listener] = []
        self._run_task: Optional[asyncio.Task] = None
        self._visual_task: Optional[asyncio.Task] = None

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def run_id(self) -> int:
        return self._run_id

    # ── Observers ────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an async listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, run_id: int, event_type: str, data: Optional[dict] = None) -> None:
        event = WorkflowEvent(
            type=event_type,
            session_id=self.session_id,
            run_id=run_id,
            data=data or {},
        )
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                # Never crash the workflow on observer failure
                logger.warning("Workflow listener failed on %s: %s", event_type, e)

    def _clear_downstream(self) -> None:
        self.state.preferences = None
        self.state.transcript = Transcript()
        self.state.result = None
        self.state.processing = False
        self.state.step = None
        self.state.notice = None

    # ── Transitions: upload / reset ──────────────────────────────────

    async def select_item(self, item: UploadedItem) -> None:
        """Any phase → item_selected. Re-upload resets everything downstream."""
        self._run_id += 1
        self._clear_downstream()
        self.state.item = item
        self.state.phase = WorkflowPhase.ITEM_SELECTED
        logger.info("Session %s: item selected (%s)", self.session_id, item.filename)
        await self._emit(self._run_id, "item.selected", {"filename": item.filename})

    async def reset(self) -> None:
        """Any phase → idle. Discards item, preferences, transcript and result."""
        self._run_id += 1
        self._clear_downstream()
        self.state.item = None
        self.state.phase = WorkflowPhase.IDLE
        logger.info("Session %s: reset", self.session_id)
        await self._emit(self._run_id, "session.reset")

    # ── Transitions: submission ──────────────────────────────────────

    def _begin(self, preferences: UserPreferences) -> Optional[int]:
        """
        Gate and enter the run. Synchronous, so two submissions in the same
        tick cannot both pass the processing check.
        """
        if self.state.item is None:
            logger.info("Session %s: submission ignored, no item uploaded", self.session_id)
            return None
        if self.state.processing:
            logger.info("Session %s: submission ignored, already processing", self.session_id)
            return None

        self._run_id += 1
        self.state.preferences = preferences
        self.state.phase = WorkflowPhase.PREFERENCES_COLLECTED
        self.state.step = None
        self.state.processing = True
        self.state.transcript = Transcript()
        self.state.result = None
        self.state.notice = None
        return self._run_id

    async def run(self, preferences: UserPreferences) -> bool:
        """
        Run the workflow up to the partial result. The visual step continues
        in the background; await join() to wait for it.

        Returns False if the submission was not accepted.
        """
        run_id = self._begin(preferences)
        if run_id is None:
            return False
        await self._execute(run_id, preferences)
        return True

    def launch(self, preferences: UserPreferences) -> bool:
        """Like run(), but schedules the whole workflow as a task and returns at once."""
        run_id = self._begin(preferences)
        if run_id is None:
            return False
        self._run_task = asyncio.create_task(self._execute(run_id, preferences))
        return True

    async def join(self) -> None:
        """Wait for the in-flight run and its visual step, if any."""
        if self._run_task is not None:
            await asyncio.gather(self._run_task, return_exceptions=True)
        # The visual task only exists once the run has published its partial result
        if self._visual_task is not None:
            await asyncio.gather(self._visual_task, return_exceptions=True)

    # ── The run ──────────────────────────────────────────────────────

    def _guard(self, run_id: int) -> None:
        if run_id != self._run_id:
            raise _AbandonedRun(run_id)

    async def _set_step(self, run_id: int, step: WorkflowStep) -> None:
        self._guard(run_id)
        self.state.phase = WorkflowPhase.RUNNING
        self.state.step = step
        await self._emit(run_id, "workflow.step", {"step": step.value})

    async def _say(
        self,
        run_id: int,
        role: AgentRole,
        content: str,
        status: MessageStatus = MessageStatus.DONE,
    ) -> None:
        self._guard(run_id)
        message = self.state.transcript.append(role, content, status)
        await self._emit(run_id, "transcript.updated", {"message": message.to_dict()})

    async def _execute(self, run_id: int, preferences: UserPreferences) -> None:
        try:
            self._guard(run_id)
            item = self.state.item
            await self._emit(
                run_id, "workflow.started", {"preferences": preferences.model_dump(mode="json")},
            )

            # 1. Encode
            await self._set_step(run_id, WorkflowStep.ENCODING)
            media = await self.encoder.encode(item)

            # 2. Vision Agent
            await self._set_step(run_id, WorkflowStep.DESCRIBING)
            await self._say(run_id, AgentRole.VISION, "Analyzing garment details...", MessageStatus.THINKING)
            garment = await self.stylists.describe_garment(media)
            await self._say(run_id, AgentRole.VISION, garment)

            # 3. Intent Agent
            await self._set_step(run_id, WorkflowStep.SYNTHESIZING)
            await self._say(run_id, AgentRole.INTENT, "Synthesizing style strategy...", MessageStatus.THINKING)
            strategy = await self.stylists.synthesize_strategy(preferences)
            await self._say(run_id, AgentRole.INTENT, strategy)

            # 4. Recommendation Agent
            await self._set_step(run_id, WorkflowStep.RECOMMENDING)
            await self._say(
                run_id,
                AgentRole.RECOMMENDATION,
                f"Curating looks and searching {self.stylists.retailer_name}...",
                MessageStatus.THINKING,
            )
            recommendation = await self.stylists.recommend_outfit(garment, strategy)
            await self._say(run_id, AgentRole.RECOMMENDATION, recommendation.text)

            # 5. Partial result, published before the visual starts
            self._guard(run_id)
            self.state.result = OutfitResult(
                recommendation_text=recommendation.text,
                grounding_links=list(recommendation.links),
            )
            self.state.processing = False
            self.state.phase = WorkflowPhase.PARTIAL_RESULT
            self.state.step = None
            logger.info(
                "Session %s: partial result ready (%d link(s))",
                self.session_id, len(recommendation.links),
            )
            await self._emit(run_id, "result.partial", {"result": self.state.result.to_dict()})

            # 6. Visual, in the background
            self._visual_task = asyncio.create_task(
                self._visualize(run_id, visual_description(garment, strategy))
            )

        except _AbandonedRun:
            self._log_abandoned(run_id)
        except EncodingError as e:
            logger.error("Session %s: encoding failed: %s", self.session_id, e)
            await self._fail(run_id, str(e))
        except Exception as e:
            logger.exception("Session %s: workflow failed: %s", self.session_id, e)
            await self._fail(run_id, str(e))

    async def _visualize(self, run_id: int, description: str) -> None:
        try:
            image = None
            if self.flags.enable_visual:
                await self._set_step(run_id, WorkflowStep.VISUALIZING)
                image = await self.stylists.render_visual(description)

            self._guard(run_id)
            if image is not None:
                self.state.result = dataclasses.replace(self.state.result, visual_image=image)
            self.state.phase = WorkflowPhase.COMPLETE
            self.state.step = None
            logger.info(
                "Session %s: complete (visual=%s)", self.session_id, "yes" if image else "none",
            )
            await self._emit(run_id, "result.complete", {"result": self.state.result.to_dict()})
        except _AbandonedRun:
            self._log_abandoned(run_id)
        except Exception as e:
            logger.exception("Session %s: visual step failed: %s", self.session_id, e)
            await self._fail(run_id, str(e))

    async def _fail(self, run_id: int, error: str) -> None:
        """Abort the run. Transcript and any published result stay for inspection."""
        if run_id != self._run_id:
            self._log_abandoned(run_id)
            return
        self.state.processing = False
        self.state.phase = WorkflowPhase.FAILED
        self.state.notice = FAILURE_NOTICE
        await self._emit(run_id, "workflow.failed", {
            "notice": FAILURE_NOTICE,
            "error": error,
            "step": self.state.step.value if self.state.step else None,
        })

    def _log_abandoned(self, run_id: int) -> None:
        logger.info(
            "Session %s: dropped writes from abandoned run %d (current=%d)",
            self.session_id, run_id, self._run_id,
        )
