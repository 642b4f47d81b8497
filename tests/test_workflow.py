"""Tests for the workflow state machine: ordering, partial results, failure and reset."""

import asyncio
import base64
import dataclasses

from conftest import JPEG_BYTES, FakeGenaiClient, grounded_response, image_response, inline_part, text_response, wait_until
from stylesense.models import Recommendation
from stylesense.orchestrator.state import AgentRole, MessageStatus, WorkflowPhase, WorkflowStep
from stylesense.orchestrator.workflow import FAILURE_NOTICE, WorkflowOrchestrator
from stylesense.services.media import MediaEncoder, UploadedItem
from stylesense.services.stylists import VISION_FALLBACK, StylistClient


def _types(events) -> list[str]:
    return [e.type for e in events]


# ── Happy path ───────────────────────────────────────────────────────

async def test_wedding_scenario_runs_all_stages_in_order(orchestrator, stylists, events, item, preferences) -> None:
    await orchestrator.select_item(item)

    assert await orchestrator.run(preferences) is True
    await orchestrator.join()

    state = orchestrator.state
    done = state.transcript.done_messages()
    assert [m.role for m in done] == [AgentRole.VISION, AgentRole.INTENT, AgentRole.RECOMMENDATION]
    assert len(state.transcript) == 3
    assert [m.content for m in done] == [
        stylists.garment, stylists.strategy, stylists.recommendation.text,
    ]
    assert stylists.stages() == ["describe", "synthesize", "recommend", "visual"]

    types = _types(events)
    assert types.index("result.partial") < types.index("result.complete")
    assert state.phase == WorkflowPhase.COMPLETE
    assert state.processing is False
    assert state.preferences == preferences
    assert state.result.visual_image == stylists.visual


async def test_thinking_precedes_each_done_message(orchestrator, events, item, preferences) -> None:
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    await orchestrator.join()

    messages = [e.data["message"] for e in events if e.type == "transcript.updated"]
    assert [(m["role"], m["status"]) for m in messages] == [
        ("Vision Agent", "thinking"), ("Vision Agent", "done"),
        ("Intent Agent", "thinking"), ("Intent Agent", "done"),
        ("Recommendation Agent", "thinking"), ("Recommendation Agent", "done"),
    ]
    assert "House of Fraser" in messages[4]["content"]


async def test_encoded_image_reaches_vision_agent(orchestrator, stylists, item, preferences) -> None:
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)

    media = stylists.calls[0][1]
    assert base64.b64decode(media.data) == JPEG_BYTES
    assert media.mime_type == "image/jpeg"


async def test_recommendation_and_visual_get_upstream_texts(orchestrator, stylists, item, preferences) -> None:
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    await orchestrator.join()

    calls = {call[0]: call[1:] for call in stylists.calls}
    assert calls["recommend"] == (stylists.garment, stylists.strategy)
    assert calls["visual"] == (f"{stylists.garment} styled for {stylists.strategy}",)
    assert stylists.recommendation.text not in calls["visual"][0]


# ── Partial result ───────────────────────────────────────────────────

async def test_partial_result_is_published_before_visual(orchestrator, stylists, item, preferences) -> None:
    stylists.gates["visual"] = asyncio.Event()
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)

    state = orchestrator.state
    assert state.phase == WorkflowPhase.PARTIAL_RESULT
    assert state.processing is False
    partial = state.result
    assert partial.recommendation_text == stylists.recommendation.text
    assert partial.grounding_links == stylists.recommendation.links
    assert partial.visual_image is None
    assert state.to_dict()["visual_pending"] is True

    await wait_until(lambda: state.step == WorkflowStep.VISUALIZING)
    stylists.gates["visual"].set()
    await orchestrator.join()

    assert state.phase == WorkflowPhase.COMPLETE
    assert state.result == dataclasses.replace(partial, visual_image=stylists.visual)


async def test_absent_visual_still_completes(orchestrator, stylists, item, preferences) -> None:
    stylists.visual = None
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)
    partial = orchestrator.state.result
    await orchestrator.join()

    assert orchestrator.state.phase == WorkflowPhase.COMPLETE
    assert orchestrator.state.result == partial
    assert orchestrator.state.result.visual_image is None
    assert orchestrator.state.notice is None


async def test_zero_links_is_a_valid_result(orchestrator, stylists, item, preferences) -> None:
    stylists.recommendation = Recommendation(text="Keep it simple.", links=[])
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)
    await orchestrator.join()

    assert orchestrator.state.phase == WorkflowPhase.COMPLETE
    assert orchestrator.state.result.grounding_links == []
    assert orchestrator.state.result.shopping_links() == []


async def test_visual_disabled_completes_without_calling_model(stylists, flags, item, preferences) -> None:
    orchestrator = WorkflowOrchestrator(
        stylists=stylists,
        encoder=MediaEncoder(default_mime_type="image/jpeg"),
        flags=flags.model_copy(update={"enable_visual": False}),
    )
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)
    await orchestrator.join()

    assert "visual" not in stylists.stages()
    assert orchestrator.state.phase == WorkflowPhase.COMPLETE
    assert orchestrator.state.result.visual_image is None


# ── Degraded stages ──────────────────────────────────────────────────

async def test_degraded_vision_stage_still_completes(settings, flags, item, preferences) -> None:
    def responder(*, model, contents, config=None):
        if isinstance(contents, list):
            raise ConnectionError("vision model down")
        if "Intent Agent" in contents:
            return text_response("Formality Level: Cocktail")
        if "Recommendation Agent" in contents:
            return grounded_response("Polished and light.", [])
        return image_response([inline_part(b"render")])

    fake = FakeGenaiClient(responder)
    orchestrator = WorkflowOrchestrator(
        stylists=StylistClient(client=fake, settings=settings, flags=flags),
        encoder=MediaEncoder(default_mime_type="image/jpeg"),
        flags=flags,
    )
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)
    await orchestrator.join()

    state = orchestrator.state
    assert state.phase == WorkflowPhase.COMPLETE
    assert state.transcript.done_messages()[0].content == VISION_FALLBACK
    recommendation_prompt = fake.models.calls[2]["contents"]
    assert VISION_FALLBACK in recommendation_prompt
    assert state.result.recommendation_text == "Polished and light."
    assert base64.b64decode(state.result.visual_image.data) == b"render"


# ── Failure ──────────────────────────────────────────────────────────

async def test_encoding_failure_fails_without_messages(orchestrator, stylists, events, preferences) -> None:
    await orchestrator.select_item(UploadedItem(filename="empty.jpg", content=b""))

    await orchestrator.run(preferences)
    await orchestrator.join()

    state = orchestrator.state
    assert state.phase == WorkflowPhase.FAILED
    assert state.processing is False
    assert state.notice == FAILURE_NOTICE
    assert len(state.transcript) == 0
    assert stylists.calls == []
    assert "transcript.updated" not in _types(events)
    assert state.item is not None  # retry without re-uploading


async def test_unexpected_error_keeps_transcript_for_inspection(orchestrator, stylists, item, preferences) -> None:
    stylists.errors["synthesize"] = RuntimeError("bug in sequencing")
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)

    state = orchestrator.state
    assert state.phase == WorkflowPhase.FAILED
    assert state.processing is False
    assert [(m.role, m.status) for m in state.transcript] == [
        (AgentRole.VISION, MessageStatus.DONE),
        (AgentRole.INTENT, MessageStatus.THINKING),
    ]
    assert state.result is None


async def test_failed_session_can_be_resubmitted(orchestrator, stylists, item, preferences) -> None:
    stylists.errors["synthesize"] = RuntimeError("flaky")
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    assert orchestrator.state.phase == WorkflowPhase.FAILED

    del stylists.errors["synthesize"]
    assert await orchestrator.run(preferences) is True
    await orchestrator.join()

    assert orchestrator.state.phase == WorkflowPhase.COMPLETE
    assert orchestrator.state.notice is None


async def test_resubmission_clears_step_of_failed_run(orchestrator, stylists, item, preferences) -> None:
    stylists.errors["synthesize"] = RuntimeError("flaky")
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    assert orchestrator.state.step == WorkflowStep.SYNTHESIZING

    del stylists.errors["synthesize"]
    stylists.gates["describe"] = asyncio.Event()
    assert orchestrator.launch(preferences) is True

    snapshot = orchestrator.state.to_dict()
    assert snapshot["phase"] == "preferences_collected"
    assert snapshot["step"] is None

    stylists.gates["describe"].set()
    await orchestrator.join()
    assert orchestrator.state.phase == WorkflowPhase.COMPLETE


async def test_failing_listener_does_not_break_workflow(orchestrator, item, preferences) -> None:
    async def broken(event):
        raise RuntimeError("renderer crashed")

    orchestrator.subscribe(broken)
    await orchestrator.select_item(item)

    await orchestrator.run(preferences)
    await orchestrator.join()

    assert orchestrator.state.phase == WorkflowPhase.COMPLETE


async def test_unsubscribe_stops_events(orchestrator, item) -> None:
    seen = []

    async def listener(event):
        seen.append(event)

    unsubscribe = orchestrator.subscribe(listener)
    unsubscribe()
    await orchestrator.select_item(item)

    assert seen == []


# ── Submission gating ────────────────────────────────────────────────

async def test_submission_without_item_is_a_no_op(orchestrator, stylists, preferences) -> None:
    assert await orchestrator.run(preferences) is False

    assert orchestrator.state.phase == WorkflowPhase.IDLE
    assert orchestrator.state.preferences is None
    assert stylists.calls == []


async def test_second_submission_while_processing_is_rejected(orchestrator, stylists, item, preferences) -> None:
    stylists.gates["describe"] = asyncio.Event()
    await orchestrator.select_item(item)

    assert orchestrator.launch(preferences) is True
    assert orchestrator.state.processing is True
    assert orchestrator.launch(preferences) is False

    stylists.gates["describe"].set()
    await orchestrator.join()
    assert stylists.stages().count("describe") == 1


# ── Reset / re-upload ────────────────────────────────────────────────

async def test_reupload_resets_everything_downstream(orchestrator, item, preferences) -> None:
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    await orchestrator.join()

    other = UploadedItem(filename="dress.png", content_type="image/png", content=b"dress")
    await orchestrator.select_item(other)

    state = orchestrator.state
    assert state.phase == WorkflowPhase.ITEM_SELECTED
    assert state.item == other
    assert state.preferences is None
    assert len(state.transcript) == 0
    assert state.result is None
    assert state.processing is False


async def test_reset_mid_run_discards_late_results(orchestrator, stylists, events, item, preferences) -> None:
    stylists.gates["describe"] = asyncio.Event()
    await orchestrator.select_item(item)
    orchestrator.launch(preferences)
    await wait_until(lambda: "describe" in stylists.stages())

    await orchestrator.reset()
    reset_at = len(events)
    stylists.gates["describe"].set()
    await orchestrator.join()

    state = orchestrator.state
    assert state.phase == WorkflowPhase.IDLE
    assert state.item is None
    assert state.preferences is None
    assert len(state.transcript) == 0
    assert state.result is None
    assert state.processing is False
    assert stylists.stages() == ["describe"]
    assert _types(events[reset_at:]) == []


async def test_reupload_during_visual_drops_stale_merge(orchestrator, stylists, item, preferences) -> None:
    stylists.gates["visual"] = asyncio.Event()
    await orchestrator.select_item(item)
    await orchestrator.run(preferences)
    await wait_until(lambda: "visual" in stylists.stages())

    other = UploadedItem(filename="skirt.jpg", content=b"skirt")
    await orchestrator.select_item(other)
    stylists.gates["visual"].set()
    await orchestrator.join()

    assert orchestrator.state.phase == WorkflowPhase.ITEM_SELECTED
    assert orchestrator.state.result is None


async def test_reset_from_idle_is_harmless(orchestrator, events) -> None:
    await orchestrator.reset()

    assert orchestrator.state.phase == WorkflowPhase.IDLE
    assert _types(events) == ["session.reset"]
