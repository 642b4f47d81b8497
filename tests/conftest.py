"""Shared pytest fixtures for the StyleSense test-suite.

Gemini is never called: the stylist agents are replaced either by
``FakeStylists`` (orchestrator and API tests) or by a fake google-genai
client plugged into the real ``StylistClient`` (agent tests).
"""

import asyncio
from types import SimpleNamespace
from typing import Callable, Optional

import httpx
import pytest

from stylesense.core.config import Settings
from stylesense.core.flags import FeatureFlags
from stylesense.factory import create_app
from stylesense.models import GroundingLink, Recommendation, UserPreferences, VisualImage
from stylesense.orchestrator.registry import SessionRegistry, get_session_registry
from stylesense.orchestrator.workflow import WorkflowOrchestrator
from stylesense.services.media import MediaEncoder, UploadedItem

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-body"


# ── Fake stylist agents ──────────────────────────────────────────────

class FakeStylists:
    """Duck-typed StylistClient. Stages can be held open with asyncio.Event gates."""

    retailer_name = "House of Fraser"

    def __init__(
        self,
        garment: str = "A navy linen blazer, smart casual, good condition.",
        strategy: str = "Formality Level: Formal. Tailored pieces in light fabrics.",
        recommendation: Optional[Recommendation] = None,
        visual: Optional[VisualImage] = VisualImage(data="aW1hZ2U=", mime_type="image/png"),
    ):
        self.garment = garment
        self.strategy = strategy
        self.recommendation = recommendation or Recommendation(
            text="Sharp tailoring lifts the blazer to wedding level.",
            links=[
                GroundingLink(uri="https://www.houseoffraser.co.uk/trousers", title="Trousers"),
                GroundingLink(uri="https://www.houseoffraser.co.uk/shoes"),
            ],
        )
        self.visual = visual
        self.calls: list[tuple] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.errors: dict[str, Exception] = {}

    async def _enter(self, stage: str, *args) -> None:
        self.calls.append((stage, *args))
        gate = self.gates.get(stage)
        if gate is not None:
            await gate.wait()
        if stage in self.errors:
            raise self.errors[stage]

    def stages(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def describe_garment(self, media):
        await self._enter("describe", media)
        return self.garment

    async def synthesize_strategy(self, prefs):
        await self._enter("synthesize", prefs)
        return self.strategy

    async def recommend_outfit(self, garment_description, strategy):
        await self._enter("recommend", garment_description, strategy)
        return self.recommendation

    async def render_visual(self, description):
        await self._enter("visual", description)
        return self.visual


# ── Fake google-genai client ─────────────────────────────────────────

class FakeModels:
    def __init__(self, responder: Callable):
        self.responder = responder
        self.calls: list[dict] = []

    def generate_content(self, *, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        return self.responder(model=model, contents=contents, config=config)


class FakeGenaiClient:
    def __init__(self, responder: Callable):
        self.models = FakeModels(responder)


def text_response(text: Optional[str]):
    return SimpleNamespace(text=text, candidates=[])


def grounded_response(text: str, chunks: list):
    metadata = SimpleNamespace(grounding_chunks=chunks)
    return SimpleNamespace(
        text=text,
        candidates=[SimpleNamespace(grounding_metadata=metadata, content=None)],
    )


def web_chunk(uri: Optional[str], title: Optional[str] = None):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title) if uri is not None else None)


def image_response(parts: list):
    return SimpleNamespace(
        text=None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts), grounding_metadata=None)],
    )


def inline_part(data, mime_type: str = "image/png"):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))


def text_part(text: str):
    return SimpleNamespace(text=text, inline_data=None)


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings().model_copy(update={
        "gemini_api_key": "test-key",
        "agent_call_timeout": 2.0,
        "visual_call_timeout": 2.0,
    })


@pytest.fixture
def flags() -> FeatureFlags:
    return FeatureFlags().model_copy(update={
        "use_redis": False,
        "use_web_search": True,
        "enable_visual": True,
    })


@pytest.fixture
def preferences() -> UserPreferences:
    return UserPreferences(
        event="Wedding",
        presentation="Elegant & Sophisticated",
        budget="Medium",
        mood="",
        weather="",
        colorPreference="",
    )


@pytest.fixture
def item() -> UploadedItem:
    return UploadedItem(filename="blazer.jpg", content_type="image/jpeg", content=JPEG_BYTES)


@pytest.fixture
def stylists() -> FakeStylists:
    return FakeStylists()


@pytest.fixture
def orchestrator(stylists, flags) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        stylists=stylists,
        encoder=MediaEncoder(default_mime_type="image/jpeg"),
        flags=flags,
    )


@pytest.fixture
def events(orchestrator) -> list:
    """Every WorkflowEvent the orchestrator emits, in order."""
    captured = []

    async def listener(event):
        captured.append(event)

    orchestrator.subscribe(listener)
    return captured


@pytest.fixture
def registry(stylists) -> SessionRegistry:
    return SessionRegistry(stylists_factory=lambda: stylists)


@pytest.fixture
async def client(registry):
    app = create_app()
    app.dependency_overrides[get_session_registry] = lambda: registry
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
