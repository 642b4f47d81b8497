"""
Stylist agents — the four Gemini calls behind an outfit recommendation.

  Vision Agent         → describe_garment(photo)
  Intent Agent         → synthesize_strategy(preferences)
  Recommendation Agent → recommend_outfit(description, strategy)  (+ Google Search)
  Visual               → render_visual(description)               (native image output)

Async wrapper around the sync google-genai SDK (calls run in a worker thread).

Every operation is fail-soft: a transport/model error or a timeout is logged
and replaced by a typed fallback (text, empty link list, or no image), so one
flaky stage never aborts the workflow.
"""

import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..core.config import Settings, get_settings
from ..core.flags import FeatureFlags, get_flags
from ..models import FORMALITY_SCALE, GroundingLink, Recommendation, UserPreferences, VisualImage
from .media import EncodedMedia

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ── Fallbacks ────────────────────────────────────────────────────────

VISION_EMPTY = "I couldn't analyze the image clearly."
VISION_FALLBACK = "Error analyzing the clothing image."
INTENT_EMPTY = "Could not determine intent."
INTENT_FALLBACK = "Error analyzing user intent."
RECOMMENDATION_EMPTY = "No recommendations generated."
RECOMMENDATION_FALLBACK = "Error fetching recommendations."


# ── Gemini client singleton ──────────────────────────────────────────

_gemini_client = None


def _get_gemini_client():
    """Lazy-load and cache the google-genai client."""
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    try:
        from google import genai
        settings = get_settings()
        api_key = settings.gemini_api_key
        if not api_key:
            raise ValueError("GEMINI_API_KEY is required for the stylist agents")
        _gemini_client = genai.Client(api_key=api_key)
        return _gemini_client
    except ImportError:
        raise ImportError(
            "google-genai package is required for the stylist agents. "
            "Install it with: pip install google-genai"
        )


# ── Resilient call ───────────────────────────────────────────────────

async def attempt(
    operation: Callable[[], Awaitable[T]],
    fallback: T,
    *,
    stage: str,
    timeout: Optional[float] = None,
) -> T:
    """
    Await operation(); on any error or timeout, log and return fallback.

    Cancellation still propagates.
    """
    try:
        return await asyncio.wait_for(operation(), timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs — using fallback", stage, timeout)
    except Exception as e:
        logger.error("%s error: %s", stage, e)
    return fallback


# ── Prompt builders ──────────────────────────────────────────────────

VISION_PROMPT = (
    "You are the Vision Agent. Analyze this image of clothing. Describe the items "
    "in detail, including color, fabric texture, style (formal/casual), and condition. "
    "Be concise but descriptive."
)


def build_intent_prompt(prefs: UserPreferences) -> str:
    scale = ", ".join(FORMALITY_SCALE)
    return f"""You are the Intent Agent.
User Inputs:
- Event: {prefs.event}
- Budget: {prefs.budget.label}
- Mood: {prefs.mood}
- Presentation: {prefs.presentation.value}
- Weather: {prefs.weather}
- Color Prefs: {prefs.color_preference}

Task: Synthesize a brief "Style Strategy".
CRITICAL: Explicitly state the required Formality Level, choosing exactly one of
(from least to most formal): {scale}. Base it on the Event. For example, Weddings
are typically Formal or Cocktail.
Describe the target look, fabrics, and vibe required to meet this formality."""


def build_recommendation_prompt(
    garment_description: str,
    strategy: str,
    retailer_name: str,
    retailer_domain: str,
) -> str:
    return f"""You are the Recommendation Agent.

Context:
- User's Uploaded Item (Vision Analysis): "{garment_description}"
- Event & Formality Strategy (Intent Analysis): "{strategy}"

Your Goal: Create a cohesive outfit using the User's Item as the core piece.

Rules:
1. MANDATORY INCLUSION: You MUST use the User's Uploaded Item in the final outfit. Do NOT replace it.
   Make it work for the event by adding the right jacket, shoes, or accessories.
2. Styling Strategy: If the User's Item is too casual for the event, explain how to dress it up.
   If it's too formal, explain how to dress it down.
3. SEARCH: Use the search tool to find 3-4 specific COMPLEMENTARY items on "{retailer_name}"
   (site:{retailer_domain}) that complete the look. Do NOT search for the item the user already owns.
4. Output Text Rules:
   - Write a VERY SHORT summary explaining the look.
   - Do NOT mention specific brand names.
   - Do NOT list the items in the text.
   - Focus on the "Why": "This creates a balanced silhouette..."
5. Conciseness: STRICT LIMIT of 40 words and 2 sentences. Direct and punchy."""


def build_visual_prompt(description: str) -> str:
    return (
        "A realistic fashion photography shot of a mannequin wearing the following outfit: "
        f"{description}. Neutral studio background, professional lighting. "
        "High resolution, detailed fabrics."
    )


def visual_description(garment_description: str, strategy: str) -> str:
    """What the visual step renders: the garment styled for the strategy."""
    return f"{garment_description} styled for {strategy}"


# ── Response parsing ─────────────────────────────────────────────────

def _first_candidate(response: Any):
    candidates = getattr(response, "candidates", None) or []
    return candidates[0] if candidates else None


def extract_text(response: Any) -> str:
    return (getattr(response, "text", None) or "").strip()


def extract_grounding_links(response: Any) -> list[GroundingLink]:
    """Web citations from the first candidate, in order. Chunks without a URI are skipped."""
    candidate = _first_candidate(response)
    metadata = getattr(candidate, "grounding_metadata", None) if candidate else None
    chunks = getattr(metadata, "grounding_chunks", None) or []

    links = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None) if web else None
        if uri:
            links.append(GroundingLink(uri=uri, title=getattr(web, "title", None) or None))
    return links


def extract_inline_image(response: Any) -> Optional[VisualImage]:
    """First inline image part of the first candidate, as base64 text."""
    candidate = _first_candidate(response)
    content = getattr(candidate, "content", None) if candidate else None
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is None or not inline.data:
            continue
        data = inline.data
        if isinstance(data, bytes):
            data = base64.b64encode(data).decode("ascii")
        return VisualImage(data=data, mime_type=inline.mime_type or "image/png")
    return None


# ── Agents ───────────────────────────────────────────────────────────

class StylistClient:
    """The four stylist operations. Stateless apart from the shared SDK client."""

    def __init__(
        self,
        client=None,
        settings: Optional[Settings] = None,
        flags: Optional[FeatureFlags] = None,
    ):
        self._client = client
        self.settings = settings or get_settings()
        self.flags = flags or get_flags()

    @property
    def client(self):
        if self._client is None:
            self._client = _get_gemini_client()
        return self._client

    @property
    def retailer_name(self) -> str:
        return self.settings.retailer_name

    # ── Sync calls (run in a worker thread) ──────────────────────────

    def _sync_describe(self, media: EncodedMedia) -> str:
        from google.genai import types

        response = self.client.models.generate_content(
            model=self.settings.text_model,
            contents=[
                types.Part(inline_data=types.Blob(
                    mime_type=media.mime_type,
                    data=base64.b64decode(media.data),
                )),
                types.Part(text=VISION_PROMPT),
            ],
        )
        return extract_text(response) or VISION_EMPTY

    def _sync_synthesize(self, prefs: UserPreferences) -> str:
        response = self.client.models.generate_content(
            model=self.settings.text_model,
            contents=build_intent_prompt(prefs),
        )
        return extract_text(response) or INTENT_EMPTY

    def _sync_recommend(self, garment_description: str, strategy: str) -> Recommendation:
        from google.genai import types

        prompt = build_recommendation_prompt(
            garment_description,
            strategy,
            self.settings.retailer_name,
            self.settings.retailer_domain,
        )
        config = None
        if self.flags.use_web_search:
            config = types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            )

        response = self.client.models.generate_content(
            model=self.settings.text_model,
            contents=prompt,
            config=config,
        )
        links = extract_grounding_links(response)
        logger.info("Recommendation Agent: %d grounding link(s)", len(links))
        return Recommendation(text=extract_text(response) or RECOMMENDATION_EMPTY, links=links)

    def _sync_render(self, description: str) -> Optional[VisualImage]:
        from google.genai import types

        response = self.client.models.generate_content(
            model=self.settings.image_model,
            contents=build_visual_prompt(description),
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
        image = extract_inline_image(response)
        if image is None:
            logger.warning("Gemini returned no image for the outfit visual")
        return image

    # ── Async public API ─────────────────────────────────────────────

    async def describe_garment(self, media: EncodedMedia) -> str:
        return await attempt(
            lambda: asyncio.to_thread(self._sync_describe, media),
            VISION_FALLBACK,
            stage="Vision Agent",
            timeout=self.settings.agent_call_timeout,
        )

    async def synthesize_strategy(self, prefs: UserPreferences) -> str:
        return await attempt(
            lambda: asyncio.to_thread(self._sync_synthesize, prefs),
            INTENT_FALLBACK,
            stage="Intent Agent",
            timeout=self.settings.agent_call_timeout,
        )

    async def recommend_outfit(self, garment_description: str, strategy: str) -> Recommendation:
        return await attempt(
            lambda: asyncio.to_thread(self._sync_recommend, garment_description, strategy),
            Recommendation(text=RECOMMENDATION_FALLBACK, links=[]),
            stage="Recommendation Agent",
            timeout=self.settings.agent_call_timeout,
        )

    async def render_visual(self, description: str) -> Optional[VisualImage]:
        return await attempt(
            lambda: asyncio.to_thread(self._sync_render, description),
            None,
            stage="Image Generation",
            timeout=self.settings.visual_call_timeout,
        )
