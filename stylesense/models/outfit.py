"""
Outfit result types shared by the stylist agents and the orchestrator.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class GroundingLink:
    """A web citation returned alongside a search-augmented reply."""
    uri: str
    title: Optional[str] = None

    def to_dict(self) -> dict:
        return {"uri": self.uri, "title": self.title}


@dataclass(frozen=True)
class Recommendation:
    """What the Recommendation Agent hands back: rationale + shopping links."""
    text: str
    links: list[GroundingLink] = field(default_factory=list)


@dataclass(frozen=True)
class VisualImage:
    """Inline image payload, base64 text as returned by the model."""
    data: str
    mime_type: str = "image/png"


@dataclass(frozen=True)
class OutfitResult:
    """
    The final recommendation.

    Published once the text is ready; visual_image stays None until the
    background rendering step merges it in.
    """

    recommendation_text: str
    grounding_links: list[GroundingLink] = field(default_factory=list)
    visual_image: Optional[VisualImage] = None

    def shopping_links(self, limit: int = 4) -> list[GroundingLink]:
        return self.grounding_links[:limit]

    def to_dict(self) -> dict:
        return {
            "recommendation_text": self.recommendation_text,
            "grounding_links": [link.to_dict() for link in self.grounding_links],
            "shopping_links": [link.to_dict() for link in self.shopping_links()],
            "visual_image": self.visual_image.data if self.visual_image else None,
            "visual_mime_type": self.visual_image.mime_type if self.visual_image else None,
        }
