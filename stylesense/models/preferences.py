"""
Questionnaire answers. Snapshotted at submission time and never mutated.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Presentation(str, Enum):
    """How the user wants to be perceived."""
    CONFIDENT_PROFESSIONAL = "Confident & Professional"
    FRIENDLY_APPROACHABLE = "Friendly & Approachable"
    ELEGANT_SOPHISTICATED = "Elegant & Sophisticated"
    CREATIVE_BOLD = "Creative & Bold"
    RELAXED_EFFORTLESS = "Relaxed & Effortless"


class Budget(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    NONE = "None"

    @property
    def label(self) -> str:
        """Display range shown next to the budget choice."""
        return _BUDGET_LABELS[self]


_BUDGET_LABELS = {
    Budget.LOW: "Low (£0 - £50)",
    Budget.MEDIUM: "Medium (£50 - £150)",
    Budget.HIGH: "High (£150+)",
    Budget.NONE: "None (Use what I have)",
}


# Ordered from least to most formal.
FORMALITY_SCALE = ("Casual", "Smart Casual", "Cocktail", "Formal", "Black Tie")


class UserPreferences(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event: str = Field(min_length=1)
    presentation: Presentation
    mood: str = ""
    weather: str = ""
    color_preference: str = Field(default="", alias="colorPreference")
    budget: Budget = Budget.MEDIUM

    @field_validator("event")
    @classmethod
    def _event_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("event is required")
        return value
