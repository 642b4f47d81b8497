"""
Domain models. Imported here so callers can use ``from stylesense.models import ...``.
"""

from .preferences import FORMALITY_SCALE, Budget, Presentation, UserPreferences
from .outfit import GroundingLink, OutfitResult, Recommendation, VisualImage
