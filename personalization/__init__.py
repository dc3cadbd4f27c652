"""Project analysis and tool recommendations."""

from .engine import (
    ProjectNotFoundError,
    RecommendationEngine,
    UserPreferences,
    calculate_relevance,
    generate_recommendation_reason,
)
from .scanner import detect_tech_stack, infer_ai_needs, walk_directory

__all__ = [
    'ProjectNotFoundError',
    'RecommendationEngine',
    'UserPreferences',
    'calculate_relevance',
    'generate_recommendation_reason',
    'detect_tech_stack',
    'infer_ai_needs',
    'walk_directory',
]
