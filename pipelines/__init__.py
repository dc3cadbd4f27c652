"""Survey pipelines for the AI tool catalog.

Provides the retrying fetcher, shared classification helpers and one
surveyor per external catalog.
"""

from .fetcher import FetchedPage, FetchError, SurveyFetcher
from .classify import calculate_popularity_score, categorize_by_keywords, extract_capabilities
from .surveyor import BaseSurveyor, SurveyResult, SurveyStats
from .huggingface import HuggingFaceSurveyor
from .github import GitHubSurveyor
from .youtube import YouTubeSurveyor
from .arxiv import ArxivSurveyor

__all__ = [
    # Fetching
    'FetchedPage',
    'FetchError',
    'SurveyFetcher',

    # Classification
    'calculate_popularity_score',
    'categorize_by_keywords',
    'extract_capabilities',

    # Surveyors
    'BaseSurveyor',
    'SurveyResult',
    'SurveyStats',
    'HuggingFaceSurveyor',
    'GitHubSurveyor',
    'YouTubeSurveyor',
    'ArxivSurveyor',
]
