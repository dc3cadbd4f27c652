"""Configuration module for the AI tool survey service."""

from .settings import (
    SOURCE_ORDER,
    LoggingConfig,
    ScheduleConfig,
    SurveyConfig,
)

__all__ = [
    'SOURCE_ORDER',
    'LoggingConfig',
    'ScheduleConfig',
    'SurveyConfig',
]
