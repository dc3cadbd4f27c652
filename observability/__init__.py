"""Observability package: logging setup for the survey service."""

from .logging import ColoredFormatter, JSONFormatter, setup_logging

__all__ = [
    'ColoredFormatter',
    'JSONFormatter',
    'setup_logging',
]
