"""Per-catalog survey settings, one YAML file per external catalog."""

from .loader import SourceConfig, SourceLoader, load_all_sources, load_source_config

__all__ = [
    'SourceConfig',
    'SourceLoader',
    'load_all_sources',
    'load_source_config',
]
