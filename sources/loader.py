"""Per-catalog survey settings.

Every external catalog has a `<name>.yaml` next to this module holding its
endpoint, query dimensions, courtesy delays and retry policy. A file is
re-read only when its mtime changes.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

SOURCES_DIR = Path(__file__).parent
DEFAULT_BACKOFF = {"base": 1.0, "max": 60.0}


@dataclass
class SourceConfig:
    """Survey settings for one external catalog."""
    name: str
    base_url: str
    dimensions: List[str] = field(default_factory=list)
    rate_limit: float = 1.0     # seconds between dimensions
    item_delay: float = 0.0     # seconds between per-item detail requests
    max_results: int = 20
    lookback_days: int = 7
    max_retries: int = 3
    backoff: Optional[Dict[str, float]] = None

    def __post_init__(self):
        problems = []
        if not self.name:
            problems.append("name is required")
        if not self.base_url:
            problems.append("base_url is required")
        if self.rate_limit < 0 or self.item_delay < 0:
            problems.append("delays cannot be negative")
        if self.max_results < 1:
            problems.append("max_results must be positive")
        if self.lookback_days < 1:
            problems.append("lookback_days must be positive")
        if not 1 <= self.max_retries <= 10:
            problems.append("max_retries must be between 1 and 10")
        if problems:
            raise ValueError(f"Invalid source '{self.name}': {'; '.join(problems)}")

        self.backoff = {**DEFAULT_BACKOFF, **(self.backoff or {})}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceConfig':
        """Build from parsed YAML, coercing numbers and ignoring unknown keys."""
        unknown = set(data) - _FIELD_NAMES
        if unknown:
            logger.warning(f"Ignoring unknown settings for source {data.get('name')}: "
                           f"{', '.join(sorted(unknown))}")

        values = {key: data[key] for key in _FIELD_NAMES if key in data}
        values["dimensions"] = [str(d) for d in values.get("dimensions") or []]
        for key in ("rate_limit", "item_delay"):
            if key in values:
                values[key] = float(values[key])
        for key in ("max_results", "lookback_days", "max_retries"):
            if key in values:
                values[key] = int(values[key])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_FIELD_NAMES = frozenset(f.name for f in fields(SourceConfig))


class SourceLoader:
    """Reads source YAML files from one directory, caching by mtime."""

    def __init__(self, sources_dir: Optional[Path] = None):
        self.sources_dir = Path(sources_dir) if sources_dir else SOURCES_DIR
        self._cache: Dict[str, Tuple[float, SourceConfig]] = {}

    def path_for(self, source_name: str) -> Path:
        return self.sources_dir / f"{source_name}.yaml"

    def load_source_config(self, source_name: str) -> Optional[SourceConfig]:
        """Settings for one source; None when its file is missing or invalid.

        The file name is authoritative: a different `name` inside the file
        is logged and overridden.
        """
        path = self.path_for(source_name)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            logger.warning(f"No settings file for source {source_name} at {path}")
            return None

        cached = self._cache.get(source_name)
        if cached and cached[0] >= mtime:
            return cached[1]

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("expected a mapping at the top level")
            declared = data.get("name")
            if declared and declared != source_name:
                logger.warning(f"{path} declares name '{declared}', using '{source_name}'")
            config = SourceConfig.from_dict({**data, "name": source_name})
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.error(f"Skipping source {source_name}: cannot load {path}: {e}")
            return None

        self._cache[source_name] = (mtime, config)
        logger.debug(f"Loaded settings for source {source_name}")
        return config

    def load_all_sources(self) -> Dict[str, SourceConfig]:
        """Every valid source in the directory, keyed by file stem."""
        if not self.sources_dir.is_dir():
            logger.warning(f"Sources directory not found: {self.sources_dir}")
            return {}

        configs = {}
        for path in sorted(self.sources_dir.glob("*.yaml")):
            config = self.load_source_config(path.stem)
            if config is not None:
                configs[path.stem] = config
        return configs

    def reload_cache(self):
        self._cache.clear()


default_loader = SourceLoader()


def load_source_config(source_name: str) -> Optional[SourceConfig]:
    return default_loader.load_source_config(source_name)


def load_all_sources() -> Dict[str, SourceConfig]:
    return default_loader.load_all_sources()
