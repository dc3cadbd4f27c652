"""Survey configuration.

Settings come from `config/survey.yaml` (or the file named by
AI_SURVEY_CONFIG) with environment variable overrides for the database
path, survey times, timezone, API credentials and log level.
"""

import os
import re
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "survey.yaml"

# Fixed adapter order for a survey cycle
SOURCE_ORDER = ["huggingface", "github", "youtube", "arxiv"]

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ScheduleConfig(BaseModel):
    """Daily survey schedule."""
    times: List[str] = Field(default_factory=lambda: ["06:00", "14:00", "22:00"],
                             description="Daily run times as HH:MM")
    timezone: str = Field(default="UTC", description="Timezone the run times are expressed in")
    stagger_seconds: float = Field(default=5.0, ge=0, description="Delay between adapter starts")

    @field_validator("times")
    @classmethod
    def validate_times(cls, times: List[str]) -> List[str]:
        cleaned = []
        for value in times:
            value = value.strip()
            if not _TIME_RE.match(value):
                raise ValueError(f"Invalid survey time '{value}', expected HH:MM")
            if value not in cleaned:
                cleaned.append(value)
        return cleaned


class LoggingConfig(BaseModel):
    """Logging output settings."""
    level: str = Field(default="INFO", description="Root log level")
    json_format: bool = Field(default=False, alias="json", description="Emit JSON log lines on the console")
    file: Optional[str] = Field(default=None, description="Optional JSON log file")

    model_config = {"populate_by_name": True}


class SurveyConfig(BaseModel):
    """Top-level configuration for the survey service."""
    survey_schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    data_sources: Dict[str, bool] = Field(
        default_factory=lambda: {name: True for name in SOURCE_ORDER},
        description="Source name to enabled flag",
    )
    database_path: str = Field(default="./data/ai_knowledge.db", description="SQLite catalog path")
    youtube_api_key: Optional[str] = Field(default=None, description="YouTube Data API key")
    github_token: Optional[str] = Field(default=None, description="GitHub API token")
    sources_dir: Optional[str] = Field(default=None, description="Directory holding per-source YAML files")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("data_sources", mode="before")
    @classmethod
    def normalize_sources(cls, value):
        """Accept both `name: true` and `name: {enabled: true}` forms."""
        if not isinstance(value, dict):
            return value
        normalized = {}
        for name, setting in value.items():
            if isinstance(setting, dict):
                setting = setting.get("enabled", True)
            normalized[name] = bool(setting)
        return normalized

    @field_validator("data_sources")
    @classmethod
    def validate_sources(cls, value: Dict[str, bool]) -> Dict[str, bool]:
        unknown = set(value) - set(SOURCE_ORDER)
        if unknown:
            raise ValueError(f"Unknown data sources: {', '.join(sorted(unknown))}")
        return value

    def enabled_sources(self) -> List[str]:
        """Enabled source names in survey order."""
        return [name for name in SOURCE_ORDER if self.data_sources.get(name, False)]

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> 'SurveyConfig':
        """Load configuration from YAML; a missing file yields defaults."""
        path = Path(path) if path else DEFAULT_CONFIG_PATH
        if not path.exists():
            logger.warning(f"Survey configuration not found at {path}, using defaults")
            return cls()

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")

        database = data.pop("database", None)
        if isinstance(database, dict) and "path" in database:
            data["database_path"] = database["path"]

        return cls(**data)

    @classmethod
    def from_env(cls, path: Optional[Path] = None) -> 'SurveyConfig':
        """Load the YAML configuration and apply environment overrides."""
        config_path = path or os.getenv('AI_SURVEY_CONFIG')
        config = cls.from_yaml(Path(config_path) if config_path else None)

        updates = {}
        if os.getenv('DATABASE_PATH'):
            updates['database_path'] = os.getenv('DATABASE_PATH')
        if os.getenv('YOUTUBE_API_KEY'):
            updates['youtube_api_key'] = os.getenv('YOUTUBE_API_KEY')
        if os.getenv('GITHUB_TOKEN'):
            updates['github_token'] = os.getenv('GITHUB_TOKEN')

        schedule = config.survey_schedule.model_dump()
        if os.getenv('SURVEY_TIMES'):
            schedule['times'] = [t for t in os.getenv('SURVEY_TIMES').split(',') if t.strip()]
        if os.getenv('SURVEY_TIMEZONE'):
            schedule['timezone'] = os.getenv('SURVEY_TIMEZONE')

        logging_config = config.logging.model_dump()
        if os.getenv('LOG_LEVEL'):
            logging_config['level'] = os.getenv('LOG_LEVEL')

        data = config.model_dump()
        data.update(updates)
        data['survey_schedule'] = ScheduleConfig(**schedule)
        data['logging'] = LoggingConfig(**logging_config)
        return cls(**data)
