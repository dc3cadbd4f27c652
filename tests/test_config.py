"""Tests for survey settings and per-source YAML configuration."""

import pytest
from pydantic import ValidationError

from config.settings import SOURCE_ORDER, ScheduleConfig, SurveyConfig
from sources.loader import SourceConfig, SourceLoader, load_all_sources

ENV_VARS = [
    "AI_SURVEY_CONFIG", "DATABASE_PATH", "YOUTUBE_API_KEY", "GITHUB_TOKEN",
    "SURVEY_TIMES", "SURVEY_TIMEZONE", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSurveyConfig:
    def test_defaults(self):
        config = SurveyConfig()

        assert config.survey_schedule.times == ["06:00", "14:00", "22:00"]
        assert config.survey_schedule.timezone == "UTC"
        assert config.database_path == "./data/ai_knowledge.db"
        assert config.enabled_sources() == SOURCE_ORDER

    def test_shipped_yaml_loads(self, clean_env):
        config = SurveyConfig.from_env()

        assert config.enabled_sources() == SOURCE_ORDER
        assert config.logging.level == "INFO"
        assert config.logging.json_format is False

    def test_yaml_file_with_nested_sections(self, tmp_path):
        path = tmp_path / "survey.yaml"
        path.write_text(
            "survey_schedule:\n"
            "  times: ['09:30']\n"
            "  timezone: Europe/Berlin\n"
            "data_sources:\n"
            "  github: {enabled: false}\n"
            "  arxiv: true\n"
            "database:\n"
            "  path: /tmp/catalog.db\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  json: true\n",
            encoding="utf-8",
        )

        config = SurveyConfig.from_yaml(path)

        assert config.survey_schedule.times == ["09:30"]
        assert config.survey_schedule.timezone == "Europe/Berlin"
        assert config.enabled_sources() == ["arxiv"]
        assert config.database_path == "/tmp/catalog.db"
        assert config.logging.json_format is True

    def test_missing_yaml_yields_defaults(self, tmp_path):
        config = SurveyConfig.from_yaml(tmp_path / "absent.yaml")
        assert config == SurveyConfig()

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("DATABASE_PATH", str(tmp_path / "env.db"))
        clean_env.setenv("SURVEY_TIMES", "08:00, 20:00,")
        clean_env.setenv("SURVEY_TIMEZONE", "America/New_York")
        clean_env.setenv("YOUTUBE_API_KEY", "yt")
        clean_env.setenv("GITHUB_TOKEN", "gh")
        clean_env.setenv("LOG_LEVEL", "WARNING")

        config = SurveyConfig.from_env()

        assert config.database_path == str(tmp_path / "env.db")
        assert config.survey_schedule.times == ["08:00", "20:00"]
        assert config.survey_schedule.timezone == "America/New_York"
        assert config.youtube_api_key == "yt"
        assert config.github_token == "gh"
        assert config.logging.level == "WARNING"

    def test_config_path_from_environment(self, clean_env, tmp_path):
        path = tmp_path / "alt.yaml"
        path.write_text("database:\n  path: alt.db\n", encoding="utf-8")
        clean_env.setenv("AI_SURVEY_CONFIG", str(path))

        assert SurveyConfig.from_env().database_path == "alt.db"

    def test_non_mapping_yaml_is_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- huggingface\n- github\n", encoding="utf-8")

        with pytest.raises(ValueError, match="expected a mapping"):
            SurveyConfig.from_yaml(path)

    def test_unknown_source_is_rejected(self):
        with pytest.raises(ValidationError):
            SurveyConfig(data_sources={"myspace": True})


class TestScheduleConfig:
    def test_times_are_deduplicated(self):
        assert ScheduleConfig(times=["06:00", " 06:00", "23:59"]).times == ["06:00", "23:59"]

    @pytest.mark.parametrize("value", ["24:00", "6:00", "06:60", "noon"])
    def test_invalid_times(self, value):
        with pytest.raises(ValidationError):
            ScheduleConfig(times=[value])

    def test_negative_stagger(self):
        with pytest.raises(ValidationError):
            ScheduleConfig(stagger_seconds=-1)


class TestSourceLoader:
    def test_shipped_sources(self):
        sources = load_all_sources()

        assert set(sources) == {"huggingface", "github", "youtube", "arxiv"}
        assert sources["arxiv"].rate_limit == 3.0
        assert sources["huggingface"].dimensions == ["models", "spaces"]

    def test_name_comes_from_file(self, tmp_path):
        (tmp_path / "custom.yaml").write_text("name: other\nbase_url: https://x\n", encoding="utf-8")

        config = SourceLoader(tmp_path).load_source_config("custom")

        assert config.name == "custom"
        assert config.backoff == {"base": 1.0, "max": 60.0}

    def test_invalid_files_are_ignored(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("name: bad\nbase_url: https://x\nmax_retries: 0\n", encoding="utf-8")
        (tmp_path / "broken.yaml").write_text("name: [unterminated\n", encoding="utf-8")
        (tmp_path / "empty.yaml").write_text("", encoding="utf-8")
        loader = SourceLoader(tmp_path)

        assert loader.load_source_config("bad") is None
        assert loader.load_source_config("broken") is None
        assert loader.load_source_config("empty") is None
        assert loader.load_source_config("missing") is None
        assert loader.load_all_sources() == {}

    def test_cache_until_reload(self, tmp_path):
        (tmp_path / "src.yaml").write_text("base_url: https://x\n", encoding="utf-8")
        loader = SourceLoader(tmp_path)

        first = loader.load_source_config("src")
        assert loader.load_source_config("src") is first

        loader.reload_cache()
        assert loader.load_source_config("src") is not first

    def test_source_config_validation(self):
        with pytest.raises(ValueError):
            SourceConfig(name="x", base_url="")
        with pytest.raises(ValueError):
            SourceConfig(name="x", base_url="https://x", rate_limit=-1)

    def test_round_trip_dict(self):
        config = SourceConfig(name="x", base_url="https://x", dimensions=["a"], item_delay=0.5)
        assert SourceConfig.from_dict(config.to_dict()) == config
