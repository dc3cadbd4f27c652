"""GitHub surveyor: recently created, well-starred repositories per topic."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from indexer.catalog_store import CatalogStore
from indexer.models import Tool, ToolSource
from sources.loader import SourceConfig

from .classify import calculate_popularity_score, categorize_by_keywords, extract_capabilities
from .fetcher import FetchError, SurveyFetcher
from .surveyor import BaseSurveyor, SurveyResult

logger = logging.getLogger(__name__)

API_KEYWORDS = ("api", "rest", "graphql", "endpoint", "sdk")
README_EXCERPT_CHARS = 500
MIN_STARS = 50


def has_api(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in API_KEYWORDS)


class GitHubSurveyor(BaseSurveyor):
    """Searches GitHub topics for new AI repositories."""

    source_name = ToolSource.GITHUB.value
    default_config = {
        "base_url": "https://api.github.com",
        "dimensions": [
            "artificial-intelligence",
            "machine-learning",
            "deep-learning",
            "llm",
            "large-language-model",
            "ai-agents",
            "computer-vision",
            "nlp",
            "natural-language-processing",
        ],
        "rate_limit": 1.0,
        "item_delay": 0.1,
    }

    def __init__(self, store: CatalogStore, fetcher: SurveyFetcher,
                 config: Optional[SourceConfig] = None, token: Optional[str] = None):
        super().__init__(store, fetcher, config)
        self.token = token

    def _headers(self, accept: str = "application/vnd.github+json") -> Dict[str, str]:
        headers = {"Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def search_query(self, topic: str) -> str:
        since = (datetime.now(timezone.utc) - timedelta(days=self.config.lookback_days)).date()
        return f"topic:{topic} created:>{since.isoformat()} stars:>{MIN_STARS}"

    async def survey(self) -> SurveyResult:
        result = SurveyResult()
        await self.survey_dimensions(result, self._survey_topic)
        return result

    async def _survey_topic(self, topic: str, result: SurveyResult):
        base = self.config.base_url.rstrip("/")
        params = urlencode({
            "q": self.search_query(topic),
            "sort": "stars",
            "order": "desc",
            "per_page": self.config.max_results,
        })
        page = await self.fetch(f"{base}/search/repositories?{params}", headers=self._headers())
        repos = page.json().get("items") or []

        for repo in repos:
            readme = await self._readme_excerpt(repo.get("full_name"))
            tool = self.repo_to_tool(repo, readme)
            if tool is not None:
                await self.store_tool(tool, result)
            if self.config.item_delay:
                await self.courtesy_delay(self.config.item_delay)

        logger.info(f"GitHub topic {topic}: {len(repos)} repositories")

    async def _readme_excerpt(self, full_name: Optional[str]) -> str:
        """First characters of a repository README, or '' when unavailable."""
        if not full_name:
            return ""
        base = self.config.base_url.rstrip("/")
        try:
            page = await self.fetcher.fetch_with_retry(
                f"{base}/repos/{full_name}/readme",
                headers=self._headers("application/vnd.github.v3.raw"),
                max_retries=1,
            )
        except FetchError as e:
            logger.debug(f"No README for {full_name}: {e}")
            return ""
        return page.text[:README_EXCERPT_CHARS]

    def repo_to_tool(self, repo: Dict[str, Any], readme: str = "") -> Optional[Tool]:
        full_name = repo.get("full_name")
        url = repo.get("html_url")
        if not full_name or not url:
            return None

        description = repo.get("description") or ""
        # README excerpt only informs classification; it is not stored
        text = f"{description} {readme}".strip()
        license_info = repo.get("license") or {}

        return Tool(
            name=full_name,
            description=description or f"GitHub repository: {full_name}",
            url=url,
            source=self.source_name,
            category=categorize_by_keywords(text),
            subcategory=repo.get("language"),
            capabilities=extract_capabilities(text),
            api_available=has_api(text),
            open_source=not repo.get("private", False),
            pricing_model="free",
            popularity_score=calculate_popularity_score(
                stars=repo.get("stargazers_count"),
                views=repo.get("watchers_count"),
            ),
            metadata={
                "language": repo.get("language"),
                "stars": repo.get("stargazers_count"),
                "forks": repo.get("forks_count"),
                "open_issues": repo.get("open_issues_count"),
                "topics": repo.get("topics") or [],
                "created_at": repo.get("created_at"),
                "updated_at": repo.get("updated_at"),
                "license": license_info.get("name"),
            },
        )
