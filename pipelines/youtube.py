"""YouTube surveyor: recent videos that mention known AI tools."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from indexer.catalog_store import CatalogStore
from indexer.models import Tool, ToolSource
from sources.loader import SourceConfig

from .classify import calculate_popularity_score, categorize_by_keywords, extract_capabilities
from .fetcher import SurveyFetcher
from .surveyor import BaseSurveyor, SurveyResult

logger = logging.getLogger(__name__)

MISSING_KEY_ERROR = "YouTube API key not configured"

TOOL_MENTION_PATTERNS = [
    re.compile(r"\b(ChatGPT|GPT-4|Claude|Gemini|LLaMA|Mistral)\b", re.IGNORECASE),
    re.compile(r"\b(Stable Diffusion|DALL-E|Midjourney)\b", re.IGNORECASE),
    re.compile(r"\b(LangChain|AutoGPT|BabyAGI)\b", re.IGNORECASE),
    re.compile(r"\b(PyTorch|TensorFlow|JAX|Hugging Face)\b", re.IGNORECASE),
]


def extract_tool_mentions(text: str) -> List[str]:
    """Known tool names mentioned in the text, as written, without repeats."""
    mentions: List[str] = []
    for pattern in TOOL_MENTION_PATTERNS:
        for match in pattern.finditer(text or ""):
            if match.group(0) not in mentions:
                mentions.append(match.group(0))
    return mentions


class YouTubeSurveyor(BaseSurveyor):
    """Searches YouTube for recent AI tool coverage.

    Requires a YouTube Data API key; without one the survey reports a
    single configuration error instead of fetching anything.
    """

    source_name = ToolSource.YOUTUBE.value
    default_config = {
        "base_url": "https://www.googleapis.com/youtube/v3",
        "dimensions": [
            "AI tools new",
            "machine learning tools",
            "LLM applications",
            "AI agents tutorial",
            "latest AI developments",
        ],
        "rate_limit": 1.0,
        "max_results": 10,
    }

    def __init__(self, store: CatalogStore, fetcher: SurveyFetcher,
                 config: Optional[SourceConfig] = None, api_key: Optional[str] = None):
        super().__init__(store, fetcher, config)
        self.api_key = api_key

    async def survey(self) -> SurveyResult:
        result = SurveyResult()
        if not self.api_key:
            logger.warning("YouTube API key not set, skipping YouTube survey")
            result.add_error(MISSING_KEY_ERROR)
            return result

        await self.survey_dimensions(result, self._survey_query)
        return result

    async def _survey_query(self, query: str, result: SurveyResult):
        published_after = datetime.now(timezone.utc) - timedelta(days=self.config.lookback_days)
        params = urlencode({
            "part": "snippet",
            "q": query,
            "type": "video",
            "publishedAfter": published_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "order": "relevance",
            "maxResults": self.config.max_results,
            "key": self.api_key,
        })
        page = await self.fetch(f"{self.config.base_url.rstrip('/')}/search?{params}")
        data = page.json()

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RuntimeError(message or "YouTube API error")

        kept = 0
        for item in data.get("items") or []:
            tool = self.video_to_tool(item)
            if tool is None:
                continue
            await self.store_tool(tool, result)
            kept += 1

        logger.info(f"YouTube query '{query}': {kept} videos mention known tools")

    def video_to_tool(self, item: Dict[str, Any]) -> Optional[Tool]:
        """Map a search item to a Tool; None when it names no known tool."""
        video_id = (item.get("id") or {}).get("videoId")
        snippet = item.get("snippet") or {}
        title = snippet.get("title") or ""
        description = snippet.get("description") or ""
        if not video_id or not title:
            return None

        text = f"{title} {description}"
        mentions = extract_tool_mentions(text)
        if not mentions:
            return None

        thumbnail = ((snippet.get("thumbnails") or {}).get("medium") or {}).get("url")
        return Tool(
            name=f"YouTube: {title}",
            description=description,
            url=f"https://www.youtube.com/watch?v={video_id}",
            source=self.source_name,
            category=categorize_by_keywords(text),
            subcategory="Video Tutorial",
            capabilities=extract_capabilities(text),
            api_available=False,
            open_source=False,
            pricing_model="free",
            # Search results carry no engagement counts
            popularity_score=calculate_popularity_score(),
            metadata={
                "channel": snippet.get("channelTitle"),
                "published_at": snippet.get("publishedAt"),
                "thumbnail": thumbnail,
                "tools_mentioned": mentions,
            },
        )
