"""arXiv surveyor: newest papers per category that describe tools or systems."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import feedparser

from indexer.models import Tool, ToolSource

from .classify import GENERAL_CATEGORY, extract_capabilities
from .surveyor import BaseSurveyor, SurveyResult

logger = logging.getLogger(__name__)

# arXiv asks API clients for at least 3 seconds between requests
MIN_REQUEST_INTERVAL = 3.0

ARXIV_CATEGORY_MAP = {
    "cs.AI": GENERAL_CATEGORY,
    "cs.LG": "ML Framework",
    "cs.CL": "NLP",
    "cs.CV": "Computer Vision",
    "cs.RO": "Robotics",
}

TOOL_KEYWORDS = ("tool", "framework", "implementation", "library", "system", "application", "benchmark")
CODE_KEYWORDS = ("code available", "github", "implementation", "open source", "repository", "source code")


def _clean(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def describes_tool(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in TOOL_KEYWORDS)


def mentions_code(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in CODE_KEYWORDS)


def parse_feed(xml_text: str) -> List[Dict[str, Any]]:
    """Parse an arXiv Atom response into paper dicts.

    Entries missing a title, summary or id are dropped.
    """
    feed = feedparser.parse(xml_text)
    if feed.bozo and not feed.entries:
        raise ValueError(f"Malformed arXiv feed: {feed.get('bozo_exception')}")

    papers = []
    for entry in feed.entries:
        title = _clean(entry.get("title"))
        summary = _clean(entry.get("summary"))
        paper_id = (entry.get("id") or "").strip()
        if not (title and summary and paper_id):
            continue
        papers.append({
            "id": paper_id,
            "title": title,
            "summary": summary,
            "published": entry.get("published"),
            "authors": [a.get("name") for a in entry.get("authors", []) if a.get("name")],
            "categories": [t.get("term") for t in entry.get("tags", []) if t.get("term")],
        })
    return papers


class ArxivSurveyor(BaseSurveyor):
    """Surveys recent arXiv submissions in AI-related categories."""

    source_name = ToolSource.ARXIV.value
    default_config = {
        "base_url": "http://export.arxiv.org/api/query",
        "dimensions": ["cs.AI", "cs.LG", "cs.CL", "cs.CV", "cs.RO"],
        "rate_limit": MIN_REQUEST_INTERVAL,
        "max_results": 20,
    }

    async def courtesy_delay(self, seconds: Optional[float] = None):
        delay = self.config.rate_limit if seconds is None else seconds
        await super().courtesy_delay(max(delay, MIN_REQUEST_INTERVAL))

    async def survey(self) -> SurveyResult:
        result = SurveyResult()
        await self.survey_dimensions(result, self._survey_category)
        return result

    async def _survey_category(self, category: str, result: SurveyResult):
        params = urlencode({
            "search_query": f"cat:{category}",
            "sortBy": "submittedDate",
            "sortOrder": "descending",
            "max_results": self.config.max_results,
        })
        page = await self.fetch(f"{self.config.base_url}?{params}")
        papers = parse_feed(page.text)

        kept = 0
        for paper in papers:
            tool = self.paper_to_tool(paper, category)
            if tool is None:
                continue
            await self.store_tool(tool, result)
            kept += 1

        logger.info(f"arXiv {category}: {kept} of {len(papers)} papers describe tools")

    def paper_to_tool(self, paper: Dict[str, Any], category: str) -> Optional[Tool]:
        text = f"{paper['title']} {paper['summary']}"
        if not describes_tool(text):
            return None

        return Tool(
            name=f"arXiv: {paper['title']}",
            description=paper["summary"],
            url=paper["id"],
            source=self.source_name,
            category=ARXIV_CATEGORY_MAP.get(category, GENERAL_CATEGORY),
            subcategory=category,
            capabilities=extract_capabilities(text),
            api_available=False,
            open_source=mentions_code(text),
            pricing_model="free",
            # arXiv publishes no engagement metrics
            popularity_score=0.0,
            metadata={
                "authors": paper.get("authors") or [],
                "published": paper.get("published"),
                "arxiv_id": paper["id"],
                "categories": paper.get("categories") or [],
            },
        )
