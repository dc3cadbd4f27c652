"""Recommendation engine.

Analyzes local projects into a (tech stack, AI needs) profile and scores
catalog tools against it with a fixed linear formula:

    needs match ratio * 0.4
    + 0.3 if a stack label overlaps the tool's implementation language
    + 0.2 if the tool category appears in the needs text (or is general)
    + popularity / 100 * 0.1

clamped to 1.0. A second, profile-driven path ranks tools by popularity
plus interest and preferred-category boosts.
"""

import logging
from pathlib import Path
from typing import AsyncIterator, List, Literal, Optional

from pydantic import BaseModel, Field

from indexer.catalog_store import CatalogStore
from indexer.models import Recommendation, Tool, UserProject

from .scanner import detect_tech_stack, infer_ai_needs, walk_directory

logger = logging.getLogger(__name__)

RELEVANCE_WEIGHTS = {
    "ai_needs": 0.4,
    "tech_stack": 0.3,
    "category": 0.2,
    "popularity": 0.1,
}

RELEVANCE_THRESHOLD = 0.3
MAX_RETURNED_RECOMMENDATIONS = 20
INTEREST_BOOST = 10
PREFERRED_CATEGORY_BOOST = 15
TOOL_PAGE_SIZE = 500


class ProjectNotFoundError(Exception):
    """Raised when recommendations are requested for an unknown project."""

    def __init__(self, project_id: int):
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


class UserPreferences(BaseModel):
    """Profile used by the non-project recommendation path."""
    interests: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    preferred_categories: List[str] = Field(default_factory=list)
    learning_style: Optional[Literal["visual", "hands-on", "reading", "mixed"]] = None
    experience_level: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    use_cases: List[str] = Field(default_factory=list)


def matched_needs(project: UserProject, tool: Tool) -> List[str]:
    """Project needs that overlap a tool capability as substrings, either way round."""
    capabilities = [c.lower() for c in tool.capabilities]
    matches = []
    for need in project.ai_needs:
        lowered = need.lower()
        if any(cap in lowered or lowered in cap for cap in capabilities):
            matches.append(need)
    return matches


def calculate_relevance(project: UserProject, tool: Tool) -> float:
    """Relevance of a tool to a project in [0, 1]."""
    score = 0.0

    if project.ai_needs and tool.capabilities:
        ratio = len(matched_needs(project, tool)) / max(len(project.ai_needs), 1)
        score += ratio * RELEVANCE_WEIGHTS["ai_needs"]

    language = tool.metadata.get("language")
    if project.tech_stack and isinstance(language, str) and language:
        language = language.lower()
        if any(s.lower() in language or language in s.lower() for s in project.tech_stack):
            score += RELEVANCE_WEIGHTS["tech_stack"]

    if tool.popularity_score:
        score += (tool.popularity_score / 100) * RELEVANCE_WEIGHTS["popularity"]

    if tool.category and project.ai_needs:
        category = tool.category.lower()
        needs_text = " ".join(n.lower() for n in project.ai_needs)
        if category in needs_text or "general" in category:
            score += RELEVANCE_WEIGHTS["category"]

    return min(1.0, score)


def generate_recommendation_reason(project: UserProject, tool: Tool, relevance: float) -> str:
    reasons = []
    if relevance > 0.8:
        reasons.append("Highly relevant to your project needs")
    elif relevance > 0.5:
        reasons.append("Good match for your project")
    else:
        reasons.append("May be useful for your project")

    needs = matched_needs(project, tool)
    if needs:
        reasons.append(f"Supports: {', '.join(needs[:2])}")
    if tool.open_source:
        reasons.append("Open source")
    if tool.api_available:
        reasons.append("API available")
    if tool.popularity_score > 50:
        reasons.append("Popular tool")

    return ". ".join(reasons) + "."


def _as_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


class RecommendationEngine:
    """Project analysis and tool recommendation over a catalog store."""

    def __init__(self, store: CatalogStore, page_size: int = TOOL_PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    async def _iter_tools(self) -> AsyncIterator[Tool]:
        offset = 0
        while True:
            page = await self.store.get_all_tools(limit=self.page_size, offset=offset)
            for tool in page:
                yield tool
            if len(page) < self.page_size:
                break
            offset += self.page_size

    async def analyze_project(self, path: str, name: Optional[str] = None) -> UserProject:
        """Scan a project directory and persist its profile.

        Every call inserts a new project row, even for a path analyzed before.

        Args:
            path: Project root directory
            name: Display name; defaults to the directory name

        Returns:
            The stored UserProject with its id

        Raises:
            FileNotFoundError: If path is not a directory
        """
        root = Path(path).expanduser()
        if not root.is_dir():
            raise FileNotFoundError(f"Project directory not found: {path}")

        root = root.resolve()
        logger.info(f"Analyzing project: {root}")

        files = walk_directory(root)
        tech_stack = detect_tech_stack(root, files)
        ai_needs = infer_ai_needs(root, tech_stack)
        project_name = name or root.name or "Unknown Project"

        project = UserProject(
            name=project_name,
            path=str(root),
            description=f"{root.name} project using {', '.join(tech_stack) or 'Unknown stack'}",
            tech_stack=tech_stack,
            ai_needs=ai_needs,
        )
        await self.store.insert_project(project)

        logger.info(f"Project {project.id} analyzed: stack={tech_stack}, needs={ai_needs}")
        return project

    async def generate_recommendations(self, project_id: int) -> List[Recommendation]:
        """Score every catalog tool for a project.

        Every tool above the relevance threshold is persisted as a pending
        recommendation; the best twenty are returned.

        Raises:
            ProjectNotFoundError: If the project id is unknown
        """
        project = await self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        logger.info(f"Generating recommendations for project {project_id} ({project.name})")

        recommendations: List[Recommendation] = []
        async for tool in self._iter_tools():
            relevance = calculate_relevance(project, tool)
            if relevance <= RELEVANCE_THRESHOLD:
                continue

            tool.relevance_score = relevance
            recommendation = Recommendation(
                tool_id=tool.id,
                user_project_id=project_id,
                relevance_score=relevance,
                reason=generate_recommendation_reason(project, tool, relevance),
                tool=tool,
            )
            await self.store.insert_recommendation(recommendation)
            recommendations.append(recommendation)

        recommendations.sort(key=lambda r: r.relevance_score, reverse=True)
        logger.info(f"Generated {len(recommendations)} recommendations for project {project_id}")
        return recommendations[:MAX_RETURNED_RECOMMENDATIONS]

    async def set_user_preferences(self, prefs: UserPreferences):
        await self.store.set_user_profile("interests", prefs.interests, "preferences")
        await self.store.set_user_profile("skills", prefs.skills, "preferences")
        await self.store.set_user_profile("preferred_categories", prefs.preferred_categories, "preferences")
        if prefs.learning_style:
            await self.store.set_user_profile("learning_style", prefs.learning_style, "preferences")
        if prefs.experience_level:
            await self.store.set_user_profile("experience_level", prefs.experience_level, "preferences")
        await self.store.set_user_profile("use_cases", prefs.use_cases, "preferences")
        logger.info("User preferences saved")

    async def get_personalized_recommendations(self, limit: int = 50) -> List[Tool]:
        """Tools ranked by popularity plus interest and preferred-category boosts."""
        profile = await self.store.get_user_profile()
        interests = [i.lower() for i in _as_list(profile.get("interests"))]
        preferred = set(_as_list(profile.get("preferred_categories")))

        scored = []
        async for tool in self._iter_tools():
            score = tool.popularity_score or 0.0
            if interests:
                text = f"{tool.name} {tool.description or ''} {tool.category}".lower()
                score += INTEREST_BOOST * sum(1 for interest in interests if interest in text)
            if tool.category in preferred:
                score += PREFERRED_CATEGORY_BOOST
            scored.append((score, tool))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [tool for _, tool in scored[:limit]]
