"""Base contract shared by every catalog survey adapter.

An adapter implements `survey()`; `run()` wraps it with timing and the
survey-run audit record. Network access goes through an injected
`SurveyFetcher`, classification through the free functions in
`pipelines.classify`.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from indexer.catalog_store import CatalogStore
from indexer.models import SurveyRun, SurveyStatus, Tool
from sources.loader import SourceConfig, load_source_config

from .fetcher import FetchedPage, SurveyFetcher

logger = logging.getLogger(__name__)


@dataclass
class SurveyStats:
    """Counters for one survey."""
    discovered: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"discovered": self.discovered, "updated": self.updated, "errors": self.errors}


@dataclass
class SurveyResult:
    """Tools stored by a survey plus per-dimension error messages."""
    tools: List[Tool] = field(default_factory=list)
    stats: SurveyStats = field(default_factory=SurveyStats)
    errors: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.stats.errors = len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tools": [tool.to_dict() for tool in self.tools],
            "stats": self.stats.to_dict(),
            "errors": list(self.errors),
        }


class BaseSurveyor(ABC):
    """Common survey lifecycle for one external catalog."""

    source_name: str = ""
    default_config: Dict[str, Any] = {}

    def __init__(self, store: CatalogStore, fetcher: SurveyFetcher,
                 config: Optional[SourceConfig] = None):
        """Initialize surveyor.

        Args:
            store: Catalog store receiving discovered tools
            fetcher: Shared HTTP fetcher
            config: Source settings; defaults to sources/<name>.yaml, then
                    the adapter's built-in defaults
        """
        self.store = store
        self.fetcher = fetcher
        self.config = config or self._load_config()

    @classmethod
    def _load_config(cls) -> SourceConfig:
        config = load_source_config(cls.source_name)
        if config is None:
            logger.warning(f"Using built-in defaults for source {cls.source_name}")
            config = SourceConfig.from_dict({"name": cls.source_name, **cls.default_config})
        return config

    @property
    def dimensions(self) -> List[str]:
        return self.config.dimensions or list(self.default_config.get("dimensions", []))

    @abstractmethod
    async def survey(self) -> SurveyResult:
        """Fetch, normalize and store tools from the catalog."""

    async def run(self) -> SurveyResult:
        """Run the survey and record a SurveyRun.

        Status is `failed` when survey() raises (the exception is re-raised),
        `partial` when it reports errors, else `success`.
        """
        logger.info(f"Starting {self.source_name} survey")
        started = time.monotonic()

        try:
            result = await self.survey()
        except Exception as e:
            duration = time.monotonic() - started
            logger.error(f"{self.source_name} survey failed after {duration:.1f}s: {e}")
            await self.store.log_survey_run(SurveyRun(
                source=self.source_name,
                status=SurveyStatus.FAILED,
                errors=[str(e) or type(e).__name__],
                duration_seconds=duration,
            ))
            raise

        duration = time.monotonic() - started
        status = SurveyStatus.PARTIAL if result.errors else SurveyStatus.SUCCESS
        await self.store.log_survey_run(SurveyRun(
            source=self.source_name,
            status=status,
            items_discovered=result.stats.discovered,
            items_updated=result.stats.updated,
            errors=result.errors,
            duration_seconds=duration,
        ))

        logger.info(
            f"{self.source_name} survey finished ({status.value}): "
            f"{result.stats.discovered} discovered, {result.stats.updated} updated, "
            f"{len(result.errors)} errors in {duration:.1f}s"
        )
        return result

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchedPage:
        return await self.fetcher.fetch_with_retry(
            url,
            headers=headers,
            max_retries=self.config.max_retries,
            backoff=self.config.backoff,
        )

    async def courtesy_delay(self, seconds: Optional[float] = None):
        """Pause between calls to the same catalog."""
        delay = self.config.rate_limit if seconds is None else seconds
        if delay > 0:
            await self.fetcher.sleep(delay)

    async def survey_dimensions(self, result: SurveyResult,
                                handler: Callable[[str, SurveyResult], Awaitable[None]]):
        """Run `handler` for every dimension, isolating failures.

        A failing dimension is recorded as "<dimension>: <message>" and the
        loop moves on to the next one.
        """
        for index, dimension in enumerate(self.dimensions):
            if index > 0:
                await self.courtesy_delay()
            try:
                await handler(dimension, result)
            except Exception as e:
                message = f"{dimension}: {e}"
                logger.error(f"{self.source_name} dimension failed - {message}")
                result.add_error(message)

    async def store_tool(self, tool: Tool, result: SurveyResult) -> int:
        """Upsert a tool by url, relink its current capabilities and count it."""
        tool_id, created = await self.store.upsert_tool(tool)
        tool.id = tool_id

        if not created:
            await self.store.unlink_tool_capabilities(tool_id)
        for capability in tool.capabilities:
            capability_id = await self.store.insert_capability(capability)
            await self.store.link_tool_capability(tool_id, capability_id)

        if created:
            result.stats.discovered += 1
        else:
            result.stats.updated += 1
        result.tools.append(tool)
        return tool_id
