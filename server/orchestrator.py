"""Survey orchestration.

Runs the enabled catalog surveyors one at a time with a stagger between
starts, isolates surveyor failures, and arms one APScheduler cron job per
configured daily survey time.
"""

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config.settings import SurveyConfig
from indexer.catalog_store import CatalogStore
from personalization.engine import RecommendationEngine
from pipelines.arxiv import ArxivSurveyor
from pipelines.fetcher import SurveyFetcher
from pipelines.github import GitHubSurveyor
from pipelines.huggingface import HuggingFaceSurveyor
from pipelines.surveyor import BaseSurveyor, SurveyResult
from pipelines.youtube import YouTubeSurveyor
from sources.loader import SourceLoader

logger = logging.getLogger(__name__)

SURVEYOR_CLASSES = {
    "huggingface": HuggingFaceSurveyor,
    "github": GitHubSurveyor,
    "youtube": YouTubeSurveyor,
    "arxiv": ArxivSurveyor,
}

JOB_PREFIX = "survey_"


class OrchestratorState(str, Enum):
    """Lifecycle state of the orchestrator."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class SurveyorNotFoundError(Exception):
    """Raised when an on-demand run names an unknown or disabled surveyor."""

    def __init__(self, name: str):
        super().__init__(f"Surveyor '{name}' not found")
        self.name = name


class SurveyInProgressError(Exception):
    """Raised when a survey is requested while another one is still running."""
    pass


class SurveyOrchestrator:
    """Owns the catalog store, the surveyors and the daily schedule."""

    def __init__(self,
                 config: Optional[SurveyConfig] = None,
                 store: Optional[CatalogStore] = None,
                 surveyors: Optional[Dict[str, BaseSurveyor]] = None,
                 fetcher: Optional[SurveyFetcher] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """Initialize orchestrator.

        Args:
            config: Survey configuration; defaults to SurveyConfig.from_env()
            store: Catalog store; defaults to a SQLite store at config.database_path
            surveyors: Prebuilt surveyors keyed by source name, in run order
            fetcher: Shared HTTP fetcher for the built-in surveyors
            sleep: Coroutine used for the stagger delay
        """
        self.config = config or SurveyConfig.from_env()
        self.store = store or CatalogStore(self.config.database_path)
        self.fetcher = fetcher or SurveyFetcher()
        self.sleep = sleep or asyncio.sleep
        self.surveyors: Dict[str, BaseSurveyor] = dict(surveyors) if surveyors is not None else {}
        self._build_defaults = surveyors is None
        self.engine = RecommendationEngine(self.store)

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._run_active = False
        self.last_results: Dict[str, str] = {}

    @property
    def state(self) -> OrchestratorState:
        if self._run_active:
            return OrchestratorState.RUNNING
        if self.scheduler is not None:
            return OrchestratorState.SCHEDULED
        return OrchestratorState.IDLE

    async def initialize(self):
        """Open the catalog store and build the enabled surveyors.

        Raises:
            CatalogUnavailableError: If the store cannot be opened
        """
        await self.store.initialize()

        if self._build_defaults and not self.surveyors:
            self._build_surveyors()

        logger.info(f"Survey orchestrator initialized with surveyors: {', '.join(self.surveyors) or 'none'}")
        logger.info(f"Database: {self.config.database_path}")
        logger.info(f"Survey times: {', '.join(self.config.survey_schedule.times)} "
                    f"({self.config.survey_schedule.timezone})")

    def _build_surveyors(self):
        loader = SourceLoader(Path(self.config.sources_dir)) if self.config.sources_dir else None

        for name in self.config.enabled_sources():
            surveyor_cls = SURVEYOR_CLASSES[name]
            source_config = loader.load_source_config(name) if loader else None

            kwargs: Dict[str, Any] = {}
            if name == "github":
                kwargs["token"] = self.config.github_token
            elif name == "youtube":
                kwargs["api_key"] = self.config.youtube_api_key

            self.surveyors[name] = surveyor_cls(self.store, self.fetcher, source_config, **kwargs)
            logger.info(f"{name} surveyor enabled")

    def _begin_run(self):
        if self._run_active:
            raise SurveyInProgressError("A survey is already running")
        self._run_active = True

    async def run_survey(self) -> Dict[str, Any]:
        """Run every surveyor once, in order, with a stagger between starts.

        Surveyor failures are logged and reported as "failed" in the summary;
        they never propagate.

        Returns:
            Summary with per-surveyor results, duration and catalog stats

        Raises:
            SurveyInProgressError: If another survey is in flight
        """
        self._begin_run()
        started = time.monotonic()
        results: Dict[str, str] = {}

        try:
            logger.info(f"Starting survey cycle over {len(self.surveyors)} surveyors")
            for index, (name, surveyor) in enumerate(self.surveyors.items()):
                if index > 0:
                    await self.sleep(self.config.survey_schedule.stagger_seconds)
                try:
                    await surveyor.run()
                    results[name] = "success"
                except Exception as e:
                    logger.error(f"{name} surveyor failed: {e}")
                    results[name] = "failed"
        finally:
            self._run_active = False

        duration = time.monotonic() - started
        self.last_results = results
        stats = await self.store.get_stats()

        logger.info(f"Survey cycle completed in {duration:.2f}s: {results}")
        logger.info(f"Catalog: {stats['total_tools']} tools, {stats['total_capabilities']} capabilities, "
                    f"{stats['successful_surveys']} successful surveys, last run {stats['last_survey_run']}")
        for entry in stats["tools_by_category"]:
            logger.info(f"  {entry['category']}: {entry['count']}")

        return {"results": results, "duration_seconds": duration, "stats": stats}

    async def run_on_demand(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Run one named surveyor, or the full survey when no name is given.

        Raises:
            SurveyorNotFoundError: If the name is not an enabled surveyor
            SurveyInProgressError: If another survey is in flight
        """
        if name is None:
            return await self.run_survey()

        surveyor = self.surveyors.get(name)
        if surveyor is None:
            raise SurveyorNotFoundError(name)

        self._begin_run()
        try:
            logger.info(f"Running {name} surveyor on demand")
            result: SurveyResult = await surveyor.run()
        finally:
            self._run_active = False

        return {"source": name, **result.to_dict()}

    async def _scheduled_survey(self):
        try:
            await self.run_survey()
        except SurveyInProgressError:
            logger.warning("Skipping scheduled survey: previous survey still running")

    def schedule_surveys(self, times: Optional[List[str]] = None) -> List[str]:
        """Arm one daily cron job per HH:MM time; replaces any armed jobs.

        Returns:
            The scheduler job ids
        """
        times = times if times is not None else self.config.survey_schedule.times
        timezone = self.config.survey_schedule.timezone

        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(
                timezone=timezone,
                job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 300},
            )
            self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
            self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
            self.scheduler.start()
        else:
            self.scheduler.remove_all_jobs()

        job_ids = []
        for value in times:
            hour, minute = (int(part) for part in value.split(":"))
            job_id = f"{JOB_PREFIX}{hour:02d}{minute:02d}"
            job = self.scheduler.add_job(
                self._scheduled_survey,
                CronTrigger(hour=hour, minute=minute, timezone=timezone),
                id=job_id,
                replace_existing=True,
            )
            job_ids.append(job_id)
            logger.info(f"Survey scheduled daily at {value} {timezone}, next run {job.next_run_time}")

        return job_ids

    def next_run_times(self) -> Dict[str, Optional[str]]:
        if self.scheduler is None:
            return {}
        return {
            job.id: job.next_run_time.isoformat() if job.next_run_time else None
            for job in self.scheduler.get_jobs()
        }

    def _job_executed(self, event):
        logger.info(f"Scheduled survey job {event.job_id} finished")

    def _job_error(self, event):
        logger.error(f"Scheduled survey job {event.job_id} failed: {event.exception}")

    async def start(self, run_immediately: bool = True):
        """Optionally run a survey now, then arm the daily schedule."""
        if self.scheduler is not None:
            logger.warning("Orchestrator is already scheduled")
            return

        if run_immediately:
            await self.run_survey()
        self.schedule_surveys()
        logger.info("Orchestrator is now running")

    def stop(self):
        """Cancel the armed schedule. Does not interrupt a survey in flight."""
        if self.scheduler is None:
            return
        self.scheduler.remove_all_jobs()
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Survey schedule stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "surveyors": list(self.surveyors),
            "next_runs": self.next_run_times(),
            "last_results": self.last_results,
        }

    async def shutdown(self):
        """Stop scheduling and release network and database resources."""
        self.stop()
        await self.fetcher.close()
        await self.store.close()
        logger.info("Orchestrator shutdown complete")
