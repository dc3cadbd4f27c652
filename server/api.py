"""HTTP API for the AI tool survey service.

Thin FastAPI layer over the orchestrator, catalog store and
recommendation engine. Errors are returned as
{"error": <kind>, "message": <text>}.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import ScheduleConfig, SurveyConfig
from indexer.catalog_store import CatalogUnavailableError
from indexer.models import RecommendationStatus
from observability.logging import setup_logging
from personalization.engine import ProjectNotFoundError, UserPreferences

from .orchestrator import SurveyInProgressError, SurveyOrchestrator, SurveyorNotFoundError

logger = logging.getLogger(__name__)

app = FastAPI(title="AI Tool Survey API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)

orchestrator: Optional[SurveyOrchestrator] = None


class AnalyzeProjectRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Project directory to analyze")
    name: Optional[str] = Field(default=None, description="Display name; defaults to the directory name")


class SurveyRequest(BaseModel):
    source: Optional[str] = Field(default=None, description="Run only this surveyor")


class ProfileRequest(BaseModel):
    preferences: UserPreferences


class RecommendationStatusRequest(BaseModel):
    status: RecommendationStatus


@app.on_event("startup")
async def startup_event():
    """Open the catalog and build surveyors; a catalog failure aborts startup."""
    global orchestrator

    config = SurveyConfig.from_env()
    setup_logging(
        level=config.logging.level,
        use_json=config.logging.json_format,
        log_file=config.logging.file,
    )
    orchestrator = SurveyOrchestrator(config)
    await orchestrator.initialize()
    if os.getenv("SURVEY_SCHEDULER_AUTOSTART", "false").lower() == "true":
        orchestrator.schedule_surveys()
    logger.info("Survey API started")


@app.on_event("shutdown")
async def shutdown_event():
    if orchestrator is not None:
        await orchestrator.shutdown()


def get_orchestrator() -> SurveyOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Survey service not initialized")
    return orchestrator


def _error(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": kind, "message": message})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    kind = "not_found" if exc.status_code == 404 else "http_error"
    return _error(exc.status_code, kind, str(exc.detail))


@app.exception_handler(SurveyorNotFoundError)
async def surveyor_not_found_handler(request: Request, exc: SurveyorNotFoundError):
    return _error(404, "surveyor_not_found", str(exc))


@app.exception_handler(ProjectNotFoundError)
async def project_not_found_handler(request: Request, exc: ProjectNotFoundError):
    return _error(404, "project_not_found", str(exc))


@app.exception_handler(SurveyInProgressError)
async def survey_in_progress_handler(request: Request, exc: SurveyInProgressError):
    return _error(409, "survey_in_progress", str(exc))


@app.exception_handler(FileNotFoundError)
async def file_not_found_handler(request: Request, exc: FileNotFoundError):
    return _error(400, "invalid_project_path", str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error(400, "invalid_request", str(exc))


@app.exception_handler(CatalogUnavailableError)
async def catalog_unavailable_handler(request: Request, exc: CatalogUnavailableError):
    return _error(503, "catalog_unavailable", str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return _error(500, "internal_error", str(exc))


@app.get("/health")
async def health(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    return {"status": "ok", "state": orch.state.value}


@app.get("/api/agents/stats")
async def stats(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    return await orch.store.get_stats()


@app.get("/api/agents/search")
async def search(q: Optional[str] = None,
                 category: Optional[str] = None,
                 source: Optional[str] = None,
                 open_source: Optional[bool] = None,
                 orch: SurveyOrchestrator = Depends(get_orchestrator)):
    if not q or not q.strip():
        return _error(400, "invalid_request", 'Query parameter "q" is required')

    filters = {"category": category, "source": source, "open_source": open_source}
    tools = await orch.store.search_tools(q, filters)
    return [tool.to_dict() for tool in tools]


@app.get("/api/agents/search-history")
async def search_history(limit: int = 20, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    return await orch.store.get_search_history(limit)


@app.get("/api/agents/category/{name}")
async def tools_by_category(name: str, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    tools = await orch.store.get_tools_by_category(name)
    return [tool.to_dict() for tool in tools]


@app.get("/api/agents/tools")
async def list_tools(limit: int = 100, offset: int = 0,
                     orch: SurveyOrchestrator = Depends(get_orchestrator)):
    tools = await orch.store.get_all_tools(limit=max(1, min(limit, 1000)), offset=max(0, offset))
    return [tool.to_dict() for tool in tools]


@app.get("/api/agents/tools/{tool_id}")
async def get_tool(tool_id: int, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    tool = await orch.store.get_tool(tool_id)
    if tool is None:
        raise HTTPException(status_code=404, detail=f"Tool {tool_id} not found")
    data = tool.to_dict()
    data["capability_links"] = await orch.store.get_tool_capabilities(tool_id)
    return data


@app.get("/api/agents/projects")
async def list_projects(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    projects = await orch.store.get_all_projects()
    return [project.to_dict() for project in projects]


@app.post("/api/agents/projects/analyze")
async def analyze_project(req: AnalyzeProjectRequest, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    project = await orch.engine.analyze_project(req.path, req.name)
    return project.to_dict()


@app.get("/api/agents/recommendations/{project_id}")
async def recommendations(project_id: int, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    """Project recommendations; project id 0 returns profile-based picks."""
    if project_id == 0:
        tools = await orch.engine.get_personalized_recommendations()
        return [tool.to_dict() for tool in tools]

    recs = await orch.engine.generate_recommendations(project_id)
    return [rec.to_dict() for rec in recs]


@app.get("/api/agents/projects/{project_id}/recommendations")
async def stored_recommendations(project_id: int, status: Optional[RecommendationStatus] = None,
                                 orch: SurveyOrchestrator = Depends(get_orchestrator)):
    recs = await orch.store.get_recommendations(project_id, status.value if status else None)
    return [rec.to_dict() for rec in recs]


@app.put("/api/agents/recommendations/{recommendation_id}/status")
async def set_recommendation_status(recommendation_id: int, req: RecommendationStatusRequest,
                                    orch: SurveyOrchestrator = Depends(get_orchestrator)):
    updated = await orch.store.update_recommendation_status(recommendation_id, req.status)
    if not updated:
        raise HTTPException(status_code=404, detail=f"Recommendation {recommendation_id} not found")
    return {"id": recommendation_id, "status": req.status.value}


@app.post("/api/agents/survey")
async def run_survey(req: Optional[SurveyRequest] = None,
                     orch: SurveyOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    summary = await orch.run_on_demand(req.source if req else None)
    return {"success": True, "message": "Survey completed", "summary": summary}


@app.get("/api/agents/survey-runs")
async def survey_runs(limit: int = 10, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    runs = await orch.store.get_recent_survey_runs(limit)
    return [run.to_dict() for run in runs]


@app.get("/api/agents/profile")
async def get_profile(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    return await orch.store.get_user_profile()


@app.post("/api/agents/profile")
async def set_profile(req: ProfileRequest, orch: SurveyOrchestrator = Depends(get_orchestrator)):
    await orch.engine.set_user_preferences(req.preferences)
    return {"success": True, "message": "Profile updated"}


@app.get("/api/agents/scheduler")
async def scheduler_status(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    return orch.status()


@app.post("/api/agents/scheduler/start")
async def scheduler_start(times: Optional[List[str]] = Body(default=None, embed=True),
                          orch: SurveyOrchestrator = Depends(get_orchestrator)):
    if times is not None:
        times = ScheduleConfig(times=times).times
    orch.schedule_surveys(times)
    return orch.status()


@app.post("/api/agents/scheduler/stop")
async def scheduler_stop(orch: SurveyOrchestrator = Depends(get_orchestrator)):
    orch.stop()
    return orch.status()
