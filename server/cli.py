#!/usr/bin/env python3
"""Command line interface for the AI tool survey service."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import SurveyConfig
from indexer.catalog_store import CatalogUnavailableError
from observability.logging import setup_logging
from personalization.engine import ProjectNotFoundError, UserPreferences
from sources.loader import SourceLoader

from .orchestrator import SurveyInProgressError, SurveyOrchestrator, SurveyorNotFoundError

T = TypeVar("T")

logger = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="AI tool survey - discover AI tools and match them to your projects")

_state = {"config_path": None}

# Errors reported as "<kind>: <message>" with a non-zero exit
KNOWN_ERRORS = {
    SurveyorNotFoundError: "surveyor_not_found",
    ProjectNotFoundError: "project_not_found",
    SurveyInProgressError: "survey_in_progress",
    CatalogUnavailableError: "catalog_unavailable",
    FileNotFoundError: "invalid_project_path",
}


def _fail(kind: str, error: Exception):
    console.print(f"❌ {kind}: {error}", style="bold red", markup=False)
    raise typer.Exit(1)


def _load_settings() -> SurveyConfig:
    try:
        return SurveyConfig.from_env(_state["config_path"])
    except (OSError, ValueError, yaml.YAMLError) as e:
        _fail("invalid_config", e)


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to survey YAML configuration"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level"),
):
    """Configure logging and the configuration file for every command."""
    _state["config_path"] = config
    settings = _load_settings()
    setup_logging(
        level=log_level or settings.logging.level,
        use_json=settings.logging.json_format,
        log_file=settings.logging.file,
    )


def _run(action: Callable[[SurveyOrchestrator], Awaitable[T]]) -> T:
    """Run an async action against an initialized orchestrator, then shut it down."""

    async def runner():
        orchestrator = SurveyOrchestrator(_load_settings())
        await orchestrator.initialize()
        try:
            return await action(orchestrator)
        finally:
            await orchestrator.shutdown()

    try:
        return asyncio.run(runner())
    except tuple(KNOWN_ERRORS) as e:
        _fail(next(k for cls, k in KNOWN_ERRORS.items() if isinstance(e, cls)), e)
    except typer.Exit:
        raise
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=e)
        _fail("internal_error", e)


def _print_stats(stats: dict):
    table = Table(title="📊 Catalog Statistics")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total AI tools", str(stats["total_tools"]))
    table.add_row("Total capabilities", str(stats["total_capabilities"]))
    table.add_row("Successful surveys", str(stats["successful_surveys"]))
    table.add_row("Last survey", str(stats["last_survey_run"] or "never"))
    console.print(table)

    if stats["tools_by_category"]:
        categories = Table(title="Tools by category")
        categories.add_column("Category", style="bold")
        categories.add_column("Count", justify="right")
        for entry in stats["tools_by_category"]:
            categories.add_row(entry["category"], str(entry["count"]))
        console.print(categories)


def _print_tools(tools, title: str):
    if not tools:
        console.print("No tools found.", style="yellow")
        return

    table = Table(title=title, show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("Popularity", justify="right")
    for tool in tools:
        name = tool.name if len(tool.name) <= 60 else tool.name[:57] + "..."
        table.add_row(str(tool.id), name, tool.category, tool.source, f"{tool.popularity_score:.1f}")
    console.print(table)


@app.command("run-once")
def run_once():
    """Run every enabled surveyor once and exit."""
    with console.status("[bold blue]Running survey cycle..."):
        summary = _run(lambda orch: orch.run_survey())

    for name, outcome in summary["results"].items():
        style = "green" if outcome == "success" else "red"
        console.print(f"  {name}: [{style}]{outcome}[/{style}]")
    console.print(f"✅ Survey completed in {summary['duration_seconds']:.1f}s", style="bold green")
    _print_stats(summary["stats"])


@app.command()
def survey(source: Optional[str] = typer.Argument(None, help="Surveyor to run; all when omitted")):
    """Run one surveyor (or all of them) on demand."""
    with console.status(f"[bold blue]Surveying {source or 'all sources'}..."):
        summary = _run(lambda orch: orch.run_on_demand(source))

    if source:
        stats = summary["stats"]
        console.print(
            f"✅ {source}: {stats['discovered']} discovered, {stats['updated']} updated, "
            f"{stats['errors']} errors",
            style="bold green",
        )
        for error in summary["errors"]:
            console.print(f"  • {error}", style="yellow")
    else:
        for name, outcome in summary["results"].items():
            console.print(f"  {name}: {outcome}")


@app.command()
def stats(as_json: bool = typer.Option(False, "--json", help="Print raw JSON")):
    """Show catalog statistics."""
    data = _run(lambda orch: orch.store.get_stats())
    if as_json:
        console.print_json(json.dumps(data))
    else:
        _print_stats(data)


@app.command()
def search(
    query: str = typer.Argument(..., help="Full-text query"),
    category: Optional[str] = typer.Option(None, "--category", help="Restrict to a category"),
    source: Optional[str] = typer.Option(None, "--source", help="Restrict to a source"),
    open_source: Optional[bool] = typer.Option(None, "--open-source/--closed-source", help="Filter by license"),
):
    """Search the tool catalog."""
    filters = {"category": category, "source": source, "open_source": open_source}
    tools = _run(lambda orch: orch.store.search_tools(query, filters))
    _print_tools(tools, f"🔍 Results for: {query}")


@app.command()
def category(name: str = typer.Argument(..., help="Category name, e.g. LLM")):
    """List tools in a category."""
    tools = _run(lambda orch: orch.store.get_tools_by_category(name))
    _print_tools(tools, f"Category: {name}")


@app.command("list")
def list_tools(
    limit: int = typer.Option(20, "--limit", help="Number of tools"),
    offset: int = typer.Option(0, "--offset", help="Tools to skip"),
):
    """List tools by popularity."""
    tools = _run(lambda orch: orch.store.get_all_tools(limit=limit, offset=offset))
    _print_tools(tools, "AI tools")


@app.command("sources")
def list_sources():
    """Show per-catalog survey settings and whether each source is enabled."""
    settings = _load_settings()
    loader = SourceLoader(Path(settings.sources_dir)) if settings.sources_dir else SourceLoader()
    enabled = set(settings.enabled_sources())

    table = Table(title="Survey sources")
    table.add_column("Source", style="bold", no_wrap=True)
    table.add_column("Enabled")
    table.add_column("Endpoint")
    table.add_column("Dimensions", justify="right")
    table.add_column("Delay (s)", justify="right")
    for name, source in loader.load_all_sources().items():
        table.add_row(name, "yes" if name in enabled else "no", source.base_url,
                      str(len(source.dimensions)), f"{source.rate_limit:g}")
    console.print(table)


@app.command()
def runs(limit: int = typer.Option(10, "--limit", help="Number of runs")):
    """Show recent survey runs."""
    survey_runs = _run(lambda orch: orch.store.get_recent_survey_runs(limit))

    table = Table(title="Recent survey runs")
    table.add_column("Time")
    table.add_column("Source", style="bold")
    table.add_column("Status")
    table.add_column("New", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Seconds", justify="right")
    for run in survey_runs:
        table.add_row(run.run_time, run.source, run.status.value, str(run.items_discovered),
                      str(run.items_updated), f"{run.duration_seconds:.1f}")
    console.print(table)


@app.command()
def analyze(
    path: Path = typer.Argument(..., help="Project directory"),
    name: Optional[str] = typer.Option(None, "--name", help="Project display name"),
    recommend: bool = typer.Option(False, "--recommend", help="Generate recommendations right away"),
):
    """Analyze a project and optionally recommend tools for it."""

    async def action(orch: SurveyOrchestrator):
        project = await orch.engine.analyze_project(str(path), name)
        recs = await orch.engine.generate_recommendations(project.id) if recommend else []
        return project, recs

    project, recs = _run(action)
    console.print(Panel.fit(
        f"Project: {project.name} (ID {project.id})\n"
        f"Tech stack: {', '.join(project.tech_stack) or 'unknown'}\n"
        f"AI needs: {', '.join(project.ai_needs)}",
        title="🔍 Project analysis",
        style="bold blue",
    ))
    if recommend:
        _print_recommendations(recs)


def _print_recommendations(recs):
    if not recs:
        console.print("No recommendations above the relevance threshold.", style="yellow")
        return

    table = Table(title="🎯 Recommendations", show_header=True, header_style="bold blue")
    table.add_column("Score", justify="right", width=6)
    table.add_column("Tool", style="bold")
    table.add_column("Reason")
    for rec in recs:
        table.add_row(f"{rec.relevance_score:.2f}", rec.tool.name if rec.tool else str(rec.tool_id), rec.reason)
    console.print(table)


@app.command()
def recommend(project_id: int = typer.Argument(0, help="Project id; 0 for profile-based picks")):
    """Recommend tools for a project or, with id 0, for the user profile."""
    if project_id == 0:
        tools = _run(lambda orch: orch.engine.get_personalized_recommendations())
        _print_tools(tools, "🎯 Recommended for you")
        return

    recs = _run(lambda orch: orch.engine.generate_recommendations(project_id))
    _print_recommendations(recs)


@app.command()
def profile(
    interests: Optional[List[str]] = typer.Option(None, "--interest", help="Interest keyword (repeatable)"),
    skills: Optional[List[str]] = typer.Option(None, "--skill", help="Skill (repeatable)"),
    categories: Optional[List[str]] = typer.Option(None, "--category", help="Preferred category (repeatable)"),
    experience: Optional[str] = typer.Option(None, "--experience", help="beginner, intermediate or advanced"),
):
    """Show the user profile, or update it when options are given."""
    if interests or skills or categories or experience:
        try:
            prefs = UserPreferences(
                interests=interests or [],
                skills=skills or [],
                preferred_categories=categories or [],
                experience_level=experience,
            )
        except ValueError as e:
            _fail("invalid_profile", e)
        _run(lambda orch: orch.engine.set_user_preferences(prefs))
        console.print("✅ Profile updated", style="bold green")

    data = _run(lambda orch: orch.store.get_user_profile())
    console.print_json(json.dumps(data))


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(3001, "--port", envvar="PORT", help="Bind port"),
):
    """Serve the HTTP API."""
    import uvicorn

    uvicorn.run("server.api:app", host=host, port=port)


@app.command()
def start(
    skip_initial: bool = typer.Option(False, "--skip-initial", help="Do not survey before scheduling"),
):
    """Survey now, then keep running on the daily schedule until interrupted."""

    async def action(orch: SurveyOrchestrator):
        await orch.start(run_immediately=not skip_initial)
        for job_id, next_run in orch.next_run_times().items():
            console.print(f"⏰ {job_id}: next run {next_run}")
        console.print("✅ Orchestrator is running. Press Ctrl+C to stop.", style="bold green")
        await asyncio.Event().wait()

    try:
        _run(action)
    except KeyboardInterrupt:
        console.print("👋 Stopped", style="bold")


if __name__ == "__main__":
    app()
