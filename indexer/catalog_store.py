"""SQLite catalog store for surveyed AI tools.

Owns persistence for tools, the capability taxonomy, survey audit runs,
the user profile, analyzed projects and recommendations. Tool rows are
unique by url; `upsert_tool` is the insert-or-update entry point used by
the survey adapters.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .models import (
    Capability,
    Recommendation,
    RecommendationStatus,
    SurveyRun,
    SurveyStatus,
    Tool,
    UserProject,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Columns `update_tool` may touch; everything else is store-managed
UPDATABLE_TOOL_FIELDS = {
    "name", "description", "source", "category", "subcategory", "capabilities",
    "api_available", "open_source", "pricing_model", "popularity_score", "metadata",
}


class CatalogUnavailableError(Exception):
    """Raised when the catalog database cannot be opened or is not initialized."""
    pass


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fts_query(query: str) -> str:
    """Quote each whitespace-separated term so user input is never parsed as FTS syntax."""
    terms = [term.replace('"', '""') for term in query.split()]
    return " ".join(f'"{term}"' for term in terms if term)


def _load_json(raw: Optional[str], default: Any) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


class CatalogStore:
    """Async-facing SQLite store for the tool catalog."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    async def initialize(self):
        """Open the database, enable WAL journaling and apply the schema.

        Raises:
            CatalogUnavailableError: If the database cannot be opened or migrated.
        """
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.execute("PRAGMA busy_timeout = 5000")
            self.conn.execute("PRAGMA foreign_keys = ON")

            with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
                self.conn.executescript(f.read())
            self.conn.commit()

            logger.info(f"Catalog store initialized: {self.db_path}")

        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to initialize catalog store at {self.db_path}: {e}")
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            raise CatalogUnavailableError(f"Cannot open catalog database {self.db_path}: {e}") from e

    async def close(self):
        """Close the SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Catalog store connection closed")

    def _db(self) -> sqlite3.Connection:
        if self.conn is None:
            raise CatalogUnavailableError("Catalog store is not initialized")
        return self.conn

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_tool(row: sqlite3.Row) -> Tool:
        return Tool(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            url=row["url"],
            source=row["source"],
            category=row["category"],
            subcategory=row["subcategory"],
            capabilities=_load_json(row["capabilities"], []),
            api_available=bool(row["api_available"]),
            open_source=bool(row["open_source"]),
            pricing_model=row["pricing_model"],
            popularity_score=row["popularity_score"],
            first_discovered=row["first_discovered"],
            last_updated=row["last_updated"],
            metadata=_load_json(row["metadata"], {}),
        )

    async def insert_tool(self, tool: Tool) -> int:
        """Insert a new tool and return its id.

        Raises:
            sqlite3.IntegrityError: If a tool with the same url already exists.
        """
        conn = self._db()
        now = utc_now()
        cursor = conn.execute(
            """
            INSERT INTO ai_tools (name, description, url, source, category, subcategory,
                                  capabilities, api_available, open_source, pricing_model,
                                  popularity_score, first_discovered, last_updated, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tool.name, tool.description, tool.url, tool.source, tool.category,
                tool.subcategory, json.dumps(tool.capabilities), int(tool.api_available),
                int(tool.open_source), tool.pricing_model, tool.popularity_score,
                now, now, json.dumps(tool.metadata),
            ),
        )
        conn.commit()
        return cursor.lastrowid

    async def update_tool(self, tool_id: int, fields: Dict[str, Any]) -> bool:
        """Update only the given fields of a tool and bump last_updated.

        Args:
            tool_id: Tool primary key
            fields: Mapping of column name to new value

        Returns:
            True if a row was updated
        """
        unknown = set(fields) - UPDATABLE_TOOL_FIELDS
        if unknown:
            raise ValueError(f"Cannot update tool fields: {', '.join(sorted(unknown))}")

        assignments = []
        params: List[Any] = []
        for column, value in fields.items():
            if column == "capabilities":
                value = json.dumps(list(value or []))
            elif column == "metadata":
                value = json.dumps(value or {})
            elif column in ("api_available", "open_source"):
                value = int(bool(value))
            assignments.append(f"{column} = ?")
            params.append(value)

        assignments.append("last_updated = ?")
        params.append(utc_now())
        params.append(tool_id)

        conn = self._db()
        cursor = conn.execute(
            f"UPDATE ai_tools SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        conn.commit()
        return cursor.rowcount > 0

    async def upsert_tool(self, tool: Tool) -> Tuple[int, bool]:
        """Insert a tool or update the existing row with the same url.

        first_discovered is preserved on update.

        Returns:
            (tool_id, created) where created is False for an update
        """
        existing = await self.get_tool_by_url(tool.url)
        if existing is None:
            return await self.insert_tool(tool), True

        await self.update_tool(existing.id, {
            "name": tool.name,
            "description": tool.description,
            "source": tool.source,
            "category": tool.category,
            "subcategory": tool.subcategory,
            "capabilities": tool.capabilities,
            "api_available": tool.api_available,
            "open_source": tool.open_source,
            "pricing_model": tool.pricing_model,
            "popularity_score": tool.popularity_score,
            "metadata": tool.metadata,
        })
        return existing.id, False

    async def get_tool(self, tool_id: int) -> Optional[Tool]:
        row = self._db().execute("SELECT * FROM ai_tools WHERE id = ?", (tool_id,)).fetchone()
        return self._row_to_tool(row) if row else None

    async def get_tool_by_url(self, url: str) -> Optional[Tool]:
        row = self._db().execute("SELECT * FROM ai_tools WHERE url = ?", (url,)).fetchone()
        return self._row_to_tool(row) if row else None

    async def get_all_tools(self, limit: int = 100, offset: int = 0) -> List[Tool]:
        """Page through tools by descending popularity."""
        rows = self._db().execute(
            "SELECT * FROM ai_tools ORDER BY popularity_score DESC, id ASC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [self._row_to_tool(row) for row in rows]

    async def get_tools_by_category(self, category: str, limit: int = 100) -> List[Tool]:
        rows = self._db().execute(
            "SELECT * FROM ai_tools WHERE category = ? ORDER BY popularity_score DESC, id ASC LIMIT ?",
            (category, limit),
        ).fetchall()
        return [self._row_to_tool(row) for row in rows]

    async def search_tools(self, query: str, filters: Optional[Dict[str, Any]] = None,
                           limit: int = 50) -> List[Tool]:
        """Full-text search over name, description and capabilities.

        Args:
            query: Free text; every term must match
            filters: Optional category, source and open_source constraints
            limit: Maximum number of results

        Returns:
            Matching tools ordered by popularity
        """
        match = _fts_query(query or "")
        if not match:
            return []

        filters = filters or {}
        conditions = ["t.id IN (SELECT rowid FROM ai_tools_fts WHERE ai_tools_fts MATCH ?)"]
        params: List[Any] = [match]

        if filters.get("category"):
            conditions.append("t.category = ?")
            params.append(filters["category"])
        if filters.get("source"):
            conditions.append("t.source = ?")
            params.append(filters["source"])
        if filters.get("open_source") is not None:
            conditions.append("t.open_source = ?")
            params.append(int(bool(filters["open_source"])))

        params.append(limit)
        conn = self._db()
        rows = conn.execute(
            f"""
            SELECT t.* FROM ai_tools t
            WHERE {' AND '.join(conditions)}
            ORDER BY t.popularity_score DESC, t.id ASC
            LIMIT ?
            """,
            params,
        ).fetchall()
        results = [self._row_to_tool(row) for row in rows]

        applied = {k: v for k, v in filters.items() if v is not None}
        conn.execute(
            "INSERT INTO search_history (query, results_count, filters, searched_at) VALUES (?, ?, ?, ?)",
            (query, len(results), json.dumps(applied) if applied else None, utc_now()),
        )
        conn.commit()
        return results

    async def get_search_history(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._db().execute(
            "SELECT * FROM search_history ORDER BY searched_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            {
                "query": row["query"],
                "results_count": row["results_count"],
                "filters": _load_json(row["filters"], {}),
                "searched_at": row["searched_at"],
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def insert_capability(self, capability: Union[Capability, str]) -> int:
        """Register a capability if it is new and return its id.

        Existing entries are never overwritten.
        """
        if isinstance(capability, str):
            capability = Capability(name=capability)

        conn = self._db()
        conn.execute(
            "INSERT OR IGNORE INTO capabilities (name, description, category, use_cases) VALUES (?, ?, ?, ?)",
            (capability.name, capability.description, capability.category, json.dumps(capability.use_cases)),
        )
        conn.commit()
        row = conn.execute("SELECT id FROM capabilities WHERE name = ?", (capability.name,)).fetchone()
        return row["id"]

    async def link_tool_capability(self, tool_id: int, capability_id: int,
                                   proficiency_level: str = "intermediate"):
        conn = self._db()
        conn.execute(
            "INSERT OR REPLACE INTO tool_capabilities (tool_id, capability_id, proficiency_level) VALUES (?, ?, ?)",
            (tool_id, capability_id, proficiency_level),
        )
        conn.commit()

    async def unlink_tool_capabilities(self, tool_id: int):
        """Drop every capability link of a tool; capability rows are kept."""
        conn = self._db()
        conn.execute("DELETE FROM tool_capabilities WHERE tool_id = ?", (tool_id,))
        conn.commit()

    async def get_tool_capabilities(self, tool_id: int) -> List[Dict[str, Any]]:
        rows = self._db().execute(
            """
            SELECT c.name, tc.proficiency_level FROM tool_capabilities tc
            JOIN capabilities c ON c.id = tc.capability_id
            WHERE tc.tool_id = ?
            ORDER BY c.name
            """,
            (tool_id,),
        ).fetchall()
        return [{"name": row["name"], "proficiency_level": row["proficiency_level"]} for row in rows]

    # ------------------------------------------------------------------
    # Survey runs
    # ------------------------------------------------------------------

    async def log_survey_run(self, run: SurveyRun) -> int:
        run_time = run.run_time or utc_now()
        conn = self._db()
        cursor = conn.execute(
            """
            INSERT INTO survey_runs (source, run_time, items_discovered, items_updated,
                                     status, error_log, duration_seconds)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run.source, run_time, run.items_discovered, run.items_updated,
                SurveyStatus(run.status).value, run.error_log, run.duration_seconds,
            ),
        )
        conn.commit()
        run.id = cursor.lastrowid
        run.run_time = run_time
        return run.id

    async def get_recent_survey_runs(self, limit: int = 10) -> List[SurveyRun]:
        rows = self._db().execute(
            "SELECT * FROM survey_runs ORDER BY run_time DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            SurveyRun(
                id=row["id"],
                source=row["source"],
                status=SurveyStatus(row["status"]),
                items_discovered=row["items_discovered"],
                items_updated=row["items_updated"],
                errors=row["error_log"].split("\n") if row["error_log"] else [],
                duration_seconds=row["duration_seconds"],
                run_time=row["run_time"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # User profile
    # ------------------------------------------------------------------

    async def set_user_profile(self, key: str, value: Any, category: Optional[str] = None):
        """Upsert a profile entry; non-string values are stored as JSON."""
        stored = value if isinstance(value, str) else json.dumps(value)
        conn = self._db()
        conn.execute(
            """
            INSERT INTO user_profile (key, value, category, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                category = excluded.category,
                updated_at = excluded.updated_at
            """,
            (key, stored, category, utc_now()),
        )
        conn.commit()

    async def get_user_profile(self, key: Optional[str] = None) -> Any:
        """Return one decoded profile value (None if absent) or, without a key, the whole profile."""
        conn = self._db()
        if key is not None:
            row = conn.execute("SELECT value FROM user_profile WHERE key = ?", (key,)).fetchone()
            return _load_json(row["value"], row["value"]) if row else None

        rows = conn.execute("SELECT key, value FROM user_profile ORDER BY key").fetchall()
        return {row["key"]: _load_json(row["value"], row["value"]) for row in rows}

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> UserProject:
        return UserProject(
            id=row["id"],
            name=row["name"],
            path=row["path"],
            description=row["description"],
            tech_stack=_load_json(row["tech_stack"], []),
            ai_needs=_load_json(row["ai_needs"], []),
            last_analyzed=row["last_analyzed"],
        )

    async def insert_project(self, project: UserProject) -> int:
        """Insert an analyzed project. Re-analysis of a path always adds a new row."""
        analyzed = project.last_analyzed or utc_now()
        conn = self._db()
        cursor = conn.execute(
            """
            INSERT INTO user_projects (name, path, description, tech_stack, ai_needs, last_analyzed)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                project.name, project.path, project.description,
                json.dumps(project.tech_stack), json.dumps(project.ai_needs), analyzed,
            ),
        )
        conn.commit()
        project.id = cursor.lastrowid
        project.last_analyzed = analyzed
        return project.id

    async def get_project(self, project_id: int) -> Optional[UserProject]:
        row = self._db().execute("SELECT * FROM user_projects WHERE id = ?", (project_id,)).fetchone()
        return self._row_to_project(row) if row else None

    async def get_all_projects(self) -> List[UserProject]:
        rows = self._db().execute(
            "SELECT * FROM user_projects ORDER BY last_analyzed DESC, id DESC"
        ).fetchall()
        return [self._row_to_project(row) for row in rows]

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def insert_recommendation(self, recommendation: Recommendation) -> int:
        created = recommendation.created_at or utc_now()
        conn = self._db()
        cursor = conn.execute(
            """
            INSERT INTO recommendations (tool_id, user_project_id, relevance_score, reason, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                recommendation.tool_id, recommendation.user_project_id,
                recommendation.relevance_score, recommendation.reason,
                recommendation.status.value, created,
            ),
        )
        conn.commit()
        recommendation.id = cursor.lastrowid
        recommendation.created_at = created
        return recommendation.id

    async def get_recommendations(self, project_id: Optional[int] = None,
                                  status: Optional[str] = "pending") -> List[Recommendation]:
        """List recommendations joined with their tools, best score first.

        Args:
            project_id: Restrict to one project when given
            status: Restrict to one status; None returns every status
        """
        conditions = []
        params: List[Any] = []
        if status is not None:
            conditions.append("r.status = ?")
            params.append(RecommendationStatus(status).value)
        if project_id is not None:
            conditions.append("r.user_project_id = ?")
            params.append(project_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self._db().execute(
            f"""
            SELECT r.id AS rec_id, r.user_project_id, r.relevance_score AS rec_score,
                   r.reason AS rec_reason, r.status AS rec_status, r.created_at AS rec_created_at,
                   t.*
            FROM recommendations r
            JOIN ai_tools t ON t.id = r.tool_id
            {where}
            ORDER BY r.relevance_score DESC, r.id ASC
            """,
            params,
        ).fetchall()

        return [
            Recommendation(
                id=row["rec_id"],
                tool_id=row["id"],
                user_project_id=row["user_project_id"],
                relevance_score=row["rec_score"],
                reason=row["rec_reason"] or "",
                status=row["rec_status"],
                created_at=row["rec_created_at"],
                tool=self._row_to_tool(row),
            )
            for row in rows
        ]

    async def update_recommendation_status(self, recommendation_id: int, status: str) -> bool:
        status = RecommendationStatus(status)
        conn = self._db()
        cursor = conn.execute(
            "UPDATE recommendations SET status = ? WHERE id = ?",
            (status.value, recommendation_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_stats(self) -> Dict[str, Any]:
        """Summary counts for the catalog and survey history."""
        conn = self._db()
        total_tools = conn.execute("SELECT COUNT(*) FROM ai_tools").fetchone()[0]
        total_capabilities = conn.execute("SELECT COUNT(*) FROM capabilities").fetchone()[0]
        successful_surveys = conn.execute(
            "SELECT COUNT(*) FROM survey_runs WHERE status = 'success'"
        ).fetchone()[0]
        last_survey_run = conn.execute("SELECT MAX(run_time) FROM survey_runs").fetchone()[0]
        by_category = conn.execute(
            "SELECT category, COUNT(*) AS count FROM ai_tools GROUP BY category ORDER BY count DESC, category"
        ).fetchall()

        return {
            "total_tools": total_tools,
            "total_capabilities": total_capabilities,
            "successful_surveys": successful_surveys,
            "last_survey_run": last_survey_run,
            "tools_by_category": [
                {"category": row["category"], "count": row["count"]} for row in by_category
            ],
        }
