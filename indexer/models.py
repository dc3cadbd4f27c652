"""Catalog entities for the AI tool survey.

Transient in-memory records handed to :class:`indexer.catalog_store.CatalogStore`.
The store owns persistence and url uniqueness; these classes only validate
their own fields.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

Scalar = Union[str, int, float, bool, None]
MetadataValue = Union[Scalar, List[Scalar]]

_SCALAR_TYPES = (str, int, float, bool, type(None))


class ToolSource(str, Enum):
    """External catalogs a tool can be discovered in."""
    HUGGINGFACE = "huggingface"
    GITHUB = "github"
    YOUTUBE = "youtube"
    ARXIV = "arxiv"


class SurveyStatus(str, Enum):
    """Outcome of a single adapter invocation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class RecommendationStatus(str, Enum):
    """Review state of a recommendation."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISMISSED = "dismissed"


def clean_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, MetadataValue]:
    """Coerce a metadata bag into a flat map of scalars and scalar lists.

    Values of any other shape (nested dicts, objects, lists holding
    non-scalars) are replaced by their string form.
    """
    cleaned: Dict[str, MetadataValue] = {}
    for key, value in (metadata or {}).items():
        if isinstance(value, _SCALAR_TYPES):
            cleaned[str(key)] = value
        elif isinstance(value, (list, tuple, set)) and all(isinstance(v, _SCALAR_TYPES) for v in value):
            cleaned[str(key)] = list(value)
        elif isinstance(value, dict):
            cleaned[str(key)] = json.dumps(value, default=str, sort_keys=True)
        else:
            cleaned[str(key)] = str(value)
    return cleaned


@dataclass
class Tool:
    """A discovered AI-related artifact, keyed by url."""
    name: str
    url: str
    source: str
    category: str = "General AI"
    description: Optional[str] = None
    subcategory: Optional[str] = None
    capabilities: List[str] = field(default_factory=list)
    api_available: bool = False
    open_source: bool = False
    pricing_model: Optional[str] = None
    popularity_score: float = 0.0
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    id: Optional[int] = None
    first_discovered: Optional[str] = None
    last_updated: Optional[str] = None
    # Only meaningful inside a recommendation context; never persisted
    relevance_score: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Tool name cannot be empty")
        if not self.url:
            raise ValueError("Tool url cannot be empty")
        if isinstance(self.source, ToolSource):
            self.source = self.source.value

        # Dedupe while keeping discovery order
        seen = set()
        capabilities = []
        for cap in self.capabilities or []:
            if cap and cap not in seen:
                seen.add(cap)
                capabilities.append(cap)
        self.capabilities = capabilities

        self.popularity_score = max(0.0, min(100.0, float(self.popularity_score or 0.0)))
        self.metadata = clean_metadata(self.metadata)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Capability:
    """Capability taxonomy entry."""
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    use_cases: List[str] = field(default_factory=list)
    id: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Capability name cannot be empty")


@dataclass
class SurveyRun:
    """Audit record for one adapter invocation."""
    source: str
    status: SurveyStatus
    items_discovered: int = 0
    items_updated: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    id: Optional[int] = None
    run_time: Optional[str] = None

    @property
    def error_log(self) -> Optional[str]:
        return "\n".join(self.errors) if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = SurveyStatus(self.status).value
        data["error_log"] = self.error_log
        return data


@dataclass
class UserProject:
    """A scanned local codebase and its inferred profile."""
    name: str
    path: str
    description: Optional[str] = None
    tech_stack: List[str] = field(default_factory=list)
    ai_needs: List[str] = field(default_factory=list)
    id: Optional[int] = None
    last_analyzed: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Recommendation:
    """A scored tool suggestion for a project."""
    tool_id: int
    user_project_id: int
    relevance_score: float
    reason: str = ""
    status: RecommendationStatus = RecommendationStatus.PENDING
    id: Optional[int] = None
    created_at: Optional[str] = None
    tool: Optional[Tool] = None

    def __post_init__(self):
        if not 0.0 <= self.relevance_score <= 1.0:
            raise ValueError(f"Relevance score out of range: {self.relevance_score}")
        self.status = RecommendationStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "tool_id": self.tool_id,
            "user_project_id": self.user_project_id,
            "relevance_score": self.relevance_score,
            "reason": self.reason,
            "status": self.status.value,
            "created_at": self.created_at,
        }
        if self.tool is not None:
            data["tool"] = self.tool.to_dict()
        return data
