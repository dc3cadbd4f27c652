"""Shared fixtures: temporary catalog stores and network stand-ins."""

from typing import Dict, List, Optional, Union

import pytest

from indexer.catalog_store import CatalogStore
from indexer.models import Tool
from pipelines.fetcher import FetchedPage, FetchError


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


class StubFetcher:
    """Serves canned responses keyed by URL substring, in insertion order."""

    def __init__(self, responses: Optional[Dict[str, Union[str, Exception]]] = None):
        self.responses = dict(responses or {})
        self.requests: List[Dict] = []
        self.sleep = RecordingSleep()

    async def fetch_with_retry(self, url, headers=None, max_retries=3, backoff=None):
        self.requests.append({"url": url, "headers": headers or {}, "max_retries": max_retries})
        for fragment, response in self.responses.items():
            if fragment in url:
                if isinstance(response, Exception):
                    raise response
                return FetchedPage(url=url, status=200, text=response)
        raise FetchError(f"HTTP 404 from {url}", url=url, status=404)

    async def close(self):
        pass


@pytest.fixture
async def store(tmp_path):
    """Initialized SQLite catalog in a temporary directory."""
    catalog = CatalogStore(str(tmp_path / "catalog.db"))
    await catalog.initialize()
    yield catalog
    await catalog.close()


@pytest.fixture
def make_tool():
    def _make(url="https://example.com/tool", **overrides) -> Tool:
        fields = {
            "name": "Example Tool",
            "url": url,
            "source": "github",
            "category": "LLM",
            "description": "An example language model toolkit",
            "capabilities": ["text generation"],
            "popularity_score": 40.0,
        }
        fields.update(overrides)
        return Tool(**fields)
    return _make


@pytest.fixture
def stub_fetcher():
    return StubFetcher()
