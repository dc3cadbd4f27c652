"""Tests for the retrying HTTP fetcher."""

import aiohttp
import pytest

from pipelines.fetcher import DEFAULT_USER_AGENT, FetchError, SurveyFetcher


class FakeResponse:
    def __init__(self, status=200, body="", headers=None):
        self.status = status
        self.body = body
        self.headers = headers or {}

    async def text(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Plays back a fixed list of responses or exceptions."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    def get(self, url, headers=None):
        self.calls.append({"url": url, "headers": headers})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_fetcher(outcomes):
    sleep = RecordingSleep()
    session = FakeSession(outcomes)
    return SurveyFetcher(sleep=sleep, session=session), session, sleep


class TestFetchWithRetry:
    @pytest.mark.asyncio
    async def test_success_returns_page(self):
        fetcher, session, sleep = make_fetcher([FakeResponse(200, '{"ok": true}')])

        page = await fetcher.fetch_with_retry("https://api.example.com/items")

        assert page.status == 200
        assert page.json() == {"ok": True}
        assert sleep.delays == []
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_server_errors_back_off_then_fail(self):
        fetcher, session, sleep = make_fetcher([FakeResponse(500)] * 3)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_with_retry("https://api.example.com/items", max_retries=3)

        assert exc_info.value.status == 500
        assert len(session.calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_honors_retry_after(self):
        fetcher, session, sleep = make_fetcher([
            FakeResponse(429, headers={"Retry-After": "2"}),
            FakeResponse(200, "done"),
        ])

        page = await fetcher.fetch_with_retry("https://api.example.com/items")

        assert page.text == "done"
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_uses_backoff(self):
        fetcher, _, sleep = make_fetcher([FakeResponse(429), FakeResponse(429), FakeResponse(200, "x")])

        await fetcher.fetch_with_retry("https://api.example.com/items")

        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_rate_limited_on_every_attempt(self):
        fetcher, _, sleep = make_fetcher([FakeResponse(429, headers={"Retry-After": "1"})] * 2)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_with_retry("https://api.example.com/items", max_retries=2)

        assert exc_info.value.status == 429
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        fetcher, session, _ = make_fetcher([
            aiohttp.ClientConnectionError("reset"),
            FakeResponse(200, "recovered"),
        ])

        page = await fetcher.fetch_with_retry("https://api.example.com/items")

        assert page.text == "recovered"
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_backoff_override_is_capped(self):
        fetcher, _, sleep = make_fetcher([FakeResponse(503)] * 3)

        with pytest.raises(FetchError):
            await fetcher.fetch_with_retry("https://api.example.com/items",
                                           backoff={"base": 10.0, "max": 15.0})

        assert sleep.delays == [10.0, 15.0]

    @pytest.mark.asyncio
    async def test_user_agent_and_extra_headers_are_sent(self):
        fetcher, session, _ = make_fetcher([FakeResponse(200)])

        await fetcher.fetch_with_retry("https://api.example.com/items",
                                       headers={"Authorization": "token abc"})

        sent = session.calls[0]["headers"]
        assert sent["User-Agent"] == DEFAULT_USER_AGENT
        assert sent["Authorization"] == "token abc"

    @pytest.mark.asyncio
    async def test_zero_attempts_is_rejected(self):
        fetcher, _, _ = make_fetcher([])
        with pytest.raises(ValueError):
            await fetcher.fetch_with_retry("https://api.example.com/items", max_retries=0)

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self):
        fetcher, session, _ = make_fetcher([])
        await fetcher.close()
        assert session.closed is False


class TestRetryDelays:
    def test_exponential_delay(self):
        fetcher = SurveyFetcher(backoff_base=1.0, max_backoff=60.0)
        assert [fetcher.calculate_retry_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]
        assert fetcher.calculate_retry_delay(10) == 60.0

    def test_retry_after_http_date_in_past(self):
        fetcher = SurveyFetcher()
        assert fetcher._retry_after_delay("Wed, 21 Oct 2015 07:28:00 GMT", 5.0) == 0.0

    def test_unparseable_retry_after_falls_back(self):
        fetcher = SurveyFetcher()
        assert fetcher._retry_after_delay("soon", 5.0) == 5.0
