"""
Tests for page_processor.py.

Playwright objects are replaced by small async fakes; no browser is launched.
"""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from surface_crawler.page_processor import (
    EXTERNAL_REDIRECT_ERROR,
    FetchResult,
    PlaywrightPageFetcher,
    infer_status_from_error,
)
from surface_crawler.rate_limiter import RetryPolicy

URL = "https://example.com/app/"


# ====================================================================
# Fakes
# ====================================================================

class FakeRequest:
    def __init__(self, redirected_from=None, response=None):
        self.redirected_from = redirected_from
        self._response = response

    async def response(self):
        return self._response


class FakeResponse:
    def __init__(self, status, url, request=None):
        self.status = status
        self.url = url
        self.request = request or FakeRequest()


class FakePage:
    def __init__(self, outcomes, html="<html><body>ok</body></html>", title="App"):
        self.outcomes = list(outcomes)
        self.html = html
        self._title = title
        self.url = URL
        self.goto_calls = 0
        self.closed = False

    async def goto(self, url, timeout=None, wait_until=None):
        self.goto_calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def content(self):
        return self.html

    async def title(self):
        return self._title

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, page):
        self.page = page

    async def new_page(self):
        return self.page


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_fetcher(max_retries=3):
    sleep = SleepRecorder()
    fetcher = PlaywrightPageFetcher(
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay_ms=1000),
        sleep=sleep,
    )
    return fetcher, sleep


def fetch(fetcher, page):
    return asyncio.run(fetcher.fetch(URL, FakeContext(page)))


# ====================================================================
# infer_status_from_error
# ====================================================================

@pytest.mark.parametrize("message,status", [
    ("net::ERR_HTTP_RESPONSE_CODE_FAILURE 404", 404),
    ("Forbidden 403", 403),
    ("server said 500", 500),
    ("Timeout 30000ms exceeded.", 408),
    ("net::ERR_NAME_NOT_RESOLVED", 0),
])
def test_infer_status_from_error(message, status):
    assert infer_status_from_error(message) == status


class TestFetchResult:

    def test_redirect_detection(self):
        assert FetchResult(url=URL, status=200, final_url=URL, redirect_status=301).was_redirected
        assert FetchResult(url=URL, status=302, final_url=URL).was_redirected
        assert not FetchResult(url=URL, status=200, final_url=URL).was_redirected


# ====================================================================
# PlaywrightPageFetcher.fetch
# ====================================================================

class TestFetch:

    def test_success(self):
        fetcher, sleep = make_fetcher()
        page = FakePage([FakeResponse(200, "https://example.com/app")])
        result = fetch(fetcher, page)
        assert result.status == 200
        assert result.final_url == URL
        assert result.title == "App"
        assert "ok" in result.html
        assert result.redirect_status is None
        assert page.closed
        assert sleep.delays == []

    def test_retries_retryable_status_with_backoff(self):
        fetcher, sleep = make_fetcher()
        page = FakePage([
            FakeResponse(503, URL),
            FakeResponse(429, URL),
            FakeResponse(200, URL),
        ])
        result = fetch(fetcher, page)
        assert result.status == 200
        assert page.goto_calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        fetcher, sleep = make_fetcher(max_retries=2)
        page = FakePage([FakeResponse(500, URL)] * 3)
        result = fetch(fetcher, page)
        assert result.status == 500
        assert page.goto_calls == 3
        assert len(sleep.delays) == 2

    def test_non_retryable_status_returned_immediately(self):
        fetcher, sleep = make_fetcher()
        page = FakePage([FakeResponse(404, URL)])
        assert fetch(fetcher, page).status == 404
        assert page.goto_calls == 1

    def test_retries_timeout_error(self):
        fetcher, sleep = make_fetcher()
        page = FakePage([
            PlaywrightError("Timeout 30000ms exceeded."),
            FakeResponse(200, URL),
        ])
        assert fetch(fetcher, page).status == 200
        assert sleep.delays == [1.0]

    def test_non_retryable_error_raises_and_closes_page(self):
        fetcher, sleep = make_fetcher()
        page = FakePage([PlaywrightError("net::ERR_NAME_NOT_RESOLVED")])
        with pytest.raises(PlaywrightError):
            fetch(fetcher, page)
        assert page.closed
        assert sleep.delays == []

    def test_first_hop_redirect_status(self):
        fetcher, _ = make_fetcher()
        hop = FakeRequest(response=FakeResponse(301, "https://example.com/old"))
        final = FakeResponse(200, URL, request=FakeRequest(redirected_from=hop))
        result = fetch(fetcher, FakePage([final]))
        assert result.redirect_status == 301
        assert result.was_redirected

    def test_external_redirect_is_error_result(self):
        fetcher, _ = make_fetcher()
        hop = FakeRequest(response=FakeResponse(302, URL))
        final = FakeResponse(200, "https://sso.other.com/login", request=FakeRequest(redirected_from=hop))
        page = FakePage([final])
        result = fetch(fetcher, page)
        assert result.error == EXTERNAL_REDIRECT_ERROR
        assert result.status == 302
        assert result.final_url == URL
        assert result.html == ""
        assert page.closed

    def test_fetch_before_init(self):
        fetcher, _ = make_fetcher()
        with pytest.raises(RuntimeError):
            asyncio.run(fetcher.fetch(URL))
