"""
Page Fetcher
============
Loads a URL in a real browser and reports status, final URL and HTML.

``PlaywrightPageFetcher`` owns one Chromium instance for the lifetime of a
crawl.  Fetches run in a fresh page of either the fetcher's own context or
an externally supplied (authenticated) ``BrowserContext``.

Retry policy:

- HTTP 429/500/502/503/504 → retried up to 3 more times
- navigation errors mentioning 429/5xx/timeout → same
- delay between attempts: ``exponential_backoff(attempt, 1000)`` ms

A response whose final URL lands on another host is not followed: it is
reported as an error result ("Redirected to external domain").
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Response, async_playwright
from playwright.async_api import Error as PlaywrightError

from .rate_limiter import RetryPolicy
from .run_config import DEFAULT_USER_AGENT
from .utils import is_same_domain, normalize_url

logger = logging.getLogger(__name__)

EXTERNAL_REDIRECT_ERROR = "Redirected to external domain"


@dataclass
class FetchResult:
    """Outcome of fetching one URL."""
    url: str                              # as requested (canonical)
    status: int
    final_url: str
    html: str = ""
    title: Optional[str] = None
    error: Optional[str] = None
    redirect_status: Optional[int] = None  # first-hop 3xx, if the request was redirected

    @property
    def was_redirected(self) -> bool:
        if self.redirect_status is not None and 300 <= self.redirect_status < 400:
            return True
        return 300 <= self.status < 400


def infer_status_from_error(message: str) -> int:
    """Best-effort HTTP status for a fetch exception message."""
    if "404" in message:
        return 404
    if "403" in message:
        return 403
    if "500" in message:
        return 500
    if "timeout" in message.lower():
        return 408
    return 0


class PageFetcher(ABC):
    """Collaborator contract used by the crawl engine."""

    async def init(self) -> None:
        """Acquire backend resources.  Errors here are fatal to the crawl."""

    @abstractmethod
    async def fetch(self, url: str, context: Any = None) -> FetchResult:
        """Fetch *url*, optionally inside an authenticated session *context*."""
        ...

    async def close(self) -> None:
        """Release backend resources.  Must not raise."""


class PlaywrightPageFetcher(PageFetcher):
    """Async Playwright (Chromium) implementation of ``PageFetcher``."""

    def __init__(
        self,
        headless: bool = True,
        timeout_ms: int = 30000,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

        # Playwright handles
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    # ------------------------------------------------------------------
    # Browser management
    # ------------------------------------------------------------------

    async def init(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=[
                '--disable-gpu',
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-background-networking',
                '--disable-extensions',
                '--no-first-run',
            ],
        )
        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            locale='en-US',
        )
        logger.info(f"[FETCH] Playwright browser initialized (headless={self.headless})")

    async def close(self) -> None:
        if self._context:
            try:
                for p in self._context.pages:
                    try:
                        await p.close()
                    except Exception:
                        pass
                await self._context.close()
            except Exception:
                pass
            self._context = None
        if self._browser:
            try:
                await self._browser.close()
            except Exception:
                pass
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception:
                pass
            self._playwright = None

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _goto_with_retry(self, page, url: str) -> Optional[Response]:
        attempt = 0
        while True:
            try:
                response = await page.goto(url, timeout=self.timeout_ms, wait_until='load')
            except PlaywrightError as exc:
                if self.retry_policy.should_retry_error(exc, attempt):
                    delay = self.retry_policy.delay_seconds(attempt)
                    logger.warning(
                        f"[FETCH] Attempt {attempt + 1} failed for {url}: {exc}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise

            status = response.status if response else 200
            if self.retry_policy.should_retry(status, attempt):
                delay = self.retry_policy.delay_seconds(attempt)
                logger.warning(
                    f"[FETCH] HTTP {status} for {url}, retry {attempt + 1}/"
                    f"{self.retry_policy.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1
                continue
            return response

    @staticmethod
    async def _first_hop_status(response: Optional[Response]) -> Optional[int]:
        """Status of the first response in a redirect chain, if any."""
        if response is None:
            return None
        request = response.request
        first = None
        while request.redirected_from is not None:
            request = request.redirected_from
            first = request
        if first is None:
            return None
        first_response = await first.response()
        return first_response.status if first_response else None

    async def fetch(self, url: str, context: Optional[BrowserContext] = None) -> FetchResult:
        ctx = context or self._context
        if ctx is None:
            raise RuntimeError("PlaywrightPageFetcher.fetch() called before init()")

        page = await ctx.new_page()
        try:
            response = await self._goto_with_retry(page, url)
            status = response.status if response else 200
            final_url = response.url if response else page.url
            redirect_status = await self._first_hop_status(response)

            if not is_same_domain(final_url, url):
                logger.info(f"[FETCH] {url} redirected off-site to {final_url}")
                return FetchResult(
                    url=url,
                    status=redirect_status or 301,
                    final_url=url,
                    error=EXTERNAL_REDIRECT_ERROR,
                    redirect_status=redirect_status,
                )

            html = await page.content()
            title = await page.title()
            return FetchResult(
                url=url,
                status=status,
                final_url=normalize_url(final_url),
                html=html,
                title=title or None,
                redirect_status=redirect_status,
            )
        finally:
            try:
                await page.close()
            except Exception:
                pass
