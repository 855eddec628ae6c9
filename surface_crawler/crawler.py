"""
Crawl Engine
============
Breadth-first traversal of a web application's reachable surface.

Per dequeued URL the loop applies, in order:

1. page cap (``max_pages``) → stop with ``max_pages_reached``
2. URL filter → ``skipped``
3. robots.txt → ``skipped``
4. redirect-loop check → ``errors`` (not fetched)
5. rate limiter wait, then fetch + extract
6. duplicate-via-redirect → ``skipped``
7. record page/elements, enqueue same-origin links within ``max_depth``

The interrupt flag is polled before every iteration; an in-flight fetch
always completes.  All per-crawl mutable state lives in a ``CrawlState``
created by ``crawl()`` and dropped when it returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set

from .interrupts import CancellationToken
from .models import AuthEvent, Button, CrawlResults, Form, InputField, Page
from .page_processor import (
    FetchResult,
    PageFetcher,
    PlaywrightPageFetcher,
    infer_status_from_error,
)
from .rate_limiter import RateLimiter
from .redirects import RedirectTracker
from .robots import RobotsChecker, create_robots_checker
from .run_config import DEFAULT_USER_AGENT, CrawlConfig
from .scraper import ContentExtractor, ExtractedContent, HtmlContentExtractor
from .summary import CrawlSummary
from .url_filter import UrlFilter
from .utils import is_same_domain, normalize_url, validate_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
RobotsLoader = Callable[[str], Awaitable[RobotsChecker]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QueueItem:
    url: str
    depth: int


@dataclass
class CrawlState:
    """Everything one ``crawl()`` invocation mutates."""
    summary: CrawlSummary
    queue: Deque[QueueItem] = field(default_factory=deque)
    discovered: Set[str] = field(default_factory=set)
    discovered_at: Dict[str, datetime] = field(default_factory=dict)
    redirects: RedirectTracker = field(default_factory=RedirectTracker)
    pages: List[Page] = field(default_factory=list)
    forms: List[Form] = field(default_factory=list)
    buttons: List[Button] = field(default_factory=list)
    input_fields: List[InputField] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def mark_discovered(self, url: str) -> bool:
        """Add *url* to the discovered set.  False if it was already there."""
        if url in self.discovered:
            return False
        self.discovered.add(url)
        self.discovered_at.setdefault(url, _utcnow())
        return True

    def enqueue(self, url: str, depth: int) -> bool:
        if not self.mark_discovered(url):
            return False
        self.queue.append(QueueItem(url, depth))
        return True


class Crawler:
    """
    Single-process BFS crawler.

    Usage::

        crawler = Crawler("https://app.example.com", merge_crawl_config({"maxPages": 50}))
        token = CancellationToken()
        results = await crawler.crawl(token)

        # Or from sync code:
        results = crawler.run()
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[CrawlConfig] = None,
        *,
        rate_limit_seconds: float = 1.5,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[ContentExtractor] = None,
        respect_robots: bool = True,
        robots_loader: Optional[RobotsLoader] = None,
        robots_timeout: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        headless: bool = True,
        timeout_seconds: int = 30,
    ):
        """
        Args:
            base_url: Start URL (validated, then canonicalized).
            config: Limits and URL patterns; defaults to unbounded.
            rate_limit_seconds: Minimum delay between fetches.
            fetcher: Page fetcher; defaults to ``PlaywrightPageFetcher``.
            extractor: Content extractor; defaults to ``HtmlContentExtractor``.
            respect_robots: If False, robots.txt is not consulted.
            robots_loader: Async factory ``(base_url) -> RobotsChecker``.
            robots_timeout: robots.txt fetch timeout for the default loader.
            user_agent: Browser/robots request User-Agent.
            headless: Headless flag for the default fetcher.
            timeout_seconds: Navigation timeout for the default fetcher.
        """
        self.base_url = validate_url(base_url)
        self.config = config or CrawlConfig()
        self.rate_limit_seconds = rate_limit_seconds
        self.respect_robots = respect_robots
        self.robots_timeout = robots_timeout
        self.user_agent = user_agent

        if fetcher is None:
            fetcher = PlaywrightPageFetcher(
                headless=headless,
                timeout_ms=timeout_seconds * 1000,
                user_agent=user_agent,
            )
        self._fetcher = fetcher
        self._extractor = extractor or HtmlContentExtractor()
        self._robots_loader = robots_loader or self._default_robots_loader
        self._url_filter = UrlFilter(
            include_patterns=self.config.include_patterns,
            exclude_patterns=self.config.exclude_patterns,
        )

        self._progress_callback: Optional[ProgressCallback] = None
        self._active_token: Optional[CancellationToken] = None

        # Authentication (session produced externally)
        self._auth_context: Any = None
        self._role_name: Optional[str] = None
        self._auth_events: List[AuthEvent] = []

    # ------------------------------------------------------------------
    # Configuration hooks
    # ------------------------------------------------------------------

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set callback: callback(pages_processed, queue_depth, current_url)"""
        self._progress_callback = callback

    def set_auth_context(self, context: Any, role_name: str) -> None:
        """Use an authenticated session context for subsequent fetches."""
        self._auth_context = context
        self._role_name = role_name
        logger.info(f"[AUTH] Crawling as role '{role_name}'")

    def clear_auth_context(self) -> None:
        self._auth_context = None
        self._role_name = None
        self._auth_events = []

    def add_auth_events(self, events: Iterable[AuthEvent]) -> None:
        self._auth_events.extend(events)

    @property
    def is_authenticated(self) -> bool:
        return self._auth_context is not None

    def stop(self) -> None:
        """Request a graceful stop of the running crawl."""
        if self._active_token is not None:
            self._active_token.interrupt()

    # ------------------------------------------------------------------
    # Sync entry point
    # ------------------------------------------------------------------

    def run(self, token: Optional[CancellationToken] = None) -> CrawlResults:
        """Sync wrapper: run the async crawl from synchronous code."""
        return asyncio.run(self.crawl(token))

    # ------------------------------------------------------------------
    # Main crawl
    # ------------------------------------------------------------------

    async def crawl(self, token: Optional[CancellationToken] = None) -> CrawlResults:
        """
        Run the traversal to completion, cap, interrupt or fatal error.

        Args:
            token: Cancellation token polled between pages.  A private one
                is created if omitted.

        Returns:
            ``CrawlResults`` on every non-fatal exit, including interrupts.

        Raises:
            Exception: Whatever the page fetcher raised during ``init()``.
        """
        token = token or CancellationToken()
        self._active_token = token

        start_url = normalize_url(self.base_url)
        state = CrawlState(summary=CrawlSummary(
            max_pages_limit=self.config.max_pages,
            max_depth_limit=self.config.max_depth,
        ))
        state.enqueue(start_url, 0)

        self._log_start(start_url)

        def _on_interrupt() -> None:
            # The flag on the token drives the loop exit
            pass

        token.on_interrupt(_on_interrupt)
        try:
            await self._fetcher.init()
            robots = await self._init_robots(start_url, state)
            limiter = RateLimiter(self.rate_limit_seconds)
            await self._crawl_bfs(state, token, robots, limiter, start_url)

            if token.is_interrupted:
                state.summary.mark_interrupted()
            else:
                state.summary.mark_completed()
        except Exception:
            state.summary.mark_error()
            logger.error("Crawl aborted by a fatal error", exc_info=True)
            raise
        finally:
            state.summary.finalize()
            token.remove_interrupt_handler(_on_interrupt)
            self._active_token = None
            await self._fetcher.close()
            self._log_end(state)

        return self._build_results(state)

    async def _crawl_bfs(
        self,
        state: CrawlState,
        token: CancellationToken,
        robots: Optional[RobotsChecker],
        limiter: RateLimiter,
        start_url: str,
    ) -> None:
        max_pages = self.config.max_pages
        max_depth = self.config.max_depth

        while state.queue and not token.is_interrupted:
            if max_pages is not None and len(state.pages) >= max_pages:
                logger.info(f"Reached max pages limit: {max_pages}")
                state.summary.mark_max_pages_reached()
                break

            item = state.queue.popleft()
            url, depth = item.url, item.depth

            if not self._url_filter.should_crawl(url):
                state.summary.increment_skipped()
                continue

            if robots is not None and not robots.is_allowed(url):
                logger.info(f"[ROBOTS] Skipping disallowed URL: {url}")
                state.summary.increment_skipped()
                continue

            if state.redirects.is_loop(url):
                logger.warning(f"[REDIRECT] Loop detected, not fetching: {url}")
                state.summary.increment_errors()
                continue

            await limiter.wait()

            logger.info(f"[BFS] Depth:{depth} | Queue:{len(state.queue)} | {url[:80]}")
            links = await self._process_url(state, url)

            next_depth = depth + 1
            if links and (max_depth is None or next_depth <= max_depth):
                enqueued = 0
                for link in links:
                    canonical = normalize_url(link)
                    if not is_same_domain(canonical, start_url):
                        continue
                    if state.enqueue(canonical, next_depth):
                        enqueued += 1
                logger.info(
                    f"[FRONTIER] {url[:60]} → links={len(links)} "
                    f"enqueued={enqueued} queue_size={len(state.queue)}"
                )

            if self._progress_callback:
                try:
                    self._progress_callback(len(state.pages), len(state.queue), url)
                except Exception as e:
                    logger.warning(f"[PROGRESS] Progress callback failed: {e}")

    async def _process_url(self, state: CrawlState, url: str) -> List[str]:
        """Fetch, extract and account for one URL.  Returns discovered links."""
        discovered_at = state.discovered_at.get(url, _utcnow())

        try:
            result = await self._fetcher.fetch(url, self._auth_context)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning(f"[FETCH] Failed {url}: {message}")
            self._record_page(state, Page(
                url=url,
                status=infer_status_from_error(message),
                error=message,
                discovered_at=discovered_at,
                processed_at=_utcnow(),
            ))
            return []

        final_url = normalize_url(result.final_url) if result.final_url else url
        if result.was_redirected:
            state.redirects.record(url, final_url)

        if final_url != url and final_url in state.discovered:
            logger.info(f"[REDIRECT] {url} → {final_url} already discovered, skipping")
            state.summary.increment_skipped()
            return []
        state.mark_discovered(final_url)

        content, parse_error = self._extract(result, final_url)
        page = Page(
            url=final_url,
            status=result.status,
            title=result.title or content.title,
            discovered_at=discovered_at,
            processed_at=_utcnow(),
            links=list(content.links),
            error=result.error or parse_error,
        )
        self._record_page(state, page)
        state.forms.extend(content.forms)
        state.buttons.extend(content.buttons)
        state.input_fields.extend(content.input_fields)
        return content.links

    def _extract(self, result: FetchResult, page_url: str):
        if result.error is not None or not result.html:
            return ExtractedContent(), None
        try:
            return self._extractor.extract(result.html, page_url), None
        except Exception as e:
            logger.warning(f"[PARSER] Could not parse {page_url}: {e}")
            return ExtractedContent(), f"Parse error: {e}"

    @staticmethod
    def _record_page(state: CrawlState, page: Page) -> None:
        if page.is_error:
            state.summary.increment_errors()
        elif page.is_success:
            state.summary.increment_total_pages()
        state.pages.append(page)

    # ------------------------------------------------------------------
    # Robots
    # ------------------------------------------------------------------

    async def _default_robots_loader(self, base_url: str) -> RobotsChecker:
        return await create_robots_checker(
            base_url, timeout=self.robots_timeout, request_user_agent=self.user_agent,
        )

    async def _init_robots(self, start_url: str, state: CrawlState) -> Optional[RobotsChecker]:
        if not self.respect_robots:
            logger.info("[ROBOTS] robots.txt checks disabled")
            return None
        try:
            checker = await self._robots_loader(start_url)
        except Exception as e:
            message = f"robots.txt checker unavailable for {start_url}: {e}"
            logger.warning(f"[ROBOTS] {message}; allowing all URLs")
            state.warnings.append(message)
            return None
        state.warnings.extend(checker.warnings)
        return checker

    # ------------------------------------------------------------------
    # Results / logging
    # ------------------------------------------------------------------

    def _build_results(self, state: CrawlState) -> CrawlResults:
        summary = state.summary
        summary.total_forms = len(state.forms)
        summary.total_buttons = len(state.buttons)
        summary.total_input_fields = len(state.input_fields)

        authenticated = self._role_name is not None
        return CrawlResults(
            summary=summary,
            pages=list(state.pages),
            forms=list(state.forms),
            buttons=list(state.buttons),
            input_fields=list(state.input_fields),
            auth_events=list(self._auth_events) if authenticated else None,
            role_name=self._role_name,
            warnings=list(state.warnings),
        )

    def _log_start(self, start_url: str) -> None:
        logger.info("=" * 60)
        logger.info("CRAWL STARTED")
        logger.info(f"Start URL: {start_url}")
        logger.info(
            f"Limits: max_pages={self.config.max_pages}, max_depth={self.config.max_depth}"
        )
        logger.info(f"Rate limit: {self.rate_limit_seconds}s")
        logger.info("=" * 60)
        self._url_filter.log_scope()

    @staticmethod
    def _log_end(state: CrawlState) -> None:
        summary = state.summary
        reason = summary.stop_reason.value if summary.stop_reason else "unknown"
        logger.info("=" * 60)
        logger.info("CRAWL FINISHED")
        logger.info(
            f"Pages: {summary.total_pages} | Errors: {summary.errors} | "
            f"Skipped: {summary.skipped} | Queue left: {len(state.queue)}"
        )
        logger.info(f"Stop reason: {reason} | Duration: {summary.duration}s")
        logger.info("=" * 60)
