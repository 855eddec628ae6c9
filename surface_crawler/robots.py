"""
Robots.txt Checker
Fetches and interprets a site's robots.txt, failing open on any problem.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests

from .run_config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class RobotsChecker:
    """
    robots.txt compliance for a single origin.

    Until ``load()`` succeeds the checker is permissive.  Any fetch failure,
    non-2xx response or parse error leaves it permissive and appends a
    message to ``warnings`` so callers can surface the degraded mode.
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str = "*",
        timeout: int = 10,
        request_user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Args:
            base_url: Any URL on the target origin.
            user_agent: Agent name matched against robots.txt groups.
            timeout: HTTP timeout for the robots.txt request (seconds).
            request_user_agent: User-Agent header sent with the request.
        """
        parsed = urlparse(base_url)
        self.origin = f"{parsed.scheme}://{parsed.netloc}"
        self.robots_url = f"{self.origin}/robots.txt"
        self.user_agent = user_agent
        self.timeout = timeout
        self.request_user_agent = request_user_agent
        self.warnings: List[str] = []
        self._parser: Optional[RobotFileParser] = None

    @property
    def is_permissive(self) -> bool:
        return self._parser is None

    def _fail_open(self, message: str) -> None:
        logger.warning(f"[ROBOTS] {message}; allowing all URLs")
        self.warnings.append(message)
        self._parser = None

    def load(self) -> bool:
        """
        Fetch and parse robots.txt.

        Returns:
            True if rules were loaded, False if the checker fell back to
            allow-all.
        """
        logger.info(f"[ROBOTS] Fetching {self.robots_url}")
        try:
            response = requests.get(
                self.robots_url,
                headers={"User-Agent": self.request_user_agent},
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            self._fail_open(f"Failed to fetch robots.txt from {self.robots_url}: {e}")
            return False

        if not 200 <= response.status_code < 300:
            self._fail_open(
                f"robots.txt at {self.robots_url} returned status {response.status_code}"
            )
            return False

        try:
            parser = RobotFileParser()
            parser.set_url(self.robots_url)
            parser.parse(response.text.splitlines())
        except Exception as e:
            self._fail_open(f"Could not parse robots.txt at {self.robots_url}: {e}")
            return False

        self._parser = parser
        logger.info(f"[ROBOTS] Parsed robots.txt for {self.origin}")
        return True

    def is_allowed(self, url: str, user_agent: Optional[str] = None) -> bool:
        """Check if *url* may be fetched.  Indeterminate answers allow."""
        if self._parser is None:
            return True

        agent = user_agent or self.user_agent
        try:
            allowed = self._parser.can_fetch(agent, url)
        except Exception as e:
            logger.debug(f"[ROBOTS] Match error for {url}: {e}")
            return True

        if not allowed:
            logger.debug(f"[ROBOTS] Disallowed: {url}")
        return allowed

    def get_crawl_delay(self, user_agent: Optional[str] = None) -> Optional[float]:
        """Crawl-delay directive in seconds, or None if unset."""
        if self._parser is None:
            return None
        delay = self._parser.crawl_delay(user_agent or self.user_agent)
        return float(delay) if delay is not None else None

    def get_sitemaps(self) -> List[str]:
        if self._parser is None:
            return []
        return list(self._parser.site_maps() or [])


async def create_robots_checker(
    base_url: str,
    user_agent: str = "*",
    timeout: int = 10,
    request_user_agent: str = DEFAULT_USER_AGENT,
) -> RobotsChecker:
    """Build a checker for *base_url*'s origin and load its rules off-loop."""
    checker = RobotsChecker(
        base_url,
        user_agent=user_agent,
        timeout=timeout,
        request_user_agent=request_user_agent,
    )
    await asyncio.to_thread(checker.load)
    return checker
