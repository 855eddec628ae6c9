"""
Run Configuration
=================
Single source of truth for crawl limits and runtime defaults.

Two layers:

- ``CrawlConfig``: the immutable limits/patterns a crawl runs under.
  Built by ``merge_crawl_config`` from a caller-supplied partial mapping.
  ``None`` limits mean unbounded; ``max_depth=0`` is a real limit
  (start page only), never "unset".
- ``CrawlerRunConfig``: everything the CLI controls (pacing, browser,
  output, auth) plus the limits, with a converter to ``CrawlConfig``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_pages": None,               # unbounded
    "max_depth": None,               # unbounded
    "rate_limit": 1.5,               # seconds between requests
    "timeout_seconds": 30,           # per-page navigation timeout
    "headless": True,
    "respect_robots": True,
    "robots_timeout": 10,
    "user_agent": DEFAULT_USER_AGENT,
    "output_format": "json",         # "json" | "text"
    "output_path": None,             # None = stdout
}

_CAMEL_KEYS = {
    "maxPages": "max_pages",
    "maxDepth": "max_depth",
    "includePatterns": "include_patterns",
    "excludePatterns": "exclude_patterns",
}


@dataclass(frozen=True)
class CrawlConfig:
    """Limits and URL patterns for one crawl.  Immutable once built."""
    max_pages: Optional[int] = _DEFAULTS["max_pages"]
    max_depth: Optional[int] = _DEFAULTS["max_depth"]
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError(f"max_pages must be a positive integer (got {self.max_pages})")
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError(f"max_depth must be non-negative (got {self.max_depth})")
        object.__setattr__(self, "include_patterns", tuple(self.include_patterns or ()))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns or ()))

    def to_dict(self) -> dict:
        return {
            "maxPages": self.max_pages,
            "maxDepth": self.max_depth,
            "includePatterns": list(self.include_patterns),
            "excludePatterns": list(self.exclude_patterns),
        }


def merge_crawl_config(partial: Optional[Mapping[str, Any]] = None) -> CrawlConfig:
    """
    Overlay *partial* onto the defaults.

    Keys may be snake_case (``max_pages``) or camelCase (``maxPages``).
    Unknown keys are ignored with a warning.

    Raises:
        ValueError: If a limit is out of range.
    """
    known = {f.name for f in fields(CrawlConfig)}
    values = {}
    for key, value in (partial or {}).items():
        name = _CAMEL_KEYS.get(key, key)
        if name not in known:
            logger.warning(f"Ignoring unknown crawl config key: {key}")
            continue
        values[name] = value
    return CrawlConfig(**values)


@dataclass
class CrawlerRunConfig:
    """
    Unified configuration consumed by the CLI and the crawl engine.

    Populate via:
      - ``CrawlerRunConfig()``               → all defaults
      - ``CrawlerRunConfig(max_pages=50)``   → override one value
      - ``CrawlerRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Crawl limits ----
    max_pages: Optional[int] = _DEFAULTS["max_pages"]
    max_depth: Optional[int] = _DEFAULTS["max_depth"]
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)

    # ---- Pacing / politeness ----
    rate_limit: float = _DEFAULTS["rate_limit"]
    respect_robots: bool = _DEFAULTS["respect_robots"]
    robots_timeout: int = _DEFAULTS["robots_timeout"]

    # ---- Browser ----
    timeout_seconds: int = _DEFAULTS["timeout_seconds"]
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Output ----
    output_format: str = _DEFAULTS["output_format"]
    output_path: Optional[str] = _DEFAULTS["output_path"]
    verbose: bool = False
    quiet: bool = False

    # ---- Authentication ----
    auth_config_path: Optional[str] = None
    role: Optional[str] = None
    storage_state_path: Optional[str] = None

    def __post_init__(self):
        if self.rate_limit <= 0:
            raise ValueError(f"rate limit must be a positive number of seconds (got {self.rate_limit})")
        if self.output_format not in ("json", "text"):
            raise ValueError(f"unknown output format: {self.output_format}")

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        return cls(
            max_pages=getattr(args, "max_pages", _DEFAULTS["max_pages"]),
            max_depth=getattr(args, "max_depth", _DEFAULTS["max_depth"]),
            include_patterns=list(getattr(args, "include", None) or []),
            exclude_patterns=list(getattr(args, "exclude", None) or []),
            rate_limit=getattr(args, "rate_limit", _DEFAULTS["rate_limit"]),
            respect_robots=not getattr(args, "ignore_robots", False),
            timeout_seconds=getattr(args, "timeout", _DEFAULTS["timeout_seconds"]),
            headless=not getattr(args, "headed", False),
            user_agent=getattr(args, "user_agent", None) or _DEFAULTS["user_agent"],
            output_format=getattr(args, "format", _DEFAULTS["output_format"]),
            output_path=getattr(args, "output", None),
            verbose=getattr(args, "verbose", False),
            quiet=getattr(args, "quiet", False),
            auth_config_path=getattr(args, "auth_config", None),
            role=getattr(args, "role", None),
            storage_state_path=getattr(args, "storage_state", None),
        )

    def to_crawl_config(self) -> CrawlConfig:
        return CrawlConfig(
            max_pages=self.max_pages,
            max_depth=self.max_depth,
            include_patterns=tuple(self.include_patterns),
            exclude_patterns=tuple(self.exclude_patterns),
        )

    @property
    def has_auth(self) -> bool:
        return bool(self.storage_state_path or (self.auth_config_path and self.role))

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max Pages:        {self.max_pages if self.max_pages is not None else 'unlimited'}")
        logger.info(f"  Max Depth:        {self.max_depth if self.max_depth is not None else 'unlimited'}")
        logger.info(f"  Rate Limit:       {self.rate_limit}s between requests")
        logger.info(f"  Timeout:          {self.timeout_seconds}s per page")
        logger.info(f"  Robots.txt:       {'respected' if self.respect_robots else 'ignored'}")
        if self.include_patterns:
            logger.info(f"  Include:          {self.include_patterns}")
        if self.exclude_patterns:
            logger.info(f"  Exclude:          {self.exclude_patterns}")
        if self.role:
            logger.info(f"  Auth Role:        {self.role}")
        elif self.storage_state_path:
            logger.info(f"  Storage State:    {self.storage_state_path}")
        logger.info("=" * 60)
