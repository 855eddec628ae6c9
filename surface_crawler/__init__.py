"""
Surface Crawler Package
Breadth-first discovery of a web application's pages, forms, buttons and
input fields, with robots.txt, rate limiting, URL filters and optional
authenticated sessions.

CLI Usage:
    python -m surface_crawler <url> [options]

    Options:
        --max-pages     Stop after N pages (default: unlimited)
        --max-depth     Maximum link depth (default: unlimited)
        --include       Glob or /regex/ URL allow-pattern (repeatable)
        --exclude       Glob or /regex/ URL deny-pattern (repeatable)
        --rate-limit    Delay between requests in seconds (default: 1.5)
        --format        json | text
        --output        Write results to a file
        --auth-config   JSON auth config (with --role)
"""

from .crawler import Crawler, CrawlState
from .exceptions import (
    AuthConfigError,
    AuthenticationError,
    CrawlError,
    ErrorType,
)
from .interrupts import CancellationToken, install_signal_handlers
from .models import AuthEvent, Button, CrawlResults, Form, InputField, Page
from .output import export_results, format_as_json, format_as_text
from .rate_limiter import RateLimiter, RetryPolicy, exponential_backoff
from .redirects import RedirectTracker
from .robots import RobotsChecker, create_robots_checker
from .run_config import CrawlConfig, CrawlerRunConfig, merge_crawl_config
from .summary import CrawlSummary, StopReason
from .url_filter import UrlFilter, create_permissive_filter, create_url_filter
from .utils import deduplicate_urls, normalize_url, validate_url

__all__ = [
    'Crawler',
    'CrawlState',
    'CrawlConfig',
    'CrawlerRunConfig',
    'merge_crawl_config',
    'CrawlResults',
    'CrawlSummary',
    'StopReason',
    'Page',
    'Form',
    'Button',
    'InputField',
    'AuthEvent',
    # Politeness / scope
    'RateLimiter',
    'RetryPolicy',
    'exponential_backoff',
    'RedirectTracker',
    'RobotsChecker',
    'create_robots_checker',
    'UrlFilter',
    'create_url_filter',
    'create_permissive_filter',
    'normalize_url',
    'deduplicate_urls',
    'validate_url',
    # Interrupts
    'CancellationToken',
    'install_signal_handlers',
    # Output
    'format_as_json',
    'format_as_text',
    'export_results',
    # Errors
    'ErrorType',
    'CrawlError',
    'AuthenticationError',
    'AuthConfigError',
]

__version__ = '2.0.0'
