#!/usr/bin/env python3
"""
Command-line interface for the surface crawler
==============================================
Crawls a web application breadth-first and prints (or writes) the
discovered pages, forms, buttons and input fields.

All configuration flows through ``CrawlerRunConfig``.

Exit codes:
    0    crawl finished with no page errors
    1    page errors, invalid options, or a fatal/auth error
    130  interrupted (SIGINT / SIGTERM)

Run with: python -m surface_crawler https://app.example.com
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env file (credentials) before anything reads the environment
_env_path = Path(__file__).resolve().parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()  # tries CWD

from .auth import AuthConfig, Authenticator, load_auth_config, storage_state_role
from .auth.auth_config import AuthMethodConfig
from .crawler import Crawler
from .exceptions import AuthConfigError, AuthenticationError, CrawlError
from .interrupts import INTERRUPT_EXIT_CODE, CancellationToken, install_signal_handlers
from .models import CrawlResults
from .monitor import ConsoleProgressReporter
from .output import export_results, format_duration, render
from .run_config import CrawlerRunConfig
from .utils import validate_url

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def print_summary(results: CrawlResults) -> None:
    """Print crawl summary to stderr (stdout may carry the result document)."""
    s = results.summary
    out = sys.stderr
    print("\n" + "=" * 65, file=out)
    print("CRAWL COMPLETE" if not s.interrupted else "CRAWL INTERRUPTED", file=out)
    print("=" * 65, file=out)
    print(f"  Pages crawled:       {s.total_pages}", file=out)
    print(f"  Forms:               {s.total_forms}", file=out)
    print(f"  Buttons:             {s.total_buttons}", file=out)
    print(f"  Input fields:        {s.total_input_fields}", file=out)
    print(f"  Errors:              {s.errors}", file=out)
    if s.skipped:
        print(f"  Skipped:             {s.skipped} (filtered / robots.txt)", file=out)
    print(f"  Duration:            {format_duration(s.duration)}", file=out)
    if results.role_name:
        print(f"  Role:                {results.role_name}", file=out)
    print(f"  Stop reason:         {s.stop_reason.value if s.stop_reason else 'unknown'}", file=out)
    print("=" * 65, file=out)


# ---------------------------------------------------------------------------
# Auth resolution
# ---------------------------------------------------------------------------

def _resolve_auth(cfg: CrawlerRunConfig) -> Optional[Tuple[AuthConfig, str]]:
    """Work out which auth config and role the run uses, if any.

    ``--storage-state`` alone crawls with that saved session.  Combined
    with ``--auth-config``/``--role`` it replaces the role's login.

    Raises:
        AuthConfigError: Inconsistent flags or an invalid config file.
    """
    if cfg.role and not cfg.auth_config_path:
        raise AuthConfigError("--role requires --auth-config")

    if cfg.auth_config_path:
        config = load_auth_config(cfg.auth_config_path)
        if not cfg.role:
            raise AuthConfigError(
                "--auth-config requires --role",
                [f"available roles: {', '.join(config.role_names) or 'none'}"],
            )
        role = config.get_role(cfg.role)
        if role is None:
            raise AuthConfigError(
                f"Role '{cfg.role}' not found in {cfg.auth_config_path}",
                [f"available roles: {', '.join(config.role_names) or 'none'}"],
            )
        if cfg.storage_state_path:
            saved = AuthMethodConfig(type="storage-state", path=cfg.storage_state_path)
            roles = [
                replace(r, auth_method=saved) if r.name == role.name else r
                for r in config.roles
            ]
            config = AuthConfig(roles=roles, login=config.login)
        return config, role.name

    if cfg.storage_state_path:
        role = storage_state_role(cfg.storage_state_path)
        return AuthConfig(roles=[role]), role.name

    return None


# ---------------------------------------------------------------------------
# Crawl
# ---------------------------------------------------------------------------

async def _crawl_async(
    url: str,
    cfg: CrawlerRunConfig,
    token: CancellationToken,
    auth: Optional[Tuple[AuthConfig, str]] = None,
) -> CrawlResults:
    crawler = Crawler(
        url,
        cfg.to_crawl_config(),
        rate_limit_seconds=cfg.rate_limit,
        respect_robots=cfg.respect_robots,
        robots_timeout=cfg.robots_timeout,
        user_agent=cfg.user_agent,
        headless=cfg.headless,
        timeout_seconds=cfg.timeout_seconds,
    )
    reporter = ConsoleProgressReporter(quiet=cfg.quiet)
    crawler.set_progress_callback(reporter)

    try:
        if auth is None:
            return await crawler.crawl(token)
        return await _crawl_authenticated(crawler, cfg, token, *auth)
    finally:
        reporter.finish()


async def _crawl_authenticated(
    crawler: Crawler,
    cfg: CrawlerRunConfig,
    token: CancellationToken,
    auth_config: AuthConfig,
    role_name: str,
) -> CrawlResults:
    """Log in with a dedicated browser, then crawl inside the role's context."""
    from playwright.async_api import async_playwright

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=cfg.headless)
        authenticator = Authenticator(
            auth_config,
            browser,
            context_options={"user_agent": cfg.user_agent},
        )
        try:
            context = await authenticator.authenticate(role_name)
            crawler.set_auth_context(context, role_name)
            crawler.add_auth_events(authenticator.get_auth_events())
            return await crawler.crawl(token)
        finally:
            await authenticator.close()
            await browser.close()


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='surface-crawler',
        description='Discover the pages, forms, buttons and inputs of a web application',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  surface-crawler https://app.example.com
  surface-crawler https://app.example.com --max-pages 50 --max-depth 2
  surface-crawler https://app.example.com --include "**/docs/**" --exclude "**/*.pdf"
  surface-crawler https://app.example.com --format text --output crawl.txt
  surface-crawler https://app.example.com --auth-config auth.json --role admin
        """
    )

    parser.add_argument('url', help='Start URL to crawl')

    # ── Scope ─────────────────────────────────────────────────────
    scope_group = parser.add_argument_group('Scope')
    scope_group.add_argument('--max-pages', type=int, default=None, metavar='N',
                             help='Stop after N pages (default: unlimited)')
    scope_group.add_argument('--max-depth', type=int, default=None, metavar='N',
                             help='Maximum link depth from the start URL; 0 = start page only')
    scope_group.add_argument('--include', action='append', default=[], metavar='PATTERN',
                             help='Only crawl URLs matching PATTERN (glob or /regex/, repeatable)')
    scope_group.add_argument('--exclude', action='append', default=[], metavar='PATTERN',
                             help='Never crawl URLs matching PATTERN (glob or /regex/, repeatable)')

    # ── Politeness / browser ──────────────────────────────────────
    browser_group = parser.add_argument_group('Politeness and browser')
    browser_group.add_argument('--rate-limit', type=float, default=1.5, metavar='SECONDS',
                               help='Minimum delay between requests (default: 1.5)')
    browser_group.add_argument('--timeout', type=int, default=30, metavar='SECONDS',
                               help='Navigation timeout per page (default: 30)')
    browser_group.add_argument('--user-agent', type=str, default=None,
                               help='Override the browser User-Agent')
    browser_group.add_argument('--ignore-robots', action='store_true',
                               help='Do not consult robots.txt')
    browser_group.add_argument('--headed', action='store_true',
                               help='Show the browser window')

    # ── Output ────────────────────────────────────────────────────
    output_group = parser.add_argument_group('Output')
    output_group.add_argument('--format', choices=['json', 'text'], default='json',
                              help='Result format (default: json)')
    output_group.add_argument('--output', '-o', type=str, metavar='FILE',
                              help='Write results to FILE instead of stdout')
    output_group.add_argument('--verbose', '-v', action='store_true',
                              help='Debug logging and full page list in text output')
    output_group.add_argument('--quiet', '-q', action='store_true',
                              help='Only warnings and errors; no progress line')

    # ── Authentication ────────────────────────────────────────────
    auth_group = parser.add_argument_group(
        'Authentication',
        'Credentials are read from the environment variables named in the '
        'auth config (a .env file is loaded automatically).')
    auth_group.add_argument('--auth-config', type=str, metavar='FILE',
                            help='JSON auth config with roles and login settings')
    auth_group.add_argument('--role', type=str, metavar='NAME',
                            help='Role from the auth config to crawl as')
    auth_group.add_argument('--storage-state', type=str, metavar='FILE',
                            help='Reuse a saved Playwright storage state (cookies + localStorage)')

    return parser


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build CrawlerRunConfig, run.  Returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        url = validate_url(args.url)
        cfg = CrawlerRunConfig.from_cli_args(args)
        cfg.to_crawl_config()
        auth = _resolve_auth(cfg)
    except CrawlError as exc:
        logger.error(exc.to_user_message())
        return 1
    except AuthConfigError as exc:
        logger.error(exc.to_user_message())
        return 1
    except ValueError as exc:
        logger.error(f"Invalid option: {exc}")
        return 1

    cfg.log_summary(url)

    token = CancellationToken()
    restore_signals = install_signal_handlers(token)
    try:
        results = asyncio.run(_crawl_async(url, cfg, token, auth))
    except (AuthenticationError, AuthConfigError) as exc:
        logger.error(exc.to_user_message())
        return 1
    except CrawlError as exc:
        logger.error(exc.to_user_message())
        return 1
    except Exception as exc:
        logger.error(f"Crawl failed: {exc}", exc_info=cfg.verbose)
        return 1
    finally:
        restore_signals()

    if cfg.output_path:
        path = export_results(results, cfg.output_path, cfg.output_format, verbose=cfg.verbose)
        if not cfg.quiet:
            print(f"  Exported: {path}", file=sys.stderr)
    else:
        rendered = render(results, cfg.output_format, verbose=cfg.verbose)
        sys.stdout.write(rendered if rendered.endswith("\n") else rendered + "\n")
        sys.stdout.flush()

    if not cfg.quiet:
        print_summary(results)

    if results.summary.interrupted:
        return INTERRUPT_EXIT_CODE
    if results.summary.errors > 0:
        return 1
    return 0


def main() -> None:
    sys.exit(run_cli_with_args())


if __name__ == '__main__':
    main()
