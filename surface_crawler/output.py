"""
Result Output
=============
JSON and plain-text renderings of ``CrawlResults`` and file export.

The JSON document is the crawl's external contract::

    {"summary": {...}, "pages": [...], "forms": [...], "buttons": [...],
     "inputFields": [...], "authEvents": [...]?, "roleName": "..."?}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from .models import CrawlResults
from .summary import StopReason

logger = logging.getLogger(__name__)

_MAX_ERRORS_SHOWN = 10
_MAX_PAGES_LISTED = 50

_STOP_REASON_TEXT = {
    StopReason.COMPLETED: "Crawl completed normally",
    StopReason.MAX_PAGES_REACHED: "Stopped: Maximum page limit reached",
    StopReason.INTERRUPTED: "Stopped: User interrupted (Ctrl+C)",
    StopReason.ERROR: "Stopped: Fatal error occurred",
}


def format_as_json(results: CrawlResults) -> str:
    return json.dumps(results.to_dict(), indent=2, ensure_ascii=False)


def format_duration(seconds: Optional[int]) -> str:
    seconds = seconds or 0
    return f"{seconds // 60}m {seconds % 60}s"


def format_as_text(results: CrawlResults, verbose: bool = False) -> str:
    """Human-readable crawl summary."""
    summary = results.summary
    lines: List[str] = [
        "Crawl Summary",
        "=============",
        f"Total Pages: {summary.total_pages}",
        f"Total Forms: {summary.total_forms}",
        f"Total Buttons: {summary.total_buttons}",
        f"Total Input Fields: {summary.total_input_fields}",
        f"Errors: {summary.errors}",
        f"Skipped: {summary.skipped}",
    ]
    if summary.max_pages_limit is not None:
        lines.append(f"Max Pages Limit: {summary.max_pages_limit}")
    if summary.max_depth_limit is not None:
        lines.append(f"Max Depth Limit: {summary.max_depth_limit}")
    if summary.duration is not None:
        lines.append(f"Duration: {format_duration(summary.duration)}")
    if results.role_name:
        lines.append(f"Role: {results.role_name}")

    if summary.stop_reason is not None:
        lines += ["", _STOP_REASON_TEXT[summary.stop_reason]]

    error_pages = results.error_pages
    if error_pages:
        lines += ["", "Error Summary:"]
        for page in error_pages[:_MAX_ERRORS_SHOWN]:
            detail = page.error or f"HTTP {page.status}"
            lines.append(f"  - {page.url}: {detail}")
        if len(error_pages) > _MAX_ERRORS_SHOWN:
            lines.append(f"  ... and {len(error_pages) - _MAX_ERRORS_SHOWN} more errors")

    if summary.skipped > 0:
        lines += [
            "",
            "Skipped Pages:",
            f"  {summary.skipped} URLs were skipped (filtered, robots.txt disallowed or duplicate redirect)",
        ]

    if results.warnings:
        lines += ["", "Warnings:"]
        lines += [f"  - {w}" for w in results.warnings]

    pages = results.pages
    if pages and (verbose or len(pages) <= _MAX_PAGES_LISTED):
        lines += ["", "Pages:"]
        for page in pages:
            entry = f"  - {page.url}"
            if page.title:
                entry += f" ({page.title})"
            if page.status:
                entry += f" [{page.status}]"
            lines.append(entry)
    elif pages:
        lines += ["", f"Pages: {len(pages)} pages discovered (use --verbose to see all)"]

    return "\n".join(lines) + "\n"


def render(results: CrawlResults, fmt: str = "json", verbose: bool = False) -> str:
    if fmt == "text":
        return format_as_text(results, verbose=verbose)
    if fmt == "json":
        return format_as_json(results)
    raise ValueError(f"Unknown output format: {fmt}")


def export_results(
    results: CrawlResults,
    filepath: str,
    fmt: str = "json",
    verbose: bool = False,
) -> str:
    """Write results to *filepath*; returns the absolute path."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(render(results, fmt, verbose=verbose))
    logger.info(f"Results written to {path.absolute()}")
    return str(path.absolute())
