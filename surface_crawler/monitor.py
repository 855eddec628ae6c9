"""
Progress Monitor
================
Console progress line for the crawl loop.

Purely observational: the engine calls ``update`` after each processed URL
and ``finish`` once at the end.  Output goes to stderr so stdout stays
clean for the result document.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

_MAX_URL_CHARS = 80


class ConsoleProgressReporter:
    """Single rewriting status line: pages processed, queue depth, URL."""

    def __init__(self, quiet: bool = False, stream: Optional[TextIO] = None):
        self.quiet = quiet
        self.stream = stream or sys.stderr
        self.pages_processed = 0
        self.queue_depth = 0
        self.current_url = ""
        self._active = False

    def update(self, pages_processed: int, queue_depth: int, current_url: str) -> None:
        self.pages_processed = pages_processed
        self.queue_depth = queue_depth
        self.current_url = current_url
        if self.quiet:
            return
        url = current_url if len(current_url) <= _MAX_URL_CHARS else current_url[:_MAX_URL_CHARS - 3] + "..."
        self.stream.write(
            f"\rCrawling... [{pages_processed} pages processed, {queue_depth} queued] "
            f"Current: {url}\033[K"
        )
        self.stream.flush()
        self._active = True

    # Allows passing the reporter itself as the engine's progress callback
    __call__ = update

    def finish(self) -> None:
        if self.quiet or not self._active:
            return
        self.stream.write("\n")
        self.stream.flush()
        self._active = False
