"""
Crawl Summary
=============
Counters plus the stop-reason state machine for one crawl.

States::

    running ──► completed
            ├─► max_pages_reached
            ├─► interrupted
            └─► error

The first terminal transition wins; later ``mark_*`` calls are ignored.
``finalize`` stamps ``end_time``/``duration`` and may run only once.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    COMPLETED = "completed"
    MAX_PAGES_REACHED = "max_pages_reached"
    INTERRUPTED = "interrupted"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class CrawlSummary:
    """Mutable per-crawl summary owned by the crawl loop."""

    total_pages: int = 0
    total_forms: int = 0
    total_buttons: int = 0
    total_input_fields: int = 0
    errors: int = 0
    skipped: int = 0
    interrupted: bool = False
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    stop_reason: Optional[StopReason] = None
    max_pages_limit: Optional[int] = None
    max_depth_limit: Optional[int] = None

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def increment_total_pages(self) -> int:
        self.total_pages += 1
        return self.total_pages

    def increment_errors(self) -> int:
        self.errors += 1
        return self.errors

    def increment_skipped(self) -> int:
        self.skipped += 1
        return self.skipped

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.stop_reason is None

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None

    def _terminate(self, reason: StopReason) -> bool:
        if self.stop_reason is not None:
            logger.debug(
                f"Stop reason already '{self.stop_reason.value}', ignoring '{reason.value}'"
            )
            return False
        self.stop_reason = reason
        return True

    def mark_max_pages_reached(self) -> bool:
        return self._terminate(StopReason.MAX_PAGES_REACHED)

    def mark_interrupted(self) -> bool:
        changed = self._terminate(StopReason.INTERRUPTED)
        if changed:
            self.interrupted = True
        return changed

    def mark_completed(self) -> bool:
        return self._terminate(StopReason.COMPLETED)

    def mark_error(self) -> bool:
        return self._terminate(StopReason.ERROR)

    def finalize(self, end_time: Optional[datetime] = None) -> "CrawlSummary":
        """
        Stamp ``end_time`` and compute ``duration`` (whole seconds, floored).

        Raises:
            RuntimeError: If the summary was already finalized.
        """
        if self.is_finalized:
            raise RuntimeError("Crawl summary already finalized")
        self.end_time = end_time or _utcnow()
        elapsed = (self.end_time - self.start_time).total_seconds()
        self.duration = max(0, math.floor(elapsed))
        return self

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """camelCase dict for the JSON result document."""
        data = {
            "totalPages": self.total_pages,
            "totalForms": self.total_forms,
            "totalButtons": self.total_buttons,
            "totalInputFields": self.total_input_fields,
            "errors": self.errors,
            "skipped": self.skipped,
            "interrupted": self.interrupted,
            "startTime": format_timestamp(self.start_time),
        }
        if self.end_time is not None:
            data["endTime"] = format_timestamp(self.end_time)
        if self.duration is not None:
            data["duration"] = self.duration
        if self.stop_reason is not None:
            data["stopReason"] = self.stop_reason.value
        if self.max_pages_limit is not None:
            data["maxPagesLimit"] = self.max_pages_limit
        if self.max_depth_limit is not None:
            data["maxDepthLimit"] = self.max_depth_limit
        return data
