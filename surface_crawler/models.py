"""
Result Models
=============
Records produced by a crawl and the ``CrawlResults`` aggregate.

``to_dict()`` on every model emits the camelCase keys of the JSON result
document; ``None`` values are omitted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .summary import CrawlSummary, format_timestamp


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Page:
    """One visited URL and its outcome."""
    url: str
    status: int
    title: Optional[str] = None
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None
    links: Optional[List[str]] = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    @property
    def is_error(self) -> bool:
        return self.error is not None or self.status >= 400

    def to_dict(self) -> dict:
        return _compact({
            "url": self.url,
            "status": self.status,
            "title": self.title,
            "discoveredAt": format_timestamp(self.discovered_at),
            "processedAt": format_timestamp(self.processed_at) if self.processed_at else None,
            "links": list(self.links) if self.links is not None else None,
            "error": self.error,
        })


@dataclass
class InputField:
    type: str
    page_url: str
    name: Optional[str] = None
    id: Optional[str] = None
    required: bool = False
    placeholder: Optional[str] = None
    form_id: Optional[str] = None

    def to_dict(self) -> dict:
        return _compact({
            "type": self.type,
            "name": self.name,
            "id": self.id,
            "required": self.required,
            "placeholder": self.placeholder,
            "pageUrl": self.page_url,
            "formId": self.form_id,
        })


@dataclass
class Form:
    action: str
    method: str
    page_url: str
    id: Optional[str] = None
    input_fields: List[InputField] = field(default_factory=list)

    def to_dict(self) -> dict:
        return _compact({
            "id": self.id,
            "action": self.action,
            "method": self.method,
            "pageUrl": self.page_url,
            "inputFields": [f.to_dict() for f in self.input_fields],
        })


@dataclass
class Button:
    type: str
    page_url: str
    text: Optional[str] = None
    id: Optional[str] = None
    class_name: Optional[str] = None
    form_id: Optional[str] = None

    def to_dict(self) -> dict:
        return _compact({
            "type": self.type,
            "text": self.text,
            "id": self.id,
            "className": self.class_name,
            "pageUrl": self.page_url,
            "formId": self.form_id,
        })


@dataclass
class AuthEvent:
    """Login/re-auth/logout outcome recorded by the authenticator."""
    type: str                 # login | re-auth | logout | auth-failure
    role: str
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return _compact({
            "timestamp": format_timestamp(self.timestamp),
            "type": self.type,
            "role": self.role,
            "success": self.success,
            "error": self.error,
            "durationMs": self.duration_ms,
        })


@dataclass(frozen=True)
class CrawlResults:
    """Final output of ``Crawler.crawl()``; built once per crawl."""
    summary: CrawlSummary
    pages: List[Page] = field(default_factory=list)
    forms: List[Form] = field(default_factory=list)
    buttons: List[Button] = field(default_factory=list)
    input_fields: List[InputField] = field(default_factory=list)
    auth_events: Optional[List[AuthEvent]] = None
    role_name: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def error_pages(self) -> List[Page]:
        return [p for p in self.pages if p.is_error]

    def to_dict(self) -> dict:
        data = {
            "summary": self.summary.to_dict(),
            "pages": [p.to_dict() for p in self.pages],
            "forms": [f.to_dict() for f in self.forms],
            "buttons": [b.to_dict() for b in self.buttons],
            "inputFields": [i.to_dict() for i in self.input_fields],
        }
        if self.auth_events is not None:
            data["authEvents"] = [e.to_dict() for e in self.auth_events]
        if self.role_name is not None:
            data["roleName"] = self.role_name
        return data
