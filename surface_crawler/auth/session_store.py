"""
Session Store
=============
Loads, validates and saves Playwright ``storage_state`` files
(cookies + localStorage).

Responsibilities:
    1. Validate a saved state file (exists, JSON, has cookies, not too old)
    2. Apply saved state to an existing browser context
    3. Save a context's state after a successful login

Usage::

    store = SessionStore("auth/admin_state.json")
    if store.has_valid_session():
        await store.apply_to_context(context)
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..exceptions import AuthenticationError, StorageStateNotFoundError

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings
# ---------------------------------------------------------------------------

_DEFAULT_STATE_PATH = "auth_state.json"

# Re-creates localStorage entries on every page of the matching origin
_LOCAL_STORAGE_SCRIPT = """
(() => {
    const origin = %s;
    const items = %s;
    if (window.location.origin !== origin) return;
    for (const [key, value] of items) {
        try { window.localStorage.setItem(key, value); } catch (e) {}
    }
})();
"""


class SessionStore:
    """Persists and reuses authenticated browser sessions."""

    def __init__(
        self,
        state_path: str = _DEFAULT_STATE_PATH,
        *,
        max_age_hours: Optional[float] = None,
        role: str = "",
    ):
        """
        Args:
            state_path:    File path of the storage_state JSON.
            max_age_hours: Reject files older than this (None = no limit).
            role:          Role name, used in errors and logs.
        """
        self.state_path = state_path
        self.max_age_hours = max_age_hours
        self.role = role

    @property
    def path(self) -> Path:
        return Path(self.state_path).expanduser().resolve()

    # ── Validation ────────────────────────────────────────────────

    def has_valid_session(self) -> bool:
        """Check if the saved session file exists and is usable.

        Validates:
            - File exists and is readable JSON
            - Contains at least one cookie
            - File is not older than ``max_age_hours`` (if set)
        """
        path = self.path
        if not path.exists():
            logger.info(f"[SESSION] No saved session file found at {path}")
            return False

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[SESSION] Corrupt session file: {exc}")
            return False

        cookies = data.get("cookies", []) if isinstance(data, dict) else []
        if not cookies:
            logger.info("[SESSION] Session file has no cookies, treating as stale")
            return False

        age_hours = (time.time() - path.stat().st_mtime) / 3600
        if self.max_age_hours is not None and age_hours > self.max_age_hours:
            logger.info(
                f"[SESSION] Session is {age_hours:.1f}h old, expired "
                f"(max {self.max_age_hours}h)"
            )
            return False

        logger.info(
            f"[SESSION] Valid session: {len(cookies)} cookies, "
            f"age {age_hours:.1f}h"
        )
        return True

    def load_state(self) -> Dict[str, Any]:
        """Read the state file.

        Raises:
            StorageStateNotFoundError: File missing.
            AuthenticationError: File unreadable or not a state object.
        """
        path = self.path
        if not path.exists():
            raise StorageStateNotFoundError(str(path), role=self.role)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise AuthenticationError(
                f"Invalid storage state file: {path}", role=self.role, cause=exc
            ) from exc
        if not isinstance(data, dict) or not (
            isinstance(data.get("cookies"), list) or isinstance(data.get("origins"), list)
        ):
            raise AuthenticationError(
                f"Storage state file has no cookies or origins: {path}", role=self.role
            )
        return data

    # ── Apply / save ──────────────────────────────────────────────

    async def apply_to_context(self, context: "BrowserContext") -> int:
        """Load saved cookies and localStorage into *context*.

        Returns:
            Number of cookies applied.
        """
        state = self.load_state()
        cookies: List[Dict[str, Any]] = state.get("cookies") or []
        if cookies:
            await context.add_cookies(cookies)

        origins = state.get("origins") or []
        for entry in origins:
            origin = entry.get("origin")
            items = [
                [item.get("name", ""), item.get("value", "")]
                for item in entry.get("localStorage") or []
            ]
            if not origin or not items:
                continue
            await context.add_init_script(
                script=_LOCAL_STORAGE_SCRIPT % (json.dumps(origin), json.dumps(items))
            )

        logger.info(
            f"[SESSION] Applied saved session from {self.path.name}: "
            f"{len(cookies)} cookies, {len(origins)} origin(s)"
        )
        return len(cookies)

    async def save(self, context: "BrowserContext") -> Path:
        """Write *context*'s storage state to ``state_path`` (mode 0600)."""
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await context.storage_state(path=str(path))
            os.chmod(path, 0o600)
        except OSError as exc:
            raise AuthenticationError(
                f"Failed to save storage state: {exc}", role=self.role, cause=exc
            ) from exc
        logger.info(f"[SESSION] Session saved to {path}")
        return path
