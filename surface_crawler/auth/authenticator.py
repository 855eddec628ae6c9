"""
Authenticator
=============
Role-based login orchestration.  Produces one authenticated Playwright
``BrowserContext`` per role and keeps an audit trail of ``AuthEvent``
records (errors redacted).

Usage::

    config = load_auth_config("auth.json")
    authenticator = Authenticator(config, browser)
    context = await authenticator.authenticate("admin")

    crawler.set_auth_context(context, "admin")
    crawler.add_auth_events(authenticator.get_auth_events())
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..exceptions import AuthConfigError, AuthenticationError
from ..models import AuthEvent
from .auth_config import AuthConfig
from .auth_factory import AuthMethodFactory
from .credential_guard import CredentialGuard
from .session_store import SessionStore

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext

logger = logging.getLogger(__name__)


class Authenticator:
    """Authenticates roles from an ``AuthConfig`` against a shared browser.

    Contexts are cached per role; call ``close()`` (or ``logout``) to
    release them.
    """

    def __init__(
        self,
        config: AuthConfig,
        browser: "Browser",
        *,
        guard: Optional[CredentialGuard] = None,
        context_options: Optional[dict] = None,
    ):
        """
        Args:
            config: Validated auth config.
            browser: Playwright browser used to create role contexts.
            guard: Secrets registry (built from *config* if omitted).
            context_options: Extra ``browser.new_context`` kwargs
                (user agent, viewport, ...).
        """
        self.config = config
        self.browser = browser
        self.guard = guard or CredentialGuard(config)
        self.context_options = dict(context_options or {})
        self._contexts: Dict[str, "BrowserContext"] = {}
        self._events: List[AuthEvent] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def authenticate(self, role_name: str) -> "BrowserContext":
        """Return an authenticated context for *role_name*.

        A cached context is returned as-is.  Every fresh attempt records a
        ``login`` event.

        Raises:
            AuthenticationError: Unknown role, or the auth method failed.
            AuthConfigError: The role's auth method is not registered.
        """
        role = self.config.get_role(role_name)
        if role is None:
            raise AuthenticationError(
                f"Role '{role_name}' not found in configuration "
                f"(available: {', '.join(self.config.role_names) or 'none'})",
                role=role_name,
            )

        cached = self._contexts.get(role_name)
        if cached is not None:
            logger.debug(f"[AUTH] Reusing context for role '{role_name}'")
            return cached

        started = time.monotonic()
        method = AuthMethodFactory.create(role.auth_method.type)
        logger.info(f"[AUTH] Authenticating role '{role_name}' via {method.method_type}")

        context = await self.browser.new_context(**self.context_options)
        try:
            await method.apply(context, role, self.config, self.guard)
        except (AuthenticationError, AuthConfigError) as exc:
            await self._discard(context)
            self._record("login", role_name, False, started, error=str(exc))
            logger.error(f"[AUTH] Role '{role_name}' failed: {self.guard.redact(str(exc))}")
            raise
        except Exception as exc:
            await self._discard(context)
            self._record("login", role_name, False, started, error=str(exc))
            raise AuthenticationError(
                self.guard.redact(str(exc)) or "Authentication failed",
                role=role_name,
                cause=exc,
            ) from exc

        self._contexts[role_name] = context
        self._record("login", role_name, True, started)
        return context

    async def re_authenticate(self, role_name: str) -> "BrowserContext":
        """Drop the role's context and log in again (``re-auth`` event)."""
        started = time.monotonic()
        existing = self._contexts.pop(role_name, None)
        if existing is not None:
            await self._discard(existing)

        try:
            context = await self.authenticate(role_name)
        except Exception as exc:
            self._record("re-auth", role_name, False, started, error=str(exc))
            raise

        self._record("re-auth", role_name, True, started)
        return context

    async def logout(self, role_name: str) -> bool:
        """Close the role's context.  Returns False if it was not logged in."""
        context = self._contexts.pop(role_name, None)
        if context is None:
            return False
        await self._discard(context)
        self._record("logout", role_name, True, None)
        logger.info(f"[AUTH] Logged out role '{role_name}'")
        return True

    async def is_session_valid(self, role_name: str) -> bool:
        context = self._contexts.get(role_name)
        if context is None:
            return False
        return len(await context.cookies()) > 0

    async def save_storage_state(self, role_name: str, path: str) -> Path:
        """Persist the role's current session so later runs can reuse it."""
        context = self._contexts.get(role_name)
        if context is None:
            raise AuthenticationError(
                f"Role '{role_name}' is not authenticated", role=role_name
            )
        return await SessionStore(path, role=role_name).save(context)

    def get_auth_events(self) -> List[AuthEvent]:
        """All recorded events, with secrets redacted from error text."""
        return [replace(e, error=self.guard.redact(e.error)) for e in self._events]

    @property
    def authenticated_roles(self) -> List[str]:
        return list(self._contexts.keys())

    async def close(self) -> None:
        """Close every cached context."""
        for role_name in list(self._contexts):
            await self._discard(self._contexts.pop(role_name))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record(
        self,
        event_type: str,
        role_name: str,
        success: bool,
        started: Optional[float],
        error: Optional[str] = None,
    ) -> None:
        duration_ms = None
        if started is not None:
            duration_ms = int((time.monotonic() - started) * 1000)
        self._events.append(
            AuthEvent(
                type=event_type,
                role=role_name,
                success=success,
                error=self.guard.redact(error),
                duration_ms=duration_ms,
            )
        )

    @staticmethod
    async def _discard(context: "BrowserContext") -> None:
        try:
            await context.close()
        except Exception as e:
            logger.debug(f"[AUTH] Context close error: {e}")
