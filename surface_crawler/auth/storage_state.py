"""Storage-state auth method: reuse a saved Playwright session instead of logging in."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base_auth import AuthMethod
from .session_store import SessionStore

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

    from .auth_config import AuthConfig, RoleConfig
    from .credential_guard import CredentialGuard

logger = logging.getLogger(__name__)


class StorageStateMethod(AuthMethod):
    method_type = "storage-state"

    async def apply(
        self,
        context: "BrowserContext",
        role: "RoleConfig",
        config: "AuthConfig",
        guard: "CredentialGuard",
    ) -> None:
        store = SessionStore(role.auth_method.path, role=role.name)
        if not store.has_valid_session():
            logger.warning(
                f"[SESSION] Saved state for role '{role.name}' has no cookies or is unreadable"
            )
        # Raises StorageStateNotFoundError / AuthenticationError
        state = store.load_state()
        guard.add_secrets(c.get("value", "") for c in state.get("cookies") or [])
        await store.apply_to_context(context)
