"""
Base Authentication Method (Abstract)
=====================================
Defines the contract every auth method implements.

To add a new method (e.g. token injection):
    1. Create a module with a class inheriting from ``AuthMethod``
    2. Set ``method_type`` and implement ``apply()``
    3. Register it via ``AuthMethodFactory.register()``
    4. Accept the new type in ``auth_config.VALID_AUTH_METHODS``

Design principles:
    - The crawl engine never imports method code; it only receives the
      resulting ``BrowserContext``
    - Methods mutate a fresh context in place and raise on failure
    - Credentials come from env vars named in the role config and are
      never logged
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Mapping, Optional

from ..exceptions import CredentialsNotFoundError

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

    from .auth_config import AuthConfig, RoleConfig
    from .credential_guard import CredentialGuard

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Credentials container
# ---------------------------------------------------------------------------

@dataclass
class Credentials:
    """Plain credential container; resolved once per login attempt."""
    identifier: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.identifier and self.password)

    def __repr__(self) -> str:
        return "Credentials(identifier='***', password='***')"


def resolve_credentials(
    role: "RoleConfig", environ: Optional[Mapping[str, str]] = None
) -> Credentials:
    """Read a role's identifier and password from the environment.

    Args:
        role:    Role whose ``credentials`` name the env vars.
        environ: Mapping to read from (defaults to ``os.environ``).

    Raises:
        CredentialsNotFoundError: One or both variables unset or empty.
    """
    env = os.environ if environ is None else environ
    source = role.credentials

    missing: List[str] = []
    identifier = env.get(source.identifier_env_var, "") if source.identifier_env_var else ""
    password = env.get(source.password_env_var, "") if source.password_env_var else ""
    if not identifier:
        missing.append(source.identifier_env_var or "<identifierEnvVar>")
    if not password:
        missing.append(source.password_env_var or "<passwordEnvVar>")

    if missing:
        raise CredentialsNotFoundError(role.name, missing)

    logger.info(f"[AUTH] Credentials for role '{role.name}' resolved from environment")
    return Credentials(identifier=identifier, password=password)


# ---------------------------------------------------------------------------
# Abstract method
# ---------------------------------------------------------------------------

class AuthMethod(ABC):
    """Abstract base for all authentication methods.

    Subclasses MUST define:
        - ``method_type``  the config ``authMethod.type`` they handle
        - ``apply()``      authenticate *context* for *role*
    """

    method_type: str = ""

    @abstractmethod
    async def apply(
        self,
        context: "BrowserContext",
        role: "RoleConfig",
        config: "AuthConfig",
        guard: "CredentialGuard",
    ) -> None:
        """Authenticate *context* in place.

        Args:
            context: A fresh browser context owned by the authenticator.
            role:    The role being authenticated.
            config:  Full auth config (login page settings etc.).
            guard:   Secrets registry; methods add any secret they read.

        Raises:
            AuthenticationError: (or a subclass) when the session could not
                be established.
        """
        ...
