"""
Authentication subsystem.

Produces authenticated Playwright contexts per role; the crawl engine
only consumes them through ``Crawler.set_auth_context``.
"""

from .auth_config import (
    AuthConfig,
    AuthMethodConfig,
    CredentialSource,
    LoginConfig,
    LoginSelectors,
    RoleConfig,
    SuccessIndicator,
    load_auth_config,
    parse_auth_config,
    storage_state_role,
)
from .auth_factory import AuthMethodFactory
from .authenticator import Authenticator
from .base_auth import AuthMethod, Credentials, resolve_credentials
from .credential_guard import REDACTED, CredentialGuard
from .form_login import FormLoginMethod
from .session_store import SessionStore
from .storage_state import StorageStateMethod

__all__ = [
    "AuthConfig",
    "AuthMethod",
    "AuthMethodConfig",
    "AuthMethodFactory",
    "Authenticator",
    "CredentialGuard",
    "CredentialSource",
    "Credentials",
    "FormLoginMethod",
    "LoginConfig",
    "LoginSelectors",
    "REDACTED",
    "RoleConfig",
    "SessionStore",
    "StorageStateMethod",
    "SuccessIndicator",
    "load_auth_config",
    "parse_auth_config",
    "resolve_credentials",
    "storage_state_role",
]
