"""
Auth Configuration
==================
Role-based authentication settings, loaded from a JSON file.

Example::

    {
        "roles": [
            {
                "name": "admin",
                "credentials": {
                    "identifierEnvVar": "ADMIN_USER",
                    "passwordEnvVar": "ADMIN_PASS"
                },
                "privilegeLevel": 10,
                "authMethod": {"type": "form-login"}
            },
            {
                "name": "viewer",
                "credentials": {
                    "identifierEnvVar": "VIEWER_USER",
                    "passwordEnvVar": "VIEWER_PASS"
                },
                "authMethod": {"type": "storage-state", "path": "viewer_state.json"}
            }
        ],
        "login": {
            "url": "https://app.example.com/login",
            "selectors": {"identifier": "#email", "password": "#password"},
            "successIndicators": [{"type": "url-pattern", "pattern": "/dashboard"}]
        }
    }

Only environment variable *names* live in the file; the values are read
at login time (see ``base_auth.resolve_credentials``).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import AuthConfigError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_AUTH_METHODS = ("form-login", "storage-state")

VALID_SUCCESS_INDICATORS = (
    "url-pattern",
    "element-visible",
    "element-hidden",
    "cookie-present",
    "cookie-absent",
)

_ROLE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CredentialSource:
    """Names of the env vars holding a role's identifier and password."""
    identifier_env_var: str
    password_env_var: str


@dataclass(frozen=True)
class AuthMethodConfig:
    """How a role gets its session: ``form-login`` or ``storage-state``."""
    type: str
    path: str = ""            # storage-state only


@dataclass(frozen=True)
class RoleConfig:
    name: str
    credentials: CredentialSource
    auth_method: AuthMethodConfig
    privilege_level: Optional[int] = None


@dataclass(frozen=True)
class LoginSelectors:
    """Explicit CSS selectors; anything left empty is auto-detected."""
    identifier: str = ""
    password: str = ""
    submit: str = ""
    form: str = ""


@dataclass(frozen=True)
class SuccessIndicator:
    type: str
    value: str                # pattern, selector or cookie name


@dataclass(frozen=True)
class LoginConfig:
    url: str
    selectors: LoginSelectors = field(default_factory=LoginSelectors)
    success_indicators: List[SuccessIndicator] = field(default_factory=list)


@dataclass(frozen=True)
class AuthConfig:
    roles: List[RoleConfig] = field(default_factory=list)
    login: Optional[LoginConfig] = None

    def get_role(self, name: str) -> Optional[RoleConfig]:
        for role in self.roles:
            if role.name == name:
                return role
        return None

    @property
    def role_names(self) -> List[str]:
        return [r.name for r in self.roles]


# ---------------------------------------------------------------------------
# Loading / validation
# ---------------------------------------------------------------------------

def load_auth_config(path: Union[str, Path]) -> AuthConfig:
    """
    Read and validate an auth config file.

    Args:
        path: Path to the JSON config.

    Returns:
        Validated ``AuthConfig``.

    Raises:
        AuthConfigError: File missing, unreadable, not JSON, or invalid.
    """
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise AuthConfigError(f"Config file not found: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AuthConfigError(f"Cannot read config file: {exc}") from exc

    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AuthConfigError(f"Invalid JSON in config file: {exc}") from exc

    config = parse_auth_config(raw)
    logger.info(
        f"[AUTH] Loaded auth config from {config_path.name}: "
        f"{len(config.roles)} role(s) {config.role_names}"
    )
    return config


def parse_auth_config(raw: Any) -> AuthConfig:
    """Validate a decoded config object and build ``AuthConfig``.

    All role problems are collected and reported together.
    """
    if not isinstance(raw, dict):
        raise AuthConfigError("Config must be an object")

    raw_roles = raw.get("roles")
    if not isinstance(raw_roles, list):
        raise AuthConfigError("'roles' must be an array")

    problems: List[str] = []
    roles: List[RoleConfig] = []
    seen = set()

    for index, raw_role in enumerate(raw_roles):
        role = _parse_role(raw_role, index, problems)
        if role is None:
            continue
        if role.name in seen:
            problems.append(f"Duplicate role name: '{role.name}'")
            continue
        seen.add(role.name)
        roles.append(role)

    login = None
    if raw.get("login") is not None:
        login = _parse_login(raw["login"], problems)

    needs_login = [r.name for r in roles if r.auth_method.type == "form-login"]
    if needs_login and login is None and not problems:
        problems.append(
            f"Role(s) {', '.join(needs_login)} use form-login but no 'login' section is set"
        )

    if problems:
        raise AuthConfigError("Auth config validation failed", problems)

    return AuthConfig(roles=roles, login=login)


def _parse_role(raw: Any, index: int, problems: List[str]) -> Optional[RoleConfig]:
    if not isinstance(raw, dict):
        problems.append(f"Role at index {index} must be an object")
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        problems.append(f"Role at index {index}: 'name' is required and must be non-empty")
        return None
    name = name.strip()
    if not _ROLE_NAME_RE.match(name):
        problems.append(f"Role '{name}': name must be alphanumeric with hyphens/underscores only")
        return None

    creds = raw.get("credentials")
    if not isinstance(creds, dict):
        problems.append(f"Role '{name}': 'credentials' is required")
        return None
    identifier_var = creds.get("identifierEnvVar")
    password_var = creds.get("passwordEnvVar")
    if not isinstance(identifier_var, str) or not identifier_var.strip():
        problems.append(f"Role '{name}': credentials.identifierEnvVar is required")
        return None
    if not isinstance(password_var, str) or not password_var.strip():
        problems.append(f"Role '{name}': credentials.passwordEnvVar is required")
        return None

    method = raw.get("authMethod")
    if not isinstance(method, dict):
        problems.append(f"Role '{name}': 'authMethod' is required")
        return None
    method_type = method.get("type")
    if method_type not in VALID_AUTH_METHODS:
        problems.append(
            f"Role '{name}': unknown auth method '{method_type}' "
            f"(expected one of {', '.join(VALID_AUTH_METHODS)})"
        )
        return None
    path = method.get("path", "")
    if method_type == "storage-state" and (not isinstance(path, str) or not path.strip()):
        problems.append(f"Role '{name}': storage-state requires a 'path'")
        return None

    privilege = raw.get("privilegeLevel")
    if privilege is not None:
        if isinstance(privilege, bool) or not isinstance(privilege, (int, float)) or privilege < 1:
            problems.append(f"Role '{name}': privilegeLevel must be a positive integer")
            return None
        privilege = int(privilege)

    return RoleConfig(
        name=name,
        credentials=CredentialSource(identifier_var.strip(), password_var.strip()),
        auth_method=AuthMethodConfig(type=method_type, path=(path or "").strip()),
        privilege_level=privilege,
    )


def _parse_login(raw: Any, problems: List[str]) -> Optional[LoginConfig]:
    if not isinstance(raw, dict):
        problems.append("'login' must be an object")
        return None

    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        problems.append("login.url is required")
        return None

    raw_selectors = raw.get("selectors") or {}
    if not isinstance(raw_selectors, dict):
        problems.append("login.selectors must be an object")
        return None
    selectors = LoginSelectors(
        identifier=str(raw_selectors.get("identifier", "") or ""),
        password=str(raw_selectors.get("password", "") or ""),
        submit=str(raw_selectors.get("submit", "") or ""),
        form=str(raw_selectors.get("form", "") or ""),
    )

    indicators: List[SuccessIndicator] = []
    for i, item in enumerate(raw.get("successIndicators") or []):
        indicator = _parse_indicator(item, i, problems)
        if indicator is not None:
            indicators.append(indicator)

    return LoginConfig(url=url.strip(), selectors=selectors, success_indicators=indicators)


_INDICATOR_VALUE_KEYS: Dict[str, str] = {
    "url-pattern": "pattern",
    "element-visible": "selector",
    "element-hidden": "selector",
    "cookie-present": "name",
    "cookie-absent": "name",
}


def _parse_indicator(raw: Any, index: int, problems: List[str]) -> Optional[SuccessIndicator]:
    if not isinstance(raw, dict):
        problems.append(f"successIndicators[{index}] must be an object")
        return None
    kind = raw.get("type")
    if kind not in VALID_SUCCESS_INDICATORS:
        problems.append(f"successIndicators[{index}]: unknown type '{kind}'")
        return None
    key = _INDICATOR_VALUE_KEYS[kind]
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        problems.append(f"successIndicators[{index}]: '{key}' is required for {kind}")
        return None
    return SuccessIndicator(type=kind, value=value)


def storage_state_role(path: str, name: str = "storage-state") -> RoleConfig:
    """Ad-hoc role for ``--storage-state`` without an auth config file."""
    return RoleConfig(
        name=name,
        credentials=CredentialSource("", ""),
        auth_method=AuthMethodConfig(type="storage-state", path=path),
    )
