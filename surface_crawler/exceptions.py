"""
Crawler Exceptions
==================
Error taxonomy shared by the CLI, the URL validator and the auth subsystem.

Per-page failures never surface as exceptions from ``Crawler.crawl()``;
they are recorded as error pages.  The classes here cover the cases that
*do* reach the caller: bad input URLs, fatal backend failures and
authentication problems.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorType(str, Enum):
    INVALID_URL = "INVALID_URL"
    NETWORK_ERROR = "NETWORK_ERROR"
    SSRF_ATTEMPT = "SSRF_ATTEMPT"
    PARSE_ERROR = "PARSE_ERROR"
    CRAWL_ERROR = "CRAWL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_USER_MESSAGES = {
    ErrorType.INVALID_URL: "Invalid URL",
    ErrorType.NETWORK_ERROR: "Network error",
    ErrorType.SSRF_ATTEMPT: "Security error: cannot crawl internal or private network addresses",
    ErrorType.PARSE_ERROR: "Failed to parse page content",
    ErrorType.CRAWL_ERROR: "Crawl failed",
    ErrorType.UNKNOWN_ERROR: "An unexpected error occurred",
}


class CrawlError(Exception):
    """Typed crawler error with a user-facing rendering."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.cause = cause

    def to_user_message(self) -> str:
        prefix = _USER_MESSAGES.get(self.error_type, _USER_MESSAGES[ErrorType.UNKNOWN_ERROR])
        return f"{prefix}: {self.message}"


# ---------------------------------------------------------------------------
# Authentication errors
# ---------------------------------------------------------------------------

class AuthenticationError(Exception):
    """Login or session setup failed for a role."""

    def __init__(self, message: str, role: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.role = role
        self.cause = cause

    def to_user_message(self) -> str:
        return f"AUTH001: Authentication failed for role '{self.role}'. {self}"


class LoginFormNotFoundError(AuthenticationError):
    def __init__(self, login_url: str, attempted_selectors: Optional[List[str]] = None):
        super().__init__(f"Login form not detected at {login_url}")
        self.login_url = login_url
        self.attempted_selectors = attempted_selectors or []

    def to_user_message(self) -> str:
        attempted = ""
        if self.attempted_selectors:
            attempted = f" Tried: {', '.join(self.attempted_selectors)}."
        return (
            f"AUTH002: Login form not detected at {self.login_url}.{attempted} "
            f"Provide explicit selectors in the auth config."
        )


class LoginUrlUnreachableError(AuthenticationError):
    def __init__(self, login_url: str, cause: Optional[BaseException] = None):
        super().__init__(f"Login URL unreachable: {login_url}", cause=cause)
        self.login_url = login_url

    def to_user_message(self) -> str:
        detail = f": {self.cause}" if self.cause else ""
        return (
            f"AUTH004: Login URL unreachable or incorrect: {self.login_url}{detail}. "
            f"Verify the URL is correct and accessible."
        )


class CredentialsNotFoundError(AuthenticationError):
    def __init__(self, role: str, missing_vars: List[str]):
        super().__init__(f"Missing credentials for role '{role}'", role=role)
        self.missing_vars = list(missing_vars)

    def to_user_message(self) -> str:
        return (
            f"AUTH004: Credentials not found in environment. "
            f"Set {', '.join(self.missing_vars)} environment variable(s)."
        )


class StorageStateNotFoundError(AuthenticationError):
    def __init__(self, path: str, role: str = ""):
        super().__init__(f"Storage state file not found: {path}", role=role)
        self.path = path

    def to_user_message(self) -> str:
        return f"AUTH005: Storage state file not found or invalid: {self.path}."


class AuthConfigError(Exception):
    """The auth config file is missing, malformed or inconsistent."""

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.details = details or []

    def to_user_message(self) -> str:
        details = f" ({'; '.join(self.details)})" if self.details else ""
        return f"AUTH006: Invalid auth config: {self}{details}."
