"""
Form Login
==========
Playwright-based username/password login against the page named in the
auth config's ``login`` section.

Flow:
    1. Navigate to ``login.url`` (429/5xx and timeouts retried with backoff)
    2. Resolve field selectors: configured ones are verified, missing ones
       auto-detected from the selector banks below
    3. Fill identifier and password, then submit
    4. Verify the configured success indicators

Security:
    - Credentials are never logged or printed.
    - Error messages are passed through the ``CredentialGuard`` before
      they leave this module.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..exceptions import (
    AuthenticationError,
    LoginFormNotFoundError,
    LoginUrlUnreachableError,
)
from ..rate_limiter import RetryPolicy
from .base_auth import AuthMethod, resolve_credentials

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page, Response

    from .auth_config import AuthConfig, LoginConfig, LoginSelectors, RoleConfig, SuccessIndicator
    from .credential_guard import CredentialGuard

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Auto-detection selector banks
# ---------------------------------------------------------------------------

# Username / email field selectors (tried in order)
IDENTIFIER_SELECTORS: List[str] = [
    'input[type="email"]',
    'input[name="email"]',
    'input[name="username"]',
    'input[name="user_name"]',
    'input[name="login"]',
    'input[name="loginfmt"]',          # Microsoft / Azure AD
    'input[autocomplete="username"]',
    'input[autocomplete="email"]',
    '#email', '#username', '#user', '#login',
    '[data-testid*="email"]',
    '[data-testid*="username"]',
]

# Password field selectors
PASSWORD_SELECTORS: List[str] = [
    'input[type="password"]',
    'input[name="password"]',
    'input[name="passwd"]',
    'input[autocomplete="current-password"]',
    '#password', '#pwd',
    '[data-testid*="password"]',
]

# Submit button selectors
SUBMIT_SELECTORS: List[str] = [
    'button[type="submit"]',
    'input[type="submit"]',
    '#login-button', '#login-btn', '#submit',
    'button:has-text("Sign in")',
    'button:has-text("Log in")',
    'button:has-text("Login")',
    '[data-testid*="login"]',
    '[data-testid*="submit"]',
]

# Login form container (optional)
FORM_SELECTORS: List[str] = [
    'form#login',
    'form#signin',
    'form.login-form',
    'form.signin-form',
    'form[action*="login"]',
    'form[action*="signin"]',
    '[data-testid*="login-form"]',
]

DEFAULT_LOGIN_TIMEOUT_MS = 30_000


@dataclass
class ResolvedSelectors:
    password: str
    identifier: str = ""
    submit: str = ""
    form: str = ""


# ---------------------------------------------------------------------------
# Selector detection
# ---------------------------------------------------------------------------

async def selector_exists(page: "Page", selector: str) -> bool:
    """True if *selector* matches at least one element (invalid selectors: False)."""
    try:
        return await page.locator(selector).count() > 0
    except PlaywrightError:
        return False


async def find_first_match(page: "Page", selectors: List[str]) -> str:
    for sel in selectors:
        if await selector_exists(page, sel):
            logger.debug(f"[AUTH] Auto-detected selector: {sel}")
            return sel
    return ""


async def detect_login_selectors(page: "Page") -> Optional[ResolvedSelectors]:
    """Auto-detect login form fields.  A password field is required."""
    password = await find_first_match(page, PASSWORD_SELECTORS)
    if not password:
        return None
    return ResolvedSelectors(
        password=password,
        identifier=await find_first_match(page, IDENTIFIER_SELECTORS),
        submit=await find_first_match(page, SUBMIT_SELECTORS),
        form=await find_first_match(page, FORM_SELECTORS),
    )


# ---------------------------------------------------------------------------
# Success detection
# ---------------------------------------------------------------------------

async def check_indicator(
    page: "Page", context: "BrowserContext", indicator: "SuccessIndicator"
) -> bool:
    kind = indicator.type
    if kind == "url-pattern":
        return indicator.value in page.url
    if kind == "element-visible":
        return await selector_exists(page, indicator.value)
    if kind == "element-hidden":
        return not await selector_exists(page, indicator.value)
    if kind in ("cookie-present", "cookie-absent"):
        cookies = await context.cookies()
        present = any(c.get("name") == indicator.value for c in cookies)
        return present if kind == "cookie-present" else not present
    return False


async def check_login_success(
    page: "Page", context: "BrowserContext", login: "LoginConfig"
) -> bool:
    """Any configured indicator passing means success.

    With no indicators, success means the browser left the login path.
    """
    if not login.success_indicators:
        login_path = urlsplit(login.url).path or "/"
        return login_path not in page.url

    for indicator in login.success_indicators:
        if await check_indicator(page, context, indicator):
            logger.debug(f"[AUTH] Success indicator passed: {indicator.type}")
            return True
    return False


# ---------------------------------------------------------------------------
# Form login method
# ---------------------------------------------------------------------------

class FormLoginMethod(AuthMethod):
    """Fills and submits the login form described by ``AuthConfig.login``."""

    method_type = "form-login"

    def __init__(
        self,
        timeout_ms: int = DEFAULT_LOGIN_TIMEOUT_MS,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            timeout_ms: Navigation/action timeout on the login page.
            retry_policy: Retry rules for the login page request.
            sleep: Awaitable used for backoff delays (injectable for tests).
        """
        self.timeout_ms = timeout_ms
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self.last_attempted_selectors: List[str] = []

    async def apply(
        self,
        context: "BrowserContext",
        role: "RoleConfig",
        config: "AuthConfig",
        guard: "CredentialGuard",
    ) -> None:
        login = config.login
        if login is None:
            raise AuthenticationError(
                "form-login requires a 'login' section in the auth config", role=role.name
            )

        creds = resolve_credentials(role)
        guard.add_secrets([creds.identifier, creds.password])

        page = await context.new_page()
        try:
            logger.info(f"[AUTH] Navigating to login page: {login.url[:80]}")
            await self._navigate(page, login.url)

            selectors = await self._resolve_selectors(page, login)
            if selectors is None:
                raise LoginFormNotFoundError(login.url, self.last_attempted_selectors)

            if selectors.identifier:
                await self._safe_fill(page, selectors.identifier, creds.identifier)
                logger.info("[AUTH] Identifier filled")
            await self._safe_fill(page, selectors.password, creds.password)
            logger.info("[AUTH] Password filled")

            if selectors.submit:
                try:
                    await page.click(selectors.submit, timeout=10_000, no_wait_after=True)
                except PlaywrightTimeout:
                    pass
                logger.info("[AUTH] Submit clicked")
            else:
                logger.info("[AUTH] No submit button found, pressing Enter")
                await page.press(selectors.password, "Enter", no_wait_after=True)

            try:
                await page.wait_for_load_state("domcontentloaded", timeout=self.timeout_ms)
                await page.wait_for_load_state("networkidle", timeout=10_000)
            except PlaywrightTimeout:
                pass

            logger.info(f"[AUTH] Post-login URL: {page.url[:120]}")
            if not await check_login_success(page, context, login):
                raise AuthenticationError(
                    "Login verification failed: no success indicator matched",
                    role=role.name,
                )
            logger.info(f"[AUTH] Login successful for role '{role.name}'")

        except AuthenticationError as exc:
            if not exc.role:
                exc.role = role.name
            raise
        except PlaywrightError as exc:
            raise AuthenticationError(
                guard.redact(f"Login failed: {exc}"), role=role.name, cause=exc
            ) from exc
        finally:
            try:
                await page.close()
            except PlaywrightError:
                pass

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _navigate(self, page: "Page", url: str) -> "Response":
        attempt = 0
        while True:
            try:
                response = await page.goto(url, timeout=self.timeout_ms, wait_until="domcontentloaded")
            except PlaywrightError as exc:
                if self.retry_policy.should_retry_error(exc, attempt):
                    delay = self.retry_policy.delay_seconds(attempt)
                    logger.warning(f"[AUTH] Login page attempt {attempt + 1} failed: {exc}. Retrying in {delay:.1f}s")
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise LoginUrlUnreachableError(url, exc) from exc

            if response is None:
                raise LoginUrlUnreachableError(url)

            status = response.status
            if self.retry_policy.should_retry(status, attempt):
                delay = self.retry_policy.delay_seconds(attempt)
                logger.warning(f"[AUTH] Login page returned HTTP {status}, retrying in {delay:.1f}s")
                await self._sleep(delay)
                attempt += 1
                continue
            if status >= 400:
                raise LoginUrlUnreachableError(url, RuntimeError(f"HTTP {status} response"))
            return response

    async def _resolve_selectors(
        self, page: "Page", login: "LoginConfig"
    ) -> Optional[ResolvedSelectors]:
        """Configured selectors are verified; unset ones are auto-detected."""
        configured: "LoginSelectors" = login.selectors
        detected = await detect_login_selectors(page)

        password = configured.password or (detected.password if detected else "")
        identifier = configured.identifier or (detected.identifier if detected else "")
        submit = configured.submit or (detected.submit if detected else "")
        form = configured.form or (detected.form if detected else "")

        self.last_attempted_selectors = [s for s in (identifier, password, submit) if s]
        if not configured.password and detected is None:
            self.last_attempted_selectors = list(PASSWORD_SELECTORS)
            return None

        for sel in (password, identifier, submit):
            if sel and not await selector_exists(page, sel):
                logger.warning(f"[AUTH] Configured selector not found: {sel}")
                return None

        return ResolvedSelectors(password=password, identifier=identifier, submit=submit, form=form)

    async def _safe_fill(self, page: "Page", selector: str, value: str) -> None:
        """Fill a field safely: click to focus, clear, then fill.

        Some login forms have handlers that only fire on real focus events.
        """
        try:
            await page.click(selector, timeout=3000)
        except PlaywrightError:
            pass
        await page.fill(selector, value)
