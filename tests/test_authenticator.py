"""
Tests for session reuse, form login and the role authenticator.

Browser objects are async fakes; nothing is launched.
"""

import asyncio
import json
import os
import stat
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from surface_crawler.auth import (
    AuthConfig,
    AuthMethod,
    AuthMethodConfig,
    Authenticator,
    CredentialGuard,
    CredentialSource,
    FormLoginMethod,
    LoginConfig,
    LoginSelectors,
    RoleConfig,
    SessionStore,
    StorageStateMethod,
    SuccessIndicator,
)
from surface_crawler.auth import auth_factory
from surface_crawler.auth.credential_guard import REDACTED
from surface_crawler.exceptions import (
    AuthenticationError,
    CredentialsNotFoundError,
    LoginFormNotFoundError,
    LoginUrlUnreachableError,
    StorageStateNotFoundError,
)
from surface_crawler.rate_limiter import RetryPolicy

LOGIN_URL = "https://app.example.com/login"
STATE = {
    "cookies": [{"name": "sid", "value": "session-token-123", "domain": "app.example.com", "path": "/"}],
    "origins": [{
        "origin": "https://app.example.com",
        "localStorage": [{"name": "jwt", "value": "abc.def.ghi"}],
    }],
}


def run(coro):
    return asyncio.run(coro)


def write_state(path, state=STATE):
    path.write_text(json.dumps(state), encoding="utf-8")
    return path


def fake_context(cookies=()):
    context = MagicMock()
    context.add_cookies = AsyncMock()
    context.add_init_script = AsyncMock()
    context.cookies = AsyncMock(return_value=list(cookies))
    context.close = AsyncMock()
    return context


# ====================================================================
# SessionStore
# ====================================================================

class TestSessionStore:

    def test_missing_file(self, tmp_path):
        store = SessionStore(str(tmp_path / "none.json"))
        assert not store.has_valid_session()
        with pytest.raises(StorageStateNotFoundError):
            store.load_state()

    def test_valid_session(self, tmp_path):
        store = SessionStore(str(write_state(tmp_path / "s.json")))
        assert store.has_valid_session()
        assert store.load_state()["cookies"][0]["name"] == "sid"

    def test_no_cookies_not_valid(self, tmp_path):
        path = write_state(tmp_path / "s.json", {"cookies": [], "origins": []})
        store = SessionStore(str(path))
        assert not store.has_valid_session()
        assert store.load_state() == {"cookies": [], "origins": []}

    def test_expired_session(self, tmp_path):
        path = write_state(tmp_path / "s.json")
        old = time.time() - 5 * 3600
        os.utime(path, (old, old))
        assert not SessionStore(str(path), max_age_hours=1).has_valid_session()
        assert SessionStore(str(path), max_age_hours=10).has_valid_session()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("not json", encoding="utf-8")
        store = SessionStore(str(path), role="admin")
        assert not store.has_valid_session()
        with pytest.raises(AuthenticationError) as excinfo:
            store.load_state()
        assert excinfo.value.role == "admin"

    def test_not_a_state_object(self, tmp_path):
        path = write_state(tmp_path / "s.json", {"hello": "world"})
        with pytest.raises(AuthenticationError):
            SessionStore(str(path)).load_state()

    def test_apply_to_context(self, tmp_path):
        context = fake_context()
        store = SessionStore(str(write_state(tmp_path / "s.json")))
        assert run(store.apply_to_context(context)) == 1
        context.add_cookies.assert_awaited_once_with(STATE["cookies"])
        script = context.add_init_script.await_args.kwargs["script"]
        assert '"https://app.example.com"' in script
        assert '[["jwt", "abc.def.ghi"]]' in script

    def test_save_sets_owner_only_mode(self, tmp_path):
        target = tmp_path / "nested" / "state.json"
        context = MagicMock()
        context.storage_state = AsyncMock(
            side_effect=lambda path: write_state(tmp_path / "nested" / "state.json")
        )
        saved = run(SessionStore(str(target)).save(context))
        assert saved == target.resolve()
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600


class TestStorageStateMethod:

    def test_applies_state_and_guards_cookie_values(self, tmp_path):
        path = write_state(tmp_path / "s.json")
        role = RoleConfig("viewer", CredentialSource("", ""), AuthMethodConfig("storage-state", str(path)))
        guard = CredentialGuard()
        context = fake_context()
        run(StorageStateMethod().apply(context, role, AuthConfig(roles=[role]), guard))
        context.add_cookies.assert_awaited_once()
        assert guard.redact("cookie session-token-123") == f"cookie {REDACTED}"

    def test_missing_file_raises(self, tmp_path):
        role = RoleConfig("viewer", CredentialSource("", ""),
                          AuthMethodConfig("storage-state", str(tmp_path / "gone.json")))
        with pytest.raises(StorageStateNotFoundError):
            run(StorageStateMethod().apply(fake_context(), role, AuthConfig(roles=[role]), CredentialGuard()))


# ====================================================================
# Form login
# ====================================================================

class FakeLocator:
    def __init__(self, count):
        self._count = count

    async def count(self):
        return self._count


class FakeResponse:
    def __init__(self, status):
        self.status = status


class FakeLoginPage:
    """Login page whose submit control navigates to *after_url*."""

    def __init__(self, present, submit=None, statuses=(200,), after_url="https://app.example.com/dashboard",
                 fill_error=None, goto_error=None):
        self.present = set(present)
        self.submit = submit
        self.statuses = list(statuses)
        self.after_url = after_url
        self.fill_error = fill_error
        self.goto_error = goto_error
        self.url = "about:blank"
        self.fills = []
        self.pressed = []
        self.closed = False

    def locator(self, selector):
        return FakeLocator(1 if selector in self.present else 0)

    async def goto(self, url, timeout=None, wait_until=None):
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        return FakeResponse(self.statuses.pop(0))

    async def click(self, selector, timeout=None, no_wait_after=False):
        if selector == self.submit:
            self.url = self.after_url

    async def fill(self, selector, value):
        if self.fill_error is not None:
            raise PlaywrightError(self.fill_error.format(value=value))
        self.fills.append((selector, value))

    async def press(self, selector, key, no_wait_after=False):
        self.pressed.append((selector, key))
        self.url = self.after_url

    async def wait_for_load_state(self, state, timeout=None):
        pass

    async def close(self):
        self.closed = True


class FakeLoginContext:
    def __init__(self, page, cookies=()):
        self.page = page
        self._cookies = list(cookies)

    async def new_page(self):
        return self.page

    async def cookies(self):
        return self._cookies


STANDARD_FORM = {'input[type="email"]', 'input[type="password"]', 'button[type="submit"]'}

ADMIN = RoleConfig("admin", CredentialSource("ADMIN_USER", "ADMIN_PASS"), AuthMethodConfig("form-login"))


@pytest.fixture
def admin_env(monkeypatch):
    monkeypatch.setenv("ADMIN_USER", "alice@example.com")
    monkeypatch.setenv("ADMIN_PASS", "hunter22")


def login_config(indicators=(), selectors=None):
    return AuthConfig(
        roles=[ADMIN],
        login=LoginConfig(
            url=LOGIN_URL,
            selectors=selectors or LoginSelectors(),
            success_indicators=list(indicators),
        ),
    )


def apply_login(page, config=None, guard=None, cookies=(), method=None):
    method = method or FormLoginMethod(sleep=AsyncMock())
    run(method.apply(FakeLoginContext(page, cookies), ADMIN, config or login_config(), guard or CredentialGuard()))
    return method


class TestFormLogin:

    def test_auto_detected_login(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]')
        apply_login(page)
        assert page.fills == [
            ('input[type="email"]', "alice@example.com"),
            ('input[type="password"]', "hunter22"),
        ]
        assert page.url == "https://app.example.com/dashboard"
        assert page.closed

    def test_configured_selectors(self, admin_env):
        page = FakeLoginPage({"#user", "#pw", "#go"}, submit="#go")
        config = login_config(selectors=LoginSelectors(identifier="#user", password="#pw", submit="#go"))
        apply_login(page, config)
        assert [sel for sel, _ in page.fills] == ["#user", "#pw"]

    def test_enter_pressed_without_submit_button(self, admin_env):
        page = FakeLoginPage({'input[type="password"]'})
        apply_login(page)
        assert page.pressed == [('input[type="password"]', "Enter")]

    def test_missing_password_field(self, admin_env):
        page = FakeLoginPage({'input[type="email"]'})
        with pytest.raises(LoginFormNotFoundError) as excinfo:
            apply_login(page)
        assert 'input[type="password"]' in excinfo.value.attempted_selectors
        assert page.closed

    def test_configured_selector_absent(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]')
        with pytest.raises(LoginFormNotFoundError):
            apply_login(page, login_config(selectors=LoginSelectors(password="#secret")))

    def test_stays_on_login_page(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', after_url=LOGIN_URL + "?error=1")
        with pytest.raises(AuthenticationError, match="Login verification failed") as excinfo:
            apply_login(page)
        assert excinfo.value.role == "admin"

    def test_url_pattern_indicator(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', after_url="https://app.example.com/home")
        config = login_config([SuccessIndicator("url-pattern", "/dashboard")])
        with pytest.raises(AuthenticationError):
            apply_login(page, config)

    def test_cookie_indicators(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', after_url=LOGIN_URL)
        apply_login(page, login_config([SuccessIndicator("cookie-present", "sid")]), cookies=[{"name": "sid"}])

        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', after_url=LOGIN_URL)
        with pytest.raises(AuthenticationError):
            apply_login(page, login_config([SuccessIndicator("cookie-absent", "sid")]), cookies=[{"name": "sid"}])

    def test_element_indicators(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM | {"#logout"}, submit='button[type="submit"]')
        apply_login(page, login_config([
            SuccessIndicator("element-hidden", 'input[type="password"]'),
            SuccessIndicator("element-visible", "#logout"),
        ]))

    def test_login_page_http_error(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, statuses=(404,))
        with pytest.raises(LoginUrlUnreachableError):
            apply_login(page)

    def test_login_page_retried(self, admin_env):
        sleep = AsyncMock()
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', statuses=(503, 200))
        apply_login(page, method=FormLoginMethod(retry_policy=RetryPolicy(base_delay_ms=10), sleep=sleep))
        sleep.assert_awaited_once_with(0.01)

    def test_navigation_error(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        with pytest.raises(LoginUrlUnreachableError) as excinfo:
            apply_login(page)
        assert "ERR_NAME_NOT_RESOLVED" in excinfo.value.to_user_message()

    def test_browser_error_is_redacted(self, admin_env):
        page = FakeLoginPage(STANDARD_FORM, submit='button[type="submit"]', fill_error="cannot type {value}")
        with pytest.raises(AuthenticationError) as excinfo:
            apply_login(page)
        assert "alice@example.com" not in str(excinfo.value)
        assert REDACTED in str(excinfo.value)

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("ADMIN_USER", raising=False)
        monkeypatch.delenv("ADMIN_PASS", raising=False)
        with pytest.raises(CredentialsNotFoundError):
            apply_login(FakeLoginPage(STANDARD_FORM))


# ====================================================================
# Authenticator
# ====================================================================

class SucceedingMethod(AuthMethod):
    method_type = "test-ok"
    calls = 0

    async def apply(self, context, role, config, guard):
        SucceedingMethod.calls += 1


class FailingMethod(AuthMethod):
    method_type = "test-fail"

    async def apply(self, context, role, config, guard):
        raise AuthenticationError("bad password s3cret-pass", role=role.name)


class CrashingMethod(AuthMethod):
    method_type = "test-crash"

    async def apply(self, context, role, config, guard):
        raise RuntimeError("browser crashed with s3cret-pass")


class FakeBrowser:
    def __init__(self):
        self.contexts = []
        self.options = []

    async def new_context(self, **options):
        self.options.append(options)
        context = fake_context(cookies=[{"name": "sid"}])
        self.contexts.append(context)
        return context


@pytest.fixture
def authenticator(monkeypatch):
    for cls in (SucceedingMethod, FailingMethod, CrashingMethod):
        monkeypatch.setitem(auth_factory._METHOD_REGISTRY, cls.method_type, cls)
    SucceedingMethod.calls = 0

    roles = [
        RoleConfig(name, CredentialSource("", ""), AuthMethodConfig(method))
        for name, method in (("ok", "test-ok"), ("bad", "test-fail"), ("crash", "test-crash"))
    ]
    guard = CredentialGuard()
    guard.add_secrets(["s3cret-pass"])
    browser = FakeBrowser()
    return Authenticator(
        AuthConfig(roles=roles), browser, guard=guard, context_options={"user_agent": "UA"},
    )


class TestAuthenticator:

    def test_successful_login_cached(self, authenticator):
        first = run(authenticator.authenticate("ok"))
        second = run(authenticator.authenticate("ok"))
        assert first is second
        assert SucceedingMethod.calls == 1
        assert authenticator.browser.options == [{"user_agent": "UA"}]
        assert authenticator.authenticated_roles == ["ok"]

        events = authenticator.get_auth_events()
        assert [(e.type, e.role, e.success) for e in events] == [("login", "ok", True)]
        assert events[0].duration_ms >= 0

    def test_unknown_role(self, authenticator):
        with pytest.raises(AuthenticationError, match="not found"):
            run(authenticator.authenticate("ghost"))
        assert authenticator.get_auth_events() == []

    def test_failed_login_recorded_and_redacted(self, authenticator):
        with pytest.raises(AuthenticationError):
            run(authenticator.authenticate("bad"))
        event = authenticator.get_auth_events()[0]
        assert (event.type, event.success) == ("login", False)
        assert "s3cret-pass" not in event.error
        assert REDACTED in event.error
        authenticator.browser.contexts[0].close.assert_awaited_once()
        assert authenticator.authenticated_roles == []

    def test_unexpected_error_wrapped(self, authenticator):
        with pytest.raises(AuthenticationError) as excinfo:
            run(authenticator.authenticate("crash"))
        assert "s3cret-pass" not in str(excinfo.value)
        assert isinstance(excinfo.value.cause, RuntimeError)

    def test_re_authenticate(self, authenticator):
        async def scenario():
            first = await authenticator.authenticate("ok")
            second = await authenticator.re_authenticate("ok")
            return first, second

        first, second = run(scenario())
        assert first is not second
        first.close.assert_awaited_once()
        types = [e.type for e in authenticator.get_auth_events()]
        assert types == ["login", "login", "re-auth"]

    def test_logout(self, authenticator):
        async def scenario():
            await authenticator.authenticate("ok")
            return await authenticator.logout("ok"), await authenticator.logout("ok")

        assert run(scenario()) == (True, False)
        logout = authenticator.get_auth_events()[-1]
        assert (logout.type, logout.success, logout.duration_ms) == ("logout", True, None)

    def test_session_validity(self, authenticator):
        async def scenario():
            before = await authenticator.is_session_valid("ok")
            await authenticator.authenticate("ok")
            return before, await authenticator.is_session_valid("ok")

        assert run(scenario()) == (False, True)

    def test_save_storage_state_requires_login(self, authenticator, tmp_path):
        with pytest.raises(AuthenticationError):
            run(authenticator.save_storage_state("ok", str(tmp_path / "s.json")))

    def test_close_releases_contexts(self, authenticator):
        async def scenario():
            await authenticator.authenticate("ok")
            await authenticator.close()

        run(scenario())
        authenticator.browser.contexts[0].close.assert_awaited_once()
        assert authenticator.authenticated_roles == []
