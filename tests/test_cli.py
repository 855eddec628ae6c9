"""
Tests for the command-line entry point.

The crawl coroutine is replaced so no browser is started.
"""

import json
import re

import pytest

from surface_crawler import __main__ as cli
from surface_crawler.exceptions import AuthConfigError, AuthenticationError
from surface_crawler.models import CrawlResults, Page
from surface_crawler.run_config import CrawlerRunConfig
from surface_crawler.summary import CrawlSummary
from surface_crawler.url_filter import UrlFilter

AUTH = {
    "roles": [{
        "name": "admin",
        "credentials": {"identifierEnvVar": "ADMIN_USER", "passwordEnvVar": "ADMIN_PASS"},
        "authMethod": {"type": "form-login"},
    }],
    "login": {"url": "https://app.example.com/login"},
}


@pytest.fixture
def auth_file(tmp_path):
    path = tmp_path / "auth.json"
    path.write_text(json.dumps(AUTH), encoding="utf-8")
    return str(path)


def make_results(errors=0, interrupted=False):
    summary = CrawlSummary()
    summary.increment_total_pages()
    for _ in range(errors):
        summary.increment_errors()
    if interrupted:
        summary.mark_interrupted()
    else:
        summary.mark_completed()
    summary.finalize()
    return CrawlResults(summary=summary, pages=[Page(url="https://example.com/", status=200)])


@pytest.fixture
def fake_crawl(monkeypatch):
    calls = []

    def install(results=None, exc=None):
        async def _crawl(url, cfg, token, auth=None):
            calls.append((url, cfg, auth))
            if exc is not None:
                raise exc
            return results or make_results()

        monkeypatch.setattr(cli, "_crawl_async", _crawl)
        return calls

    return install


# ====================================================================
# _resolve_auth
# ====================================================================

class TestResolveAuth:

    def test_no_auth(self):
        assert cli._resolve_auth(CrawlerRunConfig()) is None

    def test_role_from_config(self, auth_file):
        config, role = cli._resolve_auth(CrawlerRunConfig(auth_config_path=auth_file, role="admin"))
        assert role == "admin"
        assert config.get_role("admin").auth_method.type == "form-login"

    def test_role_without_config(self):
        with pytest.raises(AuthConfigError):
            cli._resolve_auth(CrawlerRunConfig(role="admin"))

    def test_config_without_role(self, auth_file):
        with pytest.raises(AuthConfigError) as excinfo:
            cli._resolve_auth(CrawlerRunConfig(auth_config_path=auth_file))
        assert "available roles: admin" in excinfo.value.details

    def test_unknown_role(self, auth_file):
        with pytest.raises(AuthConfigError):
            cli._resolve_auth(CrawlerRunConfig(auth_config_path=auth_file, role="root"))

    def test_storage_state_overrides_role_login(self, auth_file):
        config, role = cli._resolve_auth(CrawlerRunConfig(
            auth_config_path=auth_file, role="admin", storage_state_path="admin_state.json",
        ))
        method = config.get_role("admin").auth_method
        assert (method.type, method.path) == ("storage-state", "admin_state.json")
        assert config.login is not None

    def test_storage_state_alone(self):
        config, role = cli._resolve_auth(CrawlerRunConfig(storage_state_path="state.json"))
        assert role == "storage-state"
        assert config.get_role(role).auth_method.path == "state.json"


# ====================================================================
# run_cli_with_args
# ====================================================================

class TestRunCli:

    def test_success_writes_json_to_stdout(self, fake_crawl, capsys):
        calls = fake_crawl()
        code = cli.run_cli_with_args(["https://example.com", "--max-pages", "5", "--quiet"])
        assert code == 0
        out = capsys.readouterr().out
        assert json.loads(out)["summary"]["totalPages"] == 1
        url, cfg, auth = calls[0]
        assert cfg.max_pages == 5
        assert auth is None

    def test_text_output_to_file(self, fake_crawl, tmp_path, capsys):
        fake_crawl()
        target = tmp_path / "crawl.txt"
        code = cli.run_cli_with_args(["https://example.com", "--format", "text", "-o", str(target)])
        assert code == 0
        assert target.read_text(encoding="utf-8").startswith("Crawl Summary")
        assert "CRAWL COMPLETE" in capsys.readouterr().err

    def test_page_errors_exit_one(self, fake_crawl):
        fake_crawl(make_results(errors=2))
        assert cli.run_cli_with_args(["https://example.com", "-q"]) == 1

    def test_interrupted_exit_code(self, fake_crawl):
        fake_crawl(make_results(interrupted=True))
        assert cli.run_cli_with_args(["https://example.com", "-q"]) == 130

    @pytest.mark.parametrize("argv", [
        ["not a url"],
        ["http://127.0.0.1/"],
        ["https://example.com", "--max-pages", "0"],
        ["https://example.com", "--rate-limit", "0"],
        ["https://example.com", "--role", "admin"],
    ])
    def test_invalid_options_exit_one(self, fake_crawl, argv):
        calls = fake_crawl()
        assert cli.run_cli_with_args(argv) == 1
        assert calls == []

    def test_auth_failure_exit_one(self, fake_crawl, auth_file):
        fake_crawl(exc=AuthenticationError("Login verification failed", role="admin"))
        argv = ["https://example.com", "--auth-config", auth_file, "--role", "admin", "-q"]
        assert cli.run_cli_with_args(argv) == 1

    def test_fatal_error_exit_one(self, fake_crawl):
        fake_crawl(exc=RuntimeError("browser launch failed"))
        assert cli.run_cli_with_args(["https://example.com", "-q"]) == 1

    def test_bad_format_choice_is_usage_error(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.run_cli_with_args(["https://example.com", "--format", "xml"])
        assert excinfo.value.code == 2

    def test_epilog_include_example_matches_docs_pages(self):
        epilog = cli.build_parser().epilog
        pattern = re.search(r'--include "([^"]+)"', epilog).group(1)
        url_filter = UrlFilter(include_patterns=(pattern,))
        assert url_filter.should_crawl("https://app.example.com/docs/intro/")
        assert not url_filter.should_crawl("https://app.example.com/blog/")
