"""
Tests for URL canonicalization and start-URL validation.

Covers:
  1. Canonical form (fragment, case, default ports, dot-segments, slashes)
  2. Idempotence and deduplication
  3. Origin helpers
  4. validate_url scheme / SSRF rejection
"""

import pytest

from surface_crawler.exceptions import CrawlError, ErrorType
from surface_crawler.utils import (
    deduplicate_urls,
    extract_domain,
    get_base_url,
    is_same_domain,
    is_valid_url,
    normalize_url,
    validate_url,
)


# ====================================================================
# 1. Canonical form
# ====================================================================

class TestNormalizeUrl:

    def test_fragment_removed(self):
        assert normalize_url("https://example.com/page#section") == "https://example.com/page/"

    def test_query_preserved(self):
        assert normalize_url("https://example.com/search?q=a&b=2") == "https://example.com/search/?q=a&b=2"

    def test_scheme_and_host_lowercased(self):
        assert normalize_url("HTTPS://Example.COM/Docs") == "https://example.com/Docs/"

    def test_path_case_kept(self):
        """Paths are case-sensitive on most servers."""
        assert "/Docs/" in normalize_url("https://example.com/Docs")

    def test_default_ports_stripped(self):
        assert normalize_url("http://example.com:80/a") == "http://example.com/a/"
        assert normalize_url("https://example.com:443/a") == "https://example.com/a/"

    def test_non_default_port_kept(self):
        assert normalize_url("https://example.com:8443/a") == "https://example.com:8443/a/"

    def test_dot_segments_resolved(self):
        assert normalize_url("https://example.com/a/b/../c") == "https://example.com/a/c/"
        assert normalize_url("https://example.com/a/./b") == "https://example.com/a/b/"

    def test_root_path(self):
        assert normalize_url("https://example.com") == "https://example.com/"
        assert normalize_url("https://example.com/") == "https://example.com/"

    def test_trailing_slash_added_for_directories(self):
        assert normalize_url("https://example.com/docs") == "https://example.com/docs/"

    def test_trailing_slash_removed_for_files(self):
        assert normalize_url("https://example.com/page.html/") == "https://example.com/page.html"
        assert normalize_url("https://example.com/files/report.pdf") == "https://example.com/files/report.pdf"

    def test_unparseable_returned_unchanged(self):
        assert normalize_url("not a url") == "not a url"
        assert normalize_url("/relative/path") == "/relative/path"

    @pytest.mark.parametrize("url", [
        "https://Example.com:443/a/b/../c#x",
        "http://example.com/page.html/",
        "https://example.com//double//slash",
        "https://example.com/search?q=1",
    ])
    def test_idempotent(self, url):
        once = normalize_url(url)
        assert normalize_url(once) == once


class TestDeduplicate:

    def test_equivalent_urls_collapse(self):
        urls = [
            "https://example.com/docs",
            "https://EXAMPLE.com/docs/",
            "https://example.com/docs#intro",
            "https://example.com/other",
        ]
        assert deduplicate_urls(urls) == [
            "https://example.com/docs/",
            "https://example.com/other/",
        ]

    def test_empty(self):
        assert deduplicate_urls([]) == []


# ====================================================================
# 2. Origin helpers
# ====================================================================

class TestOriginHelpers:

    def test_extract_domain(self):
        assert extract_domain("https://Sub.Example.com:8080/x") == "sub.example.com"
        assert extract_domain("nonsense") == ""

    def test_same_domain(self):
        assert is_same_domain("https://example.com/a", "http://example.com/b")
        assert not is_same_domain("https://evil.com/a", "https://example.com/")
        assert not is_same_domain("https://sub.example.com/", "https://example.com/")

    def test_get_base_url(self):
        assert get_base_url("https://example.com:8443/a/b?c") == "https://example.com:8443"

    def test_is_valid_url(self):
        assert is_valid_url("https://example.com")
        assert not is_valid_url("ftp://example.com")
        assert not is_valid_url("example.com")


# ====================================================================
# 3. validate_url
# ====================================================================

class TestValidateUrl:

    def test_accepts_public_https(self):
        assert validate_url("  https://example.com/app  ") == "https://example.com/app"

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com", "example.com", "https://"])
    def test_rejects_invalid(self, url):
        with pytest.raises(CrawlError) as exc_info:
            validate_url(url)
        assert exc_info.value.error_type == ErrorType.INVALID_URL

    @pytest.mark.parametrize("url", [
        "http://localhost:3000",
        "http://127.0.0.1/",
        "http://10.1.2.3/",
        "http://172.16.0.1/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://0.0.0.0/",
        "http://[::1]/",
    ])
    def test_rejects_private_targets(self, url):
        with pytest.raises(CrawlError) as exc_info:
            validate_url(url)
        assert exc_info.value.error_type == ErrorType.SSRF_ATTEMPT

    def test_user_message_mentions_detail(self):
        with pytest.raises(CrawlError) as exc_info:
            validate_url("ftp://example.com")
        assert "ftp" in exc_info.value.to_user_message()
