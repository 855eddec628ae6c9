"""
URL Utilities
=============
Canonicalization, deduplication and origin helpers used as the single
identity function for every URL the crawler touches.

Canonical form:

- Fragment removed, query string preserved verbatim
- Scheme and host lower-cased, default ports stripped
- Dot-segments resolved (``/a/b/../c`` → ``/a/c``)
- Trailing slash: stripped when the last segment looks like a file
  (``/page.html``), appended otherwise (``/docs`` → ``/docs/``)
- Root path is always ``/``

``normalize_url`` never raises: input it cannot parse comes back
unchanged.  Validation is ``validate_url``'s job.
"""

from __future__ import annotations

import ipaddress
import logging
import posixpath
import re
from typing import Iterable, List
from urllib.parse import urlsplit, urlunsplit

from .exceptions import CrawlError, ErrorType

logger = logging.getLogger(__name__)


_FILE_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")

_BLOCKED_HOSTNAMES = frozenset({"localhost", "0.0.0.0"})

_PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/32"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
]


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------

def _strip_default_port(hostport: str, scheme: str) -> str:
    """Remove ``:80`` for http and ``:443`` for https."""
    if ":" not in hostport or hostport.endswith("]"):
        return hostport
    host, _, port = hostport.rpartition(":")
    if (scheme, port) in (("http", "80"), ("https", "443")):
        return host
    return hostport


def _normalize_path(path: str) -> str:
    if not path or path == "/":
        return "/"

    had_trailing_slash = path.endswith("/")
    resolved = "/" + posixpath.normpath(path).lstrip("/")
    if resolved == "/":
        return "/"
    # normpath drops the trailing slash; put it back so the rule below sees it
    if had_trailing_slash:
        resolved += "/"

    segments = [s for s in resolved.split("/") if s]
    last_segment = segments[-1] if segments else ""
    has_extension = bool(_FILE_EXTENSION_RE.search(last_segment))

    if has_extension and resolved.endswith("/"):
        return resolved.rstrip("/")
    if not has_extension and not resolved.endswith("/"):
        return resolved + "/"
    return resolved


def normalize_url(url: str) -> str:
    """
    Return the canonical form of *url*.

    Idempotent: ``normalize_url(normalize_url(u)) == normalize_url(u)``.

    Args:
        url: Absolute URL string.

    Returns:
        Canonical URL, or *url* unchanged if it cannot be parsed.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.scheme or not parts.netloc:
        return url

    scheme = parts.scheme.lower()
    userinfo, at, hostport = parts.netloc.rpartition("@")
    netloc = f"{userinfo}{at}{_strip_default_port(hostport.lower(), scheme)}"

    return urlunsplit((scheme, netloc, _normalize_path(parts.path), parts.query, ""))


def deduplicate_urls(urls: Iterable[str]) -> List[str]:
    """Canonicalize *urls* and drop duplicates, keeping first-seen order."""
    seen = set()
    unique: List[str] = []
    for url in urls:
        canonical = normalize_url(url)
        if canonical not in seen:
            seen.add(canonical)
            unique.append(canonical)
    return unique


# ---------------------------------------------------------------------------
# Origin helpers
# ---------------------------------------------------------------------------

def extract_domain(url: str) -> str:
    """Extract the lower-cased hostname from *url* ('' if none)."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_same_domain(url: str, base_url: str) -> bool:
    """True when both URLs resolve to the same hostname."""
    domain = extract_domain(url)
    return bool(domain) and domain == extract_domain(base_url)


def get_base_url(url: str) -> str:
    """Return ``scheme://netloc`` for *url*."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute http(s) URL."""
    try:
        parsed = urlsplit(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
    except ValueError:
        return False


def _is_private_host(hostname: str) -> bool:
    if hostname in _BLOCKED_HOSTNAMES:
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(
        address.version == network.version and address in network
        for network in _PRIVATE_NETWORKS
    )


def validate_url(url: str) -> str:
    """
    Check that *url* is a crawlable public http(s) URL.

    Args:
        url: User-supplied start URL.

    Returns:
        The stripped URL.

    Raises:
        CrawlError: ``INVALID_URL`` for empty/malformed/non-http input,
            ``SSRF_ATTEMPT`` for localhost and private network targets.
    """
    url = (url or "").strip()
    if not url:
        raise CrawlError(ErrorType.INVALID_URL, "URL cannot be empty")

    try:
        parsed = urlsplit(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError as exc:
        raise CrawlError(ErrorType.INVALID_URL, f"Malformed URL: {url}", exc) from exc

    if parsed.scheme not in ("http", "https"):
        raise CrawlError(
            ErrorType.INVALID_URL,
            f"Only http and https URLs are supported (got '{parsed.scheme or 'none'}')",
        )
    if not hostname:
        raise CrawlError(ErrorType.INVALID_URL, f"URL has no host: {url}")

    if _is_private_host(hostname):
        logger.warning(f"[SCOPE] Refusing private/internal target: {hostname}")
        raise CrawlError(
            ErrorType.SSRF_ATTEMPT,
            f"Target '{hostname}' is a local or private network address",
        )

    return url
