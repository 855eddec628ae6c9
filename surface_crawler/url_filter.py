"""
URL Filter
==========
Include/exclude admission control evaluated before a URL is fetched.

Each pattern is either:

- a glob (``**/products/**``, ``*.pdf``, ``/docs/{api,guide}/**``), or
- a regex literal wrapped in slashes (``/\\/admin\\//``).

Glob semantics follow the usual shell/micromatch conventions:

- ``**`` matches across path separators (``**/`` may also match nothing)
- ``*`` and ``?`` never cross a ``/``
- ``{a,b}`` alternation and ``[abc]`` character classes

Evaluation order: include patterns (if any) must match first, then any
exclude match rejects.  With no patterns configured the filter admits
everything.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Glob → regex translation
# ---------------------------------------------------------------------------

def glob_to_regex(pattern: str) -> str:
    """
    Translate a glob *pattern* into an anchored regular expression string.

    >>> bool(re.fullmatch(glob_to_regex("**/products/**"), "/products/x"))
    True
    """
    out = []
    i = 0
    n = len(pattern)
    brace_depth = 0

    while i < n:
        c = pattern[i]
        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                i += 2
                if i < n and pattern[i] == "/":
                    # "**/" also matches zero directories
                    out.append("(?:.*/)?")
                    i += 1
                elif out and out[-1] == "/" and i == n:
                    # trailing "/**" also matches the bare directory
                    out[-1] = "(?:/.*)?"
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        elif c == "{":
            brace_depth += 1
            out.append("(?:")
        elif c == "}" and brace_depth:
            brace_depth -= 1
            out.append(")")
        elif c == "," and brace_depth:
            out.append("|")
        elif c == "/":
            out.append("/")
        else:
            out.append(re.escape(c))
        i += 1

    out.extend(")" * brace_depth)
    return "".join(out)


def _is_regex_literal(pattern: str) -> bool:
    return len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/")


@dataclass(frozen=True)
class _CompiledPattern:
    source: str
    regex: Pattern
    is_glob: bool

    def matches(self, url: str) -> bool:
        if self.is_glob:
            return self.regex.fullmatch(url) is not None
        return self.regex.search(url) is not None


def _compile(pattern: str) -> _CompiledPattern:
    if _is_regex_literal(pattern):
        try:
            return _CompiledPattern(pattern, re.compile(pattern[1:-1]), is_glob=False)
        except re.error as exc:
            logger.warning(
                f"[SCOPE] Invalid regex pattern '{pattern}': {exc}; matching as glob"
            )
    return _CompiledPattern(pattern, re.compile(glob_to_regex(pattern)), is_glob=True)


# ---------------------------------------------------------------------------
# UrlFilter
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UrlFilter:
    """
    Immutable include/exclude filter for a single crawl.

    Parameters
    ----------
    include_patterns : sequence of str
        If non-empty, a URL must match at least one of these.
    exclude_patterns : sequence of str
        Any match rejects the URL, regardless of include status.
    """

    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()

    _include: Tuple[_CompiledPattern, ...] = field(init=False, repr=False, default=())
    _exclude: Tuple[_CompiledPattern, ...] = field(init=False, repr=False, default=())

    def __post_init__(self):
        object.__setattr__(self, "include_patterns", tuple(self.include_patterns or ()))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns or ()))
        object.__setattr__(self, "_include", tuple(_compile(p) for p in self.include_patterns))
        object.__setattr__(self, "_exclude", tuple(_compile(p) for p in self.exclude_patterns))

    @property
    def is_permissive(self) -> bool:
        return not self._include and not self._exclude

    def should_crawl(self, url: str) -> bool:
        """Return True if *url* passes the include and exclude checks."""
        if self._include and not any(p.matches(url) for p in self._include):
            logger.debug(f"[SCOPE] Not included: {url}")
            return False

        for pattern in self._exclude:
            if pattern.matches(url):
                logger.debug(f"[SCOPE] Excluded by '{pattern.source}': {url}")
                return False

        return True

    def log_scope(self) -> None:
        """Emit filter configuration to the logger."""
        if self.is_permissive:
            logger.info("[SCOPE] No URL patterns, all same-domain URLs admitted")
            return
        if self.include_patterns:
            logger.info(f"[SCOPE] Include: {list(self.include_patterns)}")
        if self.exclude_patterns:
            logger.info(f"[SCOPE] Exclude: {list(self.exclude_patterns)}")


def create_permissive_filter() -> UrlFilter:
    """A filter that admits every URL."""
    return UrlFilter()


def create_url_filter(
    include_patterns: Optional[Iterable[str]] = None,
    exclude_patterns: Optional[Iterable[str]] = None,
) -> UrlFilter:
    return UrlFilter(
        include_patterns=tuple(include_patterns or ()),
        exclude_patterns=tuple(exclude_patterns or ()),
    )
