"""
Content Extractor
Turns rendered HTML into links, forms, buttons and input fields.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .models import Button, Form, InputField
from .utils import is_same_domain, is_valid_url, normalize_url

logger = logging.getLogger(__name__)

# Choose the best available HTML parser: prefer lxml for speed,
# fall back to the stdlib html.parser so the crawler never crashes.
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"
    logger.info("lxml not installed, using html.parser (slower but functional)")

_SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "#")

_BUTTON_SELECTOR = 'button, input[type="button"], input[type="submit"], input[type="reset"]'


@dataclass
class ExtractedContent:
    """Structured elements found on one page."""
    title: Optional[str] = None
    links: List[str] = field(default_factory=list)
    forms: List[Form] = field(default_factory=list)
    buttons: List[Button] = field(default_factory=list)
    input_fields: List[InputField] = field(default_factory=list)


class ContentExtractor(ABC):
    """Collaborator contract used by the crawl engine."""

    @abstractmethod
    def extract(self, html: str, page_url: str) -> ExtractedContent:
        """
        Args:
            html: Rendered page markup.
            page_url: Canonical URL of the page (base for relative URLs).

        Returns:
            Same-origin canonical links plus the interactive elements.
        """
        ...


def _attr(element: Tag, name: str) -> Optional[str]:
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value or None


def _enclosing_form_id(element: Tag) -> Optional[str]:
    form = element.find_parent("form")
    if form is None:
        return None
    return _attr(form, "id")


def _field_type(element: Tag) -> str:
    if element.name in ("textarea", "select"):
        return element.name
    return (_attr(element, "type") or "text").lower()


class HtmlContentExtractor(ContentExtractor):
    """BeautifulSoup implementation of ``ContentExtractor``."""

    def __init__(self, parser: str = _BS_PARSER):
        self.parser = parser

    def extract(self, html: str, page_url: str) -> ExtractedContent:
        soup = BeautifulSoup(html or "", self.parser)

        # lxml occasionally produces an empty tree from valid HTML.  If the
        # body has text but no anchors were found, retry with html.parser.
        if self.parser == "lxml":
            body = soup.find("body")
            body_len = len(body.get_text(strip=True)) if body else 0
            if body_len > 200 and not soup.find("a", href=True):
                logger.info(
                    f"[PARSER] lxml produced 0 links from {body_len} chars "
                    f"of body text, retrying with html.parser"
                )
                soup = BeautifulSoup(html, "html.parser")

        forms, form_fields = self._extract_forms(soup, page_url)
        return ExtractedContent(
            title=self._extract_title(soup),
            links=self._extract_links(soup, page_url),
            forms=forms,
            buttons=self._extract_buttons(soup, page_url),
            input_fields=form_fields + self._extract_standalone_inputs(soup, page_url),
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> Optional[str]:
        if soup.title and soup.title.string:
            title = soup.title.string.strip()
            return title or None
        return None

    @staticmethod
    def _extract_links(soup: BeautifulSoup, page_url: str) -> List[str]:
        """Same-origin absolute links, canonicalized, first-seen order."""
        seen = set()
        links: List[str] = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
                continue
            try:
                absolute = urljoin(page_url, href)
            except ValueError:
                logger.debug(f"[PARSER] Unresolvable href on {page_url}: {href}")
                continue
            if not is_valid_url(absolute) or not is_same_domain(absolute, page_url):
                continue
            canonical = normalize_url(absolute)
            if canonical not in seen:
                seen.add(canonical)
                links.append(canonical)
        return links

    @staticmethod
    def _input_field(element: Tag, page_url: str, form_id: Optional[str]) -> InputField:
        return InputField(
            type=_field_type(element),
            name=_attr(element, "name"),
            id=_attr(element, "id"),
            required=element.has_attr("required"),
            placeholder=_attr(element, "placeholder"),
            page_url=page_url,
            form_id=form_id,
        )

    def _extract_forms(self, soup: BeautifulSoup, page_url: str):
        forms: List[Form] = []
        fields: List[InputField] = []
        for element in soup.find_all("form"):
            form_id = _attr(element, "id")
            action = _attr(element, "action")
            try:
                action_url = urljoin(page_url, action) if action else page_url
            except ValueError:
                action_url = page_url

            form = Form(
                id=form_id,
                action=action_url,
                method=(_attr(element, "method") or "GET").upper(),
                page_url=page_url,
            )
            for child in element.find_all(["input", "textarea", "select"]):
                input_field = self._input_field(child, page_url, form_id)
                form.input_fields.append(input_field)
                fields.append(input_field)
            forms.append(form)
        return forms, fields

    @staticmethod
    def _extract_buttons(soup: BeautifulSoup, page_url: str) -> List[Button]:
        buttons: List[Button] = []
        for element in soup.select(_BUTTON_SELECTOR):
            text = element.get_text(strip=True) or _attr(element, "value")
            buttons.append(Button(
                type=(_attr(element, "type") or "button").lower(),
                text=text or None,
                id=_attr(element, "id"),
                class_name=_attr(element, "class"),
                page_url=page_url,
                form_id=_enclosing_form_id(element),
            ))
        return buttons

    def _extract_standalone_inputs(self, soup: BeautifulSoup, page_url: str) -> List[InputField]:
        return [
            self._input_field(element, page_url, None)
            for element in soup.find_all(["input", "textarea", "select"])
            if element.find_parent("form") is None
        ]
