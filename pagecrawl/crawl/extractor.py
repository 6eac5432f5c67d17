"""Content extraction: turns raw page markup into :class:`ScrapedData`.

Each metadata field is read from an explicit schema selector when one is
given, otherwise from an ordered chain of lookups over common page
conventions. The main content is chosen through a series of fallbacks so
that any document with body text yields non-empty content.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

import html2text
from bs4 import BeautifulSoup, Tag

from .media import resolve_image_urls
from .models import ExtractionSchema, ScrapedData

logger = logging.getLogger(__name__)

# Minimum text length for a content candidate to be accepted.
CONTENT_MIN_CHARS = 50

_PARSER = "html.parser"

_ALWAYS_STRIPPED = "script, style, noscript"

_NOISE_SELECTORS = (
    ".ad",
    ".ads",
    ".advertisement",
    ".sidebar",
    ".social-share",
    ".comments",
    ".related-posts",
    '[role="navigation"]',
    '[role="banner"]',
    '[role="contentinfo"]',
    ".cookie-banner",
    ".newsletter",
    ".popup",
)

_CHROME_TAGS = ("nav", "header", "footer")

_SEMANTIC_REGION = 'article, main, [role="main"], [role="article"]'

_CONTENT_SELECTORS = (
    "article",
    '[role="article"]',
    "main",
    '[role="main"]',
    ".article",
    ".post",
    ".content",
    ".entry-content",
    "#content",
    "#main",
    ".main-content",
    ".page-content",
)

_HEAD_TAGS = ("head", "title", "meta", "link")


# ---------------------------------------------------------------------------
# Field lookups
# ---------------------------------------------------------------------------

Lookup = Callable[[BeautifulSoup], "str | None"]


def _clean(value: Any) -> str | None:
    """Strip *value*; whitespace-only and missing values become ``None``."""
    if value is None:
        return None
    if isinstance(value, list):
        value = " ".join(value)
    value = str(value).strip()
    return value or None


def _meta_lookup(attribute: str, name: str) -> Lookup:
    selector = f'meta[{attribute}="{name}"]'

    def lookup(soup: BeautifulSoup) -> str | None:
        element = soup.select_one(selector)
        return _clean(element.get("content")) if element is not None else None

    return lookup


def _attribute_lookup(selector: str, attribute: str) -> Lookup:
    def lookup(soup: BeautifulSoup) -> str | None:
        element = soup.select_one(selector)
        return _clean(element.get(attribute)) if element is not None else None

    return lookup


def _text_lookup(selector: str) -> Lookup:
    def lookup(soup: BeautifulSoup) -> str | None:
        element = soup.select_one(selector)
        return _clean(element.get_text()) if element is not None else None

    return lookup


TITLE_LOOKUPS: tuple[Lookup, ...] = (
    _meta_lookup("property", "og:title"),
    _text_lookup("title"),
    _text_lookup("h1"),
)

AUTHOR_LOOKUPS: tuple[Lookup, ...] = (
    _meta_lookup("name", "author"),
    _meta_lookup("property", "article:author"),
    _text_lookup('[rel="author"]'),
    _text_lookup(".author"),
)

PUBLISH_DATE_LOOKUPS: tuple[Lookup, ...] = (
    _meta_lookup("property", "article:published_time"),
    _attribute_lookup("time[datetime]", "datetime"),
    _attribute_lookup("time", "datetime"),
    _text_lookup(".published"),
    _text_lookup(".date"),
)


def first_value(lookups: Sequence[Lookup], soup: BeautifulSoup) -> str | None:
    """Return the first non-empty lookup result, evaluating lookups lazily."""
    for lookup in lookups:
        value = lookup(soup)
        if value:
            return value
    return None


def select_value(soup: BeautifulSoup, selector: str, attribute: str | None = None) -> str | None:
    """Read the first element matching *selector*.

    Without *attribute* this is the element's trimmed text, except for
    ``<meta>`` elements, whose ``content`` attribute is used.
    """
    element = soup.select_one(selector)
    if element is None:
        return None
    if attribute:
        return _clean(element.get(attribute))
    if element.name == "meta":
        return _clean(element.get("content"))
    return _clean(element.get_text())


# ---------------------------------------------------------------------------
# Noise suppression and rendering helpers
# ---------------------------------------------------------------------------


def strip_noise(soup: BeautifulSoup | Tag) -> None:
    """Remove scripts, ads and page chrome from *soup* in place.

    ``nav``/``header``/``footer`` are kept when they wrap an article or main
    region.
    """
    for element in soup.select(_ALWAYS_STRIPPED):
        element.extract()
    for selector in _NOISE_SELECTORS:
        for element in soup.select(selector):
            element.extract()
    for element in soup.find_all(_CHROME_TAGS):
        if element.select_one(_SEMANTIC_REGION) is None:
            element.extract()


def to_markdown(html: str) -> str:
    """Convert *html* to markdown; images render as ``![alt](src)``."""
    fragment = BeautifulSoup(html, _PARSER)
    for image in fragment.find_all("img"):
        if not _clean(image.get("src")):
            image.extract()
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ignore_images = False
    converter.ignore_links = False
    return converter.handle(str(fragment)).strip()


def to_text(html: str) -> str:
    return BeautifulSoup(html, _PARSER).get_text(separator="\n", strip=True)


def _text_length(element: BeautifulSoup | Tag) -> int:
    return len(element.get_text().strip())


def _body_of(soup: BeautifulSoup) -> BeautifulSoup | Tag:
    container = soup.body or soup.html or soup
    if soup.body is None:
        for element in container.find_all(_HEAD_TAGS):
            element.extract()
    return container


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class ContentExtractor:
    """Extracts structured fields and cleaned content from page markup."""

    def __init__(self, schema: ExtractionSchema | None = None) -> None:
        self._schema = schema or ExtractionSchema()

    @property
    def schema(self) -> ExtractionSchema:
        return self._schema

    def extract(self, html: str, url: str, extract_images: bool = True) -> ScrapedData:
        html = html or ""
        soup = BeautifulSoup(html, _PARSER)
        schema = self._schema

        data = ScrapedData(
            url=url,
            title=self._field(soup, schema.title, TITLE_LOOKUPS),
            author=self._field(soup, schema.author, AUTHOR_LOOKUPS),
            publish_date=self._field(soup, schema.publish_date, PUBLISH_DATE_LOOKUPS),
        )

        content = self._select_content(soup, html)
        content = self._strip_scripts(content)
        data.content = content
        data.cleaned_html = content
        data.text = to_text(content)
        data.markdown = to_markdown(content)

        if extract_images:
            data.images = resolve_image_urls(url, self._image_sources(soup))

        data.metadata = self._apply_custom_rules(soup)
        return data

    def _field(
        self,
        soup: BeautifulSoup,
        selector: str | None,
        lookups: Sequence[Lookup],
    ) -> str | None:
        if selector:
            value = select_value(soup, selector)
            if value:
                return value
        return first_value(lookups, soup)

    def _select_content(self, soup: BeautifulSoup, html: str) -> str:
        if self._schema.content:
            element = soup.select_one(self._schema.content)
            if element is not None:
                fragment = BeautifulSoup(element.decode_contents(), _PARSER)
                strip_noise(fragment)
                if _text_length(fragment) > CONTENT_MIN_CHARS:
                    return fragment.decode_contents()
                logger.debug(
                    "schema content selector too short, using heuristics",
                    extra={"selector": self._schema.content},
                )

        working = BeautifulSoup(html, _PARSER)
        strip_noise(working)

        for selector in _CONTENT_SELECTORS:
            element = working.select_one(selector)
            if element is not None and _text_length(element) > CONTENT_MIN_CHARS:
                return element.decode_contents()

        body = _body_of(working)
        children = [str(child) for child in body.find_all(recursive=False)]
        joined = "\n".join(child for child in children if child.strip())
        if joined.strip():
            return joined

        raw_body = body.decode_contents()
        if raw_body.strip():
            return raw_body

        # Everything was noise: fall back to the body minus scripts and styles.
        fallback = BeautifulSoup(html, _PARSER)
        for element in fallback.select(_ALWAYS_STRIPPED):
            element.extract()
        return _body_of(fallback).decode_contents()

    def _strip_scripts(self, content: str) -> str:
        """Second scripts/styles pass over the selected content.

        On any failure the selected content is returned unchanged.
        """
        try:
            fragment = BeautifulSoup(content, _PARSER)
            for element in fragment.select(_ALWAYS_STRIPPED):
                element.extract()
            cleaned = str(fragment)
        except Exception:
            logger.debug("second noise pass failed, keeping selected content", exc_info=True)
            return content
        return cleaned if cleaned.strip() else content

    def _image_sources(self, soup: BeautifulSoup) -> list[str]:
        if self._schema.images:
            images: list[Tag] = []
            for element in soup.select(self._schema.images):
                images.extend([element] if element.name == "img" else element.find_all("img"))
        else:
            images = soup.find_all("img")

        sources: list[str] = []
        for image in images:
            src = _clean(image.get("src")) or _clean(image.get("data-src"))
            if src:
                sources.append(src)
        return sources

    def _apply_custom_rules(self, soup: BeautifulSoup) -> dict[str, Any]:
        metadata: dict[str, Any] = {}
        for rule in self._schema.custom:
            value = select_value(soup, rule.selector, rule.attribute)
            if value is None:
                continue
            metadata[rule.name] = rule.transform(value) if rule.transform else value
        return metadata
