"""Guess an :class:`ExtractionSchema` from raw markup.

Only structural presence is checked, with regular expressions over the raw
string, so detection is cheap enough to run before any DOM parsing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .models import ExtractionSchema

_OG_TITLE_RE = re.compile(r"""<meta[^>]+property=["']og:title["'][^>]+content=["']([^"']+)["']""", re.I)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)
_H1_RE = re.compile(r"<h1[^>]*>[\s\S]*?</h1>", re.I)
_META_AUTHOR_RE = re.compile(r"""<meta[^>]+name=["']author["'][^>]+content=["']([^"']+)["']""", re.I)
_ARTICLE_RE = re.compile(r"<article[\s>]", re.I)
_MAIN_RE = re.compile(r"<main[\s>]", re.I)
_ENTRY_CONTENT_RE = re.compile(r"""class=["'][^"']*entry-content[^"']*["']""", re.I)
_CONTENT_CLASS_RE = re.compile(r"""class=["'][^"']*content[^"']*["']""", re.I)


@dataclass(frozen=True)
class SchemaDetection:
    schema: ExtractionSchema
    confidence: float
    suggestions: list[str] = field(default_factory=list)


def detect_schema(html: str) -> SchemaDetection:
    """Return a best-guess schema, a confidence in [0, 1] and the reasons."""
    suggestions: list[str] = []
    confidence = 0.0
    title = author = content = None

    if _OG_TITLE_RE.search(html):
        title = 'meta[property="og:title"]'
        confidence += 0.3
        suggestions.append("Title from og:title")
    elif _H1_RE.search(html):
        title = "h1"
        confidence += 0.25
        suggestions.append("Title from first h1")
    elif _TITLE_RE.search(html):
        title = "title"
        confidence += 0.2
        suggestions.append("Title from <title>")

    if _META_AUTHOR_RE.search(html):
        author = 'meta[name="author"]'
        confidence += 0.2
        suggestions.append("Author from meta author")

    if _ARTICLE_RE.search(html):
        content = "article"
        confidence += 0.3
        suggestions.append("Content from article")
    elif _MAIN_RE.search(html):
        content = "main"
        confidence += 0.25
        suggestions.append("Content from main")
    elif _ENTRY_CONTENT_RE.search(html):
        content = ".entry-content"
        confidence += 0.2
        suggestions.append("Content from .entry-content")
    elif _CONTENT_CLASS_RE.search(html):
        content = ".content"
        confidence += 0.15
        suggestions.append("Content from .content")

    return SchemaDetection(
        schema=ExtractionSchema(title=title, author=author, content=content),
        confidence=round(min(1.0, confidence), 2),
        suggestions=suggestions,
    )
