"""
Rendering of assignment and challenge text fields.

Editor output (HTML) is sanitized with bleach. Older plain-text/Markdown
fields are rendered with markdown first and then sanitized the same way.
"""

import re
from typing import Optional

import bleach
import markdown

from challenge_hub.core.config import settings

ALLOWED_TAGS = [
    "a", "abbr", "b", "blockquote", "code", "em", "i", "li", "ol", "strong", "ul",
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "hr", "br", "span", "div", "img",
    "table", "thead", "tbody", "tr", "th", "td", "caption", "figure", "figcaption", "u", "s",
]
ALLOWED_ATTRS = {
    "*": ["class", "id", "title"],
    "a": ["href", "name", "target", "rel"],
    "img": ["src", "alt", "width", "height", "loading"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "sane_lists", "attr_list"]

_HTML_PATTERN = re.compile(r"</?\w+[^>]*>")


def sanitize_html(html: str) -> str:
    if not settings.SANITIZE_HTML:
        return html
    return bleach.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )


def render_markdown(text: str) -> str:
    html = markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS, output_format="html")
    return sanitize_html(html)


def render_rich(html: Optional[str], plain: Optional[str] = None) -> Optional[str]:
    """
    Pick the best available representation of a text field.

    The HTML variant wins when it has content; otherwise the plain field is
    rendered as Markdown (or sanitized directly if it already contains tags).
    Returns None when neither field has content.
    """
    if html and html.strip():
        return sanitize_html(html)
    if plain and plain.strip():
        if _HTML_PATTERN.search(plain):
            return sanitize_html(plain)
        return render_markdown(plain)
    return None


def has_text(html: Optional[str], plain: Optional[str] = None) -> bool:
    """True when either field holds visible text (an empty editor leaves ``<p></p>``)."""
    for value in (html, plain):
        if value and bleach.clean(value, tags=[], strip=True).strip():
            return True
    return False
