from __future__ import annotations

import re
from typing import Callable, Tuple

from bs4 import BeautifulSoup
from markdownify import markdownify

from .text import collapse_blank_lines

Renderer = Callable[[bytes], str]

_IMAGE_TAG_RE = re.compile(rb"<(?:img|image|svg)\b", re.IGNORECASE)
_PI_LINE_RE = re.compile(r"^[ \t]*<(?:\?[^>]*\?|![Dd][Oo][Cc][Tt][Yy][Pp][Ee][^>]*)>[ \t]*$", re.MULTILINE)
_INLINE_XML_DECL_RE = re.compile(r"<\?xml[^>]*\?>", re.IGNORECASE)

_MD_IMAGE_RE = re.compile(r"!\[(?:\\.|[^\]\\])*\](?:\([^)]*\)|\[[^\]]*\])")
_HTML_IMAGE_RE = re.compile(r"<img\b[^>]*>|<image\b[^>]*>|<svg\b.*?</svg>", re.IGNORECASE | re.DOTALL)
_REF_DEF_RE = re.compile(r"^[ \t]{0,3}\[([^\]]+)\]:[ \t]*\S+.*$", re.MULTILINE)

_LABEL = r"(?P<label>(?:\\.|\[(?:\\.|[^\[\]\\])*\]|[^\[\]\\])*)"
_INLINE_LINK_RE = re.compile(
    r"(?<!!)(?<!\\)\[" + _LABEL + r"\]\((?P<target>[^)\s]*)(?:\s+\"[^\"]*\")?\)"
)
_EMPTY_LINK_RE = re.compile(r"(?<!!)\[\s*\](?:\([^)]*\)|\[[^\]]*\])")
_ESCAPED_PUNCT_RE = re.compile(r"\\([\[\]()!])")
_EXTERNAL_TARGET_RE = re.compile(r"^https?://", re.IGNORECASE)


def parse_html_soup(html: bytes | str) -> BeautifulSoup:
    if isinstance(html, bytes):
        head = html.lstrip()[:512].lower()
        parser = (
            "lxml-xml"
            if (head.startswith(b"<?xml") or b"xmlns=" in head)
            else "lxml"
        )
    else:
        head = str(html).lstrip()[:512].lower()
        parser = "lxml-xml" if (head.startswith("<?xml") or "xmlns=" in head) else "lxml"
    return BeautifulSoup(html, parser)


def render_markdown(content: bytes) -> str:
    """Render an XHTML chapter document to markdown."""
    soup = parse_html_soup(content)
    for tag in soup(["script", "style", "head", "noscript"]):
        tag.decompose()
    root = soup.body if soup.body else soup
    return markdownify(str(root), heading_style="ATX", bullets="-")


def has_image_tags(content: bytes) -> bool:
    return bool(_IMAGE_TAG_RE.search(content or b""))


def strip_declarations(markdown: str) -> str:
    markdown = _PI_LINE_RE.sub("", markdown)
    return _INLINE_XML_DECL_RE.sub("", markdown)


def _unescape(value: str) -> str:
    return _ESCAPED_PUNCT_RE.sub(r"\1", value)


def _is_bracketed(label: str) -> bool:
    plain = _unescape(label).strip()
    return plain.startswith("[") and plain.endswith("]")


def _link_text(label: str) -> str:
    if _is_bracketed(label):
        return f"[{label.strip()}]"
    return label


def strip_images(markdown: str) -> str:
    markdown = _MD_IMAGE_RE.sub("", markdown)
    markdown = _HTML_IMAGE_RE.sub("", markdown)
    return _drop_orphaned_references(markdown)


def _drop_orphaned_references(markdown: str) -> str:
    definitions = list(_REF_DEF_RE.finditer(markdown))
    if not definitions:
        return markdown
    body = _REF_DEF_RE.sub("", markdown).lower()
    orphaned = set()
    for match in definitions:
        label = match.group(1).strip().lower()
        if f"][{label}]" in body or f"[{label}][]" in body or f"[{label}]" in body:
            continue
        orphaned.add(match.group(0))
    if not orphaned:
        return markdown
    return _REF_DEF_RE.sub(
        lambda match: "" if match.group(0) in orphaned else match.group(0), markdown
    )


def strip_fragment_links(markdown: str) -> str:
    def replace(match: re.Match) -> str:
        if not match.group("target").startswith("#"):
            return match.group(0)
        return _link_text(match.group("label"))

    markdown = _INLINE_LINK_RE.sub(replace, markdown)
    return _EMPTY_LINK_RE.sub("", markdown)


def strip_internal_links(markdown: str) -> str:
    def replace(match: re.Match) -> str:
        if _EXTERNAL_TARGET_RE.match(match.group("target")):
            return match.group(0)
        return _link_text(match.group("label"))

    return _INLINE_LINK_RE.sub(replace, markdown)


def cleanup_markdown(
    markdown: str,
    strip_image_refs: bool = True,
    strip_internal: bool = True,
) -> str:
    markdown = strip_declarations(markdown or "")
    if strip_image_refs:
        markdown = strip_images(markdown)
    markdown = strip_fragment_links(markdown)
    if strip_internal:
        markdown = strip_internal_links(markdown)
    markdown = collapse_blank_lines(markdown)
    return _unescape(markdown).strip()


def render_document(
    content: bytes,
    strip_image_refs: bool = True,
    strip_internal: bool = True,
    renderer: Renderer = render_markdown,
) -> Tuple[str, bool]:
    """Render and clean one document; also report whether its markup holds images."""
    markdown = cleanup_markdown(
        renderer(content),
        strip_image_refs=strip_image_refs,
        strip_internal=strip_internal,
    )
    return markdown, has_image_tags(content)
