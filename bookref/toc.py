from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from posixpath import basename as posix_basename
from posixpath import dirname as posix_dirname
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .archive import (
    NCX_MEDIA_TYPE,
    EpubArchive,
    Package,
    find_all_local,
    find_local,
    href_key,
    local_name,
    parse_xml,
    resolve_href,
)
from .markdown import parse_html_soup
from .models import ManifestItem, TocEntry
from .text import collapse_spaces

TocStrategy = Callable[[EpubArchive, Package], List[TocEntry]]


@dataclass(frozen=True)
class Structure:
    """Documents to treat as chapters, in reading order, plus their TOC labels."""

    hrefs: List[str]
    titles: Dict[str, str] = field(default_factory=dict)
    toc_constrained: bool = False
    source: str = "spine"

    def title_for(self, href: str) -> Optional[str]:
        return self.titles.get(href_key(href))


def _find_nav_item(package: Package) -> Optional[ManifestItem]:
    for item in package.items:
        if item.is_navigation and item.href:
            return item
    for item in package.items:
        name = posix_basename(item.href).lower()
        if item.is_markup and "nav" in name:
            return item
    return None


def _find_ncx_item(package: Package) -> Optional[ManifestItem]:
    if package.toc_id:
        item = package.item(package.toc_id)
        if item and item.href:
            return item
    for item in package.items:
        if item.media_type.lower() == NCX_MEDIA_TYPE and item.href:
            return item
    return None


def _is_toc_nav(tag: object) -> bool:
    for attr in ("epub:type", "type", "role"):
        value = str(tag.get(attr) or "").lower()
        tokens = value.replace("-", " ").split()
        if "toc" in tokens:
            return True
    return False


def _direct_anchor(item: object) -> object | None:
    for child in getattr(item, "children", []):
        name = local_name(getattr(child, "name", None))
        if name == "a":
            return child
        if name in {"span", "p", "div"}:
            nested = find_local(child, "a")
            if nested is not None:
                return nested
    return None


def nav_document_entries(archive: EpubArchive, package: Package) -> List[TocEntry]:
    """Entries of the first table-of-contents nav in the EPUB 3 navigation document."""
    item = _find_nav_item(package)
    if item is None:
        return []
    nav_path = package.item_path(item)
    data = archive.read(nav_path)
    if not data:
        return []
    soup = parse_html_soup(data)
    nav = next((tag for tag in find_all_local(soup, "nav") if _is_toc_nav(tag)), None)
    if nav is None:
        return []
    ordered = find_local(nav, "ol")
    if ordered is None:
        return []

    base_dir = posix_dirname(nav_path)
    entries: List[TocEntry] = []
    for li in find_all_local(ordered, "li", recursive=False):
        anchor = _direct_anchor(li)
        if anchor is None:
            continue
        href = str(anchor.get("href") or "").strip()
        label = collapse_spaces(anchor.get_text(separator=" ", strip=True))
        target = resolve_href(base_dir, href)
        if not target or not label:
            continue
        entries.append(TocEntry(href=target, label=label))
    return entries


def ncx_entries(archive: EpubArchive, package: Package) -> List[TocEntry]:
    """Entries of the legacy NCX navMap, visited breadth first."""
    item = _find_ncx_item(package)
    if item is None:
        return []
    ncx_path = package.item_path(item)
    data = archive.read(ncx_path)
    if not data:
        return []
    soup = parse_xml(data)
    nav_map = find_local(soup, "navMap")
    if nav_map is None:
        return []

    base_dir = posix_dirname(ncx_path)
    entries: List[TocEntry] = []
    queue = deque(find_all_local(nav_map, "navPoint", recursive=False))
    while queue:
        node = queue.popleft()
        content = find_local(node, "content", recursive=False)
        label_tag = find_local(node, "navLabel", recursive=False)
        src = str(content.get("src") or "").strip() if content is not None else ""
        label = collapse_spaces(label_tag.get_text(separator=" ")) if label_tag is not None else ""
        target = resolve_href(base_dir, src)
        if target and label:
            entries.append(TocEntry(href=target, label=label))
        queue.extend(find_all_local(node, "navPoint", recursive=False))
    return entries


TOC_STRATEGIES: Tuple[Tuple[str, TocStrategy], ...] = (
    ("nav", nav_document_entries),
    ("ncx", ncx_entries),
)


def first_toc(
    archive: EpubArchive,
    package: Package,
    strategies: Sequence[Tuple[str, TocStrategy]] = TOC_STRATEGIES,
) -> Tuple[str, List[TocEntry]]:
    for name, strategy in strategies:
        entries = strategy(archive, package)
        if entries:
            return name, entries
    return "spine", []


def build_title_map(entries: Sequence[TocEntry]) -> Dict[str, str]:
    titles: Dict[str, str] = {}
    for entry in entries:
        key = href_key(entry.href)
        if key and entry.label:
            titles.setdefault(key, entry.label)
    return titles


def resolve_structure(
    archive: EpubArchive,
    package: Package,
    strategies: Sequence[Tuple[str, TocStrategy]] = TOC_STRATEGIES,
) -> Structure:
    reading_order = package.reading_order()
    source, entries = first_toc(archive, package, strategies)
    if not entries:
        return Structure(hrefs=reading_order)

    titles = build_title_map(entries)
    filtered = [href for href in reading_order if href_key(href) in titles]
    if not filtered:
        # A stale TOC that matches nothing must not erase the whole book.
        return Structure(hrefs=reading_order, titles=titles, source=source)
    return Structure(
        hrefs=filtered,
        titles=titles,
        toc_constrained=True,
        source=source,
    )
