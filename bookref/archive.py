from __future__ import annotations

import html
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from posixpath import dirname as posix_dirname
from posixpath import join as posix_join
from posixpath import normpath as posix_normpath
from typing import Dict, Iterable, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from .models import BookMetadata, ExtractionError, ManifestItem
from .text import collapse_spaces

CONTAINER_PATH = "META-INF/container.xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


def normalize_href(href: str) -> str:
    href = (href or "").strip()
    if not href:
        return ""
    href = href.split("#", 1)[0]
    # Some EPUBs percent-encode filenames in manifest and TOC entries.
    return unquote(href)


def resolve_href(base_dir: str, href: str) -> str:
    target = normalize_href(href)
    if not target:
        return ""
    if target.startswith("/"):
        return posix_normpath(target.lstrip("/"))
    if not base_dir:
        return posix_normpath(target)
    return posix_normpath(posix_join(base_dir, target))


def href_key(href: str) -> str:
    key = normalize_href(href)
    while key.startswith("./"):
        key = key[2:]
    return key.lower()


class EpubArchive:
    """Read-only view over the entries of an EPUB zip container."""

    def __init__(self, zf: zipfile.ZipFile, path: str = "") -> None:
        self._zip = zf
        self.path = path
        self._names = {name: name for name in zf.namelist() if not name.endswith("/")}
        self._folded = {}
        for name in self._names:
            self._folded.setdefault(name.lower(), name)

    @classmethod
    def open(cls, path: Path | str) -> "EpubArchive":
        try:
            zf = zipfile.ZipFile(str(path), "r")
        except (zipfile.BadZipFile, OSError) as exc:
            raise ExtractionError.malformed(
                f"Cannot open EPUB archive {path}: {exc}"
            ) from exc
        return cls(zf, str(path))

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "EpubArchive":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def names(self) -> List[str]:
        return list(self._names)

    def resolve_name(self, name: str) -> Optional[str]:
        for candidate in (name, unquote(name)):
            candidate = (candidate or "").lstrip("/")
            if not candidate:
                continue
            if candidate in self._names:
                return candidate
            folded = self._folded.get(candidate.lower())
            if folded:
                return folded
        return None

    def read(self, name: str) -> Optional[bytes]:
        resolved = self.resolve_name(name)
        if resolved is None:
            return None
        try:
            return self._zip.read(resolved)
        except (zipfile.BadZipFile, KeyError) as exc:
            raise ExtractionError.malformed(
                f"Cannot read {resolved} from EPUB archive: {exc}"
            ) from exc


def open_archive(path: Path | str) -> EpubArchive:
    return EpubArchive.open(path)


def parse_xml(data: bytes) -> BeautifulSoup:
    return BeautifulSoup(data, "lxml-xml")


def local_name(name: Optional[str]) -> str:
    return (name or "").rsplit(":", 1)[-1].lower()


def find_all_local(node: object, name: str, recursive: bool = True) -> list:
    wanted = name.lower()
    return node.find_all(
        lambda tag: local_name(tag.name) == wanted, recursive=recursive
    )


def find_local(node: object, name: str, recursive: bool = True) -> object | None:
    found = find_all_local(node, name, recursive=recursive)
    return found[0] if found else None


@dataclass(frozen=True)
class Package:
    opf_path: str
    items: List[ManifestItem]
    spine: List[str]
    metadata: BookMetadata
    toc_id: str = ""
    _by_id: Dict[str, ManifestItem] = field(default_factory=dict, repr=False)

    @property
    def base_dir(self) -> str:
        return posix_dirname(self.opf_path)

    def item(self, item_id: str) -> Optional[ManifestItem]:
        if not self._by_id:
            return next((item for item in self.items if item.id == item_id), None)
        return self._by_id.get(item_id)

    def item_path(self, item: ManifestItem) -> str:
        return resolve_href(self.base_dir, item.href)

    def reading_order(self) -> List[str]:
        """Archive paths of the spine documents, or every markup item without a spine."""
        paths: List[str] = []
        for idref in self.spine:
            item = self.item(idref)
            if not item or not item.href:
                continue
            paths.append(self.item_path(item))
        if paths:
            return paths
        return [self.item_path(item) for item in self.items if item.is_markup and item.href]


def locate_package_path(archive: EpubArchive) -> str:
    data = archive.read(CONTAINER_PATH)
    if data is None:
        raise ExtractionError.malformed(f"EPUB is missing {CONTAINER_PATH}")
    soup = parse_xml(data)
    rootfiles = [
        tag for tag in find_all_local(soup, "rootfile") if str(tag.get("full-path") or "").strip()
    ]
    preferred = [
        tag for tag in rootfiles
        if str(tag.get("media-type") or "").strip().lower() == OPF_MEDIA_TYPE
    ]
    chosen = (preferred or rootfiles)[:1]
    if not chosen:
        raise ExtractionError.malformed(
            f"Could not resolve OPF path from EPUB {CONTAINER_PATH}"
        )
    return posix_normpath(unquote(str(chosen[0].get("full-path")).strip().lstrip("/")))


def meta_text(value: object) -> Optional[str]:
    """Plain trimmed text of a metadata value given as a string or an element."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value
    else:
        get_text = getattr(value, "get_text", None)
        if not callable(get_text):
            return None
        text = get_text()
    text = collapse_spaces(html.unescape(text))
    return text or None


def _meta_values(metadata: object, name: str) -> List[str]:
    if metadata is None:
        return []
    values: List[str] = []
    for tag in find_all_local(metadata, name):
        text = meta_text(tag)
        if text:
            values.append(text)
    return values


def _first_meta(metadata: object, name: str) -> Optional[str]:
    values = _meta_values(metadata, name)
    return values[0] if values else None


def extract_metadata(metadata: object) -> BookMetadata:
    return BookMetadata(
        title=_first_meta(metadata, "title"),
        authors=tuple(_meta_values(metadata, "creator")),
        language=_first_meta(metadata, "language"),
        publisher=_first_meta(metadata, "publisher"),
        tags=tuple(_meta_values(metadata, "subject")),
    )


def _manifest_items(manifest: object) -> Iterable[ManifestItem]:
    if manifest is None:
        return
    for tag in find_all_local(manifest, "item"):
        item_id = str(tag.get("id") or "").strip()
        href = str(tag.get("href") or "").strip()
        if not item_id:
            continue
        properties = str(tag.get("properties") or "").split()
        yield ManifestItem(
            id=item_id,
            href=href,
            media_type=str(tag.get("media-type") or "").strip(),
            is_navigation="nav" in properties,
        )


def parse_package(archive: EpubArchive, opf_path: str) -> Package:
    data = archive.read(opf_path)
    if data is None:
        raise ExtractionError.malformed(f"OPF file not found at {opf_path}")
    soup = parse_xml(data)
    package = find_local(soup, "package")
    if package is None:
        raise ExtractionError.malformed("Invalid OPF package file")

    items: List[ManifestItem] = []
    by_id: Dict[str, ManifestItem] = {}
    for item in _manifest_items(find_local(package, "manifest")):
        if item.id in by_id:
            continue
        by_id[item.id] = item
        items.append(item)

    spine_tag = find_local(package, "spine")
    spine: List[str] = []
    toc_id = ""
    if spine_tag is not None:
        toc_id = str(spine_tag.get("toc") or "").strip()
        for ref in find_all_local(spine_tag, "itemref"):
            idref = str(ref.get("idref") or "").strip()
            if idref:
                spine.append(idref)

    return Package(
        opf_path=opf_path,
        items=items,
        spine=spine,
        metadata=extract_metadata(find_local(package, "metadata")),
        toc_id=toc_id,
        _by_id=by_id,
    )


def read_package(archive: EpubArchive) -> Package:
    return parse_package(archive, locate_package_path(archive))
