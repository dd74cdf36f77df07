from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import pytest

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml" />
  </rootfiles>
</container>"""

DEFAULT_METADATA = (
    "<dc:title>Sample Book</dc:title>"
    "<dc:creator>Test Author</dc:creator>"
    "<dc:language>en</dc:language>"
    "<dc:publisher>Test Press</dc:publisher>"
)

# (id, href, html)
ChapterSpec = Tuple[str, str, str]


def _page(body: str) -> str:
    return f"<!doctype html><html><body>{body}</body></html>"


def write_epub(
    epub_path: Path,
    chapters: Sequence[ChapterSpec],
    *,
    metadata_xml: str = DEFAULT_METADATA,
    ncx_titles: Optional[Sequence[str]] = None,
    nav_titles: Optional[Sequence[str]] = None,
    spine: bool = True,
) -> Path:
    manifest = []
    if ncx_titles is not None:
        manifest.append('<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml" />')
    if nav_titles is not None:
        manifest.append(
            '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav" />'
        )
    manifest.extend(
        f'<item id="{item_id}" href="{href}" media-type="application/xhtml+xml" />'
        for item_id, href, _html in chapters
    )
    spine_xml = ""
    if spine:
        toc_attr = ' toc="ncx"' if ncx_titles is not None else ""
        refs = "".join(f'<itemref idref="{item_id}" />' for item_id, _href, _html in chapters)
        spine_xml = f"<spine{toc_attr}>{refs}</spine>"

    opf = (
        '<?xml version="1.0"?>'
        '<package version="2.0" xmlns="http://www.idpf.org/2007/opf" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f"<metadata>{metadata_xml}</metadata>"
        f"<manifest>{''.join(manifest)}</manifest>"
        f"{spine_xml}</package>"
    )

    with zipfile.ZipFile(epub_path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("OEBPS/content.opf", opf)
        if ncx_titles is not None:
            points = "".join(
                f'<navPoint id="p{idx}" playOrder="{idx}">'
                f"<navLabel><text>{title}</text></navLabel>"
                f'<content src="{chapters[idx - 1][1]}" /></navPoint>'
                for idx, title in enumerate(ncx_titles, start=1)
                if idx <= len(chapters)
            )
            zf.writestr(
                "OEBPS/toc.ncx",
                f'<?xml version="1.0"?><ncx><navMap>{points}</navMap></ncx>',
            )
        if nav_titles is not None:
            links = "".join(
                f'<li><a href="{href}">{nav_titles[idx] if idx < len(nav_titles) else href}</a></li>'
                for idx, (_item_id, href, _html) in enumerate(chapters)
            )
            zf.writestr(
                "OEBPS/nav.xhtml",
                _page(f'<nav epub:type="toc"><ol>{links}</ol></nav>'),
            )
        for _item_id, href, html in chapters:
            zf.writestr(f"OEBPS/{href}", html)
    return epub_path


@pytest.fixture
def make_epub(tmp_path: Path) -> Callable[..., Path]:
    def _make(chapters: Sequence[ChapterSpec], name: str = "sample.epub", **kwargs) -> Path:
        return write_epub(tmp_path / name, chapters, **kwargs)

    return _make


@pytest.fixture
def page() -> Callable[[str], str]:
    return _page


@pytest.fixture
def container_xml() -> str:
    return CONTAINER_XML
