import zipfile
from pathlib import Path

from bookref import toc as toc_util
from bookref.archive import open_archive, read_package
from bookref.models import TocEntry


def _replace_entry(path: Path, name: str, data: bytes) -> None:
    with zipfile.ZipFile(path) as zf:
        entries = {entry: zf.read(entry) for entry in zf.namelist()}
    entries[name] = data
    with zipfile.ZipFile(path, "w") as zf:
        for entry, payload in entries.items():
            zf.writestr(entry, payload)


def _structure(path: Path) -> toc_util.Structure:
    with open_archive(path) as archive:
        return toc_util.resolve_structure(archive, read_package(archive))


def _chapters(page, count: int) -> list:
    return [
        (f"ch{idx}", f"ch{idx}.xhtml", page(f"<h1>Heading {idx}</h1><p>Body {idx}.</p>"))
        for idx in range(1, count + 1)
    ]


def test_nav_document_wins_over_ncx(page, make_epub) -> None:
    path = make_epub(_chapters(page, 1), ncx_titles=["NCX Title"], nav_titles=["Nav Title"])
    structure = _structure(path)
    assert structure.source == "nav"
    assert structure.toc_constrained is True
    assert structure.title_for("OEBPS/ch1.xhtml") == "Nav Title"


def test_ncx_used_when_no_nav_document(page, make_epub) -> None:
    path = make_epub(_chapters(page, 2), ncx_titles=["First", "Second"])
    structure = _structure(path)
    assert structure.source == "ncx"
    assert structure.hrefs == ["OEBPS/ch1.xhtml", "OEBPS/ch2.xhtml"]
    assert structure.title_for("./OEBPS/CH2.xhtml#frag") == "Second"


def test_toc_filters_reading_order(page, make_epub) -> None:
    path = make_epub(_chapters(page, 3), ncx_titles=["One", "Two"])
    structure = _structure(path)
    assert structure.hrefs == ["OEBPS/ch1.xhtml", "OEBPS/ch2.xhtml"]


def test_stale_toc_keeps_full_reading_order(page, make_epub) -> None:
    path = make_epub(_chapters(page, 2), ncx_titles=["One", "Two"])
    # None of the NCX targets exist in the spine.
    _replace_entry(
        path,
        "OEBPS/toc.ncx",
        b'<?xml version="1.0"?><ncx><navMap>'
        b'<navPoint id="x"><navLabel><text>Gone</text></navLabel>'
        b'<content src="gone.xhtml"/></navPoint></navMap></ncx>',
    )

    structure = _structure(path)
    assert structure.hrefs == ["OEBPS/ch1.xhtml", "OEBPS/ch2.xhtml"]
    assert structure.toc_constrained is False


def test_no_toc_uses_spine(page, make_epub) -> None:
    structure = _structure(make_epub(_chapters(page, 2)))
    assert structure.source == "spine"
    assert structure.titles == {}
    assert structure.toc_constrained is False
    assert len(structure.hrefs) == 2


def test_ncx_entries_are_breadth_first(page, make_epub) -> None:
    path = make_epub(_chapters(page, 3), ncx_titles=["unused"])
    _replace_entry(
        path,
        "OEBPS/toc.ncx",
        b'<?xml version="1.0"?><ncx><navMap>'
        b'<navPoint id="a"><navLabel><text>Part One</text></navLabel><content src="ch1.xhtml"/>'
        b'<navPoint id="a1"><navLabel><text>Nested</text></navLabel><content src="ch3.xhtml"/></navPoint>'
        b"</navPoint>"
        b'<navPoint id="b"><navLabel><text>Part Two</text></navLabel><content src="ch2.xhtml"/></navPoint>'
        b'<navPoint id="c"><navLabel><text>  </text></navLabel><content src="ch2.xhtml"/></navPoint>'
        b"</navMap></ncx>",
    )

    with open_archive(path) as archive:
        entries = toc_util.ncx_entries(archive, read_package(archive))
    assert [entry.label for entry in entries] == ["Part One", "Part Two", "Nested"]
    assert entries[2].href == "OEBPS/ch3.xhtml"


def test_build_title_map_keeps_first_label_per_document() -> None:
    titles = toc_util.build_title_map(
        [
            TocEntry(href="OEBPS/ch1.xhtml", label="Chapter"),
            TocEntry(href="OEBPS/ch1.xhtml#section", label="Section"),
            TocEntry(href="OEBPS/ch2.xhtml", label=""),
        ]
    )
    assert titles == {"oebps/ch1.xhtml": "Chapter"}


def test_first_toc_tries_strategies_in_order(page, make_epub) -> None:
    path = make_epub(_chapters(page, 1))
    calls = []

    def empty(archive, package):
        calls.append("empty")
        return []

    def found(archive, package):
        calls.append("found")
        return [TocEntry(href="OEBPS/ch1.xhtml", label="Found")]

    with open_archive(path) as archive:
        package = read_package(archive)
        name, entries = toc_util.first_toc(
            archive, package, strategies=(("empty", empty), ("found", found))
        )
    assert name == "found"
    assert calls == ["empty", "found"]
    assert entries[0].label == "Found"
