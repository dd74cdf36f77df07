from bookref import split
from bookref.models import make_chapter


def _words(word: str, count: int) -> str:
    return " ".join([word] * count)


def _chapter(markdown: str, title: str = "Long Chapter"):
    return make_chapter(index=4, title=title, source_file="OEBPS/ch4.xhtml", markdown=markdown)


def test_small_chapter_passes_through() -> None:
    chapter = _chapter(_words("short", 10))
    assert split.split_chapter(chapter, max_words=40, min_words=10) == [chapter]


def test_split_by_top_level_headings() -> None:
    markdown = f"# Part A\n\n{_words('alpha', 60)}\n\n# Part B\n\n{_words('beta', 60)}"
    parts = split.split_chapter(_chapter(markdown), max_words=40, min_words=10)
    assert [part.title for part in parts] == ["Part A", "Part B"]
    assert [part.source_file for part in parts] == [
        "OEBPS/ch4.xhtml#part-1",
        "OEBPS/ch4.xhtml#part-2",
    ]
    assert parts[0].markdown.startswith("# Part A")
    assert all(part.index == 4 for part in parts)
    assert parts[1].word_count == 63


def test_falls_back_to_second_level_headings() -> None:
    markdown = (
        f"# Only Title\n\n## First\n\n{_words('alpha', 50)}\n\n## Second\n\n{_words('beta', 50)}"
    )
    segments = split.segment_chapter(markdown, min_words=10, max_words=60)
    assert [segment.heading for segment in segments] == ["Only Title", "Second"]
    assert "## First" in segments[0].markdown


def test_preamble_becomes_its_own_segment() -> None:
    markdown = f"{_words('intro', 30)}\n\n# A\n\n{_words('a', 30)}\n\n# B\n\n{_words('b', 30)}"
    segments = split.split_by_headings(markdown, level=1)
    assert [segment.heading for segment in segments] == [None, "A", "B"]


def test_split_by_headings_needs_two_headings() -> None:
    assert split.split_by_headings(f"# Only\n\n{_words('x', 10)}", level=1) == []


def test_merge_small_segments_backward_and_forward() -> None:
    segments = [
        split.Segment(heading=None, markdown=_words("tiny", 3)),
        split.Segment(heading="Big", markdown=_words("big", 50)),
        split.Segment(heading="Small", markdown=_words("small", 5)),
        split.Segment(heading="Other", markdown=_words("other", 50)),
    ]
    merged = split.merge_small_segments(segments, min_words=10, max_words=100)
    assert [segment.heading for segment in merged] == ["Big", "Other"]
    assert merged[0].word_count == 58
    assert merged[0].markdown.startswith("tiny")


def test_merge_respects_ceiling() -> None:
    segments = [
        split.Segment(heading="Big", markdown=_words("big", 50)),
        split.Segment(heading="Small", markdown=_words("small", 5)),
    ]
    merged = split.merge_small_segments(segments, min_words=10, max_words=40)
    assert [segment.heading for segment in merged] == ["Big", "Small"]


def test_chunk_by_paragraphs_accumulates_until_max() -> None:
    markdown = "\n\n".join([_words("p", 15), _words("q", 15), _words("r", 15)])
    chunks = split.chunk_by_paragraphs(markdown, max_words=40)
    assert len(chunks) == 2
    assert chunks[0].split("\n\n") == [_words("p", 15), _words("q", 15)]


def test_chunk_by_paragraphs_hard_splits_huge_blocks() -> None:
    markdown = f"{_words('lead', 5)}\n\n{_words('huge', 100)}"
    chunks = split.chunk_by_paragraphs(markdown, max_words=40)
    assert [len(chunk.split()) for chunk in chunks] == [5, 40, 40, 20]


def test_headingless_chapter_splits_into_numbered_parts() -> None:
    markdown = "\n\n".join([_words("one", 45), _words("two", 45), _words("three", 45)])
    parts = split.split_chapter(_chapter(markdown, title="Essay"), max_words=40, min_words=10)
    assert len(parts) >= 2
    assert parts[0].title == "Essay Part 1"
    assert parts[1].title == "Essay Part 2"


def test_noisy_heading_falls_back_to_parent_part() -> None:
    noisy = (
        "When the long day finally ended, after all the rain, the wind, the mud, "
        "and the noise, we went home together"
    )
    markdown = (
        f"# {noisy}\n\n{_words('alpha', 50)}\n\n# Clean Heading\n\n{_words('beta', 50)}"
    )
    parts = split.split_chapter(_chapter(markdown, title="Parent"), max_words=40, min_words=10)
    assert [part.title for part in parts] == ["Parent Part 1", "Clean Heading"]


def test_unsplittable_chapter_is_returned_whole() -> None:
    chapter = _chapter(_words("solid", 50))
    assert split.split_chapter(chapter, max_words=40, min_words=10) == [chapter]
