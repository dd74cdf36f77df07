from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .models import Chapter, make_chapter
from .text import count_words, split_paragraphs
from .titles import fragment_title, iter_headings

MERGE_CEILING_FACTOR = 1.25
OVERSIZED_PARAGRAPH_FACTOR = 1.5


@dataclass(frozen=True)
class Segment:
    heading: Optional[str]
    markdown: str

    @property
    def word_count(self) -> int:
        return count_words(self.markdown)

    def merged_with(self, following: "Segment") -> "Segment":
        return Segment(
            heading=self.heading or following.heading,
            markdown=f"{self.markdown}\n\n{following.markdown}",
        )


def _leading_heading(markdown: str) -> Optional[str]:
    for lineno, depth, text in iter_headings(markdown):
        if lineno == 0 and depth <= 2:
            return text
        break
    return None


def split_by_headings(markdown: str, level: int) -> List[Segment]:
    """Cut markdown at every heading of the given level; needs two or more headings."""
    headings = list(iter_headings(markdown, level=level))
    if len(headings) < 2:
        return []
    lines = markdown.split("\n")
    segments: List[Segment] = []
    preamble = "\n".join(lines[: headings[0][0]]).strip()
    if preamble:
        segments.append(Segment(heading=_leading_heading(preamble), markdown=preamble))
    for idx, (lineno, _depth, text) in enumerate(headings):
        end = headings[idx + 1][0] if idx + 1 < len(headings) else len(lines)
        body = "\n".join(lines[lineno:end]).strip()
        if body:
            segments.append(Segment(heading=text, markdown=body))
    return segments


def merge_small_segments(
    segments: List[Segment], min_words: int, max_words: int
) -> List[Segment]:
    ceiling = max_words * MERGE_CEILING_FACTOR
    merged = list(segments)
    changed = True
    while changed and len(merged) > 1:
        changed = False
        for idx in range(1, len(merged)):
            current = merged[idx]
            previous = merged[idx - 1]
            if current.word_count >= min_words:
                continue
            if previous.word_count + current.word_count > ceiling:
                continue
            merged[idx - 1] = previous.merged_with(current)
            del merged[idx]
            changed = True
            break
        if changed or len(merged) < 2:
            continue
        first, second = merged[0], merged[1]
        if first.word_count < min_words and first.word_count + second.word_count <= ceiling:
            merged[0:2] = [first.merged_with(second)]
            changed = True
    return merged


def _hard_split(block: str, max_words: int) -> List[str]:
    words = block.split()
    return [
        " ".join(words[start : start + max_words])
        for start in range(0, len(words), max_words)
    ]


def chunk_by_paragraphs(markdown: str, max_words: int) -> List[str]:
    chunks: List[str] = []
    current: List[str] = []
    current_words = 0

    def flush() -> None:
        nonlocal current, current_words
        if current:
            chunks.append("\n\n".join(current))
        current = []
        current_words = 0

    for block in split_paragraphs(markdown):
        words = count_words(block)
        if words > max_words * OVERSIZED_PARAGRAPH_FACTOR:
            flush()
            chunks.extend(_hard_split(block, max_words))
            continue
        if current and current_words + words > max_words:
            flush()
        current.append(block)
        current_words += words
    flush()
    return chunks


def segment_chapter(markdown: str, min_words: int, max_words: int) -> List[Segment]:
    for level in (1, 2):
        segments = split_by_headings(markdown, level)
        if len(segments) >= 2:
            break
    else:
        segments = []
    if segments:
        segments = merge_small_segments(segments, min_words, max_words)
        segments = [segment for segment in segments if segment.word_count > 0]
        if len(segments) >= 2:
            return segments
    chunks = chunk_by_paragraphs(markdown, max_words)
    if len(chunks) < 2:
        return []
    return [Segment(heading=_leading_heading(chunk), markdown=chunk) for chunk in chunks]


def split_chapter(chapter: Chapter, max_words: int, min_words: int) -> List[Chapter]:
    """Split an oversized chapter into fragments; smaller chapters pass through."""
    if chapter.word_count <= max_words:
        return [chapter]
    segments = segment_chapter(chapter.markdown, min_words, max_words)
    if not segments:
        return [chapter]
    return [
        make_chapter(
            index=chapter.index,
            title=fragment_title(segment.heading, chapter.title, part),
            source_file=f"{chapter.source_file}#part-{part}",
            markdown=segment.markdown,
        )
        for part, segment in enumerate(segments, start=1)
    ]
