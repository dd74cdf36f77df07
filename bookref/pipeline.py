from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from . import boilerplate
from .archive import EpubArchive, open_archive, read_package
from .markdown import Renderer, render_document, render_markdown
from .models import (
    BookMetadata,
    Chapter,
    DroppedChapter,
    ErrorCategory,
    ExtractionError,
    make_chapter,
    reindex_chapters,
)
from .split import split_chapter
from .titles import resolve_title
from .toc import Structure, resolve_structure

DEFAULT_MAX_CHAPTER_WORDS = 15000
DEFAULT_MIN_SECTION_WORDS = 400


def _positive_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}.")
    return value


@dataclass(frozen=True)
class ExtractOptions:
    strip_images: bool = True
    strip_internal_links: bool = True
    filter_boilerplate: bool = True
    max_chapter_words: int = DEFAULT_MAX_CHAPTER_WORDS
    min_section_words: int = DEFAULT_MIN_SECTION_WORDS

    def __post_init__(self) -> None:
        _positive_int("max_chapter_words", self.max_chapter_words)
        _positive_int("min_section_words", self.min_section_words)


@dataclass(frozen=True)
class ExtractionResult:
    metadata: BookMetadata
    chapters: List[Chapter]
    dropped: List[DroppedChapter] = field(default_factory=list)


def _render_chapters(
    archive: EpubArchive,
    structure: Structure,
    options: ExtractOptions,
    renderer: Renderer,
) -> Tuple[List[Chapter], List[DroppedChapter], bool]:
    chapters: List[Chapter] = []
    dropped: List[DroppedChapter] = []
    image_only = False
    for position, href in enumerate(structure.hrefs, start=1):
        content = archive.read(href)
        if content is None:
            dropped.append(DroppedChapter(source_file=href, reason="missing"))
            continue
        markdown, has_images = render_document(
            content,
            strip_image_refs=options.strip_images,
            strip_internal=options.strip_internal_links,
            renderer=renderer,
        )
        if not markdown:
            image_only = image_only or has_images
            dropped.append(DroppedChapter(source_file=href, reason="empty"))
            continue
        title = resolve_title(
            structure.title_for(href),
            markdown,
            position,
            structure.toc_constrained,
        )
        if not title:
            dropped.append(DroppedChapter(source_file=href, reason="untitled"))
            continue
        chapters.append(
            make_chapter(
                index=len(chapters) + 1,
                title=title,
                source_file=href,
                markdown=markdown,
            )
        )
    return chapters, dropped, image_only


def _filter_boilerplate(
    chapters: List[Chapter], dropped: List[DroppedChapter]
) -> List[Chapter]:
    kept, excluded = boilerplate.filter_chapters(chapters)
    for chapter, rule_id in excluded:
        dropped.append(
            DroppedChapter(source_file=chapter.source_file, reason=f"boilerplate:{rule_id}")
        )
    return kept


def build_chapters(
    archive: EpubArchive,
    options: ExtractOptions,
    renderer: Renderer = render_markdown,
) -> ExtractionResult:
    package = read_package(archive)
    structure = resolve_structure(archive, package)
    chapters, dropped, image_only = _render_chapters(archive, structure, options, renderer)

    if options.filter_boilerplate:
        chapters = _filter_boilerplate(chapters, dropped)

    fragments: List[Chapter] = []
    for chapter in chapters:
        fragments.extend(
            split_chapter(chapter, options.max_chapter_words, options.min_section_words)
        )
    chapters = fragments

    if options.filter_boilerplate:
        chapters = _filter_boilerplate(chapters, dropped)

    if not chapters:
        if image_only:
            raise ExtractionError(
                "No text could be extracted; the book appears to contain only images "
                "and needs OCR before conversion",
                ErrorCategory.OCR_REQUIRED,
            )
        raise ExtractionError(
            "No chapter content could be extracted from converted EPUB",
            ErrorCategory.NO_CONTENT,
        )

    return ExtractionResult(
        metadata=package.metadata,
        chapters=reindex_chapters(chapters),
        dropped=dropped,
    )


def extract_book(
    path: Path | str,
    options: Optional[ExtractOptions] = None,
    renderer: Renderer = render_markdown,
) -> ExtractionResult:
    """Turn an EPUB file into cleaned, titled, size-bounded markdown chapters."""
    options = options or ExtractOptions()
    with open_archive(path) as archive:
        return build_chapters(archive, options, renderer=renderer)
