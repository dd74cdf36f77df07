from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple

from .text import count_words, slugify


@dataclass(frozen=True)
class ManifestItem:
    id: str
    href: str
    media_type: str
    is_navigation: bool = False

    @property
    def is_markup(self) -> bool:
        return "html" in (self.media_type or "").lower()


@dataclass(frozen=True)
class TocEntry:
    href: str
    label: str


@dataclass(frozen=True)
class BookMetadata:
    title: Optional[str] = None
    authors: Tuple[str, ...] = ()
    language: Optional[str] = None
    publisher: Optional[str] = None
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Chapter:
    index: int
    title: str
    slug: str
    source_file: str
    markdown: str
    word_count: int


def make_chapter(index: int, title: str, source_file: str, markdown: str) -> Chapter:
    """Build a chapter, deriving slug and word count from title and markdown."""
    return Chapter(
        index=index,
        title=title,
        slug=slugify(title),
        source_file=source_file,
        markdown=markdown,
        word_count=count_words(markdown),
    )


def reindex_chapters(chapters: List[Chapter]) -> List[Chapter]:
    return [replace(chapter, index=idx) for idx, chapter in enumerate(chapters, start=1)]


@dataclass(frozen=True)
class DroppedChapter:
    source_file: str
    reason: str


class ErrorCategory(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    NO_CONTENT = "no_content"
    OCR_REQUIRED = "ocr_required"


class ExtractionError(Exception):
    """Raised when a book cannot be turned into chapters."""

    def __init__(self, message: str, category: ErrorCategory) -> None:
        super().__init__(message)
        self.message = message
        self.category = category

    @classmethod
    def malformed(cls, message: str) -> "ExtractionError":
        return cls(message, ErrorCategory.MALFORMED_INPUT)
