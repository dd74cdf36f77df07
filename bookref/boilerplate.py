from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .models import Chapter
from .text import collapse_spaces

CONTENT_SAMPLE_CHARS = 2500
LEGAL_WORD_CEILING = 4000
NOTE_MARKER_MIN_COUNT = 30
NOTE_MARKER_WORD_CEILING = 15000
NOTE_LINE_SAMPLE = 350
NOTE_LINE_MIN_LINES = 40
NOTE_LINE_MIN_RATIO = 1 / 3


class Severity(str, Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass(frozen=True)
class BoilerplateRule:
    """One exclusion rule; every predicate the rule defines must match."""

    id: str
    severity: Severity
    title_match: Optional[Callable[[str], bool]] = None
    content_match: Optional[Callable[[str], bool]] = None
    structural: Optional[Callable[[Chapter], bool]] = None
    word_ceiling: Optional[int] = None

    def matches(self, title: str, sample: str, chapter: Chapter) -> bool:
        predicates = [
            (self.title_match, title),
            (self.content_match, sample),
            (self.structural, chapter),
        ]
        defined = [(check, value) for check, value in predicates if check is not None]
        if not defined:
            return False
        if not all(check(value) for check, value in defined):
            return False
        if self.severity is Severity.SOFT and self.word_ceiling is not None:
            return chapter.word_count <= self.word_ceiling
        return True


NON_CONTENT_TITLES = frozenset(
    {
        "cover",
        "title page",
        "contents",
        "table of contents",
        "about the author",
        "by the same author",
        "copyright page",
        "notes",
        "endnotes",
        "index",
        "bibliography",
        "references",
    }
)

_KEEP_TITLE_RE = re.compile(r"\b(?:index|glossary)\b", re.IGNORECASE)
_LEGAL_RE = re.compile(
    r"project gutenberg(?:-tm|\u2122)?\s+(?:license|e-?books?|literary archive)"
    r"|\ball rights reserved\b"
    r"|\b(?:may|must|shall) not be (?:reproduced|copied|distributed|transmitted|stored)\b"
    r"|\bno part of this (?:book|publication|work)\b"
    r"|\bwithout (?:the )?(?:prior )?(?:express )?(?:written )?permission of the (?:publisher|author)s?\b"
    r"|\bterms of (?:use|service)\b"
    r"|\blicensed under (?:the|a|an)\b"
    r"|\bthis e-?book is for the use of\b"
    r"|\bcopyright\s*(?:\u00a9|\(c\)|\d{4})"
    r"|\u00a9\s*\d{4}"
)
_INLINE_MARKER_RE = re.compile(
    r"(?:\[\d{1,4}\]"
    r"|(?m:^)[ \t]*(?:[-*][ \t]+)?\d{1,3}\\?[.)]"
    r"|(?m:^)[ \t]*(?:[-*][ \t]+)?(?i:[ivxlcdm]{1,7})\\?[.)])"
    r"[ \t]*[A-Za-z]"
)
_LINE_MARKER_RE = re.compile(
    r"^(?:[-*][ \t]+)?(?:\[\d{1,4}\]|\d{1,3}\\?[.)]?|(?i:[ivxlcdm]{1,7})\\?[.)])[ \t]*[A-Za-z]"
)


def normalize_title_key(title: str) -> str:
    return collapse_spaces(title).lower().strip(" .:;")


def is_reference_title(title: str) -> bool:
    return bool(_KEEP_TITLE_RE.search(title or ""))


def content_sample(chapter: Chapter) -> str:
    return f"{normalize_title_key(chapter.title)}\n{chapter.markdown[:CONTENT_SAMPLE_CHARS]}".lower()


def count_note_markers(markdown: str) -> int:
    return len(_INLINE_MARKER_RE.findall(markdown or ""))


def _dense_note_markers(chapter: Chapter) -> bool:
    if chapter.word_count > NOTE_MARKER_WORD_CEILING:
        return False
    return count_note_markers(chapter.markdown) >= NOTE_MARKER_MIN_COUNT


def _dense_note_lines(chapter: Chapter) -> bool:
    lines = [line.strip() for line in chapter.markdown.split("\n") if line.strip()]
    lines = lines[:NOTE_LINE_SAMPLE]
    if len(lines) < NOTE_LINE_MIN_LINES:
        return False
    hits = sum(1 for line in lines if _LINE_MARKER_RE.match(line))
    return hits >= len(lines) * NOTE_LINE_MIN_RATIO


DEFAULT_RULES: Tuple[BoilerplateRule, ...] = (
    BoilerplateRule(
        id="non-content-title",
        severity=Severity.HARD,
        title_match=lambda title: title in NON_CONTENT_TITLES,
    ),
    BoilerplateRule(
        id="legal-notice",
        severity=Severity.SOFT,
        content_match=lambda sample: bool(_LEGAL_RE.search(sample)),
        word_ceiling=LEGAL_WORD_CEILING,
    ),
    BoilerplateRule(
        id="note-dense-markers",
        severity=Severity.HARD,
        structural=_dense_note_markers,
    ),
    BoilerplateRule(
        id="note-dense-lines",
        severity=Severity.HARD,
        structural=_dense_note_lines,
    ),
)


def classify(
    chapter: Chapter, rules: Sequence[BoilerplateRule] = DEFAULT_RULES
) -> Optional[str]:
    """Return the id of the first rule excluding the chapter, or None to keep it."""
    if is_reference_title(chapter.title):
        return None
    title = normalize_title_key(chapter.title)
    sample = content_sample(chapter)
    for rule in rules:
        if rule.matches(title, sample, chapter):
            return rule.id
    return None


def filter_chapters(
    chapters: Sequence[Chapter], rules: Sequence[BoilerplateRule] = DEFAULT_RULES
) -> Tuple[List[Chapter], List[Tuple[Chapter, str]]]:
    kept: List[Chapter] = []
    dropped: List[Tuple[Chapter, str]] = []
    for chapter in chapters:
        rule_id = classify(chapter, rules)
        if rule_id is None:
            kept.append(chapter)
        else:
            dropped.append((chapter, rule_id))
    return kept, dropped
