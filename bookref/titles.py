from __future__ import annotations

import re
from typing import Iterable, Optional

from .text import collapse_spaces

MAX_TITLE_CHARS = 95
MAX_TITLE_WORDS = 15
SENTENCE_TITLE_MIN_WORDS = 8
PUNCTUATED_TITLE_MIN_WORDS = 12

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
_FENCE_RE = re.compile(r"^[ \t]*(```|~~~)")
_MD_ESCAPE_RE = re.compile(r"\\([\\`*_{}\[\]()#+\-.!|<>~])")
_LINK_RE = re.compile(r"!?\[((?:[^\[\]]|\[[^\]]*\])*)\]\([^)]*\)")
_EMPHASIS_RE = re.compile(r"[*`~]+|(?<![A-Za-z0-9])_+|_+(?![A-Za-z0-9])")
_FOOTNOTE_SUFFIX_RE = re.compile(r"\s*\[+\s*(?:\d{1,4}|[*†‡])\s*\]+\s*$")
_SUPERSCRIPT_SUFFIX_RE = re.compile(r"[¹²³⁰-⁹]+\s*$")
_LEADER_SUFFIX_RE = re.compile(
    r"(?:\s*(?:[.·•…_]\s*){2,}|\s+[·•|]\s*)(?:\d+|[ivxlcdm]+)?\s*$",
    re.IGNORECASE,
)
_NUMERIC_RE = re.compile(r"^(\d+)\.?$")
_CHAPTER_RE = re.compile(r"^chapter\s+(\d+)\b(.*)$", re.IGNORECASE)
_SENTENCE_BREAK_RE = re.compile(r"[.?!]\s+[A-Z]")
_CLAUSE_PUNCT_RE = re.compile(r"[,;:]")


def iter_headings(markdown: str, level: Optional[int] = None) -> Iterable[tuple[int, int, str]]:
    """Yield (line number, level, text) for ATX headings outside fenced code."""
    in_fence = False
    for lineno, line in enumerate((markdown or "").split("\n")):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING_RE.match(line)
        if not match:
            continue
        depth = len(match.group(1))
        if level is not None and depth != level:
            continue
        yield lineno, depth, match.group(2).strip()


def first_heading(markdown: str, level: int = 1) -> Optional[str]:
    for _lineno, _depth, text in iter_headings(markdown, level=level):
        if text:
            return text
    return None


def clean_title(value: str) -> str:
    text = _LINK_RE.sub(r"\1", value or "")
    text = _MD_ESCAPE_RE.sub(r"\1", text)
    text = _EMPHASIS_RE.sub("", text)
    text = collapse_spaces(text)
    previous = None
    while previous != text:
        previous = text
        text = _FOOTNOTE_SUFFIX_RE.sub("", text)
        text = _SUPERSCRIPT_SUFFIX_RE.sub("", text)
        text = _LEADER_SUFFIX_RE.sub("", text)
        text = text.strip()
    return text


def looks_like_prose(title: str) -> bool:
    words = title.split()
    if len(title) > MAX_TITLE_CHARS or len(words) > MAX_TITLE_WORDS:
        return True
    if len(words) > SENTENCE_TITLE_MIN_WORDS and _SENTENCE_BREAK_RE.search(title):
        return True
    if (
        len(words) > PUNCTUATED_TITLE_MIN_WORDS
        and len(_CLAUSE_PUNCT_RE.findall(title[:-1])) >= 2
    ):
        return True
    return False


def normalize_title(value: Optional[str]) -> Optional[str]:
    """Clean a title candidate, or return None when it reads like body prose."""
    title = clean_title(value or "")
    if not title:
        return None
    numeric = _NUMERIC_RE.match(title)
    if numeric:
        return f"Chapter {int(numeric.group(1))}"
    chapter = _CHAPTER_RE.match(title)
    if chapter:
        number = int(chapter.group(1))
        suffix = re.sub(r"^[\s:.\-–—]+", "", chapter.group(2)).strip()
        if suffix:
            return f"Chapter {number}: {suffix}"
        return f"Chapter {number}"
    if looks_like_prose(title):
        return None
    return title


def resolve_title(
    toc_label: Optional[str],
    markdown: str,
    position: int,
    toc_constrained: bool,
) -> Optional[str]:
    for candidate in (toc_label, first_heading(markdown)):
        title = normalize_title(candidate)
        if title:
            return title
    if toc_constrained:
        return None
    return f"Chapter {position}"


def fragment_title(heading: Optional[str], parent_title: str, part: int) -> str:
    title = normalize_title(heading)
    if title:
        return title
    return f"{parent_title} Part {part}"
