from __future__ import annotations

import re
import unicodedata
from typing import List


_FRONT_MATTER_RE = re.compile(
    r"\A\s*---[ \t]*\n(?:[A-Za-z_][\w-]*[ \t]*:[^\n]*\n)+---[ \t]*(?:\n|\Z)"
)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_WHITESPACE_LINE_RE = re.compile(r"^[ \t]+$", re.MULTILINE)


def strip_front_matter(markdown: str) -> str:
    return _FRONT_MATTER_RE.sub("", markdown or "", count=1)


def count_words(markdown: str) -> int:
    body = strip_front_matter(markdown).strip()
    if not body:
        return 0
    return len(body.split())


def collapse_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").replace("\xa0", " ")).strip()


def collapse_blank_lines(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _WHITESPACE_LINE_RE.sub("", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def split_paragraphs(markdown: str) -> List[str]:
    blocks = _PARAGRAPH_SPLIT_RE.split(markdown or "")
    return [block.strip() for block in blocks if block.strip()]


def slugify(text: str) -> str:
    text = unicodedata.normalize("NFKD", text or "")
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text[:60].strip("-") or "chapter"
