from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .models import BookMetadata, Chapter

DEFAULT_CHAPTER_PREFIX = "chapter-"
REFERENCES_DIRNAME = "references"
FULL_BOOK_FILENAME = "book_full.md"
SKILL_FILENAME = "SKILL.md"
TEMPLATE_FILENAME = "SKILL.md.tpl"


@dataclass(frozen=True)
class SkillOptions:
    out_dir: Path
    skill_name: str
    description: str
    chapter_prefix: str = DEFAULT_CHAPTER_PREFIX
    include_full_book: bool = True
    overwrite: bool = False


def template_path() -> Path:
    return Path(__file__).parent / "templates" / TEMPLATE_FILENAME


def _scalar(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _safe(value: Optional[str], fallback: str = "Unknown") -> str:
    cleaned = (value or "").strip()
    return cleaned or fallback


def _authors(metadata: BookMetadata) -> str:
    return ", ".join(metadata.authors) if metadata.authors else "Unknown"


def default_skill_fields(metadata: BookMetadata) -> Tuple[str, str]:
    title = _safe(metadata.title, "Untitled Book")
    authors = ", ".join(metadata.authors) if metadata.authors else "Unknown Author"
    return (
        f"{title} Skill",
        f'Reference skill generated from "{title}" by {authors}',
    )


def chapter_file_name(chapter_prefix: str, chapter: Chapter) -> str:
    return f"{chapter_prefix}{chapter.index:03d}-{chapter.slug}.md"


def chapter_front_matter(chapter: Chapter) -> str:
    return (
        "---\n"
        f"title: {_scalar(chapter.title)}\n"
        f"index: {chapter.index}\n"
        f"source_file: {_scalar(chapter.source_file)}\n"
        f"word_count: {chapter.word_count}\n"
        "---\n\n"
    )


def full_book_text(metadata: BookMetadata, chapters: List[Chapter]) -> str:
    header = (
        "---\n"
        f"title: {_scalar(_safe(metadata.title))}\n"
        f"authors: {_scalar(_authors(metadata))}\n"
        f"chapter_count: {len(chapters)}\n"
        "---\n\n"
    )
    body = "\n".join(
        f"\n## {chapter.index}. {chapter.title}\n\n{chapter.markdown}\n"
        for chapter in chapters
    )
    return header + body


def render_template(template: str, values: Dict[str, str]) -> str:
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace("{{" + key + "}}", value)
    return rendered


def _prepare_out_dir(out_dir: Path, overwrite: bool) -> None:
    if out_dir.exists():
        if not overwrite:
            raise FileExistsError(
                f"Output directory already exists: {out_dir}. Use --overwrite to replace it."
            )
        shutil.rmtree(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)


def write_skill(
    metadata: BookMetadata,
    chapters: List[Chapter],
    options: SkillOptions,
    on_chapter: Optional[Callable[[Chapter], None]] = None,
) -> Path:
    """Write chapter references and SKILL.md; return the SKILL.md path."""
    out_dir = Path(options.out_dir)
    _prepare_out_dir(out_dir, options.overwrite)
    refs_dir = out_dir / REFERENCES_DIRNAME
    refs_dir.mkdir(parents=True, exist_ok=True)

    rows: List[str] = []
    for chapter in chapters:
        filename = chapter_file_name(options.chapter_prefix, chapter)
        (refs_dir / filename).write_text(
            chapter_front_matter(chapter) + chapter.markdown + "\n",
            encoding="utf-8",
        )
        rows.append(
            f"- {chapter.index}. [{chapter.title}]({REFERENCES_DIRNAME}/{filename}) "
            f"({chapter.word_count} words)"
        )
        if on_chapter is not None:
            on_chapter(chapter)

    if options.include_full_book:
        (refs_dir / FULL_BOOK_FILENAME).write_text(
            full_book_text(metadata, chapters), encoding="utf-8"
        )

    skill_md = render_template(
        template_path().read_text(encoding="utf-8"),
        {
            "name": options.skill_name,
            "description": options.description,
            "book_title": _safe(metadata.title),
            "book_authors": _authors(metadata),
            "book_language": _safe(metadata.language),
            "book_publisher": _safe(metadata.publisher),
            "book_tags": ", ".join(metadata.tags) if metadata.tags else "None",
            "chapter_index": "\n".join(rows),
        },
    )
    skill_path = out_dir / SKILL_FILENAME
    skill_path.write_text(skill_md.strip() + "\n", encoding="utf-8")
    return skill_path
