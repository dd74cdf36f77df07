from __future__ import annotations

import argparse
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Optional

from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from . import pipeline
from . import writer as writer_util
from .models import ExtractionError
from .text import slugify

EXIT_INPUT = 2
EXIT_CONVERTER = 3
EXIT_CONVERSION = 4
EXIT_OUTPUT = 5

EBOOK_CONVERT_ENV = "EBOOK_CONVERT_PATH"
MAC_EBOOK_CONVERT = "Applications/calibre.app/Contents/MacOS/ebook-convert"


def _is_executable(command: str) -> bool:
    if os.path.sep in command:
        return os.path.isfile(command) and os.access(command, os.X_OK)
    return shutil.which(command) is not None


def resolve_ebook_convert() -> Optional[str]:
    env_path = os.environ.get(EBOOK_CONVERT_ENV, "").strip()
    candidates = [
        env_path,
        "ebook-convert",
        f"/{MAC_EBOOK_CONVERT}",
        str(Path.home() / MAC_EBOOK_CONVERT),
    ]
    for candidate in candidates:
        if candidate and _is_executable(candidate):
            return candidate
    return None


def _normalize_with_calibre(command: str, input_path: Path, tmp_dir: Path) -> Path:
    output_path = tmp_dir / "normalized.epub"
    result = subprocess.run(
        [command, str(input_path), str(output_path)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        details = (result.stderr or result.stdout or "").strip() or "unknown conversion failure"
        raise RuntimeError(f"Calibre conversion failed: {details}")
    return output_path


def _options_from_args(args: argparse.Namespace) -> pipeline.ExtractOptions:
    return pipeline.ExtractOptions(
        strip_images=args.strip_images,
        strip_internal_links=args.strip_internal_links,
        filter_boilerplate=args.filter_boilerplate,
        max_chapter_words=args.max_chapter_words,
        min_section_words=args.min_section_words,
    )


def _report_dropped(result: pipeline.ExtractionResult) -> None:
    for dropped in result.dropped:
        print(f"Skipped {dropped.source_file}: {dropped.reason}")


def _extract(
    input_path: Path, args: argparse.Namespace
) -> tuple[Optional[pipeline.ExtractionResult], int]:
    """Run the pipeline, normalizing through Calibre when requested."""
    try:
        options = _options_from_args(args)
    except ValueError as exc:
        sys.stderr.write(f"{exc}\n")
        return None, EXIT_INPUT

    is_epub = input_path.suffix.lower() == ".epub"
    command = resolve_ebook_convert() if args.normalize else None
    if command is None and not is_epub:
        sys.stderr.write(
            "Calibre's ebook-convert is required for non-EPUB input but was not found. "
            f"Install Calibre or set {EBOOK_CONVERT_ENV}.\n"
        )
        return None, EXIT_CONVERTER

    try:
        with tempfile.TemporaryDirectory(prefix="bookref-") as tmp:
            source = input_path
            if command is not None:
                if args.verbose:
                    print(f"Converting with Calibre: {input_path}")
                source = _normalize_with_calibre(command, input_path, Path(tmp))
            elif args.verbose:
                print("Calibre not used; reading EPUB directly.")
            result = pipeline.extract_book(source, options)
    except ExtractionError as exc:
        sys.stderr.write(f"{exc.message} [{exc.category.value}]\n")
        return None, EXIT_CONVERSION
    except RuntimeError as exc:
        sys.stderr.write(f"{exc}\n")
        return None, EXIT_CONVERSION

    if args.verbose:
        _report_dropped(result)
    return result, 0


def _check_input(input_path: Path) -> bool:
    if not input_path.is_file() or not os.access(input_path, os.R_OK):
        sys.stderr.write(f"Input file is missing or not readable: {input_path}\n")
        return False
    return True


def _convert(args: argparse.Namespace) -> int:
    input_path = Path(args.input).expanduser()
    if not _check_input(input_path):
        return EXIT_INPUT

    result, code = _extract(input_path, args)
    if result is None:
        return code

    default_name, default_description = writer_util.default_skill_fields(result.metadata)
    out_dir = (
        Path(args.out_dir)
        if args.out_dir
        else Path.cwd() / f"{slugify(result.metadata.title or 'book')}-skill"
    )
    options = writer_util.SkillOptions(
        out_dir=out_dir,
        skill_name=args.skill_name or default_name,
        description=args.description or default_description,
        chapter_prefix=args.chapter_prefix,
        include_full_book=args.include_full_book,
        overwrite=args.overwrite,
    )
    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
    )
    try:
        with progress:
            task = progress.add_task("Chapters", total=len(result.chapters))
            skill_path = writer_util.write_skill(
                result.metadata,
                result.chapters,
                options,
                on_chapter=lambda _chapter: progress.advance(task, 1),
            )
    except FileExistsError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_OUTPUT

    print(f"Wrote {len(result.chapters)} chapters to {out_dir / writer_util.REFERENCES_DIRNAME}")
    print(f"Skill saved to {skill_path}")
    return 0


def _chapters(args: argparse.Namespace) -> int:
    input_path = Path(args.input).expanduser()
    if not _check_input(input_path):
        return EXIT_INPUT

    result, code = _extract(input_path, args)
    if result is None:
        return code

    for chapter in result.chapters:
        print(f"{chapter.index:3d}  {chapter.word_count:7d}  {chapter.title}")
    return 0


def _add_extraction_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Path to the input book (.epub, or any format Calibre reads)")
    parser.add_argument(
        "--normalize",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Normalize the input with Calibre's ebook-convert when available (default: enabled)",
    )
    parser.add_argument(
        "--strip-images",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Remove image references from chapter markdown (default: enabled)",
    )
    parser.add_argument(
        "--strip-internal-links",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Replace links into the book with their label text (default: enabled)",
    )
    parser.add_argument(
        "--filter-boilerplate",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Drop covers, contents, licenses and note sections (default: enabled)",
    )
    parser.add_argument(
        "--max-chapter-words",
        type=int,
        default=pipeline.DEFAULT_MAX_CHAPTER_WORDS,
        help=f"Split chapters longer than this (default: {pipeline.DEFAULT_MAX_CHAPTER_WORDS})",
    )
    parser.add_argument(
        "--min-section-words",
        type=int,
        default=pipeline.DEFAULT_MIN_SECTION_WORDS,
        help=(
            "Merge split sections shorter than this into a neighbour "
            f"(default: {pipeline.DEFAULT_MIN_SECTION_WORDS})"
        ),
    )
    parser.add_argument("--verbose", action="store_true", help="Print skipped sections")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bookref")
    subparsers = parser.add_subparsers(dest="command")

    convert = subparsers.add_parser(
        "convert", help="Convert a book into a reference skill of markdown chapters"
    )
    _add_extraction_arguments(convert)
    convert.add_argument("--out-dir", help="Output directory (default: <title>-skill)")
    convert.add_argument("--skill-name", help="Skill name (default: <title> Skill)")
    convert.add_argument("--description", help="Skill description")
    convert.add_argument(
        "--chapter-prefix",
        default=writer_util.DEFAULT_CHAPTER_PREFIX,
        help=f"Chapter file prefix (default: {writer_util.DEFAULT_CHAPTER_PREFIX})",
    )
    convert.add_argument(
        "--include-full-book",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Also write references/book_full.md (default: enabled)",
    )
    convert.add_argument(
        "--overwrite", action="store_true", help="Replace an existing output directory"
    )
    convert.set_defaults(func=_convert)

    chapters = subparsers.add_parser(
        "chapters", help="List the chapters a book would be converted into"
    )
    _add_extraction_arguments(chapters)
    chapters.set_defaults(func=_chapters)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return int(args.func(args))
