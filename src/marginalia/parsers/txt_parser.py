"""Plain text parser."""

from __future__ import annotations

import re
from pathlib import Path

from marginalia.library.models import Book, BookContent, Chapter

from .base import BaseParser

SECTION_LINES = 200  # lines per section when no chapter headings are found

# Common chapter patterns
CHAPTER_PATTERN = re.compile(
    r"(?m)^(?:Chapter|CHAPTER|Bölüm|BÖLÜM|Part|PART|\d+\.\s*Bölüm)\b.{0,100}$"
)


class TxtParser(BaseParser):
    SUPPORTED_EXTENSIONS = (".txt", ".text")

    def parse(self, file_path: Path) -> BookContent:
        text = file_path.read_text(encoding="utf-8", errors="replace")
        text = text.replace("\r\n", "\n")

        meta = Book(
            id=Book.make_id(str(file_path)),
            file_path=str(file_path),
            title=file_path.stem,
        )

        sections: list[tuple[str, str]] = []
        titles = CHAPTER_PATTERN.findall(text)
        parts = CHAPTER_PATTERN.split(text)

        if len(titles) >= 2:
            if parts[0].strip():
                sections.append(("Preamble", parts[0]))
            for title, content in zip(titles, parts[1:]):
                sections.append((title.strip(), content))
        else:
            lines = self._trim(text).split("\n") if text.strip() else []
            for i in range(0, len(lines), SECTION_LINES):
                chunk = "\n".join(lines[i : i + SECTION_LINES])
                sections.append((f"Section {len(sections) + 1}", chunk))

        chapters: list[Chapter] = []
        toc: list[tuple[int, str]] = []
        for title, content in sections:
            content = self._trim(content)
            if not content:
                continue
            index = len(chapters)
            chapters.append(
                Chapter(
                    id=Chapter.make_id(meta.id, index),
                    book_id=meta.id,
                    index=index,
                    title=title,
                    content=content,
                )
            )
            toc.append((index, title))

        meta.total_chapters = len(chapters)
        return BookContent(metadata=meta, chapters=chapters, toc=toc)

    @staticmethod
    def _trim(content: str) -> str:
        # Only outer blank lines go; inner ones keep their place in the numbering.
        return content.strip("\n").rstrip()
