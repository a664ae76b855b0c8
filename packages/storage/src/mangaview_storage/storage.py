"""Local storage for reading progress and saved page images."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    """Convert text to a filename-friendly slug."""
    text = text.lower()
    text = re.sub(r'[\s_]+', '-', text)
    text = re.sub(r'[^\w\-]', '', text)
    text = re.sub(r'-+', '-', text)
    return text.strip('-')


class ReadingProgress(BaseModel):
    """Last page reached in one chapter."""

    chapter_id: str
    page: int = Field(ge=1)
    total_pages: int = Field(ge=1)
    manga_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def finished(self) -> bool:
        return self.page >= self.total_pages


class ProgressStore:
    """File-based JSON store of reading progress, keyed by chapter."""

    PROGRESS_FILE = "progress.json"
    PAGES_DIR = "pages"

    def __init__(self, base_path: Path):
        """Initialize store.

        Args:
            base_path: Root directory (created on first write)
        """
        self.base_path = Path(base_path)
        self.progress_file = self.base_path / self.PROGRESS_FILE
        self.pages_path = self.base_path / self.PAGES_DIR

    def _read_all(self) -> dict[str, Any]:
        if not self.progress_file.exists():
            return {}
        try:
            with open(self.progress_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable progress file %s: %s", self.progress_file, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring progress file %s: expected an object", self.progress_file)
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)

        # Write atomically
        temp_file = self.progress_file.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        temp_file.replace(self.progress_file)

    def save_progress(
        self,
        chapter_id: str,
        page: int,
        total_pages: int,
        manga_id: Optional[str] = None,
    ) -> ReadingProgress:
        """Record the page reached in a chapter."""
        progress = ReadingProgress(
            chapter_id=chapter_id,
            page=page,
            total_pages=total_pages,
            manga_id=manga_id,
        )
        data = self._read_all()
        data[chapter_id] = progress.model_dump(mode="json")
        self._write_all(data)
        return progress

    def load_progress(self, chapter_id: str) -> Optional[ReadingProgress]:
        """Get saved progress for a chapter, if any."""
        entry = self._read_all().get(chapter_id)
        if entry is None:
            return None
        return ReadingProgress.model_validate(entry)

    def list_progress(self) -> list[ReadingProgress]:
        """All saved progress, most recent first."""
        entries = [ReadingProgress.model_validate(v) for v in self._read_all().values()]
        return sorted(entries, key=lambda p: p.updated_at, reverse=True)

    def clear_progress(self, chapter_id: str) -> bool:
        """Forget a chapter's progress. Returns False if none was saved."""
        data = self._read_all()
        if chapter_id not in data:
            return False
        del data[chapter_id]
        self._write_all(data)
        return True

    def save_page(self, chapter_id: str, page: int, data: bytes, extension: str = "jpg") -> Path:
        """Write a page image to disk and return its path."""
        chapter_dir = self.pages_path / slugify(chapter_id)
        chapter_dir.mkdir(parents=True, exist_ok=True)

        page_path = chapter_dir / f"{page:03d}.{extension}"
        with open(page_path, "wb") as f:
            f.write(data)
        return page_path
