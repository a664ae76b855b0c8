"""Local storage for MangaView."""

from mangaview_storage.storage import ProgressStore, ReadingProgress, slugify

__all__ = ["ProgressStore", "ReadingProgress", "slugify"]
