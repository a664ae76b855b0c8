"""Core domain models for MangaView."""

from mangaview_core_schemas.models import (
    # Enums
    LoadForm,
    PageStatus,
    RecoveryAction,
    SectionSort,
    # Catalog Models
    ChapterEntry,
    ChapterInfo,
    ChapterPageSet,
    MangaPlusChapter,
    MangaSummary,
    SearchPage,
    SeriesDetails,
    # Utilities
    NO_CHAPTER,
    NO_VOLUME,
    capitalize_label,
    pick_localized,
    volume_sort_key,
)
from mangaview_core_schemas.results import Err, Ok, Result

__all__ = [
    # Enums
    "LoadForm",
    "PageStatus",
    "RecoveryAction",
    "SectionSort",
    # Catalog Models
    "ChapterEntry",
    "ChapterInfo",
    "ChapterPageSet",
    "MangaPlusChapter",
    "MangaSummary",
    "SearchPage",
    "SeriesDetails",
    # Results
    "Err",
    "Ok",
    "Result",
    # Utilities
    "NO_CHAPTER",
    "NO_VOLUME",
    "capitalize_label",
    "pick_localized",
    "volume_sort_key",
]
