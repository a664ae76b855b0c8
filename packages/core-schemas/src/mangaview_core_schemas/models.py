"""Core data models for MangaView."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

NO_VOLUME = "No Volume"
NO_CHAPTER = "No Chapter"


def pick_localized(values: Optional[dict], default: str = "") -> str:
    """Pick the English entry of a localized mapping, else the first one."""
    if not values:
        return default
    if values.get("en"):
        return values["en"]
    for value in values.values():
        if value:
            return value
    return default


def capitalize_label(value: Optional[str], default: str = "Unknown") -> str:
    """Turn an upstream enum value (``ongoing``, ``shounen``) into a label."""
    if not value:
        return default
    return value[:1].upper() + value[1:]


def volume_sort_key(volume: str) -> tuple[int, float, str]:
    """Order volumes numerically, with non-numeric names after and NO_VOLUME last."""
    if volume == NO_VOLUME:
        return (2, 0.0, volume)
    try:
        return (0, float(volume), volume)
    except ValueError:
        return (1, 0.0, volume)


class SectionSort(str, Enum):
    """Home page section orderings."""

    POPULAR = "followedCount"
    RECENT = "latestUploadedChapter"
    TOP_RATED = "rating"
    NEW = "createdAt"


class PageStatus(str, Enum):
    """Display status of a single reader page."""

    IDLE = "idle"
    LOADING = "loading"
    DISPLAYED = "displayed"
    FAILED = "failed"


class LoadForm(str, Enum):
    """Addressing form used to fetch a page image."""

    DIRECT = "direct"
    PROXIED = "proxied"

    @property
    def other(self) -> "LoadForm":
        return LoadForm.DIRECT if self is LoadForm.PROXIED else LoadForm.PROXIED


class RecoveryAction(str, Enum):
    """Actions offered to the reader when something fails."""

    RETRY = "retry"
    SWITCH_METHOD = "switch_method"
    EXTERNAL_LINK = "external_link"
    RELOAD = "reload"


# === Catalog Models ===


class MangaSummary(BaseModel):
    """A search or section result."""

    id: str
    title: str
    cover_url: Optional[str] = None
    proxied_cover_url: Optional[str] = None
    status: Optional[str] = None
    year: Optional[int] = None


class SearchPage(BaseModel):
    """One page of search results."""

    query: str
    page: int = 1
    page_size: int = 20
    total: int = 0
    total_pages: int = 0
    items: list[MangaSummary] = Field(default_factory=list)


class ChapterEntry(BaseModel):
    """A chapter row in a series chapter list."""

    id: str
    chapter: str = NO_CHAPTER
    volume: str = NO_VOLUME
    title: Optional[str] = None
    group_name: str = ""
    language: Optional[str] = None
    publish_at: Optional[datetime] = None
    pages: int = 0
    external_url: Optional[str] = None

    @property
    def label(self) -> str:
        """Display label, oneshots have no chapter number."""
        if self.chapter == NO_CHAPTER:
            return "Oneshot"
        return f"Chapter {self.chapter}"


class SeriesDetails(BaseModel):
    """Series metadata together with its chapters grouped by volume."""

    id: str
    title: str
    cover_url: Optional[str] = None
    proxied_cover_url: Optional[str] = None
    status_label: str = "Unknown"
    demographic_label: str = "Unknown"
    description: str = "No description available."
    authors: list[str] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)
    chapters_by_volume: dict[str, list[ChapterEntry]] = Field(default_factory=dict)
    external_url: Optional[str] = None

    @property
    def chapter_count(self) -> int:
        return sum(len(chapters) for chapters in self.chapters_by_volume.values())


class ChapterInfo(BaseModel):
    """Chapter metadata shown above the reader."""

    id: str
    manga_id: Optional[str] = None
    title: Optional[str] = None
    chapter: Optional[str] = None
    volume: Optional[str] = None
    translated_language: str = "unknown"
    publish_at: Optional[datetime] = None
    pages: int = 0
    manga_title: Optional[str] = None
    group_name: str = "Unknown Group"
    cover_art: Optional[str] = None
    external_url: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or f"Chapter {self.chapter or ''}".strip()


class ChapterPageSet(BaseModel):
    """Page image locations for one chapter, in both addressing forms."""

    chapter_id: Optional[str] = None
    direct_urls: list[str]
    proxied_urls: list[str] = Field(default_factory=list)
    prefer_proxy: bool = True
    external_fallback_url: str = ""

    @model_validator(mode='before')
    @classmethod
    def default_proxied_urls(cls, data):
        """Use the direct form for both when no relay form was supplied."""
        if isinstance(data, dict) and not data.get("proxied_urls"):
            data = {**data, "proxied_urls": list(data.get("direct_urls") or [])}
        return data

    @model_validator(mode='after')
    def check_alignment(self) -> 'ChapterPageSet':
        """Both lists must be non-empty and index-aligned."""
        if not self.direct_urls:
            raise ValueError("chapter has no pages")
        if len(self.direct_urls) != len(self.proxied_urls):
            raise ValueError(
                f"direct_urls ({len(self.direct_urls)}) and proxied_urls "
                f"({len(self.proxied_urls)}) must have the same length"
            )
        return self

    @property
    def total_pages(self) -> int:
        return len(self.direct_urls)

    def url_for(self, page: int, form: LoadForm) -> str:
        """URL of a 1-based page in the given form."""
        urls = self.proxied_urls if form is LoadForm.PROXIED else self.direct_urls
        return urls[page - 1]


class MangaPlusChapter(BaseModel):
    """A chapter listed by the MangaPlus title API."""

    id: str
    name: str = ""
    number: str = ""
    date: Optional[int] = None
    title_id: str
