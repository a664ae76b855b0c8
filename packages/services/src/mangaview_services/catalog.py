"""Catalog gateway service: search, series details and chapter pages."""

import logging
import math
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar
from urllib.parse import quote

import httpx

from mangaview_catalog_client import MangaDexClient, get_client
from mangaview_core_schemas import (
    NO_CHAPTER,
    NO_VOLUME,
    ChapterEntry,
    ChapterInfo,
    ChapterPageSet,
    MangaPlusChapter,
    MangaSummary,
    SearchPage,
    SectionSort,
    SeriesDetails,
    capitalize_label,
    pick_localized,
    volume_sort_key,
)
from .exceptions import GatewayUnavailable, NoPagesFound, NotFoundError, ValidationError

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_SITE_URL = "https://mangadex.org"
DEFAULT_UPLOADS_URL = "https://uploads.mangadex.org"
DEFAULT_RELAY_URL = "/proxy-image"


def page_window(current: int, total_pages: int, max_visible: int = 5) -> list[Optional[int]]:
    """Page buttons to render around the current page.

    Returns page numbers in order, with None standing for an ellipsis.
    The first and last pages are always reachable.
    """
    if total_pages <= 1:
        return []

    start = max(1, current - max_visible // 2)
    end = min(total_pages, start + max_visible - 1)
    if end - start + 1 < max_visible:
        start = max(1, end - max_visible + 1)

    window: list[Optional[int]] = []
    if start > 1:
        window.append(1)
        if start > 2:
            window.append(None)
    window.extend(range(start, end + 1))
    if end < total_pages:
        if end < total_pages - 1:
            window.append(None)
        window.append(total_pages)
    return window


def _relationships(entity: dict, rel_type: str) -> list[dict]:
    return [rel for rel in entity.get("relationships") or [] if rel.get("type") == rel_type]


def _relationship_names(entity: dict, rel_type: str) -> list[str]:
    names = []
    for rel in _relationships(entity, rel_type):
        name = (rel.get("attributes") or {}).get("name")
        if name and name not in names:
            names.append(name)
    return names


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class CatalogService:
    """Service for catalog lookups against MangaDex.

    Wraps the raw catalog client and reshapes its JSON into the
    MangaView models. Upstream failures become service exceptions.
    """

    def __init__(
        self,
        client: Optional[MangaDexClient] = None,
        relay_url: str = DEFAULT_RELAY_URL,
        site_url: str = DEFAULT_SITE_URL,
        uploads_url: str = DEFAULT_UPLOADS_URL,
        prefer_proxy: bool = True,
        page_size: int = 20,
        section_size: int = 10,
    ):
        """Initialize service.

        Args:
            client: Catalog client (defaults to the global client)
            relay_url: Image relay endpoint used to build proxied URLs
            site_url: Public catalog site, used for external fallback links
            uploads_url: Catalog host serving cover images
            prefer_proxy: Whether readers should try the proxied form first
            page_size: Search results per page
            section_size: Items per home page section
        """
        self.client = client or get_client()
        self.relay_url = relay_url
        self.site_url = site_url.rstrip("/")
        self.uploads_url = uploads_url.rstrip("/")
        self.prefer_proxy = prefer_proxy
        self.page_size = page_size
        self.section_size = section_size

    # URLs

    def relay_form(self, url: str) -> str:
        """Relay-proxied form of an image URL."""
        return f"{self.relay_url}?url={quote(url, safe='')}"

    def chapter_url(self, chapter_id: str) -> str:
        return f"{self.site_url}/chapter/{chapter_id}"

    def title_url(self, manga_id: str) -> str:
        return f"{self.site_url}/title/{manga_id}"

    def _cover_url(self, manga: dict) -> Optional[str]:
        for rel in _relationships(manga, "cover_art"):
            filename = (rel.get("attributes") or {}).get("fileName")
            if filename:
                return f"{self.uploads_url}/covers/{manga['id']}/{filename}"
        return None

    # Upstream calls

    async def _call(
        self,
        request: Awaitable[T],
        resource_type: str,
        resource_id: str,
        external_url: Optional[str] = None,
    ) -> T:
        """Await an upstream call, translating failures.

        Raises:
            NotFoundError: If the catalog answered 404
            GatewayUnavailable: On any other HTTP, transport or decoding failure
        """
        try:
            return await request
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                raise NotFoundError(resource_type, resource_id, external_url) from e
            raise GatewayUnavailable(
                f"Catalog returned HTTP {status_code} for {resource_type.lower()} '{resource_id}'",
                external_url=external_url,
            ) from e
        except httpx.RequestError as e:
            logger.error("Catalog request for %s '%s' failed: %s", resource_type, resource_id, e)
            raise GatewayUnavailable(
                f"Catalog unavailable while fetching {resource_type.lower()} '{resource_id}'",
                external_url=external_url,
            ) from e
        except ValueError as e:
            logger.error("Catalog sent invalid JSON for %s '%s': %s", resource_type, resource_id, e)
            raise GatewayUnavailable(
                "Catalog returned an invalid response",
                external_url=external_url,
            ) from e

    # Parsing

    def _summary(self, manga: dict) -> MangaSummary:
        attributes = manga.get("attributes") or {}
        cover_url = self._cover_url(manga)
        return MangaSummary(
            id=manga["id"],
            title=pick_localized(attributes.get("title"), "No Title"),
            cover_url=cover_url,
            proxied_cover_url=self.relay_form(cover_url) if cover_url else None,
            status=attributes.get("status"),
            year=attributes.get("year"),
        )

    def _chapter_entry(self, chapter: dict) -> ChapterEntry:
        attributes = chapter.get("attributes") or {}
        groups = _relationship_names(chapter, "scanlation_group")
        return ChapterEntry(
            id=chapter["id"],
            chapter=attributes.get("chapter") or NO_CHAPTER,
            volume=attributes.get("volume") or NO_VOLUME,
            title=attributes.get("title") or None,
            group_name=", ".join(groups),
            language=attributes.get("translatedLanguage"),
            publish_at=_parse_datetime(attributes.get("publishAt")),
            pages=attributes.get("pages") or 0,
            external_url=self.chapter_url(chapter["id"]),
        )

    def group_by_volume(self, chapters: list[ChapterEntry]) -> dict[str, list[ChapterEntry]]:
        """Group chapters by volume, ordered numerically with NO_VOLUME last."""
        volumes: dict[str, list[ChapterEntry]] = {}
        for chapter in chapters:
            volumes.setdefault(chapter.volume, []).append(chapter)
        return {key: volumes[key] for key in sorted(volumes, key=volume_sort_key)}

    # Operations

    async def search(self, query: str, page: int = 1) -> SearchPage:
        """Search the catalog by title.

        Raises:
            ValidationError: If the page number is below 1
            GatewayUnavailable: If the catalog call fails
        """
        if page < 1:
            raise ValidationError("Page must be 1 or greater", field="page")

        data = await self._call(
            self.client.search_manga(
                query,
                limit=self.page_size,
                offset=(page - 1) * self.page_size,
            ),
            "Search",
            query,
        )
        total = data.get("total", 0)
        return SearchPage(
            query=query,
            page=page,
            page_size=self.page_size,
            total=total,
            total_pages=math.ceil(total / self.page_size) if self.page_size else 0,
            items=[self._summary(manga) for manga in data.get("data") or []],
        )

    async def list_section(self, sort: str) -> list[MangaSummary]:
        """List a home page section ordered by an upstream sort key."""
        try:
            order = SectionSort(sort)
        except ValueError:
            choices = ", ".join(s.value for s in SectionSort)
            raise ValidationError(f"Unknown section '{sort}' (expected one of: {choices})", field="sort")

        data = await self._call(
            self.client.list_manga(order.value, limit=self.section_size),
            "Section",
            order.value,
        )
        return [self._summary(manga) for manga in data.get("data") or []]

    async def get_series_details(self, series_id: str) -> SeriesDetails:
        """Get series metadata and its chapter list grouped by volume.

        Raises:
            NotFoundError: If the series does not exist
            GatewayUnavailable: If either catalog call fails
        """
        external_url = self.title_url(series_id)
        data = await self._call(self.client.get_manga(series_id), "Manga", series_id, external_url)
        manga = data.get("data")
        if not manga:
            raise GatewayUnavailable("Catalog returned no manga data", external_url=external_url)

        feed = await self._call(
            self.client.get_manga_feed(series_id), "Manga feed", series_id, external_url
        )

        attributes = manga.get("attributes") or {}
        cover_url = self._cover_url(manga)
        chapters = [self._chapter_entry(chapter) for chapter in feed]

        return SeriesDetails(
            id=manga["id"],
            title=pick_localized(attributes.get("title"), "Unknown Title"),
            cover_url=cover_url,
            proxied_cover_url=self.relay_form(cover_url) if cover_url else None,
            status_label=capitalize_label(attributes.get("status")),
            demographic_label=capitalize_label(attributes.get("publicationDemographic")),
            description=pick_localized(attributes.get("description"), "No description available."),
            authors=_relationship_names(manga, "author"),
            artists=_relationship_names(manga, "artist"),
            chapters_by_volume=self.group_by_volume(chapters),
            external_url=external_url,
        )

    async def get_chapter_info(self, chapter_id: str) -> ChapterInfo:
        """Get chapter metadata, looking up the parent manga when needed."""
        external_url = self.chapter_url(chapter_id)
        data = await self._call(self.client.get_chapter(chapter_id), "Chapter", chapter_id, external_url)
        chapter = data.get("data")
        if not chapter:
            raise GatewayUnavailable("Invalid API response format", external_url=external_url)

        attributes = chapter.get("attributes") or {}
        manga_rel = next(iter(_relationships(chapter, "manga")), None)
        manga_id = manga_rel.get("id") if manga_rel else None
        manga_title = None
        if manga_rel and manga_rel.get("attributes"):
            manga_title = pick_localized(manga_rel["attributes"].get("title")) or None

        cover_art = None
        if manga_id:
            # Secondary lookup; the chapter is still usable without it
            try:
                manga_data = await self.client.get_manga(manga_id, timeout=8.0)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Manga lookup for chapter %s failed: %s", chapter_id, e)
            else:
                manga = manga_data.get("data") or {}
                if not manga_title:
                    titles = (manga.get("attributes") or {}).get("title")
                    manga_title = pick_localized(titles) or None
                if manga:
                    cover_art = self._cover_url(manga)

        groups = _relationship_names(chapter, "scanlation_group")
        return ChapterInfo(
            id=chapter["id"],
            manga_id=manga_id,
            title=attributes.get("title") or None,
            chapter=attributes.get("chapter") or None,
            volume=attributes.get("volume") or None,
            translated_language=attributes.get("translatedLanguage") or "unknown",
            publish_at=_parse_datetime(attributes.get("publishAt")),
            pages=attributes.get("pages") or 0,
            manga_title=manga_title,
            group_name=groups[0] if groups else "Unknown Group",
            cover_art=cover_art,
            external_url=external_url,
        )

    async def get_chapter_pages(self, chapter_id: str, data_saver: bool = True) -> ChapterPageSet:
        """Resolve the page image URLs of a chapter in direct and relay form.

        Args:
            chapter_id: Catalog chapter ID
            data_saver: Prefer the compressed image set when available

        Raises:
            NoPagesFound: If the chapter has no page images
            GatewayUnavailable: If the image server lookup fails
        """
        external_url = self.chapter_url(chapter_id)
        server = await self._call(
            self.client.get_at_home_server(chapter_id), "Chapter", chapter_id, external_url
        )

        base_url = server.get("baseUrl")
        chapter = server.get("chapter") or {}
        chapter_hash = chapter.get("hash")

        quality = "data-saver" if data_saver else "data"
        files = chapter.get("dataSaver" if data_saver else "data") or []
        if data_saver and not files:
            quality, files = "data", chapter.get("data") or []

        if not files:
            raise NoPagesFound(chapter_id, external_url=external_url)
        if not base_url or not chapter_hash:
            raise GatewayUnavailable(
                "Incomplete data from the catalog image server",
                external_url=external_url,
            )

        direct_urls = [f"{base_url.rstrip('/')}/{quality}/{chapter_hash}/{name}" for name in files]
        return ChapterPageSet(
            chapter_id=chapter_id,
            direct_urls=direct_urls,
            proxied_urls=[self.relay_form(url) for url in direct_urls],
            prefer_proxy=self.prefer_proxy,
            external_fallback_url=external_url,
        )

    async def get_mangaplus_chapters(self, title_id: str) -> list[MangaPlusChapter]:
        """List the chapters of a MangaPlus title."""
        data = await self._call(self.client.get_mangaplus_title(title_id), "MangaPlus title", title_id)
        chapters: Any = ((data or {}).get("success") or {}).get("chapters")
        if not isinstance(chapters, list):
            raise GatewayUnavailable("Invalid MangaPlus response")

        return [
            MangaPlusChapter(
                id=str(chapter.get("chapterId")),
                name=chapter.get("name") or "",
                number=str(chapter.get("chapter") or ""),
                date=chapter.get("publishDate"),
                title_id=title_id,
            )
            for chapter in chapters
        ]
