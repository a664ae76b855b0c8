"""MangaDex and MangaPlus API client wrapper for MangaView."""

import functools
import hashlib
import logging
import os
from collections import OrderedDict
from typing import Any, Callable, Optional, TypeVar

import httpx

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


class LRUCache:
    """In-memory LRU cache for API responses."""

    def __init__(self, max_size: int = 100):
        """Initialize LRU cache.

        Args:
            max_size: Maximum number of items to keep (0 disables caching)
        """
        self.max_size = max_size
        self._cache: OrderedDict[str, Any] = OrderedDict()

    def get(self, key: str) -> tuple[bool, Any]:
        """Get item from cache."""
        if key in self._cache:
            self._cache.move_to_end(key)
            return True, self._cache[key]
        return False, None

    def set(self, key: str, value: Any) -> None:
        """Set item in cache."""
        if self.max_size <= 0:
            return
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
        self._cache[key] = value

    def clear(self) -> None:
        """Clear the cache."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def _make_cache_key(method_name: str, *args, **kwargs) -> str:
    """Create a hash key from method name and arguments."""
    key_parts = [method_name]
    key_parts.extend(repr(arg) for arg in args)
    for k, v in sorted(kwargs.items()):
        if k == "overwrite_cache":
            continue
        key_parts.append(f"{k}={v!r}")

    key_string = "|".join(key_parts)
    return hashlib.sha256(key_string.encode()).hexdigest()


def cached(cache_attr: str):
    """Decorator for caching async method results.

    Args:
        cache_attr: Name of the cache attribute on self (e.g., "_json_cache")

    The decorated method can accept an `overwrite_cache` parameter.
    If True, bypasses cache and makes a fresh API call.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            overwrite_cache = kwargs.pop("overwrite_cache", False)
            cache: LRUCache = getattr(self, cache_attr)

            cache_key = _make_cache_key(func.__name__, *args, **kwargs)

            if not overwrite_cache:
                found, cached_value = cache.get(cache_key)
                if found:
                    return cached_value

            result = await func(self, *args, **kwargs)
            cache.set(cache_key, result)

            return result

        return wrapper  # type: ignore

    return decorator


class MangaDexClient:
    """Async wrapper for the MangaDex REST API and the MangaPlus title API."""

    DEFAULT_API_URL = "https://api.mangadex.org"
    MANGAPLUS_API_URL = "https://jumpg-webapi.tokyo-cdn.com/api"
    USER_AGENT = "MangaReader/1.0 (manga-reader-app)"
    IMAGE_REFERER = "https://mangadex.org/"
    FEED_PAGE_SIZE = 500

    def __init__(
        self,
        api_url: Optional[str] = None,
        mangaplus_url: Optional[str] = None,
        timeout: float = 10.0,
        image_timeout: float = 15.0,
        cache_size: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_url: MangaDex API base (defaults to MANGADEX_API_URL env var)
            mangaplus_url: MangaPlus API base
            timeout: Timeout in seconds for metadata calls
            image_timeout: Timeout in seconds for image downloads
            cache_size: Maximum number of cached metadata responses
            transport: Optional httpx transport (used by tests)
        """
        self.api_url = (
            api_url or os.environ.get("MANGADEX_API_URL") or self.DEFAULT_API_URL
        ).rstrip("/")
        self.mangaplus_url = (mangaplus_url or self.MANGAPLUS_API_URL).rstrip("/")
        self.timeout = timeout
        self.image_timeout = image_timeout

        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": self.USER_AGENT, "Accept": "application/json"},
            transport=transport,
        )
        self.image_client = httpx.AsyncClient(
            timeout=image_timeout,
            follow_redirects=True,
            headers={
                "User-Agent": self.USER_AGENT,
                "Accept": "image/webp,image/*,*/*;q=0.8",
            },
            transport=transport,
        )

        self._json_cache = LRUCache(max_size=cache_size)

    async def aclose(self) -> None:
        """Close the underlying HTTP connections."""
        await self.client.aclose()
        await self.image_client.aclose()

    async def __aenter__(self) -> "MangaDexClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def clear_cache(self) -> None:
        """Clear the metadata cache."""
        self._json_cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "json_cache": len(self._json_cache),
            "max_size": self._json_cache.max_size,
        }

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """GET a JSON document.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            httpx.RequestError: On transport failures and timeouts
            ValueError: If the body is not valid JSON
        """
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = await self.client.get(url, **kwargs)
        if response.is_error:
            logger.warning(
                "GET %s failed with status %s", response.request.url, response.status_code
            )
        response.raise_for_status()
        return response.json()

    @cached("_json_cache")
    async def search_manga(self, title: str, limit: int = 20, offset: int = 0) -> dict:
        """Search manga by title, including cover art relationships."""
        return await self._get_json(
            f"{self.api_url}/manga",
            params={
                "title": title,
                "limit": limit,
                "offset": offset,
                "includes[]": ["cover_art"],
            },
        )

    @cached("_json_cache")
    async def list_manga(self, order: str, limit: int = 10) -> dict:
        """List manga sorted descending by an upstream order key."""
        return await self._get_json(
            f"{self.api_url}/manga",
            params={
                f"order[{order}]": "desc",
                "limit": limit,
                "includes[]": ["cover_art"],
            },
        )

    @cached("_json_cache")
    async def get_manga(self, manga_id: str, timeout: Optional[float] = None) -> dict:
        """Get one manga with its author, artist and cover art relationships."""
        return await self._get_json(
            f"{self.api_url}/manga/{manga_id}",
            params={"includes[]": ["artist", "author", "cover_art"]},
            timeout=timeout,
        )

    @cached("_json_cache")
    async def get_manga_feed(
        self,
        manga_id: str,
        languages: tuple[str, ...] = ("en",),
    ) -> list[dict]:
        """Get every chapter of a manga, following the feed's offset paging."""
        chapters: list[dict] = []
        offset = 0
        while True:
            data = await self._get_json(
                f"{self.api_url}/manga/{manga_id}/feed",
                params={
                    "limit": self.FEED_PAGE_SIZE,
                    "offset": offset,
                    "translatedLanguage[]": list(languages),
                    "includes[]": ["scanlation_group"],
                    "order[volume]": "asc",
                    "order[chapter]": "asc",
                },
            )
            page = data.get("data") or []
            chapters.extend(page)
            offset += self.FEED_PAGE_SIZE
            if not page or offset >= data.get("total", 0):
                break
        return chapters

    @cached("_json_cache")
    async def get_chapter(self, chapter_id: str) -> dict:
        """Get one chapter with its manga and scanlation group relationships."""
        return await self._get_json(
            f"{self.api_url}/chapter/{chapter_id}",
            params={"includes[]": ["manga", "scanlation_group"]},
        )

    async def get_at_home_server(self, chapter_id: str) -> dict:
        """Get the image server assignment for a chapter.

        Not cached: the returned base URL is only valid for a short time.
        """
        return await self._get_json(f"{self.api_url}/at-home/server/{chapter_id}")

    @cached("_json_cache")
    async def get_mangaplus_title(self, title_id: str) -> dict:
        """Get a MangaPlus title detail document."""
        return await self._get_json(
            f"{self.mangaplus_url}/title_detail",
            params={"title_id": title_id, "format": "json"},
        )

    async def fetch_image(self, url: str, referer: Optional[str] = None) -> tuple[bytes, str]:
        """Download an image.

        Returns:
            Tuple of (image_data, content_type)

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            httpx.RequestError: On transport failures and timeouts
        """
        response = await self.image_client.get(
            url, headers={"Referer": referer or self.IMAGE_REFERER}
        )
        response.raise_for_status()
        content_type = response.headers.get("content-type") or "image/jpeg"
        return response.content, content_type


# Singleton instance for convenience
_client: Optional[MangaDexClient] = None


def get_client() -> MangaDexClient:
    """Get or create the global catalog client."""
    global _client
    if _client is None:
        _client = MangaDexClient()
    return _client


def set_client(client: Optional[MangaDexClient]) -> None:
    """Set (or reset with None) the global catalog client."""
    global _client
    _client = client
