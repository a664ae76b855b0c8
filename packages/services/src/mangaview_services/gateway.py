"""Gateways and image loaders used by the reader."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from mangaview_core_schemas import ChapterPageSet, Err, Ok, Result, SearchPage, SeriesDetails
from .catalog import CatalogService
from .exceptions import ImageLoadError, NoPagesFound, ServiceError
from .relay import ImageRelayService

M = TypeVar("M", bound=BaseModel)

logger = logging.getLogger(__name__)


class ServiceGateway:
    """Gateway backed by an in-process CatalogService."""

    def __init__(self, service: CatalogService):
        self.service = service

    async def get_chapter_pages(self, chapter_id: str, data_saver: bool = True) -> Result[ChapterPageSet]:
        try:
            return Ok(await self.service.get_chapter_pages(chapter_id, data_saver=data_saver))
        except ServiceError as e:
            return Err(e.message, e.code, e.external_url)

    async def get_series_details(self, series_id: str) -> Result[SeriesDetails]:
        try:
            return Ok(await self.service.get_series_details(series_id))
        except ServiceError as e:
            return Err(e.message, e.code, e.external_url)

    async def search(self, query: str, page: int = 1) -> Result[SearchPage]:
        try:
            return Ok(await self.service.search(query, page))
        except ServiceError as e:
            return Err(e.message, e.code, e.external_url)


class HttpGateway:
    """Gateway that talks to a running MangaView API."""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        """Initialize gateway.

        Args:
            client: HTTP client used for the calls
            base_url: Root of the MangaView API (e.g. http://localhost:8000)
        """
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def _get(
        self,
        path: str,
        parse: Callable[[Any], M],
        params: Optional[dict[str, Any]] = None,
    ) -> Result[M]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url, params=params)
        except httpx.RequestError as e:
            logger.warning("GET %s failed: %s", url, e)
            return Err(f"MangaView API unavailable: {e}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            error = (body or {}).get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                return Err(
                    error.get("message") or f"HTTP {response.status_code}",
                    error.get("code") or "GATEWAY_UNAVAILABLE",
                    body.get("external_url"),
                )
            return Err(f"MangaView API returned HTTP {response.status_code}")

        try:
            return Ok(parse(body))
        except ServiceError as e:
            return Err(e.message, e.code, e.external_url)
        except ModelValidationError as e:
            logger.warning("Unexpected response from %s: %s", url, e)
            return Err("MangaView API returned an invalid response")

    async def get_chapter_pages(self, chapter_id: str, data_saver: bool = True) -> Result[ChapterPageSet]:
        def parse(body: Any) -> ChapterPageSet:
            if isinstance(body, dict) and not body.get("direct_urls"):
                raise NoPagesFound(chapter_id, external_url=body.get("external_fallback_url") or None)
            return ChapterPageSet.model_validate(body)

        return await self._get(
            f"/chapters/{chapter_id}/pages",
            parse,
            params={"data_saver": str(data_saver).lower()},
        )

    async def get_series_details(self, series_id: str) -> Result[SeriesDetails]:
        return await self._get(f"/manga/{series_id}", SeriesDetails.model_validate)

    async def search(self, query: str, page: int = 1) -> Result[SearchPage]:
        return await self._get("/manga", SearchPage.model_validate, params={"query": query, "page": page})


@dataclass
class LoadedImage:
    """Image bytes fetched for one page."""

    url: str
    data: bytes
    content_type: str

    @property
    def extension(self) -> str:
        subtype = self.content_type.split(";")[0].split("/")[-1].strip()
        return {"jpeg": "jpg", "svg+xml": "svg"}.get(subtype, subtype or "img")


class HttpImageLoader:
    """Loads page images over HTTP.

    Relative relay URLs (``/proxy-image?url=...``) are resolved against
    ``base_url`` when set; otherwise they are served by an in-process
    ``ImageRelayService``. Absolute URLs are fetched directly.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        relay: Optional[ImageRelayService] = None,
        relay_path: str = "/proxy-image",
    ):
        self.client = client
        self.base_url = base_url
        self.relay = relay
        self.relay_path = relay_path

    async def __call__(self, url: str) -> LoadedImage:
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise ImageLoadError(url, f"malformed URL: {e}") from e
        if not parts.scheme:
            if self.base_url:
                return await self._fetch(urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/")))
            if self.relay is not None and parts.path == self.relay_path:
                return await self._relay(url, parts.query)
            raise ImageLoadError(url, "relative URL with no relay configured")
        return await self._fetch(url)

    async def _relay(self, url: str, query: str) -> LoadedImage:
        target = (parse_qs(query).get("url") or [""])[0]
        try:
            image = await self.relay.proxy(target)
        except ServiceError as e:
            raise ImageLoadError(url, e.message) from e
        return self._check_image(url, image.content, image.content_type)

    async def _fetch(self, url: str) -> LoadedImage:
        try:
            response = await self.client.get(url)
        except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
            raise ImageLoadError(url, f"request failed: {e}") from e

        if response.is_error:
            raise ImageLoadError(url, f"HTTP {response.status_code}")
        return self._check_image(url, response.content, response.headers.get("content-type", ""))

    @staticmethod
    def _check_image(url: str, data: bytes, content_type: str) -> LoadedImage:
        """Reject bodies that cannot be shown as an image."""
        if not data:
            raise ImageLoadError(url, "empty response body")
        if not content_type.startswith("image/"):
            raise ImageLoadError(url, f"not an image ({content_type or 'no content type'})")
        return LoadedImage(url=url, data=data, content_type=content_type)
