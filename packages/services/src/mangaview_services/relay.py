"""Image relay service."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlsplit

import httpx

from mangaview_catalog_client import MangaDexClient, get_client
from .exceptions import RelayError, RelayForbidden, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_HOSTS = ("mangadex.org", "mangadex.network")
ALLOW_ANY_HOST = "*"


@dataclass
class RelayedImage:
    """An image fetched on behalf of a client."""

    content: bytes
    content_type: str
    cache_control: str = "public, max-age=86400"


class ImageRelayService:
    """Fetches images server-side to get around referrer and CORS blocking."""

    def __init__(
        self,
        client: Optional[MangaDexClient] = None,
        allowed_hosts: Iterable[str] = DEFAULT_ALLOWED_HOSTS,
    ):
        """Initialize service.

        Args:
            client: Catalog client used for the download
            allowed_hosts: Host suffixes the relay may fetch from ("*" allows any)
        """
        self.client = client or get_client()
        self.allowed_hosts = tuple(host.lower().lstrip(".") for host in allowed_hosts)

    def is_allowed_host(self, host: str) -> bool:
        host = host.lower()
        if ALLOW_ANY_HOST in self.allowed_hosts:
            return True
        return any(host == allowed or host.endswith(f".{allowed}") for allowed in self.allowed_hosts)

    def check_url(self, url: str) -> str:
        """Validate an image URL before fetching it.

        Raises:
            ValidationError: If the URL is missing or malformed
            RelayForbidden: If the host is not allowed
        """
        if not url:
            raise ValidationError("Missing URL parameter", field="url")

        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValidationError(f"Not an absolute http(s) URL: {url}", field="url")
        if not self.is_allowed_host(parts.hostname):
            raise RelayForbidden(f"Host '{parts.hostname}' is not allowed", url)
        return url

    async def proxy(self, url: str) -> RelayedImage:
        """Fetch an image and return it with its content type.

        Raises:
            ValidationError: If the URL is missing or malformed
            RelayForbidden: If the host is not allowed
            RelayError: If the upstream fetch fails
        """
        self.check_url(url)

        try:
            content, content_type = await self.client.fetch_image(url)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning("Relay fetch of %s returned HTTP %s", url, status_code)
            raise RelayError(
                f"Failed to proxy image: upstream returned HTTP {status_code}",
                url,
                status_code=status_code,
            ) from e
        except httpx.RequestError as e:
            logger.warning("Relay fetch of %s failed: %s", url, e)
            raise RelayError(f"Failed to proxy image: {e}", url) from e

        return RelayedImage(content=content, content_type=content_type)
