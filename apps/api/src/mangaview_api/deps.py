"""API dependencies."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mangaview_catalog_client import MangaDexClient, get_client, set_client
from mangaview_services import CatalogService, ImageRelayService
from mangaview_services.relay import DEFAULT_ALLOWED_HOSTS

ENV_PREFIX = "MANGAVIEW_"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Configuration
class Settings:
    """API settings, read from MANGAVIEW_* environment variables."""

    def __init__(self):
        self.api_url: str = _env("API_URL", os.environ.get("MANGADEX_API_URL", MangaDexClient.DEFAULT_API_URL))
        self.mangaplus_url: str = _env("MANGAPLUS_URL", MangaDexClient.MANGAPLUS_API_URL)
        self.site_url: str = _env("SITE_URL", "https://mangadex.org")
        self.uploads_url: str = _env("UPLOADS_URL", "https://uploads.mangadex.org")
        self.relay_url: str = _env("RELAY_URL", "/proxy-image")
        self.prefer_proxy: bool = _env_bool("PREFER_PROXY", True)
        self.allowed_image_hosts: list[str] = [
            host.strip()
            for host in _env("ALLOWED_IMAGE_HOSTS", ",".join(DEFAULT_ALLOWED_HOSTS)).split(",")
            if host.strip()
        ]
        self.page_size: int = int(_env("PAGE_SIZE", "20"))
        self.timeout: float = float(_env("TIMEOUT", "10"))
        self.image_timeout: float = float(_env("IMAGE_TIMEOUT", "15"))
        self.data_dir: Path = Path(_env("DATA_DIR", str(Path.home() / ".mangaview")))


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings, reading a .env file first when present."""
    load_dotenv(env_file)
    return Settings()


settings = load_settings()


def get_settings() -> Settings:
    """Get API settings."""
    return settings


# Service factories
def configure_client(settings: Settings) -> MangaDexClient:
    """Create the shared catalog client from settings."""
    client = MangaDexClient(
        api_url=settings.api_url,
        mangaplus_url=settings.mangaplus_url,
        timeout=settings.timeout,
        image_timeout=settings.image_timeout,
    )
    set_client(client)
    return client


def get_catalog_service() -> CatalogService:
    """Get the catalog service."""
    return CatalogService(
        client=get_client(),
        relay_url=settings.relay_url,
        site_url=settings.site_url,
        uploads_url=settings.uploads_url,
        prefer_proxy=settings.prefer_proxy,
        page_size=settings.page_size,
    )


def get_relay_service() -> ImageRelayService:
    """Get the image relay service."""
    return ImageRelayService(client=get_client(), allowed_hosts=settings.allowed_image_hosts)
