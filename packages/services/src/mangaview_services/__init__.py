"""MangaView Services - Shared logic for the CLI and API.

Services:
- CatalogService: Search, home sections, series details, chapter pages, MangaPlus
- ImageRelayService: Server-side image fetching for the relay endpoint
- ReaderController: Page loading with automatic form fallback
- ServiceGateway / HttpGateway: Chapter sources for the reader
"""

from .catalog import CatalogService, page_window
from .relay import ImageRelayService, RelayedImage
from .reader import (
    CHAPTER_RECOVERY_ACTIONS,
    PAGE_RECOVERY_ACTIONS,
    AttemptToken,
    ChapterGateway,
    ImageLoader,
    ReaderController,
    ReaderState,
    ReaderView,
    open_chapter,
)
from .gateway import HttpGateway, HttpImageLoader, LoadedImage, ServiceGateway
from .navigation import KEY_BINDINGS, SWIPE_THRESHOLD, handle_key, handle_swipe

__all__ = [
    # Catalog
    "CatalogService",
    "page_window",
    # Relay
    "ImageRelayService",
    "RelayedImage",
    # Reader
    "AttemptToken",
    "CHAPTER_RECOVERY_ACTIONS",
    "ChapterGateway",
    "ImageLoader",
    "PAGE_RECOVERY_ACTIONS",
    "ReaderController",
    "ReaderState",
    "ReaderView",
    "open_chapter",
    # Gateways
    "HttpGateway",
    "HttpImageLoader",
    "LoadedImage",
    "ServiceGateway",
    # Navigation
    "KEY_BINDINGS",
    "SWIPE_THRESHOLD",
    "handle_key",
    "handle_swipe",
]
