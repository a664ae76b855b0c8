"""MangaDex API client wrapper for MangaView."""

from mangaview_catalog_client.client import LRUCache, MangaDexClient, get_client, set_client

__all__ = ["LRUCache", "MangaDexClient", "get_client", "set_client"]
