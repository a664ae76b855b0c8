"""MangaView catalog gateway and image relay API."""
