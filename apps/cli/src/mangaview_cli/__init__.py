"""MangaView command line interface."""
