from __future__ import annotations

import asyncio
from urllib.parse import quote

import httpx
import pytest

from mangaview_catalog_client import MangaDexClient
from mangaview_core_schemas import NO_VOLUME
from mangaview_services import CatalogService, page_window
from mangaview_services.exceptions import (
    GatewayUnavailable,
    NoPagesFound,
    NotFoundError,
    ValidationError,
)

AT_HOME = {
    "result": "ok",
    "baseUrl": "https://uploads.mangadex.org",
    "chapter": {
        "hash": "abc123",
        "data": ["1-full.png", "2-full.png"],
        "dataSaver": ["1-small.jpg", "2-small.jpg"],
    },
}

MANGA = {
    "data": {
        "id": "m1",
        "attributes": {
            "title": {"ja": "ワンピース", "en": "One Piece"},
            "status": "ongoing",
            "publicationDemographic": "shounen",
            "description": {"en": "Pirates."},
        },
        "relationships": [
            {"type": "author", "attributes": {"name": "Oda"}},
            {"type": "artist", "attributes": {"name": "Oda"}},
            {"type": "cover_art", "attributes": {"fileName": "cover.jpg"}},
        ],
    }
}


def _chapter(chapter_id: str, volume, chapter) -> dict:
    return {
        "id": chapter_id,
        "attributes": {
            "volume": volume,
            "chapter": chapter,
            "title": None,
            "translatedLanguage": "en",
            "publishAt": "2024-01-02T03:04:05+00:00",
            "pages": 20,
        },
        "relationships": [{"type": "scanlation_group", "attributes": {"name": "Group"}}],
    }


def _run(handler, scenario):
    async def main():
        client = MangaDexClient(
            api_url="https://api.test",
            transport=httpx.MockTransport(handler),
            cache_size=0,
        )
        try:
            return await scenario(CatalogService(client=client))
        finally:
            await client.aclose()

    return asyncio.run(main())


def test_chapter_pages_use_data_saver_and_relay_form() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/at-home/server/ch1"
        return httpx.Response(200, json=AT_HOME)

    pages = _run(handler, lambda service: service.get_chapter_pages("ch1"))

    direct = "https://uploads.mangadex.org/data-saver/abc123/1-small.jpg"
    assert pages.direct_urls[0] == direct
    assert pages.proxied_urls[0] == f"/proxy-image?url={quote(direct, safe='')}"
    assert pages.total_pages == 2
    assert pages.prefer_proxy is True
    assert pages.external_fallback_url == "https://mangadex.org/chapter/ch1"


def test_chapter_pages_full_quality() -> None:
    pages = _run(
        lambda request: httpx.Response(200, json=AT_HOME),
        lambda service: service.get_chapter_pages("ch1", data_saver=False),
    )
    assert pages.direct_urls == [
        "https://uploads.mangadex.org/data/abc123/1-full.png",
        "https://uploads.mangadex.org/data/abc123/2-full.png",
    ]


def test_chapter_pages_fall_back_to_full_quality_when_no_data_saver_set() -> None:
    body = {**AT_HOME, "chapter": {**AT_HOME["chapter"], "dataSaver": []}}
    pages = _run(lambda request: httpx.Response(200, json=body), lambda service: service.get_chapter_pages("ch1"))
    assert pages.direct_urls[0].endswith("/data/abc123/1-full.png")


def test_chapter_with_no_pages_raises_no_pages_found() -> None:
    body = {"baseUrl": "https://x.mangadex.network", "chapter": {"hash": "h", "data": [], "dataSaver": []}}
    with pytest.raises(NoPagesFound) as excinfo:
        _run(lambda request: httpx.Response(200, json=body), lambda service: service.get_chapter_pages("ch9"))
    assert excinfo.value.code == "NO_PAGES_FOUND"
    assert excinfo.value.external_url == "https://mangadex.org/chapter/ch9"


def test_transport_failure_raises_gateway_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayUnavailable) as excinfo:
        _run(handler, lambda service: service.get_chapter_pages("ch1"))
    assert excinfo.value.external_url == "https://mangadex.org/chapter/ch1"


def test_upstream_server_error_raises_gateway_unavailable() -> None:
    with pytest.raises(GatewayUnavailable):
        _run(lambda request: httpx.Response(503), lambda service: service.search("x"))


def test_invalid_json_raises_gateway_unavailable() -> None:
    with pytest.raises(GatewayUnavailable):
        _run(lambda request: httpx.Response(200, text="<html>"), lambda service: service.list_section("rating"))


def test_missing_manga_raises_not_found() -> None:
    with pytest.raises(NotFoundError) as excinfo:
        _run(lambda request: httpx.Response(404, json={"result": "error"}), lambda service: service.get_series_details("nope"))
    assert excinfo.value.external_url == "https://mangadex.org/title/nope"


def test_series_details_group_chapters_by_volume() -> None:
    feed = [
        _chapter("c-oneshot", None, None),
        _chapter("c-10", "10", "100"),
        _chapter("c-2", "2", "12"),
        _chapter("c-1", "1", "1"),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/manga/m1":
            return httpx.Response(200, json=MANGA)
        if request.url.path == "/manga/m1/feed":
            assert request.url.params["offset"] == "0"
            return httpx.Response(200, json={"data": feed, "total": len(feed)})
        return httpx.Response(404)

    details = _run(handler, lambda service: service.get_series_details("m1"))

    assert details.title == "One Piece"
    assert details.status_label == "Ongoing"
    assert details.demographic_label == "Shounen"
    assert details.description == "Pirates."
    assert details.authors == ["Oda"]
    assert details.cover_url == "https://uploads.mangadex.org/covers/m1/cover.jpg"
    assert details.proxied_cover_url.startswith("/proxy-image?url=https%3A%2F%2Fuploads")
    assert list(details.chapters_by_volume) == ["1", "2", "10", NO_VOLUME]
    assert details.chapters_by_volume[NO_VOLUME][0].label == "Oneshot"
    assert details.chapters_by_volume["2"][0].label == "Chapter 12"
    assert details.chapter_count == 4


def test_search_pages_through_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["title"] == "one"
        assert request.url.params["offset"] == "20"
        return httpx.Response(200, json={"data": [MANGA["data"]], "total": 45})

    results = _run(handler, lambda service: service.search("one", page=2))
    assert results.total == 45
    assert results.total_pages == 3
    assert results.items[0].title == "One Piece"


def test_search_rejects_page_zero() -> None:
    with pytest.raises(ValidationError):
        _run(lambda request: httpx.Response(200, json={}), lambda service: service.search("one", page=0))


def test_list_section_orders_by_sort_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["order[followedCount]"] == "desc"
        return httpx.Response(200, json={"data": [MANGA["data"]]})

    items = _run(handler, lambda service: service.list_section("followedCount"))
    assert [item.id for item in items] == ["m1"]


def test_list_section_rejects_unknown_sort() -> None:
    with pytest.raises(ValidationError) as excinfo:
        _run(lambda request: httpx.Response(200, json={}), lambda service: service.list_section("views"))
    assert excinfo.value.field == "sort"


def test_chapter_info_looks_up_manga_title_and_cover() -> None:
    chapter = {
        "data": {
            "id": "c1",
            "attributes": {"chapter": "5", "volume": "1", "title": "", "translatedLanguage": "en", "pages": 18},
            "relationships": [
                {"type": "manga", "id": "m1"},
                {"type": "scanlation_group", "attributes": {"name": "Group A"}},
            ],
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/chapter/c1":
            return httpx.Response(200, json=chapter)
        return httpx.Response(200, json=MANGA)

    info = _run(handler, lambda service: service.get_chapter_info("c1"))
    assert info.manga_title == "One Piece"
    assert info.group_name == "Group A"
    assert info.display_title == "Chapter 5"
    assert info.cover_art == "https://uploads.mangadex.org/covers/m1/cover.jpg"


def test_chapter_info_survives_failed_manga_lookup() -> None:
    chapter = {"data": {"id": "c1", "attributes": {}, "relationships": [{"type": "manga", "id": "m1"}]}}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/chapter/c1":
            return httpx.Response(200, json=chapter)
        return httpx.Response(500)

    info = _run(handler, lambda service: service.get_chapter_info("c1"))
    assert info.manga_id == "m1"
    assert info.manga_title is None
    assert info.group_name == "Unknown Group"
    assert info.translated_language == "unknown"


def test_mangaplus_chapters() -> None:
    body = {"success": {"chapters": [{"chapterId": 1000, "name": "#001", "chapter": "1", "publishDate": 1700000000}]}}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["title_id"] == "100020"
        return httpx.Response(200, json=body)

    chapters = _run(handler, lambda service: service.get_mangaplus_chapters("100020"))
    assert chapters[0].id == "1000"
    assert chapters[0].number == "1"
    assert chapters[0].title_id == "100020"


def test_mangaplus_invalid_response() -> None:
    with pytest.raises(GatewayUnavailable):
        _run(lambda request: httpx.Response(200, json={"error": {}}), lambda service: service.get_mangaplus_chapters("1"))


@pytest.mark.parametrize(
    ("current", "total", "expected"),
    [
        (1, 1, []),
        (1, 3, [1, 2, 3]),
        (1, 20, [1, 2, 3, 4, 5, None, 20]),
        (10, 20, [1, None, 8, 9, 10, 11, 12, None, 20]),
        (20, 20, [1, None, 16, 17, 18, 19, 20]),
        (3, 6, [1, 2, 3, 4, 5, 6]),
    ],
)
def test_page_window(current: int, total: int, expected: list) -> None:
    assert page_window(current, total) == expected
