from __future__ import annotations

from urllib.parse import quote

import httpx
from fastapi.testclient import TestClient

from mangaview_api.app import create_app
from mangaview_catalog_client import MangaDexClient

AT_HOME = {
    "baseUrl": "https://uploads.mangadex.org",
    "chapter": {"hash": "abc", "data": ["1.png"], "dataSaver": ["1.jpg"]},
}
IMAGE_URL = "https://uploads.mangadex.org/data/abc/1.png"


def _upstream(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/at-home/server/ch1":
        return httpx.Response(200, json=AT_HOME)
    if path == "/at-home/server/empty":
        return httpx.Response(200, json={"baseUrl": "https://u", "chapter": {"hash": "h", "data": [], "dataSaver": []}})
    if path == "/at-home/server/down":
        raise httpx.ConnectError("refused", request=request)
    if path == "/manga":
        return httpx.Response(200, json={"data": [], "total": 0})
    if path == "/data/abc/1.png":
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
    if path == "/data/abc/missing.png":
        return httpx.Response(404)
    return httpx.Response(404, json={"result": "error"})


def _client() -> TestClient:
    catalog = MangaDexClient(
        api_url="https://api.mangadex.org",
        transport=httpx.MockTransport(_upstream),
        cache_size=0,
    )
    return TestClient(create_app(client=catalog))


def test_health() -> None:
    response = _client().get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_health_schema_is_documented() -> None:
    schema = _client().get("/openapi.json").json()
    ref = schema["paths"]["/health"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]["$ref"]
    assert ref.endswith("/HealthResponse")


def test_chapter_pages() -> None:
    response = _client().get("/chapters/ch1/pages", params={"data_saver": "true"})
    assert response.status_code == 200
    body = response.json()
    direct = "https://uploads.mangadex.org/data-saver/abc/1.jpg"
    assert body["direct_urls"] == [direct]
    assert body["proxied_urls"] == [f"/proxy-image?url={quote(direct, safe='')}"]
    assert body["prefer_proxy"] is True
    assert body["external_fallback_url"] == "https://mangadex.org/chapter/ch1"


def test_chapter_without_pages_returns_error_envelope() -> None:
    response = _client().get("/chapters/empty/pages")
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "NO_PAGES_FOUND"
    assert body["external_url"] == "https://mangadex.org/chapter/empty"


def test_unreachable_catalog_is_bad_gateway() -> None:
    response = _client().get("/chapters/down/pages")
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "GATEWAY_UNAVAILABLE"


def test_unknown_series_is_not_found() -> None:
    response = _client().get("/manga/unknown")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_search_requires_query() -> None:
    response = _client().get("/manga")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_search_rejects_page_below_one() -> None:
    response = _client().get("/manga", params={"query": "one", "page": 0})
    assert response.status_code == 400
    assert response.json()["error"]["field"] == "page"


def test_search_with_no_results() -> None:
    response = _client().get("/manga", params={"query": "zzz"})
    assert response.status_code == 200
    assert response.json()["items"] == []
    assert response.json()["total_pages"] == 0


def test_unknown_section_is_rejected() -> None:
    response = _client().get("/manga/sections/views")
    assert response.status_code == 400


def test_proxy_image_streams_upstream_image() -> None:
    response = _client().get("/proxy-image", params={"url": IMAGE_URL})
    assert response.status_code == 200
    assert response.content == b"\x89PNG"
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "public, max-age=86400"


def test_proxy_image_requires_url() -> None:
    response = _client().get("/proxy-image")
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Missing URL parameter"


def test_proxy_image_refuses_foreign_hosts() -> None:
    response = _client().get("/proxy-image", params={"url": "https://evil.example/1.png"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "RELAY_FORBIDDEN"


def test_proxy_image_upstream_failure() -> None:
    response = _client().get("/proxy-image", params={"url": "https://uploads.mangadex.org/data/abc/missing.png"})
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "RELAY_ERROR"


def test_cors_is_open() -> None:
    response = _client().get("/health", headers={"Origin": "https://reader.example"})
    assert response.headers["access-control-allow-origin"] == "*"
