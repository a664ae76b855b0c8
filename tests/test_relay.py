from __future__ import annotations

import asyncio

import httpx
import pytest

from mangaview_catalog_client import MangaDexClient
from mangaview_services import ImageRelayService
from mangaview_services.exceptions import RelayError, RelayForbidden, ValidationError

IMAGE_URL = "https://uploads.mangadex.org/data/abc/1.png"


def _relay(handler, allowed_hosts=("mangadex.org", "mangadex.network")) -> ImageRelayService:
    client = MangaDexClient(transport=httpx.MockTransport(handler))
    return ImageRelayService(client=client, allowed_hosts=allowed_hosts)


def test_proxy_passes_through_content_type_and_referer() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["referer"] = request.headers.get("referer")
        seen["user_agent"] = request.headers.get("user-agent")
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

    image = asyncio.run(_relay(handler).proxy(IMAGE_URL))
    assert image.content == b"\x89PNG"
    assert image.content_type == "image/png"
    assert image.cache_control == "public, max-age=86400"
    assert seen["referer"] == "https://mangadex.org/"
    assert seen["user_agent"] == "MangaReader/1.0 (manga-reader-app)"


def test_proxy_defaults_content_type_to_jpeg() -> None:
    image = asyncio.run(_relay(lambda request: httpx.Response(200, content=b"data")).proxy(IMAGE_URL))
    assert image.content_type == "image/jpeg"


def test_proxy_accepts_at_home_subdomains() -> None:
    relay = _relay(lambda request: httpx.Response(200, content=b"x"))
    assert relay.is_allowed_host("abc.xyz.mangadex.network")
    assert not relay.is_allowed_host("mangadex.network.evil.example")


def test_proxy_refuses_hosts_outside_allow_list() -> None:
    relay = _relay(lambda request: httpx.Response(200, content=b"x"))
    with pytest.raises(RelayForbidden):
        asyncio.run(relay.proxy("https://evil.example/1.png"))


def test_allow_any_host() -> None:
    relay = _relay(lambda request: httpx.Response(200, content=b"x"), allowed_hosts=("*",))
    assert relay.check_url("https://anything.example/1.png")


@pytest.mark.parametrize("url", ["", "ftp://uploads.mangadex.org/1.png", "/relative/1.png"])
def test_proxy_rejects_missing_or_malformed_urls(url: str) -> None:
    relay = _relay(lambda request: httpx.Response(200, content=b"x"))
    with pytest.raises(ValidationError):
        asyncio.run(relay.proxy(url))


def test_upstream_error_becomes_relay_error() -> None:
    relay = _relay(lambda request: httpx.Response(403))
    with pytest.raises(RelayError) as excinfo:
        asyncio.run(relay.proxy(IMAGE_URL))
    assert excinfo.value.status_code == 403
    assert excinfo.value.code == "RELAY_ERROR"


def test_transport_error_becomes_relay_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RelayError) as excinfo:
        asyncio.run(_relay(handler).proxy(IMAGE_URL))
    assert excinfo.value.status_code is None
