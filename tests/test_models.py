from __future__ import annotations

import pytest
from pydantic import ValidationError

from mangaview_core_schemas import (
    NO_VOLUME,
    ChapterPageSet,
    Err,
    LoadForm,
    Ok,
    capitalize_label,
    pick_localized,
    volume_sort_key,
)


def test_page_set_defaults_proxied_urls_to_direct() -> None:
    page_set = ChapterPageSet(direct_urls=["a", "b"])
    assert page_set.proxied_urls == ["a", "b"]
    assert page_set.total_pages == 2
    assert page_set.url_for(2, LoadForm.PROXIED) == "b"


def test_page_set_url_for_each_form() -> None:
    page_set = ChapterPageSet(direct_urls=["d1", "d2"], proxied_urls=["p1", "p2"])
    assert page_set.url_for(1, LoadForm.DIRECT) == "d1"
    assert page_set.url_for(1, LoadForm.PROXIED) == "p1"


def test_page_set_rejects_empty_chapter() -> None:
    with pytest.raises(ValidationError):
        ChapterPageSet(direct_urls=[])


def test_page_set_rejects_misaligned_lists() -> None:
    with pytest.raises(ValidationError):
        ChapterPageSet(direct_urls=["d1", "d2"], proxied_urls=["p1"])


def test_load_form_other() -> None:
    assert LoadForm.PROXIED.other is LoadForm.DIRECT
    assert LoadForm.DIRECT.other is LoadForm.PROXIED


def test_volume_ordering() -> None:
    volumes = [NO_VOLUME, "10", "Extras", "2", "1.5"]
    assert sorted(volumes, key=volume_sort_key) == ["1.5", "2", "10", "Extras", NO_VOLUME]


def test_pick_localized_prefers_english() -> None:
    assert pick_localized({"ja": "ナルト", "en": "Naruto"}) == "Naruto"
    assert pick_localized({"ja-ro": "Naruto", "ja": "ナルト"}) == "Naruto"
    assert pick_localized({}, "No Title") == "No Title"
    assert pick_localized(None, "No Title") == "No Title"


def test_capitalize_label() -> None:
    assert capitalize_label("ongoing") == "Ongoing"
    assert capitalize_label(None) == "Unknown"


def test_results() -> None:
    assert Ok(3).ok is True
    error = Err("down")
    assert error.ok is False
    assert error.code == "GATEWAY_UNAVAILABLE"
