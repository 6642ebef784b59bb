import pytest

from listings.core.urls import external_id_from_url, normalize_url


def test_normalize_url_strips_tracking_params_and_trailing_slash() -> None:
    normalized = normalize_url("HTTPS://Example.com:443/jobs/123/?utm_source=feed&ref=rss&b=2&a=1")
    assert normalized == "https://example.com/jobs/123?a=1&b=2"


def test_normalize_url_rejects_relative_url() -> None:
    with pytest.raises(ValueError):
        normalize_url("/jobs/123")


def test_external_id_is_fixed_width_and_ignores_tracking_noise() -> None:
    first = external_id_from_url("https://example.com/jobs/123?utm_campaign=x")
    second = external_id_from_url("https://example.com/jobs/123/")

    assert first == second
    assert len(first) == 64
    assert all(ch in "0123456789abcdef" for ch in first)


def test_external_id_differs_for_different_postings() -> None:
    assert external_id_from_url("https://example.com/jobs/1") != external_id_from_url("https://example.com/jobs/2")
