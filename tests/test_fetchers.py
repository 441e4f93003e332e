import asyncio
import json

import httpx
import pytest

from reviewscope.data.schemas import FetchResult, OrganizationInfo, RawReview, SyncMode
from reviewscope.exceptions import FetchError
from reviewscope.fetchers import HttpFetcher, JsonFileFetcher

PAYLOAD = {
    "organization": {
        "name": "Downtown Auto",
        "rating": 4.4,
        "review_count": 312,
        "address": "1 Main St",
        "categories": ["Auto repair"],
    },
    "reviews": [
        {"stars": 5, "text": "Great", "date": "2025-05-01", "review_url": "https://example.com/r/1"},
        {"stars": 2.5, "text": "Slow", "author_name": "Bob", "likes": 2},
    ],
    "total_count": 312,
}


def make_http_fetcher(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpFetcher(base_url="http://scraper.test/", client=client, retry_delay=0, **kwargs)


def test_http_full_fetch():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=PAYLOAD)

    fetcher = make_http_fetcher(handler)
    result = asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.FULL))

    assert requests[0].url.path == "/orgs/org-1/reviews"
    assert dict(requests[0].url.params) == {"mode": "full"}
    assert result.organization.rating == 4.4
    assert result.total_count == 312
    assert [r.stars for r in result.reviews] == [5, 2.5]
    assert result.reviews[1].likes == 2


def test_http_incremental_sends_window():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=PAYLOAD)

    fetcher = make_http_fetcher(handler, window_size=25)
    asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.INCREMENTAL))
    assert dict(requests[0].url.params) == {"mode": "incremental", "limit": "25"}


def test_http_errors_are_retried_then_raised():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        return httpx.Response(503, text="unavailable")

    fetcher = make_http_fetcher(handler, max_retries=3)
    with pytest.raises(FetchError, match="org-1"):
        asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.FULL))
    assert calls["count"] == 3


def test_http_recovers_after_transient_error():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("refused")
        return httpx.Response(200, json=PAYLOAD)

    fetcher = make_http_fetcher(handler, max_retries=3)
    result = asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.FULL))
    assert len(result.reviews) == 2
    assert calls["count"] == 2


def test_http_malformed_payload_is_not_retried():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        return httpx.Response(200, json={"reviews": [{"stars": 9}]})

    fetcher = make_http_fetcher(handler, max_retries=3)
    with pytest.raises(FetchError, match="Malformed"):
        asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.FULL))
    assert calls["count"] == 1


def test_http_save_raw(tmp_path):
    fetcher = make_http_fetcher(
        lambda request: httpx.Response(200, json=PAYLOAD), save_raw=True, output_dir=tmp_path
    )
    asyncio.run(fetcher.fetch("org-1", SyncMode.FULL))

    saved = json.loads((tmp_path / "remote" / "org-1.json").read_text(encoding="utf-8"))
    assert saved["org_id"] == "org-1"
    assert saved["source_id"] == "remote"
    assert len(saved["reviews"]) == 2


def test_file_fetcher_replays_saved_result(tmp_path):
    fetcher = JsonFileFetcher(output_dir=tmp_path, window_size=1)
    result = FetchResult(
        organization=OrganizationInfo(name="Downtown Auto"),
        reviews=[RawReview(stars=5, text="new"), RawReview(stars=1, text="old")],
        total_count=2,
    )
    path = fetcher.save_result("org-1", result)
    assert path == tmp_path / "files" / "org-1.json"

    full = asyncio.run(fetcher.fetch("org-1", SyncMode.FULL))
    assert full == result

    recent = asyncio.run(fetcher.fetch("org-1", SyncMode.INCREMENTAL))
    assert [r.text for r in recent.reviews] == ["new"]


def test_file_fetcher_missing_result(tmp_path):
    fetcher = JsonFileFetcher(output_dir=tmp_path, max_retries=1)
    with pytest.raises(FetchError, match="No saved result"):
        asyncio.run(fetcher.fetch_with_retry("org-1", SyncMode.FULL))


def test_file_fetcher_invalid_file(tmp_path):
    path = tmp_path / "files" / "org-1.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(FetchError, match="Invalid saved result"):
        asyncio.run(JsonFileFetcher(output_dir=tmp_path).fetch("org-1", SyncMode.FULL))
