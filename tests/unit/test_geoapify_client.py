"""Geoapify adapter: request shape, status mapping, retries and usage accounting."""

from __future__ import annotations

import httpx
import pytest

from conftest import TEST_KEY, FakeGeoapify, feature_collection, make_feature
from placecache.adapters.geoapify import ENDPOINT, PROVIDER, GeoapifyPlacesClient
from placecache.shared.exceptions import (
    BadRequest,
    InvalidCredentials,
    KeyMissingError,
    QuotaExceeded,
    UpstreamUnavailable,
)


class _Usage:
    def __init__(self) -> None:
        self.rows: list[dict] = []

    def record(self, provider, endpoint, success, error_message=None, status_code=None):
        self.rows.append(
            {
                "provider": provider,
                "endpoint": endpoint,
                "success": success,
                "error_message": error_message,
                "status_code": status_code,
            }
        )


def _client(fake: FakeGeoapify, usage: _Usage, **kwargs) -> GeoapifyPlacesClient:
    return GeoapifyPlacesClient(usage, transport=fake.transport, sleep=lambda _s: None, **kwargs)


def test_fetch_builds_circle_query_and_records_success(api_key):
    fake = FakeGeoapify((200, feature_collection(make_feature("Fort Margherita", 1.56, 110.35))))
    usage = _Usage()
    client = _client(fake, usage)

    data = client.fetch(1.5533, 110.3592, 1000)

    assert len(data["features"]) == 1
    params = fake.requests[0].url.params
    assert params["filter"] == "circle:110.3592,1.5533,1000"
    assert params["limit"] == "50"
    assert params["apiKey"] == TEST_KEY
    assert "tourism" in params["categories"]
    assert usage.rows == [
        {
            "provider": PROVIDER,
            "endpoint": ENDPOINT,
            "success": True,
            "error_message": None,
            "status_code": None,
        }
    ]


@pytest.mark.parametrize(
    "status,error_cls",
    [
        (401, InvalidCredentials),
        (429, QuotaExceeded),
        (400, BadRequest),
        (500, UpstreamUnavailable),
        (503, UpstreamUnavailable),
    ],
)
def test_error_status_maps_to_typed_error(api_key, status, error_cls):
    fake = FakeGeoapify((status, {"message": "nope"}))
    usage = _Usage()

    with pytest.raises(error_cls) as excinfo:
        _client(fake, usage).fetch(1.0, 2.0, 500)

    assert excinfo.value.status_code == status
    assert excinfo.value.provider == PROVIDER
    assert len(usage.rows) == 1
    assert usage.rows[0]["success"] is False
    assert usage.rows[0]["status_code"] == status
    assert usage.rows[0]["error_message"] == "nope"


def test_timeout_is_upstream_unavailable(api_key):
    fake = FakeGeoapify(httpx.ReadTimeout("slow"))
    usage = _Usage()

    with pytest.raises(UpstreamUnavailable, match="timed out"):
        _client(fake, usage).fetch(1.0, 2.0, 500)
    assert usage.rows[0]["success"] is False


def test_error_messages_never_leak_the_key(api_key):
    fake = FakeGeoapify((401, {"message": f"Invalid apiKey {TEST_KEY}"}))
    usage = _Usage()

    with pytest.raises(InvalidCredentials) as excinfo:
        _client(fake, usage).fetch(1.0, 2.0, 500)
    assert TEST_KEY not in str(excinfo.value)
    assert TEST_KEY not in usage.rows[0]["error_message"]


def test_missing_key_fails_before_any_attempt():
    fake = FakeGeoapify()
    usage = _Usage()

    with pytest.raises(KeyMissingError):
        _client(fake, usage).fetch(1.0, 2.0, 500)
    assert fake.calls == 0
    assert usage.rows == []


def test_retries_only_unavailable_and_records_every_attempt(api_key):
    fake = FakeGeoapify((503, {}), (502, {}), (200, feature_collection()))
    usage = _Usage()
    delays: list[float] = []
    client = GeoapifyPlacesClient(
        usage, transport=fake.transport, max_retries=2, backoff_seconds=0.5, sleep=delays.append
    )

    data = client.fetch(1.0, 2.0, 500)

    assert data["features"] == []
    assert fake.calls == 3
    assert [row["success"] for row in usage.rows] == [False, False, True]
    assert delays == [0.5, 1.0]


def test_quota_error_is_not_retried(api_key):
    fake = FakeGeoapify((429, {}), (200, feature_collection()))
    usage = _Usage()
    client = _client(fake, usage, max_retries=3)

    with pytest.raises(QuotaExceeded):
        client.fetch(1.0, 2.0, 500)
    assert fake.calls == 1


def test_non_object_body_is_unavailable(api_key):
    fake = FakeGeoapify((200, ["not", "an", "object"]))
    with pytest.raises(UpstreamUnavailable):
        _client(fake, _Usage()).fetch(1.0, 2.0, 500)
