"""pytest global fixtures: isolated environment, fake provider, temp SQLite."""

from __future__ import annotations

import datetime as dt
import threading
from pathlib import Path

import httpx
import pytest

from placecache.security.key_manager import GEOAPIFY_KEY_NAME, get_key_manager

TEST_KEY = "test-geoapify-key-1234567890"


@pytest.fixture(autouse=True)
def no_real_apis(monkeypatch):
    """Keep tests off the real provider and away from the developer's .env."""
    monkeypatch.delenv(GEOAPIFY_KEY_NAME, raising=False)
    monkeypatch.delenv("ENABLE_DIAGNOSTICS", raising=False)
    monkeypatch.delenv("PLACES_CACHE_DB", raising=False)
    monkeypatch.delenv("PLACES_COALESCE_INFLIGHT", raising=False)
    monkeypatch.delenv("RATE_LIMIT_REDIS_URL", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    km = get_key_manager()
    km.reload(GEOAPIFY_KEY_NAME)
    yield
    km.reload(GEOAPIFY_KEY_NAME)


@pytest.fixture
def api_key(monkeypatch) -> str:
    monkeypatch.setenv(GEOAPIFY_KEY_NAME, TEST_KEY)
    get_key_manager().reload(GEOAPIFY_KEY_NAME)
    return TEST_KEY


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "placecache.sqlite3"


def make_feature(name: str, lat: float, lng: float, **props) -> dict:
    properties = {
        "name": name,
        "formatted": f"{name}, Kuching, Malaysia",
        "place_id": f"pid-{name.lower().replace(' ', '-')}",
        "categories": ["tourism.sights"],
        "lat": lat,
        "lon": lng,
        **props,
    }
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
    }


def feature_collection(*features: dict) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


class FakeGeoapify:
    """httpx transport that plays back scripted provider responses.

    ``responses`` items are ``(status, json_body)`` tuples or exceptions to
    raise; the last item repeats once the script runs out.
    """

    def __init__(self, *responses, gate: threading.Event | None = None):
        self.responses = list(responses) or [(200, feature_collection())]
        self.requests: list[httpx.Request] = []
        self.gate = gate
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            idx = min(len(self.requests), len(self.responses)) - 1
            item = self.responses[idx]
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status, json=body, request=request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    def __init__(self, start: dt.datetime | None = None):
        self.now = start or dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + dt.timedelta(**delta)
