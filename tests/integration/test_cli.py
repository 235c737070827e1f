"""CLI commands against a temp database and a scripted provider."""

from __future__ import annotations

import json

import pytest

from conftest import FakeGeoapify, feature_collection, make_feature
from placecache import cli
from placecache.application import context

LAT, LNG = "1.5533", "110.3592"


@pytest.fixture
def fake(monkeypatch):
    fake = FakeGeoapify((200, feature_collection(make_feature("Cat Museum", 1.55, 110.36))))
    real = context.make_nearby_places_service

    def _factory(*args, **kwargs):
        kwargs["transport"] = fake.transport
        return real(*args, **kwargs)

    monkeypatch.setattr(cli, "make_nearby_places_service", _factory)
    return fake


def _run(capsys, *argv) -> tuple[int, dict]:
    code = cli.main(list(argv))
    return code, json.loads(capsys.readouterr().out)


def test_nearby_then_memory_is_per_process(db_path, api_key, fake, capsys):
    code, out = _run(capsys, "--db", str(db_path), "nearby", LAT, LNG)
    assert code == 0
    assert out["served_from"] == "upstream"
    assert out["places"][0]["name"] == "Cat Museum"
    assert "raw" not in out["places"][0]

    # a new process starts with an empty memory tier but finds the SQLite record
    code, out = _run(capsys, "--db", str(db_path), "nearby", LAT, LNG, "--radius", "1000")
    assert out["served_from"] == "persisted"
    assert fake.calls == 1


def test_refresh_purge_and_usage(db_path, api_key, fake, capsys):
    _run(capsys, "--db", str(db_path), "refresh", LAT, LNG)
    code, out = _run(capsys, "--db", str(db_path), "purge", "--days", "30")
    assert code == 0
    assert out["deleted_count"] == 0

    code, out = _run(capsys, "--db", str(db_path), "usage")
    assert out["stats"]["overall"]["total"] == 1
    assert out["quota"]["provider"] == "geoapify"


def test_errors_exit_non_zero(db_path, fake, capsys):
    code, out = _run(capsys, "--db", str(db_path), "nearby", "abc", LNG)
    assert code == 1
    assert out["success"] is False
    assert out["error"] == "InvalidInput"

    code, out = _run(capsys, "--db", str(db_path), "nearby", LAT, LNG)
    assert code == 1
    assert out["error"] == "KeyMissingError"
