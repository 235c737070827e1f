"""placecache CLI: nearby lookups, forced refresh, purge, usage reports and schema upgrades."""

from __future__ import annotations

import argparse
import datetime as dt
import json
import sqlite3
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from placecache.application.context import make_nearby_places_service
from placecache.application.nearby_places import NearbyPlacesService
from placecache.config.settings import load_cache_settings
from placecache.domain.exceptions import DomainError
from placecache.persistence.migration_runner import schema_version, upgrade_schema
from placecache.security.key_manager import get_key_manager
from placecache.shared.exceptions import CacheStoreError, ExternalServiceError, KeyMissingError

load_dotenv()


def _parse_date(raw: str) -> dt.datetime:
    value = dt.datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value


def _result_payload(result) -> dict[str, Any]:
    return {
        "served_from": result.served_from.value,
        "stale": result.stale,
        "as_of": result.as_of.isoformat(),
        "total_results": result.total_results,
        "places": [place.model_dump(mode="json", exclude={"raw"}) for place in result.places],
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="placecache", description="Nearby places cache")
    parser.add_argument("--db", default=None, help="SQLite DB path (default: PLACES_CACHE_DB)")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("nearby", "Look up places around a point"), ("refresh", "Force a provider fetch")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("lat")
        cmd.add_argument("lng")
        cmd.add_argument("--radius", default=None, help="Meters (default 1000)")
        if name == "nearby":
            cmd.add_argument("--force-refresh", action="store_true")

    purge = sub.add_parser("purge", help="Delete persisted records older than N days")
    purge.add_argument("--days", type=float, default=None)

    usage = sub.add_parser("usage", help="Print usage statistics and quota status")
    usage.add_argument("--start", type=_parse_date, default=None, help="ISO date/time, UTC if naive")
    usage.add_argument("--end", type=_parse_date, default=None, help="ISO date/time, UTC if naive")

    sub.add_parser("migrate", help="Create or upgrade the cache database schema")
    return parser


def _run(service: NearbyPlacesService, args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "nearby":
        result = service.get_nearby_places(args.lat, args.lng, args.radius, force_refresh=args.force_refresh)
        return _result_payload(result)
    if args.command == "refresh":
        return _result_payload(service.refresh_cache(args.lat, args.lng, args.radius))
    if args.command == "purge":
        return {"deleted_count": service.purge_stale_cache(args.days)}
    stats = service.get_usage_statistics(args.start, args.end)
    return {
        "stats": stats.model_dump(mode="json"),
        "quota": service.get_quota_status().model_dump(mode="json"),
    }


def _migrate(db: Optional[str]) -> dict[str, Any]:
    db_path = Path(db) if db else load_cache_settings().db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        applied = upgrade_schema(conn)
        version = schema_version(conn)
    except sqlite3.Error as exc:
        raise CacheStoreError(f"cannot migrate {db_path}: {exc}") from exc
    finally:
        conn.close()
    return {
        "db_path": str(db_path),
        "schema_version": version,
        "applied": [migration.label for migration in applied],
    }


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "migrate":
        try:
            payload = _migrate(args.db)
        except CacheStoreError as exc:
            print(json.dumps({"success": False, "error": type(exc).__name__, "message": str(exc)}, ensure_ascii=False))
            return 1
        print(json.dumps({"success": True, **payload}, ensure_ascii=False, indent=2))
        return 0

    service = make_nearby_places_service(db_path=args.db, start_sweeper=False)
    try:
        payload = _run(service, args)
    except (DomainError, ExternalServiceError, KeyMissingError, CacheStoreError) as exc:
        msg = get_key_manager().scrub_text(str(exc))
        print(json.dumps({"success": False, "error": type(exc).__name__, "message": msg}, ensure_ascii=False))
        return 1
    finally:
        service.close()
    print(json.dumps({"success": True, **payload}, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
