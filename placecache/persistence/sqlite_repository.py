"""SQLite implementation of the persisted place cache and the usage log."""

from __future__ import annotations

import datetime as dt
import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from pydantic import ValidationError

from placecache.domain.geometry import bounding_box
from placecache.domain.models import PlaceRecord
from placecache.persistence.migration_runner import upgrade_schema
from placecache.persistence.models import (
    PersistedCacheRecord,
    UsageBucket,
    UsageRecord,
    UsageStatistics,
    UsageTotals,
)
from placecache.shared.exceptions import CacheStoreError

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_ts(value: dt.datetime) -> str:
    """Fixed-width UTC text so lexical order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).strftime(_TS_FORMAT)


def parse_ts(raw: str) -> dt.datetime:
    return dt.datetime.strptime(raw, _TS_FORMAT).replace(tzinfo=dt.timezone.utc)


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _from_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


class _SQLiteStore:
    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        with self._lock, self._session() as conn:
            upgrade_schema(conn)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise CacheStoreError(f"cannot open {self._db_path}: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise CacheStoreError(f"sqlite error on {self._db_path.name}: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per operation; nothing is held open."""


class SQLitePlaceCacheRepository(_SQLiteStore):
    backend = "sqlite"

    _COLUMNS = (
        "record_id, lat, lng, radius, places_json, total_results, "
        "raw_response_json, created_at, updated_at"
    )

    def __init__(
        self,
        db_path: str | Path,
        *,
        tolerance_ratio: float = 0.1,
        coverage_ratio: float = 0.8,
        write_match_degrees: float = 0.001,
    ) -> None:
        self._tolerance_ratio = tolerance_ratio
        self._coverage_ratio = coverage_ratio
        self._write_match_degrees = write_match_degrees
        super().__init__(db_path)

    def _row_to_record(self, row: Sequence[Any]) -> PersistedCacheRecord:
        try:
            places = [PlaceRecord.model_validate(item) for item in _from_json(row[4], [])]
            return PersistedCacheRecord(
                record_id=row[0],
                lat=row[1],
                lng=row[2],
                radius=row[3],
                places=places,
                total_results=row[5],
                raw_response=_from_json(row[6], {}),
                created_at=parse_ts(row[7]),
                updated_at=parse_ts(row[8]),
            )
        except (ValidationError, ValueError, TypeError) as exc:
            raise CacheStoreError(f"corrupt place_cache row {row[0]}: {exc}") from exc

    def find_reusable(
        self,
        lat: float,
        lng: float,
        radius: int,
        *,
        max_age: Optional[dt.timedelta] = dt.timedelta(days=7),
        now: Optional[dt.datetime] = None,
    ) -> Optional[PersistedCacheRecord]:
        """Most recently updated record close enough to answer this query.

        The center must fall inside a box of ``radius * tolerance_ratio``
        meters, the stored radius must cover ``radius * coverage_ratio`` and,
        unless ``max_age`` is None, the record must be younger than ``max_age``.
        """
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius * self._tolerance_ratio)
        sql = (
            f"SELECT {self._COLUMNS} FROM place_cache "
            "WHERE lat BETWEEN ? AND ? AND lng BETWEEN ? AND ? AND radius >= ?"
        )
        params: list[Any] = [min_lat, max_lat, min_lng, max_lng, radius * self._coverage_ratio]
        if max_age is not None:
            cutoff = (now or utc_now()) - max_age
            sql += " AND updated_at > ?"
            params.append(format_ts(cutoff))
        sql += " ORDER BY updated_at DESC, record_id DESC LIMIT 1"

        with self._session() as conn:
            row = conn.execute(sql, params).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def upsert(
        self,
        lat: float,
        lng: float,
        radius: int,
        places: Sequence[PlaceRecord],
        raw_response: dict[str, Any],
        *,
        updated_at: Optional[dt.datetime] = None,
    ) -> PersistedCacheRecord:
        """Update the record in the tight box for this radius class, or insert one."""
        stamp = format_ts(updated_at or utc_now())
        places_json = _to_json([place.model_dump(mode="json") for place in places])
        raw_json = _to_json(raw_response)
        delta = self._write_match_degrees

        with self._lock, self._session() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                """
                SELECT record_id FROM place_cache
                WHERE lat BETWEEN ? AND ? AND lng BETWEEN ? AND ? AND radius = ?
                ORDER BY updated_at DESC, record_id DESC
                LIMIT 1
                """,
                (lat - delta, lat + delta, lng - delta, lng + delta, int(radius)),
            ).fetchone()
            if row is None:
                cursor = conn.execute(
                    """
                    INSERT INTO place_cache (
                        lat, lng, radius, places_json, total_results,
                        raw_response_json, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (lat, lng, int(radius), places_json, len(places), raw_json, stamp, stamp),
                )
                record_id = cursor.lastrowid
            else:
                record_id = row[0]
                conn.execute(
                    """
                    UPDATE place_cache SET
                        lat=?, lng=?, places_json=?, total_results=?,
                        raw_response_json=?, updated_at=?
                    WHERE record_id=?
                    """,
                    (lat, lng, places_json, len(places), raw_json, stamp, record_id),
                )
            stored = conn.execute(
                f"SELECT {self._COLUMNS} FROM place_cache WHERE record_id=?",
                (record_id,),
            ).fetchone()
        return self._row_to_record(stored)

    def purge_older_than(self, cutoff: dt.datetime) -> int:
        with self._lock, self._session() as conn:
            cursor = conn.execute(
                "DELETE FROM place_cache WHERE updated_at < ?",
                (format_ts(cutoff),),
            )
            return cursor.rowcount

    def count(self) -> int:
        with self._session() as conn:
            return conn.execute("SELECT COUNT(*) FROM place_cache").fetchone()[0]


class SQLiteUsageRepository(_SQLiteStore):
    backend = "sqlite"

    def append(self, record: UsageRecord) -> None:
        with self._lock, self._session() as conn:
            conn.execute(
                """
                INSERT INTO api_usage (
                    provider, endpoint, success, error_message, status_code, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.provider,
                    record.endpoint,
                    1 if record.success else 0,
                    record.error_message,
                    record.status_code,
                    format_ts(record.timestamp),
                ),
            )

    @staticmethod
    def _range_clause(
        start: Optional[dt.datetime], end: Optional[dt.datetime]
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if start is not None:
            clauses.append("timestamp >= ?")
            params.append(format_ts(start))
        if end is not None:
            clauses.append("timestamp <= ?")
            params.append(format_ts(end))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def aggregate(
        self,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> UsageStatistics:
        where, params = self._range_clause(start, end)
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    provider,
                    endpoint,
                    substr(timestamp, 1, 10) AS day,
                    COUNT(*),
                    SUM(success),
                    SUM(1 - success)
                FROM api_usage
                {where}
                GROUP BY provider, endpoint, day
                ORDER BY day DESC, provider ASC, endpoint ASC
                """,
                params,
            ).fetchall()

        buckets = [
            UsageBucket(
                provider=row[0],
                endpoint=row[1],
                date=row[2],
                total_calls=row[3],
                successful_calls=row[4] or 0,
                failed_calls=row[5] or 0,
            )
            for row in rows
        ]
        overall = UsageTotals(
            total=sum(b.total_calls for b in buckets),
            success=sum(b.successful_calls for b in buckets),
            failed=sum(b.failed_calls for b in buckets),
        )
        return UsageStatistics(per_provider_per_day=buckets, overall=overall)

    def count(
        self,
        *,
        provider: Optional[str] = None,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> int:
        where, params = self._range_clause(start, end)
        if provider is not None:
            where = f"{where} AND provider = ?" if where else "WHERE provider = ?"
            params.append(provider)
        with self._session() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM api_usage {where}", params).fetchone()[0]


__all__ = [
    "SQLitePlaceCacheRepository",
    "SQLiteUsageRepository",
    "format_ts",
    "parse_ts",
    "utc_now",
]
