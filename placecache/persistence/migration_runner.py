"""Versioned schema for the place cache database.

Migrations are the numbered ``migrations/NNNN_name.sql`` files. The applied
version lives in ``PRAGMA user_version``; ``cache_schema_history`` keeps the
checksum of every applied file so an edited migration is refused instead of
silently diverging from deployed databases.
"""

from __future__ import annotations

import hashlib
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from placecache.shared.exceptions import CacheStoreError

_MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Tables the cache and usage repositories read and write.
REQUIRED_TABLES = ("place_cache", "api_usage")


class SchemaError(CacheStoreError):
    pass


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.name}"


def load_migrations(directory: Path = _MIGRATIONS_DIR) -> list[Migration]:
    migrations: list[Migration] = []
    for path in sorted(directory.glob("*.sql")):
        number, _, name = path.stem.partition("_")
        if not number.isdigit():
            raise SchemaError(f"migration file without a version prefix: {path.name}")
        migrations.append(Migration(int(number), name, path.read_text(encoding="utf-8")))

    expected = list(range(1, len(migrations) + 1))
    if [m.version for m in migrations] != expected:
        raise SchemaError(f"migration versions must run 1..N without gaps: {[m.label for m in migrations]}")
    return migrations


def schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def _history(conn: sqlite3.Connection) -> dict[int, str]:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cache_schema_history (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
        """
    )
    conn.commit()
    return {int(v): str(c) for v, c in conn.execute("SELECT version, checksum FROM cache_schema_history")}


def missing_tables(conn: sqlite3.Connection) -> list[str]:
    present = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    return [table for table in REQUIRED_TABLES if table not in present]


def upgrade_schema(
    conn: sqlite3.Connection,
    migrations: Optional[Sequence[Migration]] = None,
) -> list[Migration]:
    """Bring ``conn`` up to the newest migration; returns what was applied now."""
    migrations = list(migrations) if migrations is not None else load_migrations()
    history = _history(conn)
    current = schema_version(conn)

    for migration in migrations:
        recorded = history.get(migration.version)
        if recorded is not None and recorded != migration.checksum:
            raise SchemaError(f"migration {migration.label} was edited after it was applied")

    applied: list[Migration] = []
    for migration in migrations:
        if migration.version <= current:
            continue
        conn.executescript(migration.sql)
        conn.execute(
            "INSERT OR REPLACE INTO cache_schema_history(version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
            (
                migration.version,
                migration.name,
                migration.checksum,
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            ),
        )
        # PRAGMA does not take bound parameters; version is an int from the file name.
        conn.execute(f"PRAGMA user_version = {migration.version:d}")
        conn.commit()
        applied.append(migration)

    missing = missing_tables(conn)
    if missing:
        raise SchemaError(f"schema at version {schema_version(conn)} lacks tables: {', '.join(missing)}")
    return applied


__all__ = [
    "Migration",
    "REQUIRED_TABLES",
    "SchemaError",
    "load_migrations",
    "missing_tables",
    "schema_version",
    "upgrade_schema",
]
