from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")

_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    applied_at_utc TEXT NOT NULL
)
"""


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class MigrationFile:
    version: str
    name: str
    ext: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}"

    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


def discover_migrations(migrations_dir: str | Path) -> list[MigrationFile]:
    """Migration files in version order. Files not named NNNN_name.(sql|py) are ignored."""
    base = Path(migrations_dir)
    if not base.is_dir():
        raise MigrationError(f"Migrations directory not found: {migrations_dir}")

    by_version: dict[str, MigrationFile] = {}
    for entry in sorted(base.iterdir()):
        match = MIGRATION_RE.match(entry.name) if entry.is_file() else None
        if match is None:
            continue
        found = MigrationFile(match.group(1), match.group(2), match.group(3), entry)
        clash = by_version.get(found.version)
        if clash is not None:
            raise MigrationError(f"Duplicate migration version {found.version}: {clash.path.name} and {entry.name}")
        by_version[found.version] = found
    return [by_version[v] for v in sorted(by_version)]


def _load_upgrade(migration: MigrationFile) -> Callable[[sqlite3.Connection], None]:
    loader_spec = importlib.util.spec_from_file_location(
        f"tokengate_migration_{migration.path.stem}",
        str(migration.path),
    )
    if loader_spec is None or loader_spec.loader is None:
        raise MigrationError(f"Could not load migration module: {migration.path}")
    module = importlib.util.module_from_spec(loader_spec)
    loader_spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise MigrationError(f"Python migration missing upgrade(conn): {migration.path}")
    return upgrade


def _apply_one(conn: sqlite3.Connection, migration: MigrationFile, checksum: str) -> None:
    print(f"[DB] Applying migration {migration.path.name}")
    if migration.ext == "sql":
        conn.executescript(migration.path.read_text(encoding="utf-8"))
    else:
        _load_upgrade(migration)(conn)
    conn.execute(
        "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
        (migration.version, migration.name, checksum, datetime.now(timezone.utc).isoformat()),
    )
    conn.commit()


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path) -> list[str]:
    """
    Apply pending migrations in version order and return the labels applied.

    An already-applied version whose file was renamed or edited is an error.
    """
    migrations = discover_migrations(migrations_dir)
    conn.execute(_MIGRATIONS_DDL)
    conn.commit()
    recorded = {
        str(version): (str(name), str(checksum))
        for version, name, checksum in conn.execute("SELECT version, name, checksum FROM schema_migrations")
    }

    applied_now: list[str] = []
    for migration in migrations:
        checksum = migration.checksum()
        previous = recorded.get(migration.version)
        if previous is None:
            _apply_one(conn, migration, checksum)
            applied_now.append(migration.label)
        elif previous != (migration.name, checksum):
            raise MigrationError(
                f"Migration version {migration.version} already applied with different content "
                f"(recorded name={previous[0]}, file name={migration.name})."
            )
    return applied_now


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 200) -> list[tuple[str, str, str]]:
    try:
        return conn.execute(
            "SELECT version, name, applied_at_utc FROM schema_migrations ORDER BY version DESC LIMIT ?",
            (max(1, min(int(limit), 500)),),
        ).fetchall()
    except sqlite3.OperationalError:
        return []
