# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Versioned schema migrations for the PostgreSQL store.

Migrations live in ``rumormill/migrations/`` as ``NNN_description.py`` files.
Each one defines:
    version: str      e.g. "001"
    description: str  human-readable name
    def up(conn) -> None
    def down(conn) -> None

Applied versions are tracked in a ``_migrations`` table together with a
checksum of the file, so edits to an applied migration show up as drift.

Usage:
    runner = MigrationRunner()
    runner.up()              # apply all pending
    runner.down(target="001")  # roll back to version 001
    runner.status()
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Any

from psycopg2.extras import RealDictCursor

from .exceptions import ConflictError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "_migrations"
DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"
REQUIRED_ATTRIBUTES = ("version", "description", "up", "down")


@dataclass
class MigrationInfo:
    """A migration file found on disk."""

    version: str
    description: str
    checksum: str
    file_path: Path
    module: ModuleType

    def __lt__(self, other: MigrationInfo) -> bool:
        return self.version < other.version


@dataclass
class AppliedMigration:
    version: str
    description: str
    checksum: str
    applied_at: datetime


@dataclass
class MigrationStatus:
    """State of one migration: applied, pending, or checksum_mismatch."""

    version: str
    description: str
    state: str
    applied_at: datetime | None = None
    file_checksum: str | None = None
    db_checksum: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "description": self.description,
            "state": self.state,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "file_checksum": self.file_checksum,
            "db_checksum": self.db_checksum,
        }


class MigrationRunner:
    """Discovers, tracks, and applies schema migrations.

    Args:
        migrations_dir: Directory of NNN_description.py files.
        connection_factory: Callable returning a psycopg2 connection, closed
            after use. Defaults to the shared pool in ``rumormill.core.db``.
    """

    def __init__(
        self,
        migrations_dir: str | Path | None = None,
        connection_factory: Callable[[], Any] | None = None,
    ):
        self.migrations_dir = Path(migrations_dir) if migrations_dir else DEFAULT_MIGRATIONS_DIR
        self._connection_factory = connection_factory
        self._migrations: list[MigrationInfo] | None = None

    @contextmanager
    def _connection(self) -> Generator[Any, None, None]:
        if self._connection_factory is not None:
            conn = self._connection_factory()
            try:
                yield conn
            finally:
                conn.close()
            return

        from .db import get_connection

        with get_connection() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _compute_checksum(file_path: Path) -> str:
        return hashlib.sha256(file_path.read_bytes()).hexdigest()[:16]

    @staticmethod
    def _load_module(file_path: Path) -> ModuleType:
        module_name = f"rumormill_migration_{file_path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise ValueError(f"Cannot load migration: {file_path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def discover(self) -> list[MigrationInfo]:
        """Migration files in ``migrations_dir``, sorted by version."""
        if self._migrations is not None:
            return self._migrations

        if not self.migrations_dir.is_dir():
            logger.warning("Migrations directory not found: %s", self.migrations_dir)
            self._migrations = []
            return []

        migrations: list[MigrationInfo] = []
        for path in sorted(self.migrations_dir.glob("*.py")):
            prefix = path.stem.split("_", 1)[0]
            if path.name.startswith("__") or not prefix.isdigit():
                continue

            module = self._load_module(path)
            for attr in REQUIRED_ATTRIBUTES:
                if not hasattr(module, attr):
                    raise ValueError(f"Migration {path.name} missing required attribute: {attr}")

            migrations.append(
                MigrationInfo(
                    version=module.version,
                    description=module.description,
                    checksum=self._compute_checksum(path),
                    file_path=path,
                    module=module,
                )
            )

        migrations.sort()
        self._migrations = migrations
        return migrations

    # ------------------------------------------------------------------
    # Tracking table
    # ------------------------------------------------------------------

    def _ensure_table(self, conn: Any) -> None:
        with conn.cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    version TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
        conn.commit()

    def _get_applied(self, conn: Any) -> list[AppliedMigration]:
        self._ensure_table(conn)
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"SELECT version, description, checksum, applied_at FROM {MIGRATIONS_TABLE} ORDER BY version")
            return [
                AppliedMigration(
                    version=row["version"],
                    description=row["description"],
                    checksum=row["checksum"],
                    applied_at=row["applied_at"],
                )
                for row in cur.fetchall()
            ]

    def _step(self, conn: Any, migration: MigrationInfo, direction: str, dry_run: bool) -> None:
        """Run one migration in one direction and record it, as one transaction."""
        verb = "apply" if direction == "up" else "roll back"
        if dry_run:
            logger.info("[DRY RUN] Would %s %s: %s", verb, migration.version, migration.description)
            return

        logger.info("Migration %s (%s): %s", migration.version, direction, migration.description)
        try:
            getattr(migration.module, direction)(conn)
            with conn.cursor() as cur:
                if direction == "up":
                    cur.execute(
                        f"INSERT INTO {MIGRATIONS_TABLE} (version, description, checksum) VALUES (%s, %s, %s)",
                        (migration.version, migration.description, migration.checksum),
                    )
                else:
                    cur.execute(f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = %s", (migration.version,))
            conn.commit()
        except Exception:
            conn.rollback()
            logger.exception("Failed to %s migration %s", verb, migration.version)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def status(self) -> list[MigrationStatus]:
        migrations = self.discover()
        with self._connection() as conn:
            applied = {m.version: m for m in self._get_applied(conn)}

        result: list[MigrationStatus] = []
        for m in migrations:
            record = applied.get(m.version)
            if record is None:
                result.append(MigrationStatus(m.version, m.description, "pending", file_checksum=m.checksum))
                continue
            state = "applied" if record.checksum == m.checksum else "checksum_mismatch"
            result.append(
                MigrationStatus(
                    version=m.version,
                    description=m.description,
                    state=state,
                    applied_at=record.applied_at,
                    file_checksum=m.checksum,
                    db_checksum=record.checksum,
                )
            )
        return result

    def up(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Apply pending migrations, up to and including ``target`` if given.

        Each migration commits on its own; a failing one is rolled back and
        re-raised, leaving earlier ones applied.
        """
        migrations = self.discover()
        done: list[str] = []

        with self._connection() as conn:
            applied = {m.version for m in self._get_applied(conn)}
            to_apply = [m for m in migrations if m.version not in applied]
            if target:
                to_apply = [m for m in to_apply if m.version <= target]

            if not to_apply:
                logger.info("No pending migrations to apply.")
                return []

            for migration in to_apply:
                self._step(conn, migration, "up", dry_run)
                done.append(migration.version)

        return done

    def down(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Roll back migrations.

        Args:
            target: Roll back everything above this version (which stays
                applied). None rolls back only the latest migration.
        """
        migration_map = {m.version: m for m in self.discover()}
        done: list[str] = []

        with self._connection() as conn:
            to_rollback = sorted((m.version for m in self._get_applied(conn)), reverse=True)
            if target:
                to_rollback = [v for v in to_rollback if v > target]
            else:
                to_rollback = to_rollback[:1]

            if not to_rollback:
                logger.info("No migrations to roll back.")
                return []

            for version in to_rollback:
                migration = migration_map.get(version)
                if migration is None:
                    logger.warning("Migration file for version %s not found, skipping rollback", version)
                    continue
                self._step(conn, migration, "down", dry_run)
                done.append(version)

        return done

    def bootstrap(self, *, dry_run: bool = False) -> list[str]:
        """Apply every migration to a fresh database.

        Raises:
            ConflictError: If any migration is already applied.
        """
        with self._connection() as conn:
            applied = self._get_applied(conn)
        if applied:
            raise ConflictError(f"Cannot bootstrap: {len(applied)} migration(s) already applied. Use 'migrate up' instead.")
        return self.up(dry_run=dry_run)
