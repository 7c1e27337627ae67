"""Checksum-tracked SQL migrations applied on service startup."""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Protocol

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

_SCHEMA_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version text PRIMARY KEY,
    checksum text NOT NULL,
    applied_at timestamptz NOT NULL DEFAULT now()
);
"""


class SettingsProtocol(Protocol):
    database_url: Any


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def load_migrations(directory: Path) -> list[Migration]:
    """Read ``*.sql`` files sorted by name; the file stem is the version."""
    return [
        Migration(version=path.stem, path=path, sql=path.read_text(encoding="utf-8"))
        for path in sorted(directory.glob("*.sql"))
    ]


def pending_migrations(migrations: Iterable[Migration], applied: dict[str, str]) -> list[Migration]:
    """Return migrations not yet applied, refusing edited ones."""
    pending: list[Migration] = []
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is None:
            pending.append(migration)
        elif recorded != migration.checksum:
            raise RuntimeError(
                f"Checksum mismatch for {migration.version}: "
                f"{recorded} (db) != {migration.checksum} (file)"
            )
    return pending


async def apply_migrations(conn: asyncpg.Connection, migrations: list[Migration]) -> int:
    await conn.execute(_SCHEMA_TABLE_SQL)
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    pending = pending_migrations(migrations, {r["version"]: r["checksum"] for r in rows})
    for migration in pending:
        logger.info("applying migration", version=migration.version)
        async with conn.transaction():
            await conn.execute(migration.sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                migration.version,
                migration.checksum,
            )
    return len(pending)


def create_migration_runner(
    settings: SettingsProtocol,
    possible_paths: Iterable[Path],
    *,
    connect_attempts: int = 5,
    retry_delay_seconds: float = 2.0,
) -> Callable[[web.Application], Awaitable[None]]:
    """Create an aiohttp startup hook applying migrations from the first existing path."""
    candidates = list(possible_paths)

    async def apply_migrations_on_startup(_app: web.Application) -> None:
        directory = next((p for p in candidates if p.exists()), None)
        if directory is None:
            logger.warning("migrations directory not found", tried=[str(p) for p in candidates])
            return
        migrations = load_migrations(directory)
        if not migrations:
            logger.warning("no migrations found", directory=str(directory))
            return

        conn = None
        for attempt in range(1, connect_attempts + 1):
            try:
                conn = await asyncpg.connect(str(settings.database_url))
                break
            except (OSError, asyncpg.PostgresError) as exc:
                logger.warning(
                    "database not reachable for migrations",
                    attempt=attempt,
                    max_attempts=connect_attempts,
                    error=str(exc),
                )
                if attempt == connect_attempts:
                    raise
                await asyncio.sleep(retry_delay_seconds)
        assert conn is not None

        try:
            applied = await apply_migrations(conn, migrations)
        finally:
            await conn.close()
        logger.info("migrations up to date", applied=applied)

    return apply_migrations_on_startup
