"""Auto-migration runner: applies pending SQL migrations on startup.

Discovers sql/migrations/*.sql files, tracks applied versions in
public.schema_migrations, and executes pending ones in order.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent / "sql" / "migrations"

_BOOTSTRAP_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version    VARCHAR(20) PRIMARY KEY,
    name       VARCHAR(255) NOT NULL,
    checksum   VARCHAR(64) NOT NULL,
    applied_at TIMESTAMPTZ DEFAULT now()
);
"""


def discover_migrations(directory: Path = _MIGRATIONS_DIR) -> list[Path]:
    """Migration files sorted by filename (e.g. 001_initial.sql)."""
    if not directory.is_dir():
        logger.debug("No migrations directory found at %s", directory)
        return []
    return sorted(directory.glob("*.sql"))


async def run_migrations(engine: AsyncEngine, directory: Path = _MIGRATIONS_DIR) -> list[str]:
    """Apply pending SQL migrations and return list of newly applied names."""
    files = discover_migrations(directory)
    if not files:
        return []

    applied: list[str] = []
    async with engine.begin() as conn:
        await conn.execute(text(_BOOTSTRAP_SQL))

        result = await conn.execute(text("SELECT version, checksum FROM schema_migrations"))
        existing = {row[0]: row[1] for row in result}

        for path in files:
            version = path.stem.split("_", 1)[0]
            sql = path.read_text(encoding="utf-8")
            checksum = hashlib.sha256(sql.encode()).hexdigest()

            if version in existing:
                if existing[version] != checksum:
                    logger.warning("Migration %s changed after it was applied", path.name)
                continue

            logger.info("Applying migration %s ...", path.name)
            # Multi-statement scripts need asyncpg's simple query protocol
            raw = await conn.get_raw_connection()
            await raw.driver_connection.execute(sql)
            await conn.execute(
                text(
                    "INSERT INTO schema_migrations (version, name, checksum) "
                    "VALUES (:version, :name, :checksum)"
                ),
                {"version": version, "name": path.stem, "checksum": checksum},
            )
            applied.append(path.stem)
            logger.info("Migration %s applied", path.name)

    if applied:
        logger.info("Migrations applied: %s", applied)
    else:
        logger.debug("All migrations up to date")

    return applied
