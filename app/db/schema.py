"""
SQL migration runner for the booking tables.
Applies migrations/*.sql in filename order; every statement is idempotent.
"""

from pathlib import Path

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent / "migrations"


def split_statements(sql: str) -> list[str]:
    """Drop line comments, then split on ';'."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


async def apply_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """Run every migration file inside one transaction. Returns statements executed."""
    files = sorted(migrations_dir.glob("*.sql"))
    if not files:
        logger.warning("No migration files found", path=str(migrations_dir))
        return 0

    executed = 0
    async with db_pool.transaction() as conn:
        for migration_file in files:
            statements = split_statements(migration_file.read_text(encoding="utf-8"))
            logger.info(
                "Applying migration",
                file=migration_file.name,
                statement_count=len(statements),
            )
            for statement in statements:
                await conn.execute(statement)
                executed += 1

    logger.info("Migrations applied", files=len(files), statements=executed)
    return executed


async def run_migrations() -> None:
    """Worker entrypoint: initialize the pool, migrate, close."""
    if not settings.database_configured():
        raise RuntimeError("SUPABASE_DB_URL is required to run migrations")

    await db_pool.initialize()
    try:
        await apply_migrations()
    finally:
        await db_pool.close()
