"""Entry point: prepare the gamification schema"""
import asyncio
import logging
from pathlib import Path

from engagement_engine.config import validate_config, LOG_LEVEL
from engagement_engine.db.connection import Database, db
from engagement_engine.services.container import init_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


async def apply_migrations(database: Database, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """
    Run every .sql file in migrations_dir in name order

    The files are written to be re-runnable (IF NOT EXISTS), so applying
    them to an up-to-date database is a no-op.

    Returns:
        Names of the applied files
    """
    applied = []
    async with database.connection() as conn:
        for path in sorted(migrations_dir.glob("*.sql")):
            logger.info(f"Applying migration {path.name}")
            await conn.execute(path.read_text())
            applied.append(path.name)
        await conn.commit()
    return applied


async def main() -> None:
    """Main application entry point"""
    try:
        logger.info("Validating configuration...")
        validate_config()

        logger.info("Initializing database connection pool...")
        await db.init_pool()

        applied = await apply_migrations(db)
        logger.info(f"Applied {len(applied)} migrations: {', '.join(applied) if applied else 'none'}")

        container = init_container(db)
        service = container.gamification_service
        logger.info(f"Gamification engine ready (timezone {service.calendar.tz}, {len(service.catalog)} mission templates)")

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        logger.info("Closing database connection...")
        await db.close_pool()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
