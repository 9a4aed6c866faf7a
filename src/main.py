"""
Supermarket Monitor — Application Entrypoint

Configures structlog, creates the async SQLAlchemy engine, bootstraps the
schema and starts the daily scheduler.

Run via:
    python -m src.main           # scheduler, runs daily at DAILY_RUN_HOUR_UTC
    python -m src.main --once    # one pass over the watchlist, then exit
"""

from __future__ import annotations

import argparse
import asyncio

import structlog
from sqlalchemy import text

from src.config import settings
from src.db import create_db_engine
from src.logging_config import configure_logging
from src.models.repository import init_schema
from src.pipeline.daily_job import run_daily_job
from src.pipeline.scheduler import run_scheduler


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m src.main", description="Supermarket Monitor")
    parser.add_argument("--once", action="store_true", help="run the daily job once and exit")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Verify database connection and create missing tables
    4. Run the job once, or start the scheduler until a shutdown signal
    """
    args = _parse_args(argv)
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("supermarket_monitor_startup_begin", version="0.1.0", once=args.once)

    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_CHAT_ID:
        logger.warning("config_telegram_missing", note="notifications disabled")

    try:
        engine, session_factory = await create_db_engine()
    except Exception as e:
        logger.error(
            "database_engine_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    # Health check: verify database connection
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        await init_schema(engine)
        logger.info("database_health_check_passed")
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await engine.dispose()
        raise

    logger.info(
        "supermarket_monitor_startup_complete",
        rendering_available=settings.RENDERING_AVAILABLE,
        transport_order=settings.TRANSPORT_ORDER.value,
        normalization_policy=settings.NORMALIZATION_POLICY.value,
        last_notified_policy=settings.LAST_NOTIFIED_POLICY.value,
    )

    try:
        if args.once:
            summary = await run_daily_job(session_factory)
            logger.info("supermarket_monitor_run_complete", **summary.as_dict())
        else:
            await run_scheduler(session_factory)
    except KeyboardInterrupt:
        logger.info("supermarket_monitor_interrupted_by_user")
    except Exception as e:
        logger.error(
            "supermarket_monitor_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()
        logger.info("supermarket_monitor_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
