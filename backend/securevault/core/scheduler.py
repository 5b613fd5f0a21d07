"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Cleanup expired sessions: Runs every SESSION_CLEANUP_HOURS (default 6)
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from securevault.core.config import Settings
from securevault.core.database import Database
from securevault.core.errors import VaultError
from securevault.services.auth_service import AuthService
import logging

logger = logging.getLogger(__name__)


def cleanup_expired_sessions_job(database: Database, settings: Settings) -> int:
    """
    Background job to delete expired session mirrors.

    Expired rows can no longer authenticate anyone; removing them keeps the
    token-hash lookup small.
    """
    with database.session() as db:
        try:
            removed = AuthService(db, settings).cleanup_expired_sessions()
        except VaultError as e:
            logger.error(f"Error in cleanup_expired_sessions_job: {e}")
            return 0

    if removed > 0:
        logger.info(f"Cleanup job completed: Deleted {removed} expired sessions")
    else:
        logger.info("Cleanup job completed: No expired sessions found")
    return removed


def start_scheduler(database: Database, settings: Settings) -> BackgroundScheduler:
    """
    Create and start the background scheduler.

    This should be called when the FastAPI app starts; the returned
    scheduler is handed back to stop_scheduler() at shutdown.
    """
    scheduler = BackgroundScheduler()
    if settings.SESSION_MIRRORING:
        scheduler.add_job(
            cleanup_expired_sessions_job,
            trigger=IntervalTrigger(hours=settings.SESSION_CLEANUP_HOURS),
            args=[database, settings],
            id="cleanup_expired_sessions",
            name="Cleanup expired sessions",
            replace_existing=True
        )

    scheduler.start()
    logger.info(
        f"Background scheduler started. Session cleanup every {settings.SESSION_CLEANUP_HOURS} hours."
    )
    return scheduler


def stop_scheduler(scheduler: BackgroundScheduler) -> None:
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
