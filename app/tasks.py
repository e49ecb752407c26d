"""Celery tasks for periodic maintenance.

The gateway never schedules work itself; run a Celery worker with beat to
sweep expired sessions.
"""

import os
import logging
from celery import Celery
from datetime import timedelta

from .config import Settings
from .db import AccountStore, ConnectionPool
from .sessions import SessionManager

logger = logging.getLogger(__name__)

# Celery configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
celery_app = Celery("auth_gateway", broker=REDIS_URL, backend=REDIS_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_time_limit=300,
)

celery_app.conf.beat_schedule = {
    'cleanup-expired-sessions': {
        'task': 'app.tasks.cleanup_expired_sessions',
        'schedule': timedelta(minutes=int(os.getenv("SESSION_SWEEP_INTERVAL_MINUTES", "60"))),
    },
}


def sweep_expired_sessions(settings: Settings) -> int:
    """Delete expired sessions once, using a short-lived single-connection pool."""
    pool = ConnectionPool(settings.database_path, size=1, timeout=settings.db_pool_timeout)
    try:
        return SessionManager(AccountStore(pool)).sweep_expired_sync()
    finally:
        pool.close()


@celery_app.task
def cleanup_expired_sessions():
    """Clean up expired user sessions."""
    count = sweep_expired_sessions(Settings.from_env())
    return f"Removed {count} expired sessions"
