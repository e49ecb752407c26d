#!/usr/bin/env python3
"""
Delete expired sessions once. Meant for cron or a container job when the
Celery beat schedule in app/tasks.py is not in use.
"""

import sys
import logging
import argparse
from pathlib import Path

# Add app to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from app.config import Settings, resolve_database_path
from app.tasks import sweep_expired_sessions


def main():
    parser = argparse.ArgumentParser(description="Remove expired login sessions")
    parser.add_argument("--database-url", help="sqlite URL, overrides DATABASE_URL")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    settings = Settings.from_env()
    if args.database_url:
        settings.database_path = resolve_database_path(args.database_url)

    count = sweep_expired_sessions(settings)
    print(f"Removed {count} expired sessions from {settings.database_path}")


if __name__ == "__main__":
    main()
