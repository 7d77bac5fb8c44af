#!/usr/bin/env python3
"""Assign today's publish slots to approved content: run daily via cron.

Usage:
    python scripts/run_scheduler.py [--quota N] [--publish-now]
"""

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from editorial.config import load_config
from editorial.scheduler import Scheduler
from editorial.storage import YamlStorage
from editorial.utils.logger import setup_logging
from editorial.utils.run_status import write_last_run
from editorial.wp_publisher import WordPressPublisher


def main():
    setup_logging()

    try:
        settings = load_config(str(PROJECT_ROOT / "config.yaml"))
        storage = YamlStorage(str(PROJECT_ROOT / "data"))
        publish_now = "--publish-now" in sys.argv
        quota = None
        if "--quota" in sys.argv:
            quota = int(sys.argv[sys.argv.index("--quota") + 1])

        publisher = WordPressPublisher(storage.content_items) if os.getenv("WP_URL") else None
        scheduler = Scheduler.from_settings(settings, storage.content_items, publisher)
        run = scheduler.run(daily_quota=quota, publish_immediately=publish_now)

        for item in run.scheduled_items:
            print(f"Scheduled: {item.title} at {item.scheduled_at.isoformat()}")
        message = f"{run.scheduled_count} scheduled, {run.daily_remaining} remaining today"
        print(message)
        write_last_run(PROJECT_ROOT, "scheduler", success=True, message=message)
    except Exception as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(PROJECT_ROOT, "scheduler", success=False, message=str(e))
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
