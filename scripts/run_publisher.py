#!/usr/bin/env python3
"""Publish content whose scheduled time has arrived: run hourly via cron.

Usage:
    python scripts/run_publisher.py
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
        if not os.getenv("WP_URL"):
            raise RuntimeError("WP_URL is not set, nothing to publish to")
        settings = load_config(str(PROJECT_ROOT / "config.yaml"))
        storage = YamlStorage(str(PROJECT_ROOT / "data"))
        publisher = WordPressPublisher(storage.content_items)
        scheduler = Scheduler.from_settings(settings, storage.content_items, publisher)
        run = scheduler.publish_due()

        for content_id in run.published:
            print(f"Published: {content_id}")
        for failure in run.failures:
            print(f"Failed: {failure['content_id']}: {failure['error']}")
        message = f"{run.published_count} published, {len(run.failures)} failures"
        print(message)
        write_last_run(PROJECT_ROOT, "publisher", success=not run.failures, message=message)
    except Exception as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(PROJECT_ROOT, "publisher", success=False, message=str(e))
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
