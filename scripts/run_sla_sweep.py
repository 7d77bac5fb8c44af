#!/usr/bin/env python3
"""SLA escalation sweep: run hourly or daily via cron.

Usage:
    python scripts/run_sla_sweep.py [--days N] [--publish-now]
"""

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from editorial.config import load_config
from editorial.notifier import Notifier
from editorial.sla import SLAEscalation
from editorial.storage import YamlStorage
from editorial.utils.logger import setup_logging
from editorial.utils.run_status import write_last_run
from editorial.wp_publisher import WordPressPublisher


def _option(name: str):
    if name in sys.argv:
        index = sys.argv.index(name)
        if index + 1 < len(sys.argv):
            return sys.argv[index + 1]
    return None


def main():
    setup_logging()

    try:
        settings = load_config(str(PROJECT_ROOT / "config.yaml"))
        storage = YamlStorage(str(PROJECT_ROOT / "data"))
        publish_now = "--publish-now" in sys.argv
        days = _option("--days")

        publisher = None
        if publish_now and os.getenv("WP_URL"):
            publisher = WordPressPublisher(storage.content_items)

        sweep = SLAEscalation(
            storage.content_items,
            Notifier(str(PROJECT_ROOT / "output" / "notification.txt")),
            publisher=publisher,
            deadline_days=settings.sla.deadline_days,
            dashboard_url=settings.site.review_dashboard_url,
        )
        summary = sweep.sweep(
            deadline_days=int(days) if days else None,
            publish_immediately=publish_now,
        )
        message = (
            f"{summary.checked_count} checked, {summary.approved_count} approved, "
            f"{summary.blocked_count} blocked, {len(summary.failures)} failures"
        )
        print(message)
        write_last_run(PROJECT_ROOT, "sla", success=True, message=message)
    except Exception as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(PROJECT_ROOT, "sla", success=False, message=str(e))
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
