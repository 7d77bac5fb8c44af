#!/usr/bin/env python3
"""System health check: run hourly via cron."""

import os
import shutil
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import requests
from dotenv import load_dotenv

from editorial.models import ContentStatus
from editorial.notifier import Notifier
from editorial.storage import YamlStorage
from editorial.utils.run_status import read_last_run

load_dotenv()

MAX_AGE = timedelta(hours=26)
MAX_PENDING_REVIEW = 15


def check_last_run(job: str) -> tuple[bool, str]:
    """Verify a scheduled job ran successfully within the last 26 hours."""
    try:
        last_run = read_last_run(PROJECT_ROOT, job)
    except ValueError as e:
        return False, str(e)
    if last_run is None:
        return False, f"No last_run file for {job}"

    status, timestamp, message = last_run
    age = datetime.now(timezone.utc) - timestamp
    if status == "FAILURE":
        return False, f"Last run FAILED {age.total_seconds()/3600:.1f}h ago: {message}"
    if age > MAX_AGE:
        return False, f"Last successful run was {age.total_seconds()/3600:.1f} hours ago"
    return True, f"OK, last run {age.total_seconds()/3600:.1f}h ago"


def check_wordpress_api() -> tuple[bool, str]:
    """Verify WP REST API is accessible."""
    wp_url = os.getenv("WP_URL", "")
    try:
        resp = requests.get(f"{wp_url}/wp-json/wp/v2/", timeout=10)
    except requests.exceptions.RequestException as e:
        return False, f"Cannot reach WordPress: {e}"
    if resp.status_code == 200:
        return True, "OK"
    return False, f"WordPress API returned {resp.status_code}"


def check_disk_space() -> tuple[bool, str]:
    """Warn if disk > 80% full."""
    total, used, free = shutil.disk_usage("/")
    pct_used = used / total * 100
    if pct_used > 80:
        return False, f"Disk {pct_used:.1f}% full ({free // (1024**3)}GB free)"
    return True, f"Disk {pct_used:.1f}% used"


def check_review_backlog() -> tuple[bool, str]:
    """Alert if items are piling up in human review."""
    storage = YamlStorage(str(PROJECT_ROOT / "data"))
    pending = storage.content_items.count({"status": ContentStatus.PENDING_REVIEW})
    if pending > MAX_PENDING_REVIEW:
        return False, f"{pending} items pending review (reviewers needed)"
    return True, f"{pending} items pending review"


def main():
    print(f"Health check: {datetime.now(timezone.utc).isoformat()}")
    alerts = []

    checks = [
        ("Pipeline Run", lambda: check_last_run("pipeline")),
        ("SLA Sweep", lambda: check_last_run("sla")),
        ("Scheduler", lambda: check_last_run("scheduler")),
        ("Publisher", lambda: check_last_run("publisher")),
        ("Disk Space", check_disk_space),
        ("Review Backlog", check_review_backlog),
    ]

    # Only check WP if credentials are configured
    if os.getenv("WP_URL"):
        checks.append(("WordPress API", check_wordpress_api))

    for name, check_fn in checks:
        ok, msg = check_fn()
        status = "OK" if ok else "FAIL"
        print(f"  [{status}] {name}: {msg}")
        if not ok:
            alerts.append(f"{name}: {msg}")

    if alerts:
        Notifier(str(PROJECT_ROOT / "output" / "health_alert.txt")).send(
            "Editorial pipeline ALERT", "Health check failures:\n\n" + "\n".join(alerts)
        )
        return 1

    print("All checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
