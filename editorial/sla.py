"""SLA Escalation: auto-approves content left in review past the deadline.

Workflow per sweep:
  1. Find items in pending_review whose pending_since is at least D days ago,
     oldest first
  2. Re-run the publish gate on each
  3. Pass: approve (compare-and-set on pending_review) and schedule for now
     Fail: leave in review, append a note with the blocking errors
  4. Send ONE consolidated notification for the whole batch

A reviewer acting on an item between selection and update wins: the
conditional update fails and the item is reported as skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from editorial.models import ContentStatus, parse_timestamp, utcnow
from editorial.notifier import Notifier, format_sla_report
from editorial.publish_gate import PublishGate

log = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    checked_count: int = 0
    approved_count: int = 0
    blocked_count: int = 0
    items: list[dict] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked_count": self.checked_count,
            "approved_count": self.approved_count,
            "blocked_count": self.blocked_count,
            "items": self.items,
            "failures": self.failures,
        }


def days_pending(pending_since, now: datetime) -> int:
    return int((now - parse_timestamp(pending_since)).total_seconds() // 86400)


class SLAEscalation:
    def __init__(self, content, notifier: Notifier | None = None, publisher=None,
                 deadline_days: int = 5, gate: PublishGate | None = None,
                 dashboard_url: str = ""):
        self.content = content
        self.notifier = notifier or Notifier()
        self.publisher = publisher
        self.deadline_days = deadline_days
        self.gate = gate or PublishGate()
        self.dashboard_url = dashboard_url

    def overdue_items(self, deadline_days: int, now: datetime,
                      unreadable: list | None = None) -> list[dict]:
        """Pending items at least `deadline_days` old, oldest first.

        A row whose pending_since cannot be parsed is left out and appended to
        `unreadable` when a list is given.
        """
        cutoff = now - timedelta(days=deadline_days)

        def overdue(row):
            try:
                since = parse_timestamp(row.get("pending_since"))
            except ValueError:
                log.warning(f"Unparseable pending_since {row.get('pending_since')!r}",
                            extra={"content_id": row.get("id")})
                if unreadable is not None:
                    unreadable.append({"content_id": row.get("id"), "title": row.get("title", ""),
                                       "error": "invalid pending_since"})
                return False
            return since is not None and since <= cutoff

        return self.content.find(
            {"status": ContentStatus.PENDING_REVIEW}, where=overdue, order_by="pending_since",
        )

    def sweep(self, deadline_days: int | None = None, publish_immediately: bool = False,
              now: datetime | None = None) -> SweepSummary:
        deadline_days = self.deadline_days if deadline_days is None else deadline_days
        now = now or utcnow()
        unreadable = []
        candidates = self.overdue_items(deadline_days, now, unreadable)
        summary = SweepSummary(checked_count=len(candidates), failures=unreadable)
        log.info(f"SLA sweep: {len(candidates)} items pending review for {deadline_days}+ days")

        for row in candidates:
            try:
                entry = self._process(row, now)
            except Exception as e:
                log.error(f"SLA processing failed: {e}", extra={"content_id": row["id"]})
                summary.failures.append({"content_id": row["id"], "title": row.get("title", ""),
                                         "error": str(e)})
                continue

            summary.items.append(entry)
            if entry["action"] == "auto_approved":
                summary.approved_count += 1
                if publish_immediately and self.publisher is not None:
                    self._publish(row["id"], entry, summary)
            elif entry["action"] == "blocked":
                summary.blocked_count += 1

        self._notify(summary, deadline_days)
        log.info(
            f"SLA sweep complete: {summary.approved_count} approved, "
            f"{summary.blocked_count} blocked, {len(summary.failures)} failures"
        )
        return summary

    def _process(self, row: dict, now: datetime) -> dict:
        pending = days_pending(row["pending_since"], now)
        result = self.gate.validate(row)
        entry = {
            "content_id": row["id"],
            "title": row.get("title", ""),
            "days_pending": pending,
            "errors": result.errors,
            "warnings": result.warnings,
        }

        if result.passed:
            patch = {
                "status": ContentStatus.APPROVED,
                "auto_approved": True,
                "auto_approved_at": now.isoformat(),
                "auto_approved_reason": f"SLA: {pending} days pending, validation passed",
                "scheduled_publish_at": now.isoformat(),
                "validation_errors": [],
                "validation_warnings": result.warnings,
                "notes": _append_note(
                    row.get("notes"),
                    f"Auto-approved by SLA sweep after {pending} days. "
                    f"Validation: {len(result.warnings)} warning(s).",
                ),
            }
            action = "auto_approved"
        else:
            patch = {
                "validation_errors": result.errors,
                "validation_warnings": result.warnings,
                "notes": _append_note(
                    row.get("notes"),
                    f"SLA: {pending} days pending. Auto-publish blocked by validation "
                    f"errors: {'; '.join(result.errors)}",
                ),
            }
            action = "blocked"

        updated = self.content.update(row["id"], patch, expected_status=ContentStatus.PENDING_REVIEW)
        if updated is None:
            log.info("Left review before SLA update, skipping", extra={"content_id": row["id"]})
            action = "skipped"
        else:
            log.info(f"SLA {action} after {pending} days", extra={"content_id": row["id"]})
        return {**entry, "action": action}

    def _publish(self, content_id: str, entry: dict, summary: SweepSummary):
        try:
            entry["published"] = bool(self.publisher.publish(content_id))
        except Exception as e:
            log.error(f"Publish after auto-approval failed: {e}", extra={"content_id": content_id})
            entry["published"] = False
            summary.failures.append({"content_id": content_id, "title": entry["title"],
                                     "error": f"publish failed: {e}"})

    def _notify(self, summary: SweepSummary, deadline_days: int):
        approved = [i for i in summary.items if i["action"] == "auto_approved"]
        blocked = [i for i in summary.items if i["action"] == "blocked"]
        if not approved and not blocked:
            return
        subject, body = format_sla_report(approved, blocked, deadline_days, self.dashboard_url)
        try:
            self.notifier.send(subject, body)
        except Exception as e:
            log.error(f"SLA notification failed: {e}")


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note
