"""Scheduler: assigns publish times to approved content under a daily quota.

Approved items without a publish time are taken in priority order (highest
first, then oldest) and spread evenly across today's working window. Items
already holding a publish time today count against the quota, so repeated runs
on the same day never exceed it.

`publish_due` is the hourly half: it pushes every scheduled (or SLA
auto-approved) item whose publish time has arrived to the publish target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from editorial.models import ContentStatus, parse_timestamp, utcnow

log = logging.getLogger(__name__)


@dataclass
class Assignment:
    content_id: str
    title: str
    scheduled_at: datetime
    priority: int = 0

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "title": self.title,
            "scheduled_at": self.scheduled_at.isoformat(),
            "priority": self.priority,
        }


@dataclass
class ScheduleRun:
    scheduled_count: int = 0
    scheduled_items: list[Assignment] = field(default_factory=list)
    daily_remaining: int = 0
    next_schedule_date: datetime | None = None
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scheduled_count": self.scheduled_count,
            "scheduled_items": [a.to_dict() for a in self.scheduled_items],
            "daily_remaining": self.daily_remaining,
            "next_schedule_date": self.next_schedule_date.isoformat() if self.next_schedule_date else None,
            "failures": self.failures,
        }


@dataclass
class PublishRun:
    published: list[str] = field(default_factory=list)
    queued: list[str] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    @property
    def published_count(self) -> int:
        return len(self.published)

    def to_dict(self) -> dict:
        return {
            "published_count": self.published_count,
            "published": self.published,
            "queued": self.queued,
            "failures": self.failures,
        }


def _publish_slot(row: dict, unreadable: list | None = None) -> datetime | None:
    """The row's scheduled_publish_at, or None when missing or unparseable."""
    try:
        return parse_timestamp(row.get("scheduled_publish_at"))
    except ValueError:
        log.warning(f"Unparseable scheduled_publish_at {row.get('scheduled_publish_at')!r}",
                    extra={"content_id": row.get("id")})
        if unreadable is not None:
            unreadable.append({"content_id": row.get("id"),
                               "error": "invalid scheduled_publish_at"})
        return None


def _parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def publish_times(count: int, day: datetime, window_start="09:00", window_end="17:00") -> list[datetime]:
    """`count` timestamps spread evenly from window start to window end on `day`."""
    start = datetime.combine(day.date(), _parse_clock(window_start), tzinfo=day.tzinfo)
    end = datetime.combine(day.date(), _parse_clock(window_end), tzinfo=day.tzinfo)
    window_minutes = int((end - start).total_seconds() // 60)
    interval = window_minutes // (count - 1) if count > 1 else 0
    return [start + timedelta(minutes=i * interval) for i in range(count)]


def schedule(candidates: list[dict], daily_quota: int, already_scheduled_today: int,
             now: datetime, window_start="09:00", window_end="17:00") -> list[Assignment]:
    """Pure assignment: at most `daily_quota - already_scheduled_today` candidates, in order."""
    remaining = max(0, daily_quota - already_scheduled_today)
    selected = candidates[:remaining]
    times = publish_times(len(selected), now, window_start, window_end)
    return [
        Assignment(
            content_id=row["id"],
            title=row.get("title", ""),
            scheduled_at=slot,
            priority=row.get("priority") or 0,
        )
        for row, slot in zip(selected, times)
    ]


def next_schedule_date(now: datetime, window_start="09:00", skip_weekends=False) -> datetime:
    """Tomorrow at window start, moved past Saturday/Sunday if configured."""
    day = now + timedelta(days=1)
    if skip_weekends:
        while day.weekday() >= 5:
            day += timedelta(days=1)
    return datetime.combine(day.date(), _parse_clock(window_start), tzinfo=now.tzinfo)


class Scheduler:
    def __init__(self, content, publisher=None, daily_quota: int = 1, window_start="09:00",
                 window_end="17:00", skip_weekends=False, auto_publish=True):
        self.content = content
        self.publisher = publisher
        self.daily_quota = daily_quota
        self.window_start = window_start
        self.window_end = window_end
        self.skip_weekends = skip_weekends
        self.auto_publish = auto_publish

    @classmethod
    def from_settings(cls, settings, content, publisher=None) -> "Scheduler":
        s = settings.scheduling
        return cls(content, publisher, daily_quota=s.daily_quota, window_start=s.window_start,
                   window_end=s.window_end, skip_weekends=s.skip_weekends,
                   auto_publish=s.auto_publish)

    def candidates(self) -> list[dict]:
        rows = self.content.find(
            {"status": ContentStatus.APPROVED},
            where=lambda row: not row.get("scheduled_publish_at"),
            order_by="created_at",
        )
        # Highest priority first; the sort is stable so creation order breaks ties
        return sorted(rows, key=lambda row: -(row.get("priority") or 0))

    def count_scheduled_today(self, now: datetime, unreadable: list | None = None) -> int:
        """Non-deleted items whose publish time falls on today.

        Rows with an unparseable publish time are not counted; they are
        appended to `unreadable` when a list is given.
        """
        today = now.date()

        def on_today(row):
            slot = _publish_slot(row, unreadable)
            return slot is not None and slot.astimezone(now.tzinfo).date() == today

        return self.content.count(
            where=lambda row: row.get("status") != ContentStatus.DELETED and on_today(row)
        )

    def run(self, daily_quota: int | None = None, publish_immediately: bool = False,
            now: datetime | None = None) -> ScheduleRun:
        now = now or utcnow()
        daily_quota = self.daily_quota if daily_quota is None else daily_quota
        unreadable = []
        already = self.count_scheduled_today(now, unreadable)
        remaining = max(0, daily_quota - already)
        log.info(f"Daily scheduling status: quota {daily_quota}, scheduled {already}, remaining {remaining}")

        if remaining == 0:
            log.info("Daily limit reached, no more scheduling for today")
            return ScheduleRun(
                daily_remaining=0,
                next_schedule_date=next_schedule_date(now, self.window_start, self.skip_weekends),
                failures=unreadable,
            )

        candidates = self.candidates()
        if not candidates:
            log.info("No content ready to schedule")
            return ScheduleRun(daily_remaining=remaining, failures=unreadable)

        run = ScheduleRun(failures=unreadable)
        new_status = ContentStatus.SCHEDULED if self.auto_publish else ContentStatus.APPROVED
        for assignment in schedule(candidates, daily_quota, already, now,
                                   self.window_start, self.window_end):
            try:
                updated = self.content.update(
                    assignment.content_id,
                    {"scheduled_publish_at": assignment.scheduled_at.isoformat(), "status": new_status},
                    expected_status=ContentStatus.APPROVED,
                )
            except Exception as e:
                log.error(f"Scheduling failed: {e}", extra={"content_id": assignment.content_id})
                run.failures.append({"content_id": assignment.content_id, "error": str(e)})
                continue
            if updated is None:
                continue

            run.scheduled_items.append(assignment)
            log.info(f"Scheduled for {assignment.scheduled_at.isoformat()}",
                     extra={"content_id": assignment.content_id})
            if self.auto_publish and publish_immediately and self.publisher is not None:
                self._publish(assignment.content_id, run)

        run.scheduled_count = len(run.scheduled_items)
        run.daily_remaining = remaining - run.scheduled_count
        run.next_schedule_date = next_schedule_date(now, self.window_start, self.skip_weekends)
        log.info(f"Scheduled {run.scheduled_count} items, {run.daily_remaining} remaining today")
        return run

    def _publish(self, content_id: str, run: ScheduleRun):
        try:
            if not self.publisher.publish(content_id):
                run.failures.append({"content_id": content_id, "error": "publish returned false"})
        except Exception as e:
            log.error(f"Publish failed: {e}", extra={"content_id": content_id})
            run.failures.append({"content_id": content_id, "error": f"publish failed: {e}"})

    def due_items(self, now: datetime, unreadable: list | None = None) -> list[dict]:
        """Items whose publish time has arrived, earliest slot first.

        Scheduled items qualify, as do SLA auto-approvals (approved with a
        slot of "now"). Approved items that were only given a slot because
        auto_publish is off wait for a human.
        """

        def due(row):
            status = row.get("status")
            if status != ContentStatus.SCHEDULED and not (
                status == ContentStatus.APPROVED and row.get("auto_approved")
            ):
                return False
            slot = _publish_slot(row, unreadable)
            return slot is not None and slot <= now

        return self.content.find(where=due, order_by="scheduled_publish_at")

    def publish_due(self, now: datetime | None = None) -> PublishRun:
        """Push every due item to the publish target; a failing item never stops the run."""
        now = now or utcnow()
        run = PublishRun()
        if self.publisher is None:
            log.warning("No publish target configured, nothing published")
            return run

        due = self.due_items(now, run.failures)
        log.info(f"{len(due)} items due for publication")
        for row in due:
            content_id = row["id"]
            try:
                ok = self.publisher.publish(content_id)
            except Exception as e:
                log.error(f"Publish failed: {e}", extra={"content_id": content_id})
                run.failures.append({"content_id": content_id, "error": f"publish failed: {e}"})
                continue
            if not ok:
                run.failures.append({"content_id": content_id, "error": "publish returned false"})
                continue

            if self.content.get(content_id).get("status") == ContentStatus.PUBLISHED:
                run.published.append(content_id)
            else:
                run.queued.append(content_id)

        log.info(f"Published {run.published_count} items, {len(run.failures)} failures")
        return run
