"""Tests for the Scheduler."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from editorial.models import ContentStatus
from editorial.scheduler import Scheduler, next_schedule_date, publish_times, schedule


def _approved(make_item, n, **overrides):
    return [make_item(status="approved", title=f"Article {i}", **overrides) for i in range(n)]


class TestPublishTimes:
    def test_even_spacing_across_window(self, now):
        times = publish_times(3, now, "09:00", "17:00")
        assert [t.strftime("%H:%M") for t in times] == ["09:00", "13:00", "17:00"]

    def test_single_item_at_window_start(self, now):
        assert publish_times(1, now)[0].strftime("%H:%M") == "09:00"

    def test_zero_items(self, now):
        assert publish_times(0, now) == []

    def test_interval_is_floored(self, now):
        times = publish_times(4, now, "09:00", "10:00")
        assert [t.minute for t in times] == [0, 20, 40, 0]
        assert times[-1].hour == 10


class TestPureSchedule:
    def test_quota_minus_already_scheduled(self, now):
        candidates = [{"id": str(i), "title": f"T{i}"} for i in range(5)]
        assignments = schedule(candidates, daily_quota=3, already_scheduled_today=2, now=now)
        assert [a.content_id for a in assignments] == ["0"]

    def test_over_quota_assigns_nothing(self, now):
        assert schedule([{"id": "a"}], daily_quota=1, already_scheduled_today=3, now=now) == []


class TestNextScheduleDate:
    def test_tomorrow_at_window_start(self, now):
        assert next_schedule_date(now) == datetime(2026, 3, 19, 9, 0, tzinfo=timezone.utc)

    def test_skips_weekend(self):
        friday = datetime(2026, 3, 20, 15, 0, tzinfo=timezone.utc)
        assert next_schedule_date(friday, skip_weekends=True).date() == datetime(2026, 3, 23).date()
        assert next_schedule_date(friday).date() == datetime(2026, 3, 21).date()


class TestSchedulerRun:
    def test_quota_three_with_two_already_scheduled(self, storage, make_item, now):
        """Quota 3, two already scheduled today, five candidates: exactly one more."""
        make_item(status="scheduled", scheduled_publish_at=now.replace(hour=9).isoformat())
        make_item(status="approved", scheduled_publish_at=now.replace(hour=10).isoformat())
        _approved(make_item, 5)

        run = Scheduler(storage.content_items, daily_quota=3).run(now=now)
        assert run.scheduled_count == 1
        assert run.daily_remaining == 0
        scheduled = storage.content_items.count({"status": ContentStatus.SCHEDULED})
        assert scheduled == 2

    def test_highest_priority_first_then_oldest(self, storage, make_item, now):
        low = make_item(status="approved", priority=1, title="low")
        first_high = make_item(status="approved", priority=5, title="high-a")
        second_high = make_item(status="approved", priority=5, title="high-b")
        run = Scheduler(storage.content_items, daily_quota=2).run(now=now)
        assert [a.content_id for a in run.scheduled_items] == [first_high["id"], second_high["id"]]
        assert storage.content_items.get(low["id"])["status"] == ContentStatus.APPROVED

    def test_assigned_times_and_status(self, storage, make_item, now):
        items = _approved(make_item, 3)
        Scheduler(storage.content_items, daily_quota=3).run(now=now)
        slots = sorted(storage.content_items.get(i["id"])["scheduled_publish_at"] for i in items)
        assert slots == [
            now.replace(hour=9).isoformat(),
            now.replace(hour=13).isoformat(),
            now.replace(hour=17).isoformat(),
        ]
        assert all(
            storage.content_items.get(i["id"])["status"] == ContentStatus.SCHEDULED for i in items
        )

    def test_repeated_runs_never_exceed_quota(self, storage, make_item, now):
        _approved(make_item, 5)
        scheduler = Scheduler(storage.content_items, daily_quota=2)
        assert scheduler.run(now=now).scheduled_count == 2
        second = scheduler.run(now=now)
        assert second.scheduled_count == 0
        assert second.next_schedule_date == now.replace(hour=9) + timedelta(days=1)

    def test_quota_override(self, storage, make_item, now):
        _approved(make_item, 5)
        run = Scheduler(storage.content_items, daily_quota=1).run(daily_quota=4, now=now)
        assert run.scheduled_count == 4

    def test_manual_publish_keeps_approved_status(self, storage, make_item, now):
        item = make_item(status="approved")
        Scheduler(storage.content_items, auto_publish=False).run(now=now)
        row = storage.content_items.get(item["id"])
        assert row["status"] == ContentStatus.APPROVED
        assert row["scheduled_publish_at"] == now.replace(hour=9).isoformat()

    def test_deleted_items_do_not_count(self, storage, make_item, now):
        make_item(status="deleted", scheduled_publish_at=now.replace(hour=9).isoformat())
        _approved(make_item, 1)
        assert Scheduler(storage.content_items).run(now=now).scheduled_count == 1

    def test_nothing_to_schedule(self, storage, now):
        run = Scheduler(storage.content_items, daily_quota=3).run(now=now)
        assert run.scheduled_count == 0
        assert run.daily_remaining == 3

    def test_publish_immediately(self, storage, make_item, now):
        item = make_item(status="approved")
        publisher = MagicMock()
        publisher.publish.return_value = True
        run = Scheduler(storage.content_items, publisher=publisher).run(
            publish_immediately=True, now=now,
        )
        publisher.publish.assert_called_once_with(item["id"])
        assert run.failures == []

    def test_publish_failure_does_not_stop_run(self, storage, make_item, now):
        items = _approved(make_item, 2)
        publisher = MagicMock()
        publisher.publish.side_effect = [ConnectionError("wp down"), True]
        run = Scheduler(storage.content_items, publisher=publisher, daily_quota=2).run(
            publish_immediately=True, now=now,
        )
        assert run.scheduled_count == 2
        assert run.failures == [{"content_id": items[0]["id"], "error": "publish failed: wp down"}]

    def test_unparseable_slot_is_recorded_not_fatal(self, storage, make_item, now):
        broken = make_item(status="scheduled", scheduled_publish_at="garbage")
        item = make_item(status="approved")
        run = Scheduler(storage.content_items).run(now=now)
        assert [a.content_id for a in run.scheduled_items] == [item["id"]]
        assert run.failures == [
            {"content_id": broken["id"], "error": "invalid scheduled_publish_at"}
        ]


class TestPublishDue:
    @pytest.fixture
    def publisher(self, storage):
        """Marks whatever it is asked to publish as published."""
        publisher = MagicMock()

        def publish(content_id):
            storage.content_items.update(content_id, {"status": ContentStatus.PUBLISHED})
            return True

        publisher.publish.side_effect = publish
        return publisher

    def test_publishes_items_whose_slot_has_arrived(self, storage, make_item, now, publisher):
        later = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=11).isoformat())
        earlier = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=9).isoformat())
        make_item(status="scheduled", scheduled_publish_at=now.replace(hour=17).isoformat())

        run = Scheduler(storage.content_items, publisher=publisher).publish_due(now=now)
        assert run.published == [earlier["id"], later["id"]]
        assert run.failures == []

    def test_sla_auto_approval_goes_live(self, storage, make_item, now, publisher):
        item = make_item(status="approved", auto_approved=True,
                         scheduled_publish_at=now.replace(hour=8).isoformat())
        run = Scheduler(storage.content_items, publisher=publisher).publish_due(now=now)
        assert run.published == [item["id"]]
        assert storage.content_items.get(item["id"])["status"] == ContentStatus.PUBLISHED

    def test_manual_approvals_and_other_statuses_wait(self, storage, make_item, now, publisher):
        slot = now.replace(hour=9).isoformat()
        make_item(status="approved", scheduled_publish_at=slot)
        make_item(status="pending_review", scheduled_publish_at=slot)
        make_item(status="deleted", scheduled_publish_at=slot)
        make_item(status="published", scheduled_publish_at=slot)

        run = Scheduler(storage.content_items, publisher=publisher).publish_due(now=now)
        assert run.published_count == 0
        publisher.publish.assert_not_called()

    def test_failure_does_not_stop_run(self, storage, make_item, now):
        first = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=9).isoformat())
        second = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=10).isoformat())
        refused = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=11).isoformat())
        publisher = MagicMock()
        publisher.publish.side_effect = [ConnectionError("wp down"), True, False]

        run = Scheduler(storage.content_items, publisher=publisher).publish_due(now=now)
        assert publisher.publish.call_count == 3
        assert run.failures == [
            {"content_id": first["id"], "error": "publish failed: wp down"},
            {"content_id": refused["id"], "error": "publish returned false"},
        ]
        # Accepted but still scheduled: queued in WordPress rather than live
        assert run.queued == [second["id"]]

    def test_unparseable_slot_is_recorded(self, storage, make_item, now, publisher):
        broken = make_item(status="scheduled", scheduled_publish_at="not-a-date")
        item = make_item(status="scheduled", scheduled_publish_at=now.replace(hour=9).isoformat())
        run = Scheduler(storage.content_items, publisher=publisher).publish_due(now=now)
        assert run.published == [item["id"]]
        assert run.failures == [{"content_id": broken["id"], "error": "invalid scheduled_publish_at"}]

    def test_without_publisher_nothing_happens(self, storage, make_item, now):
        make_item(status="scheduled", scheduled_publish_at=now.replace(hour=9).isoformat())
        run = Scheduler(storage.content_items).publish_due(now=now)
        assert run.published_count == 0
        assert run.failures == []
