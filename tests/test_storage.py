"""Tests for the row storage tables."""

import threading

import pytest
import yaml

from editorial.storage import ContentNotFoundError, InMemoryTable, YamlStorage, YamlTable


@pytest.fixture
def table():
    return InMemoryTable("content_items")


class TestCrud:
    def test_create_assigns_id_and_created_at(self, table):
        row = table.create({"title": "A"})
        assert row["id"]
        assert row["created_at"]
        assert table.get(row["id"])["title"] == "A"

    def test_create_keeps_given_id(self, table):
        assert table.create({"id": "abc"})["id"] == "abc"

    def test_duplicate_id_rejected(self, table):
        table.create({"id": "abc"})
        with pytest.raises(ValueError):
            table.create({"id": "abc"})

    def test_get_missing_raises(self, table):
        with pytest.raises(ContentNotFoundError):
            table.get("nope")

    def test_returned_rows_are_copies(self, table):
        row = table.create({"id": "a", "tags": ["x"]})
        row["tags"].append("y")
        table.get("a")["tags"].append("z")
        assert table.get("a")["tags"] == ["x"]

    def test_delete(self, table):
        table.create({"id": "a"})
        table.delete("a")
        with pytest.raises(ContentNotFoundError):
            table.get("a")


class TestConditionalUpdate:
    def test_update_when_status_matches(self, table):
        table.create({"id": "a", "status": "pending_review"})
        updated = table.update("a", {"status": "approved"}, expected_status="pending_review")
        assert updated["status"] == "approved"
        assert updated["updated_at"]

    def test_update_skipped_when_status_differs(self, table):
        table.create({"id": "a", "status": "approved"})
        assert table.update("a", {"status": "deleted"}, expected_status="pending_review") is None
        assert table.get("a")["status"] == "approved"

    def test_unconditional_update(self, table):
        table.create({"id": "a", "status": "draft"})
        assert table.update("a", {"notes": "n"})["notes"] == "n"

    def test_update_missing_row_raises(self, table):
        with pytest.raises(ContentNotFoundError):
            table.update("nope", {"status": "approved"})

    def test_exactly_one_concurrent_writer_wins(self, table):
        table.create({"id": "a", "status": "pending_review"})
        results = []
        barrier = threading.Barrier(8)

        def writer(n):
            barrier.wait()
            results.append(table.update("a", {"status": "approved", "by": n},
                                        expected_status="pending_review"))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sum(1 for r in results if r is not None) == 1


class TestFind:
    def test_filters_and_where(self, table):
        table.create({"id": "a", "status": "approved", "priority": 1})
        table.create({"id": "b", "status": "approved", "priority": 5})
        table.create({"id": "c", "status": "draft", "priority": 9})
        rows = table.find({"status": "approved"}, where=lambda r: r["priority"] > 2)
        assert [r["id"] for r in rows] == ["b"]
        assert table.count({"status": "approved"}) == 2

    def test_order_by_descending_then_ascending(self, table):
        table.create({"id": "a", "priority": 1, "created_at": "2026-01-02"})
        table.create({"id": "b", "priority": 2, "created_at": "2026-01-03"})
        table.create({"id": "c", "priority": 2, "created_at": "2026-01-01"})
        rows = table.find(order_by=["-priority", "created_at"])
        assert [r["id"] for r in rows] == ["c", "b", "a"]

    def test_missing_values_sort_last(self, table):
        table.create({"id": "a", "pending_since": None})
        table.create({"id": "b", "pending_since": "2026-01-01"})
        assert [r["id"] for r in table.find(order_by="pending_since")] == ["b", "a"]

    def test_limit(self, table):
        for i in range(5):
            table.create({"id": str(i)})
        assert len(table.find(limit=2)) == 2


class TestScopedTable:
    def test_scoped_view_only_sees_owner_rows(self, table):
        table.create({"id": "a", "owner": "alice"})
        table.create({"id": "b", "owner": "bob"})
        alice = table.scoped("alice")
        assert [r["id"] for r in alice.find()] == ["a"]
        with pytest.raises(ContentNotFoundError):
            alice.get("b")
        with pytest.raises(ContentNotFoundError):
            alice.update("b", {"title": "x"})

    def test_scoped_create_stamps_owner(self, table):
        row = table.scoped("alice").create({"title": "A", "owner": "mallory"})
        assert row["owner"] == "alice"


class TestYamlTable:
    def test_rows_persist_across_instances(self, tmp_path):
        path = str(tmp_path / "content_items.yaml")
        first = YamlTable(path)
        first.create({"id": "a", "status": "draft"})
        first.update("a", {"status": "pending_review"})

        second = YamlTable(path)
        assert second.get("a")["status"] == "pending_review"
        with open(path) as f:
            assert yaml.safe_load(f)["rows"][0]["id"] == "a"

    def test_missing_file_is_empty(self, tmp_path):
        assert YamlTable(str(tmp_path / "none.yaml")).find() == []

    def test_storage_creates_one_file_per_table(self, tmp_path):
        storage = YamlStorage(str(tmp_path))
        storage.content_items.create({"id": "a"})
        storage.quotes.create({"id": "q"})
        assert (tmp_path / "content_items.yaml").exists()
        assert (tmp_path / "quotes.yaml").exists()
        assert not (tmp_path / "content_items.yaml.tmp").exists()
