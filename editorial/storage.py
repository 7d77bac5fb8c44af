"""Row storage used by the pipeline: in-memory and YAML-file backed tables.

Tables expose simple row CRUD plus a conditional update. The conditional
update (`expected_status=...`) is the only concurrency control the pipeline
relies on: a transition out of a status succeeds for exactly one writer.
"""

from __future__ import annotations

import copy
import logging
import os
import threading
import uuid
from datetime import datetime, timezone

import yaml

log = logging.getLogger(__name__)


class ContentNotFoundError(KeyError):
    pass


def _sort_key(field_name):
    # Rows missing the field sort after rows that have it
    def key(row):
        value = row.get(field_name)
        return (value is None, value if value is not None else 0)
    return key


class Table:
    """Thread-safe table of dict rows keyed by `id`."""

    def __init__(self, name: str = "rows"):
        self.name = name
        self._rows: dict[str, dict] = {}
        self._lock = threading.RLock()

    def _persist(self):
        """Hook for durable subclasses; called with the lock held after each write."""

    # -- reads ---------------------------------------------------------

    def get(self, row_id: str) -> dict:
        with self._lock:
            if row_id not in self._rows:
                raise ContentNotFoundError(row_id)
            return copy.deepcopy(self._rows[row_id])

    def find(self, filters: dict | None = None, where=None, order_by=None, limit=None) -> list[dict]:
        """Rows whose fields equal `filters` and satisfy the optional `where` predicate.

        `order_by` is a field name or list of names; prefix a name with "-" to
        sort descending.
        """
        filters = filters or {}
        with self._lock:
            rows = [
                copy.deepcopy(row)
                for row in self._rows.values()
                if all(row.get(k) == v for k, v in filters.items())
                and (where is None or where(row))
            ]

        if order_by:
            fields = [order_by] if isinstance(order_by, str) else list(order_by)
            # Stable sorts applied from the least significant field
            for field_name in reversed(fields):
                descending = field_name.startswith("-")
                rows.sort(key=_sort_key(field_name.lstrip("-")), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, filters: dict | None = None, where=None) -> int:
        return len(self.find(filters, where=where))

    # -- writes --------------------------------------------------------

    def create(self, row: dict) -> dict:
        row = copy.deepcopy(row)
        row.setdefault("id", uuid.uuid4().hex)
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        with self._lock:
            if row["id"] in self._rows:
                raise ValueError(f"Duplicate id in {self.name}: {row['id']}")
            self._rows[row["id"]] = row
            self._persist()
        log.debug(f"Created {self.name} row {row['id']}")
        return copy.deepcopy(row)

    def update(self, row_id: str, patch: dict, expected_status: str | None = None) -> dict | None:
        """Apply `patch` to a row.

        With `expected_status`, the write happens only if the row's current
        status equals it (compare-and-set); otherwise nothing is written and
        None is returned.
        """
        with self._lock:
            if row_id not in self._rows:
                raise ContentNotFoundError(row_id)
            row = self._rows[row_id]
            if expected_status is not None and row.get("status") != expected_status:
                log.info(
                    f"Conditional update skipped: {self.name} {row_id} is "
                    f"'{row.get('status')}', expected '{expected_status}'"
                )
                return None
            row.update(copy.deepcopy(patch))
            row["updated_at"] = datetime.now(timezone.utc).isoformat()
            self._persist()
            return copy.deepcopy(row)

    def delete(self, row_id: str):
        with self._lock:
            if row_id not in self._rows:
                raise ContentNotFoundError(row_id)
            del self._rows[row_id]
            self._persist()

    def scoped(self, owner: str) -> "ScopedTable":
        return ScopedTable(self, owner)


class InMemoryTable(Table):
    pass


class YamlTable(Table):
    """Table persisted to a YAML file, rewritten atomically on every write."""

    def __init__(self, path: str, name: str | None = None):
        super().__init__(name or os.path.splitext(os.path.basename(path))[0])
        self.path = path
        self._rows = self._load()

    def _load(self) -> dict[str, dict]:
        if os.path.exists(self.path):
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            return {row["id"]: row for row in data.get("rows", []) if isinstance(row, dict)}
        return {}

    def _persist(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            yaml.safe_dump(
                {"rows": list(self._rows.values())}, f,
                default_flow_style=False, sort_keys=False,
            )
        os.replace(tmp_path, self.path)


class ScopedTable:
    """View of a table restricted to rows owned by one user."""

    def __init__(self, table: Table, owner: str):
        self.table = table
        self.owner = owner
        self.name = table.name

    def _check_owner(self, row_id: str):
        row = self.table.get(row_id)
        if row.get("owner") != self.owner:
            raise ContentNotFoundError(row_id)

    def get(self, row_id: str) -> dict:
        self._check_owner(row_id)
        return self.table.get(row_id)

    def find(self, filters: dict | None = None, where=None, order_by=None, limit=None) -> list[dict]:
        return self.table.find({**(filters or {}), "owner": self.owner},
                               where=where, order_by=order_by, limit=limit)

    def count(self, filters: dict | None = None, where=None) -> int:
        return len(self.find(filters, where=where))

    def create(self, row: dict) -> dict:
        return self.table.create({**row, "owner": self.owner})

    def update(self, row_id: str, patch: dict, expected_status: str | None = None) -> dict | None:
        self._check_owner(row_id)
        return self.table.update(row_id, patch, expected_status=expected_status)

    def delete(self, row_id: str):
        self._check_owner(row_id)
        self.table.delete(row_id)


class InMemoryStorage:
    """The pipeline's tables held in process memory."""

    TABLES = ("content_items", "pipeline_configurations", "quotes")

    def __init__(self):
        self.content_items = InMemoryTable("content_items")
        self.pipeline_configurations = InMemoryTable("pipeline_configurations")
        self.quotes = InMemoryTable("quotes")


class YamlStorage:
    """The pipeline's tables, one YAML file each under `data_dir`."""

    TABLES = InMemoryStorage.TABLES

    def __init__(self, data_dir: str = "data"):
        self.data_dir = data_dir
        for name in self.TABLES:
            setattr(self, name, YamlTable(os.path.join(data_dir, f"{name}.yaml"), name=name))
        log.info(f"YAML storage opened at {data_dir}")
