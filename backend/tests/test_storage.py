"""
Test Report and Dataset Stores
"""

import time
from datetime import datetime, timedelta

import pytest

from api.schemas.responses import DatasetProfile, GeneratedReport, Outline, OutlineSection, SectionType
from core.cache import DatasetStore
from core.storage import ReportStore


def make_report(report_id, created_at=None, title="Report"):
    return GeneratedReport(
        id=report_id,
        title=title,
        created_at=created_at or datetime.now(),
        mode="generate",
        outline=Outline(
            title=title,
            sections=[OutlineSection(id="s1", type=SectionType.SUMMARY, title="Summary")],
        ),
        summary="Short summary",
    )


@pytest.fixture
def store(tmp_path):
    return ReportStore(tmp_path / "reports")


class TestReportStore:
    def test_put_get(self, store):
        store.put(make_report("abc123"))

        loaded = store.get("abc123")
        assert loaded is not None
        assert loaded.summary == "Short summary"
        assert not list(store.base_dir.glob("*.tmp"))

    def test_list_newest_first(self, store):
        now = datetime.now()
        store.put(make_report("old", now - timedelta(days=1)))
        store.put(make_report("new", now))

        assert [r.id for r in store.list()] == ["new", "old"]

    def test_missing_directory(self, tmp_path):
        assert ReportStore(tmp_path / "nowhere").list() == []

    def test_corrupt_file_skipped(self, store):
        store.put(make_report("good"))
        (store.base_dir / "bad.json").write_text("{not json", encoding="utf-8")

        assert store.get("bad") is None
        assert [r.id for r in store.list()] == ["good"]

    def test_path_like_ids_rejected(self, store):
        assert store.get("../secrets") is None
        assert store.delete("../secrets") is False
        with pytest.raises(ValueError):
            store.put(make_report("a/b"))

    def test_delete(self, store):
        store.put(make_report("gone"))

        assert store.delete("gone") is True
        assert store.delete("gone") is False
        assert store.get("gone") is None

    def test_update_keeps_identity(self, store):
        original = make_report("r1")
        store.put(original)

        updated = store.update("r1", {"title": "Renamed", "id": "other", "theme": "dark"})

        assert updated.id == "r1"
        assert updated.created_at == original.created_at
        assert store.get("r1").title == "Renamed"
        assert store.get("r1").theme == "dark"
        assert store.update("missing", {"title": "x"}) is None


class TestDatasetStore:
    def test_put_get_delete(self, sales_dataset):
        store = DatasetStore(ttl_seconds=60)
        profile = DatasetProfile(index=0, name="sales.csv", row_count=12, column_count=3, fields=[])

        store.put("d1", sales_dataset, profile)

        assert store.get("d1").dataset is sales_dataset
        assert store.list_ids() == ["d1"]
        assert store.delete("d1") is True
        assert store.get("d1") is None

    def test_expiry(self, sales_dataset):
        store = DatasetStore(ttl_seconds=60)
        profile = DatasetProfile(index=0, name="sales.csv", row_count=12, column_count=3, fields=[])
        store.put("d1", sales_dataset, profile)
        store._items["d1"].created_at = time.time() - 120

        assert store.list_ids() == []
        assert store.get("d1") is None
