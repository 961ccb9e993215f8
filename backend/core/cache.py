"""
Dataset Session Store

In-memory store for uploaded datasets with TTL, bridging the upload,
outline and generation steps of the report wizard.
"""

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Optional

from api.schemas.responses import DatasetProfile
from config import get_settings
from core.dataset import Dataset


@dataclass
class StoredDataset:
    dataset: Dataset
    profile: DatasetProfile
    created_at: float = field(default_factory=time.time)


class DatasetStore:
    """Thread-safe dataset storage keyed by dataset id."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._items: dict[str, StoredDataset] = {}
        self._lock = Lock()
        if ttl_seconds is None:
            ttl_seconds = get_settings().session_ttl_hours * 3600
        self.ttl_seconds = ttl_seconds

    def put(self, dataset_id: str, dataset: Dataset, profile: DatasetProfile) -> None:
        """Store a decoded dataset and its profile."""
        with self._lock:
            self._items[dataset_id] = StoredDataset(dataset=dataset, profile=profile)

    def get(self, dataset_id: str) -> Optional[StoredDataset]:
        """Get a dataset if present and not expired."""
        with self._lock:
            item = self._items.get(dataset_id)
            if item is None:
                return None

            # Check expiration
            if time.time() - item.created_at > self.ttl_seconds:
                del self._items[dataset_id]
                return None

            return item

    def delete(self, dataset_id: str) -> bool:
        """Delete a dataset."""
        with self._lock:
            if dataset_id in self._items:
                del self._items[dataset_id]
                return True
            return False

    def list_ids(self) -> list[str]:
        """List active dataset ids, dropping expired ones."""
        with self._lock:
            now = time.time()
            expired = [k for k, v in self._items.items() if now - v.created_at > self.ttl_seconds]
            for key in expired:
                del self._items[key]
            return list(self._items)


# Global instance
dataset_store = DatasetStore()
