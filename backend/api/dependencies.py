"""
API Dependencies

Injection points for the model call, the stores and dataset lookup, so
routes stay thin and tests can swap in stubs.
"""

from fastapi import Depends, HTTPException

from core.cache import DatasetStore, dataset_store
from core.dataset import Dataset
from core.storage import ReportStore, report_store
from llm.ollama_client import GenerateFn, ollama_client


def get_generate() -> GenerateFn:
    """Model call used by outline and report generation."""
    return ollama_client.generate


def get_report_store() -> ReportStore:
    return report_store


def get_dataset_store() -> DatasetStore:
    return dataset_store


def load_datasets(dataset_ids: list[str], store: DatasetStore) -> list[Dataset]:
    """Resolve uploaded dataset ids in request order; 404 on any unknown id."""
    datasets = []
    for dataset_id in dataset_ids:
        item = store.get(dataset_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Dataset {dataset_id} not found or expired")
        datasets.append(item.dataset)
    return datasets


GenerateDep = Depends(get_generate)
ReportStoreDep = Depends(get_report_store)
DatasetStoreDep = Depends(get_dataset_store)
