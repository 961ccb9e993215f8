"""
Dataset API Routes

Endpoints for table upload and the uploaded-dataset session.
"""

from fastapi import APIRouter, File, HTTPException, UploadFile

from api.dependencies import DatasetStoreDep
from api.schemas.responses import DatasetProfile, DatasetUploadResponse
from config import get_settings
from core.cache import DatasetStore
from core.data_profiler import data_profiler
from core.errors import DecodeError
from core.logging_config import upload_logger as logger
from core.table_decoder import table_decoder


router = APIRouter()


@router.post("/datasets", response_model=DatasetUploadResponse)
async def upload_dataset(
    file: UploadFile = File(...),
    store: DatasetStore = DatasetStoreDep,
) -> DatasetUploadResponse:
    """
    Upload a spreadsheet (XLSX/XLS) or CSV/TSV table for import mode.

    Decodes and profiles the table and keeps it for the outline and
    generation steps.
    """
    settings = get_settings()
    filename = file.filename or "upload.csv"

    content = await file.read()

    # Check file size
    file_size_mb = len(content) / (1024 * 1024)
    if file_size_mb > settings.max_file_size_mb:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_file_size_mb}MB"
        )

    try:
        dataset = table_decoder.decode(content, filename)
    except DecodeError as e:
        raise HTTPException(status_code=400, detail=e.message)

    dataset_id = table_decoder.generate_dataset_id(filename)
    profile = data_profiler.profile(dataset)
    store.put(dataset_id, dataset, profile)

    logger.info(f"Stored dataset {dataset_id} ({dataset.row_count} rows)")

    return DatasetUploadResponse(
        dataset_id=dataset_id,
        filename=filename,
        row_count=dataset.row_count,
        column_count=len(dataset.headers),
        headers=dataset.headers,
        profile=profile,
        message=f"Successfully uploaded and profiled {filename}",
    )


@router.get("/datasets")
async def list_datasets(store: DatasetStore = DatasetStoreDep) -> dict:
    """List active datasets."""
    datasets = []
    for dataset_id in store.list_ids():
        item = store.get(dataset_id)
        if item:
            datasets.append({
                "dataset_id": dataset_id,
                "filename": item.dataset.name,
                "row_count": item.dataset.row_count,
            })

    return {"datasets": datasets, "count": len(datasets)}


@router.get("/datasets/{dataset_id}", response_model=DatasetProfile)
async def get_dataset_profile(
    dataset_id: str,
    store: DatasetStore = DatasetStoreDep,
) -> DatasetProfile:
    """Get the profile of an uploaded dataset."""
    item = store.get(dataset_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Dataset not found")
    return item.profile


@router.delete("/datasets/{dataset_id}")
async def delete_dataset(
    dataset_id: str,
    store: DatasetStore = DatasetStoreDep,
) -> dict:
    """Delete an uploaded dataset."""
    if not store.delete(dataset_id):
        raise HTTPException(status_code=404, detail="Dataset not found")

    return {"message": f"Dataset {dataset_id} deleted successfully"}
