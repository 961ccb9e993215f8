"""
Report API Routes

Final wizard step (streamed generation) and the stored-report library.
"""

import json
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from api.dependencies import DatasetStoreDep, GenerateDep, ReportStoreDep, load_datasets
from api.schemas.requests import GenerateReportBody, UpdateReportBody
from api.schemas.responses import GeneratedReport, ReportListItem, ReportStreamEvent
from core.cache import DatasetStore
from core.storage import ReportStore
from generation.orchestrator import ReportGeneration
from generation.types import GenerationRequest, InputMode
from llm.ollama_client import GenerateFn


router = APIRouter()


def to_sse(event: ReportStreamEvent) -> str:
    """One server-sent event frame: `data: {json}` and a blank line."""
    return f"data: {json.dumps(event.model_dump(), ensure_ascii=False)}\n\n"


@router.post("/reports/generate")
async def generate_report(
    body: GenerateReportBody,
    generate: GenerateFn = GenerateDep,
    reports: ReportStore = ReportStoreDep,
    datasets: DatasetStore = DatasetStoreDep,
) -> StreamingResponse:
    """
    Generate a report, streaming progress as server-sent events.

    The stream carries progress events with increasing percent and ends
    with exactly one `complete` (with the stored report id) or `error`.
    """
    request = GenerationRequest(
        mode=body.mode,
        outline=body.outline,
        idea=body.idea,
        pasted_text=body.pasted_text,
        datasets=load_datasets(body.dataset_ids, datasets) if body.mode == InputMode.IMPORT else [],
        title=body.title,
        theme=body.theme,
        model=body.model,
        use_sql_analysis=body.use_sql_analysis,
    )
    generation = ReportGeneration(request, generate, reports)

    async def stream() -> AsyncIterator[str]:
        async for event in generation.events():
            yield to_sse(event)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/reports", response_model=list[ReportListItem])
async def list_reports(reports: ReportStore = ReportStoreDep) -> list[ReportListItem]:
    """List stored reports, newest first."""
    return [
        ReportListItem(
            id=r.id,
            title=r.title,
            created_at=r.created_at,
            mode=r.mode,
            quality_score=r.meta.quality_score,
        )
        for r in reports.list()
    ]


@router.get("/reports/{report_id}", response_model=GeneratedReport)
async def get_report(report_id: str, reports: ReportStore = ReportStoreDep) -> GeneratedReport:
    """Get a stored report."""
    report = reports.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.patch("/reports/{report_id}", response_model=GeneratedReport)
async def update_report(
    report_id: str,
    body: UpdateReportBody,
    reports: ReportStore = ReportStoreDep,
) -> GeneratedReport:
    """Rename a stored report or change its theme."""
    report = reports.update(report_id, body.model_dump(exclude_none=True))
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.delete("/reports/{report_id}")
async def delete_report(report_id: str, reports: ReportStore = ReportStoreDep) -> dict:
    """Delete a stored report."""
    if not reports.delete(report_id):
        raise HTTPException(status_code=404, detail="Report not found")
    return {"message": f"Report {report_id} deleted successfully"}
