"""
Outline API Routes

First wizard step: propose an editable outline for the chosen mode.
"""

from fastapi import APIRouter, HTTPException

from analysis.pipeline import profiler_analysis
from api.dependencies import DatasetStoreDep, GenerateDep, load_datasets
from api.schemas.requests import OutlineRequestBody
from api.schemas.responses import OutlineResponse
from core.cache import DatasetStore
from core.errors import ReportError, ValidationError, friendly_message
from core.logging_config import report_logger as logger
from generation.outline import outline_builder
from generation.types import InputMode, OutlineRequest, validate_input
from llm.ollama_client import GenerateFn


router = APIRouter()


@router.post("/outline", response_model=OutlineResponse)
async def create_outline(
    body: OutlineRequestBody,
    generate: GenerateFn = GenerateDep,
    store: DatasetStore = DatasetStoreDep,
) -> OutlineResponse:
    """
    Generate an outline.

    In import mode the uploaded datasets are profiled first so the
    outline can be sized to the data and see the chart candidates.
    """
    datasets = load_datasets(body.dataset_ids, store) if body.mode == InputMode.IMPORT else []
    request = OutlineRequest(
        mode=body.mode,
        idea=body.idea,
        pasted_text=body.pasted_text,
        datasets=datasets,
        model=body.model,
    )

    try:
        validate_input(request.mode, request.idea, request.pasted_text, request.datasets)

        analysis = None
        if body.mode == InputMode.IMPORT:
            analysis = profiler_analysis.run([ds for ds in datasets if ds.row_count > 0])

        outline = await outline_builder.build(request, generate, analysis)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ReportError as e:
        logger.error(f"Outline generation failed: {e.message}")
        raise HTTPException(status_code=502, detail=friendly_message(e))

    return OutlineResponse(
        outline=outline,
        citation_count=len(analysis.citations) if analysis else 0,
        chart_candidate_count=len(analysis.charts) if analysis else 0,
    )
