"""
API Request Schemas

Pydantic models for API request validation.
"""

from typing import Optional

from pydantic import BaseModel, Field

from api.schemas.responses import Outline
from generation.types import InputMode


class OutlineRequestBody(BaseModel):
    """Request for an outline proposal."""

    mode: InputMode = Field(..., description="generate, paste or import")
    idea: Optional[str] = Field(
        default=None,
        max_length=4000,
        description="Report idea, or the analysis intent in import mode"
    )
    pasted_text: Optional[str] = Field(
        default=None,
        description="Source text for paste mode"
    )
    dataset_ids: list[str] = Field(
        default=[],
        description="Uploaded dataset ids for import mode"
    )
    model: Optional[str] = Field(default=None, description="Model override")


class GenerateReportBody(BaseModel):
    """Request for the final report generation step."""

    mode: InputMode
    outline: Outline
    idea: Optional[str] = Field(default=None, max_length=4000)
    pasted_text: Optional[str] = None
    dataset_ids: list[str] = Field(default=[])
    title: Optional[str] = Field(default=None, max_length=200)
    theme: str = Field(default="default", description="Presentation theme name")
    model: Optional[str] = None
    use_sql_analysis: bool = Field(
        default=False,
        description="Ground the report on model-written SQL instead of the profiler"
    )


class UpdateReportBody(BaseModel):
    """Editable fields of a stored report."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    theme: Optional[str] = None
