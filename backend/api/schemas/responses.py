"""
API Response Schemas

Pydantic models for profiles, charts, outlines, reports and stream events.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional, Union

import numpy as np
from pydantic import BaseModel, Field

from core.dataset import FieldType


def convert_numpy(obj: Any) -> Any:
    """Convert numpy, Decimal and date values to JSON-friendly Python types."""
    if obj is None:
        return None
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: convert_numpy(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_numpy(v) for v in obj]
    return obj


class TrendDirection(str, Enum):
    """Direction of change."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


# ============ Profiles ============

class NumericStats(BaseModel):
    """Statistics of a numeric field."""

    min: float
    max: float
    sum: float
    mean: float
    median: float
    std_dev: float
    skewness: Optional[float] = None
    trend: TrendDirection = TrendDirection.STABLE
    trend_percent: float = 0


class TopValue(BaseModel):
    value: str
    count: int
    percent: float


class CategoricalStats(BaseModel):
    """Statistics of a categorical field."""

    distinct_count: int
    top_values: list[TopValue] = Field(default_factory=list)


class TemporalStats(BaseModel):
    """Statistics of a temporal field."""

    valid_count: int
    min_date: str
    max_date: str
    span_days: int
    is_time_series: bool = False


class FieldProfile(BaseModel):
    """Profile of a single field."""

    name: str
    field_type: FieldType
    total_count: int
    non_null_count: int
    distinct_count: int
    is_identifier: bool = False

    numeric: Optional[NumericStats] = None
    categorical: Optional[CategoricalStats] = None
    temporal: Optional[TemporalStats] = None

    @property
    def has_stats(self) -> bool:
        return any(s is not None for s in (self.numeric, self.categorical, self.temporal))


class DatasetProfile(BaseModel):
    """Profile of one dataset."""

    index: int
    name: str
    row_count: int
    column_count: int
    fields: list[FieldProfile]

    def get_field(self, name: str) -> Optional[FieldProfile]:
        for profile in self.fields:
            if profile.name == name:
                return profile
        return None

    def fields_of(self, field_type: FieldType) -> list[FieldProfile]:
        return [f for f in self.fields if f.field_type == field_type]


# ============ Charts ============

class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"


class ChartCandidate(BaseModel):
    """A scored, typed chart specification referenced by id from the narrative."""

    id: str = Field(..., description="Stable request-scoped id, e.g. chart_1")
    title: str
    chart_type: ChartType
    description: str = ""
    data: list[dict[str, Any]] = Field(default_factory=list)
    relevance: int = Field(default=50, ge=0, le=100)
    source: str = Field(default="", description="Which statistic produced it")

    def series_keys(self) -> list[str]:
        """Numeric keys of the first data point, excluding the name."""
        if not self.data:
            return []
        first = self.data[0]
        return [
            k for k, v in first.items()
            if k != "name" and isinstance(v, (int, float)) and not isinstance(v, bool)
        ]

    def prompt_summary(self) -> dict[str, str]:
        """What the model is allowed to see: no datapoints."""
        return {
            "id": self.id,
            "title": self.title,
            "chartType": self.chart_type.value,
            "description": self.description,
        }


# ============ Outline ============

class SectionType(str, Enum):
    SUMMARY = "summary"
    METRICS = "metrics"
    CHART = "chart"
    INSIGHT = "insight"
    RECOMMENDATION = "recommendation"


class OutlineSection(BaseModel):
    id: str
    type: SectionType
    title: str
    description: str = ""
    enabled: bool = True


class Outline(BaseModel):
    title: str
    sections: list[OutlineSection] = Field(default_factory=list)

    def enabled_sections(self) -> list[OutlineSection]:
        return [s for s in self.sections if s.enabled]

    def chart_section_count(self) -> int:
        return sum(1 for s in self.enabled_sections() if s.type == SectionType.CHART)


# ============ Reports ============

class MetricItem(BaseModel):
    """A headline metric card."""

    label: str
    value: str
    trend: TrendDirection = TrendDirection.STABLE
    change_percent: Optional[float] = None


class ReportMeta(BaseModel):
    """Grounding and quality metadata attached to a stored report."""

    analysis_path: str = "none"
    citation_list: list[str] = Field(default_factory=list)
    quality_warnings: list[str] = Field(default_factory=list)
    quality_score: Optional[int] = None
    quality_dimensions: dict[str, Any] = Field(default_factory=dict)
    needs_review: bool = False


class GeneratedReport(BaseModel):
    """The only entity handed to persistence."""

    id: str
    title: str
    created_at: datetime
    mode: str
    theme: str = "default"
    model: str = ""
    user_idea: Optional[str] = None
    outline: Outline

    summary: str = ""
    content_html: str = ""
    key_metrics: list[MetricItem] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    chart_bindings: dict[str, str] = Field(
        default_factory=dict,
        description="Outline section id -> chart candidate id"
    )
    chart_options: dict[str, dict[str, Any]] = Field(default_factory=dict)
    meta: ReportMeta = Field(default_factory=ReportMeta)


class ReportListItem(BaseModel):
    id: str
    title: str
    created_at: datetime
    mode: str
    quality_score: Optional[int] = None


# ============ Stream events ============

class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    stage: str
    label: str
    percent: int = Field(..., ge=0, le=100)


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    report_id: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


ReportStreamEvent = Union[ProgressEvent, CompleteEvent, ErrorEvent]


# ============ Upload / outline ============

class DatasetUploadResponse(BaseModel):
    """Response after uploading a table."""

    dataset_id: str
    filename: str
    row_count: int
    column_count: int
    headers: list[str]
    profile: DatasetProfile
    message: str = ""


class OutlineResponse(BaseModel):
    outline: Outline
    citation_count: int = 0
    chart_candidate_count: int = 0


class HealthResponse(BaseModel):
    status: str
    app: str
    version: str
