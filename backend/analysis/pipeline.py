"""
Analysis Paths

Both analysis paths (profiler/chart and SQL) produce the same
AnalysisInput, so synthesis and the quality gate never need to know
which one ran.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from analysis.charts import chart_generator
from analysis.citations import (
    CitationList,
    DataRichness,
    build_analysis_summary,
    build_citation_list,
    data_richness,
)
from analysis.formatting import aggregation_type
from analysis.relationships import CrossDatasetStat, Relationship, relationship_detector
from api.schemas.responses import ChartCandidate, DatasetProfile, MetricItem
from core.data_profiler import data_profiler
from core.dataset import Dataset
from core.logging_config import analysis_logger as logger


@dataclass
class AnalysisInput:
    """
    Everything synthesis may draw from.

    The citation list is frozen; chart candidates are only ever
    referenced by id from the narrative.
    """

    path: str
    profiles: list[DatasetProfile] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    cross_stats: list[CrossDatasetStat] = field(default_factory=list)
    charts: list[ChartCandidate] = field(default_factory=list)
    citations: CitationList = field(default_factory=lambda: CitationList().freeze())
    summary: str = ""
    richness: Optional[DataRichness] = None

    # Precomputed by the SQL path
    metrics: list[MetricItem] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def chart_ids(self) -> list[str]:
        return [c.id for c in self.charts]

    def chart(self, chart_id: str) -> Optional[ChartCandidate]:
        for candidate in self.charts:
            if candidate.id == chart_id:
                return candidate
        return None

    def field_totals(self) -> dict[str, float]:
        """Profiler sums of summable fields, keyed by field name."""
        totals: dict[str, float] = {}
        for profile in self.profiles:
            for fp in profile.fields:
                if fp.numeric is not None and aggregation_type(fp.name) == "sum":
                    totals.setdefault(fp.name, fp.numeric.sum)
        return totals

    def grouping_fields(self) -> list[str]:
        return list(dict.fromkeys(stat.group_by for stat in self.cross_stats))


class AnalysisPath(ABC):
    """Produces an AnalysisInput from the request's datasets."""

    name: str = "none"

    @abstractmethod
    async def analyze(
        self,
        datasets: list[Dataset],
        intent: Optional[str] = None,
        chart_sections: int = 1,
    ) -> AnalysisInput:
        ...


class ProfilerAnalysisPath(AnalysisPath):
    """
    Deterministic analysis.

    Flow:
    1. Profile every dataset
    2. Detect relationships and aggregate across datasets
    3. Generate chart candidates
    4. Render the citation list and the analysis summary
    """

    name = "profiler"

    def run(self, datasets: list[Dataset]) -> AnalysisInput:
        logger.info(f"=== ANALYSIS STARTED ({len(datasets)} datasets) ===")

        profiles = data_profiler.profile_all(datasets)

        relationships: list[Relationship] = []
        cross_stats: list[CrossDatasetStat] = []
        if len(datasets) > 1:
            relationships = relationship_detector.detect(datasets, profiles)
            cross_stats = relationship_detector.cross_stats(datasets, profiles, relationships)

        charts = chart_generator.generate(datasets, profiles, cross_stats)
        citations = build_citation_list(profiles, relationships, cross_stats, charts)

        result = AnalysisInput(
            path=self.name,
            profiles=profiles,
            relationships=relationships,
            cross_stats=cross_stats,
            charts=charts,
            citations=citations,
            summary=build_analysis_summary(profiles, relationships, cross_stats, charts),
            richness=data_richness(profiles, relationships, cross_stats, charts),
        )

        logger.success(
            f"Analysis complete: {len(citations)} citations, {len(charts)} charts, "
            f"{len(cross_stats)} cross-dataset stats"
        )
        return result

    async def analyze(
        self,
        datasets: list[Dataset],
        intent: Optional[str] = None,
        chart_sections: int = 1,
    ) -> AnalysisInput:
        return self.run(datasets)


# Global instance
profiler_analysis = ProfilerAnalysisPath()
