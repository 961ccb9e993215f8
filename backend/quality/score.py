"""
Quality Score

Weighted 0-100 blend of citation coverage, bullet-count bands,
cross-dataset coverage and metric count. Observability only.
"""

from dataclasses import asdict, dataclass


WEIGHTS = {
    "citation": 30,
    "insight": 25,
    "recommendation": 20,
    "cross_dataset": 15,
    "metrics": 10,
}


@dataclass
class QualityDimensions:
    citation_coverage: float = 1.0
    insight_count: float = 0.0
    recommendation_count: float = 0.0
    has_cross_dataset_insight: bool = True
    key_metrics_count: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def band(count: int, low: int, high: int) -> float:
    """1 inside [low, high], 0.6 for any other non-zero count, else 0."""
    if low <= count <= high:
        return 1.0
    return 0.6 if count >= 1 else 0.0


def compute_quality_score(
    citation_warnings: int,
    mention_count: int,
    insight_count: int,
    recommendation_count: int,
    metrics_count: int,
    has_cross_dataset_insight: bool = True,
    citations_checked: bool = True,
) -> tuple[int, QualityDimensions]:
    """
    Score a report.

    Args:
        citation_warnings: Citation-compliance warning count
        mention_count: Numeric mentions checked
        insight_count: Insight bullets (3-6 ideal)
        recommendation_count: Recommendation bullets (2-4 ideal)
        metrics_count: Key metrics (1-6 ideal, >6 partial)
        has_cross_dataset_insight: False only when cross stats went uncovered
        citations_checked: False when there was no citation list

    Returns:
        (score clamped to 0..100, dimensions)
    """
    dims = QualityDimensions()

    if citations_checked and mention_count > 0:
        dims.citation_coverage = max(0.0, 1 - citation_warnings / mention_count)

    dims.insight_count = band(insight_count, 3, 6)
    dims.recommendation_count = band(recommendation_count, 2, 4)
    dims.has_cross_dataset_insight = has_cross_dataset_insight

    if 1 <= metrics_count <= 6:
        dims.key_metrics_count = 1.0
    elif metrics_count > 6:
        dims.key_metrics_count = 0.8

    total = (
        dims.citation_coverage * WEIGHTS["citation"]
        + dims.insight_count * WEIGHTS["insight"]
        + dims.recommendation_count * WEIGHTS["recommendation"]
        + (1 if dims.has_cross_dataset_insight else 0) * WEIGHTS["cross_dataset"]
        + dims.key_metrics_count * WEIGHTS["metrics"]
    )
    return round(max(0, min(100, total))), dims
