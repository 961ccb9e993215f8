"""
Quality Gate

Runs once after synthesis: normalize, then check citations, cross-dataset
coverage and wording, then score. Findings are attached to the report
metadata; the gate never raises and never blocks persistence.
"""

from dataclasses import dataclass, field
from typing import Optional

from analysis.pipeline import AnalysisInput
from core.logging_config import quality_logger as logger
from quality.checks import (
    CROSS_DATASET_WARNING,
    CitationChecker,
    ReportDraft,
    check_no_record_wording,
    check_no_record_wording_in_html,
    has_cross_dataset_insight,
)
from quality.normalize import normalize_report
from quality.score import compute_quality_score


@dataclass
class QualityReport:
    draft: ReportDraft
    warnings: list[str] = field(default_factory=list)
    corrections: list[str] = field(default_factory=list)
    score: int = 0
    dimensions: dict = field(default_factory=dict)
    needs_review: bool = False


class QualityGate:
    """Post-hoc verification of a generated report."""

    def run(self, draft: ReportDraft, analysis: Optional[AnalysisInput] = None) -> QualityReport:
        """
        Normalize and verify a draft.

        Args:
            draft: Parsed narrative content
            analysis: The analysis the narrative was grounded on, if any

        Returns:
            QualityReport with the normalized draft and all findings
        """
        citations = analysis.citations.entries if analysis else []
        field_totals = analysis.field_totals() if analysis else {}

        normalized, corrections = normalize_report(draft, field_totals)

        citation_result = CitationChecker(citations).check(normalized)
        wording = check_no_record_wording(normalized)
        html_wording = check_no_record_wording_in_html(normalized.content_html)

        cross_ok = True
        if analysis and analysis.cross_stats:
            cross_ok = has_cross_dataset_insight(normalized.insights, analysis.grouping_fields())

        warnings = list(citation_result.warnings) + wording + html_wording
        if not cross_ok:
            warnings.append(CROSS_DATASET_WARNING)

        # Repeated misleading wording in the body needs a human look
        suggest_review = len(html_wording) >= 2

        score, dims = compute_quality_score(
            citation_warnings=len(citation_result.warnings),
            mention_count=citation_result.mention_count,
            insight_count=len(normalized.insights),
            recommendation_count=len(normalized.recommendations),
            metrics_count=len(normalized.key_metrics),
            has_cross_dataset_insight=cross_ok,
            citations_checked=bool(citations),
        )

        if citation_result.warnings:
            logger.warning(f"Citation check: {len(citation_result.warnings)} warnings")
        if wording or html_wording:
            logger.warning(f"No-record wording: {len(wording) + len(html_wording)} findings")
        if citation_result.exceeds_strict_threshold:
            logger.warning("Citation warnings exceed the strict threshold; report needs review")
        logger.info(f"Quality score {score}: {dims.to_dict()}")

        return QualityReport(
            draft=normalized,
            warnings=warnings,
            corrections=corrections,
            score=score,
            dimensions=dims.to_dict(),
            needs_review=citation_result.exceeds_strict_threshold or suggest_review,
        )


# Global gate instance
quality_gate = QualityGate()
