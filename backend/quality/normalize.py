"""
Unit Normalization

Corrects the double-magnitude transcription error ("1.11 ten-thousand
ten-thousand" meant as 1.11 hundred-million), deduplicates bullets and
cross-checks "total X" metrics against the profiler's sums. Running it
on already-normalized output changes nothing.
"""

import re
from typing import Optional

from analysis.formatting import (
    NUMERIC_TOKEN,
    UNIT_HUNDRED_MILLION,
    UNIT_TEN_THOUSAND,
    format_number,
    plain_value,
)
from api.schemas.responses import MetricItem
from config import get_settings
from core.logging_config import quality_logger as logger
from quality.checks import ReportDraft


DOUBLE_MAGNITUDE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:ten-thousand[\s-]+ten-thousand|万\s*万)",
    re.IGNORECASE,
)
TOTAL_LABEL = re.compile(r"\btotal\b|合计|总", re.IGNORECASE)


def fix_double_magnitude(text: str) -> str:
    """X ten-thousand ten-thousand -> X hundred-million when 0.1 <= X < 1000."""
    def replace(match: re.Match) -> str:
        number = match.group(1)
        value = float(number)
        unit = UNIT_HUNDRED_MILLION if 0.1 <= value < 1000 else UNIT_TEN_THOUSAND
        return f"{number} {unit}"

    return DOUBLE_MAGNITUDE.sub(replace, text or "")


def dedupe(items: list[str]) -> list[str]:
    """Drop blank and repeated bullets, keeping first occurrences."""
    seen: set[str] = set()
    result = []
    for item in items:
        key = (item or "").strip()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(key)
    return result


def _metric_number(value: str) -> Optional[float]:
    if "%" in value or "％" in value:
        return None
    match = NUMERIC_TOKEN.search(value)
    return plain_value(match.group(0)) if match else None


def correct_total_metrics(
    metrics: list[MetricItem],
    field_totals: dict[str, float],
    margin: Optional[float] = None,
) -> tuple[list[MetricItem], list[str]]:
    """
    Overwrite "total <field>" metric values that are off from the
    profiler sum by more than `margin` (relative).

    Returns:
        (metrics, notes about each correction)
    """
    if margin is None:
        margin = get_settings().quality.total_margin

    corrected = []
    notes = []
    for i, metric in enumerate(metrics):
        field_name = next(
            (
                name for name in sorted(field_totals, key=len, reverse=True)
                if name and name.lower() in metric.label.lower()
            ),
            None,
        )
        if field_name is None or not TOTAL_LABEL.search(metric.label):
            corrected.append(metric)
            continue

        actual = field_totals[field_name]
        stated = _metric_number(metric.value)
        if stated is None or abs(actual) < 1:
            corrected.append(metric)
            continue

        if abs(stated - actual) / abs(actual) > margin:
            fixed = format_number(actual)
            notes.append(f'[keyMetrics[{i}]] "{metric.value}" corrected to "{fixed}" from the data total')
            logger.warning(f"Corrected total metric '{metric.label}': {metric.value} -> {fixed}")
            metric = metric.model_copy(update={"value": fixed})
        corrected.append(metric)

    return corrected, notes


def normalize_report(
    draft: ReportDraft,
    field_totals: Optional[dict[str, float]] = None,
) -> tuple[ReportDraft, list[str]]:
    """
    Normalize units and bullets of a draft.

    Returns:
        (normalized draft, correction notes)
    """
    metrics = [
        m.model_copy(update={"value": fix_double_magnitude(m.value)}) for m in draft.key_metrics
    ]
    notes: list[str] = []
    if field_totals:
        metrics, notes = correct_total_metrics(metrics, field_totals)

    normalized = ReportDraft(
        summary=fix_double_magnitude(draft.summary),
        content_html=fix_double_magnitude(draft.content_html),
        key_metrics=metrics,
        insights=dedupe([fix_double_magnitude(s) for s in draft.insights]),
        recommendations=dedupe([fix_double_magnitude(s) for s in draft.recommendations]),
    )
    return normalized, notes
