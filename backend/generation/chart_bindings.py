"""
Chart Bindings

Resolves the chart ids a narrative references against the candidate
allow-list, binds them to chart sections and builds renderer options
server-side. The narrative never carries chart data.
"""

import re
from typing import Any

from api.schemas.responses import ChartCandidate, ChartType, Outline, SectionType
from core.logging_config import report_logger as logger


CHART_REF = re.compile(r"""data-chart-id\s*=\s*["']([^"']*)["']""", re.IGNORECASE)
CHART_DIV = re.compile(
    r"""<div\b[^>]*data-chart-id\s*=\s*["']([^"']*)["'][^>]*>\s*</div>""",
    re.IGNORECASE,
)


def extract_chart_ids(html: str) -> list[str]:
    """Chart ids referenced by the html, in order, without repeats."""
    return list(dict.fromkeys(CHART_REF.findall(html or "")))


def resolve_selected_chart_ids(
    selected: list[str],
    candidates: list[ChartCandidate],
    chart_section_count: int,
) -> list[str]:
    """
    Drop ids outside the candidate set, then top up from the candidates
    in order until every chart section (at least one) has a chart.
    """
    valid = {c.id for c in candidates}
    resolved = list(dict.fromkeys(cid for cid in selected if cid in valid))
    needed = max(chart_section_count, 1)

    for candidate in candidates:
        if len(resolved) >= needed:
            break
        if candidate.id not in resolved:
            resolved.append(candidate.id)

    dropped = [cid for cid in selected if cid not in valid]
    if dropped:
        logger.warning(f"Dropped unknown chart ids: {dropped}")
    return resolved


def rewrite_chart_refs(html: str, resolved: list[str]) -> str:
    """
    Point invalid chart placeholders at unused resolved ids; remove the
    placeholder when none is left.
    """
    valid = set(resolved)
    used = set(cid for cid in extract_chart_ids(html) if cid in valid)
    spare = [cid for cid in resolved if cid not in used]

    def replace(match: re.Match) -> str:
        chart_id = match.group(1)
        if chart_id in valid:
            return match.group(0)
        if spare:
            return f'<div data-chart-id="{spare.pop(0)}"></div>'
        return ""

    return CHART_DIV.sub(replace, html or "")


def bind_chart_sections(outline: Outline, chart_ids: list[str]) -> dict[str, str]:
    """Enabled chart sections, in order, mapped to resolved chart ids."""
    sections = [s for s in outline.enabled_sections() if s.type == SectionType.CHART]
    return {section.id: chart_id for section, chart_id in zip(sections, chart_ids)}


def build_chart_option(candidate: ChartCandidate) -> dict[str, Any]:
    """ECharts-style option: category x axis, one series per numeric key."""
    names = [str(point.get("name", "")) for point in candidate.data]
    series = []
    for key in candidate.series_keys():
        values = [
            point[key] if isinstance(point.get(key), (int, float)) else 0
            for point in candidate.data
        ]
        if candidate.chart_type == ChartType.LINE:
            series.append({
                "type": "line",
                "name": key,
                "data": values,
                "smooth": True,
                "symbol": "circle",
                "symbolSize": 8,
            })
        else:
            series.append({"type": "bar", "name": key, "data": values})

    return {
        "title": {"text": candidate.title},
        "xAxis": {"type": "category", "data": names, "boundaryGap": True},
        "yAxis": {"type": "value"},
        "series": series,
    }


def build_chart_options(candidates: list[ChartCandidate], chart_ids: list[str]) -> dict[str, dict[str, Any]]:
    """Options keyed by chart id; unknown ids and empty charts are skipped."""
    by_id = {c.id: c for c in candidates}
    options = {}
    for chart_id in chart_ids:
        candidate = by_id.get(chart_id)
        if candidate is None or not candidate.data:
            continue
        options[chart_id] = build_chart_option(candidate)
    return options
