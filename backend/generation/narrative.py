"""
Narrative Envelope

Parses the narrative call's `{summary, html}` envelope (plus optional
structured keyMetrics / insights / recommendations), salvaging truncated
output where possible, and renders section HTML from structured fields
when the model returned none.
"""

from html import escape
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.responses import MetricItem, Outline, SectionType, TrendDirection
from core.errors import ParseError, UpstreamEmptyError
from core.logging_config import report_logger as logger
from llm.json_envelope import parse_json_object, recover_truncated_payload


DEFAULT_SUMMARY = "Report generated"


def parse_metric_item(raw: Any) -> Optional[MetricItem]:
    """Label and value are required; trend defaults to stable."""
    if not isinstance(raw, dict):
        return None
    label, value = raw.get("label"), raw.get("value")
    if not isinstance(label, str) or not label.strip() or value is None or isinstance(value, (dict, list)):
        return None

    trend = raw.get("trend")
    change = raw.get("changePercent", raw.get("change_percent"))
    return MetricItem(
        label=label.strip(),
        value=str(value),
        trend=trend if trend in ("up", "down", "stable") else TrendDirection.STABLE,
        change_percent=change if isinstance(change, (int, float)) and not isinstance(change, bool) else None,
    )


class NarrativeEnvelope(BaseModel):
    summary: str = DEFAULT_SUMMARY
    html: str = ""
    key_metrics: list[MetricItem] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    selected_chart_ids: list[str] = Field(default_factory=list)
    recovered: bool = False

    @field_validator("summary")
    @classmethod
    def default_summary(cls, v: str) -> str:
        return v.strip() or DEFAULT_SUMMARY


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def parse_narrative(raw: Optional[str]) -> NarrativeEnvelope:
    """
    Parse the narrative envelope.

    Falls back to truncated-payload recovery when the JSON is invalid.

    Raises:
        UpstreamEmptyError: empty output
        ParseError: neither a valid envelope nor a recoverable one
    """
    if raw is None or not raw.strip():
        raise UpstreamEmptyError()

    try:
        data = parse_json_object(raw)
    except ParseError as e:
        recovered = recover_truncated_payload(raw)
        if recovered is None:
            raise ParseError(f"Could not read the report from the model output: {e.message}") from e
        logger.warning("Recovered a truncated narrative envelope")
        return NarrativeEnvelope(summary=recovered["summary"], html=recovered["html"], recovered=True)

    summary = data.get("summary")
    html = data.get("html")
    metrics = [m for m in (parse_metric_item(r) for r in data.get("keyMetrics") or []) if m is not None]
    insights = _strings(data.get("insights"))
    recommendations = _strings(data.get("recommendations"))

    if not isinstance(html, str) and not (insights or metrics or isinstance(summary, str)):
        raise ParseError("Model output has neither html nor report fields")

    return NarrativeEnvelope(
        summary=summary if isinstance(summary, str) else DEFAULT_SUMMARY,
        html=html if isinstance(html, str) else "",
        key_metrics=metrics,
        insights=insights,
        recommendations=recommendations,
        selected_chart_ids=_strings(data.get("selectedChartIds")),
    )


def _metric_cards(metrics: list[MetricItem]) -> str:
    if not metrics:
        return ""
    cards = []
    for m in metrics[:6]:
        change = ""
        if m.change_percent is not None:
            arrow, cls = ("↑", "up") if m.change_percent >= 0 else ("↓", "down")
            change = (
                f'<span class="report-metric-change report-metric-change--{cls}">'
                f"{arrow} {abs(m.change_percent):g}%</span>"
            )
        cards.append(
            f'<div class="report-metric-card"><span class="report-metric-label">{escape(m.label)}</span>'
            f'<span class="report-metric-value">{escape(m.value)}</span>{change}</div>'
        )
    return f'<div class="report-metric-cards">{"".join(cards)}</div>'


def _list_items(items: list[str]) -> str:
    if not items:
        return ""
    return "<ul>" + "".join(f"<li>{escape(i)}</li>" for i in items) + "</ul>"


def render_structured_html(
    outline: Outline,
    summary: str,
    metrics: list[MetricItem],
    insights: list[str],
    recommendations: list[str],
    chart_ids: list[str],
) -> str:
    """One <section> per enabled outline section; charts as id placeholders only."""
    parts = []
    chart_index = 0
    for section in outline.enabled_sections():
        parts.append(f'<section data-section-id="{escape(section.id)}"><h2>{escape(section.title)}</h2>')
        if section.type == SectionType.SUMMARY:
            parts.append(f"<p>{escape(summary)}</p>")
        elif section.type == SectionType.METRICS:
            parts.append(_metric_cards(metrics))
        elif section.type == SectionType.CHART:
            if chart_index < len(chart_ids):
                parts.append(
                    f'<div class="report-chart" data-chart-id="{escape(chart_ids[chart_index])}"></div>'
                )
            chart_index += 1
        elif section.type == SectionType.INSIGHT:
            parts.append(_list_items(insights))
        elif section.type == SectionType.RECOMMENDATION:
            parts.append(_list_items(recommendations))
        parts.append("</section>")

    return f'<div class="report-content">{"".join(parts)}</div>'
