"""
Content Planner

First phase of intent-driven generation: one model call selects the
metrics, charts, insights and recommendations relevant to the user's
intent. Any failure raises ContentPlanError and the orchestrator falls
back to single-phase synthesis.
"""

import json
from dataclasses import dataclass, field
from typing import Optional

from analysis.pipeline import AnalysisInput
from api.schemas.responses import Outline
from core.errors import ContentPlanError, ReportError
from core.logging_config import report_logger as logger
from generation.outline import outline_to_json
from llm.json_envelope import parse_json_object
from llm.ollama_client import GenerateFn
from llm.prompts import CONTENT_PLAN_PROMPT, CONTENT_PLAN_SYSTEM_PROMPT


@dataclass
class ContentPlan:
    overall_summary: str = ""
    relevant_metrics: list[dict[str, str]] = field(default_factory=list)
    relevant_charts: list[dict[str, str]] = field(default_factory=list)
    relevant_insights: list[str] = field(default_factory=list)
    relevant_recommendations: list[str] = field(default_factory=list)

    @property
    def chart_ids(self) -> list[str]:
        return [c["id"] for c in self.relevant_charts]


def _strings(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def _pairs(value, first: str, second: str) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    return [
        {first: item[first], second: item[second]}
        for item in value
        if isinstance(item, dict)
        and isinstance(item.get(first), str)
        and isinstance(item.get(second), str)
    ]


def parse_content_plan(raw: Optional[str], allowed_chart_ids: list[str]) -> ContentPlan:
    """
    Parse the planner output.

    Chart references outside `allowed_chart_ids` are dropped.

    Raises:
        ContentPlanError: empty output, no JSON object, or none of the plan keys
    """
    try:
        data = parse_json_object(raw)
    except ReportError as e:
        raise ContentPlanError(f"Content plan unusable: {e.message}") from e

    keys = {"overallSummary", "relevantMetrics", "relevantCharts", "relevantInsights", "relevantRecommendations"}
    if not keys & data.keys():
        raise ContentPlanError("Content plan JSON has none of the expected keys")

    allowed = set(allowed_chart_ids)
    charts = _pairs(data.get("relevantCharts"), "id", "title")
    kept = [c for c in charts if c["id"] in allowed]
    if len(kept) < len(charts):
        logger.warning(f"Dropped {len(charts) - len(kept)} unknown chart ids from content plan")

    summary = data.get("overallSummary")
    return ContentPlan(
        overall_summary=summary if isinstance(summary, str) else "",
        relevant_metrics=_pairs(data.get("relevantMetrics"), "label", "value"),
        relevant_charts=kept,
        relevant_insights=_strings(data.get("relevantInsights")),
        relevant_recommendations=_strings(data.get("relevantRecommendations")),
    )


def format_plan_as_text(plan: ContentPlan) -> str:
    """Render the plan for the narrative prompt."""
    lines = [f"Summary: {plan.overall_summary}"]
    if plan.relevant_metrics:
        lines.append("Key metrics (use only these):")
        lines.extend(f"- {m['label']}: {m['value']}" for m in plan.relevant_metrics)
    if plan.relevant_charts:
        lines.append("Charts (use only these ids):")
        lines.extend(f"- id={c['id']}, {c['title']}" for c in plan.relevant_charts)
    if plan.relevant_insights:
        lines.append("Insight points:")
        lines.extend(f"- {i}" for i in plan.relevant_insights)
    if plan.relevant_recommendations:
        lines.append("Recommendation points:")
        lines.extend(f"- {r}" for r in plan.relevant_recommendations)
    return "\n".join(lines)


async def generate_content_plan(
    intent: str,
    outline: Outline,
    analysis: AnalysisInput,
    generate: GenerateFn,
    model: Optional[str] = None,
) -> ContentPlan:
    """
    Ask the model for an intent-filtered content plan.

    The model sees the capped citation list and chart summaries
    (id, title, type, description), never chart datapoints.

    Raises:
        ContentPlanError: for any failure, including the model call
    """
    charts = json.dumps([c.prompt_summary() for c in analysis.charts], ensure_ascii=False, indent=2)
    prompt = CONTENT_PLAN_PROMPT.format(
        intent=intent,
        outline=outline_to_json(outline),
        summary=analysis.summary,
        citations=analysis.citations.as_text(),
        charts=charts,
    )

    try:
        raw = await generate(CONTENT_PLAN_SYSTEM_PROMPT, prompt, model)
    except ReportError as e:
        raise ContentPlanError(f"Content plan call failed: {e.message}") from e

    plan = parse_content_plan(raw, analysis.chart_ids)
    logger.info(
        f"Content plan: {len(plan.relevant_metrics)} metrics, {len(plan.relevant_charts)} charts, "
        f"{len(plan.relevant_insights)} insights"
    )
    return plan
