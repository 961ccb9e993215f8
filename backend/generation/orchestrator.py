"""
Synthesis Orchestrator

One state machine per report request:

    validating -> profiling -> planning (optional) -> generating
        -> post-processing -> persisting -> complete

with `failed` reachable from every stage. Progress events are emitted
in strictly increasing percent order and the stream ends with exactly
one `complete` or `error` event. Model calls are never retried here.
"""

import json
import secrets
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Optional

from analysis.pipeline import AnalysisInput, AnalysisPath, profiler_analysis
from analysis.sql_analysis import SQLAnalysisPath
from api.schemas.responses import (
    CompleteEvent,
    ErrorEvent,
    GeneratedReport,
    Outline,
    ProgressEvent,
    ReportMeta,
    ReportStreamEvent,
)
from config import get_settings
from core.errors import ContentPlanError, ReportError, ValidationError, friendly_message
from core.logging_config import report_logger as logger
from core.storage import ReportStore, report_store
from generation.chart_bindings import (
    bind_chart_sections,
    build_chart_options,
    extract_chart_ids,
    resolve_selected_chart_ids,
    rewrite_chart_refs,
)
from generation.content_plan import ContentPlan, format_plan_as_text, generate_content_plan
from generation.narrative import NarrativeEnvelope, parse_narrative, render_structured_html
from generation.outline import merge_duplicate_sections, outline_to_json, validate_for_cross_data
from generation.types import GenerationRequest, InputMode, validate_input
from llm.ollama_client import GenerateFn
from llm.prompts import (
    REPORT_GENERATE_PROMPT,
    REPORT_GROUNDING_PLAN,
    REPORT_GROUNDING_RAW,
    REPORT_IMPORT_PROMPT,
    REPORT_PASTE_PROMPT,
    REPORT_SYSTEM_PROMPTS,
)
from quality.checks import ReportDraft
from quality.gate import quality_gate


class Stage(str, Enum):
    VALIDATING = "validating"
    PROFILING = "profiling"
    PLANNING = "planning"
    GENERATING = "generating"
    POST_PROCESSING = "post-processing"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"


MAX_TITLE_CHARS = 80


def report_title(request: GenerationRequest, outline: Outline) -> str:
    """Idea first (cut to 77 chars + ellipsis past 80), then request, outline, dated default."""
    idea = (request.idea or "").strip()
    if idea:
        return idea if len(idea) <= MAX_TITLE_CHARS else idea[:77] + "…"
    if request.title and request.title.strip():
        return request.title.strip()
    if outline.title.strip():
        return outline.title.strip()
    return f"Data report - {datetime.now().strftime('%Y-%m-%d')}"


def new_report_id() -> str:
    return secrets.token_urlsafe(8)[:10]


class ReportGeneration:
    """
    Drives a single report request.

    Args:
        request: The validated wizard output for the final step
        generate: Model call (system, user, model) -> text
        store: Persistence for the finished report
    """

    def __init__(
        self,
        request: GenerationRequest,
        generate: GenerateFn,
        store: Optional[ReportStore] = None,
    ):
        self.request = request
        self.generate = generate
        self.store = store or report_store
        self.model = request.model or get_settings().llm.model
        self.stage = Stage.VALIDATING
        self._last_percent = 0

    def _progress(self, stage: Stage, label: str, percent: int) -> Optional[ProgressEvent]:
        self.stage = stage
        if percent <= self._last_percent:
            return None
        self._last_percent = percent
        logger.info(f"[{stage.value}] {label} ({percent}%)")
        return ProgressEvent(stage=stage.value, label=label, percent=percent)

    def _analysis_path(self) -> AnalysisPath:
        if self.request.use_sql_analysis:
            return SQLAnalysisPath(self.generate, self.model)
        return profiler_analysis

    async def events(self) -> AsyncIterator[ReportStreamEvent]:
        """Run the request, yielding progress and exactly one terminal event."""
        try:
            async for event in self._run():
                if event is not None:
                    yield event
        except ReportError as e:
            self.stage = Stage.FAILED
            logger.error(f"Report generation failed: {e.message}")
            yield ErrorEvent(message=friendly_message(e))
        except Exception as e:
            self.stage = Stage.FAILED
            logger.exception(f"Unexpected report generation failure: {e}")
            yield ErrorEvent(message=friendly_message(e))

    async def _run(self) -> AsyncIterator[Optional[ReportStreamEvent]]:
        request = self.request

        # Validating
        validate_input(request.mode, request.idea, request.pasted_text, request.datasets)
        if not request.outline.enabled_sections():
            raise ValidationError("The report outline has no enabled sections")
        yield self._progress(Stage.VALIDATING, "Preparing", 5)

        outline = await merge_duplicate_sections(request.outline, self.generate, self.model)

        # Profiling
        analysis: Optional[AnalysisInput] = None
        if request.mode == InputMode.IMPORT:
            yield self._progress(Stage.PROFILING, "Analyzing data structure", 10)
            datasets = [ds for ds in request.datasets if ds.row_count > 0]
            analysis = await self._analysis_path().analyze(
                datasets,
                intent=request.intent,
                chart_sections=outline.chart_section_count(),
            )
            yield self._progress(Stage.PROFILING, "Computing statistics", 20)
            outline = validate_for_cross_data(outline, analysis)
            yield self._progress(Stage.PROFILING, "Preparing chart candidates", 30)

        # Planning
        plan: Optional[ContentPlan] = None
        if analysis is not None and request.intent:
            yield self._progress(Stage.PLANNING, "Planning content for your intent", 35)
            try:
                plan = await generate_content_plan(
                    request.intent, outline, analysis, self.generate, self.model
                )
            except ContentPlanError as e:
                logger.warning(f"Content plan failed, falling back to single-phase: {e.message}")

        # Generating
        yield self._progress(Stage.GENERATING, "Writing report", 40)
        raw = await self.generate(
            REPORT_SYSTEM_PROMPTS[request.mode.value],
            self._user_prompt(outline, analysis, plan),
            self.model,
        )
        envelope = parse_narrative(raw)

        if request.mode != InputMode.IMPORT:
            sections = outline.enabled_sections()
            for i, section in enumerate(sections):
                percent = 50 + round(i / len(sections) * 40)
                yield self._progress(Stage.GENERATING, f"Composing: {section.title}", percent)

        # Post-processing
        yield self._progress(Stage.POST_PROCESSING, "Integrating report", 92)
        report = self._assemble(outline, analysis, envelope)

        # Persisting
        yield self._progress(Stage.PERSISTING, "Saving report", 96)
        self.store.put(report)

        yield self._progress(Stage.COMPLETE, "Complete", 100)
        logger.success(f"Report {report.id} generated (quality score {report.meta.quality_score})")
        yield CompleteEvent(report_id=report.id)

    def _user_prompt(
        self,
        outline: Outline,
        analysis: Optional[AnalysisInput],
        plan: Optional[ContentPlan],
    ) -> str:
        request = self.request
        outline_json = outline_to_json(outline)

        if request.mode == InputMode.GENERATE:
            return REPORT_GENERATE_PROMPT.format(outline=outline_json, idea=request.idea.strip())
        if request.mode == InputMode.PASTE:
            return REPORT_PASTE_PROMPT.format(outline=outline_json, text=request.pasted_text.strip())

        if plan is not None:
            grounding = REPORT_GROUNDING_PLAN.format(
                plan=format_plan_as_text(plan),
                citations=analysis.citations.as_text(),
            )
        else:
            grounding = REPORT_GROUNDING_RAW.format(
                citations=analysis.citations.as_text(),
                summary=analysis.summary,
            )
        charts = json.dumps([c.prompt_summary() for c in analysis.charts], ensure_ascii=False, indent=2)
        return REPORT_IMPORT_PROMPT.format(outline=outline_json, grounding=grounding, charts=charts)

    def _assemble(
        self,
        outline: Outline,
        analysis: Optional[AnalysisInput],
        envelope: NarrativeEnvelope,
    ) -> GeneratedReport:
        """Bind charts, run the quality gate and build the stored report."""
        request = self.request

        metrics = envelope.key_metrics or (analysis.metrics if analysis else [])
        insights = envelope.insights or (analysis.insights if analysis else [])
        recommendations = envelope.recommendations or (analysis.recommendations if analysis else [])

        chart_ids: list[str] = []
        chart_options: dict = {}
        bindings: dict[str, str] = {}
        html = envelope.html

        if analysis is not None and analysis.charts:
            selected = envelope.selected_chart_ids + extract_chart_ids(html)
            chart_ids = resolve_selected_chart_ids(
                selected, analysis.charts, outline.chart_section_count()
            )
            if html:
                html = rewrite_chart_refs(html, chart_ids)
            bindings = bind_chart_sections(outline, chart_ids)
            chart_options = build_chart_options(analysis.charts, chart_ids)

        if not html:
            html = render_structured_html(
                outline, envelope.summary, metrics, insights, recommendations, chart_ids
            )

        quality = quality_gate.run(
            ReportDraft(
                summary=envelope.summary,
                content_html=html,
                key_metrics=metrics,
                insights=insights,
                recommendations=recommendations,
            ),
            analysis,
        )
        draft = quality.draft

        title = report_title(request, outline)
        if request.idea and request.idea.strip():
            outline = outline.model_copy(update={"title": title})

        return GeneratedReport(
            id=new_report_id(),
            title=title,
            created_at=datetime.now(),
            mode=request.mode.value,
            theme=request.theme,
            model=self.model,
            user_idea=(request.idea or "").strip() or None,
            outline=outline,
            summary=draft.summary,
            content_html=draft.content_html,
            key_metrics=draft.key_metrics,
            insights=draft.insights,
            recommendations=draft.recommendations,
            chart_bindings=bindings,
            chart_options=chart_options,
            meta=ReportMeta(
                analysis_path=analysis.path if analysis else "none",
                citation_list=analysis.citations.for_prompt() if analysis else [],
                quality_warnings=quality.warnings + quality.corrections,
                quality_score=quality.score,
                quality_dimensions=quality.dimensions,
                needs_review=quality.needs_review,
            ),
        )
