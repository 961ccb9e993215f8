"""
Outline Builder

Asks the model for a section list, parses and normalizes it, collapses
duplicate single-occurrence sections and makes sure cross-dataset
results get a section of their own.
"""

import json
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from analysis.pipeline import AnalysisInput
from api.schemas.responses import Outline, OutlineSection, SectionType
from core.errors import ParseError, ReportError
from core.logging_config import report_logger as logger
from generation.types import InputMode, OutlineRequest, validate_input
from llm.json_envelope import parse_json_object
from llm.ollama_client import GenerateFn
from llm.prompts import (
    OUTLINE_CROSS_HINT,
    OUTLINE_GENERATE_PROMPT,
    OUTLINE_IMPORT_PROMPT,
    OUTLINE_MERGE_PROMPT,
    OUTLINE_PASTE_PROMPT,
    OUTLINE_SYSTEM_PROMPT,
)


SINGLE_OCCURRENCE_TYPES = {
    SectionType.SUMMARY,
    SectionType.METRICS,
    SectionType.INSIGHT,
    SectionType.RECOMMENDATION,
}

CROSS_DATASET_KEYWORDS = [
    "cross-dataset",
    "cross dataset",
    "cross-file",
    "across files",
    "across datasets",
    "multi-file",
    "relationship",
    "linked",
    "跨文件",
    "跨数据",
    "关联",
]

# Pasted material beyond this is cut from the outline prompt
MAX_PASTE_CHARS = 12000


def outline_to_json(outline: Outline) -> str:
    return json.dumps(outline.model_dump(mode="json"), ensure_ascii=False, indent=2)


def parse_outline(data: dict[str, Any]) -> Outline:
    """
    Validate a model-authored outline.

    Sections get stable ids (s1, s2, ...) when missing or repeated and
    default to enabled; sections with an unknown type are dropped.

    Raises:
        ParseError: no title or no sections list
    """
    title = data.get("title")
    sections = data.get("sections")
    if not isinstance(title, str) or not title.strip() or not isinstance(sections, list):
        raise ParseError("Outline must have a title and a sections list")

    parsed = []
    seen_ids: set[str] = set()
    for i, raw in enumerate(sections, start=1):
        if not isinstance(raw, dict):
            continue
        section_id = str(raw.get("id") or f"s{i}")
        if section_id in seen_ids:
            section_id = f"s{i}"
        try:
            section = OutlineSection(
                id=section_id,
                type=str(raw.get("type", "")).strip().lower(),
                title=str(raw.get("title") or "").strip() or f"Section {i}",
                description=str(raw.get("description") or ""),
                enabled=raw.get("enabled", True) is not False,
            )
        except PydanticValidationError:
            logger.warning(f"Dropping outline section with type {raw.get('type')!r}")
            continue
        seen_ids.add(section.id)
        parsed.append(section)

    return Outline(title=title.strip(), sections=parsed)


def has_duplicate_section_types(outline: Outline) -> bool:
    counts: dict[SectionType, int] = {}
    for section in outline.sections:
        if section.type in SINGLE_OCCURRENCE_TYPES:
            counts[section.type] = counts.get(section.type, 0) + 1
    return any(c > 1 for c in counts.values())


async def merge_duplicate_sections(
    outline: Outline,
    generate: GenerateFn,
    model: Optional[str] = None,
) -> Outline:
    """
    Collapse duplicate single-occurrence sections with one model call.

    Never fatal: empty, unparseable or failed output keeps the original.
    """
    if not has_duplicate_section_types(outline):
        return outline

    logger.info("Outline has duplicate section types, merging")
    try:
        raw = await generate(
            OUTLINE_SYSTEM_PROMPT,
            OUTLINE_MERGE_PROMPT.format(outline=outline_to_json(outline)),
            model,
        )
        merged = parse_outline(parse_json_object(raw))
    except ReportError as e:
        logger.warning(f"Outline merge failed, keeping duplicates: {e.message}")
        return outline

    if not merged.sections:
        return outline
    return merged


def section_looks_cross_dataset(section: OutlineSection, grouping_fields: list[str]) -> bool:
    text = f"{section.title} {section.description}".lower()
    if any(keyword in text for keyword in CROSS_DATASET_KEYWORDS):
        return True
    return any(name.lower() in text for name in grouping_fields if name)


def validate_for_cross_data(outline: Outline, analysis: Optional[AnalysisInput]) -> Outline:
    """
    Insert a cross-dataset insight section when the data has cross-dataset
    statistics and no enabled section covers them.

    The new section goes right after the last enabled chart section
    (at the end when there is none).
    """
    if analysis is None or not analysis.cross_stats:
        return outline

    grouping = analysis.grouping_fields()
    if any(section_looks_cross_dataset(s, grouping) for s in outline.enabled_sections()):
        return outline

    existing = {s.id for s in outline.sections}
    section_id = "section_cross"
    n = 2
    while section_id in existing:
        section_id = f"section_cross_{n}"
        n += 1

    new_section = OutlineSection(
        id=section_id,
        type=SectionType.INSIGHT,
        title="Cross-dataset analysis",
        description=(
            f"Rankings, totals and concentration by {', '.join(grouping)} across the linked datasets"
        ),
    )

    sections = list(outline.sections)
    insert_at = len(sections)
    for i in range(len(sections) - 1, -1, -1):
        if sections[i].type == SectionType.CHART and sections[i].enabled:
            insert_at = i + 1
            break
    sections.insert(insert_at, new_section)

    logger.info(f"Inserted cross-dataset section at position {insert_at}")
    return outline.model_copy(update={"sections": sections})


class OutlineBuilder:
    """Mode-specific outline generation."""

    def build_prompt(self, request: OutlineRequest, analysis: Optional[AnalysisInput]) -> str:
        if request.mode == InputMode.GENERATE:
            return OUTLINE_GENERATE_PROMPT.format(idea=request.idea.strip())
        if request.mode == InputMode.PASTE:
            return OUTLINE_PASTE_PROMPT.format(text=request.pasted_text.strip()[:MAX_PASTE_CHARS])

        richness = analysis.richness if analysis else None
        grouping = analysis.grouping_fields() if analysis else []
        charts = "\n".join(
            json.dumps(c.prompt_summary(), ensure_ascii=False) for c in (analysis.charts if analysis else [])
        )
        return OUTLINE_IMPORT_PROMPT.format(
            intent=(request.idea or "").strip() or "General overview of the data",
            summary=analysis.summary if analysis else "",
            citations=analysis.citations.as_text() if analysis else "",
            charts=charts or "(none)",
            max_sections=richness.max_sections if richness else 6,
            max_charts=richness.max_charts if richness else 1,
            cross_hint=OUTLINE_CROSS_HINT.format(fields=", ".join(grouping)) if grouping else "",
        )

    async def build(
        self,
        request: OutlineRequest,
        generate: GenerateFn,
        analysis: Optional[AnalysisInput] = None,
    ) -> Outline:
        """
        Generate an outline for the request.

        Args:
            request: Mode and input material
            generate: Model call (system, user, model) -> text
            analysis: Profiler output, for import mode

        Returns:
            Normalized outline with duplicates collapsed where possible

        Raises:
            ValidationError: missing input for the mode
            UpstreamEmptyError / ParseError / LLMError: model failure
        """
        validate_input(request.mode, request.idea, request.pasted_text, request.datasets)

        logger.info(f"Generating {request.mode.value} outline")
        raw = await generate(OUTLINE_SYSTEM_PROMPT, self.build_prompt(request, analysis), request.model)
        outline = parse_outline(parse_json_object(raw))
        if not outline.sections:
            raise ParseError("Outline has no usable sections")

        outline = await merge_duplicate_sections(outline, generate, request.model)
        if request.mode == InputMode.IMPORT:
            outline = validate_for_cross_data(outline, analysis)

        logger.success(f"Outline ready: {len(outline.sections)} sections")
        return outline


# Global builder instance
outline_builder = OutlineBuilder()
