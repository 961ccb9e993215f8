"""
Test Outline Builder

Parsing, duplicate-section merging and cross-dataset section insertion.
"""

import json

import pytest

from analysis.pipeline import AnalysisInput, ProfilerAnalysisPath
from api.schemas.responses import Outline, OutlineSection, SectionType
from core.errors import ParseError, UpstreamEmptyError, ValidationError
from generation.outline import (
    OutlineBuilder,
    has_duplicate_section_types,
    merge_duplicate_sections,
    parse_outline,
    validate_for_cross_data,
)
from generation.types import InputMode, OutlineRequest
from llm.prompts import OUTLINE_SYSTEM_PROMPT


def section(section_id, section_type, title, enabled=True):
    return OutlineSection(id=section_id, type=section_type, title=title, enabled=enabled)


@pytest.fixture
def duplicated_outline():
    return Outline(
        title="Q1 review",
        sections=[
            section("s1", SectionType.SUMMARY, "Summary"),
            section("s2", SectionType.METRICS, "Headline numbers"),
            section("s3", SectionType.METRICS, "More numbers"),
            section("s4", SectionType.CHART, "Trend"),
        ],
    )


class TestParseOutline:
    def test_defaults(self):
        outline = parse_outline({
            "title": " Sales ",
            "sections": [
                {"type": "summary", "title": "Overview"},
                {"id": "x", "type": "CHART", "title": "Trend", "enabled": False},
                {"type": "appendix", "title": "Dropped"},
                "not a section",
            ],
        })

        assert outline.title == "Sales"
        assert [s.id for s in outline.sections] == ["s1", "x"]
        assert outline.sections[1].type == SectionType.CHART
        assert outline.sections[1].enabled is False

    def test_repeated_ids_replaced(self):
        outline = parse_outline({
            "title": "T",
            "sections": [
                {"id": "a", "type": "summary", "title": "One"},
                {"id": "a", "type": "insight", "title": "Two"},
            ],
        })

        assert [s.id for s in outline.sections] == ["a", "s2"]

    def test_missing_title(self):
        with pytest.raises(ParseError):
            parse_outline({"sections": []})


class TestMergeDuplicates:
    @pytest.mark.asyncio
    async def test_merges_with_model(self, duplicated_outline, scripted_model):
        merged = {
            "title": "Q1 review",
            "sections": [
                {"id": "s1", "type": "summary", "title": "Summary"},
                {"id": "s2", "type": "metrics", "title": "Headline numbers"},
                {"id": "s4", "type": "chart", "title": "Trend"},
            ],
        }
        model = scripted_model({OUTLINE_SYSTEM_PROMPT: json.dumps(merged)})

        assert has_duplicate_section_types(duplicated_outline)
        result = await merge_duplicate_sections(duplicated_outline, model)

        assert [s.type for s in result.sections].count(SectionType.METRICS) == 1
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_original(self, duplicated_outline, scripted_model):
        model = scripted_model(default="sorry, no JSON today")

        result = await merge_duplicate_sections(duplicated_outline, model)

        assert result == duplicated_outline

    @pytest.mark.asyncio
    async def test_no_duplicates_no_call(self, scripted_model):
        outline = Outline(title="T", sections=[section("s1", SectionType.SUMMARY, "S")])
        model = scripted_model()

        assert await merge_duplicate_sections(outline, model) is outline
        assert model.calls == []

    def test_charts_may_repeat(self):
        outline = Outline(
            title="T",
            sections=[section("a", SectionType.CHART, "A"), section("b", SectionType.CHART, "B")],
        )

        assert not has_duplicate_section_types(outline)


class TestCrossDataSection:
    @pytest.fixture
    def cross_analysis(self, orders_dataset, stores_dataset):
        return ProfilerAnalysisPath().run([orders_dataset, stores_dataset])

    def test_inserted_after_last_chart(self, cross_analysis):
        outline = Outline(
            title="Stores",
            sections=[
                section("s1", SectionType.SUMMARY, "Summary"),
                section("s2", SectionType.CHART, "Revenue"),
                section("s3", SectionType.RECOMMENDATION, "Next steps"),
            ],
        )
        result = validate_for_cross_data(outline, cross_analysis)

        assert [s.id for s in result.sections] == ["s1", "s2", "section_cross", "s3"]
        inserted = result.sections[2]
        assert inserted.type == SectionType.INSIGHT
        assert "store" in inserted.description

    def test_existing_section_mentions_grouping_field(self, cross_analysis):
        outline = Outline(
            title="Stores",
            sections=[section("s1", SectionType.INSIGHT, "Revenue per store")],
        )

        assert validate_for_cross_data(outline, cross_analysis) == outline

    def test_no_cross_stats(self):
        outline = Outline(title="T", sections=[section("s1", SectionType.SUMMARY, "S")])

        assert validate_for_cross_data(outline, AnalysisInput(path="profiler")) == outline
        assert validate_for_cross_data(outline, None) == outline


class TestOutlineBuilder:
    @pytest.mark.asyncio
    async def test_generate_mode(self, scripted_model):
        reply = {
            "title": "Coffee shop plan",
            "sections": [
                {"type": "summary", "title": "Summary"},
                {"type": "insight", "title": "Market"},
                {"type": "recommendation", "title": "Plan"},
            ],
        }
        model = scripted_model({OUTLINE_SYSTEM_PROMPT: "```json\n" + json.dumps(reply) + "\n```"})
        request = OutlineRequest(mode=InputMode.GENERATE, idea="Open a coffee shop")

        outline = await OutlineBuilder().build(request, model)

        assert outline.title == "Coffee shop plan"
        assert len(outline.sections) == 3
        assert "Open a coffee shop" in model.calls[0][1]

    @pytest.mark.asyncio
    async def test_import_mode_sees_citations(self, sales_dataset, scripted_model):
        reply = {"title": "Sales", "sections": [{"type": "chart", "title": "Trend"}]}
        model = scripted_model({OUTLINE_SYSTEM_PROMPT: json.dumps(reply)})
        analysis = ProfilerAnalysisPath().run([sales_dataset])
        request = OutlineRequest(mode=InputMode.IMPORT, datasets=[sales_dataset])

        await OutlineBuilder().build(request, model, analysis)

        prompt = model.calls[0][1]
        assert "revenue total: 2720" in prompt
        assert "chart_1" in prompt

    @pytest.mark.asyncio
    async def test_missing_input(self, scripted_model):
        with pytest.raises(ValidationError):
            await OutlineBuilder().build(OutlineRequest(mode=InputMode.PASTE, pasted_text="  "), scripted_model())

    @pytest.mark.asyncio
    async def test_empty_model_output(self, scripted_model):
        request = OutlineRequest(mode=InputMode.GENERATE, idea="Anything")

        with pytest.raises(UpstreamEmptyError):
            await OutlineBuilder().build(request, scripted_model(default=""))

    @pytest.mark.asyncio
    async def test_no_usable_sections(self, scripted_model):
        model = scripted_model(default=json.dumps({"title": "T", "sections": [{"type": "bogus"}]}))
        request = OutlineRequest(mode=InputMode.GENERATE, idea="Anything")

        with pytest.raises(ParseError):
            await OutlineBuilder().build(request, model)
