"""
Test Chart Candidates and Citations

End to end over the profiler path: profile, chart candidates, citation
list, and the quality gate judging prose against that list.
"""

from datetime import date

import pytest

from analysis.charts import ChartGenerator, detect_granularity, time_key
from analysis.citations import CitationList, build_citation_list, data_richness
from analysis.formatting import aggregation_type, concentration, format_number, magnitude_value
from analysis.pipeline import ProfilerAnalysisPath
from api.schemas.responses import ChartType
from core.data_profiler import data_profiler
from core.dataset import Dataset
from quality.checks import ReportDraft
from quality.gate import QualityGate


@pytest.fixture
def analysis(sales_dataset):
    return ProfilerAnalysisPath().run([sales_dataset])


class TestFormatting:
    def test_format_number(self):
        assert format_number(388_000_000) == "3.88 hundred-million"
        assert format_number(52_300) == "5.23 ten-thousand"
        assert format_number(2720) == "2720"
        assert format_number(226.6667) == "226.67"

    def test_format_number_rounding_boundaries(self):
        assert format_number(99_999_999) == "1.00 hundred-million"
        assert format_number(-99_999_999) == "-1.00 hundred-million"
        assert format_number(9999.999) == "1.00 ten-thousand"
        assert format_number(9999.5) == "9999.50"
        assert format_number(99_994_999) == "9999.50 ten-thousand"

    def test_magnitude_value(self):
        assert magnitude_value("3.88 hundred-million") == pytest.approx(388_000_000)
        assert magnitude_value("1,234万") == pytest.approx(12_340_000)
        assert magnitude_value("42") is None

    def test_aggregation_type(self):
        assert aggregation_type("revenue") == "sum"
        assert aggregation_type("Rank") == "none"
        assert aggregation_type("year") == "none"
        assert aggregation_type("conversion rate") == "avg"
        assert aggregation_type("avg score") == "avg"

    def test_concentration(self):
        assert concentration([50, 30, 10, 10]) == pytest.approx(0.9)
        assert concentration([]) == 0.0
        assert concentration([0, 0]) == 0.0


class TestGranularity:
    def test_detect(self):
        daily = [date(2024, 1, d) for d in range(1, 8)]
        monthly = [date(2024, m, 1) for m in range(1, 7)]
        yearly = [date(y, 1, 1) for y in range(2018, 2024)]

        assert detect_granularity(daily) == "daily"
        assert detect_granularity(monthly) == "monthly"
        assert detect_granularity(yearly) == "yearly"

    def test_time_key(self):
        d = date(2024, 5, 17)
        assert time_key(d, "monthly") == "2024-05"
        assert time_key(d, "quarterly") == "2024-Q2"
        assert time_key(d, "yearly") == "2024"


class TestChartGenerator:
    def test_candidates(self, sales_dataset):
        profiles = data_profiler.profile_all([sales_dataset])
        charts = ChartGenerator().generate([sales_dataset], profiles)

        assert [c.id for c in charts] == ["chart_1", "chart_2", "chart_3"]
        assert [c.chart_type for c in charts] == [ChartType.LINE, ChartType.LINE, ChartType.BAR]
        assert [c.relevance for c in charts] == sorted((c.relevance for c in charts), reverse=True)

    def test_line_candidate(self, analysis):
        line = analysis.chart("chart_1")

        assert line.title == "revenue over time"
        assert [p["name"] for p in line.data] == ["2024-01", "2024-02", "2024-03", "2024-04"]
        assert [p["revenue"] for p in line.data] == [600, 640, 700, 780]
        assert "overall +30.0%" in line.description

    def test_multi_series_candidate(self, analysis):
        multi = analysis.chart("chart_2")

        assert multi.series_keys() == ["North", "South", "East"]
        assert multi.data[-1]["North"] == 400

    def test_bar_candidate(self, analysis):
        bar = analysis.chart("chart_3")

        assert bar.title == "revenue by region"
        assert [p["name"] for p in bar.data] == ["North", "South", "East"]
        assert [p["revenue"] for p in bar.data] == [1370, 890, 460]
        assert bar.description.startswith("total 2720, Top3 share 100.0%")

    def test_too_few_periods_no_line(self, sales_dataset):
        first_two = [r for r in sales_dataset.rows if r["month"] in ("2024-01", "2024-02")]
        dataset = Dataset(name="short.csv", headers=sales_dataset.headers, rows=first_two)
        charts = ChartGenerator().generate([dataset], data_profiler.profile_all([dataset]))

        assert all(c.chart_type == ChartType.BAR for c in charts)

    def test_cross_bar_for_multiple_files(self, orders_dataset, stores_dataset):
        analysis = ProfilerAnalysisPath().run([orders_dataset, stores_dataset])

        cross = [c for c in analysis.charts if c.source.startswith("cross_")]
        assert len(cross) == 1
        assert cross[0].relevance == 95
        # Per-file titles carry the file name
        own = [c for c in analysis.charts if not c.source.startswith("cross_")]
        assert all(c.title.startswith("orders: ") for c in own)


class TestCitationList:
    def test_contents(self, analysis):
        entries = list(analysis.citations)

        assert entries[0] == "Data period: 2024-01-01 to 2024-04-01"
        assert "scale: 12 rows × 3 columns" in entries
        assert "revenue total: 2720, mean 226.67, trend up 19%" in entries
        assert "revenue range: 100 to 400, median 220" in entries
        assert "region: 3 categories" in entries
        assert "revenue over time: 2024-01 600 → 2024-04 780 (+30.0%)" in entries

    def test_frozen(self, analysis):
        with pytest.raises(RuntimeError):
            analysis.citations.add("made up")

    def test_prompt_limit(self):
        citations = CitationList()
        for i in range(30):
            citations.add(f"fact {i}")
        citations.freeze()

        assert len(citations.for_prompt()) == 20
        assert len(citations) == 30
        assert citations.as_text(limit=2) == "1. fact 0\n2. fact 1"

    def test_multi_file_prefix(self, orders_dataset, stores_dataset):
        datasets = [orders_dataset, stores_dataset]
        profiles = data_profiler.profile_all(datasets)
        citations = build_citation_list(profiles)

        assert "[orders.csv] scale: 5 rows × 2 columns" in citations.entries

    def test_richness(self, analysis, orders_dataset, stores_dataset):
        assert not analysis.richness.is_rich
        assert analysis.richness.max_charts == 1

        multi = ProfilerAnalysisPath().run([orders_dataset, stores_dataset])
        assert multi.richness.is_rich
        assert multi.richness.max_sections == 8

    def test_richness_empty(self):
        assert data_richness([], [], [], []).max_sections == 6


class TestGroundedDraft:
    def test_real_total_passes(self, analysis):
        draft = ReportDraft(
            summary="Revenue reached 2720 across 3 regions.",
            insights=["revenue total 2720, North leads the regions"],
        )
        report = QualityGate().run(draft, analysis)

        assert not any("not found in citation list" in w for w in report.warnings)
        assert report.dimensions["citation_coverage"] == 1.0

    def test_fabricated_total_flagged(self, analysis):
        draft = ReportDraft(
            summary="Revenue reached 2720.",
            insights=["revenue total 9876 this quarter"],
        )
        report = QualityGate().run(draft, analysis)

        assert '[insights[0]] value "9876" not found in citation list' in report.warnings

    def test_large_total_quoted_as_plain_number(self):
        rows = [
            {"month": month, "region": region, "revenue": "4500"}
            for month in ["2024-01", "2024-02", "2024-03", "2024-04"]
            for region in ["North", "South", "East"]
        ]
        dataset = Dataset(name="flat.csv", headers=["month", "region", "revenue"], rows=rows)
        analysis = ProfilerAnalysisPath().run([dataset])
        assert any("5.40 ten-thousand" in entry for entry in analysis.citations.entries)

        draft = ReportDraft(insights=["revenue total 54,000 across regions", "that is 54000 in all"])
        report = QualityGate().run(draft, analysis)

        assert not any("not found in citation list" in w for w in report.warnings)
