"""
Citation List Builder

Renders every computed fact into a literal, unit-consistent string.
The resulting list is the closed universe of numbers the narrative may
quote; it is frozen before synthesis and truncated only when exposed.
"""

from dataclasses import dataclass, field
from typing import Optional

from analysis.formatting import aggregation_type, concentration, format_number, percent_change
from analysis.relationships import CrossDatasetStat, Relationship
from api.schemas.responses import ChartCandidate, ChartType, DatasetProfile, TrendDirection
from config import get_settings
from core.logging_config import analysis_logger as logger


@dataclass
class CitationList:
    """Append-only list of fact strings, frozen before synthesis."""

    entries: list[str] = field(default_factory=list)
    frozen: bool = False

    def add(self, fact: str) -> None:
        if self.frozen:
            raise RuntimeError("Citation list is frozen")
        if fact and fact not in self.entries:
            self.entries.append(fact)

    def freeze(self) -> "CitationList":
        self.frozen = True
        return self

    def for_prompt(self, limit: Optional[int] = None) -> list[str]:
        """First `limit` entries (citation_limit by default)."""
        if limit is None:
            limit = get_settings().analysis.citation_limit
        return list(self.entries[:limit])

    def as_text(self, limit: Optional[int] = None) -> str:
        return "\n".join(f"{i}. {fact}" for i, fact in enumerate(self.for_prompt(limit), start=1))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def _trend_text(direction: TrendDirection, percent: float) -> str:
    if direction == TrendDirection.UP:
        return f"trend up {percent:g}%"
    if direction == TrendDirection.DOWN:
        return f"trend down {percent:g}%"
    return "trend stable"


def build_citation_list(
    profiles: list[DatasetProfile],
    relationships: Optional[list[Relationship]] = None,
    cross_stats: Optional[list[CrossDatasetStat]] = None,
    charts: Optional[list[ChartCandidate]] = None,
) -> CitationList:
    """
    Build the frozen citation list for one request.

    Order: global date range, per-dataset facts, relationships,
    cross-dataset statistics, then line and bar chart facts.
    """
    citations = CitationList()
    relationships = relationships or []
    cross_stats = cross_stats or []
    charts = charts or []
    multi_file = len(profiles) > 1
    names = [p.name for p in profiles]

    # Global date range over every temporal field
    min_dates = [f.temporal.min_date for p in profiles for f in p.fields if f.temporal]
    max_dates = [f.temporal.max_date for p in profiles for f in p.fields if f.temporal]
    if min_dates:
        citations.add(f"Data period: {min(min_dates)} to {max(max_dates)}")

    for profile in profiles:
        prefix = f"[{profile.name}] " if multi_file else ""
        citations.add(f"{prefix}scale: {profile.row_count} rows × {profile.column_count} columns")

        for fp in profile.fields:
            if fp.numeric is not None:
                stats = fp.numeric
                trend = _trend_text(stats.trend, stats.trend_percent)
                if aggregation_type(fp.name) == "sum" and not fp.is_identifier:
                    citations.add(
                        f"{prefix}{fp.name} total: {format_number(stats.sum)}, "
                        f"mean {format_number(stats.mean)}, {trend}"
                    )
                else:
                    citations.add(f"{prefix}{fp.name} mean: {format_number(stats.mean)}, {trend}")
                citations.add(
                    f"{prefix}{fp.name} range: {format_number(stats.min)} to "
                    f"{format_number(stats.max)}, median {format_number(stats.median)}"
                )

            elif fp.categorical is not None:
                top = fp.categorical.top_values[:3]
                if top and not fp.is_identifier:
                    share = sum(t.count for t in top) / max(fp.non_null_count, 1) * 100
                    listed = ", ".join(f"{t.value}({t.count})" for t in top)
                    citations.add(f"{prefix}{fp.name} top 3: {listed}, top-3 share {share:.1f}%")
                citations.add(f"{prefix}{fp.name}: {fp.categorical.distinct_count} categories")

            elif fp.temporal is not None:
                t = fp.temporal
                citations.add(
                    f"{prefix}{fp.name} range: {t.min_date} to {t.max_date}, span {t.span_days} days"
                )

    for rel in relationships:
        citations.add(f"Relationship: {rel.describe(names)}")

    for stat in cross_stats:
        top5 = ", ".join(f"{d['name']}({format_number(d['value'])})" for d in stat.data[:5])
        citations.add(
            f"{stat.title}: total {format_number(stat.total)}, "
            f"top-3 share {stat.top_share * 100:.1f}%, top 5: {top5}"
        )

    line_charts = [c for c in charts if c.chart_type == ChartType.LINE][:2]
    for chart in line_charts:
        keys = chart.series_keys()
        if len(chart.data) < 2 or not keys:
            continue
        key = keys[0]
        start, end = chart.data[0], chart.data[-1]
        change = percent_change(start[key], end[key])
        change_text = f" ({change:+.1f}%)" if change is not None else ""
        citations.add(
            f"{chart.title}: {start['name']} {format_number(start[key])} → "
            f"{end['name']} {format_number(end[key])}{change_text}"
        )

    bar_charts = [c for c in charts if c.chart_type == ChartType.BAR][:2]
    for chart in bar_charts:
        keys = chart.series_keys()
        if not keys:
            continue
        values = [d[keys[0]] for d in chart.data]
        names_top = ", ".join(str(d["name"]) for d in chart.data[:3])
        citations.add(
            f"{chart.title}: top 3 {names_top}, share {concentration(values) * 100:.1f}%"
        )

    logger.info(f"Built citation list with {len(citations)} entries")
    return citations.freeze()


@dataclass
class DataRichness:
    is_rich: bool
    max_charts: int
    max_sections: int


def data_richness(
    profiles: list[DatasetProfile],
    relationships: list[Relationship],
    cross_stats: list[CrossDatasetStat],
    charts: list[ChartCandidate],
) -> DataRichness:
    """Rich inputs get up to 4 chart sections and 8 sections in the outline."""
    total_rows = sum(p.row_count for p in profiles)
    is_rich = (
        len(profiles) > 1
        or bool(relationships)
        or bool(cross_stats)
        or (len(charts) >= 3 and total_rows >= 20)
    )
    if is_rich:
        return DataRichness(True, min(len(charts), 4), 8)
    return DataRichness(False, 1, 6)


def _dispersion(mean: float, std_dev: float) -> str:
    if mean == 0:
        return ""
    cv = abs(std_dev / mean) * 100
    if cv > 50:
        return "high dispersion"
    if cv > 20:
        return "medium dispersion"
    return "low dispersion"


def build_analysis_summary(
    profiles: list[DatasetProfile],
    relationships: list[Relationship],
    cross_stats: list[CrossDatasetStat],
    charts: list[ChartCandidate],
) -> str:
    """Human-readable analysis digest for prompts."""
    names = [p.name for p in profiles]
    parts = [
        "## Rules",
        "- Quote numbers only from the citation list, with the same units.",
        "- A period with no rows means no record, not a drop to zero.",
        "",
        "## Datasets",
    ]

    for profile in profiles:
        parts.append(f"### {profile.name} ({profile.row_count} rows × {profile.column_count} columns)")
        for fp in profile.fields:
            if fp.numeric is not None:
                dispersion = _dispersion(fp.numeric.mean, fp.numeric.std_dev)
                parts.append(
                    f"- {fp.name} (numeric): mean {format_number(fp.numeric.mean)}, "
                    f"{fp.numeric.trend.value}" + (f", {dispersion}" if dispersion else "")
                )
            elif fp.categorical is not None:
                parts.append(f"- {fp.name} (categorical): {fp.categorical.distinct_count} categories")
            elif fp.temporal is not None:
                parts.append(
                    f"- {fp.name} (date): {fp.temporal.min_date} to {fp.temporal.max_date}"
                )
            else:
                parts.append(f"- {fp.name}: empty")

    if relationships:
        parts.append("")
        parts.append("## Relationships")
        for rel in relationships:
            parts.append(f"- {rel.describe(names)} [{rel.relation_type}]")

    if cross_stats:
        parts.append("")
        parts.append("## Cross-dataset results")
        for stat in cross_stats:
            leader = stat.data[0]["name"] if stat.data else "n/a"
            parts.append(
                f"- {stat.title}: {len(stat.data)} groups, leader {leader}, "
                f"top-3 share {stat.top_share * 100:.1f}%"
            )

    if charts:
        parts.append("")
        parts.append("## Recommended charts")
        for chart in charts:
            parts.append(f"- {chart.id} [{chart.chart_type.value}] {chart.title}")

    return "\n".join(parts)
