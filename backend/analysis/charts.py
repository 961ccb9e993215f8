"""
Chart Candidate Generator

Shapes profiled statistics and cross-dataset aggregates into scored,
typed chart specifications. Candidates are over-generated and later
down-selected by id; the narrative only ever references the id.
"""

from collections import OrderedDict
from datetime import date
from typing import Any, Optional

import polars as pl

from analysis.formatting import (
    concentration,
    concentration_label,
    format_number,
    percent_change,
)
from analysis.relationships import CrossDatasetStat, summable_fields
from api.schemas.responses import ChartCandidate, ChartType, DatasetProfile, FieldProfile
from config import get_settings
from core.data_profiler import data_profiler
from core.dataset import Dataset, FieldType, is_null, parse_date, parse_number
from core.logging_config import analysis_logger as logger


LINE_RELEVANCE = 98
MULTI_LINE_RELEVANCE = 96
CROSS_BAR_RELEVANCE = 95
BAR_RELEVANCE = 80

MAX_LINE_SERIES = 2
MAX_MULTI_SERIES = 5


def detect_granularity(dates: list[date]) -> str:
    """
    Bucket size from the average gap between distinct dates.

    <=2 days daily, <=10 weekly, <=45 monthly, <=120 quarterly, else yearly.
    """
    distinct = sorted(set(dates))
    if len(distinct) < 2:
        return "monthly"

    avg_gap = (distinct[-1] - distinct[0]).days / (len(distinct) - 1)
    if avg_gap <= 2:
        return "daily"
    if avg_gap <= 10:
        return "weekly"
    if avg_gap <= 45:
        return "monthly"
    if avg_gap <= 120:
        return "quarterly"
    return "yearly"


def time_key(value: date, granularity: str) -> str:
    """Sortable bucket key: 2024-01-15, 2024-W03, 2024-01, 2024-Q1, 2024."""
    if granularity == "daily":
        return value.isoformat()
    if granularity == "weekly":
        year, week, _ = value.isocalendar()
        return f"{year}-W{week:02d}"
    if granularity == "monthly":
        return f"{value.year}-{value.month:02d}"
    if granularity == "quarterly":
        return f"{value.year}-Q{(value.month - 1) // 3 + 1}"
    return str(value.year)


def _signed(pct: float) -> str:
    return f"{'+' if pct >= 0 else ''}{pct:.1f}%"


class ChartGenerator:
    """Builds chart candidates for one request."""

    def __init__(self):
        self.settings = get_settings().analysis

    def generate(
        self,
        datasets: list[Dataset],
        profiles: list[DatasetProfile],
        cross_stats: Optional[list[CrossDatasetStat]] = None,
    ) -> list[ChartCandidate]:
        """
        Generate chart candidates.

        Args:
            datasets: Decoded datasets in request order
            profiles: Their profiles
            cross_stats: Cross-dataset aggregates, if any

        Returns:
            Candidates with ids chart_1..chart_n in generation order,
            sorted by relevance (stable)
        """
        specs: list[dict[str, Any]] = []
        multi_file = len(datasets) > 1

        for dataset, profile in zip(datasets, profiles):
            prefix = f"{dataset.display_name}: " if multi_file else ""
            source = f"{dataset.name}"

            line = self._line_chart(dataset, profile)
            if line:
                line["title"] = prefix + line["title"]
                line["source"] = source
                specs.append(line)

            multi = self._multi_series_line(dataset, profile)
            if multi:
                multi["title"] = prefix + multi["title"]
                multi["source"] = source
                specs.append(multi)

            bar = self._bar_chart(dataset, profile)
            if bar:
                bar["title"] = prefix + bar["title"]
                bar["source"] = source
                specs.append(bar)

        for stat in cross_stats or []:
            cross = self._cross_bar(stat)
            if cross:
                specs.append(cross)

        candidates = [
            ChartCandidate(id=f"chart_{n}", **spec)
            for n, spec in enumerate(specs, start=1)
        ]
        candidates.sort(key=lambda c: c.relevance, reverse=True)

        logger.info(f"Generated {len(candidates)} chart candidates")
        return candidates

    def _time_field(self, profile: DatasetProfile) -> Optional[FieldProfile]:
        for field_profile in profile.fields_of(FieldType.TEMPORAL):
            if field_profile.temporal is not None:
                return field_profile
        return None

    def _dimension_fields(self, profile: DatasetProfile) -> list[FieldProfile]:
        return [
            f for f in profile.fields_of(FieldType.CATEGORICAL)
            if f.categorical is not None and not f.is_identifier
        ]

    def _bucketed_rows(
        self,
        dataset: Dataset,
        time_field: str,
    ) -> tuple[str, list[tuple[str, dict[str, Any]]]]:
        """(granularity, [(bucket key, row)]) for rows with a valid date."""
        dated = []
        for row in dataset.rows:
            parsed = parse_date(row.get(time_field))
            if parsed is not None:
                dated.append((parsed, row))

        granularity = detect_granularity([d for d, _ in dated])
        return granularity, [(time_key(d, granularity), row) for d, row in dated]

    def _line_chart(self, dataset: Dataset, profile: DatasetProfile) -> Optional[dict[str, Any]]:
        time_field = self._time_field(profile)
        metrics = summable_fields(profile)[:MAX_LINE_SERIES]
        if time_field is None or not metrics:
            return None

        granularity, bucketed = self._bucketed_rows(dataset, time_field.name)
        series: dict[str, dict[str, float]] = OrderedDict()
        for key, row in sorted(bucketed, key=lambda item: item[0]):
            point = series.setdefault(key, {m.name: 0.0 for m in metrics})
            for metric in metrics:
                value = parse_number(row.get(metric.name))
                if value is not None:
                    point[metric.name] += value

        if len(series) < self.settings.line_min_points:
            return None

        data = [{"name": key, **values} for key, values in series.items()]
        primary = metrics[0].name
        first, last = data[0][primary], data[-1][primary]

        notes = [f"{granularity} {primary} from {data[0]['name']} to {data[-1]['name']}"]
        growth = percent_change(first, last)
        if growth is not None:
            notes.append(
                f"overall {_signed(growth)} ({format_number(first)} to {format_number(last)})"
            )
        changes = []
        for prev, curr in zip(data, data[1:]):
            pct = percent_change(prev[primary], curr[primary])
            if pct is not None:
                changes.append(f"{curr['name']} {_signed(pct)}")
            if len(changes) == 3:
                break
        if changes:
            notes.append("period changes: " + ", ".join(changes))

        return {
            "title": f"{' and '.join(m.name for m in metrics)} over time",
            "chart_type": ChartType.LINE,
            "description": "; ".join(notes),
            "data": data,
            "relevance": LINE_RELEVANCE,
        }

    def _multi_series_line(self, dataset: Dataset, profile: DatasetProfile) -> Optional[dict[str, Any]]:
        time_field = self._time_field(profile)
        metrics = summable_fields(profile)
        if time_field is None or not metrics:
            return None

        # A repeated dimension splits one metric into comparable series
        dimension = next(
            (
                f for f in profile.fields_of(FieldType.CATEGORICAL)
                if f.categorical is not None
                and 2 <= f.distinct_count < f.non_null_count
            ),
            None,
        )
        if dimension is None:
            return None

        metric = metrics[0].name
        granularity, bucketed = self._bucketed_rows(dataset, time_field.name)

        totals: dict[str, float] = {}
        cells: dict[str, dict[str, float]] = {}
        for key, row in bucketed:
            series_name = row.get(dimension.name)
            value = parse_number(row.get(metric))
            if is_null(series_name) or value is None:
                continue
            series_name = str(series_name).strip()
            totals[series_name] = totals.get(series_name, 0.0) + value
            bucket = cells.setdefault(key, {})
            bucket[series_name] = bucket.get(series_name, 0.0) + value

        top_series = [
            name for name, _ in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        ][:MAX_MULTI_SERIES]
        if len(top_series) < 2 or len(cells) < self.settings.line_min_points:
            return None

        data = [
            {"name": key, **{s: cells[key].get(s, 0.0) for s in top_series}}
            for key in sorted(cells)
        ]
        leader = top_series[0]

        return {
            "title": f"{metric} by {dimension.name} over time",
            "chart_type": ChartType.LINE,
            "description": (
                f"{granularity} {metric} for the top {len(top_series)} {dimension.name} values; "
                f"{leader} leads with {format_number(totals[leader])}"
            ),
            "data": data,
            "relevance": MULTI_LINE_RELEVANCE,
        }

    def _bar_chart(self, dataset: Dataset, profile: DatasetProfile) -> Optional[dict[str, Any]]:
        metrics = summable_fields(profile)
        dimensions = [
            f for f in self._dimension_fields(profile)
            if 2 <= f.distinct_count <= self.settings.bar_max_categories
        ]
        if not metrics or not dimensions:
            return None

        dimension = dimensions[0].name
        metric = metrics[0].name

        grouped = (
            data_profiler.typed_frame(dataset, profile)
            .filter(pl.col(dimension).is_not_null() & pl.col(metric).is_not_null())
            .group_by(dimension)
            .agg(pl.col(metric).sum().alias("value"))
            .sort(["value", dimension], descending=[True, False])
        )
        if grouped.height < 2:
            return None

        ordered = list(zip(grouped[dimension].to_list(), grouped["value"].to_list()))
        values = [v for _, v in ordered]
        total = sum(values)
        share = concentration(values)

        description = f"total {format_number(total)}, Top3 share {share * 100:.1f}%"
        label = concentration_label(share)
        if label:
            description += f" ({label})"

        return {
            "title": f"{metric} by {dimension}",
            "chart_type": ChartType.BAR,
            "description": description,
            "data": [{"name": name, metric: value} for name, value in ordered],
            "relevance": BAR_RELEVANCE,
        }

    def _cross_bar(self, stat: CrossDatasetStat) -> Optional[dict[str, Any]]:
        if len(stat.data) < 2:
            return None

        description = (
            f"total {format_number(stat.total)}, Top3 share {stat.top_share * 100:.1f}%"
        )
        label = concentration_label(stat.top_share)
        if label:
            description += f" ({label})"

        return {
            "title": stat.title,
            "chart_type": ChartType.BAR,
            "description": description,
            "data": [{"name": d["name"], stat.aggregate_field: d["value"]} for d in stat.data],
            "relevance": CROSS_BAR_RELEVANCE,
            "source": stat.id,
        }


# Global generator instance
chart_generator = ChartGenerator()
