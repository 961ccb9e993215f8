"""
Data Profiler

Per-field type inference and statistics for a single dataset.
Computation runs on Polars series; inference runs on the raw,
loosely-typed decoder values.
"""

import re
from typing import Any, Optional

import numpy as np
import polars as pl
from scipy import stats as scipy_stats

from api.schemas.responses import (
    CategoricalStats,
    DatasetProfile,
    FieldProfile,
    NumericStats,
    TemporalStats,
    TopValue,
    TrendDirection,
)
from core.dataset import Dataset, FieldType, is_null, parse_date, parse_number
from core.logging_config import analysis_logger as logger


IDENTIFIER_NAME = re.compile(r"(^|[\s_\-])(id|code|key|uuid)($|[\s_\-])|编号|编码", re.IGNORECASE)
CAMEL_ID = re.compile(r"[a-z](Id|ID)$")


def compute_trend(values: list[float]) -> tuple[TrendDirection, float]:
    """
    Compare the mean of the second half against the first half.

    Needs at least 4 values; a change within +/-5% is stable.
    """
    if len(values) < 4:
        return TrendDirection.STABLE, 0

    mid = len(values) // 2
    first_mean = float(np.mean(values[:mid]))
    second_mean = float(np.mean(values[mid:]))

    if first_mean == 0:
        return (TrendDirection.UP if second_mean > 0 else TrendDirection.STABLE), 0

    change = (second_mean - first_mean) / abs(first_mean) * 100
    if change > 5:
        return TrendDirection.UP, round(change)
    if change < -5:
        return TrendDirection.DOWN, round(abs(change))
    return TrendDirection.STABLE, 0


class DataProfiler:
    """Deterministic dataset profiler."""

    # Uniqueness above this marks a categorical field as an identifier
    IDENTIFIER_UNIQUE_RATIO = 0.95
    IDENTIFIER_MIN_ROWS = 10
    TOP_VALUES = 10

    def profile(self, dataset: Dataset, index: int = 0) -> DatasetProfile:
        """
        Profile every field of a dataset.

        Args:
            dataset: Decoded dataset
            index: Position of the dataset in the request

        Returns:
            DatasetProfile with one FieldProfile per header, in header order
        """
        fields = [self._profile_field(dataset, header) for header in dataset.headers]

        logger.debug(
            f"Profiled {dataset.name}: {dataset.row_count} rows, "
            f"{sum(1 for f in fields if f.field_type == FieldType.NUMERIC)} numeric, "
            f"{sum(1 for f in fields if f.field_type == FieldType.TEMPORAL)} temporal"
        )

        return DatasetProfile(
            index=index,
            name=dataset.name,
            row_count=dataset.row_count,
            column_count=len(dataset.headers),
            fields=fields,
        )

    def profile_all(self, datasets: list[Dataset]) -> list[DatasetProfile]:
        return [self.profile(ds, i) for i, ds in enumerate(datasets)]

    def infer_type(self, values: list[Any]) -> FieldType:
        """Classify a column from its non-null raw values."""
        non_null = [v for v in values if not is_null(v)]
        if not non_null:
            return FieldType.CATEGORICAL
        if all(parse_number(v) is not None for v in non_null):
            return FieldType.NUMERIC
        if all(parse_date(v) is not None for v in non_null):
            return FieldType.TEMPORAL
        return FieldType.CATEGORICAL

    def _profile_field(self, dataset: Dataset, header: str) -> FieldProfile:
        values = dataset.column(header)
        non_null = [v for v in values if not is_null(v)]
        field_type = self.infer_type(values)
        distinct = len({str(v).strip() for v in non_null})

        profile = FieldProfile(
            name=header,
            field_type=field_type,
            total_count=len(values),
            non_null_count=len(non_null),
            distinct_count=distinct,
            is_identifier=self._looks_like_identifier(header, field_type, distinct, len(values)),
        )

        # All-null (or zero-row) fields carry no statistics
        if not non_null:
            return profile

        if field_type == FieldType.NUMERIC:
            profile.numeric = self._numeric_stats(header, [parse_number(v) for v in non_null])
        elif field_type == FieldType.TEMPORAL:
            profile.temporal = self._temporal_stats([parse_date(v) for v in non_null])
        else:
            profile.categorical = self._categorical_stats(header, non_null)

        return profile

    def _looks_like_identifier(
        self,
        header: str,
        field_type: FieldType,
        distinct: int,
        total: int,
    ) -> bool:
        if field_type == FieldType.TEMPORAL:
            return False
        if IDENTIFIER_NAME.search(header) or CAMEL_ID.search(header):
            return True
        return (
            field_type == FieldType.CATEGORICAL
            and total >= self.IDENTIFIER_MIN_ROWS
            and distinct / total > self.IDENTIFIER_UNIQUE_RATIO
        )

    def _numeric_stats(self, name: str, numbers: list[float]) -> NumericStats:
        """Numeric statistics; summation follows row order."""
        series = pl.Series(name, numbers, dtype=pl.Float64)
        trend, trend_percent = compute_trend(numbers)

        skewness: Optional[float] = None
        if len(numbers) >= 3 and float(series.std(ddof=0)) > 0:
            skewness = round(float(scipy_stats.skew(np.asarray(numbers))), 4)

        return NumericStats(
            min=float(series.min()),
            max=float(series.max()),
            sum=float(sum(numbers)),
            mean=float(sum(numbers)) / len(numbers),
            median=float(series.median()),
            std_dev=float(series.std(ddof=0)) if len(numbers) > 1 else 0.0,
            skewness=skewness,
            trend=trend,
            trend_percent=trend_percent,
        )

    def _categorical_stats(self, name: str, non_null: list[Any]) -> CategoricalStats:
        """Value counts, ties broken by value for a stable order."""
        series = pl.Series("value", [str(v).strip() for v in non_null], dtype=pl.Utf8)
        counts = (
            series.value_counts()
            .sort(["count", "value"], descending=[True, False])
        )
        total = len(non_null)

        top_values = [
            TopValue(
                value=row["value"],
                count=row["count"],
                percent=round(row["count"] / total * 100, 1),
            )
            for row in counts.head(self.TOP_VALUES).iter_rows(named=True)
        ]

        return CategoricalStats(distinct_count=counts.height, top_values=top_values)

    def _temporal_stats(self, dates: list) -> TemporalStats:
        ordered = sorted(dates)
        span_days = (ordered[-1] - ordered[0]).days

        return TemporalStats(
            valid_count=len(ordered),
            min_date=ordered[0].isoformat(),
            max_date=ordered[-1].isoformat(),
            span_days=span_days,
            is_time_series=len(ordered) > 3 and span_days / len(ordered) < 100,
        )

    def typed_frame(self, dataset: Dataset, profile: DatasetProfile) -> pl.DataFrame:
        """
        Build a typed Polars frame following the inferred field types.

        Numeric -> Float64, temporal -> Date, categorical -> Utf8.
        Unparseable or missing values become nulls.
        """
        columns = []
        for field_profile in profile.fields:
            raw = dataset.column(field_profile.name)
            if field_profile.field_type == FieldType.NUMERIC:
                series = pl.Series(field_profile.name, [parse_number(v) for v in raw], dtype=pl.Float64)
            elif field_profile.field_type == FieldType.TEMPORAL:
                series = pl.Series(field_profile.name, [parse_date(v) for v in raw], dtype=pl.Date)
            else:
                series = pl.Series(
                    field_profile.name,
                    [None if is_null(v) else str(v).strip() for v in raw],
                    dtype=pl.Utf8,
                )
            columns.append(series)

        return pl.DataFrame(columns) if columns else pl.DataFrame()


# Global profiler instance
data_profiler = DataProfiler()
