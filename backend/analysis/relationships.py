"""
Relationship Detector & Cross-Dataset Aggregator

Finds shared dimensions across profiled datasets and aggregates the
numeric fields of one dataset by the keys it shares with another.
This is the only place multi-file semantics exist.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import polars as pl

from analysis.formatting import aggregation_type, concentration, sort_by_primary_metric
from api.schemas.responses import DatasetProfile, FieldProfile
from config import get_settings
from core.data_profiler import data_profiler
from core.dataset import Dataset, FieldType, is_null
from core.logging_config import analysis_logger as logger


@dataclass
class Relationship:
    """Two datasets linked by a shared field with overlapping values."""

    from_index: int
    to_index: int
    field: str
    overlap_ratio: float
    relation_type: str = "many-to-many"

    def describe(self, names: list[str]) -> str:
        return (
            f"{names[self.from_index]} and {names[self.to_index]} are linked by "
            f"'{self.field}' (match rate {self.overlap_ratio * 100:.0f}%)"
        )


@dataclass
class CrossDatasetStat:
    """A numeric field of one dataset aggregated by a shared dimension."""

    id: str
    title: str
    description: str
    group_by: str
    aggregate_field: str
    from_index: int
    to_index: int
    stat_type: str = "sum"
    data: list[dict[str, Any]] = field(default_factory=list)
    total: float = 0.0
    top_share: float = 0.0


def summable_fields(profile: DatasetProfile) -> list[FieldProfile]:
    """
    Numeric fields whose values may be added up, headline metrics first.

    Identifier-like numeric columns and rank/year/ratio columns are excluded.
    """
    candidates = [
        f for f in profile.fields_of(FieldType.NUMERIC)
        if f.numeric is not None
        and not f.is_identifier
        and aggregation_type(f.name) == "sum"
    ]
    ordered = sort_by_primary_metric([f.name for f in candidates])
    by_name = {f.name: f for f in candidates}
    return [by_name[name] for name in ordered]


def _distinct_keys(dataset: Dataset, field_name: str) -> set[str]:
    return {str(v).strip() for v in dataset.column(field_name) if not is_null(v)}


def _is_unique_per_row(dataset: Dataset, field_name: str) -> bool:
    values = [str(v).strip() for v in dataset.column(field_name) if not is_null(v)]
    return len(values) == len(set(values))


class RelationshipDetector:
    """Pairwise shared-dimension detection plus cross-dataset aggregation."""

    def __init__(self):
        self.settings = get_settings().analysis

    def _is_link_field(self, a: FieldProfile, b: FieldProfile) -> bool:
        if a.field_type == FieldType.CATEGORICAL and b.field_type == FieldType.CATEGORICAL:
            return True
        # Numeric codes (store_id = 1001) link just as well as string keys
        return a.is_identifier and b.is_identifier and a.field_type == b.field_type

    def detect(
        self,
        datasets: list[Dataset],
        profiles: list[DatasetProfile],
    ) -> list[Relationship]:
        """
        Detect relationships for every ordered pair of datasets.

        Args:
            datasets: Decoded datasets, in request order
            profiles: Their profiles, same order

        Returns:
            Relationships; empty for fewer than two datasets
        """
        if len(datasets) < 2:
            return []

        relationships = []
        for i, left in enumerate(profiles):
            for j, right in enumerate(profiles):
                if i == j:
                    continue
                for left_field in left.fields:
                    right_field = right.get_field(left_field.name)
                    if right_field is None or not self._is_link_field(left_field, right_field):
                        continue

                    relationship = self._match(datasets, i, j, left_field.name)
                    if relationship is not None:
                        relationships.append(relationship)

        logger.info(f"Detected {len(relationships)} relationships across {len(datasets)} datasets")
        return relationships

    def _match(
        self,
        datasets: list[Dataset],
        i: int,
        j: int,
        field_name: str,
    ) -> Optional[Relationship]:
        left_keys = _distinct_keys(datasets[i], field_name)
        right_keys = _distinct_keys(datasets[j], field_name)
        shared = left_keys & right_keys

        # Name equality alone is not a link
        if not left_keys or not shared:
            return None

        ratio = len(shared) / len(left_keys)
        if ratio < self.settings.relationship_min_overlap:
            return None

        left_unique = _is_unique_per_row(datasets[i], field_name)
        right_unique = _is_unique_per_row(datasets[j], field_name)
        if left_unique and right_unique:
            relation_type = "one-to-one"
        elif right_unique:
            relation_type = "many-to-one"
        elif left_unique:
            relation_type = "one-to-many"
        else:
            relation_type = "many-to-many"

        return Relationship(
            from_index=i,
            to_index=j,
            field=field_name,
            overlap_ratio=round(ratio, 4),
            relation_type=relation_type,
        )

    def cross_stats(
        self,
        datasets: list[Dataset],
        profiles: list[DatasetProfile],
        relationships: list[Relationship],
    ) -> list[CrossDatasetStat]:
        """
        Sum each summable numeric field of the `from` dataset, grouped by
        the shared field and restricted to keys present in the `to` dataset.
        """
        stats = []
        top_n = self.settings.cross_stat_top_n

        for rel in relationships:
            source = datasets[rel.from_index]
            profile = profiles[rel.from_index]
            metrics = summable_fields(profile)
            if not metrics:
                continue

            target_keys = _distinct_keys(datasets[rel.to_index], rel.field)
            # Keys from the raw values so numeric codes keep their spelling
            raw_keys = pl.Series(
                "__key",
                [None if is_null(v) else str(v).strip() for v in source.column(rel.field)],
                dtype=pl.Utf8,
            )
            frame = (
                data_profiler.typed_frame(source, profile)
                .with_columns(raw_keys)
                .filter(pl.col("__key").is_in(sorted(target_keys)))
            )
            if frame.height == 0:
                continue

            to_label = datasets[rel.to_index].display_name
            from_label = source.display_name

            for metric in metrics:
                grouped = (
                    frame.group_by("__key", maintain_order=True)
                    .agg(
                        pl.col(metric.name).sum().alias("value"),
                        pl.len().alias("count"),
                    )
                    .sort(["value", "__key"], descending=[True, False])
                )
                values = [float(v or 0) for v in grouped["value"].to_list()]
                total = float(sum(values))
                data = [
                    {"name": row["__key"], "value": float(row["value"] or 0), "count": int(row["count"])}
                    for row in grouped.head(top_n).iter_rows(named=True)
                ]

                stats.append(CrossDatasetStat(
                    id=f"cross_{rel.from_index}_{rel.to_index}_{metric.name}",
                    title=f"{metric.name} by {rel.field} ({to_label})",
                    description=(
                        f"{metric.name} from {from_label} summed per {rel.field} "
                        f"shared with {to_label}"
                    ),
                    group_by=rel.field,
                    aggregate_field=metric.name,
                    from_index=rel.from_index,
                    to_index=rel.to_index,
                    data=data,
                    total=total,
                    top_share=round(concentration(values), 4),
                ))

        logger.info(f"Computed {len(stats)} cross-dataset statistics")
        return stats


# Global detector instance
relationship_detector = RelationshipDetector()
