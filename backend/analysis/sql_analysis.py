"""
SQL Analysis Path

Loads the request's datasets into an in-memory DuckDB database (one
table per dataset, t1..tN), asks the model for read-only metric and
chart queries, and runs each query in isolation. A failing metric gets
a placeholder value; a failing chart is omitted.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Optional

import duckdb

from analysis.citations import CitationList
from analysis.formatting import format_number
from analysis.pipeline import AnalysisInput, AnalysisPath
from api.schemas.responses import ChartCandidate, ChartType, DatasetProfile, MetricItem, convert_numpy
from config import get_settings
from core.data_profiler import data_profiler
from core.dataset import Dataset, FieldType
from core.errors import QueryError
from core.logging_config import sql_logger as logger
from llm.json_envelope import parse_json_object
from llm.ollama_client import GenerateFn
from llm.prompts import SQL_ANALYSIS_PROMPT, SQL_ANALYSIS_SYSTEM_PROMPT


MAX_METRICS = 6
MAX_INSIGHTS = 5
MAX_RECOMMENDATIONS = 4

SQL_TYPES = {
    FieldType.NUMERIC: "DOUBLE",
    FieldType.TEMPORAL: "DATE",
    FieldType.CATEGORICAL: "VARCHAR",
}

READ_ONLY_START = re.compile(r"^\s*(select|with)\b", re.IGNORECASE)
CHART_ID = re.compile(r"^[A-Za-z0-9_-]{1,40}$")


@dataclass
class MetricQuery:
    label: str
    sql: str


@dataclass
class ChartQuery:
    id: str
    title: str
    chart_type: ChartType
    sql: str


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def validate_read_only(sql: str) -> str:
    """
    Accept a single read-only statement.

    Raises:
        QueryError: not a SELECT/WITH query, or contains a separator
    """
    text = sql.strip()
    if not READ_ONLY_START.match(text):
        raise QueryError("Only SELECT queries are allowed")
    if ";" in text:
        raise QueryError("Multiple statements are not allowed")
    return text


def build_schema_text(profiles: list[DatasetProfile], table_names: list[str]) -> str:
    """One line per table: name, typed columns and row count."""
    lines = []
    for profile, table in zip(profiles, table_names):
        columns = ", ".join(
            f"{quote_identifier(f.name)} {SQL_TYPES[f.field_type]}" for f in profile.fields
        )
        lines.append(f"- {table} ({columns}), about {profile.row_count} rows ({profile.name})")
    return "\n".join(lines)


def parse_sql_payload(data: dict[str, Any]) -> tuple[list[MetricQuery], list[ChartQuery]]:
    """Keep only well-formed metric and chart query entries."""
    metrics = [
        MetricQuery(label=m["label"], sql=m["sql"])
        for m in data.get("keyMetrics") or []
        if isinstance(m, dict) and isinstance(m.get("label"), str) and isinstance(m.get("sql"), str)
    ]

    charts = []
    seen: set[str] = set()
    for n, c in enumerate(data.get("chartQueries") or [], start=1):
        if not isinstance(c, dict):
            continue
        if not isinstance(c.get("title"), str) or not isinstance(c.get("sql"), str):
            continue
        if c.get("chartType") not in ("bar", "line"):
            continue
        chart_id = c.get("id") if isinstance(c.get("id"), str) and CHART_ID.match(c["id"]) else f"chart_{n}"
        if chart_id in seen:
            chart_id = f"chart_{n}"
        seen.add(chart_id)
        charts.append(ChartQuery(chart_id, c["title"], ChartType(c["chartType"]), c["sql"]))

    return metrics, charts


def rows_to_chart_data(columns: list[str], rows: list[tuple]) -> list[dict[str, Any]]:
    """
    Turn result rows into chart points.

    The "name" column (else the first column) labels each point; other
    numeric columns become series. With no numeric column, the first
    other column is coerced.
    """
    if not rows or not columns:
        return []

    records = [dict(zip(columns, convert_numpy(list(row)))) for row in rows]
    first = records[0]
    name_key = next((c for c in columns if c.lower() == "name"), columns[0])
    numeric_keys = [
        c for c in columns
        if c != name_key and isinstance(first[c], (int, float)) and not isinstance(first[c], bool)
    ]
    if not numeric_keys:
        numeric_keys = [c for c in columns if c != name_key][:1]

    data = []
    for record in records:
        point: dict[str, Any] = {"name": str(record[name_key] if record[name_key] is not None else "")}
        for key in numeric_keys:
            value = record[key]
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                point[key] = value
            else:
                try:
                    point[key] = float(value)
                except (TypeError, ValueError):
                    point[key] = 0
        data.append(point)
    return data


class SQLAnalysisPath(AnalysisPath):
    """Model-authored queries over an ephemeral DuckDB database."""

    name = "sql"

    def __init__(self, generate: GenerateFn, model: Optional[str] = None):
        self.generate = generate
        self.model = model
        self.settings = get_settings().sql

    def load_tables(
        self,
        conn: duckdb.DuckDBPyConnection,
        datasets: list[Dataset],
        profiles: list[DatasetProfile],
    ) -> list[str]:
        """Create t1..tN with columns typed from the profiles, then lock the connection down."""
        table_names = []
        for i, (dataset, profile) in enumerate(zip(datasets, profiles), start=1):
            table = f"t{i}"
            columns = ", ".join(
                f"{quote_identifier(f.name)} {SQL_TYPES[f.field_type]}" for f in profile.fields
            )
            conn.execute(f"CREATE TABLE {table} ({columns})")

            frame = data_profiler.typed_frame(dataset, profile)
            if frame.height > 0 and frame.width > 0:
                placeholders = ", ".join("?" for _ in profile.fields)
                conn.executemany(
                    f"INSERT INTO {table} VALUES ({placeholders})",
                    [list(row) for row in frame.iter_rows()],
                )
            table_names.append(table)
            logger.debug(f"Loaded {dataset.name} into {table} ({frame.height} rows)")

        # Queries may only see the loaded tables: no file, URL or extension access
        conn.execute("SET enable_external_access = false")
        conn.execute("SET lock_configuration = true")

        return table_names

    def _execute(self, conn: duckdb.DuckDBPyConnection, sql: str) -> tuple[list[str], list[tuple]]:
        cursor = conn.execute(sql)
        columns = [d[0] for d in cursor.description or []]
        return columns, cursor.fetchmany(self.settings.max_rows)

    async def run_query(
        self,
        conn: duckdb.DuckDBPyConnection,
        sql: str,
    ) -> tuple[list[str], list[tuple]]:
        """
        Validate and execute one query under the configured timeout.

        Raises:
            QueryError: rejected, failed, or timed out
        """
        text = validate_read_only(sql)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute, conn, text),
                timeout=self.settings.query_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            conn.interrupt()
            raise QueryError(f"query timed out after {self.settings.query_timeout_seconds:g}s") from e
        except duckdb.Error as e:
            raise QueryError(str(e)) from e

    async def run_metrics(
        self,
        conn: duckdb.DuckDBPyConnection,
        queries: list[MetricQuery],
    ) -> list[MetricItem]:
        metrics = []
        for query in queries[:MAX_METRICS]:
            value = ""
            try:
                columns, rows = await self.run_query(conn, query.sql)
                if rows and columns:
                    record = dict(zip(columns, convert_numpy(list(rows[0]))))
                    raw = record.get("value")
                    if raw is None:
                        raw = record[columns[0]]
                    if raw is not None:
                        value = format_number(raw) if isinstance(raw, (int, float)) and not isinstance(raw, bool) else str(raw)
            except QueryError as e:
                logger.warning(f"Metric query '{query.label}' failed: {e.message}")
                value = f"(query failed: {e.message})"
            metrics.append(MetricItem(label=query.label, value=value or "—"))
        return metrics

    async def run_charts(
        self,
        conn: duckdb.DuckDBPyConnection,
        queries: list[ChartQuery],
    ) -> list[ChartCandidate]:
        charts = []
        for query in queries:
            try:
                columns, rows = await self.run_query(conn, query.sql)
            except QueryError as e:
                logger.warning(f"Chart query '{query.id}' failed: {e.message}")
                continue

            data = rows_to_chart_data(columns, rows)
            if not data:
                continue
            charts.append(ChartCandidate(
                id=query.id,
                title=query.title,
                chart_type=query.chart_type,
                description=f"{len(data)} points from SQL",
                data=data,
                relevance=90,
                source="sql",
            ))
        return charts

    async def analyze(
        self,
        datasets: list[Dataset],
        intent: Optional[str] = None,
        chart_sections: int = 1,
    ) -> AnalysisInput:
        """
        Run the SQL path for one request.

        The database lives only for this call and is always closed.
        """
        logger.info(f"=== SQL ANALYSIS STARTED ({len(datasets)} datasets) ===")
        profiles = data_profiler.profile_all(datasets)
        max_charts = max(chart_sections, 1)

        conn = duckdb.connect(database=":memory:")
        try:
            table_names = self.load_tables(conn, datasets, profiles)
            schema = build_schema_text(profiles, table_names)

            prompt = SQL_ANALYSIS_PROMPT.format(
                schema=schema,
                intent=intent or "Summarize the most important figures in the data.",
                max_metrics=MAX_METRICS,
                max_charts=max_charts,
            )
            payload = parse_json_object(await self.generate(SQL_ANALYSIS_SYSTEM_PROMPT, prompt, self.model))
            metric_queries, chart_queries = parse_sql_payload(payload)

            metrics = await self.run_metrics(conn, metric_queries)
            charts = await self.run_charts(conn, chart_queries[:max_charts])
        finally:
            conn.close()

        insights = [i for i in payload.get("insights") or [] if isinstance(i, str)][:MAX_INSIGHTS]
        recommendations = [r for r in payload.get("recommendations") or [] if isinstance(r, str)][:MAX_RECOMMENDATIONS]
        summary = payload.get("summary") if isinstance(payload.get("summary"), str) else ""

        citations = CitationList()
        for metric in metrics:
            if not metric.value.startswith("(query failed"):
                citations.add(f"{metric.label}: {metric.value}")
        for chart in charts:
            keys = chart.series_keys()
            if keys:
                points = ", ".join(
                    f"{p['name']} {format_number(p[keys[0]])}" for p in chart.data[:5]
                )
                citations.add(f"{chart.title}: {points}")
        citations.freeze()

        logger.success(f"SQL analysis complete: {len(metrics)} metrics, {len(charts)} charts")

        return AnalysisInput(
            path=self.name,
            profiles=profiles,
            charts=charts,
            citations=citations,
            summary=(summary + "\n\n" + schema).strip(),
            metrics=metrics,
            insights=insights,
            recommendations=recommendations,
        )
