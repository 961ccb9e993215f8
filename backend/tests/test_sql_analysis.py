"""
Test SQL Analysis Path

Read-only guarding, payload parsing and per-query failure isolation
over an in-memory DuckDB database.
"""

import json

import duckdb
import pytest

from analysis.sql_analysis import (
    SQLAnalysisPath,
    build_schema_text,
    parse_sql_payload,
    rows_to_chart_data,
    validate_read_only,
)
from api.schemas.responses import ChartType
from core.data_profiler import data_profiler
from core.errors import ParseError, QueryError
from llm.prompts import SQL_ANALYSIS_SYSTEM_PROMPT


class TestReadOnlyGuard:
    def test_select_and_with_allowed(self):
        assert validate_read_only("  SELECT 1") == "SELECT 1"
        assert validate_read_only("WITH x AS (SELECT 1) SELECT * FROM x").startswith("WITH")

    @pytest.mark.parametrize("sql", [
        "DROP TABLE t1",
        "INSERT INTO t1 VALUES (1)",
        "select 1; drop table t1",
        "COPY t1 TO 'out.csv'",
    ])
    def test_rejected(self, sql):
        with pytest.raises(QueryError):
            validate_read_only(sql)


class TestPayload:
    def test_parse(self):
        metrics, charts = parse_sql_payload({
            "keyMetrics": [{"label": "Total", "sql": "SELECT 1"}, {"label": "broken"}],
            "chartQueries": [
                {"id": "a", "title": "A", "chartType": "bar", "sql": "SELECT 1"},
                {"id": "a", "title": "Dup", "chartType": "line", "sql": "SELECT 1"},
                {"id": "c", "title": "Pie", "chartType": "pie", "sql": "SELECT 1"},
                {"id": "bad id!", "title": "D", "chartType": "bar", "sql": "SELECT 1"},
            ],
        })

        assert [m.label for m in metrics] == ["Total"]
        assert [c.id for c in charts] == ["a", "chart_2", "chart_4"]
        assert charts[1].chart_type == ChartType.LINE

    def test_rows_to_chart_data(self):
        data = rows_to_chart_data(["region", "total"], [("North", 10), ("South", 4.5)])

        assert data == [{"name": "North", "total": 10}, {"name": "South", "total": 4.5}]

    def test_rows_coerced_when_not_numeric(self):
        data = rows_to_chart_data(["name", "v"], [("a", "3"), ("b", "x")])

        assert data == [{"name": "a", "v": 3.0}, {"name": "b", "v": 0}]

    def test_schema_text(self, sales_dataset):
        profiles = data_profiler.profile_all([sales_dataset])

        text = build_schema_text(profiles, ["t1"])

        assert text.startswith('- t1 ("month" DATE, "region" VARCHAR, "revenue" DOUBLE)')


class TestSQLAnalysisPath:
    @pytest.fixture
    def connection(self, sales_dataset, scripted_model):
        path = SQLAnalysisPath(scripted_model())
        conn = duckdb.connect(database=":memory:")
        path.load_tables(conn, [sales_dataset], data_profiler.profile_all([sales_dataset]))
        yield path, conn
        conn.close()

    @pytest.mark.asyncio
    async def test_run_query(self, connection):
        path, conn = connection

        columns, rows = await path.run_query(conn, "SELECT COUNT(*) AS n, SUM(revenue) AS total FROM t1")

        assert columns == ["n", "total"]
        assert rows == [(12, 2720.0)]

    @pytest.mark.asyncio
    async def test_failed_query_raises(self, connection):
        path, conn = connection

        with pytest.raises(QueryError):
            await path.run_query(conn, "SELECT missing_column FROM t1")

    @pytest.mark.asyncio
    async def test_failing_metric_gets_placeholder(self, connection):
        path, conn = connection
        metrics, _ = parse_sql_payload({"keyMetrics": [
            {"label": "Total", "sql": "SELECT SUM(revenue) AS value FROM t1"},
            {"label": "Broken", "sql": "SELECT nope FROM t1"},
            {"label": "Nothing", "sql": "SELECT revenue AS value FROM t1 WHERE revenue < 0"},
        ]})

        results = await path.run_metrics(conn, metrics)

        assert results[0].value == "2720"
        assert results[1].value.startswith("(query failed:")
        assert results[2].value == "—"

    @pytest.mark.asyncio
    async def test_file_access_blocked(self, connection, tmp_path):
        path, conn = connection
        secret = tmp_path / "secret.csv"
        secret.write_text("token\nTOPSECRET\n", encoding="utf-8")
        metrics, _ = parse_sql_payload({"keyMetrics": [
            {"label": "Leak", "sql": f"SELECT token AS value FROM read_csv_auto('{secret.as_posix()}')"},
        ]})

        with pytest.raises(QueryError):
            await path.run_query(conn, metrics[0].sql)
        results = await path.run_metrics(conn, metrics)

        assert results[0].value.startswith("(query failed:")
        assert "TOPSECRET" not in results[0].value

    @pytest.mark.asyncio
    async def test_failing_chart_omitted(self, connection):
        path, conn = connection
        _, charts = parse_sql_payload({"chartQueries": [
            {"id": "ok", "title": "By region", "chartType": "bar",
             "sql": "SELECT region AS name, SUM(revenue) AS revenue FROM t1 GROUP BY region ORDER BY 2 DESC"},
            {"id": "bad", "title": "Broken", "chartType": "bar", "sql": "SELECT nope FROM t1"},
        ]})

        candidates = await path.run_charts(conn, charts)

        assert [c.id for c in candidates] == ["ok"]
        assert candidates[0].data[0] == {"name": "North", "revenue": 1370.0}

    @pytest.mark.asyncio
    async def test_analyze(self, sales_dataset, scripted_model):
        payload = {
            "summary": "Overview",
            "keyMetrics": [{"label": "Rows", "sql": "SELECT COUNT(*) AS value FROM t1"}],
            "chartQueries": [],
            "insights": ["a", "b", "c", "d", "e", "f"],
        }
        model = scripted_model({SQL_ANALYSIS_SYSTEM_PROMPT: json.dumps(payload)})

        analysis = await SQLAnalysisPath(model).analyze([sales_dataset], intent="Count rows")

        assert analysis.path == "sql"
        assert analysis.metrics[0].value == "12"
        assert analysis.citations.entries == ["Rows: 12"]
        assert analysis.citations.frozen
        assert len(analysis.insights) == 5
        assert "Count rows" in model.calls[0][1]
        assert '"revenue" DOUBLE' in model.calls[0][1]

    @pytest.mark.asyncio
    async def test_unparseable_payload_is_fatal(self, sales_dataset, scripted_model):
        model = scripted_model(default="SELECT everything please")

        with pytest.raises(ParseError):
            await SQLAnalysisPath(model).analyze([sales_dataset])
