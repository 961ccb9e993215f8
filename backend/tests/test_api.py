"""
Test API

Routes exercised through the FastAPI test client with the model and
stores swapped out.
"""

import json

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_dataset_store, get_generate, get_report_store
from core.cache import DatasetStore
from core.storage import ReportStore
from llm.prompts import OUTLINE_SYSTEM_PROMPT, REPORT_SYSTEM_PROMPTS
from main import app


CSV = b"""month,region,revenue
2024-01,North,300
2024-01,South,200
2024-02,North,320
2024-02,South,210
2024-03,North,350
2024-03,South,230"""

OUTLINE = {
    "title": "Regional revenue",
    "sections": [
        {"id": "s1", "type": "summary", "title": "Summary"},
        {"id": "s2", "type": "chart", "title": "Trend"},
        {"id": "s3", "type": "insight", "title": "Findings"},
    ],
}

NARRATIVE = {
    "summary": "Revenue reached 1610.",
    "html": "<section><p>Revenue reached 1610.</p></section>",
    "insights": ["North leads"],
    "recommendations": ["Expand North"],
}


@pytest.fixture
def client(tmp_path, scripted_model):
    model = scripted_model({
        OUTLINE_SYSTEM_PROMPT: json.dumps(OUTLINE),
        REPORT_SYSTEM_PROMPTS["import"]: json.dumps(NARRATIVE),
        REPORT_SYSTEM_PROMPTS["generate"]: json.dumps(NARRATIVE),
    })
    reports = ReportStore(tmp_path / "reports")
    datasets = DatasetStore(ttl_seconds=3600)

    app.dependency_overrides[get_generate] = lambda: model
    app.dependency_overrides[get_report_store] = lambda: reports
    app.dependency_overrides[get_dataset_store] = lambda: datasets
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload(client):
    response = client.post("/api/v1/datasets", files={"file": ("sales.csv", CSV, "text/csv")})
    assert response.status_code == 200
    return response.json()["dataset_id"]


def stream_events(response):
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestDatasets:
    def test_upload_and_profile(self, client):
        dataset_id = upload(client)

        response = client.get(f"/api/v1/datasets/{dataset_id}")
        assert response.status_code == 200
        fields = {f["name"]: f["field_type"] for f in response.json()["fields"]}
        assert fields == {"month": "temporal", "region": "categorical", "revenue": "numeric"}

    def test_unsupported_file(self, client):
        response = client.post("/api/v1/datasets", files={"file": ("book.pdf", b"%PDF-1.7", "application/pdf")})

        assert response.status_code == 400

    def test_delete(self, client):
        dataset_id = upload(client)

        assert client.delete(f"/api/v1/datasets/{dataset_id}").status_code == 200
        assert client.get(f"/api/v1/datasets/{dataset_id}").status_code == 404


class TestOutline:
    def test_import_outline(self, client):
        dataset_id = upload(client)

        response = client.post("/api/v1/outline", json={"mode": "import", "dataset_ids": [dataset_id]})

        assert response.status_code == 200
        body = response.json()
        assert body["outline"]["title"] == "Regional revenue"
        assert body["citation_count"] > 0
        assert body["chart_candidate_count"] > 0

    def test_missing_idea(self, client):
        response = client.post("/api/v1/outline", json={"mode": "generate", "idea": " "})

        assert response.status_code == 400

    def test_unknown_dataset(self, client):
        response = client.post("/api/v1/outline", json={"mode": "import", "dataset_ids": ["nope"]})

        assert response.status_code == 404


class TestReports:
    def test_generate_stream_and_library(self, client):
        dataset_id = upload(client)

        response = client.post("/api/v1/reports/generate", json={
            "mode": "import",
            "outline": OUTLINE,
            "dataset_ids": [dataset_id],
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = stream_events(response)
        assert events[0]["type"] == "progress"
        assert events[-1]["type"] == "complete"
        report_id = events[-1]["report_id"]

        listed = client.get("/api/v1/reports").json()
        assert [r["id"] for r in listed] == [report_id]

        report = client.get(f"/api/v1/reports/{report_id}").json()
        assert report["meta"]["analysis_path"] == "profiler"
        assert report["chart_bindings"]["s2"] in report["chart_options"]

        renamed = client.patch(f"/api/v1/reports/{report_id}", json={"title": "Renamed"})
        assert renamed.status_code == 200
        assert renamed.json()["title"] == "Renamed"

        assert client.delete(f"/api/v1/reports/{report_id}").status_code == 200
        assert client.get(f"/api/v1/reports/{report_id}").status_code == 404

    def test_generate_error_event(self, client):
        response = client.post("/api/v1/reports/generate", json={
            "mode": "paste",
            "outline": OUTLINE,
            "pasted_text": "",
        })
        events = stream_events(response)

        assert [e["type"] for e in events] == ["error"]
        assert client.get("/api/v1/reports").json() == []

    def test_missing_report(self, client):
        assert client.get("/api/v1/reports/unknown").status_code == 404
        assert client.delete("/api/v1/reports/unknown").status_code == 404
        assert client.patch("/api/v1/reports/unknown", json={"title": "x"}).status_code == 404
