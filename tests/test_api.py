"""
Tests for the FastAPI transport: form validation and SSE framing.
"""

import json
import threading

import pytest
from fastapi.testclient import TestClient

from call_engine.api import endpoints
from call_engine.engine import CallAnalysisEngine

from tests.factories import FakeLLM, always, build_xlsx, call_row, sales_llm, triage_json

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def read_events(response):
    """Decode an SSE body into a list of event dicts"""
    frames = [f for f in response.text.split("\n\n") if f.strip()]
    assert all(f.startswith("data: ") for f in frames)
    return [json.loads(f[len("data: "):]) for f in frames]


@pytest.fixture
def client():
    return TestClient(endpoints.app)


@pytest.fixture
def use_llm(monkeypatch):
    """Route engine creation to a fake client; records the requested provider"""
    requested = {}

    def install(fake: FakeLLM):
        def create_engine(api_key, provider="claude", **kwargs):
            requested.update(api_key=api_key, provider=provider)
            return CallAnalysisEngine(provider=provider, extraction_llm=fake, analysis_llm=fake)

        monkeypatch.setattr(endpoints, "create_engine", create_engine)
        return requested

    return install


def upload(rows=None):
    return {"file": ("calls.xlsx", build_xlsx(rows or [call_row()]), XLSX_TYPE)}


class TestInfoEndpoints:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "Call Scoring Engine"
        assert "Analyze" in body["endpoints"]

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["providers"] == ["claude", "openai", "openrouter"]


class TestFormValidation:
    """Input errors produce a single error frame"""

    def test_missing_file(self, client):
        response = client.post("/api/analyze", data={"apiKey": "sk-test"})
        events = read_events(response)

        assert response.headers["content-type"].startswith("text/event-stream")
        assert events == [{"type": "error", "message": "No file provided", "code": "missing_file", "details": None}]

    def test_missing_api_key(self, client):
        events = read_events(client.post("/api/analyze", files=upload()))
        assert [e["code"] for e in events] == ["missing_api_key"]

    def test_unknown_model(self, client):
        response = client.post("/api/extract", files=upload(), data={"apiKey": "sk-test", "model": "gemini"})
        assert [e["code"] for e in read_events(response)] == ["invalid_model"]


class TestAnalyzeStream:
    """Full runs stream camelCase events ending in one terminal event"""

    def test_analyze(self, client, use_llm):
        requested = use_llm(sales_llm())
        response = client.post(
            "/api/analyze",
            files=upload([call_row(), call_row(), call_row(duration=2)]),
            data={"apiKey": "sk-test", "model": "openai"},
        )
        events = read_events(response)
        types = [e["type"] for e in events]

        assert requested == {"api_key": "sk-test", "provider": "openai"}
        assert types[-1] == "complete"
        assert types.count("call_complete") == 2
        assert events[1] == {"type": "bronze_complete", "count": 2, "skippedShortCalls": 1}

        result = events[-1]["result"]
        assert events[-1]["partial"] is False
        assert set(result) == {"calls", "repSummaries", "overallStats"}
        assert result["overallStats"]["topPerformer"] == "Brian"
        call = result["calls"][0]
        assert call["record"]["repName"] == "Brian"
        assert call["score"]["repInfo"]["name"] == "Brian"
        assert call["score"]["overallScore"] == 8.0

    def test_extract(self, client, use_llm):
        use_llm(sales_llm())
        events = read_events(client.post("/api/extract", files=upload(), data={"apiKey": "sk-test"}))

        progress = next(e for e in events if e["type"] == "extract_progress")
        assert progress["call"]["repName"] == "Brian"
        assert progress["call"]["classification"] == "valid_sales"

        final = events[-1]
        assert final["type"] == "complete"
        assert final["result"]["stats"]["validSales"] == 1
        assert final["result"]["calls"][0]["triage"]["shouldAnalyze"] is True

    def test_pipeline_error_is_final_frame(self, client, use_llm):
        use_llm(FakeLLM(triage=always(triage_json("spam"))))
        events = read_events(client.post("/api/analyze", files=upload(), data={"apiKey": "sk-test"}))

        assert events[-1]["type"] == "error"
        assert events[-1]["code"] == "no_valid_sales"

    def test_timeout_closes_stream(self, client, use_llm, monkeypatch):
        release = threading.Event()

        def slow_triage(prompt):
            release.wait(5)
            return triage_json()

        use_llm(FakeLLM(triage=slow_triage))
        monkeypatch.setattr(endpoints, "ANALYSIS_TIMEOUT_SECONDS", 0.2)
        try:
            events = read_events(client.post("/api/analyze", files=upload(), data={"apiKey": "sk-test"}))
        finally:
            release.set()

        assert events[-1]["type"] == "error"
        assert events[-1]["code"] == "timeout"
        assert [e["type"] for e in events].count("error") == 1


class TestStreamPipeline:
    """The stream always ends with a terminal event"""

    def test_worker_without_terminal_event(self):
        frames = list(endpoints.stream_pipeline(lambda emit: None, timeout=5))
        assert len(frames) == 1
        assert '"code":"internal_error"' in frames[0]

    def test_worker_crash(self):
        def run(emit):
            raise RuntimeError("worker blew up")

        frames = list(endpoints.stream_pipeline(run, timeout=5))
        assert len(frames) == 1
        assert "worker blew up" in frames[0]
