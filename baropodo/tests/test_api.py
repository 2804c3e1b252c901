"""Endpoint tests through FastAPI's TestClient with a mocked oracle."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from baropodo import config
from baropodo.analysis.workflow import llm_calls
from baropodo.main import app
from baropodo.tests.fixtures.mock_llm import create_mock_transport


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    async def instant(attempt: int) -> None:
        return None

    monkeypatch.setattr(llm_calls, "_sleep_backoff", instant)


def _sse_events(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


def test_analyze_happy_path(api_client, upload_files):
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    data = body["data"]
    assert data["mode"] == "normal"
    assert data["extractionReportJson"] is not None
    assert len(data["augmentedReportText"]) > 0
    assert data["summary"]["romberg"]["trend"] == "moderate"
    assert set(data["debug"]["timings"]) == {"prepareMs", "extractMs", "augmentMs", "totalMs"}


def test_analyze_missing_pdf(api_client, upload_files):
    files = dict(upload_files)
    files.pop("cotton_rolls")
    resp = api_client.post("/api/analyze", files=files, data={"mode": "normal"})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Missing PDF(s). 3 stages required."}


def test_analyze_invalid_mode(api_client, upload_files):
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "turbo"})
    assert resp.status_code == 400
    assert resp.json()["ok"] is False
    assert "Invalid mode" in resp.json()["error"]


def test_analyze_without_api_key(api_client, upload_files, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "API key not configured"}


def test_analyze_uses_key_from_form_fields(api_client, upload_files, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    seen: list[str] = []
    app.state.llm_transport = create_mock_transport(
        on_request=lambda req, call: seen.append(req.headers["Authorization"])
    )
    resp = api_client.post(
        "/api/analyze",
        files=upload_files,
        data={"mode": "normal", "apiKey": "sk-browser-7777", "model": "gpt-4o-mini"},
    )
    assert resp.status_code == 200
    assert seen == ["Bearer sk-browser-7777", "Bearer sk-browser-7777"]
    assert resp.json()["data"]["debug"]["model"] == "gpt-4o-mini"


def test_analyze_empty_extraction(api_client, upload_files):
    calls: list[str] = []
    app.state.llm_transport = create_mock_transport(extraction_text="", on_request=lambda req, call: calls.append(call))
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "Empty extraction response"}
    assert calls == ["extraction"]


def test_analyze_without_kb_reports_none_found(api_client, upload_files):
    tools: list = []
    app.state.llm_transport = create_mock_transport(
        on_request=lambda req, call: tools.append(json.loads(req.content).get("tools"))
    )
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "comparison"})
    assert resp.status_code == 200
    text = resp.json()["data"]["augmentedReportText"]
    assert "KB support: none found" in text
    assert tools[1] == [{"type": "file_search", "vector_store_ids": []}]


def test_analyze_passes_upstream_message_through(api_client, upload_files):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": {"message": "The model `gpt-9` does not exist", "code": "model_not_found"}},
        )

    app.state.llm_transport = httpx.MockTransport(handler)
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 500
    error = resp.json()["error"]
    assert "The model `gpt-9` does not exist" in error
    assert "[model_not_found]" in error


def test_analyze_times_out(api_client, upload_files, monkeypatch):
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"output_text": "late"})

    monkeypatch.setattr(config, "ANALYZE_TIMEOUT_S", 0.2)
    app.state.llm_transport = httpx.MockTransport(slow)
    resp = api_client.post("/api/analyze", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "Analysis timed out"}


def test_analyze_stream_emits_status_then_complete(api_client, upload_files):
    resp = api_client.post("/api/analyze-stream", files=upload_files, data={"mode": "normal"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    events = _sse_events(resp.text)
    assert events[0]["type"] == "status"
    steps = [e.get("step") for e in events if e["type"] == "status"]
    assert steps == ["start", "prepare", "extract", "augment", "done"]
    assert events[-1]["type"] == "complete"
    assert events[-1]["data"]["extractionReportJson"] is not None


def test_analyze_stream_reports_errors_as_events(api_client, upload_files):
    files = dict(upload_files)
    files.pop("neutral")
    resp = api_client.post("/api/analyze-stream", files=files, data={"mode": "normal"})
    events = _sse_events(resp.text)
    assert events[-1] == {"type": "error", "message": "Missing PDF(s). 3 stages required."}

    app.state.llm_transport = create_mock_transport(extraction_text="")
    resp = api_client.post("/api/analyze-stream", files=upload_files, data={"mode": "normal"})
    assert _sse_events(resp.text)[-1] == {"type": "error", "message": "Empty extraction response"}


def test_bootstrap_key_once_then_already_configured(api_client, isolated_settings):
    first = api_client.post("/api/bootstrap-key", json={"apiKey": "sk-new-5678", "language": "Italian"})
    assert first.json() == {"ok": True, "saved": True, "last4": "5678"}

    second = api_client.post("/api/bootstrap-key", json={"apiKey": "sk-other-0000"})
    assert second.json() == {"ok": True, "alreadyConfigured": True}

    rotated = api_client.post("/api/bootstrap-key", json={"apiKey": "sk-other-0000", "rotate": True})
    assert rotated.json() == {"ok": True, "saved": True, "last4": "0000"}

    data = json.loads(isolated_settings.read_text(encoding="utf-8"))
    assert data["LLMConfig"]["ApiKey"] == "sk-other-0000"
    assert data["Language"] == "Italian"


def test_bootstrap_key_requires_key(api_client):
    resp = api_client.post("/api/bootstrap-key", json={"model": "gpt-4o"})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Missing apiKey"}


def test_config_reports_public_settings(api_client, isolated_settings, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    isolated_settings.parent.mkdir(parents=True)
    isolated_settings.write_text(
        json.dumps({"LLMConfig": {"ApiKey": "sk-file-1234", "Model": "gpt-4.1"}, "VectorStoreId": "vs_9"}),
        encoding="utf-8",
    )
    body = api_client.get("/api/config").json()
    assert body == {"ok": True, "model": "gpt-4.1", "language": "English", "vectorStoreId": "vs_9", "hasApiKey": True}
    assert "sk-file-1234" not in json.dumps(body)


def test_health_and_test_endpoints(api_client, monkeypatch):
    monkeypatch.setenv("MODEL", "gpt-4o")
    health = api_client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["environment"]["OPENAI_API_KEY"] == "Set (hidden)"
    assert health["environment"]["MODEL"] == "gpt-4o"
    assert "upstream" not in health

    probed = api_client.get("/api/health", params={"probe": "true"}).json()
    assert probed["upstream"] == {"reachable": True, "model_count": 2, "error": None}

    echo = api_client.post("/api/health", json={"ping": 1}).json()
    assert echo["received"] == {"ping": 1}
    bad = api_client.post("/api/health", content=b"not json", headers={"content-type": "application/json"})
    assert bad.status_code == 400

    t = api_client.get("/api/test").json()
    assert t["ok"] is True
    assert t["env"]["hasOpenAIKey"] is True
    assert api_client.post("/api/test").json()["message"] == "POST endpoint working!"


def test_export_pdf(api_client):
    from baropodo.tests.fixtures.mock_responses import EXTRACTION_PAYLOAD, INTERPRETATION_MARKDOWN

    resp = api_client.post(
        "/api/export/pdf",
        json={"augmentedReportText": INTERPRETATION_MARKDOWN, "extractionReportJson": EXTRACTION_PAYLOAD},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")

    empty = api_client.post("/api/export/pdf", json={"augmentedReportText": "  "})
    assert empty.status_code == 400
