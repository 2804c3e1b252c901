"""Pytest configuration and shared fixtures.

Key fixtures:
- isolated_settings: empty environment and a temporary settings file path
- make_pdf / sample_pdf_bytes: small multi-page PDFs generated with reportlab
- stage_inputs: the three stage uploads (A/B/C) as StageInput objects
- mock_transport / mock_llm_client: oracle replies from fixtures.mock_llm
- api_client: FastAPI TestClient wired to the mock transport with a configured key
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest

SETTINGS_ENV_VARS = (
    "OPENAI_API_KEY",
    "MODEL",
    "LANGUAGE",
    "VECTOR_STORE_ID",
    "VERBOSE_OPENAI",
    "BARO_MOCK_LLM",
)


@pytest.fixture
def isolated_settings(tmp_path: Path, monkeypatch) -> Path:
    """Clear settings env vars and point the settings file at a temp location."""
    from baropodo import config

    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "Config" / "settings.json"
    monkeypatch.setattr(config, "SETTINGS_PATH", path)
    return path


def _build_pdf(pages: int, title: str) -> bytes:
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    for n in range(1, pages + 1):
        c.drawString(72, 760, f"{title} - page {n}")
        c.drawString(72, 740, "Area (mm2): 100    VN: < 200")
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def make_pdf():
    def make(pages: int = 8, title: str = "Stabilometry report") -> bytes:
        return _build_pdf(pages, title)

    return make


@pytest.fixture
def sample_pdf_bytes(make_pdf) -> bytes:
    return make_pdf(8)


@pytest.fixture
def stage_inputs(make_pdf):
    from baropodo.analysis import STAGES, StageInput

    return [
        StageInput(stage=s, filename=f"{s.form_field}.pdf", pdf_bytes=make_pdf(8, f"Stage {s.label}"))
        for s in STAGES
    ]


@pytest.fixture
def upload_files(make_pdf):
    """Multipart `files` for the analyze endpoints."""
    return {
        field: (f"{field}.pdf", make_pdf(8, field), "application/pdf")
        for field in ("neutral", "closed_eyes", "cotton_rolls")
    }


@pytest.fixture
def analysis_settings():
    from baropodo.config import Settings

    return Settings(api_key="sk-test-abcd", model="gpt-4o", language="English", vector_store_id=None)


@pytest.fixture
def mock_transport():
    from baropodo.tests.fixtures.mock_llm import create_mock_transport

    return create_mock_transport()


@pytest.fixture
def mock_llm_client(mock_transport):
    from baropodo.llm_client import AsyncOpenAICompatClient

    return AsyncOpenAICompatClient(base_url="http://mock-openai", api_key="sk-test", transport=mock_transport)


@pytest.fixture
def api_client(isolated_settings, monkeypatch):
    """TestClient with a configured key; set `app.state.llm_transport` to swap the oracle."""
    from fastapi.testclient import TestClient

    from baropodo.main import app
    from baropodo.tests.fixtures.mock_llm import create_mock_transport

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-1234")
    app.state.llm_transport = create_mock_transport()
    try:
        yield TestClient(app)
    finally:
        app.state.llm_transport = None
