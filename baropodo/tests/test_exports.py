from __future__ import annotations

import io

from pypdf import PdfReader

from baropodo.exports import render_report_pdf
from baropodo.tests.fixtures.mock_responses import EXTRACTION_PAYLOAD, INTERPRETATION_MARKDOWN


def _text(pdf: bytes) -> str:
    return "\n".join(page.extract_text() or "" for page in PdfReader(io.BytesIO(pdf)).pages)


def test_render_report_with_metrics_header():
    pdf = render_report_pdf(INTERPRETATION_MARKDOWN, EXTRACTION_PAYLOAD, title="Visit 1")
    text = _text(pdf)
    assert "Visit 1" in text
    assert "Romberg (B/A) area ratio" in text
    assert "moderate" in text
    assert "Sensory ranking" in text


def test_render_report_escapes_markup():
    pdf = render_report_pdf("## Notes\n- ratio < 1.5 & stable\n**bold** text")
    text = _text(pdf)
    assert "ratio < 1.5 & stable" in text
    assert "bold text" in text


def test_render_empty_report():
    assert render_report_pdf("").startswith(b"%PDF")
