from __future__ import annotations

import io
import re
from typing import Any

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .analysis.summary import build_summary

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")


def _escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\n", "<br/>")
    )


def _inline(text: str) -> str:
    return _BOLD_RE.sub(r"<b>\1</b>", _escape(text))


def _fmt(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def _metrics_header(extraction_json: dict[str, Any], augmented_text: str) -> Table:
    summary = build_summary(extraction_json, augmented_text)
    rows = [
        ["Romberg (B/A) area ratio", _fmt(summary["romberg"]["areaRatio"]), _fmt(summary["romberg"]["trend"])],
        ["Cotton (C/B) area ratio", _fmt(summary["cotton"]["areaRatio"]), _fmt(summary["cotton"]["trend"])],
        ["Primary sensory system", _fmt(summary["primarySensorySystem"]), ""],
    ]
    for label, block in summary["compliance"].items():
        rows.append([f"Stage {label} within norms", f"{block['rate']:.1f}%", ""])

    table = Table(rows, colWidths=[220, 110, 110])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
            ]
        )
    )
    return table


def render_report_pdf(
    markdown_text: str,
    extraction_json: dict[str, Any] | None = None,
    *,
    title: str = "Posturography Report",
) -> bytes:
    """Render the interpretation markdown (headings, bullets, bold) to PDF bytes."""
    styles = getSampleStyleSheet()
    normal = styles["BodyText"]
    bullet = ParagraphStyle("Bullet", parent=normal, leftIndent=14, bulletIndent=4)
    h1 = ParagraphStyle("H1", parent=styles["Heading1"], spaceAfter=10)
    h2 = ParagraphStyle("H2", parent=styles["Heading2"], spaceAfter=8)
    h3 = ParagraphStyle("H3", parent=styles["Heading3"], spaceAfter=6)

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=54,
        rightMargin=54,
        topMargin=54,
        bottomMargin=54,
        title=title,
    )

    story: list = [Paragraph(_escape(title), h1)]
    if extraction_json:
        story.append(_metrics_header(extraction_json, markdown_text))
        story.append(Spacer(1, 14))

    for raw_line in (markdown_text or "").splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            story.append(Spacer(1, 10))
            continue

        if line.startswith("### "):
            story.append(Paragraph(_inline(line[4:]), h3))
            continue
        if line.startswith("## "):
            story.append(Paragraph(_inline(line[3:]), h2))
            continue
        if line.startswith("# "):
            story.append(Paragraph(_inline(line[2:]), h1))
            continue
        stripped = line.lstrip()
        if stripped.startswith(("- ", "* ")):
            story.append(Paragraph(_inline(stripped[2:]), bullet, bulletText="•"))
            continue

        story.append(Paragraph(_inline(line), normal))

    if len(story) == 1:
        story.append(Paragraph("(empty)", normal))

    doc.build(story)
    return buf.getvalue()
