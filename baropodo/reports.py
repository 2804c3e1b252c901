from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
from typing import Iterable

from pypdf import PdfReader

from .analysis.constants import PAGES_OF_INTEREST
from .analysis.types import PageImage, PreparedStage, StageInput

logger = logging.getLogger(__name__)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except Exception:
        return default
    return val if val > 0 else default


def render_zoom() -> float:
    # Upscaled so the model can read small table text.
    return _float_env("BARO_PDF_RENDER_ZOOM", 2.0)


def pdf_page_count(pdf_bytes: bytes) -> int | None:
    try:
        return len(PdfReader(io.BytesIO(pdf_bytes)).pages)
    except Exception:
        return None


def _render_pages(pdf_bytes: bytes, page_numbers: Iterable[int], zoom: float) -> list[tuple[int, str]]:
    import fitz  # PyMuPDF

    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        out: list[tuple[int, str]] = []
        for page_num in sorted(set(page_numbers)):
            if page_num < 1 or page_num > doc.page_count:
                continue
            page = doc.load_page(page_num - 1)
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
            b64 = base64.b64encode(pix.tobytes("png")).decode("utf-8")
            out.append((page_num, f"data:image/png;base64,{b64}"))
        return out
    finally:
        doc.close()


def _safe_render_pages(pdf_bytes: bytes, page_numbers: Iterable[int], zoom: float | None = None) -> list[tuple[int, str]]:
    try:
        return _render_pages(pdf_bytes, page_numbers, zoom or render_zoom())
    except Exception as e:
        logger.warning("PDF page rendering failed: %s", e)
        return []


def pdf_to_images(pdf_bytes: bytes, page_numbers: Iterable[int], *, zoom: float | None = None) -> list[str]:
    """
    Render the requested 1-based pages as PNG data URLs, in page order.

    Pages outside the document are skipped. Any rendering failure returns [] so callers
    can carry on without visual aid.
    """
    return [url for _page, url in _safe_render_pages(pdf_bytes, page_numbers, zoom)]


async def prepare_stage(stage_input: StageInput, page_numbers: Iterable[int] = PAGES_OF_INTEREST) -> PreparedStage:
    pages = list(page_numbers)
    page_count, rendered = await asyncio.gather(
        asyncio.to_thread(pdf_page_count, stage_input.pdf_bytes),
        asyncio.to_thread(_safe_render_pages, stage_input.pdf_bytes, pages),
    )
    images = [PageImage(stage=stage_input.stage.label, page=page, data_url=url) for page, url in rendered]
    if not images:
        logger.info("Stage %s: no page images available", stage_input.stage.label)
    return PreparedStage(
        input=stage_input,
        pdf_base64=base64.b64encode(stage_input.pdf_bytes).decode("utf-8"),
        images=images,
        page_count=page_count,
    )


async def prepare_stages(inputs: list[StageInput]) -> list[PreparedStage]:
    """Fan out per-stage preparation; stages share no state."""
    return list(await asyncio.gather(*(prepare_stage(i) for i in inputs)))
