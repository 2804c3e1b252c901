from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from ...config import Settings
from ... import reports
from ..constants import EXTRACTION_MAX_OUTPUT_TOKENS, INTERPRETATION_MAX_OUTPUT_TOKENS
from ..exceptions import EmptyExtractionError
from ..json_utils import clean_top_level_keys, split_extraction_response
from ..normalize import normalize_payload
from ..prompts import extraction_instructions, interpretation_instructions, stage_intro
from ..types import ExtractionResult, PreparedStage, StageInput

logger = logging.getLogger(__name__)

Emit = Callable[[dict[str, Any]], Awaitable[None]]


def _status(step: str, message: str) -> dict[str, Any]:
    return {"type": "status", "step": step, "message": message}


def _extraction_content(prepared: list[PreparedStage]) -> list[dict[str, Any]]:
    content: list[dict[str, Any]] = [
        {
            "type": "input_text",
            "text": "Three posturography reports follow, one per stage. Extract them as instructed.",
        }
    ]
    for stage in prepared:
        label = stage.input.stage.label
        content.append({"type": "input_text", "text": f"[STAGE {label}] {stage_intro(stage)}"})
        content.append(
            {
                "type": "input_file",
                "filename": stage.input.filename or f"stage_{label}.pdf",
                "file_data": f"data:application/pdf;base64,{stage.pdf_base64}",
            }
        )
    # Page images after all PDFs, each preceded by its tag.
    for stage in prepared:
        for img in stage.images:
            content.append({"type": "input_text", "text": f"[STAGE {img.stage}] [PAGE {img.page}]"})
            content.append({"type": "input_image", "image_url": img.data_url, "detail": "high"})
    return content


def _interpretation_input(extraction: ExtractionResult) -> str:
    if extraction.parsed is not None:
        parts = [f"Extraction JSON:\n{extraction.json_text}"]
    else:
        # Unparseable JSON: hand over whatever the extraction produced.
        parts = [f"Extraction output (JSON could not be parsed):\n{extraction.json_text or extraction.diagnostics_text}"]
    if extraction.notes:
        notes = "\n".join(f"- {n}" for n in extraction.notes)
        parts.append(f"Normalization notes (values corrected or discarded locally):\n{notes}")
    return "\n\n".join(parts)


def knowledge_base_tools(vector_store_id: str | None) -> list[dict[str, Any]]:
    """
    file_search is always declared. Without a configured store the source list is empty,
    which steers the model to report that no KB support was found.
    """
    return [{"type": "file_search", "vector_store_ids": [vector_store_id] if vector_store_id else []}]


class _StagesMixin:
    _settings: Settings

    async def _prepare(self, inputs: list[StageInput], emit: Emit) -> list[PreparedStage]:
        await emit(_status("prepare", "Rendering report pages"))
        prepared = await reports.prepare_stages(inputs)
        for stage in prepared:
            logger.info(
                "Stage %s prepared: %s, pages=%s, images=%d",
                stage.input.stage.label,
                stage.input.filename,
                stage.page_count,
                len(stage.images),
            )
        return prepared

    async def _extract(self, prepared: list[PreparedStage], mode: str, emit: Emit) -> ExtractionResult:
        await emit(_status("extract", "Extracting metrics from the reports"))
        text = await self._call_model(
            model_id=self._settings.model,
            input=[{"role": "user", "content": _extraction_content(prepared)}],
            instructions=extraction_instructions(mode=mode, language=self._settings.language),
            max_output_tokens=EXTRACTION_MAX_OUTPUT_TOKENS,
            label="OpenAI#1",
        )
        if not text or not text.strip():
            raise EmptyExtractionError()

        diagnostics, candidate = split_extraction_response(text)
        clean_text, parsed, dropped = clean_top_level_keys(candidate)
        if parsed is None:
            logger.warning("Extraction JSON unavailable; returning raw text only")
            return ExtractionResult(
                diagnostics_text=diagnostics,
                json_text=clean_text,
                parsed=None,
                dropped_keys=dropped,
            )

        normalized = normalize_payload(parsed)
        for note in normalized.notes:
            logger.info("Normalization: %s", note)
        return ExtractionResult(
            diagnostics_text=diagnostics,
            json_text=json.dumps(normalized.payload, ensure_ascii=False, indent=2),
            parsed=normalized.payload,
            dropped_keys=dropped,
            notes=normalized.notes,
        )

    async def _interpret(self, extraction: ExtractionResult, mode: str, emit: Emit) -> str:
        await emit(_status("augment", "Interpreting results"))
        vector_store_id = self._settings.vector_store_id
        if not vector_store_id:
            logger.info("No knowledge base configured; file_search declared with no sources")
        return await self._call_model(
            model_id=self._settings.model,
            input=_interpretation_input(extraction),
            instructions=interpretation_instructions(
                mode=mode,
                language=self._settings.language,
                has_knowledge_base=bool(vector_store_id),
            ),
            tools=knowledge_base_tools(vector_store_id),
            max_output_tokens=INTERPRETATION_MAX_OUTPUT_TOKENS,
            label="OpenAI#2",
        )
