from __future__ import annotations

import contextlib
import logging
import time
from typing import Any

from ...config import Settings
from ...llm_client import AsyncOpenAICompatClient
from ...logging_utils import capture_logs
from ..constants import MODES, STAGE_LABELS
from ..summary import build_summary
from ..types import AnalysisResult, OnEvent, StageInput
from ..utils import _elapsed_ms
from .llm_calls import _LLMCallsMixin
from .stages import _StagesMixin

logger = logging.getLogger(__name__)


class PosturographyWorkflow(_LLMCallsMixin, _StagesMixin):
    """
    Single-request pipeline: prepare the three stage PDFs, extract them in one model
    call, normalize the JSON, interpret it in a second call, aggregate.

    Nothing is persisted; a failure anywhere fails the whole run.
    """

    def __init__(self, *, llm: AsyncOpenAICompatClient, settings: Settings):
        self._llm = llm
        self._settings = settings

    async def run(self, stages: list[StageInput], mode: str = "normal", on_event: OnEvent = None) -> AnalysisResult:
        async def emit(payload: dict[str, Any]) -> None:
            if on_event is not None:
                await on_event(payload)

        if mode not in MODES:
            raise ValueError(f"Invalid mode: {mode}")
        labels = sorted(s.stage.label for s in stages)
        if labels != sorted(STAGE_LABELS):
            raise ValueError("Missing PDF(s). 3 stages required.")

        verbose = self._settings.verbose_openai
        with capture_logs() if verbose else contextlib.nullcontext([]) as log_lines:
            t0 = time.perf_counter()
            logger.info("Analysis started: mode=%s model=%s", mode, self._settings.model)

            t = time.perf_counter()
            prepared = await self._prepare(stages, emit)
            prepare_ms = _elapsed_ms(t)

            t = time.perf_counter()
            extraction = await self._extract(prepared, mode, emit)
            extract_ms = _elapsed_ms(t)

            t = time.perf_counter()
            augmented = await self._interpret(extraction, mode, emit)
            augment_ms = _elapsed_ms(t)

            total_ms = _elapsed_ms(t0)
            logger.info(
                "Analysis finished: prepare=%dms extract=%dms augment=%dms total=%dms",
                prepare_ms,
                extract_ms,
                augment_ms,
                total_ms,
            )

        debug: dict[str, Any] = {
            "timings": {
                "prepareMs": prepare_ms,
                "extractMs": extract_ms,
                "augmentMs": augment_ms,
                "totalMs": total_ms,
            },
            "model": self._settings.model,
            "language": self._settings.language,
            "knowledgeBase": bool(self._settings.vector_store_id),
            "imagesPerStage": {p.input.stage.label: len(p.images) for p in prepared},
            "pageCounts": {p.input.stage.label: p.page_count for p in prepared},
            "droppedKeys": extraction.dropped_keys,
            "normalizationNotes": extraction.notes,
        }
        if verbose:
            debug["logs"] = list(log_lines)

        await emit({"type": "status", "step": "done", "message": "Analysis complete"})
        return AnalysisResult(
            mode=mode,
            extraction_report_text=extraction.diagnostics_text,
            extraction_report_json=extraction.parsed,
            augmented_report_text=augmented,
            summary=build_summary(extraction.parsed, augmented),
            debug=debug,
        )
