from __future__ import annotations

from pathlib import Path
from string import Template

from .constants import JSON_END, JSON_START, PAGES_OF_INTEREST, RADAR_AXES, VN_STATUSES
from .types import PreparedStage

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

_EXTRACTION_FRAMING = {
    "normal": "Mode: single-visit analysis. Extract every stage completely; comparisons are still required.",
    "comparison": (
        "Mode: comparison. The comparisons block is the priority: make sure every metric used "
        "for a ratio is extracted for both stages involved."
    ),
}

_INTERPRETATION_FRAMING = {
    "normal": "Mode: single-visit analysis. Interpret each stage, then the stage-to-stage effects.",
    "comparison": (
        "Mode: comparison. Centre the report on the Romberg and Cotton effects and what they "
        "say about visual and stomatognathic contribution to balance."
    ),
}

_KB_CONFIGURED = (
    "Search the clinic knowledge base with the file_search tool for passages supporting or "
    "contradicting the findings."
)
_KB_MISSING = (
    "No clinic knowledge base is attached to this analysis; the file_search tool has no sources."
)


def _prompt_path(name: str) -> Path:
    return PROMPTS_DIR / name


def _load_prompt(name: str) -> str:
    return _prompt_path(name).read_text(encoding="utf-8")


def extraction_instructions(*, mode: str, language: str) -> str:
    return Template(_load_prompt("extraction.md")).safe_substitute(
        mode_framing=_EXTRACTION_FRAMING.get(mode, _EXTRACTION_FRAMING["normal"]),
        language=language,
        pages=", ".join(str(p) for p in PAGES_OF_INTEREST),
        vn_statuses=", ".join(VN_STATUSES),
        radar_axes=", ".join(RADAR_AXES),
        json_start=JSON_START,
        json_end=JSON_END,
    )


def interpretation_instructions(*, mode: str, language: str, has_knowledge_base: bool) -> str:
    return Template(_load_prompt("interpretation.md")).safe_substitute(
        mode_framing=_INTERPRETATION_FRAMING.get(mode, _INTERPRETATION_FRAMING["normal"]),
        language=language,
        kb_clause=_KB_CONFIGURED if has_knowledge_base else _KB_MISSING,
    )


def stage_intro(stage: PreparedStage) -> str:
    s = stage.input.stage
    pages = f"{stage.page_count} pages" if stage.page_count else "page count unknown"
    return f"Stage {s.label} ({s.name}: {s.description}), file {stage.input.filename}, {pages}."
