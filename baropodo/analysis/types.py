from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

OnEvent = Callable[[dict[str, Any]], Awaitable[None]] | None


@dataclass(frozen=True)
class StageDef:
    label: str
    name: str
    form_field: str
    description: str


@dataclass(frozen=True)
class PageImage:
    stage: str
    page: int
    data_url: str


@dataclass(frozen=True)
class StageInput:
    stage: StageDef
    filename: str
    pdf_bytes: bytes


@dataclass(frozen=True)
class PreparedStage:
    input: StageInput
    pdf_base64: str
    images: list[PageImage]
    page_count: int | None


@dataclass(frozen=True)
class ExtractionResult:
    diagnostics_text: str
    json_text: str
    parsed: dict[str, Any] | None
    dropped_keys: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AnalysisResult:
    mode: str
    extraction_report_text: str
    extraction_report_json: dict[str, Any] | None
    augmented_report_text: str
    summary: dict[str, Any]
    debug: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "extractionReportText": self.extraction_report_text,
            "extractionReportJson": self.extraction_report_json,
            "augmentedReportText": self.augmented_report_text,
            "summary": self.summary,
            "debug": self.debug,
        }
