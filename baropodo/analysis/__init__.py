from .constants import JSON_END, JSON_START, MODES, PAGES_OF_INTEREST, STAGE_LABELS, STAGES
from .exceptions import EmptyExtractionError
from .json_utils import _json_loads_loose, _strip_to_json, clean_top_level_keys, split_extraction_response
from .normalize import Normalized, angle_delta, normalize_payload, ratio_pair
from .norms import classify_vn_status, parse_vn_range
from .prompts import _load_prompt, _prompt_path, extraction_instructions, interpretation_instructions
from .summary import build_summary, primary_sensory_system
from .types import AnalysisResult, ExtractionResult, OnEvent, PageImage, PreparedStage, StageDef, StageInput
from .utils import _sleep_backoff
from .workflow import PosturographyWorkflow

__all__ = [
    "OnEvent",
    "StageDef",
    "StageInput",
    "PageImage",
    "PreparedStage",
    "ExtractionResult",
    "AnalysisResult",
    "STAGES",
    "STAGE_LABELS",
    "MODES",
    "PAGES_OF_INTEREST",
    "JSON_START",
    "JSON_END",
    "EmptyExtractionError",
    "split_extraction_response",
    "clean_top_level_keys",
    "_strip_to_json",
    "_json_loads_loose",
    "Normalized",
    "normalize_payload",
    "ratio_pair",
    "angle_delta",
    "parse_vn_range",
    "classify_vn_status",
    "_prompt_path",
    "_load_prompt",
    "extraction_instructions",
    "interpretation_instructions",
    "build_summary",
    "primary_sensory_system",
    "_sleep_backoff",
    "PosturographyWorkflow",
]
