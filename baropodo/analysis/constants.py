from __future__ import annotations

from .types import StageDef

STAGES: list[StageDef] = [
    StageDef("A", "Neutral", "neutral", "eyes open, neutral mandibular position"),
    StageDef("B", "ClosedEyes", "closed_eyes", "eyes closed (Romberg condition)"),
    StageDef("C", "CottonRolls", "cotton_rolls", "eyes closed with cotton rolls between the teeth"),
]
STAGE_LABELS = tuple(s.label for s in STAGES)

MODES = ("normal", "comparison")

# Pages carrying the tables and charts of a posturography report.
PAGES_OF_INTEREST: tuple[int, ...] = (1, 2, 3, 4, 5, 6, 8)

JSON_START = "<<<JSON_START>>>"
JSON_END = "<<<JSON_END>>>"

ALLOWED_TOP_LEVEL_KEYS = ("patient", "tests", "comparisons")

VN_STATUSES = ("within", "above", "below", "not_printed")

RADAR_AXES = (
    "Length",
    "Area",
    "Velocity",
    "L/S Ratio",
    "Ellipse Ratio",
    "LFS",
    "Accel. AP",
    "X Medium",
    "Y Medium",
)

SENSORY_SYSTEMS = ("visual", "vestibular", "proprioceptive", "stomatognathic")

GLOBAL_METRICS = (
    "length_mm",
    "area_mm2",
    "velocity_mm_s",
    "l_s_ratio",
    "ellipse_ratio",
    "velocity_variance_total_mm_s",
    "velocity_variance_ml_mm_s",
    "velocity_variance_ap_mm_s",
    "ap_acceleration_mm_s2",
    "lfs",
)

RATIO_METRIC_PATHS: dict[str, tuple[str, ...]] = {
    m: ("page1", "global_metrics", m, "value") for m in GLOBAL_METRICS
}

# Ratios of angles are meaningless; these compare as signed deltas.
ANGLE_METRIC_PATHS: dict[str, tuple[str, ...]] = {
    "ellipse_angle_deg": ("page3", "ellipse_angle_deg"),
}

# (comparison key, baseline stage, test stage)
COMPARISONS: tuple[tuple[str, str, str], ...] = (
    ("romberg_b_over_a", "A", "B"),
    ("cotton_c_over_b", "B", "C"),
)

# (container key, left key, right key); page 6 values are also mirrored into page1.
LOAD_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("page1", "page6_left_load_pct", "page6_right_load_pct"),
    ("page6", "left_load_pct", "right_load_pct"),
)
LOAD_SUM_RANGE = (98.0, 102.0)

# (value key, printed range key, status key) on page1.
COP_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("cop_mean_x_mm", "cop_x_vn_range", "cop_x_vn_status"),
    ("cop_mean_y_mm", "cop_y_vn_range", "cop_y_vn_status"),
)

VN_STATUS_SYNONYMS = {
    "normal": "within",
    "in_range": "within",
    "inside": "within",
    "high": "above",
    "over": "above",
    "low": "below",
    "under": "below",
    "not printed": "not_printed",
    "n/a": "not_printed",
}

FFT_KEY = "page4_fft"
FFT_LEGACY_PAGE_KEYS = ("page4", "fft")
FFT_LEGACY_KEYS: dict[str, str] = {
    "ml": "ml_spectrum",
    "x_spectrum": "ml_spectrum",
    "ap": "ap_spectrum",
    "y_spectrum": "ap_spectrum",
    "cross": "cross_spectrum",
    "xy_spectrum": "cross_spectrum",
    "force": "force_z",
    "fz_spectrum": "force_z",
}

EXTRACTION_MAX_OUTPUT_TOKENS = 8000
INTERPRETATION_MAX_OUTPUT_TOKENS = 4000

# Upstream statuses worth another attempt; None covers transport failures.
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
MAX_RETRIES = 4
