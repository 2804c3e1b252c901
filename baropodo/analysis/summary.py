from __future__ import annotations

import re
from typing import Any

from .constants import COP_FIELDS, SENSORY_SYSTEMS, STAGES, VN_STATUSES
from .normalize import _get_path
from .norms import to_number

_SYSTEMS = "|".join(SENSORY_SYSTEMS)
_PRIMARY_RE = re.compile(rf"PRIMARY[:\s]+({_SYSTEMS})", re.IGNORECASE)
_PRIMARY_LOOSE_RE = re.compile(rf"primary.*?({_SYSTEMS})", re.IGNORECASE)
_RANKING_RE = re.compile(
    rf"PRIMARY[:\s]+(?P<primary>{_SYSTEMS})"
    rf"(?:.*?SECONDARY[:\s]+(?P<secondary>{_SYSTEMS}))?"
    rf"(?:.*?MINOR[:\s]+(?P<minor>{_SYSTEMS}))?",
    re.IGNORECASE,
)


def _display(system: str) -> str:
    return system[:1].upper() + system[1:].lower()


def primary_sensory_system(augmented_text: str | None, extracted: dict[str, Any] | None = None) -> str | None:
    """
    Best-effort primary sensory system for display.

    The structured ranking from the extraction wins; otherwise the interpretation text is
    scanned for the `PRIMARY: x` token, then for any "primary ... x" phrase.
    """
    structured = _get_path(extracted, ("comparisons", "sensory_ranking", "primary"))
    if isinstance(structured, str) and structured.strip():
        return _display(structured.strip())

    if not augmented_text:
        return None
    match = _PRIMARY_RE.search(augmented_text) or _PRIMARY_LOOSE_RE.search(augmented_text)
    return _display(match.group(1)) if match else None


def sensory_ranking_from_text(text: str | None) -> dict[str, str | None] | None:
    if not text:
        return None
    for line in text.splitlines():
        m = _RANKING_RE.search(line)
        if m:
            return {slot: (m.group(slot) or "").lower() or None for slot in ("primary", "secondary", "minor")}
    return None


def vn_status_counts(test: dict[str, Any] | None) -> dict[str, int]:
    counts = {status: 0 for status in VN_STATUSES}
    page1 = _get_path(test, ("page1",))
    if not isinstance(page1, dict):
        return counts

    statuses: list[Any] = []
    metrics = page1.get("global_metrics")
    if isinstance(metrics, dict):
        statuses.extend(m.get("vn_status") for m in metrics.values() if isinstance(m, dict))
    statuses.extend(page1.get(status_key) for _value, _range, status_key in COP_FIELDS)

    for status in statuses:
        if status in counts:
            counts[status] += 1
    return counts


def compliance_rate(counts: dict[str, int]) -> float:
    """Percentage of classified metrics that are within norms; not_printed is excluded."""
    total = counts.get("below", 0) + counts.get("within", 0) + counts.get("above", 0)
    if total == 0:
        return 0.0
    return round(counts.get("within", 0) / total * 100, 1)


def romberg_trend(ratio: Any) -> str | None:
    r = to_number(ratio)
    if r is None:
        return None
    if r > 1.5:
        return "concerning"
    if r > 1.2:
        return "moderate"
    return "normal"


def cotton_trend(ratio: Any) -> str | None:
    r = to_number(ratio)
    if r is None:
        return None
    if r < 0.8:
        return "improvement"
    if r > 1.1:
        return "worsening"
    return "stable"


def build_summary(extracted: dict[str, Any] | None, augmented_text: str | None) -> dict[str, Any]:
    romberg_ratio = _get_path(extracted, ("comparisons", "romberg_b_over_a", "area_mm2", "ratio"))
    cotton_ratio = _get_path(extracted, ("comparisons", "cotton_c_over_b", "area_mm2", "ratio"))

    tests = _get_path(extracted, ("tests",))
    compliance: dict[str, Any] = {}
    for stage in STAGES:
        test = tests.get(stage.label) if isinstance(tests, dict) else None
        counts = vn_status_counts(test)
        compliance[stage.label] = {"counts": counts, "rate": compliance_rate(counts)}

    ranking = _get_path(extracted, ("comparisons", "sensory_ranking"))
    if not isinstance(ranking, dict) or not any(ranking.get(k) for k in ("primary", "secondary", "minor")):
        ranking = sensory_ranking_from_text(augmented_text)

    return {
        "primarySensorySystem": primary_sensory_system(augmented_text, extracted),
        "sensoryRanking": ranking,
        "romberg": {"areaRatio": to_number(romberg_ratio), "trend": romberg_trend(romberg_ratio)},
        "cotton": {"areaRatio": to_number(cotton_ratio), "trend": cotton_trend(cotton_ratio)},
        "compliance": compliance,
    }
