from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from .constants import (
    ANGLE_METRIC_PATHS,
    COMPARISONS,
    COP_FIELDS,
    FFT_KEY,
    FFT_LEGACY_KEYS,
    FFT_LEGACY_PAGE_KEYS,
    LOAD_FIELDS,
    LOAD_SUM_RANGE,
    RATIO_METRIC_PATHS,
    SENSORY_SYSTEMS,
    VN_STATUS_SYNONYMS,
    VN_STATUSES,
)
from .norms import classify_vn_status, to_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Normalized:
    payload: dict[str, Any]
    notes: list[str] = field(default_factory=list)


def _get_path(obj: Any, path: tuple[str, ...]) -> Any:
    cur = obj
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def ratio_pair(baseline: Any, test: Any) -> dict[str, Any]:
    a = to_number(baseline)
    b = to_number(test)
    if a is None or b is None or a == 0:
        return {"ratio": None, "pct_change": None}
    raw = b / a
    return {"ratio": round(raw, 2), "pct_change": f"{(raw - 1) * 100:+.1f}%"}


def angle_delta(baseline: Any, test: Any) -> dict[str, Any]:
    a = to_number(baseline)
    b = to_number(test)
    if a is None or b is None:
        return {"delta_deg": None, "sign_flip": None}
    return {"delta_deg": round(b - a, 1), "sign_flip": (a * b) < 0}


def _rename_fft_keys(label: str, test: dict[str, Any], notes: list[str]) -> None:
    if not isinstance(test.get(FFT_KEY), dict):
        for legacy in FFT_LEGACY_PAGE_KEYS:
            if isinstance(test.get(legacy), dict):
                test[FFT_KEY] = test.pop(legacy)
                notes.append(f"{label}: renamed '{legacy}' to '{FFT_KEY}'")
                break
    fft = test.get(FFT_KEY)
    if not isinstance(fft, dict):
        return
    for legacy, canonical in FFT_LEGACY_KEYS.items():
        if legacy not in fft:
            continue
        value = fft.pop(legacy)
        if canonical in fft:
            notes.append(f"{label}: dropped legacy FFT key '{legacy}' ('{canonical}' present)")
            continue
        fft[canonical] = value
        notes.append(f"{label}: renamed FFT key '{legacy}' to '{canonical}'")


def _check_load_sum(label: str, test: dict[str, Any], notes: list[str]) -> None:
    low, high = LOAD_SUM_RANGE
    for container_key, left_key, right_key in LOAD_FIELDS:
        container = test.get(container_key)
        if not isinstance(container, dict):
            continue
        left = to_number(container.get(left_key))
        right = to_number(container.get(right_key))
        if left is None or right is None:
            continue
        total = left + right
        if low <= total <= high:
            continue
        container[left_key] = None
        container[right_key] = None
        notes.append(
            f"{label}: {container_key} load split {left:g}/{right:g} sums to {total:g}; both nulled"
        )
        logger.warning("Load percentages for stage %s sum to %.1f; discarding", label, total)


def _verify_status(label: str, name: str, holder: dict[str, Any], value: Any, vn_range: Any, status_key: str, notes: list[str]) -> None:
    current = holder.get(status_key)
    if isinstance(current, str):
        lowered = current.strip().lower()
        mapped = VN_STATUS_SYNONYMS.get(lowered, lowered)
        if mapped != current:
            holder[status_key] = current = mapped
    computed = classify_vn_status(value, vn_range)
    if computed is None:
        if isinstance(current, str) and current not in VN_STATUSES:
            notes.append(f"{label}: {name} has unknown status '{current}'")
        return
    if computed != current:
        notes.append(f"{label}: {name} status '{current}' corrected to '{computed}' (value {value}, range {vn_range})")
        holder[status_key] = computed


def _verify_vn_statuses(label: str, test: dict[str, Any], notes: list[str]) -> None:
    page1 = test.get("page1")
    if not isinstance(page1, dict):
        return
    metrics = page1.get("global_metrics")
    if isinstance(metrics, dict):
        for name, metric in metrics.items():
            if isinstance(metric, dict):
                _verify_status(label, name, metric, metric.get("value"), metric.get("vn_range"), "vn_status", notes)
    for value_key, range_key, status_key in COP_FIELDS:
        if value_key in page1 or status_key in page1:
            _verify_status(label, value_key, page1, page1.get(value_key), page1.get(range_key), status_key, notes)


def _recompute_comparisons(tests: dict[str, Any], comparisons: dict[str, Any], notes: list[str]) -> None:
    for comp_key, base_label, test_label in COMPARISONS:
        base = tests.get(base_label)
        other = tests.get(test_label)
        block = comparisons.get(comp_key)
        if not isinstance(block, dict):
            block = {}

        for metric, path in RATIO_METRIC_PATHS.items():
            a = _get_path(base, path)
            b = _get_path(other, path)
            existing = block.get(metric)
            if a is None and b is None and existing is None:
                continue
            entry = dict(existing) if isinstance(existing, dict) else {}
            pair = ratio_pair(a, b)
            model_ratio = to_number(entry.get("ratio"))
            if model_ratio is not None and pair["ratio"] is not None and abs(model_ratio - pair["ratio"]) > 0.011:
                notes.append(f"{comp_key}.{metric}: model ratio {model_ratio} replaced by {pair['ratio']}")
            entry.update(pair)
            block[metric] = entry

        for metric, path in ANGLE_METRIC_PATHS.items():
            a = _get_path(base, path)
            b = _get_path(other, path)
            existing = block.get(metric)
            if a is None and b is None and existing is None:
                continue
            entry = {
                k: v
                for k, v in (existing.items() if isinstance(existing, dict) else [])
                if k not in {"ratio", "pct_change"}
            }
            entry.update(angle_delta(a, b))
            block[metric] = entry

        if block:
            comparisons[comp_key] = block


def _normalize_sensory_ranking(comparisons: dict[str, Any]) -> None:
    ranking = comparisons.get("sensory_ranking")
    if not isinstance(ranking, dict):
        return
    for slot in ("primary", "secondary", "minor"):
        value = ranking.get(slot)
        if isinstance(value, str) and value.strip().lower() in SENSORY_SYSTEMS:
            ranking[slot] = value.strip().lower()


def normalize_payload(payload: dict[str, Any]) -> Normalized:
    """
    Post-process the extraction JSON. Works on a copy and is idempotent.

    - stage load splits whose left+right fall outside LOAD_SUM_RANGE are nulled
    - legacy FFT key names are moved to the canonical ones
    - normative statuses are re-derived where the printed range parses
    - comparison ratios and angular deltas are recomputed from the stage values
    """
    data = copy.deepcopy(payload)
    notes: list[str] = []

    tests = data.get("tests")
    if not isinstance(tests, dict):
        tests = {}
    for label, test in tests.items():
        if not isinstance(test, dict):
            continue
        _rename_fft_keys(label, test, notes)
        _check_load_sum(label, test, notes)
        _verify_vn_statuses(label, test, notes)

    # Comparisons are rebuilt even without stage data; missing inputs give null pairs.
    comparisons = data.get("comparisons")
    if not isinstance(comparisons, dict):
        comparisons = {}
    _recompute_comparisons(tests, comparisons, notes)
    _normalize_sensory_ranking(comparisons)
    if comparisons or "comparisons" in data:
        data["comparisons"] = comparisons

    return Normalized(payload=data, notes=notes)
