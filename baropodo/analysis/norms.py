"""
Normative-range ("VN") classification.

Reports print a reference next to each metric: a centre and spread ("110 ± 25"), an
interval ("80 - 140"), a one-sided bound ("< 1.5") or a bare threshold ("1.5", read as
an upper limit). The extraction agent classifies each value against it; this module
recomputes the same classification so the result can be checked locally.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

_NUM = r"-?\d+(?:[.,]\d+)?"
_UNIT_SUFFIX_RE = re.compile(r"\s*[a-zA-Zµ°%²/][\w/²%°]*\s*$")
_PM_RE = re.compile(rf"^(?P<center>{_NUM})\s*(?:±|\+/-|\+-)\s*(?P<spread>{_NUM})$")
_INTERVAL_RE = re.compile(rf"^(?P<lo>{_NUM})\s*(?:-|–|—|÷|to|\.\.)\s*(?P<hi>{_NUM})$")
_BOUND_RE = re.compile(rf"^(?P<op><=|>=|≤|≥|<|>)\s*(?P<n>{_NUM})$")
_BARE_RE = re.compile(rf"^(?P<n>{_NUM})$")


@dataclass(frozen=True)
class VNRange:
    low: float | None
    high: float | None
    low_inclusive: bool = True
    high_inclusive: bool = True

    def classify(self, value: float) -> str:
        if self.low is not None:
            if value < self.low or (value == self.low and not self.low_inclusive):
                return "below"
        if self.high is not None:
            if value > self.high or (value == self.high and not self.high_inclusive):
                return "above"
        return "within"


def to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return None if math.isnan(f) or math.isinf(f) else f
    if isinstance(value, str):
        s = value.strip().replace("≈", "").replace("~", "").replace(",", ".").strip()
        try:
            f = float(s)
        except ValueError:
            return None
        return None if math.isnan(f) or math.isinf(f) else f
    return None


def _f(text: str) -> float:
    return float(text.replace(",", "."))


def parse_vn_range(text: Any) -> VNRange | None:
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return VNRange(low=None, high=float(text))
    if not isinstance(text, str):
        return None
    s = text.strip()
    if not s:
        return None
    s = _UNIT_SUFFIX_RE.sub("", s).strip()

    m = _PM_RE.match(s)
    if m:
        center, spread = _f(m.group("center")), abs(_f(m.group("spread")))
        return VNRange(low=center - spread, high=center + spread)

    m = _INTERVAL_RE.match(s)
    if m:
        lo, hi = _f(m.group("lo")), _f(m.group("hi"))
        if lo > hi:
            lo, hi = hi, lo
        return VNRange(low=lo, high=hi)

    m = _BOUND_RE.match(s)
    if m:
        op, n = m.group("op"), _f(m.group("n"))
        if op in {"<", "<=", "≤"}:
            return VNRange(low=None, high=n, high_inclusive=op != "<")
        return VNRange(low=n, high=None, low_inclusive=op != ">")

    m = _BARE_RE.match(s)
    if m:
        return VNRange(low=None, high=_f(m.group("n")))

    return None


def classify_vn_status(value: Any, vn_range: Any) -> str | None:
    """within/above/below, or None when either side is unusable."""
    number = to_number(value)
    if number is None:
        return None
    parsed = parse_vn_range(vn_range)
    if parsed is None:
        return None
    return parsed.classify(number)
