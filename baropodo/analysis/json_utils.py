from __future__ import annotations

import json
import logging
import re
from typing import Any

from .constants import ALLOWED_TOP_LEVEL_KEYS, JSON_END, JSON_START

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(?P<body>.*?)\n?```$", re.DOTALL)


def _strip_to_json(text: str) -> str:
    s = text.strip()
    if not s:
        return s
    if s[0] in "{[" and s[-1] in "}]":
        return s
    # Try to extract the outermost JSON-looking object/array.
    starts = [s.find("{"), s.find("[")]
    first = min((i for i in starts if i != -1), default=-1)
    if first == -1:
        return s
    last_curly = s.rfind("}")
    last_square = s.rfind("]")
    last = max(last_curly, last_square)
    if last <= first:
        return s
    return s[first : last + 1].strip()


def _json_loads_loose(text: str) -> Any:
    return json.loads(_strip_to_json(text))


def _strip_code_fence(text: str) -> str:
    s = text.strip()
    m = _CODE_FENCE_RE.match(s)
    return m.group("body").strip() if m else s


def _match_brace(text: str, start: int) -> int | None:
    """Index just past the brace closing the object opened at `start`."""
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _find_object_with_key(text: str, key: str) -> tuple[int, int] | None:
    """
    Span of the outermost parseable object holding `key` at its top level.

    Occurrences of the quoted key are tried from last to first, so prose mentioning the
    key after the object does not hide it.
    """
    needle = f'"{key}"'
    key_pos = text.rfind(needle)
    while key_pos != -1:
        span = _object_spanning(text, key_pos, key)
        if span is not None:
            return span
        key_pos = text.rfind(needle, 0, key_pos)
    return None


def _object_spanning(text: str, key_pos: int, key: str) -> tuple[int, int] | None:
    for start in [i for i, ch in enumerate(text[:key_pos]) if ch == "{"]:
        end = _match_brace(text, start)
        if end is None or end <= key_pos:
            continue
        try:
            candidate = json.loads(text[start:end])
        except Exception:
            continue
        if isinstance(candidate, dict) and key in candidate:
            return start, end
    return None


def split_extraction_response(text: str) -> tuple[str, str]:
    """
    Split the extraction agent's reply into (diagnostics, json_candidate).

    The instructed format fences the JSON between JSON_START/JSON_END. When the model
    ignores that, fall back to the trailing object carrying a "patient" key, then to a
    split at the first "{".
    """
    s = text or ""
    start = s.find(JSON_START)
    end = s.find(JSON_END, start + len(JSON_START)) if start != -1 else -1
    if start != -1 and end != -1:
        inner = s[start + len(JSON_START) : end]
        diagnostics = (s[:start] + s[end + len(JSON_END) :]).strip()
        return diagnostics, _strip_code_fence(inner)

    logger.warning("Extraction response has no JSON fence markers; using fallback split")
    span = _find_object_with_key(s, "patient")
    if span is not None:
        obj_start, obj_end = span
        diagnostics = (s[:obj_start] + s[obj_end:]).strip()
        return _strip_trailing_fence(diagnostics), s[obj_start:obj_end]

    brace = s.find("{")
    if brace == -1:
        return s.strip(), ""
    return s[:brace].strip(), _strip_code_fence(s[brace:])


def _strip_trailing_fence(text: str) -> str:
    # Leftover ``` markers once a fenced object has been cut out.
    return re.sub(r"```[a-zA-Z]*\s*```", "", text).strip()


def clean_top_level_keys(json_text: str) -> tuple[str, dict[str, Any] | None, list[str]]:
    """
    Parse the JSON candidate and keep only the permitted top-level keys.

    Returns (clean_text, parsed, dropped_keys). On parse failure the raw text comes back
    with parsed=None.
    """
    if not json_text or not json_text.strip():
        return json_text, None, []
    try:
        data = _json_loads_loose(json_text)
    except Exception as e:
        logger.warning("Extraction JSON did not parse: %s", e)
        return json_text, None, []
    if not isinstance(data, dict):
        return json_text, None, []

    dropped = [k for k in data if k not in ALLOWED_TOP_LEVEL_KEYS]
    if dropped:
        logger.warning("Dropping unexpected top-level keys from extraction JSON: %s", ", ".join(dropped))

    clean = {k: data[k] for k in ALLOWED_TOP_LEVEL_KEYS if k in data}
    if not clean:
        return json_text, None, dropped
    return json.dumps(clean, ensure_ascii=False, indent=2), clean, dropped
