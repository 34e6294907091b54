from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from tact_api.errors import ParseError

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
# Greedy on purpose: first "{" to last "}" keeps nested objects intact
_OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")


def strip_code_fences(text: str) -> str:
    """Remove every ``` / ```json marker and surrounding whitespace."""
    return _FENCE_RE.sub("", text or "").strip()


def extract_json_span(text: str) -> Optional[str]:
    """Return the candidate JSON object text, or None if there is no {...} span.

    Text already starting with "{" is returned whole; otherwise the span from
    the first "{" to the last "}" is used so chatter before or after the
    object is dropped.
    """
    t = (text or "").strip()
    if not t:
        return None
    if t.startswith("{"):
        return t
    m = _OBJECT_SPAN_RE.search(t)
    if not m:
        return None
    return m.group(0)


def normalize(raw_text: str) -> Dict[str, Any]:
    """Parse a model response into a dict or raise ParseError.

    Strategy:
    - Drop markdown code fences wherever they appear.
    - Narrow to the first-to-last brace span when the text has a preamble.
    - Strict json.loads; malformed output is not repaired so the caller can
      fail over to another provider instead.
    """
    candidate = extract_json_span(strip_code_fences(raw_text))
    if candidate is None:
        raise ParseError(raw_text, "no JSON object found")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(raw_text, f"invalid JSON: {e.msg} at pos {e.pos}") from e
    if not isinstance(parsed, dict):
        raise ParseError(raw_text, "JSON value is not an object")
    return parsed
