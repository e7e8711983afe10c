"""Helpers for pulling JSON out of free-form LLM text.

Models often wrap JSON in markdown fences or surround it with prose, so
parsing never assumes the whole answer is a JSON document.
"""

import json


def strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content


def extract_json_object(content: str) -> dict | None:
    """Return the object spanning the first ``{`` through the last ``}``.

    None when there is no such span, it does not decode, or it decodes to
    something other than an object.
    """
    content = strip_json_fences(content or "")
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end < start:
        return None
    try:
        parsed = json.loads(content[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
