"""
Defensive JSON extraction from LLM output.

Models sometimes wrap JSON in prose or markdown fences. Strategies are tried
in order: the raw text, a fenced ```json block, then the first {...} object.
"""

import json
import re
from typing import Any, Dict, Optional

_FENCED_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_DECODER = json.JSONDecoder()


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(output: str) -> Optional[Dict[str, Any]]:
    """
    Extract the first JSON object from model output.

    Args:
        output: Raw model text

    Returns:
        Parsed dict, or None if no strategy succeeds
    """
    if not output:
        return None

    parsed = _loads_object(output.strip())
    if parsed is not None:
        return parsed

    for match in _FENCED_PATTERN.findall(output):
        parsed = _loads_object(match)
        if parsed is not None:
            return parsed

    for start in (m.start() for m in re.finditer(r"\{", output)):
        try:
            parsed, _ = _DECODER.raw_decode(output, start)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    return None
