"""
JSON helpers for hand-edited secret payloads.
"""

import json
import re
from typing import Any

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def repair_json_text(text: str) -> str:
    """
    Fix the formatting mistakes commonly found in hand-edited secrets.

    Normalizes Windows and old-Mac line endings to ``\\n`` and removes commas
    that directly precede a closing brace or bracket.
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return _TRAILING_COMMA.sub(r"\1", normalized)


def loads_lenient(text: str) -> Any:
    """Parse JSON after applying repair_json_text."""
    return json.loads(repair_json_text(text))
