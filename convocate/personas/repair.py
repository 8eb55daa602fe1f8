"""
Convocate - Truncated JSON Repair
Closes objects a model left open when it ran out of tokens. Nothing more.
"""

import json
from typing import Any, Optional


def count_open_braces(text: str) -> Optional[int]:
    """
    Count unclosed braces outside string literals.

    Returns None when the text ends inside a string, which brace balancing
    cannot fix.
    """
    depth = 0
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
    if in_string:
        return None
    return depth


def repair_truncated_json(text: str) -> Optional[str]:
    """
    Append missing closing braces to a truncated JSON object.

    Returns the (possibly repaired) text, or None when it cannot be an
    object: it does not start with '{', ends inside a string, or still does
    not end with '}' after balancing.
    """
    candidate = (text or "").strip()
    if not candidate.startswith("{"):
        return None

    depth = count_open_braces(candidate)
    if depth is None:
        return None
    if depth > 0:
        candidate += "}" * depth

    if not candidate.endswith("}"):
        return None
    return candidate


def load_json_object(text: str) -> Optional[Any]:
    """Repair then parse; None on any failure."""
    repaired = repair_truncated_json(text)
    if repaired is None:
        return None
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return None
